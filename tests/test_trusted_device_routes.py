"""
Endpoint tests for /api/v1/trusted-devices.

Run with: python -m pytest tests/test_trusted_device_routes.py -v
"""

from smartcare_auth.services.trusted_device_service import TrustedDeviceService

from conftest import run, USER_ID, DEVICE_ID


SESSION = {
    "_id": "sess_1",
    "user_id": USER_ID,
    "deviceName": "Safari on iOS",
    "ipAddress": "10.1.2.3",
    "deviceType": "mobile",
}


class TestTrustedDeviceRoutes:

    def test_requires_authentication(self, client):
        assert client.get("/api/v1/trusted-devices").status_code == 401

    def test_list_trusted_devices(self, client, db, auth_headers):
        run(TrustedDeviceService.register_trusted_device(db, USER_ID, DEVICE_ID, {"browser": "Chrome"}, "1.2.3.4"))
        run(TrustedDeviceService.ensure_device_record(db, USER_ID, "device_waiting"))

        response = client.get("/api/v1/trusted-devices", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["devices"][0]["device_id"] == DEVICE_ID
        assert body["devices"][0]["trusted"] is True

    def test_revoke(self, client, db, auth_headers):
        run(TrustedDeviceService.register_trusted_device(db, USER_ID, DEVICE_ID))

        response = client.post("/api/v1/trusted-devices/revoke", json={"device_id": DEVICE_ID}, headers=auth_headers)

        assert response.status_code == 200
        assert run(TrustedDeviceService.check_device_trust(db, USER_ID, DEVICE_ID))["is_trusted"] is False

    def test_revoke_only_affects_own_devices(self, client, db, other_user_headers):
        run(TrustedDeviceService.register_trusted_device(db, USER_ID, DEVICE_ID))

        client.post("/api/v1/trusted-devices/revoke", json={"device_id": DEVICE_ID}, headers=other_user_headers)

        assert run(TrustedDeviceService.check_device_trust(db, USER_ID, DEVICE_ID))["is_trusted"] is True

    def test_trust_from_session(self, client, db, auth_headers):
        run(db.sessions.insert_one(dict(SESSION)))

        response = client.post("/api/v1/trusted-devices/from-session", json={"session_id": "sess_1"}, headers=auth_headers)

        assert response.status_code == 201
        device_id = response.json()["device_id"]
        assert device_id == "session_Safari_on_iOS_10_1_2_3_U1"

        device = run(TrustedDeviceService.find_device(db, USER_ID, device_id))
        assert device["device_metadata"]["screenWidth"] == 375
        assert device["device_metadata"]["screenHeight"] == 667

        check = client.get("/api/v1/trusted-devices/from-session/sess_1", headers=auth_headers)
        assert check.json() == {"session_id": "sess_1", "is_trusted": True}

    def test_unknown_session_is_404(self, client, auth_headers):
        response = client.post("/api/v1/trusted-devices/from-session", json={"session_id": "nope"}, headers=auth_headers)

        assert response.status_code == 404

    def test_someone_elses_session_is_403(self, client, db, other_user_headers):
        run(db.sessions.insert_one(dict(SESSION)))

        response = client.post(
            "/api/v1/trusted-devices/from-session", json={"session_id": "sess_1"}, headers=other_user_headers
        )

        assert response.status_code == 403
