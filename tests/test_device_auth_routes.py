"""
Endpoint tests for /device-auth: the emailed approve / deny links,
the approval email trigger, the waiting-room status and the
post-login device check.

Run with: python -m pytest tests/test_device_auth_routes.py -v
"""

from unittest.mock import patch, AsyncMock

import pytest

from smartcare_auth.core.config import settings
from smartcare_auth.services.login_request_service import LoginRequestLedger
from smartcare_auth.services.trusted_device_service import TrustedDeviceService

from conftest import run, expire_request, USER_ID, EMAIL, DEVICE_ID

REQUEST_ID = f"{USER_ID}_{DEVICE_ID}"
SEND_EMAIL = "smartcare_auth.services.approval_dispatcher.send_email"

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@pytest.fixture
def pending(db):
    run(LoginRequestLedger.create_login_request(
        db, USER_ID, EMAIL, DEVICE_ID, {"browser": "Chrome", "os": "Windows"}, "203.0.113.7"
    ))
    request = run(LoginRequestLedger.get_login_request(db, REQUEST_ID))
    return LoginRequestLedger.link_token_for(request)


def approve_params(token, **overrides):
    params = {"uid": USER_ID, "deviceId": DEVICE_ID, "requestId": REQUEST_ID, "token": token}
    params.update(overrides)
    return {k: v for k, v in params.items() if v is not None}


class TestApproveLogin:

    def test_approve_link_trusts_device(self, client, db, pending):
        response = client.get("/device-auth/approve-login", params=approve_params(pending))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "Login Approved!" in response.text
        assert f"{settings.APP_URL}/login" in response.text
        assert run(TrustedDeviceService.check_device_trust(db, USER_ID, DEVICE_ID))["is_trusted"] is True

    def test_double_click_shows_already_approved(self, client, pending):
        client.get("/device-auth/approve-login", params=approve_params(pending))

        response = client.get("/device-auth/approve-login", params=approve_params(pending))

        assert response.status_code == 200
        assert "Approval Failed" in response.text
        assert "Request already approved" in response.text

    @pytest.mark.parametrize("missing", ["uid", "deviceId", "requestId"])
    def test_missing_parameters(self, client, pending, missing):
        params = approve_params(pending)
        params.pop(missing)

        response = client.get("/device-auth/approve-login", params=params)

        assert response.status_code == 200
        assert "Missing required parameters" in response.text

    def test_tampered_token_is_rejected(self, client, db, pending):
        response = client.get("/device-auth/approve-login", params=approve_params("f" * 64))

        assert "Approval Failed" in response.text
        assert "invalid or has been tampered with" in response.text
        assert run(LoginRequestLedger.get_login_request(db, REQUEST_ID))["status"] == "pending"

    def test_missing_token_is_rejected_when_required(self, client, db, pending):
        response = client.get("/device-auth/approve-login", params=approve_params(None))

        assert "invalid or has been tampered with" in response.text
        assert run(LoginRequestLedger.get_login_request(db, REQUEST_ID))["status"] == "pending"

    def test_token_not_required_when_disabled(self, client, db, pending, monkeypatch):
        monkeypatch.setattr(settings, "REQUIRE_LINK_TOKEN", False)

        response = client.get("/device-auth/approve-login", params=approve_params(None))

        assert "Login Approved!" in response.text

    def test_uid_must_match_request(self, client, db, pending):
        response = client.get("/device-auth/approve-login", params=approve_params(pending, uid="U2"))

        assert "invalid or has been tampered with" in response.text
        assert run(LoginRequestLedger.get_login_request(db, REQUEST_ID))["status"] == "pending"

    def test_expired_request(self, client, db, pending):
        expire_request(db, REQUEST_ID)

        response = client.get("/device-auth/approve-login", params=approve_params(pending))

        assert "Login request has expired" in response.text
        assert run(TrustedDeviceService.check_device_trust(db, USER_ID, DEVICE_ID))["is_trusted"] is False

    def test_unknown_request(self, client):
        response = client.get("/device-auth/approve-login", params=approve_params("x", requestId="U1_ghost"))

        assert response.status_code == 200
        assert "Login request not found" in response.text

    def test_unexpected_error_renders_generic_page(self, client, pending):
        with patch.object(
            LoginRequestLedger, "approve_login_request",
            new=AsyncMock(side_effect=RuntimeError("boom"))
        ):
            response = client.get("/device-auth/approve-login", params=approve_params(pending))

        assert response.status_code == 200
        assert "An error occurred while processing your approval" in response.text


class TestDenyLogin:

    def test_deny_link(self, client, db, pending):
        response = client.get("/device-auth/deny-login", params={"requestId": REQUEST_ID, "token": pending})

        assert response.status_code == 200
        assert "Login Denied" in response.text
        assert "was not granted access" in response.text
        assert run(LoginRequestLedger.get_login_request(db, REQUEST_ID))["status"] == "denied"

    def test_deny_after_approve(self, client, pending):
        client.get("/device-auth/approve-login", params=approve_params(pending))

        response = client.get("/device-auth/deny-login", params={"requestId": REQUEST_ID, "token": pending})

        assert "Denial Failed" in response.text
        assert "Request already approved" in response.text

    def test_deny_without_request_id(self, client):
        response = client.get("/device-auth/deny-login")

        assert response.status_code == 200
        assert "Missing required parameters" in response.text

    def test_deny_with_bad_token(self, client, db, pending):
        response = client.get("/device-auth/deny-login", params={"requestId": REQUEST_ID, "token": "nope"})

        assert "Denial Failed" in response.text
        assert run(LoginRequestLedger.get_login_request(db, REQUEST_ID))["status"] == "pending"


class TestSendApprovalEmailEndpoint:

    def body(self, **overrides):
        body = {
            "userId": USER_ID,
            "email": EMAIL,
            "deviceId": DEVICE_ID,
            "requestId": REQUEST_ID,
            "deviceMetadata": {"browser": "Chrome", "os": "Windows"},
            "ipAddress": "203.0.113.7",
        }
        body.update(overrides)
        return body

    def test_sends_email(self, client, pending):
        with patch(SEND_EMAIL, new=AsyncMock()) as send:
            response = client.post("/device-auth/send-approval-email", json=self.body())

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Approval email sent successfully"}
        send.assert_awaited_once()

    def test_missing_fields_is_400(self, client):
        response = client.post("/device-auth/send-approval-email", json=self.body(email=None))

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Missing required fields"}

    def test_foreign_email_gets_no_link(self, client, db, pending):
        with patch(SEND_EMAIL, new=AsyncMock()) as send:
            response = client.post(
                "/device-auth/send-approval-email", json=self.body(email="intruder@elsewhere.test")
            )

        assert response.status_code == 400
        assert response.json()["success"] is False
        send.assert_not_awaited()
        assert run(TrustedDeviceService.check_device_trust(db, USER_ID, DEVICE_ID))["is_trusted"] is False

    def test_mismatched_device_is_400(self, client, pending):
        with patch(SEND_EMAIL, new=AsyncMock()) as send:
            response = client.post("/device-auth/send-approval-email", json=self.body(deviceId="device_other"))

        assert response.status_code == 400
        send.assert_not_awaited()

    def test_unknown_request_is_404(self, client):
        with patch(SEND_EMAIL, new=AsyncMock()):
            response = client.post("/device-auth/send-approval-email", json=self.body())

        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_mail_failure_is_500(self, client, pending):
        with patch(SEND_EMAIL, new=AsyncMock(side_effect=RuntimeError("relay down"))):
            response = client.post("/device-auth/send-approval-email", json=self.body())

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "relay down"}


class TestLoginStatus:

    def test_pending(self, client, pending):
        response = client.get("/device-auth/login-status", params={"uid": USER_ID, "deviceId": DEVICE_ID})

        assert response.status_code == 200
        assert response.json() == {"state": "pending", "redirect_to": None, "error": None}

    def test_approved_redirects_by_role(self, client, pending):
        client.get("/device-auth/approve-login", params=approve_params(pending))

        response = client.get(
            "/device-auth/login-status",
            params={"uid": USER_ID, "deviceId": DEVICE_ID, "role": "doctor"}
        )

        assert response.json()["state"] == "approved"
        assert response.json()["redirect_to"] == "/doctor/dashboard"

    def test_expired(self, client, db, pending):
        expire_request(db, REQUEST_ID)

        response = client.get("/device-auth/login-status", params={"uid": USER_ID, "deviceId": DEVICE_ID})

        assert response.json()["state"] == "expired"

    def test_missing_ids(self, client):
        response = client.get("/device-auth/login-status", params={"uid": USER_ID})

        assert response.json() == {
            "state": "error",
            "redirect_to": None,
            "error": "Missing user or device information",
        }


class TestCheckDevice:

    def test_requires_token(self, client):
        response = client.post("/device-auth/check-device", json={"deviceId": DEVICE_ID})

        assert response.status_code == 401

    def test_untrusted_device_with_two_factor(self, client, db, auth_headers):
        run(db.user_settings.insert_one({"_id": USER_ID, "security": {"two_factor": True}}))

        with patch(SEND_EMAIL, new=AsyncMock()) as send:
            response = client.post(
                "/device-auth/check-device",
                json={"deviceId": DEVICE_ID},
                headers={**auth_headers, "User-Agent": CHROME_UA, "X-Forwarded-For": "198.51.100.4, 10.0.0.1"},
            )

        assert response.status_code == 200
        assert response.json() == {
            "requires_device_approval": True,
            "request_id": REQUEST_ID,
            "email_sent": True,
        }
        send.assert_awaited_once()

        request = run(LoginRequestLedger.get_login_request(db, REQUEST_ID))
        assert request["ip_address"] == "198.51.100.4"
        assert request["device_metadata"]["browser"] == "Chrome"
        assert request["device_metadata"]["os"] == "Windows"

    def test_two_factor_off(self, client, db, auth_headers):
        response = client.post("/device-auth/check-device", json={"deviceId": DEVICE_ID}, headers=auth_headers)

        assert response.json()["requires_device_approval"] is False
        assert run(TrustedDeviceService.check_device_trust(db, USER_ID, DEVICE_ID))["is_trusted"] is True
