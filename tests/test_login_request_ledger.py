"""
Tests for the login request ledger: creation, approve / deny transitions,
lazy expiry and the device trust write that follows an approval.

Run with: python -m pytest tests/test_login_request_ledger.py -v
"""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import patch, AsyncMock

import pytest

from smartcare_auth.core.config import settings
from smartcare_auth.services.login_request_service import LoginRequestLedger, is_expired
from smartcare_auth.services.trusted_device_service import TrustedDeviceService
from smartcare_auth.services.trust_reconciler import reconcile_device_trust

from conftest import run, expire_request, USER_ID, EMAIL, DEVICE_ID

REQUEST_ID = f"{USER_ID}_{DEVICE_ID}"
METADATA = {"browser": "Chrome", "os": "Windows", "deviceType": "desktop"}


def create(db, device_id=DEVICE_ID):
    return run(LoginRequestLedger.create_login_request(
        db, USER_ID, EMAIL, device_id, METADATA, "203.0.113.7"
    ))


class TestCreateLoginRequest:

    def test_creates_pending_request_with_composite_id(self, db):
        result = create(db)

        assert result == {"success": True, "request_id": REQUEST_ID, "already_exists": False}

        request = run(LoginRequestLedger.get_login_request(db, REQUEST_ID))
        assert request["status"] == "pending"
        assert request["user_id"] == USER_ID
        assert request["email"] == EMAIL
        assert request["device_metadata"] == METADATA
        assert request["ip_address"] == "203.0.113.7"
        assert request["link_nonce"]
        delta = request["expires_at"] - request["created_at"]
        assert abs(delta.total_seconds() - settings.LOGIN_REQUEST_TTL_MINUTES * 60) < 1

    def test_creates_untrusted_device_record(self, db):
        create(db)

        device = run(TrustedDeviceService.find_device(db, USER_ID, DEVICE_ID))
        assert device is not None
        assert device["trusted"] is False

    def test_second_create_reuses_pending_request(self, db):
        create(db)
        original = run(LoginRequestLedger.get_login_request(db, REQUEST_ID))

        result = create(db)

        assert result["success"] is True
        assert result["already_exists"] is True
        again = run(LoginRequestLedger.get_login_request(db, REQUEST_ID))
        assert again["expires_at"] == original["expires_at"]
        assert again["link_nonce"] == original["link_nonce"]

    def test_finished_request_is_replaced_with_new_pending_one(self, db):
        create(db)
        old_nonce = run(LoginRequestLedger.get_login_request(db, REQUEST_ID))["link_nonce"]
        run(LoginRequestLedger.deny_login_request(db, REQUEST_ID))

        result = create(db)

        assert result["already_exists"] is False
        request = run(LoginRequestLedger.get_login_request(db, REQUEST_ID))
        assert request["status"] == "pending"
        assert request["denied_at"] is None
        assert request["link_nonce"] != old_nonce

    def test_expired_pending_request_is_replaced_on_next_login(self, db):
        create(db)
        old = run(LoginRequestLedger.get_login_request(db, REQUEST_ID))
        expire_request(db, REQUEST_ID)

        result = create(db)

        assert result["success"] is True
        assert result["already_exists"] is False
        request = run(LoginRequestLedger.get_login_request(db, REQUEST_ID))
        assert request["status"] == "pending"
        assert not is_expired(request)
        assert request["link_nonce"] != old["link_nonce"]

        approved = run(LoginRequestLedger.approve_login_request(db, REQUEST_ID))

        assert approved["success"] is True
        assert run(TrustedDeviceService.check_device_trust(db, USER_ID, DEVICE_ID))["is_trusted"] is True

    def test_missing_ids_fail(self, db):
        result = run(LoginRequestLedger.create_login_request(db, "", EMAIL, DEVICE_ID))

        assert result["success"] is False
        assert result["code"] == "missing_parameters"
        assert result["request_id"] is None


class TestApproveLoginRequest:

    def test_approve_pending_request_trusts_device(self, db):
        create(db)

        result = run(LoginRequestLedger.approve_login_request(db, REQUEST_ID))

        assert result["success"] is True
        request = run(LoginRequestLedger.get_login_request(db, REQUEST_ID))
        assert request["status"] == "approved"
        assert request["approved_at"] is not None
        assert request["device_trust_applied"] is True

        trust = run(TrustedDeviceService.check_device_trust(db, USER_ID, DEVICE_ID))
        assert trust["is_trusted"] is True
        assert trust["device_data"]["device_metadata"] == METADATA
        assert trust["device_data"]["ip_address"] == "203.0.113.7"

    def test_second_approve_reports_already_approved(self, db):
        create(db)
        run(LoginRequestLedger.approve_login_request(db, REQUEST_ID))

        result = run(LoginRequestLedger.approve_login_request(db, REQUEST_ID))

        assert result["success"] is False
        assert result["error"] == "Request already approved"
        assert result["code"] == "already_processed"

    def test_approve_after_deny_is_rejected(self, db):
        create(db)
        run(LoginRequestLedger.deny_login_request(db, REQUEST_ID))

        result = run(LoginRequestLedger.approve_login_request(db, REQUEST_ID))

        assert result["error"] == "Request already denied"
        assert run(TrustedDeviceService.check_device_trust(db, USER_ID, DEVICE_ID))["is_trusted"] is False

    def test_expired_request_cannot_be_approved(self, db):
        create(db)
        expire_request(db, REQUEST_ID)

        result = run(LoginRequestLedger.approve_login_request(db, REQUEST_ID))

        assert result["success"] is False
        assert result["error"] == "Login request has expired"
        assert result["code"] == "expired"
        # Lazy expiry: storage still says pending
        assert run(LoginRequestLedger.get_login_request(db, REQUEST_ID))["status"] == "pending"
        assert run(TrustedDeviceService.check_device_trust(db, USER_ID, DEVICE_ID))["is_trusted"] is False

    def test_approve_request_with_iso_string_expiry(self, db):
        create(db)
        future = (datetime.utcnow() + timedelta(minutes=5)).isoformat() + "Z"
        run(db.login_requests.update_one({"_id": REQUEST_ID}, {"$set": {"expires_at": future}}))

        result = run(LoginRequestLedger.approve_login_request(db, REQUEST_ID))

        assert result["success"] is True
        request = run(LoginRequestLedger.get_login_request(db, REQUEST_ID))
        assert request["status"] == "approved"
        assert isinstance(request["expires_at"], datetime)

    def test_iso_string_expiry_in_the_past_is_expired(self, db):
        create(db)
        run(db.login_requests.update_one(
            {"_id": REQUEST_ID}, {"$set": {"expires_at": "2000-01-01T00:00:00Z"}}
        ))

        result = run(LoginRequestLedger.approve_login_request(db, REQUEST_ID))

        assert result["code"] == "expired"

    def test_unknown_request_is_not_found(self, db):
        result = run(LoginRequestLedger.approve_login_request(db, "nope_nope"))

        assert result == {"success": False, "error": "Login request not found", "code": "not_found"}

    def test_concurrent_approvals_succeed_once(self, db):
        create(db)

        async def race():
            return await asyncio.gather(
                LoginRequestLedger.approve_login_request(db, REQUEST_ID),
                LoginRequestLedger.approve_login_request(db, REQUEST_ID),
            )

        results = run(race())

        assert sorted(r["success"] for r in results) == [False, True]
        loser = next(r for r in results if not r["success"])
        assert loser["error"] == "Request already approved"

    def test_trust_write_failure_leaves_marker_for_reconciler(self, db, monkeypatch):
        monkeypatch.setattr(settings, "TRUST_WRITE_RETRIES", 2)
        create(db)

        with patch.object(
            TrustedDeviceService, "upsert_trusted_device",
            new=AsyncMock(side_effect=RuntimeError("primary down"))
        ):
            result = run(LoginRequestLedger.approve_login_request(db, REQUEST_ID))

        assert result["success"] is False
        assert result["code"] == "trust_write_failed"
        request = run(LoginRequestLedger.get_login_request(db, REQUEST_ID))
        assert request["status"] == "approved"
        assert request["device_trust_applied"] is False
        assert run(TrustedDeviceService.check_device_trust(db, USER_ID, DEVICE_ID))["is_trusted"] is False

        repaired = run(reconcile_device_trust(db))

        assert repaired == 1
        assert run(TrustedDeviceService.check_device_trust(db, USER_ID, DEVICE_ID))["is_trusted"] is True
        assert run(LoginRequestLedger.get_login_request(db, REQUEST_ID))["device_trust_applied"] is True
        assert run(reconcile_device_trust(db)) == 0


class TestDenyLoginRequest:

    def test_deny_pending_request(self, db):
        create(db)

        result = run(LoginRequestLedger.deny_login_request(db, REQUEST_ID))

        assert result["success"] is True
        request = run(LoginRequestLedger.get_login_request(db, REQUEST_ID))
        assert request["status"] == "denied"
        assert request["denied_at"] is not None
        assert run(TrustedDeviceService.check_device_trust(db, USER_ID, DEVICE_ID))["is_trusted"] is False

    def test_deny_does_not_touch_an_already_trusted_device(self, db):
        run(TrustedDeviceService.register_trusted_device(db, USER_ID, DEVICE_ID))
        create(db)

        run(LoginRequestLedger.deny_login_request(db, REQUEST_ID))

        assert run(TrustedDeviceService.check_device_trust(db, USER_ID, DEVICE_ID))["is_trusted"] is True

    def test_deny_after_approve_is_rejected(self, db):
        create(db)
        run(LoginRequestLedger.approve_login_request(db, REQUEST_ID))

        result = run(LoginRequestLedger.deny_login_request(db, REQUEST_ID))

        assert result["error"] == "Request already approved"
        assert run(LoginRequestLedger.get_login_request(db, REQUEST_ID))["status"] == "approved"

    def test_expired_request_can_still_be_denied(self, db):
        create(db)
        expire_request(db, REQUEST_ID)

        result = run(LoginRequestLedger.deny_login_request(db, REQUEST_ID))

        assert result["success"] is True

    def test_missing_request_id(self, db):
        result = run(LoginRequestLedger.deny_login_request(db, ""))

        assert result["code"] == "missing_parameters"


class TestReads:

    def test_get_pending_login_request_returns_terminal_requests_too(self, db):
        create(db)
        run(LoginRequestLedger.approve_login_request(db, REQUEST_ID))

        request = run(LoginRequestLedger.get_pending_login_request(db, USER_ID, DEVICE_ID))

        assert request["status"] == "approved"

    def test_get_login_request_returns_stale_pending(self, db):
        create(db)
        expire_request(db, REQUEST_ID)

        request = run(LoginRequestLedger.get_login_request(db, REQUEST_ID))

        assert request["status"] == "pending"
        assert is_expired(request)

    def test_get_login_request_hides_storage_errors(self):
        broken = AsyncMock()
        broken.login_requests.find_one.side_effect = RuntimeError("boom")

        assert run(LoginRequestLedger.get_login_request(broken, REQUEST_ID)) is None

    def test_is_expired_accepts_iso_strings(self):
        assert is_expired({"expires_at": "2000-01-01T00:00:00Z"}) is True
        assert is_expired({"expires_at": "2999-01-01T00:00:00"}) is False
        assert is_expired({}) is False


class TestLinkTokens:

    def test_token_verifies_for_its_request_only(self, db):
        create(db)
        create(db, device_id="device_other")
        request = run(LoginRequestLedger.get_login_request(db, REQUEST_ID))
        other = run(LoginRequestLedger.get_login_request(db, f"{USER_ID}_device_other"))

        token = LoginRequestLedger.link_token_for(request)

        assert LoginRequestLedger.verify_link_token(request, token) is True
        assert LoginRequestLedger.verify_link_token(other, token) is False
        assert LoginRequestLedger.verify_link_token(request, None) is False
        assert LoginRequestLedger.verify_link_token(request, "0" * 64) is False

    @pytest.mark.parametrize("nonce", [None, ""])
    def test_request_without_nonce_has_no_token(self, nonce):
        assert LoginRequestLedger.link_token_for({"id": REQUEST_ID, "link_nonce": nonce}) is None
