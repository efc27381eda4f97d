# ============================================================================
# smartcare_auth/services/login_request_service.py
# ============================================================================
"""
Login request ledger.

Tracks one approval handshake per (user, device) pair through
``pending -> approved | denied``. Expiry is enforced lazily: nothing
sweeps stale requests, callers check ``expires_at`` when they act.
"""

import asyncio
import logging
import secrets
from datetime import datetime
from typing import Optional, Dict, Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from smartcare_auth.core.config import settings
from smartcare_auth.core.errors import (
    DeviceAuthError,
    MissingParametersError,
    LoginRequestNotFoundError,
    AlreadyProcessedError,
    LoginRequestExpiredError,
    TrustWriteError,
    failure,
)
from smartcare_auth.core.security import sign_approval_link, verify_approval_link
from smartcare_auth.db.models.login_request_model import (
    LoginRequestModel,
    LoginRequestStatus,
    login_request_id,
)
from smartcare_auth.services.trusted_device_service import TrustedDeviceService

logger = logging.getLogger(__name__)

PENDING = LoginRequestStatus.PENDING.value
APPROVED = LoginRequestStatus.APPROVED.value
DENIED = LoginRequestStatus.DENIED.value


def _as_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    # Tolerate ISO strings written by older clients
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)


def is_expired(request: dict, now: Optional[datetime] = None) -> bool:
    expires_at = _as_datetime(request.get("expires_at"))
    if expires_at is None:
        return False
    return expires_at < (now or datetime.utcnow())


def _serialize(request: dict) -> dict:
    request = dict(request)
    request["id"] = str(request.pop("_id"))
    return request


def _ensure_actionable(request: Optional[dict], now: datetime, check_expiry: bool = True) -> dict:
    """Raise the failure that applies to ``request``, in NotFound, AlreadyProcessed, Expired order."""
    if not request:
        raise LoginRequestNotFoundError()
    if request.get("status") != PENDING:
        raise AlreadyProcessedError(request.get("status"))
    if check_expiry and is_expired(request, now):
        raise LoginRequestExpiredError()
    return request


class LoginRequestLedger:

    # ---------------------------------------------------------------------
    # Reads
    # ---------------------------------------------------------------------
    @staticmethod
    async def find_login_request(db: AsyncIOMotorDatabase, request_id: str) -> Optional[dict]:
        """Raw read. Storage errors propagate."""
        request = await db.login_requests.find_one({"_id": request_id})
        return _serialize(request) if request else None

    @staticmethod
    async def get_login_request(db: AsyncIOMotorDatabase, request_id: str) -> Optional[dict]:
        """
        Return the stored request verbatim, including stale pending ones.
        Expiry is not enforced here.
        """
        if not request_id:
            return None
        try:
            return await LoginRequestLedger.find_login_request(db, request_id)
        except Exception:
            logger.exception("Error getting login request %s", request_id)
            return None

    @staticmethod
    async def get_pending_login_request(
        db: AsyncIOMotorDatabase,
        user_id: str,
        device_id: str
    ) -> Optional[dict]:
        """
        Despite the name, approved and denied requests are returned too
        so the waiting room can observe the outcome.
        """
        if not user_id or not device_id:
            return None
        return await LoginRequestLedger.get_login_request(db, login_request_id(user_id, device_id))

    # ---------------------------------------------------------------------
    # Create
    # ---------------------------------------------------------------------
    @staticmethod
    async def create_login_request(
        db: AsyncIOMotorDatabase,
        user_id: str,
        email: str,
        device_id: str,
        device_metadata: Optional[dict] = None,
        ip_address: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Create a pending request for an untrusted device.

        Returns
        -------
        dict
            ``{"success", "request_id", "already_exists"}``. A request that
            is still pending and unexpired is reused as-is; its expiry is not
            extended. Finished or expired requests are replaced by a fresh
            one with a new expiry and link nonce.
        """
        if not user_id or not device_id:
            return {**failure(MissingParametersError()), "request_id": None, "already_exists": False}

        request_id = login_request_id(user_id, device_id)

        try:
            existing = await db.login_requests.find_one({"_id": request_id})
            if existing and existing.get("status") == PENDING and not is_expired(existing):
                logger.info("Reusing pending login request %s", request_id)
                return {"success": True, "request_id": request_id, "already_exists": True}

            if existing and existing.get("status") == PENDING:
                # Expired: replace only the exact document that was read
                replace_filter = {"_id": request_id, "status": PENDING, "expires_at": existing.get("expires_at")}
            else:
                replace_filter = {"_id": request_id, "status": {"$ne": PENDING}}

            request = LoginRequestModel(
                user_id=user_id,
                email=email or "",
                device_id=device_id,
                status=PENDING,
                device_metadata=device_metadata or {},
                ip_address=ip_address or "Unknown",
                link_nonce=secrets.token_urlsafe(16),
            )
            doc = request.model_dump()
            doc["_id"] = request_id

            try:
                # A concurrent create that already wrote a fresh pending one wins
                await db.login_requests.replace_one(
                    replace_filter,
                    doc,
                    upsert=True
                )
            except DuplicateKeyError:
                return {"success": True, "request_id": request_id, "already_exists": True}

            await TrustedDeviceService.ensure_device_record(
                db, user_id, device_id, device_metadata, ip_address
            )

            logger.info("Login request created: %s expires_at=%s", request_id, doc["expires_at"].isoformat())
            return {"success": True, "request_id": request_id, "already_exists": False}

        except Exception as e:
            logger.exception("Error creating login request for user=%s", user_id)
            return {**failure(e), "request_id": None, "already_exists": False}

    # ---------------------------------------------------------------------
    # Terminal transitions
    # ---------------------------------------------------------------------
    @staticmethod
    async def approve_login_request(db: AsyncIOMotorDatabase, request_id: str) -> Dict[str, Any]:
        """
        Approve a pending, unexpired request and trust its device.

        The status flip is a conditional update on ``status == "pending"``,
        so of two racing approvals exactly one succeeds. The device trust
        write that follows is the second step of a two-step saga: until it
        lands the request carries ``device_trust_applied=False`` and the
        trust reconciler will retry it.
        """
        if not request_id:
            return failure(MissingParametersError())

        try:
            now = datetime.utcnow()
            request = await LoginRequestLedger.find_login_request(db, request_id)
            _ensure_actionable(request, now)

            if isinstance(request.get("expires_at"), str):
                # The conditional update below compares BSON dates
                await db.login_requests.update_one(
                    {"_id": request_id, "expires_at": request["expires_at"]},
                    {"$set": {"expires_at": _as_datetime(request["expires_at"])}}
                )

            updated = await db.login_requests.find_one_and_update(
                {"_id": request_id, "status": PENDING, "expires_at": {"$gte": now}},
                {"$set": {
                    "status": APPROVED,
                    "approved_at": now,
                    "device_trust_applied": False,
                }},
                return_document=ReturnDocument.AFTER
            )
            if updated is None:
                # Lost a race, or the request changed between read and write
                _ensure_actionable(await LoginRequestLedger.find_login_request(db, request_id), now)
                raise DeviceAuthError("Login request could not be approved")

            await LoginRequestLedger.apply_device_trust(db, _serialize(updated))

            logger.info("Login request approved: %s", request_id)
            return {"success": True, "error": None}

        except DeviceAuthError as e:
            logger.info("Approve rejected for %s: %s", request_id, e)
            return failure(e)
        except Exception as e:
            logger.exception("Error approving login request %s", request_id)
            return failure(e)

    @staticmethod
    async def apply_device_trust(db: AsyncIOMotorDatabase, request: dict) -> None:
        """
        Second step of the approval saga. Idempotent, so retrying after a
        partial failure is safe. Raises TrustWriteError when every attempt fails.
        """
        attempts = max(1, settings.TRUST_WRITE_RETRIES)
        last_error = None

        for attempt in range(1, attempts + 1):
            try:
                await TrustedDeviceService.upsert_trusted_device(
                    db,
                    request["user_id"],
                    request["device_id"],
                    request.get("device_metadata") or {},
                    request.get("ip_address") or "Unknown",
                )
                await db.login_requests.update_one(
                    {"_id": request["id"]},
                    {"$set": {"device_trust_applied": True}}
                )
                return
            except Exception as e:
                last_error = e
                logger.warning(
                    "Device trust write failed for %s (attempt %d/%d): %s",
                    request["id"], attempt, attempts, e
                )
                if attempt < attempts:
                    await asyncio.sleep(0.1 * attempt)

        raise TrustWriteError() from last_error

    @staticmethod
    async def deny_login_request(db: AsyncIOMotorDatabase, request_id: str) -> Dict[str, Any]:
        """
        Deny a pending request. The device record is not touched, so the
        device simply never becomes trusted. Expired requests may still be
        denied.
        """
        if not request_id:
            return failure(MissingParametersError())

        try:
            now = datetime.utcnow()
            request = await LoginRequestLedger.find_login_request(db, request_id)
            _ensure_actionable(request, now, check_expiry=False)

            updated = await db.login_requests.find_one_and_update(
                {"_id": request_id, "status": PENDING},
                {"$set": {"status": DENIED, "denied_at": now}},
                return_document=ReturnDocument.AFTER
            )
            if updated is None:
                _ensure_actionable(
                    await LoginRequestLedger.find_login_request(db, request_id), now, check_expiry=False
                )
                raise DeviceAuthError("Login request could not be denied")

            logger.info("Login request denied: %s", request_id)
            return {"success": True, "error": None}

        except DeviceAuthError as e:
            logger.info("Deny rejected for %s: %s", request_id, e)
            return failure(e)
        except Exception as e:
            logger.exception("Error denying login request %s", request_id)
            return failure(e)

    # ---------------------------------------------------------------------
    # Approval link tokens
    # ---------------------------------------------------------------------
    @staticmethod
    def link_token_for(request: dict) -> Optional[str]:
        nonce = request.get("link_nonce")
        if not nonce:
            return None
        return sign_approval_link(request["id"], nonce)

    @staticmethod
    def verify_link_token(request: dict, token: Optional[str]) -> bool:
        return verify_approval_link(request["id"], request.get("link_nonce"), token)
