# ============================================================================
# smartcare_auth/services/suspicious_login_service.py
# ============================================================================
"""
Suspicious-login verification.

Only the single most recent unverified record of a user is surfaced
(``limit=1``, newest ``timestamp`` first). Older unverified records wait
until the newer one is resolved.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Dict, Any, List

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument

from smartcare_auth.core.config import settings
from smartcare_auth.core.errors import DeviceAuthError, failure
from smartcare_auth.db.models.suspicious_login_model import SuspiciousLoginModel, SuspiciousLoginStatus

logger = logging.getLogger(__name__)

UNVERIFIED = SuspiciousLoginStatus.UNVERIFIED.value
VERIFIED = SuspiciousLoginStatus.VERIFIED.value
REJECTED = SuspiciousLoginStatus.REJECTED.value


class SuspiciousLoginNotFoundError(DeviceAuthError):
    code = "not_found"
    default_message = "Suspicious login not found or already resolved"


def _object_id(record_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(record_id)
    except (InvalidId, TypeError):
        return None


def _serialize(record: dict) -> dict:
    record = dict(record)
    record["id"] = str(record.pop("_id"))
    return record


class SuspiciousLoginSubscription:
    """
    Live view of a user's latest unverified suspicious login.

    Async-iterate to receive the current record (or ``None``) once on
    start and again whenever it changes. Call ``unsubscribe()`` to end
    the stream.
    """

    def __init__(self, db: AsyncIOMotorDatabase, user_id: str, interval: float):
        self.db = db
        self.user_id = user_id
        self.interval = interval
        self._closed = asyncio.Event()
        self._started = False
        self._last_id: Optional[str] = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def unsubscribe(self) -> None:
        self._closed.set()

    def __aiter__(self):
        return self

    async def __anext__(self) -> Optional[dict]:
        while not self.closed:
            try:
                record = await SuspiciousLoginService.find_latest_unverified(self.db, self.user_id)
            except Exception:
                logger.exception("Suspicious login subscription read failed for user=%s", self.user_id)
            else:
                current_id = record["id"] if record else None
                if not self._started or current_id != self._last_id:
                    self._started = True
                    self._last_id = current_id
                    return record

            try:
                await asyncio.wait_for(self._closed.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        raise StopAsyncIteration

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.unsubscribe()


class SuspiciousLoginService:

    @staticmethod
    async def record_suspicious_login(
        db: AsyncIOMotorDatabase,
        user_id: str,
        session_id: Optional[str],
        device_info: Optional[dict] = None,
        ip_address: Optional[str] = None,
        reasons: Optional[List[str]] = None,
        threat_score: Optional[float] = None,
    ) -> str:
        record = SuspiciousLoginModel(
            user_id=user_id,
            session_id=session_id,
            status=UNVERIFIED,
            device_info=device_info or {},
            ip_address=ip_address or "Unknown",
            reasons=reasons or [],
            threat_score=threat_score,
        )
        result = await db.suspicious_logins.insert_one(record.model_dump())
        logger.info("Suspicious login recorded for user=%s session=%s", user_id, session_id)
        return str(result.inserted_id)

    @staticmethod
    async def find_latest_unverified(db: AsyncIOMotorDatabase, user_id: str) -> Optional[dict]:
        cursor = (
            db.suspicious_logins
            .find({"user_id": user_id, "status": UNVERIFIED})
            .sort("timestamp", DESCENDING)
            .limit(1)
        )
        records = await cursor.to_list(length=1)
        return _serialize(records[0]) if records else None

    @staticmethod
    async def get_latest_unverified(db: AsyncIOMotorDatabase, user_id: str) -> Optional[dict]:
        if not user_id:
            return None
        try:
            return await SuspiciousLoginService.find_latest_unverified(db, user_id)
        except Exception:
            logger.exception("Error reading suspicious logins for user=%s", user_id)
            return None

    @staticmethod
    def subscribe(
        db: AsyncIOMotorDatabase,
        user_id: str,
        interval: Optional[float] = None
    ) -> SuspiciousLoginSubscription:
        return SuspiciousLoginSubscription(
            db, user_id, settings.POLL_INTERVAL_SECONDS if interval is None else interval
        )

    @staticmethod
    async def _resolve(
        db: AsyncIOMotorDatabase,
        record_id: str,
        status: str,
        user_id: Optional[str]
    ) -> dict:
        oid = _object_id(record_id)
        if oid is None:
            raise SuspiciousLoginNotFoundError()

        query = {"_id": oid, "status": UNVERIFIED}
        if user_id:
            query["user_id"] = user_id

        record = await db.suspicious_logins.find_one_and_update(
            query,
            {"$set": {"status": status, "resolved_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER
        )
        if record is None:
            raise SuspiciousLoginNotFoundError()
        return record

    @staticmethod
    async def verify_suspicious_login(
        db: AsyncIOMotorDatabase,
        record_id: str,
        user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        "This was me": mark the record verified and the linked session
        trusted. The session update is a separate, non-transactional write.
        """
        try:
            record = await SuspiciousLoginService._resolve(db, record_id, VERIFIED, user_id)

            session_id = record.get("session_id")
            if session_id:
                session = await db.sessions.find_one({"_id": session_id})
                if session:
                    await db.sessions.update_one({"_id": session_id}, {"$set": {"trusted": True}})

            logger.info("Suspicious login %s verified", record_id)
            return {"success": True, "error": None}
        except DeviceAuthError as e:
            return failure(e)
        except Exception as e:
            logger.exception("Error verifying suspicious login %s", record_id)
            return failure(e)

    @staticmethod
    async def reject_suspicious_login(
        db: AsyncIOMotorDatabase,
        record_id: str,
        user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Mark the record rejected and delete the linked session immediately."""
        try:
            record = await SuspiciousLoginService._resolve(db, record_id, REJECTED, user_id)

            session_id = record.get("session_id")
            revoked = False
            if session_id:
                result = await db.sessions.delete_one({"_id": session_id})
                revoked = result.deleted_count > 0

            logger.info("Suspicious login %s rejected, session revoked=%s", record_id, revoked)
            return {"success": True, "error": None, "session_revoked": revoked}
        except DeviceAuthError as e:
            return failure(e)
        except Exception as e:
            logger.exception("Error rejecting suspicious login %s", record_id)
            return failure(e)

    @staticmethod
    async def get_suspicious_logins(
        db: AsyncIOMotorDatabase,
        user_id: str,
        status: Optional[str] = None
    ) -> list:
        """History view, newest first."""
        query = {"user_id": user_id}
        if status:
            query["status"] = status

        try:
            cursor = db.suspicious_logins.find(query).sort("timestamp", DESCENDING)
            records = await cursor.to_list(length=None)
        except Exception:
            logger.exception("Error listing suspicious logins for user=%s", user_id)
            return []

        return [_serialize(r) for r in records]

    @staticmethod
    async def clear_suspicious_logins(
        db: AsyncIOMotorDatabase,
        user_id: str,
        status: str
    ) -> Dict[str, Any]:
        try:
            result = await db.suspicious_logins.delete_many({"user_id": user_id, "status": status})
            return {"success": True, "error": None, "deleted": result.deleted_count}
        except Exception as e:
            logger.exception("Error clearing suspicious logins for user=%s", user_id)
            return {**failure(e), "deleted": 0}
