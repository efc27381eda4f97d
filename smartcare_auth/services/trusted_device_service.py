# ============================================================================
# smartcare_auth/services/trusted_device_service.py
# ============================================================================

import logging
from datetime import datetime
from typing import Optional, Dict, Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from smartcare_auth.core.errors import failure
from smartcare_auth.db.models.device_model import DeviceModel
from smartcare_auth.utils.device_utils import SessionDerivedDeviceIdentity

logger = logging.getLogger(__name__)


def serialize_device(device: dict) -> dict:
    """Replace Mongo's ``_id`` with a string ``id``."""
    device = dict(device)
    device["id"] = str(device.pop("_id", ""))
    return device


class TrustedDeviceService:
    """
    Registry of devices per user. The only source of truth for
    "may this device sign in without approval".
    """

    @staticmethod
    async def find_device(
        db: AsyncIOMotorDatabase,
        user_id: str,
        device_id: str
    ) -> Optional[dict]:
        """Raw read of a device record. Storage errors propagate."""
        return await db.devices.find_one({
            "user_id": user_id,
            "device_id": device_id
        })

    @staticmethod
    async def check_device_trust(
        db: AsyncIOMotorDatabase,
        user_id: str,
        device_id: str
    ) -> Dict[str, Any]:
        """
        Check if a device is trusted for a user.

        Parameters
        ----------
        db : AsyncIOMotorDatabase
            Database instance
        user_id : str
            User ID
        device_id : str
            Device ID to check

        Returns
        -------
        dict
            ``{"is_trusted": bool, "device_data": dict | None}``. A missing
            record, ``trusted != True`` and storage errors all count as
            untrusted.
        """
        if not user_id or not device_id:
            return {"is_trusted": False, "device_data": None}

        try:
            device = await TrustedDeviceService.find_device(db, user_id, device_id)
        except Exception:
            logger.exception("Error checking device trust for user=%s device=%s", user_id, device_id)
            return {"is_trusted": False, "device_data": None}

        if device:
            return {
                "is_trusted": device.get("trusted") is True,
                "device_data": serialize_device(device),
            }

        return {"is_trusted": False, "device_data": None}

    @staticmethod
    async def upsert_trusted_device(
        db: AsyncIOMotorDatabase,
        user_id: str,
        device_id: str,
        device_metadata: Optional[dict] = None,
        ip_address: Optional[str] = None
    ) -> None:
        """
        Merge-upsert a device as trusted. Fields not supplied keep their
        stored value; defaults only apply when the record is new.
        ``approved_at`` is stamped once, when the device becomes trusted.
        Storage errors propagate.
        """
        now = datetime.utcnow()

        # Untrusted -> trusted flip of an existing record
        await db.devices.update_one(
            {"user_id": user_id, "device_id": device_id, "trusted": {"$ne": True}},
            {"$set": {"approved_at": now}}
        )

        set_fields = {
            "trusted": True,
            "last_used": now,
        }
        if device_metadata is not None:
            set_fields["device_metadata"] = device_metadata
        if ip_address:
            set_fields["ip_address"] = ip_address

        on_insert = {"first_seen": now, "approved_at": now}
        if "device_metadata" not in set_fields:
            on_insert["device_metadata"] = {}
        if "ip_address" not in set_fields:
            on_insert["ip_address"] = "Unknown"

        await db.devices.update_one(
            {"user_id": user_id, "device_id": device_id},
            {"$set": set_fields, "$setOnInsert": on_insert},
            upsert=True
        )

    @staticmethod
    async def register_trusted_device(
        db: AsyncIOMotorDatabase,
        user_id: str,
        device_id: str,
        device_metadata: Optional[dict] = None,
        ip_address: Optional[str] = None
    ) -> Dict[str, Any]:
        """Idempotently mark a device as trusted and refresh ``last_used``."""
        try:
            await TrustedDeviceService.upsert_trusted_device(
                db, user_id, device_id, device_metadata, ip_address
            )
            logger.info("Device trusted: user=%s device=%s", user_id, device_id)
            return {"success": True, "error": None}
        except Exception as e:
            logger.exception("Error registering trusted device for user=%s", user_id)
            return failure(e)

    @staticmethod
    async def ensure_device_record(
        db: AsyncIOMotorDatabase,
        user_id: str,
        device_id: str,
        device_metadata: Optional[dict] = None,
        ip_address: Optional[str] = None
    ) -> None:
        """
        Create an untrusted record the first time a device is seen.
        Existing records, trusted or not, are left untouched.
        """
        record = DeviceModel(
            user_id=user_id,
            device_id=device_id,
            device_metadata=device_metadata or {},
            ip_address=ip_address or "Unknown",
        )
        await db.devices.update_one(
            {"user_id": user_id, "device_id": device_id},
            {"$setOnInsert": record.model_dump(exclude={"user_id", "device_id"})},
            upsert=True
        )

    @staticmethod
    async def update_last_used(
        db: AsyncIOMotorDatabase,
        user_id: str,
        device_id: str
    ) -> None:
        """Update last_used timestamp for a trusted device."""
        await db.devices.update_one(
            {
                "user_id": user_id,
                "device_id": device_id,
                "trusted": True
            },
            {"$set": {"last_used": datetime.utcnow()}}
        )

    @staticmethod
    async def get_trusted_devices(
        db: AsyncIOMotorDatabase,
        user_id: str
    ) -> list:
        """
        Get all trusted devices for a user, most recently used first.
        Untrusted records (devices still waiting for approval) are not listed.
        """
        try:
            cursor = db.devices.find({"user_id": user_id, "trusted": True}).sort("last_used", DESCENDING)
            devices = await cursor.to_list(length=None)
        except Exception:
            logger.exception("Error getting trusted devices for user=%s", user_id)
            return []

        return [serialize_device(d) for d in devices if d.get("trusted") is True]

    @staticmethod
    async def remove_trusted_device(
        db: AsyncIOMotorDatabase,
        user_id: str,
        device_id: str
    ) -> Dict[str, Any]:
        """Hard delete. Removing a device that does not exist still succeeds."""
        try:
            result = await db.devices.delete_one({"user_id": user_id, "device_id": device_id})
            logger.info(
                "Device removed: user=%s device=%s existed=%s",
                user_id, device_id, result.deleted_count > 0
            )
            return {"success": True, "error": None}
        except Exception as e:
            logger.exception("Error removing trusted device for user=%s", user_id)
            return failure(e)

    @staticmethod
    async def trust_device_from_session(
        db: AsyncIOMotorDatabase,
        user_id: str,
        session: dict
    ) -> Dict[str, Any]:
        """Convert an existing session into a trusted device record."""
        try:
            identity = SessionDerivedDeviceIdentity(user_id, session)
            device_id = identity.get_or_create()

            result = await TrustedDeviceService.register_trusted_device(
                db,
                user_id,
                device_id,
                identity.device_metadata(),
                identity.ip_address
            )
            if not result["success"]:
                return {"success": False, "error": "Failed to register device", "device_id": None}

            return {"success": True, "error": None, "device_id": device_id}
        except Exception as e:
            logger.exception("Error trusting device from session for user=%s", user_id)
            return {**failure(e), "device_id": None}

    @staticmethod
    async def is_session_device_trusted(
        db: AsyncIOMotorDatabase,
        user_id: str,
        session: dict
    ) -> bool:
        device_id = SessionDerivedDeviceIdentity(user_id, session).get_or_create()
        trust = await TrustedDeviceService.check_device_trust(db, user_id, device_id)
        return trust["is_trusted"]
