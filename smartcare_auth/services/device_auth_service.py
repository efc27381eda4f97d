# ============================================================================
# smartcare_auth/services/device_auth_service.py
# ============================================================================

import logging
from typing import Optional, Dict, Any

from motor.motor_asyncio import AsyncIOMotorDatabase

from smartcare_auth.services.approval_dispatcher import ApprovalDispatcher
from smartcare_auth.services.login_request_service import LoginRequestLedger
from smartcare_auth.services.trusted_device_service import TrustedDeviceService

logger = logging.getLogger(__name__)


async def is_device_approval_required(db: AsyncIOMotorDatabase, user_id: str) -> bool:
    """
    Approval is required only when the user explicitly turned two-factor on.
    A missing settings document or an unreadable one means "off".
    """
    try:
        user_settings = await db.user_settings.find_one({"_id": user_id})
    except Exception:
        logger.exception("[Device Auth] Error reading user settings for %s", user_id)
        return False

    if not user_settings:
        return False

    return (user_settings.get("security") or {}).get("two_factor") is True


class DeviceAuthService:

    @staticmethod
    async def evaluate_login(
        db: AsyncIOMotorDatabase,
        user_id: str,
        email: str,
        device_id: Optional[str],
        device_metadata: Optional[dict] = None,
        ip_address: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Decide whether a freshly signed-in device may proceed.

        * two-factor on and device not trusted: create a login request,
          email the approve / deny links, and hold the login;
        * device already trusted: refresh ``last_used``;
        * two-factor off: trust the device automatically.

        A request that cannot be created is logged and the login proceeds.
        A failed email keeps the hold (``email_sent=False``); the waiting
        room can ask for a resend.
        """
        approval_required = await is_device_approval_required(db, user_id)
        trust = await TrustedDeviceService.check_device_trust(db, user_id, device_id)

        if approval_required and not trust["is_trusted"] and device_id:
            logger.info("[Device Auth] Approval required for user=%s device=%s", user_id, device_id)

            created = await LoginRequestLedger.create_login_request(
                db, user_id, email, device_id, device_metadata, ip_address
            )
            if created["success"]:
                dispatch = await ApprovalDispatcher.send_approval_email(
                    db,
                    user_id,
                    email,
                    device_id,
                    created["request_id"],
                    device_metadata,
                    ip_address,
                )
                if not dispatch["success"]:
                    logger.error("[Device Auth] Approval email failed: %s", dispatch["message"])

                return {
                    "requires_device_approval": True,
                    "request_id": created["request_id"],
                    "email_sent": dispatch["success"],
                }

            logger.error("[Device Auth] Could not create login request: %s", created.get("error"))
            return {"requires_device_approval": False, "request_id": None, "email_sent": False}

        if trust["is_trusted"] and device_id:
            try:
                await TrustedDeviceService.update_last_used(db, user_id, device_id)
            except Exception:
                logger.exception("[Device Auth] Error updating device last used")
        elif not approval_required and device_id:
            logger.info("[Device Auth] Two-factor off, auto-trusting device %s", device_id)
            await TrustedDeviceService.register_trusted_device(db, user_id, device_id, device_metadata, ip_address)

        return {"requires_device_approval": False, "request_id": None, "email_sent": False}
