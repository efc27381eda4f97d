# ============================================================================
# smartcare_auth/services/approval_dispatcher.py
# ============================================================================

import logging
from datetime import datetime
from typing import Optional, Dict, Any
from urllib.parse import urlencode

from motor.motor_asyncio import AsyncIOMotorDatabase

from smartcare_auth.core.config import settings
from smartcare_auth.core.errors import (
    DeviceAuthError,
    DispatchFailureError,
    InvalidApprovalLinkError,
    LoginRequestNotFoundError,
    MissingParametersError,
)
from smartcare_auth.db.redis_client import r_get, r_set
from smartcare_auth.services.email_service import send_email
from smartcare_auth.services.login_request_service import LoginRequestLedger
from smartcare_auth.utils.email_templates import (
    APPROVAL_SUBJECT,
    approval_email_html,
    approval_email_text,
)

logger = logging.getLogger(__name__)

APPROVE_PATH = "/device-auth/approve-login"
DENY_PATH = "/device-auth/deny-login"


def _cooldown_key(request_id: str) -> str:
    return f"approval_email:{request_id}"


class ApprovalDispatcher:
    """
    Builds and sends the approve / deny email for a pending login request.
    Reads the ledger to sign the links but never writes to it.
    """

    @staticmethod
    def build_approval_links(
        user_id: str,
        device_id: str,
        request_id: str,
        token: Optional[str] = None
    ) -> Dict[str, str]:
        base = settings.APP_URL.rstrip("/")

        approve_params = {"uid": user_id, "deviceId": device_id, "requestId": request_id}
        deny_params = {"requestId": request_id}
        if token:
            approve_params["token"] = token
            deny_params["token"] = token

        return {
            "approve_url": f"{base}{APPROVE_PATH}?{urlencode(approve_params)}",
            "deny_url": f"{base}{DENY_PATH}?{urlencode(deny_params)}",
        }

    @staticmethod
    async def send_approval_email(
        db: AsyncIOMotorDatabase,
        user_id: str,
        email: str,
        device_id: str,
        request_id: str,
        device_metadata: Optional[dict] = None,
        ip_address: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Send the approval email. A failing sink is reported, not retried.

        Returns
        -------
        dict
            ``{"success": bool, "message": str, "code": str | None}``
        """
        try:
            if not user_id or not email or not device_id or not request_id:
                raise MissingParametersError("Missing required fields")

            request = await LoginRequestLedger.find_login_request(db, request_id)
            if request is None:
                raise LoginRequestNotFoundError()

            # Links only ever go to the address stored with the request
            recipient = request.get("email") or ""
            if (
                request.get("user_id") != user_id
                or request.get("device_id") != device_id
                or not recipient
                or recipient.strip().lower() != email.strip().lower()
            ):
                raise InvalidApprovalLinkError("Request details do not match")

            if r_get(_cooldown_key(request_id)):
                logger.info("Approval email for %s suppressed by cooldown", request_id)
                return {
                    "success": True,
                    "message": "Approval email already sent. Please wait before resending.",
                    "code": "cooldown",
                }

            token = LoginRequestLedger.link_token_for(request)
            links = ApprovalDispatcher.build_approval_links(user_id, device_id, request_id, token)

            metadata = device_metadata or {}
            details = {
                "browser": metadata.get("browser") or "Unknown",
                "os_name": metadata.get("os") or "Unknown",
                "location": ip_address or "Unknown",
                "sent_at": datetime.utcnow(),
                "ttl_minutes": settings.LOGIN_REQUEST_TTL_MINUTES,
            }

            try:
                await send_email(
                    to_email=recipient,
                    subject=APPROVAL_SUBJECT,
                    body=approval_email_text(links["approve_url"], links["deny_url"], **details),
                    html=approval_email_html(links["approve_url"], links["deny_url"], **details),
                )
            except Exception as e:
                raise DispatchFailureError(str(e) or None) from e

            r_set(_cooldown_key(request_id), {"sent_at": details["sent_at"]}, ex=settings.APPROVAL_EMAIL_COOLDOWN_SECONDS)
            logger.info("Approval email sent for %s", request_id)
            return {"success": True, "message": "Approval email sent successfully", "code": None}

        except DeviceAuthError as e:
            logger.warning("Approval email not sent for %s: %s", request_id, e)
            return {"success": False, "message": e.message, "code": e.code}
        except Exception as e:
            logger.exception("Error sending approval email for %s", request_id)
            return {"success": False, "message": str(e) or "Failed to send approval email", "code": "unknown"}
