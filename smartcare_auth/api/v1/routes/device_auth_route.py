# ============================================================================
# smartcare_auth/api/v1/routes/device_auth_route.py
# ============================================================================
"""
Endpoints reached from the approval email and the waiting room.

approve-login and deny-login are opened by a human clicking a link, and
also by email link scanners and browser prefetch. They always answer
200 with a complete HTML page; a second click lands on the
"Request already ..." failure page.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse

from smartcare_auth.core.config import settings
from smartcare_auth.core.errors import InvalidApprovalLinkError
from smartcare_auth.core.security import get_current_user
from smartcare_auth.db.mongodb import get_database
from smartcare_auth.schemas.device_auth_schema import (
    SendApprovalEmailRequest,
    SendApprovalEmailResponse,
    LoginStatusResponse,
    CheckDeviceRequest,
    CheckDeviceResponse,
)
from smartcare_auth.services.approval_dispatcher import ApprovalDispatcher
from smartcare_auth.services.device_auth_service import DeviceAuthService
from smartcare_auth.services.login_request_service import LoginRequestLedger
from smartcare_auth.services.waiting_room import (
    WaitingRoomState,
    resolve_waiting_state,
    redirect_path_for_role,
    STATUS_ERROR_MESSAGE,
    MISSING_IDS_MESSAGE,
)
from smartcare_auth.utils.device_utils import complete_device_metadata
from smartcare_auth.utils.html_pages import (
    approval_failed_page,
    approval_succeeded_page,
    denial_failed_page,
    denial_succeeded_page,
)
from smartcare_auth.utils.ip_utils import get_client_ip

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/device-auth", tags=["Device Auth"])

MISSING_PARAMS_MESSAGE = "Missing required parameters. Please try again."


def _login_url() -> str:
    return f"{settings.APP_URL.rstrip('/')}/login"


async def _check_link(
    db,
    request_id: str,
    token: Optional[str],
    uid: Optional[str] = None,
    device_id: Optional[str] = None
) -> Optional[str]:
    """
    Return an error message when the link does not belong to the request.
    An unknown request id passes through so the ledger reports NotFound.
    """
    request = await LoginRequestLedger.get_login_request(db, request_id)
    if request is None:
        return None

    if uid is not None and request.get("user_id") != uid:
        return InvalidApprovalLinkError().message
    if device_id is not None and request.get("device_id") != device_id:
        return InvalidApprovalLinkError().message

    if settings.REQUIRE_LINK_TOKEN and not LoginRequestLedger.verify_link_token(request, token):
        logger.warning("Rejected approval link with bad token for %s", request_id)
        return InvalidApprovalLinkError().message

    return None


# ===========================
#        APPROVE LOGIN
# ===========================
@router.get("/approve-login", response_class=HTMLResponse)
async def approve_login(
    uid: Optional[str] = Query(None),
    device_id: Optional[str] = Query(None, alias="deviceId"),
    request_id: Optional[str] = Query(None, alias="requestId"),
    token: Optional[str] = Query(None),
    db=Depends(get_database),
):
    try:
        if not uid or not device_id or not request_id:
            return HTMLResponse(approval_failed_page(MISSING_PARAMS_MESSAGE))

        link_error = await _check_link(db, request_id, token, uid=uid, device_id=device_id)
        if link_error:
            return HTMLResponse(approval_failed_page(link_error))

        result = await LoginRequestLedger.approve_login_request(db, request_id)
        if not result["success"]:
            return HTMLResponse(approval_failed_page(result["error"] or "Unable to approve login request."))

        return HTMLResponse(approval_succeeded_page(_login_url()))

    except Exception:
        logger.exception("Error approving login")
        return HTMLResponse(approval_failed_page(
            "An error occurred while processing your approval. Please try again."
        ))


# ===========================
#         DENY LOGIN
# ===========================
@router.get("/deny-login", response_class=HTMLResponse)
async def deny_login(
    request_id: Optional[str] = Query(None, alias="requestId"),
    token: Optional[str] = Query(None),
    db=Depends(get_database),
):
    try:
        if not request_id:
            return HTMLResponse(denial_failed_page(MISSING_PARAMS_MESSAGE))

        link_error = await _check_link(db, request_id, token)
        if link_error:
            return HTMLResponse(denial_failed_page(link_error))

        result = await LoginRequestLedger.deny_login_request(db, request_id)
        if not result["success"]:
            return HTMLResponse(denial_failed_page(result["error"] or "Unable to deny login request."))

        return HTMLResponse(denial_succeeded_page(_login_url()))

    except Exception:
        logger.exception("Error denying login")
        return HTMLResponse(denial_failed_page(
            "An error occurred while processing your denial. Please try again."
        ))


# ===========================
#    SEND APPROVAL EMAIL
# ===========================
@router.post("/send-approval-email")
async def send_approval_email(body: SendApprovalEmailRequest, db=Depends(get_database)):
    if not body.user_id or not body.email or not body.device_id or not body.request_id:
        return JSONResponse(
            status_code=400,
            content=SendApprovalEmailResponse(success=False, message="Missing required fields").model_dump()
        )

    result = await ApprovalDispatcher.send_approval_email(
        db,
        body.user_id,
        body.email,
        body.device_id,
        body.request_id,
        body.device_metadata,
        body.ip_address,
    )

    status_code = 200
    if not result["success"]:
        if result["code"] == "not_found":
            status_code = 404
        elif result["code"] in ("invalid_link", "missing_parameters"):
            status_code = 400
        else:
            status_code = 500

    return JSONResponse(
        status_code=status_code,
        content=SendApprovalEmailResponse(success=result["success"], message=result["message"]).model_dump()
    )


# ===========================
#   WAITING ROOM STATUS
# ===========================
@router.get("/login-status", response_model=LoginStatusResponse)
async def login_status(
    uid: Optional[str] = Query(None),
    device_id: Optional[str] = Query(None, alias="deviceId"),
    role: Optional[str] = Query(None),
    db=Depends(get_database),
):
    """Read-only status for the waiting-room page, polled every few seconds."""
    if not uid or not device_id:
        return LoginStatusResponse(state=WaitingRoomState.ERROR.value, error=MISSING_IDS_MESSAGE)

    try:
        state = await resolve_waiting_state(db, uid, device_id)
    except Exception:
        logger.exception("Error checking login status for user=%s device=%s", uid, device_id)
        return LoginStatusResponse(state=WaitingRoomState.ERROR.value, error=STATUS_ERROR_MESSAGE)

    redirect_to = redirect_path_for_role(role) if state == WaitingRoomState.APPROVED else None
    return LoginStatusResponse(state=state.value, redirect_to=redirect_to)


# ===========================
#   POST-LOGIN DEVICE CHECK
# ===========================
@router.post("/check-device", response_model=CheckDeviceResponse)
async def check_device(
    body: CheckDeviceRequest,
    request: Request,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database),
):
    """
    Called right after sign-in. Tells the client whether it has to go to
    the waiting room.
    """
    metadata = complete_device_metadata(body.device_metadata, request.headers.get("User-Agent", ""))

    result = await DeviceAuthService.evaluate_login(
        db,
        current_user["id"],
        current_user.get("email") or "",
        body.device_id,
        metadata,
        get_client_ip(request),
    )
    return CheckDeviceResponse(**result)
