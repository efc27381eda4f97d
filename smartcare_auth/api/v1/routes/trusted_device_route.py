# ============================================================================
# smartcare_auth/api/v1/routes/trusted_device_route.py
# ============================================================================

from fastapi import APIRouter, HTTPException, Depends, status

from smartcare_auth.db.mongodb import get_database
from smartcare_auth.core.security import get_current_user
from smartcare_auth.schemas.trusted_device_schema import (
    TrustedDevicesListResponse,
    RevokeDeviceRequest,
    TrustSessionRequest,
)
from smartcare_auth.services.trusted_device_service import TrustedDeviceService

router = APIRouter(prefix="/trusted-devices", tags=["Trusted Devices"])


async def _load_own_session(db, session_id: str, user_id: str) -> dict:
    session = await db.sessions.find_one({"_id": session_id})
    if not session:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found"
        )

    if str(session.get("user_id")) != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This session does not belong to you"
        )

    return session


@router.get("", response_model=TrustedDevicesListResponse)
async def get_trusted_devices(
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database)
):
    user_id = str(current_user["id"])

    devices = await TrustedDeviceService.get_trusted_devices(db=db, user_id=user_id)

    return {
        "devices": devices,
        "total": len(devices)
    }


@router.post("/revoke", status_code=status.HTTP_200_OK)
async def revoke_device(
    request: RevokeDeviceRequest,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database)
):
    """
    Remove a device from the user's list. The next sign-in from it
    goes through the approval flow again.
    """
    result = await TrustedDeviceService.remove_trusted_device(
        db=db,
        user_id=str(current_user["id"]),
        device_id=request.device_id
    )

    if not result["success"]:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=result["error"]
        )

    return {
        "status": "success",
        "message": "Device removed successfully"
    }


@router.post("/from-session", status_code=status.HTTP_201_CREATED)
async def trust_device_from_session(
    request: TrustSessionRequest,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database)
):
    """Trust the device behind one of the user's active sessions."""
    user_id = str(current_user["id"])
    session = await _load_own_session(db, request.session_id, user_id)

    result = await TrustedDeviceService.trust_device_from_session(db, user_id, session)
    if not result["success"]:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=result["error"]
        )

    return {
        "status": "success",
        "message": "Device trusted successfully",
        "device_id": result["device_id"]
    }


@router.get("/from-session/{session_id}")
async def is_session_device_trusted(
    session_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database)
):
    user_id = str(current_user["id"])
    session = await _load_own_session(db, session_id, user_id)

    is_trusted = await TrustedDeviceService.is_session_device_trusted(db, user_id, session)
    return {"session_id": session_id, "is_trusted": is_trusted}
