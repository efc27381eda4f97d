# ============================================================================
# smartcare_auth/api/v1/routes/suspicious_login_route.py
# ============================================================================

from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Query, status

from smartcare_auth.db.mongodb import get_database
from smartcare_auth.core.security import get_current_user
from smartcare_auth.db.models.suspicious_login_model import SuspiciousLoginStatus
from smartcare_auth.schemas.suspicious_login_schema import (
    SuspiciousLoginResponse,
    SuspiciousLoginsListResponse,
)
from smartcare_auth.services.suspicious_login_service import SuspiciousLoginService

router = APIRouter(prefix="/suspicious-logins", tags=["Suspicious Logins"])


def _raise_for(result: dict):
    if result["success"]:
        return
    if result.get("code") == "not_found":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result["error"])
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result["error"])


@router.get("/latest", response_model=Optional[SuspiciousLoginResponse])
async def get_latest_suspicious_login(
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database)
):
    """The one unverified login the security banner shows, or null."""
    return await SuspiciousLoginService.get_latest_unverified(db, str(current_user["id"]))


@router.get("", response_model=SuspiciousLoginsListResponse)
async def list_suspicious_logins(
    status_filter: Optional[SuspiciousLoginStatus] = Query(None, alias="status"),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database)
):
    logins = await SuspiciousLoginService.get_suspicious_logins(
        db,
        str(current_user["id"]),
        status_filter.value if status_filter else None
    )
    return {"logins": logins, "total": len(logins)}


@router.post("/{record_id}/verify")
async def verify_suspicious_login(
    record_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database)
):
    result = await SuspiciousLoginService.verify_suspicious_login(db, record_id, str(current_user["id"]))
    _raise_for(result)
    return {"status": "success", "message": "Login verified"}


@router.post("/{record_id}/reject")
async def reject_suspicious_login(
    record_id: str,
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database)
):
    result = await SuspiciousLoginService.reject_suspicious_login(db, record_id, str(current_user["id"]))
    _raise_for(result)
    return {
        "status": "success",
        "message": "Login rejected and session revoked",
        "session_revoked": result["session_revoked"]
    }


@router.delete("")
async def clear_suspicious_logins(
    status_filter: SuspiciousLoginStatus = Query(..., alias="status"),
    current_user: dict = Depends(get_current_user),
    db=Depends(get_database)
):
    """Delete resolved (or unverified) records of one status in bulk."""
    result = await SuspiciousLoginService.clear_suspicious_logins(
        db, str(current_user["id"]), status_filter.value
    )
    _raise_for(result)
    return {"status": "success", "deleted": result["deleted"]}
