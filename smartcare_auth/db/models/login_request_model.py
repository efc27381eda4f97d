# ============================================================================
# smartcare_auth/db/models/login_request_model.py
# ============================================================================

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field

from smartcare_auth.core.config import settings


class LoginRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


def login_request_id(user_id: str, device_id: str) -> str:
    """At most one outstanding request per user + device pair."""
    return f"{user_id}_{device_id}"


def default_expiry() -> datetime:
    return datetime.utcnow() + timedelta(minutes=settings.LOGIN_REQUEST_TTL_MINUTES)


class LoginRequestModel(BaseModel):
    """
    Model for the login_requests collection.

    One document per approval handshake, keyed by ``{user_id}_{device_id}``.
    ``status`` only ever moves from pending to approved or denied.
    Expiry is lazy: a pending request past ``expires_at`` stays pending
    in storage and is rejected when someone tries to act on it.
    """
    user_id: str
    email: str
    device_id: str
    status: LoginRequestStatus = LoginRequestStatus.PENDING

    created_at: datetime = Field(default_factory=datetime.utcnow)
    expires_at: datetime = Field(default_factory=default_expiry)

    device_metadata: Dict[str, Any] = Field(default_factory=dict)
    ip_address: str = "Unknown"

    approved_at: Optional[datetime] = None
    denied_at: Optional[datetime] = None

    # Random per-request value the approval link token is derived from
    link_nonce: Optional[str] = None

    # False between the status flip and the device trust write on approval
    device_trust_applied: Optional[bool] = None

    class Config:
        from_attributes = True
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "user_id": "U1",
                "email": "patient@example.com",
                "device_id": "device_lx2k9a_4f8z1c0q7m2",
                "status": "pending",
                "device_metadata": {"browser": "Chrome", "os": "Windows"},
                "ip_address": "203.0.113.7",
            }
        }
