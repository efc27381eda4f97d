# ============================================================================
# smartcare_auth/db/models/suspicious_login_model.py
# ============================================================================

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field


class SuspiciousLoginStatus(str, Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    REJECTED = "rejected"


class SuspiciousLoginModel(BaseModel):
    """
    A flagged session waiting for the account owner to confirm it.

    Verifying marks the linked session as trusted; rejecting deletes
    the session outright.
    """
    user_id: str
    session_id: Optional[str] = None
    status: SuspiciousLoginStatus = SuspiciousLoginStatus.UNVERIFIED

    device_info: Dict[str, Any] = Field(default_factory=dict)
    ip_address: str = "Unknown"
    reasons: List[str] = Field(default_factory=list)
    threat_score: Optional[float] = None

    timestamp: datetime = Field(default_factory=datetime.utcnow)
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        use_enum_values = True
