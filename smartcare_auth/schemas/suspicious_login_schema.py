# ============================================================================
# smartcare_auth/schemas/suspicious_login_schema.py
# ============================================================================

from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field


class SuspiciousLoginResponse(BaseModel):
    id: str
    user_id: str
    session_id: Optional[str] = None
    status: str
    device_info: Dict[str, Any] = Field(default_factory=dict)
    ip_address: str = "Unknown"
    reasons: List[str] = Field(default_factory=list)
    threat_score: Optional[float] = None
    timestamp: datetime
    resolved_at: Optional[datetime] = None


class SuspiciousLoginsListResponse(BaseModel):
    logins: List[SuspiciousLoginResponse]
    total: int
