# ============================================================================
# smartcare_auth/schemas/trusted_device_schema.py
# ============================================================================

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Dict, Any


class TrustedDeviceResponse(BaseModel):
    """
    Response schema for trusted device.
    """
    id: str
    user_id: str
    device_id: str
    trusted: bool
    approved_at: Optional[datetime] = None
    last_used: Optional[datetime] = None
    device_metadata: Dict[str, Any] = Field(default_factory=dict)
    ip_address: str = "Unknown"


class TrustedDevicesListResponse(BaseModel):
    """
    Response schema for list of trusted devices.
    """
    devices: list[TrustedDeviceResponse]
    total: int


class RevokeDeviceRequest(BaseModel):
    """
    Request schema for removing a trusted device.
    """
    device_id: str = Field(..., description="Device ID to remove")


class TrustSessionRequest(BaseModel):
    session_id: str = Field(..., description="Session to convert into a trusted device")
