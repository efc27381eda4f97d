# ============================================================================
# smartcare_auth/db/models/device_model.py
# ============================================================================

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class DeviceModel(BaseModel):
    """
    Model for the devices collection.
    One record per (user_id, device_id). Only records with
    ``trusted == True`` bypass the approval flow.
    """
    user_id: str
    device_id: str
    trusted: bool = False

    # Trust metadata
    approved_at: Optional[datetime] = None
    first_seen: datetime = Field(default_factory=datetime.utcnow)
    last_used: Optional[datetime] = None

    device_metadata: dict = Field(default_factory=dict)
    ip_address: str = "Unknown"  # best effort, not verified

    class Config:
        from_attributes = True
