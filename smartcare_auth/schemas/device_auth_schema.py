# ============================================================================
# smartcare_auth/schemas/device_auth_schema.py
# ============================================================================

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


class SendApprovalEmailRequest(BaseModel):
    """
    Body of POST /device-auth/send-approval-email as sent by the browser.
    Every field is optional here so that missing ones produce a 400 with
    the usual ``{success, message}`` body instead of a validation error.
    """
    user_id: Optional[str] = Field(None, alias="userId")
    email: Optional[str] = None
    device_id: Optional[str] = Field(None, alias="deviceId")
    request_id: Optional[str] = Field(None, alias="requestId")
    device_metadata: Optional[Dict[str, Any]] = Field(None, alias="deviceMetadata")
    ip_address: Optional[str] = Field(None, alias="ipAddress")

    class Config:
        populate_by_name = True


class SendApprovalEmailResponse(BaseModel):
    success: bool
    message: str


class LoginStatusResponse(BaseModel):
    state: str
    redirect_to: Optional[str] = None
    error: Optional[str] = None


class CheckDeviceRequest(BaseModel):
    device_id: Optional[str] = Field(None, alias="deviceId")
    device_metadata: Optional[Dict[str, Any]] = Field(None, alias="deviceMetadata")

    class Config:
        populate_by_name = True


class CheckDeviceResponse(BaseModel):
    requires_device_approval: bool
    request_id: Optional[str] = None
    email_sent: bool = False
