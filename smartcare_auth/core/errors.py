# smartcare_auth/core/errors.py
"""
Error taxonomy for the device approval flow.

Services raise these internally and convert them into
``{"success": False, "error": ..., "code": ...}`` results at their
public boundary. Routes turn the results into HTML pages or JSON.
"""

from typing import Any, Dict


class DeviceAuthError(Exception):
    """Base class for expected failures of the approval flow."""

    code = "unknown"
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class MissingParametersError(DeviceAuthError):
    code = "missing_parameters"
    default_message = "Missing required parameters"


class LoginRequestNotFoundError(DeviceAuthError):
    code = "not_found"
    default_message = "Login request not found"


class AlreadyProcessedError(DeviceAuthError):
    code = "already_processed"

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Request already {status}")


class LoginRequestExpiredError(DeviceAuthError):
    code = "expired"
    default_message = "Login request has expired"


class InvalidApprovalLinkError(DeviceAuthError):
    code = "invalid_link"
    default_message = "This approval link is invalid or has been tampered with"


class DispatchFailureError(DeviceAuthError):
    code = "dispatch_failure"
    default_message = "Failed to send approval email"


class TrustWriteError(DeviceAuthError):
    code = "trust_write_failed"
    default_message = "Login approved but the device could not be marked as trusted"


def failure(error: Exception) -> Dict[str, Any]:
    """Build the failure result shape shared by every service."""
    if isinstance(error, DeviceAuthError):
        return {"success": False, "error": error.message, "code": error.code}
    return {"success": False, "error": str(error) or DeviceAuthError.default_message, "code": "unknown"}
