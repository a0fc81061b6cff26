"""
Portal error taxonomy.

Services raise these; the exception handler registered in main.py turns them
into JSON responses with a stable status code and machine-readable `code`.
"""

from typing import Any, Dict, Optional


class PortalError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class ValidationError(PortalError):
    """Missing or invalid input, or an amount below the payable minimum."""

    status_code = 400
    code = "validation_error"


class AuthzError(PortalError):
    """Role or ownership mismatch."""

    status_code = 403
    code = "forbidden"


class NotFoundError(PortalError):
    status_code = 404
    code = "not_found"


class StateError(PortalError):
    """The record is not in a state that allows the operation."""

    status_code = 409
    code = "invalid_state"


class GatewayError(PortalError):
    """The payment provider rejected or failed the call."""

    status_code = 502
    code = "gateway_error"

    def __init__(
        self,
        message: str,
        provider_code: Optional[str] = None,
        decline_code: Optional[str] = None,
        **context: Any
    ):
        super().__init__(message, **context)
        self.provider_code = provider_code
        self.decline_code = decline_code


class AuthenticationRequiredError(GatewayError):
    """The stored payment method needs the cardholder to authenticate."""

    code = "authentication_required"


class WebhookSignatureError(PortalError):
    status_code = 400
    code = "invalid_signature"
