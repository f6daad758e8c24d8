"""Error kinds raised by the conversation and prescription services.

Each error carries the HTTP status and machine-readable code that the API
layer renders; see ``main.py`` for the exception handler.
"""


class DocOnGoError(Exception):
    """Base class for all service errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(DocOnGoError):
    """Required input is missing or malformed."""

    status_code = 400
    error_code = "VALIDATION_ERROR"


class AuthError(DocOnGoError):
    """Missing or invalid credential (token or model API key)."""

    status_code = 401
    error_code = "UNAUTHORIZED"


class OwnershipError(AuthError):
    """Caller is authenticated but the session belongs to another account."""

    status_code = 403
    error_code = "FORBIDDEN"


class NotFoundError(DocOnGoError):
    status_code = 404
    error_code = "NOT_FOUND"


class ModelTransportError(DocOnGoError):
    """The model provider call itself failed (network, quota, bad key, timeout)."""

    status_code = 500
    error_code = "MODEL_TRANSPORT_ERROR"


class ContentParseFailure(DocOnGoError):
    """The model answered but its output could not be repaired into the schema."""

    status_code = 500
    error_code = "CONTENT_PARSE_FAILURE"
