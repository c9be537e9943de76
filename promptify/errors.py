"""Error taxonomy shared by the service and the client.

Each error carries a machine-readable ``code`` that travels in the JSON error
payload, so the client can rebuild the same exception on its side.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Type


class PromptifyError(Exception):
    code = "error"
    status_code = 500
    default_message = "Unexpected error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message}}


class NotAuthenticated(PromptifyError):
    code = "not_authenticated"
    status_code = 401
    default_message = "Sign in to continue"


class InsufficientBalance(PromptifyError):
    code = "insufficient_funds"
    status_code = 402
    default_message = "Not enough coins"


class Forbidden(PromptifyError):
    code = "forbidden"
    status_code = 403
    default_message = "Prompt is locked"


class NotFound(PromptifyError):
    code = "not_found"
    status_code = 404
    default_message = "Not found"


class InvalidRequest(PromptifyError):
    code = "invalid_request"
    status_code = 400
    default_message = "Invalid request"


class Conflict(PromptifyError):
    code = "conflict"
    status_code = 409
    default_message = "Conflicting write"


class TransientError(PromptifyError):
    code = "transient"
    status_code = 503
    default_message = "Service temporarily unavailable, try again"


ERRORS_BY_CODE: Dict[str, Type[PromptifyError]] = {
    cls.code: cls
    for cls in (
        InvalidRequest,
        NotAuthenticated,
        InsufficientBalance,
        Forbidden,
        NotFound,
        Conflict,
        TransientError,
    )
}


def error_from_payload(payload: Any, status_code: int) -> PromptifyError:
    """Rebuild an error from a response body; unknown shapes become TransientError."""
    body = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(body, dict):
        cls = ERRORS_BY_CODE.get(str(body.get("code") or ""))
        if cls is not None:
            return cls(body.get("message"))
    if status_code == 401:
        return NotAuthenticated()
    return TransientError(f"Unexpected response ({status_code})")


__all__ = [
    "PromptifyError",
    "InvalidRequest",
    "NotAuthenticated",
    "InsufficientBalance",
    "Forbidden",
    "NotFound",
    "Conflict",
    "TransientError",
    "ERRORS_BY_CODE",
    "error_from_payload",
]
