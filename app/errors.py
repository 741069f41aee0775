"""
Failure types raised by guest book operations.

Each error carries the HTTP status it maps to and the payload returned
to the client. The exception handler in main.py turns them into JSON
responses shaped like schemas.ErrorResponse.
"""

from typing import Optional


class GuestBookError(Exception):
    """Base class for all guest book operation failures."""

    status_code = 500
    # Label used for metrics and the request log
    result = "error"

    def __init__(self, message: str, content: Optional[str] = None):
        self.message = message
        # Submitted content echoed back so the form can be re-rendered
        self.content = content
        super().__init__(message)

    def to_payload(self) -> dict:
        payload = {"error": self.message}
        if self.content is not None:
            payload["content"] = self.content
        return payload


class UnauthorizedError(GuestBookError):
    """401 Unauthorized"""
    status_code = 401
    result = "unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ContentValidationError(GuestBookError):
    """400 Bad Request"""
    status_code = 400
    result = "validation_error"


class ServerError(GuestBookError):
    """500 Internal Server Error"""
    status_code = 500
