"""Domain errors raised by services and translated to HTTP by the routers."""

from __future__ import annotations


class LiveError(Exception):
    """Base class for presence / battle errors."""

    status_code: int = 500
    code: str = "internal"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class Forbidden(LiveError):
    """Authenticated, but not a participant or owner."""

    status_code = 403
    code = "forbidden"


class InvalidArgument(LiveError):
    status_code = 400
    code = "invalid_argument"


class NotFound(LiveError):
    status_code = 404
    code = "not_found"


class InvalidState(LiveError):
    """Operation not valid for the current session / invite state."""

    status_code = 409
    code = "invalid_state"


class Internal(LiveError):
    """Downstream store failure."""

    status_code = 500
    code = "internal"
