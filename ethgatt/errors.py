"""
Gateway exceptions.

Request-side failures carry the ResultCode they map to, so the
dispatcher can answer the transport without a lookup table.
"""

from __future__ import annotations

from ethgatt.codes import ResultCode


class GatewayError(Exception):
    """Base class for all gateway errors."""


class InvalidRequestError(GatewayError):
    """A request failed decoding or validation.

    Attributes:
        code: The ResultCode to answer with.
        detail: Diagnostic detail. Logged at DEBUG only.
    """

    def __init__(self, code: ResultCode, detail: str | None = None) -> None:
        super().__init__(detail or code.name)
        self.code = code
        self.detail = detail


class NoSignedMessageError(InvalidRequestError):
    """Input could not be parsed as a signature over the current pin."""

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(ResultCode.NO_SIGNED_MSG_IN_REQUEST, detail)


class StatusTransitionError(GatewayError, ValueError):
    """A contract record's auth status would move backward.

    Attributes:
        current: Status the record holds.
        requested: Status the caller asked for.
    """

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"auth status cannot move from {current} to {requested}")
        self.current = current
        self.requested = requested
