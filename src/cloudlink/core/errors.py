# cloudlink/core/errors.py
"""
Exception hierarchy for the link session.

Only startup failures and use of a destroyed link handle are raised.
Steady-state publish/subscribe/service failures are reported through the
result objects in ``cloudlink.contracts.link``.
"""
from __future__ import annotations

from enum import Enum


class LinkError(Exception):
    pass


class InitFailure(str, Enum):
    LIBRARY_INIT = "library_init"
    HANDLE_CREATION = "handle_creation"
    CONNECT_REJECTED = "connect_rejected"
    ALREADY_INITIALIZED = "already_initialized"


class InitError(LinkError):
    """Session could not be started.

    Attributes:
        reason: Which startup step failed.
        rc: Transport return code, when the transport supplied one.
    """

    def __init__(self, reason: InitFailure, detail: str = "", rc: int | None = None):
        self.reason = reason
        self.detail = detail
        self.rc = rc
        message = f"Link initialization failed: {reason.value}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class LinkClosedError(LinkError):
    """The link handle was used after it was destroyed."""

    def __init__(self, operation: str = ""):
        self.operation = operation
        super().__init__(
            f"Link handle is closed{f' (during {operation})' if operation else ''}"
        )
