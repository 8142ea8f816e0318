# cloudlink/contracts/link.py
"""
Link contracts for the managed broker session.

These types describe the session's public surface: the connection state
machine, the per-call result objects returned by publish/subscribe/service,
and the collaborator protocols (transition handler, command queue) that the
host application plugs in. They carry no transport dependency.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

if TYPE_CHECKING:
    from cloudlink.core.link.session import LinkSession


class QoS(IntEnum):
    AT_MOST_ONCE = 0
    AT_LEAST_ONCE = 1
    EXACTLY_ONCE = 2


class ConnectionState(str, Enum):
    """Lifecycle of the single broker link."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class PublishFailure(str, Enum):
    INVALID_TOPIC = "invalid_topic"
    IN_FLIGHT_LIMIT = "in_flight_limit"
    TRANSPORT_REJECTED = "transport_rejected"


class SubscribeFailure(str, Enum):
    NOT_CONNECTED = "not_connected"
    INVALID_FILTER = "invalid_filter"
    TRANSPORT_REJECTED = "transport_rejected"


@dataclass(frozen=True)
class PublishResult:
    """
    Result of a publish operation.

    Attributes:
        success: Whether the message was handed to the transport.
        topic: Destination topic.
        rc: Transport return code (0 on success).
        mid: Transport message id, when one was assigned.
        failure: Typed failure reason if the publish was rejected.
        error: Human readable description of the failure.
    """

    success: bool
    topic: str = ""
    rc: int = 0
    mid: int | None = None
    failure: PublishFailure | None = None
    error: str | None = None


@dataclass(frozen=True)
class SubscribeResult:
    """
    Result of a subscribe operation.

    Attributes:
        success: Whether the broker accepted the subscribe request.
        topic: The topic filter.
        rc: Transport return code (0 on success).
        mid: Transport message id of the SUBSCRIBE packet.
        failure: Typed failure reason if the subscribe was rejected.
        error: Human readable description of the failure.
    """

    success: bool
    topic: str = ""
    rc: int = 0
    mid: int | None = None
    failure: SubscribeFailure | None = None
    error: str | None = None


@dataclass(frozen=True)
class ServiceResult:
    """
    Outcome of one I/O servicing cycle.

    Attributes:
        success: Whether the transport serviced cleanly.
        rc: Transport return code of the cycle.
        reconnect_attempted: Whether a reconnect was issued after a failure.
        reconnect_rc: Return code of that reconnect attempt.
        retry_after: Seconds the caller should pause before the next cycle.
        error: Human readable description of the failure.
    """

    success: bool
    rc: int = 0
    reconnect_attempted: bool = False
    reconnect_rc: int | None = None
    retry_after: float = 0.0
    error: str | None = None


@dataclass(frozen=True)
class ReceivedMessage:
    """A message delivered by the broker on one of the session's filters."""

    topic: str
    payload: bytes
    qos: QoS = QoS.AT_MOST_ONCE
    mid: int | None = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# Zero-argument action run when the reserved reload command arrives
ReloadAction = Callable[[], None]


@runtime_checkable
class LinkHandler(Protocol):
    """
    Receives connection transitions.

    Both hooks get the session as a borrowed reference and must not keep it
    beyond the call.
    """

    def on_connect(self, session: "LinkSession") -> None: ...
    def on_disconnect(self, session: "LinkSession") -> None: ...


@runtime_checkable
class CommandQueue(Protocol):
    """Consumer side of inbound messages."""

    def put(self, topic: str, payload: bytes) -> None: ...
