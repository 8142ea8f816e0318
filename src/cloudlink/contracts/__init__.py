"""Public contracts for the cloud link session."""
from cloudlink.contracts.link import (
    CommandQueue,
    ConnectionState,
    LinkHandler,
    PublishFailure,
    PublishResult,
    QoS,
    ReceivedMessage,
    ReloadAction,
    ServiceResult,
    SubscribeFailure,
    SubscribeResult,
)

__all__ = [
    "QoS", "ConnectionState",
    "PublishFailure", "SubscribeFailure",
    "PublishResult", "SubscribeResult", "ServiceResult",
    "ReceivedMessage", "ReloadAction",
    "LinkHandler", "CommandQueue",
]
