"""Broker link: connection state machine, servicing, publish and dispatch."""
from cloudlink.core.link.backoff import ReconnectBackoff
from cloudlink.core.link.dispatcher import RELOAD_COMMAND, Dispatcher
from cloudlink.core.link.handle import LinkHandle
from cloudlink.core.link.manager import ConnectionManager
from cloudlink.core.link.publisher import Publisher
from cloudlink.core.link.runner import SessionRunner
from cloudlink.core.link.servicer import IOServicer
from cloudlink.core.link.session import LinkSession
from cloudlink.core.link.transport import PahoTransport, Transport

__all__ = [
    "LinkSession", "SessionRunner",
    "ConnectionManager", "IOServicer", "Publisher", "Dispatcher",
    "LinkHandle", "ReconnectBackoff",
    "Transport", "PahoTransport",
    "RELOAD_COMMAND",
]
