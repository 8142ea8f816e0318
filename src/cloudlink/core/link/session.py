# cloudlink/core/link/session.py
"""
LinkSession: the explicit session object for one broker link.

Composes the connection manager, the I/O servicer, the publisher and the
dispatcher. The host application constructs one session, calls
``initialize()``, drives it with ``service()`` and ends it with
``shutdown()``. Nothing here is process-global.

Example::

    with LinkSession(config, handler, queue, reload_action=reload) as session:
        while running:
            result = session.service(timeout=1.0)
            if not result.success:
                stop.wait(result.retry_after)
"""
from __future__ import annotations

import logging
from typing import Any

from cloudlink.contracts.link import (
    CommandQueue,
    ConnectionState,
    LinkHandler,
    PublishResult,
    ReloadAction,
    ServiceResult,
    SubscribeResult,
)
from cloudlink.core.config import SessionConfig
from cloudlink.core.link.dispatcher import Dispatcher
from cloudlink.core.link.manager import ConnectionManager
from cloudlink.core.link.publisher import Publisher
from cloudlink.core.link.servicer import IOServicer
from cloudlink.core.link.transport import Transport

logger = logging.getLogger(__name__)


class LinkSession:
    """
    Managed client session over MQTT.

    Args:
        config: Immutable link configuration.
        handler: Receives on_connect / on_disconnect with this session.
        command_queue: Receives every inbound ``(topic, payload)``.
        reload_action: Run when the ``reload`` command arrives.
        transport: Client factory; paho-mqtt unless replaced.
    """

    def __init__(
        self,
        config: SessionConfig,
        handler: LinkHandler | None,
        command_queue: CommandQueue,
        reload_action: ReloadAction | None = None,
        transport: Transport | None = None,
    ) -> None:
        self._manager = ConnectionManager(
            config, handler=handler, owner=self, transport=transport
        )
        self._servicer = IOServicer(self._manager)
        self._publisher = Publisher(self._manager)
        self._dispatcher = Dispatcher(self._manager, command_queue, reload_action)

    # -- Properties ------------------------------------------------------------

    @property
    def config(self) -> SessionConfig:
        return self._manager.config

    @property
    def state(self) -> ConnectionState:
        return self._manager.state

    @property
    def is_connected(self) -> bool:
        return self._manager.state is ConnectionState.CONNECTED

    @property
    def subscriptions(self) -> list[str]:
        return self._dispatcher.subscriptions

    # -- Lifecycle -------------------------------------------------------------

    def initialize(self) -> None:
        """
        Create the link and schedule the connect.

        Raises:
            InitError: See ``ConnectionManager.initialize``.
        """
        self._manager.initialize(callbacks={"on_publish": self._publisher.handle_ack})

    def shutdown(self) -> None:
        self._manager.shutdown()

    # -- Operations ------------------------------------------------------------

    def service(self, timeout: float = 1.0) -> ServiceResult:
        return self._servicer.service(timeout)

    def publish(self, topic: str, payload: bytes | str) -> PublishResult:
        return self._publisher.publish(topic, payload)

    def subscribe(self, topic: str) -> SubscribeResult:
        return self._dispatcher.subscribe(topic)

    def get_stats(self) -> dict[str, Any]:
        manager = self._manager
        return {
            "state": manager.state.value,
            "connects": manager.connect_count,
            "disconnects": manager.disconnect_count,
            "reconnects": manager.reconnect_count,
            "service_cycles": self._servicer.cycle_count,
            "service_errors": self._servicer.error_count,
            "published": self._publisher.publish_count,
            "acknowledged": self._publisher.ack_count,
            "publish_errors": self._publisher.reject_count,
            "inflight": self._publisher.inflight,
            "received": self._dispatcher.received_count,
            "reloads": self._dispatcher.reload_count,
            "subscriptions": self._dispatcher.subscriptions,
        }

    # -- Context manager -------------------------------------------------------

    def __enter__(self) -> "LinkSession":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        return (
            f"LinkSession({self.config.host}:{self.config.port}, "
            f"state={self.state.value})"
        )
