# cloudlink/core/link/dispatcher.py
"""
Subscriptions and inbound message routing.

Every inbound message goes to the command queue exactly once. The reserved
``reload`` payload additionally runs the reload action with the error-log
rate limit lifted for the duration of the action.
"""
from __future__ import annotations

import logging
import threading
from typing import Any

from cloudlink.contracts.link import (
    CommandQueue,
    QoS,
    ReceivedMessage,
    ReloadAction,
    SubscribeFailure,
    SubscribeResult,
)
from cloudlink.core.errors import LinkClosedError
from cloudlink.core.link.manager import ConnectionManager
from cloudlink.core.link.topics import filter_error, topic_matches
from cloudlink.core.link.transport import ERR_INVAL, ERR_NO_CONN, ERR_SUCCESS, describe_rc
from cloudlink.core.logging import rate_limit_suspended

logger = logging.getLogger(__name__)

RELOAD_COMMAND = b"reload"


class Dispatcher:
    def __init__(
        self,
        manager: ConnectionManager,
        command_queue: CommandQueue,
        reload_action: ReloadAction | None = None,
    ) -> None:
        self._manager = manager
        self._queue = command_queue
        self._reload_action = reload_action
        self._lock = threading.Lock()
        self._subscriptions: list[str] = []
        self._routed_client: Any = None

        self.received_count = 0
        self.reload_count = 0

        manager.add_lost_listener(self.clear_subscriptions)

    @property
    def subscriptions(self) -> list[str]:
        with self._lock:
            return list(self._subscriptions)

    def subscribe(self, topic: str) -> SubscribeResult:
        """
        Register interest in ``topic`` at the session QoS.

        Filters are not deduplicated; subscribing twice sends two requests.
        """
        try:
            client = self._manager.borrow("subscribe")
        except LinkClosedError:
            logger.error("Subscribe to '%s' failed: link is not initialized", topic)
            return SubscribeResult(
                success=False,
                topic=topic,
                rc=ERR_NO_CONN,
                failure=SubscribeFailure.NOT_CONNECTED,
                error="link is not initialized",
            )

        problem = filter_error(topic)
        if problem is not None:
            logger.error("Subscribe to '%s' failed: %s", topic, problem)
            return SubscribeResult(
                success=False,
                topic=topic,
                rc=ERR_INVAL,
                failure=SubscribeFailure.INVALID_FILTER,
                error=problem,
            )

        self._install_route(client)

        try:
            rc, mid = client.subscribe(topic, qos=int(self._manager.config.qos))
        except ValueError as exc:
            rc, mid = ERR_INVAL, None
            logger.debug("Transport refused filter '%s': %s", topic, exc)
        rc = int(rc)

        if rc != ERR_SUCCESS:
            logger.error(
                "Failed to subscribe to '%s' (rc=%d, %s)", topic, rc, describe_rc(rc)
            )
            return SubscribeResult(
                success=False,
                topic=topic,
                rc=rc,
                mid=mid,
                failure=SubscribeFailure.TRANSPORT_REJECTED,
                error=describe_rc(rc),
            )

        with self._lock:
            self._subscriptions.append(topic)
        logger.info("Subscribed to %s", topic)
        return SubscribeResult(success=True, topic=topic, rc=rc, mid=mid)

    def _install_route(self, client: Any) -> None:
        # One route per client; a new client after re-initialize gets its own
        if self._routed_client is client:
            return
        client.on_message = self._on_message
        self._routed_client = client
        logger.debug("Inbound message route installed")

    def clear_subscriptions(self) -> None:
        with self._lock:
            self._subscriptions.clear()
        self._routed_client = None

    def _on_message(self, client: Any, userdata: Any, msg: Any) -> None:
        """paho ``on_message`` callback."""
        try:
            qos = QoS(msg.qos)
        except ValueError:
            qos = QoS.AT_MOST_ONCE
        self.dispatch(
            ReceivedMessage(
                topic=msg.topic,
                payload=bytes(msg.payload),
                qos=qos,
                mid=getattr(msg, "mid", None),
            )
        )

    def dispatch(self, message: ReceivedMessage) -> None:
        """
        Forward one inbound message.

        Errors from the command queue and from the reload action propagate.
        """
        self.received_count += 1
        matched = [f for f in self.subscriptions if topic_matches(message.topic, f)]
        logger.info(
            "Received from %s: %s",
            message.topic,
            message.payload.decode("utf-8", errors="replace"),
        )
        if not matched:
            logger.debug("Message on %s matches no active filter", message.topic)

        self._queue.put(message.topic, message.payload)

        if message.payload == RELOAD_COMMAND:
            self._reload()

    def _reload(self) -> None:
        if self._reload_action is None:
            logger.warning("Reload requested but no reload action is configured")
            return
        self.reload_count += 1
        with rate_limit_suspended():
            logger.info("Reloading health configuration")
            self._reload_action()
