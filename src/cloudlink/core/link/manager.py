# cloudlink/core/link/manager.py
"""
Connection state machine for the single broker link.

    DISCONNECTED --initialize--> CONNECTING --CONNACK--> CONNECTED
    CONNECTED --I/O failure--> RECONNECTING --reconnect issued--> CONNECTING
    any state --shutdown--> DISCONNECTED

The manager owns the LinkHandle. ``on_connect`` fires once per entry into
CONNECTED and ``on_disconnect`` once per failure exit from it, no matter
whether the transport's disconnect callback or the I/O servicer noticed
the failure first. ``shutdown()`` is a controlled teardown and fires
neither.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from cloudlink.contracts.link import ConnectionState, LinkHandler
from cloudlink.core.config import SessionConfig
from cloudlink.core.errors import InitError, InitFailure, LinkClosedError
from cloudlink.core.link.backoff import ReconnectBackoff
from cloudlink.core.link.handle import LinkHandle
from cloudlink.core.link.transport import (
    ERR_ERRNO,
    ERR_INVAL,
    ERR_SUCCESS,
    PahoTransport,
    Transport,
    describe_rc,
)

logger = logging.getLogger(__name__)


def _is_failure(reason_code: Any) -> bool:
    failure = getattr(reason_code, "is_failure", None)
    if isinstance(failure, bool):
        return failure
    return int(getattr(reason_code, "value", reason_code)) != 0


class ConnectionManager:
    """
    Owns the link handle and every connection state transition.

    Args:
        config: Immutable session configuration.
        handler: Receives on_connect / on_disconnect transitions.
        owner: Object handed to the handler hooks (the session).
        transport: Client factory; paho-mqtt unless replaced.
    """

    def __init__(
        self,
        config: SessionConfig,
        handler: LinkHandler | None = None,
        owner: Any = None,
        transport: Transport | None = None,
    ) -> None:
        self._config = config
        self._handler = handler
        self._owner = owner if owner is not None else self
        self._transport = transport or PahoTransport()

        self._lock = threading.RLock()
        self._callback_lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED
        self._handle: LinkHandle | None = None
        self._lost_listeners: list[Callable[[], None]] = []

        self.backoff = ReconnectBackoff(
            min_delay=config.reconnect_delay_min,
            max_delay=config.reconnect_delay_max,
            exponential=config.reconnect_exponential,
            jitter=config.reconnect_jitter,
        )

        # Stats
        self.connect_count = 0
        self.disconnect_count = 0
        self.reconnect_count = 0

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def has_handle(self) -> bool:
        with self._lock:
            return self._handle is not None and self._handle.is_open

    def add_lost_listener(self, listener: Callable[[], None]) -> None:
        """Register a hook run whenever the link stops being usable."""
        self._lost_listeners.append(listener)

    def borrow(self, operation: str) -> Any:
        """
        Borrow the transport client for one operation.

        Raises:
            LinkClosedError: If no handle exists (never initialized or
                already shut down).
        """
        with self._lock:
            if self._handle is None:
                raise LinkClosedError(operation)
            return self._handle.borrow(operation)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, callbacks: dict[str, Callable[..., Any]] | None = None) -> None:
        """
        Create the link handle and schedule a non-blocking connect.

        Args:
            callbacks: Extra transport callbacks to install (e.g. on_publish).

        Raises:
            InitError: If the transport library, the client allocation or
                the connect request fails.
        """
        cfg = self._config
        with self._lock:
            if self._handle is not None:
                raise InitError(InitFailure.ALREADY_INITIALIZED)

            logger.info(
                "Detected transport library paho-mqtt %s",
                self._transport.library_version(),
            )

            try:
                self._transport.check_library()
            except Exception as exc:
                logger.error("Failed to initialize MQTT transport library: %s", exc)
                raise InitError(InitFailure.LIBRARY_INIT, str(exc)) from exc

            try:
                client = self._transport.new_client(cfg.client_id, cfg.clean_session)
            except Exception as exc:
                logger.error("MQTT new client structure: %s", exc)
                raise InitError(InitFailure.HANDLE_CREATION, str(exc)) from exc
            if client is None:
                logger.error("MQTT new client structure: transport returned nothing")
                raise InitError(InitFailure.HANDLE_CREATION, "no client returned")

            handle = LinkHandle(client, cfg.client_id)
            client.on_connect = self._on_transport_connect
            client.on_disconnect = self._on_transport_disconnect
            for name, callback in (callbacks or {}).items():
                setattr(client, name, callback)

            self._apply_options(client)

            try:
                client.connect_async(cfg.host, cfg.port, keepalive=cfg.keepalive)
            except (OSError, ValueError) as exc:
                handle.destroy()
                logger.error(
                    "Connect %s:%s rejected: %s", cfg.host, cfg.port, exc
                )
                raise InitError(
                    InitFailure.CONNECT_REJECTED, str(exc), rc=ERR_INVAL
                ) from exc

            self._handle = handle
            self._state = ConnectionState.CONNECTING
            self.backoff.reset()

        logger.info("Establishing MQTT link to %s:%d", cfg.host, cfg.port)

    def _apply_options(self, client: Any) -> None:
        """Apply transport tuning; a rejected option is logged, not fatal."""
        cfg = self._config
        logger.debug("MQTT protocol v3.1.1")

        try:
            client.max_inflight_messages_set(cfg.max_inflight)
        except ValueError as exc:
            logger.error("Failed to set MQTT in flight messages: %s", exc)
        else:
            logger.info("MQTT in flight messages set to %d", cfg.max_inflight)

        try:
            client.reconnect_delay_set(
                min_delay=max(1, int(cfg.reconnect_delay_min)),
                max_delay=max(1, int(cfg.reconnect_delay_max)),
            )
        except ValueError as exc:
            logger.error("Failed to set MQTT reconnect delay: %s", exc)

    def shutdown(self) -> None:
        """
        Disconnect gracefully and destroy the handle.

        Safe to call from any thread and in any state; without a handle it
        does nothing.
        """
        with self._lock:
            handle = self._handle
            if handle is None:
                return
            self._handle = None
            self._state = ConnectionState.DISCONNECTED

            client = handle.borrow("shutdown")
            try:
                rc = int(client.disconnect())
            except (OSError, ValueError) as exc:
                logger.debug("MQTT disconnect raised: %s", exc)
                rc = ERR_ERRNO

            if rc == ERR_SUCCESS:
                logger.info("MQTT disconnected from broker")
            else:
                logger.info("MQTT invalid link structure (%s)", describe_rc(rc))

            handle.destroy()

        self._notify_lost()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def mark_connected(self) -> bool:
        """CONNECTING -> CONNECTED. Returns whether the transition happened."""
        with self._lock:
            if self._handle is None or self._state is ConnectionState.CONNECTED:
                return False
            self._state = ConnectionState.CONNECTED
            self.connect_count += 1
            self.backoff.reset()

        logger.info("Connection to cloud established")
        self._fire("on_connect")
        return True

    def mark_lost(self, reason: str) -> bool:
        """CONNECTED -> RECONNECTING. Returns whether the transition happened."""
        with self._lock:
            if self._state is not ConnectionState.CONNECTED:
                return False
            self._state = ConnectionState.RECONNECTING
            self.disconnect_count += 1

        logger.warning("Connection to cloud lost: %s", reason)
        self._notify_lost()
        self._fire("on_disconnect")
        return True

    def reconnect(self) -> int | None:
        """
        Issue one synchronous reconnect.

        Returns:
            The transport return code, or None when no attempt was made
            because the session was shut down.
        """
        with self._lock:
            handle = self._handle
            if handle is None or self._state is ConnectionState.DISCONNECTED:
                return None
            client = handle.borrow("reconnect")
            self.reconnect_count += 1

        try:
            rc = int(client.reconnect())
        except (OSError, ValueError) as exc:
            logger.error("Reconnect to %s failed: %s", self._config.host, exc)
            rc = ERR_ERRNO

        with self._lock:
            if self._handle is not handle:
                # shutdown() won the race; leave the destroyed client alone
                return None
            if rc == ERR_SUCCESS and self._state is not ConnectionState.CONNECTED:
                self._state = ConnectionState.CONNECTING
        return rc

    def next_retry_delay(self) -> float:
        return max(self._config.failure_pause, self.backoff.next_delay())

    # ------------------------------------------------------------------
    # Transport callbacks (paho callback API v2)
    # ------------------------------------------------------------------

    def _owns(self, client: Any) -> bool:
        with self._lock:
            return self._handle is not None and self._handle.wraps(client)

    def _on_transport_connect(
        self, client: Any, userdata: Any, flags: Any, reason_code: Any, properties: Any = None
    ) -> None:
        if not self._owns(client):
            return
        if _is_failure(reason_code):
            logger.error("Connection to cloud refused: %s", reason_code)
            return
        self.mark_connected()

    def _on_transport_disconnect(
        self,
        client: Any,
        userdata: Any,
        disconnect_flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        if not self._owns(client):
            return
        self.mark_lost(f"transport disconnect ({reason_code})")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _notify_lost(self) -> None:
        for listener in self._lost_listeners:
            listener()

    def _fire(self, hook: str) -> None:
        callback = getattr(self._handler, hook, None) if self._handler else None
        if callback is None:
            return
        with self._callback_lock:
            try:
                callback(self._owner)
            except Exception:
                logger.exception("Link handler %s failed", hook)

    def __repr__(self) -> str:
        return f"ConnectionManager(state={self.state.value}, {self.backoff!r})"


