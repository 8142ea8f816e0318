# cloudlink/core/link/publisher.py
from __future__ import annotations

import logging
import threading
from typing import Any

from cloudlink.contracts.link import ConnectionState, PublishFailure, PublishResult, QoS
from cloudlink.core.errors import LinkClosedError
from cloudlink.core.link.manager import ConnectionManager
from cloudlink.core.link.topics import publish_topic_error
from cloudlink.core.link.transport import (
    ERR_INVAL,
    ERR_NO_CONN,
    ERR_QUEUE_SIZE,
    ERR_SUCCESS,
    describe_rc,
)

logger = logging.getLogger(__name__)


class Publisher:
    """
    Submits outbound messages at the session QoS with retain off.

    At most ``config.max_inflight`` QoS>0 messages may be unacknowledged.
    A slot is reserved before the transport sees the message and released
    by the broker's acknowledgement or by losing the connection, whichever
    comes first. An acknowledgement may arrive before ``client.publish()``
    returns its message id; it is parked and matched once the id is known.
    """

    def __init__(self, manager: ConnectionManager) -> None:
        self._manager = manager
        self._lock = threading.Lock()
        self._inflight: set[int] = set()
        self._reserved = 0
        self._early_acks: set[int] = set()
        # Bumped on connection loss so reservations from before it are void
        self._epoch = 0

        self.publish_count = 0
        self.ack_count = 0
        self.reject_count = 0

        manager.add_lost_listener(self.release_all)

    @property
    def inflight(self) -> int:
        with self._lock:
            return len(self._inflight) + self._reserved

    def publish(self, topic: str, payload: bytes | str) -> PublishResult:
        """
        Publish ``payload`` to ``topic`` without waiting for acknowledgement.

        Checks run in order: topic validity, connection, in-flight cap,
        transport acceptance. The first failing check decides the result.
        """
        problem = publish_topic_error(topic)
        if problem is not None:
            return self._reject(
                topic, PublishFailure.INVALID_TOPIC, ERR_INVAL, problem
            )

        if isinstance(payload, str):
            try:
                payload = payload.encode("utf-8")
            except UnicodeEncodeError as exc:
                return self._reject(
                    topic, PublishFailure.TRANSPORT_REJECTED, ERR_INVAL, str(exc)
                )

        manager = self._manager
        try:
            client = manager.borrow("publish")
        except LinkClosedError:
            return self._reject(
                topic, PublishFailure.TRANSPORT_REJECTED, ERR_NO_CONN, "link is closed"
            )
        if manager.state is not ConnectionState.CONNECTED:
            return self._reject(
                topic,
                PublishFailure.TRANSPORT_REJECTED,
                ERR_NO_CONN,
                f"link is {manager.state.value}",
            )

        qos = manager.config.qos
        limit = manager.config.max_inflight
        tracked = qos > QoS.AT_MOST_ONCE
        with self._lock:
            busy = len(self._inflight) + self._reserved if tracked else 0
            if busy < limit and tracked:
                self._reserved += 1
            epoch = self._epoch
        if busy >= limit:
            return self._reject(
                topic,
                PublishFailure.IN_FLIGHT_LIMIT,
                ERR_QUEUE_SIZE,
                f"{busy} message(s) awaiting acknowledgement",
            )

        # Our lock is not held here: paho runs on_publish under its own mutex
        try:
            info = client.publish(topic, payload, qos=int(qos), retain=False)
        except ValueError as exc:
            if tracked:
                self._settle(epoch, None)
            return self._reject(
                topic, PublishFailure.TRANSPORT_REJECTED, ERR_INVAL, str(exc)
            )

        rc = int(info.rc)
        if rc != ERR_SUCCESS:
            if tracked:
                self._settle(epoch, None)
            return self._reject(
                topic, PublishFailure.TRANSPORT_REJECTED, rc, describe_rc(rc)
            )

        if tracked:
            self._settle(epoch, info.mid)
        self.publish_count += 1

        logger.debug("Published %d bytes to %s (mid=%s)", len(payload), topic, info.mid)
        return PublishResult(success=True, topic=topic, rc=rc, mid=info.mid)

    def _settle(self, epoch: int, mid: int | None) -> None:
        """Turn a reservation into a tracked mid, or drop it when ``mid`` is None."""
        with self._lock:
            if epoch != self._epoch:
                # The link was lost meanwhile; release_all() voided the slot
                return
            self._reserved -= 1
            if mid is None:
                return
            if mid in self._early_acks:
                self._early_acks.discard(mid)
            else:
                self._inflight.add(mid)

    def handle_ack(
        self, client: Any, userdata: Any, mid: int, reason_code: Any = None, properties: Any = None
    ) -> None:
        """paho ``on_publish`` callback: the broker acknowledged ``mid``."""
        with self._lock:
            if mid in self._inflight:
                self._inflight.discard(mid)
            elif self._reserved:
                # Acked before publish() learned its mid
                self._early_acks.add(mid)
            else:
                return
        self.ack_count += 1
        logger.debug("Publish acknowledged (mid=%s)", mid)

    def release_all(self) -> None:
        with self._lock:
            dropped = len(self._inflight) + self._reserved
            self._inflight.clear()
            self._early_acks.clear()
            self._reserved = 0
            self._epoch += 1
        if dropped:
            logger.warning("%d unacknowledged publish(es) abandoned", dropped)

    def _reject(
        self, topic: str, failure: PublishFailure, rc: int, error: str
    ) -> PublishResult:
        self.reject_count += 1
        logger.error("Publish to '%s' failed: %s (%s)", topic, failure.value, error)
        return PublishResult(
            success=False, topic=topic, rc=rc, failure=failure, error=error
        )
