# cloudlink/core/commands.py
from __future__ import annotations

import logging
import queue

from cloudlink.contracts.link import ReceivedMessage

logger = logging.getLogger(__name__)


class InMemoryCommandQueue:
    """
    Thread-safe FIFO of inbound commands.

    ``put`` never blocks the servicing thread: when a bounded queue is full
    the message is dropped and a warning logged.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: queue.Queue[ReceivedMessage] = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def put(self, topic: str, payload: bytes) -> None:
        try:
            self._queue.put_nowait(ReceivedMessage(topic=topic, payload=payload))
        except queue.Full:
            self.dropped += 1
            logger.warning("Command queue full, dropping message from %s", topic)

    def get(self, timeout: float | None = None) -> ReceivedMessage | None:
        """Next message, or None if none arrived within ``timeout``."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def __len__(self) -> int:
        return self._queue.qsize()
