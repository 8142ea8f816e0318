# cloudlink/core/link/runner.py
from __future__ import annotations

import logging
import threading

from cloudlink.core.link.session import LinkSession

logger = logging.getLogger(__name__)


class SessionRunner:
    """
    Host loop that keeps calling ``session.service()`` until stopped.

    Pauses ``retry_after`` seconds after a failed reconnect, and
    ``config.failure_pause`` after an exception escaped the cycle. Pauses
    end early when ``stop()`` is called from another thread.
    """

    def __init__(self, session: LinkSession, timeout: float = 1.0) -> None:
        self._session = session
        self._timeout = timeout
        self._stop = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()

    def run(self) -> None:
        logger.info("Session runner started (timeout=%.1fs)", self._timeout)
        while not self._stop.is_set():
            try:
                result = self._session.service(self._timeout)
            except Exception:
                logger.exception("Service cycle failed")
                self._stop.wait(self._session.config.failure_pause)
                continue

            if not result.success and result.retry_after > 0:
                self._stop.wait(result.retry_after)
        logger.info("Session runner stopped")
