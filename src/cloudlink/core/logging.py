# cloudlink/core/logging.py
from __future__ import annotations

import logging
import sys
import threading
import time
from contextlib import contextmanager
from typing import Iterator

from pythonjsonlogger import jsonlogger


class RateLimitFilter(logging.Filter):
    """
    Drops WARNING and above records once ``limit`` were emitted in ``period``.

    A limit of 0 disables the filter. The limit can be lifted temporarily
    with :func:`rate_limit_suspended`.
    """

    def __init__(self, limit: int = 200, period: float = 3600.0) -> None:
        super().__init__()
        self.limit = limit
        self.period = period
        self._lock = threading.Lock()
        self._window_start = time.monotonic()
        self._count = 0
        self._suspended = 0
        self.dropped = 0

    @property
    def suspended(self) -> bool:
        return self._suspended > 0

    def suspend(self) -> None:
        with self._lock:
            self._suspended += 1

    def resume(self) -> None:
        with self._lock:
            self._suspended = max(0, self._suspended - 1)

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno < logging.WARNING or self.limit <= 0:
            return True

        with self._lock:
            if self._suspended:
                return True

            now = time.monotonic()
            if now - self._window_start >= self.period:
                if self.dropped:
                    sys.stderr.write(
                        f"log rate limit: {self.dropped} record(s) dropped\n"
                    )
                self._window_start = now
                self._count = 0
                self.dropped = 0

            self._count += 1
            if self._count > self.limit:
                self.dropped += 1
                return False
            return True


_rate_limit = RateLimitFilter()


def get_rate_limit_filter() -> RateLimitFilter:
    return _rate_limit


@contextmanager
def rate_limit_suspended(
    limiter: RateLimitFilter | None = None,
) -> Iterator[RateLimitFilter]:
    """Lift the error-log rate limit for the enclosed block."""
    limiter = limiter or _rate_limit
    limiter.suspend()
    try:
        yield limiter
    finally:
        limiter.resume()


def configure_logging(
    level: str = "INFO",
    json: bool = True,
    error_limit: int = 200,
    error_period: float = 3600.0,
) -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())

    handler = logging.StreamHandler(sys.stdout)
    if json:
        formatter: logging.Formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s"
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
        )
    handler.setFormatter(formatter)

    _rate_limit.limit = error_limit
    _rate_limit.period = error_period
    handler.addFilter(_rate_limit)

    # Avoid duplicate handlers on reconfiguration
    root.handlers = [handler]
