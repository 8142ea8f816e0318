# cloudlink/core/link/backoff.py
from __future__ import annotations

import random


class ReconnectBackoff:
    """Reconnect delay policy with optional exponential growth and jitter.

    The n-th consecutive failure waits ``min_delay * 2**n`` seconds when
    exponential, ``min_delay`` otherwise, capped at ``max_delay``. Jitter
    adds a random extra of up to ``jitter * delay``.
    """

    def __init__(
        self,
        min_delay: float,
        max_delay: float,
        exponential: bool = True,
        jitter: float = 0.0,
    ):
        if min_delay <= 0:
            raise ValueError("min_delay must be positive")
        if max_delay < min_delay:
            raise ValueError("max_delay must not be lower than min_delay")

        self.min_delay = min_delay
        self.max_delay = max_delay
        self.exponential = exponential
        self.jitter = jitter
        self.failures = 0

    def peek(self) -> float:
        """Delay for the next failure, without counting it."""
        if self.exponential:
            delay = self.min_delay * (2 ** min(self.failures, 32))
        else:
            delay = self.min_delay
        return min(delay, self.max_delay)

    def next_delay(self) -> float:
        """Record a failure and return how long to wait before retrying."""
        delay = self.peek()
        self.failures += 1
        if self.jitter:
            delay += random.uniform(0, delay * self.jitter)
        return delay

    def reset(self) -> None:
        self.failures = 0

    def __repr__(self) -> str:
        return (
            f"ReconnectBackoff(min={self.min_delay}s, max={self.max_delay}s, "
            f"exponential={self.exponential}, failures={self.failures})"
        )
