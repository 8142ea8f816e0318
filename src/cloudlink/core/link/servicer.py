# cloudlink/core/link/servicer.py
from __future__ import annotations

import logging

from cloudlink.contracts.link import ConnectionState, ServiceResult
from cloudlink.core.errors import LinkClosedError
from cloudlink.core.link.manager import ConnectionManager
from cloudlink.core.link.transport import (
    ERR_ERRNO,
    ERR_NO_CONN,
    ERR_SUCCESS,
    describe_rc,
)

logger = logging.getLogger(__name__)


class IOServicer:
    """
    Drives the transport's read/write/keep-alive cycle, one call at a time.

    Holds no thread and never sleeps. Any I/O failure is followed by exactly
    one synchronous reconnect before control returns; when that reconnect
    fails too, the result tells the caller how long to pause.
    """

    def __init__(self, manager: ConnectionManager) -> None:
        self._manager = manager
        self.cycle_count = 0
        self.error_count = 0

    def service(self, timeout: float = 1.0) -> ServiceResult:
        """
        Run one servicing cycle bounded by ``timeout`` seconds.

        Exceptions raised by callbacks that run inside the cycle (inbound
        dispatch, reload action) propagate to the caller.
        """
        try:
            client = self._manager.borrow("service")
        except LinkClosedError:
            return self._idle(ERR_NO_CONN, "link is not initialized")

        self.cycle_count += 1
        try:
            rc = int(client.loop(timeout=timeout))
        except (OSError, ValueError) as exc:
            logger.error("Loop raised: %s", exc)
            rc = ERR_ERRNO

        if rc == ERR_SUCCESS:
            return ServiceResult(success=True)

        return self._recover(rc)

    def _recover(self, rc: int) -> ServiceResult:
        manager = self._manager
        state = manager.state

        if state is ConnectionState.DISCONNECTED:
            # shutdown() ran while the loop was blocked
            return self._idle(rc, describe_rc(rc))

        if state is ConnectionState.CONNECTING and rc == ERR_NO_CONN:
            # The connect was only scheduled; open the socket now
            logger.info("Opening MQTT link to %s", manager.config.host)
        else:
            self.error_count += 1
            logger.error("Loop error code %d (%s)", rc, describe_rc(rc))
            manager.mark_lost(describe_rc(rc))

        reconnect_rc = manager.reconnect()
        if reconnect_rc is None:
            return self._idle(rc, describe_rc(rc))

        if reconnect_rc == ERR_SUCCESS:
            return ServiceResult(
                success=False,
                rc=rc,
                reconnect_attempted=True,
                reconnect_rc=reconnect_rc,
                error=describe_rc(rc),
            )

        retry_after = manager.next_retry_delay()
        logger.error(
            "Reconnect loop error code %d (%s), retrying in %.0fs",
            reconnect_rc,
            describe_rc(reconnect_rc),
            retry_after,
        )
        return ServiceResult(
            success=False,
            rc=rc,
            reconnect_attempted=True,
            reconnect_rc=reconnect_rc,
            retry_after=retry_after,
            error=describe_rc(reconnect_rc),
        )

    def _idle(self, rc: int, error: str) -> ServiceResult:
        """No link to recover; the caller waits ``failure_pause`` before retrying."""
        return ServiceResult(
            success=False,
            rc=rc,
            retry_after=self._manager.config.failure_pause,
            error=error,
        )
