# cloudlink/core/link/handle.py
from __future__ import annotations

import logging
from typing import Any

from cloudlink.core.errors import LinkClosedError

logger = logging.getLogger(__name__)


class LinkHandle:
    """
    Owned wrapper around one transport client.

    The Connection Manager creates and destroys it. Other components borrow
    the client for the duration of a single call; once ``destroy()`` ran
    ``borrow()`` raises LinkClosedError instead of handing out a stale client.
    """

    def __init__(self, client: Any, client_id: str = "") -> None:
        self._client: Any | None = client
        self.client_id = client_id

    @property
    def is_open(self) -> bool:
        return self._client is not None

    def borrow(self, operation: str) -> Any:
        """Return the client for ``operation``, failing if destroyed."""
        client = self._client
        if client is None:
            raise LinkClosedError(operation)
        return client

    def wraps(self, client: Any) -> bool:
        return self._client is not None and self._client is client

    def destroy(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        # Drop our callbacks so a late network event cannot call back in
        for attr in ("on_connect", "on_disconnect", "on_message", "on_publish"):
            try:
                setattr(client, attr, None)
            except AttributeError:
                pass
        logger.debug("Link handle %s destroyed", self.client_id or "<anonymous>")

    def __repr__(self) -> str:
        return f"LinkHandle(client_id={self.client_id!r}, open={self.is_open})"
