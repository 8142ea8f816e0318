# tests/conftest.py
from __future__ import annotations

import pytest

from cloudlink.core.config import SessionConfig
from cloudlink.core.link.session import LinkSession
from tests.helpers.fake_transport import FakeTransport


class RecordingHandler:
    """LinkHandler that records every transition and the state it saw."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []
        self.on_connect_hook = None

    def on_connect(self, session) -> None:
        self.events.append(("connect", session.state.value))
        if self.on_connect_hook is not None:
            self.on_connect_hook(session)

    def on_disconnect(self, session) -> None:
        self.events.append(("disconnect", session.state.value))

    def count(self, kind: str) -> int:
        return sum(1 for event, _ in self.events if event == kind)


class RecordingQueue:
    def __init__(self) -> None:
        self.items: list[tuple[str, bytes]] = []

    def put(self, topic: str, payload: bytes) -> None:
        self.items.append((topic, payload))


@pytest.fixture
def config() -> SessionConfig:
    return SessionConfig(
        host="broker.test",
        port=1883,
        keepalive=30,
        reconnect_delay_min=1,
        reconnect_delay_max=8,
        failure_pause=0.5,
        client_id="agent-1",
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def command_queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def reload_calls() -> list[int]:
    return []


@pytest.fixture
def session(config, handler, command_queue, reload_calls, transport) -> LinkSession:
    return LinkSession(
        config,
        handler,
        command_queue,
        reload_action=lambda: reload_calls.append(1),
        transport=transport,
    )


def bring_up(session: LinkSession) -> None:
    """Initialize and service until CONNECTED (schedule, reconnect, CONNACK)."""
    session.initialize()
    session.service(0.01)
    session.service(0.01)
    assert session.is_connected


@pytest.fixture
def connected(session) -> LinkSession:
    bring_up(session)
    return session
