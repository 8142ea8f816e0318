# tests/core/link/test_session.py
from __future__ import annotations

import pytest

from cloudlink.contracts.link import ConnectionState, PublishFailure
from cloudlink.core.errors import InitError
from cloudlink.core.link.session import LinkSession
from tests.conftest import bring_up
from tests.helpers.fake_transport import FakeTransport


class TestLifecycle:
    def test_full_lifecycle(self, session, handler, transport, command_queue):
        handler.on_connect_hook = lambda s: s.subscribe("cloudlink/command")
        bring_up(session)

        published = session.publish("agent/1/alarms", b"{}")
        transport.client.ack(published.mid)
        transport.client.deliver("cloudlink/command", b"info")
        session.service(0.01)
        session.shutdown()

        assert published.success
        assert command_queue.items == [("cloudlink/command", b"info")]
        assert handler.events == [("connect", "connected")]
        assert session.state is ConnectionState.DISCONNECTED

    def test_context_manager(self, config, handler, command_queue, transport):
        with LinkSession(config, handler, command_queue, transport=transport) as session:
            assert session.state is ConnectionState.CONNECTING

        assert session.state is ConnectionState.DISCONNECTED
        assert transport.client.disconnect_calls == 1

    def test_context_manager_shuts_down_on_error(self, config, handler, command_queue, transport):
        with pytest.raises(KeyError):
            with LinkSession(config, handler, command_queue, transport=transport) as session:
                raise KeyError("boom")

        assert session.state is ConnectionState.DISCONNECTED

    def test_init_failure_propagates_from_context_manager(self, config, handler, command_queue):
        transport = FakeTransport(library_error=RuntimeError("broken"))

        with pytest.raises(InitError):
            with LinkSession(config, handler, command_queue, transport=transport):
                pass

    def test_publish_wired_to_ack_callback(self, session, transport):
        session.initialize()

        assert transport.client.on_publish is not None


class TestProperties:
    def test_config_is_exposed(self, session, config):
        assert session.config is config

    def test_is_connected_tracks_state(self, session):
        assert session.is_connected is False
        bring_up(session)
        assert session.is_connected is True

    def test_disconnected_publish_property(self, session):
        # publish on a Disconnected session never succeeds silently
        assert session.state is ConnectionState.DISCONNECTED
        assert session.publish("a/b", b"x").failure is PublishFailure.TRANSPORT_REJECTED

    def test_repr(self, session):
        assert "broker.test:1883" in repr(session)


class TestStats:
    def test_counts(self, connected, transport):
        connected.subscribe("cloudlink/command")
        connected.publish("agent/1/alarms", b"a")
        connected.publish("agent/1/alarms", b"b")
        transport.client.deliver("cloudlink/command", b"x")
        connected.service(0.01)

        stats = connected.get_stats()

        assert stats["state"] == "connected"
        assert stats["connects"] == 1
        assert stats["reconnects"] == 1
        assert stats["published"] == 1
        assert stats["publish_errors"] == 1
        assert stats["inflight"] == 1
        assert stats["received"] == 1
        assert stats["subscriptions"] == ["cloudlink/command"]

    def test_disconnect_counted(self, connected, transport):
        transport.client.drop()
        connected.service(0.01)

        stats = connected.get_stats()

        assert stats["disconnects"] == 1
        assert stats["service_errors"] == 1
