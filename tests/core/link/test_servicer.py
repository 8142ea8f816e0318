# tests/core/link/test_servicer.py
from __future__ import annotations

import logging

import pytest

from cloudlink.contracts.link import ConnectionState
from cloudlink.core.link.transport import (
    ERR_CONN_LOST,
    ERR_ERRNO,
    ERR_NO_CONN,
    ERR_SUCCESS,
)


class TestServiceWithoutLink:
    def test_before_initialize(self, session):
        result = session.service(0.01)

        assert result.success is False
        assert result.rc == ERR_NO_CONN
        assert result.reconnect_attempted is False
        assert result.retry_after == session.config.failure_pause

    def test_after_shutdown(self, connected, transport):
        connected.shutdown()
        loops = transport.client.loop_calls

        result = connected.service(0.01)

        assert result.success is False
        assert result.reconnect_attempted is False
        assert transport.client.loop_calls == loops
        assert result.retry_after == connected.config.failure_pause


class TestFirstConnect:
    def test_first_cycle_opens_the_link(self, session, handler, transport, caplog):
        session.initialize()

        with caplog.at_level(logging.INFO):
            result = session.service(0.01)

        assert result.reconnect_attempted is True
        assert result.reconnect_rc == ERR_SUCCESS
        assert result.retry_after == 0
        assert transport.client.reconnect_calls == 1
        assert session.state is ConnectionState.CONNECTING
        assert "Opening MQTT link" in caplog.text
        # Never connected, so nothing was lost
        assert handler.count("disconnect") == 0

    def test_connack_on_next_cycle(self, session, handler):
        session.initialize()
        session.service(0.01)

        result = session.service(0.01)

        assert result.success is True
        assert session.is_connected
        assert handler.events == [("connect", "connected")]

    def test_steady_state_cycles_succeed(self, connected, transport):
        for _ in range(5):
            assert connected.service(0.01).success

        assert transport.client.reconnect_calls == 1


class TestRecovery:
    def test_loop_error_reconnects_once_and_fires_disconnect_once(
        self, connected, handler, transport
    ):
        client = transport.client
        client.drop()  # on_disconnect callback and CONN_LOST in the same cycle

        result = connected.service(0.01)

        assert result.success is False
        assert result.rc == ERR_CONN_LOST
        assert result.reconnect_attempted is True
        assert client.reconnect_calls == 2
        assert handler.count("disconnect") == 1
        assert connected.state is ConnectionState.CONNECTING

    def test_loop_error_without_transport_callback_fires_disconnect(
        self, connected, handler, transport
    ):
        transport.client.loop_script.append(ERR_CONN_LOST)

        connected.service(0.01)

        assert handler.events == [
            ("connect", "connected"),
            ("disconnect", "reconnecting"),
        ]

    def test_reconnect_then_exactly_one_connect_before_dispatch(
        self, connected, handler, transport, command_queue
    ):
        connected.subscribe("cloudlink/command")
        client = transport.client
        client.drop()
        connected.service(0.01)

        order = []
        handler.on_connect_hook = lambda s: order.append(("connect", len(command_queue.items)))
        client.deliver("cloudlink/command", b"ping")
        connected.service(0.01)

        assert handler.count("connect") == 2
        assert order == [("connect", 0)]
        assert command_queue.items == [("cloudlink/command", b"ping")]

    def test_failed_reconnect_reports_retry_after(self, connected, transport, caplog):
        client = transport.client
        client.drop()
        client.reconnect_results.append(ERR_NO_CONN)

        with caplog.at_level(logging.ERROR):
            result = connected.service(0.01)

        assert result.reconnect_attempted is True
        assert result.reconnect_rc == ERR_NO_CONN
        assert result.retry_after == 1
        assert connected.state is ConnectionState.RECONNECTING
        assert "Reconnect loop error code" in caplog.text

    @pytest.mark.parametrize("error", [OSError("refused"), ValueError("bad host")])
    def test_reconnect_raising_is_a_failure(self, connected, transport, error):
        client = transport.client
        client.drop()
        client.reconnect_results.append(error)

        result = connected.service(0.01)

        assert result.reconnect_rc == ERR_ERRNO
        assert result.retry_after == 1

    def test_retry_after_grows_with_consecutive_failures(self, connected, transport):
        client = transport.client
        client.drop()
        client.reconnect_results.extend([ERR_NO_CONN] * 5)

        delays = [connected.service(0.01).retry_after for _ in range(5)]

        assert delays == [1, 2, 4, 8, 8]

    def test_disconnect_fires_once_across_repeated_failures(
        self, connected, handler, transport
    ):
        client = transport.client
        client.drop()
        client.reconnect_results.extend([ERR_NO_CONN] * 3)

        for _ in range(3):
            connected.service(0.01)

        assert handler.count("disconnect") == 1

    def test_loop_raising_oserror_is_recovered(self, connected, handler, transport):
        def broken(client):
            raise OSError("socket closed")

        transport.client.loop_script.append(broken)

        result = connected.service(0.01)

        assert result.rc == ERR_ERRNO
        assert result.reconnect_attempted is True
        assert handler.count("disconnect") == 1

    def test_shutdown_during_loop_skips_reconnect(self, connected, transport):
        def shutdown_mid_cycle(client):
            connected.shutdown()
            return ERR_CONN_LOST

        client = transport.client
        client.loop_script.append(shutdown_mid_cycle)

        result = connected.service(0.01)

        assert result.reconnect_attempted is False
        assert client.reconnect_calls == 1
        assert connected.state is ConnectionState.DISCONNECTED
        assert result.retry_after == connected.config.failure_pause

    def test_callback_errors_propagate(self, connected, transport):
        def explode(client):
            raise RuntimeError("reload failed")

        transport.client.loop_script.append(explode)

        with pytest.raises(RuntimeError, match="reload failed"):
            connected.service(0.01)
