# cloudlink/main.py
"""
Process entry point.

Loads settings and the link config, configures logging, then drives one
LinkSession on the main thread until SIGINT/SIGTERM. Inbound commands are
drained by a worker thread and logged; a ``reload`` command re-reads the
environment settings and applies the new log level.
"""
from __future__ import annotations

import logging
import signal
import sys
import threading

from cloudlink.core.commands import InMemoryCommandQueue
from cloudlink.core.config import Settings, load_session_config, settings
from cloudlink.core.errors import InitError
from cloudlink.core.link.runner import SessionRunner
from cloudlink.core.link.session import LinkSession
from cloudlink.core.logging import configure_logging

logger = logging.getLogger(__name__)


class CommandSubscriber:
    """Subscribes the command filters each time the link comes up."""

    def __init__(self, topics: list[str]) -> None:
        self.topics = topics

    def on_connect(self, session: LinkSession) -> None:
        for topic in self.topics:
            session.subscribe(topic)

    def on_disconnect(self, session: LinkSession) -> None:
        logger.info("Link down, %s will resubscribe on reconnect", self.topics)


def _reload() -> None:
    fresh = Settings()
    logging.getLogger().setLevel(fresh.log_level.upper())
    logger.info("Log level set to %s", fresh.log_level.upper())


def _drain(queue: InMemoryCommandQueue, stop: threading.Event) -> None:
    while not stop.is_set():
        message = queue.get(timeout=1.0)
        if message is None:
            continue
        logger.info(
            "Command on %s (%d bytes)", message.topic, len(message.payload)
        )


def main() -> int:
    configure_logging(
        settings.log_level,
        json=settings.log_json,
        error_limit=settings.error_log_limit,
        error_period=settings.error_log_period,
    )
    logger.info("Starting cloud link (env=%s)", settings.app_env)

    try:
        config = load_session_config(settings.link_config_paths)
    except ValueError:
        logger.exception("Invalid link configuration")
        return 2

    queue = InMemoryCommandQueue(maxsize=1000)
    session = LinkSession(
        config,
        CommandSubscriber(settings.command_topics),
        queue,
        reload_action=_reload,
    )
    runner = SessionRunner(session, timeout=settings.service_timeout)

    def _on_signal(signum, frame) -> None:
        logger.info("Received signal %d, stopping", signum)
        runner.stop()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    stop_drain = threading.Event()
    drain = threading.Thread(
        target=_drain, args=(queue, stop_drain), name="command-drain", daemon=True
    )

    try:
        session.initialize()
    except InitError:
        logger.exception("Cloud link could not be started")
        return 1

    drain.start()
    try:
        runner.run()
    finally:
        session.shutdown()
        stop_drain.set()
        drain.join(timeout=2.0)
        logger.info("Final stats: %s", session.get_stats())
    return 0


if __name__ == "__main__":
    sys.exit(main())
