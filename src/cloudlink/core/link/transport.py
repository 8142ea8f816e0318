# cloudlink/core/link/transport.py
"""
paho-mqtt binding.

Everything that touches the paho API surface directly lives here so the
rest of the link only deals with return codes and a client object. Tests
substitute a fake ``Transport``.
"""
from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import paho.mqtt
import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion, MQTTErrorCode

logger = logging.getLogger(__name__)

ERR_SUCCESS = int(MQTTErrorCode.MQTT_ERR_SUCCESS)
ERR_NO_CONN = int(MQTTErrorCode.MQTT_ERR_NO_CONN)
ERR_INVAL = int(MQTTErrorCode.MQTT_ERR_INVAL)
ERR_QUEUE_SIZE = int(MQTTErrorCode.MQTT_ERR_QUEUE_SIZE)
ERR_CONN_LOST = int(MQTTErrorCode.MQTT_ERR_CONN_LOST)
ERR_ERRNO = int(MQTTErrorCode.MQTT_ERR_ERRNO)
ERR_UNKNOWN = int(MQTTErrorCode.MQTT_ERR_UNKNOWN)

PROTOCOL_V311 = mqtt.MQTTv311


def describe_rc(rc: int) -> str:
    """Human readable text for a transport return code."""
    try:
        return mqtt.error_string(rc)
    except (TypeError, ValueError):
        return f"Unknown error {rc}"


@runtime_checkable
class Transport(Protocol):
    """Creates transport clients for the link handle."""

    def library_version(self) -> str: ...
    def check_library(self) -> None: ...
    def new_client(self, client_id: str, clean_session: bool) -> Any: ...


class PahoTransport:
    """Transport backed by paho-mqtt 2.x (MQTT 3.1.1 over TCP)."""

    MIN_MAJOR_VERSION = 2

    def library_version(self) -> str:
        return str(getattr(paho.mqtt, "__version__", "unknown"))

    def check_library(self) -> None:
        """
        Raises:
            RuntimeError: If the installed paho-mqtt lacks the v2 callback API.
        """
        version = self.library_version()
        try:
            major = int(version.split(".", 1)[0])
        except ValueError as exc:
            raise RuntimeError(f"Unrecognized paho-mqtt version '{version}'") from exc
        if major < self.MIN_MAJOR_VERSION:
            raise RuntimeError(
                f"paho-mqtt {version} is too old, "
                f">= {self.MIN_MAJOR_VERSION}.0 is required"
            )

    def new_client(self, client_id: str, clean_session: bool) -> mqtt.Client:
        return mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=client_id,
            clean_session=clean_session,
            protocol=PROTOCOL_V311,
        )
