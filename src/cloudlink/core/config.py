# cloudlink/core/config.py
"""
Configuration for the cloud link.

Process-level settings come from the environment (prefix ``CLOUDLINK_``)
and an optional ``.env`` file. The link endpoint itself is described by
the ``link:`` section of the YAML files listed in ``link_config_paths``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Iterable

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cloudlink.contracts.link import QoS
from cloudlink.core.loader import expand_env, merge_section, read_yaml_documents

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Environment-driven settings with sensible defaults."""

    model_config = SettingsConfigDict(
        env_prefix="CLOUDLINK_", env_file=".env", extra="ignore"
    )

    app_env: str = "dev"
    log_level: str = "INFO"
    log_json: bool = True

    # Glob patterns for YAML files holding the ``link:`` section
    link_config_paths: list[str] = Field(
        default_factory=lambda: ["config/link.yaml"]
    )

    # Filters (re)subscribed on every connect
    command_topics: list[str] = Field(
        default_factory=lambda: ["cloudlink/command"]
    )

    service_timeout: float = Field(
        default=1.0, description="Seconds a single service() cycle may block"
    )

    # Error log rate limiting
    error_log_limit: int = Field(default=200, description="Records per period, 0 = unlimited")
    error_log_period: float = Field(default=3600.0, description="Seconds")


@dataclass(frozen=True)
class SessionConfig:
    """
    Immutable description of the broker link.

    Attributes:
        host: Broker hostname.
        port: Broker port.
        keepalive: Ping interval in seconds.
        reconnect_delay_min: First reconnect delay in seconds.
        reconnect_delay_max: Upper bound of the reconnect delay.
        reconnect_exponential: Double the delay after each failed reconnect.
        reconnect_jitter: Random extra delay, as a fraction of the delay.
        client_id: MQTT client identifier; the transport picks one if empty.
        clean_session: Start every connection with a clean broker session.
        failure_pause: Minimum pause the caller observes after a failed
            reconnect.
        qos: Delivery assurance for publish and subscribe. Fixed.
        max_inflight: Unacknowledged outbound messages allowed. Fixed.
    """

    host: str = "localhost"
    port: int = 1883
    keepalive: int = 60
    reconnect_delay_min: float = 10.0
    reconnect_delay_max: float = 120.0
    reconnect_exponential: bool = True
    reconnect_jitter: float = 0.0
    client_id: str = ""
    clean_session: bool = True
    failure_pause: float = 10.0
    qos: QoS = field(default=QoS.AT_LEAST_ONCE, init=False)
    max_inflight: int = field(default=1, init=False)

    def __post_init__(self) -> None:
        if self.reconnect_delay_min <= 0:
            raise ValueError("reconnect_delay_min must be positive")
        if self.reconnect_delay_max < self.reconnect_delay_min:
            raise ValueError(
                "reconnect_delay_max must not be lower than reconnect_delay_min"
            )
        if self.keepalive < 0:
            raise ValueError("keepalive must not be negative")
        if self.failure_pause < 0:
            raise ValueError("failure_pause must not be negative")
        if not 0.0 <= self.reconnect_jitter <= 1.0:
            raise ValueError("reconnect_jitter must be between 0 and 1")


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


_COERCIONS: dict[str, Callable[[Any], Any]] = {
    "host": str,
    "port": int,
    "keepalive": int,
    "reconnect_delay_min": float,
    "reconnect_delay_max": float,
    "reconnect_exponential": _coerce_bool,
    "reconnect_jitter": float,
    "client_id": str,
    "clean_session": _coerce_bool,
    "failure_pause": float,
}


def session_config_from_mapping(raw: dict[str, Any]) -> SessionConfig:
    """
    Build a SessionConfig from loosely typed values (YAML, env expansion).

    Raises:
        ValueError: On unknown keys, fixed keys, or invalid values.
    """
    settable = {f.name for f in fields(SessionConfig) if f.init}
    unknown = sorted(set(raw) - settable)
    if unknown:
        raise ValueError(f"Unknown link config key(s): {unknown}")

    kwargs = {key: _COERCIONS[key](value) for key, value in raw.items()}
    return SessionConfig(**kwargs)


def load_session_config(patterns: Iterable[str], **overrides: Any) -> SessionConfig:
    """
    Load the ``link:`` section from YAML files into a SessionConfig.

    Expected YAML::

        link:
          host: "${CLOUD_HOST:-localhost}"
          port: ${CLOUD_PORT:-1883}
          keepalive: 60
          reconnect_delay_min: 10
          reconnect_delay_max: 120

    Later files override earlier ones, keyword overrides win over files.
    Defaults apply when no file matches.
    """
    raw = expand_env(merge_section(read_yaml_documents(patterns), "link"))
    raw.update(overrides)
    config = session_config_from_mapping(raw)

    logger.info(
        "Link config: %s:%d keepalive=%ds reconnect=%.0f..%.0fs",
        config.host,
        config.port,
        config.keepalive,
        config.reconnect_delay_min,
        config.reconnect_delay_max,
    )
    return config


settings = Settings()
