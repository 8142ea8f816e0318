# cloudlink/core/loader.py
"""
YAML configuration helpers: file globbing and environment expansion.
"""
from __future__ import annotations

import logging
import os
import re
from glob import glob
from pathlib import Path
from typing import Any, Iterable

import yaml

logger = logging.getLogger(__name__)

# ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def expand_env(value: Any) -> Any:
    """
    Recursively replace ``${VAR}`` / ``${VAR:-default}`` references.

    Strings, dicts and lists are walked; any other value is returned as is.

    Raises:
        ValueError: If a referenced variable is unset and has no default.
    """
    if isinstance(value, str):
        return ENV_VAR_PATTERN.sub(_lookup, value)
    if isinstance(value, dict):
        return {k: expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env(v) for v in value]
    return value


def _lookup(match: re.Match) -> str:
    name, default = match.group(1), match.group(2)
    env_value = os.environ.get(name)
    if env_value is not None:
        return env_value
    if default is not None:
        return default
    raise ValueError(
        f"Environment variable '{name}' is not set and no default provided"
    )


def read_yaml_documents(patterns: Iterable[str]) -> list[dict[str, Any]]:
    """
    Parse every YAML file matching the glob patterns, in sorted path order.

    Returns an empty list when nothing matches.
    """
    patterns = list(patterns)
    paths = sorted({Path(p).resolve() for pattern in patterns for p in glob(pattern)})

    if not paths:
        logger.debug("No config files matched: %s", patterns)
        return []

    logger.info("Loading config files: %s", [str(p) for p in paths])

    documents: list[dict[str, Any]] = []
    for path in paths:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file '{path}' must contain a mapping")
        documents.append(data)
    return documents


def merge_section(documents: Iterable[dict[str, Any]], section: str) -> dict[str, Any]:
    """Merge one top-level section across documents; later documents win."""
    merged: dict[str, Any] = {}
    for data in documents:
        part = data.get(section) or {}
        if not isinstance(part, dict):
            raise ValueError(f"Config section '{section}' must be a mapping")
        merged.update(part)
    return merged
