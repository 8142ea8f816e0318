# cloudlink/core/link/topics.py
"""
MQTT topic name and topic filter rules.

Publish topics must be concrete: non-empty, no wildcards, no NUL, and at
most 65535 bytes of UTF-8. Subscription filters may use ``+`` for a whole
level and ``#`` as the last level only.
"""
from __future__ import annotations

MAX_TOPIC_BYTES = 65535


def publish_topic_error(topic: str) -> str | None:
    """Return why ``topic`` cannot be published to, or None if it is valid."""
    if not isinstance(topic, str) or not topic:
        return "topic must be a non-empty string"
    if "+" in topic or "#" in topic:
        return "topic must not contain wildcards"
    if "\x00" in topic:
        return "topic must not contain NUL"
    try:
        encoded = topic.encode("utf-8")
    except UnicodeEncodeError:
        return "topic is not valid UTF-8"
    if len(encoded) > MAX_TOPIC_BYTES:
        return f"topic exceeds {MAX_TOPIC_BYTES} bytes"
    return None


def filter_error(topic_filter: str) -> str | None:
    """Return why ``topic_filter`` cannot be subscribed to, or None."""
    if not isinstance(topic_filter, str) or not topic_filter:
        return "filter must be a non-empty string"
    if "\x00" in topic_filter:
        return "filter must not contain NUL"
    try:
        encoded = topic_filter.encode("utf-8")
    except UnicodeEncodeError:
        return "filter is not valid UTF-8"
    if len(encoded) > MAX_TOPIC_BYTES:
        return f"filter exceeds {MAX_TOPIC_BYTES} bytes"

    levels = topic_filter.split("/")
    for i, level in enumerate(levels):
        if "#" in level and (level != "#" or i != len(levels) - 1):
            return "'#' must be a whole level at the end of the filter"
        if "+" in level and level != "+":
            return "'+' must occupy a whole level"
    return None


def is_valid_publish_topic(topic: str) -> bool:
    return publish_topic_error(topic) is None


def is_valid_filter(topic_filter: str) -> bool:
    return filter_error(topic_filter) is None


def topic_matches(topic: str, topic_filter: str) -> bool:
    """Check if a concrete topic matches a filter with wildcards."""
    topic_parts = topic.split("/")
    filter_parts = topic_filter.split("/")

    for i, part in enumerate(filter_parts):
        if part == "#":
            return True  # matches everything from here
        if i >= len(topic_parts):
            return False
        if part == "+":
            continue
        if part != topic_parts[i]:
            return False

    return len(topic_parts) == len(filter_parts)
