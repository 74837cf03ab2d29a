"""
Shared utility functions for the link delivery queue.

Contains helpers used across the server and the consumer agent:
millisecond clocks, queue item ids, JSON handling and log-safe
formatting of tokens and URLs.
"""

import json
import time
from datetime import datetime, timezone
from typing import Any


def now_ms() -> int:
    """
    Get the current Unix time in milliseconds.

    This is the score used for queued links and the unit of the
    turbo window end time.
    """
    return int(time.time() * 1000)


def make_item_id(timestamp_ms: int, index: int) -> str:
    """
    Build a queue item id from its enqueue time and batch position.

    The index is zero-padded so ids of the same millisecond sort
    lexicographically in batch order.

    Args:
        timestamp_ms: Enqueue time shared by the whole batch
        index: Position of the link in its batch

    Returns:
        An id in the format '<timestamp>-<index>'
    """
    return f"{timestamp_ms}-{index:06d}"


def get_timestamp() -> str:
    """
    Get current UTC timestamp in ISO format.

    Returns:
        ISO-formatted UTC timestamp string
    """
    return datetime.now(timezone.utc).isoformat()


def safe_json_loads(data: str | bytes, default: Any = None) -> Any:
    """
    Safely parse JSON with error handling.

    Args:
        data: JSON string or bytes to parse
        default: Value to return if parsing fails

    Returns:
        Parsed JSON data or default value on failure
    """
    try:
        if isinstance(data, bytes):
            data = data.decode('utf-8')
        return json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
        return default


def mask_token(token: str) -> str:
    """Shorten a token for log output so full credentials never hit the logs."""
    if len(token) <= 6:
        return "***"
    return f"{token[:3]}***{token[-2:]}"


def truncate_string(s: str, max_length: int = 100) -> str:
    """
    Truncate a string to a maximum length for logging.

    Args:
        s: String to truncate
        max_length: Maximum allowed length

    Returns:
        Original string if short enough, otherwise truncated with ellipsis
    """
    if len(s) <= max_length:
        return s
    return s[:max_length - 3] + "..."


def format_link_count(count: int) -> str:
    """Human-readable link count: 'one link' or 'N links'."""
    return "one link" if count == 1 else f"{count} links"
