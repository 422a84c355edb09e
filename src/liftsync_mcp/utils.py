"""
Shared utility functions for the liftsync MCP server.

Time handling, session id helpers, strict integer parsing.
"""

import secrets
import time
from datetime import datetime
from typing import Optional

from liftsync_mcp.sdk.types import LOCAL_SESSION_PREFIX


def local_iso_now() -> str:
    """Current local time as ISO-8601 with the UTC offset kept.

    Returns:
        e.g. "2026-02-19T14:30:00.000+02:00" (never a "Z" UTC string, the
        local wall-clock day boundary drives day locking)
    """
    return datetime.now().astimezone().isoformat(timespec="milliseconds")


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware datetime.

    Accepts a trailing "Z". Naive values are taken as local time.

    Returns:
        datetime, or None if value is empty or unparseable
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def timestamp_of(value: Optional[str]) -> float:
    """Epoch seconds of an ISO timestamp, 0.0 when missing or invalid."""
    parsed = parse_iso(value)
    return parsed.timestamp() if parsed else 0.0


def generate_local_session_id() -> str:
    """Mint a placeholder session id: local_<epoch ms>_<random>."""
    return f"{LOCAL_SESSION_PREFIX}{int(time.time() * 1000)}_{secrets.token_hex(3)}"


def is_local_session_id(session_id: Optional[str]) -> bool:
    """True for ids minted by generate_local_session_id()."""
    return bool(session_id) and str(session_id).startswith(LOCAL_SESSION_PREFIX)


def parse_index(value, field: str, optional: bool = False, upper: int = 10_000) -> Optional[int]:
    """Parse a non-negative integer index strictly.

    Accepts ints and decimal digit strings (JSON object keys). Rejects
    booleans, floats, negatives and anything above `upper`.

    Raises:
        ValueError: If the value is not a valid index
    """
    if value is None:
        if optional:
            return None
        raise ValueError(f"{field} is required")
    if isinstance(value, bool):
        raise ValueError(f"{field} must be an integer, got {value!r}")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        parsed = int(value.strip())
    else:
        raise ValueError(f"{field} must be an integer, got {value!r}")
    if parsed < 0 or parsed > upper:
        raise ValueError(f"{field} out of range: {parsed}")
    return parsed


def format_duration(seconds: int) -> str:
    """Format seconds into human-readable duration.

    Returns:
        Formatted string like "1h01m01s" or "25m30s"
    """
    if not seconds or seconds <= 0:
        return "0s"
    h = seconds // 3600
    m = (seconds % 3600) // 60
    s = seconds % 60
    if h > 0:
        return f"{h}h{m:02d}m{s:02d}s"
    if m > 0:
        return f"{m}m{s:02d}s"
    return f"{s}s"
