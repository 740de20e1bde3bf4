"""
Timestamp utilities for payloads coming back from the job service.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as du_parser


def parse_timestamp(raw: Any) -> Optional[datetime]:
    """
    Best-effort timestamp parsing.

    Accepts datetimes, ISO-8601 strings (with or without `Z`) and any
    format python-dateutil understands. Naive values are taken as UTC.

    Args:
        raw: Value from an external payload

    Returns:
        Aware datetime or None if unparseable
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        dt = raw
    elif isinstance(raw, str):
        try:
            dt = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
        except ValueError:
            try:
                dt = du_parser.parse(raw)
            except (ValueError, OverflowError):
                return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
