"""Common time utilities."""

from __future__ import annotations

import datetime as dt


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp suitable for DB defaults."""
    return dt.datetime.now(dt.UTC)


def parse_rpc_timestamp(value: str) -> dt.datetime:
    """Parse an RFC 3339 timestamp as reported by Soroban RPC.

    Raises
    ------
    ValueError
        If the value is not ISO-8601 or carries no offset.

    """
    parsed = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        msg = f"timestamp missing timezone: {value}"
        raise ValueError(msg)
    return parsed.astimezone(dt.UTC)
