"""Datetime helpers.

Rows carry timestamps as ISO-8601 strings so the same dict can travel to
the REST store, the SQL store and the JSON mirror unchanged.
"""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return current UTC time as an aware datetime."""
    return datetime.now(UTC)


def utcnow_iso() -> str:
    """Return current UTC time formatted for a row."""
    return utcnow().isoformat()
