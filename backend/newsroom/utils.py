"""Utility helpers for identifiers and loosely typed form values."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional


def generate_id() -> str:
    """Generate an opaque primary key for new rows."""

    return uuid.uuid4().hex


def parse_instant(value: Any) -> Optional[datetime]:
    """Parse ``value`` into a ``datetime`` or return ``None`` when it is not one."""

    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        return None


def coerce_whole_number(value: Any) -> Optional[int]:
    """Return ``value`` as an ``int`` if it denotes a whole number."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        raw = value.strip()
        if raw.lstrip("-").isdigit():
            return int(raw)
    return None
