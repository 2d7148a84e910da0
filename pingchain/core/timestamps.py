"""Timestamp normalisation.

Records arrive with timestamps in several shapes: provider-native wrappers
(document-store Timestamp objects or their serialised ``seconds`` /
``nanoseconds`` form), native ``datetime``/``date`` values, and ISO-8601
strings. Everything downstream compares tz-aware UTC datetimes only.

An unrecognised shape falls back to "now" instead of raising, so one
malformed record never blocks classification of the rest.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

_WRAPPER_METHODS = ("to_datetime", "ToDatetime", "to_date", "toDate")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize(raw: Any) -> datetime:
    """Convert any supported timestamp representation to a UTC datetime."""
    if isinstance(raw, datetime):
        return as_utc(raw)
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day, tzinfo=timezone.utc)
    if isinstance(raw, str):
        parsed = _parse_iso(raw)
        if parsed is not None:
            return parsed
    elif isinstance(raw, Mapping):
        parsed = _from_seconds_mapping(raw)
        if parsed is not None:
            return parsed
    elif raw is not None:
        for name in _WRAPPER_METHODS:
            method = getattr(raw, name, None)
            if callable(method):
                try:
                    value = method()
                except Exception:
                    logger.debug("Timestamp wrapper %s.%s() failed", type(raw).__name__, name)
                    break
                if isinstance(value, datetime):
                    return as_utc(value)
                break

    logger.debug("Unrecognised timestamp %r, falling back to now", raw)
    return utcnow()


def _parse_iso(text: str) -> datetime | None:
    cleaned = text.strip()
    if not cleaned:
        return None
    if cleaned.endswith(("Z", "z")):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        return None


def _from_seconds_mapping(raw: Mapping) -> datetime | None:
    seconds = raw.get("seconds", raw.get("_seconds"))
    if seconds is None:
        return None
    nanos = raw.get("nanoseconds", raw.get("_nanoseconds", 0)) or 0
    try:
        return datetime.fromtimestamp(float(seconds) + float(nanos) / 1e9, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def hours_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 3600
