"""Datetime helpers."""

from __future__ import annotations

from datetime import datetime

import pendulum


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the catalog."""
    return pendulum.now("UTC").naive()


def to_naive_utc(value: datetime) -> datetime:
    return pendulum.instance(value).in_timezone("UTC").naive()


def parse_iso_datetime(value: str) -> datetime:
    return to_naive_utc(pendulum.parse(value))


def isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()
