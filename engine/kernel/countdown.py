"""Countdown arithmetic for countdown elements."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime


@dataclass(frozen=True)
class TimeLeft:
    days: int
    hours: int
    minutes: int
    seconds: int
    expired: bool


ZERO = TimeLeft(0, 0, 0, 0, expired=True)


def parse_target(target: str | None) -> datetime | None:
    """Parse an ISO date/datetime. Naive values are taken as UTC."""
    if not target:
        return None
    try:
        parsed = datetime.fromisoformat(target.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def time_left(target: str | None, now: datetime | None = None) -> TimeLeft:
    """Whole days/hours/minutes/seconds until `target`. Past or invalid targets give zeros."""
    when = parse_target(target)
    if when is None:
        return ZERO
    now = now or datetime.now(UTC)
    remaining = int((when - now).total_seconds())
    if remaining <= 0:
        return ZERO
    days, rest = divmod(remaining, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    return TimeLeft(days, hours, minutes, seconds, expired=False)
