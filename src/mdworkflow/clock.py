"""Clock capability used wherever the current time matters."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo

from mdworkflow.config.models import ProjectConfig

_DATE_TOKENS = re.compile(r"YYYY|YY|MM|DD|HH|mm|ss")
_TOKEN_MAP = {
    "YYYY": "%Y",
    "YY": "%y",
    "MM": "%m",
    "DD": "%d",
    "HH": "%H",
    "mm": "%M",
    "ss": "%S",
}


class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime:
        """Return the current timezone-aware instant."""
        ...


class SystemClock:
    """Clock backed by the system time, expressed in ``tz``."""

    def __init__(self, tz: tzinfo | None = None) -> None:
        self._tz = tz or timezone.utc

    def now(self) -> datetime:
        return datetime.now(self._tz)


class FixedClock:
    """Clock frozen at a single instant; used for deterministic runs."""

    def __init__(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        """Move the frozen instant."""
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant


def clock_from_config(config: ProjectConfig | None) -> Clock:
    """Build a clock honouring the config's testing overrides.

    Args:
        config: Resolved project configuration, if any.

    Returns:
        Clock: A ``FixedClock`` when ``override_current_date`` is set, otherwise a
            ``SystemClock`` in the override timezone (UTC by default).
    """
    overrides = config.system.testing if config else None
    tz: tzinfo = timezone.utc
    if overrides and overrides.override_timezone:
        tz = ZoneInfo(overrides.override_timezone)
    if overrides and overrides.override_current_date:
        return FixedClock(overrides.override_current_date.astimezone(tz))
    return SystemClock(tz)


def format_date(value: date | datetime, pattern: str) -> str:
    """Format ``value`` using ``YYYY``/``MM``/``DD``-style tokens."""
    return value.strftime(_DATE_TOKENS.sub(lambda match: _TOKEN_MAP[match.group(0)], pattern))


__all__ = ["Clock", "SystemClock", "FixedClock", "clock_from_config", "format_date"]
