"""Relative period strings ("15m", "24h", "7d") to bounded durations."""

from __future__ import annotations

import re

DEFAULT_PERIOD_SEC = 86400
MAX_PERIOD_SEC = 30 * 86400

UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}

_PERIOD_RE = re.compile(r"(\d+)([smhd])")


def period_seconds(period: str | None) -> int:
    """Resolve `<n><unit>` to seconds, capped at 30 days.

    Anything absent or malformed falls back to 24 hours; this never raises.
    """
    if not period or not isinstance(period, str):
        return DEFAULT_PERIOD_SEC
    m = _PERIOD_RE.fullmatch(period)
    if not m:
        return DEFAULT_PERIOD_SEC
    n = int(m.group(1))
    if n <= 0:
        return DEFAULT_PERIOD_SEC
    return min(n * UNIT_SECONDS[m.group(2)], MAX_PERIOD_SEC)


def cutoff_for(period: str | None, now: int) -> int:
    return int(now) - period_seconds(period)
