"""Windowed series shaping: backpack fill %, per-buff caps, day summaries."""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from typing import Any

from beestats.telemetry.protocol import HONEY_SOURCES, NECTAR_TYPES

Point = tuple[int, float]

BUFF_POINT_LIMIT = 200
TOKEN_POINT_LIMIT = 200


@dataclass
class UserSeries:
    """What a store hands back for one user and one cutoff (ascending by t)."""

    honey: list[Point] = field(default_factory=list)
    pollen: list[Point] = field(default_factory=list)
    backpack: list[Point] = field(default_factory=list)
    # Not window-filtered: percentages may need a capacity seen before the cutoff.
    backpack_capacity: list[Point] = field(default_factory=list)
    nectar: dict[str, list[Point]] = field(default_factory=dict)
    buffs: dict[str, list[Point]] = field(default_factory=dict)
    tokens: list[tuple[int, str]] = field(default_factory=list)
    honey_sources: dict[str, list[Point]] = field(default_factory=dict)
    current_honey: float = 0.0
    last_activity: int = 0
    username: str | None = None


def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def _points(series: list[Point]) -> list[dict[str, Any]]:
    return [{"t": t, "v": v} for t, v in series]


def backpack_points(backpack: list[Point], capacity: list[Point]) -> list[dict[str, Any]]:
    caps = sorted(capacity, key=lambda p: p[0])
    cap_times = [t for t, _ in caps]
    out = []
    for t, v in backpack:
        i = bisect.bisect_right(cap_times, t)
        pct = 0.0
        if i:
            c = caps[i - 1][1]
            if c > 0:
                pct = clamp(100.0 * v / c, 0.0, 100.0)
        out.append({"t": t, "v": v, "percent": pct})
    return out


def shape_stats(series: UserSeries) -> dict[str, Any]:
    tokens = series.tokens[-TOKEN_POINT_LIMIT:]
    token_counts: dict[str, int] = {}
    for _, tok in tokens:
        token_counts[tok] = token_counts.get(tok, 0) + 1

    sources = {src: _points(series.honey_sources.get(src, [])) for src in HONEY_SOURCES}
    source_totals = {src: sum(v for _, v in series.honey_sources.get(src, [])) for src in HONEY_SOURCES}

    return {
        "honey": _points(series.honey),
        "pollen": _points(series.pollen),
        "backpack": backpack_points(series.backpack, series.backpack_capacity),
        "nectar": {kind: _points(series.nectar.get(kind, [])) for kind in NECTAR_TYPES},
        "buffs": {name: _points(pts[-BUFF_POINT_LIMIT:]) for name, pts in series.buffs.items() if pts},
        "tokens": [{"t": t, "token": tok} for t, tok in tokens],
        "tokenCounts": token_counts,
        "honeySources": sources,
        "honeySourcesTotals": source_totals,
        "currentHoney": series.current_honey,
        "lastActivity": series.last_activity,
        "username": series.username,
    }


def day_summary(points: list[Point], day_start: int) -> dict[str, Any]:
    """Hourly honey buckets for one UTC day plus total and average hourly rate."""
    hourly = [0.0] * 24
    active = set()
    total = 0.0
    for t, v in points:
        hour = int((t - day_start) // 3600)
        if not 0 <= hour < 24:
            continue
        hourly[hour] += v
        active.add(hour)
        total += v
    rate = total / len(active) if active else 0.0
    return {
        "hourly": [{"hour": h, "honey": hourly[h]} for h in range(24)],
        "summary": {
            "total_honey": total,
            "avg_hourly_rate": rate,
            "active_hours": len(active),
            "samples": len(points),
        },
    }
