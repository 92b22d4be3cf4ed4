"""Ingest body schema + validation.

Wire format (every field optional, at least one metric required):
  {"honey": 1200, "pollen": 340, "backpack": 9000, "backpackCapacity": 12000,
   "currentHoney": 5.1e9, "nectar": {"comforting": 42.5}, "buffs": {"haste": 3},
   "tokens": ["Honey Mark"], "honeySources": {"convert": 800},
   "playerId": 123456, "username": "Bee", "at": 1700000000}
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

NECTAR_TYPES = ("comforting", "invigorating", "motivating", "refreshing", "satisfying")
HONEY_SOURCES = ("convert", "gather", "token", "other")

MAX_BUFF_NAME = 128
MAX_TOKEN_NAME = 255
MAX_USERNAME = 64


class ProtocolError(Exception):
    pass


def finite(v: Any) -> float | None:
    """Return `v` as a float when it is a real, finite JSON number."""
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return None
    try:
        f = float(v)
    except OverflowError:
        return None
    return f if math.isfinite(f) else None


def _numeric_map(data: Any, allowed: tuple[str, ...] | None = None, max_key: int = MAX_BUFF_NAME) -> dict[str, float]:
    out: dict[str, float] = {}
    if not isinstance(data, dict):
        return out
    for k, v in data.items():
        if not isinstance(k, str) or not k:
            continue
        if allowed is not None and k not in allowed:
            continue
        f = finite(v)
        if f is not None:
            out[k[:max_key]] = f
    return out


@dataclass
class Ingest:
    at: int
    honey: float | None = None
    pollen: float | None = None
    backpack: float | None = None
    backpack_capacity: float | None = None
    current_honey: float | None = None
    nectar: dict[str, float] = field(default_factory=dict)
    buffs: dict[str, float] = field(default_factory=dict)
    tokens: list[str] = field(default_factory=list)
    honey_sources: dict[str, float] = field(default_factory=dict)
    player_id: int | None = None
    username: str | None = None

    @property
    def has_metrics(self) -> bool:
        scalars = (self.honey, self.pollen, self.backpack, self.backpack_capacity, self.current_honey)
        if any(v is not None for v in scalars):
            return True
        return bool(self.nectar or self.buffs or self.tokens or self.honey_sources)

    @property
    def has_identity(self) -> bool:
        return self.player_id is not None or self.username is not None

    def scalar_samples(self) -> list[tuple[str, float]]:
        """(metric, value) pairs destined for the shared samples series."""
        out = []
        for metric, v in (
            ("honey", self.honey),
            ("pollen", self.pollen),
            ("backpack", self.backpack),
            ("backpack_capacity", self.backpack_capacity),
        ):
            if v is not None:
                out.append((metric, v))
        return out

    @classmethod
    def parse(cls, data: Any, now: int) -> "Ingest":
        if not isinstance(data, dict):
            data = {}

        at = finite(data.get("at"))
        t = int(math.floor(at)) if at is not None else int(now)

        tokens = []
        raw_tokens = data.get("tokens")
        if isinstance(raw_tokens, list):
            tokens = [tok[:MAX_TOKEN_NAME] for tok in raw_tokens if isinstance(tok, str) and tok]

        username = data.get("username")
        if isinstance(username, str) and username.strip():
            username = username.strip()[:MAX_USERNAME]
        else:
            username = None

        player_id = finite(data.get("playerId"))

        ingest = cls(
            at=t,
            honey=finite(data.get("honey")),
            pollen=finite(data.get("pollen")),
            backpack=finite(data.get("backpack")),
            backpack_capacity=finite(data.get("backpackCapacity")),
            current_honey=finite(data.get("currentHoney")),
            nectar=_numeric_map(data.get("nectar"), NECTAR_TYPES),
            buffs=_numeric_map(data.get("buffs")),
            tokens=tokens,
            honey_sources=_numeric_map(data.get("honeySources"), HONEY_SOURCES),
            player_id=int(player_id) if player_id is not None else None,
            username=username,
        )
        if not ingest.has_metrics:
            raise ProtocolError("no metrics provided")
        return ingest
