"""In-memory runtime state (fallback store).

Only touched from the event loop thread, so appends and prunes never interleave.
"""

from __future__ import annotations

from bisect import bisect_left, insort
from dataclasses import dataclass, field

from beestats.storage.result import MODE_MEMORY, StoreResult
from beestats.telemetry.identity import PlayerSession, public_id
from beestats.telemetry.protocol import Ingest
from beestats.telemetry.series import Point, UserSeries
from beestats.telemetry.sharing import SharedConfig

SIDE_SERIES_LIMIT = 400


@dataclass
class UserBucket:
    honey: list[Point] = field(default_factory=list)
    pollen: list[Point] = field(default_factory=list)
    backpack: list[Point] = field(default_factory=list)
    backpack_capacity: list[Point] = field(default_factory=list)
    nectar: dict[str, list[Point]] = field(default_factory=dict)
    buffs: dict[str, list[Point]] = field(default_factory=dict)
    tokens: list[tuple[int, str]] = field(default_factory=list)
    honey_sources: dict[str, list[Point]] = field(default_factory=dict)
    current_honey: float = 0.0
    total_honey: float = 0.0
    last_activity: int = 0
    username: str | None = None


def _time(p: tuple) -> int:
    return p[0]


# Every series is kept sorted by time so pruning and windowing are a bisect.
def _insert(series: list, point: tuple) -> None:
    insort(series, point, key=_time)


def _drop_before(series: list, cutoff: int, limit: int | None = None) -> None:
    i = bisect_left(series, cutoff, key=_time)
    if limit is not None:
        i = max(i, len(series) - limit)
    if i > 0:
        del series[:i]


def _window(series: list, cutoff: int) -> list:
    return series[bisect_left(series, cutoff, key=_time):]


class MemoryStore:
    def __init__(self, retention_sec: int = 30 * 86400):
        self.retention_sec = int(retention_sec)
        self._buckets: dict[str, UserBucket] = {}
        self._sessions: dict[str, PlayerSession] = {}
        self._configs: dict[str, SharedConfig] = {}

    def bucket(self, user_key: str) -> UserBucket:
        b = self._buckets.get(user_key)
        if b is None:
            b = UserBucket()
            self._buckets[user_key] = b
        return b

    def append(self, user_key: str, ingest: Ingest, now: int, session: PlayerSession | None = None) -> StoreResult:
        b = self.bucket(user_key)
        t = ingest.at

        for metric, v in ingest.scalar_samples():
            _insert(getattr(b, metric), (t, v))
        for kind, v in ingest.nectar.items():
            _insert(b.nectar.setdefault(kind, []), (t, v))
        for name, v in ingest.buffs.items():
            _insert(b.buffs.setdefault(name, []), (t, v))
        for tok in ingest.tokens:
            _insert(b.tokens, (t, tok))
        for src, v in ingest.honey_sources.items():
            _insert(b.honey_sources.setdefault(src, []), (t, v))

        if ingest.honey is not None:
            b.total_honey += ingest.honey
        if ingest.current_honey is not None:
            b.current_honey = ingest.current_honey
        if ingest.username is not None:
            b.username = ingest.username
        b.last_activity = t

        if session is not None:
            session.current_honey = b.current_honey
            if session.username is None:
                session.username = b.username
            self._sessions[session.public_id] = session

        self._prune(b, now)
        self._prune_sessions(now)
        return StoreResult.success(MODE_MEMORY)

    def _prune(self, b: UserBucket, now: int) -> None:
        cutoff = int(now) - self.retention_sec
        # Primary series are bounded by age only; side series also by count.
        for series in (b.honey, b.pollen, b.backpack, b.backpack_capacity, *b.nectar.values()):
            _drop_before(series, cutoff)
        for series in (b.tokens, *b.buffs.values(), *b.honey_sources.values()):
            _drop_before(series, cutoff, SIDE_SERIES_LIMIT)

    def _prune_sessions(self, now: int) -> None:
        # A session older than retention has no samples left to show.
        cutoff = int(now) - self.retention_sec
        for pid in [pid for pid, s in self._sessions.items() if s.last_seen < cutoff]:
            del self._sessions[pid]

    def read(self, user_key: str, cutoff: int) -> StoreResult:
        b = self.bucket(user_key)
        series = UserSeries(
            honey=_window(b.honey, cutoff),
            pollen=_window(b.pollen, cutoff),
            backpack=_window(b.backpack, cutoff),
            backpack_capacity=list(b.backpack_capacity),
            nectar={k: _window(v, cutoff) for k, v in b.nectar.items()},
            buffs={k: _window(v, cutoff) for k, v in b.buffs.items()},
            tokens=_window(b.tokens, cutoff),
            honey_sources={k: _window(v, cutoff) for k, v in b.honey_sources.items()},
            current_honey=b.current_honey,
            last_activity=b.last_activity,
            username=b.username,
        )
        return StoreResult.success(MODE_MEMORY, series)

    def online_sessions(self, since: int) -> StoreResult:
        live = [s for s in self._sessions.values() if s.last_seen >= since]
        return StoreResult.success(MODE_MEMORY, live)

    def find_user_key(self, pid: str) -> StoreResult:
        s = self._sessions.get(pid)
        if s is not None:
            return StoreResult.success(MODE_MEMORY, s.user_key)
        for user_key in self._buckets:
            if public_id(user_key) == pid:
                return StoreResult.success(MODE_MEMORY, user_key)
        return StoreResult.success(MODE_MEMORY, None)

    def put_config(self, shared: SharedConfig, encoded: str | None = None) -> StoreResult:
        self._configs[shared.key] = shared
        return StoreResult.success(MODE_MEMORY, shared)

    def get_config(self, key: str) -> StoreResult:
        return StoreResult.success(MODE_MEMORY, self._configs.get(key))
