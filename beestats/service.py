"""Request-level orchestration over the durable and in-memory stores."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any

from beestats.config import ServerConfig
from beestats.controls import ControlMailbox
from beestats.storage.memory import MemoryStore
from beestats.storage.result import MODE_DURABLE, MODE_FALLBACK, MODE_MEMORY, StoreResult
from beestats.storage.sql import LEADERBOARD_METRICS, SqlStore
from beestats.telemetry.identity import public_id, session_for
from beestats.telemetry.period import cutoff_for, period_seconds
from beestats.telemetry.protocol import Ingest
from beestats.telemetry.series import day_summary, shape_stats
from beestats.telemetry.sharing import SharedConfig, encode_payload, generate_key, valid_key

logger = logging.getLogger(__name__)

DEFAULT_LEADERBOARD_LIMIT = 10
MAX_LEADERBOARD_LIMIT = 100


class NotAvailable(Exception):
    """The operation needs the durable backend and none is configured."""


class BackendFailure(Exception):
    """The durable backend failed and there is no in-memory equivalent."""


def _limit(raw: Any) -> int:
    try:
        n = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_LEADERBOARD_LIMIT
    return max(1, min(MAX_LEADERBOARD_LIMIT, n))


def _points(series: list) -> list[dict[str, Any]]:
    return [{"t": t, "v": v} for t, v in series]


class StatsService:
    def __init__(self, config: ServerConfig):
        self.config = config
        self.start_time = time.time()
        self.clock = time.time

        self.memory = MemoryStore(retention_sec=config.retention_sec)
        url = config.sqlalchemy_url()
        self.sql = (
            SqlStore(url, pool_size=config.db_pool_size, retention_sec=config.retention_sec)
            if url
            else None
        )
        self.controls = ControlMailbox()

        # public id -> user key, filled on every write.
        self._public_ids: dict[str, str] = {}

    def now(self) -> int:
        return int(self.clock())

    @property
    def mode(self) -> str:
        return MODE_DURABLE if self.sql else MODE_MEMORY

    async def start(self) -> None:
        if not self.sql:
            return
        try:
            await asyncio.to_thread(self.sql.init)
        except Exception:
            # Stay in durable mode; each request falls back on its own.
            logger.exception("DB init failed, requests will fall back to memory")

    async def stop(self) -> None:
        if self.sql:
            self.sql.close()

    async def _durable_or_memory(self, op: str, *args) -> StoreResult:
        if self.sql is None:
            return getattr(self.memory, op)(*args)
        res = await asyncio.to_thread(getattr(self.sql, op), *args)
        if res.ok:
            return res
        fallback = getattr(self.memory, op)(*args)
        fallback.mode = MODE_FALLBACK
        return fallback

    async def _durable_only(self, what: str, op: str, *args) -> Any:
        if self.sql is None:
            raise NotAvailable(f"{what} requires a database")
        res = await asyncio.to_thread(getattr(self.sql, op), *args)
        if not res.ok:
            raise BackendFailure(f"{what} query failed")
        return res.value

    def _remember(self, user_key: str, pid: str | None = None) -> None:
        self._public_ids[public_id(user_key)] = user_key
        if pid:
            self._public_ids[pid] = user_key

    # Ingest / stats

    async def ingest(self, user_key: str, ingest: Ingest) -> str:
        now = self.now()
        session = session_for(user_key, ingest, now)
        self._remember(user_key, session.public_id if session else None)
        res = await self._durable_or_memory("append", user_key, ingest, now, session)
        return res.mode

    async def stats(self, user_key: str, period: str | None) -> dict[str, Any]:
        now = self.now()
        cutoff = max(cutoff_for(period, now), now - self.config.retention_sec)
        res = await self._durable_or_memory("read", user_key, cutoff)
        payload = shape_stats(res.value)
        payload["period"] = period_seconds(period)
        payload["mode"] = res.mode
        return payload

    async def history(self, user_key: str, date: str | None) -> dict[str, Any]:
        now = self.now()
        if date:
            day = datetime.strptime(date, "%Y-%m-%d").replace(tzinfo=timezone.utc)
        else:
            day = datetime.fromtimestamp(now, tz=timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        start = int(day.timestamp())
        end = start + 86400
        lo = max(start, now - self.config.retention_sec)

        series = await self._durable_only("history", "history", user_key, lo, end)
        return {
            "date": day.strftime("%Y-%m-%d"),
            "start": start,
            "end": end,
            "honey": _points(series["honey"]),
            "pollen": _points(series["pollen"]),
            **day_summary(series["honey"], start),
        }

    async def leaderboard(self, metric: str | None, limit: Any) -> dict[str, Any]:
        if metric not in LEADERBOARD_METRICS:
            metric = "total_honey"
        n = _limit(limit)
        since = self.now() - self.config.leaderboard_window_sec

        rows = await self._durable_only("leaderboard", "leaderboard", metric, since, n)
        entries = []
        for rank, row in enumerate(rows, start=1):
            self._remember(row["user_key"])
            entries.append(
                {
                    "rank": rank,
                    "publicId": public_id(row["user_key"]),
                    "username": row["username"],
                    "value": row["value"],
                }
            )
        return {"metric": metric, "limit": n, "leaderboard": entries}

    # Players

    async def players(self) -> dict[str, Any]:
        since = self.now() - self.config.online_timeout_sec
        res = await self._durable_or_memory("online_sessions", since)
        sessions = sorted(res.value, key=lambda s: (s.username or "").casefold())
        return {"players": [s.public_info() for s in sessions], "mode": res.mode}

    async def resolve_public_id(self, pid: str) -> str | None:
        user_key = self._public_ids.get(pid)
        if user_key:
            return user_key
        res = await self._durable_or_memory("find_user_key", pid)
        if res.value:
            self._public_ids[pid] = res.value
        return res.value

    async def player_stats(self, pid: str, period: str | None) -> dict[str, Any] | None:
        user_key = await self.resolve_public_id(pid)
        if user_key is None:
            return None
        payload = await self.stats(user_key, period)
        payload["publicId"] = pid
        return payload

    # Shared configs

    async def share_config(self, user_key: str, payload: dict[str, Any], key: Any = None) -> tuple[str, str]:
        encoded = encode_payload(payload)
        shared = SharedConfig(
            key=key if valid_key(key) else generate_key(),
            user_key=user_key,
            payload=payload,
            created_at=self.now(),
        )
        res = await self._durable_or_memory("put_config", shared, encoded)
        return shared.key, res.mode

    async def get_config(self, key: str) -> SharedConfig | None:
        res = await self._durable_or_memory("get_config", key)
        if res.value is None and res.mode == MODE_DURABLE:
            # Written to memory while the database was unreachable.
            return self.memory.get_config(key).value
        return res.value
