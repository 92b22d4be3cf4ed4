"""Relational persistence for samples, sessions and shared configs.

MySQL (PyMySQL) in production, SQLite for local runs and tests. Every public
method runs in a single transaction and reports through a StoreResult instead
of raising, so the caller picks the fallback.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

import sqlalchemy as sa
from sqlalchemy.dialects import mysql

from beestats.storage.result import MODE_DURABLE, StoreResult
from beestats.telemetry.identity import PlayerSession, public_id
from beestats.telemetry.protocol import HONEY_SOURCES, NECTAR_TYPES, Ingest
from beestats.telemetry.series import UserSeries
from beestats.telemetry.sharing import SharedConfig

logger = logging.getLogger(__name__)

SAMPLE_METRICS = ("honey", "pollen", "backpack", "backpack_capacity")
LEADERBOARD_METRICS = ("total_honey", "current_honey")

_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
_PAYLOAD = sa.Text().with_variant(mysql.MEDIUMTEXT(), "mysql")

metadata = sa.MetaData()


def _owner() -> sa.Column:
    return sa.Column(
        "user_key",
        sa.String(128),
        sa.ForeignKey("users.user_key", ondelete="CASCADE"),
        nullable=False,
    )


users = sa.Table(
    "users",
    metadata,
    sa.Column("user_key", sa.String(128), primary_key=True),
    sa.Column("created_at", sa.Integer, nullable=False, default=0),
    sa.Column("username", sa.String(64)),
    sa.Column("total_honey", sa.Double, nullable=False, default=0),
    sa.Column("current_honey", sa.Double, nullable=False, default=0),
    sa.Column("last_activity", sa.Integer, nullable=False, default=0),
)

samples = sa.Table(
    "samples",
    metadata,
    sa.Column("id", _ID, primary_key=True, autoincrement=True),
    _owner(),
    sa.Column("metric", sa.Enum(*SAMPLE_METRICS, name="sample_metric"), nullable=False),
    sa.Column("t", sa.Integer, nullable=False),
    sa.Column("v", sa.Double, nullable=False),
    sa.Index("idx_samples_user_time", "user_key", "t"),
)

nectar = sa.Table(
    "nectar",
    metadata,
    sa.Column("id", _ID, primary_key=True, autoincrement=True),
    _owner(),
    sa.Column("kind", sa.Enum(*NECTAR_TYPES, name="nectar_kind"), nullable=False),
    sa.Column("t", sa.Integer, nullable=False),
    sa.Column("v", sa.Double, nullable=False),
    sa.Index("idx_nectar_user_time", "user_key", "t"),
)

tokens = sa.Table(
    "tokens",
    metadata,
    sa.Column("id", _ID, primary_key=True, autoincrement=True),
    _owner(),
    sa.Column("t", sa.Integer, nullable=False),
    sa.Column("token", sa.String(255), nullable=False),
    sa.Index("idx_tokens_user_time", "user_key", "t"),
)

buffs = sa.Table(
    "buffs",
    metadata,
    sa.Column("id", _ID, primary_key=True, autoincrement=True),
    _owner(),
    sa.Column("name", sa.String(128), nullable=False),
    sa.Column("t", sa.Integer, nullable=False),
    sa.Column("v", sa.Double, nullable=False),
    sa.Index("idx_buffs_user_name_time", "user_key", "name", "t"),
)

honey_sources = sa.Table(
    "honey_sources",
    metadata,
    sa.Column("id", _ID, primary_key=True, autoincrement=True),
    _owner(),
    sa.Column("src", sa.Enum(*HONEY_SOURCES, name="honey_source"), nullable=False),
    sa.Column("t", sa.Integer, nullable=False),
    sa.Column("v", sa.Double, nullable=False),
    sa.Index("idx_sources_user_src_time", "user_key", "src", "t"),
)

shared_configs = sa.Table(
    "shared_configs",
    metadata,
    sa.Column("config_key", sa.String(32), primary_key=True),
    _owner(),
    sa.Column("payload", _PAYLOAD, nullable=False),
    sa.Column("created_at", sa.Integer, nullable=False),
)

player_sessions = sa.Table(
    "player_sessions",
    metadata,
    sa.Column("public_id", sa.String(16), primary_key=True),
    _owner(),
    sa.Column("player_id", sa.BigInteger),
    sa.Column("username", sa.String(64)),
    sa.Column("last_seen", sa.Integer, nullable=False),
    sa.Column("current_honey", sa.Double, nullable=False, default=0),
    sa.Index("idx_sessions_last_seen", "last_seen"),
)

TIMESERIES_TABLES = (samples, nectar, tokens, buffs, honey_sources)


def create_store_engine(url: str, pool_size: int = 5) -> sa.Engine:
    if url.startswith("sqlite"):
        # Calls arrive from worker threads.
        return sa.create_engine(url, connect_args={"check_same_thread": False})
    return sa.create_engine(
        url,
        pool_size=pool_size,
        max_overflow=0,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_timeout=10,
    )


class SqlStore:
    def __init__(self, url: str, pool_size: int = 5, retention_sec: int = 30 * 86400):
        self.retention_sec = int(retention_sec)
        self.engine = create_store_engine(url, pool_size=pool_size)

    def init(self) -> None:
        metadata.create_all(self.engine)
        logger.info("Durable store ready (%s)", self.engine.dialect.name)

    def close(self) -> None:
        self.engine.dispose()

    def _run(self, op: str, fn: Callable[..., Any], *args) -> StoreResult:
        try:
            with self.engine.begin() as conn:
                value = fn(conn, *args)
        except Exception as e:
            logger.exception("Durable %s failed", op)
            return StoreResult.failure(MODE_DURABLE, e)
        return StoreResult.success(MODE_DURABLE, value)

    # Writes

    def append(self, user_key: str, ingest: Ingest, now: int, session: PlayerSession | None = None) -> StoreResult:
        return self._run("append", self._append, user_key, ingest, int(now), session)

    def _ensure_user(self, conn: sa.Connection, user_key: str, now: int) -> None:
        stmt = (
            sa.insert(users)
            .prefix_with("IGNORE", dialect="mysql")
            .prefix_with("OR IGNORE", dialect="sqlite")
        )
        conn.execute(stmt, {"user_key": user_key, "created_at": now})

    def _append(self, conn: sa.Connection, user_key: str, ingest: Ingest, now: int, session: PlayerSession | None) -> None:
        self._ensure_user(conn, user_key, now)
        t = ingest.at

        rows = [{"user_key": user_key, "metric": m, "t": t, "v": v} for m, v in ingest.scalar_samples()]
        if rows:
            conn.execute(samples.insert(), rows)
        rows = [{"user_key": user_key, "kind": k, "t": t, "v": v} for k, v in ingest.nectar.items()]
        if rows:
            conn.execute(nectar.insert(), rows)
        rows = [{"user_key": user_key, "t": t, "token": tok} for tok in ingest.tokens]
        if rows:
            conn.execute(tokens.insert(), rows)
        rows = [{"user_key": user_key, "name": n, "t": t, "v": v} for n, v in ingest.buffs.items()]
        if rows:
            conn.execute(buffs.insert(), rows)
        rows = [{"user_key": user_key, "src": s, "t": t, "v": v} for s, v in ingest.honey_sources.items()]
        if rows:
            conn.execute(honey_sources.insert(), rows)

        values: dict[str, Any] = {"last_activity": t}
        if ingest.honey is not None:
            values["total_honey"] = users.c.total_honey + ingest.honey
        if ingest.current_honey is not None:
            values["current_honey"] = ingest.current_honey
        if ingest.username is not None:
            values["username"] = ingest.username
        conn.execute(users.update().where(users.c.user_key == user_key).values(**values))

        if session is not None:
            self._upsert_session(conn, session)
        self._prune(conn, user_key, now)

    def _upsert_session(self, conn: sa.Connection, session: PlayerSession) -> None:
        row = conn.execute(
            sa.select(users.c.current_honey, users.c.username).where(users.c.user_key == session.user_key)
        ).one()
        session.current_honey = row.current_honey
        if session.username is None:
            session.username = row.username
        values = {
            "user_key": session.user_key,
            "player_id": session.player_id,
            "username": session.username,
            "last_seen": session.last_seen,
            "current_honey": session.current_honey,
        }
        res = conn.execute(
            player_sessions.update().where(player_sessions.c.public_id == session.public_id).values(**values)
        )
        if res.rowcount == 0:
            conn.execute(player_sessions.insert().values(public_id=session.public_id, **values))

    def _prune(self, conn: sa.Connection, user_key: str, now: int) -> None:
        cutoff = now - self.retention_sec
        for tbl in TIMESERIES_TABLES:
            conn.execute(tbl.delete().where(tbl.c.user_key == user_key, tbl.c.t < cutoff))
        conn.execute(player_sessions.delete().where(player_sessions.c.last_seen < cutoff))

    def put_config(self, shared: SharedConfig, encoded: str) -> StoreResult:
        return self._run("put_config", self._put_config, shared, encoded)

    def _put_config(self, conn: sa.Connection, shared: SharedConfig, encoded: str) -> SharedConfig:
        self._ensure_user(conn, shared.user_key, shared.created_at)
        conn.execute(shared_configs.delete().where(shared_configs.c.config_key == shared.key))
        conn.execute(
            shared_configs.insert().values(
                config_key=shared.key,
                user_key=shared.user_key,
                payload=encoded,
                created_at=shared.created_at,
            )
        )
        return shared

    # Reads

    def read(self, user_key: str, cutoff: int) -> StoreResult:
        return self._run("read", self._read, user_key, int(cutoff))

    def _read(self, conn: sa.Connection, user_key: str, cutoff: int) -> UserSeries:
        series = UserSeries()

        q = (
            sa.select(samples.c.metric, samples.c.t, samples.c.v)
            .where(
                samples.c.user_key == user_key,
                sa.or_(samples.c.metric == "backpack_capacity", samples.c.t >= cutoff),
            )
            .order_by(samples.c.t, samples.c.id)
        )
        for row in conn.execute(q):
            if row.metric == "backpack_capacity":
                series.backpack_capacity.append((row.t, row.v))
            elif row.t >= cutoff:
                getattr(series, row.metric).append((row.t, row.v))

        q = (
            sa.select(nectar.c.kind, nectar.c.t, nectar.c.v)
            .where(nectar.c.user_key == user_key, nectar.c.t >= cutoff)
            .order_by(nectar.c.t, nectar.c.id)
        )
        for row in conn.execute(q):
            series.nectar.setdefault(row.kind, []).append((row.t, row.v))

        q = (
            sa.select(buffs.c.name, buffs.c.t, buffs.c.v)
            .where(buffs.c.user_key == user_key, buffs.c.t >= cutoff)
            .order_by(buffs.c.t, buffs.c.id)
        )
        for row in conn.execute(q):
            series.buffs.setdefault(row.name, []).append((row.t, row.v))

        q = (
            sa.select(tokens.c.t, tokens.c.token)
            .where(tokens.c.user_key == user_key, tokens.c.t >= cutoff)
            .order_by(tokens.c.t, tokens.c.id)
        )
        series.tokens = [(row.t, row.token) for row in conn.execute(q)]

        q = (
            sa.select(honey_sources.c.src, honey_sources.c.t, honey_sources.c.v)
            .where(honey_sources.c.user_key == user_key, honey_sources.c.t >= cutoff)
            .order_by(honey_sources.c.t, honey_sources.c.id)
        )
        for row in conn.execute(q):
            series.honey_sources.setdefault(row.src, []).append((row.t, row.v))

        user = conn.execute(
            sa.select(users.c.current_honey, users.c.last_activity, users.c.username).where(users.c.user_key == user_key)
        ).first()
        if user is not None:
            series.current_honey = user.current_honey or 0.0
            series.last_activity = user.last_activity or 0
            series.username = user.username
        return series

    def history(self, user_key: str, start: int, end: int) -> StoreResult:
        return self._run("history", self._history, user_key, int(start), int(end))

    def _history(self, conn: sa.Connection, user_key: str, start: int, end: int) -> dict[str, list]:
        q = (
            sa.select(samples.c.metric, samples.c.t, samples.c.v)
            .where(
                samples.c.user_key == user_key,
                samples.c.metric.in_(("honey", "pollen")),
                samples.c.t >= start,
                samples.c.t < end,
            )
            .order_by(samples.c.t, samples.c.id)
        )
        out: dict[str, list] = {"honey": [], "pollen": []}
        for row in conn.execute(q):
            out[row.metric].append((row.t, row.v))
        return out

    def leaderboard(self, metric: str, since: int, limit: int) -> StoreResult:
        return self._run("leaderboard", self._leaderboard, metric, int(since), int(limit))

    def _leaderboard(self, conn: sa.Connection, metric: str, since: int, limit: int) -> list[dict[str, Any]]:
        col = users.c[metric]
        q = (
            sa.select(users.c.user_key, users.c.username, col.label("value"))
            .where(users.c.last_activity >= since)
            .order_by(col.desc(), users.c.user_key)
            .limit(limit)
        )
        return [
            {"user_key": row.user_key, "username": row.username, "value": row.value}
            for row in conn.execute(q)
        ]

    def online_sessions(self, since: int) -> StoreResult:
        return self._run("online_sessions", self._online_sessions, int(since))

    def _online_sessions(self, conn: sa.Connection, since: int) -> list[PlayerSession]:
        q = sa.select(player_sessions).where(player_sessions.c.last_seen >= since)
        return [
            PlayerSession(
                public_id=row.public_id,
                user_key=row.user_key,
                player_id=row.player_id,
                username=row.username,
                last_seen=row.last_seen,
                current_honey=row.current_honey or 0.0,
            )
            for row in conn.execute(q)
        ]

    def find_user_key(self, pid: str) -> StoreResult:
        return self._run("find_user_key", self._find_user_key, pid)

    def _find_user_key(self, conn: sa.Connection, pid: str) -> str | None:
        key = conn.execute(
            sa.select(player_sessions.c.user_key).where(player_sessions.c.public_id == pid)
        ).scalar()
        if key is not None:
            return key
        # Ids derived from the user key alone have no session row.
        for (user_key,) in conn.execute(sa.select(users.c.user_key)):
            if public_id(user_key) == pid:
                return user_key
        return None

    def get_config(self, key: str) -> StoreResult:
        return self._run("get_config", self._get_config, key)

    def _get_config(self, conn: sa.Connection, key: str) -> SharedConfig | None:
        row = conn.execute(sa.select(shared_configs).where(shared_configs.c.config_key == key)).first()
        if row is None:
            return None
        return SharedConfig(
            key=row.config_key,
            user_key=row.user_key,
            payload=json.loads(row.payload),
            created_at=row.created_at,
        )
