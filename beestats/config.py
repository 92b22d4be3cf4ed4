"""Secrets, storage selection, retention and limits."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import quote

DEFAULT_API_KEY = "replace-this-api-key"
DEFAULT_CLIENT_KEY = "replace-this-client-key"


@dataclass
class ServerConfig:
    server_version: str = "0.1.0"

    # Network
    host: str = "0.0.0.0"
    port: int = 3000
    cors_allow_all: bool = True
    cors_allowed_origins: list[str] = field(default_factory=list)
    max_body_bytes: int = 256 * 1024

    # Shared secrets. The write key is always checked; the read key only once
    # it has been changed from the placeholder.
    api_key: str = DEFAULT_API_KEY
    client_key: str = DEFAULT_CLIENT_KEY

    # Durable backend
    mysql_host: str | None = None
    mysql_port: int = 3306
    mysql_user: str | None = None
    mysql_password: str | None = None
    mysql_database: str | None = None
    database_url: str | None = None
    db_pool_size: int = 5

    # Retention / windows
    retention_sec: int = 30 * 86400
    online_timeout_sec: int = 120
    leaderboard_window_sec: int = 7 * 86400

    log_level: str = "INFO"

    @property
    def durable_enabled(self) -> bool:
        if self.database_url:
            return True
        return bool(self.mysql_host and self.mysql_user and self.mysql_password and self.mysql_database)

    @property
    def read_key_enforced(self) -> bool:
        return bool(self.client_key) and self.client_key != DEFAULT_CLIENT_KEY

    def sqlalchemy_url(self) -> str | None:
        if self.database_url:
            return self.database_url
        if not self.durable_enabled:
            return None
        return "mysql+pymysql://{user}:{password}@{host}:{port}/{db}?charset=utf8mb4".format(
            user=quote(self.mysql_user, safe=""),
            password=quote(self.mysql_password, safe=""),
            host=self.mysql_host,
            port=self.mysql_port,
            db=self.mysql_database,
        )

    @staticmethod
    def _parse_bool(v: str | None, default: bool) -> bool:
        if v is None:
            return default
        return v.strip().lower() in ("1", "true", "yes", "on")

    @staticmethod
    def _env(*names: str) -> str | None:
        for name in names:
            v = os.environ.get(name)
            if v:
                return v
        return None

    @classmethod
    def from_env(cls) -> "ServerConfig":
        cfg = cls()
        cfg.host = os.environ.get("HOST", cfg.host)
        cfg.port = int(os.environ.get("PORT", str(cfg.port)))
        cfg.cors_allow_all = cls._parse_bool(os.environ.get("CORS_ALLOW_ALL"), cfg.cors_allow_all)
        origins = os.environ.get("CORS_ORIGINS")
        if origins:
            cfg.cors_allowed_origins = [o.strip() for o in origins.split(",") if o.strip()]

        cfg.api_key = os.environ.get("API_KEY", cfg.api_key)
        cfg.client_key = os.environ.get("CLIENT_KEY", cfg.client_key)

        # Railway exposes both MYSQL_HOST and MYSQLHOST spellings.
        cfg.mysql_host = cls._env("MYSQL_HOST", "MYSQLHOST")
        cfg.mysql_user = cls._env("MYSQL_USER", "MYSQLUSER")
        cfg.mysql_password = cls._env("MYSQL_PASSWORD", "MYSQLPASSWORD")
        cfg.mysql_database = cls._env("MYSQL_DATABASE", "MYSQLDATABASE")
        port = cls._env("MYSQL_PORT", "MYSQLPORT")
        if port:
            try:
                cfg.mysql_port = int(port)
            except ValueError:
                pass
        cfg.database_url = os.environ.get("DATABASE_URL") or None
        if os.environ.get("DB_POOL_SIZE"):
            try:
                cfg.db_pool_size = max(1, int(os.environ.get("DB_POOL_SIZE")))
            except ValueError:
                pass

        cfg.log_level = os.environ.get("LOG_LEVEL", cfg.log_level).upper()
        return cfg
