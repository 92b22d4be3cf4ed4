"""Outcome of one storage operation, tagged with the mode that served it."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

MODE_DURABLE = "mysql"
MODE_MEMORY = "memory"
MODE_FALLBACK = "memory-fallback"


@dataclass
class StoreResult:
    ok: bool
    mode: str
    value: Any = None
    error: Exception | None = None

    @classmethod
    def success(cls, mode: str, value: Any = None) -> "StoreResult":
        return cls(ok=True, mode=mode, value=value)

    @classmethod
    def failure(cls, mode: str, error: Exception) -> "StoreResult":
        return cls(ok=False, mode=mode, error=error)
