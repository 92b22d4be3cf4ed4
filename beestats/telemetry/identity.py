"""Read-only public ids derived from write-capable user keys."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any

PUBLIC_ID_LEN = 16


def public_id(user_key: str, player_id: int | None = None) -> str:
    seed = user_key if player_id is None else f"{user_key}:{int(player_id)}"
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()[:PUBLIC_ID_LEN]


@dataclass
class PlayerSession:
    public_id: str
    user_key: str
    player_id: int | None
    username: str | None
    last_seen: int
    current_honey: float = 0.0

    def public_info(self) -> dict[str, Any]:
        return {
            "publicId": self.public_id,
            "username": self.username,
            "lastSeen": self.last_seen,
            "currentHoney": self.current_honey,
        }


def session_for(user_key: str, ingest, now: int) -> PlayerSession | None:
    """Session row for an ingest carrying identity fields, else None."""
    if not ingest.has_identity:
        return None
    return PlayerSession(
        public_id=public_id(user_key, ingest.player_id),
        user_key=user_key,
        player_id=ingest.player_id,
        username=ingest.username,
        last_seen=int(now),
        current_honey=ingest.current_honey or 0.0,
    )
