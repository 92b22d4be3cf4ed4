"""Shared config blobs: key format, generation and size bound."""

from __future__ import annotations

import json
import re
import secrets
from dataclasses import dataclass
from typing import Any

CONFIG_KEY_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789[]-"
CONFIG_KEY_RE = re.compile(r"[A-Z0-9\[\]-]{10,32}")
GENERATED_KEY_LEN = 16
MAX_CONFIG_BYTES = 256 * 1024


class ConfigTooLarge(Exception):
    pass


@dataclass
class SharedConfig:
    key: str
    user_key: str
    payload: dict[str, Any]
    created_at: int

    def public_info(self) -> dict[str, Any]:
        return {"key": self.key, "config": self.payload, "createdAt": self.created_at}


def valid_key(key: Any) -> bool:
    return isinstance(key, str) and CONFIG_KEY_RE.fullmatch(key) is not None


def generate_key(length: int = GENERATED_KEY_LEN) -> str:
    return "".join(secrets.choice(CONFIG_KEY_ALPHABET) for _ in range(length))


def encode_payload(payload: dict[str, Any]) -> str:
    text = json.dumps(payload, separators=(",", ":"))
    if len(text.encode("utf-8")) > MAX_CONFIG_BYTES:
        raise ConfigTooLarge(f"config exceeds {MAX_CONFIG_BYTES} bytes")
    return text
