"""Per-user control state + command mailbox (process memory only)."""

from __future__ import annotations

from typing import Any

MAX_QUEUED_COMMANDS = 100


class ControlMailbox:
    def __init__(self, max_commands: int = MAX_QUEUED_COMMANDS):
        self.max_commands = int(max_commands)
        self._states: dict[str, dict[str, Any]] = {}
        self._commands: dict[str, list[dict[str, Any]]] = {}

    def set_state(self, user_key: str, state: Any, at: int) -> None:
        self._states[user_key] = {"state": state, "at": int(at)}

    def get_state(self, user_key: str, now: int) -> dict[str, Any]:
        entry = self._states.get(user_key)
        if entry is None:
            return {"state": None, "at": int(now)}
        return dict(entry)

    def push_commands(self, user_key: str, commands: list[Any], now: int) -> int:
        queue = self._commands.setdefault(user_key, [])
        for c in commands:
            cmd = dict(c) if isinstance(c, dict) else {"command": c}
            cmd["at"] = int(now)
            queue.append(cmd)
        # Oldest commands are dropped first.
        if len(queue) > self.max_commands:
            del queue[: len(queue) - self.max_commands]
        return len(queue)

    def drain(self, user_key: str) -> list[dict[str, Any]]:
        return self._commands.pop(user_key, [])
