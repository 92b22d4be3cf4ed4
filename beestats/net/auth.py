"""Header checks: user scoping key plus static shared secrets."""

from __future__ import annotations

import hmac

from aiohttp import web

from beestats.net.errors import ApiError

USER_KEY_HEADER = "x-user-key"
CLIENT_KEY_HEADER = "x-client-key"
API_KEY_HEADER = "x-api-key"


def _matches(given: str | None, expected: str) -> bool:
    if given is None:
        return False
    return hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


def _user_key(request: web.Request) -> str:
    user_key = request.headers.get(USER_KEY_HEADER)
    if not user_key:
        raise ApiError(400, "x-user-key required")
    return user_key


def check_client_key(request: web.Request) -> None:
    """Read secret, enforced only once CLIENT_KEY is changed from its placeholder."""
    cfg = request.app["config"]
    if not cfg.read_key_enforced:
        return
    if not _matches(request.headers.get(CLIENT_KEY_HEADER), cfg.client_key):
        raise ApiError(401, "unauthorized")


def require_read(request: web.Request) -> str:
    user_key = _user_key(request)
    check_client_key(request)
    return user_key


def require_write(request: web.Request) -> str:
    user_key = _user_key(request)
    if not _matches(request.headers.get(API_KEY_HEADER), request.app["config"].api_key):
        raise ApiError(401, "unauthorized")
    return user_key
