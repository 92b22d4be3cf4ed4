"""HTTP entrypoint: telemetry ingest, stats queries, roster, configs, controls."""

from __future__ import annotations

import logging
import time
from typing import Any

from aiohttp import web

from beestats.config import ServerConfig
from beestats.net.auth import check_client_key, require_read, require_write
from beestats.net.errors import ApiError, error_middleware
from beestats.service import BackendFailure, NotAvailable, StatsService
from beestats.telemetry.protocol import Ingest, ProtocolError, finite
from beestats.telemetry.sharing import ConfigTooLarge

logger = logging.getLogger(__name__)


def _cors_headers(config: ServerConfig, origin: str | None) -> dict[str, str]:
    if not origin:
        return {}
    if config.cors_allow_all:
        return {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}
    if origin in config.cors_allowed_origins:
        return {"Access-Control-Allow-Origin": origin, "Vary": "Origin"}
    return {}


@web.middleware
async def cors_middleware(request: web.Request, handler):
    if request.method == "OPTIONS":
        origin = request.headers.get("Origin")
        headers = {
            **_cors_headers(request.app["config"], origin),
            "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type,x-user-key,x-api-key,x-client-key",
            "Access-Control-Max-Age": "86400",
        }
        return web.Response(status=204, headers=headers)

    resp = await handler(request)
    for k, v in _cors_headers(request.app["config"], request.headers.get("Origin")).items():
        resp.headers[k] = v
    return resp


async def _json_body(request: web.Request) -> Any:
    if not request.can_read_body:
        return {}
    try:
        return await request.json()
    except ValueError:
        return {}


def create_app(config: ServerConfig) -> web.Application:
    app = web.Application(
        middlewares=[cors_middleware, error_middleware],
        client_max_size=config.max_body_bytes,
    )
    svc = StatsService(config)

    app["config"] = config
    app["svc"] = svc

    async def on_startup(_: web.Application):
        await svc.start()
        logger.info("Bee stats backend ready (%s)", svc.mode)

    async def on_cleanup(_: web.Application):
        await svc.stop()

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)

    async def root(_: web.Request):
        return web.json_response(
            {
                "ok": True,
                "service": "beestats",
                "serverVersion": config.server_version,
                "mode": svc.mode,
                "endpoints": {
                    "health": "/health",
                    "stats": "/api/stats",
                    "history": "/api/history",
                    "leaderboard": "/api/leaderboard",
                    "players": "/api/players",
                    "playerStats": "/api/player/{publicId}/stats",
                    "ingest": "/api/ingest",
                    "configs": "/api/configs",
                    "controls": "/api/controls",
                },
            }
        )

    async def health(_: web.Request):
        return web.json_response(
            {
                "ok": True,
                "mode": svc.mode,
                "uptimeSec": time.time() - svc.start_time,
                "serverVersion": config.server_version,
            }
        )

    async def stats(request: web.Request):
        user_key = require_read(request)
        return web.json_response(await svc.stats(user_key, request.query.get("period")))

    async def history(request: web.Request):
        user_key = require_read(request)
        try:
            payload = await svc.history(user_key, request.query.get("date"))
        except ValueError:
            raise ApiError(400, "date must be YYYY-MM-DD")
        except NotAvailable as e:
            raise ApiError(501, str(e))
        except BackendFailure as e:
            raise ApiError(503, str(e))
        return web.json_response(payload)

    async def leaderboard(request: web.Request):
        check_client_key(request)
        try:
            payload = await svc.leaderboard(request.query.get("metric"), request.query.get("limit"))
        except NotAvailable as e:
            raise ApiError(501, str(e))
        except BackendFailure as e:
            raise ApiError(503, str(e))
        return web.json_response(payload)

    async def players(request: web.Request):
        if not config.read_key_enforced:
            raise ApiError(403, "players endpoint disabled")
        check_client_key(request)
        return web.json_response(await svc.players())

    async def player_stats(request: web.Request):
        check_client_key(request)
        pid = request.match_info["public_id"]
        payload = await svc.player_stats(pid, request.query.get("period"))
        if payload is None:
            raise ApiError(404, "player not found")
        return web.json_response(payload)

    async def ingest(request: web.Request):
        user_key = require_write(request)
        body = await _json_body(request)
        try:
            parsed = Ingest.parse(body, now=svc.now())
        except ProtocolError as e:
            raise ApiError(400, str(e))
        mode = await svc.ingest(user_key, parsed)
        return web.json_response({"ok": True, "mode": mode})

    async def share_config(request: web.Request):
        user_key = require_write(request)
        body = await _json_body(request)
        payload = body.get("config") if isinstance(body, dict) else None
        if not isinstance(payload, dict):
            raise ApiError(400, "config object required")
        try:
            key, mode = await svc.share_config(user_key, payload, body.get("key"))
        except ConfigTooLarge as e:
            raise ApiError(413, str(e))
        return web.json_response({"ok": True, "key": key, "mode": mode})

    async def get_config(request: web.Request):
        shared = await svc.get_config(request.match_info["key"])
        if shared is None:
            raise ApiError(404, "config not found")
        return web.json_response(shared.public_info())

    async def set_control_state(request: web.Request):
        user_key = require_write(request)
        body = await _json_body(request)
        state = body.get("state") if isinstance(body, dict) else None
        if not state:
            raise ApiError(400, "state required")
        at = finite(body.get("at"))
        svc.controls.set_state(user_key, state, svc.now() if at is None else int(at))
        return web.json_response({"ok": True})

    async def get_control_state(request: web.Request):
        user_key = require_read(request)
        return web.json_response(svc.controls.get_state(user_key, svc.now()))

    async def push_commands(request: web.Request):
        user_key = require_read(request)
        body = await _json_body(request)
        commands = body.get("commands") if isinstance(body, dict) else None
        if not isinstance(commands, list) or not commands:
            raise ApiError(400, "commands array required")
        queued = svc.controls.push_commands(user_key, commands, svc.now())
        return web.json_response({"ok": True, "queued": queued})

    async def drain_commands(request: web.Request):
        user_key = require_write(request)
        return web.json_response({"commands": svc.controls.drain(user_key)})

    async def preflight(_: web.Request):
        return web.Response(status=204)

    app.router.add_get("/", root)
    app.router.add_get("/health", health)
    app.router.add_get("/api/stats", stats)
    app.router.add_get("/api/history", history)
    app.router.add_get("/api/leaderboard", leaderboard)
    app.router.add_get("/api/players", players)
    app.router.add_get("/api/player/{public_id}/stats", player_stats)
    app.router.add_post("/api/ingest", ingest)
    app.router.add_post("/api/configs", share_config)
    app.router.add_get("/api/configs/{key}", get_config)
    app.router.add_post("/api/controls/state", set_control_state)
    app.router.add_get("/api/controls/state", get_control_state)
    app.router.add_post("/api/controls/commands", push_commands)
    app.router.add_get("/api/controls/commands", drain_commands)
    app.router.add_route("OPTIONS", "/{tail:.*}", preflight)

    return app


def main() -> None:
    config = ServerConfig.from_env()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, config.log_level, logging.INFO),
    )
    app = create_app(config)
    logger.info("Bee stats backend listening on :%d (%s)", config.port, app["svc"].mode)
    web.run_app(app, host=config.host, port=config.port, print=None)


if __name__ == "__main__":
    main()
