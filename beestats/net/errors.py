"""JSON error responses."""

from __future__ import annotations

import logging

from aiohttp import web

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = int(status)
        self.message = message


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except ApiError as e:
        if e.status >= 500:
            logger.warning("%s %s -> %d %s", request.method, request.path, e.status, e.message)
        return web.json_response({"error": e.message}, status=e.status)
