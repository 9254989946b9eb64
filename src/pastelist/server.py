#!/usr/bin/env python3
"""Bundled remote authority for server sync.

A small FastAPI application serving the combined clipboard exchange and a
health check:

    POST /api/v1/clipboard/sync   (bearer token required)
    GET  /health

Bearer tokens map statically to user ids; each user has an isolated item
set. Every error is returned in the error envelope of pastelist.wire.

Usage:
    pastelist --serve --token alice=SECRET [--host HOST] [--port PORT]
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pastelist.models import utcnow
from pastelist.server_store import ServerStore
from pastelist.sync_config import API_PREFIX
from pastelist.wire import (
    HEALTH_PATH,
    SYNC_PATH,
    ErrorCode,
    SyncRequest,
    error_envelope,
    success_envelope,
)

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000


class ApiError(Exception):
    """Error rendered as an error envelope with the given status code."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: list[Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details or []


def _error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content=error_envelope(code, message, details)
    )


async def api_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, ApiError):
        raise exc
    logger.warning("API error %s on %s: %s", exc.code, request.url.path, exc.message)
    return _error_response(exc.status_code, exc.code, exc.message, exc.details)


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, RequestValidationError):
        raise exc
    details = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    logger.warning("Request validation failed on %s", request.url.path)
    return _error_response(400, ErrorCode.VALIDATION_ERROR, "Invalid request body", details)


async def http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, StarletteHTTPException):
        raise exc
    if exc.status_code == 404:
        return _error_response(404, ErrorCode.RESOURCE_NOT_FOUND, "Resource not found")
    return _error_response(exc.status_code, ErrorCode.VALIDATION_ERROR, str(exc.detail))


async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
    return _error_response(500, ErrorCode.INTERNAL_ERROR, "Internal server error")


def create_app(tokens: Mapping[str, str], store: ServerStore | None = None) -> FastAPI:
    """Build the authority application.

    Args:
        tokens: Mapping of bearer token to user id.
        store: Item store; a fresh in-memory store is created if omitted.

    Returns:
        The FastAPI application.
    """
    server_store = store if store is not None else ServerStore()
    app = FastAPI(title="pastelist sync server", version="1.0.0")
    app.state.store = server_store

    async def current_user(
        authorization: str | None = Header(default=None),
    ) -> str:
        if not authorization or not authorization.startswith("Bearer "):
            raise ApiError(401, ErrorCode.UNAUTHORIZED, "Missing bearer token")
        token = authorization[len("Bearer "):].strip()
        user_id = tokens.get(token)
        if user_id is None:
            raise ApiError(401, ErrorCode.TOKEN_INVALID, "Invalid or expired token")
        return user_id

    @app.get(HEALTH_PATH)
    async def health() -> dict[str, str]:
        return {"status": "ok", "timestamp": utcnow().isoformat()}

    @app.post(API_PREFIX + SYNC_PATH)
    async def sync(request: SyncRequest, user_id: str = Depends(current_user)) -> dict:
        if not request.device_id:
            raise ApiError(400, ErrorCode.VALIDATION_ERROR, "Missing device id")
        data = server_store.sync(user_id, request)
        return success_envelope(data.to_json(), "Sync completed")

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)
    return app


def run_server(tokens: Mapping[str, str], host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
    """Serve the authority with uvicorn until interrupted."""
    import uvicorn

    if not tokens:
        logger.warning("No tokens configured; every sync request will be rejected")
    logger.info("Serving sync authority on %s:%d", host, port)
    uvicorn.run(create_app(tokens), host=host, port=port, log_level="warning")
