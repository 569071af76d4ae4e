from __future__ import annotations

from typing import Any

import msgspec
from fastapi import FastAPI, Request, Response
from fastapi.exception_handlers import http_exception_handler as _http_exception_handler
from fastapi.exception_handlers import request_validation_exception_handler as _request_validation_exception_handler
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import ClientDisconnect

from common.core.app_error import AppException, Errors
from common.utils.utils import get_logger

logger = get_logger()


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # pyright: ignore
        logger.warning("Validation error", path=request.url.path, request=await _get_request_json(request), errors=exc.errors())
        return await _request_validation_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> Response:  # pyright: ignore
        # Only log 5xx errors as exceptions with full stack traces
        # 4xx errors (like 404) are client errors, not server errors - log as warnings
        if exc.status_code >= 500:
            logger.exception("HTTP error", request=await _get_request_json(request), exc_info=exc)
        else:
            logger.warning(
                "HTTP client error",
                status_code=exc.status_code,
                detail=exc.detail,
                path=request.url.path,
            )
        return await _http_exception_handler(request, exc)

    @app.exception_handler(AppException)
    async def app_error_exception_handler(request: Request, exc: AppException) -> JSONResponse:  # pyright: ignore
        logger.exception("App error", request=await _get_request_json(request), exc_info=exc)
        return app_error_response(exc)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pyright: ignore
        logger.exception("Unhandled exception", request=await _get_request_json(request), exc_info=exc)
        if isinstance(exc, AppException):
            return app_error_response(exc)
        return app_error_response(Errors.Generic.INTERNAL_ERROR.create(cause=exc))


def app_error_response(exc: AppException) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status or 500, content=exc.details.to_dict(mode="json"))


async def _get_request_json(request: Request) -> dict[str, Any] | None:
    try:
        body = await request.body()
        return msgspec.json.decode(body) if body else None
    except (msgspec.DecodeError, ClientDisconnect):
        return None
