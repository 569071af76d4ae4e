"""Middleware for logging HTTP requests and responses."""

import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from common.utils.utils import get_logger

logger = get_logger()

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging HTTP requests and responses.
    Logs request details, response status, and timing information.
    """

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        # Reuse the caller's request ID when there is one
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        client_host = request.client.host if request.client else "unknown"
        request_path = request.url.path
        request_method = request.method

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            logger.debug(
                f"Request started: {request_method} {request_path}",
                type="request_started",
                client_ip=client_host,
                method=request_method,
                path=request_path,
                query_params=str(request.query_params),
            )

            start_time = time.perf_counter()
            try:
                response = await call_next(request)
            except Exception as e:
                logger.error(
                    f"Request failed: {request_method} {request_path}",
                    type="request_failed",
                    method=request_method,
                    path=request_path,
                    error=str(e),
                    process_time_ms=_elapsed_ms(start_time),
                    exc_info=True,
                )
                raise

            response_log_data = {
                "type": "request_completed",
                "method": request_method,
                "path": request_path,
                "status_code": response.status_code,
                "process_time_ms": _elapsed_ms(start_time),
            }
            message = f"Request completed: {request_method} {request_path} - {response.status_code}"
            if response.status_code >= 500:
                logger.error(message, **response_log_data)
            elif response.status_code >= 400:
                logger.warning(message, **response_log_data)
            elif request_method == "GET":
                # GET requests are typically probes and polling
                logger.debug(message, **response_log_data)
            else:
                logger.info(message, **response_log_data)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _elapsed_ms(start_time: float) -> int:
    return int(round((time.perf_counter() - start_time) * 1000))
