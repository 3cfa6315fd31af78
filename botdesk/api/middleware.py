import time
import os
from fastapi import Request, HTTPException, status
from starlette.middleware.base import BaseHTTPMiddleware

from ..core.error_handling import ErrorHandler, ErrorContext
from ..core.exceptions import RateLimitError
from ..core.logging import logger
from ..core.rate_limiter import classify_route


def client_address(request: Request) -> str:
    return request.client.host if request.client else "anonymous"


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        request_id = os.urandom(8).hex()
        request.state.request_id = request_id
        client_host = client_address(request)

        logger.request(
            operation="Incoming Request",
            request_id=request_id,
            client_host=client_host,
            method=request.method,
            url=str(request.url.path)
        )

        try:
            response = await call_next(request)
        except HTTPException as e:
            error = e.detail.get("error") if isinstance(e.detail, dict) else e.detail
            logger.error(
                f"HTTP Exception: {error}",
                request_id=request_id,
                client_host=client_host,
                http_status_code=e.status_code
            )
            raise e
        except Exception as e:
            logger.error(
                f"Unexpected error: {type(e).__name__}",
                request_id=request_id,
                client_host=client_host,
                http_status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
            )
            raise e

        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)

        logger.response(
            operation="Outgoing Response",
            request_id=request_id,
            status_code=response.status_code,
            processing_time_ms=round(process_time * 1000),
            client_host=client_host
        )

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Applies the per-route-class limiter stored on ``app.state.rate_limiter``.

    Exempt paths and non-API paths pass straight through. Over-quota requests
    get an immediate 429 and never reach the route.
    """

    async def dispatch(self, request: Request, call_next):
        route_class = classify_route(request.method, request.url.path)
        if route_class is None:
            return await call_next(request)

        client_host = client_address(request)
        try:
            remaining = request.app.state.rate_limiter.check(route_class, client_host)
        except RateLimitError as e:
            context = ErrorContext(
                request_id=getattr(request.state, "request_id", None),
                client_host=client_host,
                path=request.url.path,
                route_class=route_class
            )
            return ErrorHandler.rate_limit_response(e, context)

        response = await call_next(request)
        if remaining >= 0:
            response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
