"""
HealthyMeal Logging Middleware
Structured logging with request tracking and sensitive value masking
"""

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
import structlog
import time
import uuid
import re
from typing import Any, Dict

logger = structlog.get_logger()

MASK = "***MASKED***"

# Keys whose values never reach the logs
SENSITIVE_KEYS = {
    "authorization", "cookie", "x-api-key", "x-auth-token",
    "api_key", "apikey", "access_token", "refresh_token", "token",
    "password", "secret",
}

_BEARER_RE = re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/=:]+", re.IGNORECASE)


def mask_sensitive_data(data: Any) -> Any:
    """Return a copy of ``data`` with credentials replaced by a mask"""
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            if isinstance(key, str) and key.lower() in SENSITIVE_KEYS:
                masked[key] = MASK
            else:
                masked[key] = mask_sensitive_data(value)
        return masked
    if isinstance(data, (list, tuple)):
        return [mask_sensitive_data(item) for item in data]
    if isinstance(data, str):
        return _BEARER_RE.sub(lambda m: m.group(1) + MASK, data)
    return data


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Logging middleware that provides:
    - Request/response logging with unique IDs
    - Masked request headers
    - Status-dependent log level
    """

    def __init__(self, app):
        super().__init__(app)

        # Paths to exclude from detailed logging
        self.exclude_paths = {"/api/v1/health", "/favicon.ico"}

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        if any(request.url.path.startswith(path) for path in self.exclude_paths):
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else "unknown",
            headers=mask_sensitive_data(dict(request.headers)),
            event_type="request_start",
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                process_time=round(time.time() - start_time, 4),
                error=str(e),
                error_type=type(e).__name__,
                event_type="request_error",
            )
            raise

        process_time = time.time() - start_time
        logger.log(
            self._determine_log_level(response.status_code),
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time=round(process_time, 4),
            event_type="request_complete",
        )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(round(process_time, 4))
        return response

    def _determine_log_level(self, status_code: int) -> int:
        if status_code >= 500:
            return 40  # ERROR
        elif status_code >= 400:
            return 30  # WARNING
        return 20  # INFO


def log_business_event(event: str, data: Dict[str, Any] = None):
    """Log business events for analytics"""
    logger.info(
        "Business event",
        event_name=event,
        data=mask_sensitive_data(data or {}),
        event_type="business_event",
    )
