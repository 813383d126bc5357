import hmac
import time
import uuid

import structlog
import structlog.contextvars
from config import settings
from fastapi import Request
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)

EXCLUDED_ENDPOINTS = ["/health", "/metrics", "/docs", "/redoc", "/openapi.json"]


async def structured_logging_middleware(request: Request, call_next):
    """Bind request context for every log line and log one line per request."""
    structlog.contextvars.clear_contextvars()
    start_time = time.perf_counter()

    correlation_id = request.headers.get("x-correlation-id") or str(uuid.uuid4())
    structlog.contextvars.bind_contextvars(
        correlation_id=correlation_id,
        operator=request.headers.get("x-operator"),
        remote_addr=request.client.host if request.client else None,
        request_path=request.url.path,
        request_method=request.method,
    )

    try:
        response = await call_next(request)
        elapsed = time.perf_counter() - start_time
        status_code = response.status_code

        log_event = logger.info if status_code < 400 else logger.warning
        log_event(
            "Request completed",
            status_code=status_code,
            processing_time_ms=round(elapsed * 1000, 2),
        )

        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Process-Time"] = f"{elapsed:.4f}s"
        return response

    except Exception:
        logger.exception(
            "Request failed with unhandled exception",
            processing_time_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        raise
    finally:
        structlog.contextvars.clear_contextvars()


async def api_key_middleware(request: Request, call_next):
    """Reject requests without the admin API key; does not log."""
    if request.url.path in EXCLUDED_ENDPOINTS:
        return await call_next(request)

    api_key = request.headers.get("x-api-key", "")
    if not api_key or not hmac.compare_digest(api_key, settings.api_key):
        return JSONResponse(
            status_code=401, content={"detail": "Invalid or missing API key"}
        )

    return await call_next(request)
