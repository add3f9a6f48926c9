"""
common.middleware
~~~~~~~~~~~~~~~~~
Structured JSON request-logging middleware powered by structlog.

Binds a request id into structlog's context variables so every record
emitted while handling the request carries it, then logs one summary record.
Only the path is logged; query strings may carry filters with key names and
are left out.
"""
import time
import uuid

import structlog

logger = structlog.get_logger(__name__)


class StructuredLoggingMiddleware:
    """
    Log record fields:
        event       – "http_request"
        request_id  – ``X-Request-ID`` header, or a generated UUID
        method      – HTTP verb (GET, POST, …)
        path        – URL path without query string
        status      – HTTP response status code (int)
        duration_ms – Round-trip duration in milliseconds (float, 2 dp)
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.monotonic()
        response = self.get_response(request)
        duration_ms = round((time.monotonic() - start) * 1000, 2)

        logger.info(
            "http_request",
            method=request.method,
            path=request.path,
            status=response.status_code,
            duration_ms=duration_ms,
        )
        response["X-Request-ID"] = request_id
        return response
