"""
Ingest Gateway Utilities
Shared utilities for logging, request tracking and body reading.
"""

import time
import uuid
from typing import Optional

import orjson
import structlog
from fastapi import Request
from fastapi.responses import PlainTextResponse

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.processors.JSONRenderer(serializer=orjson.dumps)
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.BytesLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

DEFAULT_MAX_BODY_BYTES = 5 * 1024 * 1024


class PayloadTooLarge(Exception):
    """Request body exceeded the configured ceiling."""

    def __init__(self, limit: int):
        super().__init__(f"request body exceeds {limit} bytes")
        self.limit = limit


def generate_request_id() -> str:
    """Generate unique request ID."""
    return str(uuid.uuid4())


class RequestContextMiddleware:
    """Middleware to inject request_id into all logs."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            request_id = generate_request_id()
            scope["request_id"] = request_id
            structlog.contextvars.clear_contextvars()
            structlog.contextvars.bind_contextvars(request_id=request_id)

        await self.app(scope, receive, send)


async def read_body(request: Request, max_bytes: int = DEFAULT_MAX_BODY_BYTES) -> bytes:
    """
    Read the full request body, refusing anything above max_bytes.

    Raises:
        PayloadTooLarge: declared or streamed length exceeds the ceiling
    """
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > max_bytes:
        raise PayloadTooLarge(max_bytes)

    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > max_bytes:
            raise PayloadTooLarge(max_bytes)
        chunks.append(chunk)
    return b"".join(chunks)


def client_address(request: Request) -> Optional[str]:
    """Source address as seen by the ASGI server."""
    return request.client.host if request.client else None


def text_response(status_code: int, body: str = "") -> PlainTextResponse:
    """Plain-text response used by every endpoint."""
    return PlainTextResponse(content=body, status_code=status_code)


class LatencyTracker:
    """Track request latency."""

    def __init__(self):
        self.start_time = None

    def start(self):
        """Start timing."""
        self.start_time = time.perf_counter()

    def elapsed_ms(self) -> float:
        """Get elapsed time in milliseconds."""
        if self.start_time is None:
            return 0.0
        return (time.perf_counter() - self.start_time) * 1000


def log_request(
    request_id: str,
    endpoint: str,
    status_code: int,
    latency_ms: float,
    client_ip: Optional[str] = None,
    body_bytes: Optional[int] = None,
):
    """
    Log structured request information.

    Args:
        request_id: Unique request identifier
        endpoint: Route that handled the request
        status_code: HTTP status returned to the caller
        latency_ms: Request latency in milliseconds
        client_ip: Caller address, if known
        body_bytes: Size of the received body
    """
    log_data = {
        "request_id": request_id,
        "endpoint": endpoint,
        "status_code": status_code,
        "latency_ms": round(latency_ms, 2),
    }

    if client_ip:
        log_data["client_ip"] = client_ip
    if body_bytes is not None:
        log_data["body_bytes"] = body_bytes

    if status_code < 400:
        logger.info("request_completed", **log_data)
    else:
        logger.warning("request_failed", **log_data)
