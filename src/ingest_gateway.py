"""
Ingest Gateway - FastAPI Application
Telemetry and client-error ingestion into append-only JSONL logs.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic_settings import BaseSettings
from starlette.concurrency import run_in_threadpool

from ingestion import IngestionService
from jsonl_log import JsonlLogWriter
from records import RawRequest
from utils import (
    DEFAULT_MAX_BODY_BYTES,
    LatencyTracker,
    PayloadTooLarge,
    RequestContextMiddleware,
    client_address,
    log_request,
    read_body,
    text_response,
)

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Application settings from environment."""
    telemetry_log_path: str = "collected_fingerprints.log"
    error_log_path: str = "client_errors.log"

    gateway_host: str = "127.0.0.1"
    gateway_port: int = 3001
    gateway_log_level: str = "INFO"

    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    cors_allowed_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    class Config:
        env_file = "config/.env"
        env_file_encoding = "utf-8"


# Global state
settings = Settings()
ingestion_service: Optional[IngestionService] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    global ingestion_service

    # Startup
    telemetry_log = JsonlLogWriter(settings.telemetry_log_path)
    error_log = JsonlLogWriter(settings.error_log_path)
    ingestion_service = IngestionService(telemetry_log, error_log)

    logger.info(
        "gateway_startup",
        version="0.1.0",
        telemetry_log=str(Path(settings.telemetry_log_path).resolve()),
        error_log=str(Path(settings.error_log_path).resolve()),
        port=settings.gateway_port,
    )

    yield

    # Shutdown
    logger.info(
        "gateway_shutdown",
        telemetry_appended=telemetry_log.appended_count,
        telemetry_append_failures=telemetry_log.failure_count,
        errors_appended=error_log.appended_count,
        error_append_failures=error_log.failure_count,
    )


# Initialize FastAPI app
app = FastAPI(
    title="Ingest Gateway",
    description="Telemetry and client-error ingestion",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type", "User-Agent", "X-Requested-With", "Content-Encoding"],
)

# Add request context middleware
app.add_middleware(RequestContextMiddleware)


async def _dispatch(raw_request: Request, endpoint: str, handler):
    tracker = LatencyTracker()
    tracker.start()

    request_id = raw_request.scope.get("request_id", "unknown")
    client_ip = client_address(raw_request)

    try:
        body = await read_body(raw_request, settings.max_body_bytes)
    except PayloadTooLarge as e:
        logger.warning("payload_too_large", endpoint=endpoint, limit=e.limit, client_ip=client_ip)
        log_request(request_id, endpoint, 413, tracker.elapsed_ms(), client_ip)
        return text_response(413, "Payload Too Large")

    raw = RawRequest.from_parts(body, raw_request.headers, client_ip)
    result = await run_in_threadpool(handler, raw)

    log_request(request_id, endpoint, result.status_code, tracker.elapsed_ms(), client_ip, len(body))
    return text_response(result.status_code, result.body)


@app.post("/ingest_telemetry")
async def ingest_telemetry(raw_request: Request):
    """Accept a telemetry payload, optionally gzip-compressed."""
    return await _dispatch(raw_request, "ingest_telemetry", ingestion_service.ingest_telemetry)


@app.post("/log_error")
async def log_error(raw_request: Request):
    """Accept a client error report. Never rejects the body."""
    return await _dispatch(raw_request, "log_error", ingestion_service.log_error)


@app.get("/health")
async def health():
    """Health check endpoint."""
    result = IngestionService.health()
    return text_response(result.status_code, result.body)


def main():
    import uvicorn

    uvicorn.run(
        "ingest_gateway:app",
        host=settings.gateway_host,
        port=settings.gateway_port,
        log_level=settings.gateway_log_level.lower(),
        reload=False
    )


if __name__ == "__main__":
    main()
