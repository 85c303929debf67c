"""
Ingest Gateway Service
Maps one request to one decode -> build -> append sequence.

The telemetry path is strict: a payload that does not decode is rejected with
400 and nothing is written. The error-report path is lenient: it always
answers 200 and stores the raw body when it is not JSON, since the reporting
client is already failing and its report should not be lost.
"""

from typing import Optional

import structlog
from pydantic import BaseModel

from jsonl_log import AppendResult
from payload_codec import DecodeFailure, FailureKind, decode, parse_json
from records import (
    RawRequest,
    RequestMeta,
    build_error_record,
    build_telemetry_record,
)

logger = structlog.get_logger()

INVALID_GZIP_MESSAGE = "Bad Request: Invalid gzipped payload"
INVALID_PLAIN_MESSAGE = "Bad Request: Invalid uncompressed payload"
NO_PAYLOAD_MESSAGE = "Bad Request: No payload received"
HEALTH_MESSAGE = "Server is healthy and awaiting telemetry."


class EndpointResult(BaseModel):
    """HTTP-level outcome of an endpoint call."""

    status_code: int
    body: str = ""


def rejection_message(failure: DecodeFailure) -> str:
    """400 body for a telemetry decode failure."""
    if failure.compressed or failure.kind == FailureKind.INVALID_COMPRESSION:
        return INVALID_GZIP_MESSAGE
    if failure.empty_body:
        return NO_PAYLOAD_MESSAGE
    return INVALID_PLAIN_MESSAGE


class IngestionService:
    """Telemetry, client-error and health endpoint behaviour."""

    def __init__(self, telemetry_log, error_log):
        self.telemetry_log = telemetry_log
        self.error_log = error_log

    def ingest_telemetry(self, raw: RawRequest) -> EndpointResult:
        decoded = decode(raw.body, raw.content_encoding)
        if isinstance(decoded, DecodeFailure):
            logger.warning(
                "telemetry_decode_failed",
                client_ip=raw.client_ip,
                kind=decoded.kind,
                compressed=decoded.compressed,
                empty_body=decoded.empty_body,
                detail=decoded.detail,
            )
            return EndpointResult(status_code=400, body=rejection_message(decoded))

        record = build_telemetry_record(decoded, RequestMeta.from_request(raw))
        logger.info("telemetry_ingested", timestamp=record.timestamp, client_ip=record.client_ip)
        self._report(self.telemetry_log.append(record), "ingest_telemetry")
        return EndpointResult(status_code=200)

    def log_error(self, raw: RawRequest) -> EndpointResult:
        parsed = parse_json(raw.body)
        if isinstance(parsed, DecodeFailure):
            logger.warning("client_error_unparseable", client_ip=raw.client_ip, detail=parsed.detail)

        record = build_error_record(parsed, RequestMeta.from_request(raw), raw_body=raw.body)
        logger.warning("client_error_logged", timestamp=record.timestamp, client_ip=record.client_ip)
        self._report(self.error_log.append(record), "log_error")
        return EndpointResult(status_code=200)

    @staticmethod
    def health() -> EndpointResult:
        return EndpointResult(status_code=200, body=HEALTH_MESSAGE)

    def _report(self, result: Optional[AppendResult], endpoint: str) -> None:
        # Storage trouble is never surfaced to the submitter.
        if result is not None and not result.ok:
            logger.warning("append_failed", endpoint=endpoint, path=result.path, error=result.error)
