"""
Ingest Gateway Records
Immutable telemetry and client-error records enriched with request metadata.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from payload_codec import DecodeFailure, DecodeResult


class RawRequest(BaseModel):
    """One inbound request as delivered by the HTTP layer."""

    model_config = ConfigDict(frozen=True)

    body: bytes = b""
    content_encoding: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    client_ip: str = "unknown"

    @classmethod
    def from_parts(
        cls,
        body: bytes,
        headers: Mapping[str, str],
        client_ip: Optional[str],
    ) -> "RawRequest":
        lowered = {k.lower(): v for k, v in headers.items()}
        return cls(
            body=body,
            content_encoding=lowered.get("content-encoding"),
            headers=lowered,
            client_ip=client_ip or "unknown",
        )


class RequestMeta(BaseModel):
    """Request metadata copied onto every record."""

    model_config = ConfigDict(frozen=True)

    client_ip: str
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    accept_language: Optional[str] = None

    @classmethod
    def from_request(cls, raw: RawRequest) -> "RequestMeta":
        return cls(
            client_ip=raw.client_ip,
            user_agent=raw.headers.get("user-agent"),
            referrer=raw.headers.get("referer"),
            accept_language=raw.headers.get("accept-language"),
        )


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2026-01-01T00:00:00.000Z."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class TelemetryRecord(BaseModel):
    """A decoded telemetry submission."""

    model_config = ConfigDict(frozen=True)

    timestamp: str
    client_ip: str
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    accept_language: Optional[str] = None
    collected_data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON object written to the telemetry log. Absent headers are omitted."""
        data: Dict[str, Any] = {
            "timestamp": self.timestamp,
            "clientIp": self.client_ip,
        }
        if self.user_agent is not None:
            data["userAgent"] = self.user_agent
        if self.referrer is not None:
            data["referrer"] = self.referrer
        if self.accept_language is not None:
            data["acceptLanguage"] = self.accept_language
        data["collectedData"] = self.collected_data
        return data


class ErrorRecord(BaseModel):
    """A client-reported error. Carries either the parsed error or the raw body."""

    model_config = ConfigDict(frozen=True)

    timestamp: str
    client_ip: str
    error: Any = None
    raw_body: Optional[str] = None

    @property
    def parsed(self) -> bool:
        return self.raw_body is None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "timestamp": self.timestamp,
            "clientIp": self.client_ip,
        }
        if self.parsed:
            data["error"] = self.error
        else:
            data["rawBody"] = self.raw_body
        return data


def build_telemetry_record(
    payload: Any,
    meta: RequestMeta,
    now: Optional[datetime] = None,
) -> TelemetryRecord:
    return TelemetryRecord(
        timestamp=utc_timestamp(now),
        client_ip=meta.client_ip,
        user_agent=meta.user_agent,
        referrer=meta.referrer,
        accept_language=meta.accept_language,
        collected_data=payload,
    )


def build_error_record(
    decoded: DecodeResult,
    meta: RequestMeta,
    raw_body: bytes = b"",
    now: Optional[datetime] = None,
) -> ErrorRecord:
    """
    Build an error record from a parse attempt.

    Args:
        decoded: Parsed JSON value, or the DecodeFailure from the attempt
        meta: Request metadata
        raw_body: Original body; stored as text when parsing failed
        now: Override for the record timestamp
    """
    timestamp = utc_timestamp(now)
    if isinstance(decoded, DecodeFailure):
        text = (raw_body or decoded.raw).decode("utf-8", errors="replace")
        return ErrorRecord(timestamp=timestamp, client_ip=meta.client_ip, raw_body=text)
    return ErrorRecord(timestamp=timestamp, client_ip=meta.client_ip, error=decoded)
