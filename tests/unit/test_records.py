from datetime import datetime, timezone

from payload_codec import parse_json
from records import (
    RawRequest,
    RequestMeta,
    build_error_record,
    build_telemetry_record,
    utc_timestamp,
)

FIXED = datetime(2026, 3, 4, 5, 6, 7, 891000, tzinfo=timezone.utc)


def _raw(body=b"{}", headers=None, client_ip="203.0.113.7"):
    return RawRequest.from_parts(body, headers or {}, client_ip)


def test_timestamp_format_matches_iso_millis_z():
    assert utc_timestamp(FIXED) == "2026-03-04T05:06:07.891Z"


def test_raw_request_lowercases_headers_and_reads_encoding():
    raw = _raw(headers={"Content-Encoding": "gzip", "User-Agent": "UA/1.0"})
    assert raw.content_encoding == "gzip"
    assert raw.headers["user-agent"] == "UA/1.0"


def test_raw_request_missing_client_falls_back_to_unknown():
    assert _raw(client_ip=None).client_ip == "unknown"


def test_telemetry_record_copies_selected_headers():
    raw = _raw(
        headers={
            "user-agent": "Mozilla/5.0",
            "referer": "https://example.test/page",
            "accept-language": "en-US,en;q=0.9",
            "cookie": "secret=1",
        }
    )
    record = build_telemetry_record({"tz": "UTC"}, RequestMeta.from_request(raw), now=FIXED)

    assert record.to_dict() == {
        "timestamp": "2026-03-04T05:06:07.891Z",
        "clientIp": "203.0.113.7",
        "userAgent": "Mozilla/5.0",
        "referrer": "https://example.test/page",
        "acceptLanguage": "en-US,en;q=0.9",
        "collectedData": {"tz": "UTC"},
    }


def test_telemetry_record_omits_absent_headers_but_keeps_null_data():
    record = build_telemetry_record(None, RequestMeta.from_request(_raw()), now=FIXED)
    data = record.to_dict()
    assert "userAgent" not in data
    assert "referrer" not in data
    assert "acceptLanguage" not in data
    assert data["collectedData"] is None


def test_error_record_with_parsed_body_has_error_only():
    body = b'{"message": "TypeError: x is undefined"}'
    record = build_error_record(parse_json(body), RequestMeta.from_request(_raw(body)), raw_body=body)
    data = record.to_dict()
    assert data["error"] == {"message": "TypeError: x is undefined"}
    assert "rawBody" not in data


def test_error_record_with_literal_null_keeps_error_key():
    record = build_error_record(parse_json(b"null"), RequestMeta.from_request(_raw(b"null")), raw_body=b"null")
    data = record.to_dict()
    assert "error" in data and data["error"] is None
    assert "rawBody" not in data


def test_error_record_with_unparseable_body_has_raw_body_only():
    body = b"Uncaught ReferenceError \xff"
    record = build_error_record(parse_json(body), RequestMeta.from_request(_raw(body)), raw_body=body)
    data = record.to_dict()
    assert "error" not in data
    assert data["rawBody"] == "Uncaught ReferenceError �"
