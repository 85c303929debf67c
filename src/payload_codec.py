"""
Ingest Gateway Payload Codec
Turns raw request bodies (gzip or plain) into parsed JSON values.
"""

import gzip
import zlib
from typing import Any, Optional, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field


class FailureKind:
    """Decode failure classes."""

    INVALID_COMPRESSION = "invalid-compression"
    INVALID_JSON = "invalid-json"


class DecodeFailure(BaseModel):
    """Classified inability to turn raw bytes into a JSON value."""

    model_config = ConfigDict(frozen=True)

    kind: str = Field(..., pattern="^(invalid-compression|invalid-json)$")
    compressed: bool = False
    empty_body: bool = False
    detail: str = ""
    # Diagnostics only; never persisted.
    raw: bytes = Field(default=b"", exclude=True, repr=False)


DecodeResult = Union[Any, DecodeFailure]


def parse_json(data: bytes, compressed: bool = False) -> DecodeResult:
    """
    Parse UTF-8 JSON bytes, classifying any failure as invalid-json.

    A value that orjson reads but cannot write back (nesting past its
    serializer's depth limit) is also invalid-json, so every accepted value
    can be appended to a log.
    """
    try:
        value = orjson.loads(data)
        # Records hold the payload one level below the top-level object.
        orjson.dumps([value])
    except (orjson.JSONDecodeError, orjson.JSONEncodeError) as e:
        return DecodeFailure(
            kind=FailureKind.INVALID_JSON,
            compressed=compressed,
            detail=str(e),
            raw=data,
        )
    return value


def decode(body: Optional[bytes], content_encoding: Optional[str] = None) -> DecodeResult:
    """
    Decode a request body into a JSON value.

    Args:
        body: Raw request bytes
        content_encoding: Value of the Content-Encoding header, if any

    Returns:
        The parsed JSON value, or a DecodeFailure describing why the body
        could not be decoded.
    """
    body = body or b""

    if content_encoding is not None and content_encoding.strip().lower() == "gzip":
        try:
            inflated = gzip.decompress(body)
        except (OSError, EOFError, zlib.error) as e:
            return DecodeFailure(
                kind=FailureKind.INVALID_COMPRESSION,
                compressed=True,
                detail=str(e) or type(e).__name__,
                raw=body,
            )
        return parse_json(inflated, compressed=True)

    if not body:
        return DecodeFailure(
            kind=FailureKind.INVALID_JSON,
            empty_body=True,
            detail="empty body",
        )

    return parse_json(body)
