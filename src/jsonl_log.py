"""
Append-only JSONL log writer for ingested records.
"""

from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional, Union

import orjson
import structlog
from pydantic import BaseModel

logger = structlog.get_logger()


class AppendResult(BaseModel):
    """Outcome of a single append."""

    ok: bool
    path: str
    error: Optional[str] = None


class JsonlLogWriter:
    """Append records to one file as newline-delimited JSON."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = Lock()
        self.appended_count = 0
        self.failure_count = 0

    def append(self, record: Any) -> AppendResult:
        """Write a single record. Failures are returned, never raised."""
        payload: Dict[str, Any] = record.to_dict() if hasattr(record, "to_dict") else record

        try:
            line = orjson.dumps(payload) + b"\n"
        except TypeError as e:
            return self._failed(e)

        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "ab") as handle:
                    handle.write(line)
            except OSError as e:
                return self._failed(e)
            self.appended_count += 1

        return AppendResult(ok=True, path=str(self.path))

    def _failed(self, exc: Exception) -> AppendResult:
        self.failure_count += 1
        logger.error(
            "log_append_failed",
            path=str(self.path),
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return AppendResult(ok=False, path=str(self.path), error=str(exc))
