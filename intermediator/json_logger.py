"""Newline-delimited JSON events for the sync commands.

Every event carries ``run_id``, ``phase``, ``status``, ``message`` and ``ts``
plus whatever context was bound or passed. Platform credentials never reach
the output: values under the keys in ``REDACTED_KEYS`` are masked at any
nesting depth.
"""
from __future__ import annotations

import json
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, Dict, Iterator, Optional

__all__ = ["JsonLogger", "get_logger", "log_event", "timed_event", "new_run_id"]

REDACTED_KEYS = frozenset({"senha", "api_secret", "x-secret", "password"})
REDACTED = "***"


def new_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S%f")


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: REDACTED if str(key).lower() in REDACTED_KEYS else _redact(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    return value


class _Sink:
    """Shared output state between a logger and the children it binds."""

    def __init__(self, stream: IO[str], log_file_path: str | None) -> None:
        self.stream = stream
        self.log_file_path = log_file_path
        self.file_handle: Optional[IO[str]] = None
        if log_file_path:
            path = Path(log_file_path).expanduser().resolve()
            path.parent.mkdir(parents=True, exist_ok=True)
            self.log_file_path = str(path)
            self.file_handle = open(path, "a", encoding="utf-8")
        self.closed = False

    def write(self, line: str) -> None:
        if self.closed:
            return
        self.stream.write(line + "\n")
        self.stream.flush()
        if self.file_handle:
            self.file_handle.write(line + "\n")
            self.file_handle.flush()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.file_handle:
            self.file_handle.close()
            self.file_handle = None


class JsonLogger:
    def __init__(
        self,
        run_id: Optional[str] = None,
        stream: IO[str] | None = None,
        *,
        log_file_path: str | None = None,
    ) -> None:
        self.run_id = run_id or new_run_id()
        self.context: Dict[str, Any] = {"run_id": self.run_id}
        self._sink = _Sink(stream or sys.stdout, log_file_path)

    @property
    def log_file_path(self) -> str | None:
        return self._sink.log_file_path

    @property
    def closed(self) -> bool:
        return self._sink.closed

    def bind(self, **context: Any) -> JsonLogger:
        """Child logger sharing this logger's outputs with extra fixed fields."""

        child = JsonLogger.__new__(JsonLogger)
        child.run_id = self.run_id
        child.context = {**self.context, **context}
        child._sink = self._sink
        return child

    def info(self, *, phase: str, status: str = "ok", message: str = "", **fields: Any) -> None:
        event = {**self.context, "phase": phase, "status": status, "message": message, **_redact(fields)}
        event.setdefault("ts", datetime.now(timezone.utc).isoformat())
        self._sink.write(json.dumps(event, default=str, ensure_ascii=False))

    def warn(self, *, phase: str, message: str, **fields: Any) -> None:
        self.info(phase=phase, status="warn", message=message, **fields)

    def error(self, *, phase: str, message: str, **fields: Any) -> None:
        self.info(phase=phase, status="error", message=message, **fields)

    def close(self) -> None:
        self._sink.close()


def get_logger(run_id: Optional[str] = None, *, log_file_path: str | None = None) -> JsonLogger:
    return JsonLogger(run_id=run_id, log_file_path=log_file_path)


def log_event(*, logger: JsonLogger, phase: str, status: str = "ok", message: str = "", **extras: Any) -> None:
    logger.info(phase=phase, status=status, message=message, **extras)


@contextmanager
def timed_event(*, logger: JsonLogger, phase: str, message: str = "", **fields: Any) -> Iterator[None]:
    """Log ``message`` with ``duration_ms`` once the block exits; errors are logged and re-raised."""

    start = time.perf_counter()
    try:
        yield
    except Exception as exc:
        logger.error(
            phase=phase,
            message=f"{message} failed: {exc}",
            duration_ms=int((time.perf_counter() - start) * 1000),
            exception=repr(exc),
            **fields,
        )
        raise
    logger.info(phase=phase, message=message, duration_ms=int((time.perf_counter() - start) * 1000), **fields)
