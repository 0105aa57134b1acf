"""
contract-governance — run-scoped structured logging

File: src/contract_governance/observability/logging.py

Purpose
- Write every record of a governance run, whether it came from stdlib
  ``logging`` or from ``structlog``, as one JSON object per line under
  ``<log_dir>/<run_id>/``.

Functional requirements
- Correlation fields bound with :func:`correlation_scope` are captured on the
  emitting thread and written as top-level keys.
- ``extra`` values land under ``fields``; secret-looking keys and inline
  credentials are masked before anything reaches a sink.
- Emitting never blocks; records that overflow the queue are counted.

Non-functional requirements
- Library modules only call ``logging.getLogger(__name__)`` or
  ``structlog.get_logger(__name__)``; handlers are installed here, once per run.
"""

from __future__ import annotations

import atexit
import copy
import json
import logging
import logging.handlers
import math
import queue
import re
import sys
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

CORRELATION_KEYS: Final[tuple[str, ...]] = (
    "run_id",
    "trace_id",
    "operation_key",
    "spec_key",
    "capability_key",
)
REDACTED: Final[str] = "***REDACTED***"

_SECRET_KEY_RE: Final = re.compile(
    r"(?i)(secret|token|passw(or)?d|api[_-]?key|authorization|credential|cookie|private[_-]?key)"
)
_INLINE_SECRET_RE: Final = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)(\s*[:=]\s*)[^\s,;]+"
)
_BEARER_RE: Final = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/=-]+")

_RECORD_ATTRS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName", "correlation"}

_Pairs = tuple[tuple[str, str], ...]
_correlation: ContextVar[_Pairs] = ContextVar("contract_governance_correlation", default=())

_session_lock = threading.Lock()
_active_session: LogSession | None = None
_atexit_hooked = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    run_id: str
    base_log_dir: Path | str = Path("logs")
    logger_name: str = "contract_governance"
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = "governance.jsonl"
    log_to_stdout: bool = False
    redactor: LogRedactor | None = None
    route_structlog: bool = True


# ---------------------------------------------------------------------------
# Correlation context
# ---------------------------------------------------------------------------


def get_correlation_context() -> dict[str, str]:
    return dict(_correlation.get())


def set_correlation_fields(**fields: str | None) -> Token[_Pairs]:
    """Bind correlation fields for the current context; ``None`` or blank unbinds."""

    unknown = sorted(set(fields) - set(CORRELATION_KEYS))
    if unknown:
        raise ValueError(f"unknown correlation field {unknown[0]!r}")
    current = get_correlation_context()
    for key, value in fields.items():
        text = value.strip() if value is not None else ""
        if text:
            current[key] = text
        else:
            current.pop(key, None)
    return _correlation.set(tuple(sorted(current.items())))


def reset_correlation_fields(token: Token[_Pairs]) -> None:
    _correlation.reset(token)


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    token = set_correlation_fields(**fields)
    try:
        yield
    finally:
        reset_correlation_fields(token)


# ---------------------------------------------------------------------------
# Redaction and JSON shaping
# ---------------------------------------------------------------------------


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Mask values under secret-looking keys and inline credentials in text."""

    if isinstance(value, str):
        masked = _BEARER_RE.sub(f"Bearer {REDACTED}", value)
        return _INLINE_SECRET_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", masked)
    if isinstance(value, list):
        return [default_log_redactor(item) for item in value]
    if isinstance(value, dict):
        return {
            key: REDACTED if _SECRET_KEY_RE.search(key) else default_log_redactor(item)
            for key, item in value.items()
        }
    return value


def _no_redaction(value: JSONValue) -> JSONValue:
    return value


def _to_json(value: object) -> JSONValue:
    if value is None or isinstance(value, bool | int | str):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, datetime):
        aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return aware.astimezone(UTC).isoformat().replace("+00:00", "Z")
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_to_json(item) for item in value]
    if isinstance(value, set | frozenset):
        return [_to_json(item) for item in sorted(value, key=repr)]
    return repr(value)


class JsonLineFormatter(logging.Formatter):
    """Render a record as a single sorted-key JSON object."""

    def __init__(self, *, run_id: str, redactor: LogRedactor) -> None:
        super().__init__()
        self._run_id = run_id
        self._redactor = redactor

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        line: dict[str, JSONValue] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": self._redactor(record.getMessage()),
        }
        line.update(self._correlation(record))

        extras = {
            key: _to_json(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in CORRELATION_KEYS and not key.startswith("_")
        }
        if extras:
            line["fields"] = self._redactor(extras)

        exception = record.exc_text
        if not exception and record.exc_info:
            exception = self.formatException(record.exc_info)
        if exception:
            line["exception"] = self._redactor(exception)
        return json.dumps(line, sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    def _correlation(self, record: logging.LogRecord) -> dict[str, str]:
        context = {"run_id": self._run_id}
        captured = getattr(record, "correlation", None)
        if isinstance(captured, Mapping):
            context.update(captured)
        for key in CORRELATION_KEYS:
            value = getattr(record, key, None)
            if isinstance(value, str) and value:
                context[key] = value
        return context


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class _ContextQueueHandler(logging.handlers.QueueHandler):
    def __init__(self, records: queue.Queue[Any]) -> None:
        super().__init__(records)
        self.dropped = 0
        self._drop_lock = threading.Lock()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Freeze message and traceback; the listener thread sees another context.
        prepared = copy.copy(record)
        prepared.message = record.getMessage()
        prepared.msg = prepared.message
        prepared.args = None
        if record.exc_info and not record.exc_text:
            prepared.exc_text = logging.Formatter().formatException(record.exc_info)
        prepared.exc_info = None
        prepared.correlation = get_correlation_context()
        return prepared

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._drop_lock:
                self.dropped += 1


class LogSession:
    """An active run log: a queue handler on the logger feeding the sinks."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        run_id: str,
        log_path: Path,
        queue_handler: _ContextQueueHandler,
        listener: logging.handlers.QueueListener,
        sinks: tuple[logging.Handler, ...],
    ) -> None:
        self.logger = logger
        self.run_id = run_id
        self.log_path = log_path
        self._queue_handler = queue_handler
        self._listener = listener
        self._sinks = sinks
        self._close_lock = threading.Lock()
        self._closed = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Detach from the logger, drain the queue and close every sink."""

        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self.logger.removeHandler(self._queue_handler)
        self._listener.stop()
        for sink in self._sinks:
            sink.close()


def setup_structured_logging(config: LoggingConfig) -> LogSession:
    """Install JSON-lines logging for one run, replacing any active session."""

    global _active_session, _atexit_hooked

    run_id = _non_empty(config.run_id, "run_id")
    logger_name = _non_empty(config.logger_name, "logger_name")
    filename = _non_empty(config.log_filename, "log_filename")
    if Path(filename).name != filename:
        raise ValueError("log_filename must be a bare file name")
    if isinstance(config.queue_size, bool) or not isinstance(config.queue_size, int):
        raise ValueError("queue_size must be an integer")
    if config.queue_size <= 0:
        raise ValueError("queue_size must be positive")
    level = _level(config.level)

    shutdown_logging()

    log_path = Path(config.base_log_dir) / run_id / filename
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = JsonLineFormatter(
        run_id=run_id, redactor=config.redactor or default_log_redactor
    )
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stdout:
        sinks.append(logging.StreamHandler(sys.stdout))
    for sink in sinks:
        sink.setFormatter(formatter)

    records: queue.Queue[Any] = queue.Queue(maxsize=config.queue_size)
    queue_handler = _ContextQueueHandler(records)
    listener = logging.handlers.QueueListener(records, *sinks)

    logger = logging.getLogger(logger_name)
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False
    logger.addHandler(queue_handler)
    listener.start()

    if config.route_structlog:
        configure_structlog()

    session = LogSession(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        queue_handler=queue_handler,
        listener=listener,
        sinks=tuple(sinks),
    )
    with _session_lock:
        _active_session = session
        if not _atexit_hooked:
            atexit.register(shutdown_logging)
            _atexit_hooked = True
    return session


def setup_logging(
    observability: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
) -> LogSession:
    """Install run logging from the ``[observability]`` config section."""

    section = dict(observability or {})
    level = section.get("log_level", "INFO")
    directory = log_dir if log_dir is not None else section.get("log_dir", "logs")
    return setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=directory if isinstance(directory, Path | str) else "logs",
            level=level if isinstance(level, int | str) else "INFO",
            log_to_stdout=bool(section.get("log_to_stdout", False)),
            redactor=None if section.get("redact_secrets", True) else _no_redaction,
        )
    )


def configure_structlog() -> None:
    """
    Send structlog events through stdlib ``logging``.

    Bound key/value pairs travel as ``extra``, so decision logs land in the
    run file with correlation keys at the top level and the rest in ``fields``.
    """

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def active_log_session() -> LogSession | None:
    with _session_lock:
        return _active_session


def shutdown_logging(session: LogSession | None = None) -> None:
    """Close ``session`` (default: the active one); safe to call repeatedly."""

    global _active_session

    with _session_lock:
        target = session if session is not None else _active_session
        if target is _active_session:
            _active_session = None
    if target is not None:
        target.close()


def _non_empty(value: object, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} must be a non-empty string")
    return value.strip()


def _level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(str(value).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unsupported logging level {value!r}")
    return resolved


__all__ = [
    "CORRELATION_KEYS",
    "JSONScalar",
    "JSONValue",
    "JsonLineFormatter",
    "LogRedactor",
    "LogSession",
    "LoggingConfig",
    "REDACTED",
    "active_log_session",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "get_correlation_context",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
