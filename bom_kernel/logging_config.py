"""
Structured JSON logging for the BOM kernel.

Every record leaves the ``bom_kernel`` logger as one JSON object:

    {"ts": ..., "level": "WARNING", "logger": "bom_kernel.services.parts",
     "message": "part_operation_rejected", "operation": "transition",
     "correlation_id": ..., "actor_id": ..., "part_id": ...,
     "error_code": "INVALID_TRANSITION"}

``PartService`` binds the operation name, the acting user and the part
for the duration of each call, so every record written while that call
runs (service logs, audit writes, the final rejection) carries the same
correlation id.  Values are rendered the way audit payloads are: UUIDs
as strings, Decimals normalized, enums by value.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "describe_exception",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from bom_kernel.utils.hashing import json_default

ROOT_LOGGER = "bom_kernel"

CONTEXT_FIELDS = frozenset({
    "correlation_id",
    "operation",
    "actor_id",
    "part_id",
    "client_session_id",
    "request_path",
})

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("bom_log_context", default=_EMPTY)


class LogContext:
    """
    Request-scoped fields merged into every record.

    The whole context is one immutable mapping held in a ContextVar, so a
    binding made in one thread or task is never seen by another.  None
    values are dropped and everything else is stored as ``str``.
    """

    @staticmethod
    def _merge(fields: dict[str, Any]) -> Mapping[str, str]:
        unknown = set(fields) - CONTEXT_FIELDS
        if unknown:
            raise TypeError(f"Unknown log context field(s): {sorted(unknown)}")
        merged = dict(_context.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        return MappingProxyType(merged)

    @classmethod
    def set(cls, **fields: Any) -> None:
        _context.set(cls._merge(fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Add fields for the duration of the block; the outer context comes back on exit."""
        token = _context.set(cls._merge(fields))
        try:
            yield
        finally:
            _context.reset(token)


def describe_exception(exc: BaseException) -> dict[str, Any]:
    """
    Exception as a JSON-ready dict.

    Kernel errors contribute their ``code`` and the structured attributes
    they were raised with (part_id, from_status, path, ...).
    """
    described: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    code = getattr(exc, "code", None)
    if code is not None:
        described["code"] = code
        described.update(
            (k, v) for k, v in vars(exc).items()
            if not k.startswith("_") and k not in described
        )
    return described


# Attributes every LogRecord has; anything else arrived through ``extra``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _render(value: Any) -> Any:
    try:
        return json_default(value)
    except TypeError:
        return str(value)


class StructuredFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_context.get())
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload["error"] = describe_exception(record.exc_info[1])
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_render, ensure_ascii=False)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_handler: logging.Handler | None = None
_lock = threading.Lock()


def _coerce_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def configure_logging(
    *,
    level: int | str | None = None,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """
    Install the JSON handler on the ``bom_kernel`` logger.

    The handler is installed by the first call only (INFO unless a level
    is given).  Later calls leave the handler alone and change the level
    when one is passed, which lets a configuration file raise or lower
    verbosity after the engine has already configured logging.
    """
    global _handler
    kernel_logger = logging.getLogger(ROOT_LOGGER)
    with _lock:
        if _handler is None:
            _handler = handler or logging.StreamHandler(stream or sys.stderr)
            _handler.setFormatter(StructuredFormatter())
            kernel_logger.addHandler(_handler)
            kernel_logger.propagate = False
            if level is None:
                level = logging.INFO
        if level is not None:
            kernel_logger.setLevel(_coerce_level(level))
    return kernel_logger


def reset_logging() -> None:
    """Remove the installed handler and restore propagation.  Tests only."""
    global _handler
    kernel_logger = logging.getLogger(ROOT_LOGGER)
    with _lock:
        if _handler is not None:
            kernel_logger.removeHandler(_handler)
            _handler = None
    kernel_logger.setLevel(logging.NOTSET)
    kernel_logger.propagate = True
