"""Turning tracing events and span fields into breadcrumbs and events."""

from __future__ import annotations

import enum
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

TAGS_CONTEXT = "Tracing Tags"
LOCATION_CONTEXT = "Tracing Location"


class TraceLevel(enum.Enum):
    """The verbosity of a tracing event or span."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class Level(enum.Enum):
    """The severity of a breadcrumb or event."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


@dataclass(frozen=True)
class TraceMetadata:
    """Static description of where a tracing event or span comes from."""

    target: str
    level: TraceLevel
    name: str = "event"
    module_path: str | None = None
    file: str | None = None
    line: int | None = None


@dataclass
class TraceEvent:
    """A tracing event: its metadata and the fields recorded with it."""

    metadata: TraceMetadata
    fields: dict[str, Any] = field(default_factory=dict)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Breadcrumb:
    """A trail entry recorded ahead of an event."""

    ty: str = "default"
    category: str | None = None
    level: Level = Level.INFO
    message: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_now)


@dataclass
class ExceptionInfo:
    """One exception in a captured error chain."""

    ty: str
    value: str | None = None
    module: str | None = None


@dataclass
class Event:
    """An event to be sent to Sentry."""

    event_id: uuid.UUID = field(default_factory=uuid.uuid4)
    level: Level = Level.ERROR
    logger: str | None = None
    message: str | None = None
    exception: list[ExceptionInfo] = field(default_factory=list)
    contexts: dict[str, dict[str, Any]] = field(default_factory=dict)
    request: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=_now)


def _exception_info(error: BaseException) -> ExceptionInfo:
    cls = type(error)
    module = cls.__module__
    return ExceptionInfo(
        ty=cls.__qualname__,
        value=str(error) or None,
        module=None if module == "builtins" else module,
    )


def _exceptions_from_error(error: BaseException) -> list[ExceptionInfo]:
    """The error and its causes, root cause first."""
    chain: list[ExceptionInfo] = []
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        chain.append(_exception_info(current))
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None
    chain.reverse()
    return chain


@dataclass
class FieldVisitor:
    """Collects the fields of a tracing event or span."""

    json_values: dict[str, Any] = field(default_factory=dict)
    exceptions: list[ExceptionInfo] = field(default_factory=list)

    def record(self, name: str, value: Any) -> None:
        """Record one field; errors go to ``exceptions``, other values are kept as data."""
        if isinstance(value, BaseException):
            self.record_error(name, value)
        elif isinstance(value, (bool, int, str)):
            self.json_values[name] = value
        else:
            self.json_values[name] = repr(value)

    def record_error(self, name: str, error: BaseException) -> None:
        """Record an error field as exceptions, root cause first."""
        self.exceptions.extend(_exceptions_from_error(error))


def _visit(fields: Mapping[str, Any]) -> FieldVisitor:
    visitor = FieldVisitor()
    for name, value in fields.items():
        visitor.record(name, value)
    visitor.json_values = dict(sorted(visitor.json_values.items()))
    return visitor


def _as_message(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def convert_tracing_level(level: TraceLevel) -> Level:
    """Map a tracing level onto a Sentry level."""
    if level in (TraceLevel.TRACE, TraceLevel.DEBUG):
        return Level.DEBUG
    if level is TraceLevel.INFO:
        return Level.INFO
    if level is TraceLevel.WARN:
        return Level.WARNING
    return Level.ERROR


def _extract_event_data(event: TraceEvent) -> tuple[str | None, FieldVisitor]:
    visitor = _visit(event.fields)
    if "message" in visitor.json_values:
        raw = visitor.json_values.pop("message")
    else:
        # Events for instrumented errors carry their text in the "error" field.
        raw = visitor.json_values.pop("error", None)
    return _as_message(raw), visitor


def extract_span_data(fields: Mapping[str, Any]) -> tuple[str | None, dict[str, Any]]:
    """The message of a span, if any, and its remaining fields."""
    visitor = _visit(fields)
    message = _as_message(visitor.json_values.pop("message", None))
    return message, visitor.json_values


def breadcrumb_from_event(event: TraceEvent) -> Breadcrumb:
    """A log breadcrumb for a tracing event."""
    message, visitor = _extract_event_data(event)
    return Breadcrumb(
        ty="log",
        category=event.metadata.target,
        level=convert_tracing_level(event.metadata.level),
        message=message,
        data=visitor.json_values,
    )


def _contexts_from_event(
    event: TraceEvent, tags: dict[str, Any]
) -> dict[str, dict[str, Any]]:
    meta = event.metadata
    location = {
        key: value
        for key, value in (
            ("file", meta.file),
            ("line", meta.line),
            ("module_path", meta.module_path),
        )
        if value is not None
    }
    contexts: dict[str, dict[str, Any]] = {}
    if tags:
        contexts[TAGS_CONTEXT] = tags
    if location:
        contexts[LOCATION_CONTEXT] = location
    return contexts


def event_from_event(event: TraceEvent) -> Event:
    """A message event for a tracing event."""
    message, visitor = _extract_event_data(event)
    return Event(
        logger=event.metadata.target,
        level=convert_tracing_level(event.metadata.level),
        message=message,
        contexts=_contexts_from_event(event, visitor.json_values),
    )


def exception_from_event(event: TraceEvent) -> Event:
    """An exception event for a tracing event, carrying any recorded errors."""
    message, visitor = _extract_event_data(event)
    return Event(
        logger=event.metadata.target,
        level=convert_tracing_level(event.metadata.level),
        message=message,
        exception=visitor.exceptions,
        contexts=_contexts_from_event(event, visitor.json_values),
    )