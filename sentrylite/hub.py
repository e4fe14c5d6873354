"""Hubs, scopes and spans, plus a service wrapper binding a hub per request."""

from __future__ import annotations

import contextvars
import enum
import inspect
import uuid
from collections import deque
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

DEFAULT_MAX_BREADCRUMBS = 100

EventProcessor = Callable[[Any], Any]


class SpanStatus(enum.Enum):
    """The outcome recorded on a span or transaction."""

    OK = "ok"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    UNAUTHENTICATED = "unauthenticated"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    INVALID_ARGUMENT = "invalid_argument"
    UNIMPLEMENTED = "unimplemented"
    UNAVAILABLE = "unavailable"
    INTERNAL_ERROR = "internal_error"
    UNKNOWN_ERROR = "unknown_error"
    CANCELLED = "cancelled"
    ALREADY_EXISTS = "already_exists"
    FAILED_PRECONDITION = "failed_precondition"
    ABORTED = "aborted"
    OUT_OF_RANGE = "out_of_range"
    DATA_LOSS = "data_loss"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Span:
    """A timed operation; a span without a parent is a transaction."""

    def __init__(
        self,
        op: str,
        description: str | None = None,
        *,
        name: str | None = None,
        hub: Hub | None = None,
        parent: Span | None = None,
    ) -> None:
        self.op = op
        self.description = description
        self.name = name
        self.parent = parent
        self.hub = hub
        self.trace_id = parent.trace_id if parent is not None else uuid.uuid4().hex
        self.span_id = uuid.uuid4().hex[:16]
        self.data: dict[str, Any] = {}
        self.status: SpanStatus | None = None
        self.children: list[Span] = []
        self.start_timestamp = _now()
        self.timestamp: datetime | None = None

    @property
    def is_transaction(self) -> bool:
        return self.parent is None

    @property
    def finished(self) -> bool:
        return self.timestamp is not None

    def start_child(self, op: str, description: str | None) -> Span:
        """Start a child span within the same trace."""
        child = Span(op, description, hub=self.hub, parent=self)
        self.children.append(child)
        return child

    def set_data(self, key: str, value: Any) -> None:
        self.data[key] = value

    def set_status(self, status: SpanStatus) -> None:
        self.status = SpanStatus(status)

    def finish(self) -> None:
        """End the span; a finished transaction is recorded on its hub."""
        if self.finished:
            return
        self.timestamp = _now()
        if self.is_transaction and self.hub is not None:
            self.hub._sink.transactions.append(self)

    def __repr__(self) -> str:
        return f"Span(op={self.op!r}, description={self.description!r}, status={self.status})"


@dataclass
class _Sink:
    events: list[Any] = field(default_factory=list)
    transactions: list[Span] = field(default_factory=list)


_CURRENT: contextvars.ContextVar[Hub | None] = contextvars.ContextVar(
    "sentrylite_current_hub", default=None
)


class Hub:
    """Holds a scope (breadcrumbs, processors, active span) and receives events."""

    def __init__(self, max_breadcrumbs: int = DEFAULT_MAX_BREADCRUMBS) -> None:
        self._sink = _Sink()
        self.max_breadcrumbs = max_breadcrumbs
        self._breadcrumbs: deque[Any] = deque(maxlen=max_breadcrumbs)
        self._processors: list[EventProcessor] = []
        self.span: Span | None = None

    @classmethod
    def current(cls) -> Hub:
        """The hub bound to the running context, or the main hub."""
        hub = _CURRENT.get()
        return hub if hub is not None else _MAIN_HUB

    @classmethod
    def new_from_top(cls, other: Hub) -> Hub:
        """A hub sharing ``other``'s event sink with a copy of its scope."""
        hub = cls(other.max_breadcrumbs)
        hub._sink = other._sink
        hub._breadcrumbs.extend(other._breadcrumbs)
        hub._processors = list(other._processors)
        hub.span = other.span
        return hub

    @property
    def breadcrumbs(self) -> list[Any]:
        return list(self._breadcrumbs)

    @property
    def events(self) -> list[Any]:
        return list(self._sink.events)

    @property
    def transactions(self) -> list[Span]:
        return list(self._sink.transactions)

    @contextmanager
    def bind(self) -> Iterator[Hub]:
        """Make this hub current for the duration of the block."""
        token = _CURRENT.set(self)
        try:
            yield self
        finally:
            _CURRENT.reset(token)

    def run(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Call ``func`` with this hub bound as current."""
        with self.bind():
            return func(*args, **kwargs)

    def add_breadcrumb(self, breadcrumb: Any) -> None:
        """Record a breadcrumb, or the result of calling a breadcrumb factory."""
        if callable(breadcrumb):
            breadcrumb = breadcrumb()
        if breadcrumb is not None:
            self._breadcrumbs.append(breadcrumb)

    def add_event_processor(self, processor: EventProcessor) -> None:
        self._processors.append(processor)

    def apply_processors(self, event: Any) -> Any:
        """Run the processors in order; ``None`` from any of them drops the event."""
        for processor in self._processors:
            event = processor(event)
            if event is None:
                return None
        return event

    def capture_event(self, event: Any) -> Any:
        """Process and store an event; returns the stored event or ``None``."""
        processed = self.apply_processors(event)
        if processed is not None:
            self._sink.events.append(processed)
        return processed

    def start_transaction(self, name: str, op: str) -> Span:
        """Start a new transaction reporting to this hub."""
        return Span(op, name, name=name, hub=self)


_MAIN_HUB = Hub()


@dataclass(frozen=True)
class NewFromTopProvider:
    """Provides a new hub derived from the currently active one."""

    def __call__(self, request: Any) -> Hub:
        return Hub.new_from_top(Hub.current())


@dataclass(frozen=True)
class _FixedHub:
    hub: Hub

    def __call__(self, request: Any) -> Hub:
        return self.hub


HubProvider = Callable[[Any], Hub]


def _as_provider(provider: HubProvider | Hub) -> HubProvider:
    return _FixedHub(provider) if isinstance(provider, Hub) else provider


async def _bound(hub: Hub, awaitable: Awaitable[Any]) -> Any:
    with hub.bind():
        return await awaitable


class SentryService:
    """Wraps a service so each call runs with the hub chosen for its request."""

    def __init__(self, service: Callable[[Any], Any], provider: HubProvider | Hub) -> None:
        self.service = service
        self.provider = _as_provider(provider)

    @classmethod
    def new_from_top(cls, service: Callable[[Any], Any]) -> SentryService:
        return cls(service, NewFromTopProvider())

    def __call__(self, request: Any) -> Any:
        hub = self.provider(request)
        result = hub.run(self.service, request)
        if inspect.isawaitable(result):
            return _bound(hub, result)
        return result


class SentryLayer:
    """Produces services that bind a hub for each request."""

    def __init__(self, provider: HubProvider | Hub) -> None:
        self.provider = _as_provider(provider)

    @classmethod
    def new_from_top(cls) -> SentryLayer:
        return cls(NewFromTopProvider())

    def layer(self, service: Callable[[Any], Any]) -> SentryService:
        return SentryService(service, self.provider)