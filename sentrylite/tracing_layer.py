"""A tracing layer that turns events into breadcrumbs or events and spans into Sentry spans.

Events are captured as breadcrumbs for later, error events are captured as
Sentry events, and spans are recorded as transactions and their child spans.
By default ``info`` and ``warn`` events become breadcrumbs, ``error`` events
become exception events, and spans at ``info`` and above are recorded.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from sentrylite.hub import Hub, Span
from sentrylite.tracing_converters import (
    Breadcrumb,
    Event,
    FieldVisitor,
    TraceEvent,
    TraceLevel,
    TraceMetadata,
    breadcrumb_from_event,
    event_from_event,
    exception_from_event,
    extract_span_data,
)


class EventFilter(enum.Enum):
    """What to do with a tracing event, decided from its metadata."""

    IGNORE = "ignore"
    BREADCRUMB = "breadcrumb"
    EVENT = "event"
    EXCEPTION = "exception"


@dataclass
class EventMapping:
    """The data to ingest for a tracing event; with neither set, it is ignored."""

    breadcrumb: Breadcrumb | None = None
    event: Event | None = None

    def __post_init__(self) -> None:
        if self.breadcrumb is not None and self.event is not None:
            raise ValueError("an event mapping holds either a breadcrumb or an event")


@dataclass
class TracingSpan:
    """A tracing span: its metadata, its fields and the Sentry span started for it."""

    metadata: TraceMetadata
    fields: dict[str, Any] = field(default_factory=dict)
    sentry_span: Span | None = field(default=None, init=False, repr=False)
    parent_sentry_span: Span | None = field(default=None, init=False, repr=False)


def default_event_filter(metadata: TraceMetadata) -> EventFilter:
    """Exceptions for errors, breadcrumbs for warnings and info, nothing below."""
    if metadata.level is TraceLevel.ERROR:
        return EventFilter.EXCEPTION
    if metadata.level in (TraceLevel.WARN, TraceLevel.INFO):
        return EventFilter.BREADCRUMB
    return EventFilter.IGNORE


def default_span_filter(metadata: TraceMetadata) -> bool:
    """Record spans at the error, warning and info levels."""
    return metadata.level in (TraceLevel.ERROR, TraceLevel.WARN, TraceLevel.INFO)


EventFilterFn = Callable[[TraceMetadata], EventFilter]
EventMapperFn = Callable[[TraceEvent], "EventMapping | None"]
SpanFilterFn = Callable[[TraceMetadata], bool]


class SentryTracingLayer:
    """Dispatches tracing events and spans to a hub."""

    def __init__(self, hub: Hub | None = None) -> None:
        self._hub = hub
        self._event_filter: EventFilterFn = default_event_filter
        self._event_mapper: EventMapperFn | None = None
        self._span_filter: SpanFilterFn = default_span_filter

    @property
    def hub(self) -> Hub:
        """The hub given at creation, or the one current at call time."""
        return self._hub if self._hub is not None else Hub.current()

    def event_filter(self, filter_fn: EventFilterFn) -> SentryTracingLayer:
        """Set how events are classified from their metadata."""
        self._event_filter = filter_fn
        return self

    def event_mapper(self, mapper: EventMapperFn) -> SentryTracingLayer:
        """Set a function that builds breadcrumbs or events; it overrides the filter."""
        self._event_mapper = mapper
        return self

    def span_filter(self, filter_fn: SpanFilterFn) -> SentryTracingLayer:
        """Set which spans are recorded, judged from their metadata."""
        self._span_filter = filter_fn
        return self

    def _map_event(self, event: TraceEvent) -> EventMapping:
        if self._event_mapper is not None:
            return self._event_mapper(event) or EventMapping()
        action = self._event_filter(event.metadata)
        if action is EventFilter.BREADCRUMB:
            return EventMapping(breadcrumb=breadcrumb_from_event(event))
        if action is EventFilter.EVENT:
            return EventMapping(event=event_from_event(event))
        if action is EventFilter.EXCEPTION:
            return EventMapping(event=exception_from_event(event))
        return EventMapping()

    def on_event(self, event: TraceEvent) -> None:
        """Capture an event or add a breadcrumb, as the mapping decides."""
        mapping = self._map_event(event)
        if mapping.event is not None:
            self.hub.capture_event(mapping.event)
        elif mapping.breadcrumb is not None:
            self.hub.add_breadcrumb(mapping.breadcrumb)

    def on_new_span(self, span: TracingSpan) -> None:
        """Start a Sentry span for a new tracing span and make it current."""
        if not self._span_filter(span.metadata):
            return
        description, data = extract_span_data(span.fields)
        op = span.metadata.name
        if description is None:
            target = span.metadata.target
            description = f"{target}::{op}" if target else op

        hub = self.hub
        parent = hub.span
        if parent is not None:
            sentry_span = parent.start_child(op, description)
        else:
            sentry_span = hub.start_transaction(description, op)
        for key, value in data.items():
            sentry_span.set_data(key, value)

        hub.span = sentry_span
        span.sentry_span = sentry_span
        span.parent_sentry_span = parent

    def on_close(self, span: TracingSpan) -> None:
        """Finish the Sentry span and restore its parent as current."""
        sentry_span = span.sentry_span
        if sentry_span is None:
            return
        parent = span.parent_sentry_span
        span.sentry_span = None
        span.parent_sentry_span = None
        sentry_span.finish()
        self.hub.span = parent

    def on_record(self, span: TracingSpan, fields: Mapping[str, Any]) -> None:
        """Add fields recorded later in a span's life to its Sentry span."""
        sentry_span = span.sentry_span
        if sentry_span is None:
            return
        visitor = FieldVisitor()
        for name, value in fields.items():
            visitor.record(name, value)
        for key, value in visitor.json_values.items():
            sentry_span.set_data(key, value)


def layer(hub: Hub | None = None) -> SentryTracingLayer:
    """A layer with the default filters, reporting to ``hub`` or the current hub."""
    return SentryTracingLayer(hub)