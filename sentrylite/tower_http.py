"""A service wrapper that attaches HTTP request details to captured events.

It can also start a performance transaction for every request, continuing a
trace announced by an incoming ``sentry-trace`` header.
"""

from __future__ import annotations

import copy
import inspect
import re
from collections.abc import Callable, Iterable, Mapping, MutableMapping
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any
from urllib.parse import urlsplit

from sentrylite.hub import Hub, Span, SpanStatus

_SCHEME = re.compile(r"[A-Za-z][A-Za-z0-9+.\-]*")
_AUTHORITY = re.compile(r"[A-Za-z0-9\-._~%!$&'()*+,;=:@\[\]]+")
_SENTRY_TRACE = re.compile(r"\s*([0-9a-fA-F]{32})-([0-9a-fA-F]{16})(?:-([01]))?\s*")

HeaderValue = str | bytes


def _normalize_headers(
    headers: Mapping[str, HeaderValue] | Iterable[tuple[str, HeaderValue]],
) -> list[tuple[str, HeaderValue]]:
    items = headers.items() if isinstance(headers, Mapping) else headers
    return [(str(name).lower(), value) for name, value in items]


@dataclass
class HttpRequest:
    """An incoming HTTP request; header names are kept in lower case."""

    method: str = "GET"
    uri: str = "/"
    headers: list[tuple[str, HeaderValue]] = field(default_factory=list)
    body: Any = None

    def __post_init__(self) -> None:
        self.headers = _normalize_headers(self.headers)

    def header(self, name: str) -> HeaderValue | None:
        """The first value of the named header, if present."""
        wanted = name.lower()
        return next((value for key, value in self.headers if key == wanted), None)


@dataclass
class HttpResponse:
    """An HTTP response as returned by a wrapped service."""

    status: int = 200
    body: Any = None
    headers: list[tuple[str, HeaderValue]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.headers = _normalize_headers(self.headers)


def _header_text(value: HeaderValue) -> str | None:
    """The header value as text if it is visible ASCII (or tab), else None."""
    raw = value.encode("utf-8") if isinstance(value, str) else bytes(value)
    if all(32 <= byte < 127 or byte == 9 for byte in raw):
        return raw.decode("ascii")
    return None


def _split_uri(uri: str) -> tuple[str | None, str | None, str]:
    """Split a request target into scheme, authority and path-with-query."""
    uri = uri.split("#", 1)[0]
    if uri.startswith("/"):
        return None, None, uri
    scheme, sep, rest = uri.partition("://")
    if not sep or not _SCHEME.fullmatch(scheme):
        raise ValueError(f"unsupported request target: {uri!r}")
    cut = min((pos for pos in (rest.find("/"), rest.find("?")) if pos != -1), default=len(rest))
    authority, path_and_query = rest[:cut], rest[cut:]
    if path_and_query.startswith("?") or not path_and_query:
        path_and_query = "/" + path_and_query
    return scheme.lower(), authority, path_and_query


def _request_path(request: HttpRequest) -> str:
    try:
        _, _, path_and_query = _split_uri(request.uri)
    except ValueError:
        return request.uri
    return path_and_query.split("?", 1)[0]


def get_url_from_request(request: HttpRequest) -> str | None:
    """The absolute URL of a request, using the Host header when needed."""
    try:
        scheme, authority, path_and_query = _split_uri(request.uri)
    except ValueError:
        return None
    scheme = scheme or "http"
    if authority is None:
        host = request.header("host")
        if host is None:
            return None
        authority = _header_text(host)
        if authority is None:
            return None
    if not _AUTHORITY.fullmatch(authority):
        return None
    url = f"{scheme}://{authority}{path_and_query}"
    try:
        parts = urlsplit(url)
        parts.port
    except ValueError:
        return None
    if not parts.hostname:
        return None
    return url


def map_status(status: int | HTTPStatus) -> SpanStatus:
    """Map an HTTP status code onto a span status."""
    code = int(status)
    if code == 401:
        return SpanStatus.UNAUTHENTICATED
    if code == 403:
        return SpanStatus.PERMISSION_DENIED
    if code == 404:
        return SpanStatus.NOT_FOUND
    if code == 429:
        return SpanStatus.RESOURCE_EXHAUSTED
    if 400 <= code < 500:
        return SpanStatus.INVALID_ARGUMENT
    if code == 501:
        return SpanStatus.UNIMPLEMENTED
    if code == 503:
        return SpanStatus.UNAVAILABLE
    if 500 <= code < 600:
        return SpanStatus.INTERNAL_ERROR
    if code == 409:
        return SpanStatus.ALREADY_EXISTS
    if 200 <= code < 300:
        return SpanStatus.OK
    return SpanStatus.UNKNOWN_ERROR


def _sentry_request(request: HttpRequest) -> dict[str, Any]:
    headers = {name: _header_text(value) or "" for name, value in request.headers}
    return {
        "method": request.method,
        "url": get_url_from_request(request),
        "headers": dict(sorted(headers.items())),
    }


@dataclass(frozen=True)
class _RequestAttacher:
    request: dict[str, Any]

    def __call__(self, event: Any) -> Any:
        if isinstance(event, MutableMapping):
            if event.get("request") is None:
                event["request"] = copy.deepcopy(self.request)
        elif hasattr(event, "request") and event.request is None:
            event.request = copy.deepcopy(self.request)
        return event


def _continue_trace(transaction: Span, request: HttpRequest) -> None:
    for name, value in request.headers:
        if name != "sentry-trace":
            continue
        text = _header_text(value)
        match = _SENTRY_TRACE.fullmatch(text) if text is not None else None
        if match:
            transaction.trace_id = match.group(1).lower()
            transaction.parent_span_id = match.group(2).lower()


def _complete(
    hub: Hub,
    active: tuple[Span, Span | None] | None,
    response: Any,
    failed: bool,
) -> None:
    if active is None:
        return
    transaction, parent = active
    if transaction.status is None:
        status = SpanStatus.UNKNOWN_ERROR if failed else map_status(response.status)
        transaction.set_status(status)
    transaction.finish()
    hub.span = parent


async def _finish_after(
    hub: Hub, active: tuple[Span, Span | None] | None, awaitable: Any
) -> Any:
    try:
        response = await awaitable
    except BaseException:
        _complete(hub, active, None, failed=True)
        raise
    _complete(hub, active, response, failed=False)
    return response


class SentryHttpService:
    """Wraps an HTTP service, recording request details and optionally a transaction."""

    def __init__(
        self, service: Callable[[HttpRequest], Any], start_transaction: bool = False
    ) -> None:
        self.service = service
        self.start_transaction = start_transaction

    def __call__(self, request: HttpRequest) -> Any:
        hub = Hub.current()
        hub.add_event_processor(_RequestAttacher(_sentry_request(request)))

        active: tuple[Span, Span | None] | None = None
        if self.start_transaction:
            name = f"{request.method} {_request_path(request)}"
            transaction = hub.start_transaction(name, "http.server")
            _continue_trace(transaction, request)
            active = (transaction, hub.span)
            hub.span = transaction

        try:
            result = self.service(request)
        except BaseException:
            _complete(hub, active, None, failed=True)
            raise
        if inspect.isawaitable(result):
            return _finish_after(hub, active, result)
        _complete(hub, active, result, failed=False)
        return result


@dataclass(frozen=True)
class SentryHttpLayer:
    """Produces services that attach request details to captured events."""

    start_transaction: bool = False

    @classmethod
    def with_transaction(cls) -> SentryHttpLayer:
        """A layer that also starts a transaction for each request."""
        return cls(start_transaction=True)

    def layer(self, service: Callable[[HttpRequest], Any]) -> SentryHttpService:
        return SentryHttpService(service, self.start_transaction)