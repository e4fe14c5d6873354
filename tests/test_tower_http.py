import asyncio

import pytest

from sentrylite.hub import Hub, SentryLayer, SpanStatus
from sentrylite.tower_http import (
    HttpRequest,
    HttpResponse,
    SentryHttpLayer,
    SentryHttpService,
    get_url_from_request,
    map_status,
)


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        (401, SpanStatus.UNAUTHENTICATED),
        (403, SpanStatus.PERMISSION_DENIED),
        (404, SpanStatus.NOT_FOUND),
        (429, SpanStatus.RESOURCE_EXHAUSTED),
        (409, SpanStatus.INVALID_ARGUMENT),
        (400, SpanStatus.INVALID_ARGUMENT),
        (501, SpanStatus.UNIMPLEMENTED),
        (503, SpanStatus.UNAVAILABLE),
        (500, SpanStatus.INTERNAL_ERROR),
        (200, SpanStatus.OK),
        (204, SpanStatus.OK),
        (302, SpanStatus.UNKNOWN_ERROR),
        (101, SpanStatus.UNKNOWN_ERROR),
    ],
)
def test_map_status(code, expected):
    assert map_status(code) is expected


def test_url_from_host_header():
    request = HttpRequest("GET", "/foo?bar=1", {"Host": "example.com"})
    assert get_url_from_request(request) == "http://example.com/foo?bar=1"


def test_url_from_absolute_uri_keeps_scheme():
    request = HttpRequest("GET", "https://example.com/x")
    assert get_url_from_request(request) == "https://example.com/x"


def test_url_without_host_is_none():
    assert get_url_from_request(HttpRequest("GET", "/foo")) is None


def test_url_with_invalid_host_is_none():
    request = HttpRequest("GET", "/foo", [("host", "bad host")])
    assert get_url_from_request(request) is None


def test_layer_defaults_to_no_transaction():
    assert SentryHttpLayer().start_transaction is False
    assert SentryHttpLayer.with_transaction().start_transaction is True
    service = SentryHttpLayer.with_transaction().layer(lambda r: HttpResponse())
    assert isinstance(service, SentryHttpService)
    assert service.start_transaction is True


def test_transaction_for_sync_service():
    hub = Hub()
    seen = {}

    def handler(request):
        current = Hub.current()
        seen["span"] = current.span
        current.capture_event({"message": "inside"})
        return HttpResponse(404)

    service = SentryHttpLayer.with_transaction().layer(handler)
    request = HttpRequest("GET", "/users?id=1", {"Host": "example.com"})
    response = hub.run(service, request)

    assert response.status == 404
    [transaction] = hub.transactions
    assert transaction.name == "GET /users"
    assert transaction.op == "http.server"
    assert transaction.status is SpanStatus.NOT_FOUND
    assert transaction.finished
    assert seen["span"] is transaction
    assert hub.span is None
    [event] = hub.events
    assert event["request"]["method"] == "GET"
    assert event["request"]["url"] == "http://example.com/users?id=1"
    assert event["request"]["headers"] == {"host": "example.com"}


def test_existing_request_is_not_replaced():
    hub = Hub()

    def handler(request):
        Hub.current().capture_event({"request": {"method": "PUT"}})
        return HttpResponse(200)

    hub.run(SentryHttpLayer().layer(handler), HttpRequest("GET", "/"))
    assert hub.events[0]["request"] == {"method": "PUT"}
    assert hub.transactions == []


def test_invalid_header_value_becomes_empty():
    hub = Hub()

    def handler(request):
        Hub.current().capture_event({})
        return HttpResponse(200)

    request = HttpRequest("GET", "/", [("x-data", b"\xff\x00")])
    hub.run(SentryHttpLayer().layer(handler), request)
    assert hub.events[0]["request"]["headers"] == {"x-data": ""}


def test_failing_service_marks_unknown_error():
    hub = Hub()

    def handler(request):
        raise RuntimeError("boom")

    service = SentryHttpLayer.with_transaction().layer(handler)
    with pytest.raises(RuntimeError, match="boom"):
        hub.run(service, HttpRequest("POST", "/items"))
    [transaction] = hub.transactions
    assert transaction.status is SpanStatus.UNKNOWN_ERROR
    assert hub.span is None


def test_status_set_by_handler_is_kept():
    hub = Hub()

    def handler(request):
        Hub.current().span.set_status(SpanStatus.ABORTED)
        return HttpResponse(200)

    hub.run(SentryHttpLayer.with_transaction().layer(handler), HttpRequest())
    assert hub.transactions[0].status is SpanStatus.ABORTED


def test_trace_is_continued_from_header():
    hub = Hub()
    trace_id = "a" * 32
    header = f"{trace_id}-{'b' * 16}-1"
    service = SentryHttpLayer.with_transaction().layer(lambda r: HttpResponse(200))
    hub.run(service, HttpRequest("GET", "/", [("sentry-trace", header)]))
    [transaction] = hub.transactions
    assert transaction.trace_id == trace_id
    assert transaction.status is SpanStatus.OK


def test_parent_span_is_restored():
    hub = Hub()
    outer = hub.start_transaction("outer", "task")
    hub.span = outer
    service = SentryHttpLayer.with_transaction().layer(lambda r: HttpResponse(201))
    hub.run(service, HttpRequest())
    assert hub.span is outer
    assert [t.name for t in hub.transactions] == ["GET /"]


def test_async_service():
    hub = Hub()

    async def handler(request):
        await asyncio.sleep(0)
        return HttpResponse(503)

    service = SentryHttpLayer.with_transaction().layer(handler)

    async def main():
        with hub.bind():
            return await service(HttpRequest("GET", "/health"))

    response = asyncio.run(main())
    assert response.status == 503
    [transaction] = hub.transactions
    assert transaction.status is SpanStatus.UNAVAILABLE
    assert hub.span is None


def test_combined_with_hub_layer():
    top = Hub()

    def handler(request):
        Hub.current().capture_event({})
        return HttpResponse(200)

    http_service = SentryHttpLayer.with_transaction().layer(handler)
    service = SentryLayer.new_from_top().layer(http_service)
    top.run(service, HttpRequest("GET", "/a", {"host": "example.com"}))
    top.run(service, HttpRequest("GET", "/b", {"host": "example.com"}))

    assert len(top.transactions) == 2
    assert [e["request"]["url"] for e in top.events] == [
        "http://example.com/a",
        "http://example.com/b",
    ]