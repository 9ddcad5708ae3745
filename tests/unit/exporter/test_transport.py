# tests/unit/exporter/test_transport.py
"""Tests for HttpTransport (httpx POST) and its helpers."""

import email.utils
from datetime import UTC, datetime, timedelta

import httpx
import pytest
import respx

from signalsink.contracts.errors import HTTPStatusError, TransportError
from signalsink.exporter.transport import BODY_EXCERPT_LIMIT, HttpTransport, merge_headers, parse_retry_after

URL = "http://collector.test/v1/logs"


@pytest.fixture
def transport():
    transport = HttpTransport(timeout=1.0, headers={"Authorization": "Bearer t0ken"})
    yield transport
    transport.close()


# ============================================================================
# Header merging
# ============================================================================


class TestMergeHeaders:
    def test_later_layer_wins_case_insensitively(self) -> None:
        merged = merge_headers({"Content-Type": "application/json"}, {"content-type": "text/plain"})

        assert merged["Content-Type"] == "text/plain"
        assert len(merged) == 1

    def test_none_layers_skipped(self) -> None:
        assert dict(merge_headers(None, {"A": "1"}, None)) == {"a": "1"}

    def test_defaults_overridden_by_configured(self) -> None:
        transport = HttpTransport(headers={"Content-Type": "application/x-ndjson", "X-Tenant": "t1"})

        assert transport.headers["content-type"] == "application/x-ndjson"
        assert transport.headers["accept"] == "application/json"
        assert transport.headers["x-tenant"] == "t1"
        transport.close()


class TestParseRetryAfter:
    def test_seconds(self) -> None:
        assert parse_retry_after("7") == 7.0

    def test_missing_or_blank(self) -> None:
        assert parse_retry_after(None) is None
        assert parse_retry_after("  ") is None

    def test_garbage(self) -> None:
        assert parse_retry_after("soon") is None

    def test_http_date_in_future(self) -> None:
        when = datetime.now(tz=UTC) + timedelta(seconds=120)

        delay = parse_retry_after(email.utils.format_datetime(when, usegmt=True))

        assert delay is not None
        assert 100 < delay <= 120

    def test_http_date_in_past_is_zero(self) -> None:
        when = datetime.now(tz=UTC) - timedelta(hours=1)

        assert parse_retry_after(email.utils.format_datetime(when, usegmt=True)) == 0.0


# ============================================================================
# Delivery
# ============================================================================


class TestDeliver:
    @respx.mock
    def test_success_posts_body_and_headers(self, transport: HttpTransport) -> None:
        route = respx.post(URL).mock(return_value=httpx.Response(200))

        transport.deliver(URL, b'{"logs":[]}', headers={"X-Batch": "1"})

        assert route.call_count == 1
        request = route.calls.last.request
        assert request.content == b'{"logs":[]}'
        assert request.headers["content-type"] == "application/json"
        assert request.headers["authorization"] == "Bearer t0ken"
        assert request.headers["x-batch"] == "1"

    @respx.mock
    @pytest.mark.parametrize("status", [200, 202, 204, 299])
    def test_any_2xx_is_success(self, transport: HttpTransport, status: int) -> None:
        respx.post(URL).mock(return_value=httpx.Response(status))

        transport.deliver(URL, b"{}")

    @respx.mock
    def test_error_status_raises_with_excerpt(self, transport: HttpTransport) -> None:
        respx.post(URL).mock(return_value=httpx.Response(503, text="upstream busy", headers={"Retry-After": "3"}))

        with pytest.raises(HTTPStatusError) as exc_info:
            transport.deliver(URL, b"{}")

        error = exc_info.value
        assert error.status_code == 503
        assert error.body_excerpt == "upstream busy"
        assert error.retry_after == 3.0
        assert error.url == URL

    @respx.mock
    def test_excerpt_bounded(self, transport: HttpTransport) -> None:
        respx.post(URL).mock(return_value=httpx.Response(400, content=b"x" * (BODY_EXCERPT_LIMIT * 3)))

        with pytest.raises(HTTPStatusError) as exc_info:
            transport.deliver(URL, b"{}")

        assert len(exc_info.value.body_excerpt) == BODY_EXCERPT_LIMIT
        assert exc_info.value.retry_after is None

    @respx.mock
    def test_timeout_raises_transport_error(self, transport: HttpTransport) -> None:
        respx.post(URL).mock(side_effect=httpx.ReadTimeout("read timed out"))

        with pytest.raises(TransportError) as exc_info:
            transport.deliver(URL, b"{}")

        assert exc_info.value.timeout is True
        assert exc_info.value.retryable is True

    @respx.mock
    def test_connect_error_raises_transport_error(self, transport: HttpTransport) -> None:
        respx.post(URL).mock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(TransportError) as exc_info:
            transport.deliver(URL, b"{}")

        assert exc_info.value.timeout is False
        assert "connection refused" in str(exc_info.value)

    def test_deliver_after_close_raises(self) -> None:
        transport = HttpTransport()
        transport.close()

        with pytest.raises(TransportError):
            transport.deliver(URL, b"{}")


class TestClose:
    def test_close_is_idempotent(self) -> None:
        transport = HttpTransport()

        transport.close()
        transport.close()

    def test_injected_client_not_closed(self) -> None:
        client = httpx.Client()
        transport = HttpTransport(client=client)

        transport.close()

        assert client.is_closed is False
        client.close()
