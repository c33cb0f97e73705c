"""Tests for report delivery over HTTP."""

import asyncio
import time

import httpx
import pytest
from structlog.testing import capture_logs

from faultline.infrastructure.transport import FORM_CONTENT_TYPE, ReportTransport, encode_form

URL = "https://reports.example.com/errors"


class TestEncodeForm:
    """Form body encoding."""

    def test_reserved_characters_are_escaped(self):
        """Test that separators inside keys and values are percent-encoded."""
        assert encode_form({"a b": "x&y=z/w"}) == "a%20b=x%26y%3Dz%2Fw"

    def test_unreserved_marks_are_kept(self):
        """Test that the unreserved marks stay literal."""
        assert encode_form({"note": "it's (ok)!~*-_."}) == "note=it's%20(ok)!~*-_."

    def test_unicode_is_utf8_encoded(self):
        """Test that non-ASCII text is encoded as UTF-8 bytes."""
        assert encode_form({"city": "Zürich"}) == "city=Z%C3%BCrich"

    def test_fields_are_joined_in_order(self):
        """Test field ordering."""
        assert encode_form({"exception": "{}", "clientId": "c1", "to": ""}) == "exception=%7B%7D&clientId=c1&to="


class TestReportTransport:
    """Fire-and-forget POSTs."""

    def _transport(self, respond):
        requests = []

        def handler(request):
            requests.append(request)
            return respond(request)

        return ReportTransport(timeout=1.0, transport=httpx.MockTransport(handler)), requests

    def test_sync_post(self):
        """Test that delivery runs on the worker pool without an event loop."""
        transport, requests = self._transport(lambda request: httpx.Response(204))

        transport.post(URL, {"exception": "{}"}, headers={"X-Api-Key": "k"})

        assert transport.wait(timeout=5)
        assert len(requests) == 1
        request = requests[0]
        assert request.method == "POST"
        assert str(request.url) == URL
        assert request.headers["content-type"] == FORM_CONTENT_TYPE
        assert request.headers["x-api-key"] == "k"
        assert request.content == b"exception=%7B%7D"

    def test_content_type_cannot_be_overridden(self):
        """Test that the form content type always wins."""
        transport, requests = self._transport(lambda request: httpx.Response(200))

        transport.post(URL, {"exception": "{}"}, headers={"Content-Type": "text/plain"})
        assert transport.wait(timeout=5)

        assert requests[0].headers["content-type"] == FORM_CONTENT_TYPE

    def test_http_error_status_is_logged(self):
        """Test that non-2xx responses are logged, not raised."""
        transport, _ = self._transport(lambda request: httpx.Response(503))

        with capture_logs() as logs:
            transport.post(URL, {"exception": "{}"})
            assert transport.wait(timeout=5)

        failure = next(entry for entry in logs if entry["event"] == "report_delivery_failed")
        assert failure["log_level"] == "warning"
        assert failure["error_type"] == "TransportFailure"
        assert failure["original_type"] == "HTTPStatusError"
        assert failure["url"] == URL

    def test_network_error_is_logged(self):
        """Test that connection failures are logged, not raised."""

        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport, _ = self._transport(refuse)

        with capture_logs() as logs:
            transport.post(URL, {"exception": "{}"})
            assert transport.wait(timeout=5)

        failure = next(entry for entry in logs if entry["event"] == "report_delivery_failed")
        assert failure["original_type"] == "ConnectError"

    @pytest.mark.asyncio
    async def test_async_post_is_tracked(self):
        """Test that delivery is scheduled on the running loop."""
        transport, requests = self._transport(lambda request: httpx.Response(200))

        transport.post(URL, {"exception": "{}"})

        assert transport.pending == 1
        assert requests == []

        await transport.drain()

        assert transport.pending == 0
        assert len(requests) == 1
        assert requests[0].content == b"exception=%7B%7D"

    @pytest.mark.asyncio
    async def test_async_failure_is_logged(self):
        """Test that failed async deliveries do not surface as task errors."""
        transport, _ = self._transport(lambda request: httpx.Response(500))

        with capture_logs() as logs:
            transport.post(URL, {"exception": "{}"})
            await transport.drain()

        assert [entry["event"] for entry in logs if entry["log_level"] == "warning"] == ["report_delivery_failed"]

    def test_slow_endpoint_does_not_block_caller(self):
        """Test that post returns before a slow endpoint answers."""

        def slow(request):
            time.sleep(1.0)
            return httpx.Response(200)

        transport, requests = self._transport(slow)

        started = time.monotonic()
        transport.post(URL, {"exception": "{}"})
        elapsed = time.monotonic() - started

        assert elapsed < 0.5
        assert transport.pending == 1
        assert transport.wait(timeout=5)
        assert len(requests) == 1

    def test_wait_times_out_on_stuck_delivery(self):
        """Test that wait reports deliveries still in flight."""

        def slow(request):
            time.sleep(0.5)
            return httpx.Response(200)

        transport, _ = self._transport(slow)
        transport.post(URL, {"exception": "{}"})

        assert transport.wait(timeout=0.05) is False
        assert transport.wait(timeout=5) is True

    def test_wait_without_deliveries(self):
        """Test that wait returns at once when nothing is in flight."""
        transport, _ = self._transport(lambda request: httpx.Response(200))

        assert transport.wait(timeout=0) is True

    @pytest.mark.asyncio
    async def test_drain_covers_worker_pool_deliveries(self):
        """Test that drain also waits for deliveries started outside the loop."""
        transport, requests = self._transport(lambda request: httpx.Response(200))
        loop = asyncio.get_running_loop()

        # post from a thread with no running loop so it lands on the worker pool
        await loop.run_in_executor(None, lambda: transport.post(URL, {"exception": "{}"}))
        await transport.drain()

        assert len(requests) == 1
