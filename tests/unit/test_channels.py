"""Tests for the WebSocket and HTTP channels."""

import asyncio

import aiohttp
import pytest

from stats_telemetry.channels import HttpChannel, SocketChannel
from stats_telemetry.clients.websocket_reliable import ReliableWebSocket
from stats_telemetry.errors import RequestAbortedError, TransmissionError
from stats_telemetry.payload import BinaryPayload, StructuredPayload, TextPayload

WS_URL = "ws://metrics.test/ingest"
HTTP_URL = "http://metrics.test/ingest"


@pytest.fixture
def socket_channel(fake_connector, channel_config):
    return SocketChannel(WS_URL, channel_config, websocket=ReliableWebSocket(connect=fake_connector))


@pytest.fixture
def http_channel(fake_http_session, channel_config):
    return HttpChannel(HTTP_URL, channel_config, session=fake_http_session)


@pytest.mark.unit
class TestSocketChannel:
    """Test the persistent socket channel."""

    def test_not_opened_on_construction(self, socket_channel, fake_connector):
        assert socket_channel.closed
        assert fake_connector.calls == []

    def test_builds_websocket_from_config(self, channel_config):
        channel = SocketChannel(WS_URL, channel_config)
        assert channel.websocket.open_timeout == channel_config.open_timeout_seconds
        assert channel.websocket.ping_interval == channel_config.ping_interval_seconds

    @pytest.mark.asyncio
    async def test_send_opens_closed_socket(self, socket_channel, fake_connector):
        delivered = await socket_channel.send(TextPayload("fps=30"))

        assert delivered is True
        assert fake_connector.calls[0][0] == WS_URL
        assert fake_connector.connections[0].sent == ["fps=30"]

    @pytest.mark.asyncio
    async def test_payload_body_sent_as_one_frame(self, socket_channel, fake_connector):
        await socket_channel.send(BinaryPayload(b"\x01\x02"))
        await socket_channel.send(StructuredPayload({"fps": 30}))

        assert fake_connector.connections[0].sent == [b"\x01\x02", '{"fps":30}']

    @pytest.mark.asyncio
    async def test_stale_queued_frame_discarded(self, socket_channel, fake_connector, wait_until):
        fake_connector.gate = asyncio.Event()

        stale = asyncio.create_task(socket_channel.send(TextPayload("stale")))
        await wait_until(lambda: len(socket_channel.websocket.queueing) == 1)
        fresh = asyncio.create_task(socket_channel.send(TextPayload("fresh")))
        await wait_until(lambda: stale.done())
        fake_connector.gate.set()

        assert await stale is False
        assert await fresh is True
        assert fake_connector.connections[0].sent == ["fresh"]
        assert len(fake_connector.calls) == 1

    @pytest.mark.asyncio
    async def test_close_then_reopen(self, socket_channel, fake_connector):
        await socket_channel.send(TextPayload("one"))
        socket_channel.close()
        await socket_channel.wait_closed()

        assert socket_channel.closed
        assert fake_connector.connections[0].close_calls == 1

        await socket_channel.send(TextPayload("two"))
        assert len(fake_connector.connections) == 2
        assert fake_connector.connections[1].sent == ["two"]

    def test_close_when_closed_is_noop(self, socket_channel):
        socket_channel.close()
        assert socket_channel.closed


@pytest.mark.unit
class TestHttpChannel:
    """Test the HTTP request channel."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload,content_type,body", [
        (BinaryPayload(b"\x00\xff"), "application/octet-stream", b"\x00\xff"),
        (TextPayload("fps=30"), "text/plain", "fps=30"),
        (StructuredPayload({"fps": 30}), "application/json", '{"fps":30}'),
    ])
    async def test_post_per_payload(self, http_channel, fake_http_session, payload, content_type, body):
        assert await http_channel.send(payload) is True

        request = fake_http_session.delivered[0]
        assert request.url == HTTP_URL
        assert request.headers == {"Content-Type": content_type}
        assert request.data == body
        assert http_channel.stats['requests_sent'] == 1

    @pytest.mark.asyncio
    async def test_new_send_cancels_pending_request(self, http_channel, fake_http_session, wait_until):
        fake_http_session.gates = [asyncio.Event()]

        first = asyncio.create_task(http_channel.send(TextPayload("first")))
        await wait_until(lambda: len(fake_http_session.started) == 1)
        second = await http_channel.send(TextPayload("second"))

        assert second is True
        assert await first is False
        assert [request.data for request in fake_http_session.delivered] == ["second"]
        assert http_channel.stats['requests_aborted'] == 1

    @pytest.mark.asyncio
    async def test_close_cancels_in_flight_request(self, http_channel, fake_http_session, wait_until):
        fake_http_session.gates = [asyncio.Event()]

        pending = asyncio.create_task(http_channel.send(TextPayload("pending")))
        await wait_until(lambda: http_channel.in_flight)
        http_channel.close()

        assert await pending is False
        assert fake_http_session.delivered == []
        # caller-owned session survives close
        assert not fake_http_session.closed
        assert await http_channel.send(TextPayload("after close")) is True

    @pytest.mark.asyncio
    async def test_error_status_raises(self, http_channel, fake_http_session):
        fake_http_session.status = 503
        fake_http_session.reason = "Service Unavailable"

        with pytest.raises(TransmissionError, match="HTTP 503"):
            await http_channel.send(TextPayload("x"))
        assert http_channel.stats['requests_failed'] == 1

    @pytest.mark.asyncio
    async def test_client_error_raises(self, http_channel, fake_http_session):
        fake_http_session.error = aiohttp.ClientConnectionError("refused")

        with pytest.raises(TransmissionError, match="refused"):
            await http_channel.send(TextPayload("x"))

    @pytest.mark.asyncio
    async def test_timeout_raises_aborted(self, http_channel, fake_http_session):
        fake_http_session.error = asyncio.TimeoutError()

        with pytest.raises(RequestAbortedError):
            await http_channel.send(TextPayload("x"))

    @pytest.mark.asyncio
    async def test_owned_session_closed_and_recreated(self, channel_config):
        channel = HttpChannel(HTTP_URL, channel_config)
        assert channel.closed

        channel.ensure_open()
        session = channel.session
        assert not channel.closed

        channel.close()
        await channel.wait_closed()
        assert session.closed
        assert channel.closed

        channel.ensure_open()
        assert channel.session is not session
        channel.close()
        await channel.wait_closed()
