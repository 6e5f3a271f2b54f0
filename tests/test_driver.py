"""
streambridge - Transport Driver Tests

Verifies:
- Complete Anthropic and OpenAI sessions end with exactly one StreamEnd
- Recoverable decode failures do not stop the session
- Fatal failures emit one error event and no StreamEnd
- Cancellation emits neither error nor end
- Session metrics
"""

import asyncio

import httpx
import pytest

from streambridge.core.errors import EmitError, TransportError, UpstreamStatusError
from streambridge.core.models import Provider
from streambridge.streaming.driver import DriverState, StreamDriver, UpstreamRequest
from streambridge.streaming.emitter import Channel, StreamPart, parse_part

from conftest import FakeUpstream, RecordingSink, anthropic_body, openai_body, split_every, sse


def request_for(provider: Provider) -> UpstreamRequest:
    return UpstreamRequest(
        provider=provider,
        url=f"https://upstream.test/{provider.value}",
        headers={"Content-Type": "application/json"},
        body={"stream": True},
    )


def texts(sink: RecordingSink):
    return [
        parse_part(r.payload)[1]
        for r in sink.records
        if r.channel is Channel.CHUNK and r.payload.startswith(StreamPart.TEXT.value + ":")
    ]


async def run(upstream: FakeUpstream, provider: Provider, sink: RecordingSink, metrics, **kwargs):
    async with upstream.client() as client:
        driver = StreamDriver(client, metrics=metrics, **kwargs)
        return await driver.run(request_for(provider), sink)


# ============================================================
# Complete Sessions
# ============================================================

class TestCompleteSessions:
    """Test sessions that drain normally."""

    @pytest.mark.asyncio
    async def test_anthropic_session(self, sink, metrics):
        upstream = FakeUpstream(split_every(anthropic_body(), 17))
        result = await run(upstream, Provider.ANTHROPIC, sink, metrics)

        assert result.state is DriverState.ENDED
        assert result.cancelled is False
        assert sink.kinds == ["stream_start", "text_delta", "text_delta", "stream_finish", "stream_end"]
        assert texts(sink) == ["Hello", " world"]
        assert result.events_emitted == 5
        assert result.bytes_received == len(anthropic_body())

    @pytest.mark.asyncio
    async def test_openai_session(self, sink, metrics):
        upstream = FakeUpstream(split_every(openai_body(), 5))
        result = await run(upstream, Provider.OPENAI, sink, metrics)

        assert result.state is DriverState.ENDED
        assert sink.kinds == ["text_delta", "text_delta", "stream_finish", "stream_end"]
        assert texts(sink) == ["Hi", " there"]
        assert sink.errors == []

    @pytest.mark.asyncio
    async def test_request_is_sent_as_built(self, sink, metrics):
        upstream = FakeUpstream([openai_body()])
        await run(upstream, Provider.OPENAI, sink, metrics)

        sent = upstream.requests[0]
        assert sent.method == "POST"
        assert str(sent.url) == "https://upstream.test/openai"
        assert upstream.last_json == {"stream": True}

    @pytest.mark.asyncio
    async def test_empty_body_still_ends(self, sink, metrics):
        result = await run(FakeUpstream([]), Provider.OPENAI, sink, metrics)
        assert result.state is DriverState.ENDED
        assert sink.channels == [Channel.END]

    @pytest.mark.asyncio
    async def test_trailing_partial_frame_is_discarded(self, sink, metrics):
        body = sse({"choices": [{"delta": {"content": "ok"}}]}) + 'data: {"choices": [{"delta": {"content": "lost"'
        result = await run(FakeUpstream([body.encode()]), Provider.OPENAI, sink, metrics)

        assert result.state is DriverState.ENDED
        assert texts(sink) == ["ok"]
        assert sink.channels[-1] is Channel.END

    @pytest.mark.asyncio
    async def test_cr_delimited_final_block_is_delivered(self, sink, metrics):
        body = (
            'data: {"choices": [{"delta": {"content": "one"}}]}\r\r'
            'data: {"choices": [{"delta": {"content": "two"}, "finish_reason": "stop"}]}\r\r'
        )
        result = await run(FakeUpstream(split_every(body.encode(), 9)), Provider.OPENAI, sink, metrics)

        assert result.state is DriverState.ENDED
        assert texts(sink) == ["one", "two"]
        assert sink.kinds == ["text_delta", "text_delta", "stream_finish", "stream_end"]

    @pytest.mark.asyncio
    async def test_records_session_metrics(self, sink, metrics, registry):
        await run(FakeUpstream([anthropic_body()]), Provider.ANTHROPIC, sink, metrics)

        assert registry.get_sample_value(
            "streambridge_sessions_total", {"provider": "anthropic", "outcome": "ended"}
        ) == 1
        assert registry.get_sample_value(
            "streambridge_upstream_bytes_total", {"provider": "anthropic"}
        ) == len(anthropic_body())
        assert registry.get_sample_value(
            "streambridge_active_sessions", {"provider": "anthropic"}
        ) == 0


# ============================================================
# Recoverable Failures
# ============================================================

class TestRecoverableFailures:
    """Test failures that the session survives."""

    @pytest.mark.asyncio
    async def test_malformed_block_between_valid_ones(self, sink, metrics, registry):
        body = (
            sse({"type": "content_block_delta", "delta": {"type": "text_delta", "text": "A"}})
            + 'data: {"type": "content_block_delta", "delta": {\n\n'
            + sse({"type": "content_block_delta", "delta": {"type": "text_delta", "text": "B"}})
            + sse({"type": "message_stop"})
        )
        result = await run(FakeUpstream([body.encode()]), Provider.ANTHROPIC, sink, metrics)

        assert result.state is DriverState.ENDED
        assert result.decode_failures == 1
        assert texts(sink) == ["A", "B"]
        assert sink.kinds == ["text_delta", "stream_error", "text_delta", "stream_finish", "stream_end"]
        assert registry.get_sample_value(
            "streambridge_decode_failures_total",
            {"provider": "anthropic", "code": "payload_decode_error"},
        ) == 1

    @pytest.mark.asyncio
    async def test_decode_errors_can_be_silenced(self, sink, metrics):
        body = "data: not json\n\n" + sse({"choices": [{"delta": {"content": "x"}}]})
        result = await run(
            FakeUpstream([body.encode()]), Provider.OPENAI, sink, metrics, report_decode_errors=False
        )

        assert result.decode_failures == 1
        assert sink.errors == []
        assert sink.kinds == ["text_delta", "stream_end"]

    @pytest.mark.asyncio
    async def test_invalid_utf8_chunk_is_skipped(self, sink, metrics):
        chunks = [
            sse({"choices": [{"delta": {"content": "a"}}]}).encode(),
            b"\xff\xfe",
            sse({"choices": [{"delta": {"content": "b"}}]}).encode(),
        ]
        result = await run(FakeUpstream(chunks), Provider.OPENAI, sink, metrics)

        assert result.state is DriverState.ENDED
        assert texts(sink) == ["a", "b"]
        assert len(sink.errors) == 1
        assert "UTF-8" in sink.errors[0]

    @pytest.mark.asyncio
    async def test_anthropic_error_event_does_not_end_session(self, sink, metrics):
        body = (
            sse({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})
            + sse({"type": "message_stop"})
        )
        result = await run(FakeUpstream([body.encode()]), Provider.ANTHROPIC, sink, metrics)

        assert result.state is DriverState.ENDED
        assert sink.errors == ["Anthropic API Error Event: [overloaded_error] Overloaded"]
        assert sink.channels[-1] is Channel.END


# ============================================================
# Fatal Failures
# ============================================================

class TestFatalFailures:
    """Test failures that end the session."""

    @pytest.mark.asyncio
    async def test_non_success_status(self, sink, metrics, registry):
        upstream = FakeUpstream(status_code=401, error_body={"error": {"message": "invalid x-api-key"}})

        with pytest.raises(UpstreamStatusError) as exc_info:
            await run(upstream, Provider.ANTHROPIC, sink, metrics)

        error = exc_info.value
        assert error.upstream_status == 401
        assert "invalid x-api-key" in error.body
        assert sink.channels == [Channel.ERROR]
        assert "401" in sink.errors[0]
        assert "invalid x-api-key" in sink.errors[0]
        assert registry.get_sample_value(
            "streambridge_sessions_total", {"provider": "anthropic", "outcome": "errored"}
        ) == 1

    @pytest.mark.asyncio
    async def test_connection_failure(self, sink, metrics):
        upstream = FakeUpstream(connect_error=httpx.ConnectError("connection refused"))

        with pytest.raises(TransportError) as exc_info:
            await run(upstream, Provider.OPENAI, sink, metrics)

        assert exc_info.value.error.code == "connection_error"
        assert sink.channels == [Channel.ERROR]

    @pytest.mark.asyncio
    async def test_read_failure_mid_stream(self, sink, metrics):
        """Text already delivered stays delivered; one error, no end."""
        upstream = FakeUpstream(
            [sse({"choices": [{"delta": {"content": "partial"}}]}).encode()],
            fail_with=httpx.ReadError("connection reset"),
        )

        with pytest.raises(TransportError) as exc_info:
            await run(upstream, Provider.OPENAI, sink, metrics)

        assert exc_info.value.error.code == "read_error"
        assert texts(sink) == ["partial"]
        assert sink.channels == [Channel.CHUNK, Channel.ERROR]
        assert Channel.END not in sink.channels

    @pytest.mark.asyncio
    async def test_read_timeout(self, sink, metrics):
        upstream = FakeUpstream([], fail_with=httpx.ReadTimeout("timed out"))

        with pytest.raises(TransportError) as exc_info:
            await run(upstream, Provider.ANTHROPIC, sink, metrics)

        assert exc_info.value.error.code == "timeout"
        assert len(sink.errors) == 1

    @pytest.mark.asyncio
    async def test_sink_failure(self, metrics):
        sink = RecordingSink(fail_from=2)
        upstream = FakeUpstream([openai_body()])

        with pytest.raises(EmitError):
            await run(upstream, Provider.OPENAI, sink, metrics)

        # first text delivered; best-effort error delivery also failed
        assert sink.kinds == ["text_delta"]
        assert sink.attempts == 3


# ============================================================
# Cancellation
# ============================================================

class TestCancellation:
    """Test consumer-initiated cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_event(self, metrics, registry):
        release = asyncio.Event()
        cancel = asyncio.Event()
        upstream = FakeUpstream(
            [sse({"choices": [{"delta": {"content": "first"}}]}).encode()],
            release=release,
        )
        sink = RecordingSink(on_send=lambda record: cancel.set())

        async with upstream.client() as client:
            driver = StreamDriver(client, metrics=metrics)
            result = await driver.run(request_for(Provider.OPENAI), sink, cancel_event=cancel)

        assert result.cancelled is True
        assert result.state is DriverState.ERRORED
        assert texts(sink) == ["first"]
        assert sink.errors == []
        assert Channel.END not in sink.channels
        assert upstream.streams[0].closed is True
        assert registry.get_sample_value(
            "streambridge_sessions_total", {"provider": "openai", "outcome": "cancelled"}
        ) == 1

    @pytest.mark.asyncio
    async def test_task_cancellation(self, sink, metrics):
        release = asyncio.Event()
        upstream = FakeUpstream(
            [sse({"choices": [{"delta": {"content": "first"}}]}).encode()],
            release=release,
        )

        async with upstream.client() as client:
            driver = StreamDriver(client, metrics=metrics)
            task = asyncio.create_task(driver.run(request_for(Provider.OPENAI), sink))
            while not sink.records:
                await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert sink.kinds == ["text_delta"]
        assert upstream.streams[0].closed is True

    @pytest.mark.asyncio
    async def test_cancel_event_after_completion_is_ignored(self, sink, metrics):
        cancel = asyncio.Event()
        async with FakeUpstream([openai_body()]).client() as client:
            result = await StreamDriver(client, metrics=metrics).run(
                request_for(Provider.OPENAI), sink, cancel_event=cancel
            )
        cancel.set()

        assert result.cancelled is False
        assert result.state is DriverState.ENDED
