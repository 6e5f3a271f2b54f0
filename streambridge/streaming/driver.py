"""
streambridge - Transport Driver

Runs one streaming session: issues the upstream request, feeds response
chunks through framing, decoding and emission, and decides which failures
end the session.

States:
    CONNECTING -> STREAMING -> DRAINING -> ENDED
    CONNECTING | STREAMING -> ERRORED (fatal failure or cancellation)

Failure policy:
- Connection failure or non-2xx status: one StreamError, ERRORED, raise
- Read failure or timeout while streaming: one StreamError, ERRORED, raise
- Sink failure: best-effort StreamError, ERRORED, raise EmitError
- Bad UTF-8 chunk or malformed payload: logged and reported as a
  StreamError, streaming continues
- Cancellation: no StreamEnd and no error event
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional

import httpx

from ..core.errors import (
    BridgeException,
    DecodeFailure,
    EmitError,
    TransportError,
    UpstreamStatusError,
)
from ..core.models import Provider, StreamEnd, StreamError
from ..observability.logging import LogContext, get_logger
from ..observability.metrics import StreamMetrics, get_metrics
from ..observability.tracing import mark_span_error, trace_stream_session
from .decoders import SessionDecoder
from .emitter import ConsumerSink, EventEmitter
from .framing import EventBlock, FrameReassembler


logger = get_logger(__name__)

# Upstream error bodies are included in the error event up to this size
MAX_ERROR_BODY_CHARS = 2000


class DriverState(str, Enum):
    """Session lifecycle states."""
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DRAINING = "draining"
    ENDED = "ended"
    ERRORED = "errored"


TERMINAL_STATES = {DriverState.ENDED, DriverState.ERRORED}


@dataclass
class UpstreamRequest:
    """A fully built provider request."""
    provider: Provider
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Dict[str, Any] = field(default_factory=dict)
    method: str = "POST"


@dataclass
class SessionResult:
    """Summary of a finished session."""
    session_id: str
    provider: Provider
    state: DriverState
    events_emitted: int = 0
    decode_failures: int = 0
    bytes_received: int = 0
    duration_seconds: float = 0.0
    cancelled: bool = False

    @property
    def outcome(self) -> str:
        if self.cancelled:
            return "cancelled"
        return self.state.value


class StreamSession:
    """
    State owned by one session: buffer, decoder and emitter.

    Never shared between tasks.
    """

    def __init__(
        self,
        request: UpstreamRequest,
        sink: ConsumerSink,
        metrics: StreamMetrics,
        session_id: Optional[str] = None,
    ):
        self.session_id = session_id or f"sess_{uuid.uuid4().hex[:12]}"
        self.request = request
        self.provider = request.provider
        self.state = DriverState.CONNECTING
        self.framer = FrameReassembler()
        self.decoder = SessionDecoder(request.provider)
        self.emitter = EventEmitter(sink, request.provider.value, metrics)
        self.decode_failures = 0
        self.cancelled = False
        self.fatal_reported = False
        self.started_at = time.monotonic()

    def transition(self, state: DriverState) -> None:
        if self.state in TERMINAL_STATES:
            return
        logger.info(f"Session state {self.state.value} -> {state.value}")
        self.state = state

    def release(self) -> None:
        """Drop buffered text; the session can not be resumed."""
        pending = self.framer.pending_text
        if pending.strip():
            logger.debug("Discarding incomplete trailing frame", pending_chars=len(pending))
        self.framer.reset()

    def result(self) -> SessionResult:
        return SessionResult(
            session_id=self.session_id,
            provider=self.provider,
            state=self.state,
            events_emitted=self.emitter.emitted,
            decode_failures=self.decode_failures,
            bytes_received=self.framer.bytes_received,
            duration_seconds=time.monotonic() - self.started_at,
            cancelled=self.cancelled,
        )


class StreamDriver:
    """
    Drives streaming sessions over a shared httpx client.

    Usage:
        driver = StreamDriver(client)
        result = await driver.run(request, sink)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        metrics: Optional[StreamMetrics] = None,
        report_decode_errors: bool = True,
    ):
        self.client = client
        self.metrics = metrics or get_metrics()
        self.report_decode_errors = report_decode_errors

    async def run(
        self,
        request: UpstreamRequest,
        sink: ConsumerSink,
        cancel_event: Optional[asyncio.Event] = None,
        session_id: Optional[str] = None,
    ) -> SessionResult:
        """
        Run one session to completion.

        Cancelling the calling task aborts the session and re-raises
        CancelledError. Setting cancel_event aborts it and returns a result
        with cancelled=True.

        Raises:
            TransportError: Connection, read or timeout failure
            UpstreamStatusError: Non-2xx upstream response
            EmitError: The sink stopped accepting records
        """
        session = StreamSession(request, sink, self.metrics, session_id)

        if cancel_event is None:
            return await self._run_session(session)

        task = asyncio.ensure_future(self._run_session(session))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            await asyncio.gather(task, waiter, return_exceptions=True)
            raise

        if task in done:
            waiter.cancel()
            return task.result()

        logger.info("Cancellation requested", session_id=session.session_id)
        task.cancel()
        outcome = (await asyncio.gather(task, return_exceptions=True))[0]
        if isinstance(outcome, SessionResult):
            return outcome
        if isinstance(outcome, BridgeException):
            raise outcome
        return session.result()

    async def _run_session(self, session: StreamSession) -> SessionResult:
        provider = session.provider.value
        caller = LogContext.get_current()
        token = LogContext.set_current(
            LogContext(
                session_id=session.session_id,
                request_id=caller.request_id if caller else "",
                provider=provider,
            )
        )
        try:
            with trace_stream_session(provider, session.session_id) as span, \
                    self.metrics.track_active_session(provider):
                try:
                    await self._drive(session)
                except asyncio.CancelledError:
                    session.cancelled = True
                    session.transition(DriverState.ERRORED)
                    logger.info("Session cancelled")
                    raise
                except BridgeException as e:
                    session.transition(DriverState.ERRORED)
                    mark_span_error(span, e)
                    raise
                finally:
                    session.release()
                    result = session.result()
                    span.set_attribute("stream.outcome", result.outcome)
                    span.set_attribute("stream.events_emitted", result.events_emitted)
                    self.metrics.record_session(provider, result.outcome, result.duration_seconds)
                    logger.info(
                        "Session finished",
                        outcome=result.outcome,
                        events_emitted=result.events_emitted,
                        decode_failures=result.decode_failures,
                        bytes_received=result.bytes_received,
                    )
                return result
        finally:
            LogContext.reset(token)

    async def _drive(self, session: StreamSession) -> None:
        try:
            await self._connect_and_stream(session)
            session.transition(DriverState.DRAINING)
            await session.emitter.emit(StreamEnd())
        except EmitError as e:
            logger.error(f"Consumer sink failed: {e}")
            await self._report_fatal(session, e)
            raise
        session.transition(DriverState.ENDED)

    async def _connect_and_stream(self, session: StreamSession) -> None:
        request = session.request
        provider = session.provider.value
        logger.info(f"Starting {request.method} {request.url}")

        try:
            async with self.client.stream(
                request.method,
                request.url,
                headers=request.headers,
                json=request.body,
            ) as response:
                if not response.is_success:
                    body = await self._read_error_body(response)
                    error = UpstreamStatusError(
                        provider, response.status_code, body, session.session_id
                    )
                    logger.error(f"{provider} API request failed", status_code=response.status_code)
                    await self._report_fatal(session, error)
                    raise error

                logger.info(f"{provider} API request successful", status_code=response.status_code)
                session.transition(DriverState.STREAMING)
                await self._stream_body(session, response)

        except httpx.HTTPError as e:
            error = self._transport_error(session, e)
            logger.error(error.error.message)
            await self._report_fatal(session, error)
            raise error from e

    async def _stream_body(self, session: StreamSession, response: httpx.Response) -> None:
        """Read the body strictly in order; each chunk is fully emitted before the next read."""
        provider = session.provider.value

        async for chunk in response.aiter_bytes():
            self.metrics.record_bytes(provider, len(chunk))
            logger.debug("Received chunk", size=len(chunk))

            try:
                blocks = session.framer.ingest(chunk)
            except DecodeFailure as e:
                await self._recover(session, e)
                continue

            await self._process_blocks(session, blocks)

        await self._process_blocks(session, session.framer.flush())

    async def _process_blocks(self, session: StreamSession, blocks: Iterable[EventBlock]) -> None:
        for block in blocks:
            try:
                events = session.decoder.process(block)
            except DecodeFailure as e:
                await self._recover(session, e)
                continue

            for event in events:
                await session.emitter.emit(event)

    async def _recover(self, session: StreamSession, failure: DecodeFailure) -> None:
        """Absorb a recoverable failure; only an emit failure escapes."""
        session.decode_failures += 1
        self.metrics.record_decode_failure(session.provider.value, failure.error.code)
        logger.warning(failure.error.message, code=failure.error.code, **failure.error.details)
        if self.report_decode_errors:
            await session.emitter.emit(StreamError(failure.error.message))

    async def _report_fatal(self, session: StreamSession, error: BridgeException) -> None:
        """Emit the single error event of a failing session, if the sink still accepts it."""
        if session.fatal_reported or session.emitter.ended:
            return
        session.fatal_reported = True
        try:
            await session.emitter.emit(StreamError(error.error.message))
        except EmitError as emit_error:
            logger.warning(f"Could not deliver error event: {emit_error}")

    async def _read_error_body(self, response: httpx.Response) -> str:
        try:
            body = (await response.aread()).decode("utf-8", errors="replace")
        except httpx.HTTPError:
            return "Failed to read error body"
        return body[:MAX_ERROR_BODY_CHARS]

    def _transport_error(self, session: StreamSession, error: httpx.HTTPError) -> TransportError:
        provider = session.provider.value
        if isinstance(error, httpx.TimeoutException):
            phase = "connecting to" if session.state is DriverState.CONNECTING else "reading"
            return TransportError(
                provider,
                f"Timed out {phase} {provider} stream: {error!r}",
                session.session_id,
                code="timeout",
            )
        if session.state is DriverState.CONNECTING:
            return TransportError(
                provider,
                f"{provider} request failed: {error!r}",
                session.session_id,
                code="connection_error",
            )
        return TransportError(
            provider,
            f"Error reading {provider} stream chunk: {error!r}",
            session.session_id,
            code="read_error",
        )
