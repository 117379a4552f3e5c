import asyncio
import json
import logging
import time
from urllib.parse import urlencode, urlsplit, urlunsplit

from pydantic import ValidationError
from websockets.asyncio.client import ClientConnection, connect as websocket_connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException
from websockets.protocol import State

from deepgram_stt.adapters.deepgram_messages import ResultsEvent, UtteranceEndEvent, stream_event_adapter
from deepgram_stt.config import DEFAULT_BASE_URL
from deepgram_stt.domain.session_state import SessionState, validate_transition
from deepgram_stt.errors import (
    SendError,
    SessionClosedError,
    SessionConnectionError,
    StreamError,
    TranscriptTimeoutError,
    TranscriptWaitError,
)
from deepgram_stt.ports.transcriber import PartialCallback, TranscriptChunk, TranscriptionOptions

logger = logging.getLogger(__name__)

CLOSE_STREAM_MESSAGE = json.dumps({"type": "CloseStream"})
UTTERANCE_END_MS = "1000"
DEFAULT_WAIT_TIMEOUT = 30.0


def build_streaming_url(base_url: str, model: str, options: TranscriptionOptions) -> str:
    scheme, netloc, path, _, _ = urlsplit(base_url)
    ws_scheme = {"https": "wss", "http": "ws"}.get(scheme, scheme)

    params = {"model": model}
    language = (options.language or "").strip()
    if language:
        params["language"] = language
    params["interim_results"] = "true"
    params["punctuate"] = "true"
    params["smart_format"] = "true"
    if options.vad_enabled:
        params["vad_events"] = "true"
    # UtteranceEnd events are only emitted when utterance_end_ms is set.
    if options.vad_enabled or options.word_timestamps:
        params["utterance_end_ms"] = UTTERANCE_END_MS

    return urlunsplit((ws_scheme, netloc, f"{path}/listen", urlencode(params), ""))


class DeepgramStreamingSession:
    """One live Deepgram streaming conversation.

    Audio goes out through ``send_audio``; every transcript fragment is pushed
    to the ``on_partial`` observer in arrival order. Final fragments are joined
    into the transcript returned by ``wait_for_transcript`` once the session is
    finalized, either by an UtteranceEnd event (VAD sessions) or by the backend
    closing the socket after ``end_audio``.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        options: TranscriptionOptions,
        base_url: str = DEFAULT_BASE_URL,
        open_timeout: float = 10.0,
        connect=websocket_connect,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._options = options
        self._url = build_streaming_url(base_url, model, options)
        self._open_timeout = open_timeout
        self._connect = connect

        self._ws: ClientConnection | None = None
        self._listener_task: asyncio.Task | None = None
        self._state = SessionState.CONNECTING
        self._segments: list[str] = []
        self._transcript: str | None = None
        self._ended = False
        self._partial_callback: PartialCallback | None = None
        self._waiter: asyncio.Future[str] | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def url(self) -> str:
        return self._url

    @property
    def options(self) -> TranscriptionOptions:
        return self._options

    @property
    def accumulated_text(self) -> str:
        return " ".join(self._segments)

    async def connect(self) -> None:
        if self._state is not SessionState.CONNECTING:
            raise SessionConnectionError(f"Cannot connect a session in state {self._state.name}")

        try:
            ws = await self._connect(
                self._url,
                additional_headers={"Authorization": f"Token {self._api_key}"},
                open_timeout=self._open_timeout,
            )
        except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
            if self._state is SessionState.CONNECTING:
                self._transition(SessionState.ERRORED)
            raise SessionConnectionError(f"Deepgram WebSocket connection failed: {exc}") from exc

        # close() may have run while the handshake was in flight.
        if self._state is not SessionState.CONNECTING:
            try:
                await ws.close()
            except Exception:
                logger.debug("Error while closing Deepgram socket", exc_info=True)
            raise SessionConnectionError("Session closed while connecting")

        self._ws = ws
        self._transition(SessionState.OPEN)
        self._listener_task = asyncio.create_task(self._listen(self._ws))
        logger.info("Deepgram session started (model=%s)", self._model)

    async def send_audio(self, chunk: bytes) -> None:
        if not self._is_open():
            raise SendError("Deepgram session not connected")
        if self._ended:
            raise SendError("Session ended, cannot send more audio")
        try:
            await self._ws.send(chunk)
        except ConnectionClosed as exc:
            raise SendError(f"Deepgram socket closed while sending audio: {exc}") from exc

    async def end_audio(self) -> None:
        if self._ended:
            return
        self._ended = True
        if self._state is SessionState.OPEN:
            self._transition(SessionState.END_SIGNALED)

        if self._is_open():
            try:
                await self._ws.send(CLOSE_STREAM_MESSAGE)
            except ConnectionClosed:
                logger.warning("Deepgram socket closed before CloseStream was sent")
        logger.debug("End of audio signaled")

    def on_partial(self, callback: PartialCallback) -> None:
        self._partial_callback = callback

    async def wait_for_transcript(self, timeout: float = DEFAULT_WAIT_TIMEOUT) -> str:
        if self._transcript is not None:
            return self._transcript
        if self._waiter is not None and not self._waiter.done():
            raise TranscriptWaitError("A transcript wait is already pending for this session")
        if self._state in (SessionState.CLOSED, SessionState.ERRORED):
            raise SessionClosedError(f"Session is {self._state.name.lower()}, no transcript will arrive")

        waiter: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._waiter = waiter
        try:
            return await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError:
            logger.warning("No final transcript within %.1fs, closing session", timeout)
            await self.close()
            raise TranscriptTimeoutError("Transcript timeout") from None
        finally:
            if self._waiter is waiter:
                self._waiter = None

    async def close(self) -> None:
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_exception(
                SessionClosedError("Session closed before the transcript was finalized")
            )
        self._ended = True
        if self._state is not SessionState.CLOSED:
            self._transition(SessionState.CLOSED)

        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except Exception:
                logger.debug("Error while closing Deepgram socket", exc_info=True)

        task, self._listener_task = self._listener_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Deepgram session closed")

    def _is_open(self) -> bool:
        return (
            self._ws is not None
            and self._ws.state is State.OPEN
            and self._state not in (SessionState.CLOSED, SessionState.ERRORED)
        )

    def _transition(self, target: SessionState) -> None:
        validate_transition(self._state, target)
        logger.debug("Session: %s -> %s", self._state.name, target.name)
        self._state = target

    async def _listen(self, ws: ClientConnection) -> None:
        try:
            async for raw in ws:
                self._handle_message(raw)
        except ConnectionClosedError as exc:
            self._handle_transport_error(exc)
        finally:
            self._handle_transport_closed()

    def _handle_message(self, raw: str | bytes) -> None:
        try:
            message = stream_event_adapter.validate_json(raw)
        except ValidationError as exc:
            if exc.errors()[0]["type"] == "union_tag_invalid":
                logger.debug("Ignoring Deepgram message: %r", raw[:200])
            else:
                logger.warning("Failed to parse Deepgram message: %r", raw[:200])
            return

        if isinstance(message, ResultsEvent):
            self._handle_results(message)
        elif isinstance(message, UtteranceEndEvent):
            if self._options.vad_enabled and self._ended:
                logger.debug("Utterance end after end of audio, finalizing")
                self._finalize()
        else:
            logger.debug("Ignoring Deepgram %s message", message.type)

    def _handle_results(self, message: ResultsEvent) -> None:
        alternative = message.channel.first_alternative
        if alternative is None:
            return
        text = alternative.text
        if not text:
            return

        is_final = message.final
        confidence = alternative.confidence

        if is_final:
            if self._transcript is None:
                self._segments.append(text)
            logger.debug("Transcript: %s", text)
        else:
            logger.debug("Transcript (interim): %s", text)

        if self._partial_callback is None:
            return
        chunk = TranscriptChunk(
            text=text,
            is_final=is_final,
            confidence=confidence,
            timestamp=time.time(),
        )
        try:
            self._partial_callback(chunk)
        except Exception:
            logger.exception("Partial transcript callback failed")

    def _handle_transport_error(self, exc: Exception) -> None:
        if self._state is SessionState.CLOSED:
            return
        error = StreamError(f"Deepgram WebSocket error: {exc}")
        if self._state in (SessionState.OPEN, SessionState.END_SIGNALED):
            self._transition(SessionState.ERRORED)
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_exception(error)
        else:
            logger.error("%s", error)

    def _handle_transport_closed(self) -> None:
        if self._state is SessionState.CLOSED:
            return
        self._ws = None
        if self._ended:
            self._finalize()
        elif self._waiter is not None and not self._waiter.done():
            logger.warning("Deepgram closed the stream before end of audio")
        self._transition(SessionState.CLOSED)
        logger.info("Deepgram stream closed by server")

    def _finalize(self) -> None:
        if self._transcript is not None or self._state is not SessionState.END_SIGNALED:
            return
        self._transcript = self.accumulated_text.strip()
        self._transition(SessionState.FINALIZED)
        if self._waiter is not None and not self._waiter.done():
            self._waiter.set_result(self._transcript)
        logger.info("Utterance: %s", self._transcript)
