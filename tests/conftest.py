import asyncio
import json
from collections.abc import Callable, Mapping
from typing import Any

import httpx
import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.protocol import State

from deepgram_stt.config import DeepgramSTTConfig

TEST_API_KEY = "test-key"
DEEPGRAM_ENV_VARS = (
    "DEEPGRAM_API_KEY",
    "DEEPGRAM_API_KEY_FILE",
    "DEEPGRAM_BASE_URL",
    "DEEPGRAM_MODEL",
    "DEEPGRAM_LANGUAGE",
    "DEEPGRAM_WORD_TIMESTAMPS",
    "DEEPGRAM_TIMEOUT",
)

_CLOSED = object()


async def settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def results_message(
    text: str,
    is_final: bool = False,
    speech_final: bool = False,
    confidence: float = 0.9,
) -> str:
    return json.dumps(
        {
            "type": "Results",
            "channel": {"alternatives": [{"transcript": text, "confidence": confidence}]},
            "is_final": is_final,
            "speech_final": speech_final,
        }
    )


def utterance_end_message() -> str:
    return json.dumps({"type": "UtteranceEnd", "channel": [0], "last_word_end": 1.5})


class FakeWebSocket:
    def __init__(self) -> None:
        self.state = State.OPEN
        self.sent: list[str | bytes] = []
        self.close_calls = 0
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str | bytes) -> None:
        if self.state is not State.OPEN:
            raise ConnectionClosedOK(None, None)
        self.sent.append(message)

    async def close(self) -> None:
        self.close_calls += 1
        if self.state is State.OPEN:
            self.state = State.CLOSED
            self._inbox.put_nowait(_CLOSED)

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> str | bytes:
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    def push(self, message: str | bytes) -> None:
        self._inbox.put_nowait(message)

    def server_close(self) -> None:
        self.state = State.CLOSED
        self._inbox.put_nowait(_CLOSED)

    def fail(self) -> None:
        self.state = State.CLOSED
        self._inbox.put_nowait(ConnectionClosedError(None, None))


class FakeConnector:
    def __init__(self, websocket: FakeWebSocket | None = None, error: Exception | None = None) -> None:
        self.websocket = websocket or FakeWebSocket()
        self.error = error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def __call__(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.websocket


class RecordingHandler:
    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]) -> None:
        self._respond = respond
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._respond(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


class FakeLog:
    def __init__(self) -> None:
        self.infos: list[str] = []
        self.errors: list[str] = []

    def info(self, msg: str, *args: Any) -> None:
        self.infos.append(msg % args if args else msg)

    def error(self, msg: str, *args: Any) -> None:
        self.errors.append(msg % args if args else msg)


class FakePluginContext:
    def __init__(self, config: Mapping[str, Any] | None = None) -> None:
        self._config = dict(config or {})
        self.log = FakeLog()
        self.registered: list[Any] = []

    def get_config(self) -> Mapping[str, Any]:
        return self._config

    def register_stt_provider(self, provider: Any) -> None:
        self.registered.append(provider)


def transcript_payload(text: str | None, confidence: float = 0.98) -> dict:
    alternative: dict[str, Any] = {"confidence": confidence}
    if text is not None:
        alternative["transcript"] = text
    return {"results": {"channels": [{"alternatives": [alternative]}]}}


@pytest.fixture(autouse=True)
def clean_deepgram_env(monkeypatch):
    for name in DEEPGRAM_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config() -> DeepgramSTTConfig:
    return DeepgramSTTConfig(api_key=TEST_API_KEY)


@pytest.fixture
def fake_websocket() -> FakeWebSocket:
    return FakeWebSocket()


@pytest.fixture
def fake_connector(fake_websocket) -> FakeConnector:
    return FakeConnector(fake_websocket)
