import asyncio
import logging

import httpx
from pydantic import ValidationError
from websockets.asyncio.client import connect as websocket_connect

from deepgram_stt.adapters.deepgram_messages import BatchResponse
from deepgram_stt.adapters.deepgram_session import DeepgramStreamingSession
from deepgram_stt.config import (
    MAX_TIMEOUT_SECONDS,
    MIN_TIMEOUT_SECONDS,
    VALID_MODELS,
    DeepgramSTTConfig,
)
from deepgram_stt.errors import ConfigError, TranscriptionError, truncate_detail
from deepgram_stt.ports.transcriber import ProviderMetadata, TranscriptionOptions

logger = logging.getLogger(__name__)

HEALTH_CHECK_TIMEOUT = 5.0
API_KEY_ENV = "DEEPGRAM_API_KEY"

METADATA = ProviderMetadata(
    name="deepgram-stt",
    version="1.0.0",
    type="stt",
    description="Cloud STT using Deepgram's nova-3 model",
    capabilities=("batch", "streaming", "language-detection"),
    local=False,
    homepage="https://deepgram.com",
    required_env=(API_KEY_ENV,),
    primary_env=API_KEY_ENV,
)


async def _read_error_detail(response: httpx.Response) -> str | None:
    try:
        await response.aread()
        return truncate_detail(response.text)
    except httpx.HTTPError:
        return None


class DeepgramProvider:
    metadata = METADATA

    def __init__(
        self,
        config: DeepgramSTTConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        connect=websocket_connect,
    ) -> None:
        self._api_key = config.resolve_api_key()
        if not self._api_key:
            raise ConfigError(f"{API_KEY_ENV} is required")
        self._config = config
        self._base_url = config.resolved_base_url
        self._transport = transport
        self._connect = connect
        self._defaults = TranscriptionOptions(
            language=config.language,
            word_timestamps=config.word_timestamps,
        )

    @property
    def config(self) -> DeepgramSTTConfig:
        return self._config

    @property
    def base_url(self) -> str:
        return self._base_url

    def validate_config(self) -> None:
        if not self._api_key:
            raise ConfigError(f"{API_KEY_ENV} is required")

        if self._config.model not in VALID_MODELS:
            raise ConfigError(
                f"Invalid model: {self._config.model}. Valid: {', '.join(VALID_MODELS)}"
            )

        timeout = self._config.timeout
        if not MIN_TIMEOUT_SECONDS <= timeout <= MAX_TIMEOUT_SECONDS:
            raise ConfigError(
                f"Invalid timeout: {timeout}s "
                f"(must be {MIN_TIMEOUT_SECONDS:g}-{MAX_TIMEOUT_SECONDS:g})"
            )

    async def transcribe(
        self, audio: bytes, options: TranscriptionOptions | None = None
    ) -> str:
        effective = self._defaults.merged(options)

        params = {"model": self._config.model}
        language = (effective.language or "").strip()
        if language:
            params["language"] = language
        params["punctuate"] = "true"
        params["smart_format"] = "true"
        if effective.word_timestamps:
            params["utterances"] = "true"

        headers = {
            "Authorization": f"Token {self._api_key}",
            "Content-Type": "application/octet-stream",
        }

        try:
            # httpx timeouts bound each phase; this bounds the whole request.
            async with (
                asyncio.timeout(self._config.timeout),
                self._client(self._config.timeout) as client,
            ):
                response = await client.post(
                    f"{self._base_url}/listen",
                    params=params,
                    headers=headers,
                    content=audio,
                )
                if not response.is_success:
                    detail = await _read_error_detail(response)
                    suffix = f": {detail}" if detail else ""
                    raise TranscriptionError(
                        f"Deepgram transcription failed (HTTP {response.status_code}){suffix}",
                        status_code=response.status_code,
                        detail=detail,
                    )
                payload = response.json()
        except (httpx.TimeoutException, TimeoutError) as exc:
            raise TranscriptionError(
                f"Deepgram transcription timed out after {self._config.timeout:g}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise TranscriptionError(f"Deepgram request failed: {exc}") from exc
        except ValueError as exc:
            raise TranscriptionError("Deepgram returned invalid JSON") from exc

        try:
            transcript = BatchResponse.model_validate(payload).transcript
        except ValidationError:
            transcript = ""
        if not transcript:
            raise TranscriptionError("Deepgram response missing transcript")

        logger.debug("Batch transcript: %s", transcript)
        return transcript

    async def create_session(
        self, options: TranscriptionOptions | None = None
    ) -> DeepgramStreamingSession:
        session = DeepgramStreamingSession(
            api_key=self._api_key,
            model=self._config.model,
            options=self._defaults.merged(options),
            base_url=self._base_url,
            open_timeout=self._config.timeout,
            connect=self._connect,
        )
        await session.connect()
        return session

    async def health_check(self) -> bool:
        try:
            async with self._client(HEALTH_CHECK_TIMEOUT) as client:
                response = await client.get(
                    f"{self._base_url}/listen",
                    params={"model": self._config.model},
                    headers={"Authorization": f"Token {self._api_key}"},
                )
        except Exception as exc:
            logger.warning("Deepgram health check failed: %s", exc)
            return False

        # GET on /listen answers 405 once auth passes.
        healthy = response.status_code == 405 or response.is_success
        if not healthy:
            logger.warning("Deepgram health check returned HTTP %d", response.status_code)
        return healthy

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=self._transport)
