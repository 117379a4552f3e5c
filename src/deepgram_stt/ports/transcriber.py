from collections.abc import Callable
from dataclasses import dataclass, field, fields, replace
from typing import Protocol


@dataclass(frozen=True)
class TranscriptChunk:
    text: str
    is_final: bool
    confidence: float | None = None
    timestamp: float = 0.0


@dataclass(frozen=True)
class TranscriptionOptions:
    language: str | None = None
    word_timestamps: bool | None = None
    vad_enabled: bool | None = None

    def merged(self, overrides: "TranscriptionOptions | None") -> "TranscriptionOptions":
        if overrides is None:
            return self
        changes = {}
        for f in fields(overrides):
            value = getattr(overrides, f.name)
            # Blank strings fall back to the default like None.
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            changes[f.name] = value
        return replace(self, **changes)


@dataclass(frozen=True)
class ProviderMetadata:
    name: str
    version: str
    type: str
    description: str
    capabilities: tuple[str, ...] = ()
    local: bool = False
    homepage: str = ""
    required_env: tuple[str, ...] = field(default_factory=tuple)
    primary_env: str = ""


PartialCallback = Callable[[TranscriptChunk], None]


class STTSession(Protocol):
    async def send_audio(self, chunk: bytes) -> None: ...
    async def end_audio(self) -> None: ...
    def on_partial(self, callback: PartialCallback) -> None: ...
    async def wait_for_transcript(self, timeout: float = 30.0) -> str: ...
    async def close(self) -> None: ...


class STTProvider(Protocol):
    metadata: ProviderMetadata

    def validate_config(self) -> None: ...
    async def transcribe(self, audio: bytes, options: TranscriptionOptions | None = None) -> str: ...
    async def create_session(self, options: TranscriptionOptions | None = None) -> STTSession: ...
    async def health_check(self) -> bool: ...
