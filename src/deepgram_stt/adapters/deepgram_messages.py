from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Alternative(_Payload):
    transcript: str | None = None
    confidence: float | None = None

    @property
    def text(self) -> str:
        return (self.transcript or "").strip()


class Channel(_Payload):
    alternatives: list[Alternative] = Field(default_factory=list)

    @property
    def first_alternative(self) -> Alternative | None:
        return self.alternatives[0] if self.alternatives else None


class ResultsEvent(_Payload):
    type: Literal["Results"]
    channel: Channel = Field(default_factory=Channel)
    is_final: bool | None = False
    speech_final: bool | None = False

    @property
    def final(self) -> bool:
        return bool(self.is_final or self.speech_final)


class UtteranceEndEvent(_Payload):
    type: Literal["UtteranceEnd"]


class SpeechStartedEvent(_Payload):
    type: Literal["SpeechStarted"]


class MetadataEvent(_Payload):
    type: Literal["Metadata"]


StreamEvent = Annotated[
    ResultsEvent | UtteranceEndEvent | SpeechStartedEvent | MetadataEvent,
    Field(discriminator="type"),
]

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


class BatchResults(_Payload):
    channels: list[Channel] = Field(default_factory=list)


class BatchResponse(_Payload):
    results: BatchResults | None = None

    @property
    def transcript(self) -> str:
        if self.results is None or not self.results.channels:
            return ""
        alternative = self.results.channels[0].first_alternative
        return alternative.text if alternative is not None else ""
