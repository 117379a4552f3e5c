from collections.abc import Mapping
from typing import Any, Protocol

from deepgram_stt.ports.transcriber import STTProvider


class PluginLogger(Protocol):
    def info(self, msg: str, *args: Any) -> None: ...
    def error(self, msg: str, *args: Any) -> None: ...


class PluginContext(Protocol):
    log: PluginLogger

    def get_config(self) -> Mapping[str, Any]: ...
    def register_stt_provider(self, provider: STTProvider) -> None: ...
