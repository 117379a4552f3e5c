from collections.abc import Mapping
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "https://api.deepgram.com/v1"
VALID_MODELS = ("nova-3", "nova-2", "nova", "enhanced", "base")
MIN_TIMEOUT_SECONDS = 1.0
MAX_TIMEOUT_SECONDS = 300.0


def normalize_base_url(base_url: str | None, fallback: str = DEFAULT_BASE_URL) -> str:
    raw = (base_url or "").strip() or fallback
    return raw.rstrip("/")


class DeepgramSTTConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DEEPGRAM_", extra="ignore")

    api_key: str | None = None
    api_key_file: str = ""
    base_url: str = DEFAULT_BASE_URL
    model: str = "nova-3"
    language: str = "en"
    word_timestamps: bool = False
    timeout: float = 30.0

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any] | None) -> "DeepgramSTTConfig":
        # Blank host values must not shadow the environment.
        explicit = {
            key: value
            for key, value in (values or {}).items()
            if value is not None and value != ""
        }
        return cls(**explicit)

    @property
    def resolved_base_url(self) -> str:
        return normalize_base_url(self.base_url)

    def resolve_api_key(self) -> str:
        return (self.api_key or "").strip() or self.read_secret(self.api_key_file)

    def read_secret(self, path: str) -> str:
        if not path:
            return ""
        try:
            with open(path) as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""
