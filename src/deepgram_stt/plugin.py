import logging

from pydantic import ValidationError

from deepgram_stt.adapters.deepgram_provider import DeepgramProvider
from deepgram_stt.config import DeepgramSTTConfig
from deepgram_stt.errors import ConfigError
from deepgram_stt.ports.plugin import PluginContext

logger = logging.getLogger(__name__)


class DeepgramSTTPlugin:
    name = "voice-deepgram-stt"
    version = "1.0.0"
    description = "Cloud STT using Deepgram's nova-3 model"

    def __init__(self) -> None:
        self.provider: DeepgramProvider | None = None

    async def init(self, ctx: PluginContext) -> None:
        try:
            try:
                config = DeepgramSTTConfig.from_mapping(ctx.get_config())
            except ValidationError as exc:
                raise ConfigError(f"Invalid Deepgram configuration: {exc}") from exc

            provider = DeepgramProvider(config)
            provider.validate_config()
            ctx.register_stt_provider(provider)
        except Exception as exc:
            ctx.log.error(f"Failed to register Deepgram STT: {exc}")
            raise

        self.provider = provider
        ctx.log.info("Deepgram STT provider registered")

    async def shutdown(self) -> None:
        # Sessions are owned by their callers, nothing else holds a connection.
        self.provider = None
        logger.debug("Deepgram STT plugin shut down")


plugin = DeepgramSTTPlugin()
