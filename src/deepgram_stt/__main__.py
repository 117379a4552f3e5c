import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from deepgram_stt.config import DeepgramSTTConfig
from deepgram_stt.errors import DeepgramSTTError
from deepgram_stt.log_format import configure_logging
from deepgram_stt.ports.transcriber import TranscriptChunk, TranscriptionOptions

logger = logging.getLogger("deepgram_stt.cli")

DEFAULT_CHUNK_SIZE = 8192


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deepgram-stt", description="Deepgram speech-to-text")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument("--model", help="Deepgram model (default: nova-3)")
    parser.add_argument("--base-url", help="Deepgram API base URL")

    subparsers = parser.add_subparsers(dest="command", required=True)

    transcribe_parser = subparsers.add_parser("transcribe", help="Transcribe an audio file in one request")
    transcribe_parser.add_argument("file", type=Path, help="Audio file")
    transcribe_parser.add_argument("--language", help="Language code")
    transcribe_parser.add_argument("--word-timestamps", action="store_true", help="Request utterances")

    stream_parser = subparsers.add_parser("stream", help="Stream an audio file over WebSocket")
    stream_parser.add_argument("file", type=Path, help="Audio file")
    stream_parser.add_argument("--language", help="Language code")
    stream_parser.add_argument("--vad", action="store_true", help="Finalize on utterance end")
    stream_parser.add_argument("--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE, help="Bytes per frame")
    stream_parser.add_argument("--timeout", type=float, default=30.0, help="Seconds to wait for the transcript")

    subparsers.add_parser("health", help="Check Deepgram reachability and credentials")

    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = DeepgramSTTConfig.from_mapping({"model": args.model, "base_url": args.base_url})
    except ValidationError as exc:
        print(f"Error: Invalid Deepgram configuration: {exc}", file=sys.stderr)
        sys.exit(1)

    try:
        exit_code = asyncio.run(_run_command(args, config))
    except DeepgramSTTError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except OSError as exc:
        print(f"Cannot read audio: {exc}", file=sys.stderr)
        sys.exit(1)
    sys.exit(exit_code)


async def _run_command(args: argparse.Namespace, config: DeepgramSTTConfig) -> int:
    from deepgram_stt.adapters.deepgram_provider import DeepgramProvider

    provider = DeepgramProvider(config)
    provider.validate_config()

    if args.command == "health":
        healthy = await provider.health_check()
        print("healthy" if healthy else "unhealthy")
        return 0 if healthy else 1

    options = TranscriptionOptions(
        language=args.language,
        word_timestamps=getattr(args, "word_timestamps", None) or None,
        vad_enabled=getattr(args, "vad", None) or None,
    )
    audio = args.file.read_bytes()

    if args.command == "transcribe":
        print(await provider.transcribe(audio, options))
        return 0

    print(await _stream_file(provider, audio, options, args.chunk_size, args.timeout))
    return 0


async def _stream_file(
    provider, audio: bytes, options: TranscriptionOptions, chunk_size: int, timeout: float
) -> str:
    session = await provider.create_session(options)

    def log_chunk(chunk: TranscriptChunk) -> None:
        if chunk.is_final:
            logger.info("Transcript: %s (confidence=%s)", chunk.text, chunk.confidence)
        else:
            logger.info("Transcript (interim): %s", chunk.text)

    session.on_partial(log_chunk)
    try:
        step = max(1, chunk_size)
        for offset in range(0, len(audio), step):
            await session.send_audio(audio[offset : offset + step])
        await session.end_audio()
        return await session.wait_for_transcript(timeout)
    finally:
        await session.close()


if __name__ == "__main__":
    main()
