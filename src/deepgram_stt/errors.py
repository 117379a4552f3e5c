MAX_ERROR_DETAIL_CHARS = 300


class DeepgramSTTError(Exception):
    pass


class ConfigError(DeepgramSTTError):
    pass


class TranscriptionError(DeepgramSTTError):
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class SessionConnectionError(DeepgramSTTError, ConnectionError):
    pass


class StreamError(DeepgramSTTError):
    pass


class SendError(DeepgramSTTError):
    pass


class TranscriptTimeoutError(DeepgramSTTError, TimeoutError):
    pass


class SessionClosedError(DeepgramSTTError):
    pass


class TranscriptWaitError(DeepgramSTTError):
    pass


def truncate_detail(text: str, limit: int = MAX_ERROR_DETAIL_CHARS) -> str | None:
    collapsed = " ".join(text.split())
    if not collapsed:
        return None
    if len(collapsed) <= limit:
        return collapsed
    return f"{collapsed[:limit]}…"
