class ProcessorError(Exception):
    """Base exception for all pipeline stage errors."""

    retryable: bool = False


class DownloadError(ProcessorError):
    """Raised when the source video cannot be fetched."""

    retryable = True

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        if status_code is not None:
            message = f"HTTP {status_code}: {message}"
        super().__init__(message)


class TranscodeError(ProcessorError):
    """Raised when the transcoder exits non-zero, times out, or cannot start."""

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        self.exit_code = exit_code
        super().__init__(message)


class UploadError(ProcessorError):
    """Raised when a rendition file cannot be published."""

    retryable = True

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(f"upload of {path} failed: {message}")


class RecordUpdateError(ProcessorError):
    """Raised when the downstream content record cannot be updated."""


def truncate_error(message: str, limit: int = 1000) -> str:
    """Bound a diagnostic string for storage in the job row."""
    if len(message) <= limit:
        return message
    return message[: max(limit - 3, 0)] + "..."
