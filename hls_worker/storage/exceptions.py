class BlobStoreError(Exception):
    """Raised when the blob store API rejects a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
