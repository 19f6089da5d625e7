import time
from collections.abc import Callable
from pathlib import Path

import httpx

from hls_worker.logging.logger import Log
from hls_worker.processor.backoff import retry_call
from hls_worker.processor.exceptions import DownloadError, truncate_error
from hls_worker.storage.blob_store import BlobStoreClient
from hls_worker.storage.exceptions import BlobStoreError

CHUNK_SIZE = 1024 * 1024


class Downloader:
    """Streams a source video from the blob store into scratch storage."""

    def __init__(
        self,
        blob_store: BlobStoreClient,
        bucket: str,
        *,
        max_attempts: int = 3,
        backoff_base: float = 1.5,
        timeout_seconds: float = 300.0,
        signed_url_expires: int = 600,
        error_max_length: int = 1000,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._blob_store = blob_store
        self._bucket = bucket
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._timeout_seconds = timeout_seconds
        self._signed_url_expires = signed_url_expires
        self._error_max_length = error_max_length
        self._sleep = sleep

    def fetch(self, source_path: str, dest_path: Path) -> int:
        """Download source_path to dest_path, retrying transient failures.

        Returns the number of bytes written.

        Raises:
            DownloadError: once every attempt has failed.
        """
        try:
            return retry_call(
                lambda: self._fetch_once(self.resolve_url(source_path), dest_path),
                attempts=self._max_attempts,
                base=self._backoff_base,
                retry_on=(DownloadError,),
                description=f"Download of {source_path}",
                sleep=self._sleep,
            )
        except DownloadError as exc:
            final = DownloadError(truncate_error(str(exc), self._error_max_length))
            final.status_code = exc.status_code
            raise final from exc

    def resolve_url(self, source_path: str) -> str:
        """Prefer a signed URL; fall back to the public URL when signing fails."""
        try:
            return self._blob_store.create_signed_url(
                self._bucket, source_path, self._signed_url_expires
            )
        except BlobStoreError as exc:
            Log.warning(
                f"Signed URL unavailable for {self._bucket}/{source_path}, "
                f"using public URL: {exc}"
            )
            return self._blob_store.public_url(self._bucket, source_path)

    def _fetch_once(self, url: str, dest_path: Path) -> int:
        written = 0
        deadline = time.monotonic() + self._timeout_seconds
        try:
            with self._blob_store.stream(url, timeout=self._timeout_seconds) as response:
                if not response.is_success:
                    response.read()
                    raise DownloadError(
                        response.text[:200] or response.reason_phrase,
                        status_code=response.status_code,
                    )
                with dest_path.open("wb") as out:
                    for chunk in response.iter_bytes(CHUNK_SIZE):
                        out.write(chunk)
                        written += len(chunk)
                        if time.monotonic() > deadline:
                            raise DownloadError(
                                f"exceeded {self._timeout_seconds:g}s attempt timeout"
                            )
        except httpx.HTTPError as exc:
            raise DownloadError(f"{type(exc).__name__}: {exc}") from exc

        if written == 0:
            raise DownloadError("response had no body")
        Log.info(f"Downloaded {written} bytes to {dest_path}")
        return written
