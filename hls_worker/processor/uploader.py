import time
from collections.abc import Callable
from pathlib import Path

from hls_worker.logging.logger import Log
from hls_worker.processor.backoff import retry_call
from hls_worker.processor.exceptions import UploadError
from hls_worker.storage.blob_store import BlobStoreClient
from hls_worker.storage.exceptions import BlobStoreError

PLAYLIST_CONTENT_TYPE = "application/vnd.apple.mpegurl"
SEGMENT_CONTENT_TYPE = "video/MP2T"


def content_type_for(path: Path) -> str:
    """Playlists are tagged as HLS playlists; everything else is a TS segment."""
    if path.suffix.lower() == ".m3u8":
        return PLAYLIST_CONTENT_TYPE
    return SEGMENT_CONTENT_TYPE


def list_files(root: Path) -> list[Path]:
    """All files under root, walked with an explicit stack instead of recursion."""
    files: list[Path] = []
    pending = [root]
    while pending:
        directory = pending.pop()
        for entry in sorted(directory.iterdir()):
            if entry.is_dir():
                pending.append(entry)
            elif entry.is_file():
                files.append(entry)
    return sorted(files)


class TreeUploader:
    """Publishes a rendition directory to the blob store under a prefix."""

    def __init__(
        self,
        blob_store: BlobStoreClient,
        bucket: str,
        *,
        max_attempts: int = 3,
        backoff_base: float = 1.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._blob_store = blob_store
        self._bucket = bucket
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._sleep = sleep

    def publish(self, local_dir: Path, destination_prefix: str) -> list[str]:
        """Upload every file under local_dir to destination_prefix/<relative path>.

        Uploads overwrite, so publishing the same tree twice is harmless.
        Returns the object keys written, in upload order.

        Raises:
            UploadError: naming the first file that still fails after retries.
        """
        prefix = destination_prefix.strip("/")
        keys: list[str] = []
        for path in list_files(local_dir):
            key = f"{prefix}/{path.relative_to(local_dir).as_posix()}"
            self._upload_file(path, key)
            keys.append(key)
        Log.info(f"Published {len(keys)} files to {self._bucket}/{prefix}")
        return keys

    def _upload_file(self, path: Path, key: str) -> None:
        content = path.read_bytes()
        content_type = content_type_for(path)
        try:
            retry_call(
                lambda: self._blob_store.upload(
                    self._bucket, key, content, content_type, upsert=True
                ),
                attempts=self._max_attempts,
                base=self._backoff_base,
                retry_on=(BlobStoreError,),
                description=f"Upload of {key}",
                sleep=self._sleep,
            )
        except BlobStoreError as exc:
            raise UploadError(key, str(exc)) from exc
