import stat
from collections.abc import Generator
from pathlib import Path

import httpx
import pytest

from hls_worker.storage.blob_store import BlobStoreClient

SUPABASE_URL = "https://project.supabase.test"


@pytest.fixture(autouse=True)
def required_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Provide the credentials Settings() refuses to start without."""
    monkeypatch.setenv("SUPABASE_URL", SUPABASE_URL)
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-role-key")


class StorageBackend:
    """In-memory stand-in for the Supabase Storage REST API."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], tuple[bytes, str]] = {}
        self.upload_calls: list[tuple[str, str]] = []
        self.download_calls = 0
        self.fail_downloads = 0
        self.fail_uploads: dict[str, int] = {}
        self.signing_enabled = True

    def put(self, bucket: str, key: str, content: bytes, content_type: str = "video/mp4") -> None:
        self.objects[(bucket, key)] = (content, content_type)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/storage/v1/object/")

        if request.method == "POST" and path.startswith("sign/"):
            if not self.signing_enabled:
                return httpx.Response(400, json={"error": "signing not supported"})
            bucket, key = path.removeprefix("sign/").split("/", 1)
            if (bucket, key) not in self.objects:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(
                200, json={"signedURL": f"/object/sign/{bucket}/{key}?token=t"}
            )

        if request.method == "GET":
            self.download_calls += 1
            if self.fail_downloads > 0:
                self.fail_downloads -= 1
                return httpx.Response(503, text="temporarily unavailable")
            _kind, bucket, key = path.split("/", 2)
            stored = self.objects.get((bucket, key))
            if stored is None:
                return httpx.Response(404, text="object not found")
            return httpx.Response(200, content=stored[0])

        if request.method == "POST":
            bucket, key = path.split("/", 1)
            self.upload_calls.append((bucket, key))
            if self.fail_uploads.get(key, 0) > 0:
                self.fail_uploads[key] -= 1
                return httpx.Response(500, text="storage error")
            if request.headers.get("x-upsert") != "true" and (bucket, key) in self.objects:
                return httpx.Response(409, text="duplicate")
            self.objects[(bucket, key)] = (
                request.content,
                request.headers["content-type"],
            )
            return httpx.Response(200, json={"Key": f"{bucket}/{key}"})

        return httpx.Response(405)


@pytest.fixture()
def storage() -> StorageBackend:
    return StorageBackend()


@pytest.fixture()
def blob_store(storage: StorageBackend) -> Generator[BlobStoreClient, None, None]:
    client = BlobStoreClient(
        SUPABASE_URL,
        "service-role-key",
        transport=httpx.MockTransport(storage.handler),
    )
    yield client
    client.close()


def _write_script(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return path


@pytest.fixture()
def fake_ffmpeg(tmp_path: Path) -> Path:
    """Executable that mimics ffmpeg's HLS output: the last argument is the playlist."""
    return _write_script(
        tmp_path / "fake-ffmpeg",
        'for last; do :; done\n'
        'out=$(dirname "$last")\n'
        'echo "frame=1 fps=0.0" >&2\n'
        'printf "seg0" > "$out/segment_000.ts"\n'
        'printf "seg1" > "$out/segment_001.ts"\n'
        'printf "#EXTM3U\\n#EXT-X-ENDLIST\\n" > "$last"\n',
    )


@pytest.fixture()
def failing_ffmpeg(tmp_path: Path) -> Path:
    return _write_script(
        tmp_path / "failing-ffmpeg",
        'echo "Invalid data found when processing input" >&2\nexit 1\n',
    )


@pytest.fixture()
def hanging_ffmpeg(tmp_path: Path) -> Path:
    return _write_script(tmp_path / "hanging-ffmpeg", "exec sleep 30\n")


@pytest.fixture()
def rendition_tree(tmp_path: Path) -> Path:
    """A transcoder output directory with a nested subdirectory."""
    root = tmp_path / "hls"
    (root / "extra").mkdir(parents=True)
    (root / "index.m3u8").write_text("#EXTM3U\n")
    (root / "segment_000.ts").write_bytes(b"seg0")
    (root / "segment_001.ts").write_bytes(b"seg1")
    (root / "extra" / "segment_002.ts").write_bytes(b"seg2")
    return root
