import subprocess
import threading
from collections import deque
from pathlib import Path
from typing import IO

from hls_worker.logging.logger import Log
from hls_worker.processor.exceptions import TranscodeError

# Bump when the argument template changes so output can be traced to it.
HLS_TEMPLATE_VERSION = 1

PLAYLIST_NAME = "index.m3u8"
SEGMENT_PATTERN = "segment_%03d.ts"
STDERR_TAIL_LINES = 20


def build_hls_command(
    binary: str,
    input_path: Path,
    output_dir: Path,
    *,
    segment_seconds: int = 2,
    keyframe_interval: int = 48,
) -> list[str]:
    """Argument list for a single VOD rendition: one playlist plus numbered segments."""
    return [
        binary,
        "-y",
        "-hide_banner",
        "-i", str(input_path),
        "-preset", "veryfast",
        "-g", str(keyframe_interval),
        "-sc_threshold", "0",
        "-hls_time", str(segment_seconds),
        "-hls_playlist_type", "vod",
        "-hls_segment_filename", str(output_dir / SEGMENT_PATTERN),
        str(output_dir / PLAYLIST_NAME),
    ]


class Transcoder:
    """Runs ffmpeg as a child process to produce an HLS rendition.

    A non-zero exit is final for the attempt: re-running a deterministic
    transcode over the same input is not retried.
    """

    def __init__(
        self,
        binary: str = "ffmpeg",
        *,
        timeout_seconds: float = 7200.0,
        segment_seconds: int = 2,
        keyframe_interval: int = 48,
    ) -> None:
        self._binary = binary
        self._timeout_seconds = timeout_seconds
        self._segment_seconds = segment_seconds
        self._keyframe_interval = keyframe_interval

    def transcode(self, input_path: Path, output_dir: Path) -> Path:
        """Transcode input_path into output_dir and return the playlist path.

        Raises:
            TranscodeError: on non-zero exit, timeout, or if ffmpeg cannot start.
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        command = build_hls_command(
            self._binary,
            input_path,
            output_dir,
            segment_seconds=self._segment_seconds,
            keyframe_interval=self._keyframe_interval,
        )
        Log.info(f"Transcoding {input_path} (template v{HLS_TEMPLATE_VERSION})")
        Log.debug(f"Running: {' '.join(command)}")

        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            raise TranscodeError(f"could not start {self._binary}: {exc}") from exc

        tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        reader = threading.Thread(
            target=_drain_stderr, args=(process.stderr, tail), daemon=True
        )
        reader.start()

        try:
            exit_code = process.wait(timeout=self._timeout_seconds)
        except subprocess.TimeoutExpired as exc:
            process.kill()
            process.wait()
            reader.join(timeout=5)
            raise TranscodeError(
                f"{self._binary} exceeded {self._timeout_seconds:.0f}s timeout"
            ) from exc
        reader.join(timeout=5)

        if exit_code != 0:
            detail = " | ".join(tail)
            raise TranscodeError(
                f"{self._binary} failed with code {exit_code}: {detail}",
                exit_code=exit_code,
            )

        playlist = output_dir / PLAYLIST_NAME
        if not playlist.exists():
            raise TranscodeError(f"{self._binary} exited 0 but wrote no {PLAYLIST_NAME}")
        return playlist


def _drain_stderr(stream: IO[str] | None, tail: deque[str]) -> None:
    if stream is None:
        return
    with stream:
        for line in stream:
            line = line.rstrip()
            if line:
                tail.append(line)
                Log.debug(f"ffmpeg: {line}")
