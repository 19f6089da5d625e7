from pathlib import Path

import pytest

from hls_worker.processor.exceptions import TranscodeError
from hls_worker.processor.transcoder import Transcoder, build_hls_command


class TestBuildHlsCommand:
    def test_fixed_argument_template(self, tmp_path: Path) -> None:
        out = tmp_path / "hls"

        command = build_hls_command(
            "ffmpeg", tmp_path / "in.mp4", out, segment_seconds=2, keyframe_interval=48
        )

        assert command[0] == "ffmpeg"
        assert command[command.index("-i") + 1] == str(tmp_path / "in.mp4")
        assert command[command.index("-g") + 1] == "48"
        assert command[command.index("-hls_time") + 1] == "2"
        assert command[command.index("-hls_playlist_type") + 1] == "vod"
        assert command[command.index("-hls_segment_filename") + 1] == str(out / "segment_%03d.ts")
        assert command[-1] == str(out / "index.m3u8")


class TestTranscode:
    def test_produces_playlist_and_segments(self, fake_ffmpeg: Path, tmp_path: Path) -> None:
        source = tmp_path / "in.mp4"
        source.write_bytes(b"video")
        out = tmp_path / "hls"

        playlist = Transcoder(str(fake_ffmpeg)).transcode(source, out)

        assert playlist == out / "index.m3u8"
        assert sorted(p.name for p in out.iterdir()) == [
            "index.m3u8",
            "segment_000.ts",
            "segment_001.ts",
        ]

    def test_non_zero_exit_raises_with_code(self, failing_ffmpeg: Path, tmp_path: Path) -> None:
        with pytest.raises(TranscodeError, match="code 1") as info:
            Transcoder(str(failing_ffmpeg)).transcode(tmp_path / "in.mp4", tmp_path / "hls")

        assert info.value.exit_code == 1
        assert "Invalid data" in str(info.value)
        assert info.value.retryable is False

    def test_timeout_kills_process(self, hanging_ffmpeg: Path, tmp_path: Path) -> None:
        transcoder = Transcoder(str(hanging_ffmpeg), timeout_seconds=0.3)

        with pytest.raises(TranscodeError, match="timeout") as info:
            transcoder.transcode(tmp_path / "in.mp4", tmp_path / "hls")

        assert info.value.exit_code is None

    def test_missing_binary_raises(self, tmp_path: Path) -> None:
        transcoder = Transcoder(str(tmp_path / "no-such-ffmpeg"))

        with pytest.raises(TranscodeError, match="could not start"):
            transcoder.transcode(tmp_path / "in.mp4", tmp_path / "hls")
