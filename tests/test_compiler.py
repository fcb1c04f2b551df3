"""Tests for ffmpeg command construction and the concat list (ffmpeg not required)."""

import asyncio
import os
import subprocess
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import gitreel.compiler as compiler
from gitreel.compiler import FfmpegEncoder, concat_list
from gitreel.errors import EncoderError


def _images(tmp_path: Path, count: int) -> list[Path]:
    images = []
    for i in range(count):
        path = tmp_path / f"frame-{i:03d}.png"
        path.write_bytes(b"png")
        images.append(path)
    return images


class TestConcatList:
    """Tests for concat_list."""

    def test_entries_and_durations(self, tmp_path):
        """Each image is followed by its duration; the last image is repeated."""
        images = _images(tmp_path, 3)
        text = concat_list(images, [3, 5, 3])
        lines = [line for line in text.splitlines() if not line.startswith("#")]

        assert lines[0] == "ffconcat version 1.0"
        assert lines[1] == f"file '{images[0].resolve()}'"
        assert lines[2] == "duration 3.000"
        assert lines[4] == "duration 5.000"
        assert lines[6] == "duration 3.000"
        assert lines[7] == f"file '{images[2].resolve()}'"
        assert len(lines) == 8

    def test_timestamp_comments(self, tmp_path):
        """Comments show where each frame sits on the timeline."""
        text = concat_list(_images(tmp_path, 2), [2.5, 4])
        assert "# frame 0: 00:00:00.000 - 00:00:02.500" in text
        assert "# frame 1: 00:00:02.500 - 00:00:06.500" in text

    def test_quotes_escaped(self, tmp_path):
        """Single quotes in paths are escaped for the concat demuxer."""
        odd = tmp_path / "it's"
        odd.mkdir()
        text = concat_list(_images(odd, 1), [1])
        assert "it'\\''s" in text


class TestBuildCommand:
    """Tests for FfmpegEncoder.build_command."""

    def test_with_audio(self, tmp_path):
        """Narration is the second input and mapped as the audio stream."""
        cmd = FfmpegEncoder().build_command(tmp_path / "concat.txt", 11, tmp_path / "n.mp3", tmp_path / "o.mp4")
        assert cmd[:7] == ["ffmpeg", "-f", "concat", "-safe", "0", "-i", str(tmp_path / "concat.txt")]
        assert cmd[7:9] == ["-i", str(tmp_path / "n.mp3")]
        assert "anullsrc=channel_layout=stereo:sample_rate=44100" not in cmd
        assert cmd[-2:] == ["-y", str(tmp_path / "o.mp4")]

    def test_silent_track_bounded(self, tmp_path):
        """Without narration a silent track as long as the video is generated."""
        cmd = FfmpegEncoder().build_command(tmp_path / "concat.txt", 11, None, tmp_path / "o.mp4")
        i = cmd.index("lavfi")
        assert cmd[i + 1:i + 5] == ["-t", "00:00:11.000", "-i", "anullsrc=channel_layout=stereo:sample_rate=44100"]

    def test_encoding_settings(self, tmp_path):
        """H.264/AAC at the configured size, rate, and quality."""
        cmd = FfmpegEncoder(width=1280, height=720, fps=24, quality="low").build_command(
            tmp_path / "c.txt", 5, None, tmp_path / "o.mp4"
        )
        joined = " ".join(cmd)
        assert "-map 0:v -map 1:a" in joined
        assert "-vf scale=1280:720" in joined
        assert "-c:v libx264 -crf 28 -preset fast" in joined
        assert "-pix_fmt yuv420p -r 24" in joined
        assert "-c:a aac -b:a 192k" in joined

    def test_unknown_quality_defaults_high(self):
        """Unrecognized quality presets fall back to high."""
        assert FfmpegEncoder(quality="ultra").quality == "high"


class TestEncode:
    """Tests for FfmpegEncoder.encode with subprocess replaced."""

    def test_mismatch_rejected(self, tmp_path):
        """Images and durations must line up."""
        with pytest.raises(EncoderError, match="mismatch"):
            asyncio.run(FfmpegEncoder().encode(_images(tmp_path, 2), [1, 2, 3], None, tmp_path / "o.mp4"))

    def test_no_images_rejected(self, tmp_path):
        """Nothing to compile is an error."""
        with pytest.raises(EncoderError):
            asyncio.run(FfmpegEncoder().encode([], [], None, tmp_path / "o.mp4"))

    def test_writes_concat_and_runs(self, tmp_path, monkeypatch):
        """The concat list lands beside the output and ffmpeg is invoked once."""
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append(cmd)
            Path(cmd[-1]).write_bytes(b"mp4")
            return subprocess.CompletedProcess(cmd, 0, "", "")

        monkeypatch.setattr(compiler.subprocess, "run", fake_run)
        output = tmp_path / "o.mp4"
        result = asyncio.run(FfmpegEncoder().encode(_images(tmp_path, 2), [2, 3], None, output))

        assert result == output
        assert len(calls) == 1
        assert (tmp_path / "concat.txt").read_text().startswith("ffconcat version 1.0")

    def test_nonzero_exit(self, tmp_path, monkeypatch):
        """ffmpeg's stderr is surfaced in the error."""
        def fake_run(cmd, **kwargs):
            return subprocess.CompletedProcess(cmd, 1, "", "Invalid data found when processing input")

        monkeypatch.setattr(compiler.subprocess, "run", fake_run)
        with pytest.raises(EncoderError, match="Invalid data"):
            asyncio.run(FfmpegEncoder().encode(_images(tmp_path, 1), [3], None, tmp_path / "o.mp4"))

    def test_missing_binary(self, tmp_path, monkeypatch):
        """A missing ffmpeg binary is reported by name."""
        def fake_run(cmd, **kwargs):
            raise FileNotFoundError("ffmpeg")

        monkeypatch.setattr(compiler.subprocess, "run", fake_run)
        with pytest.raises(EncoderError, match="ffmpeg is not installed"):
            asyncio.run(FfmpegEncoder().encode(_images(tmp_path, 1), [3], None, tmp_path / "o.mp4"))

    def test_is_available_without_binary(self, monkeypatch):
        """No ffmpeg on PATH means unavailable."""
        monkeypatch.setattr(compiler.shutil, "which", lambda name: None)
        assert FfmpegEncoder.is_available() is False
