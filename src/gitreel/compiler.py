"""
Video compilation with ffmpeg.

Frames are fed through the concat demuxer so each image can have its own
display duration; narration (or a generated silent track) is muxed in.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import subprocess
from pathlib import Path

from gitreel.errors import EncoderError
from gitreel.timing import format_timestamp, synchronize_frames

logger = logging.getLogger(__name__)

# quality -> (crf, preset)
QUALITY_PRESETS = {
    "high": ("18", "slow"),
    "medium": ("23", "medium"),
    "low": ("28", "fast"),
}
FFMPEG_TIMEOUT = 1800


def concat_list(images: list[Path], durations: list[float]) -> str:
    """ffmpeg concat-demuxer script showing each image for its duration."""
    lines = ["ffconcat version 1.0"]
    for timing, image in zip(synchronize_frames(durations), images):
        end = timing.start_time + timing.duration
        lines.append(f"# frame {timing.frame_index}: "
                     f"{format_timestamp(timing.start_time)} - {format_timestamp(end)}")
        lines.append(f"file '{_quote(image)}'")
        lines.append(f"duration {timing.duration:.3f}")
    # The last entry's duration is only honored if the file is listed again
    if images:
        lines.append(f"file '{_quote(images[-1])}'")
    return "\n".join(lines) + "\n"


def _quote(path: Path) -> str:
    return str(path.resolve()).replace("'", "'\\''")


class FfmpegEncoder:
    def __init__(
        self,
        width: int = 1920,
        height: int = 1080,
        fps: int = 30,
        quality: str = "high",
    ):
        self.width = width
        self.height = height
        self.fps = fps
        self.quality = quality if quality in QUALITY_PRESETS else "high"

    @staticmethod
    def is_available() -> bool:
        if shutil.which("ffmpeg") is None:
            return False
        try:
            proc = subprocess.run(["ffmpeg", "-version"], capture_output=True, timeout=30)
        except (OSError, subprocess.TimeoutExpired):
            return False
        return proc.returncode == 0

    @staticmethod
    def version() -> str:
        try:
            proc = subprocess.run(["ffmpeg", "-version"], capture_output=True, text=True, timeout=30)
        except (OSError, subprocess.TimeoutExpired):
            return "ffmpeg not found"
        return proc.stdout.split("\n")[0] if proc.returncode == 0 else "ffmpeg not found"

    def build_command(
        self,
        concat_path: Path,
        total_duration: float,
        audio_path: Path | None,
        output_path: Path,
    ) -> list[str]:
        crf, preset = QUALITY_PRESETS[self.quality]
        cmd = ["ffmpeg", "-f", "concat", "-safe", "0", "-i", str(concat_path)]

        if audio_path is not None:
            cmd.extend(["-i", str(audio_path)])
        else:
            # Silent stereo track so players treat it like any other video
            cmd.extend(["-f", "lavfi", "-t", format_timestamp(total_duration),
                        "-i", "anullsrc=channel_layout=stereo:sample_rate=44100"])

        cmd.extend([
            "-map", "0:v", "-map", "1:a",
            "-vf", f"scale={self.width}:{self.height}",
            "-c:v", "libx264",
            "-crf", crf,
            "-preset", preset,
            "-pix_fmt", "yuv420p",
            "-r", str(self.fps),
            "-c:a", "aac",
            "-b:a", "192k",
            "-shortest",
            "-y", str(output_path),
        ])
        return cmd

    async def encode(
        self,
        images: list[Path],
        durations: list[float],
        audio_path: Path | None,
        output_path: Path,
    ) -> Path:
        """Compile ``images`` (one per duration) plus optional audio into ``output_path``."""
        if not images:
            raise EncoderError("No frames to compile")
        if len(images) != len(durations):
            raise EncoderError(f"Frame count mismatch: {len(images)} frames, {len(durations)} durations")

        concat_path = output_path.parent / "concat.txt"
        concat_path.write_text(concat_list(images, durations), encoding="utf-8")

        cmd = self.build_command(concat_path, sum(durations), audio_path, output_path)
        logger.info(f"Running ffmpeg ({len(images)} frames, audio={'yes' if audio_path else 'silent'})")
        logger.debug(f"Command: {' '.join(cmd)}")

        try:
            proc = await asyncio.to_thread(
                subprocess.run, cmd, capture_output=True, text=True, timeout=FFMPEG_TIMEOUT,
            )
        except FileNotFoundError:
            raise EncoderError("ffmpeg is not installed or not available in PATH")
        except subprocess.TimeoutExpired:
            raise EncoderError(f"ffmpeg timed out after {FFMPEG_TIMEOUT}s")

        if proc.returncode != 0:
            raise EncoderError(f"ffmpeg failed: {proc.stderr.strip()[-500:]}")
        if not output_path.exists():
            raise EncoderError(f"ffmpeg exited cleanly but produced no file at {output_path}")

        size_mb = output_path.stat().st_size / 1024 / 1024
        logger.info(f"Video compiled: {output_path} ({size_mb:.2f} MB)")
        return output_path
