"""
Video generation pipeline.

One run walks a fixed sequence of stages::

    frames -> audio -> timing -> render -> compile -> done

and lands in ``failed`` if any stage raises. Audio is the only stage allowed
to fail softly: the run carries on and produces a silent video. All scratch
files live in a per-run workspace next to the output, which is removed on
every exit path. The output path is only written once encoding succeeded.
"""

from __future__ import annotations

import contextlib
import enum
import logging
import os
import shutil
import tempfile
import time
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from gitreel.audio import validate_audio
from gitreel.errors import PipelineError
from gitreel.models import AnalysisResult, NarrationScript, VideoResult
from gitreel.timing import (
    calculate_frame_durations,
    calculate_total_duration,
    create_timing_segments,
    fallback_frame_durations,
    strip_silence_markers,
)

logger = logging.getLogger(__name__)


class Stage(str, enum.Enum):
    FRAMES = "frames"
    AUDIO = "audio"
    TIMING = "timing"
    RENDER = "render"
    COMPILE = "compile"
    DONE = "done"
    FAILED = "failed"


# ─────────────────────────────────────────────────────────────────────────────
# Collaborators
# ─────────────────────────────────────────────────────────────────────────────


class FrameSource(Protocol):
    async def generate_frames(
        self, analysis: AnalysisResult, script: NarrationScript, output_dir: Path
    ) -> list[Path]: ...


class SpeechSynthesizer(Protocol):
    async def synthesize(self, text: str, output_path: Path) -> Path: ...


class FrameRenderer(Protocol):
    async def render_frames(self, frames: list[Path], output_dir: Path) -> list[Path]: ...


class VideoEncoder(Protocol):
    def is_available(self) -> bool: ...

    async def encode(
        self,
        images: list[Path],
        durations: list[float],
        audio_path: Path | None,
        output_path: Path,
    ) -> Path: ...


# ─────────────────────────────────────────────────────────────────────────────
# Per-run state
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class PipelineState:
    """Everything one run knows. Never shared between runs."""

    workspace: Path
    analysis: AnalysisResult
    script: NarrationScript
    style: str
    output_path: Path
    stage: Stage = Stage.FRAMES
    temp_paths: list[Path] = field(default_factory=list)
    has_audio: bool = False
    frames: list[Path] = field(default_factory=list)
    audio_path: Path | None = None
    durations: list[float] = field(default_factory=list)
    images: list[Path] = field(default_factory=list)

    def track(self, *paths: Path) -> None:
        self.temp_paths.extend(paths)


def remove_paths(paths: list[Path]) -> None:
    """Best-effort removal; errors are ignored."""
    for path in reversed(paths):
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path, ignore_errors=True)
            else:
                path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"Could not remove {path}: {e}")


@contextlib.contextmanager
def workspace(output_path: Path) -> Iterator[Path]:
    """Scratch directory beside ``output_path``, removed on exit."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=".gitreel-", dir=output_path.parent))
    try:
        yield path
    finally:
        remove_paths([path])


# ─────────────────────────────────────────────────────────────────────────────
# Pipeline
# ─────────────────────────────────────────────────────────────────────────────


class VideoPipeline:
    def __init__(
        self,
        frame_source: FrameSource,
        synthesizer: SpeechSynthesizer,
        renderer: FrameRenderer,
        encoder: VideoEncoder,
    ):
        self.frame_source = frame_source
        self.synthesizer = synthesizer
        self.renderer = renderer
        self.encoder = encoder
        self._transitions: dict[Stage, tuple[Callable[[PipelineState], Awaitable[None]], Stage]] = {
            Stage.FRAMES: (self._generate_frames, Stage.AUDIO),
            Stage.AUDIO: (self._generate_audio, Stage.TIMING),
            Stage.TIMING: (self._calculate_timing, Stage.RENDER),
            Stage.RENDER: (self._render_frames, Stage.COMPILE),
            Stage.COMPILE: (self._compile_video, Stage.DONE),
        }

    async def run(
        self,
        analysis: AnalysisResult,
        script: NarrationScript,
        style: str,
        output_path: str | Path,
    ) -> VideoResult:
        """Generate the video. Raises PipelineError naming the failed stage."""
        output = Path(output_path).expanduser().resolve()
        started = time.monotonic()
        logger.info(f"Starting video generation -> {output}")

        try:
            with workspace(output) as ws:
                state = PipelineState(ws, analysis, script, style, output)
                state.track(ws)
                try:
                    while state.stage is not Stage.DONE:
                        await self._advance(state)
                finally:
                    remove_paths(state.temp_paths)
        except OSError as e:
            # Stage failures arrive as PipelineError; this is the workspace itself
            raise PipelineError(Stage.FRAMES.value, f"Could not create workspace: {e}") from e

        duration = sum(state.durations)
        logger.info(
            f"Video generation complete in {time.monotonic() - started:.1f}s: "
            f"{duration:.2f}s, {len(state.frames)} frames, audio={'yes' if state.has_audio else 'no'}"
        )
        return VideoResult(
            video_path=str(output),
            duration=duration,
            frame_count=len(state.frames),
            has_audio=state.has_audio,
        )

    async def _advance(self, state: PipelineState) -> None:
        stage = state.stage
        handler, next_stage = self._transitions[stage]
        logger.info(f"=== Stage: {stage.value} ===")
        try:
            await handler(state)
        except PipelineError:
            state.stage = Stage.FAILED
            raise
        except Exception as e:
            state.stage = Stage.FAILED
            logger.error(f"Stage {stage.value} failed: {e}")
            raise PipelineError(stage.value, str(e)) from e
        state.stage = next_stage

    # ── stages ──────────────────────────────────────────────────────────────

    async def _generate_frames(self, state: PipelineState) -> None:
        frames_dir = state.workspace / "frames-svg"
        state.track(frames_dir)
        state.frames = await self.frame_source.generate_frames(state.analysis, state.script, frames_dir)
        state.track(*state.frames)
        if not state.frames:
            raise PipelineError(Stage.FRAMES.value, "Frame generation produced no frames")
        logger.info(f"Generated {len(state.frames)} frames")

    async def _generate_audio(self, state: PipelineState) -> None:
        audio_path = state.workspace / "narration.mp3"
        state.track(audio_path)
        narration = strip_silence_markers(state.script.full_narrative)
        try:
            await self.synthesizer.synthesize(narration, audio_path)
        except Exception as e:
            logger.warning(f"Audio generation failed, continuing without audio: {e}")
            return

        if not validate_audio(audio_path):
            logger.warning("Audio file is missing or empty, continuing without audio")
            return

        state.has_audio = True
        state.audio_path = audio_path
        estimate = calculate_total_duration(state.script.full_narrative, state.style)
        logger.info(f"Audio generated: ~{estimate:.2f}s estimated")

    async def _calculate_timing(self, state: PipelineState) -> None:
        if state.has_audio:
            segments = create_timing_segments(state.script.full_narrative, state.style)
            state.durations = calculate_frame_durations(len(state.frames), segments)
            logger.info(f"Frame durations synchronized with narration ({len(segments)} segments)")
        else:
            state.durations = fallback_frame_durations(len(state.frames))
            logger.info("Using default frame durations (no audio)")
        logger.info(f"Total video duration: {sum(state.durations):.2f}s")

    async def _render_frames(self, state: PipelineState) -> None:
        png_dir = state.workspace / "frames-png"
        state.track(png_dir)
        state.images = await self.renderer.render_frames(state.frames, png_dir)
        state.track(*state.images)
        if len(state.images) != len(state.durations):
            raise PipelineError(
                Stage.RENDER.value,
                f"Rendered {len(state.images)} images but have {len(state.durations)} frame durations",
            )

    async def _compile_video(self, state: PipelineState) -> None:
        if not self.encoder.is_available():
            raise PipelineError(
                Stage.COMPILE.value,
                "FFmpeg is not installed or not available in PATH. Please install FFmpeg to continue.",
            )
        scratch_output = state.workspace / f"output{state.output_path.suffix or '.mp4'}"
        state.track(scratch_output, state.workspace / "concat.txt")
        await self.encoder.encode(
            state.images,
            state.durations,
            state.audio_path if state.has_audio else None,
            scratch_output,
        )
        os.replace(scratch_output, state.output_path)
