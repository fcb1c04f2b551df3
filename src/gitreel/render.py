"""Rasterize SVG frames to PNG with rsvg-convert."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

RSVG_TIMEOUT = 120


def default_workers() -> int:
    env = os.getenv("GITREEL_WORKERS")
    if env and env.isdigit() and int(env) > 0:
        return int(env)
    return min(32, os.cpu_count() or 4)


class RsvgRenderer:
    """Converts frame SVGs to PNGs, several at a time.

    Frames that fail to convert are logged and left out of the result, so
    callers must compare the returned count with what they asked for.
    """

    def __init__(
        self,
        width: int = 1920,
        height: int = 1080,
        scale: float = 2.0,
        workers: int | None = None,
    ):
        self.width = width
        self.height = height
        self.scale = scale
        self.workers = workers or default_workers()

    @staticmethod
    def is_available() -> bool:
        return shutil.which("rsvg-convert") is not None

    def render_single_frame(self, svg_path: Path, png_path: Path) -> bool:
        """Render one frame. Returns False (and logs) on failure."""
        cmd = [
            "rsvg-convert",
            "--width", str(int(self.width * self.scale)),
            "--height", str(int(self.height * self.scale)),
            "--format", "png",
            "--output", str(png_path),
            str(svg_path),
        ]
        try:
            proc = subprocess.run(cmd, capture_output=True, timeout=RSVG_TIMEOUT)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.error(f"Frame {svg_path.name}: {e}")
            return False
        if proc.returncode != 0:
            logger.error(f"Frame {svg_path.name}: {proc.stderr.decode(errors='replace').strip()}")
            return False
        return True

    async def render_frames(self, frames: list[Path], output_dir: Path) -> list[Path]:
        """Render all frames concurrently, returning PNGs in frame order."""
        output_dir.mkdir(parents=True, exist_ok=True)
        semaphore = asyncio.Semaphore(self.workers)

        async def _render(index: int, svg_path: Path) -> Path | None:
            png_path = output_dir / f"frame-{index:03d}.png"
            async with semaphore:
                ok = await asyncio.to_thread(self.render_single_frame, svg_path, png_path)
            return png_path if ok else None

        logger.info(f"Rendering {len(frames)} frames using {self.workers} workers...")
        results = await asyncio.gather(*(_render(i, p) for i, p in enumerate(frames)))
        rendered = [p for p in results if p is not None]

        errors = len(frames) - len(rendered)
        logger.info(f"Rendered {len(rendered)} frames ({errors} errors)")
        return rendered
