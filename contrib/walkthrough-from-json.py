#!/usr/bin/env python3
"""
gitreel offline renderer: analysis + script JSON -> narrated video

For when you already have an analysis and a narration script (written by
hand, or saved from an earlier run) and want the video without an MCP
client in the loop. Goes through the same checks and pipeline as the
generate_video_from_script tool.

Run:
    python contrib/walkthrough-from-json.py analysis.json script.json
    python contrib/walkthrough-from-json.py analysis.json script.json --style overview --theme light
    python contrib/walkthrough-from-json.py analysis.json script.json --svg-only frames/   # preview frames

Requires: rsvg-convert (librsvg), ffmpeg, network access for edge-tts
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from gitreel.frames import FrameGenerator
from gitreel.models import AnalysisResult, NarrationScript
from gitreel.server import (
    DEFAULT_OUTPUT,
    DEFAULT_STYLE,
    DEFAULT_THEME,
    STYLES,
    THEMES,
    _generate_video_from_script,
    _normalize_script,
)


def preview_frames(analysis: dict, script: dict, theme: str, output_dir: Path) -> None:
    gen = FrameGenerator(theme=theme)
    paths = asyncio.run(gen.generate_frames(
        AnalysisResult.model_validate(analysis),
        NarrationScript.model_validate(_normalize_script(script)),
        output_dir,
    ))
    for path in paths:
        print(f"   {path}")


def main():
    parser = argparse.ArgumentParser(
        description="Render a gitreel walkthrough video from analysis and script JSON files")
    parser.add_argument("analysis", type=Path, help="Analysis JSON file")
    parser.add_argument("script", type=Path, help="Narration script JSON file")
    parser.add_argument("--output", type=str, default=DEFAULT_OUTPUT,
                        help="Output video path")
    parser.add_argument("--style", choices=STYLES, default=DEFAULT_STYLE,
                        help="Presentation style (sets speech rate)")
    parser.add_argument("--theme", choices=THEMES, default=DEFAULT_THEME,
                        help="Frame color theme")
    parser.add_argument("--svg-only", type=Path, default=None, metavar="DIR",
                        help="Only write SVG frames to DIR")
    parser.add_argument("--debug", action="store_true",
                        help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        analysis = json.loads(args.analysis.read_text())
        script = json.loads(args.script.read_text())
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.svg_only is not None:
        print(f"Writing frames to {args.svg_only}")
        preview_frames(analysis, script, args.theme, args.svg_only)
        return

    result = asyncio.run(_generate_video_from_script(
        analysis, script, style=args.style, output_path=args.output, theme=args.theme,
    ))
    if result["status"] != "success":
        field = f" ({result['field']})" if "field" in result else ""
        print(f"Failed at {result['stage']}{field}: {result['error']}", file=sys.stderr)
        sys.exit(1)

    output = result["output"]
    print()
    print(f"   Duration: {output['duration']}")
    print(f"   Frames: {output['frames']}")
    print(f"   Audio: {output['audio']}")
    print()
    print(f"Done! Watch: {output['videoPath']}")


if __name__ == "__main__":
    main()
