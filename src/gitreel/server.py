"""
gitreel - narrated video walkthroughs of git history

An MCP server that turns a commit, a set of staged/unstaged changes, or a
whole codebase into a narrated video. The connected client's model does the
analysis and script writing (via MCP sampling); gitreel handles timing,
frames, speech, and encoding.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from fastmcp import Context, FastMCP
from pydantic import ValidationError

from gitreel import __version__, agent, timing
from gitreel.agent import AnthropicSampler, ContextSampler, Sampler, request_analysis, request_script
from gitreel.audio import DEFAULT_VOICE, STYLE_RATES, EdgeSpeechSynthesizer
from gitreel.compiler import FfmpegEncoder
from gitreel.errors import AgentResponseError, GitError, InputError, PipelineError
from gitreel.frames import FrameGenerator
from gitreel.git_tools import extract_codebase_info, extract_commit_info, extract_diff_info
from gitreel.models import AnalysisResult, NarrationScript, ScriptSection, compose_full_narrative
from gitreel.pipeline import VideoPipeline
from gitreel.render import RsvgRenderer

load_dotenv()

# ─────────────────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_STYLE = "technical"
DEFAULT_THEME = "dark"
DEFAULT_OUTPUT = "./walkthrough.mp4"

STYLES = ("beginner", "technical", "overview")
THEMES = ("dark", "light", "github")
TARGET_LABELS = {
    "commit": "commit",
    "staged": "staged changes",
    "unstaged": "unstaged changes",
    "codebase": "codebase",
}

VIDEO_WIDTH, VIDEO_HEIGHT = 1920, 1080
VIDEO_FPS = 30
VIDEO_QUALITY = "high"
RENDER_SCALE = 2.0

# Where analysis and script come from: "sampling" (MCP client) or "anthropic"
_agent_mode = "sampling"
_agent_model = "sonnet"

# ─────────────────────────────────────────────────────────────────────────────
# Server & Helpers
# ─────────────────────────────────────────────────────────────────────────────

mcp = FastMCP("gitreel")

# Logger
logger = logging.getLogger("gitreel")


def build_pipeline(style: str, theme: str, diffs: dict[str, str] | None = None) -> VideoPipeline:
    """Wire the default collaborators for one run."""
    return VideoPipeline(
        frame_source=FrameGenerator(theme=theme, width=VIDEO_WIDTH, height=VIDEO_HEIGHT, diffs=diffs),
        synthesizer=EdgeSpeechSynthesizer(style=style),
        renderer=RsvgRenderer(width=VIDEO_WIDTH, height=VIDEO_HEIGHT, scale=RENDER_SCALE),
        encoder=FfmpegEncoder(width=VIDEO_WIDTH, height=VIDEO_HEIGHT, fps=VIDEO_FPS, quality=VIDEO_QUALITY),
    )


def _error(walkthrough_id: str, stage: str, message: str, **extra: Any) -> dict[str, Any]:
    return {"status": "error", "walkthroughId": walkthrough_id, "stage": stage, "error": message, **extra}


def _validate_options(style: str, theme: str) -> None:
    if style not in STYLES:
        raise InputError("style", f"style must be one of {', '.join(STYLES)} (got '{style}')")
    if theme not in THEMES:
        raise InputError("theme", f"theme must be one of {', '.join(THEMES)} (got '{theme}')")


def _parse_target(target: Any) -> tuple[str, str | None]:
    """Return (type, commit hash) or raise InputError naming the bad field."""
    if not isinstance(target, dict):
        raise InputError("target", "target is required and must be an object")
    kind = target.get("type")
    if kind not in TARGET_LABELS:
        raise InputError("target.type", f"target.type must be one of {', '.join(TARGET_LABELS)}")
    commit_hash = target.get("commitHash")
    if kind == "commit" and not commit_hash:
        raise InputError("target.commitHash", "commitHash is required for type 'commit'")
    return kind, commit_hash


def _normalize_script(script: dict[str, Any]) -> dict[str, Any]:
    """Accept hand-written scripts: ``conclusion``/``title`` spellings and no fullNarrative."""
    script = dict(script)
    if "outro" not in script and "conclusion" in script:
        script["outro"] = script["conclusion"]
    sections = script.get("sections")
    if not isinstance(sections, list):
        return script
    sections = [
        {**s, "file": s["title"]} if isinstance(s, dict) and "file" not in s and "title" in s else s
        for s in sections
    ]
    script["sections"] = sections
    if not script.get("fullNarrative"):
        parsed = [ScriptSection.model_validate(s) for s in sections]
        script["fullNarrative"] = compose_full_narrative(
            str(script.get("intro", "")), parsed, str(script.get("outro", ""))
        )
    return script


def _video_summary(result: Any) -> dict[str, Any]:
    return {
        "videoPath": result.video_path,
        "duration": f"{result.duration:.2f}s",
        "frames": result.frame_count,
        "audio": "Generated" if result.has_audio else "Skipped (silent video)",
    }


def _video_details(result: Any) -> dict[str, Any]:
    return {
        "status": "generated",
        "path": result.video_path,
        "duration": result.duration,
        "frameCount": result.frame_count,
        "hasAudio": result.has_audio,
    }


# ─────────────────────────────────────────────────────────────────────────────
# Core Implementation
# ─────────────────────────────────────────────────────────────────────────────


async def _generate_walkthrough(
    sampler: Sampler,
    repo_path: str,
    target: Any,
    style: str = DEFAULT_STYLE,
    output_path: str = DEFAULT_OUTPUT,
    theme: str = DEFAULT_THEME,
) -> dict[str, Any]:
    walkthrough_id = str(uuid.uuid4())
    stage = "input"
    try:
        if not repo_path:
            raise InputError("repoPath", "repoPath is required")
        kind, commit_hash = _parse_target(target)
        _validate_options(style, theme)

        stage = "extract"
        if kind == "commit":
            data = await asyncio.to_thread(extract_commit_info, repo_path, commit_hash)
        elif kind == "codebase":
            data = await asyncio.to_thread(extract_codebase_info, repo_path)
        else:
            data = await asyncio.to_thread(extract_diff_info, repo_path, kind == "staged")
        diffs = {f.path: f.diff for f in getattr(data, "files", []) if getattr(f, "diff", "")}

        stage = "analysis"
        analysis = await request_analysis(sampler, data)

        stage = "script"
        script = await request_script(sampler, analysis, style, TARGET_LABELS[kind])

        stage = "video"
        result = await build_pipeline(style, theme, diffs).run(analysis, script, style, output_path)

    except InputError as e:
        logger.warning(f"Rejected input ({e.field}): {e.message}")
        return _error(walkthrough_id, "input", e.message, field=e.field)
    except AgentResponseError as e:
        logger.error(f"Agent response rejected at {stage}: {e.message}")
        return _error(walkthrough_id, stage, e.message, excerpt=e.excerpt)
    except PipelineError as e:
        logger.error(f"Video generation failed: {e}")
        return {"status": "error", "walkthroughId": walkthrough_id, **e.to_dict()}
    except (GitError, ValueError) as e:
        logger.error(f"Walkthrough failed at {stage}: {e}")
        return _error(walkthrough_id, stage, str(e))
    except Exception as e:
        logger.exception(f"Unexpected failure at {stage}")
        return _error(walkthrough_id, stage, f"Failed at {stage}: {e}")

    return {
        "status": "success",
        "walkthroughId": walkthrough_id,
        "stages": {
            "analysis": {
                "summary": analysis.summary.model_dump(),
                "filesAnalyzed": len(analysis.files),
                "totalStats": analysis.total_stats.model_dump(by_alias=True),
            },
            "script": {
                "intro": script.intro[:100] + ("..." if len(script.intro) > 100 else ""),
                "sections": len(script.sections),
                "estimatedDuration": script.estimated_duration,
            },
            "video": _video_details(result),
        },
        "output": _video_summary(result),
    }


async def _generate_video_from_script(
    analysis: Any,
    script: Any,
    style: str = DEFAULT_STYLE,
    output_path: str = DEFAULT_OUTPUT,
    theme: str = DEFAULT_THEME,
) -> dict[str, Any]:
    walkthrough_id = str(uuid.uuid4())
    try:
        _validate_options(style, theme)
        if not isinstance(analysis, dict):
            raise InputError("analysis", "analysis is required and must be an object")
        if not isinstance(script, dict):
            raise InputError("script", "script is required and must be an object")
        try:
            parsed_analysis = AnalysisResult.model_validate(analysis)
        except ValidationError as e:
            raise InputError("analysis", f"Invalid analysis: {e.errors()[0]['msg']}")
        try:
            parsed_script = NarrationScript.model_validate(_normalize_script(script))
        except ValidationError as e:
            raise InputError("script", f"Invalid script: {e.errors()[0]['msg']}")

        result = await build_pipeline(style, theme).run(parsed_analysis, parsed_script, style, output_path)

    except InputError as e:
        logger.warning(f"Rejected input ({e.field}): {e.message}")
        return _error(walkthrough_id, "input", e.message, field=e.field)
    except PipelineError as e:
        logger.error(f"Video generation failed: {e}")
        return {"status": "error", "walkthroughId": walkthrough_id, **e.to_dict()}
    except Exception as e:
        logger.exception("Unexpected failure generating video from script")
        return _error(walkthrough_id, "video", str(e))

    return {
        "status": "success",
        "walkthroughId": walkthrough_id,
        "video": _video_details(result),
        "output": _video_summary(result),
    }


# ─────────────────────────────────────────────────────────────────────────────
# MCP Tools (exposed to clients)
# ─────────────────────────────────────────────────────────────────────────────


@mcp.tool()
async def generate_walkthrough(
    repo_path: str,
    target: dict[str, Any],
    ctx: Context,
    style: str = DEFAULT_STYLE,
    output_path: str = DEFAULT_OUTPUT,
    theme: str = DEFAULT_THEME,
) -> dict[str, Any]:
    """
    Generate a narrated video walkthrough of git changes or a codebase.

    The tool drives your model through MCP sampling: first to analyze the
    changes, then to write a narration script. gitreel then renders frames,
    synthesizes speech, and compiles the video with ffmpeg. If speech
    synthesis fails the video is still produced, silently.

    Args:
        repo_path: Path to the git repository.
        target: What to analyze: {"type": "commit"|"staged"|"unstaged"|"codebase",
            "commitHash": "..."}; commitHash is required for "commit".
        style: "beginner", "technical" (default), or "overview".
        output_path: Where to write the video (default ./walkthrough.mp4).
        theme: "dark" (default), "light", or "github".
    """
    logger.debug(f"generate_walkthrough: repo={repo_path}, target={target}, style={style}")
    sampler: Sampler
    if _agent_mode == "anthropic":
        sampler = AnthropicSampler(_agent_model)
    else:
        sampler = ContextSampler(ctx)
    return await _generate_walkthrough(sampler, repo_path, target, style, output_path, theme)


@mcp.tool()
async def generate_video_from_script(
    analysis: dict[str, Any],
    script: dict[str, Any],
    style: str = DEFAULT_STYLE,
    output_path: str = DEFAULT_OUTPUT,
    theme: str = DEFAULT_THEME,
) -> dict[str, Any]:
    """Generate a video from an analysis and script you already have.

    Use this when your client does not support MCP sampling: ask a model for
    the analysis and script first, then pass both here.

    Args:
        analysis: {"summary": {"achievement", "approach"}, "files": [{"path",
            "status", "explanation", "impact"}], "totalStats": {"filesChanged", ...}}.
        script: {"intro", "sections": [{"file", "narration", "duration"}], "outro",
            "fullNarrative", "estimatedDuration"}. fullNarrative may be omitted; pause
            markers look like [[slnc 500]] (milliseconds).
        style: "beginner", "technical" (default), or "overview".
        output_path: Where to write the video (default ./walkthrough.mp4).
        theme: "dark" (default), "light", or "github".
    """
    logger.debug(f"generate_video_from_script: style={style}, output={output_path}")
    return await _generate_video_from_script(analysis, script, style, output_path, theme)


# ─────────────────────────────────────────────────────────────────────────────
# MCP Resources (read-only introspection)
# ─────────────────────────────────────────────────────────────────────────────


@mcp.resource("resource://server/info")
def server_info() -> dict[str, Any]:
    """Server version, capabilities, and status."""
    return {
        "name": "gitreel",
        "version": __version__,
        "description": "narrated video walkthroughs of commits, diffs, and codebases",
        "agent": _agent_mode,
        "targets": list(TARGET_LABELS),
        "styles": list(STYLES),
        "themes": list(THEMES),
        "renderer_available": RsvgRenderer.is_available(),
        "ffmpeg": FfmpegEncoder.version(),
    }


@mcp.resource("resource://config/timing")
def timing_config() -> dict[str, Any]:
    """Narration pacing and video settings."""
    return {
        "words_per_minute": dict(timing.WORDS_PER_MINUTE),
        "min_segment_seconds": timing.MIN_SEGMENT_SECONDS,
        "default_frame_seconds": timing.DEFAULT_FRAME_SECONDS,
        "silent_title_seconds": timing.TITLE_FRAME_SECONDS,
        "silent_content_seconds": timing.CONTENT_FRAME_SECONDS,
        "silence_marker": "[[slnc <milliseconds>]]",
        "voice": DEFAULT_VOICE,
        "speech_rates": dict(STYLE_RATES),
        "resolution": [VIDEO_WIDTH, VIDEO_HEIGHT],
        "fps": VIDEO_FPS,
        "quality": VIDEO_QUALITY,
    }


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def main() -> None:
    global _agent_mode, _agent_model

    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(
        description="gitreel - narrated git walkthrough videos (MCP server)"
    )
    parser.add_argument(
        "--key-file",
        type=Path,
        help="Path to file containing Anthropic API key (alternative to ANTHROPIC_API_KEY env)",
    )
    parser.add_argument(
        "--agent",
        choices=["sampling", "anthropic"],
        default="sampling",
        help="Who writes analysis and script: the MCP client (sampling) or the Anthropic API",
    )
    parser.add_argument(
        "--model",
        default="sonnet",
        help="Model alias or ID used with --agent anthropic (default: sonnet)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args()

    if args.debug:
        logging.getLogger("gitreel").setLevel(logging.DEBUG)

    if args.key_file:
        if not args.key_file.exists():
            print(f"Error: Key file not found: {args.key_file}", file=sys.stderr)
            sys.exit(1)
        agent.set_api_key(args.key_file.read_text().strip())

    _agent_mode = args.agent
    _agent_model = args.model

    logger.info(f"Starting gitreel MCP server (agent: {_agent_mode})")
    mcp.run()


if __name__ == "__main__":
    main()
