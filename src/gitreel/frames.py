"""
Frame generation: one SVG per visual frame.

A walkthrough is a title frame, one frame per analyzed file, and an outro.
SVG is written to disk so the rasterizer can run on each frame independently.
"""

from __future__ import annotations

import logging
import re
import textwrap
from collections.abc import Mapping
from pathlib import Path

from pygments import lex
from pygments.lexer import Lexer
from pygments.lexers import TextLexer, get_lexer_for_filename
from pygments.styles import get_style_by_name
from pygments.util import ClassNotFound

from gitreel.models import AnalysisResult, FileAnalysis, NarrationScript

logger = logging.getLogger(__name__)

WIDTH, HEIGHT = 1920, 1080
MAX_DIFF_LINES = 18
MAX_LINE_CHARS = 110

THEMES: dict[str, dict[str, str]] = {
    "dark": {
        "bg_top": "#0d1117",
        "bg_bot": "#161b22",
        "text": "#c9d1d9",
        "muted": "#8b949e",
        "accent": "#58a6ff",
        "card": "#161b22",
        "card_stroke": "#30363d",
        "code_bg": "#010409",
        "code_style": "monokai",
    },
    "light": {
        "bg_top": "#ffffff",
        "bg_bot": "#f6f8fa",
        "text": "#24292f",
        "muted": "#57606a",
        "accent": "#0969da",
        "card": "#ffffff",
        "card_stroke": "#d0d7de",
        "code_bg": "#f6f8fa",
        "code_style": "default",
    },
    "github": {
        "bg_top": "#f6f8fa",
        "bg_bot": "#eaeef2",
        "text": "#24292f",
        "muted": "#57606a",
        "accent": "#2da44e",
        "card": "#ffffff",
        "card_stroke": "#d0d7de",
        "code_bg": "#ffffff",
        "code_style": "friendly",
    },
}

STATUS_COLORS = {
    "added": "#2da44e",
    "modified": "#bf8700",
    "deleted": "#cf222e",
    "binary": "#8250df",
}

DIFF_COLORS = {"+": "#3fb950", "-": "#f85149", "@": "#a371f7"}


# === SVG Helpers ===

_XML_ILLEGAL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


def _escape(text: str) -> str:
    text = _XML_ILLEGAL.sub("", text)
    return (text.replace("&", "&amp;").replace("<", "&lt;")
            .replace(">", "&gt;").replace('"', "&quot;"))


def svg_header(theme: dict[str, str], width: int, height: int) -> str:
    return f'''<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" viewBox="0 0 {width} {height}">
  <defs>
    <linearGradient id="bg" x1="0" y1="0" x2="0" y2="1">
      <stop offset="0%" stop-color="{theme["bg_top"]}"/>
      <stop offset="100%" stop-color="{theme["bg_bot"]}"/>
    </linearGradient>
    <filter id="shadow" x="-5%" y="-5%" width="115%" height="115%">
      <feDropShadow dx="2" dy="3" stdDeviation="4" flood-opacity="0.2"/>
    </filter>
  </defs>
  <rect width="{width}" height="{height}" fill="url(#bg)"/>'''


def svg_footer() -> str:
    return "</svg>"


def svg_rect(x: float, y: float, w: float, h: float, fill: str,
             stroke: str = "none", rx: float = 12, shadow: bool = False) -> str:
    filt = ' filter="url(#shadow)"' if shadow else ""
    return (f'  <rect x="{x:.1f}" y="{y:.1f}" width="{w:.1f}" height="{h:.1f}" '
            f'rx="{rx:.1f}" fill="{fill}" stroke="{stroke}" stroke-width="2"{filt}/>')


def svg_text(x: float, y: float, text: str, size: float = 40,
             fill: str = "#c9d1d9", anchor: str = "start",
             weight: str = "normal", font: str = "sans-serif") -> str:
    return (f'  <text x="{x:.1f}" y="{y:.1f}" font-family="{font}" '
            f'font-size="{size:.0f}" font-weight="{weight}" fill="{fill}" '
            f'text-anchor="{anchor}" xml:space="preserve">{_escape(text)}</text>')


def svg_paragraph(x: float, y: float, text: str, width_chars: int,
                  size: float, fill: str, anchor: str = "start",
                  max_lines: int = 4, line_height: float = 1.35) -> tuple[str, float]:
    """Wrapped text block. Returns markup and the y just below it."""
    lines = textwrap.wrap(text, width_chars) or [""]
    if len(lines) > max_lines:
        lines = lines[:max_lines]
        lines[-1] = lines[-1].rstrip(".,; ") + "..."
    parts = [svg_text(x, y + i * size * line_height, line, size, fill, anchor)
             for i, line in enumerate(lines)]
    return "\n".join(parts), y + len(lines) * size * line_height


def lexer_for(path: str) -> Lexer:
    """Pygments lexer chosen by file name, plain text when nothing matches."""
    try:
        return get_lexer_for_filename(path)
    except ClassNotFound:
        return TextLexer()


def token_color(style, ttype, default: str) -> str:
    while ttype.parent is not None and not style.styles_token(ttype):
        ttype = ttype.parent
    color = style.style_for_token(ttype).get("color")
    return f"#{color}" if color else default


def svg_code_line(x: float, y: float, line: str, size: float,
                  lexer: Lexer, style, default: str) -> str:
    """One diff line: the marker in its diff colour, the code after it highlighted."""
    marker, code = line[:1], line[1:]
    if marker not in ("+", "-", " "):
        return svg_text(x, y, line, size, DIFF_COLORS.get(marker, default), font="monospace")

    spans = [f'<tspan fill="{DIFF_COLORS.get(marker, default)}">{_escape(marker)}</tspan>']
    for ttype, value in lex(code, lexer):
        value = value.rstrip("\n")
        if value:
            spans.append(f'<tspan fill="{token_color(style, ttype, default)}">{_escape(value)}</tspan>')
    return (f'  <text x="{x:.1f}" y="{y:.1f}" font-family="monospace" '
            f'font-size="{size:.0f}" fill="{default}" '
            f'xml:space="preserve">{"".join(spans)}</text>')


def sanitize_filename(path: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "_", path).strip("_")[:60] or "file"


def diff_excerpt(diff: str, max_lines: int = MAX_DIFF_LINES) -> list[str]:
    """Hunk lines worth showing: no file headers, clipped to fit the card."""
    lines = []
    for line in diff.splitlines():
        if line.startswith(("diff --git", "index ", "--- ", "+++ ", "new file", "deleted file")):
            continue
        if len(line) > MAX_LINE_CHARS:
            line = line[:MAX_LINE_CHARS - 3] + "..."
        lines.append(line.expandtabs(4))
        if len(lines) >= max_lines:
            break
    return lines


class FrameGenerator:
    """Writes title, per-file, and outro SVG frames for one walkthrough."""

    def __init__(
        self,
        theme: str = "dark",
        width: int = WIDTH,
        height: int = HEIGHT,
        diffs: Mapping[str, str] | None = None,
    ):
        self.theme = THEMES.get(theme, THEMES["dark"])
        self.width = width
        self.height = height
        self.diffs = dict(diffs or {})

    async def generate_frames(
        self,
        analysis: AnalysisResult,
        script: NarrationScript,
        output_dir: Path,
    ) -> list[Path]:
        output_dir.mkdir(parents=True, exist_ok=True)
        frames: list[tuple[str, str]] = [("title", self.title_frame(analysis.summary.achievement))]
        for f in analysis.files:
            section = script.section_for(f.path)
            frames.append((
                sanitize_filename(f.path),
                self.file_frame(f, section.narration if section else ""),
            ))
        frames.append(("outro", self.outro_frame(analysis.summary.approach)))

        paths = []
        for index, (name, svg) in enumerate(frames):
            path = output_dir / f"frame-{index:03d}-{name}.svg"
            path.write_text(svg, encoding="utf-8")
            paths.append(path)

        logger.info(f"Generated {len(paths)} SVG frames in {output_dir}")
        return paths

    def title_frame(self, achievement: str) -> str:
        t, cx = self.theme, self.width / 2
        body, _ = svg_paragraph(cx, self.height / 2 + 90, achievement, 60, 48,
                                t["muted"], anchor="middle", max_lines=3)
        return "\n".join([
            svg_header(t, self.width, self.height),
            svg_text(cx, self.height / 2 - 60, "Code Walkthrough", 96,
                     t["text"], anchor="middle", weight="bold"),
            svg_rect(cx - 160, self.height / 2 - 20, 320, 8, t["accent"], rx=4),
            body,
            svg_footer(),
        ])

    def file_frame(self, f: FileAnalysis, narration: str = "") -> str:
        t = self.theme
        margin = 100
        badge = STATUS_COLORS.get(f.status, t["muted"])
        parts = [
            svg_header(t, self.width, self.height),
            svg_text(margin, 140, f.path, 52, t["text"], weight="bold", font="monospace"),
            svg_rect(self.width - margin - 240, 95, 240, 64, badge, rx=32),
            svg_text(self.width - margin - 120, 140, f.status.capitalize(), 34,
                     "#ffffff", anchor="middle", weight="bold"),
        ]

        what, y = svg_paragraph(margin, 240, f"What: {f.explanation}", 80, 36, t["text"], max_lines=3)
        why, y = svg_paragraph(margin, y + 20, f"Why: {f.impact}", 80, 36, t["muted"], max_lines=3)
        parts += [what, why]

        code_top = y + 30
        code_height = self.height - code_top - 60
        lines = diff_excerpt(self.diffs.get(f.path, ""))
        if f.status == "binary":
            parts.append(svg_rect(margin, code_top, self.width - 2 * margin, 160,
                                  t["code_bg"], t["card_stroke"], shadow=True))
            parts.append(svg_text(self.width / 2, code_top + 95, "Binary file", 40,
                                  t["muted"], anchor="middle"))
        elif lines and code_height > 120:
            parts.append(svg_rect(margin, code_top, self.width - 2 * margin, code_height,
                                  t["code_bg"], t["card_stroke"], shadow=True))
            line_size = 26
            visible = int((code_height - 40) // (line_size * 1.3))
            lexer = lexer_for(f.path)
            style = get_style_by_name(t["code_style"])
            for i, line in enumerate(lines[:visible]):
                parts.append(svg_code_line(margin + 30, code_top + 45 + i * line_size * 1.3,
                                           line, line_size, lexer, style, t["text"]))
        elif narration:
            text, _ = svg_paragraph(margin, code_top + 40, narration, 80, 34,
                                    t["muted"], max_lines=6)
            parts.append(text)

        parts.append(svg_footer())
        return "\n".join(parts)

    def outro_frame(self, approach: str) -> str:
        t, cx = self.theme, self.width / 2
        body, y = svg_paragraph(cx, self.height / 2, approach, 64, 44,
                                t["text"], anchor="middle", max_lines=5)
        return "\n".join([
            svg_header(t, self.width, self.height),
            svg_text(cx, self.height / 2 - 140, "Summary", 88, t["text"],
                     anchor="middle", weight="bold"),
            svg_rect(cx - 120, self.height / 2 - 100, 240, 8, t["accent"], rx=4),
            body,
            svg_text(cx, min(y + 120, self.height - 80), "End of Walkthrough", 32,
                     t["muted"], anchor="middle"),
            svg_footer(),
        ])
