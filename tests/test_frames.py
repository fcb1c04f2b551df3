"""Tests for SVG frame generation."""

import asyncio
import os
import sys
import xml.etree.ElementTree as ET

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from gitreel.frames import DIFF_COLORS, THEMES, FrameGenerator, diff_excerpt, sanitize_filename
from gitreel.models import AnalysisResult, FileAnalysis, NarrationScript


ANALYSIS = AnalysisResult.model_validate({
    "summary": {"achievement": "Parse <config> & validate it", "approach": "A schema-driven loader"},
    "files": [
        {"path": "src/config/loader.py", "status": "modified", "explanation": "Loads YAML", "impact": "One source of truth"},
        {"path": "assets/logo.png", "status": "binary", "explanation": "New logo", "impact": "Branding"},
        {"path": "docs/README.md", "status": "added", "explanation": "Docs", "impact": "Onboarding"},
    ],
    "totalStats": {"additions": 10, "deletions": 1, "filesChanged": 3},
})

SCRIPT = NarrationScript.model_validate({
    "intro": "Intro.",
    "sections": [{"file": "docs/README.md", "narration": "The README explains setup.", "duration": 4}],
    "outro": "Outro.",
    "fullNarrative": "Intro. [[slnc 500]] The README explains setup. [[slnc 500]] Outro.",
})

DIFF = """\
diff --git a/src/config/loader.py b/src/config/loader.py
index 1111111..2222222 100644
--- a/src/config/loader.py
+++ b/src/config/loader.py
@@ -1,3 +1,4 @@
 import yaml
-def load(path):
+def load(path: str) -> dict:
+    \"\"\"Load config.\"\"\"
"""


def _text_lines(svg: str) -> list[str]:
    """Visible text of each <text> element, tspans joined."""
    root = ET.fromstring(svg)
    return ["".join(t.itertext()) for t in root.iter("{http://www.w3.org/2000/svg}text")]


class TestGenerateFrames:
    """Tests for FrameGenerator.generate_frames."""

    def test_title_files_outro(self, tmp_path):
        """One title, one frame per file, one outro, in order."""
        gen = FrameGenerator(diffs={"src/config/loader.py": DIFF})
        paths = asyncio.run(gen.generate_frames(ANALYSIS, SCRIPT, tmp_path / "svg"))

        assert [p.name for p in paths] == [
            "frame-000-title.svg",
            "frame-001-src_config_loader.py.svg",
            "frame-002-assets_logo.png.svg",
            "frame-003-docs_README.md.svg",
            "frame-004-outro.svg",
        ]
        for path in paths:
            ET.fromstring(path.read_text())

    def test_text_is_escaped(self, tmp_path):
        """Markup characters in analysis text don't break the SVG."""
        paths = asyncio.run(FrameGenerator().generate_frames(ANALYSIS, SCRIPT, tmp_path))
        title = paths[0].read_text()
        assert "&lt;config&gt; &amp; validate" in title
        ET.fromstring(title)

    def test_diff_lines_shown(self, tmp_path):
        """Hunk lines appear on the file frame; headers do not."""
        gen = FrameGenerator(diffs={"src/config/loader.py": DIFF})
        svg = gen.file_frame(ANALYSIS.files[0])
        assert "+def load(path: str) -> dict:" in _text_lines(svg)
        assert "index 1111111" not in svg

    def test_diff_highlighted_by_language(self):
        """Code after the diff marker is coloured by the file's lexer."""
        svg = FrameGenerator(theme="dark", diffs={"src/config/loader.py": DIFF}).file_frame(ANALYSIS.files[0])
        assert f'<tspan fill="{DIFF_COLORS["+"]}">+</tspan>' in svg
        assert '<tspan fill="#66d9ef">def</tspan>' in svg

    def test_unknown_language_plain(self):
        """Files Pygments doesn't know are still shown, in the theme's text colour."""
        f = FileAnalysis(path="notes.unknownext", status="added", explanation="Notes", impact="None")
        svg = FrameGenerator(theme="light", diffs={f.path: "@@ -0,0 +1 @@\n+just words\n"}).file_frame(f)
        assert "+just words" in _text_lines(svg)
        assert f'<tspan fill="{THEMES["light"]["text"]}">just words</tspan>' in svg

    def test_control_characters_stripped(self, tmp_path):
        """ANSI escapes and form feeds in a diff still give well-formed frames."""
        diff = "@@ -0,0 +1,3 @@\n+print('\x1b[31mred\x1b[0m')\n+\x0c\n+bell\x07\n"
        analysis = AnalysisResult.model_validate({
            "summary": {"achievement": "Colour \x1b[1mlogs\x1b[0m", "approach": "ANSI codes"},
            "files": [{"path": "log.py", "status": "modified", "explanation": "Colours", "impact": "Readable"}],
            "totalStats": {"additions": 3, "deletions": 0, "filesChanged": 1},
        })
        paths = asyncio.run(FrameGenerator(diffs={"log.py": diff}).generate_frames(analysis, SCRIPT, tmp_path))

        for path in paths:
            ET.parse(path)
        assert "+print('[31mred[0m')" in _text_lines(paths[1].read_text())

    def test_binary_placeholder(self):
        """Binary files get a placeholder instead of a diff."""
        assert "Binary file" in FrameGenerator().file_frame(ANALYSIS.files[1])

    def test_narration_when_no_diff(self):
        """Without a diff, the file's narration fills the frame."""
        svg = FrameGenerator().file_frame(ANALYSIS.files[2], "The README explains setup.")
        assert "The README explains setup." in svg

    def test_theme_colors(self):
        """Theme backgrounds are applied; unknown themes fall back to dark."""
        assert THEMES["light"]["bg_top"] in FrameGenerator(theme="light").title_frame("x")
        assert THEMES["dark"]["bg_top"] in FrameGenerator(theme="neon").title_frame("x")

    def test_dimensions(self):
        """Frames use the configured size."""
        svg = FrameGenerator(width=1280, height=720).outro_frame("done")
        assert 'width="1280" height="720"' in svg


class TestHelpers:
    """Tests for sanitize_filename and diff_excerpt."""

    def test_sanitize_filename(self):
        assert sanitize_filename("src/a b/c.py") == "src_a_b_c.py"
        assert sanitize_filename("///") == "file"
        assert len(sanitize_filename("x" * 200)) == 60

    def test_diff_excerpt_limits(self):
        diff = "\n".join(f"+line {i}" for i in range(100))
        lines = diff_excerpt(diff, max_lines=5)
        assert lines == [f"+line {i}" for i in range(5)]

    def test_diff_excerpt_clips_long_lines(self):
        lines = diff_excerpt("+" + "x" * 500)
        assert lines[0].endswith("...")
        assert len(lines[0]) == 110
