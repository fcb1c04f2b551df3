"""Prompt templates for the analysis and script requests sent to the agent."""

from __future__ import annotations

import json

from gitreel.git_tools import CodebaseInfo, CommitInfo, DiffInfo, FileChange
from gitreel.models import AnalysisResult

MAX_PROMPT_DIFF = 4000     # chars of diff per file included in a prompt
MAX_CODEBASE_FILES = 20

ANALYSIS_FORMAT = """\
Return your analysis as a single JSON object with exactly this shape:
{{
  "summary": {{
    "achievement": "{achievement}",
    "approach": "{approach}"
  }},
  "files": [
    {{
      "path": "path/to/file",
      "status": "added|modified|deleted",
      "explanation": "{explanation}",
      "impact": "{impact}"
    }}
  ],
  "totalStats": {{
    "additions": {additions},
    "deletions": {deletions},
    "filesChanged": {files_changed}
  }}
}}

Return ONLY the JSON object - no markdown fences, no commentary."""

STYLE_GUIDANCE = {
    "beginner": """\
Style: BEGINNER. Simple, educational language with plenty of context.
- Explain technical terms the first time they appear
- Conversational, encouraging tone
- Slow pacing with frequent pauses""",
    "technical": """\
Style: TECHNICAL. Precise, professional language focused on implementation.
- Use technical terminology where it fits
- Concise but thorough; focus on what changed and how""",
    "overview": """\
Style: OVERVIEW. A quick, high-level summary.
- Only the key points, no detailed explanations
- Fast-paced delivery""",
}


def _file_lines(files: list[FileChange]) -> str:
    return "\n".join(
        f"- {f.path} ({f.status}, +{f.additions}/-{f.deletions})" for f in files
    ) or "- (no files)"


def _diff_blocks(files: list[FileChange]) -> str:
    blocks = []
    for f in files:
        if f.diff:
            diff = f.diff[:MAX_PROMPT_DIFF]
            if len(f.diff) > MAX_PROMPT_DIFF:
                diff += "\n... (diff truncated)"
            blocks.append(f"--- DIFF: {f.path} ---\n{diff}")
    return "\n\n".join(blocks)


def commit_analysis_prompt(commit: CommitInfo) -> str:
    additions = sum(f.additions for f in commit.files)
    deletions = sum(f.deletions for f in commit.files)
    return f"""\
Analyze the following git commit and explain what it does.

If you can delegate to subagents, use one for examining the diffs and another
for explaining intent and impact.

Commit:
- Hash: {commit.hash}
- Author: {commit.author}
- Date: {commit.date}
- Message: {commit.message}

Files changed ({len(commit.files)}):
{_file_lines(commit.files)}

{_diff_blocks(commit.files)}

Cover:
1. What the commit achieved and how, at a high level
2. For each file: what changed and why it matters
3. The overall effect on the codebase

""" + ANALYSIS_FORMAT.format(
        achievement="What this commit accomplished",
        approach="How it was done at a high level",
        explanation="What changed in this file",
        impact="Why this change matters",
        additions=additions,
        deletions=deletions,
        files_changed=len(commit.files),
    )


def diff_analysis_prompt(diff: DiffInfo) -> str:
    stats = diff.total_stats
    return f"""\
Analyze the following {diff.kind} git changes and explain what they do.

Changes:
- Files changed: {stats["filesChanged"]}
- Lines added: {stats["additions"]}
- Lines deleted: {stats["deletions"]}

Files:
{_file_lines(diff.files)}

{_diff_blocks(diff.files)}

Cover:
1. What these changes accomplish
2. For each file: what changed and why it matters
3. How the changes affect the codebase

""" + ANALYSIS_FORMAT.format(
        achievement="What these changes accomplish",
        approach="How they are implemented",
        explanation="What changed in this file",
        impact="Why this change matters",
        additions=stats["additions"],
        deletions=stats["deletions"],
        files_changed=stats["filesChanged"],
    )


def codebase_analysis_prompt(codebase: CodebaseInfo) -> str:
    key_files = "\n".join(
        f"- {f.relative_path} ({f.language}, {f.lines} lines)"
        for f in codebase.files[:MAX_CODEBASE_FILES]
    )
    return f"""\
Analyze the following codebase and give an architectural overview.

Codebase:
- Root: {codebase.root_path}
- Total files: {codebase.total_files}
- Languages: {", ".join(codebase.languages) or "unknown"}

Key files (first {MAX_CODEBASE_FILES}):
{key_files}

Cover:
1. What the codebase does and how it is structured
2. The most important files and their roles
3. How the code is organized

Use status "modified" for every file.

""" + ANALYSIS_FORMAT.format(
        achievement="What this codebase provides",
        approach="How it is architecturally organized",
        explanation="Purpose and role of this file",
        impact="Why this file matters to the architecture",
        additions=0,
        deletions=0,
        files_changed=codebase.total_files,
    )


def script_prompt(analysis: AnalysisResult, style: str, target_label: str) -> str:
    analysis_json = json.dumps(analysis.model_dump(by_alias=True), indent=2)
    return f"""\
Write a natural-sounding narration script for a video walkthrough.

Target: {target_label}
Presentation style: {style.upper()}

{STYLE_GUIDANCE.get(style, STYLE_GUIDANCE["technical"])}

Analysis:
{analysis_json}

The script has four parts:
1. intro: what was achieved and, at a high level, how. No file details yet.
2. sections: one per file in the analysis, explaining what changed and why
   it matters, with an estimated duration in seconds.
3. outro: a summary of the changes and their impact.
4. fullNarrative: intro, sections and outro joined into one script with
   natural pauses. Mark pauses as [[slnc N]] where N is milliseconds,
   e.g. [[slnc 300]].

Return a single JSON object with exactly this shape:
{{
  "intro": "Introduction narration",
  "sections": [
    {{"file": "path/to/file", "narration": "What changed and why", "duration": 5}}
  ],
  "outro": "Conclusion narration",
  "fullNarrative": "Complete script with [[slnc N]] pause markers",
  "estimatedDuration": 30
}}

Return ONLY the JSON object - no markdown fences, no commentary. Avoid robotic
phrasing."""
