"""
Typed shapes for everything that crosses a trust boundary.

Agent responses and tool arguments arrive as loosely-typed JSON with
camelCase keys; they are validated into these frozen models before anything
else touches them.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

PresentationStyle = Literal["beginner", "technical", "overview"]
Theme = Literal["dark", "light", "github"]
FileStatus = Literal["added", "modified", "deleted", "binary"]

NARRATIVE_PAUSE = "[[slnc 500]]"


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Summary(_Model):
    achievement: str = Field(min_length=1)
    approach: str = Field(min_length=1)


class FileAnalysis(_Model):
    path: str
    status: FileStatus
    explanation: str
    impact: str


class TotalStats(_Model):
    additions: int = 0
    deletions: int = 0
    files_changed: int


class AnalysisResult(_Model):
    summary: Summary
    files: list[FileAnalysis]
    total_stats: TotalStats


class ScriptSection(_Model):
    file: str
    narration: str
    duration: float = 5.0


class NarrationScript(_Model):
    intro: str
    sections: list[ScriptSection]
    outro: str
    full_narrative: str
    estimated_duration: float = 30.0

    def section_for(self, path: str) -> ScriptSection | None:
        return next((s for s in self.sections if s.file == path), None)


def compose_full_narrative(intro: str, sections: list[ScriptSection], outro: str) -> str:
    """Join script parts with a half-second pause between each."""
    parts = [intro, *(s.narration for s in sections), outro]
    return f" {NARRATIVE_PAUSE} ".join(p.strip() for p in parts if p.strip())


class VideoResult(_Model):
    video_path: str
    duration: float
    frame_count: int
    has_audio: bool
