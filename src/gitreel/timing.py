"""
Narration timing and frame synchronization.

Narration scripts carry inline pause directives of the form ``[[slnc 500]]``
(milliseconds). Everything here works from estimated speaking rates rather
than measured audio, so the same script always produces the same timeline.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import NamedTuple, Sequence

# ─────────────────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────────────────

SILENCE_PATTERN = re.compile(r"\[\[slnc (\d+)\]\]")
# Same pattern with the whole marker captured, so re.split keeps it
SILENCE_SPLIT_PATTERN = re.compile(r"(\[\[slnc \d+\]\])")

WORDS_PER_MINUTE = {
    "beginner": 130,
    "technical": 150,
    "overview": 170,
}
DEFAULT_STYLE = "technical"
MIN_SEGMENT_SECONDS = 2.0

DEFAULT_FRAME_SECONDS = 3.0   # per frame when no narration timing exists
TITLE_FRAME_SECONDS = 3.0     # silent video: title and outro
CONTENT_FRAME_SECONDS = 5.0   # silent video: everything in between


class SilenceParse(NamedTuple):
    clean_text: str
    total_silence: float


@dataclass(frozen=True)
class TimingSegment:
    """A span of the narration timeline. Empty ``text`` means a pause."""

    text: str
    start_time: float
    duration: float

    @property
    def is_pause(self) -> bool:
        return not self.text

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration


@dataclass(frozen=True)
class FrameTiming:
    frame_index: int
    start_time: float
    duration: float


# ─────────────────────────────────────────────────────────────────────────────
# Silence markers & speech duration
# ─────────────────────────────────────────────────────────────────────────────


def parse_silence_markers(text: str) -> SilenceParse:
    """Remove every silence marker and total up the pauses (in seconds).

    Markers are deleted outright, not replaced with whitespace. Anything that
    only looks like a marker (``[[slnc]]``, ``[slnc 5]``) is left alone.
    """
    total_silence = sum(int(ms) / 1000 for ms in SILENCE_PATTERN.findall(text))
    return SilenceParse(SILENCE_PATTERN.sub("", text), total_silence)


def strip_silence_markers(text: str) -> str:
    return SILENCE_PATTERN.sub("", text)


def words_per_minute(style: str | None) -> int:
    return WORDS_PER_MINUTE.get(style or DEFAULT_STYLE, WORDS_PER_MINUTE[DEFAULT_STYLE])


def calculate_speaking_duration(text: str, style: str = DEFAULT_STYLE) -> float:
    """Estimated seconds to speak ``text`` at the style's rate, floored at 2s."""
    word_count = len(text.split())
    duration = word_count / words_per_minute(style) * 60
    return max(MIN_SEGMENT_SECONDS, duration)


def calculate_total_duration(text: str, style: str = DEFAULT_STYLE) -> float:
    """Speaking time of the marker-free text plus all marked pauses."""
    clean_text, total_silence = parse_silence_markers(text)
    return calculate_speaking_duration(clean_text, style) + total_silence


# ─────────────────────────────────────────────────────────────────────────────
# Timeline construction
# ─────────────────────────────────────────────────────────────────────────────


def create_timing_segments(narrative: str, style: str = DEFAULT_STYLE) -> list[TimingSegment]:
    """Split a narrative into contiguous speech and pause segments."""
    segments: list[TimingSegment] = []
    current_time = 0.0

    for part in SILENCE_SPLIT_PATTERN.split(narrative):
        marker = SILENCE_PATTERN.fullmatch(part)
        if marker:
            duration = int(marker.group(1)) / 1000
            segments.append(TimingSegment("", current_time, duration))
            current_time += duration
        elif part.strip():
            text = part.strip()
            duration = calculate_speaking_duration(text, style)
            segments.append(TimingSegment(text, current_time, duration))
            current_time += duration

    return segments


def _group_sizes(segment_count: int, frame_count: int) -> list[int]:
    """How many consecutive segments each frame covers.

    Groups of ceil(segments / frames); if that runs out of segments before
    the last frame, fall back to sizes that differ by at most one.
    """
    per_frame = math.ceil(segment_count / frame_count)
    if per_frame * (frame_count - 1) < segment_count:
        return [min(per_frame, segment_count - i * per_frame) for i in range(frame_count)]
    base, extra = divmod(segment_count, frame_count)
    return [base + 1 if i < extra else base for i in range(frame_count)]


def calculate_frame_durations(
    frame_count: int,
    segments: Sequence[TimingSegment],
) -> list[float]:
    """Display duration (seconds) for each of ``frame_count`` frames."""
    if frame_count <= 0:
        return []

    if not segments:
        return [DEFAULT_FRAME_SECONDS] * frame_count

    if frame_count > len(segments):
        # More frames than narration: spread the total evenly
        total = sum(seg.duration for seg in segments)
        return [total / frame_count] * frame_count

    durations: list[float] = []
    start = 0
    for size in _group_sizes(len(segments), frame_count):
        durations.append(sum(seg.duration for seg in segments[start:start + size]))
        start += size
    return durations


def fallback_frame_durations(frame_count: int) -> list[float]:
    """Pacing for silent videos: short title/outro, longer content frames."""
    return [
        TITLE_FRAME_SECONDS if i in (0, frame_count - 1) else CONTENT_FRAME_SECONDS
        for i in range(frame_count)
    ]


def synchronize_frames(frame_durations: Sequence[float]) -> list[FrameTiming]:
    """Absolute start time of each frame."""
    timings: list[FrameTiming] = []
    current_time = 0.0
    for index, duration in enumerate(frame_durations):
        timings.append(FrameTiming(index, current_time, duration))
        current_time += duration
    return timings


def format_timestamp(seconds: float) -> str:
    """``HH:MM:SS.mmm`` as ffmpeg expects it. Milliseconds are truncated."""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    millis = int((seconds % 1) * 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"
