"""Tests for narration timing and frame synchronization."""

import os
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from gitreel.timing import (
    TimingSegment,
    calculate_frame_durations,
    calculate_speaking_duration,
    calculate_total_duration,
    create_timing_segments,
    fallback_frame_durations,
    format_timestamp,
    parse_silence_markers,
    strip_silence_markers,
    synchronize_frames,
    words_per_minute,
)

LONG_TEXT = " ".join(["word"] * 50)


def _segments(*durations: float) -> list[TimingSegment]:
    segments, start = [], 0.0
    for d in durations:
        segments.append(TimingSegment("speech", start, d))
        start += d
    return segments


# ─────────────────────────────────────────────────────────────────────────────
# Silence markers
# ─────────────────────────────────────────────────────────────────────────────


class TestSilenceMarkers:
    """Tests for parse_silence_markers and strip_silence_markers."""

    def test_single_marker(self):
        """Marker is removed without leaving a replacement and its pause counted."""
        clean, silence = parse_silence_markers("Hello world. [[slnc 500]] Next part here.")
        assert clean == "Hello world.  Next part here."
        assert silence == pytest.approx(0.5)

    def test_multiple_markers_sum(self):
        """All pauses are summed in seconds."""
        _, silence = parse_silence_markers("a [[slnc 300]] b [[slnc 1200]] c [[slnc 0]]")
        assert silence == pytest.approx(1.5)

    def test_no_markers(self):
        """Text without markers comes back unchanged."""
        assert parse_silence_markers("plain text") == ("plain text", 0)

    def test_empty_string(self):
        """Empty input is fine."""
        assert parse_silence_markers("") == ("", 0)

    @pytest.mark.parametrize("text", ["[[slnc]]", "[slnc 5]", "[[slnc abc]]", "[[SLNC 5]]", "[[slnc -5]]"])
    def test_malformed_markers_left_alone(self, text):
        """Anything that only looks like a marker is ordinary text."""
        clean, silence = parse_silence_markers(text)
        assert clean == text
        assert silence == 0

    @pytest.mark.parametrize("text", [
        "Hello [[slnc 500]] world",
        "[[slnc 1]][[slnc 2]]",
        "[[[slnc 100]]slnc 200]]",
        "no markers at all",
    ])
    def test_reparse_finds_no_silence(self, text):
        """Parsing the cleaned text again finds no pauses."""
        clean, _ = parse_silence_markers(text)
        assert parse_silence_markers(clean).total_silence == 0

    def test_strip_matches_parse(self):
        """strip_silence_markers gives the same text as parse_silence_markers."""
        text = "One. [[slnc 250]] Two. [[slnc 750]] Three."
        assert strip_silence_markers(text) == parse_silence_markers(text).clean_text


# ─────────────────────────────────────────────────────────────────────────────
# Speaking duration
# ─────────────────────────────────────────────────────────────────────────────


class TestSpeakingDuration:
    """Tests for calculate_speaking_duration and calculate_total_duration."""

    @pytest.mark.parametrize("style", ["beginner", "technical", "overview", None, "unknown"])
    @pytest.mark.parametrize("text", ["", "one", "one two", "one two three"])
    def test_short_text_floor(self, style, text):
        """Anything three words or shorter takes exactly two seconds."""
        assert calculate_speaking_duration(text, style) == 2.0

    def test_rate_ordering(self):
        """Beginner is slowest and overview fastest for the same text."""
        beginner = calculate_speaking_duration(LONG_TEXT, "beginner")
        technical = calculate_speaking_duration(LONG_TEXT, "technical")
        overview = calculate_speaking_duration(LONG_TEXT, "overview")
        assert beginner > technical > overview

    def test_technical_rate(self):
        """150 words at 150 wpm is one minute."""
        text = " ".join(["word"] * 150)
        assert calculate_speaking_duration(text, "technical") == pytest.approx(60.0)

    def test_unknown_style_uses_technical(self):
        """Unrecognized styles fall back to the technical rate."""
        assert words_per_minute("mystery") == 150
        assert words_per_minute(None) == 150
        assert calculate_speaking_duration(LONG_TEXT, "mystery") == calculate_speaking_duration(LONG_TEXT)

    def test_whitespace_runs_count_once(self):
        """Words are split on any run of whitespace."""
        assert calculate_speaking_duration("a  b\n\nc\td " * 10) == calculate_speaking_duration("a b c d " * 10)

    def test_total_includes_silence(self):
        """Total duration is speech time plus pauses."""
        text = f"{LONG_TEXT} [[slnc 1500]]"
        expected = calculate_speaking_duration(LONG_TEXT, "technical") + 1.5
        assert calculate_total_duration(text, "technical") == pytest.approx(expected)


# ─────────────────────────────────────────────────────────────────────────────
# Timing segments
# ─────────────────────────────────────────────────────────────────────────────


class TestTimingSegments:
    """Tests for create_timing_segments."""

    def test_speech_pause_speech(self):
        """Two speech segments around one pause, in order."""
        segments = create_timing_segments("Hello world. [[slnc 500]] Next part here.", "technical")
        assert [s.text for s in segments] == ["Hello world.", "", "Next part here."]
        assert [s.is_pause for s in segments] == [False, True, False]
        assert segments[0].start_time == 0
        assert segments[0].duration == 2.0
        assert segments[1].start_time == segments[0].duration
        assert segments[1].duration == pytest.approx(0.5)
        assert segments[2].start_time == pytest.approx(2.5)

    @pytest.mark.parametrize("narrative", [
        "Hello world. [[slnc 500]] Next part here.",
        "[[slnc 200]] leading pause then words",
        f"{LONG_TEXT} [[slnc 100]][[slnc 300]] {LONG_TEXT} [[slnc 700]]",
        "just words",
    ])
    def test_timeline_is_contiguous(self, narrative):
        """Each segment starts where the previous one ended."""
        segments = create_timing_segments(narrative)
        assert segments[0].start_time == 0
        for prev, nxt in zip(segments, segments[1:]):
            assert nxt.start_time == pytest.approx(prev.end_time)

    def test_whitespace_only_chunks_dropped(self):
        """Whitespace between adjacent markers is not a speech segment."""
        segments = create_timing_segments("[[slnc 100]]   [[slnc 200]]")
        assert all(s.is_pause for s in segments)
        assert len(segments) == 2

    def test_empty_narrative(self):
        """No text, no segments."""
        assert create_timing_segments("") == []
        assert create_timing_segments("   ") == []

    def test_speech_is_trimmed(self):
        """Speech text is stored without surrounding whitespace."""
        segments = create_timing_segments("  padded words  [[slnc 100]]")
        assert segments[0].text == "padded words"


# ─────────────────────────────────────────────────────────────────────────────
# Frame durations
# ─────────────────────────────────────────────────────────────────────────────


class TestFrameDurations:
    """Tests for calculate_frame_durations and fallback_frame_durations."""

    def test_no_segments_defaults(self):
        """Without narration every frame gets three seconds."""
        assert calculate_frame_durations(5, []) == [3.0, 3.0, 3.0, 3.0, 3.0]

    def test_zero_frames(self):
        """No frames, no durations."""
        assert calculate_frame_durations(0, _segments(1, 2)) == []
        assert calculate_frame_durations(0, []) == []

    def test_six_segments_two_frames(self):
        """Each frame covers three consecutive segments."""
        segments = _segments(1, 2, 1.5, 2.5, 1, 2)
        durations = calculate_frame_durations(2, segments)
        assert durations == [pytest.approx(4.5), pytest.approx(5.5)]
        assert sum(durations) == pytest.approx(10)

    def test_more_frames_than_segments(self):
        """Total narration is spread evenly when frames outnumber segments."""
        durations = calculate_frame_durations(4, _segments(2, 4))
        assert durations == [1.5, 1.5, 1.5, 1.5]
        assert sum(durations) == pytest.approx(6)

    def test_uneven_grouping_conserves_total(self):
        """The last frame takes whatever segments remain."""
        durations = calculate_frame_durations(3, _segments(1, 1, 1, 1, 1, 1, 1))
        assert durations == [3, 3, 1]

    def test_grouping_never_leaves_empty_frames(self):
        """Six segments over five frames still gives every frame some time."""
        durations = calculate_frame_durations(5, _segments(1, 2, 3, 4, 5, 6))
        assert len(durations) == 5
        assert all(d > 0 for d in durations)
        assert sum(durations) == pytest.approx(21)

    @pytest.mark.parametrize("frames", range(0, 12))
    @pytest.mark.parametrize("segment_count", [0, 1, 2, 5, 6, 7, 13])
    def test_frame_count_always_matches(self, frames, segment_count):
        """One duration per frame, whatever the segment count."""
        segments = _segments(*([1.0] * segment_count))
        durations = calculate_frame_durations(frames, segments)
        assert len(durations) == frames
        if frames and segment_count:
            assert sum(durations) == pytest.approx(segment_count)

    def test_fallback_pattern(self):
        """Silent videos: short title and outro, longer content frames."""
        assert fallback_frame_durations(3) == [3, 5, 3]
        assert fallback_frame_durations(5) == [3, 5, 5, 5, 3]
        assert fallback_frame_durations(1) == [3]
        assert fallback_frame_durations(0) == []


# ─────────────────────────────────────────────────────────────────────────────
# Synchronization & timestamps
# ─────────────────────────────────────────────────────────────────────────────


class TestSynchronize:
    """Tests for synchronize_frames and format_timestamp."""

    def test_start_times_accumulate(self):
        """Each frame starts when the previous one ends."""
        timings = synchronize_frames([3, 5, 3])
        assert [t.frame_index for t in timings] == [0, 1, 2]
        assert [t.start_time for t in timings] == [0, 3, 8]
        assert [t.duration for t in timings] == [3, 5, 3]

    def test_empty(self):
        """No durations, no timings."""
        assert synchronize_frames([]) == []

    @pytest.mark.parametrize("seconds,expected", [
        (0, "00:00:00.000"),
        (3.5, "00:00:03.500"),
        (61.25, "00:01:01.250"),
        (3723.5, "01:02:03.500"),
    ])
    def test_format_timestamp(self, seconds, expected):
        """HH:MM:SS.mmm with zero padding."""
        assert format_timestamp(seconds) == expected

    def test_format_timestamp_truncates(self):
        """Milliseconds are truncated, never rounded up."""
        assert format_timestamp(1.9999) == "00:00:01.999"
