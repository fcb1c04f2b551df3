"""Narration audio via edge-tts (Microsoft neural voices)."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import edge_tts

from gitreel.timing import strip_silence_markers

logger = logging.getLogger(__name__)

DEFAULT_VOICE = "en-US-JennyNeural"

# Speech rate per presentation style
STYLE_RATES = {
    "beginner": "-10%",
    "technical": "-5%",
    "overview": "+5%",
}


class EdgeSpeechSynthesizer:
    """Writes spoken narration to an MP3 file."""

    def __init__(self, style: str = "technical", voice: str | None = None, rate: str | None = None):
        self.style = style
        self.voice = voice or os.getenv("GITREEL_VOICE") or DEFAULT_VOICE
        self.rate = rate or STYLE_RATES.get(style, STYLE_RATES["technical"])

    async def synthesize(self, text: str, output_path: Path) -> Path:
        # edge-tts would read markers aloud
        text = strip_silence_markers(text).strip()
        if not text:
            raise ValueError("Nothing to synthesize: narration is empty")

        logger.info(f"Synthesizing {len(text)} chars (voice={self.voice}, rate={self.rate})")
        communicate = edge_tts.Communicate(text=text, voice=self.voice, rate=self.rate)
        await communicate.save(str(output_path))
        return output_path


def validate_audio(audio_path: Path) -> bool:
    """True if the audio file exists and is non-empty."""
    try:
        return audio_path.stat().st_size > 0
    except OSError:
        return False
