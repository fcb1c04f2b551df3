"""Exception types shared across gitreel."""

from __future__ import annotations

EXCERPT_LENGTH = 200


class GitreelError(Exception):
    """Base class for all gitreel errors."""


class InputError(GitreelError):
    """A tool argument was missing or invalid."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class GitError(GitreelError):
    """A git command failed or was rejected before running."""


class AgentResponseError(GitreelError):
    """The agent returned something that is not the JSON we asked for."""

    def __init__(self, message: str, response_text: str = ""):
        self.excerpt = response_text[:EXCERPT_LENGTH]
        if response_text:
            message = f"{message}. Response was: {self.excerpt}..."
        super().__init__(message)
        self.message = message


class EncoderError(GitreelError):
    """ffmpeg is missing or exited with an error."""


class PipelineError(GitreelError):
    """A fatal failure at a named pipeline stage."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"[{stage}] {message}")
        self.stage = stage
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"stage": self.stage, "error": self.message}
