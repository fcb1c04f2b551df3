"""
Agent collaborator: send one prompt, get one JSON document back.

The agent is reached either through MCP sampling (the connected client runs
the model on our behalf) or directly through the Anthropic API. Either way
the response is untrusted text until ``parse_analysis``/``parse_script`` have
validated it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import threading
from typing import Any, Protocol, TypeVar

import anthropic
from pydantic import BaseModel, ValidationError

from gitreel.errors import AgentResponseError
from gitreel.git_tools import CodebaseInfo, CommitInfo, DiffInfo
from gitreel.models import AnalysisResult, NarrationScript
from gitreel.prompts import (
    codebase_analysis_prompt,
    commit_analysis_prompt,
    diff_analysis_prompt,
    script_prompt,
)

logger = logging.getLogger(__name__)

ANALYSIS_MAX_TOKENS = 4000
SCRIPT_MAX_TOKENS = 3000
SCRIPT_TEMPERATURE = 0.8  # a little looser for narration

FALLBACK_ALIASES: dict[str, str] = {
    "haiku": "claude-haiku-4-5-20251001",
    "sonnet": "claude-sonnet-4-5-20250929",
    "opus": "claude-opus-4-6",
}

SYSTEM_PROMPT = """\
You analyze source code changes and write narration for video walkthroughs.
Always answer with a single JSON document and nothing else.
"""

# Module-level API key (set via --key-file or environment)
_api_key: str | None = None

# Cached Anthropic client (thread-safe lazy init)
_client: anthropic.Anthropic | None = None
_client_lock = threading.Lock()

ModelT = TypeVar("ModelT", bound=BaseModel)


class Sampler(Protocol):
    async def __call__(self, prompt: str, max_tokens: int, temperature: float | None = None) -> str:
        ...


# ─────────────────────────────────────────────────────────────────────────────
# Samplers
# ─────────────────────────────────────────────────────────────────────────────


def set_api_key(key: str | None) -> None:
    global _api_key, _client
    with _client_lock:
        _api_key = key
        _client = None


def get_client() -> anthropic.Anthropic:
    """Get or create a cached Anthropic API client.

    Double-checked locking ensures thread safety without contention
    on the hot path.
    """
    global _client
    if _client is not None:
        return _client
    with _client_lock:
        if _client is not None:
            return _client
        api_key = _api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise ValueError(
                "No API key found. Use --key-file or set ANTHROPIC_API_KEY."
            )
        _client = anthropic.Anthropic(api_key=api_key)
        return _client


class ContextSampler:
    """Ask the connected MCP client to run the prompt (MCP sampling)."""

    def __init__(self, ctx: Any):
        self._ctx = ctx

    async def __call__(self, prompt: str, max_tokens: int, temperature: float | None = None) -> str:
        result = await self._ctx.sample(
            prompt,
            system_prompt=SYSTEM_PROMPT,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        text = getattr(result, "text", None)
        if not text:
            raise AgentResponseError("Invalid response format: no text content found")
        return text


class AnthropicSampler:
    """Run the prompt directly against the Anthropic Messages API."""

    def __init__(self, model: str = "sonnet"):
        self.model = FALLBACK_ALIASES.get(model.lower(), model)

    async def __call__(self, prompt: str, max_tokens: int, temperature: float | None = None) -> str:
        client = get_client()
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "system": SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": prompt}],
        }
        if temperature is not None:
            kwargs["temperature"] = temperature

        response = await asyncio.to_thread(client.messages.create, **kwargs)
        text_parts = [block.text for block in response.content if block.type == "text"]
        if not text_parts:
            raise AgentResponseError(f"Invalid response format: no text content (stop: {response.stop_reason})")
        return "\n".join(text_parts)


# ─────────────────────────────────────────────────────────────────────────────
# Response parsing
# ─────────────────────────────────────────────────────────────────────────────


def strip_code_fence(text: str) -> str:
    """Drop a surrounding ```json ... ``` fence if the agent added one."""
    text = text.strip()
    if not text.startswith("```"):
        return text
    lines = text.split("\n")[1:]
    if lines and lines[-1].strip() == "```":
        lines = lines[:-1]
    return "\n".join(lines).strip()


def _describe(err: ValidationError) -> str:
    first = err.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "response"
    return f"{location}: {first['msg']}"


def _parse(response_text: str, model: type[ModelT], what: str) -> ModelT:
    try:
        data = json.loads(strip_code_fence(response_text))
    except json.JSONDecodeError:
        raise AgentResponseError(f"Failed to parse JSON {what} from agent", response_text)

    if not isinstance(data, dict):
        raise AgentResponseError(f"Agent {what} is not a JSON object", response_text)

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise AgentResponseError(f"Invalid {what} from agent ({_describe(e)})", response_text)


def parse_analysis(response_text: str) -> AnalysisResult:
    return _parse(response_text, AnalysisResult, "analysis")


def parse_script(response_text: str) -> NarrationScript:
    return _parse(response_text, NarrationScript, "script")


# ─────────────────────────────────────────────────────────────────────────────
# Requests
# ─────────────────────────────────────────────────────────────────────────────


async def request_analysis(
    sampler: Sampler,
    target: CommitInfo | DiffInfo | CodebaseInfo,
) -> AnalysisResult:
    """Ask the agent to analyze extracted git data."""
    if isinstance(target, CommitInfo):
        prompt = commit_analysis_prompt(target)
    elif isinstance(target, DiffInfo):
        prompt = diff_analysis_prompt(target)
    else:
        prompt = codebase_analysis_prompt(target)

    logger.info(f"Requesting analysis ({len(prompt)} chars of prompt)")
    response_text = await sampler(prompt, max_tokens=ANALYSIS_MAX_TOKENS)
    analysis = parse_analysis(response_text)
    logger.info(f"Analysis received: {len(analysis.files)} files")
    return analysis


async def request_script(
    sampler: Sampler,
    analysis: AnalysisResult,
    style: str,
    target_label: str,
) -> NarrationScript:
    """Ask the agent for a narration script covering ``analysis``."""
    prompt = script_prompt(analysis, style, target_label)
    logger.info(f"Requesting {style} narration script")
    response_text = await sampler(
        prompt,
        max_tokens=SCRIPT_MAX_TOKENS,
        temperature=SCRIPT_TEMPERATURE,
    )
    script = parse_script(response_text)
    logger.info(f"Script received: {len(script.sections)} sections, ~{script.estimated_duration:.0f}s")
    return script
