import json
import logging
import re

import groq

from app.errors import AuthError, RateLimited, SummarizationError
from app.models import DegradedSummary, StructuredSummary, SummaryResult
from app.pipeline.protocols import TextGenerator

LOGGER = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful AI assistant that analyzes educational content and "
    "provides structured summaries."
)

USER_PROMPT = """\
You are an AI assistant that helps students by analyzing class transcripts.

Please analyze the following transcript and return ONLY valid JSON (no markdown, no extra text):
{{
  "summary": ["Main topic 1", "Main topic 2", ...],
  "keyPoints": ["Key point 1", "Key point 2", ...],
  "assignments": ["Assignment 1", "Assignment 2", ...]
}}

Transcript:
{transcript}
"""

_FENCE_OPEN = re.compile(r"```json", re.IGNORECASE)
_SENTENCE_BREAK = re.compile(r"\n|\.")


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def strip_code_fences(content: str) -> str:
    return _FENCE_OPEN.sub("", content).replace("```", "").strip()


def bulletize(value) -> list[str]:
    """Turn a string or a list of strings into trimmed, non-empty bullets.

    Strings are split on newlines and full stops.
    """
    if value is None:
        return []
    if isinstance(value, list):
        items = [str(item).strip() for item in value if item]
        return [item for item in items if item]
    fragments = (part.strip() for part in _SENTENCE_BREAK.split(str(value)))
    return [part for part in fragments if part]


def parse_summary(content: str) -> SummaryResult:
    """Strict JSON first; anything unparseable becomes a ``DegradedSummary``."""
    cleaned = strip_code_fences(content)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        parsed = None

    if not isinstance(parsed, dict):
        LOGGER.warning("Model response was not a JSON object; using bullet fallback")
        return DegradedSummary(summary=bulletize(cleaned))

    return StructuredSummary(
        summary=bulletize(parsed.get("summary")),
        key_points=bulletize(parsed.get("keyPoints")),
        assignments=bulletize(parsed.get("assignments")),
    )


# ---------------------------------------------------------------------------
# Stage
# ---------------------------------------------------------------------------


class SummarizationStage:
    """Summarize a transcript into summary / key points / assignments."""

    def __init__(
        self,
        generator: TextGenerator,
        *,
        temperature: float = 0.3,
        max_tokens: int = 1500,
    ) -> None:
        self.generator = generator
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def summarize(self, transcript: str) -> SummaryResult:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": USER_PROMPT.format(transcript=transcript)},
        ]
        try:
            content = await self.generator.chat(
                messages, temperature=self.temperature, max_tokens=self.max_tokens
            )
        except groq.APIStatusError as exc:
            if exc.status_code == 401:
                raise AuthError("Invalid Groq API key") from exc
            if exc.status_code == 429:
                raise RateLimited(
                    "Rate limit exceeded. Please try again later."
                ) from exc
            raise SummarizationError(f"Summarization failed: {exc}") from exc
        except groq.APIError as exc:
            raise SummarizationError(f"Summarization failed: {exc}") from exc

        return parse_summary(content or "")

    async def aclose(self) -> None:
        close = getattr(self.generator, "aclose", None)
        if close is not None:
            await close()
