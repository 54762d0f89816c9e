import logging

import groq

from app.clients import GroqClient
from app.config import settings
from app.errors import QAError
from app.pipeline.protocols import TextGenerator

LOGGER = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful AI tutor that answers questions based on class "
    "transcripts. Always base your answers on the provided class content."
)

USER_PROMPT = """\
Based on the following class content, please answer the student's question.
Be specific and reference the actual content from the class when possible.

Class Content:
{context}

Student Question: {question}

Answer:
"""


def build_context(transcript: str, summary: list[str] | None = None) -> str:
    """Summary bullets first when there are any, then the full transcript."""
    if not summary:
        return transcript
    return "Summary:\n" + "\n".join(summary) + f"\n\nFull Transcript:\n{transcript}"


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class QAService:
    """Answer student questions about a processed session via the Groq API."""

    def __init__(
        self,
        generator: TextGenerator | None = None,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self.generator = generator or GroqClient()
        self.temperature = settings.qa_temperature if temperature is None else temperature
        self.max_tokens = settings.qa_max_tokens if max_tokens is None else max_tokens

    async def answer(
        self, question: str, transcript: str, summary: list[str] | None = None
    ) -> str:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": USER_PROMPT.format(
                    context=build_context(transcript, summary), question=question
                ),
            },
        ]
        try:
            content = await self.generator.chat(
                messages, temperature=self.temperature, max_tokens=self.max_tokens
            )
        except groq.APIStatusError as exc:
            LOGGER.error("Q&A request failed with status %s", exc.status_code)
            if exc.status_code == 401:
                raise QAError("Invalid Groq API key") from exc
            if exc.status_code == 429:
                raise QAError(
                    "Rate limit exceeded. Please try again later.", status_code=429
                ) from exc
            raise QAError(f"Q&A processing failed: {exc}") from exc
        except groq.APIError as exc:
            LOGGER.error("Q&A request failed: %s", exc)
            raise QAError(f"Q&A processing failed: {exc}") from exc

        return (content or "").strip()

    async def aclose(self) -> None:
        close = getattr(self.generator, "aclose", None)
        if close is not None:
            await close()
