from groq import AsyncGroq

from app.config import settings


class GroqClient:
    """Async wrapper around the official Groq SDK used for transcript summaries.

    Usage::

        groq = GroqClient()                                   # DEFAULT_MODEL from env
        text = await groq.chat(messages, temperature=0.3)     # plain completion

    SDK errors (``groq.APIStatusError`` and friends) are left to
    ``SummarizationStage``, which maps status codes to pipeline errors.
    """

    def __init__(self, model: str | None = None, api_key: str | None = None) -> None:
        self.model = model or settings.default_model
        self._client = AsyncGroq(api_key=api_key or settings.groq_api_key)

    async def chat(
        self,
        messages: list[dict],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Chat completion against ``self.model``. Returns the content string."""
        kwargs: dict = {"model": self.model, "messages": messages}
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        resp = await self._client.chat.completions.create(**kwargs)
        return resp.choices[0].message.content or ""

    async def aclose(self) -> None:
        await self._client.close()
