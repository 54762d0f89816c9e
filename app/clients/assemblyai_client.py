import logging
from typing import AsyncIterator

import httpx

from app.config import settings
from app.errors import TranscriptionError
from app.pipeline.protocols import JOB_COMPLETED, JOB_ERROR, JOB_PENDING, TranscriptJob

LOGGER = logging.getLogger(__name__)


class AssemblyAIClient:
    """Minimal async client for the AssemblyAI v2 REST API.

    Implements the upload / create job / get job contract used by
    ``TranscriptionStage``. Any transport or HTTP error surfaces as
    ``TranscriptionError``.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        key = api_key if api_key is not None else settings.assemblyai_api_key
        if not key:
            raise ValueError("AssemblyAI API key is missing. Set ASSEMBLYAI_API_KEY.")
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.assemblyai_base_url,
            headers={"authorization": key},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            resp = await self._client.request(method, url, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TranscriptionError(
                f"AssemblyAI returned {exc.response.status_code}: {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TranscriptionError(f"AssemblyAI request failed: {exc}") from exc
        return resp.json()

    async def upload(self, stream: AsyncIterator[bytes]) -> str:
        data = await self._request("POST", "/upload", content=stream)
        return data["upload_url"]

    async def create_job(self, reference: str) -> str:
        data = await self._request("POST", "/transcript", json={"audio_url": reference})
        return data["id"]

    async def get_job(self, job_id: str) -> TranscriptJob:
        data = await self._request("GET", f"/transcript/{job_id}")
        status = data.get("status")
        if status == "completed":
            return TranscriptJob(status=JOB_COMPLETED, text=data.get("text"))
        if status == "error":
            return TranscriptJob(status=JOB_ERROR, error=data.get("error"))
        return TranscriptJob(status=JOB_PENDING)

    def discard_job(self, job_id: str) -> None:
        # AssemblyAI has no cancel endpoint; the hosted job simply finishes unread.
        LOGGER.info("Leaving AssemblyAI job %s to finish unread", job_id)
