import asyncio
import logging
import time
from typing import AsyncIterator

import aiofiles

from app.errors import TranscriptionError, TranscriptionTimeout
from app.pipeline.protocols import JOB_COMPLETED, JOB_ERROR, SpeechToText

LOGGER = logging.getLogger(__name__)

EMPTY_TRANSCRIPT = "No text was transcribed."
UPLOAD_CHUNK_SIZE = 1024 * 1024


def normalize_path(path: str) -> str:
    return path.replace("\\", "/")


async def iter_file(path: str, chunk_size: int = UPLOAD_CHUNK_SIZE) -> AsyncIterator[bytes]:
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            yield chunk


class TranscriptionStage:
    """Upload a recording to a speech-to-text provider and wait for the text.

    The wait is bounded: after ``timeout_seconds`` without a terminal job
    status the stage raises ``TranscriptionTimeout``.
    """

    def __init__(
        self,
        provider: SpeechToText,
        *,
        poll_interval_seconds: float = 5.0,
        timeout_seconds: float = 3600.0,
    ) -> None:
        self.provider = provider
        self.poll_interval_seconds = poll_interval_seconds
        self.timeout_seconds = timeout_seconds

    async def transcribe(self, path: str) -> str:
        path = normalize_path(path)
        LOGGER.info("Uploading %s for transcription", path)
        try:
            reference = await self.provider.upload(iter_file(path))
        except OSError as exc:
            raise TranscriptionError(f"Could not read {path}: {exc}") from exc

        job_id = await self.provider.create_job(reference)
        LOGGER.info("Transcription job %s created", job_id)
        try:
            return await self._wait_for(job_id)
        except (TranscriptionTimeout, asyncio.CancelledError):
            LOGGER.warning("Abandoning transcription job %s", job_id)
            self.provider.discard_job(job_id)
            raise

    async def aclose(self) -> None:
        close = getattr(self.provider, "aclose", None)
        if close is not None:
            await close()

    async def _wait_for(self, job_id: str) -> str:
        deadline = time.monotonic() + self.timeout_seconds
        while True:
            job = await self.provider.get_job(job_id)
            if job.status == JOB_COMPLETED:
                LOGGER.info("Transcription job %s complete", job_id)
                return job.text or EMPTY_TRANSCRIPT
            if job.status == JOB_ERROR:
                raise TranscriptionError(
                    f"Transcription failed: {job.error or 'unknown provider error'}"
                )

            if time.monotonic() + self.poll_interval_seconds > deadline:
                raise TranscriptionTimeout(
                    f"Transcription job {job_id} did not finish within "
                    f"{self.timeout_seconds:.0f}s"
                )
            LOGGER.debug("Transcription job %s in progress (status: %s)", job_id, job.status)
            await asyncio.sleep(self.poll_interval_seconds)
