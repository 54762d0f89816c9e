import asyncio
import logging
import os
import tempfile
import uuid
from typing import AsyncIterator

import aiofiles
from faster_whisper import WhisperModel

from app.config import settings
from app.pipeline.protocols import JOB_COMPLETED, JOB_ERROR, JOB_PENDING, TranscriptJob

LOGGER = logging.getLogger(__name__)


class LocalWhisperClient:
    """Offline speech-to-text with faster-whisper behind the job protocol.

    ``upload`` spools the stream to a temporary file, ``create_job`` starts
    transcription in a worker thread, and ``get_job`` reports its state.
    The model is loaded on the first job, not at construction.
    """

    _model: WhisperModel | None = None

    def __init__(self, scratch_dir: str | None = None) -> None:
        self.scratch_dir = scratch_dir
        self._uploads: dict[str, str] = {}
        self._jobs: dict[str, asyncio.Task] = {}

    @classmethod
    def model(cls) -> WhisperModel:
        """Return the shared model, downloading it on first use."""
        if cls._model is None:
            LOGGER.info("Loading Whisper model %s", settings.whisper_model)
            cls._model = WhisperModel(
                settings.whisper_model,
                device=settings.whisper_device,
                compute_type=settings.whisper_compute_type,
            )
        return cls._model

    async def upload(self, stream: AsyncIterator[bytes]) -> str:
        fd, path = tempfile.mkstemp(prefix="whisper-", dir=self.scratch_dir)
        os.close(fd)
        try:
            async with aiofiles.open(path, "wb") as f:
                async for chunk in stream:
                    await f.write(chunk)
        except BaseException:
            self._remove_spool(path)
            raise
        reference = uuid.uuid4().hex
        self._uploads[reference] = path
        return reference

    async def create_job(self, reference: str) -> str:
        path = self._uploads.pop(reference)
        job_id = uuid.uuid4().hex
        self._jobs[job_id] = asyncio.create_task(self._run(path))
        return job_id

    async def get_job(self, job_id: str) -> TranscriptJob:
        task = self._jobs[job_id]
        if not task.done():
            return TranscriptJob(status=JOB_PENDING)
        del self._jobs[job_id]
        if task.cancelled():
            return TranscriptJob(status=JOB_ERROR, error="transcription cancelled")
        exc = task.exception()
        if exc is not None:
            return TranscriptJob(status=JOB_ERROR, error=str(exc))
        return TranscriptJob(status=JOB_COMPLETED, text=task.result())

    def discard_job(self, job_id: str) -> None:
        """Drop a job nobody will poll again.

        The worker thread cannot be interrupted; it finishes in the background,
        removes its spooled file and any error it raises is logged.
        """
        task = self._jobs.pop(job_id, None)
        if task is None:
            return
        if task.done():
            self._log_abandoned(task)
        else:
            task.add_done_callback(self._log_abandoned)

    async def aclose(self) -> None:
        """Remove spooled uploads that never became a job."""
        for path in self._uploads.values():
            self._remove_spool(path)
        self._uploads.clear()

    @staticmethod
    def _log_abandoned(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning("Abandoned Whisper job failed: %s", exc)

    async def _run(self, path: str) -> str:
        try:
            return await asyncio.to_thread(self._transcribe, path)
        finally:
            self._remove_spool(path)

    @staticmethod
    def _remove_spool(path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            LOGGER.warning("Could not delete spooled upload %s: %s", path, exc)

    def _transcribe(self, path: str) -> str:
        """Blocking; runs in a worker thread."""
        segments, _info = self.model().transcribe(path, beam_size=5)
        # segments is a lazy generator; joining forces evaluation
        return " ".join(seg.text.strip() for seg in segments).strip()
