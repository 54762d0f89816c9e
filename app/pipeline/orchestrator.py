import asyncio
import logging
from typing import Awaitable, Callable

import aiosqlite
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.errors import (
    AlreadyProcessing,
    NoMediaAvailable,
    NotFound,
    PipelineError,
    PipelineTimeout,
)
from app.models import MediaFile, SlideText, StoredSummary, Transcript
from app.pipeline.ocr import OCRStage
from app.pipeline.protocols import SessionStore
from app.pipeline.summarization import SummarizationStage
from app.pipeline.transcode import TranscodeStage
from app.pipeline.transcription import TranscriptionStage
from app.services.session_store import utcnow

LOGGER = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Owns the session status machine and runs the processing stages.

    ``start`` flips a session to ``processing`` with one conditional UPDATE
    and hands the stages to a detached task; the caller gets the task handle
    back straight away. The run reports its outcome only by writing either
    ``completed`` (together with transcript and summary) or ``failed``.

    At most ``max_concurrent`` runs execute stages at once; extra runs wait
    for a slot while their session already shows ``processing``.
    """

    def __init__(
        self,
        store: SessionStore,
        transcode: TranscodeStage,
        transcription: TranscriptionStage,
        summarization: SummarizationStage,
        ocr: OCRStage | None = None,
        *,
        max_concurrent: int = 2,
        timeout_seconds: float | None = 7200.0,
        persistence_attempts: int = 3,
        persistence_backoff_seconds: float = 0.5,
    ) -> None:
        self.store = store
        self.transcode = transcode
        self.transcription = transcription
        self.summarization = summarization
        self.ocr = ocr
        self.timeout_seconds = timeout_seconds
        self.persistence_attempts = persistence_attempts
        self.persistence_backoff_seconds = persistence_backoff_seconds
        self._slots = asyncio.Semaphore(max_concurrent)
        self._tasks: dict[int, asyncio.Task] = {}
        self._settled: set[int] = set()
        self._fallback_writes: set[asyncio.Future] = set()

    # ------------------------------------------------------------------
    # Trigger
    # ------------------------------------------------------------------

    async def start(self, session_id: int) -> asyncio.Task:
        """Accept a session for processing or raise a precondition error."""
        if not await self.store.begin_processing(session_id):
            session = await self.store.get(session_id)
            if session is None:
                raise NotFound(session_id)
            if session.processing_input is None:
                raise NoMediaAvailable(session_id)
            raise AlreadyProcessing(session_id)

        LOGGER.info("Pipeline accepted for session %s", session_id)
        task = asyncio.create_task(self.run(session_id), name=f"pipeline-{session_id}")
        self._tasks[session_id] = task
        task.add_done_callback(lambda t: self._forget(session_id, t))
        return task

    def is_running(self, session_id: int) -> bool:
        task = self._tasks.get(session_id)
        return task is not None and not task.done()

    def cancel(self, session_id: int) -> bool:
        """Request cancellation of an in-flight run. The run still ends ``failed``."""
        task = self._tasks.get(session_id)
        if task is None or task.done():
            return False
        LOGGER.info("Cancelling pipeline for session %s", session_id)
        task.cancel()
        return True

    async def shutdown(self) -> None:
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._fallback_writes:
            await asyncio.gather(*self._fallback_writes, return_exceptions=True)
        await self.transcription.aclose()
        await self.summarization.aclose()

    def _forget(self, session_id: int, task: asyncio.Task) -> None:
        if self._tasks.get(session_id) is task:
            del self._tasks[session_id]
        if task.cancelled() and session_id not in self._settled:
            # Cancelled before its first step, so run() never saw the cancel.
            LOGGER.warning("AI pipeline cancelled before start for session %s", session_id)
            write = asyncio.ensure_future(
                self._persist(self.store.mark_failed, session_id)
            )
            self._fallback_writes.add(write)
            write.add_done_callback(self._fallback_writes.discard)
        self._settled.discard(session_id)

    # ------------------------------------------------------------------
    # Detached run
    # ------------------------------------------------------------------

    async def run(self, session_id: int) -> None:
        """Execute every stage for *session_id*. Never raises stage errors."""
        try:
            async with self._slots:
                LOGGER.info("AI pipeline started for session %s", session_id)
                await asyncio.wait_for(self._execute(session_id), self.timeout_seconds)
        except asyncio.TimeoutError:
            error = PipelineTimeout(
                f"Pipeline exceeded {self.timeout_seconds:.0f}s"
            )
            LOGGER.error("AI pipeline failed for session %s: %s", session_id, error)
            await self._persist(self.store.mark_failed, session_id)
        except asyncio.CancelledError:
            self._settled.add(session_id)
            LOGGER.warning("AI pipeline cancelled for session %s", session_id)
            await self._persist(self.store.mark_failed, session_id)
            raise
        except PipelineError as exc:
            LOGGER.error(
                "AI pipeline failed for session %s during %s: %s",
                session_id,
                getattr(exc, "stage", "pipeline"),
                exc,
            )
            await self._persist(self.store.mark_failed, session_id)
        except Exception:
            LOGGER.exception("AI pipeline crashed for session %s", session_id)
            await self._persist(self.store.mark_failed, session_id)

    async def _execute(self, session_id: int) -> None:
        session = await self.store.get(session_id)
        if session is None:
            raise NotFound(session_id)
        media = session.processing_input
        if media is None:
            raise NoMediaAvailable(session_id)
        is_video = media is session.video

        if is_video and not media.seekable:
            size = await self.transcode.make_seekable(media.path)
            await self._persist(self.store.mark_video_seekable, session_id, size)

        ocr_task = None
        if self.ocr is not None and is_video:
            ocr_task = asyncio.create_task(self._extract_slides(session_id, media))

        try:
            text = await self.transcription.transcribe(media.path)
            LOGGER.info("Transcription complete for session %s", session_id)
            result = await self.summarization.summarize(text)
            LOGGER.info(
                "Summarization complete for session %s%s",
                session_id,
                " (degraded)" if result.degraded else "",
            )
            slides = await ocr_task if ocr_task is not None else None
        except BaseException:
            if ocr_task is not None and not ocr_task.done():
                ocr_task.cancel()
                await asyncio.gather(ocr_task, return_exceptions=True)
            raise

        now = utcnow()
        await self._persist(
            self.store.complete,
            session_id,
            Transcript(text=text, processed_at=now),
            StoredSummary(
                text=result.summary,
                key_points=result.key_points,
                assignments=result.assignments,
                degraded=result.degraded,
                processed_at=now,
            ),
            slides,
        )
        LOGGER.info("AI processing for session %s is complete", session_id)

    async def _extract_slides(
        self, session_id: int, media: MediaFile
    ) -> list[SlideText] | None:
        """OCR is optional: a failure here keeps the previous slides."""
        try:
            slides = await self.ocr.extract(media.path)
        except PipelineError as exc:
            LOGGER.error("Slide OCR failed for session %s: %s", session_id, exc)
            return None
        LOGGER.info("Extracted %d slide text(s) for session %s", len(slides), session_id)
        return slides

    # ------------------------------------------------------------------
    # Persistence with retry
    # ------------------------------------------------------------------

    async def _persist(self, write: Callable[..., Awaitable[None]], *args) -> bool:
        """Retry a store write; after the last attempt log loudly and give up."""
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(aiosqlite.Error),
                stop=stop_after_attempt(max(1, self.persistence_attempts)),
                wait=wait_exponential(
                    multiplier=self.persistence_backoff_seconds,
                    max=self.persistence_backoff_seconds * 8,
                ),
                reraise=True,
            ):
                with attempt:
                    await write(*args)
        except aiosqlite.Error:
            LOGGER.critical(
                "Could not persist %s for session %s after %d attempt(s)",
                getattr(write, "__name__", "update"),
                args[0] if args else "?",
                self.persistence_attempts,
                exc_info=True,
            )
            return False
        return True
