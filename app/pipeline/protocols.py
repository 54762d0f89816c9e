"""Interfaces for the external collaborators a pipeline run talks to.

Concrete implementations live in ``app.clients``; tests pass in-memory fakes.
"""

from dataclasses import dataclass
from typing import AsyncIterator, Protocol

from app.models import Session, SlideText, StoredSummary, Transcript

JOB_PENDING = "pending"
JOB_COMPLETED = "completed"
JOB_ERROR = "error"


@dataclass
class TranscriptJob:
    status: str  # pending | completed | error
    text: str | None = None
    error: str | None = None


@dataclass
class OCRReading:
    text: str
    confidence_percent: float  # 0-100 as reported by the engine


class Transcoder(Protocol):
    async def remux(self, input_path: str, output_path: str) -> None: ...

    async def probe_duration(self, input_path: str) -> float: ...

    async def extract_frame(
        self, input_path: str, timestamp: float, output_path: str
    ) -> None: ...


class SpeechToText(Protocol):
    async def upload(self, stream: AsyncIterator[bytes]) -> str: ...

    async def create_job(self, reference: str) -> str: ...

    async def get_job(self, job_id: str) -> TranscriptJob: ...

    def discard_job(self, job_id: str) -> None:
        """Forget a job whose result will never be collected."""


class TextGenerator(Protocol):
    async def chat(
        self,
        messages: list[dict],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str: ...


class TextRecognizer(Protocol):
    async def recognize(self, image_path: str) -> OCRReading: ...


class SessionStore(Protocol):
    async def get(self, session_id: int) -> Session | None: ...

    async def begin_processing(self, session_id: int) -> bool: ...

    async def mark_video_seekable(self, session_id: int, size: int) -> None: ...

    async def complete(
        self,
        session_id: int,
        transcript: Transcript,
        summary: StoredSummary,
        slides: list[SlideText] | None = None,
    ) -> None: ...

    async def mark_failed(self, session_id: int) -> None: ...
