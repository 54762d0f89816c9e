import logging
import os
import re
import shutil
import tempfile

from app.errors import OCRError, PipelineError
from app.models import SlideText
from app.pipeline.frames import FrameSampler
from app.pipeline.protocols import OCRReading, Transcoder, TextRecognizer
from app.pipeline.similarity import normalize_text, similarity
from app.services.session_store import utcnow

LOGGER = logging.getLogger(__name__)

DUPLICATE_THRESHOLD = 0.8
MIN_TEXT_LENGTH = 10

_WHITESPACE = re.compile(r"\s+")
# Everything except word characters, whitespace and common punctuation.
_DISALLOWED = re.compile(r"[^\w\s.,!?;:()\-]", re.ASCII)


def clean_ocr_text(text: str) -> str:
    text = _WHITESPACE.sub(" ", text)
    return _DISALLOWED.sub("", text).strip()


def remove_duplicates(
    results: list[SlideText], threshold: float = DUPLICATE_THRESHOLD
) -> list[SlideText]:
    """Keep the first of any group of near-identical snippets, preserving order."""
    unique: list[SlideText] = []
    seen: list[str] = []
    for result in results:
        normalized = normalize_text(result.text)
        if any(similarity(normalized, s) > threshold for s in seen):
            continue
        unique.append(result)
        seen.append(normalized)
    return unique


def _remove_advisory(path: str) -> None:
    """Delete a scratch file; failures are reported but never raised."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        LOGGER.warning("Could not delete scratch frame %s: %s", path, exc)


def _rmtree_advisory(path: str) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        LOGGER.warning("Could not delete scratch directory %s: %s", path, exc)


class OCRStage:
    """Sample frames from a video, OCR them and return deduplicated slide text."""

    def __init__(
        self,
        transcoder: Transcoder,
        recognizer: TextRecognizer,
        *,
        frame_interval_seconds: float = 30,
        confidence_threshold: float = 0.7,
        scratch_root: str | None = None,
    ) -> None:
        self.transcoder = transcoder
        self.recognizer = recognizer
        self.sampler = FrameSampler(transcoder, frame_interval_seconds)
        self.confidence_threshold = confidence_threshold
        self.scratch_root = scratch_root

    async def recognize_image(self, image_path: str) -> tuple[str, float]:
        """OCR a single image. Returns cleaned text and a 0-1 confidence."""
        reading: OCRReading = await self.recognizer.recognize(image_path)
        return clean_ocr_text(reading.text), reading.confidence_percent / 100

    async def extract(self, video_path: str) -> list[SlideText]:
        try:
            if self.scratch_root:
                os.makedirs(self.scratch_root, exist_ok=True)
            scratch_dir = tempfile.mkdtemp(prefix="ocr-", dir=self.scratch_root)
        except OSError as exc:
            raise OCRError(f"Could not create scratch directory: {exc}") from exc

        try:
            try:
                duration = await self.transcoder.probe_duration(video_path)
            except PipelineError as exc:
                raise OCRError(f"Could not read video duration: {exc}") from exc

            timestamps = self.sampler.timestamps(duration)
            LOGGER.info(
                "Sampling %d frame(s) from %s (%.1fs)", len(timestamps), video_path, duration
            )
            results: list[SlideText] = []
            for timestamp in timestamps:
                result = await self._process_frame(video_path, timestamp, scratch_dir)
                if result is not None:
                    results.append(result)
        finally:
            _rmtree_advisory(scratch_dir)

        unique = remove_duplicates(results)
        LOGGER.info(
            "OCR kept %d of %d frame(s) after deduplication", len(unique), len(results)
        )
        return unique

    async def _process_frame(
        self, video_path: str, timestamp: float, scratch_dir: str
    ) -> SlideText | None:
        frame_path = self.sampler.frame_path(scratch_dir, timestamp)
        try:
            await self.sampler.extract(video_path, timestamp, scratch_dir)
            text, confidence = await self.recognize_image(frame_path)
        except PipelineError as exc:
            LOGGER.error("Error processing frame at %ss: %s", timestamp, exc)
            return None
        finally:
            _remove_advisory(frame_path)

        if confidence > self.confidence_threshold and len(text) > MIN_TEXT_LENGTH:
            return SlideText(
                text=text,
                timestamp=timestamp,
                confidence=confidence,
                extracted_at=utcnow(),
            )
        return None
