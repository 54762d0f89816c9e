"""Asynchronous processing of recorded class sessions."""

from app.pipeline.frames import FrameSampler
from app.pipeline.ocr import OCRStage
from app.pipeline.orchestrator import PipelineOrchestrator
from app.pipeline.summarization import SummarizationStage
from app.pipeline.transcode import TranscodeStage
from app.pipeline.transcription import TranscriptionStage

__all__ = [
    "FrameSampler",
    "OCRStage",
    "PipelineOrchestrator",
    "SummarizationStage",
    "TranscodeStage",
    "TranscriptionStage",
]
