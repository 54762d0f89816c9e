from app.clients import AssemblyAIClient, FFmpegTranscoder, GroqClient, TesseractRecognizer
from app.config import Settings
from app.pipeline.ocr import OCRStage
from app.pipeline.orchestrator import PipelineOrchestrator
from app.pipeline.protocols import SessionStore, SpeechToText
from app.pipeline.summarization import SummarizationStage
from app.pipeline.transcode import TranscodeStage
from app.pipeline.transcription import TranscriptionStage


def build_speech_to_text(config: Settings) -> SpeechToText:
    if config.transcription_provider == "assemblyai":
        return AssemblyAIClient(
            config.assemblyai_api_key, base_url=config.assemblyai_base_url
        )
    if config.transcription_provider == "whisper":
        # Imported lazily: faster-whisper pulls in CTranslate2.
        from app.clients.whisper_client import LocalWhisperClient

        return LocalWhisperClient()
    raise ValueError(f"Unknown transcription provider: {config.transcription_provider}")


def build_orchestrator(config: Settings, store: SessionStore) -> PipelineOrchestrator:
    """Wire the production collaborators into a ``PipelineOrchestrator``."""
    transcoder = FFmpegTranscoder()
    ocr = None
    if config.ocr_enabled:
        ocr = OCRStage(
            transcoder,
            TesseractRecognizer(config.ocr_language),
            frame_interval_seconds=config.ocr_frame_interval_seconds,
            confidence_threshold=config.ocr_confidence_threshold,
            scratch_root=config.ocr_scratch_root,
        )
    return PipelineOrchestrator(
        store,
        TranscodeStage(transcoder),
        TranscriptionStage(
            build_speech_to_text(config),
            poll_interval_seconds=config.transcription_poll_interval_seconds,
            timeout_seconds=config.transcription_timeout_seconds,
        ),
        SummarizationStage(
            GroqClient(config.default_model, config.groq_api_key),
            temperature=config.summary_temperature,
            max_tokens=config.summary_max_tokens,
        ),
        ocr,
        max_concurrent=config.max_concurrent_pipelines,
        timeout_seconds=config.pipeline_timeout_seconds,
        persistence_attempts=config.persistence_retry_attempts,
    )
