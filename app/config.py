from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Groq (summaries)
    groq_api_key: str = "gsk_placeholder"
    default_model: str = "llama-3.3-70b-versatile"
    summary_temperature: float = 0.3
    summary_max_tokens: int = 1500
    qa_temperature: float = 0.2
    qa_max_tokens: int = 800

    # Speech-to-text: "assemblyai" (hosted) or "whisper" (local faster-whisper)
    transcription_provider: str = "assemblyai"
    assemblyai_api_key: str = ""
    assemblyai_base_url: str = "https://api.assemblyai.com/v2"
    whisper_model: str = "small"
    whisper_device: str = "cpu"
    whisper_compute_type: str = "int8"
    transcription_poll_interval_seconds: float = 5.0
    transcription_timeout_seconds: float = 3600.0

    # Pipeline
    pipeline_timeout_seconds: float = 7200.0
    max_concurrent_pipelines: int = 2
    persistence_retry_attempts: int = 3

    # OCR
    ocr_enabled: bool = True
    ocr_frame_interval_seconds: int = 30
    ocr_confidence_threshold: float = 0.7
    ocr_language: str = "eng"
    ocr_scratch_root: str = "temp_frames"

    # Storage
    uploads_root: str = "uploads"
    database_path: str = "class_sessions.db"
    stream_chunk_size: int = 64 * 1024

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
