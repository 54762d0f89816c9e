"""Exception taxonomy for session processing.

Precondition errors are raised synchronously by ``PipelineOrchestrator.start``
before any state change. Stage errors end a detached run and are only visible
through ``status = failed`` and the log.
"""


class PipelineError(Exception):
    """Base class for every error raised by the processing pipeline."""


# ---------------------------------------------------------------------------
# Preconditions (returned to the caller that triggered processing)
# ---------------------------------------------------------------------------


class PreconditionError(PipelineError):
    def __init__(self, session_id: int, message: str) -> None:
        super().__init__(message)
        self.session_id = session_id


class NotFound(PreconditionError):
    def __init__(self, session_id: int) -> None:
        super().__init__(session_id, f"Session {session_id} not found")


class NoMediaAvailable(PreconditionError):
    def __init__(self, session_id: int) -> None:
        super().__init__(
            session_id, "No file found for this session to process."
        )


class AlreadyProcessing(PreconditionError):
    def __init__(self, session_id: int) -> None:
        super().__init__(session_id, "Session is already being processed.")


# ---------------------------------------------------------------------------
# Stage failures (terminal for a run)
# ---------------------------------------------------------------------------


class StageError(PipelineError):
    stage = "pipeline"


class TranscodeError(StageError):
    stage = "transcode"


class TranscriptionError(StageError):
    stage = "transcription"


class TranscriptionTimeout(TranscriptionError):
    pass


class SummarizationError(StageError):
    stage = "summarization"


class AuthError(SummarizationError):
    pass


class RateLimited(SummarizationError):
    pass


class OCRError(StageError):
    stage = "ocr"


class PipelineTimeout(StageError):
    pass


__all__ = [
    "AlreadyProcessing",
    "AuthError",
    "NoMediaAvailable",
    "NotFound",
    "OCRError",
    "PipelineError",
    "PipelineTimeout",
    "PreconditionError",
    "RateLimited",
    "StageError",
    "SummarizationError",
    "TranscodeError",
    "TranscriptionError",
    "TranscriptionTimeout",
]


# ---------------------------------------------------------------------------
# Question answering (synchronous, outside the pipeline)
# ---------------------------------------------------------------------------


class QAError(PipelineError):
    """A question about a session could not be answered.

    ``status_code`` is the HTTP status the route should report.
    """

    def __init__(self, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.status_code = status_code
