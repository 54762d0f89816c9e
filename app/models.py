from dataclasses import dataclass, field
from enum import Enum


class SessionStatus(str, Enum):
    RECORDING = "recording"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class MediaFile:
    path: str
    size: int
    mimetype: str
    seekable: bool = False  # video only; set once the container has been remuxed

    def to_dict(self) -> dict:
        return {"path": self.path, "size": self.size, "mimetype": self.mimetype}


@dataclass
class Transcript:
    text: str
    processed_at: str

    def to_dict(self) -> dict:
        return {"text": self.text, "processedAt": self.processed_at}


@dataclass
class StructuredSummary:
    """Summary parsed from a well-formed JSON model response."""

    summary: list[str]
    key_points: list[str]
    assignments: list[str]

    degraded = False


@dataclass
class DegradedSummary:
    """Best-effort bullets recovered from a response that was not valid JSON."""

    summary: list[str]
    key_points: list[str] = field(default_factory=list)
    assignments: list[str] = field(default_factory=list)

    degraded = True


SummaryResult = StructuredSummary | DegradedSummary


@dataclass
class StoredSummary:
    text: list[str]
    key_points: list[str]
    assignments: list[str]
    degraded: bool
    processed_at: str

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "keyPoints": self.key_points,
            "assignments": self.assignments,
            "degraded": self.degraded,
            "processedAt": self.processed_at,
        }


@dataclass
class SlideText:
    text: str
    timestamp: float  # seconds from the start of the video
    confidence: float  # 0-1
    extracted_at: str

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "timestamp": self.timestamp,
            "confidence": self.confidence,
            "extractedAt": self.extracted_at,
        }


@dataclass
class Analytics:
    view_count: int = 0
    last_viewed: str | None = None
    qa_queries: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "viewCount": self.view_count,
            "lastViewed": self.last_viewed,
            "qaQueries": self.qa_queries,
        }


@dataclass
class Session:
    id: int
    name: str
    status: SessionStatus
    audio: MediaFile | None = None
    video: MediaFile | None = None
    transcript: Transcript | None = None
    summary: StoredSummary | None = None
    slides: list[SlideText] = field(default_factory=list)
    analytics: Analytics = field(default_factory=Analytics)
    created_at: str = ""

    @property
    def processing_input(self) -> MediaFile | None:
        """The file the pipeline works on. Video wins when both exist."""
        return self.video or self.audio

    def media(self, file_type: str) -> MediaFile | None:
        if file_type == "audio":
            return self.audio
        if file_type == "video":
            return self.video
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "files": {
                "audio": self.audio.to_dict() if self.audio else None,
                "video": self.video.to_dict() if self.video else None,
            },
            "processing": {
                "transcript": self.transcript.to_dict() if self.transcript else None,
                "summary": self.summary.to_dict() if self.summary else None,
                "slides": [s.to_dict() for s in self.slides],
            },
            "analytics": self.analytics.to_dict(),
            "createdAt": self.created_at,
        }
