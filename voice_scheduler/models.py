"""Data types passed between pipeline stages."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from .errors import UnknownRecordKind


class RecordKind(str, Enum):
    """Kinds of structured record a voice input can become."""
    SCHEDULE = "schedule"
    DIARY = "diary"
    MEMO = "memo"

    @classmethod
    def parse(cls, value: "str | RecordKind") -> "RecordKind":
        """Return the kind named by ``value`` or raise UnknownRecordKind."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownRecordKind(str(value)) from None

    @property
    def collection(self) -> str:
        """Per-user collection name the kind is stored under."""
        return _COLLECTIONS[self]


_COLLECTIONS = {
    RecordKind.SCHEDULE: "schedules",
    RecordKind.DIARY: "diary",
    RecordKind.MEMO: "memos",
}


@dataclass
class AudioSegment:
    """A contiguous slice of an audio payload."""
    index: int
    data: bytes
    media_type: str = "audio/webm"

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class CapturedAudio:
    """Finalized output of a capture session."""
    payload: bytes
    media_type: str
    segments: list[AudioSegment] = field(default_factory=list)
    duration_ms: int = 0


@dataclass
class TranscriptionResult:
    """Text recognized for a single chunk."""
    index: int
    text: str
    language: str
    success: bool
    error: Optional[str] = None


@dataclass
class StructuredRecord:
    """A transcript structured into a schedule, diary entry or memo.

    ``processed`` holds the kind-specific fields. ``note`` is only set on
    degraded records, built when the model output could not be parsed.
    """
    kind: RecordKind
    processed: dict[str, Any]
    original_text: str
    processed_at: datetime
    note: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.note is not None

    @property
    def title(self) -> Optional[str]:
        return self.processed.get("title")

    def to_dict(self) -> dict[str, Any]:
        data = {
            "type": self.kind.value,
            "processed": dict(self.processed),
            "originalText": self.original_text,
            "processedAt": self.processed_at.isoformat(),
        }
        if self.note is not None:
            data["note"] = self.note
        return data


class PipelineStage(str, Enum):
    CAPTURE = "capture"
    TRANSCRIPTION = "transcription"
    EXTRACTION = "extraction"
    PERSISTENCE = "persistence"


class PipelineState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    TRANSCRIBING = "transcribing"
    EXTRACTING = "extracting"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineFailure:
    """Names the stage that failed and why."""
    stage: PipelineStage
    cause: str


@dataclass
class PipelineResult:
    """Outcome of one pipeline invocation."""
    transcript: Optional[str] = None
    record: Optional[StructuredRecord] = None
    record_id: Optional[str] = None
    failure: Optional[PipelineFailure] = None
    history: list[PipelineState] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def failed(
        cls,
        stage: PipelineStage,
        cause: str,
        transcript: Optional[str] = None,
        history: Optional[list[PipelineState]] = None,
    ) -> "PipelineResult":
        return cls(
            transcript=transcript,
            failure=PipelineFailure(stage=stage, cause=cause),
            history=list(history or []),
        )

    def to_dict(self) -> dict[str, Any]:
        if self.failure is not None:
            return {
                "success": False,
                "stage": self.failure.stage.value,
                "error": self.failure.cause,
            }
        return {
            "success": True,
            "transcription": self.transcript,
            "data": self.record.to_dict() if self.record else None,
            "id": self.record_id,
        }


@dataclass
class RecordFilters:
    """Query filters for record retrieval."""
    user_id: str
    kind: RecordKind = RecordKind.SCHEDULE
    date: Optional[str] = None  # YYYY-MM-DD
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    month: Optional[str] = None  # YYYY-MM
    category: Optional[str] = None
    limit: Optional[int] = None

    @property
    def effective_limit(self) -> int:
        if self.limit is not None:
            return self.limit
        return 20 if self.kind is RecordKind.DIARY else 50
