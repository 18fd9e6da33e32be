"""Sequencing of capture, transcription, extraction and persistence."""

import logging
from typing import Optional

from ..audio.capture import AudioCaptureSession
from ..config import Config
from ..errors import (
    ExtractionFailed,
    PersistenceFailed,
    TranscriptionFailed,
    UnknownRecordKind,
    VoiceSchedulerError,
)
from ..extraction import StructuredExtractor
from ..models import PipelineResult, PipelineStage, PipelineState, RecordKind
from ..openai_client import create_openai_client
from ..storage import RecordStore, create_store
from ..transcription import ChunkedTranscriber, TranscriptionOptions

logger = logging.getLogger(__name__)


class _RunTracker:
    """State of a single pipeline invocation."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        self.state = PipelineState.IDLE
        self.history: list[PipelineState] = [PipelineState.IDLE]

    def advance(self, state: PipelineState) -> None:
        logger.info(f"[{self.user_id}] {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, stage: PipelineStage, cause: str, transcript: Optional[str] = None) -> PipelineResult:
        logger.error(f"[{self.user_id}] pipeline failed at {stage.value}: {cause}")
        self.state = PipelineState.FAILED
        self.history.append(PipelineState.FAILED)
        return PipelineResult.failed(stage, cause, transcript=transcript, history=self.history)


class PipelineOrchestrator:
    """Runs one voice input through every stage, stopping at the first failure.

    Stages run strictly one after another. A failed stage is not retried
    and nothing is persisted for a failed run. Each call keeps its state in
    its own tracker, so concurrent runs for different users share nothing
    but the injected collaborators.
    """

    def __init__(
        self,
        transcriber: ChunkedTranscriber,
        extractor: StructuredExtractor,
        store: RecordStore,
        language: str = "ko",
    ):
        self.transcriber = transcriber
        self.extractor = extractor
        self.store = store
        self.language = language

    @classmethod
    def from_config(cls, config: Config, store: Optional[RecordStore] = None) -> "PipelineOrchestrator":
        """Wire up the OpenAI-backed stages and the configured store."""
        client = create_openai_client(config.openai_api_key)
        return cls(
            transcriber=ChunkedTranscriber(client, config.transcription),
            extractor=StructuredExtractor(client, config.extraction),
            store=store if store is not None else create_store(config.storage),
            language=config.transcription.language,
        )

    async def run(
        self,
        audio_payload: bytes,
        kind: "str | RecordKind",
        user_id: str,
        media_type: Optional[str] = None,
    ) -> PipelineResult:
        """Process an already captured audio payload for ``user_id``."""
        tracker = _RunTracker(user_id)
        tracker.advance(PipelineState.CAPTURING)

        if not audio_payload:
            return tracker.fail(PipelineStage.CAPTURE, "No audio payload provided")

        return await self._process(tracker, audio_payload, kind, user_id, media_type)

    async def run_session(
        self,
        session: AudioCaptureSession,
        kind: "str | RecordKind",
        user_id: str,
    ) -> PipelineResult:
        """Stop a live capture session and process what it recorded."""
        tracker = _RunTracker(user_id)
        tracker.advance(PipelineState.CAPTURING)

        try:
            captured = session.stop()
        except VoiceSchedulerError as e:
            return tracker.fail(PipelineStage.CAPTURE, str(e))

        if len(captured.segments) == 0:
            return tracker.fail(PipelineStage.CAPTURE, "No audio was recorded")

        return await self._process(tracker, captured.payload, kind, user_id, captured.media_type)

    async def _process(
        self,
        tracker: _RunTracker,
        payload: bytes,
        kind: "str | RecordKind",
        user_id: str,
        media_type: Optional[str],
    ) -> PipelineResult:
        # Unknown kinds are rejected before any upstream call is made
        try:
            record_kind = RecordKind.parse(kind)
        except UnknownRecordKind as e:
            return tracker.fail(PipelineStage.EXTRACTION, str(e))

        tracker.advance(PipelineState.TRANSCRIBING)
        options = TranscriptionOptions(language=self.language, media_type=media_type)
        try:
            transcript = await self.transcriber.transcribe(payload, options)
        except TranscriptionFailed as e:
            return tracker.fail(PipelineStage.TRANSCRIPTION, str(e))

        if not transcript or not transcript.strip():
            return tracker.fail(PipelineStage.TRANSCRIPTION, "Could not transcribe audio", transcript=transcript)

        tracker.advance(PipelineState.EXTRACTING)
        try:
            record = await self.extractor.extract(transcript, record_kind)
        except ExtractionFailed as e:
            return tracker.fail(PipelineStage.EXTRACTION, str(e), transcript=transcript)

        tracker.advance(PipelineState.PERSISTING)
        try:
            record_id = await self.store.save(user_id, record, record_kind)
        except PersistenceFailed as e:
            return tracker.fail(PipelineStage.PERSISTENCE, str(e), transcript=transcript)

        tracker.advance(PipelineState.DONE)
        logger.info(f"[{user_id}] stored {record_kind.value} {record_id}")

        return PipelineResult(
            transcript=transcript,
            record=record,
            record_id=record_id,
            history=list(tracker.history),
        )
