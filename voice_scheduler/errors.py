"""Exception types raised across the capture, transcription, extraction and storage layers."""

from typing import Optional


class VoiceSchedulerError(Exception):
    """Base class for all Voice Scheduler errors."""


# ==================== Capture ====================

class DeviceUnavailable(VoiceSchedulerError):
    """No compatible input device could be opened."""


class AlreadyRecording(VoiceSchedulerError):
    """start() was called while a session is active."""

    def __init__(self, message: str = "A recording session is already active"):
        super().__init__(message)


class NoActiveSession(VoiceSchedulerError):
    """stop() was called without a prior successful start()."""

    def __init__(self, message: str = "No active recording session"):
        super().__init__(message)


class CaptureFailed(VoiceSchedulerError):
    """The recorded samples could not be finalized into an audio payload."""


# ==================== Transcription ====================

class TranscriptionFailed(VoiceSchedulerError):
    """The speech-to-text call failed.

    When the payload was chunked, ``chunk_index`` names the first chunk
    that failed.
    """

    def __init__(self, detail: str, chunk_index: Optional[int] = None):
        self.detail = detail
        self.chunk_index = chunk_index
        if chunk_index is None:
            message = f"Transcription failed: {detail}"
        else:
            message = f"Transcription failed for chunk {chunk_index}: {detail}"
        super().__init__(message)


# ==================== Extraction ====================

class UnknownRecordKind(VoiceSchedulerError):
    """A record kind outside schedule/diary/memo."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown record kind: {kind!r}")


class ExtractionFailed(VoiceSchedulerError):
    """The text-generation call itself failed (network, auth, quota)."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Text processing failed: {detail}")


# ==================== Storage ====================

class PersistenceFailed(VoiceSchedulerError):
    """The record store could not complete an operation."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Persistence failed: {detail}")


class RecordNotFound(VoiceSchedulerError):
    """The addressed record does not exist."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id}")


# ==================== Identity ====================

class AuthenticationFailed(VoiceSchedulerError):
    """A bearer token could not be verified."""
