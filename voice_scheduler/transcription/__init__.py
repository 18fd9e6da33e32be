"""Speech-to-text transcription."""

from .chunking import extension_for, split_payload
from .transcriber import ChunkedTranscriber, TranscriptionOptions

__all__ = ["ChunkedTranscriber", "TranscriptionOptions", "extension_for", "split_payload"]
