"""Splitting of oversized audio payloads into ordered chunks."""

from ..models import AudioSegment


def split_payload(payload: bytes, chunk_size: int, media_type: str = "audio/webm") -> list[AudioSegment]:
    """Split ``payload`` into contiguous, non-overlapping segments.

    Every segment holds exactly ``chunk_size`` bytes except the last, which
    may be shorter. Joining the segments' data in index order gives back
    ``payload``.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    return [
        AudioSegment(index=index, data=payload[offset:offset + chunk_size], media_type=media_type)
        for index, offset in enumerate(range(0, len(payload), chunk_size))
    ]


def extension_for(media_type: str | None) -> str:
    """File extension the speech-to-text service expects for ``media_type``."""
    if not media_type:
        return "webm"
    if "mp4" in media_type:
        return "m4a"
    if "ogg" in media_type:
        return "ogg"
    if "wav" in media_type:
        return "wav"
    if "mpeg" in media_type or "mp3" in media_type:
        return "mp3"
    return "webm"
