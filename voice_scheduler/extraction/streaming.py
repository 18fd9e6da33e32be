"""Decoding of server-sent-event lines from a streamed chat completion."""

import json
import logging
from typing import AsyncIterable, AsyncIterator, Optional

logger = logging.getLogger(__name__)

DONE_MARKER = "[DONE]"


def _delta_content(data: str) -> Optional[str]:
    """Content delta carried by one ``data:`` frame, or None.

    Frames that are not valid JSON are skipped: the stream is lossy at
    the framing level and carries on with the next frame.
    """
    try:
        frame = json.loads(data)
    except json.JSONDecodeError:
        logger.debug(f"Skipping malformed stream frame: {data[:80]!r}")
        return None

    if not isinstance(frame, dict):
        logger.debug(f"Skipping non-object stream frame: {data[:80]!r}")
        return None

    choices = frame.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) else None


async def iter_content_deltas(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    """Yield content deltas from raw SSE lines until ``[DONE]``."""
    async for raw in lines:
        line = raw.strip()
        if not line.startswith("data:"):
            continue

        data = line[len("data:"):].strip()
        if data == DONE_MARKER:
            return

        content = _delta_content(data)
        if content:
            yield content
