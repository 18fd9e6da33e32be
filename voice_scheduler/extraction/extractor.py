"""Structured extraction of schedules, diary entries and memos from transcripts."""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Optional

import openai
from openai import AsyncOpenAI

from ..config import ExtractionConfig
from ..errors import ExtractionFailed, UnknownRecordKind
from ..models import RecordKind, StructuredRecord
from ..openai_client import describe_api_error
from .prompts import FALLBACK_NOTE, FALLBACK_TITLES, system_prompt
from .streaming import iter_content_deltas

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_kind(kind: "str | RecordKind") -> RecordKind:
    """Map ``kind`` to a RecordKind, defaulting unknown values to schedule."""
    try:
        return RecordKind.parse(kind)
    except UnknownRecordKind:
        logger.warning(f"Unknown record kind {kind!r}, using the schedule template")
        return RecordKind.SCHEDULE


class StructuredExtractor:
    """Turns transcript text into a StructuredRecord using a chat model.

    Replies that cannot be parsed as the expected JSON still produce a
    record: a degraded one holding the raw reply, flagged by ``note``.
    Only failures of the upstream call raise ExtractionFailed.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        config: ExtractionConfig,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.client = client
        self.config = config
        self.model = config.model
        self._clock = clock

    async def extract(self, transcript: str, kind: "str | RecordKind") -> StructuredRecord:
        """Structure ``transcript`` as a record of the given kind."""
        record_kind = resolve_kind(kind)
        now = self._clock()

        messages = [
            {"role": "system", "content": system_prompt(record_kind, now.date().isoformat())},
            {"role": "user", "content": transcript},
        ]
        content = await self._complete(
            messages,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )

        processed = self._parse_processed(content)
        if processed is None:
            logger.warning(f"Could not parse {record_kind.value} reply as JSON, storing fallback record")
            return StructuredRecord(
                kind=record_kind,
                processed={
                    "title": FALLBACK_TITLES[record_kind],
                    "content": content or "",
                    "date": now.date().isoformat(),
                },
                original_text=transcript,
                processed_at=now,
                note=FALLBACK_NOTE,
            )

        logger.info(f"Extracted {record_kind.value}: {processed.get('title')!r}")
        return StructuredRecord(
            kind=record_kind,
            processed=processed,
            original_text=transcript,
            processed_at=now,
        )

    @staticmethod
    def _parse_processed(content: Optional[str]) -> Optional[dict[str, Any]]:
        """Kind-specific fields from a model reply, or None when unparseable."""
        if not content:
            return None

        text = content.strip()
        fenced = _FENCE_RE.match(text)
        if fenced:
            text = fenced.group(1)

        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            return None

        if not isinstance(parsed, dict):
            return None

        if "processed" in parsed:
            processed = parsed["processed"]
            return processed if isinstance(processed, dict) else None

        # Bare object of fields without the "processed" wrapper
        parsed.pop("originalText", None)
        return parsed

    async def generate_text(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> str:
        """Single completion for ``prompt``; empty string when the reply has no content."""
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        content = await self._complete(messages, temperature=temperature, max_tokens=max_tokens)
        return content or ""

    async def _complete(self, messages: list[dict], temperature: float, max_tokens: int) -> Optional[str]:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self.config.timeout_seconds,
            )
        except openai.OpenAIError as e:
            logger.error(f"Text generation call failed: {e}")
            raise ExtractionFailed(describe_api_error(e)) from e

        if not response.choices:
            return None
        return response.choices[0].message.content

    async def stream_completion(
        self,
        messages: list[dict],
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> AsyncIterator[str]:
        """Yield content deltas as the model produces them."""
        try:
            async with self.client.chat.completions.with_streaming_response.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
                timeout=self.config.timeout_seconds,
            ) as response:
                async for delta in iter_content_deltas(response.iter_lines()):
                    yield delta
        except openai.OpenAIError as e:
            logger.error(f"Streaming completion failed: {e}")
            raise ExtractionFailed(describe_api_error(e)) from e

    async def health_check(self) -> bool:
        """Check that the text-generation service is reachable."""
        try:
            await self.client.models.list()
            return True
        except openai.OpenAIError as e:
            logger.error(f"Extraction health check failed: {e}")
            return False
