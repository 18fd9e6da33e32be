"""Speech-to-text transcription with chunking for long recordings."""

import asyncio
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional

import openai
from openai import AsyncOpenAI

from ..config import TranscriptionConfig
from ..errors import TranscriptionFailed
from ..models import AudioSegment, TranscriptionResult
from ..openai_client import describe_api_error
from .chunking import extension_for, split_payload

logger = logging.getLogger(__name__)


@dataclass
class TranscriptionOptions:
    """Per-call hints for the speech-to-text service."""
    language: str = "ko"
    media_type: Optional[str] = None


class ChunkedTranscriber:
    """Transcribes audio payloads, splitting those above the upload limit.

    Payloads up to ``max_file_bytes`` go up in a single request. Larger
    payloads are cut into ``chunk_bytes`` chunks, transcribed at most
    ``max_concurrency`` at a time, and the texts are joined in chunk order.
    """

    def __init__(self, client: AsyncOpenAI, config: TranscriptionConfig):
        self.client = client
        self.config = config
        self.model = config.model
        self.max_file_bytes = config.max_file_bytes
        self.chunk_bytes = config.chunk_bytes
        self.max_concurrency = config.max_concurrency

    async def transcribe(
        self,
        payload: bytes,
        options: Optional[TranscriptionOptions] = None,
    ) -> str:
        """Return the text recognized in ``payload``."""
        if options is None:
            options = TranscriptionOptions(language=self.config.language)

        if not payload:
            raise TranscriptionFailed("empty audio payload")

        if len(payload) <= self.max_file_bytes:
            logger.info(f"Transcribing {len(payload)} bytes as a single unit")
            return await self._transcribe_bytes(payload, extension_for(options.media_type), options.language)

        return await self._transcribe_chunked(payload, options)

    async def _transcribe_chunked(self, payload: bytes, options: TranscriptionOptions) -> str:
        segments = split_payload(payload, self.chunk_bytes, options.media_type or "audio/webm")
        logger.info(
            f"Payload of {len(payload)} bytes split into {len(segments)} chunks "
            f"(concurrency {self.max_concurrency})"
        )

        semaphore = asyncio.Semaphore(self.max_concurrency)
        results = await asyncio.gather(
            *(self._transcribe_segment(segment, options, semaphore) for segment in segments)
        )

        failures = [r for r in results if not r.success]
        if failures:
            first = min(failures, key=lambda r: r.index)
            logger.error(
                f"{len(failures)} of {len(results)} chunks failed; first failure at chunk {first.index}"
            )
            raise TranscriptionFailed(first.error or "unknown error", chunk_index=first.index)

        ordered = sorted(results, key=lambda r: r.index)
        return " ".join(r.text for r in ordered)

    async def _transcribe_segment(
        self,
        segment: AudioSegment,
        options: TranscriptionOptions,
        semaphore: asyncio.Semaphore,
    ) -> TranscriptionResult:
        async with semaphore:
            logger.debug(f"Transcribing chunk {segment.index} ({segment.size} bytes)")
            try:
                text = await self._transcribe_bytes(
                    segment.data, extension_for(segment.media_type), options.language
                )
            except TranscriptionFailed as e:
                logger.warning(f"Chunk {segment.index} failed: {e.detail}")
                return TranscriptionResult(
                    index=segment.index,
                    text="",
                    language=options.language,
                    success=False,
                    error=e.detail,
                )

        return TranscriptionResult(
            index=segment.index,
            text=text,
            language=options.language,
            success=True,
        )

    async def _transcribe_bytes(self, data: bytes, ext: str, language: str) -> str:
        try:
            async with self._staged(data, ext) as path:
                with open(path, "rb") as handle:
                    transcription = await self.client.audio.transcriptions.create(
                        model=self.model,
                        file=handle,
                        language=language,
                        timeout=self.config.timeout_seconds,
                    )
        except openai.OpenAIError as e:
            raise TranscriptionFailed(describe_api_error(e)) from e
        except OSError as e:
            raise TranscriptionFailed(f"could not stage audio: {e}") from e

        return transcription.text

    @asynccontextmanager
    async def _staged(self, data: bytes, ext: str) -> AsyncIterator[Path]:
        """Write ``data`` to a temporary file that is removed on exit.

        The write runs in a worker thread, off the event loop.
        """
        path = await asyncio.to_thread(self._write_staging_file, data, ext)
        try:
            yield path
        finally:
            path.unlink(missing_ok=True)

    def _write_staging_file(self, data: bytes, ext: str) -> Path:
        fd, name = tempfile.mkstemp(prefix="audio_", suffix=f".{ext}", dir=self.config.staging_dir)
        path = Path(name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
        except OSError:
            path.unlink(missing_ok=True)
            raise
        return path

    async def health_check(self) -> bool:
        """Check that the speech-to-text service is reachable."""
        try:
            await self.client.models.list()
            return True
        except openai.OpenAIError as e:
            logger.error(f"Transcription health check failed: {e}")
            return False
