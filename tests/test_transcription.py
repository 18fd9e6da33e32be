"""Tests for the transcription module."""

import asyncio
import threading
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from voice_scheduler.config import MIB, TranscriptionConfig
from voice_scheduler.errors import TranscriptionFailed
from voice_scheduler.transcription import (
    ChunkedTranscriber,
    TranscriptionOptions,
    extension_for,
    split_payload,
)


class TestSplitPayload:
    """Tests for split_payload function."""

    def test_split_sizes(self):
        """50 MiB in 24 MiB chunks gives 24, 24 and 2 MiB."""
        payload = bytes(50 * MIB)
        segments = split_payload(payload, 24 * MIB)

        assert [s.size for s in segments] == [24 * MIB, 24 * MIB, 2 * MIB]
        assert [s.index for s in segments] == [0, 1, 2]

    def test_segments_reassemble_payload(self):
        payload = bytes(range(256)) * 10
        segments = split_payload(payload, 100, media_type="audio/ogg")

        assert b"".join(s.data for s in segments) == payload
        assert all(s.media_type == "audio/ogg" for s in segments)

    def test_exact_multiple(self):
        segments = split_payload(b"x" * 30, 10)
        assert [s.size for s in segments] == [10, 10, 10]

    def test_empty_payload(self):
        assert split_payload(b"", 10) == []

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            split_payload(b"abc", 0)


class TestExtensionFor:
    """Tests for extension_for function."""

    @pytest.mark.parametrize("media_type, expected", [
        ("audio/mp4", "m4a"),
        ("audio/ogg; codecs=opus", "ogg"),
        ("audio/wav", "wav"),
        ("audio/webm", "webm"),
        ("audio/x-unknown", "webm"),
        (None, "webm"),
    ])
    def test_mapping(self, media_type, expected):
        assert extension_for(media_type) == expected


class TestChunkedTranscriber:
    """Tests for ChunkedTranscriber class."""

    @pytest.fixture
    def small_config(self, transcription_config):
        """Config with a 24-byte upload limit and chunk size."""
        transcription_config.max_file_bytes = 24
        transcription_config.chunk_bytes = 24
        return transcription_config

    @staticmethod
    def _chunk_payload():
        # Chunk i consists of the ASCII digit i so the fake can tell chunks apart
        return b"0" * 24 + b"1" * 24 + b"2" * 2

    def test_single_unit_below_limit(self, mock_openai_client, transcription_config):
        """A 5 MiB payload goes up in one request."""
        mock_openai_client.audio.transcriptions.create.return_value = SimpleNamespace(
            text="내일 오후 3시에 회의 일정"
        )
        transcriber = ChunkedTranscriber(mock_openai_client, transcription_config)

        text = asyncio.run(transcriber.transcribe(bytes(5 * MIB), TranscriptionOptions(language="ko")))

        assert text == "내일 오후 3시에 회의 일정"
        create = mock_openai_client.audio.transcriptions.create
        assert create.await_count == 1
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "whisper-1"
        assert kwargs["language"] == "ko"

    def test_payload_at_limit_is_single_unit(self, mock_openai_client, small_config):
        transcriber = ChunkedTranscriber(mock_openai_client, small_config)

        asyncio.run(transcriber.transcribe(b"a" * 24))

        assert mock_openai_client.audio.transcriptions.create.await_count == 1

    def test_payload_above_limit_is_chunked(self, mock_openai_client, small_config):
        transcriber = ChunkedTranscriber(mock_openai_client, small_config)

        asyncio.run(transcriber.transcribe(b"a" * 25))

        assert mock_openai_client.audio.transcriptions.create.await_count == 2

    def test_media_type_sets_file_extension(self, mock_openai_client, transcription_config):
        seen = []

        async def fake_create(**kwargs):
            seen.append(Path(kwargs["file"].name).suffix)
            return SimpleNamespace(text="ok")

        mock_openai_client.audio.transcriptions.create = AsyncMock(side_effect=fake_create)
        transcriber = ChunkedTranscriber(mock_openai_client, transcription_config)

        asyncio.run(transcriber.transcribe(b"abc", TranscriptionOptions(media_type="audio/mp4")))

        assert seen == [".m4a"]

    def test_chunks_joined_in_order(self, mock_openai_client, small_config):
        """Texts follow chunk order even when later chunks finish first."""
        async def fake_create(**kwargs):
            index = int(kwargs["file"].read(1))
            await asyncio.sleep(0.03 * (3 - index))
            return SimpleNamespace(text=f"part{index}")

        mock_openai_client.audio.transcriptions.create = AsyncMock(side_effect=fake_create)
        transcriber = ChunkedTranscriber(mock_openai_client, small_config)

        text = asyncio.run(transcriber.transcribe(self._chunk_payload()))

        assert text == "part0 part1 part2"

    def test_concurrency_is_bounded(self, mock_openai_client, small_config):
        in_flight = 0
        peak = 0

        async def fake_create(**kwargs):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.02)
            in_flight -= 1
            return SimpleNamespace(text="x")

        mock_openai_client.audio.transcriptions.create = AsyncMock(side_effect=fake_create)
        small_config.chunk_bytes = 5
        transcriber = ChunkedTranscriber(mock_openai_client, small_config)

        asyncio.run(transcriber.transcribe(b"z" * 50))

        assert mock_openai_client.audio.transcriptions.create.await_count == 10
        assert peak == 2

    def test_failed_chunk_is_reported(self, mock_openai_client, small_config, connection_error):
        """50 units split 24/24/2 with the middle chunk failing names chunk 1."""
        async def fake_create(**kwargs):
            index = int(kwargs["file"].read(1))
            if index == 1:
                raise connection_error("https://api.openai.com/v1/audio/transcriptions")
            return SimpleNamespace(text=f"part{index}")

        mock_openai_client.audio.transcriptions.create = AsyncMock(side_effect=fake_create)
        transcriber = ChunkedTranscriber(mock_openai_client, small_config)

        with pytest.raises(TranscriptionFailed) as exc_info:
            asyncio.run(transcriber.transcribe(self._chunk_payload()))

        assert exc_info.value.chunk_index == 1
        assert "chunk 1" in str(exc_info.value)
        assert mock_openai_client.audio.transcriptions.create.await_count == 3

    def test_lowest_failed_chunk_wins(self, mock_openai_client, small_config, connection_error):
        async def fake_create(**kwargs):
            index = int(kwargs["file"].read(1))
            if index >= 1:
                raise connection_error()
            return SimpleNamespace(text="ok")

        mock_openai_client.audio.transcriptions.create = AsyncMock(side_effect=fake_create)
        transcriber = ChunkedTranscriber(mock_openai_client, small_config)

        with pytest.raises(TranscriptionFailed) as exc_info:
            asyncio.run(transcriber.transcribe(self._chunk_payload()))

        assert exc_info.value.chunk_index == 1

    def test_single_unit_failure(self, mock_openai_client, transcription_config, connection_error):
        mock_openai_client.audio.transcriptions.create.side_effect = connection_error()
        transcriber = ChunkedTranscriber(mock_openai_client, transcription_config)

        with pytest.raises(TranscriptionFailed) as exc_info:
            asyncio.run(transcriber.transcribe(b"audio"))

        assert exc_info.value.chunk_index is None

    def test_empty_payload(self, mock_openai_client, transcription_config):
        transcriber = ChunkedTranscriber(mock_openai_client, transcription_config)

        with pytest.raises(TranscriptionFailed):
            asyncio.run(transcriber.transcribe(b""))

        mock_openai_client.audio.transcriptions.create.assert_not_awaited()

    def test_staged_files_removed(self, mock_openai_client, small_config, connection_error):
        """Temporary upload files exist during the call and are gone afterwards."""
        staging = Path(small_config.staging_dir)
        existed = []

        async def fake_create(**kwargs):
            path = Path(kwargs["file"].name)
            existed.append(path.exists() and path.parent == staging)
            if int(kwargs["file"].read(1)) == 2:
                raise connection_error()
            return SimpleNamespace(text="ok")

        mock_openai_client.audio.transcriptions.create = AsyncMock(side_effect=fake_create)
        transcriber = ChunkedTranscriber(mock_openai_client, small_config)

        with pytest.raises(TranscriptionFailed):
            asyncio.run(transcriber.transcribe(self._chunk_payload()))

        assert existed == [True, True, True]
        assert list(staging.iterdir()) == []

    def test_staging_write_runs_off_event_loop_thread(self, mock_openai_client, transcription_config):
        loop_threads = []
        write_threads = []
        transcriber = ChunkedTranscriber(mock_openai_client, transcription_config)
        write = transcriber._write_staging_file

        def recording_write(data, ext):
            write_threads.append(threading.get_ident())
            return write(data, ext)

        transcriber._write_staging_file = recording_write

        async def exercise():
            loop_threads.append(threading.get_ident())
            return await transcriber.transcribe(b"audio")

        asyncio.run(exercise())

        assert len(write_threads) == 1
        assert write_threads[0] != loop_threads[0]

    def test_health_check(self, mock_openai_client, transcription_config, connection_error):
        transcriber = ChunkedTranscriber(mock_openai_client, transcription_config)
        assert asyncio.run(transcriber.health_check()) is True

        mock_openai_client.models.list.side_effect = connection_error()
        assert asyncio.run(transcriber.health_check()) is False


class TestTranscriptionConfigUse:
    """Tests for config-driven transcriber settings."""

    def test_uses_configured_model(self, mock_openai_client, temp_dir):
        config = TranscriptionConfig(model="gpt-4o-transcribe", staging_dir=str(temp_dir))
        transcriber = ChunkedTranscriber(mock_openai_client, config)

        asyncio.run(transcriber.transcribe(b"abc"))

        kwargs = mock_openai_client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-transcribe"
        assert kwargs["timeout"] == config.timeout_seconds
