"""Pytest configuration and shared fixtures."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import numpy as np
import openai
import pytest


# ==================== Path Fixtures ====================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir):
    """Create a temporary config file."""
    config_path = temp_dir / "settings.yaml"
    config_content = """
audio:
  device: "default"
  sample_rate: 16000
  channels: 1
  segment_interval_ms: 500

transcription:
  model: "whisper-1"
  language: "ko"
  max_concurrency: 3

extraction:
  model: "gpt-4o-mini"
  temperature: 0.2

storage:
  backend: "local"
  data_dir: "{data_dir}"

auth:
  provider: "static"
  static_tokens:
    test-token: "user-1"

api:
  port: 5002

logging:
  level: "DEBUG"
  file: null
""".format(data_dir=str(temp_dir / "records"))

    config_path.write_text(config_content, encoding="utf-8")
    return config_path


# ==================== Config Fixtures ====================

@pytest.fixture
def audio_config():
    """Create an audio config with short segments."""
    from voice_scheduler.config import AudioConfig
    return AudioConfig(
        device="default",
        sample_rate=16000,
        channels=1,
        segment_interval_ms=100,
    )


@pytest.fixture
def transcription_config(temp_dir):
    """Transcription config staging files in the temp directory."""
    from voice_scheduler.config import TranscriptionConfig
    staging = temp_dir / "staging"
    staging.mkdir()
    return TranscriptionConfig(staging_dir=str(staging))


@pytest.fixture
def storage_config(temp_dir):
    """Local storage config under the temp directory."""
    from voice_scheduler.config import StorageConfig
    return StorageConfig(backend="local", data_dir=str(temp_dir / "records"))


@pytest.fixture
def fixed_now():
    """A fixed processing time."""
    return datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


# ==================== Audio Fixtures ====================

@pytest.fixture
def sample_pcm_block():
    """100ms of int16 mono audio as delivered by the input stream."""
    samples = (np.random.randn(1600, 1) * 1000).astype(np.int16)
    return samples


# ==================== OpenAI Fixtures ====================

@pytest.fixture
def chat_response():
    """Factory for chat completion responses."""
    def _make(content):
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
        )
    return _make


@pytest.fixture
def connection_error():
    """Factory for upstream connection errors."""
    def _make(url="https://api.openai.com/v1/chat/completions"):
        return openai.APIConnectionError(request=httpx.Request("POST", url))
    return _make


@pytest.fixture
def mock_openai_client(chat_response):
    """Mock async OpenAI client with transcription and chat endpoints."""
    client = MagicMock()
    client.audio.transcriptions.create = AsyncMock(
        return_value=SimpleNamespace(text="테스트 음성")
    )
    client.chat.completions.create = AsyncMock(return_value=chat_response("{}"))
    client.models.list = AsyncMock(return_value=SimpleNamespace(data=[]))
    return client
