"""Configuration management for Voice Scheduler."""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

MIB = 1024 * 1024


@dataclass
class AudioConfig:
    """Microphone capture configuration."""
    device: str = "default"
    sample_rate: int = 16000
    channels: int = 1
    segment_interval_ms: int = 1000


@dataclass
class TranscriptionConfig:
    """Speech-to-text configuration."""
    model: str = "whisper-1"
    language: str = "ko"
    max_file_bytes: int = 24 * MIB
    chunk_bytes: int = 24 * MIB
    max_concurrency: int = 2
    timeout_seconds: float = 120.0
    staging_dir: Optional[str] = None  # system temp dir when unset


@dataclass
class ExtractionConfig:
    """Text-generation configuration for structured extraction."""
    model: str = "gpt-3.5-turbo"
    temperature: float = 0.3
    max_tokens: int = 1500
    timeout_seconds: float = 60.0


@dataclass
class StorageConfig:
    """Record store configuration."""
    backend: str = "local"  # local | firestore
    data_dir: str = "./data/records"
    firebase_project: Optional[str] = None
    firebase_credentials: Optional[str] = None


@dataclass
class AuthConfig:
    """Identity provider configuration."""
    provider: str = "static"  # static | firebase
    static_tokens: dict[str, str] = field(default_factory=dict)


@dataclass
class ApiConfig:
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 5001
    max_upload_bytes: int = 10 * MIB
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = "./logs/voice_scheduler.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class Config:
    """Main configuration container."""
    audio: AudioConfig = field(default_factory=AudioConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    openai_api_key: Optional[str] = None

    def __post_init__(self):
        if self.openai_api_key is None:
            self.openai_api_key = os.environ.get("OPENAI_API_KEY")

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            return cls()

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls(
            audio=AudioConfig(**data.get("audio", {})),
            transcription=TranscriptionConfig(**data.get("transcription", {})),
            extraction=ExtractionConfig(**data.get("extraction", {})),
            storage=StorageConfig(**data.get("storage", {})),
            auth=AuthConfig(**data.get("auth", {})),
            api=ApiConfig(**data.get("api", {})),
            logging=LoggingConfig(**data.get("logging", {})),
            openai_api_key=data.get("openai_api_key"),
        )

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file.

        The API key is never written out; it stays in the environment.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "audio": asdict(self.audio),
            "transcription": asdict(self.transcription),
            "extraction": asdict(self.extraction),
            "storage": asdict(self.storage),
            "auth": asdict(self.auth),
            "api": asdict(self.api),
            "logging": asdict(self.logging),
        }

        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        log_level = getattr(logging, self.logging.level.upper(), logging.INFO)

        handlers = [logging.StreamHandler()]

        if self.logging.file:
            log_path = Path(self.logging.file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

        logging.basicConfig(
            level=log_level,
            format=self.logging.format,
            handlers=handlers,
        )

    def ensure_directories(self) -> None:
        """Create necessary directories."""
        if self.storage.backend == "local":
            Path(self.storage.data_dir).mkdir(parents=True, exist_ok=True)


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from file or environment."""
    if path is None:
        path = os.environ.get("VOICE_SCHEDULER_CONFIG", "config/settings.yaml")
    return Config.from_yaml(path)
