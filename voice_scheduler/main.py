"""Entry point for Voice Scheduler - voice-driven schedules, diary and memos."""

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Optional

import uvicorn

from .audio.capture import AudioCaptureSession
from .auth import create_identity_provider
from .config import Config, load_config
from .errors import DeviceUnavailable
from .models import PipelineResult, RecordKind
from .pipeline import PipelineOrchestrator
from .storage import create_store
from .web.api import create_app, set_scheduler_instance

logger = logging.getLogger(__name__)


class VoiceScheduler:
    """Main application: wires the pipeline, store and identity provider."""

    def __init__(self, config: Config):
        self.config = config

        self._init_storage()
        self._init_pipeline()
        self._init_identity()

    def _init_storage(self) -> None:
        logger.info(f"Initializing {self.config.storage.backend} record store...")
        self.store = create_store(self.config.storage)

    def _init_pipeline(self) -> None:
        logger.info("Initializing voice pipeline...")
        self.pipeline = PipelineOrchestrator.from_config(self.config, store=self.store)

    def _init_identity(self) -> None:
        logger.info(f"Initializing {self.config.auth.provider} identity provider...")
        self.identity = create_identity_provider(self.config.auth, self.config.storage)

    async def process_file(self, path: str | Path, kind: str, user_id: str) -> PipelineResult:
        """Run a recorded audio file through the pipeline."""
        path = Path(path)
        media_type, _ = mimetypes.guess_type(path.name)
        payload = path.read_bytes()

        logger.info(f"Processing {path} ({len(payload)} bytes) as {kind}")
        return await self.pipeline.run(payload, kind, user_id, media_type=media_type)

    def record(self, kind: str, user_id: str, prompt=input) -> PipelineResult:
        """Record from the microphone until Enter is pressed, then process it."""
        with AudioCaptureSession(self.config.audio) as session:
            session.start()
            prompt("Recording... press Enter to stop ")
            return asyncio.run(self.pipeline.run_session(session, kind, user_id))

    def serve(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """Run the HTTP API in the foreground."""
        host = host or self.config.api.host
        port = port or self.config.api.port

        set_scheduler_instance(self)
        app = create_app()

        logger.info(f"Starting web server on {host}:{port}...")
        server = uvicorn.Server(uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        ))
        server.run()


def _print_result(result: PipelineResult) -> int:
    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2, default=str))
    return 0 if result.ok else 1


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Voice Scheduler - voice to schedules, diary and memos")
    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration file (default: $VOICE_SCHEDULER_CONFIG or config/settings.yaml)",
    )
    parser.add_argument(
        "--list-audio",
        action="store_true",
        help="List available audio devices",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Run the HTTP API",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Web server host",
    )
    parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Web server port (default: 5001)",
    )
    parser.add_argument(
        "--record",
        action="store_true",
        help="Record from the microphone and process the recording",
    )
    parser.add_argument(
        "--file",
        default=None,
        help="Process an audio file",
    )
    parser.add_argument(
        "--kind",
        default=RecordKind.SCHEDULE.value,
        choices=[k.value for k in RecordKind],
        help="Record kind to extract (default: schedule)",
    )
    parser.add_argument(
        "--user",
        default="local",
        help="User id records are stored under (default: local)",
    )
    args = parser.parse_args(argv)

    if args.list_audio:
        print("Available audio devices:")
        for dev in AudioCaptureSession.list_devices():
            print(f"  [{dev['id']}] {dev['name']} ({dev['channels']}ch)")
        return 0

    if not (args.serve or args.record or args.file):
        parser.print_help()
        return 2

    config = load_config(args.config)
    config.setup_logging()
    config.ensure_directories()

    app = VoiceScheduler(config)

    if args.serve:
        app.serve(host=args.host, port=args.port)
        return 0

    if args.file:
        return _print_result(asyncio.run(app.process_file(args.file, args.kind, args.user)))

    try:
        result = app.record(args.kind, args.user)
    except DeviceUnavailable as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Recording abandoned")
        return 130
    return _print_result(result)


if __name__ == "__main__":
    sys.exit(main())
