"""Microphone capture sessions that produce a finalized audio payload."""

import io
import logging
import queue
import threading
from typing import Callable, Optional

import numpy as np
import sounddevice as sd
import soundfile as sf

from ..config import AudioConfig
from ..errors import AlreadyRecording, CaptureFailed, DeviceUnavailable, NoActiveSession
from ..models import AudioSegment, CapturedAudio

logger = logging.getLogger(__name__)

PCM_MEDIA_TYPE = "audio/L16"
WAV_MEDIA_TYPE = "audio/wav"


class AudioCaptureSession:
    """Records from an input device, buffering one segment per interval.

    Segments are kept as they arrive so that partial audio survives a
    failure later in the session. The device handle is released on every
    exit path: ``stop()``, ``close()`` or leaving the ``with`` block.
    """

    def __init__(self, config: AudioConfig):
        self.config = config
        self.sample_rate = config.sample_rate
        self.channels = config.channels
        self.segment_samples = int(config.sample_rate * config.segment_interval_ms / 1000)

        self._audio_queue: queue.Queue[np.ndarray] = queue.Queue()
        self._stream: Optional[sd.InputStream] = None
        self._running = False
        self._paused = False
        self._thread: Optional[threading.Thread] = None
        self._callbacks: list[Callable[[AudioSegment], None]] = []

        self._segments: list[AudioSegment] = []
        self._blocks: list[np.ndarray] = []
        self._lock = threading.Lock()

    def __enter__(self) -> "AudioCaptureSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _audio_callback(
        self,
        indata: np.ndarray,
        frames: int,
        time_info: dict,
        status: sd.CallbackFlags,
    ) -> None:
        """Callback for sounddevice stream."""
        if status:
            logger.warning(f"Audio callback status: {status}")

        if self._paused:
            return

        self._audio_queue.put(indata.copy())

    def _process_loop(self) -> None:
        """Turn queued blocks into segments and notify listeners."""
        while self._running:
            try:
                block = self._audio_queue.get(timeout=0.2)
            except queue.Empty:
                continue
            self._append_block(block)

    def _append_block(self, block: np.ndarray) -> AudioSegment:
        with self._lock:
            segment = AudioSegment(
                index=len(self._segments),
                data=block.tobytes(),
                media_type=PCM_MEDIA_TYPE,
            )
            self._segments.append(segment)
            self._blocks.append(block)

        logger.debug(f"Buffered segment {segment.index} ({segment.size} bytes)")

        for callback in self._callbacks:
            try:
                callback(segment)
            except Exception as e:
                logger.error(f"Segment callback error: {e}")

        return segment

    def add_callback(self, callback: Callable[[AudioSegment], None]) -> None:
        """Register a callback invoked for every buffered segment."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[AudioSegment], None]) -> None:
        """Unregister a callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _resolve_device(self):
        if self.config.device == "default":
            return None
        try:
            return int(self.config.device)
        except ValueError:
            return self.config.device

    def start(self) -> None:
        """Acquire the input device and begin buffering."""
        if self._running:
            raise AlreadyRecording()

        logger.info(f"Starting capture: {self.sample_rate}Hz, {self.channels}ch")

        with self._lock:
            self._segments = []
            self._blocks = []

        try:
            self._stream = sd.InputStream(
                device=self._resolve_device(),
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=self.segment_samples,
                callback=self._audio_callback,
            )
            self._stream.start()
        except (sd.PortAudioError, ValueError) as e:
            logger.error(f"Failed to open input device {self.config.device!r}: {e}")
            self._release_stream()
            raise DeviceUnavailable(f"Microphone access failed: {e}") from e

        self._running = True
        self._paused = False
        self._thread = threading.Thread(target=self._process_loop, daemon=True)
        self._thread.start()

        logger.info("Capture started")

    def pause(self) -> None:
        """Drop incoming samples until resume(); no-op when not recording."""
        if not self._running or self._paused:
            return
        self._paused = True
        logger.debug("Capture paused")

    def resume(self) -> None:
        """Resume buffering after pause(); no-op when not paused."""
        if not self._running or not self._paused:
            return
        self._paused = False
        logger.debug("Capture resumed")

    def stop(self) -> CapturedAudio:
        """Finalize the buffered samples into one WAV payload and release the device."""
        if not self._running:
            raise NoActiveSession()

        logger.info("Stopping capture")
        try:
            self._shutdown()
            self._drain_queue()
            with self._lock:
                blocks = list(self._blocks)
                segments = list(self._segments)
            payload = self._encode_wav(blocks)
        except sd.PortAudioError as e:
            logger.error(f"Error while releasing input device: {e}")
            raise DeviceUnavailable(f"Input device error: {e}") from e
        except (sf.SoundFileError, ValueError) as e:
            logger.error(f"Failed to encode captured audio: {e}")
            raise CaptureFailed(f"Could not encode recording: {e}") from e
        finally:
            self._reset()

        total_samples = sum(len(b) for b in blocks)
        duration_ms = int(total_samples * 1000 / self.sample_rate)
        logger.info(f"Capture stopped: {len(segments)} segments, {duration_ms}ms")

        return CapturedAudio(
            payload=payload,
            media_type=WAV_MEDIA_TYPE,
            segments=segments,
            duration_ms=duration_ms,
        )

    def close(self) -> None:
        """Abandon the session, releasing the device and discarding buffers."""
        if not self._running and self._stream is None:
            return

        logger.info("Abandoning capture session")
        try:
            self._shutdown()
        except sd.PortAudioError as e:
            logger.warning(f"Error while releasing input device: {e}")
        finally:
            self._reset()
            while not self._audio_queue.empty():
                try:
                    self._audio_queue.get_nowait()
                except queue.Empty:
                    break

    def _shutdown(self) -> None:
        """Stop the stream and the processing thread."""
        self._running = False
        try:
            self._release_stream()
        finally:
            if self._thread is not None:
                self._thread.join(timeout=2.0)
                self._thread = None

    def _release_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()

    def _reset(self) -> None:
        self._running = False
        self._paused = False
        self._stream = None
        self._thread = None

    def _drain_queue(self) -> None:
        while True:
            try:
                block = self._audio_queue.get_nowait()
            except queue.Empty:
                break
            self._append_block(block)

    def _encode_wav(self, blocks: list[np.ndarray]) -> bytes:
        if blocks:
            samples = np.concatenate(blocks)
        else:
            samples = np.zeros((0, self.channels), dtype=np.int16)

        buffer = io.BytesIO()
        sf.write(buffer, samples, self.sample_rate, format="WAV", subtype="PCM_16")
        return buffer.getvalue()

    def is_recording(self) -> bool:
        """Check if a session is active."""
        return self._running

    def is_paused(self) -> bool:
        return self._paused

    @property
    def segments(self) -> list[AudioSegment]:
        """Segments buffered so far."""
        with self._lock:
            return list(self._segments)

    @staticmethod
    def list_devices() -> list[dict]:
        """List available audio input devices."""
        devices = []
        for i, device in enumerate(sd.query_devices()):
            if device["max_input_channels"] > 0:
                devices.append({
                    "id": i,
                    "name": device["name"],
                    "channels": device["max_input_channels"],
                    "sample_rate": device["default_samplerate"],
                })
        return devices
