"""Audio capture components."""

from .capture import AudioCaptureSession

__all__ = ["AudioCaptureSession"]
