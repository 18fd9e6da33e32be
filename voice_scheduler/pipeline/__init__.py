"""Voice-to-record pipeline."""

from .orchestrator import PipelineOrchestrator

__all__ = ["PipelineOrchestrator"]
