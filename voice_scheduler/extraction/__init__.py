"""Structured extraction of records from transcript text."""

from .extractor import StructuredExtractor, resolve_kind
from .streaming import iter_content_deltas

__all__ = ["StructuredExtractor", "iter_content_deltas", "resolve_kind"]
