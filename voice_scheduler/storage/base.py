"""Record store interface."""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any

from ..models import RecordFilters, RecordKind, StructuredRecord

ANALYTICS_PERIODS = {"7d": 7, "30d": 30, "all": 3650}


def period_start(period: str, now: datetime | None = None) -> datetime:
    """Start of an analytics period; unknown periods count as 7 days."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now - timedelta(days=ANALYTICS_PERIODS.get(period, 7))


class RecordStore(ABC):
    """Persists structured records per user and kind.

    Records live in one collection per kind under the owning user. Every
    stored document carries ``userId``, ``type``, ``createdAt`` and
    ``updatedAt`` next to the record's own fields.
    """

    @abstractmethod
    async def save(self, user_id: str, record: StructuredRecord, kind: RecordKind) -> str:
        """Store a pipeline record and return its generated id."""

    @abstractmethod
    async def create(self, user_id: str, kind: RecordKind, data: dict[str, Any]) -> str:
        """Store a manually entered document and return its generated id."""

    @abstractmethod
    async def get(self, filters: RecordFilters) -> list[dict[str, Any]]:
        """Return documents matching ``filters``, each including its ``id``."""

    @abstractmethod
    async def update(self, user_id: str, kind: RecordKind, record_id: str, updates: dict[str, Any]) -> None:
        """Apply ``updates``, merging any ``processed`` sub-object."""

    @abstractmethod
    async def delete(self, user_id: str, kind: RecordKind, record_id: str) -> None:
        """Remove a document."""

    @abstractmethod
    async def analytics_summary(self, user_id: str, period: str = "7d") -> dict[str, Any]:
        """Count documents per kind created within ``period``."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check that the backing store is reachable."""
