"""Firestore-backed record store."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from firebase_admin import firestore_async
from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from ..config import StorageConfig
from ..errors import PersistenceFailed, RecordNotFound
from ..firebase import get_firebase_app
from ..models import RecordFilters, RecordKind, StructuredRecord
from .base import RecordStore, period_start

logger = logging.getLogger(__name__)


class FirestoreRecordStore(RecordStore):
    """Stores records in ``users/{uid}/{collection}`` documents.

    The async client is injected; ``from_config`` builds one from the
    default Firebase app.
    """

    def __init__(self, db: firestore.AsyncClient):
        self.db = db

    @classmethod
    def from_config(cls, config: StorageConfig) -> "FirestoreRecordStore":
        app = get_firebase_app(config.firebase_project, config.firebase_credentials)
        return cls(firestore_async.client(app))

    def _collection(self, user_id: str, kind: RecordKind):
        return self.db.collection(f"users/{user_id}/{kind.collection}")

    async def _add(self, user_id: str, kind: RecordKind, data: dict[str, Any]) -> str:
        document = {
            **data,
            "userId": user_id,
            "type": kind.value,
            "createdAt": firestore.SERVER_TIMESTAMP,
            "updatedAt": firestore.SERVER_TIMESTAMP,
        }
        try:
            _, ref = await self._collection(user_id, kind).add(document)
        except google_exceptions.GoogleAPIError as e:
            raise PersistenceFailed(str(e)) from e

        logger.debug(f"Saved {kind.value} {ref.id} for user {user_id}")
        return ref.id

    async def save(self, user_id: str, record: StructuredRecord, kind: RecordKind) -> str:
        return await self._add(user_id, kind, record.to_dict())

    async def create(self, user_id: str, kind: RecordKind, data: dict[str, Any]) -> str:
        return await self._add(user_id, kind, data)

    def _build_query(self, filters: RecordFilters):
        query = self._collection(filters.user_id, filters.kind)

        if filters.kind is RecordKind.SCHEDULE:
            if filters.date:
                query = query.where(filter=FieldFilter("processed.date", "==", filters.date))
            elif filters.start_date and filters.end_date:
                query = query.where(filter=FieldFilter("processed.date", ">=", filters.start_date))
                query = query.where(filter=FieldFilter("processed.date", "<=", filters.end_date))
            if filters.category:
                query = query.where(filter=FieldFilter("processed.category", "==", filters.category))
            query = query.order_by("processed.date", direction=firestore.Query.DESCENDING)
        else:
            if filters.kind is RecordKind.DIARY:
                window = _diary_window(filters)
                if window is not None:
                    start, end = window
                    query = query.where(filter=FieldFilter("createdAt", ">=", start))
                    query = query.where(filter=FieldFilter("createdAt", "<", end))
            elif filters.category:
                query = query.where(filter=FieldFilter("processed.category", "==", filters.category))
            query = query.order_by("createdAt", direction=firestore.Query.DESCENDING)

        return query.limit(filters.effective_limit)

    async def get(self, filters: RecordFilters) -> list[dict[str, Any]]:
        query = self._build_query(filters)
        try:
            documents = [{"id": snap.id, **snap.to_dict()} async for snap in query.stream()]
        except google_exceptions.GoogleAPIError as e:
            raise PersistenceFailed(str(e)) from e

        return documents

    async def update(self, user_id: str, kind: RecordKind, record_id: str, updates: dict[str, Any]) -> None:
        ref = self._collection(user_id, kind).document(record_id)
        try:
            snapshot = await ref.get()
            if not snapshot.exists:
                raise RecordNotFound(record_id)

            data = {**updates, "updatedAt": firestore.SERVER_TIMESTAMP}
            if isinstance(updates.get("processed"), dict):
                current = snapshot.to_dict().get("processed") or {}
                data["processed"] = {**current, **updates["processed"]}
            await ref.update(data)
        except google_exceptions.GoogleAPIError as e:
            raise PersistenceFailed(str(e)) from e

    async def delete(self, user_id: str, kind: RecordKind, record_id: str) -> None:
        try:
            await self._collection(user_id, kind).document(record_id).delete()
        except google_exceptions.GoogleAPIError as e:
            raise PersistenceFailed(str(e)) from e

    async def analytics_summary(self, user_id: str, period: str = "7d") -> dict[str, Any]:
        since = period_start(period)
        counts = {}
        try:
            for kind in RecordKind:
                query = self._collection(user_id, kind).where(filter=FieldFilter("createdAt", ">=", since))
                counts[kind.collection] = len([snap async for snap in query.stream()])
        except google_exceptions.GoogleAPIError as e:
            raise PersistenceFailed(str(e)) from e

        return {"period": period, "since": since.isoformat(), "counts": counts}

    async def health_check(self) -> bool:
        try:
            await self.db.collection("meta").document("__healthcheck__").get()
            return True
        except google_exceptions.GoogleAPIError as e:
            logger.error(f"Firestore health check failed: {e}")
            return False


def _diary_window(filters: RecordFilters) -> Optional[tuple[datetime, datetime]]:
    """UTC [start, end) range of createdAt covered by a diary date or month filter."""
    if filters.date:
        start = datetime.strptime(filters.date, "%Y-%m-%d").replace(tzinfo=timezone.utc)
        return start, start + timedelta(days=1)
    if filters.month:
        start = datetime.strptime(filters.month, "%Y-%m").replace(tzinfo=timezone.utc)
        if start.month == 12:
            end = start.replace(year=start.year + 1, month=1)
        else:
            end = start.replace(month=start.month + 1)
        return start, end
    return None
