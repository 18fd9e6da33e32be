"""File-backed record store keeping one JSON document per record."""

import asyncio
import json
import logging
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import StorageConfig
from ..errors import PersistenceFailed, RecordNotFound
from ..models import RecordFilters, RecordKind, StructuredRecord
from .base import RecordStore, period_start

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_\-]+$")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _processed(document: dict[str, Any]) -> dict[str, Any]:
    """The document's processed fields; empty when missing or not an object."""
    processed = document.get("processed")
    return processed if isinstance(processed, dict) else {}


class LocalRecordStore(RecordStore):
    """Stores records under ``<data_dir>/users/<uid>/<collection>/<id>.json``."""

    def __init__(self, config: StorageConfig):
        self.config = config
        self.data_dir = Path(config.data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _collection_dir(self, user_id: str, kind: RecordKind) -> Path:
        if not _SAFE_ID.match(user_id):
            raise PersistenceFailed(f"invalid user id: {user_id!r}")
        return self.data_dir / "users" / user_id / kind.collection

    def _document_path(self, user_id: str, kind: RecordKind, record_id: str) -> Path:
        if not _SAFE_ID.match(record_id):
            raise RecordNotFound(record_id)
        return self._collection_dir(user_id, kind) / f"{record_id}.json"

    def _write(self, path: Path, document: dict[str, Any]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=2)
        except OSError as e:
            raise PersistenceFailed(str(e)) from e

    def _read(self, path: Path) -> dict[str, Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceFailed(f"could not read {path.name}: {e}") from e

    def _add(self, user_id: str, kind: RecordKind, data: dict[str, Any]) -> str:
        record_id = uuid.uuid4().hex
        timestamp = _now().isoformat()
        document = {
            **data,
            "userId": user_id,
            "type": kind.value,
            "createdAt": timestamp,
            "updatedAt": timestamp,
        }
        self._write(self._document_path(user_id, kind, record_id), document)
        logger.debug(f"Saved {kind.value} {record_id} for user {user_id}")
        return record_id

    def _load_all(self, user_id: str, kind: RecordKind) -> list[dict[str, Any]]:
        directory = self._collection_dir(user_id, kind)
        if not directory.exists():
            return []
        return [
            {"id": path.stem, **self._read(path)}
            for path in directory.glob("*.json")
        ]

    # File I/O runs in worker threads, never on the event loop

    async def save(self, user_id: str, record: StructuredRecord, kind: RecordKind) -> str:
        return await asyncio.to_thread(self._add, user_id, kind, record.to_dict())

    async def create(self, user_id: str, kind: RecordKind, data: dict[str, Any]) -> str:
        return await asyncio.to_thread(self._add, user_id, kind, data)

    async def get(self, filters: RecordFilters) -> list[dict[str, Any]]:
        documents = await asyncio.to_thread(self._load_all, filters.user_id, filters.kind)

        if filters.kind is RecordKind.SCHEDULE:
            documents = self._filter_schedules(documents, filters)
            documents.sort(key=lambda d: _processed(d).get("date") or "", reverse=True)
        else:
            if filters.kind is RecordKind.DIARY:
                documents = self._filter_diary(documents, filters)
            elif filters.category:
                documents = [
                    d for d in documents
                    if _processed(d).get("category") == filters.category
                ]
            documents.sort(key=lambda d: d.get("createdAt") or "", reverse=True)

        return documents[:filters.effective_limit]

    @staticmethod
    def _filter_schedules(documents: list[dict], filters: RecordFilters) -> list[dict]:
        def schedule_date(d: dict) -> str:
            return _processed(d).get("date") or ""

        if filters.date:
            documents = [d for d in documents if schedule_date(d) == filters.date]
        elif filters.start_date and filters.end_date:
            documents = [
                d for d in documents
                if filters.start_date <= schedule_date(d) <= filters.end_date
            ]

        if filters.category:
            documents = [
                d for d in documents
                if _processed(d).get("category") == filters.category
            ]
        return documents

    @staticmethod
    def _filter_diary(documents: list[dict], filters: RecordFilters) -> list[dict]:
        # createdAt is an ISO timestamp; compare on its date/month prefix
        if filters.date:
            return [d for d in documents if (d.get("createdAt") or "")[:10] == filters.date]
        if filters.month:
            return [d for d in documents if (d.get("createdAt") or "")[:7] == filters.month]
        return documents

    async def update(self, user_id: str, kind: RecordKind, record_id: str, updates: dict[str, Any]) -> None:
        await asyncio.to_thread(self._update, user_id, kind, record_id, updates)

    def _update(self, user_id: str, kind: RecordKind, record_id: str, updates: dict[str, Any]) -> None:
        path = self._document_path(user_id, kind, record_id)
        if not path.exists():
            raise RecordNotFound(record_id)

        document = self._read(path)
        merged = {**document, **updates, "updatedAt": _now().isoformat()}
        if isinstance(updates.get("processed"), dict):
            merged["processed"] = {**_processed(document), **updates["processed"]}

        self._write(path, merged)
        logger.debug(f"Updated {kind.value} {record_id}")

    async def delete(self, user_id: str, kind: RecordKind, record_id: str) -> None:
        path = self._document_path(user_id, kind, record_id)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            raise PersistenceFailed(str(e)) from e

    async def analytics_summary(self, user_id: str, period: str = "7d") -> dict[str, Any]:
        since = period_start(period)
        cutoff = since.isoformat()

        counts = {}
        for kind in RecordKind:
            documents = await asyncio.to_thread(self._load_all, user_id, kind)
            counts[kind.collection] = sum(1 for d in documents if (d.get("createdAt") or "") >= cutoff)

        return {"period": period, "since": cutoff, "counts": counts}

    async def health_check(self) -> bool:
        try:
            await asyncio.to_thread(self._touch_marker)
            return True
        except OSError as e:
            logger.error(f"Local store health check failed: {e}")
            return False

    def _touch_marker(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        marker = self.data_dir / ".healthcheck"
        marker.write_text("ok")
        marker.unlink()
