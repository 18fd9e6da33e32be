"""Tests for the web API module."""

import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from starlette.datastructures import UploadFile as StarletteUploadFile

from voice_scheduler.auth import StaticTokenIdentityProvider
from voice_scheduler.config import ApiConfig, Config
from voice_scheduler.errors import PersistenceFailed
from voice_scheduler.models import (
    PipelineResult,
    PipelineStage,
    RecordKind,
    StructuredRecord,
)
from voice_scheduler.storage import LocalRecordStore
from voice_scheduler.web.api import create_app, set_scheduler_instance

AUTH = {"Authorization": "Bearer test-token"}


class TestWebAPI:
    """Tests for the web API."""

    @pytest.fixture
    def scheduler(self, storage_config):
        """Scheduler stand-in with a real local store and a mocked pipeline."""
        pipeline = MagicMock()
        pipeline.run = AsyncMock()
        pipeline.extractor.health_check = AsyncMock(return_value=True)
        pipeline.transcriber.health_check = AsyncMock(return_value=True)

        return SimpleNamespace(
            config=Config(api=ApiConfig(max_upload_bytes=1024), openai_api_key="sk-test"),
            identity=StaticTokenIdentityProvider({"test-token": "user-1"}),
            store=LocalRecordStore(storage_config),
            pipeline=pipeline,
        )

    @pytest.fixture
    def client(self, scheduler):
        set_scheduler_instance(scheduler)
        yield TestClient(create_app())
        set_scheduler_instance(None)

    @pytest.fixture
    def client_no_scheduler(self):
        set_scheduler_instance(None)
        return TestClient(create_app())

    @pytest.fixture
    def processed_result(self):
        record = StructuredRecord(
            kind=RecordKind.SCHEDULE,
            processed={"title": "회의", "date": "2024-05-02", "time": "15:00"},
            original_text="내일 오후 3시에 회의",
            processed_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        )
        return PipelineResult(transcript="내일 오후 3시에 회의", record=record, record_id="rec-1")

    # ==================== Service Routes ====================

    def test_index(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["message"] == "Voice Scheduler API"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["services"] == {"store": "healthy", "extraction": "healthy", "transcription": "healthy"}

    def test_health_degraded(self, client, scheduler):
        scheduler.pipeline.extractor.health_check.return_value = False

        data = client.get("/health").json()

        assert data["status"] == "degraded"
        assert data["services"]["extraction"] == "unhealthy"

    def test_no_scheduler(self, client_no_scheduler):
        response = client_no_scheduler.get("/health")
        assert response.status_code == 503

    # ==================== Authentication ====================

    def test_missing_token(self, client):
        response = client.get("/schedules")
        assert response.status_code == 401

    def test_invalid_token(self, client):
        response = client.get("/schedules", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    # ==================== Voice Routes ====================

    def test_process_voice(self, client, scheduler, processed_result):
        scheduler.pipeline.run.return_value = processed_result

        response = client.post(
            "/voice/process",
            headers=AUTH,
            files={"audio": ("note.webm", b"\x1a\x45\xdf\xa3", "audio/webm")},
            data={"type": "schedule"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["id"] == "rec-1"
        assert data["transcription"] == "내일 오후 3시에 회의"
        assert data["data"]["processed"]["title"] == "회의"

        args, kwargs = scheduler.pipeline.run.call_args
        assert args == (b"\x1a\x45\xdf\xa3", "schedule", "user-1")
        assert kwargs["media_type"] == "audio/webm"

    def test_process_voice_without_audio(self, client):
        response = client.post("/voice/process", headers=AUTH, data={"type": "memo"})
        assert response.status_code == 400

    def test_process_voice_rejects_non_audio(self, client, scheduler):
        response = client.post(
            "/voice/process",
            headers=AUTH,
            files={"audio": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == 400
        scheduler.pipeline.run.assert_not_awaited()

    def test_process_voice_too_large(self, client, scheduler):
        response = client.post(
            "/voice/process",
            headers=AUTH,
            files={"audio": ("big.webm", b"x" * 2048, "audio/webm")},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "File too large"
        scheduler.pipeline.run.assert_not_awaited()

    def test_process_voice_at_size_limit(self, client, scheduler, processed_result):
        scheduler.pipeline.run.return_value = processed_result

        response = client.post(
            "/voice/process",
            headers=AUTH,
            files={"audio": ("edge.webm", b"x" * 1024, "audio/webm")},
        )

        assert response.status_code == 200
        assert len(scheduler.pipeline.run.call_args.args[0]) == 1024

    def test_process_voice_one_byte_over_limit(self, client, scheduler):
        response = client.post(
            "/voice/process",
            headers=AUTH,
            files={"audio": ("edge.webm", b"x" * 1025, "audio/webm")},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "File too large"
        scheduler.pipeline.run.assert_not_awaited()

    def test_process_voice_reads_bounded_upload(self, client, scheduler, processed_result):
        """The handler never asks for more than one byte past the limit."""
        scheduler.pipeline.run.return_value = processed_result
        sizes = []
        original_read = StarletteUploadFile.read

        async def recording_read(self, size=-1):
            sizes.append(size)
            return await original_read(self, size)

        with patch.object(StarletteUploadFile, "read", recording_read):
            response = client.post(
                "/voice/process",
                headers=AUTH,
                files={"audio": ("note.webm", b"abc", "audio/webm")},
            )

        assert response.status_code == 200
        assert 1025 in sizes
        assert all(0 <= size <= 1025 for size in sizes)

    def test_process_voice_unknown_type(self, client, scheduler):
        response = client.post(
            "/voice/process",
            headers=AUTH,
            files={"audio": ("note.webm", b"abc", "audio/webm")},
            data={"type": "todo"},
        )

        assert response.status_code == 400
        assert "todo" in response.json()["detail"]
        scheduler.pipeline.run.assert_not_awaited()

    def test_process_voice_failure_names_stage(self, client, scheduler):
        scheduler.pipeline.run.return_value = PipelineResult.failed(
            PipelineStage.TRANSCRIPTION, "Transcription failed for chunk 1: OpenAI 500 - error"
        )

        response = client.post(
            "/voice/process",
            headers=AUTH,
            files={"audio": ("note.webm", b"abc", "audio/webm")},
        )

        assert response.status_code == 500
        data = response.json()
        assert data["stage"] == "transcription"
        assert "chunk 1" in data["details"]

    # ==================== Record Routes ====================

    def test_schedule_crud(self, client):
        created = client.post(
            "/schedules",
            headers=AUTH,
            json={"processed": {"title": "치과", "date": "2024-05-03", "category": "개인"}},
        )
        assert created.status_code == 200
        schedule_id = created.json()["id"]

        listed = client.get("/schedules?date=2024-05-03", headers=AUTH).json()["schedules"]
        assert [s["id"] for s in listed] == [schedule_id]

        updated = client.put(
            f"/schedules/{schedule_id}",
            headers=AUTH,
            json={"processed": {"time": "11:00"}},
        )
        assert updated.status_code == 200

        [schedule] = client.get("/schedules", headers=AUTH).json()["schedules"]
        assert schedule["processed"]["time"] == "11:00"
        assert schedule["processed"]["title"] == "치과"

        deleted = client.delete(f"/schedules/{schedule_id}", headers=AUTH)
        assert deleted.status_code == 200
        assert client.get("/schedules", headers=AUTH).json()["schedules"] == []

    def test_update_missing_schedule(self, client):
        response = client.put("/schedules/missing", headers=AUTH, json={"completed": True})
        assert response.status_code == 404

    def test_create_schedule_requires_data(self, client):
        response = client.post("/schedules", headers=AUTH, json={})
        assert response.status_code == 400

    def test_diary(self, client):
        created = client.post("/diary", headers=AUTH, json={"processed": {"title": "산책", "mood": "기쁨"}})
        assert created.status_code == 200

        month = datetime.now(timezone.utc).strftime("%Y-%m")
        entries = client.get(f"/diary?month={month}", headers=AUTH).json()["entries"]
        assert len(entries) == 1
        assert entries[0]["processed"]["mood"] == "기쁨"

    def test_memos(self, client, scheduler):
        asyncio.run(scheduler.store.create("user-1", RecordKind.MEMO, {"processed": {"category": "쇼핑"}}))

        memos = client.get("/memos?category=쇼핑", headers=AUTH).json()["memos"]

        assert len(memos) == 1

    def test_store_failure(self, client, scheduler):
        scheduler.store = MagicMock()
        scheduler.store.get = AsyncMock(side_effect=PersistenceFailed("unavailable"))

        response = client.get("/memos", headers=AUTH)

        assert response.status_code == 500

    def test_analytics_summary(self, client):
        client.post("/schedules", headers=AUTH, json={"processed": {"title": "a"}})

        data = client.get("/analytics/summary?period=30d", headers=AUTH).json()

        assert data["period"] == "30d"
        assert data["counts"]["schedules"] == 1
