"""FastAPI REST API for Voice Scheduler."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, File, Form, Header, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..auth import UserIdentity
from ..errors import AuthenticationFailed, PersistenceFailed, RecordNotFound, UnknownRecordKind
from ..models import RecordFilters, RecordKind

logger = logging.getLogger(__name__)

# Will be set by main.py
_scheduler_instance = None


class ProcessResponse(BaseModel):
    """Response model for a processed voice input."""
    success: bool
    transcription: str
    data: dict
    id: str


class WriteResponse(BaseModel):
    """Response model for record writes."""
    success: bool
    id: str
    data: Optional[dict] = None


class HealthResponse(BaseModel):
    """Response model for service health."""
    status: str
    timestamp: datetime
    services: dict[str, str]


def set_scheduler_instance(instance) -> None:
    """Set the VoiceScheduler instance for API access."""
    global _scheduler_instance
    _scheduler_instance = instance


def _require_scheduler():
    if _scheduler_instance is None:
        raise HTTPException(status_code=503, detail="Voice Scheduler not initialized")
    return _scheduler_instance


def get_current_user(authorization: Optional[str] = Header(None)) -> UserIdentity:
    """Resolve the bearer token to a verified user."""
    scheduler = _require_scheduler()

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="No token provided")

    token = authorization[len("Bearer "):].strip()
    try:
        return scheduler.identity.verify(token)
    except AuthenticationFailed:
        raise HTTPException(status_code=401, detail="Invalid token")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Voice Scheduler API",
        description="Voice-driven schedules, diary entries and memos",
        version=__version__,
    )

    origins = ["*"]
    if _scheduler_instance is not None:
        origins = _scheduler_instance.config.api.cors_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ==================== Service Routes ====================

    @app.get("/")
    async def index():
        """Service banner."""
        return {
            "message": "Voice Scheduler API",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "services": ["extraction", "store", "transcription", "api"],
        }

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Check reachability of every backing service."""
        scheduler = _require_scheduler()
        pipeline = scheduler.pipeline

        checks = await asyncio.gather(
            scheduler.store.health_check(),
            pipeline.extractor.health_check(),
            pipeline.transcriber.health_check(),
        )
        names = ["store", "extraction", "transcription"]
        services = {
            name: "healthy" if ok else "unhealthy"
            for name, ok in zip(names, checks)
        }

        return HealthResponse(
            status="healthy" if all(checks) else "degraded",
            timestamp=datetime.now(timezone.utc),
            services=services,
        )

    # ==================== Voice Routes ====================

    @app.post("/voice/process", response_model=ProcessResponse)
    async def process_voice(
        audio: Optional[UploadFile] = File(None),
        type: str = Form("schedule"),
        user: UserIdentity = Depends(get_current_user),
    ):
        """Transcribe, structure and store an uploaded recording."""
        scheduler = _require_scheduler()

        if audio is None:
            raise HTTPException(status_code=400, detail="No audio file provided")

        content_type = audio.content_type or ""
        if not content_type.startswith("audio/"):
            raise HTTPException(status_code=400, detail="Only audio files are allowed")

        try:
            kind = RecordKind.parse(type)
        except UnknownRecordKind as e:
            raise HTTPException(status_code=400, detail=str(e))

        limit = scheduler.config.api.max_upload_bytes
        if audio.size is not None and audio.size > limit:
            raise HTTPException(status_code=400, detail="File too large")

        # Never buffer more than one byte past the limit
        payload = await audio.read(limit + 1)
        if not payload:
            raise HTTPException(status_code=400, detail="No audio file provided")
        if len(payload) > limit:
            raise HTTPException(status_code=400, detail="File too large")

        result = await scheduler.pipeline.run(payload, kind, user.uid, media_type=content_type)

        if not result.ok:
            logger.error(f"Voice processing failed at {result.failure.stage.value}: {result.failure.cause}")
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Failed to process voice",
                    "stage": result.failure.stage.value,
                    "details": result.failure.cause,
                },
            )

        return ProcessResponse(
            success=True,
            transcription=result.transcript,
            data=result.record.to_dict(),
            id=result.record_id,
        )

    # ==================== Record Routes ====================

    async def _list(filters: RecordFilters, what: str) -> list[dict[str, Any]]:
        try:
            return await _require_scheduler().store.get(filters)
        except PersistenceFailed as e:
            logger.error(f"Failed to get {what}: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to get {what}")

    async def _create(user: UserIdentity, kind: RecordKind, data: dict[str, Any]) -> WriteResponse:
        try:
            record_id = await _require_scheduler().store.create(user.uid, kind, data)
        except PersistenceFailed as e:
            logger.error(f"Failed to create {kind.value}: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to create {kind.value}")
        return WriteResponse(success=True, id=record_id, data={**data, "userId": user.uid})

    @app.get("/schedules")
    async def get_schedules(
        date: Optional[str] = None,
        startDate: Optional[str] = None,
        endDate: Optional[str] = None,
        category: Optional[str] = None,
        limit: int = 50,
        user: UserIdentity = Depends(get_current_user),
    ):
        """List schedules, optionally by date, date range and category."""
        filters = RecordFilters(
            user_id=user.uid,
            kind=RecordKind.SCHEDULE,
            date=date,
            start_date=startDate,
            end_date=endDate,
            category=category,
            limit=limit,
        )
        return {"schedules": await _list(filters, "schedules")}

    @app.post("/schedules", response_model=WriteResponse)
    async def create_schedule(
        data: dict[str, Any] = Body(...),
        user: UserIdentity = Depends(get_current_user),
    ):
        """Create a schedule directly, without voice input."""
        if not data:
            raise HTTPException(status_code=400, detail="Schedule data is required")
        return await _create(user, RecordKind.SCHEDULE, data)

    @app.put("/schedules/{schedule_id}")
    async def update_schedule(
        schedule_id: str,
        updates: dict[str, Any] = Body(...),
        user: UserIdentity = Depends(get_current_user),
    ):
        """Update a schedule, merging the processed fields."""
        if not updates:
            raise HTTPException(status_code=400, detail="Updates are required")
        try:
            await _require_scheduler().store.update(user.uid, RecordKind.SCHEDULE, schedule_id, updates)
        except RecordNotFound:
            raise HTTPException(status_code=404, detail="Schedule not found")
        except PersistenceFailed as e:
            logger.error(f"Failed to update schedule {schedule_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to update schedule")
        return {"success": True, "id": schedule_id, "updates": updates}

    @app.delete("/schedules/{schedule_id}")
    async def delete_schedule(
        schedule_id: str,
        user: UserIdentity = Depends(get_current_user),
    ):
        """Delete a schedule."""
        try:
            await _require_scheduler().store.delete(user.uid, RecordKind.SCHEDULE, schedule_id)
        except RecordNotFound:
            raise HTTPException(status_code=404, detail="Schedule not found")
        except PersistenceFailed as e:
            logger.error(f"Failed to delete schedule {schedule_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to delete schedule")
        return {"success": True, "id": schedule_id}

    @app.get("/diary")
    async def get_diary_entries(
        date: Optional[str] = None,
        month: Optional[str] = None,
        limit: int = 20,
        user: UserIdentity = Depends(get_current_user),
    ):
        """List diary entries for a day or a month."""
        filters = RecordFilters(
            user_id=user.uid,
            kind=RecordKind.DIARY,
            date=date,
            month=month,
            limit=limit,
        )
        return {"entries": await _list(filters, "diary entries")}

    @app.post("/diary", response_model=WriteResponse)
    async def create_diary_entry(
        data: dict[str, Any] = Body(...),
        user: UserIdentity = Depends(get_current_user),
    ):
        """Create a diary entry directly."""
        if not data:
            raise HTTPException(status_code=400, detail="Diary data is required")
        return await _create(user, RecordKind.DIARY, data)

    @app.get("/memos")
    async def get_memos(
        category: Optional[str] = None,
        limit: int = 50,
        user: UserIdentity = Depends(get_current_user),
    ):
        """List memos, optionally by category."""
        filters = RecordFilters(
            user_id=user.uid,
            kind=RecordKind.MEMO,
            category=category,
            limit=limit,
        )
        return {"memos": await _list(filters, "memos")}

    @app.get("/analytics/summary")
    async def get_analytics_summary(
        period: str = "7d",
        user: UserIdentity = Depends(get_current_user),
    ):
        """Count records created in the last 7 days, 30 days or overall."""
        try:
            return await _require_scheduler().store.analytics_summary(user.uid, period)
        except PersistenceFailed as e:
            logger.error(f"Failed to get analytics: {e}")
            raise HTTPException(status_code=500, detail="Failed to get analytics")

    return app
