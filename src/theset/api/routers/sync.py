# Hey future me - these are the server-side sync entry points. unified-sync is the
# generic one (cron jobs and admin tools call it with a bearer token); save-artist,
# save-show and sync/venue are the ones the web frontend hits directly.
#
# unified-sync answers 500 when the TASK failed (the failure is on the sync_tasks
# row too). Everything else maps through exception_handlers.
"""Sync endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse

from theset.api.dependencies import (
    get_background_runner,
    get_orchestrator,
    get_reconciler,
    require_sync_token,
)
from theset.api.schemas import (
    SaveArtistResponse,
    SaveShowResponse,
    SyncTaskSchema,
    UnifiedSyncRequest,
    UnifiedSyncResponse,
    VenueSyncRequest,
    VenueSyncResponse,
)
from theset.application.services import EntityReconciler, SyncOrchestrator
from theset.application.workers import BackgroundTaskRunner
from theset.domain.entities import EntityType, SyncStatus
from theset.domain.exceptions import ValidationException

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/unified-sync",
    response_model=UnifiedSyncResponse,
    dependencies=[Depends(require_sync_token)],
)
async def unified_sync(
    body: UnifiedSyncRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> Any:
    """Run one artist/show/venue/setlist sync and report the task outcome."""
    task = await orchestrator.run_task(body.entity_type, body.entity_id, body.options)
    if task.status is SyncStatus.FAILED:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": task.error or "Sync failed",
                "taskId": task.id,
            },
        )
    return UnifiedSyncResponse(success=True, result=SyncTaskSchema.from_task(task))


@router.post("/save-artist", response_model=SaveArtistResponse)
async def save_artist(
    payload: dict[str, Any] = Body(...),
    reconciler: EntityReconciler = Depends(get_reconciler),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    background: BackgroundTaskRunner = Depends(get_background_runner),
) -> SaveArtistResponse:
    """Upsert an artist, then import its shows and setlists in the background."""
    if not payload.get("id") or not payload.get("name"):
        raise ValidationException("Invalid artist data provided")

    saved = await reconciler.save_artist(payload)

    artist_id = saved.id
    task = background.submit(
        f"import:{artist_id}",
        lambda: orchestrator.run_task(EntityType.ARTIST, artist_id),
    )
    scheduled = task is not None

    logger.info("Saved artist %s (import scheduled: %s)", artist_id, scheduled)
    return SaveArtistResponse(
        success=True, artist_id=artist_id, import_scheduled=scheduled
    )


@router.post("/save-show", response_model=SaveShowResponse)
async def save_show(
    payload: dict[str, Any] = Body(...),
    reconciler: EntityReconciler = Depends(get_reconciler),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    background: BackgroundTaskRunner = Depends(get_background_runner),
) -> SaveShowResponse:
    """Idempotently upsert a show (with its artist/venue), then sync the venue in the background."""
    if not payload.get("id"):
        raise ValidationException("Missing required show ID")

    show_record = {k: v for k, v in payload.items() if k not in ("artist", "venue")}
    artist = payload.get("artist") if isinstance(payload.get("artist"), dict) else None
    venue = payload.get("venue") if isinstance(payload.get("venue"), dict) else None

    saved = await reconciler.save_show(show_record, artist=artist, venue=venue)

    scheduled = False
    if saved.venue_id:
        venue_id = saved.venue_id
        task = background.submit(
            f"venue:{venue_id}", lambda: orchestrator.sync_venue(venue_id)
        )
        scheduled = task is not None

    logger.info("Saved show %s (venue sync scheduled: %s)", saved.id, scheduled)
    return SaveShowResponse(
        success=True,
        show_id=saved.id,
        complete=saved.is_complete,
        venue_sync_scheduled=scheduled,
    )


@router.post("/sync/venue", response_model=VenueSyncResponse)
async def sync_venue(
    body: VenueSyncRequest,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> VenueSyncResponse:
    """Fetch and reconcile all upcoming shows of a venue."""
    outcome = await orchestrator.sync_venue(body.venue_id, body.ticketmaster_venue_id)
    return VenueSyncResponse(
        success=True,
        saved_shows=outcome.saved,
        failed_shows=outcome.failed,
        message=outcome.message,
    )
