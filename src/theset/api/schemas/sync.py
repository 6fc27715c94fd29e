"""API schemas for sync endpoints."""

from datetime import datetime
from typing import Any

from pydantic import Field

from theset.domain.entities import SyncTask

from .base import CamelModel


class UnifiedSyncRequest(CamelModel):
    """Body of POST /api/unified-sync."""

    entity_type: str = Field(..., description="artist, show, venue or setlist")
    entity_id: str = Field(..., min_length=1, description="Id of the entity to sync")
    options: dict[str, Any] = Field(
        default_factory=dict, description="Sync options, e.g. {'force': true}"
    )


class SyncTaskSchema(CamelModel):
    task_id: str
    entity_type: str
    entity_id: str
    status: str
    result: dict[str, Any] | None = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_task(cls, task: SyncTask) -> "SyncTaskSchema":
        return cls(
            task_id=task.id,
            entity_type=task.entity_type.value,
            entity_id=task.entity_id,
            status=task.status.value,
            result=task.result,
            error=task.error,
            started_at=task.started_at,
            completed_at=task.completed_at,
        )


class UnifiedSyncResponse(CamelModel):
    success: bool
    result: SyncTaskSchema


class VenueSyncRequest(CamelModel):
    """Body of POST /api/sync/venue."""

    venue_id: str = Field(..., min_length=1)
    ticketmaster_venue_id: str | None = None


class VenueSyncResponse(CamelModel):
    success: bool
    saved_shows: int
    failed_shows: int
    message: str


class SaveShowResponse(CamelModel):
    success: bool
    show_id: str
    complete: bool = False
    venue_sync_scheduled: bool = False


class SaveArtistResponse(CamelModel):
    success: bool
    artist_id: str
    import_scheduled: bool = False
