"""Domain entities."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


class EntityType(str, Enum):
    """Entity types a sync task can target."""

    ARTIST = "artist"
    SHOW = "show"
    VENUE = "venue"
    SETLIST = "setlist"


class SyncStatus(str, Enum):
    """Lifecycle of a sync task: pending -> in_progress -> completed | failed."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStatus(str, Enum):
    """Outcome of a batch job written to job_logs."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


# Hey future me - these are DOMAIN entities, not DB rows. Every optional field
# defaults to None (never "" or []) because the reconciliation upsert is a
# coalesce merge: None means "I don't know", anything else overwrites.
@dataclass
class Artist:
    """Artist known from at least one external catalog."""

    id: str
    name: str
    spotify_id: str | None = None
    ticketmaster_id: str | None = None
    setlistfm_mbid: str | None = None
    image_url: str | None = None
    url: str | None = None
    genres: list[str] | None = None
    popularity: int | None = None
    followers: int | None = None
    upcoming_shows: int | None = None
    last_synced_at: datetime | None = None
    tracks_synced_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Venue:
    """Concert venue."""

    id: str
    name: str
    ticketmaster_id: str | None = None
    setlistfm_id: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    address: str | None = None
    postal_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    url: str | None = None
    image_url: str | None = None
    last_synced_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Show:
    """A concert of one artist at one venue."""

    id: str
    name: str
    date: datetime | None = None
    artist_id: str | None = None
    venue_id: str | None = None
    ticketmaster_id: str | None = None
    setlistfm_id: str | None = None
    ticket_url: str | None = None
    image_url: str | None = None
    status: str | None = None
    popularity: int | None = None
    last_synced_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_complete(self) -> bool:
        """Provisional shows (missing artist or venue) are not display-ready."""
        return bool(self.artist_id and self.venue_id)


@dataclass
class Setlist:
    """The one setlist of a show."""

    id: str
    show_id: str
    artist_id: str | None = None
    setlistfm_id: str | None = None
    event_date: datetime | None = None
    tour_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class SetlistSong:
    """A song at a position in a setlist, with its denormalized vote counter."""

    id: str
    setlist_id: str
    name: str
    position: int
    track_id: str | None = None
    votes: int = 0
    is_encore: bool = False
    created_at: datetime | None = None


@dataclass
class Track:
    """Catalog track of an artist (Spotify)."""

    id: str
    artist_id: str
    name: str
    spotify_id: str | None = None
    album_name: str | None = None
    album_image_url: str | None = None
    duration_ms: int | None = None
    popularity: int | None = None
    preview_url: str | None = None


@dataclass
class Vote:
    """One vote of one user (or anonymous fingerprint) for one setlist song."""

    id: str
    setlist_song_id: str
    user_id: str
    created_at: datetime | None = None


@dataclass
class SyncTask:
    """Record of one orchestrated sync, created before any work starts."""

    id: str
    entity_type: EntityType
    entity_id: str
    status: SyncStatus = SyncStatus.PENDING
    options: dict[str, Any] = field(default_factory=dict)
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass
class SyncState:
    """Per-entity sync bookkeeping used to throttle repeated vendor calls."""

    entity_type: str
    entity_id: str
    last_synced_at: datetime | None = None
    next_sync_at: datetime | None = None
    status: SyncStatus = SyncStatus.PENDING
    error: str | None = None
    sync_version: int = 0
    started_at: datetime | None = None

    def is_due(
        self, now: datetime, stuck_after: timedelta = timedelta(hours=1)
    ) -> bool:
        """True when no next-eligible time is recorded or it has passed.

        A run still marked in progress after ``stuck_after`` never reported back
        (crash, cancellation) and no longer blocks new runs.
        """
        if self.status == SyncStatus.IN_PROGRESS:
            if self.started_at is None:
                return False
            started = self.started_at
            if started.tzinfo is None:
                started = started.replace(tzinfo=UTC)
            return started + stuck_after <= now
        if self.next_sync_at is None:
            return True
        next_at = self.next_sync_at
        if next_at.tzinfo is None:
            next_at = next_at.replace(tzinfo=UTC)
        return next_at <= now


@dataclass
class BatchResult:
    """Counts reported by an orchestration loop. Partial success is normal."""

    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def job_status(self) -> JobStatus:
        if not self.errors:
            return JobStatus.SUCCESS
        if self.failed >= self.processed:
            return JobStatus.FAILURE
        return JobStatus.PARTIAL

    def record_error(self, item: str, error: Exception | str) -> None:
        self.errors.append(f"{item}: {error}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": list(self.errors),
        }


@dataclass
class VenueSyncResult:
    """Outcome of syncing every upcoming show of a venue."""

    saved: int = 0
    failed: int = 0
    message: str = ""


@dataclass
class VoteResult:
    """Outcome of a vote submission."""

    success: bool
    votes: int
    already_voted: bool = False
    limit_reached: bool = False
    message: str | None = None


@dataclass
class SetlistSongView:
    """Setlist song as seen by one voter."""

    song: SetlistSong
    has_voted: bool = False


__all__ = [
    "Artist",
    "BatchResult",
    "EntityType",
    "JobStatus",
    "Setlist",
    "SetlistSong",
    "SetlistSongView",
    "Show",
    "SyncState",
    "SyncStatus",
    "SyncTask",
    "Track",
    "Venue",
    "VenueSyncResult",
    "Vote",
    "VoteResult",
    "utc_now",
]
