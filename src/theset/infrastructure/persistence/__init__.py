"""Infrastructure persistence layer."""

from .database import Database
from .models import (
    ArtistModel,
    Base,
    ErrorLogModel,
    JobLogModel,
    SetlistModel,
    SetlistSongModel,
    ShowModel,
    SyncStateModel,
    SyncTaskModel,
    TrackModel,
    VenueModel,
    VoteModel,
)
from .repositories import (
    ArtistRepository,
    ErrorLogRepository,
    JobLogRepository,
    SetlistRepository,
    SetlistSongRepository,
    ShowRepository,
    SyncStateRepository,
    SyncTaskRepository,
    TrackRepository,
    VenueRepository,
    VoteRepository,
    coalesce_upsert,
)
from .retry import is_lock_error, is_permission_error, with_db_retry

__all__ = [
    "ArtistModel",
    "ArtistRepository",
    "Base",
    "Database",
    "ErrorLogModel",
    "ErrorLogRepository",
    "JobLogModel",
    "JobLogRepository",
    "SetlistModel",
    "SetlistRepository",
    "SetlistSongModel",
    "SetlistSongRepository",
    "ShowModel",
    "ShowRepository",
    "SyncStateModel",
    "SyncStateRepository",
    "SyncTaskModel",
    "SyncTaskRepository",
    "TrackModel",
    "TrackRepository",
    "VenueModel",
    "VenueRepository",
    "VoteModel",
    "VoteRepository",
    "coalesce_upsert",
    "is_lock_error",
    "is_permission_error",
    "with_db_retry",
]
