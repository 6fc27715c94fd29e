"""Pydantic request/response models."""

from theset.api.schemas.setlists import (
    AddTrackRequest,
    ArtistSetlistsResponse,
    SetlistSchema,
    SetlistSongSchema,
    SetlistSongsResponse,
    ShowSchema,
    ShowSetlistSchema,
    VoteRequest,
    VoteResponse,
)
from theset.api.schemas.sync import (
    SaveArtistResponse,
    SaveShowResponse,
    SyncTaskSchema,
    UnifiedSyncRequest,
    UnifiedSyncResponse,
    VenueSyncRequest,
    VenueSyncResponse,
)

__all__ = [
    "AddTrackRequest",
    "ArtistSetlistsResponse",
    "SaveArtistResponse",
    "SaveShowResponse",
    "SetlistSchema",
    "SetlistSongSchema",
    "SetlistSongsResponse",
    "ShowSchema",
    "ShowSetlistSchema",
    "SyncTaskSchema",
    "UnifiedSyncRequest",
    "UnifiedSyncResponse",
    "VenueSyncRequest",
    "VenueSyncResponse",
    "VoteRequest",
    "VoteResponse",
]
