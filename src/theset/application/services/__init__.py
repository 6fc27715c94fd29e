"""Application services."""

from theset.application.services.optimistic_votes import (
    AnonymousVoteAllowance,
    OptimisticVoteTracker,
    SongVoteState,
)
from theset.application.services.reconciliation_service import EntityReconciler
from theset.application.services.setlist_service import SetlistService
from theset.application.services.sync_orchestrator import (
    ArtistSetlists,
    CachedShowSetlist,
    SyncOrchestrator,
)
from theset.application.services.track_catalog_service import TrackCatalogService
from theset.application.services.vote_events import VoteEvent, VoteEventBroker
from theset.application.services.vote_service import Voter, VoteService

__all__ = [
    "AnonymousVoteAllowance",
    "ArtistSetlists",
    "CachedShowSetlist",
    "EntityReconciler",
    "OptimisticVoteTracker",
    "SetlistService",
    "SongVoteState",
    "SyncOrchestrator",
    "TrackCatalogService",
    "VoteEvent",
    "VoteEventBroker",
    "VoteService",
    "Voter",
]
