"""Setlist read endpoints, catalog seeding and the realtime vote stream."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from theset.api.dependencies import (
    get_optional_user_id,
    get_orchestrator,
    get_setlist_service,
    get_vote_broker,
    get_vote_service,
)
from theset.api.schemas import (
    AddTrackRequest,
    ArtistSetlistsResponse,
    SetlistSchema,
    SetlistSongSchema,
    SetlistSongsResponse,
    ShowSchema,
    ShowSetlistSchema,
)
from theset.application.services import (
    SetlistService,
    SyncOrchestrator,
    VoteEventBroker,
    VoteService,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Heartbeat so proxies don't cut idle streams and we notice disconnects
STREAM_POLL_SECONDS = 15.0


@router.get("/setlist/{artist_id}", response_model=ArtistSetlistsResponse)
async def get_artist_setlists(
    artist_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> ArtistSetlistsResponse:
    """Cached shows and setlists. Sparse artists get a background import."""
    cached = await orchestrator.get_artist_setlists(artist_id)
    return ArtistSetlistsResponse(
        data=[
            ShowSetlistSchema(
                show=ShowSchema.model_validate(item.show),
                setlist=SetlistSchema.model_validate(item.setlist) if item.setlist else None,
                songs=[SetlistSongSchema.model_validate(song) for song in item.songs],
            )
            for item in cached.data
        ],
        from_cache=cached.from_cache,
        refresh_scheduled=cached.refresh_scheduled,
    )


@router.get("/setlists/{setlist_id}/songs", response_model=SetlistSongsResponse)
async def get_setlist_songs(
    setlist_id: str,
    votes: VoteService = Depends(get_vote_service),
    user_id: str | None = Depends(get_optional_user_id),
) -> SetlistSongsResponse:
    views = await votes.get_setlist_votes(setlist_id, user_id)
    return SetlistSongsResponse(
        setlist_id=setlist_id,
        songs=[
            SetlistSongSchema.model_validate(view.song).model_copy(
                update={"has_voted": view.has_voted}
            )
            for view in views
        ],
    )


@router.post("/shows/{show_id}/setlist", response_model=SetlistSongsResponse)
async def seed_show_setlist(
    show_id: str,
    setlists: SetlistService = Depends(get_setlist_service),
) -> SetlistSongsResponse:
    """Get (or create and seed from the artist's catalog) the setlist of a show."""
    songs = await setlists.seed_setlist_from_catalog(show_id)
    setlist = await setlists.get_or_create_setlist(show_id)
    return SetlistSongsResponse(
        setlist_id=setlist.id,
        songs=[SetlistSongSchema.model_validate(song) for song in songs],
    )


@router.post("/setlists/{setlist_id}/tracks", response_model=SetlistSongSchema)
async def add_track(
    setlist_id: str,
    body: AddTrackRequest,
    setlists: SetlistService = Depends(get_setlist_service),
) -> SetlistSongSchema:
    song = await setlists.add_track_to_setlist(setlist_id, body.track_id)
    return SetlistSongSchema.model_validate(song)


# Yo, this is the realtime counter feed. Each event carries the ABSOLUTE count for
# one song, so a client that missed events is correct again after the next one.
@router.get("/setlists/{setlist_id}/votes/stream")
async def stream_setlist_votes(
    setlist_id: str,
    request: Request,
    broker: VoteEventBroker = Depends(get_vote_broker),
) -> EventSourceResponse:
    async def event_generator() -> AsyncIterator[dict[str, Any]]:
        async with broker.subscribe(setlist_id) as queue:
            while not await request.is_disconnected():
                try:
                    event = await asyncio.wait_for(queue.get(), STREAM_POLL_SECONDS)
                except TimeoutError:
                    continue
                yield {"event": "vote", "data": json.dumps(event.to_dict())}
        logger.debug("Vote stream for setlist %s closed", setlist_id)

    return EventSourceResponse(event_generator())
