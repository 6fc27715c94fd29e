"""API schemas for setlists, songs and votes."""

from datetime import datetime

from pydantic import Field

from .base import CamelModel


class ShowSchema(CamelModel):
    id: str
    name: str
    date: datetime | None = None
    artist_id: str | None = None
    venue_id: str | None = None
    ticket_url: str | None = None
    image_url: str | None = None
    status: str | None = None


class SetlistSongSchema(CamelModel):
    id: str
    name: str
    position: int
    votes: int = 0
    is_encore: bool = False
    track_id: str | None = None
    has_voted: bool = False


class SetlistSchema(CamelModel):
    id: str
    show_id: str
    artist_id: str | None = None
    setlistfm_id: str | None = None
    event_date: datetime | None = None
    tour_name: str | None = None


class ShowSetlistSchema(CamelModel):
    show: ShowSchema
    setlist: SetlistSchema | None = None
    songs: list[SetlistSongSchema] = Field(default_factory=list)


class ArtistSetlistsResponse(CamelModel):
    """Response of GET /api/setlist/{artist_id}."""

    data: list[ShowSetlistSchema]
    from_cache: bool
    refresh_scheduled: bool = False


class SetlistSongsResponse(CamelModel):
    setlist_id: str
    songs: list[SetlistSongSchema]


class AddTrackRequest(CamelModel):
    track_id: str = Field(..., min_length=1)


class VoteRequest(CamelModel):
    """Body of POST /api/vote."""

    setlist_song_id: str = Field(..., min_length=1)


class VoteResponse(CamelModel):
    success: bool
    already_voted: bool = False
    limit_reached: bool = False
    votes: int
    message: str | None = None
