"""Artist track catalog refresh (Spotify -> tracks table)."""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from theset.domain.entities import Track, utc_now
from theset.domain.exceptions import EntityNotFoundException, ValidationException
from theset.domain.ports import ISpotifyClient
from theset.domain.value_objects import FreshnessPolicy
from theset.infrastructure.integrations.mappers import track_from_spotify
from theset.infrastructure.persistence import (
    ArtistRepository,
    Database,
    TrackRepository,
    with_db_retry,
)

logger = logging.getLogger(__name__)


class TrackCatalogService:
    """Keeps each artist's cached track list fresh (7-day window by default)."""

    def __init__(
        self,
        db: Database,
        spotify: ISpotifyClient,
        freshness: FreshnessPolicy | None = None,
        max_albums: int = 5,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._db = db
        self._spotify = spotify
        self._freshness = freshness or FreshnessPolicy()
        self._max_albums = max_albums
        self._clock = clock

    def is_catalog_fresh(self, tracks_synced_at: datetime | None) -> bool:
        return self._freshness.is_fresh("track_catalog", tracks_synced_at, self._clock())

    # Hey future me - the vendor calls happen OUTSIDE the session so we don't hold a
    # SQLite write lock while waiting on Spotify. Only the final write is retried on
    # "database is locked"; that's the part that competes with request handlers.
    async def refresh_artist_tracks(
        self, artist_id: str, spotify_id: str, force: bool = False
    ) -> int:
        """Fetch and store an artist's tracks. Returns the number stored (0 if fresh)."""
        async with self._db.session_scope() as session:
            artist = await ArtistRepository(session).get(artist_id)
        if artist is None:
            raise EntityNotFoundException("artist", artist_id)
        if not force and self.is_catalog_fresh(artist.tracks_synced_at):
            logger.debug("Track catalog for %s is fresh, skipping", artist_id)
            return 0

        tracks = await self._fetch_tracks(artist_id, spotify_id)
        stored = await self._store(artist_id, tracks)
        logger.info(
            "Stored %d tracks for artist %s",
            stored,
            artist_id,
            extra={"artist_id": artist_id, "spotify_id": spotify_id, "tracks": stored},
        )
        return stored

    async def _fetch_tracks(self, artist_id: str, spotify_id: str) -> list[Track]:
        seen_ids: set[str] = set()
        seen_names: set[str] = set()
        tracks: list[Track] = []

        def collect(item: dict[str, Any], album: dict[str, Any] | None = None) -> None:
            try:
                track = track_from_spotify(item, artist_id, album)
            except ValidationException:
                return
            key = track.name.casefold()
            if track.spotify_id in seen_ids or key in seen_names:
                return
            seen_ids.add(track.spotify_id or "")
            seen_names.add(key)
            tracks.append(track)

        for item in await self._spotify.get_artist_top_tracks(spotify_id):
            collect(item)

        albums = await self._spotify.get_artist_albums(spotify_id)
        for album in albums[: self._max_albums]:
            album_id = album.get("id")
            if not album_id:
                continue
            for item in await self._spotify.get_album_tracks(album_id):
                collect(item, album)
        return tracks

    @with_db_retry(max_attempts=3)
    async def _store(self, artist_id: str, tracks: list[Track]) -> int:
        async with self._db.session_scope() as session:
            written = await TrackRepository(session).upsert_many(tracks)
            await ArtistRepository(session).mark_tracks_synced(artist_id, self._clock())
        return written

    async def list_artist_tracks(self, artist_id: str, limit: int = 50) -> list[Track]:
        async with self._db.session_scope() as session:
            return await TrackRepository(session).list_for_artist(artist_id, limit)
