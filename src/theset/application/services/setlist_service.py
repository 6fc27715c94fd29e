"""Setlist import, creation and catalog seeding."""

import logging
import uuid
from typing import Any

from theset.domain.entities import Artist, Setlist, SetlistSong, Show
from theset.domain.exceptions import BusinessRuleViolation, EntityNotFoundException
from theset.infrastructure.integrations.mappers import setlist_from_setlistfm
from theset.infrastructure.persistence import (
    Database,
    SetlistRepository,
    SetlistSongRepository,
    ShowRepository,
    TrackRepository,
)

from .reconciliation_service import EntityReconciler

logger = logging.getLogger(__name__)


class SetlistService:
    """Keeps setlists (one per show) and their ordered songs in the store."""

    def __init__(self, db: Database, reconciler: EntityReconciler) -> None:
        self._db = db
        self._reconciler = reconciler

    # Hey future me - this is the per-setlist step of an artist import. It RAISES on
    # bad data (malformed venue, missing date); the orchestrator catches per item and
    # counts it, so one broken setlist never aborts the batch.
    #
    # Keying: the setlist row is matched by its Setlist.fm id first, then by show.
    # The show is matched by (artist, venue, same day) so a Ticketmaster show we
    # already know about picks up the played setlist instead of getting a twin.
    async def process_setlist_data(
        self, artist: Artist, raw: dict[str, Any]
    ) -> tuple[Setlist, bool]:
        """Store one Setlist.fm setlist for an artist. Returns (setlist, created)."""
        parsed = setlist_from_setlistfm(raw)
        venue = await self._reconciler.save_venue(parsed.venue)

        async with self._db.session_scope() as session:
            shows = ShowRepository(session)
            show = await shows.find_by_artist_venue_date(
                artist.id, venue.id, parsed.event_date
            )
            if show is None:
                show = await shows.get_by_external_id("setlistfm_id", parsed.setlistfm_id)
            if show is None:
                show = await shows.upsert(
                    Show(
                        id=f"sfm-{parsed.setlistfm_id}",
                        name=f"{artist.name} at {venue.name}",
                        date=parsed.event_date,
                        artist_id=artist.id,
                        venue_id=venue.id,
                        setlistfm_id=parsed.setlistfm_id,
                        status="past",
                    )
                )

            setlists = SetlistRepository(session)
            setlist, created = await setlists.upsert(
                Setlist(
                    id=str(uuid.uuid4()),
                    show_id=show.id,
                    artist_id=artist.id,
                    setlistfm_id=parsed.setlistfm_id,
                    event_date=parsed.event_date,
                    tour_name=parsed.tour_name,
                )
            )
            songs = [
                SetlistSong(
                    id=str(uuid.uuid4()),
                    setlist_id=setlist.id,
                    name=song.name,
                    position=song.position,
                    is_encore=song.is_encore,
                )
                for song in parsed.songs
            ]
            await SetlistSongRepository(session).replace_songs(setlist.id, songs)

        logger.debug(
            "Stored setlist %s (%d songs) for show %s",
            parsed.setlistfm_id,
            len(songs),
            show.id,
            extra={"artist_id": artist.id, "setlistfm_id": parsed.setlistfm_id},
        )
        return setlist, created

    async def get_or_create_setlist(self, show_id: str) -> Setlist:
        """The show's setlist, created empty on first request."""
        async with self._db.session_scope() as session:
            show = await ShowRepository(session).get(show_id)
            if show is None:
                raise EntityNotFoundException("show", show_id)
            setlist, created = await SetlistRepository(session).get_or_create_for_show(
                show_id, show.artist_id
            )
        if created:
            logger.info("Created setlist %s for show %s", setlist.id, show_id)
        return setlist

    async def get_setlist(self, setlist_id: str) -> tuple[Setlist, list[SetlistSong]]:
        async with self._db.session_scope() as session:
            setlist = await SetlistRepository(session).get(setlist_id)
            if setlist is None:
                raise EntityNotFoundException("setlist", setlist_id)
            songs = await SetlistSongRepository(session).list_for_setlist(setlist_id)
        return setlist, songs

    async def seed_setlist_from_catalog(
        self, show_id: str, song_count: int = 5
    ) -> list[SetlistSong]:
        """Give an upcoming show something to vote on: the artist's top catalog tracks.

        A setlist that already has songs is returned as-is.
        """
        setlist = await self.get_or_create_setlist(show_id)
        if not setlist.artist_id:
            raise BusinessRuleViolation(
                f"Show {show_id} has no artist, cannot seed its setlist"
            )

        async with self._db.session_scope() as session:
            songs_repo = SetlistSongRepository(session)
            existing = await songs_repo.list_for_setlist(setlist.id)
            if existing:
                return existing

            tracks = await TrackRepository(session).list_for_artist(
                setlist.artist_id, limit=song_count
            )
            seeded = [
                SetlistSong(
                    id=str(uuid.uuid4()),
                    setlist_id=setlist.id,
                    name=track.name,
                    position=position,
                    track_id=track.id,
                )
                for position, track in enumerate(tracks)
            ]
            stored = await songs_repo.replace_songs(setlist.id, seeded)

        logger.info(
            "Seeded setlist %s with %d catalog tracks",
            setlist.id,
            len(stored),
            extra={"show_id": show_id, "artist_id": setlist.artist_id},
        )
        return stored

    async def add_track_to_setlist(self, setlist_id: str, track_id: str) -> SetlistSong:
        """Append a catalog track, or return the song if it's already listed."""
        async with self._db.session_scope() as session:
            setlist = await SetlistRepository(session).get(setlist_id)
            if setlist is None:
                raise EntityNotFoundException("setlist", setlist_id)
            track = await TrackRepository(session).get(track_id)
            if track is None:
                raise EntityNotFoundException("track", track_id)

            songs = SetlistSongRepository(session)
            existing = await songs.find_by_track(setlist_id, track_id)
            if existing is not None:
                return existing
            return await songs.add(
                SetlistSong(
                    id=str(uuid.uuid4()),
                    setlist_id=setlist_id,
                    name=track.name,
                    position=await songs.next_position(setlist_id),
                    track_id=track.id,
                )
            )
