"""Tests for the Spotify track catalog refresh."""

from datetime import UTC, datetime, timedelta

import pytest

from theset.application.services import TrackCatalogService
from theset.domain.entities import Artist
from theset.domain.exceptions import EntityNotFoundException
from theset.infrastructure.persistence import ArtistRepository, Database


@pytest.fixture
async def artist(db: Database) -> Artist:
    async with db.session_scope() as session:
        return await ArtistRepository(session).upsert(
            Artist(id="a1", name="The Band", spotify_id="sp1")
        )


class TestRefreshArtistTracks:
    async def test_top_tracks_and_album_tracks_deduped_by_name(
        self, db: Database, spotify, payloads, artist: Artist
    ) -> None:
        spotify.top_tracks["sp1"] = [
            payloads.spotify_track("t1", "Hit Single", popularity=90),
            payloads.spotify_track("t2", "Ballad", popularity=60),
        ]
        spotify.albums["sp1"] = [{"id": "alb1", "name": "Debut", "images": []}]
        spotify.album_tracks["alb1"] = [
            payloads.spotify_track("t9", "hit single", album=None),
            payloads.spotify_track("t3", "Deep Cut", popularity=10, album=None),
        ]
        service = TrackCatalogService(db, spotify)

        stored = await service.refresh_artist_tracks("a1", "sp1")

        assert stored == 3
        names = [t.name for t in await service.list_artist_tracks("a1")]
        assert names == ["Hit Single", "Ballad", "Deep Cut"]

    async def test_album_limit(self, db: Database, spotify, payloads, artist: Artist) -> None:
        spotify.albums["sp1"] = [{"id": f"alb{i}", "name": f"LP {i}"} for i in range(3)]
        for i in range(3):
            spotify.album_tracks[f"alb{i}"] = [payloads.spotify_track(f"t{i}", f"Song {i}")]

        stored = await TrackCatalogService(db, spotify, max_albums=2).refresh_artist_tracks(
            "a1", "sp1"
        )

        assert stored == 2

    async def test_fresh_catalog_is_skipped_unless_forced(
        self, db: Database, spotify, payloads, artist: Artist
    ) -> None:
        spotify.top_tracks["sp1"] = [payloads.spotify_track("t1", "Hit Single")]
        async with db.session_scope() as session:
            await ArtistRepository(session).mark_tracks_synced(
                "a1", datetime.now(UTC) - timedelta(days=1)
            )
        service = TrackCatalogService(db, spotify)

        assert await service.refresh_artist_tracks("a1", "sp1") == 0
        assert await service.refresh_artist_tracks("a1", "sp1", force=True) == 1

    async def test_marks_catalog_synced(
        self, db: Database, spotify, payloads, artist: Artist
    ) -> None:
        spotify.top_tracks["sp1"] = [payloads.spotify_track("t1", "Hit Single")]
        service = TrackCatalogService(db, spotify)

        await service.refresh_artist_tracks("a1", "sp1")

        async with db.session_scope() as session:
            refreshed = await ArtistRepository(session).get("a1")
        assert refreshed is not None
        assert service.is_catalog_fresh(refreshed.tracks_synced_at)

    async def test_unknown_artist(self, db: Database, spotify) -> None:
        with pytest.raises(EntityNotFoundException):
            await TrackCatalogService(db, spotify).refresh_artist_tracks("ghost", "sp1")
