"""Tests for EntityReconciler (upsert with staleness check).

Hey future me - the reconciler must be idempotent per natural key, must never
let None overwrite stored data, must skip writes inside the freshness window
unless the candidate brings a new external id, and must NEVER raise store
errors at its callers.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, OperationalError

from theset.application.services import EntityReconciler, TrackCatalogService
from theset.application.workers import BackgroundTaskRunner
from theset.domain.entities import Artist, Show, Venue
from theset.domain.exceptions import ValidationException
from theset.infrastructure.persistence import ArtistModel, ArtistRepository, Database


async def _artist_rows(db: Database) -> int:
    async with db.session_scope() as session:
        result = await session.execute(select(func.count(ArtistModel.id)))
        return int(result.scalar_one())


class TestSaveArtist:
    async def test_idempotent_per_natural_key(self, db: Database) -> None:
        reconciler = EntityReconciler(db)

        first = await reconciler.save_artist({"id": "a1", "name": "The Band", "spotifyId": "sp1"})
        second = await reconciler.save_artist({"id": "a1", "name": "The Band", "spotifyId": "sp1"})

        assert first.id == second.id == "a1"
        assert await _artist_rows(db) == 1

    async def test_missing_spotify_id_does_not_null_stored_one(self, db: Database) -> None:
        reconciler = EntityReconciler(db)

        created = await reconciler.save_artist(
            {"id": "a1", "name": "Test Artist", "spotify_id": "sp1"}
        )
        again = await reconciler.save_artist({"id": "a1", "name": "Test Artist"})

        assert created.last_synced_at is not None
        assert again.spotify_id == "sp1"
        async with db.session_scope() as session:
            stored = await ArtistRepository(session).get("a1")
        assert stored is not None and stored.spotify_id == "sp1"

    async def test_new_external_id_merges_into_existing_row(self, db: Database) -> None:
        reconciler = EntityReconciler(db)
        await reconciler.save_artist(
            Artist(id="a1", name="The Band", ticketmaster_id="a1", image_url="img.jpg")
        )

        stored = await reconciler.save_artist(
            Artist(id="sp1", name="The Band", spotify_id="sp1", ticketmaster_id="a1")
        )

        assert stored.id == "a1"
        assert stored.spotify_id == "sp1"
        assert stored.image_url == "img.jpg"
        assert await _artist_rows(db) == 1

    async def test_fresh_row_without_stronger_data_is_not_rewritten(self, db: Database) -> None:
        reconciler = EntityReconciler(db)
        await reconciler.save_artist(Artist(id="a1", name="The Band", popularity=10))

        stored = await reconciler.save_artist(Artist(id="a1", name="The Band", popularity=90))

        assert stored.popularity == 10

    async def test_stale_row_is_updated(self, db: Database) -> None:
        clock = MagicMock(return_value=datetime(2026, 1, 1, tzinfo=UTC))
        reconciler = EntityReconciler(db, clock=clock)
        await reconciler.save_artist(Artist(id="a1", name="The Band", popularity=10))

        clock.return_value = datetime(2026, 1, 3, tzinfo=UTC)
        stored = await reconciler.save_artist(Artist(id="a1", name="The Band", popularity=90))

        assert stored.popularity == 90

    @pytest.mark.parametrize(
        "record",
        [{"name": "No id"}, {"id": "a1"}, {"id": "", "name": "Blank"}],
    )
    async def test_missing_id_or_name_raises_before_any_write(
        self, db: Database, record: dict
    ) -> None:
        with pytest.raises(ValidationException):
            await EntityReconciler(db).save_artist(record)
        assert await _artist_rows(db) == 0

    async def test_wrong_entity_type_raises(self, db: Database) -> None:
        with pytest.raises(ValidationException):
            await EntityReconciler(db).save_artist(Venue(id="v1", name="Hall"))


class TestStoreFailures:
    async def test_permission_error_retries_with_elevated_credential(
        self, db: Database, mocker
    ) -> None:
        @asynccontextmanager
        async def denied_scope():
            raise DBAPIError(
                "INSERT INTO artists", {}, Exception("permission denied for table artists")
            )
            yield  # pragma: no cover

        mocker.patch.object(db, "session_scope", denied_scope)
        elevated = mocker.spy(db, "elevated_session_scope")

        stored = await EntityReconciler(db).save_artist(Artist(id="a1", name="The Band"))

        assert stored.id == "a1"
        assert elevated.call_count == 1
        mocker.stopall()
        async with db.session_scope() as session:
            assert await ArtistRepository(session).get("a1") is not None

    async def test_elevated_retry_also_denied_returns_candidate(
        self, db: Database, mocker
    ) -> None:
        @asynccontextmanager
        async def denied_scope():
            raise DBAPIError(
                "INSERT INTO artists", {}, Exception("permission denied for table artists")
            )
            yield  # pragma: no cover

        mocker.patch.object(db, "session_scope", denied_scope)
        mocker.patch.object(db, "elevated_session_scope", denied_scope)
        error_log = mocker.patch(
            "theset.application.services.reconciliation_service.logger.error"
        )

        stored = await EntityReconciler(db).save_artist(
            Artist(id="a1", name="The Band", spotify_id="sp1")
        )

        assert (stored.id, stored.name, stored.spotify_id) == ("a1", "The Band", "sp1")
        assert stored.last_synced_at is None
        error_log.assert_called_once()
        mocker.stopall()
        assert await _artist_rows(db) == 0

    async def test_other_store_errors_return_candidate(self, db: Database, mocker) -> None:
        @asynccontextmanager
        async def broken_scope():
            raise OperationalError("SELECT", {}, Exception("disk I/O error"))
            yield  # pragma: no cover

        mocker.patch.object(db, "session_scope", broken_scope)
        elevated = mocker.spy(db, "elevated_session_scope")

        stored = await EntityReconciler(db).save_artist(Artist(id="a1", name="The Band"))

        assert stored.name == "The Band"
        assert stored.last_synced_at is None
        elevated.assert_not_called()


class TestSaveShow:
    async def test_show_points_at_resolved_artist_and_venue(self, db: Database) -> None:
        reconciler = EntityReconciler(db)
        await reconciler.save_artist(Artist(id="a1", name="The Band", ticketmaster_id="tm-a"))

        show = await reconciler.save_show(
            {"id": "ev1", "name": "Big Night"},
            artist={"id": "other", "name": "The Band", "ticketmasterId": "tm-a"},
            venue={"id": "v1", "name": "The Arena"},
        )

        assert show.artist_id == "a1"
        assert show.venue_id == "v1"
        assert show.is_complete

    async def test_provisional_show_is_stored(self, db: Database) -> None:
        show = await EntityReconciler(db).save_show(Show(id="ev1", name="TBA"))
        assert show.id == "ev1"
        assert not show.is_complete


class TestTrackFetchTrigger:
    async def test_spotify_artist_with_stale_catalog_schedules_fetch(
        self, db: Database, spotify, payloads
    ) -> None:
        spotify.top_tracks["sp1"] = [payloads.spotify_track("t1", "Hit")]
        background = BackgroundTaskRunner()
        catalog = TrackCatalogService(db, spotify)
        reconciler = EntityReconciler(db, background=background, track_catalog=catalog)

        await reconciler.save_artist(Artist(id="a1", name="The Band", spotify_id="sp1"))
        assert background.is_running("tracks:a1")
        await background.drain(timeout=5)

        assert [t.name for t in await catalog.list_artist_tracks("a1")] == ["Hit"]

    async def test_no_fetch_without_spotify_id(self, db: Database, spotify) -> None:
        background = BackgroundTaskRunner()
        reconciler = EntityReconciler(
            db, background=background, track_catalog=TrackCatalogService(db, spotify)
        )

        await reconciler.save_artist(Artist(id="a1", name="The Band"))

        assert background.pending == []

    async def test_no_fetch_when_catalog_fresh(self, db: Database, spotify) -> None:
        background = BackgroundTaskRunner()
        reconciler = EntityReconciler(
            db, background=background, track_catalog=TrackCatalogService(db, spotify)
        )

        await reconciler.save_artist(
            Artist(
                id="a1",
                name="The Band",
                spotify_id="sp1",
                tracks_synced_at=datetime.now(UTC) - timedelta(days=1),
            )
        )

        assert background.pending == []
