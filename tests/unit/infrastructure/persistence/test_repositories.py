"""Repository tests against a real SQLite file.

Hey future me - these cover the store-level guarantees everything above relies on:
the coalesce upsert (None never overwrites), the one-setlist-per-show race, the
vote uniqueness constraint and the atomic counter.
"""

import asyncio
import uuid
from datetime import UTC, datetime, timedelta

from theset.domain.entities import (
    Artist,
    BatchResult,
    EntityType,
    Setlist,
    SetlistSong,
    Show,
    SyncStatus,
)
from theset.infrastructure.persistence import (
    ArtistRepository,
    Database,
    JobLogRepository,
    SetlistRepository,
    SetlistSongRepository,
    ShowRepository,
    SyncStateRepository,
    SyncTaskRepository,
    VoteRepository,
)


class TestCoalesceUpsert:
    """The merge rule of reconciliation."""

    async def test_none_never_overwrites(self, db: Database) -> None:
        async with db.session_scope() as session:
            await ArtistRepository(session).upsert(
                Artist(id="a1", name="The Band", ticketmaster_id="a1", image_url="img.jpg")
            )
        async with db.session_scope() as session:
            stored = await ArtistRepository(session).upsert(
                Artist(id="a1", name="The Band", ticketmaster_id="a1", popularity=40)
            )

        assert stored.image_url == "img.jpg"
        assert stored.popularity == 40

    async def test_conflict_on_external_id_keeps_original_row_id(self, db: Database) -> None:
        async with db.session_scope() as session:
            await ArtistRepository(session).upsert(
                Artist(id="a1", name="The Band", ticketmaster_id="tm-1")
            )
        async with db.session_scope() as session:
            repo = ArtistRepository(session)
            candidate = Artist(id="other-id", name="The Band", ticketmaster_id="tm-1", spotify_id="sp1")
            stored = await repo.upsert(candidate, await repo.find_existing(candidate))

        assert stored.id == "a1"
        assert stored.spotify_id == "sp1"

    async def test_find_existing_by_external_id(self, db: Database) -> None:
        async with db.session_scope() as session:
            await ArtistRepository(session).upsert(
                Artist(id="a1", name="The Band", ticketmaster_id="tm-1", spotify_id="sp1")
            )
            found = await ArtistRepository(session).find_existing(
                Artist(id="unknown", name="x", spotify_id="sp1")
            )

        assert found is not None
        assert found.id == "a1"


class TestShowRepository:
    async def test_display_ready_filter(self, db: Database) -> None:
        async with db.session_scope() as session:
            await ArtistRepository(session).upsert(Artist(id="a1", name="The Band"))
            shows = ShowRepository(session)
            await shows.upsert(Show(id="s1", name="Provisional", artist_id="a1"))

            assert await shows.list_for_artist("a1") == []
            assert len(await shows.list_for_artist("a1", display_ready_only=False)) == 1
            assert await shows.count_for_artist("a1") == 0

    async def test_find_by_artist_venue_date_matches_same_day(self, db: Database, seeded) -> None:
        day = datetime(2025, 3, 12, 21, 30, tzinfo=UTC)
        async with db.session_scope() as session:
            shows = ShowRepository(session)
            await shows.upsert(
                Show(
                    id="tm-ev",
                    name="Evening show",
                    date=day,
                    artist_id=seeded.artist_id,
                    venue_id=seeded.venue_id,
                    ticketmaster_id="tm-ev",
                )
            )
            same_day = await shows.find_by_artist_venue_date(
                seeded.artist_id, seeded.venue_id, day.replace(hour=0)
            )
            next_day = await shows.find_by_artist_venue_date(
                seeded.artist_id, seeded.venue_id, day + timedelta(days=1)
            )

        assert same_day is not None and same_day.id == "tm-ev"
        assert next_day is None


class TestSetlistRepository:
    async def test_concurrent_get_or_create_returns_one_setlist(self, db: Database, seeded) -> None:
        async with db.session_scope() as session:
            await ShowRepository(session).upsert(
                Show(id="fresh-show", name="x", artist_id=seeded.artist_id, venue_id=seeded.venue_id)
            )

        async def create() -> str:
            async with db.session_scope() as session:
                setlist, _ = await SetlistRepository(session).get_or_create_for_show(
                    "fresh-show", seeded.artist_id
                )
                return setlist.id

        ids = await asyncio.gather(*(create() for _ in range(5)))

        assert len(set(ids)) == 1

    async def test_upsert_merges_into_existing_show_setlist(self, db: Database, seeded) -> None:
        """An import for a show that already has a (seeded) setlist reuses that row."""
        async with db.session_scope() as session:
            stored, created = await SetlistRepository(session).upsert(
                Setlist(
                    id=str(uuid.uuid4()),
                    show_id=seeded.show_id,
                    artist_id=seeded.artist_id,
                    setlistfm_id="sfm-1",
                    tour_name="World Tour",
                )
            )

        assert stored.id == seeded.setlist_id
        assert stored.setlistfm_id == "sfm-1"
        assert created is False


class TestSetlistSongRepository:
    async def test_replace_songs_never_moves_votes_to_another_song(
        self, db: Database, seeded
    ) -> None:
        song_0, song_1, song_2 = seeded.song_ids
        async with db.session_scope() as session:
            songs = SetlistSongRepository(session)
            votes = VoteRepository(session)
            for song_id, user in ((song_0, "u1"), (song_2, "u2")):
                await votes.add(song_id, user)
                await songs.increment_votes(song_id)

            replaced = await songs.replace_songs(
                seeded.setlist_id,
                [
                    SetlistSong(
                        id=str(uuid.uuid4()),
                        setlist_id=seeded.setlist_id,
                        name="Completely Different",
                        position=0,
                    )
                ],
            )
            left_on_song_2 = await votes.count_for_song(song_2)

        assert [(s.name, s.votes) for s in replaced] == [
            ("Completely Different", 0),
            ("Song 0", 1),
            ("Song 2", 1),
        ]
        assert [s.id for s in replaced[1:]] == [song_0, song_2]
        assert song_1 not in {s.id for s in replaced}
        assert left_on_song_2 == 1

    async def test_replace_songs_matches_by_name_and_reorders(
        self, db: Database, seeded
    ) -> None:
        song_0, song_1, _ = seeded.song_ids
        async with db.session_scope() as session:
            songs = SetlistSongRepository(session)
            await VoteRepository(session).add(song_1, "u1")
            await songs.increment_votes(song_1)

            replaced = await songs.replace_songs(
                seeded.setlist_id,
                [
                    SetlistSong(id=str(uuid.uuid4()), setlist_id=seeded.setlist_id, name="song 1", position=0),
                    SetlistSong(id=str(uuid.uuid4()), setlist_id=seeded.setlist_id, name="Song 0", position=1, is_encore=True),
                ],
            )

        assert [(s.id, s.position) for s in replaced] == [(song_1, 0), (song_0, 1)]
        assert replaced[0].votes == 1
        assert replaced[1].is_encore

    async def test_next_position(self, db: Database, seeded) -> None:
        async with db.session_scope() as session:
            songs = SetlistSongRepository(session)
            assert await songs.next_position(seeded.setlist_id) == 3
            assert await songs.next_position("empty") == 0


class TestVoteRepository:
    async def test_duplicate_vote_returns_none(self, db: Database, seeded) -> None:
        song_id = seeded.song_ids[0]
        async with db.session_scope() as session:
            votes = VoteRepository(session)
            assert await votes.add(song_id, "user-1") is not None
            assert await votes.add(song_id, "user-1") is None
            assert await votes.count_for_song(song_id) == 1

    async def test_counts_per_user_in_setlist(self, db: Database, seeded) -> None:
        async with db.session_scope() as session:
            votes = VoteRepository(session)
            for song_id in seeded.song_ids[:2]:
                await votes.add(song_id, "anon:fp")
            assert await votes.count_for_user_in_setlist("anon:fp", seeded.setlist_id) == 2
            assert await votes.voted_song_ids("anon:fp", seeded.setlist_id) == set(
                seeded.song_ids[:2]
            )


class TestSyncBookkeeping:
    async def test_sync_state_lifecycle(self, db: Database) -> None:
        now = datetime.now(UTC)
        async with db.session_scope() as session:
            states = SyncStateRepository(session)
            await states.mark_in_progress("artist", "a1")
            state = await states.get("artist", "a1")
            assert state is not None and state.status is SyncStatus.IN_PROGRESS
            assert state.is_due(now) is False

            await states.mark_completed("artist", "a1", now, now - timedelta(minutes=1))
            state = await states.get("artist", "a1")

        assert state.status is SyncStatus.COMPLETED
        assert state.sync_version == 1
        assert state.is_due(now) is True

    async def test_list_due_skips_future_and_running(self, db: Database) -> None:
        now = datetime.now(UTC)
        async with db.session_scope() as session:
            states = SyncStateRepository(session)
            await states.mark_completed("artist", "due", now, now - timedelta(hours=1))
            await states.mark_completed("artist", "later", now, now + timedelta(hours=1))
            await states.mark_completed("artist", "busy", now, now - timedelta(hours=1))
            await states.mark_in_progress("artist", "busy")
            await states.mark_in_progress(
                "artist", "stuck", started_at=now - timedelta(hours=2)
            )

            due = await states.list_due("artist", now)

        assert due == ["stuck", "due"]

    async def test_task_transitions(self, db: Database) -> None:
        async with db.session_scope() as session:
            tasks = SyncTaskRepository(session)
            task = await tasks.create(EntityType.VENUE, "v1", {"force": True})
            assert task.status is SyncStatus.PENDING

            running = await tasks.mark_in_progress(task.id)
            assert running.started_at is not None
            assert len(await tasks.list_active(EntityType.VENUE, "v1")) == 1

            failed = await tasks.fail(task.id, "boom")

        assert failed.status is SyncStatus.FAILED
        assert failed.error == "boom"
        assert failed.options == {"force": True}

    async def test_job_log_status(self, db: Database) -> None:
        result = BatchResult(processed=10, created=7, errors=["a", "b", "c"])
        async with db.session_scope() as session:
            await JobLogRepository(session).add("setlist_import", result, {"artist_id": "a1"})
        async with db.session_scope() as session:
            (log,) = await JobLogRepository(session).list_recent("setlist_import")

        assert log.status == "partial"
        assert log.items_created == 7
        assert log.metadata_ == {"artist_id": "a1"}
