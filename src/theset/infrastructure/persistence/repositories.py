"""Repository implementations for domain entities."""

from __future__ import annotations

import logging
import uuid
from dataclasses import fields
from datetime import datetime, timedelta
from typing import Any, Generic, TypeVar

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from theset.domain.entities import (
    Artist,
    BatchResult,
    EntityType,
    Setlist,
    SetlistSong,
    Show,
    SyncState,
    SyncStatus,
    SyncTask,
    Track,
    Venue,
    Vote,
)
from theset.domain.exceptions import ConfigurationError, EntityNotFoundException
from theset.domain.value_objects import NATURAL_KEYS

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
    utc_now,
)

logger = logging.getLogger(__name__)

E = TypeVar("E")
M = TypeVar("M", bound=Base)

# Managed by the column defaults / the upsert itself, never copied from entities
_MANAGED_COLUMNS = frozenset({"created_at", "updated_at"})


def _insert_for(session: AsyncSession, model: type[Base]) -> Any:
    """Dialect-specific INSERT supporting ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise ConfigurationError(f"Upsert not supported on dialect {dialect!r}")


def _to_entity(model: Base, entity_cls: type[E]) -> E:
    values = {
        f.name: getattr(model, f.name)
        for f in fields(entity_cls)  # type: ignore[arg-type]
        if hasattr(model, f.name)
    }
    return entity_cls(**values)


def _to_values(entity: Any, model: type[Base]) -> dict[str, Any]:
    columns = model.__table__.columns
    return {
        f.name: getattr(entity, f.name)
        for f in fields(entity)
        if f.name in columns and f.name not in _MANAGED_COLUMNS
    }


def _song_key(name: str) -> str:
    return " ".join(name.split()).casefold()


# Hey future me - this is THE coalesce upsert every reconciliation goes through!
#
#   INSERT ... ON CONFLICT (<target>) DO UPDATE SET col = COALESCE(excluded.col, table.col)
#
# A None in the candidate means "unknown", so the stored value survives. Anything
# else overwrites. id and the conflict columns are never rewritten, so when the
# conflict hits a row under a DIFFERENT id (same ticketmaster id, new uuid) the row
# keeps its original id and callers must use the re-selected row, not their input.
async def coalesce_upsert(
    session: AsyncSession,
    model: type[Base],
    values: dict[str, Any],
    index_elements: list[str],
    overwrite: frozenset[str] = frozenset(),
) -> None:
    """Insert a row or merge it into the conflicting one."""
    table = model.__table__
    stmt = _insert_for(session, model).values(**values)
    set_: dict[str, Any] = {}
    for name in values:
        if name == "id" or name in index_elements:
            continue
        if name in overwrite:
            set_[name] = stmt.excluded[name]
        else:
            set_[name] = func.coalesce(stmt.excluded[name], table.c[name])
    if "updated_at" in table.c:
        set_["updated_at"] = utc_now()
    stmt = stmt.on_conflict_do_update(index_elements=index_elements, set_=set_)
    await session.execute(stmt)


class _ReconciledRepository(Generic[E, M]):
    """Shared lookup/upsert for entities keyed by id plus external ids."""

    model: type[M]
    entity_cls: type[E]
    kind: str

    # Hey future me, repos get the session injected and only STAGE changes. Commit
    # belongs to whoever opened the session_scope (service or route dependency).
    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def get(self, entity_id: str) -> E | None:
        model = await self.session.get(self.model, entity_id, populate_existing=True)
        return _to_entity(model, self.entity_cls) if model else None

    async def get_by_external_id(self, key: str, value: str) -> E | None:
        stmt = (
            select(self.model)
            .where(getattr(self.model, key) == value)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_entity(model, self.entity_cls) if model else None

    async def find_existing(self, entity: E) -> E | None:
        """Find the stored row for a candidate: by id, then by external ids."""
        found = await self.get(entity.id)  # type: ignore[attr-defined]
        if found is not None:
            return found
        for key in NATURAL_KEYS[self.kind]:
            value = getattr(entity, key)
            if value:
                found = await self.get_by_external_id(key, value)
                if found is not None:
                    return found
        return None

    def conflict_target(self, entity: E, existing: E | None) -> str:
        """First external id present on the candidate that agrees with the stored row."""
        for key in NATURAL_KEYS[self.kind]:
            value = getattr(entity, key)
            if value and (existing is None or getattr(existing, key) == value):
                return key
        return "id"

    async def upsert(self, entity: E, existing: E | None = None) -> E:
        """Coalesce-merge the candidate and return the stored row."""
        target = self.conflict_target(entity, existing)
        values = _to_values(entity, self.model)
        await coalesce_upsert(self.session, self.model, values, [target])
        stored = await self.get_by_external_id(target, values[target])
        if stored is None:
            raise EntityNotFoundException(self.kind, values[target])
        return stored


class ArtistRepository(_ReconciledRepository[Artist, ArtistModel]):
    """Artist persistence."""

    model = ArtistModel
    entity_cls = Artist
    kind = "artist"

    async def mark_tracks_synced(self, artist_id: str, when: datetime) -> None:
        await self.session.execute(
            update(ArtistModel)
            .where(ArtistModel.id == artist_id)
            .values(tracks_synced_at=when)
        )

    async def search_by_name(self, name: str, limit: int = 10) -> list[Artist]:
        stmt = (
            select(ArtistModel)
            .where(func.lower(ArtistModel.name).contains(name.lower()))
            .order_by(ArtistModel.popularity.desc().nulls_last())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [_to_entity(m, Artist) for m in result.scalars()]


class VenueRepository(_ReconciledRepository[Venue, VenueModel]):
    """Venue persistence."""

    model = VenueModel
    entity_cls = Venue
    kind = "venue"


class ShowRepository(_ReconciledRepository[Show, ShowModel]):
    """Show persistence."""

    model = ShowModel
    entity_cls = Show
    kind = "show"

    async def find_by_artist_venue_date(
        self, artist_id: str, venue_id: str, date: datetime
    ) -> Show | None:
        """Same artist, same venue, same calendar day."""
        day_start = date.replace(hour=0, minute=0, second=0, microsecond=0)
        stmt = (
            select(ShowModel)
            .where(
                ShowModel.artist_id == artist_id,
                ShowModel.venue_id == venue_id,
                ShowModel.date >= day_start,
                ShowModel.date < day_start + timedelta(days=1),
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_entity(model, Show) if model else None

    # Listen, display-ready means BOTH artist and venue resolved. Provisional shows
    # stay in the table (a later sync may complete them) but never reach the UI.
    async def list_for_artist(
        self, artist_id: str, display_ready_only: bool = True
    ) -> list[Show]:
        stmt = select(ShowModel).where(ShowModel.artist_id == artist_id)
        if display_ready_only:
            stmt = stmt.where(ShowModel.venue_id.is_not(None))
        stmt = stmt.order_by(ShowModel.date.desc().nulls_last())
        result = await self.session.execute(stmt)
        return [_to_entity(m, Show) for m in result.scalars()]

    async def list_for_venue(self, venue_id: str) -> list[Show]:
        stmt = (
            select(ShowModel)
            .where(ShowModel.venue_id == venue_id, ShowModel.artist_id.is_not(None))
            .order_by(ShowModel.date.asc().nulls_last())
        )
        result = await self.session.execute(stmt)
        return [_to_entity(m, Show) for m in result.scalars()]

    async def count_for_artist(self, artist_id: str) -> int:
        stmt = select(func.count(ShowModel.id)).where(
            ShowModel.artist_id == artist_id, ShowModel.venue_id.is_not(None)
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())


class SetlistRepository:
    """Setlist persistence (one per show)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, setlist_id: str) -> Setlist | None:
        model = await self.session.get(SetlistModel, setlist_id, populate_existing=True)
        return _to_entity(model, Setlist) if model else None

    async def get_by_show(self, show_id: str) -> Setlist | None:
        stmt = (
            select(SetlistModel)
            .where(SetlistModel.show_id == show_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_entity(model, Setlist) if model else None

    async def get_by_setlistfm_id(self, setlistfm_id: str) -> Setlist | None:
        stmt = (
            select(SetlistModel)
            .where(SetlistModel.setlistfm_id == setlistfm_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_entity(model, Setlist) if model else None

    # Hey future me - the duplicate-key race on setlists.show_id is BENIGN. Two
    # requests both see "no setlist" and both insert; the loser's savepoint rolls
    # back on IntegrityError and it re-queries, so both callers get the same id.
    async def get_or_create_for_show(
        self, show_id: str, artist_id: str | None = None
    ) -> tuple[Setlist, bool]:
        """Return (setlist, created)."""
        existing = await self.get_by_show(show_id)
        if existing is not None:
            return existing, False

        model = SetlistModel(
            id=str(uuid.uuid4()), show_id=show_id, artist_id=artist_id
        )
        try:
            async with self.session.begin_nested():
                self.session.add(model)
        except IntegrityError:
            logger.info(
                "Setlist for show %s created concurrently, re-querying",
                show_id,
                extra={"show_id": show_id},
            )
            existing = await self.get_by_show(show_id)
            if existing is None:
                raise
            return existing, False
        return _to_entity(model, Setlist), True

    async def upsert(self, setlist: Setlist) -> tuple[Setlist, bool]:
        """Upsert keyed by the external setlist id, else by show.

        A show that already has a (seeded, voteable) setlist keeps that row;
        the imported data merges into it instead of tripping the show_id
        constraint.

        Returns:
            (setlist, created) where created is False for a merge.
        """
        existing = None
        if setlist.setlistfm_id:
            existing = await self.get_by_setlistfm_id(setlist.setlistfm_id)
        if existing is None:
            existing = await self.get_by_show(setlist.show_id)

        values = _to_values(setlist, SetlistModel)
        if existing is not None:
            values["id"] = existing.id
            target = "id"
        else:
            target = "setlistfm_id" if setlist.setlistfm_id else "show_id"
        await coalesce_upsert(self.session, SetlistModel, values, [target])

        stored = await self.get(existing.id) if existing else None
        if stored is None:
            stored = (
                await self.get_by_setlistfm_id(setlist.setlistfm_id)
                if setlist.setlistfm_id
                else await self.get_by_show(setlist.show_id)
            )
        if stored is None:
            raise EntityNotFoundException("setlist", values[target])
        return stored, existing is None

    async def list_for_artist(self, artist_id: str, limit: int = 20) -> list[Setlist]:
        stmt = (
            select(SetlistModel)
            .where(SetlistModel.artist_id == artist_id)
            .order_by(SetlistModel.event_date.desc().nulls_last())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [_to_entity(m, Setlist) for m in result.scalars()]


class SetlistSongRepository:
    """Setlist song persistence and the vote counter."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, song_id: str) -> SetlistSong | None:
        model = await self.session.get(
            SetlistSongModel, song_id, populate_existing=True
        )
        return _to_entity(model, SetlistSong) if model else None

    async def list_for_setlist(self, setlist_id: str) -> list[SetlistSong]:
        stmt = (
            select(SetlistSongModel)
            .where(SetlistSongModel.setlist_id == setlist_id)
            .order_by(SetlistSongModel.position)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [_to_entity(m, SetlistSong) for m in result.scalars()]

    async def replace_songs(
        self, setlist_id: str, songs: list[SetlistSong]
    ) -> list[SetlistSong]:
        """Make the setlist list ``songs`` in order.

        A stored song is reused only when it is the same song (same track, or
        same name ignoring case); it keeps its id, counter and votes. Stored
        songs that match nothing are dropped unless somebody voted for them,
        in which case they stay after the new songs.
        """
        existing = await self.list_for_setlist(setlist_id)
        by_track = {s.track_id: s for s in existing if s.track_id}
        by_name: dict[str, list[SetlistSong]] = {}
        for stored in existing:
            by_name.setdefault(_song_key(stored.name), []).append(stored)
        claimed: set[str] = set()

        def claim(song: SetlistSong) -> SetlistSong | None:
            match = by_track.get(song.track_id) if song.track_id else None
            if match is None or match.id in claimed:
                match = next(
                    (
                        s
                        for s in by_name.get(_song_key(song.name), [])
                        if s.id not in claimed
                    ),
                    None,
                )
            if match is not None:
                claimed.add(match.id)
            return match

        # Park stored rows on negative positions so reordering never trips
        # uq_setlist_songs_position.
        await self.session.execute(
            update(SetlistSongModel)
            .where(SetlistSongModel.setlist_id == setlist_id)
            .values(position=-SetlistSongModel.position - 1)
        )

        position = 0
        for song in songs:
            match = claim(song)
            if match is None:
                self.session.add(
                    SetlistSongModel(
                        id=song.id,
                        setlist_id=setlist_id,
                        name=song.name,
                        position=position,
                        track_id=song.track_id,
                        is_encore=song.is_encore,
                    )
                )
            else:
                await self.session.execute(
                    update(SetlistSongModel)
                    .where(SetlistSongModel.id == match.id)
                    .values(
                        name=song.name,
                        position=position,
                        is_encore=song.is_encore,
                        track_id=song.track_id or match.track_id,
                    )
                )
            position += 1

        for stored in existing:
            if stored.id in claimed:
                continue
            if stored.votes > 0:
                await self.session.execute(
                    update(SetlistSongModel)
                    .where(SetlistSongModel.id == stored.id)
                    .values(position=position)
                )
                position += 1
            else:
                await self.session.execute(
                    delete(SetlistSongModel).where(SetlistSongModel.id == stored.id)
                )
        await self.session.flush()
        return await self.list_for_setlist(setlist_id)

    async def next_position(self, setlist_id: str) -> int:
        stmt = select(func.max(SetlistSongModel.position)).where(
            SetlistSongModel.setlist_id == setlist_id
        )
        result = await self.session.execute(stmt)
        current = result.scalar_one_or_none()
        return 0 if current is None else current + 1

    async def find_by_track(self, setlist_id: str, track_id: str) -> SetlistSong | None:
        stmt = select(SetlistSongModel).where(
            SetlistSongModel.setlist_id == setlist_id,
            SetlistSongModel.track_id == track_id,
        )
        result = await self.session.execute(stmt)
        model = result.scalars().first()
        return _to_entity(model, SetlistSong) if model else None

    async def add(self, song: SetlistSong) -> SetlistSong:
        model = SetlistSongModel(
            id=song.id,
            setlist_id=song.setlist_id,
            name=song.name,
            position=song.position,
            track_id=song.track_id,
            votes=song.votes,
            is_encore=song.is_encore,
        )
        self.session.add(model)
        await self.session.flush()
        return _to_entity(model, SetlistSong)

    # Yo, the ONLY way votes change. A single UPDATE ... SET votes = votes + 1 so
    # concurrent voters can't lose each other's increments (no read-modify-write!).
    async def increment_votes(self, song_id: str) -> int:
        """Atomically increment the counter and return the new value."""
        await self.session.execute(
            update(SetlistSongModel)
            .where(SetlistSongModel.id == song_id)
            .values(votes=SetlistSongModel.votes + 1)
        )
        result = await self.session.execute(
            select(SetlistSongModel.votes).where(SetlistSongModel.id == song_id)
        )
        return int(result.scalar_one())


class VoteRepository:
    """Vote persistence; uniqueness lives in uq_votes_song_user."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def exists(self, setlist_song_id: str, user_id: str) -> bool:
        stmt = select(VoteModel.id).where(
            VoteModel.setlist_song_id == setlist_song_id,
            VoteModel.user_id == user_id,
        )
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def add(self, setlist_song_id: str, user_id: str) -> Vote | None:
        """Insert a vote. Returns None when the pair already voted (unique violation)."""
        model = VoteModel(
            id=str(uuid.uuid4()),
            setlist_song_id=setlist_song_id,
            user_id=user_id,
            created_at=utc_now(),
        )
        try:
            async with self.session.begin_nested():
                self.session.add(model)
        except IntegrityError:
            logger.debug(
                "Duplicate vote for song %s by %s rejected by constraint",
                setlist_song_id,
                user_id,
            )
            return None
        return _to_entity(model, Vote)

    async def count_for_song(self, setlist_song_id: str) -> int:
        stmt = select(func.count(VoteModel.id)).where(
            VoteModel.setlist_song_id == setlist_song_id
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def count_for_user_in_setlist(self, user_id: str, setlist_id: str) -> int:
        stmt = (
            select(func.count(VoteModel.id))
            .join(SetlistSongModel, SetlistSongModel.id == VoteModel.setlist_song_id)
            .where(VoteModel.user_id == user_id, SetlistSongModel.setlist_id == setlist_id)
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def voted_song_ids(self, user_id: str, setlist_id: str) -> set[str]:
        stmt = (
            select(VoteModel.setlist_song_id)
            .join(SetlistSongModel, SetlistSongModel.id == VoteModel.setlist_song_id)
            .where(VoteModel.user_id == user_id, SetlistSongModel.setlist_id == setlist_id)
        )
        result = await self.session.execute(stmt)
        return set(result.scalars())


class TrackRepository:
    """Catalog track persistence."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, track_id: str) -> Track | None:
        model = await self.session.get(TrackModel, track_id)
        return _to_entity(model, Track) if model else None

    async def upsert_many(self, tracks: list[Track]) -> int:
        """Upsert tracks keyed by Spotify id. Returns the number written."""
        for track in tracks:
            await coalesce_upsert(
                self.session,
                TrackModel,
                _to_values(track, TrackModel),
                ["spotify_id"],
            )
        return len(tracks)

    async def list_for_artist(self, artist_id: str, limit: int = 50) -> list[Track]:
        stmt = (
            select(TrackModel)
            .where(TrackModel.artist_id == artist_id)
            .order_by(TrackModel.popularity.desc().nulls_last(), TrackModel.name)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [_to_entity(m, Track) for m in result.scalars()]


class SyncStateRepository:
    """Per-entity last/next sync timestamps."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, entity_type: str, entity_id: str) -> SyncState | None:
        stmt = (
            select(SyncStateModel)
            .where(
                SyncStateModel.entity_type == entity_type,
                SyncStateModel.entity_id == entity_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None
        state = _to_entity(model, SyncState)
        state.status = SyncStatus(model.status)
        return state

    async def _write(self, entity_type: str, entity_id: str, **values: Any) -> None:
        await coalesce_upsert(
            self.session,
            SyncStateModel,
            {
                "id": str(uuid.uuid4()),
                "entity_type": entity_type,
                "entity_id": entity_id,
                **values,
            },
            ["entity_type", "entity_id"],
            overwrite=frozenset(values) - {"sync_version"},
        )

    async def mark_in_progress(
        self, entity_type: str, entity_id: str, started_at: datetime | None = None
    ) -> None:
        await self._write(
            entity_type,
            entity_id,
            status=SyncStatus.IN_PROGRESS.value,
            error=None,
            started_at=started_at or utc_now(),
        )

    async def mark_completed(
        self,
        entity_type: str,
        entity_id: str,
        synced_at: datetime,
        next_sync_at: datetime,
    ) -> None:
        await self._write(
            entity_type,
            entity_id,
            status=SyncStatus.COMPLETED.value,
            last_synced_at=synced_at,
            next_sync_at=next_sync_at,
            error=None,
        )
        await self.session.execute(
            update(SyncStateModel)
            .where(
                SyncStateModel.entity_type == entity_type,
                SyncStateModel.entity_id == entity_id,
            )
            .values(sync_version=SyncStateModel.sync_version + 1)
        )

    async def mark_failed(self, entity_type: str, entity_id: str, error: str) -> None:
        await self._write(
            entity_type, entity_id, status=SyncStatus.FAILED.value, error=error
        )

    async def list_due(
        self,
        entity_type: str,
        now: datetime,
        limit: int = 50,
        stuck_after: timedelta = timedelta(hours=1),
    ) -> list[str]:
        """Entity ids whose next eligible sync time has passed.

        Runs stuck in progress longer than ``stuck_after`` count as due.
        """
        in_progress = SyncStateModel.status == SyncStatus.IN_PROGRESS.value
        stmt = (
            select(SyncStateModel.entity_id)
            .where(
                SyncStateModel.entity_type == entity_type,
                or_(
                    and_(
                        ~in_progress,
                        SyncStateModel.next_sync_at.is_not(None),
                        SyncStateModel.next_sync_at <= now,
                    ),
                    and_(
                        in_progress,
                        SyncStateModel.started_at.is_not(None),
                        SyncStateModel.started_at <= now - stuck_after,
                    ),
                ),
            )
            .order_by(SyncStateModel.next_sync_at.asc().nulls_first())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())


class SyncTaskRepository:
    """sync_tasks rows: pending -> in_progress -> completed | failed."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @staticmethod
    def _to_task(model: SyncTaskModel) -> SyncTask:
        return SyncTask(
            id=model.id,
            entity_type=EntityType(model.entity_type),
            entity_id=model.entity_id,
            status=SyncStatus(model.status),
            options=model.options or {},
            result=model.result,
            error=model.error,
            created_at=model.created_at,
            started_at=model.started_at,
            completed_at=model.completed_at,
        )

    async def create(
        self, entity_type: EntityType, entity_id: str, options: dict[str, Any]
    ) -> SyncTask:
        model = SyncTaskModel(
            id=str(uuid.uuid4()),
            entity_type=entity_type.value,
            entity_id=entity_id,
            status=SyncStatus.PENDING.value,
            options=options or None,
            created_at=utc_now(),
        )
        self.session.add(model)
        await self.session.flush()
        return self._to_task(model)

    async def get(self, task_id: str) -> SyncTask | None:
        model = await self.session.get(SyncTaskModel, task_id, populate_existing=True)
        return self._to_task(model) if model else None

    async def _set(self, task_id: str, **values: Any) -> SyncTask:
        await self.session.execute(
            update(SyncTaskModel).where(SyncTaskModel.id == task_id).values(**values)
        )
        task = await self.get(task_id)
        if task is None:
            raise EntityNotFoundException("sync_task", task_id)
        return task

    async def mark_in_progress(self, task_id: str) -> SyncTask:
        return await self._set(
            task_id, status=SyncStatus.IN_PROGRESS.value, started_at=utc_now()
        )

    async def complete(self, task_id: str, result: dict[str, Any]) -> SyncTask:
        return await self._set(
            task_id,
            status=SyncStatus.COMPLETED.value,
            result=result,
            completed_at=utc_now(),
        )

    async def fail(self, task_id: str, error: str) -> SyncTask:
        return await self._set(
            task_id,
            status=SyncStatus.FAILED.value,
            error=error,
            completed_at=utc_now(),
        )

    async def list_active(self, entity_type: EntityType, entity_id: str) -> list[SyncTask]:
        """Pending or running tasks for one entity (concurrent duplicates)."""
        stmt = select(SyncTaskModel).where(
            SyncTaskModel.entity_type == entity_type.value,
            SyncTaskModel.entity_id == entity_id,
            SyncTaskModel.status.in_(
                [SyncStatus.PENDING.value, SyncStatus.IN_PROGRESS.value]
            ),
        )
        result = await self.session.execute(stmt)
        return [self._to_task(m) for m in result.scalars()]


class ErrorLogRepository:
    """error_logs rows written at the HTTP boundary."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(
        self, endpoint: str, error: str, details: dict[str, Any] | None = None
    ) -> None:
        self.session.add(
            ErrorLogModel(
                id=str(uuid.uuid4()),
                endpoint=endpoint,
                error=error,
                details=details,
                timestamp=utc_now(),
            )
        )

    async def list_recent(self, limit: int = 50) -> list[dict[str, Any]]:
        stmt = select(ErrorLogModel).order_by(ErrorLogModel.timestamp.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return [
            {
                "endpoint": m.endpoint,
                "error": m.error,
                "details": m.details,
                "timestamp": m.timestamp,
            }
            for m in result.scalars()
        ]


class JobLogRepository:
    """job_logs rows summarizing batch runs."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(
        self,
        job_type: str,
        result: BatchResult,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.session.add(
            JobLogModel(
                id=str(uuid.uuid4()),
                job_type=job_type,
                items_processed=result.processed,
                items_created=result.created,
                errors=list(result.errors) or None,
                status=result.job_status.value,
                metadata_=metadata,
                created_at=utc_now(),
            )
        )

    async def list_recent(self, job_type: str, limit: int = 20) -> list[JobLogModel]:
        stmt = (
            select(JobLogModel)
            .where(JobLogModel.job_type == job_type)
            .order_by(JobLogModel.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())
