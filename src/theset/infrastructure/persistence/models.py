"""SQLAlchemy ORM models for TheSet."""

import uuid
from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import (
    JSON,
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# Hey future me, ALL timestamps are UTC. Never datetime.now() without a tz!
def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! Datetimes come back naive,
# so attach UTC before comparing with datetime.now(UTC) or you get a TypeError.
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# None must land as SQL NULL (not JSON "null") so coalesce merges can see it
NullableJSON = JSON(none_as_null=True)


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Listen up, every external id is UNIQUE so it can serve as the ON CONFLICT target
# of the coalesce upsert. They are nullable because an artist first seen on
# Ticketmaster has no Spotify id yet (and vice versa).
class ArtistModel(Base):
    """Artist row."""

    __tablename__ = "artists"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    spotify_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True, index=True
    )
    ticketmaster_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True, index=True
    )
    setlistfm_mbid: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True, index=True
    )
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    genres: Mapped[list[str] | None] = mapped_column(NullableJSON, nullable=True)
    popularity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    followers: Mapped[int | None] = mapped_column(Integer, nullable=True)
    upcoming_shows: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    # Track catalog has its own (longer) freshness window
    tracks_synced_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    shows: Mapped[list["ShowModel"]] = relationship(
        "ShowModel", back_populates="artist"
    )
    tracks: Mapped[list["TrackModel"]] = relationship(
        "TrackModel", back_populates="artist", cascade="all, delete-orphan"
    )


class VenueModel(Base):
    """Venue row."""

    __tablename__ = "venues"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    ticketmaster_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True, index=True
    )
    setlistfm_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True, index=True
    )
    city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    state: Mapped[str | None] = mapped_column(String(255), nullable=True)
    country: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    shows: Mapped[list["ShowModel"]] = relationship("ShowModel", back_populates="venue")


# Yo, artist_id/venue_id are NULLABLE on purpose: a show can be written before its
# artist or venue resolves. Such shows are provisional and the display-ready
# queries filter them out (both FKs set).
class ShowModel(Base):
    """Show row."""

    __tablename__ = "shows"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    date: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True, index=True
    )
    artist_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("artists.id", ondelete="SET NULL"), nullable=True
    )
    venue_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("venues.id", ondelete="SET NULL"), nullable=True
    )
    ticketmaster_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True, index=True
    )
    setlistfm_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True, index=True
    )
    ticket_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    popularity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    artist: Mapped["ArtistModel | None"] = relationship(
        "ArtistModel", back_populates="shows"
    )
    venue: Mapped["VenueModel | None"] = relationship(
        "VenueModel", back_populates="shows"
    )
    setlist: Mapped["SetlistModel | None"] = relationship(
        "SetlistModel", back_populates="show", uselist=False
    )

    __table_args__ = (
        Index("ix_shows_artist_date", "artist_id", "date"),
        Index("ix_shows_venue_date", "venue_id", "date"),
    )


# Hey future me - ONE setlist per show, enforced by the unique show_id. Concurrent
# "create setlist for show X" calls race on this constraint; the loser re-queries.
class SetlistModel(Base):
    """Setlist row."""

    __tablename__ = "setlists"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    show_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("shows.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    artist_id: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("artists.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    setlistfm_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True, index=True
    )
    event_date: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    tour_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    show: Mapped["ShowModel"] = relationship("ShowModel", back_populates="setlist")
    songs: Mapped[list["SetlistSongModel"]] = relationship(
        "SetlistSongModel",
        back_populates="setlist",
        cascade="all, delete-orphan",
        order_by="SetlistSongModel.position",
    )


class SetlistSongModel(Base):
    """Song at a position in a setlist, carrying the denormalized vote counter."""

    __tablename__ = "setlist_songs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    setlist_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("setlists.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    track_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("tracks.id", ondelete="SET NULL"), nullable=True
    )
    # Only ever changed via UPDATE ... SET votes = votes + 1
    votes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    is_encore: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sa.false()
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )

    setlist: Mapped["SetlistModel"] = relationship(
        "SetlistModel", back_populates="songs"
    )

    __table_args__ = (
        UniqueConstraint("setlist_id", "position", name="uq_setlist_songs_position"),
    )


# Listen, THIS constraint is the central correctness invariant of the app: one vote
# per (user, setlist song). Application-side "already voted" checks are advisory only.
class VoteModel(Base):
    """Vote row."""

    __tablename__ = "votes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    setlist_song_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("setlist_songs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("setlist_song_id", "user_id", name="uq_votes_song_user"),
    )


class TrackModel(Base):
    """Catalog track of an artist."""

    __tablename__ = "tracks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    artist_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("artists.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    spotify_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True, index=True
    )
    album_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    album_image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    popularity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    preview_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    artist: Mapped["ArtistModel"] = relationship("ArtistModel", back_populates="tracks")

    __table_args__ = (Index("ix_tracks_artist_popularity", "artist_id", "popularity"),)


class SyncStateModel(Base):
    """Last/next sync bookkeeping per entity."""

    __tablename__ = "sync_states"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    last_synced_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    next_sync_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True, index=True
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sync_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", name="uq_sync_states_entity"),
    )


class SyncTaskModel(Base):
    """One orchestrated sync request."""

    __tablename__ = "sync_tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="pending", index=True
    )
    options: Mapped[dict[str, Any] | None] = mapped_column(NullableJSON, nullable=True)
    result: Mapped[dict[str, Any] | None] = mapped_column(NullableJSON, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    started_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    __table_args__ = (Index("ix_sync_tasks_entity", "entity_type", "entity_id"),)


class ErrorLogModel(Base):
    """Unexpected error caught at the HTTP boundary."""

    __tablename__ = "error_logs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    endpoint: Mapped[str] = mapped_column(String(255), nullable=False)
    error: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(NullableJSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False, index=True
    )


class JobLogModel(Base):
    """Summary of one batch job run."""

    __tablename__ = "job_logs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    job_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    items_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[list[str] | None] = mapped_column(NullableJSON, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", NullableJSON, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
