"""initial schema: concerts, setlists, votes and sync bookkeeping

Revision ID: aa10001set01
Revises:
Create Date: 2026-10-01 12:00:00.000000

Hey future me - this creates EVERY table in one go.

Catalog:
- artists, venues, shows: external ids are UNIQUE (they double as the ON
  CONFLICT target of the coalesce upsert) and nullable
- tracks: an artist's cached catalog, unique spotify_id

Setlists and voting:
- setlists: unique show_id (one setlist per show), unique setlistfm_id
- setlist_songs: unique (setlist_id, position), denormalized votes counter
- votes: unique (setlist_song_id, user_id), THE invariant of the app

Bookkeeping:
- sync_states: last/next sync per (entity_type, entity_id)
- sync_tasks: pending -> in_progress -> completed | failed
- error_logs, job_logs
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic
revision: str = "aa10001set01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(with_updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)]
    if with_updated:
        columns.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False))
    return columns


def upgrade() -> None:
    """Create all tables, constraints and indexes."""
    op.create_table(
        "artists",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("spotify_id", sa.String(64), nullable=True),
        sa.Column("ticketmaster_id", sa.String(64), nullable=True),
        sa.Column("setlistfm_mbid", sa.String(64), nullable=True),
        sa.Column("image_url", sa.String(512), nullable=True),
        sa.Column("url", sa.String(512), nullable=True),
        sa.Column("genres", sa.JSON(), nullable=True),
        sa.Column("popularity", sa.Integer(), nullable=True),
        sa.Column("followers", sa.Integer(), nullable=True),
        sa.Column("upcoming_shows", sa.Integer(), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tracks_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_artists_name", "artists", ["name"])
    op.create_index("ix_artists_spotify_id", "artists", ["spotify_id"], unique=True)
    op.create_index("ix_artists_ticketmaster_id", "artists", ["ticketmaster_id"], unique=True)
    op.create_index("ix_artists_setlistfm_mbid", "artists", ["setlistfm_mbid"], unique=True)

    op.create_table(
        "venues",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("ticketmaster_id", sa.String(64), nullable=True),
        sa.Column("setlistfm_id", sa.String(64), nullable=True),
        sa.Column("city", sa.String(255), nullable=True),
        sa.Column("state", sa.String(255), nullable=True),
        sa.Column("country", sa.String(255), nullable=True),
        sa.Column("address", sa.String(512), nullable=True),
        sa.Column("postal_code", sa.String(32), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("url", sa.String(512), nullable=True),
        sa.Column("image_url", sa.String(512), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_venues_name", "venues", ["name"])
    op.create_index("ix_venues_ticketmaster_id", "venues", ["ticketmaster_id"], unique=True)
    op.create_index("ix_venues_setlistfm_id", "venues", ["setlistfm_id"], unique=True)

    op.create_table(
        "shows",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "artist_id",
            sa.String(64),
            sa.ForeignKey("artists.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "venue_id",
            sa.String(64),
            sa.ForeignKey("venues.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("ticketmaster_id", sa.String(64), nullable=True),
        sa.Column("setlistfm_id", sa.String(64), nullable=True),
        sa.Column("ticket_url", sa.String(1024), nullable=True),
        sa.Column("image_url", sa.String(512), nullable=True),
        sa.Column("status", sa.String(32), nullable=True),
        sa.Column("popularity", sa.Integer(), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_shows_date", "shows", ["date"])
    op.create_index("ix_shows_ticketmaster_id", "shows", ["ticketmaster_id"], unique=True)
    op.create_index("ix_shows_setlistfm_id", "shows", ["setlistfm_id"], unique=True)
    op.create_index("ix_shows_artist_date", "shows", ["artist_id", "date"])
    op.create_index("ix_shows_venue_date", "shows", ["venue_id", "date"])

    op.create_table(
        "tracks",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "artist_id",
            sa.String(64),
            sa.ForeignKey("artists.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("spotify_id", sa.String(64), nullable=True),
        sa.Column("album_name", sa.String(512), nullable=True),
        sa.Column("album_image_url", sa.String(512), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("popularity", sa.Integer(), nullable=True),
        sa.Column("preview_url", sa.String(512), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_tracks_spotify_id", "tracks", ["spotify_id"], unique=True)
    op.create_index("ix_tracks_artist_popularity", "tracks", ["artist_id", "popularity"])

    op.create_table(
        "setlists",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "show_id",
            sa.String(64),
            sa.ForeignKey("shows.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column(
            "artist_id",
            sa.String(64),
            sa.ForeignKey("artists.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("setlistfm_id", sa.String(64), nullable=True),
        sa.Column("event_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tour_name", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_setlists_artist_id", "setlists", ["artist_id"])
    op.create_index("ix_setlists_setlistfm_id", "setlists", ["setlistfm_id"], unique=True)

    op.create_table(
        "setlist_songs",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "setlist_id",
            sa.String(64),
            sa.ForeignKey("setlists.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column(
            "track_id",
            sa.String(64),
            sa.ForeignKey("tracks.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_encore", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint("setlist_id", "position", name="uq_setlist_songs_position"),
    )

    op.create_table(
        "votes",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "setlist_song_id",
            sa.String(64),
            sa.ForeignKey("setlist_songs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(128), nullable=False),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint("setlist_song_id", "user_id", name="uq_votes_song_user"),
    )
    op.create_index("ix_votes_setlist_song_id", "votes", ["setlist_song_id"])
    op.create_index("ix_votes_user_id", "votes", ["user_id"])

    op.create_table(
        "sync_states",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("sync_version", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("entity_type", "entity_id", name="uq_sync_states_entity"),
    )
    op.create_index("ix_sync_states_next_sync_at", "sync_states", ["next_sync_at"])

    op.create_table(
        "sync_tasks",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("options", sa.JSON(), nullable=True),
        sa.Column("result", sa.JSON(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_sync_tasks_status", "sync_tasks", ["status"])
    op.create_index("ix_sync_tasks_entity", "sync_tasks", ["entity_type", "entity_id"])

    op.create_table(
        "error_logs",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("endpoint", sa.String(255), nullable=False),
        sa.Column("error", sa.Text(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_error_logs_timestamp", "error_logs", ["timestamp"])

    op.create_table(
        "job_logs",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("job_type", sa.String(64), nullable=False),
        sa.Column("items_processed", sa.Integer(), nullable=False),
        sa.Column("items_created", sa.Integer(), nullable=False),
        sa.Column("errors", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_job_logs_job_type", "job_logs", ["job_type"])


def downgrade() -> None:
    """Drop everything, dependents first."""
    for table in (
        "job_logs",
        "error_logs",
        "sync_tasks",
        "sync_states",
        "votes",
        "setlist_songs",
        "setlists",
        "tracks",
        "shows",
        "venues",
        "artists",
    ):
        op.drop_table(table)
