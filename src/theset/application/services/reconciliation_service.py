# Hey future me - this is the "upsert with staleness check" heart of the sync layer.
#
# save_artist / save_venue / save_show all follow the same recipe:
#   1. Normalize + validate (missing id/name -> ValidationException, raised NOW).
#   2. Look up the stored row (by id, then by external ids).
#   3. Stored row younger than its freshness window AND the candidate brings no
#      new external id -> return the stored row untouched, no write at all.
#   4. Otherwise coalesce-upsert (None never overwrites) and return the stored row.
#
# Failure policy is deliberately LENIENT: these run inside user flows (viewing a
# show page), so a store failure must never bubble up. A permission error gets ONE
# retry through the elevated credential; anything else (or a second failure) is
# logged and the in-memory candidate is returned as a best-effort record.
"""Entity reconciliation for artists, venues and shows."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from theset.application.workers import BackgroundTaskRunner
from theset.domain.entities import Artist, Show, Venue, utc_now
from theset.domain.exceptions import StorePermissionError, ValidationException
from theset.domain.value_objects import FreshnessPolicy, has_stronger_data
from theset.infrastructure.integrations.mappers import normalize_record
from theset.infrastructure.persistence import (
    ArtistRepository,
    Database,
    ShowRepository,
    VenueRepository,
    is_permission_error,
)

from .track_catalog_service import TrackCatalogService

logger = logging.getLogger(__name__)

E = TypeVar("E", Artist, Venue, Show)

_REPOSITORIES: dict[str, Any] = {
    "artist": ArtistRepository,
    "venue": VenueRepository,
    "show": ShowRepository,
}


class EntityReconciler:
    """Bring stored artists, venues and shows in line with fresh vendor data."""

    def __init__(
        self,
        db: Database,
        freshness: FreshnessPolicy | None = None,
        background: BackgroundTaskRunner | None = None,
        track_catalog: TrackCatalogService | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._db = db
        self._freshness = freshness or FreshnessPolicy()
        self._background = background
        self._track_catalog = track_catalog
        self._clock = clock

    async def save_artist(self, artist: Artist | dict[str, Any]) -> Artist:
        candidate = self._coerce("artist", artist, Artist)
        stored, previous = await self._reconcile("artist", candidate)
        self._maybe_fetch_tracks(stored, previous)
        return stored

    async def save_venue(self, venue: Venue | dict[str, Any]) -> Venue:
        candidate = self._coerce("venue", venue, Venue)
        stored, _previous = await self._reconcile("venue", candidate)
        return stored

    async def save_show(
        self,
        show: Show | dict[str, Any],
        artist: Artist | dict[str, Any] | None = None,
        venue: Venue | dict[str, Any] | None = None,
    ) -> Show:
        """Reconcile a show, reconciling its artist and venue first.

        The show is pointed at the RESOLVED ids, which can differ from the
        candidate ids when the artist/venue already existed under another id.
        """
        candidate = self._coerce("show", show, Show)
        if artist is not None:
            saved_artist = await self.save_artist(artist)
            candidate.artist_id = saved_artist.id
        if venue is not None:
            saved_venue = await self.save_venue(venue)
            candidate.venue_id = saved_venue.id
        if not candidate.is_complete:
            logger.info(
                "Show %s saved as provisional (artist=%s, venue=%s)",
                candidate.id,
                candidate.artist_id,
                candidate.venue_id,
            )
        stored, _previous = await self._reconcile("show", candidate)
        return stored

    @staticmethod
    def _coerce(kind: str, record: Any, entity_cls: type[E]) -> E:
        if isinstance(record, dict):
            entity = normalize_record(kind, record)
        else:
            entity = record
        if not isinstance(entity, entity_cls):
            raise ValidationException(f"Expected {kind} record, got {type(record).__name__}")
        if not entity.id or not str(entity.id).strip():
            raise ValidationException(f"{kind} id is required")
        if not entity.name or not str(entity.name).strip():
            raise ValidationException(f"{kind} name is required")
        return entity

    async def _reconcile(self, kind: str, candidate: E) -> tuple[E, E | None]:
        """Returns (stored-or-candidate, row as it was before the write)."""
        try:
            return await self._write(kind, candidate, self._db.session_scope)
        except StorePermissionError as e:
            logger.warning(
                "Permission denied saving %s %s, retrying with elevated credential",
                kind,
                candidate.id,
                extra={"entity_type": kind, "entity_id": candidate.id},
            )
            try:
                return await self._write(
                    kind, candidate, self._db.elevated_session_scope
                )
            except (StorePermissionError, SQLAlchemyError) as retry_error:
                logger.error(
                    "Elevated retry failed for %s %s: %s (first error: %s)",
                    kind,
                    candidate.id,
                    retry_error,
                    e,
                    extra={"entity_type": kind, "entity_id": candidate.id},
                )
        except SQLAlchemyError as e:
            logger.error(
                "Failed to save %s %s: %s",
                kind,
                candidate.id,
                e,
                extra={"entity_type": kind, "entity_id": candidate.id},
            )
        return candidate, None

    async def _write(
        self,
        kind: str,
        candidate: E,
        scope: Callable[[], Any],
    ) -> tuple[E, E | None]:
        now = self._clock()
        try:
            async with scope() as session:
                return await self._upsert_in_session(session, kind, candidate, now)
        except DBAPIError as e:
            if is_permission_error(e):
                raise StorePermissionError(str(e)) from e
            raise

    async def _upsert_in_session(
        self, session: AsyncSession, kind: str, candidate: E, now: datetime
    ) -> tuple[E, E | None]:
        repo = _REPOSITORIES[kind](session)
        existing = await repo.find_existing(candidate)

        if existing is not None:
            fresh = self._freshness.is_fresh(kind, existing.last_synced_at, now)
            if fresh and not has_stronger_data(kind, existing, candidate):
                logger.debug(
                    "%s %s is fresh, skipping write", kind.capitalize(), existing.id
                )
                return existing, existing

        candidate.last_synced_at = now
        stored = await repo.upsert(candidate, existing)
        logger.debug(
            "Saved %s %s",
            kind,
            stored.id,
            extra={"entity_type": kind, "entity_id": stored.id, "created": existing is None},
        )
        return stored, existing

    def _maybe_fetch_tracks(self, stored: Artist, previous: Artist | None) -> None:
        """Fire-and-forget track catalog fetch for a Spotify-linked artist with a stale catalog."""
        if self._background is None or self._track_catalog is None:
            return
        if not stored.spotify_id:
            return
        # Fresh skip path: nothing was written, nothing to fetch.
        if previous is stored:
            return
        if self._track_catalog.is_catalog_fresh(stored.tracks_synced_at):
            return

        artist_id, spotify_id = stored.id, stored.spotify_id
        catalog = self._track_catalog

        def factory() -> Awaitable[int]:
            return catalog.refresh_artist_tracks(artist_id, spotify_id)

        self._background.submit(f"tracks:{artist_id}", factory)
