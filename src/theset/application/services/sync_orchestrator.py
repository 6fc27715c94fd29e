# Hey future me - this is the SEQUENCER of the whole sync layer!
#
# Order matters and is fixed:
#   artist -> shows (Ticketmaster events, each with its venue) -> setlists (Setlist.fm)
#
# The artist is reconciled FIRST because every dependent row points at the
# artist's RESOLVED id (which can differ from whatever id the caller passed).
#
# Partial success is the normal case here. One bad event in a list of 50 is
# caught, logged, counted in BatchResult.errors and we move on. Nothing in the
# loops is all-or-nothing. The only thing that fails a whole run is not being
# able to resolve the parent entity at all.
#
# run_task() wraps every entry point in a sync_tasks row so duplicate requests
# can see each other, and consults sync_states so we don't re-hit the vendors
# inside the freshness window (options.force bypasses that).
"""Sync orchestration: sequence vendor fetches and reconciliation per entity."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from theset.application.workers import BackgroundTaskRunner
from theset.domain.entities import (
    Artist,
    BatchResult,
    EntityType,
    Setlist,
    SetlistSong,
    Show,
    SyncTask,
    VenueSyncResult,
    utc_now,
)
from theset.domain.exceptions import (
    BusinessRuleViolation,
    ConfigurationError,
    EntityNotFoundException,
    ExternalServiceError,
    ValidationException,
)
from theset.domain.ports import ISetlistFmClient, ISpotifyClient, ITicketmasterClient
from theset.domain.value_objects import FreshnessPolicy
from theset.infrastructure.integrations.mappers import (
    artist_from_setlistfm,
    artist_from_spotify,
    artist_from_ticketmaster,
    show_from_ticketmaster,
    venue_from_ticketmaster,
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
    VenueRepository,
)

from .reconciliation_service import EntityReconciler
from .setlist_service import SetlistService

logger = logging.getLogger(__name__)

SETLIST_IMPORT_JOB = "setlist_import"


@dataclass
class CachedShowSetlist:
    """One display-ready show with its setlist (if any) from the local store."""

    show: Show
    setlist: Setlist | None = None
    songs: list[SetlistSong] = field(default_factory=list)


@dataclass
class ArtistSetlists:
    data: list[CachedShowSetlist]
    from_cache: bool = True
    refresh_scheduled: bool = False


class SyncOrchestrator:
    """Runs artist/show/venue/setlist syncs against the three vendors."""

    def __init__(
        self,
        db: Database,
        reconciler: EntityReconciler,
        setlists: SetlistService,
        ticketmaster: ITicketmasterClient,
        spotify: ISpotifyClient,
        setlistfm: ISetlistFmClient,
        background: BackgroundTaskRunner | None = None,
        freshness: FreshnessPolicy | None = None,
        request_delay: float = 0.5,
        sparse_show_threshold: int = 2,
        max_setlists_per_import: int = 10,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._db = db
        self._reconciler = reconciler
        self._setlists = setlists
        self._ticketmaster = ticketmaster
        self._spotify = spotify
        self._setlistfm = setlistfm
        self._background = background
        self._freshness = freshness or FreshnessPolicy()
        self._request_delay = request_delay
        self._sparse_show_threshold = sparse_show_threshold
        self._max_setlists = max_setlists_per_import
        self._clock = clock

    async def _throttle(self) -> None:
        """Fixed courtesy delay between vendor calls in a loop. Not adaptive."""
        if self._request_delay > 0:
            await asyncio.sleep(self._request_delay)

    # =========================================================================
    # TASK LIFECYCLE
    # =========================================================================

    async def run_task(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        options: dict[str, Any] | None = None,
    ) -> SyncTask:
        """Run one sync as a tracked task: pending -> in_progress -> completed | failed.

        Every transition is committed on its own so concurrent observers see the
        task while it runs. Work failures land on the task, they are not raised.

        Raises:
            ValidationException: Unknown entity type or empty entity id.
        """
        try:
            kind = EntityType(entity_type)
        except ValueError as e:
            raise ValidationException(f"Unsupported entity type: {entity_type!r}") from e
        if not entity_id or not str(entity_id).strip():
            raise ValidationException("entityId is required")
        options = dict(options or {})
        force = bool(options.get("force"))

        async with self._db.session_scope() as session:
            task = await SyncTaskRepository(session).create(kind, entity_id, options)
        async with self._db.session_scope() as session:
            task = await SyncTaskRepository(session).mark_in_progress(task.id)
            states = SyncStateRepository(session)
            now = self._clock()
            blocking = None if force else await states.get(kind.value, entity_id)
            if blocking is not None and blocking.is_due(now, self._freshness.stuck_sync):
                blocking = None
            if blocking is None:
                await states.mark_in_progress(kind.value, entity_id, started_at=now)

        if blocking is not None:
            logger.info(
                "Skipping %s sync for %s: not due until %s",
                kind.value,
                entity_id,
                blocking.next_sync_at,
            )
            result = {
                "skipped": True,
                "status": blocking.status.value,
                "nextSyncAt": (
                    blocking.next_sync_at.isoformat() if blocking.next_sync_at else None
                ),
            }
            async with self._db.session_scope() as session:
                return await SyncTaskRepository(session).complete(task.id, result)

        logger.info(
            "Starting %s sync for %s",
            kind.value,
            entity_id,
            extra={"task_id": task.id, "entity_type": kind.value, "entity_id": entity_id},
        )
        # Hey future me - "settled" means a terminal state got COMMITTED. Anything
        # else (cancellation, a failed commit) must not leave the entity in_progress.
        settled = False
        try:
            try:
                result = await self._dispatch(kind, entity_id, options)
            except Exception as e:
                logger.exception(
                    "%s sync for %s failed: %s",
                    kind.value.capitalize(),
                    entity_id,
                    e,
                    extra={"task_id": task.id, "error_type": type(e).__name__},
                )
                async with self._db.session_scope() as session:
                    await SyncStateRepository(session).mark_failed(
                        kind.value, entity_id, str(e)
                    )
                    task = await SyncTaskRepository(session).fail(task.id, str(e))
                settled = True
                return task

            finished = self._clock()
            async with self._db.session_scope() as session:
                await SyncStateRepository(session).mark_completed(
                    kind.value,
                    entity_id,
                    synced_at=finished,
                    next_sync_at=self._freshness.next_sync_at(kind.value, finished),
                )
                task = await SyncTaskRepository(session).complete(task.id, result)
            settled = True
        finally:
            if not settled:
                await self._release_abandoned(task.id, kind, entity_id)
        logger.info("Finished %s sync for %s", kind.value, entity_id)
        return task

    async def _release_abandoned(
        self, task_id: str, kind: EntityType, entity_id: str
    ) -> None:
        """Mark a run that never reached a terminal state as failed."""
        logger.warning(
            "%s sync for %s aborted before finishing",
            kind.value.capitalize(),
            entity_id,
            extra={"task_id": task_id},
        )
        try:
            async with self._db.session_scope() as session:
                await SyncStateRepository(session).mark_failed(
                    kind.value, entity_id, "sync aborted"
                )
                await SyncTaskRepository(session).fail(task_id, "sync aborted")
        except Exception:
            # The original error is already propagating; the stuck timeout
            # releases the state later.
            logger.exception("Could not release aborted %s sync for %s", kind.value, entity_id)

    async def _dispatch(
        self, kind: EntityType, entity_id: str, options: dict[str, Any]
    ) -> dict[str, Any]:
        if kind is EntityType.ARTIST:
            return await self.sync_artist(entity_id)
        if kind is EntityType.SHOW:
            return await self.sync_show(entity_id)
        if kind is EntityType.VENUE:
            outcome = await self.sync_venue(
                entity_id, options.get("ticketmasterVenueId")
            )
            return {
                "savedShows": outcome.saved,
                "failedShows": outcome.failed,
                "message": outcome.message,
            }
        return await self.sync_setlist(entity_id)

    # =========================================================================
    # ARTIST
    # =========================================================================

    async def sync_artist(self, artist_id: str) -> dict[str, Any]:
        """Artist first, then its upcoming shows, then its past setlists."""
        candidate = await self._resolve_artist(artist_id)
        await self._enrich_from_spotify(candidate)
        artist = await self._reconciler.save_artist(candidate)

        shows = await self._sync_artist_shows(artist)
        setlists = await self.import_artist_setlists(artist)
        return {
            "artist": {"id": artist.id, "name": artist.name},
            "shows": shows.to_dict(),
            "setlists": setlists.to_dict(),
        }

    async def _resolve_artist(self, artist_id: str) -> Artist:
        async with self._db.session_scope() as session:
            repo = ArtistRepository(session)
            stored = await repo.get(artist_id)
            if stored is None:
                stored = await repo.get_by_external_id("ticketmaster_id", artist_id)

        tm_id = stored.ticketmaster_id if stored else artist_id
        if tm_id:
            attraction = await self._ticketmaster.get_attraction(tm_id)
            if attraction is not None:
                fetched = artist_from_ticketmaster(attraction)
                if stored is not None:
                    # Keep our id, the fresh fields merge in via coalesce
                    fetched.id = stored.id
                return fetched

        if stored is not None:
            return stored

        try:
            data = await self._spotify.get_artist(artist_id)
        except ConfigurationError:
            data = None
        if data is not None:
            return artist_from_spotify(data)
        raise EntityNotFoundException("artist", artist_id)

    async def _enrich_from_spotify(self, artist: Artist) -> None:
        """Best-effort Spotify match by exact name. Failure leaves the artist as-is."""
        if artist.spotify_id:
            return
        try:
            results = await self._spotify.search_artists(artist.name, limit=5)
        except (ConfigurationError, ExternalServiceError) as e:
            logger.warning("Spotify lookup for %s skipped: %s", artist.name, e)
            return

        wanted = artist.name.casefold()
        for item in results:
            if str(item.get("name", "")).casefold() != wanted:
                continue
            match = artist_from_spotify(item)
            artist.spotify_id = match.spotify_id
            artist.popularity = match.popularity
            artist.followers = match.followers
            artist.genres = artist.genres or match.genres
            artist.image_url = artist.image_url or match.image_url
            logger.debug("Matched %s to Spotify artist %s", artist.name, match.spotify_id)
            return

    async def _sync_artist_shows(self, artist: Artist) -> BatchResult:
        result = BatchResult()
        if not artist.ticketmaster_id:
            return result

        try:
            events = await self._ticketmaster.get_artist_events(artist.ticketmaster_id)
        except ExternalServiceError as e:
            logger.warning("Could not fetch events for %s: %s", artist.name, e)
            result.record_error(artist.id, e)
            return result

        async with self._db.session_scope() as session:
            known = {
                s.id
                for s in await ShowRepository(session).list_for_artist(
                    artist.id, display_ready_only=False
                )
            }

        for event in events:
            result.processed += 1
            event_id = str(event.get("id") or f"event#{result.processed}")
            try:
                show, _headliner, venue = show_from_ticketmaster(event)
                show.artist_id = artist.id
                saved = await self._reconciler.save_show(show, venue=venue)
            except Exception as e:
                logger.warning("Skipping event %s for %s: %s", event_id, artist.name, e)
                result.record_error(event_id, e)
                continue
            if saved.id in known:
                result.updated += 1
            else:
                result.created += 1

        logger.info(
            "Synced %d/%d shows for %s",
            result.processed - result.failed,
            result.processed,
            artist.name,
            extra={"artist_id": artist.id, **result.to_dict()},
        )
        return result

    # =========================================================================
    # SETLISTS
    # =========================================================================

    async def import_artist_setlists(
        self, artist: Artist, max_setlists: int | None = None
    ) -> BatchResult:
        """Import an artist's recent setlists from Setlist.fm and log a job_logs row."""
        limit = max_setlists or self._max_setlists
        result = BatchResult()

        try:
            raw_setlists = await self._fetch_setlists(artist, limit)
        except ExternalServiceError as e:
            logger.warning("Setlist search failed for %s: %s", artist.name, e)
            result.record_error(artist.id, e)
            raw_setlists = []

        if raw_setlists and not artist.setlistfm_mbid:
            artist = await self._learn_mbid(artist, raw_setlists[0])

        for raw in raw_setlists:
            result.processed += 1
            setlist_ref = str(raw.get("id") or f"setlist#{result.processed}")
            try:
                _setlist, created = await self._setlists.process_setlist_data(artist, raw)
            except Exception as e:
                logger.warning(
                    "Skipping setlist %s for %s: %s",
                    setlist_ref,
                    artist.name,
                    e,
                    extra={"artist_id": artist.id, "setlistfm_id": setlist_ref},
                )
                result.record_error(setlist_ref, e)
                continue
            if created:
                result.created += 1
            else:
                result.updated += 1

        async with self._db.session_scope() as session:
            await JobLogRepository(session).add(
                SETLIST_IMPORT_JOB,
                result,
                {"artist_id": artist.id, "artist_name": artist.name},
            )
        logger.info(
            "Setlist import for %s: processed=%d created=%d failed=%d",
            artist.name,
            result.processed,
            result.created,
            result.failed,
            extra={"artist_id": artist.id, "job_status": result.job_status.value},
        )
        return result

    async def _fetch_setlists(self, artist: Artist, limit: int) -> list[dict[str, Any]]:
        collected: list[dict[str, Any]] = []
        page = 1
        while len(collected) < limit:
            if page > 1:
                await self._throttle()
            if artist.setlistfm_mbid:
                batch = await self._setlistfm.search_setlists(
                    artist_mbid=artist.setlistfm_mbid, page=page
                )
            else:
                batch = await self._setlistfm.search_setlists(
                    artist_name=artist.name, page=page
                )
            if not batch:
                break
            collected.extend(batch)
            page += 1
        return collected[:limit]

    async def _learn_mbid(self, artist: Artist, raw: dict[str, Any]) -> Artist:
        """Pick up the MusicBrainz id from a name-searched setlist."""
        raw_artist = raw.get("artist") or {}
        if str(raw_artist.get("name", "")).casefold() != artist.name.casefold():
            return artist
        try:
            found = artist_from_setlistfm(raw_artist)
        except ValidationException:
            return artist
        artist.setlistfm_mbid = found.setlistfm_mbid
        return await self._reconciler.save_artist(artist)

    async def sync_setlist(self, setlist_id: str) -> dict[str, Any]:
        """Re-fetch one setlist (by our id or its Setlist.fm id) and store it."""
        async with self._db.session_scope() as session:
            repo = SetlistRepository(session)
            stored = await repo.get(setlist_id) or await repo.get_by_setlistfm_id(setlist_id)
            artist = None
            if stored is not None and stored.artist_id:
                artist = await ArtistRepository(session).get(stored.artist_id)

        if stored is not None and not stored.setlistfm_id:
            raise BusinessRuleViolation(
                f"Setlist {stored.id} was not imported from Setlist.fm, nothing to sync"
            )
        setlistfm_id = stored.setlistfm_id if stored else setlist_id
        raw = await self._setlistfm.get_setlist(setlistfm_id)
        if raw is None:
            raise EntityNotFoundException("setlist", setlist_id)

        if artist is None:
            artist = await self._reconciler.save_artist(
                artist_from_setlistfm(raw.get("artist") or {})
            )
        setlist, created = await self._setlists.process_setlist_data(artist, raw)
        async with self._db.session_scope() as session:
            songs = await SetlistSongRepository(session).list_for_setlist(setlist.id)
        return {"setlistId": setlist.id, "created": created, "songs": len(songs)}

    async def get_artist_setlists(self, artist_id: str) -> ArtistSetlists:
        """Cached shows + setlists; sparse data schedules a background import."""
        async with self._db.session_scope() as session:
            artist = await ArtistRepository(session).get(artist_id)
            if artist is None:
                raise EntityNotFoundException("artist", artist_id)
            shows = await ShowRepository(session).list_for_artist(artist_id)
            setlist_repo = SetlistRepository(session)
            song_repo = SetlistSongRepository(session)
            data: list[CachedShowSetlist] = []
            for show in shows:
                setlist = await setlist_repo.get_by_show(show.id)
                songs = await song_repo.list_for_setlist(setlist.id) if setlist else []
                data.append(CachedShowSetlist(show=show, setlist=setlist, songs=songs))

        refresh = False
        if len(shows) < self._sparse_show_threshold and self._background is not None:
            task = self._background.submit(
                f"setlists:{artist.id}", lambda: self.import_artist_setlists(artist)
            )
            refresh = task is not None
            if refresh:
                logger.info(
                    "Artist %s has %d cached show(s), importing setlists in background",
                    artist.id,
                    len(shows),
                )
        return ArtistSetlists(data=data, from_cache=True, refresh_scheduled=refresh)

    # =========================================================================
    # SHOW / VENUE
    # =========================================================================

    async def sync_show(self, show_id: str) -> dict[str, Any]:
        async with self._db.session_scope() as session:
            stored = await ShowRepository(session).get(show_id)
        tm_id = (stored.ticketmaster_id if stored else None) or show_id

        event = await self._ticketmaster.get_event(tm_id)
        if event is None:
            raise EntityNotFoundException("show", show_id)
        show, artist, venue = show_from_ticketmaster(event)
        if stored is not None:
            show.id = stored.id
        saved = await self._reconciler.save_show(show, artist=artist, venue=venue)
        return {
            "showId": saved.id,
            "artistId": saved.artist_id,
            "venueId": saved.venue_id,
            "complete": saved.is_complete,
        }

    async def sync_venue(
        self, venue_id: str, ticketmaster_venue_id: str | None = None
    ) -> VenueSyncResult:
        """Fetch and reconcile every upcoming show at a venue.

        Raises:
            EntityNotFoundException: Unknown venue and no Ticketmaster id given.
            ValidationException: No Ticketmaster id can be resolved for the venue.
        """
        async with self._db.session_scope() as session:
            stored = await VenueRepository(session).get(venue_id)
        if stored is None and not ticketmaster_venue_id:
            raise EntityNotFoundException("venue", venue_id)
        tm_id = ticketmaster_venue_id or (stored.ticketmaster_id if stored else None)
        if not tm_id:
            raise ValidationException(f"Venue {venue_id} has no Ticketmaster id")

        venue = stored
        venue_data = await self._ticketmaster.get_venue(tm_id)
        if venue_data is not None:
            fetched = venue_from_ticketmaster(venue_data)
            if stored is not None:
                fetched.id = stored.id
            venue = await self._reconciler.save_venue(fetched)
        if venue is None:
            raise EntityNotFoundException("venue", tm_id)

        events = await self._ticketmaster.get_venue_events(tm_id)
        outcome = VenueSyncResult()
        for event in events:
            try:
                show, artist, _embedded_venue = show_from_ticketmaster(event)
                show.venue_id = venue.id
                await self._reconciler.save_show(show, artist=artist)
            except Exception as e:
                outcome.failed += 1
                logger.warning(
                    "Skipping event %s at venue %s: %s", event.get("id"), venue.id, e
                )
                continue
            outcome.saved += 1

        outcome.message = f"Synced {outcome.saved} of {len(events)} shows for {venue.name}"
        logger.info("%s", outcome.message, extra={"venue_id": venue.id})
        return outcome

    # =========================================================================
    # CRON
    # =========================================================================

    async def sync_stale_artists(self, limit: int = 20) -> BatchResult:
        """Re-sync artists whose next eligible sync time has passed."""
        async with self._db.session_scope() as session:
            due = await SyncStateRepository(session).list_due(
                EntityType.ARTIST.value,
                self._clock(),
                limit,
                stuck_after=self._freshness.stuck_sync,
            )

        result = BatchResult()
        for index, artist_id in enumerate(due):
            if index:
                await self._throttle()
            result.processed += 1
            task = await self.run_task(EntityType.ARTIST, artist_id)
            if task.error:
                result.record_error(artist_id, task.error)
            elif task.result and task.result.get("skipped"):
                result.skipped += 1
            else:
                result.updated += 1

        logger.info(
            "Stale artist sync: %d due, %d failed", result.processed, result.failed
        )
        return result
