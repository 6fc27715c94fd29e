"""Application lifecycle management for startup and shutdown tasks.

The lifespan builds everything request handlers need and parks it on
``app.state``:

- ``settings``, ``db``
- the three vendor clients
- ``background`` (BackgroundTaskRunner) and ``vote_broker`` (VoteEventBroker)
- the services: ``reconciler``, ``track_catalog``, ``setlist_service``,
  ``orchestrator``, ``vote_service``

The cron CLI reuses ``build_services`` so both entry points wire the same graph.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI

from theset.application.services import (
    EntityReconciler,
    SetlistService,
    SyncOrchestrator,
    TrackCatalogService,
    VoteEventBroker,
    VoteService,
)
from theset.application.workers import BackgroundTaskRunner
from theset.config import Settings, get_settings
from theset.domain.ports import ISetlistFmClient, ISpotifyClient, ITicketmasterClient
from theset.domain.value_objects import FreshnessPolicy
from theset.infrastructure.integrations import (
    SetlistFmClient,
    SpotifyClient,
    TicketmasterClient,
)
from theset.infrastructure.observability import configure_logging
from theset.infrastructure.persistence import Database

logger = logging.getLogger(__name__)


@dataclass
class ExternalClients:
    spotify: ISpotifyClient
    ticketmaster: ITicketmasterClient
    setlistfm: ISetlistFmClient

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExternalClients":
        return cls(
            spotify=SpotifyClient(settings.spotify),
            ticketmaster=TicketmasterClient(settings.ticketmaster),
            setlistfm=SetlistFmClient(settings.setlistfm),
        )

    async def close(self) -> None:
        for client in (self.spotify, self.ticketmaster, self.setlistfm):
            await client.close()


@dataclass
class Services:
    reconciler: EntityReconciler
    track_catalog: TrackCatalogService
    setlists: SetlistService
    orchestrator: SyncOrchestrator
    votes: VoteService


def build_services(
    settings: Settings,
    db: Database,
    clients: ExternalClients,
    background: BackgroundTaskRunner | None,
    broker: VoteEventBroker | None = None,
) -> Services:
    freshness = FreshnessPolicy.from_settings(settings.sync)
    track_catalog = TrackCatalogService(
        db,
        clients.spotify,
        freshness=freshness,
        max_albums=settings.sync.max_catalog_albums,
    )
    reconciler = EntityReconciler(
        db, freshness=freshness, background=background, track_catalog=track_catalog
    )
    setlists = SetlistService(db, reconciler)
    orchestrator = SyncOrchestrator(
        db,
        reconciler,
        setlists,
        ticketmaster=clients.ticketmaster,
        spotify=clients.spotify,
        setlistfm=clients.setlistfm,
        background=background,
        freshness=freshness,
        request_delay=settings.sync.request_delay_seconds,
        sparse_show_threshold=settings.sync.sparse_show_threshold,
        max_setlists_per_import=settings.sync.max_setlists_per_import,
    )
    votes = VoteService(
        db, broker=broker, anonymous_vote_limit=settings.voting.anonymous_vote_limit
    )
    return Services(
        reconciler=reconciler,
        track_catalog=track_catalog,
        setlists=setlists,
        orchestrator=orchestrator,
        votes=votes,
    )


async def prepare_database(settings: Settings) -> Database:
    """Create the Database; SQLite (and opted-in) setups get their tables created."""
    db = Database(settings)
    if settings.database.auto_create_tables or db.dialect_name == "sqlite":
        await db.create_tables()
        logger.info("Database tables ensured")
    return db


# Listen future me, everything before `yield` runs at STARTUP, everything after at
# SHUTDOWN. The finally block runs even when startup blew up halfway, so every
# cleanup step checks that its resource actually exists.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = getattr(app.state, "settings", None) or get_settings()
    app.state.settings = settings

    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting application: %s", settings.app_name)

    clients: ExternalClients | None = getattr(app.state, "clients", None)
    background: BackgroundTaskRunner | None = None
    try:
        db = await prepare_database(settings)
        app.state.db = db
        logger.info("Database initialized (%s)", db.dialect_name)

        if clients is None:
            clients = ExternalClients.from_settings(settings)
        app.state.clients = clients

        missing = settings.missing_sync_credentials()
        if missing:
            # The web app still serves cached data; only vendor fetches will fail
            logger.warning("Sync credentials missing: %s", ", ".join(missing))

        background = BackgroundTaskRunner(settings.sync.background_concurrency)
        broker = VoteEventBroker()
        app.state.background = background
        app.state.vote_broker = broker

        services = build_services(settings, db, clients, background, broker)
        app.state.reconciler = services.reconciler
        app.state.track_catalog = services.track_catalog
        app.state.setlist_service = services.setlists
        app.state.orchestrator = services.orchestrator
        app.state.vote_service = services.votes

        yield
    finally:
        logger.info("Shutting down application")

        if background is not None:
            try:
                await background.shutdown(timeout=10.0)
                logger.info("Background tasks stopped")
            except Exception as e:
                logger.exception("Error stopping background tasks: %s", e)

        if clients is not None:
            try:
                await clients.close()
                logger.info("HTTP clients closed")
            except Exception as e:
                logger.exception("Error closing HTTP clients: %s", e)

        try:
            if hasattr(app.state, "db"):
                await app.state.db.close()
                logger.info("Database connection closed")
        except Exception as e:
            logger.exception("Error closing database: %s", e)
