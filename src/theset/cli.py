"""Cron-style sync entry point (``theset-sync``).

Examples:
    theset-sync artist K8vZ9171ob7
    theset-sync venue KovZpZA7AAEA --ticketmaster-id KovZpZA7AAEA
    theset-sync stale --limit 25
"""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from typing import Any

from theset.application.workers import BackgroundTaskRunner
from theset.config import Settings, get_settings
from theset.domain.entities import EntityType, SyncStatus
from theset.domain.exceptions import ConfigurationError
from theset.infrastructure.lifecycle import (
    ExternalClients,
    build_services,
    prepare_database,
)
from theset.infrastructure.observability import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="theset-sync",
        description="Sync artists, venues and setlists from Ticketmaster, Spotify and Setlist.fm",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--force", action="store_true", help="Ignore the next-eligible-sync time"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    artist = sub.add_parser("artist", help="Sync one artist (shows and setlists too)")
    artist.add_argument("artist_id")

    venue = sub.add_parser("venue", help="Sync all upcoming shows of a venue")
    venue.add_argument("venue_id")
    venue.add_argument("--ticketmaster-id", dest="ticketmaster_id", default=None)

    stale = sub.add_parser("stale", help="Re-sync artists whose sync is due")
    stale.add_argument("--limit", type=int, default=20)
    return parser


async def _run(args: argparse.Namespace, settings: Settings) -> dict[str, Any]:
    db = await prepare_database(settings)
    clients = ExternalClients.from_settings(settings)
    background = BackgroundTaskRunner(settings.sync.background_concurrency)
    try:
        services = build_services(settings, db, clients, background)
        orchestrator = services.orchestrator
        options = {"force": True} if args.force else {}

        if args.command == "artist":
            task = await orchestrator.run_task(EntityType.ARTIST, args.artist_id, options)
            outcome = {"status": task.status.value, "result": task.result, "error": task.error}
        elif args.command == "venue":
            if args.ticketmaster_id:
                options["ticketmasterVenueId"] = args.ticketmaster_id
            task = await orchestrator.run_task(EntityType.VENUE, args.venue_id, options)
            outcome = {"status": task.status.value, "result": task.result, "error": task.error}
        else:
            batch = await orchestrator.sync_stale_artists(limit=args.limit)
            outcome = {
                "status": SyncStatus.FAILED.value if batch.errors else SyncStatus.COMPLETED.value,
                "result": batch.to_dict(),
                "error": None,
            }
        # Let the track-catalog fetches the sync kicked off finish
        await background.drain(timeout=60.0)
        return outcome
    finally:
        await background.shutdown(timeout=5.0)
        await clients.close()
        await db.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=f"{settings.app_name}-sync",
    )

    try:
        settings.require_sync_credentials()
    except ConfigurationError as e:
        print(e.message, file=sys.stderr)
        return 2

    outcome = asyncio.run(_run(args, settings))
    print(json.dumps(outcome, indent=2, default=str))
    return 0 if outcome["status"] == SyncStatus.COMPLETED.value else 1


if __name__ == "__main__":
    sys.exit(main())
