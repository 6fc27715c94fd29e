"""Freshness windows deciding when a stored entity may be re-fetched.

Hey future me - this is the "staleness window" of reconciliation. A stored row
younger than its window is returned as-is unless the candidate carries
STRONGER data, meaning an external id the row doesn't have yet. Everything
else (name tweaks, popularity jitter) waits for the window to expire so we
don't hammer the DB and the vendors on every page view.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

# External-id fields per entity kind, in conflict-target priority order
NATURAL_KEYS: dict[str, tuple[str, ...]] = {
    "artist": ("ticketmaster_id", "spotify_id", "setlistfm_mbid"),
    "venue": ("ticketmaster_id", "setlistfm_id"),
    "show": ("ticketmaster_id", "setlistfm_id"),
}


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@dataclass(frozen=True)
class FreshnessPolicy:
    """Freshness windows per entity kind."""

    artist: timedelta = timedelta(hours=24)
    show: timedelta = timedelta(hours=24)
    venue: timedelta = timedelta(hours=24)
    setlist: timedelta = timedelta(hours=24)
    track_catalog: timedelta = timedelta(days=7)
    stuck_sync: timedelta = timedelta(hours=1)

    @classmethod
    def from_settings(cls, sync_settings: Any) -> "FreshnessPolicy":
        return cls(
            artist=timedelta(hours=sync_settings.artist_ttl_hours),
            show=timedelta(hours=sync_settings.show_ttl_hours),
            venue=timedelta(hours=sync_settings.venue_ttl_hours),
            setlist=timedelta(hours=sync_settings.setlist_ttl_hours),
            track_catalog=timedelta(days=sync_settings.track_catalog_ttl_days),
            stuck_sync=timedelta(minutes=sync_settings.stuck_sync_minutes),
        )

    def window_for(self, kind: str) -> timedelta:
        window: timedelta = getattr(self, kind)
        return window

    def is_fresh(self, kind: str, synced_at: datetime | None, now: datetime) -> bool:
        if synced_at is None:
            return False
        return now - ensure_utc(synced_at) < self.window_for(kind)

    def next_sync_at(self, kind: str, now: datetime) -> datetime:
        return now + self.window_for(kind)


def has_stronger_data(kind: str, existing: Any, candidate: Any) -> bool:
    """True if the candidate knows an external id the stored row lacks."""
    for key in NATURAL_KEYS.get(kind, ()):
        if getattr(candidate, key, None) and not getattr(existing, key, None):
            return True
    return False
