"""Shared fixtures: a throwaway SQLite store, fake vendor clients and the API client.

Hey future me - the fakes implement the SAME ports the real clients do and just
hand back dicts shaped like the vendor JSON, so everything from the mappers down
runs for real. Tests configure them by filling the dicts (``ticketmaster.events``,
``setlistfm.setlists`` ...) before calling the code under test.
"""

import asyncio
import uuid
from collections.abc import AsyncGenerator, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from theset.config import DatabaseSettings, Settings, SyncSettings
from theset.config.settings import (
    ApiSettings,
    SetlistFmSettings,
    SpotifySettings,
    TicketmasterSettings,
)
from theset.domain.entities import Artist, SetlistSong, Show, Track, Venue
from theset.domain.exceptions import ExternalServiceError
from theset.domain.ports import ISetlistFmClient, ISpotifyClient, ITicketmasterClient
from theset.infrastructure.lifecycle import ExternalClients
from theset.infrastructure.persistence import (
    ArtistRepository,
    Database,
    SetlistRepository,
    SetlistSongRepository,
    ShowRepository,
    TrackRepository,
    VenueRepository,
)
from theset.main import create_app

SYNC_TOKEN = "test-sync-token"


# =============================================================================
# VENDOR PAYLOADS
# =============================================================================


class VendorPayloads:
    """Builders for vendor-shaped JSON."""

    @staticmethod
    def tm_attraction(attraction_id: str = "K8vZ917", name: str = "The Band") -> dict[str, Any]:
        return {
            "id": attraction_id,
            "name": name,
            "url": f"https://www.ticketmaster.com/artist/{attraction_id}",
            "images": [
                {"url": "https://img.example/small.jpg", "width": 100},
                {"url": "https://img.example/large.jpg", "width": 1024},
            ],
            "classifications": [
                {"genre": {"name": "Rock"}, "subGenre": {"name": "Undefined"}}
            ],
            "upcomingEvents": {"_total": 2},
        }

    @staticmethod
    def tm_venue(venue_id: str = "KovZpZA7", name: str = "The Arena") -> dict[str, Any]:
        return {
            "id": venue_id,
            "name": name,
            "city": {"name": "Chicago"},
            "state": {"name": "Illinois"},
            "country": {"name": "United States Of America"},
            "address": {"line1": "1901 W Madison St"},
            "postalCode": "60612",
            "location": {"latitude": "41.8807", "longitude": "-87.6742"},
        }

    @classmethod
    def tm_event(
        cls,
        event_id: str,
        attraction: dict[str, Any] | None = None,
        venue: dict[str, Any] | None = None,
        date: str = "2026-11-20",
    ) -> dict[str, Any]:
        embedded: dict[str, Any] = {}
        if attraction is not None:
            embedded["attractions"] = [attraction]
        if venue is not None:
            embedded["venues"] = [venue]
        return {
            "id": event_id,
            "name": f"Event {event_id}",
            "url": f"https://www.ticketmaster.com/event/{event_id}",
            "dates": {
                "start": {"localDate": date, "localTime": "20:00:00"},
                "status": {"code": "onsale"},
            },
            "_embedded": embedded,
        }

    @staticmethod
    def sfm_setlist(
        setlist_id: str,
        venue_id: str = "6bd6ca6e",
        event_date: str = "12-03-2025",
        songs: list[str] | None = None,
        encore: list[str] | None = None,
        artist_name: str = "The Band",
        mbid: str = "mbid-the-band",
    ) -> dict[str, Any]:
        sets: list[dict[str, Any]] = [
            {"song": [{"name": name} for name in (songs or ["Intro", "Hit Single"])]}
        ]
        if encore:
            sets.append({"encore": 1, "song": [{"name": name} for name in encore]})
        return {
            "id": setlist_id,
            "eventDate": event_date,
            "artist": {"mbid": mbid, "name": artist_name},
            "venue": {
                "id": venue_id,
                "name": f"Club {venue_id}",
                "city": {
                    "name": "Berlin",
                    "country": {"code": "DE", "name": "Germany"},
                    "coords": {"lat": 52.52, "long": 13.40},
                },
            },
            "tour": {"name": "World Tour"},
            "sets": {"set": sets},
        }

    @staticmethod
    def spotify_artist(spotify_id: str = "sp1", name: str = "The Band") -> dict[str, Any]:
        return {
            "id": spotify_id,
            "name": name,
            "genres": ["indie rock"],
            "popularity": 71,
            "followers": {"total": 120000},
            "images": [{"url": "https://img.example/sp.jpg", "width": 640}],
            "external_urls": {"spotify": f"https://open.spotify.com/artist/{spotify_id}"},
        }

    @staticmethod
    def spotify_track(
        track_id: str, name: str, popularity: int = 50, album: str | None = "Debut"
    ) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": track_id,
            "name": name,
            "duration_ms": 201000,
            "popularity": popularity,
            "preview_url": None,
        }
        if album:
            data["album"] = {"name": album, "images": [{"url": "https://img.example/a.jpg"}]}
        return data


@pytest.fixture
def payloads() -> type[VendorPayloads]:
    return VendorPayloads


# =============================================================================
# FAKE VENDOR CLIENTS
# =============================================================================


class FakeSpotify(ISpotifyClient):
    def __init__(self) -> None:
        self.artists: dict[str, dict[str, Any]] = {}
        self.search_results: list[dict[str, Any]] = []
        self.top_tracks: dict[str, list[dict[str, Any]]] = {}
        self.albums: dict[str, list[dict[str, Any]]] = {}
        self.album_tracks: dict[str, list[dict[str, Any]]] = {}
        self.fail_search = False
        self.closed = False

    async def get_artist(self, artist_id: str) -> dict[str, Any] | None:
        return self.artists.get(artist_id)

    async def search_artists(self, name: str, limit: int = 5) -> list[dict[str, Any]]:
        if self.fail_search:
            raise ExternalServiceError("Spotify", "503 on /search", status_code=503)
        return self.search_results[:limit]

    async def get_artist_top_tracks(
        self, artist_id: str, market: str = "US"
    ) -> list[dict[str, Any]]:
        return self.top_tracks.get(artist_id, [])

    async def get_artist_albums(
        self, artist_id: str, limit: int = 20
    ) -> list[dict[str, Any]]:
        return self.albums.get(artist_id, [])[:limit]

    async def get_album_tracks(self, album_id: str) -> list[dict[str, Any]]:
        return self.album_tracks.get(album_id, [])

    async def close(self) -> None:
        self.closed = True


class FakeTicketmaster(ITicketmasterClient):
    def __init__(self) -> None:
        self.attractions: dict[str, dict[str, Any]] = {}
        self.events: dict[str, dict[str, Any]] = {}
        self.artist_events: dict[str, list[dict[str, Any]]] = {}
        self.venues: dict[str, dict[str, Any]] = {}
        self.venue_events: dict[str, list[dict[str, Any]]] = {}
        self.closed = False

    async def search_attractions(self, keyword: str, size: int = 10) -> list[dict[str, Any]]:
        wanted = keyword.casefold()
        return [a for a in self.attractions.values() if wanted in a["name"].casefold()][:size]

    async def get_attraction(self, attraction_id: str) -> dict[str, Any] | None:
        return self.attractions.get(attraction_id)

    async def get_event(self, event_id: str) -> dict[str, Any] | None:
        return self.events.get(event_id)

    async def get_artist_events(
        self, attraction_id: str, size: int = 50
    ) -> list[dict[str, Any]]:
        return self.artist_events.get(attraction_id, [])[:size]

    async def get_venue(self, venue_id: str) -> dict[str, Any] | None:
        return self.venues.get(venue_id)

    async def get_venue_events(self, venue_id: str, size: int = 50) -> list[dict[str, Any]]:
        return self.venue_events.get(venue_id, [])[:size]

    async def close(self) -> None:
        self.closed = True


class FakeSetlistFm(ISetlistFmClient):
    def __init__(self) -> None:
        self.setlists: dict[str, dict[str, Any]] = {}
        # Pages keyed by mbid or artist name; page N is index N-1
        self.pages: dict[str, list[list[dict[str, Any]]]] = {}
        self.searches: list[dict[str, Any]] = []
        self.closed = False

    async def get_setlist(self, setlist_id: str) -> dict[str, Any] | None:
        return self.setlists.get(setlist_id)

    async def search_setlists(
        self,
        artist_mbid: str | None = None,
        artist_name: str | None = None,
        page: int = 1,
    ) -> list[dict[str, Any]]:
        self.searches.append({"mbid": artist_mbid, "name": artist_name, "page": page})
        pages = self.pages.get(artist_mbid or artist_name or "", [])
        if page > len(pages):
            return []
        return pages[page - 1]

    async def search_artists(self, name: str) -> list[dict[str, Any]]:
        return []

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def spotify() -> FakeSpotify:
    return FakeSpotify()


@pytest.fixture
def ticketmaster() -> FakeTicketmaster:
    return FakeTicketmaster()


@pytest.fixture
def setlistfm() -> FakeSetlistFm:
    return FakeSetlistFm()


@pytest.fixture
def clients(
    spotify: FakeSpotify, ticketmaster: FakeTicketmaster, setlistfm: FakeSetlistFm
) -> ExternalClients:
    return ExternalClients(spotify=spotify, ticketmaster=ticketmaster, setlistfm=setlistfm)


# =============================================================================
# STORE
# =============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a per-test SQLite file. No vendor delays."""
    return Settings(
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'theset.db'}"),
        spotify=SpotifySettings(client_id="id", client_secret="secret"),
        ticketmaster=TicketmasterSettings(api_key="tm-key"),
        setlistfm=SetlistFmSettings(api_key="sfm-key"),
        sync=SyncSettings(request_delay_seconds=0),
        api=ApiSettings(sync_token=SYNC_TOKEN),
    )


@pytest.fixture
async def db(settings: Settings) -> AsyncGenerator[Database, None]:
    database = Database(settings)
    await database.create_tables()
    yield database
    await database.close()


@dataclass
class SeededSetlist:
    artist_id: str
    venue_id: str
    show_id: str
    setlist_id: str
    song_ids: list[str]
    track_ids: list[str]


async def seed_voteable_setlist(db: Database, song_count: int = 3) -> SeededSetlist:
    """Artist + venue + show + setlist with songs, plus a small track catalog."""
    suffix = uuid.uuid4().hex[:8]
    async with db.session_scope() as session:
        artist = await ArtistRepository(session).upsert(
            Artist(id=f"artist-{suffix}", name="The Band", spotify_id=f"sp-{suffix}")
        )
        venue = await VenueRepository(session).upsert(
            Venue(id=f"venue-{suffix}", name="The Arena", city="Chicago")
        )
        show = await ShowRepository(session).upsert(
            Show(
                id=f"show-{suffix}",
                name="The Band at The Arena",
                artist_id=artist.id,
                venue_id=venue.id,
            )
        )
        tracks = [
            Track(
                id=f"trk-{suffix}-{i}",
                artist_id=artist.id,
                name=f"Track {i}",
                spotify_id=f"trk-{suffix}-{i}",
                popularity=90 - i,
            )
            for i in range(song_count + 2)
        ]
        await TrackRepository(session).upsert_many(tracks)
        setlist, _created = await SetlistRepository(session).get_or_create_for_show(
            show.id, artist.id
        )
        songs = await SetlistSongRepository(session).replace_songs(
            setlist.id,
            [
                SetlistSong(
                    id=str(uuid.uuid4()),
                    setlist_id=setlist.id,
                    name=f"Song {i}",
                    position=i,
                )
                for i in range(song_count)
            ],
        )
    return SeededSetlist(
        artist_id=artist.id,
        venue_id=venue.id,
        show_id=show.id,
        setlist_id=setlist.id,
        song_ids=[s.id for s in songs],
        track_ids=[t.id for t in tracks],
    )


@pytest.fixture
async def seeded(db: Database) -> SeededSetlist:
    return await seed_voteable_setlist(db)


# =============================================================================
# API
# =============================================================================


@pytest.fixture
def seeded_store(settings: Settings) -> SeededSetlist:
    """Seed the store BEFORE the app starts (for sync TestClient tests)."""

    async def _seed() -> SeededSetlist:
        database = Database(settings)
        try:
            await database.create_tables()
            return await seed_voteable_setlist(database)
        finally:
            await database.close()

    return asyncio.run(_seed())


@pytest.fixture
def client(settings: Settings, clients: ExternalClients) -> Iterator[TestClient]:
    app = create_app(settings, clients)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {SYNC_TOKEN}"}
