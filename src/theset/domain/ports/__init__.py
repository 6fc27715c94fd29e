"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from typing import Any


# Yo, these are the PORTS for the three vendor catalogs. Core code treats each
# one as fetch(query) -> JSON | raises. Normalizing the JSON into entities is the
# mappers module's job, NOT the client's, so fakes in tests just return dicts.
class ISpotifyClient(ABC):
    """Port for the Spotify Web API (client-credentials flow)."""

    @abstractmethod
    async def get_artist(self, artist_id: str) -> dict[str, Any] | None:
        """Get an artist by Spotify ID, or None if unknown."""
        pass

    @abstractmethod
    async def search_artists(self, name: str, limit: int = 5) -> list[dict[str, Any]]:
        """Search artists by name."""
        pass

    @abstractmethod
    async def get_artist_top_tracks(
        self, artist_id: str, market: str = "US"
    ) -> list[dict[str, Any]]:
        """Get an artist's top tracks."""
        pass

    @abstractmethod
    async def get_artist_albums(
        self, artist_id: str, limit: int = 20
    ) -> list[dict[str, Any]]:
        """Get an artist's albums and singles."""
        pass

    @abstractmethod
    async def get_album_tracks(self, album_id: str) -> list[dict[str, Any]]:
        """Get the tracks of one album."""
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class ITicketmasterClient(ABC):
    """Port for the Ticketmaster Discovery API."""

    @abstractmethod
    async def search_attractions(
        self, keyword: str, size: int = 10
    ) -> list[dict[str, Any]]:
        """Search attractions (artists) by keyword."""
        pass

    @abstractmethod
    async def get_attraction(self, attraction_id: str) -> dict[str, Any] | None:
        """Get one attraction, or None if unknown."""
        pass

    @abstractmethod
    async def get_event(self, event_id: str) -> dict[str, Any] | None:
        """Get one event, or None if unknown."""
        pass

    @abstractmethod
    async def get_artist_events(
        self, attraction_id: str, size: int = 50
    ) -> list[dict[str, Any]]:
        """Get upcoming music events of an attraction."""
        pass

    @abstractmethod
    async def get_venue(self, venue_id: str) -> dict[str, Any] | None:
        """Get one venue, or None if unknown."""
        pass

    @abstractmethod
    async def get_venue_events(
        self, venue_id: str, size: int = 50
    ) -> list[dict[str, Any]]:
        """Get upcoming music events at a venue."""
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class ISetlistFmClient(ABC):
    """Port for the Setlist.fm REST API (v1.0)."""

    @abstractmethod
    async def get_setlist(self, setlist_id: str) -> dict[str, Any] | None:
        """Get one setlist, or None if unknown."""
        pass

    @abstractmethod
    async def search_setlists(
        self,
        artist_mbid: str | None = None,
        artist_name: str | None = None,
        page: int = 1,
    ) -> list[dict[str, Any]]:
        """Search an artist's setlists, most recent first."""
        pass

    @abstractmethod
    async def search_artists(self, name: str) -> list[dict[str, Any]]:
        """Search artists by name (returns MusicBrainz ids)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


__all__ = ["ISetlistFmClient", "ISpotifyClient", "ITicketmasterClient"]
