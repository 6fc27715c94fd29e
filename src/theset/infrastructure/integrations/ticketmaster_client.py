"""Ticketmaster Discovery API client."""

import logging
from typing import Any, cast

from theset.config.settings import TicketmasterSettings
from theset.domain.exceptions import ConfigurationError
from theset.domain.ports import ITicketmasterClient
from theset.infrastructure.integrations.base_client import BaseApiClient

logger = logging.getLogger(__name__)


class TicketmasterClient(BaseApiClient, ITicketmasterClient):
    """HTTP client for attractions, events and venues."""

    SERVICE_NAME = "Ticketmaster"
    API_BASE_URL = "https://app.ticketmaster.com/discovery/v2"

    def __init__(self, settings: TicketmasterSettings) -> None:
        super().__init__(timeout=settings.timeout)
        self.settings = settings

    async def _get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> Any:
        if not self.settings.api_key:
            raise ConfigurationError(
                "Ticketmaster API key not configured. Set TICKETMASTER_API_KEY."
            )
        query = {"apikey": self.settings.api_key, **(params or {})}
        return await self._request(
            "GET", path, params=query, allow_not_found=allow_not_found
        )

    @staticmethod
    def _embedded(data: Any, key: str) -> list[dict[str, Any]]:
        # Empty result pages have no _embedded block at all
        if not data:
            return []
        return cast(list[dict[str, Any]], data.get("_embedded", {}).get(key, []))

    async def search_attractions(
        self, keyword: str, size: int = 10
    ) -> list[dict[str, Any]]:
        data = await self._get(
            "/attractions.json",
            {"keyword": keyword, "classificationName": "music", "size": size},
        )
        return self._embedded(data, "attractions")

    async def get_attraction(self, attraction_id: str) -> dict[str, Any] | None:
        data = await self._get(
            f"/attractions/{attraction_id}.json", allow_not_found=True
        )
        return cast(dict[str, Any] | None, data)

    async def get_event(self, event_id: str) -> dict[str, Any] | None:
        data = await self._get(f"/events/{event_id}.json", allow_not_found=True)
        return cast(dict[str, Any] | None, data)

    async def get_artist_events(
        self, attraction_id: str, size: int = 50
    ) -> list[dict[str, Any]]:
        data = await self._get(
            "/events.json",
            {
                "attractionId": attraction_id,
                "classificationName": "music",
                "sort": "date,asc",
                "size": size,
            },
        )
        return self._embedded(data, "events")

    async def get_venue(self, venue_id: str) -> dict[str, Any] | None:
        data = await self._get(f"/venues/{venue_id}.json", allow_not_found=True)
        return cast(dict[str, Any] | None, data)

    async def get_venue_events(
        self, venue_id: str, size: int = 50
    ) -> list[dict[str, Any]]:
        data = await self._get(
            "/events.json",
            {
                "venueId": venue_id,
                "classificationName": "music",
                "sort": "date,asc",
                "size": size,
            },
        )
        return self._embedded(data, "events")
