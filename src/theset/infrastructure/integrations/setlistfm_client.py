"""Setlist.fm REST API (1.0) client."""

import logging
from typing import Any, cast

from theset.config.settings import SetlistFmSettings
from theset.domain.exceptions import ConfigurationError, ValidationException
from theset.domain.ports import ISetlistFmClient
from theset.infrastructure.integrations.base_client import BaseApiClient

logger = logging.getLogger(__name__)


class SetlistFmClient(BaseApiClient, ISetlistFmClient):
    """HTTP client for setlist and artist lookups."""

    SERVICE_NAME = "Setlist.fm"
    API_BASE_URL = "https://api.setlist.fm/rest/1.0"

    def __init__(self, settings: SetlistFmSettings) -> None:
        super().__init__(timeout=settings.timeout)
        self.settings = settings

    # Hey future me - setlist.fm wants the key in an x-api-key HEADER (not a query
    # param like Ticketmaster) and answers XML unless we ask for JSON.
    def _default_headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "x-api-key": self.settings.api_key}

    async def _get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> Any:
        if not self.settings.api_key:
            raise ConfigurationError(
                "Setlist.fm API key not configured. Set SETLISTFM_API_KEY."
            )
        return await self._request(
            "GET", path, params=params, allow_not_found=allow_not_found
        )

    async def get_setlist(self, setlist_id: str) -> dict[str, Any] | None:
        data = await self._get(f"/setlist/{setlist_id}", allow_not_found=True)
        return cast(dict[str, Any] | None, data)

    async def search_setlists(
        self,
        artist_mbid: str | None = None,
        artist_name: str | None = None,
        page: int = 1,
    ) -> list[dict[str, Any]]:
        """Search setlists by MusicBrainz id (preferred) or artist name.

        Setlist.fm answers 404 when an artist simply has no setlists, which is
        an empty result here, not an error.
        """
        params: dict[str, Any] = {"p": page}
        if artist_mbid:
            params["artistMbid"] = artist_mbid
        elif artist_name:
            params["artistName"] = artist_name
        else:
            raise ValidationException("artist_mbid or artist_name is required")

        data = await self._get("/search/setlists", params, allow_not_found=True)
        if not data:
            return []
        return cast(list[dict[str, Any]], data.get("setlist", []))

    async def search_artists(self, name: str) -> list[dict[str, Any]]:
        data = await self._get(
            "/search/artists",
            {"artistName": name, "sort": "relevance"},
            allow_not_found=True,
        )
        if not data:
            return []
        return cast(list[dict[str, Any]], data.get("artist", []))
