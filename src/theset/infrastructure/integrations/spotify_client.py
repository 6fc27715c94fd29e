"""Spotify Web API client (client-credentials flow)."""

import asyncio
import logging
import time
from typing import Any, cast

import httpx

from theset.config.settings import SpotifySettings
from theset.domain.exceptions import ConfigurationError, ExternalServiceError
from theset.domain.ports import ISpotifyClient
from theset.infrastructure.integrations.base_client import BaseApiClient

logger = logging.getLogger(__name__)


class SpotifyClient(BaseApiClient, ISpotifyClient):
    """HTTP client for the Spotify catalog endpoints TheSet needs."""

    SERVICE_NAME = "Spotify"
    TOKEN_URL = "https://accounts.spotify.com/api/token"  # nosec B105 - public endpoint URL
    API_BASE_URL = "https://api.spotify.com/v1"

    # Refresh a minute early so a token never expires mid-sync
    TOKEN_EXPIRY_MARGIN = 60.0

    def __init__(self, settings: SpotifySettings) -> None:
        """
        Initialize Spotify client.

        Args:
            settings: Spotify configuration settings
        """
        super().__init__(timeout=settings.timeout)
        self.settings = settings
        self._access_token: str | None = None
        self._token_expires_at: float = 0.0
        self._token_lock = asyncio.Lock()

    # Hey future me - client-credentials tokens have NO user context, which is all
    # we need for public catalog reads (artists, top tracks, albums). The token is
    # cached until shortly before expiry; the lock stops a burst of concurrent
    # background track fetches from each requesting their own token.
    async def _get_access_token(self) -> str:
        if not self.settings.is_configured:
            raise ConfigurationError(
                "Spotify client_id/client_secret not configured. "
                "Set SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET."
            )
        async with self._token_lock:
            if self._access_token and time.monotonic() < self._token_expires_at:
                return self._access_token

            client = await self._get_client()
            try:
                response = await client.post(
                    self.TOKEN_URL,
                    data={"grant_type": "client_credentials"},
                    auth=(self.settings.client_id, self.settings.client_secret),
                )
            except httpx.TransportError as e:
                raise ExternalServiceError(self.SERVICE_NAME, str(e)) from e
            if response.is_error:
                raise ExternalServiceError(
                    self.SERVICE_NAME,
                    f"token request failed with {response.status_code}",
                    status_code=response.status_code,
                )
            payload = response.json()
            self._access_token = cast(str, payload["access_token"])
            expires_in = float(payload.get("expires_in", 3600))
            self._token_expires_at = (
                time.monotonic() + expires_in - self.TOKEN_EXPIRY_MARGIN
            )
            logger.debug("Obtained Spotify access token (expires in %ss)", expires_in)
            return self._access_token

    async def _api_get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> Any:
        token = await self._get_access_token()
        return await self._request(
            "GET",
            path,
            params=params,
            headers={"Authorization": f"Bearer {token}"},
            allow_not_found=allow_not_found,
        )

    async def get_artist(self, artist_id: str) -> dict[str, Any] | None:
        data = await self._api_get(f"/artists/{artist_id}", allow_not_found=True)
        return cast(dict[str, Any] | None, data)

    async def search_artists(self, name: str, limit: int = 5) -> list[dict[str, Any]]:
        data = await self._api_get(
            "/search", params={"q": name, "type": "artist", "limit": limit}
        )
        return cast(list[dict[str, Any]], (data or {}).get("artists", {}).get("items", []))

    async def get_artist_top_tracks(
        self, artist_id: str, market: str = "US"
    ) -> list[dict[str, Any]]:
        data = await self._api_get(
            f"/artists/{artist_id}/top-tracks", params={"market": market}
        )
        return cast(list[dict[str, Any]], (data or {}).get("tracks", []))

    async def get_artist_albums(
        self, artist_id: str, limit: int = 20
    ) -> list[dict[str, Any]]:
        data = await self._api_get(
            f"/artists/{artist_id}/albums",
            params={"include_groups": "album,single", "limit": limit},
        )
        return cast(list[dict[str, Any]], (data or {}).get("items", []))

    async def get_album_tracks(self, album_id: str) -> list[dict[str, Any]]:
        data = await self._api_get(f"/albums/{album_id}/tracks", params={"limit": 50})
        return cast(list[dict[str, Any]], (data or {}).get("items", []))
