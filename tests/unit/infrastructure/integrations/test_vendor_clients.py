"""Tests for the Spotify, Ticketmaster and Setlist.fm HTTP clients."""

import re

import httpx
import pytest
from pytest_httpx import HTTPXMock

from theset.config.settings import SetlistFmSettings, SpotifySettings, TicketmasterSettings
from theset.domain.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    RateLimitExceededError,
    ValidationException,
)
from theset.infrastructure.integrations import (
    SetlistFmClient,
    SpotifyClient,
    TicketmasterClient,
)

TM_EVENTS_URL = re.compile(r"https://app\.ticketmaster\.com/discovery/v2/events\.json\?.*")
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"


@pytest.fixture
async def ticketmaster():
    client = TicketmasterClient(TicketmasterSettings(api_key="tm-key"))
    yield client
    await client.close()


@pytest.fixture
async def spotify():
    client = SpotifyClient(SpotifySettings(client_id="id", client_secret="secret"))
    yield client
    await client.close()


@pytest.fixture
async def setlistfm():
    client = SetlistFmClient(SetlistFmSettings(api_key="sfm-key"))
    yield client
    await client.close()


class TestTicketmasterClient:
    """Error taxonomy and payload unwrapping."""

    async def test_artist_events_unwraps_embedded(
        self, ticketmaster: TicketmasterClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(
            url=TM_EVENTS_URL,
            json={"_embedded": {"events": [{"id": "ev1"}, {"id": "ev2"}]}},
        )

        events = await ticketmaster.get_artist_events("K8vZ917")

        assert [e["id"] for e in events] == ["ev1", "ev2"]
        request = httpx_mock.get_request()
        assert request is not None
        assert request.url.params["apikey"] == "tm-key"
        assert request.url.params["attractionId"] == "K8vZ917"

    async def test_empty_page_has_no_embedded_block(
        self, ticketmaster: TicketmasterClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(url=TM_EVENTS_URL, json={"page": {"totalElements": 0}})
        assert await ticketmaster.get_venue_events("KovZpZA7") == []

    async def test_404_is_none_for_single_lookups(
        self, ticketmaster: TicketmasterClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(status_code=404, json={"errors": []})
        assert await ticketmaster.get_attraction("missing") is None

    async def test_429_raises_rate_limit_with_retry_after(
        self, ticketmaster: TicketmasterClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(status_code=429, headers={"Retry-After": "7"})

        with pytest.raises(RateLimitExceededError) as exc_info:
            await ticketmaster.get_artist_events("K8vZ917")

        assert exc_info.value.retry_after == 7.0
        assert exc_info.value.status_code == 429

    async def test_5xx_raises_external_service_error(
        self, ticketmaster: TicketmasterClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(status_code=503)

        with pytest.raises(ExternalServiceError) as exc_info:
            await ticketmaster.get_venue("KovZpZA7")

        assert exc_info.value.status_code == 503
        assert not isinstance(exc_info.value, RateLimitExceededError)

    async def test_timeout_raises_external_service_error(
        self, ticketmaster: TicketmasterClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_exception(httpx.ReadTimeout("timed out"))

        with pytest.raises(ExternalServiceError, match="timeout"):
            await ticketmaster.get_event("ev1")

    async def test_missing_api_key_is_configuration_error(self) -> None:
        client = TicketmasterClient(TicketmasterSettings(api_key=""))
        with pytest.raises(ConfigurationError):
            await client.get_event("ev1")


class TestSpotifyClient:
    """Client-credentials token handling."""

    async def test_token_is_cached_between_calls(
        self, spotify: SpotifyClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(
            url=SPOTIFY_TOKEN_URL,
            method="POST",
            json={"access_token": "tok", "expires_in": 3600},
        )
        httpx_mock.add_response(
            url="https://api.spotify.com/v1/artists/sp1", json={"id": "sp1", "name": "The Band"}
        )
        httpx_mock.add_response(url="https://api.spotify.com/v1/artists/sp2", status_code=404)

        first = await spotify.get_artist("sp1")
        second = await spotify.get_artist("sp2")

        assert first == {"id": "sp1", "name": "The Band"}
        assert second is None
        token_requests = [r for r in httpx_mock.get_requests() if r.method == "POST"]
        assert len(token_requests) == 1
        api_request = httpx_mock.get_requests()[-1]
        assert api_request.headers["Authorization"] == "Bearer tok"

    async def test_token_failure_is_external_service_error(
        self, spotify: SpotifyClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(url=SPOTIFY_TOKEN_URL, method="POST", status_code=400)

        with pytest.raises(ExternalServiceError, match="token request failed"):
            await spotify.search_artists("The Band")

    async def test_unconfigured_client_raises_configuration_error(self) -> None:
        client = SpotifyClient(SpotifySettings(client_id="", client_secret=""))
        with pytest.raises(ConfigurationError):
            await client.get_artist("sp1")


class TestSetlistFmClient:
    """Header auth and the 404-means-empty search convention."""

    async def test_search_sends_api_key_header(
        self, setlistfm: SetlistFmClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(
            url=re.compile(r"https://api\.setlist\.fm/rest/1\.0/search/setlists\?.*"),
            json={"setlist": [{"id": "63de4613"}]},
        )

        results = await setlistfm.search_setlists(artist_mbid="mbid-1", page=2)

        assert results == [{"id": "63de4613"}]
        request = httpx_mock.get_request()
        assert request is not None
        assert request.headers["x-api-key"] == "sfm-key"
        assert request.url.params["artistMbid"] == "mbid-1"
        assert request.url.params["p"] == "2"

    async def test_search_404_means_no_setlists(
        self, setlistfm: SetlistFmClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(status_code=404)
        assert await setlistfm.search_setlists(artist_name="Nobody") == []

    async def test_search_requires_mbid_or_name(self, setlistfm: SetlistFmClient) -> None:
        with pytest.raises(ValidationException):
            await setlistfm.search_setlists()
