"""Integration tests for /api/unified-sync, /api/save-show and /api/sync/venue."""

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from theset.config import Settings
from theset.config.settings import ApiSettings
from theset.main import create_app


class TestUnifiedSync:
    def test_requires_bearer_token(self, client: TestClient) -> None:
        response = client.post(
            "/api/unified-sync", json={"entityType": "artist", "entityId": "K8vZ917"}
        )

        assert response.status_code == 401
        assert response.json() == {"error": "Missing Authorization header"}
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_wrong_token(self, client: TestClient) -> None:
        response = client.post(
            "/api/unified-sync",
            json={"entityType": "artist", "entityId": "K8vZ917"},
            headers={"Authorization": "Bearer nope"},
        )
        assert response.status_code == 401

    @pytest.mark.parametrize(
        "body",
        [
            {"entityType": "album", "entityId": "x"},
            {"entityType": "artist"},
            {"entityType": "artist", "entityId": ""},
        ],
    )
    def test_bad_body_is_400(
        self, client: TestClient, auth_headers: dict[str, str], body: dict
    ) -> None:
        response = client.post("/api/unified-sync", json=body, headers=auth_headers)

        assert response.status_code == 400
        assert "error" in response.json()

    def test_artist_sync_completes(
        self, client: TestClient, auth_headers: dict[str, str], ticketmaster, payloads
    ) -> None:
        attraction = payloads.tm_attraction()
        ticketmaster.attractions["K8vZ917"] = attraction
        ticketmaster.artist_events["K8vZ917"] = [
            payloads.tm_event("ev1", attraction=attraction, venue=payloads.tm_venue())
        ]

        response = client.post(
            "/api/unified-sync",
            json={"entityType": "artist", "entityId": "K8vZ917", "options": {"force": True}},
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["result"]["status"] == "completed"
        assert body["result"]["entityType"] == "artist"
        assert body["result"]["result"]["shows"]["created"] == 1
        assert body["result"]["taskId"]

    def test_failed_task_is_500_with_task_id(
        self, client: TestClient, auth_headers: dict[str, str]
    ) -> None:
        response = client.post(
            "/api/unified-sync",
            json={"entityType": "artist", "entityId": "nobody"},
            headers=auth_headers,
        )

        assert response.status_code == 500
        body = response.json()
        assert "nobody" in body["error"]
        assert body["taskId"]


@pytest.fixture
def tokenless_client(settings: Settings, clients) -> Iterator[TestClient]:
    app = create_app(settings.model_copy(update={"api": ApiSettings(sync_token="")}), clients)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


def test_unconfigured_sync_token_is_503(tokenless_client: TestClient) -> None:
    response = tokenless_client.post(
        "/api/unified-sync",
        json={"entityType": "artist", "entityId": "x"},
        headers={"Authorization": "Bearer anything"},
    )

    assert response.status_code == 503
    assert response.json() == {"error": "Sync token not configured"}


class TestSaveShow:
    def test_missing_id_is_400(self, client: TestClient) -> None:
        response = client.post("/api/save-show", json={"name": "No id"})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing required show ID"}

    def test_malformed_json_is_400(self, client: TestClient) -> None:
        response = client.post(
            "/api/save-show",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400

    def test_saves_show_and_schedules_venue_sync(self, client: TestClient) -> None:
        payload = {
            "id": "ev1",
            "name": "The Band at The Arena",
            "date": "2026-11-20T20:00:00Z",
            "ticketUrl": "https://tickets.example/ev1",
            "artist": {"id": "K8vZ917", "name": "The Band", "ticketmasterId": "K8vZ917"},
            "venue": {"id": "KovZpZA7", "name": "The Arena", "ticketmasterId": "KovZpZA7"},
        }

        first = client.post("/api/save-show", json=payload)
        second = client.post("/api/save-show", json=payload)

        assert first.status_code == 200
        assert first.json() == {
            "success": True,
            "showId": "ev1",
            "complete": True,
            "venueSyncScheduled": True,
        }
        assert second.json()["showId"] == "ev1"

    def test_show_without_venue_is_provisional(self, client: TestClient) -> None:
        response = client.post("/api/save-show", json={"id": "ev2", "name": "TBA"})

        assert response.status_code == 200
        assert response.json()["complete"] is False
        assert response.json()["venueSyncScheduled"] is False


class TestSaveArtist:
    @pytest.mark.parametrize("payload", [{"name": "No id"}, {"id": "K8vZ917"}])
    def test_missing_id_or_name_is_400(self, client: TestClient, payload: dict) -> None:
        response = client.post("/api/save-artist", json=payload)

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid artist data provided"}

    def test_saves_artist_and_schedules_import(self, client: TestClient) -> None:
        payload = {
            "id": "K8vZ917",
            "name": "The Band",
            "ticketmasterId": "K8vZ917",
            "imageUrl": "https://img.example/band.jpg",
        }

        response = client.post("/api/save-artist", json=payload)

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "artistId": "K8vZ917",
            "importScheduled": True,
        }
        assert client.get("/api/setlist/K8vZ917").status_code == 200

    def test_known_artist_keeps_its_id(self, client: TestClient) -> None:
        client.post(
            "/api/save-artist",
            json={"id": "K8vZ917", "name": "The Band", "ticketmasterId": "K8vZ917"},
        )

        response = client.post(
            "/api/save-artist",
            json={"id": "sp1", "name": "The Band", "ticketmasterId": "K8vZ917", "spotifyId": "sp1"},
        )

        assert response.status_code == 200
        assert response.json()["artistId"] == "K8vZ917"


class TestSyncVenue:
    def test_unknown_venue_is_404(self, client: TestClient) -> None:
        response = client.post("/api/sync/venue", json={"venueId": "ghost"})
        assert response.status_code == 404

    def test_venue_without_ticketmaster_id_is_400(self, seeded_store, client: TestClient) -> None:
        response = client.post("/api/sync/venue", json={"venueId": seeded_store.venue_id})

        assert response.status_code == 400
        assert "Ticketmaster" in response.json()["error"]

    def test_syncs_venue_shows(self, client: TestClient, ticketmaster, payloads) -> None:
        ticketmaster.venues["KovZpZA7"] = payloads.tm_venue()
        ticketmaster.venue_events["KovZpZA7"] = [
            payloads.tm_event("ev1", attraction=payloads.tm_attraction()),
            payloads.tm_event("ev2", attraction=payloads.tm_attraction(), date="2026-11-21"),
        ]

        response = client.post(
            "/api/sync/venue",
            json={"venueId": "KovZpZA7", "ticketmasterVenueId": "KovZpZA7"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "savedShows": 2,
            "failedShows": 0,
            "message": "Synced 2 of 2 shows for The Arena",
        }
