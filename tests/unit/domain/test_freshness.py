"""Tests for freshness windows, sync state and batch bookkeeping."""

from datetime import UTC, datetime, timedelta

from theset.config import SyncSettings
from theset.domain.entities import Artist, BatchResult, JobStatus, SyncState, SyncStatus
from theset.domain.value_objects import FreshnessPolicy, has_stronger_data

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)


class TestFreshnessPolicy:
    def test_defaults(self) -> None:
        policy = FreshnessPolicy()
        assert policy.window_for("artist") == timedelta(hours=24)
        assert policy.window_for("track_catalog") == timedelta(days=7)

    def test_is_fresh_inside_window(self) -> None:
        policy = FreshnessPolicy()
        assert policy.is_fresh("artist", NOW - timedelta(hours=23), NOW)
        assert not policy.is_fresh("artist", NOW - timedelta(hours=25), NOW)
        assert not policy.is_fresh("artist", None, NOW)

    def test_naive_timestamps_are_utc(self) -> None:
        """SQLite hands back naive datetimes."""
        synced = (NOW - timedelta(hours=1)).replace(tzinfo=None)
        assert FreshnessPolicy().is_fresh("venue", synced, NOW)

    def test_from_settings(self) -> None:
        policy = FreshnessPolicy.from_settings(
            SyncSettings(artist_ttl_hours=2, track_catalog_ttl_days=1)
        )
        assert policy.next_sync_at("artist", NOW) == NOW + timedelta(hours=2)
        assert policy.track_catalog == timedelta(days=1)


class TestStrongerData:
    def test_new_external_id_is_stronger(self) -> None:
        stored = Artist(id="a1", name="The Band", ticketmaster_id="a1")
        candidate = Artist(id="a1", name="The Band", ticketmaster_id="a1", spotify_id="sp1")
        assert has_stronger_data("artist", stored, candidate)

    def test_same_ids_and_other_fields_are_not(self) -> None:
        stored = Artist(id="a1", name="The Band", ticketmaster_id="a1", spotify_id="sp1")
        candidate = Artist(id="a1", name="The Band (renamed)", popularity=99)
        assert not has_stronger_data("artist", stored, candidate)


class TestSyncState:
    def test_due_when_no_next_time(self) -> None:
        assert SyncState("artist", "a1").is_due(NOW)

    def test_not_due_while_in_progress(self) -> None:
        state = SyncState("artist", "a1", status=SyncStatus.IN_PROGRESS)
        assert not state.is_due(NOW)
        state.started_at = NOW - timedelta(minutes=10)
        assert not state.is_due(NOW)

    def test_stuck_run_becomes_due(self) -> None:
        state = SyncState(
            "artist",
            "a1",
            status=SyncStatus.IN_PROGRESS,
            started_at=(NOW - timedelta(hours=2)).replace(tzinfo=None),
        )
        assert state.is_due(NOW)
        assert not state.is_due(NOW, stuck_after=timedelta(hours=3))

    def test_due_after_next_time(self) -> None:
        state = SyncState(
            "artist", "a1", status=SyncStatus.COMPLETED, next_sync_at=NOW - timedelta(seconds=1)
        )
        assert state.is_due(NOW)
        state.next_sync_at = NOW + timedelta(hours=1)
        assert not state.is_due(NOW)


class TestBatchResult:
    def test_job_status(self) -> None:
        assert BatchResult(processed=3).job_status is JobStatus.SUCCESS
        assert BatchResult(processed=10, errors=["x"] * 3).job_status is JobStatus.PARTIAL
        assert BatchResult(processed=2, errors=["x"] * 2).job_status is JobStatus.FAILURE

    def test_record_error_and_dict(self) -> None:
        result = BatchResult(processed=1)
        result.record_error("sl1", ValueError("bad date"))
        assert result.to_dict()["failed"] == 1
        assert result.errors == ["sl1: bad date"]
