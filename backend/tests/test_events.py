"""Tests for events, occurrences and per-date overrides.

Covers:
- Event create / update / cancel over the API
- Host-only writes, admin override, drafts hidden from others
- Optimistic locking: version mismatch -> 409
- Required fields cannot be cleared with null
- Occurrence expansion in the community timezone, bounded by max_occurrences
- Override patches: allow-list enforced, shallow merge with patch precedence
- Admin verify and spotlight
"""
from datetime import date, datetime, timedelta, timezone

import pytest

from collective.errors import ConstraintViolation
from collective.models.event import Event, OccurrenceOverride, Recurrence
from collective.services import occurrence_service
from tests.conftest import auth_headers, create_admin, create_event, create_profile, create_test_profile

# 20:00 in Denver on Monday 2026-06-01 is 02:00 UTC on the 2nd
WEEKLY_START = datetime(2026, 6, 2, 2, 0, tzinfo=timezone.utc)


def _make_event(client, uid: str, title: str = "Open Mic", **fields):
    """Helper — create an event via the API."""
    payload = {
        "title": title,
        "start_time_utc": (datetime.now(timezone.utc) + timedelta(days=2)).isoformat(),
        "is_published": True,
        **fields,
    }
    return client.post("/api/events/", json=payload, headers=auth_headers(uid))


class TestEventCreate:
    """Event creation and initial state."""

    def test_create_event(self, client):
        host = create_test_profile(client, "host-1", "Host")
        resp = _make_event(client, host["profile_id"], categories=["music", "open-mic", "music"])
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["host_profile_id"] == "host-1"
        assert data["version"] == 1
        assert data["status"] == "active"
        assert data["categories"] == ["music", "open-mic"]

    def test_anonymous_cannot_create(self, client):
        resp = client.post("/api/events/", json={
            "title": "Nope",
            "start_time_utc": datetime.now(timezone.utc).isoformat(),
        })
        assert resp.status_code == 403

    def test_end_before_start_rejected(self, client):
        create_test_profile(client, "host-1", "Host")
        start = datetime.now(timezone.utc) + timedelta(days=1)
        resp = _make_event(
            client, "host-1",
            start_time_utc=start.isoformat(),
            end_time_utc=(start - timedelta(hours=1)).isoformat(),
        )
        assert resp.status_code == 422

    def test_max_occurrences_must_be_positive(self, client):
        create_test_profile(client, "host-1", "Host")
        resp = _make_event(client, "host-1", recurrence="weekly", max_occurrences=0)
        assert resp.status_code == 422


class TestEventUpdate:
    """Update with authorization and optimistic locking."""

    def test_host_update_bumps_version(self, client):
        create_test_profile(client, "host-1", "Host")
        event = _make_event(client, "host-1").json()
        resp = client.put(
            f"/api/events/{event['event_id']}",
            json={"title": "Updated Title", "version": 1},
            headers=auth_headers("host-1"),
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == "Updated Title"
        assert resp.json()["version"] == 2

    def test_non_host_update_forbidden(self, client):
        create_test_profile(client, "host-1", "Host")
        create_test_profile(client, "other-1", "Other")
        event = _make_event(client, "host-1").json()
        resp = client.put(
            f"/api/events/{event['event_id']}",
            json={"title": "Hacked Title", "version": 1},
            headers=auth_headers("other-1"),
        )
        assert resp.status_code == 403

    def test_version_mismatch(self, client):
        create_test_profile(client, "host-1", "Host")
        event = _make_event(client, "host-1").json()
        resp = client.put(
            f"/api/events/{event['event_id']}",
            json={"title": "Stale Update", "version": 999},
            headers=auth_headers("host-1"),
        )
        assert resp.status_code == 409

    @pytest.mark.parametrize("field", ["title", "start_time_utc", "recurrence", "is_published", "categories"])
    def test_null_for_required_field_is_422(self, client, field):
        create_test_profile(client, "host-1", "Host")
        event = _make_event(client, "host-1").json()
        resp = client.put(
            f"/api/events/{event['event_id']}",
            json={field: None, "version": 1},
            headers=auth_headers("host-1"),
        )
        assert resp.status_code == 422
        assert client.get(f"/api/events/{event['event_id']}").json()["version"] == 1

    def test_null_clears_optional_field(self, client):
        create_test_profile(client, "host-1", "Host")
        event = _make_event(client, "host-1", description="Bring a guitar").json()
        resp = client.put(
            f"/api/events/{event['event_id']}",
            json={"description": None, "version": 1},
            headers=auth_headers("host-1"),
        )
        assert resp.status_code == 200
        assert resp.json()["description"] is None

    def test_cancel_then_cancel_again(self, client):
        create_test_profile(client, "host-1", "Host")
        event = _make_event(client, "host-1").json()
        url = f"/api/events/{event['event_id']}/cancel"
        first = client.post(url, json={"version": 1}, headers=auth_headers("host-1"))
        assert first.status_code == 200
        assert first.json()["status"] == "cancelled"
        again = client.post(url, json={"version": 2}, headers=auth_headers("host-1"))
        assert again.status_code == 422

    def test_host_can_delete(self, client):
        create_test_profile(client, "host-1", "Host")
        event = _make_event(client, "host-1").json()
        resp = client.delete(f"/api/events/{event['event_id']}", headers=auth_headers("host-1"))
        assert resp.status_code == 204
        assert client.get(f"/api/events/{event['event_id']}").status_code == 404


class TestAdminFlags:
    """Verification and spotlight are admin only."""

    def test_admin_verifies_event(self, db, client):
        host = create_profile(db, "Host")
        admin = create_admin(db)
        event_row = create_event(db, host)
        resp = client.post(f"/api/events/{event_row.event_id}/verify", headers=auth_headers(admin.profile_id))
        assert resp.status_code == 200
        assert resp.json()["verified_by_profile_id"] == admin.profile_id
        assert resp.json()["last_verified_at"] is not None

    def test_host_cannot_spotlight(self, db, client):
        host = create_profile(db, "Host")
        event_row = create_event(db, host)
        resp = client.post(
            f"/api/events/{event_row.event_id}/spotlight",
            json={"is_spotlight": True},
            headers=auth_headers(host.profile_id),
        )
        assert resp.status_code == 403


class TestOccurrences:
    """Series expansion in the community timezone."""

    def _weekly(self, **fields):
        return Event(
            title="Weekly Jam",
            host_profile_id="h",
            start_time_utc=WEEKLY_START,
            recurrence=Recurrence.weekly,
            **fields,
        )

    def test_date_keys_use_local_date(self):
        keys = occurrence_service.expand_occurrences(self._weekly(), date(2026, 6, 1), date(2026, 6, 20))
        assert keys == ["2026-06-01", "2026-06-08", "2026-06-15"]

    def test_max_occurrences_bounds_series(self):
        event_row = self._weekly(max_occurrences=2)
        keys = occurrence_service.expand_occurrences(event_row, date(2026, 6, 1), date(2026, 12, 31))
        assert keys == ["2026-06-01", "2026-06-08"]
        assert occurrence_service.occurrence_index(event_row, "2026-06-15") is None

    def test_biweekly_window_start_mid_series(self):
        event_row = self._weekly()
        event_row.recurrence = Recurrence.biweekly
        keys = occurrence_service.expand_occurrences(event_row, date(2026, 6, 10), date(2026, 7, 1))
        assert keys == ["2026-06-15", "2026-06-29"]

    def test_one_off_event_has_single_occurrence(self):
        event_row = self._weekly()
        event_row.recurrence = Recurrence.none
        assert occurrence_service.occurrence_index(event_row, "2026-06-01") == 0
        assert occurrence_service.occurrence_index(event_row, "2026-06-08") is None


class TestOverrides:
    """Per-date patches over the base event."""

    def test_merge_patch_wins(self):
        base = {"title": "Open Mic", "venue_id": "v1"}
        merged = occurrence_service.merge_override(base, {"title": "Special Night"})
        assert merged == {"title": "Special Night", "venue_id": "v1"}
        assert base == {"title": "Open Mic", "venue_id": "v1"}

    def test_unknown_patch_key_rejected(self):
        with pytest.raises(ConstraintViolation):
            occurrence_service.merge_override({"title": "Open Mic"}, {"host_profile_id": "evil"})

    def test_model_rejects_unknown_keys(self):
        with pytest.raises(ValueError):
            OccurrenceOverride(event_id="e", date_key="2026-06-01", override_patch={"recurrence": "none"})

    def test_host_overrides_one_date(self, db, client):
        host = create_profile(db, "Host")
        event_row = create_event(
            db, host, title="Open Mic", start=WEEKLY_START, recurrence=Recurrence.weekly, max_occurrences=4,
        )
        url = f"/api/events/{event_row.event_id}"
        resp = client.put(
            f"{url}/overrides/2026-06-08",
            json={"override_patch": {"title": "Special Night"}},
            headers=auth_headers(host.profile_id),
        )
        assert resp.status_code == 200, resp.text

        special = client.get(f"{url}/occurrences/2026-06-08").json()
        normal = client.get(f"{url}/occurrences/2026-06-15").json()
        assert special["title"] == "Special Night"
        assert normal["title"] == "Open Mic"

    def test_override_disallowed_field_is_422(self, db, client):
        host = create_profile(db, "Host")
        event_row = create_event(db, host, start=WEEKLY_START, recurrence=Recurrence.weekly)
        resp = client.put(
            f"/api/events/{event_row.event_id}/overrides/2026-06-08",
            json={"override_patch": {"max_occurrences": 1}},
            headers=auth_headers(host.profile_id),
        )
        assert resp.status_code == 422

    def test_off_cadence_date_rejected(self, db, client):
        host = create_profile(db, "Host")
        event_row = create_event(db, host, start=WEEKLY_START, recurrence=Recurrence.weekly)
        resp = client.put(
            f"/api/events/{event_row.event_id}/overrides/2026-06-09",
            json={"status": "cancelled"},
            headers=auth_headers(host.profile_id),
        )
        assert resp.status_code == 422

    def test_non_host_cannot_override(self, db, client):
        host = create_profile(db, "Host")
        other = create_profile(db, "Other")
        event_row = create_event(db, host, start=WEEKLY_START, recurrence=Recurrence.weekly)
        resp = client.put(
            f"/api/events/{event_row.event_id}/overrides/2026-06-08",
            json={"status": "cancelled"},
            headers=auth_headers(other.profile_id),
        )
        assert resp.status_code == 403

    def test_empty_patch_clears_override(self, db, client):
        host = create_profile(db, "Host")
        event_row = create_event(db, host, start=WEEKLY_START, recurrence=Recurrence.weekly)
        url = f"/api/events/{event_row.event_id}/overrides/2026-06-08"
        headers = auth_headers(host.profile_id)
        client.put(url, json={"status": "cancelled"}, headers=headers)
        resp = client.put(url, json={}, headers=headers)
        assert resp.status_code == 200
        assert resp.json() is None
        assert db.query(OccurrenceOverride).count() == 0
