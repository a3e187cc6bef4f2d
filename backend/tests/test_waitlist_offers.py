"""Tests for the waitlist offer lifecycle.

Covers:
- Join: confirmed while capacity remains, waitlisted after
- FIFO promotion by created_at, regardless of trigger order
- Confirm strictly before expiry; at/after expiry the offer expires and cascades
- Sweeping twice cascades once
- Concurrent expiry: only the winning worker promotes
- Decline and cancel release the slot to the next in line
- Unlimited capacity keeps waitlist order; cancelled events stop cascading
"""
from datetime import timedelta

import pytest

from collective.auth import Principal
from collective.errors import ConflictLost, OfferExpired, PermissionDenied
from collective.models.event import Event
from collective.models.rsvp import EventRSVP, RSVPStatus
from collective.services import event_service, offer_service
from collective.timeutils import as_utc
from tests.conftest import T0, auth_headers, create_event, create_profile, member

WINDOW = timedelta(minutes=120)


def _status(db, rsvp_id):
    db.expire_all()
    return db.get(EventRSVP, rsvp_id).status


def _full_event_with_waitlist(db, waiting: int = 2):
    """Capacity-1 event: one confirmed RSVP plus ``waiting`` waitlisted, joined a minute apart."""
    host = create_profile(db, "Host")
    event_row = create_event(db, host, capacity=1)
    holder = create_profile(db, "Holder")
    held = offer_service.join_event(db, member(holder), event_row.event_id, now=T0)
    queue = []
    for i in range(waiting):
        p = create_profile(db, f"Waiter {i}")
        queue.append(offer_service.join_event(db, member(p), event_row.event_id, now=T0 + timedelta(minutes=i + 1)))
    return event_row, held, queue


class TestJoin:
    """Join decides confirmed vs waitlisted."""

    def test_join_confirms_until_full_then_waitlists(self, db):
        event_row, held, queue = _full_event_with_waitlist(db, waiting=1)
        assert held.status == RSVPStatus.confirmed
        assert queue[0].status == RSVPStatus.waitlisted

    def test_unlimited_capacity_always_confirms(self, db):
        host = create_profile(db, "Host")
        event_row = create_event(db, host, capacity=None)
        for i in range(3):
            p = create_profile(db, f"P{i}")
            rsvp = offer_service.join_event(db, member(p), event_row.event_id, now=T0)
            assert rsvp.status == RSVPStatus.confirmed

    def test_duplicate_join_rejected(self, db, client):
        host = create_profile(db, "Host")
        alice = create_profile(db, "Alice")
        event_row = create_event(db, host, capacity=5)
        headers = auth_headers(alice.profile_id)
        assert client.post(f"/api/events/{event_row.event_id}/rsvps", json={}, headers=headers).status_code == 201
        assert client.post(f"/api/events/{event_row.event_id}/rsvps", json={}, headers=headers).status_code == 422

    def test_anonymous_join_forbidden(self, db, client):
        host = create_profile(db, "Host")
        event_row = create_event(db, host, capacity=5)
        assert client.post(f"/api/events/{event_row.event_id}/rsvps", json={}).status_code == 403


class TestFifoPromotion:
    """Freed slots go to the oldest waitlisted RSVP."""

    def test_offer_goes_to_earliest_waitlisted(self, db):
        event_row, held, queue = _full_event_with_waitlist(db, waiting=3)
        promoted = offer_service.cancel_rsvp(db, Principal.service(), held.rsvp_id, now=T0 + timedelta(hours=1))
        assert promoted.rsvp_id == queue[0].rsvp_id
        assert promoted.status == RSVPStatus.offered
        assert _status(db, queue[1].rsvp_id) == RSVPStatus.waitlisted

    def test_offer_sets_expiry_window(self, db):
        event_row, held, queue = _full_event_with_waitlist(db, waiting=1)
        now = T0 + timedelta(hours=1)
        promoted = offer_service.cancel_rsvp(db, Principal.service(), held.rsvp_id, now=now)
        assert promoted.offer_expires_at.replace(tzinfo=None) == (now + WINDOW).replace(tzinfo=None)

    def test_per_event_offer_window(self, db):
        host = create_profile(db, "Host")
        event_row = create_event(db, host, capacity=1, offer_window_minutes=30)
        first = offer_service.join_event(db, member(create_profile(db, "A")), event_row.event_id, now=T0)
        offer_service.join_event(db, member(create_profile(db, "B")), event_row.event_id, now=T0 + timedelta(minutes=1))
        promoted = offer_service.cancel_rsvp(db, Principal.service(), first.rsvp_id, now=T0)
        assert promoted.offer_expires_at.replace(tzinfo=None) == (T0 + timedelta(minutes=30)).replace(tzinfo=None)

    def test_empty_waitlist_leaves_slot_open(self, db):
        event_row, held, _ = _full_event_with_waitlist(db, waiting=0)
        assert offer_service.cancel_rsvp(db, Principal.service(), held.rsvp_id, now=T0) is None
        assert offer_service.open_slots(db, event_row) == 1

    def test_waitlisted_cancel_does_not_promote(self, db):
        event_row, held, queue = _full_event_with_waitlist(db, waiting=2)
        assert offer_service.cancel_rsvp(db, Principal.service(), queue[0].rsvp_id, now=T0) is None
        assert _status(db, queue[1].rsvp_id) == RSVPStatus.waitlisted

    def test_new_join_waits_behind_pending_offer(self, db):
        event_row, held, queue = _full_event_with_waitlist(db, waiting=1)
        offer_service.cancel_rsvp(db, Principal.service(), held.rsvp_id, now=T0 + timedelta(minutes=5))
        late = offer_service.join_event(
            db, member(create_profile(db, "Late")), event_row.event_id, now=T0 + timedelta(minutes=6),
        )
        assert late.status == RSVPStatus.waitlisted


class TestConfirmOffer:
    """Confirmation succeeds only strictly before offer_expires_at."""

    def _offered(self, db):
        event_row, held, queue = _full_event_with_waitlist(db, waiting=2)
        offered = offer_service.cancel_rsvp(db, Principal.service(), held.rsvp_id, now=T0)
        return event_row, offered, queue

    def test_confirm_before_expiry(self, db):
        _, offered, _ = self._offered(db)
        rsvp = offer_service.confirm_offer(db, Principal.service(), offered.rsvp_id, now=T0 + WINDOW - timedelta(seconds=1))
        assert rsvp.status == RSVPStatus.confirmed
        assert rsvp.offer_expires_at is None

    def test_confirm_at_expiry_fails_and_cascades(self, db):
        _, offered, queue = self._offered(db)
        with pytest.raises(OfferExpired) as exc:
            offer_service.confirm_offer(db, Principal.service(), offered.rsvp_id, now=T0 + WINDOW)
        assert exc.value.status_code == 409
        assert _status(db, offered.rsvp_id) == RSVPStatus.expired
        assert _status(db, queue[1].rsvp_id) == RSVPStatus.offered

    def test_confirm_twice_is_noop(self, db):
        _, offered, _ = self._offered(db)
        now = T0 + timedelta(minutes=10)
        offer_service.confirm_offer(db, Principal.service(), offered.rsvp_id, now=now)
        again = offer_service.confirm_offer(db, Principal.service(), offered.rsvp_id, now=now)
        assert again.status == RSVPStatus.confirmed

    def test_only_holder_may_confirm(self, db):
        _, offered, _ = self._offered(db)
        stranger = create_profile(db, "Stranger")
        with pytest.raises(PermissionDenied):
            offer_service.confirm_offer(db, member(stranger), offered.rsvp_id, now=T0)

    def test_confirm_via_api_after_expiry_is_409(self, db, client):
        host = create_profile(db, "Host")
        event_row = create_event(db, host, capacity=1)
        first = create_profile(db, "First")
        second = create_profile(db, "Second")
        held = offer_service.join_event(db, member(first), event_row.event_id, now=T0)
        waiting = offer_service.join_event(db, member(second), event_row.event_id, now=T0)
        # Offer already past its window when the holder clicks confirm
        offer_service.cancel_rsvp(db, Principal.service(), held.rsvp_id, now=T0 - timedelta(days=1))

        resp = client.post(f"/api/rsvps/{waiting.rsvp_id}/confirm", headers=auth_headers(second.profile_id))
        assert resp.status_code == 409
        assert _status(db, waiting.rsvp_id) == RSVPStatus.expired


class TestExpirySweep:
    """Expired offers cascade exactly once."""

    def test_sweep_expires_and_promotes_next(self, db):
        event_row, held, queue = _full_event_with_waitlist(db, waiting=2)
        offer_service.cancel_rsvp(db, Principal.service(), held.rsvp_id, now=T0)
        result = offer_service.sweep_expired_offers(db, now=T0 + WINDOW)
        assert result.expired == 1
        assert result.promoted == [queue[1].rsvp_id]
        assert _status(db, queue[0].rsvp_id) == RSVPStatus.expired

    def test_sweep_twice_cascades_once(self, db):
        event_row, held, queue = _full_event_with_waitlist(db, waiting=3)
        offer_service.cancel_rsvp(db, Principal.service(), held.rsvp_id, now=T0)
        offer_service.sweep_expired_offers(db, now=T0 + WINDOW)
        second = offer_service.sweep_expired_offers(db, now=T0 + WINDOW)
        assert second.expired == 0
        assert _status(db, queue[2].rsvp_id) == RSVPStatus.waitlisted

    def test_sweep_before_expiry_is_noop(self, db):
        event_row, held, queue = _full_event_with_waitlist(db, waiting=1)
        offer_service.cancel_rsvp(db, Principal.service(), held.rsvp_id, now=T0)
        result = offer_service.sweep_expired_offers(db, now=T0 + WINDOW - timedelta(seconds=1))
        assert result.expired == 0
        assert _status(db, queue[0].rsvp_id) == RSVPStatus.offered

    def test_expire_offer_is_idempotent(self, db):
        event_row, held, queue = _full_event_with_waitlist(db, waiting=2)
        offer_service.cancel_rsvp(db, Principal.service(), held.rsvp_id, now=T0)
        assert offer_service.expire_offer(db, queue[0].rsvp_id, now=T0 + WINDOW) is True
        assert offer_service.expire_offer(db, queue[0].rsvp_id, now=T0 + WINDOW) is False

    def test_concurrent_expiry_promotes_once(self, db, session_factory):
        event_row, held, queue = _full_event_with_waitlist(db, waiting=3)
        offer_service.cancel_rsvp(db, Principal.service(), held.rsvp_id, now=T0)
        offered_id = queue[0].rsvp_id

        worker_a = session_factory()
        worker_b = session_factory()
        try:
            # Worker A has already read the offer when worker B expires it
            assert worker_a.get(EventRSVP, offered_id).status == RSVPStatus.offered
            assert offer_service.expire_offer(worker_b, offered_id, now=T0 + WINDOW) is True
            assert offer_service.expire_offer(worker_a, offered_id, now=T0 + WINDOW) is False
        finally:
            worker_a.close()
            worker_b.close()

        offered = db.query(EventRSVP).filter(EventRSVP.status == RSVPStatus.offered).all()
        assert [r.rsvp_id for r in offered] == [queue[1].rsvp_id]
        assert _status(db, queue[2].rsvp_id) == RSVPStatus.waitlisted


class TestReleases:
    """Decline and cancel hand the slot to the next in line."""

    def test_decline_promotes_next(self, db):
        event_row, held, queue = _full_event_with_waitlist(db, waiting=2)
        offer_service.cancel_rsvp(db, Principal.service(), held.rsvp_id, now=T0)
        promoted = offer_service.decline_offer(db, Principal.service(), queue[0].rsvp_id, now=T0)
        assert promoted.rsvp_id == queue[1].rsvp_id
        assert _status(db, queue[0].rsvp_id) == RSVPStatus.declined

    def test_decline_without_offer_conflicts(self, db):
        _, _, queue = _full_event_with_waitlist(db, waiting=1)
        with pytest.raises(ConflictLost):
            offer_service.decline_offer(db, Principal.service(), queue[0].rsvp_id, now=T0)

    def test_cancel_via_api_reports_promotion(self, db, client):
        host = create_profile(db, "Host")
        event_row = create_event(db, host, capacity=1)
        first = create_profile(db, "First")
        second = create_profile(db, "Second")
        held = offer_service.join_event(db, member(first), event_row.event_id, now=T0)
        waiting = offer_service.join_event(db, member(second), event_row.event_id, now=T0 + timedelta(minutes=1))

        resp = client.post(f"/api/rsvps/{held.rsvp_id}/cancel", headers=auth_headers(first.profile_id))
        assert resp.status_code == 200
        assert resp.json()["promoted_rsvp_id"] == waiting.rsvp_id

    def test_capacity_increase_fills_from_waitlist(self, db, client):
        event_row, held, queue = _full_event_with_waitlist(db, waiting=2)
        host_id = event_row.host_profile_id
        resp = client.put(
            f"/api/events/{event_row.event_id}",
            json={"capacity": 3, "version": event_row.version},
            headers=auth_headers(host_id),
        )
        assert resp.status_code == 200
        assert _status(db, queue[0].rsvp_id) == RSVPStatus.offered
        assert _status(db, queue[1].rsvp_id) == RSVPStatus.offered


class TestUnlimitedCapacity:
    """Lifting the capacity limit must not let newcomers skip the waitlist."""

    def test_removing_limit_offers_whole_waitlist(self, db):
        event_row, held, queue = _full_event_with_waitlist(db, waiting=2)
        host = Principal.authenticated(event_row.host_profile_id)
        event_service.update_event(
            db, host, event_row.event_id, event_row.version, {"capacity": None}, now=T0 + timedelta(hours=1),
        )
        assert _status(db, queue[0].rsvp_id) == RSVPStatus.offered
        assert _status(db, queue[1].rsvp_id) == RSVPStatus.offered

        late = offer_service.join_event(
            db, member(create_profile(db, "Late")), event_row.event_id, now=T0 + timedelta(hours=2),
        )
        assert late.status == RSVPStatus.confirmed

    def test_newcomer_queues_behind_existing_waitlist(self, db):
        event_row, held, queue = _full_event_with_waitlist(db, waiting=1)
        db.get(Event, event_row.event_id).capacity = None
        db.commit()

        late = offer_service.join_event(
            db, member(create_profile(db, "Late")), event_row.event_id, now=T0 + timedelta(minutes=5),
        )
        assert late.status == RSVPStatus.waitlisted
        assert _status(db, queue[0].rsvp_id) == RSVPStatus.waitlisted


class TestCancelledEvent:
    """Offers on a cancelled event expire without cascading."""

    def test_expiry_does_not_offer_next(self, db):
        event_row, held, queue = _full_event_with_waitlist(db, waiting=2)
        offer_service.cancel_rsvp(db, Principal.service(), held.rsvp_id, now=T0)
        host = Principal.authenticated(event_row.host_profile_id)
        event_service.cancel_event(db, host, event_row.event_id, db.get(Event, event_row.event_id).version)

        result = offer_service.sweep_expired_offers(db, now=T0 + WINDOW)
        assert result.expired == 1
        assert result.promoted == []
        assert _status(db, queue[1].rsvp_id) == RSVPStatus.waitlisted


class TestOfferChain:
    """A's offer lapses, B is offered and confirms in time."""

    def test_lapsed_offer_passes_to_next_who_confirms(self, db):
        event_row, held, (a, b) = _full_event_with_waitlist(db, waiting=2)
        freed_at = T0 + timedelta(minutes=10)

        offered = offer_service.cancel_rsvp(db, Principal.service(), held.rsvp_id, now=freed_at)
        assert offered.rsvp_id == a.rsvp_id
        assert as_utc(offered.offer_expires_at) == freed_at + WINDOW

        result = offer_service.sweep_expired_offers(db, now=freed_at + WINDOW)
        assert result.promoted == [b.rsvp_id]
        assert _status(db, a.rsvp_id) == RSVPStatus.expired

        confirmed = offer_service.confirm_offer(
            db, Principal.service(), b.rsvp_id, now=freed_at + WINDOW + timedelta(minutes=30),
        )
        assert confirmed.status == RSVPStatus.confirmed
        assert confirmed.offer_expires_at is None
