"""Tests for the subscription event audit trail."""

from __future__ import annotations

from helpy.billing.auditor import EventAuditor, fallback_payload, storable_payload
from helpy.billing.outcomes import OutcomeStatus


def test_record_stores_sanitized_subject(db, event_factory, subscription_factory) -> None:
    event = event_factory("customer.subscription.updated", subscription_factory(), event_id="evt_42")

    outcome = EventAuditor(db).record(event)

    assert outcome.status is OutcomeStatus.SUCCESS
    assert len(db.events) == 1
    row = db.events[0]
    assert row["household_id"] == "H1"
    assert row["stripe_event_id"] == "evt_42"
    assert row["event_type"] == "customer.subscription.updated"
    assert row["data"]["current_period_end"] == "2023-11-14T22:13:20+00:00"


def test_record_skips_events_without_household(db, event_factory, subscription_factory) -> None:
    event = event_factory("customer.subscription.updated", subscription_factory(household_id=None))

    outcome = EventAuditor(db).record(event)

    assert outcome.status is OutcomeStatus.SKIPPED
    assert outcome.reason == "no_household_id"
    assert db.events == []


def test_record_survives_invalid_time_values(db, event_factory, subscription_factory) -> None:
    subject = subscription_factory(current_period_end=float("inf"), trial_end="not-a-number")
    event = event_factory("customer.subscription.updated", subject)

    outcome = EventAuditor(db).record(event)

    assert outcome.status is OutcomeStatus.SUCCESS
    assert db.events[0]["data"]["current_period_end"] is None
    assert db.events[0]["data"]["trial_end"] is None


def test_database_failure_is_recovered(db, event_factory, subscription_factory) -> None:
    db.fail_events = True

    outcome = EventAuditor(db).record(event_factory("invoice.paid", subscription_factory()))

    assert outcome.status is OutcomeStatus.RECOVERED
    assert outcome.reason == "persistence_failed"
    assert outcome.household_id == "H1"


def test_unstorable_payload_falls_back_to_minimal_record() -> None:
    subject = {"id": "sub_1", "object": "subscription", "metadata": {"household_id": "H1"}, "amount": float("nan")}

    assert storable_payload(subject) == {
        "id": "sub_1",
        "object": "subscription",
        "metadata": {"household_id": "H1"},
        "sanitization_failed": True,
    }


def test_fallback_payload_drops_non_string_identifiers() -> None:
    assert fallback_payload({"id": 12, "metadata": "not json"}) == {
        "id": None,
        "object": None,
        "metadata": {},
        "sanitization_failed": True,
    }


def test_record_note_stores_handler_data(db, event_factory) -> None:
    event = event_factory("customer.subscription.trial_will_end", {"id": "sub_1"}, event_id="evt_7")

    outcome = EventAuditor(db).record_note(event, "H1", {"trial_end": "2023-11-14T22:13:20+00:00"})

    assert outcome.ok
    assert db.events == [
        {
            "household_id": "H1",
            "stripe_event_id": "evt_7",
            "event_type": "customer.subscription.trial_will_end",
            "data": {"trial_end": "2023-11-14T22:13:20+00:00"},
        }
    ]


def test_opaque_leaf_only_nulls_its_own_key(db, event_factory, subscription_factory) -> None:
    class Opaque:
        pass

    subject = subscription_factory(client_handle=Opaque())

    outcome = EventAuditor(db).record(event_factory("customer.subscription.updated", subject))

    assert outcome.status is OutcomeStatus.SUCCESS
    data = db.events[0]["data"]
    assert data["client_handle"] is None
    assert data["status"] == "active"
    assert "sanitization_failed" not in data
