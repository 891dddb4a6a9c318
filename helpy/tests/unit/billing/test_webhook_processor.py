"""Tests for the verify, audit, reconcile pipeline and its response policy."""

from __future__ import annotations

import json

import pytest

from helpy.billing.auditor import EventAuditor
from helpy.billing.outcomes import OutcomeStatus, StageOutcome
from helpy.billing.webhook import (
    RESPONSE_POLICY,
    WebhookProcessor,
    classify_failure,
    decide_response,
)


def _checkout_event(event_id: str = "evt_1") -> dict:
    return {
        "id": event_id,
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_1",
                "object": "checkout.session",
                "customer": "cus_1",
                "subscription": "sub_1",
                "metadata": {"household_id": "H1", "plan": "core", "period": "monthly"},
            }
        },
    }


@pytest.fixture
def processor(provider, db) -> WebhookProcessor:
    return WebhookProcessor.from_collaborators(provider, db)


def test_policy_acknowledges_every_downstream_outcome() -> None:
    assert set(RESPONSE_POLICY) == set(OutcomeStatus)
    assert set(RESPONSE_POLICY.values()) == {200}


def test_decide_response_rejects_failed_verification() -> None:
    verification = StageOutcome.fatal("verify", "Webhook Error: bad")

    assert decide_response(verification, ()) == (400, {"detail": "Webhook Error: bad"})


def test_decide_response_acknowledges_fatal_downstream() -> None:
    verification = StageOutcome.success("verify")
    downstream = (StageOutcome.fatal("reconcile", "unexpected_error"), StageOutcome.recovered("audit", "persistence_failed"))

    assert decide_response(verification, downstream) == (200, {"received": True})


def test_classify_failure() -> None:
    assert classify_failure(OverflowError("year out of range")) == "invalid_time_value"
    assert classify_failure(ValueError("Invalid time value")) == "invalid_time_value"
    assert classify_failure(RuntimeError("boom")) == "unexpected_error"


def test_missing_signature_is_rejected_without_side_effects(processor, provider, db) -> None:
    result = processor.process(json.dumps(_checkout_event()).encode(), None)

    assert result.status_code == 400
    assert result.body == {"detail": "Missing stripe-signature header"}
    assert db.updates == []
    assert db.events == []
    assert provider.retrieve_calls == []


def test_bad_signature_is_rejected(processor, db, signer) -> None:
    payload = json.dumps(_checkout_event()).encode()

    result = processor.process(payload, signer(payload, secret="whsec_wrong"))

    assert result.status_code == 400
    assert result.body["detail"].startswith("Webhook Error:")
    assert result.verification.status is OutcomeStatus.FATAL
    assert db.updates == []
    assert db.events == []


def test_tampered_payload_is_rejected(processor, db, signer) -> None:
    payload = json.dumps(_checkout_event()).encode()
    signature = signer(payload)

    result = processor.process(payload.replace(b"core", b"pro!"), signature)

    assert result.status_code == 400
    assert db.updates == []


def test_verified_event_is_audited_and_reconciled(processor, db, signer) -> None:
    payload = json.dumps(_checkout_event("evt_99")).encode()

    result = processor.process(payload, signer(payload))

    assert result.status_code == 200
    assert result.body == {"received": True}
    assert result.event_id == "evt_99"
    assert result.event_type == "checkout.session.completed"
    assert result.stages["audit"].status is OutcomeStatus.SUCCESS
    assert result.stages["reconcile"].status is OutcomeStatus.SUCCESS
    assert db.events[0]["stripe_event_id"] == "evt_99"
    assert db.households["H1"]["subscription_status"] == "active"
    assert db.households["H1"]["max_family_members"] == 6


def test_event_without_household_skips_audit(processor, db, signer) -> None:
    event = {"id": "evt_2", "type": "customer.created", "data": {"object": {"id": "cus_1", "metadata": {}}}}
    payload = json.dumps(event).encode()

    result = processor.process(payload, signer(payload))

    assert result.status_code == 200
    assert result.stages["audit"].status is OutcomeStatus.SKIPPED
    assert result.stages["reconcile"].reason == "unhandled_event_type"
    assert db.events == []


def test_database_outage_is_still_acknowledged(processor, db, signer) -> None:
    db.fail_updates = True
    db.fail_events = True
    payload = json.dumps(_checkout_event()).encode()

    result = processor.process(payload, signer(payload))

    assert result.status_code == 200
    assert result.body == {"received": True}
    assert result.stages["audit"].status is OutcomeStatus.RECOVERED
    assert result.stages["reconcile"].status is OutcomeStatus.RECOVERED


def test_invalid_time_value_in_reconcile_is_acknowledged(provider, db, signer) -> None:
    class ExplodingReconciler:
        def reconcile(self, event):
            raise OverflowError("date value out of range")

    processor = WebhookProcessor(provider, ExplodingReconciler(), EventAuditor(db))
    payload = json.dumps(_checkout_event()).encode()

    result = processor.process(payload, signer(payload))

    assert result.status_code == 200
    assert result.body == {"received": True}
    assert result.stages["reconcile"].status is OutcomeStatus.FATAL
    assert result.stages["reconcile"].reason == "invalid_time_value"
    assert len(db.events) == 1


def test_invalid_timestamps_in_payload_do_not_break_processing(processor, db, signer) -> None:
    event = {
        "id": "evt_3",
        "type": "customer.subscription.updated",
        "data": {
            "object": {
                "id": "sub_1",
                "object": "subscription",
                "status": "active",
                "current_period_end": 10**20,
                "trial_end": "not-a-number",
                "items": {"data": [{"price": {"id": "price_pro_monthly"}}]},
                "metadata": {"household_id": "H1"},
            }
        },
    }
    payload = json.dumps(event).encode()

    result = processor.process(payload, signer(payload))

    assert result.status_code == 200
    assert db.events[0]["data"]["current_period_end"] is None
    assert db.households["H1"]["subscription_plan"] == "pro"
    assert "subscription_current_period_end" not in db.households["H1"]


def test_provider_without_webhook_secret_rejects(db, signer) -> None:
    class UnconfiguredProvider:
        def parse_event(self, payload, signature):
            raise RuntimeError("Stripe webhook secret is not configured; cannot verify signatures")

    processor = WebhookProcessor.from_collaborators(UnconfiguredProvider(), db)
    payload = json.dumps(_checkout_event()).encode()

    result = processor.process(payload, signer(payload))

    assert result.status_code == 400
    assert "not configured" in result.body["detail"]
    assert db.updates == []
