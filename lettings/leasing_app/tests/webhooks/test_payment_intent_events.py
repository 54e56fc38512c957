import json

import pytest
import stripe
from django.urls import reverse

from leasing_app.models import Payment, WebhookReceipt
from notifications.models import OutboundNotification


@pytest.fixture
def pending_payment(tenant, landlord, property_factory):
    return Payment.objects.create(
        tenant=tenant,
        landlord=landlord,
        property=property_factory(),
        amount="1000.00",
        payment_type=Payment.Type.MONTHLY_RENT,
        stripe_payment_intent_id="pi_123",
    )


def _post(api_client, event):
    return api_client.post(
        reverse("v1:webhooks-payment"),
        data=json.dumps(event),
        content_type="application/json",
        HTTP_STRIPE_SIGNATURE="t=1,v1=valid",
    )


def _fake_construct(monkeypatch, event):
    import leasing_app.api.views as views_mod

    def fake_construct_event(payload, sig_header, secret):
        return event

    monkeypatch.setattr(views_mod.stripe.Webhook, "construct_event", fake_construct_event)


@pytest.mark.django_db
def test_invalid_signature_is_rejected(api_client, monkeypatch):
    import leasing_app.api.views as views_mod

    def bad_signature(payload, sig_header, secret):
        raise stripe.SignatureVerificationError("bad sig", sig_header)

    monkeypatch.setattr(views_mod.stripe.Webhook, "construct_event", bad_signature)

    r = _post(api_client, {"id": "evt_bad"})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid signature"}
    assert WebhookReceipt.objects.count() == 0


@pytest.mark.django_db
def test_valid_signature_completes_payment_once_idempotent(api_client, monkeypatch, pending_payment, tenant, landlord):
    event = {
        "id": "evt_paid_1",
        "type": "payment_intent.succeeded",
        "created": 1700000000,
        "data": {"object": {"id": "pi_123", "latest_charge": "ch_999"}},
    }
    _fake_construct(monkeypatch, event)

    r1 = _post(api_client, event)
    assert r1.status_code == 200
    assert r1.json() == {"received": True}

    pending_payment.refresh_from_db()
    assert pending_payment.status == Payment.Status.COMPLETED
    assert pending_payment.paid_at is not None
    assert pending_payment.stripe_charge_id == "ch_999"

    # replay the same event
    r2 = _post(api_client, event)
    assert r2.status_code == 200
    assert r2.json()["duplicate"] is True

    assert WebhookReceipt.objects.filter(event_id="evt_paid_1").count() == 1
    assert OutboundNotification.objects.filter(user=tenant, template_key="payment_received").count() == 1
    assert OutboundNotification.objects.filter(user=landlord, template_key="payment_received").count() == 1


@pytest.mark.django_db
def test_second_success_event_for_same_intent_does_not_renotify(api_client, monkeypatch, pending_payment, tenant):
    for event_id in ("evt_a", "evt_b"):
        event = {
            "id": event_id,
            "type": "payment_intent.succeeded",
            "created": 1700000000,
            "data": {"object": {"id": "pi_123"}},
        }
        _fake_construct(monkeypatch, event)
        assert _post(api_client, event).status_code == 200

    assert OutboundNotification.objects.filter(user=tenant, template_key="payment_received").count() == 1


@pytest.mark.django_db
def test_platform_fee_success_only_notifies_payer(api_client, monkeypatch, pending_payment, landlord):
    Payment.objects.filter(pk=pending_payment.pk).update(payment_type=Payment.Type.PLATFORM_FEE)
    event = {
        "id": "evt_fee",
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": "pi_123"}},
    }
    _fake_construct(monkeypatch, event)
    assert _post(api_client, event).status_code == 200

    assert not OutboundNotification.objects.filter(user=landlord, template_key="payment_received").exists()


@pytest.mark.django_db
def test_failed_intent_records_reason(api_client, monkeypatch, pending_payment, tenant):
    event = {
        "id": "evt_fail_1",
        "type": "payment_intent.payment_failed",
        "data": {"object": {"id": "pi_123", "last_payment_error": {"message": "Your card was declined."}}},
    }
    _fake_construct(monkeypatch, event)
    assert _post(api_client, event).status_code == 200

    pending_payment.refresh_from_db()
    assert pending_payment.status == Payment.Status.FAILED
    assert pending_payment.failure_reason == "Your card was declined."

    note = OutboundNotification.objects.get(user=tenant, template_key="payment_failed")
    assert note.context["failure_reason"] == "Your card was declined."


@pytest.mark.django_db
def test_failure_after_success_does_not_downgrade(api_client, monkeypatch, pending_payment):
    Payment.objects.filter(pk=pending_payment.pk).update(status=Payment.Status.COMPLETED)
    event = {
        "id": "evt_late_fail",
        "type": "payment_intent.payment_failed",
        "data": {"object": {"id": "pi_123"}},
    }
    _fake_construct(monkeypatch, event)
    assert _post(api_client, event).status_code == 200

    pending_payment.refresh_from_db()
    assert pending_payment.status == Payment.Status.COMPLETED


@pytest.mark.django_db
def test_canceled_intent(api_client, monkeypatch, pending_payment):
    event = {"id": "evt_cancel", "type": "payment_intent.canceled", "data": {"object": {"id": "pi_123"}}}
    _fake_construct(monkeypatch, event)
    assert _post(api_client, event).status_code == 200

    pending_payment.refresh_from_db()
    assert pending_payment.status == Payment.Status.CANCELED


@pytest.mark.django_db
def test_unknown_event_type_is_acknowledged(api_client, monkeypatch):
    event = {"id": "evt_other", "type": "charge.dispute.created", "data": {"object": {"id": "dp_1"}}}
    _fake_construct(monkeypatch, event)

    r = _post(api_client, event)
    assert r.status_code == 200
    assert r.json() == {"received": True}

    receipt = WebhookReceipt.objects.get(event_id="evt_other")
    assert receipt.processed_at is not None
    assert receipt.error == ""


@pytest.mark.django_db
def test_unknown_intent_is_acknowledged_without_changes(api_client, monkeypatch, pending_payment):
    event = {"id": "evt_orphan", "type": "payment_intent.succeeded", "data": {"object": {"id": "pi_nope"}}}
    _fake_construct(monkeypatch, event)
    assert _post(api_client, event).status_code == 200

    pending_payment.refresh_from_db()
    assert pending_payment.status == Payment.Status.PENDING
