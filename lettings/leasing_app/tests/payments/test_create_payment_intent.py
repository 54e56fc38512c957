from decimal import Decimal

import pytest
import stripe
from django.urls import reverse

from leasing_app.models import Contract, Payment, UserProfile
from leasing_app.services import gateway

pytestmark = pytest.mark.django_db


@pytest.fixture
def fake_stripe(monkeypatch):
    calls = {}

    def fake_customer_create(**kwargs):
        calls["customer"] = kwargs
        return {"id": "cus_test_1"}

    def fake_intent_create(**kwargs):
        calls["intent"] = kwargs
        return {"id": "pi_test_1", "client_secret": "pi_test_1_secret_abc", "status": "requires_payment_method"}

    monkeypatch.setattr(stripe.Customer, "create", fake_customer_create)
    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_intent_create)
    return calls


def test_create_deposit_payment_returns_client_secret(auth_client_for, tenant, landlord, property_factory, fake_stripe):
    prop = property_factory()
    client = auth_client_for(tenant)

    r = client.post(
        reverse("v1:payment-list"),
        {"amount": "2000.00", "paymentType": "security_deposit", "propertyId": prop.id},
        format="json",
    )
    assert r.status_code == 201, r.content

    body = r.json()
    assert body["clientSecret"] == "pi_test_1_secret_abc"
    assert body["paymentIntentId"] == "pi_test_1"
    assert body["publishableKey"] == "pk_test_lettings"
    assert body["payment"]["status"] == "pending"

    payment = Payment.objects.get(stripe_payment_intent_id="pi_test_1")
    assert payment.amount == Decimal("2000.00")
    assert payment.landlord_id == landlord.id
    assert payment.description == "Security deposit for Sunny flat"

    # amounts go to the gateway in minor units, metadata as strings
    assert fake_stripe["intent"]["amount"] == 200000
    assert fake_stripe["intent"]["customer"] == "cus_test_1"
    assert fake_stripe["intent"]["metadata"]["tenantId"] == str(tenant.id)
    assert fake_stripe["intent"]["metadata"]["landlordId"] == str(landlord.id)
    assert "contractId" not in fake_stripe["intent"]["metadata"]

    # the customer id is remembered on the profile
    assert UserProfile.objects.get(user=tenant).stripe_customer_id == "cus_test_1"


def test_gateway_failure_stores_nothing(auth_client_for, tenant, property_factory, monkeypatch):
    prop = property_factory()

    def boom(**kwargs):
        raise stripe.APIConnectionError("Network down")

    monkeypatch.setattr(stripe.Customer, "create", lambda **kw: {"id": "cus_test_2"})
    monkeypatch.setattr(stripe.PaymentIntent, "create", boom)

    r = auth_client_for(tenant).post(
        reverse("v1:payment-list"),
        {"amount": "50.00", "paymentType": "platform_fee", "propertyId": prop.id},
        format="json",
    )
    assert r.status_code == 500
    assert r.json()["error"] == "Failed to create payment intent"
    assert r.json()["code"] == "external_service_failure"
    assert Payment.objects.count() == 0


@pytest.mark.parametrize(
    "payload",
    [
        {"paymentType": "monthly_rent"},
        {"amount": "0", "paymentType": "monthly_rent"},
        {"amount": "10.00", "paymentType": "tip"},
    ],
)
def test_amount_and_type_are_required(auth_client_for, tenant, payload):
    r = auth_client_for(tenant).post(reverse("v1:payment-list"), payload, format="json")
    assert r.status_code == 400
    assert r.json()["error"] == "Valid amount and payment type are required"


def test_cannot_pay_against_someone_elses_contract(auth_client_for, user_factory, application_factory, fake_stripe):
    from leasing_app.models import Application
    from leasing_app.services.contracts import create_contract

    application = application_factory(status=Application.Status.APPROVED)
    contract, _ = create_contract(user=application.landlord, application_id=application.id)
    stranger = user_factory(username="sam")

    r = auth_client_for(stranger).post(
        reverse("v1:payment-list"),
        {"amount": "100.00", "paymentType": "monthly_rent", "contractId": contract.id},
        format="json",
    )
    assert r.status_code == 403
    assert Payment.objects.count() == 0
    assert Contract.objects.count() == 1


def test_payment_status_is_private_to_payer(auth_client_for, tenant, user_factory, monkeypatch):
    intent = {
        "id": "pi_owned",
        "amount": 150000,
        "currency": "eur",
        "status": "succeeded",
        "description": "Monthly rent for Sunny flat",
        "created": 1700000000,
        "metadata": {"tenantId": str(tenant.id), "paymentType": "monthly_rent"},
    }
    monkeypatch.setattr(gateway, "retrieve_payment_intent", lambda intent_id: intent)

    r = auth_client_for(tenant).get(reverse("v1:payment-status"), {"payment_intent": "pi_owned"})
    assert r.status_code == 200, r.content
    body = r.json()
    assert body["status"] == "succeeded"
    assert body["amount"] == 1500.0
    assert body["paymentType"] == "monthly_rent"
    assert body["localPaymentId"] is None

    other = user_factory(username="olga")
    r = auth_client_for(other).get(reverse("v1:payment-status"), {"payment_intent": "pi_owned"})
    assert r.status_code == 403
    assert r.json()["error"] == "Unauthorized access to payment"


def test_payment_status_requires_intent_id(auth_client_for, tenant):
    r = auth_client_for(tenant).get(reverse("v1:payment-status"))
    assert r.status_code == 400
    assert r.json()["error"] == "Payment intent ID is required"


def test_payment_list_filters_by_status(auth_client_for, tenant, property_factory):
    prop = property_factory()
    Payment.objects.create(tenant=tenant, property=prop, amount="10.00", payment_type="platform_fee")
    done = Payment.objects.create(
        tenant=tenant, property=prop, amount="20.00", payment_type="monthly_rent", status="completed"
    )

    r = auth_client_for(tenant).get(reverse("v1:payment-list"), {"status": "completed"})
    assert r.status_code == 200
    assert [p["id"] for p in r.json()["results"]] == [done.id]
