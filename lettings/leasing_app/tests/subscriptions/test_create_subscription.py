from datetime import datetime, timezone as dt_timezone

import pytest
import stripe
from django.urls import reverse

from leasing_app.models import Contract, Subscription
from leasing_app.services import gateway
from notifications.models import OutboundNotification

pytestmark = pytest.mark.django_db


@pytest.fixture
def fake_gateway(monkeypatch, next_payment):
    calls = []

    def fake_create_rent_subscription(*, contract, payment_day, currency=None, now=None):
        calls.append({"contract": contract.pk, "payment_day": payment_day, "currency": currency})
        return {
            "subscription": {
                "id": "sub_new",
                "status": "active",
                "currency": "eur",
                "current_period_start": 1700000000,
                "current_period_end": 1702592000,
            },
            "customer_id": "cus_1",
            "price_id": "price_1",
            "product_id": f"property-{contract.property_id}",
            "next_payment_date": next_payment,
        }

    monkeypatch.setattr(gateway, "create_rent_subscription", fake_create_rent_subscription)
    return calls


def _create(client, **data):
    return client.post(reverse("v1:subscription-list"), data, format="json")


def test_tenant_sets_up_rent_for_signed_contract(auth_client_for, tenant, landlord, signed_contract, fake_gateway):
    r = _create(auth_client_for(tenant), contractId=signed_contract.id, paymentDay=15)
    assert r.status_code == 201, r.content

    body = r.json()
    assert body["nextPaymentDate"] == "2030-02-15T00:00:00Z"
    assert body["subscription"]["status"] == "active"
    assert body["subscription"]["paymentDay"] == 15
    assert fake_gateway == [{"contract": signed_contract.id, "payment_day": 15, "currency": None}]

    sub = Subscription.objects.get(stripe_subscription_id="sub_new")
    assert sub.amount == signed_contract.monthly_rent
    assert sub.stripe_price_id == "price_1"

    notified = set(
        OutboundNotification.objects.filter(template_key="subscription_created").values_list("user_id", flat=True)
    )
    assert notified == {tenant.id, landlord.id}

    note = OutboundNotification.objects.get(user=tenant, template_key="subscription_created")
    assert note.context["currency"] == "EUR"
    assert note.context["next_payment_date"] == "2030-02-15"


@pytest.mark.parametrize("day", [0, 29, "abc"])
def test_payment_day_must_be_1_to_28(auth_client_for, tenant, signed_contract, fake_gateway, day):
    r = _create(auth_client_for(tenant), contractId=signed_contract.id, paymentDay=day)
    assert r.status_code == 400
    assert fake_gateway == []


def test_payment_day_message(auth_client_for, tenant, signed_contract, fake_gateway):
    r = _create(auth_client_for(tenant), contractId=signed_contract.id, paymentDay=31)
    assert r.json()["error"] == "Payment day must be between 1 and 28"


def test_landlord_cannot_set_up_rent(auth_client_for, landlord, signed_contract, fake_gateway):
    r = _create(auth_client_for(landlord), contractId=signed_contract.id, paymentDay=1)
    assert r.status_code == 403
    assert r.json()["error"] == "Only the tenant can set up rent payments for this contract"


def test_unsigned_contract_is_refused(auth_client_for, tenant, signed_contract, fake_gateway):
    Contract.objects.filter(pk=signed_contract.pk).update(
        status=Contract.Status.DRAFT, landlord_signed_at=None, completed_at=None
    )
    r = _create(auth_client_for(tenant), contractId=signed_contract.id, paymentDay=1)
    assert r.status_code == 400
    assert r.json()["error"] == "Contract must be signed before setting up rent payments"


def test_only_one_live_subscription_per_contract(auth_client_for, tenant, signed_contract, fake_gateway):
    client = auth_client_for(tenant)
    assert _create(client, contractId=signed_contract.id, paymentDay=1).status_code == 201

    r = _create(client, contractId=signed_contract.id, paymentDay=1)
    assert r.status_code == 400
    assert r.json()["error"] == "A rent subscription already exists for this contract"


def test_gateway_failure_is_500_and_stores_nothing(auth_client_for, tenant, signed_contract, monkeypatch):
    def boom(**kwargs):
        raise stripe.APIConnectionError("Network down")

    monkeypatch.setattr(gateway, "create_rent_subscription", boom)

    r = _create(auth_client_for(tenant), contractId=signed_contract.id, paymentDay=1)
    assert r.status_code == 500
    assert r.json()["error"] == "Failed to create subscription"
    assert Subscription.objects.count() == 0


def test_gateway_builds_monthly_price_and_anchored_subscription(signed_contract, monkeypatch):
    created = {}

    def product_missing(product_id):
        raise stripe.InvalidRequestError("No such product", "id")

    def recorder(name, returned_id):
        def fake_create(**kwargs):
            created[name] = kwargs
            return {"id": kwargs.get("id", returned_id)}
        return fake_create

    monkeypatch.setattr(stripe.Customer, "create", recorder("customer", "cus_9"))
    monkeypatch.setattr(stripe.Product, "retrieve", product_missing)
    monkeypatch.setattr(stripe.Product, "create", recorder("product", None))
    monkeypatch.setattr(stripe.Price, "create", recorder("price", "price_9"))
    monkeypatch.setattr(stripe.Subscription, "create", recorder("subscription", "sub_9"))

    now = datetime(2030, 1, 20, 9, 30, tzinfo=dt_timezone.utc)
    result = gateway.create_rent_subscription(contract=signed_contract, payment_day=15, now=now)

    assert result["customer_id"] == "cus_9"
    assert result["price_id"] == "price_9"
    assert result["next_payment_date"] == datetime(2030, 2, 15, tzinfo=dt_timezone.utc)

    assert created["product"]["id"] == f"property-{signed_contract.property_id}"
    assert created["price"]["unit_amount"] == 100000
    assert created["price"]["recurring"] == {"interval": "month", "interval_count": 1}
    assert created["subscription"]["billing_cycle_anchor"] == int(result["next_payment_date"].timestamp())
    assert created["subscription"]["metadata"]["contractId"] == str(signed_contract.pk)
