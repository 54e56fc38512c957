from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

import pytest
from django.utils import timezone

from leasing_app.models import Application, Contract, Subscription
from leasing_app.services.contracts import create_contract


@pytest.fixture
def signed_contract(landlord, application_factory):
    application = application_factory(status=Application.Status.APPROVED)
    contract, _ = create_contract(user=landlord, application_id=application.id)
    now = timezone.now()
    Contract.objects.filter(pk=contract.pk).update(
        status=Contract.Status.SIGNED, tenant_signed_at=now, landlord_signed_at=now, completed_at=now
    )
    contract.refresh_from_db()
    return contract


@pytest.fixture
def rent_subscription(signed_contract):
    return Subscription.objects.create(
        tenant=signed_contract.tenant,
        landlord=signed_contract.landlord,
        property=signed_contract.property,
        contract=signed_contract,
        stripe_subscription_id="sub_live",
        amount=Decimal("1000.00"),
        payment_day=1,
        status=Subscription.Status.ACTIVE,
    )


@pytest.fixture
def next_payment():
    return datetime(2030, 2, 15, tzinfo=dt_timezone.utc)
