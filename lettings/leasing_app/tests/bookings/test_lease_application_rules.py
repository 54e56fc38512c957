import pytest
from django.urls import reverse

from leasing_app.models import Application, Booking
from notifications.models import OutboundNotification


def _application_payload(prop, **overrides):
    payload = {
        "propertyId": prop.id,
        "type": "application",
        "moveInDate": "2030-06-01",
        "leaseDuration": 12,
        "monthlyIncome": "3000.00",
        "hasGuarantor": True,
        "guarantorInfo": {"name": "Gina Guarantor"},
        "references": [{"name": "Previous landlord", "phone": "555-0101"}],
        "coverLetter": "Quiet professional, no pets.",
    }
    payload.update(overrides)
    return payload


@pytest.mark.django_db
def test_application_creates_booking_and_application_together(auth_client_for, tenant, landlord, property_factory):
    prop = property_factory()
    client = auth_client_for(tenant)

    r = client.post(reverse("v1:booking-list"), _application_payload(prop), format="json")
    assert r.status_code == 201, r.content

    body = r.json()
    assert body["booking"]["type"] == "application"
    assert body["application"]["status"] == "submitted"
    assert body["application"]["bookingId"] == body["booking"]["id"]
    assert body["application"]["guarantorInfo"] == {"name": "Gina Guarantor"}

    application = Application.objects.get(pk=body["application"]["id"])
    assert application.booking.type == Booking.Type.APPLICATION
    assert application.landlord_id == landlord.id

    assert OutboundNotification.objects.filter(user=landlord, template_key="application_received").count() == 1


@pytest.mark.django_db
def test_application_below_minimum_stay_is_rejected(auth_client_for, tenant, property_factory):
    prop = property_factory(minimum_stay_months=6)
    client = auth_client_for(tenant)

    r = client.post(reverse("v1:booking-list"), _application_payload(prop, leaseDuration=3), format="json")
    assert r.status_code == 400
    assert r.json()["error"] == "Minimum lease duration is 6 months"
    assert Booking.objects.count() == 0
    assert Application.objects.count() == 0


@pytest.mark.django_db
def test_application_with_low_income_is_rejected(auth_client_for, tenant, property_factory):
    prop = property_factory(monthly_rent="1000.00")
    client = auth_client_for(tenant)

    r = client.post(reverse("v1:booking-list"), _application_payload(prop, monthlyIncome="2000.00"), format="json")
    assert r.status_code == 400
    assert r.json()["error"] == "Monthly income must be at least 2.5 times the monthly rent"
    assert Application.objects.count() == 0


@pytest.mark.django_db
def test_application_income_exactly_at_ratio_is_accepted(auth_client_for, tenant, property_factory):
    prop = property_factory(monthly_rent="1000.00")
    client = auth_client_for(tenant)

    r = client.post(reverse("v1:booking-list"), _application_payload(prop, monthlyIncome="2500.00"), format="json")
    assert r.status_code == 201, r.content


@pytest.mark.django_db
def test_application_requires_move_in_and_duration(auth_client_for, tenant, property_factory):
    prop = property_factory()
    client = auth_client_for(tenant)

    payload = _application_payload(prop)
    payload.pop("moveInDate")
    r = client.post(reverse("v1:booking-list"), payload, format="json")
    assert r.status_code == 400
    assert r.json()["error"] == "Move-in date and lease duration are required"
