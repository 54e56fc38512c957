import pytest
from django.urls import reverse

from leasing_app.models import Booking, Property
from notifications.models import OutboundNotification


@pytest.mark.django_db
def test_viewing_request_creates_pending_booking_and_notifies_landlord(auth_client_for, tenant, landlord, property_factory):
    prop = property_factory()
    client = auth_client_for(tenant)

    url = reverse("v1:booking-list")
    r = client.post(
        url,
        {
            "propertyId": prop.id,
            "type": "viewing",
            "viewingDate": "2030-05-10",
            "viewingTime": "14:30",
            "message": "Can I come after work?",
        },
        format="json",
    )
    assert r.status_code == 201, r.content

    body = r.json()
    assert body["booking"]["status"] == "pending"
    assert body["booking"]["type"] == "viewing"
    assert "application" not in body

    booking = Booking.objects.get(pk=body["booking"]["id"])
    assert booking.tenant_id == tenant.id
    assert booking.landlord_id == landlord.id

    notes = OutboundNotification.objects.filter(user=landlord, template_key="booking_request")
    assert notes.count() == 1
    note = notes.get()
    assert note.priority == "high"
    assert note.context["viewing_time"] == "14:30"
    assert note.context["tenant_name"] == "Tom Test"


@pytest.mark.django_db
def test_viewing_requires_date_and_time(auth_client_for, tenant, property_factory):
    prop = property_factory()
    client = auth_client_for(tenant)

    r = client.post(reverse("v1:booking-list"), {"propertyId": prop.id, "type": "viewing"}, format="json")
    assert r.status_code == 400
    assert r.json()["error"] == "Viewing date and time are required"
    assert Booking.objects.count() == 0


@pytest.mark.django_db
def test_booking_unknown_property_is_404(auth_client_for, tenant):
    client = auth_client_for(tenant)
    r = client.post(
        reverse("v1:booking-list"),
        {"propertyId": 9999, "type": "viewing", "viewingDate": "2030-05-10", "viewingTime": "10:00"},
        format="json",
    )
    assert r.status_code == 404
    assert r.json()["code"] == "not_found"


@pytest.mark.django_db
def test_booking_rejected_when_property_not_available(auth_client_for, tenant, property_factory):
    prop = property_factory(status=Property.Status.RENTED)
    client = auth_client_for(tenant)
    r = client.post(
        reverse("v1:booking-list"),
        {"propertyId": prop.id, "type": "viewing", "viewingDate": "2030-05-10", "viewingTime": "10:00"},
        format="json",
    )
    assert r.status_code == 400
    assert r.json()["error"] == "Property is not available for booking"


@pytest.mark.django_db
def test_landlord_cannot_book_own_property(auth_client_for, landlord, property_factory):
    prop = property_factory()
    client = auth_client_for(landlord)
    r = client.post(
        reverse("v1:booking-list"),
        {"propertyId": prop.id, "type": "viewing", "viewingDate": "2030-05-10", "viewingTime": "10:00"},
        format="json",
    )
    assert r.status_code == 400
    assert r.json()["error"] == "You cannot book your own property"


@pytest.mark.django_db
def test_booking_requires_authentication(api_client, property_factory):
    prop = property_factory()
    r = api_client.post(reverse("v1:booking-list"), {"propertyId": prop.id, "type": "viewing"}, format="json")
    assert r.status_code == 401
    assert r.json()["ok"] is False
