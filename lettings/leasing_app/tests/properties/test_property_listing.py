import pytest
from django.urls import reverse

from leasing_app.models import Property

pytestmark = pytest.mark.django_db


def test_public_list_shows_only_available_listings(api_client, property_factory):
    visible = property_factory(title="Open flat")
    property_factory(title="Hidden draft", status=Property.Status.DRAFT)
    property_factory(title="Taken flat", status=Property.Status.RENTED)

    r = api_client.get(reverse("v1:property-list"))
    assert r.status_code == 200

    body = r.json()
    assert body["count"] == 1
    assert body["results"][0]["id"] == visible.id
    assert body["results"][0]["monthlyRent"] == "1000.00"
    assert body["results"][0]["landlord"]["name"] == "Lara Test"


def test_list_filters(api_client, property_factory):
    cheap = property_factory(title="Cheap", city="Patras", monthly_rent="500.00", pets_allowed=True)
    property_factory(title="Pricey", city="Patras", monthly_rent="2500.00")
    property_factory(title="Elsewhere", city="Athens", monthly_rent="600.00")

    url = reverse("v1:property-list")

    r = api_client.get(url, {"city": "patras", "maxPrice": "1000"})
    assert [p["id"] for p in r.json()["results"]] == [cheap.id]

    r = api_client.get(url, {"petsAllowed": "true"})
    assert [p["id"] for p in r.json()["results"]] == [cheap.id]

    r = api_client.get(url, {"minPrice": "2000"})
    assert [p["title"] for p in r.json()["results"]] == ["Pricey"]


def test_list_pagination_limit_offset(api_client, property_factory):
    for i in range(3):
        property_factory(title=f"Flat {i}")

    r = api_client.get(reverse("v1:property-list"), {"limit": 2})
    body = r.json()
    assert body["count"] == 3
    assert len(body["results"]) == 2
    assert body["next"] is not None


def test_landlord_creates_listing_as_draft(auth_client_for, landlord):
    r = auth_client_for(landlord).post(
        reverse("v1:property-list"),
        {
            "title": "Loft by the sea",
            "city": "Heraklion",
            "monthlyRent": "850.00",
            "minimumStayMonths": 3,
            "status": "available",
        },
        format="json",
    )
    assert r.status_code == 201, r.content
    assert r.json()["status"] == "draft"

    prop = Property.objects.get(pk=r.json()["id"])
    assert prop.landlord_id == landlord.id
    assert prop.minimum_stay_months == 3


def test_tenant_cannot_create_listing(auth_client_for, tenant):
    r = auth_client_for(tenant).post(
        reverse("v1:property-list"), {"title": "Nope", "monthlyRent": "100.00"}, format="json"
    )
    assert r.status_code == 403
    assert r.json()["error"] == "Only landlords can manage listings"


def test_rent_must_be_positive(auth_client_for, landlord):
    r = auth_client_for(landlord).post(
        reverse("v1:property-list"), {"title": "Free flat", "monthlyRent": "0"}, format="json"
    )
    assert r.status_code == 400
    assert "monthlyRent" in r.json()["field_errors"]


def test_landlord_sees_own_drafts_with_mine(auth_client_for, landlord, property_factory):
    draft = property_factory(status=Property.Status.DRAFT)

    r = auth_client_for(landlord).get(reverse("v1:property-list"), {"mine": "true"})
    assert [p["id"] for p in r.json()["results"]] == [draft.id]


def test_owner_publishes_listing(auth_client_for, landlord, property_factory):
    draft = property_factory(status=Property.Status.DRAFT)

    r = auth_client_for(landlord).patch(
        reverse("v1:property-detail", args=[draft.id]), {"status": "available"}, format="json"
    )
    assert r.status_code == 200
    draft.refresh_from_db()
    assert draft.status == Property.Status.AVAILABLE


def test_other_landlord_cannot_edit(auth_client_for, user_factory, property_factory):
    prop = property_factory()
    rival = user_factory(username="rita", role="landlord")

    r = auth_client_for(rival).patch(
        reverse("v1:property-detail", args=[prop.id]), {"monthlyRent": "1.00"}, format="json"
    )
    assert r.status_code == 403
    prop.refresh_from_db()
    assert str(prop.monthly_rent) == "1000.00"


def test_draft_is_hidden_from_public_detail(api_client, property_factory):
    draft = property_factory(status=Property.Status.DRAFT)
    assert api_client.get(reverse("v1:property-detail", args=[draft.id])).status_code == 404


def test_landlord_fixture_role_is_visible_on_the_same_user_object(landlord):
    # the profile created by the post_save receiver is the one carrying the role
    assert landlord.profile.role == "landlord"
    landlord.refresh_from_db()
    assert landlord.profile.role == "landlord"
