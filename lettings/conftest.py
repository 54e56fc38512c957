# lettings/conftest.py
from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient

from leasing_app.models import Application, Property, UserProfile


@pytest.fixture(autouse=True)
def clear_cache_between_tests(settings):
    # Make sure throttle counters don't leak across tests
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def user_factory(db):
    """
    Usage:
      u = user_factory()
      landlord = user_factory(username="lara", role="landlord")
    """
    User = get_user_model()

    def make_user(
        *,
        username="user",
        email=None,
        password="pass12345",
        role=UserProfile.ROLE_TENANT,
        first_name=None,
        last_name="Test",
        **extra,
    ):
        if email is None:
            email = f"{username}@example.com"

        u = User.objects.create_user(
            username=username,
            email=email,
            password=password,
            first_name=first_name if first_name is not None else username.title(),
            last_name=last_name,
            **extra,
        )

        # the post_save receiver already created (and cached) the profile
        profile = u.profile
        profile.role = role
        profile.save(update_fields=["role"])
        return u

    return make_user


@pytest.fixture
def landlord(user_factory):
    return user_factory(username="lara", role=UserProfile.ROLE_LANDLORD)


@pytest.fixture
def tenant(user_factory):
    return user_factory(username="tom", role=UserProfile.ROLE_TENANT)


@pytest.fixture
def auth_client_for():
    """
    Returns a fresh APIClient authenticated as the given user.
    Uses force_authenticate so tests don't depend on JWT issuing.
    """
    def make_client(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    return make_client


@pytest.fixture
def property_factory(db, landlord):
    """
    Usage:
      prop = property_factory()
      prop2 = property_factory(monthly_rent="1500.00", minimum_stay_months=12)
    """
    def make_property(*, landlord_user=None, title="Sunny flat", **overrides):
        fields = {
            "description": "Two bedrooms near the park",
            "address": "12 Harbour Street",
            "city": "Athens",
            "area": Decimal("70.00"),
            "status": Property.Status.AVAILABLE,
            "monthly_rent": Decimal("1000.00"),
            "security_deposit": Decimal("2000.00"),
            "minimum_stay_months": 6,
        }
        fields.update(overrides)
        return Property.objects.create(landlord=landlord_user or landlord, title=title, **fields)

    return make_property


@pytest.fixture
def application_factory(db, tenant, property_factory):
    """A lease application (without the tracking booking) in the given status."""
    def make_application(*, prop=None, applicant=None, status=Application.Status.SUBMITTED, **overrides):
        prop = prop or property_factory()
        fields = {
            "move_in_date": date.today() + timedelta(days=30),
            "lease_duration": 12,
            "monthly_income": Decimal("3000.00"),
        }
        fields.update(overrides)
        return Application.objects.create(
            property=prop,
            tenant=applicant or tenant,
            landlord=prop.landlord,
            status=status,
            **fields,
        )

    return make_application
