import pytest
from django.urls import reverse

from leasing_app.models import Application, Contract, Signature
from leasing_app.services.contracts import create_contract
from notifications.models import OutboundNotification

pytestmark = pytest.mark.django_db


@pytest.fixture
def draft_contract(landlord, application_factory):
    application = application_factory(status=Application.Status.APPROVED)
    contract, _ = create_contract(user=landlord, application_id=application.id)
    return contract


def _sign(client, contract, **extra):
    data = {"action": "sign", "signatureData": "data:image/png;base64,AAAA", **extra}
    return client.patch(reverse("v1:contract-detail", args=[contract.id]), data, format="json")


def test_both_parties_sign_completes_contract(auth_client_for, tenant, landlord, draft_contract):
    r = _sign(auth_client_for(tenant), draft_contract)
    assert r.status_code == 200, r.content
    body = r.json()
    assert body["isFullySigned"] is False
    assert body["signature"]["signerType"] == "tenant"
    assert body["signature"]["signerName"] == "Tom Test"
    assert body["contract"]["status"] == "draft"

    # landlord is told the tenant signed
    waiting = OutboundNotification.objects.filter(user=landlord, template_key="contract_ready").last()
    assert waiting.context["waiting_for"] == "landlord"

    r = _sign(auth_client_for(landlord), draft_contract)
    assert r.status_code == 200
    body = r.json()
    assert body["isFullySigned"] is True
    assert body["contract"]["status"] == "signed"

    draft_contract.refresh_from_db()
    assert draft_contract.status == Contract.Status.SIGNED
    assert draft_contract.completed_at is not None
    assert Signature.objects.filter(contract=draft_contract).count() == 2

    signed_to = set(
        OutboundNotification.objects.filter(template_key="contract_signed").values_list("user_id", flat=True)
    )
    assert signed_to == {tenant.id, landlord.id}


def test_signing_twice_is_rejected(auth_client_for, tenant, draft_contract):
    client = auth_client_for(tenant)
    assert _sign(client, draft_contract).status_code == 200

    r = _sign(client, draft_contract)
    assert r.status_code == 400
    assert r.json()["error"] == "You have already signed this contract"
    assert Signature.objects.filter(contract=draft_contract).count() == 1


def test_signature_records_client_ip(auth_client_for, tenant, draft_contract):
    client = auth_client_for(tenant)
    r = client.patch(
        reverse("v1:contract-detail", args=[draft_contract.id]),
        {"action": "sign"},
        format="json",
        HTTP_X_FORWARDED_FOR="203.0.113.7, 10.0.0.1",
    )
    assert r.status_code == 200
    assert r.json()["signature"]["ipAddress"] == "203.0.113.7"


def test_non_party_cannot_sign(auth_client_for, user_factory, draft_contract):
    stranger = user_factory(username="sam")
    r = _sign(auth_client_for(stranger), draft_contract)
    assert r.status_code == 403
    assert Signature.objects.count() == 0


def test_other_actions_are_rejected(auth_client_for, tenant, draft_contract):
    r = _sign(auth_client_for(tenant), draft_contract, action="shred")
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid action"


def test_contract_detail_includes_signatures_and_document_data(auth_client_for, tenant, draft_contract):
    client = auth_client_for(tenant)
    _sign(client, draft_contract)

    r = client.get(reverse("v1:contract-detail", args=[draft_contract.id]))
    assert r.status_code == 200
    body = r.json()
    assert len(body["signatures"]) == 1
    assert body["contractData"]["contractNumber"] == draft_contract.contract_number
    assert "monthlyRent" in body["contractData"]["financial"]


def test_contract_document_is_printable_html(auth_client_for, landlord, draft_contract):
    r = auth_client_for(landlord).get(reverse("v1:contract-document", args=[draft_contract.id]))
    assert r.status_code == 200
    assert r["Content-Type"].startswith("text/html")

    html = r.content.decode()
    assert "RENTAL AGREEMENT" in html
    assert draft_contract.contract_number in html
    assert "Sunny flat" in html
