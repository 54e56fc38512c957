from decimal import Decimal, InvalidOperation

from django.utils.dateparse import parse_date
from django.utils.html import escape

CURRENCY_SYMBOLS = {"eur": "€", "gbp": "£", "usd": "$"}

STANDARD_TERMS = [
    ("Payment Terms", "Rent is due on the agreed payment day each month. Late payments may incur additional fees."),
    ("Security Deposit", "The security deposit will be held for the duration of the lease and returned upon "
                         "satisfactory completion of the lease terms."),
    ("Maintenance", "The tenant is responsible for keeping the property clean and reporting any damages promptly."),
    ("Termination", "Either party may terminate this lease with 30 days written notice."),
]

H2 = "color:#1e40af; border-bottom:1px solid #e5e7eb; padding-bottom:5px;"
BOX = "background:#f8fafc; padding:15px; border-radius:8px; margin-top:10px;"


def _money(value, currency: str) -> str:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return escape(str(value))
    symbol = CURRENCY_SYMBOLS.get((currency or "").lower(), "")
    return f"{symbol}{amount:,.2f}" if symbol else f"{amount:,.2f} {escape(currency.upper())}"


def _date(value) -> str:
    if not value:
        return "_______________"
    parsed = parse_date(str(value)[:10])
    return parsed.strftime("%d/%m/%Y") if parsed else escape(str(value))


def _yes_no(flag) -> str:
    return "Yes" if flag else "No"


def _party_block(title: str, party: dict) -> str:
    return f"""
        <div>
          <h2 style="{H2}">{title}</h2>
          <div style="{BOX}">
            <p><strong>Name:</strong> {escape(party.get("name", ""))}</p>
            <p><strong>Email:</strong> {escape(party.get("email", ""))}</p>
            <p><strong>Phone:</strong> {escape(party.get("phone", ""))}</p>
            <p><strong>Address:</strong> {escape(party.get("address", ""))}</p>
            <p><strong>ID Number:</strong> {escape(party.get("id_number", ""))}</p>
          </div>
        </div>"""


def _signature_block(title: str, name: str, signed_at) -> str:
    return f"""
        <div style="text-align:center; border-top:2px solid #e5e7eb; padding-top:20px;">
          <p style="margin:0; font-weight:bold;">{title}</p>
          <p style="margin:5px 0; color:#666;">{escape(name)}</p>
          <p style="margin:5px 0; color:#666;">Date: {_date(signed_at)}</p>
        </div>"""


def render_contract_html(contract) -> str:
    """Printable rental agreement built from the stored contract snapshot."""
    data = contract.contract_data or {}
    prop = data.get("property") or {}
    tenant = data.get("tenant") or {}
    landlord = data.get("landlord") or {}
    lease = data.get("lease") or {}
    financial = data.get("financial") or {}
    terms = data.get("terms") or {}
    currency = financial.get("currency") or "eur"

    special = data.get("special_terms") or []
    special_html = ""
    if special:
        items = "".join(f"<li>{escape(term)}</li>" for term in special)
        special_html = f"""
            <div style="margin-top:15px;">
              <strong>Special Terms:</strong>
              <ul style="margin:10px 0; padding-left:20px;">{items}</ul>
            </div>"""

    standard_html = "".join(
        f"<p><strong>{n}. {escape(title)}:</strong> {escape(text)}</p>"
        for n, (title, text) in enumerate(STANDARD_TERMS, start=1)
    )

    fee_html = ""
    if financial.get("platform_fee"):
        fee_html = f"""
      <div style="margin-bottom:30px;">
        <h2 style="{H2}">Platform Fee</h2>
        <div style="{BOX}">
          <p><strong>Platform Fee:</strong> {_money(financial["platform_fee"], currency)}</p>
          <p style="font-size:12px; color:#666;">One-time fee for platform services and contract generation.</p>
        </div>
      </div>"""

    area = prop.get("area")
    furnished = (terms.get("furnished") or prop.get("furnished") or "unfurnished").replace("_", " ")

    return f"""
    <!doctype html>
    <html>
      <body style="margin:0; padding:0; font-family: Arial, sans-serif; line-height:1.6; color:#333;">
    <div style="max-width:800px; margin:0 auto; padding:20px;">
      <div style="text-align:center; margin-bottom:30px; border-bottom:2px solid #1e40af; padding-bottom:20px;">
        <h1 style="color:#1e40af; margin:0; font-size:24px;">RENTAL AGREEMENT</h1>
        <p style="margin:5px 0; color:#666;">Contract: {escape(contract.contract_number)}</p>
        <p style="margin:5px 0; color:#666;">Generated: {_date(data.get("generated_at"))}</p>
      </div>

      <div style="margin-bottom:30px;">
        <h2 style="{H2}">Property Information</h2>
        <div style="{BOX}">
          <p><strong>Property:</strong> {escape(prop.get("title", ""))}</p>
          <p><strong>Address:</strong> {escape(prop.get("address", ""))}, {escape(prop.get("city", ""))}</p>
          <p><strong>Area:</strong> {escape(str(area)) + " m²" if area else "-"}</p>
          <p><strong>Furnished:</strong> {escape(furnished)}</p>
        </div>
      </div>

      <div style="display:grid; grid-template-columns:1fr 1fr; gap:20px; margin-bottom:30px;">
        {_party_block("Landlord", landlord)}
        {_party_block("Tenant", tenant)}
      </div>

      <div style="margin-bottom:30px;">
        <h2 style="{H2}">Lease Terms</h2>
        <div style="{BOX}">
          <p><strong>Monthly Rent:</strong> {_money(financial.get("monthly_rent"), currency)}</p>
          <p><strong>Security Deposit:</strong> {_money(financial.get("security_deposit"), currency)}</p>
          <p><strong>Lease Start:</strong> {_date(lease.get("start_date"))}</p>
          <p><strong>Lease End:</strong> {_date(lease.get("end_date"))}</p>
          <p><strong>Duration:</strong> {escape(str(lease.get("duration_months", "")))} months</p>
          <p><strong>Utilities Included:</strong> {_yes_no(terms.get("utilities_included"))}</p>
        </div>
      </div>

      <div style="margin-bottom:30px;">
        <h2 style="{H2}">Terms and Conditions</h2>
        <div style="{BOX}">
          <p><strong>Pets Allowed:</strong> {_yes_no(terms.get("pets_allowed"))}</p>
          <p><strong>Smoking Allowed:</strong> {_yes_no(terms.get("smoking_allowed"))}</p>
          {special_html}
        </div>
      </div>

      <div style="margin-bottom:30px;">
        <h2 style="{H2}">Standard Terms</h2>
        <div style="{BOX} font-size:14px;">{standard_html}</div>
      </div>
      {fee_html}

      <div style="margin-top:50px; display:grid; grid-template-columns:1fr 1fr; gap:40px;">
        {_signature_block("Landlord Signature", landlord.get("name", ""), contract.landlord_signed_at)}
        {_signature_block("Tenant Signature", tenant.get("name", ""), contract.tenant_signed_at)}
      </div>
    </div>
      </body>
    </html>
    """.strip()
