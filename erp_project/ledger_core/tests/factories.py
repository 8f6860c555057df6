"""Small builders shared by the ledger tests."""
from decimal import Decimal

from django.contrib.auth import get_user_model

from ledger_core.models import Account, Journal, Membership, Organization, TaxRate

User = get_user_model()


def make_org(name="Test Co", slug="test-co", currency="EUR"):
    return Organization.objects.create(name=name, slug=slug, default_currency=currency)


def make_user(username="alice", organization=None, role="accountant"):
    user = User.objects.create_user(username=username, password="secret123")
    if organization is not None:
        Membership.objects.create(user=user, organization=organization, role=role)
    return user


def make_account(organization, code, name, ac_type="asset"):
    return Account.objects.create(
        organization=organization, code=code, name=name, ac_type=ac_type
    )


def make_journal(organization, code="VEN", name="Sales journal", journal_type="sales"):
    return Journal.objects.create(
        organization=organization, code=code, name=name, journal_type=journal_type
    )


def make_tax_rate(organization, rate="20", code="VAT20"):
    return TaxRate.objects.create(
        organization=organization,
        name=f"VAT {rate}%",
        code=code,
        rate=Decimal(rate),
        tax_type="sales",
    )


def customer(customer_id="CUST-1", name="ACME Ltd"):
    return {"id": customer_id, "name": name, "email": "billing@acme.test"}
