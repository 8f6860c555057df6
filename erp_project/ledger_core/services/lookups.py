"""
Read-only collaborators of the ledger services.

The chart of accounts and the tax-rate table are maintained elsewhere;
services receive these lookups in their constructor so tests can swap
them for in-memory stand-ins.
"""
from django.core.exceptions import ValidationError

from ..exceptions import ReferenceNotFound
from ..models import Account, TaxRate


def pk_of(value):
    """Accept either a model instance or a raw primary key."""
    return getattr(value, "pk", value)


class ChartOfAccounts:

    def get_accounts(self, organization, account_ids) -> dict:
        """
        Map each id to its Account, scoped to the organization.
        Raises ReferenceNotFound naming the first unknown id.
        """
        wanted = {str(pk_of(a)) for a in account_ids}
        try:
            found = {
                str(account.pk): account
                for account in Account.objects.for_organization(organization).filter(pk__in=wanted)
            }
        except ValidationError:
            # malformed id, cannot match any account
            found = {}
        for account_id in sorted(wanted):
            if account_id not in found:
                raise ReferenceNotFound(f"Account {account_id} not found")
        return found


class TaxRateTable:

    def get_rate(self, organization, tax_rate_id) -> TaxRate:
        try:
            return TaxRate.objects.for_organization(organization).get(pk=pk_of(tax_rate_id))
        except (TaxRate.DoesNotExist, ValidationError):
            raise ReferenceNotFound(f"Tax rate {tax_rate_id} not found")
