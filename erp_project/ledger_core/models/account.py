import uuid

from django.db import models

from ..managers import TenantManager
from .organization import Organization

# Used in Account model to classify general ledger accounts
AC_TYPES = [
    ("asset", "Asset"),
    ("liability", "Liability"),
    ("equity", "Equity"),
    ("revenue", "Revenue"),
    ("expense", "Expense"),
]


class Account(models.Model):
    """
    Ledger account in the chart of accounts.
    Maintained outside the ledger core; journal lines only reference it.
    - code should be unique per organization
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE)
    code = models.CharField(max_length=32)  # e.g. "411000"
    name = models.CharField(max_length=200)
    ac_type = models.CharField(max_length=10, choices=AC_TYPES)
    # "soft deactivate" accounts without deleting history
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["organization", "code"], name="acct_org_code_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "code"], name="uq_organization_account_code"
            )
        ]

    def __str__(self):
        return f"{self.code} – {self.name}"
