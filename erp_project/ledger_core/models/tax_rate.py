import uuid

from django.db import models

from ..managers import TenantManager
from .account import Account
from .organization import Organization

TAX_TYPES = [
    ("sales", "Sales"),
    ("purchase", "Purchase"),
    ("both", "Both"),
]


# ---------- Tax rate (VAT / GST) ----------
class TaxRate(models.Model):

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE)
    name = models.CharField(max_length=100)  # e.g. "VAT 20%"
    code = models.CharField(max_length=20)  # e.g. "VAT20"
    # Percentage, 20.0000 means 20 %
    rate = models.DecimalField(max_digits=7, decimal_places=4)
    tax_type = models.CharField(max_length=10, choices=TAX_TYPES, default="both")
    # Tax collection account
    account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.PROTECT
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(rate__gte=0) & models.Q(rate__lte=100),
                name="tax_rate_between_0_and_100",
            ),
        ]

    def __str__(self):
        return f"{self.code} ({self.rate}%)"
