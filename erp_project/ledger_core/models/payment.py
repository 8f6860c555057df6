import uuid

from django.conf import settings
from django.db import models

from ..managers import TenantManager
from .account import Account
from .invoice import Invoice
from .journal import JournalEntry
from .organization import Organization

PAYMENT_METHODS = [
    ("cash", "Cash"),
    ("bank_transfer", "Bank transfer"),
    ("check", "Check"),
    ("credit_card", "Credit card"),
    ("other", "Other"),
]


class Payment(models.Model):  # Money received from a customer (or paid to a supplier)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE)
    reference = models.CharField(max_length=50)  # e.g. "PAY-2025-0001"
    date = models.DateField()
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    currency = models.CharField(max_length=3, default="EUR")
    method = models.CharField(max_length=20, choices=PAYMENT_METHODS)

    # Payer: one of the two is normally set
    customer_id = models.CharField(max_length=64, null=True, blank=True)
    supplier_id = models.CharField(max_length=64, null=True, blank=True)

    # Cash / bank account the money landed in
    account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.PROTECT)
    journal_entry = models.ForeignKey(
        JournalEntry, null=True, blank=True, on_delete=models.SET_NULL,
        related_name="payments",
    )
    notes = models.TextField(null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL, related_name="+"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["organization", "date"], name="pay_org_date_idx"),
            models.Index(fields=["organization", "customer_id"], name="pay_org_customer_idx"),
            models.Index(fields=["organization", "supplier_id"], name="pay_org_supplier_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "reference"], name="uq_payment_organization_ref"
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gt=0), name="payment_positive_amount"
            ),
        ]

    def __str__(self):
        return f"{self.reference} ({self.amount} {self.currency})"


class PaymentAllocation(models.Model):
    """Binds part (or all) of a payment to one invoice."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE)
    payment = models.ForeignKey(
        Payment, on_delete=models.CASCADE, related_name="allocations")
    # An invoice with allocations cannot be deleted
    invoice = models.ForeignKey(
        Invoice, on_delete=models.PROTECT, related_name="allocations")
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["organization", "payment"], name="alloc_org_payment_idx"),
            models.Index(fields=["organization", "invoice"], name="alloc_org_invoice_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0), name="alloc_positive_amount"
            ),
        ]

    def __str__(self):
        return f"Payment: {self.payment_id} → Inv: {self.invoice_id} Amt: ({self.amount})"
