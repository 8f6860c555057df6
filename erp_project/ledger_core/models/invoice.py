import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models

from ..managers import TenantManager
from .account import Account
from .journal import JournalEntry
from .organization import Organization
from .tax_rate import TaxRate

INV_STATUS_CHOICES = [
    ("draft", "Draft"),
    ("sent", "Sent"),
    ("partial", "Partially paid"),
    ("paid", "Paid"),
    ("cancelled", "Cancelled"),
]
""" Workflow:
    draft = not yet issued.
    sent = issued, nothing received.
    partial / paid = driven by recorded payments.
    cancelled = abandoned, never from paid (credit note instead). """


class Invoice(models.Model):  # Represents a customer invoice

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # Invoice belongs to one organization (multi-tenant)
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE)

    # human-readable (e.g. "INV-2025-0001")
    number = models.CharField(max_length=64)

    # Customer reference plus a snapshot of what was printed on the invoice
    customer_id = models.CharField(max_length=64)
    customer_name = models.CharField(max_length=200)
    customer_email = models.EmailField(null=True, blank=True)
    customer_address = models.TextField(null=True, blank=True)

    date = models.DateField()  # issue date
    due_date = models.DateField()
    status = models.CharField(
        max_length=10, choices=INV_STATUS_CHOICES, default="draft"
    )

    subtotal = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    tax_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    amount_paid = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    # Always total - amount_paid
    amount_due = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="EUR")

    notes = models.TextField(null=True, blank=True)
    terms = models.TextField(null=True, blank=True)

    # Linked explicitly by billing code, never posted automatically
    journal_entry = models.ForeignKey(
        JournalEntry, null=True, blank=True, on_delete=models.SET_NULL,
        related_name="invoices",
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL, related_name="+"
    )
    sent_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["organization", "customer_id"], name="inv_org_customer_idx"),
            models.Index(fields=["organization", "status"], name="inv_org_status_idx"),
            models.Index(fields=["organization", "date"], name="inv_org_date_idx"),
        ]
        constraints = [
            # Within one organization, each invoice number must be unique
            models.UniqueConstraint(
                fields=["organization", "number"],
                name="uq_invoice_organization_number"
            ),
            models.CheckConstraint(
                condition=models.Q(amount_paid__gte=0) & models.Q(amount_due__gte=0),
                name="inv_non_negative_balances",
            ),
        ]

    def __str__(self):
        return f"Inv {self.number}"


class InvoiceLine(models.Model):  # One product/service sold on the invoice

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    invoice = models.ForeignKey(
        Invoice, on_delete=models.CASCADE, related_name="lines")
    line_no = models.PositiveIntegerField(default=1)
    description = models.CharField(max_length=500)

    # quantity × unit_price = line_total
    quantity = models.DecimalField(
        max_digits=14, decimal_places=4, default=Decimal("1"))
    unit_price = models.DecimalField(max_digits=18, decimal_places=4)

    tax_rate = models.ForeignKey(
        TaxRate, null=True, blank=True, on_delete=models.PROTECT)
    # Percentage applied when the invoice was created
    tax_rate_percent = models.DecimalField(
        max_digits=7, decimal_places=4, default=Decimal("0"))
    tax_amount = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    line_total = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))

    # Sales / revenue account for this line
    account = models.ForeignKey(
        Account, null=True, blank=True, on_delete=models.PROTECT)

    class Meta:
        ordering = ["line_no"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=0),
                name="invl_non_negative_quantity",
            ),
        ]

    def __str__(self):
        return f"Invoice: {self.invoice_id} - {self.description} - Total: {self.line_total}"

    @property
    def gross_total(self):
        return self.line_total + self.tax_amount
