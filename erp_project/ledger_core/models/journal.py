import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models

from ..exceptions import InvalidStateTransition, ReferenceNotFound, ValidationFailed
from ..managers import JournalEntryLineManager, TenantManager
from .account import Account
from .organization import Organization

JOURNAL_TYPES = [
    ("general", "General"),
    ("sales", "Sales"),
    ("purchase", "Purchase"),
    ("bank", "Bank"),
    ("cash", "Cash"),
]

JOURNAL_STATUS = [
    ("draft", "Draft"),  # still editable
    ("posted", "Posted"),  # finalized, only a reversal may follow
    ("cancelled", "Cancelled"),  # abandoned draft
]


# ---------- Journal (named ledger series) ----------
class Journal(models.Model):
    """
    A named series of entries, e.g. Sales or Purchases.
    `code` prefixes the references of its entries (VEN-2025-001).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE)
    code = models.CharField(max_length=10)
    name = models.CharField(max_length=100)
    journal_type = models.CharField(max_length=10, choices=JOURNAL_TYPES)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "code"], name="uq_organization_journal_code"
            )
        ]

    def __str__(self):
        return f"{self.code} – {self.name}"


# ---------- JournalEntry (Header) & JournalEntryLine ----------
class JournalEntry(models.Model):  # One balanced accounting transaction

    # status -> statuses it may move to
    ALLOWED_TRANSITIONS = {
        "draft": ["posted", "cancelled"],
        "posted": [],
        "cancelled": [],
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE)
    journal = models.ForeignKey(Journal, on_delete=models.PROTECT, related_name="entries")

    # Business metadata
    reference = models.CharField(max_length=50)
    date = models.DateField()
    description = models.TextField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=JOURNAL_STATUS, default="draft")

    # Denormalized from the lines at creation time
    total_debit = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))
    total_credit = models.DecimalField(
        max_digits=18, decimal_places=2, default=Decimal("0.00"))

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL, related_name="+"
    )
    # Only set on posting
    posted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL, related_name="+"
    )
    posted_at = models.DateTimeField(null=True, blank=True)

    # Set on entries produced by a reversal
    reversal_of = models.ForeignKey(
        "self", null=True, blank=True, on_delete=models.PROTECT,
        related_name="reversals",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        # Speed up listing & filtering
        indexes = [
            models.Index(fields=["organization", "date"], name="je_org_date_idx"),
            models.Index(fields=["organization", "status"], name="je_org_status_idx"),
            models.Index(fields=["organization", "journal"], name="je_org_journal_idx"),
        ]
        constraints = [
            # Within one organization, each reference must be unique
            models.UniqueConstraint(
                fields=["organization", "reference"], name="uq_je_organization_ref"
            )
        ]

    def __str__(self):
        return f"JE {self.reference} {self.date} [{self.status}]"

    # Aggregate all debit and credit amounts across entry's lines
    def compute_totals(self):
        """Return debits, credits sums for the stored lines"""
        aggs = self.lines.aggregate(
            total_debit=models.Sum("debit"),
            total_credit=models.Sum("credit"),
        )
        return (
            aggs["total_debit"] or Decimal("0.00"),
            aggs["total_credit"] or Decimal("0.00"),
        )

    def is_balanced(self):
        debit, credit = self.compute_totals()
        return debit == credit

    def check_transition(self, new_status):
        if new_status not in self.ALLOWED_TRANSITIONS.get(self.status, []):
            raise InvalidStateTransition(
                f"Cannot go from {self.status} to {new_status}")

    def _stored_status(self):
        return (
            JournalEntry.objects.filter(pk=self.pk)
            .values_list("status", flat=True)
            .first()
        )

    def save(self, *args, **kwargs):
        if not self._state.adding:
            # Posted and cancelled entries are frozen, whatever the code path
            if self._stored_status() in ("posted", "cancelled"):
                raise InvalidStateTransition(
                    f"Journal entry {self.reference} is no longer a draft and cannot be modified."
                )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if self._stored_status() != "draft":
            raise InvalidStateTransition("Can only delete draft journal entries")
        return super().delete(*args, **kwargs)


class JournalEntryLine(models.Model):  # Stores Lines ( credits / debits )
    """
    Each line belongs to a journal entry and to a GL account.
    Exactly one of debit / credit is non-zero.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE)
    entry = models.ForeignKey(
        JournalEntry, on_delete=models.CASCADE, related_name="lines")
    # Position inside the entry, lines are returned in input order
    line_no = models.PositiveIntegerField(default=1)

    # Can't delete account if lines exist → PROTECT
    account = models.ForeignKey(Account, on_delete=models.PROTECT)
    label = models.CharField(max_length=500, null=True, blank=True)
    debit = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    credit = models.DecimalField(max_digits=18, decimal_places=2, default=0)

    created_at = models.DateTimeField(auto_now_add=True)

    objects = JournalEntryLineManager()

    class Meta:
        ordering = ["line_no"]
        indexes = [
            models.Index(fields=["organization", "account"], name="jel_org_account_idx"),
            models.Index(fields=["organization", "entry"], name="jel_org_entry_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(debit__gte=0) & models.Q(credit__gte=0),
                name="jel_non_negative_amounts",
            ),
            models.CheckConstraint(
                condition=(
                    (models.Q(debit__gt=0) & models.Q(credit=0)) |
                    (models.Q(debit=0) & models.Q(credit__gt=0))
                ),
                name="jel_debit_xor_credit",
            ),
        ]

    def __str__(self):
        return f"{self.entry_id} | {self.account_id} | D:{self.debit} C:{self.credit}"

    def clean(self):
        if self.debit < 0 or self.credit < 0:
            raise ValidationFailed("Debit and credit must be >= 0")
        if (self.debit > 0) == (self.credit > 0):
            raise ValidationFailed(
                "A journal line needs exactly one non-zero amount, debit or credit"
            )
        # Prevent cross-organization contamination
        if self.account.organization_id != self.organization_id:
            raise ReferenceNotFound(f"Account {self.account_id} not found")

    def _guard_parent_is_draft(self, verb):
        status = (
            JournalEntry.objects.filter(pk=self.entry_id)
            .values_list("status", flat=True)
            .first()
        )
        if status != "draft":
            raise InvalidStateTransition(
                f"Cannot {verb} line: parent journal entry is {status}."
            )

    def save(self, *args, **kwargs):
        if not getattr(self, "organization_id", None):
            self.organization_id = self.entry.organization_id
        self._guard_parent_is_draft("add" if self._state.adding else "modify")
        self.clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        self._guard_parent_is_draft("delete")
        return super().delete(*args, **kwargs)
