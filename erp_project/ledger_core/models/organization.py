from django.conf import settings
from django.db import models


# ---------- Tenant / Organization ----------
class Organization(models.Model):

    """Tenant. Every ledger record carries one and is isolated by it."""
    name = models.CharField(max_length=200)

    slug = models.SlugField(  # A URL-friendly identifier
        max_length=80, unique=True
    )

    # Used when an invoice or payment does not name a currency
    default_currency = models.CharField(max_length=3, default="EUR")

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name


# ---------- Membership ----------
class Membership(models.Model):  # Bridge between User and Organization

    ROLE_CHOICES = [
        ("owner", "Owner"),
        ("admin", "Admin"),
        ("accountant", "Accountant"),  # can post journals, invoices
        ("viewer", "Viewer"),  # read-only access
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="ledger_memberships",
    )
    organization = models.ForeignKey(
        Organization, on_delete=models.CASCADE, related_name="memberships"
    )
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default="viewer")

    # Suspend access without deleting the record
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "organization"], name="uq_user_organization_membership"
            ),
        ]

    def __str__(self):
        return f"{self.user} @ {self.organization} ({self.role})"
