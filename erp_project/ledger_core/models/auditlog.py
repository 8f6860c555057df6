from django.conf import settings  # To access global project settings
from django.db import models

from ..managers import TenantManager
from .organization import Organization


# ---------- Audit / Event log ----------
class AuditLog(
    models.Model
):  # Gives accountability and traceability across the ledger
    organization = models.ForeignKey(
        Organization,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
    )
    # Nullable in case the action was automated (task, import script)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True, on_delete=models.SET_NULL, related_name="+"
    )
    # create, post, cancel, reverse, delete, record_payment ...
    action = models.CharField(max_length=50)
    # e.g. "Invoice", "JournalEntry", "Payment"
    object_type = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    changes = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    # Enforce tenant scoping
    objects = TenantManager()

    class Meta:
        indexes = [
            models.Index(fields=["organization", "created_at"], name="audit_org_created_idx"),
            models.Index(fields=["object_type", "object_id"], name="audit_object_idx"),
        ]

    def __str__(self):
        return f"[{self.created_at:%Y-%m-%d %H:%M}] {self.user} {self.action} {self.object_type}({self.object_id})"
