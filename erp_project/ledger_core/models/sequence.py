from django.db import models

from .organization import Organization


class DocumentSequence(models.Model):
    """
    Per-organization counters for reference numbers
    (journal entries, invoices, payments).

    Rows are locked with select_for_update while a value is taken,
    so two concurrent creations never share a number.
    """

    organization = models.ForeignKey(
        Organization, on_delete=models.CASCADE, related_name="sequences"
    )
    # e.g. "invoice", "payment", "journal:<journal id>"
    series = models.CharField(max_length=100)
    next_value = models.BigIntegerField(default=1)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "series"],
                name="uq_organization_sequence_series",
            ),
        ]

    def __str__(self):
        return f"{self.organization_id}:{self.series}={self.next_value}"
