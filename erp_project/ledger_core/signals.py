from django.db.models.signals import pre_delete
from django.dispatch import receiver

from .exceptions import InvalidStateTransition
from .models import JournalEntry, JournalEntryLine

"""
Model.delete() guards do not run for queryset deletes or cascades.
pre_delete fires per instance on every path, so the posted-is-frozen
rule holds there too. Invoices with allocations and accounts used by
journal lines are covered by PROTECT foreign keys.
"""


@receiver(pre_delete, sender=JournalEntry)
def prevent_delete_finalized_entry(sender, instance, **kwargs):
    if instance.status != "draft":
        raise InvalidStateTransition(
            f"Cannot delete {instance.status} journal entry {instance.reference}.")


@receiver(pre_delete, sender=JournalEntryLine)
def prevent_delete_line_of_finalized_entry(sender, instance, **kwargs):
    instance._guard_parent_is_draft("delete")
