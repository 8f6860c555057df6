import logging
import re

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from ..exceptions import ValidationFailed
from ..models import DocumentSequence

logger = logging.getLogger(__name__)

# "VEN-2025-007" -> 7
SUFFIX_RE = re.compile(r"-(\d+)$")


def next_sequence_value(organization, series: str, initial=None) -> int:
    """
    Allocate the next value of an organization/series counter.
    Must run inside transaction.atomic(): the counter row stays locked
    until the caller's transaction commits or rolls back.
    `initial` is a callable giving the first value of a brand-new counter.
    """
    try:
        seq = DocumentSequence.objects.select_for_update().get(
            organization=organization,
            series=series,
        )
    except DocumentSequence.DoesNotExist:
        try:
            # savepoint, so a lost creation race does not poison the outer transaction
            with transaction.atomic():
                seq = DocumentSequence.objects.create(
                    organization=organization,
                    series=series,
                    next_value=initial() if initial else 1,
                )
        except IntegrityError:
            seq = DocumentSequence.objects.select_for_update().get(
                organization=organization,
                series=series,
            )

    value = seq.next_value
    seq.next_value = value + 1
    seq.save(update_fields=["next_value", "updated_at"])
    return value


def _value_after(reference) -> int:
    """One more than the numeric suffix of `reference` (1 when there is none)."""
    match = SUFFIX_RE.search(reference or "")
    return int(match.group(1)) + 1 if match else 1


def ensure_reference_available(model, organization, reference, field="reference"):
    if model.objects.filter(organization=organization, **{field: reference}).exists():
        raise ValidationFailed(f"{model.__name__} reference {reference} already exists")


def next_reference(organization, *, series, prefix, width, series_records, field="reference"):
    """
    Build `<prefix>-<year>-<zero padded value>` from the series counter.

    `series_records` is the queryset of the organization's records in the
    series. A new counter continues from the suffix of its most recent
    record; values already taken by manually entered references are skipped.
    """
    model = series_records.model
    year = timezone.now().year

    def initial():
        latest = (
            series_records.order_by("-created_at")
            .values_list(field, flat=True)
            .first()
        )
        return _value_after(latest)

    retries = getattr(settings, "LEDGER_REFERENCE_RETRIES", 5)
    for _ in range(retries + 1):
        value = next_sequence_value(organization, series, initial=initial)
        candidate = f"{prefix}-{year}-{value:0{width}d}"
        if not model.objects.filter(organization=organization, **{field: candidate}).exists():
            return candidate
        logger.info(
            "Skipping reference already in use",
            extra={"organization": organization.pk, "series": series, "reference": candidate},
        )

    raise ValidationFailed(f"Could not allocate a free {series} reference")
