import datetime
import logging

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from ..exceptions import (InvalidStateTransition, NotFound, ReferenceNotFound,
                          UnbalancedJournalError, ValidationFailed)
from ..models import Journal, JournalEntry, JournalEntryLine
from ..money import as_date, from_cents, to_cents
from .audit_helper import log_action, resolve_actor
from .lookups import ChartOfAccounts, pk_of
from .sequences import ensure_reference_available, next_reference

logger = logging.getLogger(__name__)

ENTRY_STATUSES = {status for status, _ in JournalEntry._meta.get_field("status").choices}


# ----------------------------
# Pure line helpers
# ----------------------------
def normalize_lines(lines):
    """
    Validate raw line dicts ({"account_id"|"account", "label", "debit", "credit"})
    and return them with amounts converted to integer cents.
    """
    if not isinstance(lines, (list, tuple)) or len(lines) < 2:
        raise ValidationFailed("A journal entry needs at least two lines")

    normalized = []
    for idx, line in enumerate(lines, start=1):
        if not isinstance(line, dict):
            raise ValidationFailed(f"Line {idx} must be an object")
        account = line.get("account_id", line.get("account"))
        if account is None:
            raise ValidationFailed(f"Line {idx} has no account")
        debit = to_cents(line.get("debit") or 0)
        credit = to_cents(line.get("credit") or 0)
        if debit < 0 or credit < 0:
            raise ValidationFailed(f"Line {idx}: debit and credit must be >= 0")
        # exactly one side carries the amount
        if (debit > 0) == (credit > 0):
            raise ValidationFailed(
                f"Line {idx}: exactly one of debit or credit must be non-zero")
        normalized.append({
            "account_id": str(pk_of(account)),
            "label": line.get("label") or None,
            "debit": debit,
            "credit": credit,
        })
    return normalized


def check_balance(lines):
    """Enforce double-entry rule on normalized lines: debits = credits."""
    total_debit = sum(line["debit"] for line in lines)
    total_credit = sum(line["credit"] for line in lines)
    if total_debit != total_credit:
        raise UnbalancedJournalError(
            f"Journal not balanced: debits={from_cents(total_debit)}, "
            f"credits={from_cents(total_credit)}"
        )
    return total_debit, total_credit


def reversed_lines(lines):
    """Source lines with debit and credit swapped, accounts preserved."""
    return [
        {
            "account_id": line.account_id,
            "label": f"Reversal: {line.label}" if line.label else None,
            "debit": line.credit,
            "credit": line.debit,
        }
        for line in lines
    ]


def _as_moment(value):
    """posted_at accepts a datetime, a date or an ISO string."""
    if value is None:
        return timezone.now()
    if isinstance(value, datetime.datetime):
        return value if timezone.is_aware(value) else timezone.make_aware(value)
    day = as_date(value, field="effective date")
    return timezone.make_aware(datetime.datetime.combine(day, datetime.time.min))


# ----------------------------
# Journal Entry Engine
# ----------------------------
class JournalEntryEngine:
    """
    Creates, posts, cancels, reverses and deletes balanced entries.
    Every mutation is one transaction: the header and all of its lines
    are written together or not at all.
    """

    def __init__(self, chart=None):
        self.chart = chart or ChartOfAccounts()

    def _resolve_journal(self, organization, journal):
        try:
            return Journal.objects.for_organization(organization).get(pk=pk_of(journal))
        except (Journal.DoesNotExist, ValidationError):
            raise ReferenceNotFound(f"Journal {pk_of(journal)} not found")

    def _lock(self, entry_id, organization):
        # Lock the row to avoid race conditions
        try:
            return JournalEntry.objects.get_for_update(organization, pk_of(entry_id))
        except (JournalEntry.DoesNotExist, ValidationError):
            raise NotFound(f"Journal entry {pk_of(entry_id)} not found")

    def create(self, organization, journal, date, description, lines,
               actor=None, reference=None, reversal_of=None):
        """Create a draft entry; validation happens before anything is written."""
        journal = self._resolve_journal(organization, journal)
        normalized = normalize_lines(lines)
        accounts = self.chart.get_accounts(
            organization, [line["account_id"] for line in normalized])
        total_debit, total_credit = check_balance(normalized)
        entry_date = as_date(date)

        with transaction.atomic():
            if reference:
                ensure_reference_available(JournalEntry, organization, reference)
            else:
                reference = next_reference(
                    organization,
                    series=f"journal:{journal.pk}",
                    prefix=journal.code,
                    width=3,
                    series_records=JournalEntry.objects.for_organization(
                        organization).filter(journal=journal),
                )

            try:
                with transaction.atomic():
                    entry = JournalEntry.objects.create(
                        organization=organization,
                        journal=journal,
                        reference=reference,
                        date=entry_date,
                        description=description or None,
                        status="draft",
                        total_debit=from_cents(total_debit),
                        total_credit=from_cents(total_credit),
                        created_by=resolve_actor(actor),
                        reversal_of=reversal_of,
                    )
            except IntegrityError:
                # a concurrent request took the same manual reference
                raise ValidationFailed(f"JournalEntry reference {reference} already exists")

            for line_no, line in enumerate(normalized, start=1):
                JournalEntryLine.objects.create_for_entry(
                    entry,
                    line_no=line_no,
                    account=accounts[line["account_id"]],
                    label=line["label"],
                    debit=from_cents(line["debit"]),
                    credit=from_cents(line["credit"]),
                )

            log_action(
                action="create",
                instance=entry,
                user=actor,
                changes={
                    "reference": reference,
                    "total_debit": str(entry.total_debit),
                    "total_credit": str(entry.total_credit),
                },
            )

        logger.info(
            "Journal entry created",
            extra={"organization": organization.pk, "entry": str(entry.pk), "reference": reference},
        )
        return self.get_by_id(entry.pk, organization)

    def get_by_id(self, entry_id, organization):
        try:
            return (
                JournalEntry.objects.for_organization(organization)
                .select_related("journal")
                .prefetch_related("lines")
                .get(pk=pk_of(entry_id))
            )
        except (JournalEntry.DoesNotExist, ValidationError):
            raise NotFound(f"Journal entry {pk_of(entry_id)} not found")

    def list(self, organization, journal=None, status=None,
             date_from=None, date_to=None, limit=None, offset=0):
        entries = (
            JournalEntry.objects.for_organization(organization)
            .select_related("journal")
            .prefetch_related("lines")
            .order_by("-date", "-created_at")
        )
        if journal is not None:
            entries = entries.filter(journal_id=pk_of(journal))
        if status:
            if status not in ENTRY_STATUSES:
                raise ValidationFailed(f"Unknown journal entry status {status!r}")
            entries = entries.filter(status=status)
        if date_from is not None:
            entries = entries.filter(date__gte=as_date(date_from))
        if date_to is not None:
            entries = entries.filter(date__lte=as_date(date_to))

        offset = offset or 0
        if limit is not None:
            return list(entries[offset:offset + limit])
        return list(entries[offset:])

    def post(self, entry_id, organization, actor=None, effective_date=None):
        """draft → posted. Irreversible; a posted entry can only be reversed."""
        posted_at = _as_moment(effective_date)

        with transaction.atomic():
            entry = self._lock(entry_id, organization)
            if entry.status == "posted":
                raise InvalidStateTransition("Journal entry is already posted")
            if entry.status == "cancelled":
                raise InvalidStateTransition("Cannot post cancelled journal entry")
            entry.check_transition("posted")

            # Recompute totals fresh from DB & ignore any stale cached values
            if not entry.lines.exists():
                raise ValidationFailed("JournalEntry must have at least one line.")
            total_debit, total_credit = entry.compute_totals()
            if total_debit != total_credit:
                raise UnbalancedJournalError(
                    f"Journal not balanced: debits={total_debit}, credits={total_credit}"
                )

            entry.status = "posted"
            entry.posted_at = posted_at
            entry.posted_by = resolve_actor(actor)
            entry.save(update_fields=["status", "posted_at", "posted_by", "updated_at"])

            log_action(
                action="post",
                instance=entry,
                user=actor,
                changes={"posted_at": posted_at.isoformat()},
            )

        logger.info(
            "Journal entry posted",
            extra={"organization": organization.pk, "entry": str(entry.pk), "reference": entry.reference},
        )
        return self.get_by_id(entry.pk, organization)

    def cancel(self, entry_id, organization, actor=None):
        """draft → cancelled."""
        with transaction.atomic():
            entry = self._lock(entry_id, organization)
            if entry.status == "posted":
                raise InvalidStateTransition(
                    "Cannot cancel posted journal entry. Create a reversal entry instead.")
            if entry.status == "cancelled":
                raise InvalidStateTransition("Journal entry is already cancelled")
            entry.check_transition("cancelled")

            entry.status = "cancelled"
            entry.save(update_fields=["status", "updated_at"])
            log_action(action="cancel", instance=entry, user=actor)

        logger.info(
            "Journal entry cancelled",
            extra={"organization": organization.pk, "entry": str(entry.pk)},
        )
        return self.get_by_id(entry.pk, organization)

    def reverse(self, entry_id, organization, actor=None, date=None):
        """
        Build a new draft entry negating a posted one.
        The caller decides when to post it.
        """
        with transaction.atomic():
            source = self._lock(entry_id, organization)
            if source.status != "posted":
                raise InvalidStateTransition("Can only reverse posted journal entries")

            # a second live reversal would negate the entry twice
            existing = source.reversals.exclude(status="cancelled").first()
            if existing:
                raise InvalidStateTransition(
                    f"Journal entry {source.reference} is already reversed by {existing.reference}"
                )

            reversal = self.create(
                organization,
                source.journal_id,
                date or timezone.localdate(),
                f"Reversal of {source.reference}",
                reversed_lines(source.lines.all()),
                actor=actor,
                reversal_of=source,
            )
            log_action(
                action="reverse",
                instance=source,
                user=actor,
                changes={"reversal": str(reversal.pk), "reference": reversal.reference},
            )
        return reversal

    def delete(self, entry_id, organization, actor=None):
        """Only drafts can be deleted: lines first, then the header."""
        with transaction.atomic():
            entry = self._lock(entry_id, organization)
            if entry.status != "draft":
                raise InvalidStateTransition("Can only delete draft journal entries")

            log_action(
                action="delete",
                instance=entry,
                user=actor,
                changes={"reference": entry.reference},
            )
            entry.lines.all().delete()
            entry.delete()

        logger.info(
            "Journal entry deleted",
            extra={"organization": organization.pk, "reference": entry.reference},
        )
