import logging

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models.deletion import ProtectedError

from ..exceptions import InvalidStateTransition, NotFound, ValidationFailed
from ..models import DocumentSequence, Journal
from ..models.journal import JOURNAL_TYPES
from .audit_helper import log_action
from .lookups import pk_of

logger = logging.getLogger(__name__)

DEFAULT_JOURNALS = [
    ("GEN", "General journal", "general"),
    ("VEN", "Sales journal", "sales"),
    ("ACH", "Purchases journal", "purchase"),
    ("BQ", "Bank journal", "bank"),
    ("CAI", "Cash journal", "cash"),
]


JOURNAL_TYPE_CODES = {value for value, _ in JOURNAL_TYPES}

# Fields update_journal() accepts; code and type are fixed at creation
UPDATABLE_FIELDS = {"name", "is_active"}


def create_journal(organization, code, name, journal_type):
    """Codes are unique per organization; they prefix entry references."""
    code = code.strip().upper() if isinstance(code, str) else ""
    if not code or not isinstance(name, str) or not name.strip():
        raise ValidationFailed("Journal code and name are required")
    if not isinstance(journal_type, str) or journal_type not in JOURNAL_TYPE_CODES:
        raise ValidationFailed(f"Unknown journal type {journal_type!r}")
    if Journal.objects.for_organization(organization).filter(code=code).exists():
        raise ValidationFailed(f"Journal code {code} already exists")

    try:
        with transaction.atomic():
            journal = Journal.objects.create(
                organization=organization,
                code=code,
                name=name,
                journal_type=journal_type,
            )
    except IntegrityError:
        raise ValidationFailed(f"Journal code {code} already exists")

    logger.info(
        "Journal created",
        extra={"organization": organization.pk, "journal": str(journal.pk), "code": code},
    )
    return journal


def create_default_journals(organization):
    """Create the standard journals, skipping codes already in use. Returns how many were created."""
    created = 0
    for code, name, journal_type in DEFAULT_JOURNALS:
        try:
            create_journal(organization, code, name, journal_type)
        except ValidationFailed:
            # already set up
            continue
        created += 1
    return created


def list_journals(organization, journal_type=None, active=None):
    journals = Journal.objects.for_organization(organization).order_by("code")
    if journal_type:
        if journal_type not in JOURNAL_TYPE_CODES:
            raise ValidationFailed(f"Unknown journal type {journal_type!r}")
        journals = journals.filter(journal_type=journal_type)
    if active is not None:
        journals = journals.filter(is_active=active)
    return list(journals)


def get_journal(organization, journal_id):
    try:
        return Journal.objects.for_organization(organization).get(pk=pk_of(journal_id))
    except (Journal.DoesNotExist, ValidationError):
        raise NotFound(f"Journal {pk_of(journal_id)} not found")


def update_journal(organization, journal_id, patch, actor=None):
    """Rename or (de)activate a journal."""
    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationFailed(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    name = patch.get("name")
    if "name" in patch and (not isinstance(name, str) or not 2 <= len(name.strip()) <= 100):
        raise ValidationFailed("Journal name must be 2 to 100 characters")
    if "is_active" in patch and not isinstance(patch["is_active"], bool):
        raise ValidationFailed("is_active must be true or false")

    with transaction.atomic():
        try:
            journal = Journal.objects.get_for_update(organization, pk_of(journal_id))
        except (Journal.DoesNotExist, ValidationError):
            raise NotFound(f"Journal {pk_of(journal_id)} not found")
        if "name" in patch:
            journal.name = name.strip()
        if "is_active" in patch:
            journal.is_active = patch["is_active"]
        journal.save(update_fields=sorted(patch))
        log_action(action="update", instance=journal, user=actor, changes=dict(patch))

    logger.info(
        "Journal updated",
        extra={"organization": organization.pk, "journal": str(journal.pk), "fields": sorted(patch)},
    )
    return journal


def delete_journal(organization, journal_id, actor=None):
    """Only journals without entries can go; deactivate the others."""
    with transaction.atomic():
        try:
            journal = Journal.objects.get_for_update(organization, pk_of(journal_id))
        except (Journal.DoesNotExist, ValidationError):
            raise NotFound(f"Journal {pk_of(journal_id)} not found")
        if journal.entries.exists():
            raise InvalidStateTransition(
                f"Journal {journal.code} has entries and cannot be deleted. Deactivate it instead.")

        series = f"journal:{journal.pk}"
        log_action(action="delete", instance=journal, user=actor, changes={"code": journal.code})
        try:
            journal.delete()
        except ProtectedError:
            raise InvalidStateTransition(
                f"Journal {journal.code} has entries and cannot be deleted. Deactivate it instead.")
        DocumentSequence.objects.filter(
            organization=organization, series=series).delete()

    logger.info(
        "Journal deleted",
        extra={"organization": organization.pk, "code": journal.code},
    )
