import logging
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from ..exceptions import (InvalidStateTransition, NotFound, ReferenceNotFound,
                          ValidationFailed)
from ..models import Invoice, InvoiceLine, JournalEntry
from ..models.invoice import INV_STATUS_CHOICES
from ..money import ZERO, as_date, from_cents, to_cents, to_decimal
from .audit_helper import log_action, resolve_actor
from .lookups import ChartOfAccounts, TaxRateTable, pk_of
from .sequences import next_reference

logger = logging.getLogger(__name__)

QUANTITY_PLACES = Decimal("0.0001")

INVOICE_STATUSES = {status for status, _ in INV_STATUS_CHOICES}

# Fields a caller may change through update(); everything else is derived
UPDATABLE_FIELDS = {
    "customer_name",
    "customer_email",
    "customer_address",
    "date",
    "due_date",
    "notes",
    "terms",
    "journal_entry",
}


# ----------------------------
# Pure helpers
# ----------------------------
def derive_invoice_status(amount_paid, total, current_status, was_sent=True):
    """
    Status as a function of what has been paid.
    Cancelled is terminal; nothing paid leaves draft/sent alone and
    sends partial/paid back to where the invoice stood before any
    payment: sent if it was ever sent, draft otherwise.
    """
    if current_status == "cancelled":
        return "cancelled"
    paid = to_cents(amount_paid)
    due = to_cents(total)
    if paid <= 0:
        if current_status in ("partial", "paid"):
            return "sent" if was_sent else "draft"
        return current_status
    if paid < due:
        return "partial"
    return "paid"


def price_line(quantity, unit_price, rate_percent=ZERO):
    """
    Returns (line_total, tax_amount) as cents.
    line_total = quantity × unit_price, tax = line_total × rate / 100,
    each rounded half-up to the cent.
    """
    quantity = to_decimal(quantity, places=QUANTITY_PLACES, max_digits=14)
    unit_price = to_decimal(unit_price, places=QUANTITY_PLACES)
    if quantity < 0:
        raise ValidationFailed("Quantity must be >= 0")
    line_total = to_decimal(quantity * unit_price)
    tax_amount = to_decimal(line_total * Decimal(rate_percent) / 100)
    return to_cents(line_total), to_cents(tax_amount)


# ----------------------------
# Invoice Lifecycle Manager
# ----------------------------
class InvoiceLifecycleManager:
    """
    Owns invoice numbering, pricing and the status workflow.
    Payments reach invoices only through record_payment().
    """

    def __init__(self, tax_rates=None, chart=None):
        self.tax_rates = tax_rates or TaxRateTable()
        self.chart = chart or ChartOfAccounts()

    def _lock(self, invoice_id, organization):
        try:
            return Invoice.objects.get_for_update(organization, pk_of(invoice_id))
        except (Invoice.DoesNotExist, ValidationError):
            raise NotFound(f"Invoice {pk_of(invoice_id)} not found")

    def _price_lines(self, organization, lines):
        if not isinstance(lines, (list, tuple)) or not lines:
            raise ValidationFailed("An invoice needs at least one line")
        for idx, line in enumerate(lines, start=1):
            if not isinstance(line, dict):
                raise ValidationFailed(f"Line {idx} must be an object")

        account_ids = [
            line.get("account_id", line.get("account"))
            for line in lines
            if line.get("account_id", line.get("account")) is not None
        ]
        accounts = self.chart.get_accounts(organization, account_ids) if account_ids else {}

        priced = []
        for idx, line in enumerate(lines, start=1):
            if not line.get("description"):
                raise ValidationFailed(f"Line {idx} needs a description")
            if line.get("unit_price") is None:
                raise ValidationFailed(f"Line {idx} needs a unit price")

            tax_rate = None
            rate_percent = ZERO
            tax_rate_id = line.get("tax_rate_id", line.get("tax_rate"))
            if tax_rate_id is not None:
                tax_rate = self.tax_rates.get_rate(organization, tax_rate_id)
                rate_percent = tax_rate.rate

            quantity = line.get("quantity", 1)
            line_total, tax_amount = price_line(quantity, line["unit_price"], rate_percent)
            account_id = line.get("account_id", line.get("account"))
            priced.append({
                "description": line["description"],
                "quantity": to_decimal(quantity, places=QUANTITY_PLACES, max_digits=14),
                "unit_price": to_decimal(line["unit_price"], places=QUANTITY_PLACES),
                "tax_rate": tax_rate,
                "tax_rate_percent": rate_percent,
                "line_total": line_total,
                "tax_amount": tax_amount,
                "account": accounts[str(pk_of(account_id))] if account_id is not None else None,
            })
        return priced

    def create(self, organization, actor, customer, lines, date, due_date,
               currency=None, notes=None, terms=None):
        """
        customer: {"id", "name", "email"?, "address"?}
        lines: [{"description", "quantity", "unit_price", "tax_rate_id"?, "account_id"?}]
        """
        if not isinstance(customer, dict) or not customer.get("id") or not customer.get("name"):
            raise ValidationFailed("Customer id and name are required")

        priced = self._price_lines(organization, lines)
        issue_date = as_date(date)
        due = as_date(due_date, field="due date")
        if due < issue_date:
            raise ValidationFailed("Due date cannot be before the invoice date")

        subtotal = sum(line["line_total"] for line in priced)
        tax_amount = sum(line["tax_amount"] for line in priced)
        total = subtotal + tax_amount
        # discount lines may be negative, the invoice as a whole may not
        if total < 0:
            raise ValidationFailed(f"Invoice total cannot be negative ({from_cents(total)})")
        # raises when the total does not fit the money columns
        to_decimal(from_cents(total))
        currency = currency or organization.default_currency or getattr(
            settings, "LEDGER_DEFAULT_CURRENCY", "EUR")

        with transaction.atomic():
            number = next_reference(
                organization,
                series="invoice",
                prefix="INV",
                width=4,
                series_records=Invoice.objects.for_organization(organization),
                field="number",
            )
            try:
                with transaction.atomic():
                    invoice = Invoice.objects.create(
                        organization=organization,
                        number=number,
                        customer_id=str(customer["id"]),
                        customer_name=customer["name"],
                        customer_email=customer.get("email") or None,
                        customer_address=customer.get("address") or None,
                        date=issue_date,
                        due_date=due,
                        status="draft",
                        subtotal=from_cents(subtotal),
                        tax_amount=from_cents(tax_amount),
                        total=from_cents(total),
                        amount_paid=ZERO,
                        amount_due=from_cents(total),
                        currency=currency,
                        notes=notes or None,
                        terms=terms or None,
                        created_by=resolve_actor(actor),
                    )
            except IntegrityError:
                raise ValidationFailed(f"Invoice number {number} already exists")

            InvoiceLine.objects.bulk_create([
                InvoiceLine(
                    invoice=invoice,
                    line_no=line_no,
                    description=line["description"],
                    quantity=line["quantity"],
                    unit_price=line["unit_price"],
                    tax_rate=line["tax_rate"],
                    tax_rate_percent=line["tax_rate_percent"],
                    tax_amount=from_cents(line["tax_amount"]),
                    line_total=from_cents(line["line_total"]),
                    account=line["account"],
                )
                for line_no, line in enumerate(priced, start=1)
            ])

            log_action(
                action="create",
                instance=invoice,
                user=actor,
                changes={"number": number, "total": str(invoice.total)},
            )

        logger.info(
            "Invoice created",
            extra={"organization": organization.pk, "invoice": str(invoice.pk),
                   "number": number, "total": str(invoice.total)},
        )
        return self.get_by_id(invoice.pk, organization)

    def get_by_id(self, invoice_id, organization):
        try:
            return (
                Invoice.objects.for_organization(organization)
                .prefetch_related("lines")
                .get(pk=pk_of(invoice_id))
            )
        except (Invoice.DoesNotExist, ValidationError):
            raise NotFound(f"Invoice {pk_of(invoice_id)} not found")

    def list(self, organization, customer_id=None, status=None,
             date_from=None, date_to=None, limit=None, offset=0):
        invoices = (
            Invoice.objects.for_organization(organization)
            .prefetch_related("lines")
            .order_by("-date", "-created_at")
        )
        if customer_id:
            invoices = invoices.filter(customer_id=str(customer_id))
        if status:
            if status not in INVOICE_STATUSES:
                raise ValidationFailed(f"Unknown invoice status {status!r}")
            invoices = invoices.filter(status=status)
        if date_from is not None:
            invoices = invoices.filter(date__gte=as_date(date_from))
        if date_to is not None:
            invoices = invoices.filter(date__lte=as_date(date_to))

        offset = offset or 0
        if limit is not None:
            return list(invoices[offset:offset + limit])
        return list(invoices[offset:])

    def update(self, invoice_id, organization, patch, actor=None):
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationFailed(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        with transaction.atomic():
            invoice = self._lock(invoice_id, organization)
            if invoice.status in ("paid", "cancelled"):
                raise InvalidStateTransition(f"Cannot update {invoice.status} invoice")

            changes = {}
            for field, value in patch.items():
                if field in ("date", "due_date"):
                    value = as_date(value, field=field.replace("_", " "))
                elif field == "journal_entry":
                    value = self._resolve_entry(organization, value)
                elif field in ("customer_email", "customer_address", "notes", "terms"):
                    value = value or None
                elif not value:
                    raise ValidationFailed(f"{field} cannot be empty")
                setattr(invoice, field, value)
                changes[field] = str(pk_of(value)) if value is not None else None

            if invoice.due_date < invoice.date:
                raise ValidationFailed("Due date cannot be before the invoice date")

            invoice.save()
            log_action(action="update", instance=invoice, user=actor, changes=changes)

        logger.info(
            "Invoice updated",
            extra={"organization": organization.pk, "invoice": str(invoice.pk), "fields": sorted(changes)},
        )
        return self.get_by_id(invoice.pk, organization)

    def _resolve_entry(self, organization, value):
        if value is None:
            return None
        try:
            return JournalEntry.objects.for_organization(organization).get(pk=pk_of(value))
        except (JournalEntry.DoesNotExist, ValidationError):
            raise ReferenceNotFound(f"Journal entry {pk_of(value)} not found")

    def mark_as_sent(self, invoice_id, organization, actor=None):
        with transaction.atomic():
            invoice = self._lock(invoice_id, organization)
            if invoice.status != "draft":
                raise InvalidStateTransition(
                    f"Only draft invoices can be sent (status is {invoice.status})")

            invoice.status = "sent"
            invoice.sent_at = timezone.now()
            invoice.save(update_fields=["status", "sent_at", "updated_at"])
            log_action(action="send", instance=invoice, user=actor)

        logger.info(
            "Invoice sent",
            extra={"organization": organization.pk, "invoice": str(invoice.pk), "number": invoice.number},
        )
        return self.get_by_id(invoice.pk, organization)

    def record_payment(self, invoice_id, organization, amount, actor=None):
        """
        Add `amount` (negative to reverse) to amount_paid and re-derive status.
        Joins the caller's transaction when there is one.
        """
        delta = to_cents(amount)
        if delta == 0:
            raise ValidationFailed("Payment amount cannot be zero")

        with transaction.atomic():
            invoice = self._lock(invoice_id, organization)
            if invoice.status == "cancelled":
                raise InvalidStateTransition("Cannot record payment on cancelled invoice")

            total = to_cents(invoice.total)
            new_paid = to_cents(invoice.amount_paid) + delta
            new_due = total - new_paid
            if new_paid < 0:
                raise ValidationFailed(
                    f"Invoice {invoice.number}: amount paid cannot go below zero")
            if new_due < 0:
                raise ValidationFailed(
                    f"Invoice {invoice.number}: payment exceeds amount due "
                    f"({from_cents(total - to_cents(invoice.amount_paid))})")

            previous_status = invoice.status
            invoice.amount_paid = from_cents(new_paid)
            invoice.amount_due = from_cents(new_due)
            invoice.status = derive_invoice_status(
                invoice.amount_paid, invoice.total, previous_status,
                was_sent=invoice.sent_at is not None,
            )
            if invoice.status == "paid" and previous_status != "paid":
                invoice.paid_at = timezone.now()
            elif invoice.status != "paid":
                invoice.paid_at = None

            invoice.save(update_fields=["amount_paid", "amount_due", "status", "paid_at", "updated_at"])
            log_action(
                action="record_payment",
                instance=invoice,
                user=actor,
                changes={
                    "amount": str(from_cents(delta)),
                    "amount_paid": str(invoice.amount_paid),
                    "status": invoice.status,
                },
            )

        logger.info(
            "Invoice payment recorded",
            extra={"organization": organization.pk, "invoice": str(invoice.pk),
                   "amount": str(from_cents(delta)), "status": invoice.status},
        )
        return invoice

    def cancel(self, invoice_id, organization, actor=None):
        with transaction.atomic():
            invoice = self._lock(invoice_id, organization)
            if invoice.status == "paid":
                raise InvalidStateTransition(
                    "Cannot cancel paid invoice. Create a credit note instead.")
            if invoice.status == "cancelled":
                raise InvalidStateTransition("Invoice is already cancelled")

            invoice.status = "cancelled"
            invoice.save(update_fields=["status", "updated_at"])
            log_action(action="cancel", instance=invoice, user=actor)

        logger.info(
            "Invoice cancelled",
            extra={"organization": organization.pk, "invoice": str(invoice.pk)},
        )
        return self.get_by_id(invoice.pk, organization)

    def delete(self, invoice_id, organization, actor=None):
        with transaction.atomic():
            invoice = self._lock(invoice_id, organization)
            if invoice.status != "draft":
                raise InvalidStateTransition("Can only delete draft invoices")

            log_action(
                action="delete",
                instance=invoice,
                user=actor,
                changes={"number": invoice.number},
            )
            invoice.lines.all().delete()
            invoice.delete()

        logger.info(
            "Invoice deleted",
            extra={"organization": organization.pk, "number": invoice.number},
        )
