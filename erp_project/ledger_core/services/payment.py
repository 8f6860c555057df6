import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from ..exceptions import (InvalidStateTransition, NotFound, ReferenceNotFound,
                          ValidationFailed)
from ..models import Invoice, JournalEntry, Payment, PaymentAllocation
from ..models.payment import PAYMENT_METHODS
from ..money import as_date, from_cents, to_cents
from .audit_helper import log_action, resolve_actor
from .invoice import InvoiceLifecycleManager
from .lookups import ChartOfAccounts, pk_of
from .sequences import ensure_reference_available, next_reference

logger = logging.getLogger(__name__)

METHODS = {method for method, _ in PAYMENT_METHODS}


def _requested_by_invoice(allocations):
    """
    Validate allocation dicts ({"invoice_id"|"invoice", "amount"}) and
    return (normalized list, cents requested per invoice id).
    """
    if not isinstance(allocations, (list, tuple)):
        raise ValidationFailed("Allocations must be a list")
    normalized = []
    requested = {}
    for idx, allocation in enumerate(allocations, start=1):
        if not isinstance(allocation, dict):
            raise ValidationFailed(f"Allocation {idx} must be an object")
        invoice_id = allocation.get("invoice_id", allocation.get("invoice"))
        if invoice_id is None:
            raise ValidationFailed(f"Allocation {idx} has no invoice")
        cents = to_cents(allocation.get("amount"))
        if cents <= 0:
            raise ValidationFailed(f"Allocation {idx}: amount must be positive")
        key = str(pk_of(invoice_id))
        # cumulative, an invoice may appear more than once
        requested[key] = requested.get(key, 0) + cents
        normalized.append((key, cents))
    return normalized, requested


# ----------------------------
# Payment Allocator
# ----------------------------
class PaymentAllocator:
    """
    Records payments and spreads them over invoices.
    Invoice balances only move through InvoiceLifecycleManager.record_payment.
    """

    def __init__(self, invoices=None, chart=None):
        self.invoices = invoices or InvoiceLifecycleManager()
        self.chart = chart or ChartOfAccounts()

    def create(self, organization, actor, payer, amount, method, date,
               allocations=None, reference=None, currency=None, account=None,
               journal_entry=None, notes=None):
        """
        payer: {"customer_id"?, "supplier_id"?}
        allocations: [{"invoice_id", "amount"}], must add up to `amount`.
        """
        payer = payer or {}
        if not isinstance(payer, dict):
            raise ValidationFailed("Payer must be an object")
        amount_cents = to_cents(amount)
        if amount_cents <= 0:
            raise ValidationFailed("Payment amount must be positive")
        if not isinstance(method, str) or method not in METHODS:
            raise ValidationFailed(f"Unknown payment method {method!r}")
        pay_date = as_date(date)
        currency = currency or organization.default_currency or getattr(
            settings, "LEDGER_DEFAULT_CURRENCY", "EUR")

        normalized, requested = _requested_by_invoice(allocations or [])
        if normalized and sum(requested.values()) != amount_cents:
            raise ValidationFailed(
                f"Allocation total ({from_cents(sum(requested.values()))}) "
                f"does not match payment amount ({from_cents(amount_cents)})"
            )

        if account is not None:
            account = self.chart.get_accounts(organization, [account])[str(pk_of(account))]
        if journal_entry is not None:
            try:
                journal_entry = JournalEntry.objects.for_organization(organization).get(
                    pk=pk_of(journal_entry))
            except (JournalEntry.DoesNotExist, ValidationError):
                raise ReferenceNotFound(f"Journal entry {pk_of(journal_entry)} not found")

        with transaction.atomic():
            # Lock target invoices in a stable order, then check before writing
            targets = {}
            for invoice_id in sorted(requested):
                try:
                    invoice = Invoice.objects.get_for_update(organization, invoice_id)
                except (Invoice.DoesNotExist, ValidationError):
                    raise ReferenceNotFound(f"Invoice {invoice_id} not found")
                if invoice.status == "cancelled":
                    raise InvalidStateTransition(
                        f"Cannot allocate payment to cancelled invoice {invoice.number}")
                if invoice.currency != currency:
                    raise ValidationFailed(
                        f"Invoice {invoice.number} is in {invoice.currency}, payment is in {currency}")
                if requested[invoice_id] > to_cents(invoice.amount_due):
                    raise ValidationFailed(
                        f"Allocation of {from_cents(requested[invoice_id])} exceeds amount due "
                        f"({invoice.amount_due}) on invoice {invoice.number}"
                    )
                targets[invoice_id] = invoice

            if reference:
                ensure_reference_available(Payment, organization, reference)
            else:
                reference = next_reference(
                    organization,
                    series="payment",
                    prefix="PAY",
                    width=4,
                    series_records=Payment.objects.for_organization(organization),
                )

            try:
                with transaction.atomic():
                    payment = Payment.objects.create(
                        organization=organization,
                        reference=reference,
                        date=pay_date,
                        amount=from_cents(amount_cents),
                        currency=currency,
                        method=method,
                        customer_id=payer.get("customer_id") or None,
                        supplier_id=payer.get("supplier_id") or None,
                        account=account,
                        journal_entry=journal_entry,
                        notes=notes or None,
                        created_by=resolve_actor(actor),
                    )
            except IntegrityError:
                raise ValidationFailed(f"Payment reference {reference} already exists")

            for invoice_id, cents in normalized:
                PaymentAllocation.objects.create(
                    organization=organization,
                    payment=payment,
                    invoice=targets[invoice_id],
                    amount=from_cents(cents),
                )
                self.invoices.record_payment(invoice_id, organization, from_cents(cents), actor=actor)

            log_action(
                action="create",
                instance=payment,
                user=actor,
                changes={
                    "reference": reference,
                    "amount": str(payment.amount),
                    "allocations": {key: str(from_cents(cents)) for key, cents in requested.items()},
                },
            )

        logger.info(
            "Payment recorded",
            extra={"organization": organization.pk, "payment": str(payment.pk), "reference": reference,
                   "amount": str(payment.amount), "allocations": len(normalized)},
        )
        return self.get_with_allocations(payment.pk, organization)

    def get_by_id(self, payment_id, organization):
        try:
            return Payment.objects.for_organization(organization).get(pk=pk_of(payment_id))
        except (Payment.DoesNotExist, ValidationError):
            raise NotFound(f"Payment {pk_of(payment_id)} not found")

    def get_with_allocations(self, payment_id, organization):
        try:
            return (
                Payment.objects.for_organization(organization)
                .prefetch_related("allocations__invoice")
                .get(pk=pk_of(payment_id))
            )
        except (Payment.DoesNotExist, ValidationError):
            raise NotFound(f"Payment {pk_of(payment_id)} not found")

    def list(self, organization, customer_id=None, supplier_id=None,
             date_from=None, date_to=None, limit=None, offset=0):
        payments = Payment.objects.for_organization(organization).order_by("-date", "-created_at")
        if customer_id:
            payments = payments.filter(customer_id=str(customer_id))
        if supplier_id:
            payments = payments.filter(supplier_id=str(supplier_id))
        if date_from is not None:
            payments = payments.filter(date__gte=as_date(date_from))
        if date_to is not None:
            payments = payments.filter(date__lte=as_date(date_to))

        offset = offset or 0
        if limit is not None:
            return list(payments[offset:offset + limit])
        return list(payments[offset:])

    def get_allocations_for_invoice(self, invoice_id, organization):
        """Incoming allocations of an invoice, each with its payment attached."""
        try:
            known = Invoice.objects.for_organization(organization).filter(pk=pk_of(invoice_id)).exists()
        except ValidationError:
            known = False
        if not known:
            raise NotFound(f"Invoice {pk_of(invoice_id)} not found")
        return list(
            PaymentAllocation.objects.for_organization(organization)
            .filter(invoice_id=pk_of(invoice_id))
            .select_related("payment")
            .order_by("created_at", "payment__reference")
        )

    def delete(self, payment_id, organization, actor=None):
        """
        Undo every allocation on its invoice, then drop allocations and payment.
        One transaction: either all balances are restored or nothing changes.
        """
        with transaction.atomic():
            try:
                payment = Payment.objects.get_for_update(organization, pk_of(payment_id))
            except (Payment.DoesNotExist, ValidationError):
                raise NotFound(f"Payment {pk_of(payment_id)} not found")

            allocations = sorted(payment.allocations.all(), key=lambda a: str(a.invoice_id))
            for allocation in allocations:
                self.invoices.record_payment(
                    allocation.invoice_id, organization, -allocation.amount, actor=actor)

            log_action(
                action="delete",
                instance=payment,
                user=actor,
                changes={
                    "reference": payment.reference,
                    "amount": str(payment.amount),
                    "reversed": {str(a.invoice_id): str(a.amount) for a in allocations},
                },
            )
            payment.allocations.all().delete()
            payment.delete()

        logger.info(
            "Payment deleted",
            extra={"organization": organization.pk, "reference": payment.reference,
                   "allocations": len(allocations)},
        )
