import datetime
import uuid
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from ledger_core.exceptions import (InvalidStateTransition, NotFound, ReferenceNotFound,
                                    ValidationFailed)
from ledger_core.models import Invoice, InvoiceLine
from ledger_core.services import (InvoiceLifecycleManager, JournalEntryEngine,
                                  PaymentAllocator)

from .factories import (customer, make_account, make_journal, make_org, make_tax_rate,
                        make_user)


class InvoiceTestBase(TestCase):

    def setUp(self):
        self.org = make_org()
        self.user = make_user("alice", self.org)
        self.vat = make_tax_rate(self.org, "20")
        self.invoices = InvoiceLifecycleManager()
        self.payments = PaymentAllocator(invoices=self.invoices)
        self.year = timezone.now().year

    def make_invoice(self, quantity=2, unit_price="100", tax_rate=True, **kwargs):
        line = {"description": "Consulting", "quantity": quantity, "unit_price": unit_price}
        if tax_rate:
            line["tax_rate_id"] = self.vat.pk
        return self.invoices.create(
            self.org, self.user, kwargs.pop("customer", customer()), [line],
            kwargs.pop("date", "2025-03-01"), kwargs.pop("due_date", "2025-03-31"),
            **kwargs
        )

    def assertBalanced(self, invoice):
        """amount_due == total - amount_paid"""
        invoice.refresh_from_db()
        self.assertEqual(invoice.amount_due, invoice.total - invoice.amount_paid)


""" Walkthrough: create, send, pay, refuse cancel, delete payment """
class InvoiceScenarioTests(InvoiceTestBase):

    def test_full_payment_cycle(self):
        # 1. qty 2 × 100 at 20 % VAT
        invoice = self.make_invoice()
        self.assertEqual(invoice.subtotal, Decimal("200.00"))
        self.assertEqual(invoice.tax_amount, Decimal("40.00"))
        self.assertEqual(invoice.total, Decimal("240.00"))
        self.assertEqual(invoice.amount_due, Decimal("240.00"))
        self.assertEqual(invoice.amount_paid, Decimal("0.00"))
        self.assertEqual(invoice.status, "draft")
        self.assertEqual(invoice.number, f"INV-{self.year}-0001")

        # 2. send
        invoice = self.invoices.mark_as_sent(invoice.pk, self.org, actor=self.user)
        self.assertEqual(invoice.status, "sent")
        self.assertIsNotNone(invoice.sent_at)

        # 3. pay in full
        payment = self.payments.create(
            self.org, self.user, {"customer_id": "CUST-1"}, "240.00", "bank_transfer",
            "2025-03-10", allocations=[{"invoice_id": invoice.pk, "amount": "240.00"}],
        )
        invoice.refresh_from_db()
        self.assertEqual(invoice.amount_paid, Decimal("240.00"))
        self.assertEqual(invoice.amount_due, Decimal("0.00"))
        self.assertEqual(invoice.status, "paid")
        self.assertIsNotNone(invoice.paid_at)

        # 4. paid invoices are not cancelled (credit note instead)
        with self.assertRaises(InvalidStateTransition):
            self.invoices.cancel(invoice.pk, self.org)

        # 6. removing the payment puts the invoice back to sent
        self.payments.delete(payment.pk, self.org, actor=self.user)
        invoice.refresh_from_db()
        self.assertEqual(invoice.amount_paid, Decimal("0.00"))
        self.assertEqual(invoice.amount_due, Decimal("240.00"))
        self.assertEqual(invoice.status, "sent")
        self.assertIsNone(invoice.paid_at)

    def test_invoice_links_explicitly_to_a_journal_entry(self):
        # 5. journal entries are created on their own and linked by hand
        receivable = make_account(self.org, "411000", "Accounts receivable", "asset")
        sales = make_account(self.org, "706000", "Sales", "revenue")
        engine = JournalEntryEngine()
        entry = engine.create(
            self.org, make_journal(self.org), "2025-03-01", "INV sale",
            [
                {"account_id": receivable.pk, "debit": "240.00"},
                {"account_id": sales.pk, "credit": "240.00"},
            ],
            actor=self.user,
        )
        engine.post(entry.pk, self.org, actor=self.user)

        invoice = self.make_invoice()
        invoice = self.invoices.update(invoice.pk, self.org, {"journal_entry": entry.pk})
        self.assertEqual(invoice.journal_entry_id, entry.pk)


""" Creation """
class InvoiceCreateTests(InvoiceTestBase):

    def test_lines_are_priced_and_summed(self):
        invoice = self.invoices.create(
            self.org, self.user, customer(),
            [
                {"description": "Hours", "quantity": "3", "unit_price": "0.333"},
                {"description": "Licence", "quantity": 1, "unit_price": "19.99", "tax_rate_id": self.vat.pk},
            ],
            "2025-03-01", "2025-03-31",
        )
        lines = list(invoice.lines.all())
        self.assertEqual([line.line_no for line in lines], [1, 2])
        self.assertEqual(lines[0].line_total, Decimal("1.00"))
        self.assertEqual(lines[0].tax_amount, Decimal("0.00"))
        self.assertEqual(lines[1].tax_amount, Decimal("4.00"))
        self.assertEqual(lines[1].tax_rate_percent, Decimal("20"))
        self.assertEqual(invoice.subtotal, Decimal("20.99"))
        self.assertEqual(invoice.tax_amount, Decimal("4.00"))
        self.assertEqual(invoice.total, Decimal("24.99"))
        self.assertEqual(invoice.currency, "EUR")

    def test_numbers_are_sequential(self):
        first = self.make_invoice()
        second = self.make_invoice()
        self.assertEqual(first.number, f"INV-{self.year}-0001")
        self.assertEqual(second.number, f"INV-{self.year}-0002")

    def test_at_least_one_line_is_required(self):
        with self.assertRaises(ValidationFailed):
            self.invoices.create(self.org, self.user, customer(), [], "2025-03-01", "2025-03-31")

    def test_unknown_tax_rate_raises_reference_not_found(self):
        with self.assertRaises(ReferenceNotFound):
            self.invoices.create(
                self.org, self.user, customer(),
                [{"description": "x", "unit_price": "10", "tax_rate_id": uuid.uuid4()}],
                "2025-03-01", "2025-03-31",
            )
        self.assertFalse(Invoice.objects.exists())

    def test_due_date_before_issue_date_is_rejected(self):
        with self.assertRaises(ValidationFailed):
            self.make_invoice(date="2025-03-31", due_date="2025-03-01")

    def test_customer_is_required(self):
        with self.assertRaises(ValidationFailed):
            self.make_invoice(customer={"id": "CUST-1"})
        with self.assertRaises(ValidationFailed):
            self.make_invoice(customer="CUST-1")

    def test_lines_must_be_objects(self):
        for lines in (["x"], "Consulting", {"description": "x", "unit_price": "10"}):
            with self.assertRaises(ValidationFailed):
                self.invoices.create(self.org, self.user, customer(), lines, "2025-03-01", "2025-03-31")
        self.assertFalse(Invoice.objects.exists())

    def test_discount_lines_are_fine_while_the_total_stays_positive(self):
        invoice = self.invoices.create(
            self.org, self.user, customer(),
            [
                {"description": "Consulting", "unit_price": "100"},
                {"description": "Loyalty discount", "unit_price": "-30"},
            ],
            "2025-03-01", "2025-03-31",
        )
        self.assertEqual(invoice.total, Decimal("70.00"))

    def test_negative_total_is_rejected(self):
        with self.assertRaisesMessage(ValidationFailed, "Invoice total cannot be negative"):
            self.make_invoice(quantity=1, unit_price="-50", tax_rate=False)
        self.assertFalse(Invoice.objects.exists())

    def test_amount_too_large_to_store_is_rejected(self):
        with self.assertRaises(ValidationFailed):
            self.make_invoice(quantity=1, unit_price="1e30")
        # each line is 4.5e15; only their sum exceeds the money columns
        with self.assertRaises(ValidationFailed):
            self.invoices.create(
                self.org, self.user, customer(),
                [{"description": "Big", "quantity": 50, "unit_price": "90000000000000"}] * 3,
                "2025-03-01", "2025-03-31",
            )
        self.assertFalse(Invoice.objects.exists())


""" Status workflow """
class InvoiceWorkflowTests(InvoiceTestBase):

    def test_only_draft_can_be_sent(self):
        invoice = self.make_invoice()
        self.invoices.mark_as_sent(invoice.pk, self.org)

        with self.assertRaises(InvalidStateTransition):
            self.invoices.mark_as_sent(invoice.pk, self.org)

    def test_partial_then_paid(self):
        invoice = self.invoices.mark_as_sent(self.make_invoice().pk, self.org)

        invoice = self.invoices.record_payment(invoice.pk, self.org, "100.00")
        self.assertEqual(invoice.status, "partial")
        self.assertEqual(invoice.amount_due, Decimal("140.00"))
        self.assertIsNone(invoice.paid_at)

        invoice = self.invoices.record_payment(invoice.pk, self.org, "140.00")
        self.assertEqual(invoice.status, "paid")
        self.assertIsNotNone(invoice.paid_at)
        self.assertBalanced(invoice)

    def test_payment_on_draft_moves_it_to_partial(self):
        invoice = self.invoices.record_payment(self.make_invoice().pk, self.org, 40)
        self.assertEqual(invoice.status, "partial")

    def test_negative_payment_reverses_and_recomputes_status(self):
        invoice = self.invoices.mark_as_sent(self.make_invoice().pk, self.org)
        self.invoices.record_payment(invoice.pk, self.org, "240.00")

        invoice = self.invoices.record_payment(invoice.pk, self.org, "-40.00")
        self.assertEqual(invoice.status, "partial")
        self.assertIsNone(invoice.paid_at)
        self.assertBalanced(invoice)

    def test_balances_never_go_negative(self):
        invoice = self.make_invoice()

        with self.assertRaises(ValidationFailed):
            self.invoices.record_payment(invoice.pk, self.org, "240.01")
        with self.assertRaises(ValidationFailed):
            self.invoices.record_payment(invoice.pk, self.org, "-0.01")
        with self.assertRaises(ValidationFailed):
            self.invoices.record_payment(invoice.pk, self.org, 0)

        invoice.refresh_from_db()
        self.assertEqual(invoice.amount_paid, Decimal("0.00"))

    def test_cancelled_invoice_takes_no_payment(self):
        invoice = self.make_invoice()
        invoice = self.invoices.cancel(invoice.pk, self.org)
        self.assertEqual(invoice.status, "cancelled")
        self.assertBalanced(invoice)

        with self.assertRaises(InvalidStateTransition):
            self.invoices.record_payment(invoice.pk, self.org, "10.00")
        with self.assertRaises(InvalidStateTransition):
            self.invoices.cancel(invoice.pk, self.org)

    def test_partially_paid_invoice_can_be_cancelled(self):
        invoice = self.invoices.mark_as_sent(self.make_invoice().pk, self.org)
        self.invoices.record_payment(invoice.pk, self.org, "100.00")

        invoice = self.invoices.cancel(invoice.pk, self.org)
        self.assertEqual(invoice.status, "cancelled")
        self.assertEqual(invoice.amount_due, Decimal("140.00"))

    def test_delete_only_drafts(self):
        draft = self.make_invoice()
        self.invoices.delete(draft.pk, self.org)
        self.assertFalse(Invoice.objects.filter(pk=draft.pk).exists())
        self.assertFalse(InvoiceLine.objects.filter(invoice_id=draft.pk).exists())

        sent = self.invoices.mark_as_sent(self.make_invoice().pk, self.org)
        with self.assertRaises(InvalidStateTransition):
            self.invoices.delete(sent.pk, self.org)


""" Updates """
class InvoiceUpdateTests(InvoiceTestBase):

    def test_update_normalises_dates_and_snapshot_fields(self):
        invoice = self.invoices.update(
            self.make_invoice().pk, self.org,
            {"due_date": "2025-04-15", "customer_name": "ACME Holdings", "notes": "Thanks"},
            actor=self.user,
        )
        self.assertEqual(invoice.due_date, datetime.date(2025, 4, 15))
        self.assertEqual(invoice.customer_name, "ACME Holdings")
        self.assertEqual(invoice.notes, "Thanks")

    def test_status_and_amounts_are_not_patchable(self):
        invoice = self.make_invoice()
        for patch in ({"status": "paid"}, {"total": "1.00"}, {"amount_paid": "240"}):
            with self.assertRaises(ValidationFailed):
                self.invoices.update(invoice.pk, self.org, patch)

    def test_paid_and_cancelled_invoices_are_frozen(self):
        paid = self.make_invoice()
        self.invoices.record_payment(paid.pk, self.org, "240.00")
        cancelled = self.invoices.cancel(self.make_invoice().pk, self.org)

        for invoice in (paid, cancelled):
            with self.assertRaises(InvalidStateTransition):
                self.invoices.update(invoice.pk, self.org, {"notes": "late edit"})

    def test_journal_entry_must_belong_to_the_organization(self):
        with self.assertRaises(ReferenceNotFound):
            self.invoices.update(self.make_invoice().pk, self.org, {"journal_entry": uuid.uuid4()})


""" Queries """
class InvoiceQueryTests(InvoiceTestBase):

    def setUp(self):
        super().setUp()
        self.acme = self.make_invoice(date="2025-03-01")
        self.globex = self.make_invoice(
            customer=customer("CUST-2", "Globex"), date="2025-04-01", due_date="2025-04-30")
        self.invoices.mark_as_sent(self.globex.pk, self.org)

    def test_list_filters(self):
        self.assertEqual(
            [i.pk for i in self.invoices.list(self.org, customer_id="CUST-2")], [self.globex.pk])
        self.assertEqual(
            [i.pk for i in self.invoices.list(self.org, status="draft")], [self.acme.pk])
        self.assertEqual(
            [i.pk for i in self.invoices.list(self.org, date_to="2025-03-31")], [self.acme.pk])
        self.assertEqual(
            [i.pk for i in self.invoices.list(self.org, limit=1)], [self.globex.pk])
        self.assertEqual(
            [i.pk for i in self.invoices.list(self.org, limit=1, offset=1)], [self.acme.pk])

    def test_get_by_id_is_scoped_to_the_organization(self):
        other = make_org("Other Co", "other-co")
        with self.assertRaises(NotFound):
            self.invoices.get_by_id(self.acme.pk, other)
