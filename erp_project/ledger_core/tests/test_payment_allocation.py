import uuid
from decimal import Decimal

from django.db import transaction
from django.db.models.deletion import ProtectedError
from django.test import TestCase
from django.utils import timezone

from ledger_core.exceptions import (InvalidStateTransition, NotFound, ReferenceNotFound,
                                    ValidationFailed)
from ledger_core.models import Invoice, Payment, PaymentAllocation
from ledger_core.services import InvoiceLifecycleManager, PaymentAllocator

from .factories import customer, make_account, make_org, make_user


class PaymentAllocationTests(TestCase):

    def setUp(self):
        self.org = make_org()
        self.user = make_user("alice", self.org)
        self.bank = make_account(self.org, "512000", "Bank", "asset")
        self.invoices = InvoiceLifecycleManager()
        self.allocator = PaymentAllocator(invoices=self.invoices)
        self.year = timezone.now().year
        # two sent invoices: 200.00 and 100.00, no tax
        self.inv_a = self.send_invoice("200")
        self.inv_b = self.send_invoice("100")

    def send_invoice(self, unit_price):
        invoice = self.invoices.create(
            self.org, self.user, customer(),
            [{"description": "Service", "quantity": 1, "unit_price": unit_price}],
            "2025-03-01", "2025-03-31",
        )
        return self.invoices.mark_as_sent(invoice.pk, self.org)

    def pay(self, amount, allocations=None, **kwargs):
        return self.allocator.create(
            self.org, self.user, {"customer_id": "CUST-1"}, amount, "bank_transfer",
            kwargs.pop("date", "2025-03-15"), allocations=allocations, **kwargs
        )

    """ Creation """

    def test_unallocated_payment(self):
        payment = self.pay("50.00", account=self.bank, notes="On account")

        self.assertEqual(payment.reference, f"PAY-{self.year}-0001")
        self.assertEqual(payment.amount, Decimal("50.00"))
        self.assertEqual(payment.currency, "EUR")
        self.assertEqual(payment.account, self.bank)
        self.assertEqual(payment.allocations.count(), 0)

    def test_payment_split_across_invoices(self):
        payment = self.pay("250.00", [
            {"invoice_id": self.inv_a.pk, "amount": "150.00"},
            {"invoice_id": self.inv_b.pk, "amount": "100.00"},
        ])

        self.inv_a.refresh_from_db()
        self.inv_b.refresh_from_db()
        self.assertEqual(self.inv_a.status, "partial")
        self.assertEqual(self.inv_a.amount_due, Decimal("50.00"))
        self.assertEqual(self.inv_b.status, "paid")
        self.assertEqual(self.inv_b.amount_due, Decimal("0.00"))

        allocated = sum(a.amount for a in payment.allocations.all())
        self.assertEqual(allocated, payment.amount)

    def test_allocations_must_add_up_to_the_amount(self):
        with self.assertRaises(ValidationFailed):
            self.pay("100.00", [{"invoice_id": self.inv_a.pk, "amount": "90.00"}])

        self.assertFalse(Payment.objects.exists())

    def test_allocation_cannot_exceed_amount_due(self):
        with self.assertRaises(ValidationFailed):
            self.pay("150.00", [{"invoice_id": self.inv_b.pk, "amount": "150.00"}])

        self.inv_b.refresh_from_db()
        self.assertEqual(self.inv_b.amount_paid, Decimal("0.00"))

    def test_over_allocation_is_checked_per_invoice_cumulatively(self):
        # each row fits on its own, together they exceed 100.00
        with self.assertRaises(ValidationFailed):
            self.pay("120.00", [
                {"invoice_id": self.inv_b.pk, "amount": "60.00"},
                {"invoice_id": self.inv_b.pk, "amount": "60.00"},
            ])

        self.assertFalse(Payment.objects.exists())
        self.assertFalse(PaymentAllocation.objects.exists())

    def test_unknown_invoice_raises_reference_not_found(self):
        with self.assertRaises(ReferenceNotFound):
            self.pay("10.00", [{"invoice_id": uuid.uuid4(), "amount": "10.00"}])
        with self.assertRaises(ReferenceNotFound):
            self.pay("10.00", [{"invoice_id": "garbage", "amount": "10.00"}])

    def test_cancelled_invoice_cannot_receive_allocations(self):
        self.invoices.cancel(self.inv_b.pk, self.org)

        with self.assertRaises(InvalidStateTransition):
            self.pay("10.00", [{"invoice_id": self.inv_b.pk, "amount": "10.00"}])
        self.assertFalse(Payment.objects.exists())

    def test_currency_must_match_the_invoice(self):
        with self.assertRaises(ValidationFailed):
            self.pay("10.00", [{"invoice_id": self.inv_b.pk, "amount": "10.00"}], currency="USD")

    def test_invalid_amount_and_method(self):
        with self.assertRaises(ValidationFailed):
            self.pay("0")
        with self.assertRaises(ValidationFailed):
            self.allocator.create(self.org, self.user, {}, "10.00", "barter", "2025-03-15")

    def test_manual_reference_must_be_unique(self):
        self.pay("10.00", reference="BANK-7781")
        with self.assertRaises(ValidationFailed):
            self.pay("10.00", reference="BANK-7781")

    """ Reads """

    def test_allocations_for_invoice_carry_their_payment(self):
        first = self.pay("40.00", [{"invoice_id": self.inv_a.pk, "amount": "40.00"}])
        second = self.pay("60.00", [{"invoice_id": self.inv_a.pk, "amount": "60.00"}])

        allocations = self.allocator.get_allocations_for_invoice(self.inv_a.pk, self.org)
        self.assertEqual([a.payment.reference for a in allocations], [first.reference, second.reference])
        self.assertEqual([a.amount for a in allocations], [Decimal("40.00"), Decimal("60.00")])

        with self.assertRaises(NotFound):
            self.allocator.get_allocations_for_invoice(uuid.uuid4(), self.org)

    def test_get_with_allocations(self):
        payment = self.pay("100.00", [{"invoice_id": self.inv_b.pk, "amount": "100.00"}])
        fetched = self.allocator.get_with_allocations(payment.pk, self.org)

        self.assertEqual([a.invoice for a in fetched.allocations.all()], [self.inv_b])
        with self.assertRaises(NotFound):
            self.allocator.get_by_id(uuid.uuid4(), self.org)

    def test_list_filters(self):
        march = self.pay("10.00", date="2025-03-15")
        april = self.pay("20.00", date="2025-04-15")
        supplier = self.allocator.create(
            self.org, self.user, {"supplier_id": "SUP-9"}, "30.00", "check", "2025-04-20")

        self.assertEqual([p.pk for p in self.allocator.list(self.org, supplier_id="SUP-9")], [supplier.pk])
        self.assertEqual(
            [p.pk for p in self.allocator.list(self.org, customer_id="CUST-1")], [april.pk, march.pk])
        self.assertEqual(
            [p.pk for p in self.allocator.list(self.org, date_from="2025-04-01", limit=1)], [supplier.pk])

    """ Deletion """

    def test_delete_restores_invoice_balances(self):
        payment = self.pay("250.00", [
            {"invoice_id": self.inv_a.pk, "amount": "150.00"},
            {"invoice_id": self.inv_b.pk, "amount": "100.00"},
        ])

        self.allocator.delete(payment.pk, self.org, actor=self.user)

        for invoice in (self.inv_a, self.inv_b):
            invoice.refresh_from_db()
            self.assertEqual(invoice.amount_paid, Decimal("0.00"))
            self.assertEqual(invoice.amount_due, invoice.total)
            self.assertEqual(invoice.status, "sent")
        self.assertFalse(Payment.objects.exists())
        self.assertFalse(PaymentAllocation.objects.exists())

        with self.assertRaises(NotFound):
            self.allocator.delete(payment.pk, self.org)

    def test_delete_keeps_other_payments_in_place(self):
        first = self.pay("40.00", [{"invoice_id": self.inv_b.pk, "amount": "40.00"}])
        self.pay("60.00", [{"invoice_id": self.inv_b.pk, "amount": "60.00"}])

        self.allocator.delete(first.pk, self.org)

        self.inv_b.refresh_from_db()
        self.assertEqual(self.inv_b.amount_paid, Decimal("60.00"))
        self.assertEqual(self.inv_b.status, "partial")

    def test_delete_returns_a_never_sent_invoice_to_draft(self):
        draft = self.invoices.create(
            self.org, self.user, customer(),
            [{"description": "Deposit", "quantity": 1, "unit_price": "100"}],
            "2025-03-01", "2025-03-31",
        )
        payment = self.pay("100.00", [{"invoice_id": draft.pk, "amount": "100.00"}])
        draft.refresh_from_db()
        self.assertEqual(draft.status, "paid")

        self.allocator.delete(payment.pk, self.org)

        draft.refresh_from_db()
        self.assertEqual(draft.status, "draft")
        self.assertIsNone(draft.sent_at)
        self.assertIsNone(draft.paid_at)
        # still a draft, so it can be sent or deleted as usual
        self.invoices.delete(draft.pk, self.org)
        self.assertFalse(Invoice.objects.filter(pk=draft.pk).exists())

    def test_delete_is_all_or_nothing(self):
        payment = self.pay("250.00", [
            {"invoice_id": self.inv_a.pk, "amount": "150.00"},
            {"invoice_id": self.inv_b.pk, "amount": "100.00"},
        ])
        # a partially paid invoice may be cancelled; its payment can then not be undone
        self.invoices.cancel(self.inv_a.pk, self.org)

        with self.assertRaises(InvalidStateTransition):
            self.allocator.delete(payment.pk, self.org)

        self.inv_b.refresh_from_db()
        self.assertEqual(self.inv_b.amount_paid, Decimal("100.00"))
        self.assertEqual(self.inv_b.status, "paid")
        self.assertEqual(PaymentAllocation.objects.filter(payment=payment).count(), 2)

    def test_invoice_with_allocations_cannot_be_deleted(self):
        self.pay("100.00", [{"invoice_id": self.inv_b.pk, "amount": "100.00"}])

        with self.assertRaises(ProtectedError), transaction.atomic():
            Invoice.objects.get(pk=self.inv_b.pk).delete()
