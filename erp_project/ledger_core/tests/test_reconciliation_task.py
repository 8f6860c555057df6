from decimal import Decimal

from django.test import TestCase

from ledger_core.models import Invoice
from ledger_core.services import InvoiceLifecycleManager, PaymentAllocator, find_balance_drift
from ledger_core.tasks import audit_invoice_balances

from .factories import customer, make_org


class BalanceDriftTests(TestCase):

    def setUp(self):
        self.org = make_org()
        self.invoices = InvoiceLifecycleManager()
        invoice = self.invoices.create(
            self.org, None, customer(),
            [{"description": "Service", "quantity": 1, "unit_price": "100"}],
            "2025-03-01", "2025-03-31",
        )
        self.invoice = self.invoices.mark_as_sent(invoice.pk, self.org)
        PaymentAllocator(invoices=self.invoices).create(
            self.org, None, {"customer_id": "CUST-1"}, "40.00", "cash", "2025-03-10",
            allocations=[{"invoice_id": self.invoice.pk, "amount": "40.00"}],
        )

    def test_consistent_ledger_has_no_drift(self):
        self.assertEqual(find_balance_drift(self.org), [])
        self.assertEqual(audit_invoice_balances(self.org.pk), [])

    def test_tampered_balance_is_reported(self):
        Invoice.objects.filter(pk=self.invoice.pk).update(amount_due=Decimal("10.00"))

        drift = find_balance_drift(self.org)
        self.assertEqual(len(drift), 1)
        self.assertEqual(drift[0]["invoice_id"], str(self.invoice.pk))
        self.assertEqual(drift[0]["allocated"], Decimal("40.00"))

    def test_paid_amount_without_allocations_is_reported(self):
        # balance moved by record_payment alone, no allocation behind it
        self.invoices.record_payment(self.invoice.pk, self.org, "10.00")

        drift = find_balance_drift(self.org)
        self.assertEqual([row["amount_paid"] for row in drift], [Decimal("50.00")])

    def test_task_logs_each_drifted_invoice(self):
        Invoice.objects.filter(pk=self.invoice.pk).update(amount_paid=Decimal("0.00"))

        with self.assertLogs("ledger_core.tasks", level="WARNING") as logs:
            result = audit_invoice_balances.apply(args=[self.org.pk]).get()

        self.assertEqual(result, [str(self.invoice.pk)])
        self.assertIn("Invoice balance drift", logs.output[0])
