from decimal import Decimal

from django.db.models import DecimalField, Sum, Value
from django.db.models.functions import Coalesce

from ..models import Invoice


def find_balance_drift(organization):
    """
    Invoices whose stored balances disagree with their allocations.

    Returns a list of dicts: invoice id, number, total, amount_paid,
    amount_due and the allocated sum actually found.
    """
    invoices = (
        Invoice.objects.for_organization(organization)
        .annotate(
            allocated=Coalesce(
                Sum("allocations__amount"),
                Value(Decimal("0.00")),
                output_field=DecimalField(max_digits=18, decimal_places=2),
            )
        )
        .order_by("date", "number")
    )

    drift = []
    for invoice in invoices:
        due_matches = invoice.amount_due == invoice.total - invoice.amount_paid
        paid_matches = invoice.amount_paid == invoice.allocated
        if due_matches and paid_matches:
            continue
        drift.append({
            "invoice_id": str(invoice.pk),
            "number": invoice.number,
            "total": invoice.total,
            "amount_paid": invoice.amount_paid,
            "amount_due": invoice.amount_due,
            "allocated": invoice.allocated,
        })
    return drift
