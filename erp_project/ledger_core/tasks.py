import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task  # register this function as a Celery task
def audit_invoice_balances(organization_id):
    """
    Compare every invoice's stored balances with its allocations.
    Returns the ids of invoices that drifted.
    """
    # import models lazily to avoid circular imports at module import time
    from .models import Organization
    from .services.reconciliation import find_balance_drift

    organization = Organization.objects.get(pk=organization_id)
    drift = find_balance_drift(organization)
    for row in drift:
        logger.warning(
            "Invoice balance drift",
            extra={
                "organization": organization.pk,
                "invoice": row["invoice_id"],
                "number": row["number"],
                "total": str(row["total"]),
                "amount_paid": str(row["amount_paid"]),
                "amount_due": str(row["amount_due"]),
                "allocated": str(row["allocated"]),
            },
        )

    logger.info(
        "Invoice balance audit finished",
        extra={"organization": organization.pk, "drifted": len(drift)},
    )
    return [row["invoice_id"] for row in drift]
