import json
from functools import wraps

from django.http import JsonResponse

from .exceptions import (InvalidStateTransition, LedgerError, NotFound,
                         ReferenceNotFound, ValidationFailed)
from .money import to_decimal
from .services import (InvoiceLifecycleManager, JournalEntryEngine, PaymentAllocator,
                       create_journal, delete_journal, get_journal, list_journals,
                       update_journal)

ERROR_STATUS = {
    NotFound: 404,
    ReferenceNotFound: 400,
    ValidationFailed: 400,
    InvalidStateTransition: 409,
}

journal_entries = JournalEntryEngine()
invoices = InvoiceLifecycleManager()
payments = PaymentAllocator(invoices=invoices)


def ledger_view(*methods):
    """
    Thin JSON handler: checks method and organization context, parses the
    body into request.json and turns ledger errors into responses.
    """
    def decorator(view):
        @wraps(view)
        def wrapper(request, *args, **kwargs):
            if request.method not in methods:
                return JsonResponse({"ok": False, "error": "Method not allowed"}, status=405)
            if getattr(request, "organization", None) is None:
                return JsonResponse({"ok": False, "error": "No active organization"}, status=403)
            try:
                request.json = json.loads(request.body) if request.body else {}
            except ValueError:
                request.json = None
            if not isinstance(request.json, dict):
                return JsonResponse({"ok": False, "error": "Malformed JSON body"}, status=400)
            try:
                return view(request, *args, **kwargs)
            except LedgerError as e:
                status = next(
                    (code for kind, code in ERROR_STATUS.items() if isinstance(e, kind)), 400
                )
                return JsonResponse(
                    {"ok": False, "error": str(e), "kind": type(e).__name__}, status=status
                )
        return wrapper
    return decorator


def _page(request):
    """limit / offset query parameters."""
    try:
        limit = request.GET.get("limit")
        limit = int(limit) if limit else None
        offset = int(request.GET.get("offset") or 0)
    except ValueError:
        raise ValidationFailed("limit and offset must be integers")
    if (limit is not None and limit < 0) or offset < 0:
        raise ValidationFailed("limit and offset must be >= 0")
    return limit, offset


def _actor(request):
    return getattr(request, "user", None)


# ----------------------------
# Serializers
# ----------------------------
def journal_to_dict(journal):
    return {
        "id": journal.pk,
        "code": journal.code,
        "name": journal.name,
        "journal_type": journal.journal_type,
        "is_active": journal.is_active,
    }


def entry_to_dict(entry):
    return {
        "id": entry.pk,
        "journal_id": entry.journal_id,
        "reference": entry.reference,
        "date": entry.date,
        "description": entry.description,
        "status": entry.status,
        "total_debit": entry.total_debit,
        "total_credit": entry.total_credit,
        "posted_at": entry.posted_at,
        "reversal_of": entry.reversal_of_id,
        "lines": [
            {
                "line_no": line.line_no,
                "account_id": line.account_id,
                "label": line.label,
                "debit": line.debit,
                "credit": line.credit,
            }
            for line in entry.lines.all()
        ],
    }


def invoice_to_dict(invoice):
    return {
        "id": invoice.pk,
        "number": invoice.number,
        "customer_id": invoice.customer_id,
        "customer_name": invoice.customer_name,
        "customer_email": invoice.customer_email,
        "customer_address": invoice.customer_address,
        "date": invoice.date,
        "due_date": invoice.due_date,
        "status": invoice.status,
        "subtotal": invoice.subtotal,
        "tax_amount": invoice.tax_amount,
        "total": invoice.total,
        "amount_paid": invoice.amount_paid,
        "amount_due": invoice.amount_due,
        "currency": invoice.currency,
        "notes": invoice.notes,
        "terms": invoice.terms,
        "journal_entry_id": invoice.journal_entry_id,
        "sent_at": invoice.sent_at,
        "paid_at": invoice.paid_at,
        "lines": [
            {
                "line_no": line.line_no,
                "description": line.description,
                "quantity": line.quantity,
                "unit_price": line.unit_price,
                "tax_rate_id": line.tax_rate_id,
                "tax_rate_percent": line.tax_rate_percent,
                "tax_amount": line.tax_amount,
                "line_total": line.line_total,
            }
            for line in invoice.lines.all()
        ],
    }


def payment_to_dict(payment, with_allocations=False):
    data = {
        "id": payment.pk,
        "reference": payment.reference,
        "date": payment.date,
        "amount": payment.amount,
        "currency": payment.currency,
        "method": payment.method,
        "customer_id": payment.customer_id,
        "supplier_id": payment.supplier_id,
        "account_id": payment.account_id,
        "journal_entry_id": payment.journal_entry_id,
        "notes": payment.notes,
    }
    if with_allocations:
        data["allocations"] = [
            {"invoice_id": a.invoice_id, "invoice_number": a.invoice.number, "amount": a.amount}
            for a in payment.allocations.all()
        ]
    return data


# ----------------------------
# Journals
# ----------------------------
@ledger_view("GET", "POST")
def journal_collection(request):
    org = request.organization
    if request.method == "POST":
        body = request.json
        journal = create_journal(org, body.get("code"), body.get("name"), body.get("journal_type"))
        return JsonResponse(journal_to_dict(journal), status=201)

    active = request.GET.get("active")
    if active not in (None, "", "true", "false"):
        raise ValidationFailed("active must be true or false")
    journals = list_journals(
        org,
        journal_type=request.GET.get("journal_type") or None,
        active=None if not active else active == "true",
    )
    return JsonResponse({"results": [journal_to_dict(j) for j in journals]})


@ledger_view("GET", "PATCH", "DELETE")
def journal_detail(request, pk):
    org = request.organization
    if request.method == "PATCH":
        journal = update_journal(org, pk, request.json, actor=_actor(request))
        return JsonResponse(journal_to_dict(journal))
    if request.method == "DELETE":
        delete_journal(org, pk, actor=_actor(request))
        return JsonResponse({"ok": True})
    return JsonResponse(journal_to_dict(get_journal(org, pk)))


# ----------------------------
# Journal entries
# ----------------------------
@ledger_view("GET", "POST")
def journal_entry_collection(request):
    org = request.organization
    if request.method == "POST":
        body = request.json
        entry = journal_entries.create(
            org,
            body.get("journal_id"),
            body.get("date"),
            body.get("description"),
            body.get("lines") or [],
            actor=_actor(request),
            reference=body.get("reference"),
        )
        return JsonResponse(entry_to_dict(entry), status=201)

    limit, offset = _page(request)
    entries = journal_entries.list(
        org,
        journal=request.GET.get("journal_id") or None,
        status=request.GET.get("status") or None,
        date_from=request.GET.get("date_from") or None,
        date_to=request.GET.get("date_to") or None,
        limit=limit,
        offset=offset,
    )
    return JsonResponse({"results": [entry_to_dict(e) for e in entries]})


@ledger_view("GET", "DELETE")
def journal_entry_detail(request, pk):
    if request.method == "DELETE":
        journal_entries.delete(pk, request.organization, actor=_actor(request))
        return JsonResponse({"ok": True})
    return JsonResponse(entry_to_dict(journal_entries.get_by_id(pk, request.organization)))


@ledger_view("POST")
def journal_entry_post(request, pk):
    entry = journal_entries.post(
        pk, request.organization, actor=_actor(request),
        effective_date=request.json.get("effective_date"),
    )
    return JsonResponse(entry_to_dict(entry))


@ledger_view("POST")
def journal_entry_cancel(request, pk):
    entry = journal_entries.cancel(pk, request.organization, actor=_actor(request))
    return JsonResponse(entry_to_dict(entry))


@ledger_view("POST")
def journal_entry_reverse(request, pk):
    entry = journal_entries.reverse(
        pk, request.organization, actor=_actor(request), date=request.json.get("date"),
    )
    return JsonResponse(entry_to_dict(entry), status=201)


# ----------------------------
# Invoices
# ----------------------------
@ledger_view("GET", "POST")
def invoice_collection(request):
    org = request.organization
    if request.method == "POST":
        body = request.json
        invoice = invoices.create(
            org,
            _actor(request),
            body.get("customer") or {},
            body.get("lines") or [],
            body.get("date"),
            body.get("due_date"),
            currency=body.get("currency"),
            notes=body.get("notes"),
            terms=body.get("terms"),
        )
        return JsonResponse(invoice_to_dict(invoice), status=201)

    limit, offset = _page(request)
    results = invoices.list(
        org,
        customer_id=request.GET.get("customer_id") or None,
        status=request.GET.get("status") or None,
        date_from=request.GET.get("date_from") or None,
        date_to=request.GET.get("date_to") or None,
        limit=limit,
        offset=offset,
    )
    return JsonResponse({"results": [invoice_to_dict(i) for i in results]})


@ledger_view("GET", "PATCH", "DELETE")
def invoice_detail(request, pk):
    org = request.organization
    if request.method == "PATCH":
        invoice = invoices.update(pk, org, request.json, actor=_actor(request))
        return JsonResponse(invoice_to_dict(invoice))
    if request.method == "DELETE":
        invoices.delete(pk, org, actor=_actor(request))
        return JsonResponse({"ok": True})
    return JsonResponse(invoice_to_dict(invoices.get_by_id(pk, org)))


@ledger_view("POST")
def invoice_send(request, pk):
    invoice = invoices.mark_as_sent(pk, request.organization, actor=_actor(request))
    return JsonResponse(invoice_to_dict(invoice))


@ledger_view("POST")
def invoice_cancel(request, pk):
    invoice = invoices.cancel(pk, request.organization, actor=_actor(request))
    return JsonResponse(invoice_to_dict(invoice))


@ledger_view("POST")
def invoice_record_payment(request, pk):
    # Reversals only happen through payment deletion, which also drops the allocations
    amount = to_decimal(request.json.get("amount"))
    if amount <= 0:
        raise ValidationFailed("Payment amount must be at least 0.01")
    invoices.record_payment(pk, request.organization, amount, actor=_actor(request))
    return JsonResponse(invoice_to_dict(invoices.get_by_id(pk, request.organization)))


@ledger_view("GET")
def invoice_allocations(request, pk):
    allocations = payments.get_allocations_for_invoice(pk, request.organization)
    return JsonResponse({
        "results": [
            {
                "id": a.pk,
                "amount": a.amount,
                "payment": payment_to_dict(a.payment),
            }
            for a in allocations
        ]
    })


# ----------------------------
# Payments
# ----------------------------
@ledger_view("GET", "POST")
def payment_collection(request):
    org = request.organization
    if request.method == "POST":
        body = request.json
        payment = payments.create(
            org,
            _actor(request),
            {"customer_id": body.get("customer_id"), "supplier_id": body.get("supplier_id")},
            body.get("amount"),
            body.get("method"),
            body.get("date"),
            allocations=body.get("allocations"),
            reference=body.get("reference"),
            currency=body.get("currency"),
            account=body.get("account_id"),
            journal_entry=body.get("journal_entry_id"),
            notes=body.get("notes"),
        )
        return JsonResponse(payment_to_dict(payment, with_allocations=True), status=201)

    limit, offset = _page(request)
    results = payments.list(
        org,
        customer_id=request.GET.get("customer_id") or None,
        supplier_id=request.GET.get("supplier_id") or None,
        date_from=request.GET.get("date_from") or None,
        date_to=request.GET.get("date_to") or None,
        limit=limit,
        offset=offset,
    )
    return JsonResponse({"results": [payment_to_dict(p) for p in results]})


@ledger_view("GET", "DELETE")
def payment_detail(request, pk):
    org = request.organization
    if request.method == "DELETE":
        payments.delete(pk, org, actor=_actor(request))
        return JsonResponse({"ok": True})
    return JsonResponse(payment_to_dict(payments.get_with_allocations(pk, org), with_allocations=True))
