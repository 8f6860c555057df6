from django.urls import path

from . import views

app_name = "ledger_core"

urlpatterns = [
    # Journals
    path("journals/", views.journal_collection, name="journal-list"),
    path("journals/<uuid:pk>/", views.journal_detail, name="journal-detail"),
    # Journal entries
    path("journal-entries/", views.journal_entry_collection, name="journal-entry-list"),
    path("journal-entries/<uuid:pk>/", views.journal_entry_detail, name="journal-entry-detail"),
    path("journal-entries/<uuid:pk>/post/", views.journal_entry_post, name="journal-entry-post"),
    path("journal-entries/<uuid:pk>/cancel/", views.journal_entry_cancel, name="journal-entry-cancel"),
    path("journal-entries/<uuid:pk>/reverse/", views.journal_entry_reverse, name="journal-entry-reverse"),
    # Invoices
    path("invoices/", views.invoice_collection, name="invoice-list"),
    path("invoices/<uuid:pk>/", views.invoice_detail, name="invoice-detail"),
    path("invoices/<uuid:pk>/send/", views.invoice_send, name="invoice-send"),
    path("invoices/<uuid:pk>/cancel/", views.invoice_cancel, name="invoice-cancel"),
    path("invoices/<uuid:pk>/record-payment/", views.invoice_record_payment, name="invoice-record-payment"),
    path("invoices/<uuid:pk>/allocations/", views.invoice_allocations, name="invoice-allocations"),
    # Payments
    path("payments/", views.payment_collection, name="payment-list"),
    path("payments/<uuid:pk>/", views.payment_detail, name="payment-detail"),
]
