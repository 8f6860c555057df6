from .invoice import InvoiceLifecycleManager, derive_invoice_status, price_line
from .journal import (create_default_journals, create_journal, delete_journal, get_journal,
                      list_journals, update_journal)
from .journal_entry import JournalEntryEngine
from .lookups import ChartOfAccounts, TaxRateTable
from .payment import PaymentAllocator
from .reconciliation import find_balance_drift
