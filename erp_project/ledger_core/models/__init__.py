from .account import Account
from .auditlog import AuditLog
from .invoice import Invoice, InvoiceLine
from .journal import Journal, JournalEntry, JournalEntryLine
from .organization import Membership, Organization
from .payment import Payment, PaymentAllocation
from .sequence import DocumentSequence
from .tax_rate import TaxRate
