"""
Data Models Package

This package contains all Pydantic models used in the Pocket Ledger core.
All data flowing through the system must conform to these schemas.
"""

from pocket_ledger.models.transaction import (
    Account,
    AccountType,
    BillingRule,
    Transaction,
    TransactionMetadata,
    TransactionType,
    coerce_amount,
)
from pocket_ledger.models.ledger import (
    ApplyResult,
    ApplyStatus,
    LedgerState,
    NetWorthBreakdown,
    ProcessedEvent,
    TransactionChange,
)
from pocket_ledger.models.history import (
    HistoricalSeries,
    HistoricalSnapshot,
    MonthlySummary,
)
from pocket_ledger.models.billing import Bill, PaymentDraft
from pocket_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "Account",
    "AccountType",
    "BillingRule",
    "Transaction",
    "TransactionMetadata",
    "TransactionType",
    "coerce_amount",
    # Ledger models
    "ApplyResult",
    "ApplyStatus",
    "LedgerState",
    "NetWorthBreakdown",
    "ProcessedEvent",
    "TransactionChange",
    # History models
    "HistoricalSeries",
    "HistoricalSnapshot",
    "MonthlySummary",
    # Billing models
    "Bill",
    "PaymentDraft",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
