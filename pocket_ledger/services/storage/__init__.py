"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The in-memory backend implements the full atomicity contract; Google Sheets
backs the append-style history and audit stores.
"""

from pocket_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    ConnectionError,
    DuplicateError,
    HistoryStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from pocket_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryHistoryStorage,
    InMemoryLedgerStorage,
)
from pocket_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsHistoryStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "HistoryStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConflictError",
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryHistoryStorage",
    "InMemoryLedgerStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsHistoryStorage",
]
