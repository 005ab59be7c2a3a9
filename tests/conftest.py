"""
Shared fixtures for the Pocket Ledger test suite.

Everything runs against the in-memory backends; no test touches
Google Sheets or the network.
"""

from datetime import datetime
from itertools import count

import pytest

from pocket_ledger.audit import AuditLogger
from pocket_ledger.config import LedgerSettings
from pocket_ledger.models.ledger import TransactionChange
from pocket_ledger.models.transaction import Transaction
from pocket_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryHistoryStorage,
    InMemoryLedgerStorage,
)

USER_ID = "user-1"

_ids = count(1)


def make_tx(type_: str, amount, when="2024-01-10", **fields) -> Transaction:
    """Build a transaction with sensible defaults for tests."""
    if isinstance(when, str):
        when = datetime.fromisoformat(when)
    return Transaction(
        id=fields.pop("id", f"tx-{next(_ids)}"),
        user_id=fields.pop("user_id", USER_ID),
        type=type_,
        amount=amount,
        date=when,
        **fields,
    )


def make_change(before=None, after=None, event_id=None) -> TransactionChange:
    return TransactionChange(
        event_id=event_id or f"evt-{next(_ids)}",
        before=before,
        after=after,
    )


@pytest.fixture
def settings() -> LedgerSettings:
    """Ledger settings with no backoff so conflict retries are instant."""
    return LedgerSettings(
        timezone="Asia/Tokyo",
        max_apply_attempts=3,
        retry_wait_min_seconds=0,
        retry_wait_max_seconds=0,
    )


@pytest.fixture
def ledger_storage() -> InMemoryLedgerStorage:
    return InMemoryLedgerStorage()


@pytest.fixture
def history_storage() -> InMemoryHistoryStorage:
    return InMemoryHistoryStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)
