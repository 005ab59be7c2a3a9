"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run the ledger against any store offering atomic read-modify-write
2. Use in-memory storage for testing
3. Keep the balance/history/billing logic decoupled from persistence

The interface is intentionally small. The ledger core never writes
transactions; it only reads them and maintains what is derived from them.

ATOMICITY CONTRACT for apply_delta:
The dedup check, the balance update and the processed-event record are
ONE unit. An implementation must re-check the event id inside the commit
(raising DuplicateError) and reject writes against a stale version
(raising ConflictError). Nothing may be visible if either check fails.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pocket_ledger.models.audit import AuditEvent
from pocket_ledger.models.history import HistoricalSeries
from pocket_ledger.models.ledger import LedgerState, ProcessedEvent
from pocket_ledger.models.transaction import Account, BillingRule, Transaction


class LedgerStorageInterface(ABC):
    """
    Abstract interface for the balance store, the dedup ledger and
    read access to a user's transactions and account configuration.
    """

    @abstractmethod
    async def get_ledger_state(self, user_id: str) -> LedgerState:
        """
        Read a user's balance document.

        Returns an empty state at version 0 for a user with no balances yet.
        """
        pass

    @abstractmethod
    async def is_event_processed(self, event_id: str) -> bool:
        """
        Check whether a change event has already been applied.

        Only a fast path: apply_delta re-checks inside the atomic unit.
        """
        pass

    @abstractmethod
    async def apply_delta(
        self,
        user_id: str,
        deltas: dict[str, Decimal],
        processed_event: ProcessedEvent,
        expected_version: int,
    ) -> LedgerState:
        """
        Atomically add deltas to the user's balances and record the event.

        Args:
            user_id: Owner of the balance document
            deltas: Signed change per account id
            processed_event: Dedup record to write in the same unit
            expected_version: Version read by get_ledger_state

        Returns:
            The committed state

        Raises:
            DuplicateError: The event id was recorded concurrently
            ConflictError: Another writer committed since expected_version
            StorageError: The store itself failed
        """
        pass

    @abstractmethod
    async def replace_balances(
        self,
        user_id: str,
        balances: dict[str, Decimal],
        expected_version: int,
    ) -> LedgerState:
        """
        Overwrite the balance map. Recovery use only.

        Raises:
            ConflictError: Another writer committed since expected_version
        """
        pass

    @abstractmethod
    async def touch_last_entry(self, user_id: str, at: datetime) -> None:
        """
        Record when the user last entered a transaction.

        Must not bump the balance version; the stamp is last-writer-wins
        and never participates in apply_delta's conflict check.
        """
        pass

    @abstractmethod
    async def list_transactions(self, user_id: str) -> list[Transaction]:
        """
        All of a user's transactions, in no particular order.
        """
        pass

    @abstractmethod
    async def list_accounts(self, user_id: str) -> list[Account]:
        """All of a user's accounts, deleted ones included."""
        pass

    @abstractmethod
    async def get_billing_rules(self, user_id: str) -> dict[str, BillingRule]:
        """Billing rules keyed by liability account id."""
        pass


class HistoryStorageInterface(ABC):
    """
    Abstract interface for the persisted net-worth history.

    A series is always written whole; partial updates are not supported.
    """

    @abstractmethod
    async def save_history(self, series: HistoricalSeries) -> bool:
        """
        Replace the user's stored series.

        Returns:
            True if saved successfully
        """
        pass

    @abstractmethod
    async def get_history(self, user_id: str) -> Optional[HistoricalSeries]:
        """The user's stored series, or None if never written."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one change notification).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConflictError(StorageError):
    """Optimistic-concurrency check failed; the caller should retry."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
