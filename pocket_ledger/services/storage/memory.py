"""
In-Memory Storage Implementation

DESIGN DECISION: The reference backend lives in process memory.
It implements the full atomicity contract (per-user lock, version check,
dedup re-check inside the commit) so that the ledger logic can be
exercised exactly as it would run against a transactional database.

It is used by the test suite and for local runs without a database.
Nothing survives a restart.
"""

import asyncio
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pocket_ledger.models.audit import AuditEvent
from pocket_ledger.models.history import HistoricalSeries
from pocket_ledger.models.ledger import LedgerState, ProcessedEvent
from pocket_ledger.models.transaction import Account, BillingRule, Transaction
from pocket_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    DuplicateError,
    HistoryStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """
    Dict-backed ledger store.

    Besides the interface, it exposes write helpers for the data that the
    UI layer normally owns (transactions, accounts, rules).
    """

    def __init__(self):
        self._states: dict[str, LedgerState] = {}
        self._processed: dict[str, ProcessedEvent] = {}
        self._transactions: dict[str, dict[str, Transaction]] = defaultdict(dict)
        self._accounts: dict[str, dict[str, Account]] = defaultdict(dict)
        self._rules: dict[str, dict[str, BillingRule]] = defaultdict(dict)
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # -------------------------------------------------------------------------
    # Balance store & dedup ledger
    # -------------------------------------------------------------------------

    async def get_ledger_state(self, user_id: str) -> LedgerState:
        state = self._states.get(user_id)
        if state is None:
            return LedgerState(user_id=user_id)
        # Hand out a copy so callers cannot mutate committed state
        return state.model_copy(deep=True)

    async def is_event_processed(self, event_id: str) -> bool:
        return event_id in self._processed

    async def apply_delta(
        self,
        user_id: str,
        deltas: dict[str, Decimal],
        processed_event: ProcessedEvent,
        expected_version: int,
    ) -> LedgerState:
        async with self._locks[user_id]:
            if processed_event.event_id in self._processed:
                raise DuplicateError(f"Event already processed: {processed_event.event_id}")

            current = self._states.get(user_id) or LedgerState(user_id=user_id)
            if current.version != expected_version:
                raise ConflictError(
                    f"Balance version moved from {expected_version} to {current.version}"
                )

            balances = dict(current.balances)
            for account_id, amount in deltas.items():
                balances[account_id] = balances.get(account_id, Decimal("0")) + amount

            committed = LedgerState(
                user_id=user_id,
                balances=balances,
                version=current.version + 1,
                last_entry_at=current.last_entry_at,
            )
            self._states[user_id] = committed
            self._processed[processed_event.event_id] = processed_event
            return committed.model_copy(deep=True)

    async def replace_balances(
        self,
        user_id: str,
        balances: dict[str, Decimal],
        expected_version: int,
    ) -> LedgerState:
        async with self._locks[user_id]:
            current = self._states.get(user_id) or LedgerState(user_id=user_id)
            if current.version != expected_version:
                raise ConflictError(
                    f"Balance version moved from {expected_version} to {current.version}"
                )
            committed = LedgerState(
                user_id=user_id,
                balances=dict(balances),
                version=current.version + 1,
                last_entry_at=current.last_entry_at,
            )
            self._states[user_id] = committed
            return committed.model_copy(deep=True)

    async def touch_last_entry(self, user_id: str, at: datetime) -> None:
        async with self._locks[user_id]:
            # Informational stamp outside optimistic concurrency: the version
            # guards balances only, so a concurrent touch never conflicts.
            current = self._states.get(user_id) or LedgerState(user_id=user_id)
            self._states[user_id] = current.model_copy(update={"last_entry_at": at})

    async def get_processed_event(self, event_id: str) -> Optional[ProcessedEvent]:
        return self._processed.get(event_id)

    # -------------------------------------------------------------------------
    # Read access to UI-owned data
    # -------------------------------------------------------------------------

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        return list(self._transactions[user_id].values())

    async def list_accounts(self, user_id: str) -> list[Account]:
        return list(self._accounts[user_id].values())

    async def get_billing_rules(self, user_id: str) -> dict[str, BillingRule]:
        return dict(self._rules[user_id])

    # -------------------------------------------------------------------------
    # Write helpers standing in for the UI layer
    # -------------------------------------------------------------------------

    def put_transaction(self, transaction: Transaction) -> Optional[Transaction]:
        """Store a transaction, returning the version it replaced."""
        previous = self._transactions[transaction.user_id].get(transaction.id)
        self._transactions[transaction.user_id][transaction.id] = transaction
        return previous

    def remove_transaction(self, user_id: str, transaction_id: str) -> Transaction:
        try:
            return self._transactions[user_id].pop(transaction_id)
        except KeyError:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

    def put_account(self, user_id: str, account: Account) -> None:
        self._accounts[user_id][account.id] = account

    def put_billing_rule(self, user_id: str, account_id: str, rule: BillingRule) -> None:
        self._rules[user_id][account_id] = rule


class InMemoryHistoryStorage(HistoryStorageInterface):
    """Keeps the latest series per user."""

    def __init__(self):
        self._series: dict[str, HistoricalSeries] = {}

    async def save_history(self, series: HistoricalSeries) -> bool:
        self._series[series.user_id] = series.model_copy(deep=True)
        return True

    async def get_history(self, user_id: str) -> Optional[HistoricalSeries]:
        series = self._series.get(user_id)
        return series.model_copy(deep=True) if series else None


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
