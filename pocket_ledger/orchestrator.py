"""
Main Orchestrator for Pocket Ledger

This module ties the three components together and defines the
end-to-end flows for:
1. Transaction change (notification -> balances -> history)
2. Billing views (transactions + rules -> bills -> payment drafts)
3. Balance adjustment (actual balance -> adjustment transaction)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Balances change only through the idempotent processor
- History is rebuilt only after a change was actually applied
- Derived data (history, bills) never blocks a committed balance update
- Every step is audited

It replaces the trigger callbacks of a hosted database with a plain
handler that returns an explicit ApplyResult to whatever delivers changes.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from pocket_ledger.audit import AuditLogger, create_correlation_id
from pocket_ledger.billing import (
    BillingCycleEngine,
    build_payment_draft,
    is_history_insufficient,
    liability_accounts_without_rule,
)
from pocket_ledger.config import LedgerSettings, get_settings
from pocket_ledger.history import NetWorthReconstructor
from pocket_ledger.ledger import (
    LedgerEventProcessor,
    build_adjustment_transaction,
    summarize_net_worth,
)
from pocket_ledger.models.billing import Bill, PaymentDraft
from pocket_ledger.models.history import HistoricalSeries
from pocket_ledger.models.ledger import (
    ApplyResult,
    ApplyStatus,
    NetWorthBreakdown,
    TransactionChange,
)
from pocket_ledger.models.transaction import Transaction
from pocket_ledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsHistoryStorage,
    HistoryStorageInterface,
    InMemoryAuditStorage,
    InMemoryHistoryStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from pocket_ledger.utils.dates import utc_now

logger = structlog.get_logger(__name__)


class LedgerOrchestrator:
    """
    Orchestrates the ledger flows for all users.

    Flow for a change notification:
    1. Apply → processor commits the net delta exactly once
    2. Rebuild → reconstructor regenerates the user's history
       (only when step 1 actually applied something)

    A failed history rebuild is audited but does not turn an applied
    change into a failure; the next change rebuilds from scratch anyway.
    """

    def __init__(
        self,
        ledger_storage: LedgerStorageInterface,
        history_storage: HistoryStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        display_period_months: Optional[int] = None,
    ):
        self._settings = settings or get_settings().ledger
        self._ledger = ledger_storage
        self._history = history_storage
        self._audit_logger = audit_logger
        self._display_period_months = display_period_months or get_settings().app.display_period_months

        self._processor = LedgerEventProcessor(ledger_storage, audit_logger, self._settings)
        self._reconstructor = NetWorthReconstructor(
            ledger_storage, history_storage, audit_logger, self._settings
        )
        self._billing = BillingCycleEngine(self._settings)

    # -------------------------------------------------------------------------
    # Transaction changes
    # -------------------------------------------------------------------------

    async def handle_transaction_change(
        self,
        change: TransactionChange,
        correlation_id: Optional[UUID] = None,
        today: Optional[date] = None,
    ) -> ApplyResult:
        """
        Handle one change notification end to end.

        Returns:
            The processor's ApplyResult. RETRYABLE_FAILURE tells the
            delivering side to redeliver later.

        Raises:
            StorageError: The balance store itself failed
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            result = await self._processor.apply(change, correlation_id=correlation_id)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="ledger_storage",
                    error_message=str(e),
                    details={"event_id": change.event_id},
                    user_id=change.user_id,
                    correlation_id=correlation_id,
                )
            raise

        if result.status != ApplyStatus.APPLIED or result.user_id is None:
            return result

        try:
            await self._reconstructor.rebuild(
                result.user_id,
                today=today,
                correlation_id=correlation_id,
            )
        except StorageError as e:
            logger.error("history_rebuild_failed", user_id=result.user_id, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="history_rebuild",
                    error_message=str(e),
                    details={"event_id": change.event_id},
                    user_id=result.user_id,
                    correlation_id=correlation_id,
                )

        return result

    async def rebuild_history(
        self,
        user_id: str,
        today: Optional[date] = None,
    ) -> Optional[HistoricalSeries]:
        return await self._reconstructor.rebuild(user_id, today=today)

    async def get_history(self, user_id: str) -> Optional[HistoricalSeries]:
        return await self._history.get_history(user_id)

    async def rebuild_balances(self, user_id: str) -> dict[str, Decimal]:
        """Recovery: recompute balances from the transaction log."""
        return await self._processor.rebuild_balances(user_id)

    # -------------------------------------------------------------------------
    # Balances
    # -------------------------------------------------------------------------

    async def net_worth_breakdown(self, user_id: str) -> NetWorthBreakdown:
        state = await self._ledger.get_ledger_state(user_id)
        accounts = await self._ledger.list_accounts(user_id)
        return summarize_net_worth(state.balances, accounts)

    async def prepare_balance_adjustment(
        self,
        user_id: str,
        account_id: str,
        actual_balance: Decimal,
        when: Optional[datetime] = None,
    ) -> Optional[Transaction]:
        """
        Build the transaction that brings an account to its real balance.

        The caller saves it like any other transaction; its change
        notification then flows through handle_transaction_change.
        Returns None when the tracked balance is already correct.
        """
        state = await self._ledger.get_ledger_state(user_id)
        current = state.balances.get(account_id, Decimal("0"))
        return build_adjustment_transaction(
            user_id=user_id,
            account_id=account_id,
            current_balance=current,
            actual_balance=actual_balance,
            when=when or utc_now(),
            category_id=self._settings.adjustment_category_id,
        )

    # -------------------------------------------------------------------------
    # Billing
    # -------------------------------------------------------------------------

    async def list_bills(self, user_id: str) -> list[Bill]:
        """Every bill of every card, settled ones included."""
        transactions = await self._ledger.list_transactions(user_id)
        accounts = await self._ledger.list_accounts(user_id)
        rules = await self._ledger.get_billing_rules(user_id)

        if self._audit_logger:
            for account in liability_accounts_without_rule(accounts, rules):
                await self._audit_logger.log_billing_rule_missing(
                    user_id=user_id,
                    account_id=account.id,
                )

        return self._billing.calculate_bills(transactions, accounts, rules)

    async def list_unpaid_bills(self, user_id: str) -> list[Bill]:
        """Bills with a remaining amount, for the "to pay" view."""
        return [bill for bill in await self.list_bills(user_id) if not bill.is_settled]

    async def billing_history_insufficient(self, user_id: str) -> bool:
        """
        True if the dashboard's loaded period is too short for billing.

        The billing view should then warn that older statements may be
        missing charges.
        """
        rules = await self._ledger.get_billing_rules(user_id)
        return is_history_insufficient(rules.values(), self._display_period_months)

    async def payment_draft(
        self,
        user_id: str,
        account_id: str,
        closing_date: date,
    ) -> PaymentDraft:
        """
        Pre-filled payment for one statement.

        Raises:
            NotFoundError: No bill for that card and closing date
        """
        for bill in await self.list_bills(user_id):
            if bill.account_id == account_id and bill.closing_date == closing_date:
                return build_payment_draft(bill)
        raise NotFoundError(f"No bill for {account_id} closing {closing_date.isoformat()}")


def create_app_components(
    use_sheets: bool = False,
) -> tuple[LedgerOrchestrator, InMemoryLedgerStorage, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_sheets: Whether to persist history and audit events to
                    Google Sheets. Balances always use the in-memory
                    store, which provides the atomic update contract.

    Returns:
        (orchestrator, ledger_storage, sheets_client)
    """
    ledger_storage = InMemoryLedgerStorage()
    sheets_client = None
    history_storage: HistoryStorageInterface = InMemoryHistoryStorage()
    audit_logger = AuditLogger(InMemoryAuditStorage())

    if use_sheets:
        try:
            sheets_client = GoogleSheetsClient()
            history_storage = GoogleSheetsHistoryStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Sheets not configured - continue in memory
            logger.warning("sheets_not_configured", error=str(e))
            sheets_client = None

    orchestrator = LedgerOrchestrator(
        ledger_storage=ledger_storage,
        history_storage=history_storage,
        audit_logger=audit_logger,
    )
    return orchestrator, ledger_storage, sheets_client
