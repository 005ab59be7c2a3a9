"""
Net-Worth Reconstructor

Derives month-by-month net worth by walking BACKWARD from today's balances.

ALGORITHM:
1. current net worth = sum of all current balances
2. one pass over transactions -> MonthlySummary per reporting month
3. walk current month -> oldest transaction month, emitting a snapshot
   and then undoing that month's net change
4. reverse to oldest-first

DESIGN DECISION: Walk backward, not forward.
Current balances are the only figures known to be right (they include
opening balances the transaction log never saw). Subtracting each month's
net change from them reproduces history without needing opening balances.

Balance adjustments are excluded from the income/expense columns so they
do not distort reports, but they ARE part of the monthly net change;
otherwise the walk would drift by every adjustment ever made.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

import structlog

from pocket_ledger.audit import AuditLogger
from pocket_ledger.config import LedgerSettings, get_settings
from pocket_ledger.models.history import (
    HistoricalSeries,
    HistoricalSnapshot,
    MonthlySummary,
)
from pocket_ledger.models.transaction import Transaction, TransactionType
from pocket_ledger.services.storage import (
    HistoryStorageInterface,
    LedgerStorageInterface,
)
from pocket_ledger.utils.dates import MONTH_FORMAT, month_key, prev_month, today_in

logger = structlog.get_logger(__name__)


def build_monthly_summaries(
    transactions: Iterable[Transaction],
    zone: ZoneInfo,
    adjustment_category_id: str,
) -> dict[str, MonthlySummary]:
    """
    Bucket income and expense by reporting month.

    Transfers move money between the user's own accounts and leave net
    worth unchanged, so they are skipped like unknown types.
    """
    summaries: dict[str, MonthlySummary] = {}

    for tx in transactions:
        if tx.type not in (TransactionType.INCOME, TransactionType.EXPENSE):
            continue

        month = month_key(tx.date, zone)
        summary = summaries.get(month)
        if summary is None:
            summary = summaries[month] = MonthlySummary(month=month)

        is_adjustment = tx.category_id == adjustment_category_id
        if tx.type == TransactionType.INCOME:
            if not is_adjustment:
                summary.income += tx.amount
            summary.net_change += tx.amount
        else:
            if not is_adjustment:
                summary.expense += tx.amount
            summary.net_change -= tx.amount

    return summaries


def reconstruct(
    user_id: str,
    transactions: list[Transaction],
    balances: dict[str, Decimal],
    today: date,
    zone: ZoneInfo,
    adjustment_category_id: str,
    max_months: int,
) -> Optional[HistoricalSeries]:
    """
    Build the full series for one user.

    Returns None when the user has no transactions. The current month is
    always the last snapshot; months later than it are never emitted.
    """
    if not transactions:
        return None

    summaries = build_monthly_summaries(transactions, zone, adjustment_category_id)
    current = today.strftime(MONTH_FORMAT)
    oldest = min(month_key(tx.date, zone) for tx in transactions)

    net_worth = sum(balances.values(), Decimal("0"))
    snapshots: list[HistoricalSnapshot] = []
    truncated = False
    month = current

    while True:
        summary = summaries.get(month)
        snapshots.append(HistoricalSnapshot(
            month=month,
            net_worth=net_worth,
            income=summary.income if summary else Decimal("0"),
            expense=summary.expense if summary else Decimal("0"),
        ))
        if summary:
            net_worth -= summary.net_change

        if month <= oldest:
            break
        if len(snapshots) >= max_months:
            truncated = True
            break
        month = prev_month(month)

    snapshots.reverse()
    return HistoricalSeries(user_id=user_id, snapshots=snapshots, truncated=truncated)


class NetWorthReconstructor:
    """
    Regenerates and persists a user's history after a transaction change.

    The rebuild is from scratch every time, so rerunning it is harmless and
    a crashed run is repaired by the next one.
    """

    def __init__(
        self,
        ledger_storage: LedgerStorageInterface,
        history_storage: HistoryStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._ledger = ledger_storage
        self._history = history_storage
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().ledger

    async def rebuild(
        self,
        user_id: str,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[HistoricalSeries]:
        """
        Recompute and save the series.

        Args:
            user_id: Owner whose history is rebuilt
            today: Reporting-zone date of "now" (defaults to the real today)
            correlation_id: Ties audit events to the triggering change

        Returns:
            The saved series, or None if the user has no transactions
            (in which case nothing is written).
        """
        zone = self._settings.zone
        today = today or today_in(zone)

        transactions = await self._ledger.list_transactions(user_id)
        state = await self._ledger.get_ledger_state(user_id)

        series = reconstruct(
            user_id=user_id,
            transactions=transactions,
            balances=state.balances,
            today=today,
            zone=zone,
            adjustment_category_id=self._settings.adjustment_category_id,
            max_months=self._settings.history_max_months,
        )

        if series is None:
            logger.info("history_skipped", user_id=user_id)
            if self._audit_logger:
                await self._audit_logger.log_history_skipped(
                    user_id=user_id,
                    correlation_id=correlation_id,
                )
            return None

        if series.truncated:
            oldest_tx_month = min(month_key(tx.date, zone) for tx in transactions)
            logger.warning(
                "history_truncated",
                user_id=user_id,
                max_months=self._settings.history_max_months,
                oldest_transaction_month=oldest_tx_month,
            )
            if self._audit_logger:
                await self._audit_logger.log_history_truncated(
                    user_id=user_id,
                    max_months=self._settings.history_max_months,
                    oldest_transaction_month=oldest_tx_month,
                    correlation_id=correlation_id,
                )

        await self._history.save_history(series)

        if self._audit_logger:
            await self._audit_logger.log_history_rebuilt(
                user_id=user_id,
                months=len(series.snapshots),
                oldest_month=series.snapshots[0].month,
                correlation_id=correlation_id,
            )
        return series
