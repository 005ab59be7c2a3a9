"""
Balance effects of transactions.

Pure functions only: nothing here reads or writes storage, so every result
can be recomputed safely on a retry.

Sign table (amount is a non-negative magnitude):

    type      forward                          reverse
    income    +amount -> account               -amount -> account
    expense   -amount -> account               +amount -> account
    transfer  -amount -> from, +amount -> to   +amount -> from, -amount -> to

A missing account id makes that leg a no-op. Unknown types have no effect.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import uuid4
from zoneinfo import ZoneInfo

from pocket_ledger.models.ledger import NetWorthBreakdown
from pocket_ledger.models.transaction import (
    Account,
    AccountType,
    Transaction,
    TransactionType,
)
from pocket_ledger.utils.dates import to_local_date

ZERO = Decimal("0")

KNOWN_TYPES = frozenset(t.value for t in TransactionType)


def is_known_type(transaction: Transaction) -> bool:
    return transaction.type in KNOWN_TYPES


def _add(effect: dict[str, Decimal], account_id: Optional[str], amount: Decimal) -> None:
    if not account_id:
        return
    effect[account_id] = effect.get(account_id, ZERO) + amount


def forward_effect(transaction: Transaction) -> dict[str, Decimal]:
    """The balance change a transaction causes when it comes into existence."""
    effect: dict[str, Decimal] = {}
    amount = transaction.amount

    if transaction.type == TransactionType.INCOME:
        _add(effect, transaction.account_id, amount)
    elif transaction.type == TransactionType.EXPENSE:
        _add(effect, transaction.account_id, -amount)
    elif transaction.type == TransactionType.TRANSFER:
        _add(effect, transaction.from_account_id, -amount)
        _add(effect, transaction.to_account_id, amount)

    return effect


def reverse_effect(transaction: Transaction) -> dict[str, Decimal]:
    """The balance change that exactly undoes forward_effect."""
    return {account_id: -amount for account_id, amount in forward_effect(transaction).items()}


def merge_effects(*effects: dict[str, Decimal]) -> dict[str, Decimal]:
    """Sum effects per account, dropping accounts that net to zero."""
    total: dict[str, Decimal] = {}
    for effect in effects:
        for account_id, amount in effect.items():
            _add(total, account_id, amount)
    return {account_id: amount for account_id, amount in total.items() if amount != ZERO}


def net_delta(
    before: Optional[Transaction],
    after: Optional[Transaction],
) -> dict[str, Decimal]:
    """
    Net balance change of replacing `before` with `after`.

    Create, update and delete are all "reverse old, apply new" with one
    side absent.
    """
    staged = []
    if before is not None:
        staged.append(reverse_effect(before))
    if after is not None:
        staged.append(forward_effect(after))
    return merge_effects(*staged)


def recompute_balances(transactions: Iterable[Transaction]) -> dict[str, Decimal]:
    """
    Rebuild a balance map from scratch.

    Recovery procedure only; steady state is maintained by deltas.
    Every account touched by a transaction appears, even at zero.
    """
    balances: dict[str, Decimal] = {}
    for transaction in transactions:
        for account_id, amount in forward_effect(transaction).items():
            _add(balances, account_id, amount)
    return balances


def balance_drift(
    stored: dict[str, Decimal],
    recomputed: dict[str, Decimal],
) -> dict[str, Decimal]:
    """Per-account difference recomputed - stored, non-zero entries only."""
    drift = {}
    for account_id in set(stored) | set(recomputed):
        diff = recomputed.get(account_id, ZERO) - stored.get(account_id, ZERO)
        if diff != ZERO:
            drift[account_id] = diff
    return drift


def summarize_net_worth(
    balances: dict[str, Decimal],
    accounts: Iterable[Account],
) -> NetWorthBreakdown:
    """
    Split current balances into asset and liability totals.

    Deleted accounts are skipped. Liability balances carry their own
    negative sign, so they are summed as-is.
    """
    breakdown = NetWorthBreakdown()
    for account in accounts:
        if account.is_deleted:
            continue
        balance = balances.get(account.id, ZERO)
        if account.type == AccountType.ASSET:
            breakdown.total_assets += balance
        elif account.type == AccountType.LIABILITY:
            breakdown.total_liabilities += balance
    return breakdown


def build_adjustment_transaction(
    user_id: str,
    account_id: str,
    current_balance: Decimal,
    actual_balance: Decimal,
    when: datetime,
    category_id: str,
    transaction_id: Optional[str] = None,
) -> Optional[Transaction]:
    """
    Build the transaction that moves a tracked balance to the real one.

    A positive gap becomes income, a negative gap an expense, both in the
    system adjustment category so they stay out of income/expense reports.
    Returns None when the balances already agree.
    """
    difference = actual_balance - current_balance
    if difference == ZERO:
        return None

    return Transaction(
        id=transaction_id or uuid4().hex,
        user_id=user_id,
        type=TransactionType.INCOME.value if difference > 0 else TransactionType.EXPENSE.value,
        amount=abs(difference),
        date=when,
        category_id=category_id,
        account_id=account_id,
        description="Balance adjusted to actual",
        memo=f"Balance before adjustment: {current_balance}",
    )


def payment_link_changes(
    before: Optional[Transaction],
    after: Optional[Transaction],
    zone: ZoneInfo,
) -> list[str]:
    """
    Fields of a bill-payment transfer whose edit may unsettle its statement.

    Empty unless `before` is a tagged bill payment that is being updated.
    """
    if before is None or after is None or not before.is_bill_payment:
        return []

    changed = []
    if after.type != TransactionType.TRANSFER:
        changed.append("type")
    if after.amount != before.amount:
        changed.append("amount")
    if after.to_account_id != before.to_account_id:
        changed.append("to_account_id")
    if to_local_date(after.date, zone) != to_local_date(before.date, zone):
        changed.append("date")
    return changed
