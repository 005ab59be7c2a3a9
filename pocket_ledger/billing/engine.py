"""
Billing Cycle Engine

Turns card charges into statements ("bills") and matches payments to them.

DATE RULES (all on the reporting-zone calendar):
- closing date: a charge on day d belongs to the cycle closing on
  `closing_day` of the same month, or of the next month if d > closing_day.
  The day is clamped to the month end (31 -> 30, 28 or 29).
- payment date: closing date + payment_month_offset months, day set to
  `payment_day` (clamped).
- period: the day after the previous cycle's closing date up to the
  closing date; closing_day >= 31 means a full calendar month.

DESIGN DECISION: Bills are never stored.
They are derived from the transaction log, the billing rules and the
payment links on every read, so a rule change re-buckets all history and
a deleted payment reopens its bill without any bookkeeping.
"""

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional, Union
from zoneinfo import ZoneInfo

import structlog

from pocket_ledger.config import LedgerSettings, get_settings
from pocket_ledger.models.billing import Bill, PaymentDraft
from pocket_ledger.models.transaction import (
    Account,
    AccountType,
    BillingRule,
    Transaction,
    TransactionMetadata,
    TransactionType,
)
from pocket_ledger.utils.dates import add_months, to_local_date, with_day_clamped

logger = structlog.get_logger(__name__)

# Extra months of transactions needed beyond the payment offset so that
# every cycle still awaiting payment is fully loaded.
HISTORY_MARGIN_MONTHS = 2
MIN_HISTORY_MONTHS = 3


# =============================================================================
# DATE MATH
# =============================================================================

def closing_date_for(
    value: Union[date, datetime],
    closing_day: int,
    zone: Optional[ZoneInfo] = None,
) -> date:
    """Closing date of the cycle a charge on `value` belongs to."""
    d = to_local_date(value, zone) if zone else value
    if isinstance(d, datetime):
        d = d.date()

    target = d.replace(day=1)
    if d.day > closing_day:
        target = add_months(target, 1)
    return with_day_clamped(target, closing_day)


def payment_date_for(closing_date: date, rule: BillingRule) -> date:
    """Due date of the statement that closes on `closing_date`."""
    target = add_months(closing_date.replace(day=1), rule.payment_month_offset)
    return with_day_clamped(target, rule.payment_day)


def billing_period(closing_date: date, closing_day: int) -> tuple[date, date]:
    """(start, end) of the cycle closing on `closing_date`, both inclusive."""
    if closing_day >= 31:
        return closing_date.replace(day=1), closing_date

    previous_month = add_months(closing_date.replace(day=1), -1)
    previous_closing = with_day_clamped(previous_month, closing_day)
    return date.fromordinal(previous_closing.toordinal() + 1), closing_date


def next_payment_date(rule: BillingRule, today: date) -> date:
    """Due date of the cycle that is open on `today`."""
    return payment_date_for(closing_date_for(today, rule.closing_day), rule)


def required_history_months(rules: Iterable[BillingRule]) -> int:
    """
    Months of transactions a billing view needs loaded.

    A statement paid `offset` months after closing can still be unpaid
    while its charges are `offset + 2` months old.
    """
    needed = [rule.payment_month_offset + HISTORY_MARGIN_MONTHS for rule in rules]
    return max(needed + [MIN_HISTORY_MONTHS])


def is_history_insufficient(rules: Iterable[BillingRule], display_months: int) -> bool:
    """True if the loaded period may be missing charges of open statements."""
    return required_history_months(rules) > display_months


# =============================================================================
# AGGREGATION
# =============================================================================

def _charge_account(tx: Transaction, liability_ids: set[str]) -> Optional[str]:
    """The card a transaction is charged to, if any."""
    if tx.type == TransactionType.EXPENSE and tx.account_id in liability_ids:
        return tx.account_id
    if tx.type == TransactionType.TRANSFER and tx.from_account_id in liability_ids:
        return tx.from_account_id
    return None


def paid_amounts(transactions: Iterable[Transaction]) -> dict[tuple[str, str], Decimal]:
    """Sum of tagged payment transfers per (card id, closing date string)."""
    paid: dict[tuple[str, str], Decimal] = defaultdict(Decimal)
    for tx in transactions:
        if tx.is_bill_payment:
            key = (tx.metadata.payment_target_card_id, tx.metadata.payment_target_closing_date)
            paid[key] += tx.amount
    return dict(paid)


def liability_accounts_without_rule(
    accounts: Iterable[Account],
    rules: dict[str, BillingRule],
) -> list[Account]:
    return [
        account for account in accounts
        if account.type == AccountType.LIABILITY
        and not account.is_deleted
        and account.id not in rules
    ]


class BillingCycleEngine:
    """
    Computes bills for one user's data.

    Stateless apart from settings; safe to share.
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    @property
    def zone(self) -> ZoneInfo:
        return self._settings.zone

    def calculate_bills(
        self,
        transactions: list[Transaction],
        accounts: Iterable[Account],
        rules: dict[str, BillingRule],
    ) -> list[Bill]:
        """
        All bills with a charge, settled or not.

        Sorted by account display order, then closing date.
        """
        cards = [
            account for account in accounts
            if account.type == AccountType.LIABILITY and not account.is_deleted
        ]
        card_ids = {card.id for card in cards}

        charges: dict[str, list[Transaction]] = defaultdict(list)
        for tx in transactions:
            account_id = _charge_account(tx, card_ids)
            if account_id:
                charges[account_id].append(tx)

        paid = paid_amounts(transactions)
        bills: list[Bill] = []

        for card in cards:
            rule = rules.get(card.id)
            if rule is None:
                if charges.get(card.id):
                    logger.debug("billing_rule_missing", account_id=card.id)
                continue

            totals: dict[date, Decimal] = defaultdict(Decimal)
            for tx in charges.get(card.id, []):
                totals[closing_date_for(tx.date, rule.closing_day, self.zone)] += tx.amount

            for closing_date, amount in totals.items():
                start, end = billing_period(closing_date, rule.closing_day)
                bills.append(Bill(
                    account_id=card.id,
                    account_name=card.name,
                    account_order=card.order,
                    closing_date=closing_date,
                    payment_date=payment_date_for(closing_date, rule),
                    period_start=start,
                    period_end=end,
                    amount=amount,
                    paid_amount=paid.get((card.id, closing_date.isoformat()), Decimal("0")),
                    default_payment_account_id=rule.default_payment_account_id,
                ))

        bills.sort(key=lambda b: (b.account_order, b.closing_date))
        return bills

    def unpaid_bills(
        self,
        transactions: list[Transaction],
        accounts: Iterable[Account],
        rules: dict[str, BillingRule],
    ) -> list[Bill]:
        """Bills with something left to pay."""
        return [
            bill for bill in self.calculate_bills(transactions, accounts, rules)
            if not bill.is_settled
        ]


def build_payment_draft(bill: Bill, rule: Optional[BillingRule] = None) -> PaymentDraft:
    """
    Pre-filled transfer that settles the rest of `bill`.

    When saved, the transfer carries the card id and closing date so the
    payment matching above credits it to this bill.
    """
    from_account_id = bill.default_payment_account_id
    scheduled = bill.payment_date
    if rule is not None:
        from_account_id = rule.default_payment_account_id
        scheduled = payment_date_for(bill.closing_date, rule)

    return PaymentDraft(
        from_account_id=from_account_id,
        to_account_id=bill.account_id,
        amount=max(bill.remaining_amount, Decimal("0")),
        scheduled_date=scheduled,
        metadata=TransactionMetadata(
            payment_target_card_id=bill.account_id,
            payment_target_closing_date=bill.closing_key,
        ),
    )
