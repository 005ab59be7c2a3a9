"""Credit-card billing cycles."""

from pocket_ledger.billing.engine import (
    BillingCycleEngine,
    billing_period,
    build_payment_draft,
    closing_date_for,
    is_history_insufficient,
    liability_accounts_without_rule,
    next_payment_date,
    paid_amounts,
    payment_date_for,
    required_history_months,
)

__all__ = [
    "BillingCycleEngine",
    "billing_period",
    "build_payment_draft",
    "closing_date_for",
    "is_history_insufficient",
    "liability_accounts_without_rule",
    "next_payment_date",
    "paid_amounts",
    "payment_date_for",
    "required_history_months",
]
