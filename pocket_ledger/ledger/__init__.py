"""
Ledger package.

Pure balance effects plus the idempotent processor that commits them.
"""

from pocket_ledger.ledger.effects import (
    balance_drift,
    build_adjustment_transaction,
    forward_effect,
    merge_effects,
    net_delta,
    payment_link_changes,
    recompute_balances,
    reverse_effect,
    summarize_net_worth,
)
from pocket_ledger.ledger.processor import (
    EventApplyError,
    LedgerError,
    LedgerEventProcessor,
)

__all__ = [
    "balance_drift",
    "build_adjustment_transaction",
    "forward_effect",
    "merge_effects",
    "net_delta",
    "payment_link_changes",
    "recompute_balances",
    "reverse_effect",
    "summarize_net_worth",
    "EventApplyError",
    "LedgerError",
    "LedgerEventProcessor",
]
