"""
Pocket Ledger - Source Package

The ledger core of a personal household-finance app: running account
balances, a reconstructed net-worth history and credit-card billing cycles.

DESIGN PRINCIPLES:
1. Every balance change is a delta, applied exactly once
2. Every delta can be reversed exactly
3. Derived views (history, bills) are recomputed, never patched
4. Every significant step is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Pocket Ledger Team"
