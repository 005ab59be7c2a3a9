"""Net-worth history reconstruction."""

from pocket_ledger.history.reconstructor import (
    NetWorthReconstructor,
    build_monthly_summaries,
    reconstruct,
)

__all__ = [
    "NetWorthReconstructor",
    "build_monthly_summaries",
    "reconstruct",
]
