"""
Net-worth history models.

A HistoricalSeries is regenerated in full after every transaction change;
individual snapshots are never edited in place.
"""

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, Field


class MonthlySummary(BaseModel):
    """Income/expense totals for one reporting month."""

    month: str = Field(
        ...,
        pattern=r"^\d{4}-\d{2}$",
        description="YYYY-MM"
    )
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
    net_change: Decimal = Field(
        default=Decimal("0"),
        description="income - expense, adjustments included"
    )


class HistoricalSnapshot(BaseModel):
    """Net worth at the end of a month plus that month's flows."""

    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    net_worth: Decimal
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")


class HistoricalSeries(BaseModel):
    """The persisted history for one user, oldest month first."""

    user_id: str
    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    snapshots: list[HistoricalSnapshot] = Field(default_factory=list)
    truncated: bool = Field(
        default=False,
        description="True if the month cap stopped the walk before the oldest transaction"
    )

    @property
    def months(self) -> list[str]:
        return [s.month for s in self.snapshots]

    @property
    def latest(self):
        return self.snapshots[-1] if self.snapshots else None
