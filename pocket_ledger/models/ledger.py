"""
Ledger Models

Change notifications, the dedup record and the result of applying a change.

DESIGN DECISION: Applying a change has an explicit result type.
The trigger that delivers change notifications (a queue, a database
trigger, a test) needs to know whether to acknowledge or redeliver, so
"applied", "duplicate" and "retryable failure" are values, not exceptions.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from pocket_ledger.models.transaction import Transaction


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TransactionChange(BaseModel):
    """
    A before/after pair for one transaction mutation.

    create: before=None, after=T
    update: before=T_old, after=T_new
    delete: before=T, after=None

    Delivered at least once and in no particular order.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event_id: str = Field(
        ...,
        min_length=1,
        description="Unique id of this change notification"
    )
    before: Optional[Transaction] = None
    after: Optional[Transaction] = None

    @property
    def transaction_id(self) -> Optional[str]:
        state = self.after or self.before
        return state.id if state else None

    @property
    def user_id(self) -> Optional[str]:
        state = self.after or self.before
        return state.user_id if state else None

    @property
    def kind(self) -> str:
        if self.before is None and self.after is None:
            return "empty"
        if self.before is None:
            return "create"
        if self.after is None:
            return "delete"
        return "update"

    @model_validator(mode='after')
    def validate_same_owner(self) -> 'TransactionChange':
        """An update must not move a transaction between users."""
        if self.before and self.after and self.before.user_id != self.after.user_id:
            raise ValueError("before and after belong to different users")
        return self


class ProcessedEvent(BaseModel):
    """Write-once marker that an event id has been applied."""

    event_id: str
    transaction_id: Optional[str] = None
    processed_at: datetime = Field(default_factory=_utc_now)


class LedgerState(BaseModel):
    """
    A user's balance document as read at the start of an atomic update.

    `version` is the optimistic-concurrency token: a write made against
    a stale version is rejected.
    """

    user_id: str
    balances: dict[str, Decimal] = Field(default_factory=dict)
    version: int = Field(default=0, ge=0)
    last_entry_at: Optional[datetime] = None

    @property
    def total(self) -> Decimal:
        return sum(self.balances.values(), Decimal("0"))


class ApplyStatus(str, Enum):
    """Outcome of applying a change notification."""
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    RETRYABLE_FAILURE = "retryable_failure"


class ApplyResult(BaseModel):
    """What happened to one change notification."""

    status: ApplyStatus
    event_id: str
    user_id: Optional[str] = None
    deltas: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Net balance change per account (empty for duplicates)"
    )
    attempts: int = Field(default=1, ge=0)
    error: Optional[str] = None

    @property
    def should_redeliver(self) -> bool:
        return self.status == ApplyStatus.RETRYABLE_FAILURE


class NetWorthBreakdown(BaseModel):
    """Current totals split by account classification."""

    total_assets: Decimal = Decimal("0")
    total_liabilities: Decimal = Decimal("0")

    @property
    def net_worth(self) -> Decimal:
        # Liability balances are already negative, so this is assets - owed.
        return self.total_assets + self.total_liabilities
