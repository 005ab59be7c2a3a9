"""
Credit-card statement models.

Bills are DERIVED data: they are recomputed on every read from the
transaction log, the billing rules and the payment links, and never stored.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, computed_field, model_validator

from pocket_ledger.models.transaction import TransactionMetadata


class Bill(BaseModel):
    """One statement of one liability account."""

    account_id: str
    account_name: str
    account_order: int = 0
    closing_date: date
    payment_date: date
    period_start: date
    period_end: date
    amount: Decimal = Field(
        default=Decimal("0"),
        description="Sum of the cycle's charges"
    )
    paid_amount: Decimal = Field(
        default=Decimal("0"),
        description="Sum of payment transfers tagged to this cycle"
    )
    default_payment_account_id: Optional[str] = None

    @computed_field
    @property
    def remaining_amount(self) -> Decimal:
        return self.amount - self.paid_amount

    @computed_field
    @property
    def is_settled(self) -> bool:
        return self.remaining_amount <= 0

    @property
    def closing_key(self) -> str:
        """Key payments are matched on: the closing date as YYYY-MM-DD."""
        return self.closing_date.isoformat()

    @model_validator(mode='after')
    def validate_dates(self) -> 'Bill':
        if self.period_end < self.period_start:
            raise ValueError("Billing period end cannot be before start")
        if self.payment_date < self.closing_date:
            raise ValueError("Payment date cannot be before closing date")
        return self


class PaymentDraft(BaseModel):
    """
    A pre-filled transfer that would settle a bill.

    The billing screen offers this to the user; once saved it comes back
    through the ledger as an ordinary tagged transfer.
    """

    from_account_id: Optional[str] = Field(
        default=None,
        description="Rule's default payment account (user may change it)"
    )
    to_account_id: str
    amount: Decimal = Field(..., ge=0)
    scheduled_date: date = Field(..., description="Due date of the statement")
    metadata: TransactionMetadata
