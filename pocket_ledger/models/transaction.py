"""
Core Data Models for Pocket Ledger

These models define the records the ledger core reads from the outside
world: transactions, accounts and credit-card billing rules.

DESIGN DECISION: Transactions are parsed LENIENTLY.
A change notification must never be rejected because a UI wrote a bad
amount or an unfamiliar type. Instead:
1. Non-numeric or missing amounts become 0
2. Unknown, missing or non-text types are kept (as text or None) and
   contribute no effect
3. Missing or unusable account ids are simply absent legs

Accounts and billing rules are user configuration and are validated strictly.

Field names are snake_case in Python and camelCase on the wire
(`accountId`, `paymentTargetCardId`, ...); both spellings are accepted.
"""

from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """
    Transaction types that move money.

    Stored transactions may carry other type strings; those are ignored
    by every calculation in this package.
    """
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class AccountType(str, Enum):
    """Account classification for net worth and billing."""
    ASSET = "asset"
    LIABILITY = "liability"


def _wire_config(**kwargs) -> ConfigDict:
    return ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        **kwargs,
    )


def coerce_amount(value: Any) -> Decimal:
    """Convert any stored amount into a finite Decimal, defaulting to 0."""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not amount.is_finite():
        return Decimal("0")
    return amount


def coerce_text(value: Any) -> Optional[str]:
    """
    Convert a stored type or id into a string, or None when unusable.

    Numbers are kept by their text form (an id of 42 is account "42");
    blanks, booleans and structured values are treated as missing.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionMetadata(BaseModel):
    """
    Optional linkage data attached to a transaction.

    A transfer that pays a credit-card statement carries the card id and
    the statement's closing date (YYYY-MM-DD in the reporting zone).
    """
    model_config = _wire_config(extra="allow")

    payment_target_card_id: Optional[str] = Field(
        default=None,
        description="Liability account whose statement this transfer pays"
    )
    payment_target_closing_date: Optional[str] = Field(
        default=None,
        description="Closing date (YYYY-MM-DD) of the statement being paid"
    )

    @property
    def is_bill_payment(self) -> bool:
        return bool(self.payment_target_card_id and self.payment_target_closing_date)


class Transaction(BaseModel):
    """
    One income, expense or transfer record.

    Transactions are immutable-by-replacement: an edit produces a new
    version and a before/after change notification.
    """
    model_config = _wire_config(extra="ignore")

    id: str = Field(
        ...,
        min_length=1,
        description="Transaction id"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="Owner of the transaction"
    )
    type: Optional[str] = Field(
        default=None,
        description="income, expense or transfer (other values are ignored)"
    )
    amount: Decimal = Field(
        default=Decimal("0"),
        description="Non-negative magnitude"
    )
    date: datetime = Field(
        ...,
        description="When the transaction happened"
    )

    # income / expense
    category_id: Optional[str] = None
    account_id: Optional[str] = None

    # transfer
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None

    metadata: Optional[TransactionMetadata] = None
    description: Optional[str] = None
    memo: Optional[str] = None

    @field_validator('amount', mode='before')
    @classmethod
    def lenient_amount(cls, v: Any) -> Decimal:
        return coerce_amount(v)

    @field_validator('date', mode='before')
    @classmethod
    def date_to_datetime(cls, v: Any) -> Any:
        """Plain dates mean local midnight."""
        if isinstance(v, date) and not isinstance(v, datetime):
            return datetime.combine(v, time())
        return v

    @field_validator('type', 'category_id', 'account_id', 'from_account_id', 'to_account_id', mode='before')
    @classmethod
    def lenient_text(cls, v: Any) -> Optional[str]:
        return coerce_text(v)

    @property
    def is_bill_payment(self) -> bool:
        """A transfer tagged as paying a specific card statement."""
        return (
            self.type == TransactionType.TRANSFER
            and self.metadata is not None
            and self.metadata.is_bill_payment
        )


# =============================================================================
# ACCOUNTS & BILLING RULES
# =============================================================================

class Account(BaseModel):
    """An asset or liability account as configured by the user."""
    model_config = _wire_config()

    id: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name"
    )
    type: AccountType
    is_deleted: bool = False
    order: int = Field(
        default=0,
        description="Display order; lower first"
    )


class BillingRule(BaseModel):
    """
    Statement rule for one liability account.

    Example: closing_day=15, payment_month_offset=1, payment_day=10 means
    "closes on the 15th, paid on the 10th of the following month".
    """
    model_config = _wire_config()

    closing_day: int = Field(
        ...,
        ge=1,
        le=31,
        description="Statement closing day; 31 means month end"
    )
    payment_month_offset: int = Field(
        default=1,
        ge=1,
        description="Months between closing and payment"
    )
    payment_day: int = Field(
        ...,
        ge=1,
        le=31,
        description="Day of month the statement is debited"
    )
    default_payment_account_id: Optional[str] = Field(
        default=None,
        description="Asset account the payment is usually drawn from"
    )
