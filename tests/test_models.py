"""
Tests for Pocket Ledger

Test strategy:
1. Unit tests for individual components (models, effects, billing math)
2. Flow tests against the in-memory storage backends
3. No real API calls in tests (Google Sheets is mocked)
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from pocket_ledger.models.transaction import (
    Account,
    AccountType,
    BillingRule,
    Transaction,
    TransactionMetadata,
    coerce_amount,
)
from pocket_ledger.models.ledger import (
    ApplyResult,
    ApplyStatus,
    LedgerState,
    NetWorthBreakdown,
    TransactionChange,
)
from pocket_ledger.models.billing import Bill
from pocket_ledger.models.history import MonthlySummary
from pocket_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestTransactionModels:
    """Tests for transaction parsing."""

    def test_parses_camel_case_wire_format(self):
        """Test that stored camelCase documents are accepted."""
        tx = Transaction.model_validate({
            "id": "t1",
            "userId": "u1",
            "type": "transfer",
            "amount": 1200,
            "date": "2024-01-10T09:00:00+09:00",
            "fromAccountId": "bank",
            "toAccountId": "card",
            "metadata": {
                "paymentTargetCardId": "card",
                "paymentTargetClosingDate": "2023-12-31",
                "note": "kept",
            },
        })
        assert tx.from_account_id == "bank"
        assert tx.amount == Decimal("1200")
        assert tx.metadata.payment_target_closing_date == "2023-12-31"
        assert tx.is_bill_payment is True

    def test_lenient_amounts(self):
        """Test that bad amounts become zero instead of failing."""
        assert coerce_amount(None) == Decimal("0")
        assert coerce_amount("abc") == Decimal("0")
        assert coerce_amount(float("nan")) == Decimal("0")
        assert coerce_amount(True) == Decimal("0")
        assert coerce_amount("12.50") == Decimal("12.50")

    def test_unknown_type_is_kept(self):
        tx = Transaction(id="t", user_id="u", type="refund", date=datetime(2024, 1, 1))
        assert tx.type == "refund"

    def test_plain_date_becomes_midnight(self):
        tx = Transaction(id="t", user_id="u", type="income", date=date(2024, 1, 1))
        assert tx.date == datetime(2024, 1, 1, 0, 0)

    def test_blank_account_ids_are_none(self):
        tx = Transaction(id="t", user_id="u", type="expense", date=date(2024, 1, 1), account_id="")
        assert tx.account_id is None

    def test_null_missing_or_numeric_type_is_accepted(self):
        """Bad type values arrive as None or text instead of failing the change."""
        base = {"id": "t", "userId": "u", "date": "2024-01-01T00:00:00", "amount": 5}

        assert Transaction.model_validate({**base, "type": None}).type is None
        assert Transaction.model_validate(base).type is None
        assert Transaction.model_validate({**base, "type": 7}).type == "7"
        assert Transaction.model_validate({**base, "type": {"k": "v"}}).type is None

    def test_non_string_account_ids(self):
        tx = Transaction.model_validate({
            "id": "t", "userId": "u", "type": "transfer", "date": "2024-01-01T00:00:00",
            "accountId": 42, "fromAccountId": ["x"], "toAccountId": "  ", "categoryId": True,
        })
        assert tx.account_id == "42"
        assert tx.from_account_id is None
        assert tx.to_account_id is None
        assert tx.category_id is None

    def test_change_with_bad_type_validates(self):
        change = TransactionChange.model_validate({
            "eventId": "e1",
            "after": {"id": "t", "userId": "u", "type": None, "date": "2024-01-01T00:00:00"},
        })
        assert change.user_id == "u"
        assert change.after.type is None

    def test_untagged_transfer_is_not_bill_payment(self):
        tx = Transaction(
            id="t", user_id="u", type="transfer", date=date(2024, 1, 1),
            metadata=TransactionMetadata(payment_target_card_id="card"),
        )
        assert tx.is_bill_payment is False

    def test_missing_user_rejected(self):
        with pytest.raises(ValidationError):
            Transaction(id="t", user_id="", type="income", date=date(2024, 1, 1))


class TestConfigurationModels:
    """Tests for accounts and billing rules."""

    def test_account_defaults(self):
        account = Account(id="a", name="  Wallet  ", type="asset")
        assert account.name == "Wallet"
        assert account.type == AccountType.ASSET
        assert account.is_deleted is False

    def test_billing_rule_from_wire(self):
        rule = BillingRule.model_validate({
            "closingDay": 15,
            "paymentMonthOffset": 2,
            "paymentDay": 10,
            "defaultPaymentAccountId": "bank",
        })
        assert rule.payment_month_offset == 2
        assert rule.default_payment_account_id == "bank"

    def test_billing_rule_bounds(self):
        with pytest.raises(ValidationError):
            BillingRule(closing_day=32, payment_day=1)
        with pytest.raises(ValidationError):
            BillingRule(closing_day=1, payment_day=1, payment_month_offset=0)


class TestLedgerModels:
    """Tests for change, state and result models."""

    def _tx(self, user_id="u1"):
        return Transaction(id="t1", user_id=user_id, type="income", amount=1, date=date(2024, 1, 1))

    def test_change_kinds(self):
        assert TransactionChange(event_id="e", after=self._tx()).kind == "create"
        assert TransactionChange(event_id="e", before=self._tx(), after=self._tx()).kind == "update"
        assert TransactionChange(event_id="e", before=self._tx()).kind == "delete"
        assert TransactionChange(event_id="e").kind == "empty"

    def test_change_owner_from_either_side(self):
        change = TransactionChange(event_id="e", before=self._tx())
        assert change.user_id == "u1"
        assert change.transaction_id == "t1"

    def test_change_cannot_switch_owner(self):
        with pytest.raises(ValidationError):
            TransactionChange(event_id="e", before=self._tx("u1"), after=self._tx("u2"))

    def test_change_from_wire(self):
        change = TransactionChange.model_validate({"eventId": "e9", "before": None, "after": None})
        assert change.event_id == "e9"

    def test_ledger_state_total(self):
        state = LedgerState(user_id="u", balances={"a": Decimal("5"), "b": Decimal("-2")})
        assert state.total == Decimal("3")

    def test_retryable_result_should_redeliver(self):
        result = ApplyResult(status=ApplyStatus.RETRYABLE_FAILURE, event_id="e")
        assert result.should_redeliver is True
        assert ApplyResult(status=ApplyStatus.DUPLICATE, event_id="e").should_redeliver is False

    def test_net_worth_breakdown(self):
        breakdown = NetWorthBreakdown(total_assets=Decimal("100"), total_liabilities=Decimal("-40"))
        assert breakdown.net_worth == Decimal("60")


class TestBillAndHistoryModels:
    """Tests for derived-data models."""

    def test_bill_remaining(self):
        bill = Bill(
            account_id="card",
            account_name="Visa",
            closing_date=date(2024, 1, 31),
            payment_date=date(2024, 2, 27),
            period_start=date(2024, 1, 1),
            period_end=date(2024, 1, 31),
            amount=Decimal("10000"),
            paid_amount=Decimal("4000"),
        )
        assert bill.remaining_amount == Decimal("6000")
        assert bill.is_settled is False
        assert bill.closing_key == "2024-01-31"

    def test_bill_date_validation(self):
        """Test that period end cannot precede start."""
        with pytest.raises(ValidationError):
            Bill(
                account_id="card",
                account_name="Visa",
                closing_date=date(2024, 1, 31),
                payment_date=date(2024, 2, 27),
                period_start=date(2024, 2, 1),
                period_end=date(2024, 1, 31),
            )

    def test_month_pattern(self):
        with pytest.raises(ValidationError):
            MonthlySummary(month="2024-1")


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.EVENT_APPLIED,
            description="Test change applied",
        )
        assert event.event_type == AuditEventType.EVENT_APPLIED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.event_applied(
            user_id="u1",
            event_id="e1",
            transaction_id="t1",
            deltas={"cash": Decimal("-500")},
            attempts=1,
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "event_applied"
        assert log_dict["details"]["deltas"] == {"cash": "-500"}

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEventBuilder.unknown_transaction_type(
            user_id="u1",
            transaction_id="t1",
            transaction_type="refund",
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "unknown_transaction_type"  # event_type
        assert row[3] == "warning"  # severity
        assert row[6] == "t1"  # entity_id

    def test_audit_event_builder_history_truncated(self):
        """Test AuditEventBuilder.history_truncated."""
        correlation_id = uuid4()

        event = AuditEventBuilder.history_truncated(
            user_id="u1",
            max_months=240,
            oldest_transaction_month="1999-01",
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.HISTORY_TRUNCATED
        assert event.severity == AuditSeverity.WARNING
        assert event.correlation_id == correlation_id
        assert event.details["max_months"] == 240

    def test_audit_event_builder_apply_failed(self):
        event = AuditEventBuilder.event_apply_failed(
            user_id="u1",
            event_id="e1",
            attempts=5,
            error_message="conflict",
        )
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "conflict"
