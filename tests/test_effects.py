"""
Tests for the pure balance-effect functions.

These carry the sign table, so they are tested without any storage.
"""

from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

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
from pocket_ledger.models.transaction import Account, TransactionMetadata

from conftest import make_tx

TOKYO = ZoneInfo("Asia/Tokyo")


class TestForwardAndReverse:
    """Tests for the sign table."""

    def test_income_credits_account(self):
        """Income adds its amount to the account."""
        tx = make_tx("income", 2000, account_id="cash")
        assert forward_effect(tx) == {"cash": Decimal("2000")}

    def test_expense_debits_account(self):
        """Expense subtracts its amount from the account."""
        tx = make_tx("expense", 500, account_id="cash")
        assert forward_effect(tx) == {"cash": Decimal("-500")}

    def test_transfer_moves_between_accounts(self):
        """Transfer debits the source and credits the destination."""
        tx = make_tx("transfer", 300, from_account_id="bank", to_account_id="card")
        assert forward_effect(tx) == {"bank": Decimal("-300"), "card": Decimal("300")}

    def test_transfer_is_zero_sum(self):
        """A transfer leaves the total across all accounts unchanged."""
        tx = make_tx("transfer", 300, from_account_id="bank", to_account_id="wallet")
        assert sum(forward_effect(tx).values()) == 0

    def test_reverse_undoes_forward(self):
        """Forward plus reverse nets to nothing for every type."""
        for tx in (
            make_tx("income", 10, account_id="a"),
            make_tx("expense", 10, account_id="a"),
            make_tx("transfer", 10, from_account_id="a", to_account_id="b"),
        ):
            assert merge_effects(forward_effect(tx), reverse_effect(tx)) == {}

    def test_missing_account_is_noop_leg(self):
        """A transfer without a destination only debits the source."""
        tx = make_tx("transfer", 100, from_account_id="bank")
        assert forward_effect(tx) == {"bank": Decimal("-100")}

    def test_unknown_type_has_no_effect(self):
        """Types outside income/expense/transfer are ignored."""
        tx = make_tx("refund", 100, account_id="cash")
        assert forward_effect(tx) == {}
        assert reverse_effect(tx) == {}

    def test_non_numeric_amount_is_zero(self):
        """A garbage amount is treated as 0."""
        tx = make_tx("income", "abc", account_id="cash")
        assert tx.amount == Decimal("0")
        assert merge_effects(forward_effect(tx)) == {}


class TestNetDelta:
    """Tests for netting a before/after pair."""

    def test_create(self):
        """Create applies the forward effect."""
        after = make_tx("expense", 500, account_id="cash")
        assert net_delta(None, after) == {"cash": Decimal("-500")}

    def test_delete(self):
        """Delete applies the reverse effect."""
        before = make_tx("expense", 500, account_id="cash")
        assert net_delta(before, None) == {"cash": Decimal("500")}

    def test_update_amount(self):
        """Changing an amount applies only the difference."""
        before = make_tx("expense", 500, account_id="cash", id="t1")
        after = make_tx("expense", 800, account_id="cash", id="t1")
        assert net_delta(before, after) == {"cash": Decimal("-300")}

    def test_update_moves_account(self):
        """Moving an expense between accounts credits one and debits the other."""
        before = make_tx("expense", 500, account_id="cash", id="t1")
        after = make_tx("expense", 500, account_id="bank", id="t1")
        assert net_delta(before, after) == {"cash": Decimal("500"), "bank": Decimal("-500")}

    def test_unchanged_update_is_empty(self):
        """Zero-valued deltas are dropped."""
        before = make_tx("income", 100, account_id="cash", id="t1")
        after = make_tx("income", 100, account_id="cash", id="t1", memo="edited")
        assert net_delta(before, after) == {}

    def test_empty_change(self):
        assert net_delta(None, None) == {}


class TestRecovery:
    """Tests for recompute, drift and adjustments."""

    def test_recompute_balances(self):
        """Recompute sums forward effects and keeps zero balances."""
        transactions = [
            make_tx("income", 2000, account_id="cash"),
            make_tx("expense", 500, account_id="cash"),
            make_tx("transfer", 100, from_account_id="cash", to_account_id="bank"),
            make_tx("expense", 100, account_id="bank"),
        ]
        assert recompute_balances(transactions) == {
            "cash": Decimal("1400"),
            "bank": Decimal("0"),
        }

    def test_balance_drift(self):
        """Only accounts that differ are reported."""
        stored = {"cash": Decimal("100"), "bank": Decimal("50")}
        recomputed = {"cash": Decimal("100"), "bank": Decimal("40"), "card": Decimal("-5")}
        assert balance_drift(stored, recomputed) == {
            "bank": Decimal("-10"),
            "card": Decimal("-5"),
        }

    def test_adjustment_up_is_income(self):
        """Real balance above tracked becomes income in the adjustment category."""
        tx = build_adjustment_transaction(
            user_id="u",
            account_id="cash",
            current_balance=Decimal("1000"),
            actual_balance=Decimal("1200"),
            when=datetime(2024, 3, 1),
            category_id="SYSTEM_BALANCE_ADJUSTMENT",
        )
        assert tx.type == "income"
        assert tx.amount == Decimal("200")
        assert tx.category_id == "SYSTEM_BALANCE_ADJUSTMENT"
        assert tx.account_id == "cash"

    def test_adjustment_down_is_expense(self):
        tx = build_adjustment_transaction(
            user_id="u",
            account_id="cash",
            current_balance=Decimal("1000"),
            actual_balance=Decimal("750"),
            when=datetime(2024, 3, 1),
            category_id="SYSTEM_BALANCE_ADJUSTMENT",
        )
        assert tx.type == "expense"
        assert tx.amount == Decimal("250")

    def test_no_adjustment_when_balanced(self):
        """No gap, no transaction."""
        assert build_adjustment_transaction(
            user_id="u",
            account_id="cash",
            current_balance=Decimal("10"),
            actual_balance=Decimal("10"),
            when=datetime(2024, 3, 1),
            category_id="X",
        ) is None


class TestNetWorthSummary:
    """Tests for the asset/liability breakdown."""

    def test_breakdown_skips_deleted_accounts(self):
        accounts = [
            Account(id="cash", name="Cash", type="asset"),
            Account(id="card", name="Card", type="liability"),
            Account(id="old", name="Old", type="asset", is_deleted=True),
        ]
        balances = {
            "cash": Decimal("5000"),
            "card": Decimal("-1200"),
            "old": Decimal("999"),
        }
        breakdown = summarize_net_worth(balances, accounts)
        assert breakdown.total_assets == Decimal("5000")
        assert breakdown.total_liabilities == Decimal("-1200")
        assert breakdown.net_worth == Decimal("3800")


class TestPaymentLinkChanges:
    """Tests for detecting edits to tagged bill payments."""

    def _payment(self, **overrides):
        fields = dict(
            id="pay-1",
            from_account_id="bank",
            to_account_id="card",
            metadata=TransactionMetadata(
                payment_target_card_id="card",
                payment_target_closing_date="2024-01-31",
            ),
        )
        amount = overrides.pop("amount", 10000)
        when = overrides.pop("when", "2024-02-27")
        fields.update(overrides)
        return make_tx("transfer", amount, when=when, **fields)

    def test_amount_and_date_change_detected(self):
        before = self._payment()
        after = self._payment(amount=9000, when="2024-02-28")
        assert payment_link_changes(before, after, TOKYO) == ["amount", "date"]

    def test_destination_change_detected(self):
        before = self._payment()
        after = self._payment(to_account_id="other-card")
        assert payment_link_changes(before, after, TOKYO) == ["to_account_id"]

    def test_memo_edit_is_ignored(self):
        """Fields that do not affect the statement are not reported."""
        before = self._payment()
        after = self._payment(memo="note")
        assert payment_link_changes(before, after, TOKYO) == []

    def test_untagged_transfer_is_ignored(self):
        before = make_tx("transfer", 100, from_account_id="a", to_account_id="b", id="x")
        after = make_tx("transfer", 200, from_account_id="a", to_account_id="b", id="x")
        assert payment_link_changes(before, after, TOKYO) == []

    def test_delete_is_not_an_edit(self):
        assert payment_link_changes(self._payment(), None, TOKYO) == []
