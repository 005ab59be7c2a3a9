"""
Tests for the Billing Cycle Engine.

Test strategy:
1. Date math (closing, payment, period) including month-end clamping
2. Aggregation and payment matching on small hand-checked ledgers
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from pocket_ledger.billing import (
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
from pocket_ledger.models.transaction import Account, BillingRule, TransactionMetadata

from conftest import make_tx

TOKYO = ZoneInfo("Asia/Tokyo")


def _payment(amount, closing_date="2024-01-31", card="card", when="2024-02-27"):
    return make_tx(
        "transfer", amount, when=when,
        from_account_id="bank",
        to_account_id=card,
        metadata=TransactionMetadata(
            payment_target_card_id=card,
            payment_target_closing_date=closing_date,
        ),
    )


@pytest.fixture
def accounts():
    return [
        Account(id="bank", name="Bank", type="asset"),
        Account(id="card", name="Visa", type="liability", order=1),
        Account(id="card2", name="Master", type="liability", order=0),
        Account(id="old-card", name="Old", type="liability", is_deleted=True),
    ]


@pytest.fixture
def rules():
    return {
        "card": BillingRule(
            closing_day=31,
            payment_month_offset=1,
            payment_day=27,
            default_payment_account_id="bank",
        ),
        "card2": BillingRule(closing_day=15, payment_month_offset=1, payment_day=10),
        "old-card": BillingRule(closing_day=10, payment_day=5),
    }


@pytest.fixture
def engine(settings):
    return BillingCycleEngine(settings)


class TestClosingDate:
    """Tests for assigning a charge to its cycle."""

    def test_on_or_before_closing_day_is_same_month(self):
        assert closing_date_for(date(2024, 10, 20), 25) == date(2024, 10, 25)
        assert closing_date_for(date(2024, 10, 25), 25) == date(2024, 10, 25)

    def test_after_closing_day_is_next_month(self):
        assert closing_date_for(date(2024, 10, 26), 25) == date(2024, 11, 25)

    def test_closing_day_31_clamps_in_february(self):
        """Feb 15 closes on the last day of February."""
        assert closing_date_for(date(2023, 2, 15), 31) == date(2023, 2, 28)
        assert closing_date_for(date(2024, 2, 15), 31) == date(2024, 2, 29)

    def test_leap_day_with_closing_day_31(self):
        """Feb 29 is not after day 31, so it closes on Feb 29 itself."""
        assert closing_date_for(date(2024, 2, 29), 31) == date(2024, 2, 29)
        assert closing_date_for(date(2024, 3, 1), 31) == date(2024, 3, 31)

    def test_closing_day_31_in_30_day_month(self):
        assert closing_date_for(date(2024, 4, 10), 31) == date(2024, 4, 30)

    def test_month_end_charge_rolls_into_short_month(self):
        """Jan 31 after a closing day of 30 lands on the clamped Feb close."""
        assert closing_date_for(date(2024, 1, 31), 30) == date(2024, 2, 29)

    def test_december_rolls_into_january(self):
        assert closing_date_for(date(2023, 12, 20), 15) == date(2024, 1, 15)

    def test_uses_reporting_zone(self):
        """16:00 UTC on Jan 25 is already Jan 26 in Tokyo."""
        instant = datetime(2024, 1, 25, 16, 0, tzinfo=timezone.utc)
        assert closing_date_for(instant, 25, TOKYO) == date(2024, 2, 25)


class TestPaymentDateAndPeriod:
    """Tests for due dates and cycle labels."""

    def test_payment_day_clamped(self):
        rule = BillingRule(closing_day=31, payment_month_offset=1, payment_day=31)
        assert payment_date_for(date(2024, 1, 31), rule) == date(2024, 2, 29)

    def test_payment_offset_two(self):
        rule = BillingRule(closing_day=15, payment_month_offset=2, payment_day=10)
        assert payment_date_for(date(2024, 11, 15), rule) == date(2025, 1, 10)

    def test_period_after_previous_close(self):
        assert billing_period(date(2024, 3, 25), 25) == (date(2024, 2, 26), date(2024, 3, 25))

    def test_full_month_period(self):
        assert billing_period(date(2024, 4, 30), 31) == (date(2024, 4, 1), date(2024, 4, 30))

    def test_period_after_clamped_previous_close(self):
        """Previous close of a 30th rule in February is Feb 28."""
        assert billing_period(date(2023, 3, 30), 30) == (date(2023, 3, 1), date(2023, 3, 30))

    def test_next_payment_date(self):
        rule = BillingRule(closing_day=15, payment_month_offset=1, payment_day=10)
        assert next_payment_date(rule, date(2024, 1, 10)) == date(2024, 2, 10)
        assert next_payment_date(rule, date(2024, 1, 20)) == date(2024, 3, 10)


class TestHistoryRequirement:
    """Tests for the loaded-period check."""

    def test_minimum_is_three_months(self):
        assert required_history_months([]) == 3
        assert required_history_months([BillingRule(closing_day=1, payment_day=1)]) == 3

    def test_long_offset_needs_more(self):
        rules = [
            BillingRule(closing_day=1, payment_day=1, payment_month_offset=1),
            BillingRule(closing_day=1, payment_day=1, payment_month_offset=3),
        ]
        assert required_history_months(rules) == 5
        assert is_history_insufficient(rules, 3) is True
        assert is_history_insufficient(rules, 6) is False


class TestCalculateBills:
    """Tests for aggregation and payment matching."""

    def test_settled_bill_excluded_from_unpaid(self, engine, accounts, rules):
        """10000 charged and 10000 paid in two transfers is settled."""
        transactions = [
            make_tx("expense", 6000, when="2024-01-05", account_id="card"),
            make_tx("expense", 4000, when="2024-01-22", account_id="card"),
            _payment(5000),
            _payment(5000),
        ]

        bills = engine.calculate_bills(transactions, accounts, rules)
        assert len(bills) == 1
        assert bills[0].amount == Decimal("10000")
        assert bills[0].remaining_amount == Decimal("0")
        assert bills[0].is_settled is True
        assert engine.unpaid_bills(transactions, accounts, rules) == []

    def test_partial_payment(self, engine, accounts, rules):
        transactions = [
            make_tx("expense", 10000, when="2024-01-05", account_id="card"),
            _payment(4000),
        ]

        [bill] = engine.unpaid_bills(transactions, accounts, rules)
        assert bill.paid_amount == Decimal("4000")
        assert bill.remaining_amount == Decimal("6000")
        assert bill.closing_date == date(2024, 1, 31)
        assert bill.payment_date == date(2024, 2, 27)
        assert (bill.period_start, bill.period_end) == (date(2024, 1, 1), date(2024, 1, 31))

    def test_payment_for_other_cycle_does_not_count(self, engine, accounts, rules):
        transactions = [
            make_tx("expense", 1000, when="2024-01-05", account_id="card"),
            _payment(1000, closing_date="2023-12-31"),
        ]
        [bill] = engine.calculate_bills(transactions, accounts, rules)
        assert bill.paid_amount == Decimal("0")

    def test_transfer_out_of_card_is_a_charge(self, engine, accounts, rules):
        """Cash advances (transfers from the card) are billed."""
        transactions = [
            make_tx("transfer", 3000, when="2024-01-05", from_account_id="card", to_account_id="bank"),
        ]
        [bill] = engine.calculate_bills(transactions, accounts, rules)
        assert bill.amount == Decimal("3000")

    def test_payment_into_card_is_not_a_charge(self, engine, accounts, rules):
        bills = engine.calculate_bills([_payment(500)], accounts, rules)
        assert bills == []

    def test_charges_split_by_cycle(self, engine, accounts, rules):
        transactions = [
            make_tx("expense", 100, when="2024-01-15", account_id="card2"),
            make_tx("expense", 200, when="2024-01-16", account_id="card2"),
            make_tx("expense", 300, when="2024-02-15", account_id="card2"),
        ]
        bills = engine.calculate_bills(transactions, accounts, rules)
        assert [(b.closing_date, b.amount) for b in bills] == [
            (date(2024, 1, 15), Decimal("100")),
            (date(2024, 2, 15), Decimal("500")),
        ]

    def test_sorted_by_account_order_then_date(self, engine, accounts, rules):
        transactions = [
            make_tx("expense", 1, when="2024-02-01", account_id="card"),
            make_tx("expense", 1, when="2024-01-01", account_id="card"),
            make_tx("expense", 1, when="2024-03-01", account_id="card2"),
        ]
        bills = engine.calculate_bills(transactions, accounts, rules)
        assert [(b.account_id, b.closing_date) for b in bills] == [
            ("card2", date(2024, 3, 15)),
            ("card", date(2024, 1, 31)),
            ("card", date(2024, 2, 29)),
        ]

    def test_no_rule_no_bills(self, engine, accounts):
        transactions = [make_tx("expense", 100, account_id="card")]
        assert engine.calculate_bills(transactions, accounts, {}) == []

    def test_deleted_card_no_bills(self, engine, accounts, rules):
        transactions = [make_tx("expense", 100, account_id="old-card")]
        assert engine.calculate_bills(transactions, accounts, rules) == []

    def test_asset_expenses_ignored(self, engine, accounts, rules):
        transactions = [make_tx("expense", 100, account_id="bank")]
        assert engine.calculate_bills(transactions, accounts, rules) == []

    def test_paid_amounts_keyed_by_card_and_closing(self):
        paid = paid_amounts([_payment(100), _payment(50), _payment(7, card="card2")])
        assert paid == {
            ("card", "2024-01-31"): Decimal("150"),
            ("card2", "2024-01-31"): Decimal("7"),
        }

    def test_accounts_without_rule(self, accounts, rules):
        missing = liability_accounts_without_rule(accounts, {"card": rules["card"]})
        assert [a.id for a in missing] == ["card2"]


class TestPaymentDraft:
    """Tests for the pre-filled payment transfer."""

    def test_draft_settles_remaining(self, engine, accounts, rules):
        transactions = [
            make_tx("expense", 10000, when="2024-01-05", account_id="card"),
            _payment(4000),
        ]
        [bill] = engine.unpaid_bills(transactions, accounts, rules)

        draft = build_payment_draft(bill)

        assert draft.amount == Decimal("6000")
        assert draft.to_account_id == "card"
        assert draft.from_account_id == "bank"
        assert draft.scheduled_date == date(2024, 2, 27)
        assert draft.metadata.payment_target_card_id == "card"
        assert draft.metadata.payment_target_closing_date == "2024-01-31"

    def test_saved_draft_settles_bill(self, engine, accounts, rules):
        """A transfer built from the draft is matched back to the bill."""
        charge = make_tx("expense", 2500, when="2024-01-05", account_id="card")
        [bill] = engine.unpaid_bills([charge], accounts, rules)
        draft = build_payment_draft(bill)
        payment = make_tx(
            "transfer", draft.amount,
            when=datetime.combine(draft.scheduled_date, datetime.min.time()),
            from_account_id=draft.from_account_id,
            to_account_id=draft.to_account_id,
            metadata=draft.metadata,
        )

        assert engine.unpaid_bills([charge, payment], accounts, rules) == []
