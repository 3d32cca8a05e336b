"""
Tests for payment settlement (FIFO walk over outstanding balances).
"""

import asyncio
from decimal import Decimal

from jarvis_ledger.models.ledger import Collection
from jarvis_ledger.models.results import ErrorKind, OperationStatus

from tests.conftest import add_card_expense


async def balance(store, record_id):
    return await store.retrieve_record(record_id)


class TestSettlementWalk:
    """Tests for the greedy oldest-first walk."""

    async def test_partial_settlement_stops_the_walk(self, ledger, store, clock, accounts):
        """Test balances 30, 50, 20 paid with 70."""
        b30 = await add_card_expense(ledger, clock, "30", "2026-02-01")
        b50 = await add_card_expense(ledger, clock, "50", "2026-02-05")
        b20 = await add_card_expense(ledger, clock, "20", "2026-02-10")

        result = await ledger.settle_payment(Decimal("70"), "checkings", "sapphire")

        assert result.status == OperationStatus.SUCCEEDED
        assert result.cleared_total == Decimal("70.00")
        assert result.remaining_unapplied == Decimal("0.00")
        assert result.touched_ids == [b30, b50]
        assert [(a.amount_applied, a.fully_settled) for a in result.applied] == [
            (Decimal("30.00"), True),
            (Decimal("40.00"), False),
        ]
        assert "partial" in result.applied[1].note

        first = await balance(store, b30)
        assert first.flag("cleared") is True
        assert first.number("paid_amount") == Decimal("30.00")
        assert first.relation("cleared_by") == [result.payment_id]

        second = await balance(store, b50)
        assert second.flag("cleared") is False
        assert second.number("paid_amount") == Decimal("40.00")

        third = await balance(store, b20)
        assert third.flag("cleared") is False
        assert third.number("paid_amount") == Decimal("0")
        assert third.relation("cleared_by") == []

        payment = await balance(store, result.payment_id)
        assert payment.relation("cleared_expenses") == [b30, b50]

    async def test_overpayment_leaves_remainder(self, ledger, store, clock, accounts):
        """Test a single 30 balance paid with 100."""
        b30 = await add_card_expense(ledger, clock, "30", "2026-02-01")

        result = await ledger.settle_payment(Decimal("100"), "checkings", "sapphire")

        assert result.cleared_total == Decimal("30.00")
        assert result.remaining_unapplied == Decimal("70.00")
        assert (await balance(store, b30)).flag("cleared") is True
        assert "Remaining unapplied: $70.00" in result.message

    async def test_no_candidates_still_records_payment(self, ledger, store, clock, accounts):
        """Test a payment with nothing to settle."""
        other_card = await add_card_expense(ledger, clock, "15", "2026-02-01", card="freedom unlimited")
        other_funding = await add_card_expense(ledger, clock, "15", "2026-02-01", funding="bills")

        result = await ledger.settle_payment(Decimal("50"), "checkings", "sapphire")

        assert result.success is True
        assert result.status == OperationStatus.SUCCEEDED
        assert result.applied == []
        assert result.remaining_unapplied == Decimal("50.00")
        assert result.payment_id is not None
        assert len(store.all_records(Collection.PAYMENTS)) == 1
        for untouched in (other_card, other_funding):
            record = await balance(store, untouched)
            assert record.flag("cleared") is False
            assert record.number("paid_amount") == Decimal("0")

    async def test_order_is_by_date_then_creation(self, ledger, clock, accounts):
        """Test that an older date wins over an earlier creation."""
        newer = await add_card_expense(ledger, clock, "10", "2026-02-10")
        older = await add_card_expense(ledger, clock, "10", "2026-02-01")
        same_day_later = await add_card_expense(ledger, clock, "10", "2026-02-01")

        result = await ledger.settle_payment(Decimal("30"), "checkings", "sapphire")

        assert result.touched_ids == [older, same_day_later, newer]

    async def test_second_payment_finishes_partial_balance(self, ledger, store, clock, accounts):
        """Test that paid_amount accumulates across payments."""
        await add_card_expense(ledger, clock, "30", "2026-02-01")
        b50 = await add_card_expense(ledger, clock, "50", "2026-02-05")
        first = await ledger.settle_payment(Decimal("70"), "checkings", "sapphire")

        second = await ledger.settle_payment(Decimal("10"), "checkings", "sapphire")

        assert second.applied[0].balance_id == b50
        assert second.applied[0].amount_applied == Decimal("10.00")
        assert second.applied[0].fully_settled is True
        record = await balance(store, b50)
        assert record.number("paid_amount") == Decimal("50.00")
        assert record.flag("cleared") is True
        assert record.relation("cleared_by") == [first.payment_id, second.payment_id]

    async def test_precomputed_owed_amount_is_used(self, ledger, store, accounts):
        """Test balances that carry an owed_amount field."""
        record_id = await store.create_record(Collection.EXPENSES, {
            "amount": "40.00",
            "date": "2026-02-01",
            "accounts": [accounts["sapphire"]],
            "funding_account": [accounts["checkings"]],
            "cleared": False,
            "paid_amount": "0",
            "owed_amount": "25.00",
        })

        result = await ledger.settle_payment(Decimal("10"), "checkings", "sapphire")

        assert result.applied[0].amount_applied == Decimal("10.00")
        record = await balance(store, record_id)
        assert record.number("owed_amount") == Decimal("15.00")

    async def test_concurrent_payments_never_overpay(self, ledger, store, clock, accounts):
        """Test that two payments against one card don't settle the same balance twice."""
        b1 = await add_card_expense(ledger, clock, "30", "2026-02-01")
        b2 = await add_card_expense(ledger, clock, "30", "2026-02-02")

        first, second = await asyncio.gather(
            ledger.settle_payment(Decimal("30"), "checkings", "sapphire"),
            ledger.settle_payment(Decimal("30"), "checkings", "sapphire"),
        )

        assert sorted(first.touched_ids + second.touched_ids) == sorted([b1, b2])
        for record_id in (b1, b2):
            record = await balance(store, record_id)
            assert record.number("paid_amount") == Decimal("30.00")
            assert len(record.relation("cleared_by")) == 1


class TestSettlementFailures:
    """Tests for rejected payments and mid-walk failures."""

    async def test_write_failure_stops_walk(self, ledger, store, clock, accounts):
        """Test that a failed balance update yields a partial result."""
        b30 = await add_card_expense(ledger, clock, "30", "2026-02-01")
        b50 = await add_card_expense(ledger, clock, "50", "2026-02-05")
        b20 = await add_card_expense(ledger, clock, "20", "2026-02-10")
        store.failing_updates.add(b50)

        result = await ledger.settle_payment(Decimal("100"), "checkings", "sapphire")

        assert result.status == OperationStatus.PARTIAL
        assert result.error.kind == ErrorKind.UPSTREAM_FAILURE
        assert result.touched_ids == [b30]
        assert result.failed_balance_ids == [b50]
        assert result.cleared_total == Decimal("30.00")
        assert result.remaining_unapplied == Decimal("70.00")
        assert (await balance(store, b20)).flag("cleared") is False
        payment = await balance(store, result.payment_id)
        assert payment.relation("cleared_expenses") == [b30]

    async def test_candidate_query_failure(self, ledger, store, accounts):
        """Test that the payment stays recorded when balances can't be read."""
        store.failing_queries.add("expenses")

        result = await ledger.settle_payment(Decimal("25"), "checkings", "sapphire")

        assert result.status == OperationStatus.PARTIAL
        assert result.payment_id is not None
        assert result.remaining_unapplied == Decimal("25.00")
        assert len(store.all_records(Collection.PAYMENTS)) == 1

    async def test_payment_write_failure(self, ledger, store, accounts):
        """Test that nothing is settled if the payment can't be recorded."""
        store.fail_nth_create(Collection.PAYMENTS, 1)
        result = await ledger.settle_payment(Decimal("25"), "checkings", "sapphire")
        assert result.status == OperationStatus.FAILED
        assert result.error.kind == ErrorKind.UPSTREAM_FAILURE
        assert result.payment_id is None

    async def test_source_must_be_funding_account(self, ledger, store, accounts):
        """Test that a credit card can't pay a credit card."""
        result = await ledger.settle_payment(Decimal("25"), "freedom unlimited", "sapphire")
        assert result.error.kind == ErrorKind.INVALID_INPUT
        assert store.all_records(Collection.PAYMENTS) == []

    async def test_destination_must_be_credit_card(self, ledger, store, accounts):
        """Test that payments go to credit cards only."""
        result = await ledger.settle_payment(Decimal("25"), "checkings", "brokerage")
        assert result.error.kind == ErrorKind.INVALID_INPUT
        assert store.all_records(Collection.PAYMENTS) == []

    async def test_unknown_account_is_not_found(self, ledger, store, accounts):
        """Test an account outside the account list."""
        result = await ledger.settle_payment(Decimal("25"), "venmo", "sapphire")
        assert result.error.kind == ErrorKind.NOT_FOUND

    async def test_amount_must_be_positive(self, ledger, store, accounts):
        """Test that validation happens before any write."""
        result = await ledger.settle_payment(Decimal("-5"), "checkings", "sapphire")
        assert result.error.kind == ErrorKind.INVALID_INPUT
        assert store.all_records(Collection.PAYMENTS) == []

    async def test_defaults_to_configured_accounts(self, ledger, store, accounts):
        """Test checkings -> sapphire when no accounts are given."""
        result = await ledger.settle_payment(Decimal("5"))
        payment = await balance(store, result.payment_id)
        assert payment.relation("from_account") == [accounts["checkings"]]
        assert payment.relation("to_account") == [accounts["sapphire"]]
