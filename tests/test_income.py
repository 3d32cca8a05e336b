"""
Tests for splitting income across an allocation rule.
"""

from datetime import date
from decimal import Decimal

from jarvis_ledger.models.ledger import Collection
from jarvis_ledger.models.results import ErrorKind, OperationStatus


class TestSplitIncome:
    """Tests for IncomeSplitter.split_income."""

    async def test_split_writes_one_income_per_row(self, ledger, store, accounts):
        """Test entries and the income records behind them."""
        await ledger.replace_rule("default", [
            {"account": "checkings", "percentage": "0.6"},
            {"account": "bills", "percentage": "0.4"},
        ])

        result = await ledger.split_income(Decimal("1000"), "default", date(2026, 3, 1), "MSFT paycheck")

        assert result.status == OperationStatus.SUCCEEDED
        assert [(e.account, e.amount) for e in result.entries] == [
            ("checkings", Decimal("600.00")),
            ("bills", Decimal("400.00")),
        ]
        assert result.total_allocated == Decimal("1000.00")

        incomes = store.all_records(Collection.INCOME)
        assert len(incomes) == 2
        checkings = next(r for r in incomes if r.relation("accounts") == [accounts["checkings"]])
        assert checkings.number("amount") == Decimal("600.00")
        assert checkings.number("pre_breakdown") == Decimal("1000.00")
        assert checkings.number("percentage") == Decimal("0.6")
        assert checkings.text("budget") == "default"
        assert checkings.day("date") == date(2026, 3, 1)
        assert checkings.title == "MSFT paycheck $600.00 (checkings)"

    async def test_rounding_drift_is_bounded(self, ledger, accounts):
        """Test that per-entry half-up rounding drifts at most half a cent per entry."""
        await ledger.replace_rule("halves", [
            {"account": "checkings", "percentage": "0.5"},
            {"account": "bills", "percentage": "0.5"},
        ])
        gross = Decimal("10.01")

        result = await ledger.split_income(gross, "halves")

        assert [e.amount for e in result.entries] == [Decimal("5.01"), Decimal("5.01")]
        drift = abs(result.total_allocated - gross)
        assert drift <= Decimal("0.005") * len(result.entries)

    async def test_residue_is_not_redistributed(self, ledger, accounts):
        """Test thirds of 100: each entry is rounded on its own."""
        await ledger.replace_rule("thirds", [
            {"account": "checkings", "percentage": "0.3333"},
            {"account": "bills", "percentage": "0.3333"},
            {"account": "brokerage", "percentage": "0.3334"},
        ])
        result = await ledger.split_income(Decimal("100"), "thirds")
        assert [e.amount for e in result.entries] == [
            Decimal("33.33"), Decimal("33.33"), Decimal("33.34"),
        ]

    async def test_default_rule_and_date(self, ledger, accounts, clock):
        """Test that the default rule and today's date are used when omitted."""
        await ledger.replace_rule("default", [{"account": "checkings", "percentage": "1"}])

        result = await ledger.split_income(Decimal("250"))

        assert result.rule_name == "default"
        assert result.date == clock.now.date()
        assert result.entries[0].amount == Decimal("250.00")

    async def test_missing_rule_is_not_found(self, ledger, accounts):
        """Test a rule with no active rows."""
        result = await ledger.split_income(Decimal("100"), "hunt")
        assert result.status == OperationStatus.FAILED
        assert result.error.kind == ErrorKind.NOT_FOUND
        assert "hunt" in result.error.message

    async def test_sub_cent_gross_is_split(self, ledger, store, accounts):
        """Test a gross amount with three decimals: shares are rounded, the gross is kept."""
        await ledger.replace_rule("halves", [
            {"account": "checkings", "percentage": "0.5"},
            {"account": "bills", "percentage": "0.5"},
        ])

        result = await ledger.split_income(Decimal("100.005"), "halves")

        assert result.status == OperationStatus.SUCCEEDED
        assert [e.amount for e in result.entries] == [Decimal("50.00"), Decimal("50.00")]
        assert result.gross_amount == Decimal("100.005")
        assert abs(result.total_allocated - Decimal("100.005")) <= Decimal("0.005") * 2
        assert len(store.all_records(Collection.INCOME)) == 2

    async def test_invalid_amount_rejected(self, ledger, accounts):
        """Test that non-positive gross amounts are invalid input."""
        result = await ledger.split_income(Decimal("0"), "default")
        assert result.error.kind == ErrorKind.INVALID_INPUT

    async def test_malformed_rows_are_skipped(self, ledger, store, accounts):
        """Test rows with no percentage, no account or a dangling account."""
        good = await store.create_record(
            Collection.ALLOCATION_RULES,
            {"account": [accounts["checkings"]], "percentage": "1"},
            title="default",
        )
        zero = await store.create_record(
            Collection.ALLOCATION_RULES,
            {"account": [accounts["bills"]], "percentage": "0"},
            title="default",
        )
        blank = await store.create_record(
            Collection.ALLOCATION_RULES,
            {"percentage": "0.5"},
            title="default",
        )
        dangling = await store.create_record(
            Collection.ALLOCATION_RULES,
            {"account": ["deleted-account"], "percentage": "0.5"},
            title="default",
        )

        result = await ledger.split_income(Decimal("80"), "default")

        assert result.status == OperationStatus.SUCCEEDED
        assert [e.account_id for e in result.entries] == [accounts["checkings"]]
        assert set(result.skipped_row_ids) == {zero, blank, dangling}
        assert good not in result.skipped_row_ids

    async def test_failed_entry_makes_split_partial(self, ledger, store, accounts):
        """Test that a failed write doesn't stop sibling entries."""
        await ledger.replace_rule("default", [
            {"account": "checkings", "percentage": "0.5"},
            {"account": "bills", "percentage": "0.3"},
            {"account": "brokerage", "percentage": "0.2"},
        ])
        store.fail_nth_create(Collection.INCOME, 2)

        result = await ledger.split_income(Decimal("100"), "default")

        assert result.status == OperationStatus.PARTIAL
        assert result.success is True
        assert [e.succeeded for e in result.entries] == [True, False, True]
        assert result.entries[1].error.kind == ErrorKind.UPSTREAM_FAILURE
        assert result.total_allocated == Decimal("70.00")
        assert len(store.all_records(Collection.INCOME)) == 2

    async def test_split_is_audited(self, ledger, audit_storage, accounts):
        """Test that the split leaves an audit event."""
        await ledger.replace_rule("default", [{"account": "checkings", "percentage": "1"}])
        await ledger.split_income(Decimal("40"))
        types = [e.event_type.value for e in audit_storage.events]
        assert "income_split" in types
