"""
Tests for recent-duplicate detection.
"""

from datetime import date
from decimal import Decimal

from jarvis_ledger.config.settings import LedgerSettings
from jarvis_ledger.models.ledger import TransactionType
from jarvis_ledger.models.results import ErrorKind, OperationStatus
from jarvis_ledger.orchestrator import LedgerService


TODAY = date(2026, 3, 2)


async def add_lunch(ledger, amount="12.34", account="checkings", day=TODAY):
    result = await ledger.add_transaction(
        amount=Decimal(amount),
        transaction_type=TransactionType.EXPENSE,
        account=account,
        category="out",
        date=day,
    )
    assert result.success, result.message
    return result.transaction_id


class TestFindRecentDuplicate:
    """Tests for DuplicateDetector.find_recent_duplicate."""

    async def test_match_inside_window(self, ledger, clock, accounts):
        """Test a resubmission two minutes later."""
        original = await add_lunch(ledger)
        clock.advance(minutes=2)

        check = await ledger.find_recent_duplicate(
            TransactionType.EXPENSE, Decimal("12.34"), [accounts["checkings"]], TODAY,
            window_minutes=5,
        )

        assert check.found
        assert check.checked is True
        assert check.duplicate.record_id == original
        assert check.duplicate.amount == Decimal("12.34")

    async def test_no_match_outside_window(self, ledger, clock, accounts):
        """Test a resubmission six minutes later."""
        await add_lunch(ledger)
        clock.advance(minutes=6)

        check = await ledger.find_recent_duplicate(
            TransactionType.EXPENSE, Decimal("12.34"), [accounts["checkings"]], TODAY,
            window_minutes=5,
        )

        assert not check.found
        assert check.status == OperationStatus.SUCCEEDED

    async def test_window_defaults_to_settings(self, ledger, clock, accounts):
        """Test the configured five minute window."""
        await add_lunch(ledger)
        clock.advance(minutes=4)
        check = await ledger.find_recent_duplicate(
            TransactionType.EXPENSE, Decimal("12.34"), [accounts["checkings"]], TODAY,
        )
        assert check.found

    async def test_every_field_must_match(self, ledger, clock, accounts):
        """Test amount, account and date mismatches."""
        await add_lunch(ledger)
        clock.advance(minutes=1)

        for amount, account, day in (
            (Decimal("12.35"), "checkings", TODAY),
            (Decimal("12.34"), "bills", TODAY),
            (Decimal("12.34"), "checkings", date(2026, 3, 1)),
        ):
            check = await ledger.find_recent_duplicate(
                TransactionType.EXPENSE, amount, [accounts[account]], day,
            )
            assert not check.found, (amount, account, day)

    async def test_most_recent_match_is_reported(self, ledger, clock, accounts):
        """Test that the newest of several matches wins."""
        await add_lunch(ledger)
        clock.advance(minutes=1)
        newest = await add_lunch(ledger)
        clock.advance(minutes=1)

        check = await ledger.find_recent_duplicate(
            TransactionType.EXPENSE, Decimal("12.34"), [accounts["checkings"]], TODAY,
        )
        assert check.duplicate.record_id == newest

    async def test_income_is_checked_in_income(self, ledger, clock, accounts):
        """Test that an expense never matches an income check."""
        await add_lunch(ledger)
        check = await ledger.find_recent_duplicate(
            TransactionType.INCOME, Decimal("12.34"), [accounts["checkings"]], TODAY,
        )
        assert not check.found

    async def test_payment_matches_both_accounts(self, ledger, clock, accounts):
        """Test payments are matched on source and destination."""
        payment = await ledger.settle_payment(Decimal("80"), "checkings", "sapphire", TODAY)
        clock.advance(minutes=1)

        same = await ledger.find_recent_duplicate(
            TransactionType.PAYMENT, Decimal("80"),
            [accounts["checkings"], accounts["sapphire"]], TODAY,
        )
        other_source = await ledger.find_recent_duplicate(
            TransactionType.PAYMENT, Decimal("80"),
            [accounts["bills"], accounts["sapphire"]], TODAY,
        )

        assert same.duplicate.record_id == payment.payment_id
        assert not other_source.found

    async def test_float_amount_matches_stored_cents(self, ledger, clock, accounts):
        """Test that a float amount is compared as the cents it spells."""
        original = await add_lunch(ledger)
        clock.advance(minutes=2)

        check = await ledger.find_recent_duplicate(
            TransactionType.EXPENSE, 12.34, [accounts["checkings"]], TODAY, window_minutes=5,
        )

        assert check.found
        assert check.duplicate.record_id == original

    async def test_unknown_kind_is_invalid_input(self, ledger, accounts):
        """Test that an unknown transaction type is reported, not raised."""
        check = await ledger.find_recent_duplicate(
            "transfer", Decimal("12.34"), [accounts["checkings"]], TODAY,
        )

        assert check.status == OperationStatus.FAILED
        assert check.error.kind == ErrorKind.INVALID_INPUT
        assert "transfer" in check.error.message
        assert check.checked is False

    async def test_unparseable_amount_is_invalid_input(self, ledger, accounts):
        """Test that an amount that isn't a number is reported, not raised."""
        check = await ledger.find_recent_duplicate(
            TransactionType.EXPENSE, "twelve", [accounts["checkings"]], TODAY,
        )
        assert check.error.kind == ErrorKind.INVALID_INPUT

    async def test_payment_needs_two_accounts(self, ledger, accounts):
        """Test that a payment check with one account is invalid input."""
        check = await ledger.find_recent_duplicate(
            TransactionType.PAYMENT, Decimal("80"), [accounts["checkings"]], TODAY,
        )
        assert check.status == OperationStatus.FAILED
        assert check.error.kind == ErrorKind.INVALID_INPUT
        assert check.checked is False


class TestDetectorDegraded:
    """Tests for query failures."""

    async def test_fails_open_by_default(self, ledger, store, audit_storage, accounts):
        """Test that a query error is treated as no duplicate."""
        store.failing_queries.add("expenses")

        check = await ledger.find_recent_duplicate(
            TransactionType.EXPENSE, Decimal("12.34"), [accounts["checkings"]], TODAY,
        )

        assert check.success is True
        assert not check.found
        assert check.checked is False
        types = [e.event_type.value for e in audit_storage.events]
        assert "duplicate_check_degraded" in types

    async def test_fails_closed_when_configured(self, store, clock, accounts):
        """Test the strict setting."""
        strict = LedgerService(
            store,
            settings=LedgerSettings(_env_file=None, duplicate_fail_open=False),
            clock=clock,
        )
        store.failing_queries.add("expenses")

        check = await strict.find_recent_duplicate(
            TransactionType.EXPENSE, Decimal("12.34"), [accounts["checkings"]], TODAY,
        )

        assert check.status == OperationStatus.FAILED
        assert check.error.kind == ErrorKind.UPSTREAM_FAILURE


class TestCheckByNames:
    """Tests for the name-based entry point used by the command flow."""

    async def test_resolves_names(self, ledger, clock, accounts):
        """Test a check by account name."""
        original = await add_lunch(ledger)
        check = await ledger.duplicates.check_by_names(
            TransactionType.EXPENSE, Decimal("12.34"), ["Checkings"], TODAY,
        )
        assert check.duplicate.record_id == original

    async def test_unknown_kind_by_names(self, ledger, accounts):
        """Test that the name-based check also reports an unknown type."""
        check = await ledger.duplicates.check_by_names(
            "transfer", Decimal("12.34"), ["checkings"], TODAY,
        )
        assert check.error.kind == ErrorKind.INVALID_INPUT

    async def test_unknown_name_is_no_duplicate(self, ledger, accounts):
        """Test that an unresolvable account can't have duplicates."""
        check = await ledger.duplicates.check_by_names(
            TransactionType.EXPENSE, Decimal("12.34"), ["venmo"], TODAY,
        )
        assert not check.found
        assert check.success is True
