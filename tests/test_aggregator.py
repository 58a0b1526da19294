"""
Tests for the multi-account fan-out: merge order, global truncation and
per-account failure isolation.
"""

import asyncio

import pytest

from gmail_multi_inbox.aggregator import MAX_LIMIT, MIN_LIMIT, clamp_limit, run_fan_out
from gmail_multi_inbox.models import ParsedEmail

from conftest import make_account


def email(message_id: str, internal_date: int, account_id: str) -> ParsedEmail:
    return ParsedEmail(id=message_id, internal_date=internal_date, account_id=account_id)


def operation_from(results):
    """Build a per-account operation from {account_id: list | Exception}."""
    async def operation(account):
        outcome = results[account.id]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome
    return operation


class TestClampLimit:

    @pytest.mark.parametrize("value,expected", [
        (1000, MAX_LIMIT),
        (100, 100),
        (25, 25),
        (0, MIN_LIMIT),
        (-5, MIN_LIMIT),
        (float("nan"), MIN_LIMIT),
        (None, MIN_LIMIT),
        (7.9, 7),
        (10 ** 400, MAX_LIMIT),
        (-(10 ** 400), MIN_LIMIT),
        (float("inf"), MAX_LIMIT),
    ])
    def test_clamps_into_range(self, value, expected):
        assert clamp_limit(value) == expected


class TestRunFanOut:

    async def test_merges_newest_first_and_reports_failures(self):
        accounts = [make_account("A"), make_account("B"), make_account("C")]
        operation = operation_from({
            "A": [email("a1", 100, "A")],
            "B": [email("b1", 200, "B"), email("b2", 50, "B")],
            "C": RuntimeError("boom"),
        })

        result = await run_fan_out(accounts, operation, 10)

        assert [e.internal_date for e in result.emails] == [200, 100, 50]
        assert [e.account_id for e in result.emails] == ["B", "A", "B"]
        assert result.errors == ["C: boom"]
        assert result.total_found == 3
        assert result.limit == 10

    async def test_truncates_globally_after_merge(self):
        accounts = [make_account("A"), make_account("B")]
        operation = operation_from({
            "A": [email("a1", 90, "A"), email("a2", 10, "A")],
            "B": [email("b1", 80, "B"), email("b2", 20, "B")],
        })

        result = await run_fan_out(accounts, operation, 2)

        assert [e.internal_date for e in result.emails] == [90, 80]
        assert result.total_found == 4
        assert result.errors == []

    async def test_limit_is_clamped(self):
        accounts = [make_account("A")]
        many = [email(f"m{i}", i, "A") for i in range(150)]

        result = await run_fan_out(accounts, operation_from({"A": many}), 1000)

        assert len(result.emails) == MAX_LIMIT
        assert result.total_found == 150
        assert result.emails[0].internal_date == 149

    async def test_zero_limit_returns_one(self):
        accounts = [make_account("A")]
        operation = operation_from({"A": [email("a1", 2, "A"), email("a2", 1, "A")]})

        result = await run_fan_out(accounts, operation, 0)

        assert len(result.emails) == 1
        assert result.limit == 1

    async def test_missing_dates_sink_to_the_end(self):
        accounts = [make_account("A")]
        operation = operation_from({"A": [email("old", 0, "A"), email("new", 5, "A")]})

        result = await run_fan_out(accounts, operation, 10)

        assert [e.id for e in result.emails] == ["new", "old"]

    async def test_equal_dates_keep_account_order(self):
        accounts = [make_account("A"), make_account("B")]
        operation = operation_from({"A": [email("a", 10, "A")], "B": [email("b", 10, "B")]})

        result = await run_fan_out(accounts, operation, 10)

        assert [e.id for e in result.emails] == ["a", "b"]

    async def test_all_accounts_failing_returns_only_errors(self):
        accounts = [make_account("A"), make_account("B")]
        operation = operation_from({"A": ValueError("x"), "B": ValueError("y")})

        result = await run_fan_out(accounts, operation, 5)

        assert result.emails == []
        assert result.total_found == 0
        assert result.errors == ["A: x", "B: y"]

    async def test_accounts_run_concurrently(self):
        accounts = [make_account("A"), make_account("B")]
        started = []
        release = asyncio.Event()

        async def operation(account):
            started.append(account.id)
            if len(started) == len(accounts):
                release.set()
            await asyncio.wait_for(release.wait(), timeout=1)
            return [email(account.id, 1, account.id)]

        result = await run_fan_out(accounts, operation, 10)

        assert sorted(started) == ["A", "B"]
        assert result.errors == []
        assert result.total_found == 2
