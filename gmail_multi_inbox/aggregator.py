"""
Fan-out executor for multi-account reads.

Runs one operation per account concurrently, merges the successful results
newest first and truncates globally. A failing account contributes a
diagnostic string instead of aborting the whole read.
"""

import asyncio
import math
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from .models import AccountConfig, AggregateResult, ParsedEmail
from .utils.logging import get_logger

logger = get_logger("aggregator")

MIN_LIMIT = 1
MAX_LIMIT = 100

AccountOperation = Callable[[AccountConfig], Awaitable[Sequence[ParsedEmail]]]


def clamp_limit(value: float) -> int:
    """Clamp a requested result count to [1, 100]."""
    # ints compare exactly; huge ones overflow float()
    if isinstance(value, int) and not isinstance(value, bool):
        return max(MIN_LIMIT, min(value, MAX_LIMIT))
    try:
        numeric = float(value)
    except (TypeError, ValueError, OverflowError):
        return MIN_LIMIT
    if math.isnan(numeric):
        return MIN_LIMIT
    return int(max(MIN_LIMIT, min(numeric, MAX_LIMIT)))


def email_sort_key(email: ParsedEmail) -> float:
    """Sort key for merged results; missing or non-finite dates sink to the end."""
    value = email.internal_date
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return value
    return 0


async def _run_for_account(
    account: AccountConfig,
    operation: AccountOperation
) -> Tuple[List[ParsedEmail], Optional[str]]:
    try:
        emails = await operation(account)
        return list(emails), None
    except Exception as e:
        logger.warning(
            "Account operation failed during aggregation",
            extra={
                "data": {
                    "account_id": account.id,
                    "exception_type": type(e).__name__,
                    "exception_message": str(e),
                }
            }
        )
        return [], f"{account.id}: {e}"


async def run_fan_out(
    accounts: Sequence[AccountConfig],
    operation: AccountOperation,
    limit: float
) -> AggregateResult:
    """
    Run ``operation`` for every account and merge the results.

    Args:
        accounts: Accounts to query; all are started before any is awaited
        operation: Per-account coroutine returning that account's messages
        limit: Requested result count, clamped to [1, 100]

    Returns:
        AggregateResult with the truncated messages, the pre-truncation
        total and one "<account id>: <message>" entry per failed account
    """
    bounded_limit = clamp_limit(limit)

    outcomes = await asyncio.gather(
        *(_run_for_account(account, operation) for account in accounts)
    )

    merged: List[ParsedEmail] = []
    errors: List[str] = []
    for emails, error in outcomes:
        merged.extend(emails)
        if error:
            errors.append(error)

    merged.sort(key=email_sort_key, reverse=True)

    return AggregateResult(
        emails=merged[:bounded_limit],
        total_found=len(merged),
        errors=errors,
        limit=bounded_limit,
    )
