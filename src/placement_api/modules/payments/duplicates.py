"""
Duplicate Detection

Two checks run before a payment is recorded:

1. Exact duplicate: the transaction code exists on any payment, in any
   status. This is a fast pre-check with a friendly message; the unique
   index on ``payments.transaction_code`` is what actually stops two
   concurrent submissions of the same code.
2. Recent activity: same phone number and amount within the configured
   window. Only a warning for the reviewing admin, never a rejection.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from placement_api.modules.payments import repository
from placement_api.modules.payments.models import Payment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DuplicateCheck:
    """Result of the exact-duplicate check."""

    is_duplicate: bool
    existing: Payment | None = None


async def check_duplicate_code(db: AsyncSession, transaction_code: str) -> DuplicateCheck:
    """Look up a canonical (uppercase) transaction code across all payments."""
    existing = await repository.get_by_transaction_code(db, transaction_code)
    if existing is None:
        return DuplicateCheck(is_duplicate=False)

    logger.warning(
        f"Transaction code {transaction_code} already used by payment {existing.id} "
        f"(status={existing.status.value}, application={existing.application_id})"
    )
    return DuplicateCheck(is_duplicate=True, existing=existing)


async def check_recent_activity(
    db: AsyncSession,
    phone_number: str,
    amount: int,
    window_minutes: int,
    now: datetime | None = None,
) -> str | None:
    """
    Warn about a similar payment from the same phone within the window.

    Returns:
        Warning message, or None when nothing similar was recorded
    """
    now = now or datetime.now(UTC)
    recent = await repository.find_recent_by_phone_and_amount(
        db, phone_number, amount, since=now - timedelta(minutes=window_minutes)
    )
    if recent is None:
        return None

    minutes_ago = max(0, int((now - recent.created_at).total_seconds() // 60))
    unit = "minute" if minutes_ago == 1 else "minutes"
    logger.info(
        f"Recent payment {recent.id} from {phone_number} for KES {amount} "
        f"({minutes_ago} {unit} ago)"
    )
    return f"Similar payment from this number was recorded {minutes_ago} {unit} ago"
