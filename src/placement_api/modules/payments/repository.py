"""
Payments Repository

Database operations for the payment ledger.

Design Principles:
- Payments are inserted in PENDING and moved to a final status exactly once
- The final-status update is compare-and-set on PENDING, so two admins
  acting on the same payment cannot both succeed
- Rows are never deleted
- Nothing here commits; the payments service commits once per operation
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Payment, PaymentStatus

# A payment leaves PENDING once and never moves again. Resubmitting after a
# rejection inserts a new row instead of reopening the old one.
VALID_PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {
        PaymentStatus.VERIFIED,
        PaymentStatus.REJECTED,
        PaymentStatus.DUPLICATE,
    },
    PaymentStatus.VERIFIED: set(),
    PaymentStatus.REJECTED: set(),
    PaymentStatus.DUPLICATE: set(),
}


class InvalidPaymentTransitionError(ValueError):
    """Raised when a payment status change is not allowed."""

    def __init__(self, current_status: PaymentStatus, new_status: PaymentStatus):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(
            f"Invalid payment transition: {current_status.value} -> {new_status.value}"
        )


def is_valid_payment_transition(current: PaymentStatus, new: PaymentStatus) -> bool:
    return new in VALID_PAYMENT_TRANSITIONS.get(current, set())


# ============================================
# Reads
# ============================================


async def get_by_id(db: AsyncSession, id: UUID, *, refresh: bool = False) -> Payment | None:
    return await db.get(Payment, id, populate_existing=refresh)


async def get_by_transaction_code(db: AsyncSession, transaction_code: str) -> Payment | None:
    """Find a payment in any status by its (uppercase) transaction code."""
    result = await db.execute(select(Payment).where(Payment.transaction_code == transaction_code))
    return result.scalar_one_or_none()


async def list_for_application(db: AsyncSession, application_id: UUID) -> list[Payment]:
    """All payment attempts for an application, newest first."""
    result = await db.execute(
        select(Payment)
        .where(Payment.application_id == application_id)
        .order_by(Payment.created_at.desc())
    )
    return list(result.scalars().all())


async def get_latest_for_application(db: AsyncSession, application_id: UUID) -> Payment | None:
    result = await db.execute(
        select(Payment)
        .where(Payment.application_id == application_id)
        .order_by(Payment.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_recent_by_phone_and_amount(
    db: AsyncSession,
    phone_number: str,
    amount: int,
    since: datetime,
) -> Payment | None:
    """Most recent payment from the same phone for the same amount since ``since``."""
    result = await db.execute(
        select(Payment)
        .where(
            Payment.phone_number == phone_number,
            Payment.amount == amount,
            Payment.created_at >= since,
        )
        .order_by(Payment.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_by_status(
    db: AsyncSession,
    *,
    status: PaymentStatus | None = None,
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[Payment], int]:
    """
    Get payments for the admin review queue.

    Args:
        db: Database session
        status: Filter by status (optional; all statuses when omitted)
        skip: Number of records to skip
        limit: Maximum records to return

    Returns:
        Tuple of (payments newest first, total count matching the filter)
    """
    query = select(Payment)
    if status:
        query = query.where(Payment.status == status)

    total_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = total_result.scalar() or 0

    result = await db.execute(
        query.order_by(Payment.created_at.desc()).offset(skip).limit(limit)
    )
    return list(result.scalars().all()), total


async def get_payment_stats(db: AsyncSession) -> dict[PaymentStatus, tuple[int, int]]:
    """
    Count and amount sum per status.

    Returns:
        Mapping of status to (count, total amount); statuses with no
        payments are omitted
    """
    result = await db.execute(
        select(
            Payment.status,
            func.count(Payment.id),
            func.coalesce(func.sum(Payment.amount), 0),
        ).group_by(Payment.status)
    )
    return {status: (count, int(total)) for status, count, total in result.all()}


# ============================================
# Writes
# ============================================


async def create_payment(
    db: AsyncSession,
    *,
    application_id: UUID,
    user_id: UUID,
    amount: int,
    transaction_code: str,
    phone_number: str,
    warnings: list[str] | None = None,
) -> Payment:
    """
    Insert a PENDING payment.

    Flushes so that a reused transaction code raises IntegrityError
    (``uq_payments_transaction_code``) here. Does not commit.
    """
    payment = Payment(
        application_id=application_id,
        user_id=user_id,
        amount=amount,
        transaction_code=transaction_code,
        phone_number=phone_number,
        status=PaymentStatus.PENDING,
        warnings=warnings or None,
    )
    db.add(payment)
    await db.flush()
    return payment


async def transition_payment(
    db: AsyncSession,
    id: UUID,
    from_status: PaymentStatus,
    to_status: PaymentStatus,
    **fields,
) -> bool:
    """
    Move a payment to a final status.

    Args:
        db: Database session
        id: Payment UUID
        from_status: Status the caller observed
        to_status: Final status
        **fields: Verification or rejection metadata

    Returns:
        True if applied, False if the payment was no longer in ``from_status``

    Raises:
        InvalidPaymentTransitionError: If the change is not allowed
    """
    if not is_valid_payment_transition(from_status, to_status):
        raise InvalidPaymentTransitionError(from_status, to_status)

    result = await db.execute(
        update(Payment)
        .where(Payment.id == id, Payment.status == from_status)
        .values(status=to_status, **fields)
    )
    return result.rowcount > 0
