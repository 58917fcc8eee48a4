"""
Applications Repository

Database operations for applications and their timeline.

Design Principles:
- Status changes are compare-and-set UPDATEs (WHERE status = expected), so
  two concurrent transitions of the same application cannot both succeed
- Every status change appends a timeline row in the same transaction
- Write helpers flush but never commit: the service commits once per
  transition, together with any payment change and outbox event
"""

from uuid import UUID

from sqlalchemy import asc, desc, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    Application,
    ApplicationPaymentStatus,
    ApplicationStatus,
    ApplicationTimelineEntry,
)
from .schemas import ApplicationCreate

# Valid status transitions - prevents invalid state changes
VALID_STATUS_TRANSITIONS: dict[ApplicationStatus, set[ApplicationStatus]] = {
    ApplicationStatus.DRAFT: {
        ApplicationStatus.PENDING,  # Applicant submitted the completed form
    },
    ApplicationStatus.PENDING: {
        ApplicationStatus.SUBMITTED,  # Applicant finalized without paying yet
        ApplicationStatus.PAYMENT_SUBMITTED,  # Fee payment reported
        ApplicationStatus.REJECTED,  # Reused an already verified transaction code
    },
    ApplicationStatus.SUBMITTED: {
        ApplicationStatus.PAYMENT_SUBMITTED,
        ApplicationStatus.REJECTED,  # Reused an already verified transaction code
    },
    ApplicationStatus.PAYMENT_SUBMITTED: {
        ApplicationStatus.PAYMENT_SUBMITTED,  # New attempt after a payment flagged duplicate
        ApplicationStatus.PAYMENT_VERIFIED,  # Admin verified the payment
        ApplicationStatus.REJECTED,  # Admin rejected the payment or receipt collision
    },
    ApplicationStatus.PAYMENT_VERIFIED: {
        ApplicationStatus.UNDER_REVIEW,
        ApplicationStatus.SHORTLISTED,
        ApplicationStatus.ACCEPTED,
        ApplicationStatus.REJECTED,
    },
    ApplicationStatus.UNDER_REVIEW: {
        ApplicationStatus.SHORTLISTED,
        ApplicationStatus.ACCEPTED,
        ApplicationStatus.REJECTED,
    },
    ApplicationStatus.SHORTLISTED: {
        ApplicationStatus.UNDER_REVIEW,
        ApplicationStatus.ACCEPTED,
        ApplicationStatus.REJECTED,
    },
    ApplicationStatus.ACCEPTED: set(),
    # Only reopened by a new payment after an admin rejected the previous one
    ApplicationStatus.REJECTED: {
        ApplicationStatus.PAYMENT_SUBMITTED,
    },
}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(
        self,
        current_status: ApplicationStatus,
        new_status: ApplicationStatus,
    ):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


def is_valid_transition(current: ApplicationStatus, new: ApplicationStatus) -> bool:
    return new in VALID_STATUS_TRANSITIONS.get(current, set())


# ============================================
# Reads
# ============================================


async def get_by_id(
    db: AsyncSession, id: UUID, *, refresh: bool = False
) -> Application | None:
    """
    Get application by ID (timeline is loaded with it).

    Pass ``refresh=True`` after a transition to reload the row and its
    timeline from the database instead of the identity map.
    """
    return await db.get(Application, id, populate_existing=refresh)


async def get_by_applicant_and_opportunity(
    db: AsyncSession, applicant_id: UUID, opportunity_id: UUID
) -> Application | None:
    result = await db.execute(
        select(Application).where(
            Application.applicant_id == applicant_id,
            Application.opportunity_id == opportunity_id,
        )
    )
    return result.scalar_one_or_none()


async def get_by_receipt_number(db: AsyncSession, receipt_number: str) -> Application | None:
    """Find the application that already holds an M-Pesa receipt number."""
    result = await db.execute(
        select(Application).where(Application.mpesa_receipt_number == receipt_number)
    )
    return result.scalar_one_or_none()


async def list_for_applicant(db: AsyncSession, applicant_id: UUID) -> list[Application]:
    """All applications of one applicant, newest first."""
    result = await db.execute(
        select(Application)
        .where(Application.applicant_id == applicant_id)
        .order_by(Application.created_at.desc())
    )
    return list(result.scalars().all())


# ============================================
# Writes
# ============================================


async def create(db: AsyncSession, data: ApplicationCreate, applicant_id: UUID) -> Application:
    """
    Insert a new DRAFT application with its first timeline entry.

    Flushes so that a duplicate (applicant, opportunity) pair raises
    IntegrityError here. Does not commit.
    """
    application = Application(
        applicant_id=applicant_id,
        status=ApplicationStatus.DRAFT,
        payment_status=ApplicationPaymentStatus.PENDING,
        **data.model_dump(exclude={"opportunity_id"}),
        opportunity_id=data.opportunity_id,
    )
    db.add(application)
    await db.flush()

    append_timeline(
        db,
        application.id,
        ApplicationStatus.DRAFT,
        actor_id=applicant_id,
        note="Application created",
    )
    await db.flush()

    return application


def append_timeline(
    db: AsyncSession,
    application_id: UUID,
    status: ApplicationStatus,
    *,
    actor_id: UUID | None,
    note: str | None = None,
) -> ApplicationTimelineEntry:
    """Append an entry to an application's timeline. Entries are never modified."""
    entry = ApplicationTimelineEntry(
        application_id=application_id,
        status=status,
        actor_id=actor_id,
        note=note,
    )
    db.add(entry)
    return entry


async def update_editable_fields(
    db: AsyncSession,
    id: UUID,
    editable_statuses: frozenset[ApplicationStatus],
    values: dict,
) -> bool:
    """
    Apply applicant edits only while the status is still editable.

    Returns:
        True if the row was updated, False if it was not in an editable status
    """
    if not values:
        result = await db.execute(
            select(Application.id).where(
                Application.id == id, Application.status.in_(editable_statuses)
            )
        )
        return result.scalar_one_or_none() is not None

    result = await db.execute(
        update(Application)
        .where(Application.id == id, Application.status.in_(editable_statuses))
        .values(**values)
    )
    return result.rowcount > 0


async def transition_status(
    db: AsyncSession,
    id: UUID,
    from_status: ApplicationStatus,
    to_status: ApplicationStatus,
    *,
    actor_id: UUID | None,
    note: str | None = None,
    **fields,
) -> bool:
    """
    Move an application from ``from_status`` to ``to_status``.

    Validates the edge against the state machine, then performs a
    compare-and-set UPDATE and appends a timeline entry. Does not commit.

    Args:
        db: Database session
        id: Application UUID
        from_status: Status the caller observed
        to_status: Status to move to
        actor_id: User performing the change (None for automatic changes)
        note: Timeline note
        **fields: Additional columns to set (e.g., rejection_reason)

    Returns:
        True if the transition was applied, False if the application was
        no longer in ``from_status``

    Raises:
        InvalidStatusTransitionError: If the edge is not in the state machine
    """
    if not is_valid_transition(from_status, to_status):
        raise InvalidStatusTransitionError(from_status, to_status)

    result = await db.execute(
        update(Application)
        .where(Application.id == id, Application.status == from_status)
        .values(status=to_status, **fields)
    )
    if result.rowcount == 0:
        return False

    append_timeline(db, id, to_status, actor_id=actor_id, note=note)
    await db.flush()
    return True


async def record_same_status_event(
    db: AsyncSession,
    id: UUID,
    status: ApplicationStatus,
    *,
    actor_id: UUID | None,
    note: str,
    **fields,
) -> bool:
    """
    Update fields and log a timeline entry without changing status.

    Used when a payment event affects an application that stays in its
    current status (e.g., a payment flagged as duplicate). Compare-and-set
    on ``status`` like ``transition_status``.
    """
    result = await db.execute(
        update(Application)
        .where(Application.id == id, Application.status == status)
        .values(**fields)
    )
    if result.rowcount == 0:
        return False

    append_timeline(db, id, status, actor_id=actor_id, note=note)
    await db.flush()
    return True


# ============================================
# Admin Repository Methods
# ============================================


async def get_applications_for_admin(
    db: AsyncSession,
    *,
    status: ApplicationStatus | None = None,
    payment_status: ApplicationPaymentStatus | None = None,
    opportunity_id: UUID | None = None,
    search: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "asc",
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[Application], int]:
    """
    Get applications with filters, sorting, and pagination for the admin queue.

    Args:
        db: Database session
        status: Filter by application status (optional)
        payment_status: Filter by payment status (optional)
        opportunity_id: Filter by opportunity (optional)
        search: Case-insensitive search over name, email, institution and receipt
        sort_by: created_at, submitted_at or last_name. Default: created_at
        sort_order: asc or desc. Default: asc (oldest first for fairness)
        skip: Number of records to skip
        limit: Maximum records to return

    Returns:
        Tuple of (applications, total count matching filters)
    """
    query = select(Application)

    if status:
        query = query.where(Application.status == status)

    if payment_status:
        query = query.where(Application.payment_status == payment_status)

    if opportunity_id:
        query = query.where(Application.opportunity_id == opportunity_id)

    if search:
        search_pattern = f"%{search}%"
        query = query.where(
            or_(
                Application.first_name.ilike(search_pattern),
                Application.last_name.ilike(search_pattern),
                Application.email.ilike(search_pattern),
                Application.institution.ilike(search_pattern),
                Application.mpesa_receipt_number.ilike(search_pattern),
            )
        )

    count_query = select(func.count()).select_from(query.subquery())
    total_result = await db.execute(count_query)
    total = total_result.scalar() or 0

    valid_sort_columns = {"created_at", "submitted_at", "last_name"}
    if sort_by not in valid_sort_columns:
        sort_by = "created_at"

    sort_column = getattr(Application, sort_by)
    if sort_order.lower() == "desc":
        query = query.order_by(desc(sort_column))
    else:
        query = query.order_by(asc(sort_column))

    result = await db.execute(query.offset(skip).limit(limit))
    return list(result.scalars().all()), total


async def count_by_status(db: AsyncSession) -> dict[ApplicationStatus, int]:
    """Number of applications in each status (statuses with none are omitted)."""
    result = await db.execute(
        select(Application.status, func.count(Application.id)).group_by(Application.status)
    )
    return {status: count for status, count in result.all()}

