"""
Payments Service Layer

Business logic for manually reported M-Pesa application-fee payments.

This module implements:
1. Applicant flow:
   - Submit a payment (validate code/phone/amount, reject reused codes,
     record a PENDING payment, move the application to payment-submitted)
   - Query payment status for an application

2. Admin verification flow:
   - Verify: payment -> verified, application -> payment-verified
   - Reject: payment -> rejected, application -> rejected (reason required)
   - Flag duplicate: payment -> duplicate, application payment status -> failed
   - Review queue and dashboard totals

Consistency:
- The payment change, the application change, its timeline entry and the
  outbox event are committed in a single transaction
- Every status change is compare-and-set; losing a race produces a state
  error with the current status
- The unique index on payments.transaction_code is the final word on
  duplicates; IntegrityError from it maps to DuplicateTransactionCodeError
- Re-running verify on an already verified payment is a safe no-op
- ORM instances are expired by a rollback, so anything needed afterwards
  is captured into locals first
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from placement_api.core.auth import CurrentUser
from placement_api.core.config import settings
from placement_api.modules.applications import repository as applications_repository
from placement_api.modules.applications.helpers import can_accept_payment
from placement_api.modules.applications.models import (
    Application,
    ApplicationPaymentStatus,
    ApplicationStatus,
)
from placement_api.modules.notifications.models import NotificationEventType
from placement_api.modules.notifications.service import notify_applicant
from placement_api.modules.opportunities import repository as opportunities_repository
from placement_api.modules.payments import repository
from placement_api.modules.payments.duplicates import check_duplicate_code, check_recent_activity
from placement_api.modules.payments.models import Payment, PaymentStatus
from placement_api.modules.payments.schemas import (
    PaymentResponse,
    PaymentStats,
    PaymentStatusResponse,
    PaymentStatusTotals,
    PaymentSubmitRequest,
)
from placement_api.modules.payments.validation import (
    AMOUNT_MISMATCH,
    INVALID_CODE_FORMAT,
    INVALID_PHONE_FORMAT,
    PaymentValidation,
    validate_payment,
)

logger = logging.getLogger(__name__)

DUPLICATE_FLAG_REASON = "Duplicate payment - same transaction code used previously"
REUSED_CODE_REASON = "Transaction code has already been verified for another application"
RECEIPT_COLLISION_REASON = "M-Pesa receipt number is already recorded on another application"


# ============================================
# Errors
# ============================================


class PaymentServiceError(Exception):
    """Base exception for payment service errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 400,
        details: dict | None = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class PaymentValidationError(PaymentServiceError):
    """
    Raised when the submitted code, phone or amount is invalid.

    ``error_code`` is the first failing rule; ``details`` lists every
    failure so the form can show them all at once.
    """

    def __init__(self, validation: PaymentValidation):
        details = {
            "errors": validation.errors,
            "error_codes": validation.error_codes,
        }
        if AMOUNT_MISMATCH in validation.error_codes and validation.discrepancy is not None:
            details["discrepancy"] = validation.discrepancy
        super().__init__(
            message=validation.errors[0],
            error_code=validation.error_codes[0],
            status_code=400,
            details=details,
        )


class InvalidCodeFormatError(PaymentValidationError):
    pass


class InvalidPhoneFormatError(PaymentValidationError):
    pass


class AmountMismatchError(PaymentValidationError):
    pass


_VALIDATION_ERRORS = {
    INVALID_CODE_FORMAT: InvalidCodeFormatError,
    INVALID_PHONE_FORMAT: InvalidPhoneFormatError,
    AMOUNT_MISMATCH: AmountMismatchError,
}


class PaymentNotFoundError(PaymentServiceError):
    def __init__(self, payment_id: UUID):
        super().__init__(
            message=f"Payment {payment_id} not found",
            error_code="PAYMENT_NOT_FOUND",
            status_code=404,
        )


class ApplicationNotFoundError(PaymentServiceError):
    """Raised when the application is missing or belongs to someone else."""

    def __init__(self, application_id: UUID):
        super().__init__(
            message=f"Application {application_id} not found",
            error_code="APPLICATION_NOT_FOUND",
            status_code=404,
        )


class PaymentNotAllowedError(PaymentServiceError):
    """Raised when the application is not waiting for a payment."""

    def __init__(self, current_status: ApplicationStatus, payment_status: ApplicationPaymentStatus):
        super().__init__(
            message=(
                f"Application is not awaiting payment (status: {current_status.value}, "
                f"payment: {payment_status.value})"
            ),
            error_code="PAYMENT_NOT_ALLOWED",
            status_code=409,
            details={
                "current_status": current_status.value,
                "payment_status": payment_status.value,
            },
        )


class DuplicateTransactionCodeError(PaymentServiceError):
    """Raised when a transaction code has been used by any payment before."""

    def __init__(self, transaction_code: str):
        super().__init__(
            message=f"Transaction code {transaction_code} has already been used",
            error_code="DUPLICATE_TRANSACTION_CODE",
            status_code=409,
        )


class DuplicatePaymentCodeError(PaymentServiceError):
    """Raised when a receipt number already belongs to another application."""

    def __init__(self, transaction_code: str):
        super().__init__(
            message=f"Receipt {transaction_code} is already recorded on another application",
            error_code="DUPLICATE_PAYMENT_CODE",
            status_code=409,
            details={"current_status": ApplicationStatus.REJECTED.value},
        )


class PaymentAlreadyProcessedError(PaymentServiceError):
    """Raised when acting on a payment that already left pending."""

    def __init__(self, current_status: PaymentStatus):
        super().__init__(
            message=f"Payment already {current_status.value}",
            error_code="PAYMENT_ALREADY_PROCESSED",
            status_code=409,
            details={"current_status": current_status.value},
        )


class InvalidApplicationStateError(PaymentServiceError):
    """Raised when the application changed underneath a payment operation."""

    def __init__(self, message: str, current_status: ApplicationStatus):
        super().__init__(
            message=message,
            error_code="INVALID_APPLICATION_STATE",
            status_code=409,
            details={"current_status": current_status.value},
        )


@dataclass
class PaymentResult:
    """Payment and application after an operation, plus non-blocking warnings."""

    payment: Payment
    application: Application
    message: str = ""
    warnings: list[str] = field(default_factory=list)


# ============================================
# Helpers
# ============================================


def _is_constraint(error: IntegrityError, name: str) -> bool:
    return name in str(error.orig)


async def _opportunity_title(db: AsyncSession, opportunity_id: UUID) -> str:
    opportunity = await opportunities_repository.get_by_id(db, opportunity_id)
    return opportunity.title if opportunity else "your application"


async def _reload(db: AsyncSession, payment_id: UUID, application_id: UUID) -> PaymentResult:
    payment = await repository.get_by_id(db, payment_id, refresh=True)
    application = await applications_repository.get_by_id(db, application_id, refresh=True)
    return PaymentResult(payment=payment, application=application)


async def _reject_for_reused_code(
    db: AsyncSession,
    application: Application,
    transaction_code: str,
) -> None:
    """
    Reject an application that reported a code already verified elsewhere.

    Recorded in the timeline without a human actor. Losing a race with
    another change only logs; the caller still reports the duplicate.
    """
    application_id = application.id
    current = application.status
    note = f"Automatically rejected: transaction code {transaction_code} already verified"
    fields = {
        "rejection_reason": REUSED_CODE_REASON,
        "payment_status": ApplicationPaymentStatus.FAILED,
    }

    if applications_repository.is_valid_transition(current, ApplicationStatus.REJECTED):
        applied = await applications_repository.transition_status(
            db, application_id, current, ApplicationStatus.REJECTED, actor_id=None, note=note, **fields
        )
    else:
        # Already rejected after an admin review; record the attempt without reopening
        applied = await applications_repository.record_same_status_event(
            db, application_id, current, actor_id=None, note=note, **fields
        )

    if not applied:
        await db.rollback()
        logger.warning(
            f"Application {application_id} changed before it could be rejected for reusing "
            f"{transaction_code}"
        )
        return

    notify_applicant(
        db,
        application,
        NotificationEventType.APPLICATION_STATUS_CHANGED,
        title="Application rejected",
        message="Your application was rejected because the transaction code was already used",
        opportunity_title=await _opportunity_title(db, application.opportunity_id),
        status=ApplicationStatus.REJECTED,
        note=REUSED_CODE_REASON,
    )
    await db.commit()
    logger.warning(
        f"Application {application_id} rejected: code {transaction_code} already verified elsewhere"
    )


async def _record_receipt_collision(
    db: AsyncSession,
    payment_id: UUID,
    application_id: UUID,
    admin_id: UUID,
    transaction_code: str,
) -> None:
    """Mark the payment duplicate and reject its application in a fresh transaction."""
    now = datetime.now(UTC)
    application = await applications_repository.get_by_id(db, application_id, refresh=True)

    payment_applied = await repository.transition_payment(
        db,
        payment_id,
        PaymentStatus.PENDING,
        PaymentStatus.DUPLICATE,
        rejection_reason=RECEIPT_COLLISION_REASON,
        rejected_at=now,
        rejected_by=admin_id,
    )
    application_applied = await applications_repository.transition_status(
        db,
        application_id,
        ApplicationStatus.PAYMENT_SUBMITTED,
        ApplicationStatus.REJECTED,
        actor_id=admin_id,
        note=f"Rejected: receipt {transaction_code} already recorded on another application",
        rejection_reason=RECEIPT_COLLISION_REASON,
        payment_status=ApplicationPaymentStatus.FAILED,
    )

    if not (payment_applied and application_applied):
        await db.rollback()
        logger.warning(
            f"Payment {payment_id} or application {application_id} changed while "
            f"recording receipt collision for {transaction_code}"
        )
        return

    notify_applicant(
        db,
        application,
        NotificationEventType.PAYMENT_DUPLICATE,
        title="Payment rejected",
        message="Your payment was rejected because the receipt is already in use",
        opportunity_title=await _opportunity_title(db, application.opportunity_id),
        transaction_code=transaction_code,
        reason=RECEIPT_COLLISION_REASON,
    )
    await db.commit()
    logger.warning(
        f"Receipt collision on {transaction_code}: payment {payment_id} marked duplicate, "
        f"application {application_id} rejected"
    )


# ============================================
# Applicant Operations
# ============================================


async def submit_payment(
    db: AsyncSession,
    user: CurrentUser,
    data: PaymentSubmitRequest,
    *,
    expected_amount: int | None = None,
    tolerance: int | None = None,
) -> PaymentResult:
    """
    Record a manually reported M-Pesa payment for an application.

    Flow:
    1. Validate code, phone and amount (all failures reported together)
    2. Check ownership and that the application is awaiting payment
    3. Reject reused codes; a code already verified for another
       application also rejects this application
    4. Note recent similar payments from the same phone (warning only)
    5. Insert the PENDING payment and move the application to
       payment-submitted, committing both with the outbox event

    Args:
        db: Database session
        user: Authenticated applicant
        data: Submitted payment details
        expected_amount: Fee to check against (defaults to settings.application_fee)
        tolerance: Accepted deviation (defaults to settings.amount_tolerance)

    Returns:
        PaymentResult with the new payment and any warnings

    Raises:
        PaymentValidationError: Invalid code, phone or amount (no payment recorded)
        ApplicationNotFoundError: Application missing or not owned by the caller
        PaymentNotAllowedError: Application is not awaiting payment
        DuplicateTransactionCodeError: Code used by any payment before
        InvalidApplicationStateError: Application changed concurrently
    """
    expected_amount = settings.application_fee if expected_amount is None else expected_amount
    tolerance = settings.amount_tolerance if tolerance is None else tolerance

    validation = validate_payment(
        data.transaction_code, data.phone_number, data.amount, expected_amount, tolerance
    )
    if not validation.valid:
        logger.warning(
            f"Rejected payment submission by {user.id} for application "
            f"{data.application_id}: {validation.error_codes}"
        )
        error_class = _VALIDATION_ERRORS.get(validation.error_codes[0], PaymentValidationError)
        raise error_class(validation)

    code = validation.transaction_code
    application_id = data.application_id

    application = await applications_repository.get_by_id(db, application_id)
    if not application or application.applicant_id != user.id:
        if application:
            logger.warning(f"User {user.id} attempted to pay for application {application_id}")
        raise ApplicationNotFoundError(application_id)

    if not can_accept_payment(application):
        raise PaymentNotAllowedError(application.status, application.payment_status)

    duplicate = await check_duplicate_code(db, code)
    if duplicate.is_duplicate:
        existing = duplicate.existing
        if existing.status == PaymentStatus.VERIFIED and existing.application_id != application_id:
            await _reject_for_reused_code(db, application, code)
        raise DuplicateTransactionCodeError(code)

    warnings = list(validation.warnings)
    recent_warning = await check_recent_activity(
        db,
        validation.phone_number,
        validation.amount,
        settings.recent_activity_window_minutes,
    )
    if recent_warning:
        warnings.append(recent_warning)

    current = application.status
    now = datetime.now(UTC)

    try:
        payment = await repository.create_payment(
            db,
            application_id=application_id,
            user_id=user.id,
            amount=validation.amount,
            transaction_code=code,
            phone_number=validation.phone_number,
            warnings=warnings,
        )
        payment_id = payment.id

        applied = await applications_repository.transition_status(
            db,
            application_id,
            current,
            ApplicationStatus.PAYMENT_SUBMITTED,
            actor_id=user.id,
            note=f"Payment submitted: {code}",
            payment_status=ApplicationPaymentStatus.PENDING,
            payment_amount=validation.amount,
            payment_phone_number=validation.phone_number,
            payment_date=now,
            rejection_reason=None,
        )
        if not applied:
            await db.rollback()
            latest = await applications_repository.get_by_id(db, application_id, refresh=True)
            raise InvalidApplicationStateError(
                "Application changed while the payment was being recorded",
                current_status=latest.status,
            )

        notify_applicant(
            db,
            application,
            NotificationEventType.PAYMENT_SUBMITTED,
            title="Payment received",
            message=f"We received your payment {code}. It will be verified shortly.",
            opportunity_title=await _opportunity_title(db, application.opportunity_id),
            transaction_code=code,
            amount=validation.amount,
        )
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        if _is_constraint(e, "uq_payments_transaction_code"):
            logger.warning(f"Concurrent submission of transaction code {code} lost the race")
            raise DuplicateTransactionCodeError(code) from e
        raise

    logger.info(
        f"Payment {payment_id} ({code}, KES {validation.amount}) submitted for "
        f"application {application_id} by {user.id}"
    )
    result = await _reload(db, payment_id, application_id)
    result.warnings = warnings
    result.message = "Payment submitted. An administrator will verify it shortly."
    return result


async def get_payment_status(
    db: AsyncSession,
    user: CurrentUser,
    application_id: UUID,
) -> PaymentStatusResponse:
    """
    Status snapshot of an application's payment (owner or admin).

    Raises:
        ApplicationNotFoundError: Missing, or not visible to the caller
    """
    application = await applications_repository.get_by_id(db, application_id)
    if not application or (application.applicant_id != user.id and not user.is_admin):
        raise ApplicationNotFoundError(application_id)

    payments = await repository.list_for_application(db, application_id)
    payment_responses = [PaymentResponse.model_validate(p) for p in payments]

    return PaymentStatusResponse(
        application_id=application.id,
        application_status=application.status,
        payment_status=application.payment_status,
        rejection_reason=application.rejection_reason,
        mpesa_receipt_number=application.mpesa_receipt_number,
        latest_payment=payment_responses[0] if payment_responses else None,
        payments=payment_responses,
        can_submit_payment=can_accept_payment(application),
    )


# ============================================
# Admin Operations
# ============================================


async def verify_payment(
    db: AsyncSession,
    payment_id: UUID,
    admin_id: UUID,
    notes: str | None = None,
) -> PaymentResult:
    """
    Verify a pending payment.

    The application moves payment-submitted -> payment-verified and takes
    the transaction code as its M-Pesa receipt number. If that receipt is
    already held by another application, the payment is marked duplicate
    and the application rejected instead.

    Verifying an already verified payment changes nothing, except that an
    application still waiting in payment-submitted is brought up to date.

    Args:
        db: Database session
        payment_id: UUID of the payment
        admin_id: UUID of the verifying admin
        notes: Optional verification notes

    Returns:
        PaymentResult after verification

    Raises:
        PaymentNotFoundError: If the payment doesn't exist
        PaymentAlreadyProcessedError: If the payment was rejected or flagged
        DuplicatePaymentCodeError: If the receipt number belongs to another application
        InvalidApplicationStateError: If the application is not payment-submitted
    """
    logger.info(f"Admin {admin_id} verifying payment {payment_id}")

    payment = await repository.get_by_id(db, payment_id)
    if not payment:
        raise PaymentNotFoundError(payment_id)

    application_id = payment.application_id
    code = payment.transaction_code
    application = await applications_repository.get_by_id(db, application_id)

    if payment.status == PaymentStatus.VERIFIED:
        return await _repair_verified(db, payment, application, admin_id)

    if payment.status != PaymentStatus.PENDING:
        logger.warning(f"Cannot verify payment {payment_id}: status={payment.status.value}")
        raise PaymentAlreadyProcessedError(payment.status)

    if application.status != ApplicationStatus.PAYMENT_SUBMITTED:
        raise InvalidApplicationStateError(
            "Application is not awaiting payment verification",
            current_status=application.status,
        )

    holder = await applications_repository.get_by_receipt_number(db, code)
    if holder and holder.id != application_id:
        await _record_receipt_collision(db, payment_id, application_id, admin_id, code)
        raise DuplicatePaymentCodeError(code)

    now = datetime.now(UTC)
    try:
        applied = await repository.transition_payment(
            db,
            payment_id,
            PaymentStatus.PENDING,
            PaymentStatus.VERIFIED,
            verified_at=now,
            verified_by=admin_id,
            verification_notes=notes,
        )
        if not applied:
            await db.rollback()
            latest = await repository.get_by_id(db, payment_id, refresh=True)
            raise PaymentAlreadyProcessedError(latest.status)

        await _mark_application_verified(db, application, code, admin_id, now)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        if _is_constraint(e, "uq_applications_mpesa_receipt_number"):
            await _record_receipt_collision(db, payment_id, application_id, admin_id, code)
            raise DuplicatePaymentCodeError(code) from e
        raise

    logger.info(f"Payment {payment_id} ({code}) verified by admin {admin_id}")
    result = await _reload(db, payment_id, application_id)
    result.message = "Payment verified"
    return result


async def _mark_application_verified(
    db: AsyncSession,
    application: Application,
    code: str,
    admin_id: UUID,
    now: datetime,
) -> None:
    application_id = application.id
    applied = await applications_repository.transition_status(
        db,
        application_id,
        ApplicationStatus.PAYMENT_SUBMITTED,
        ApplicationStatus.PAYMENT_VERIFIED,
        actor_id=admin_id,
        note="Payment verified by admin",
        payment_status=ApplicationPaymentStatus.VERIFIED,
        mpesa_receipt_number=code,
        payment_verified_at=now,
        payment_verified_by=admin_id,
    )
    if not applied:
        await db.rollback()
        latest = await applications_repository.get_by_id(db, application_id, refresh=True)
        raise InvalidApplicationStateError(
            "Application changed during payment verification",
            current_status=latest.status,
        )

    notify_applicant(
        db,
        application,
        NotificationEventType.PAYMENT_VERIFIED,
        title="Payment verified",
        message=f"Your payment {code} has been verified.",
        opportunity_title=await _opportunity_title(db, application.opportunity_id),
        transaction_code=code,
    )


async def _repair_verified(
    db: AsyncSession,
    payment: Payment,
    application: Application,
    admin_id: UUID,
) -> PaymentResult:
    """Second verify on a verified payment: finish the application side if it lags."""
    payment_id = payment.id
    application_id = application.id

    if (
        application.status == ApplicationStatus.PAYMENT_SUBMITTED
        and application.payment_status == ApplicationPaymentStatus.PENDING
    ):
        logger.warning(
            f"Payment {payment_id} is verified but application {application_id} is not; repairing"
        )
        await _mark_application_verified(
            db, application, payment.transaction_code, admin_id, payment.verified_at
        )
        await db.commit()
    else:
        logger.info(f"Payment {payment_id} already verified; nothing to do")

    result = await _reload(db, payment_id, application_id)
    result.message = "Payment already verified"
    return result


async def reject_payment(
    db: AsyncSession,
    payment_id: UUID,
    admin_id: UUID,
    reason: str,
) -> PaymentResult:
    """
    Reject a pending payment.

    The application moves payment-submitted -> rejected with the reason.
    The applicant may then submit a new payment, which is recorded as a
    new payment row.

    Raises:
        PaymentServiceError: If no reason is given
        PaymentNotFoundError: If the payment doesn't exist
        PaymentAlreadyProcessedError: If the payment already left pending
        InvalidApplicationStateError: If the application is not payment-submitted
    """
    reason = (reason or "").strip()
    if not reason:
        raise PaymentServiceError(
            message="A rejection reason is required",
            error_code="REJECTION_REASON_REQUIRED",
            status_code=400,
        )

    payment = await repository.get_by_id(db, payment_id)
    if not payment:
        raise PaymentNotFoundError(payment_id)

    if payment.status != PaymentStatus.PENDING:
        logger.warning(f"Cannot reject payment {payment_id}: status={payment.status.value}")
        raise PaymentAlreadyProcessedError(payment.status)

    application_id = payment.application_id
    code = payment.transaction_code
    application = await applications_repository.get_by_id(db, application_id)
    now = datetime.now(UTC)

    applied = await repository.transition_payment(
        db,
        payment_id,
        PaymentStatus.PENDING,
        PaymentStatus.REJECTED,
        rejection_reason=reason,
        rejected_at=now,
        rejected_by=admin_id,
    )
    if not applied:
        await db.rollback()
        latest = await repository.get_by_id(db, payment_id, refresh=True)
        raise PaymentAlreadyProcessedError(latest.status)

    application_applied = await applications_repository.transition_status(
        db,
        application_id,
        ApplicationStatus.PAYMENT_SUBMITTED,
        ApplicationStatus.REJECTED,
        actor_id=admin_id,
        note=f"Payment rejected: {reason}",
        rejection_reason=reason,
        payment_status=ApplicationPaymentStatus.REJECTED,
    )
    if not application_applied:
        await db.rollback()
        latest_application = await applications_repository.get_by_id(
            db, application_id, refresh=True
        )
        raise InvalidApplicationStateError(
            "Application is not awaiting payment verification",
            current_status=latest_application.status,
        )

    notify_applicant(
        db,
        application,
        NotificationEventType.PAYMENT_REJECTED,
        title="Payment rejected",
        message=f"Your payment {code} was rejected: {reason}",
        opportunity_title=await _opportunity_title(db, application.opportunity_id),
        transaction_code=code,
        reason=reason,
    )
    await db.commit()

    logger.info(f"Payment {payment_id} ({code}) rejected by admin {admin_id}: {reason}")
    result = await _reload(db, payment_id, application_id)
    result.message = "Payment rejected"
    return result


async def flag_duplicate(
    db: AsyncSession,
    payment_id: UUID,
    admin_id: UUID,
    notes: str | None = None,
) -> PaymentResult:
    """
    Flag a pending payment as a duplicate.

    The application stays payment-submitted with payment status failed, so
    the applicant can submit a different transaction code.

    Raises:
        PaymentNotFoundError: If the payment doesn't exist
        PaymentAlreadyProcessedError: If the payment already left pending
        InvalidApplicationStateError: If the application is not payment-submitted
    """
    payment = await repository.get_by_id(db, payment_id)
    if not payment:
        raise PaymentNotFoundError(payment_id)

    if payment.status != PaymentStatus.PENDING:
        logger.warning(f"Cannot flag payment {payment_id}: status={payment.status.value}")
        raise PaymentAlreadyProcessedError(payment.status)

    application_id = payment.application_id
    code = payment.transaction_code
    application = await applications_repository.get_by_id(db, application_id)
    now = datetime.now(UTC)

    applied = await repository.transition_payment(
        db,
        payment_id,
        PaymentStatus.PENDING,
        PaymentStatus.DUPLICATE,
        rejection_reason=DUPLICATE_FLAG_REASON,
        rejected_at=now,
        rejected_by=admin_id,
        verification_notes=notes,
    )
    if not applied:
        await db.rollback()
        latest = await repository.get_by_id(db, payment_id, refresh=True)
        raise PaymentAlreadyProcessedError(latest.status)

    application_applied = await applications_repository.record_same_status_event(
        db,
        application_id,
        ApplicationStatus.PAYMENT_SUBMITTED,
        actor_id=admin_id,
        note=f"Payment {code} flagged as duplicate",
        payment_status=ApplicationPaymentStatus.FAILED,
    )
    if not application_applied:
        await db.rollback()
        latest_application = await applications_repository.get_by_id(
            db, application_id, refresh=True
        )
        raise InvalidApplicationStateError(
            "Application is not awaiting payment verification",
            current_status=latest_application.status,
        )

    notify_applicant(
        db,
        application,
        NotificationEventType.PAYMENT_DUPLICATE,
        title="Payment flagged as duplicate",
        message=f"Your payment {code} was flagged as a duplicate. Please submit a new code.",
        opportunity_title=await _opportunity_title(db, application.opportunity_id),
        transaction_code=code,
        reason=DUPLICATE_FLAG_REASON,
    )
    await db.commit()

    logger.info(f"Payment {payment_id} ({code}) flagged as duplicate by admin {admin_id}")
    result = await _reload(db, payment_id, application_id)
    result.message = "Payment flagged as duplicate"
    return result


async def admin_list_payments(
    db: AsyncSession,
    *,
    status: PaymentStatus | None = None,
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[Payment], int]:
    return await repository.list_by_status(db, status=status, skip=skip, limit=limit)


async def admin_get_payment_stats(db: AsyncSession) -> PaymentStats:
    """Counts and amount totals per payment status."""
    stats = await repository.get_payment_stats(db)

    def totals(status: PaymentStatus) -> PaymentStatusTotals:
        count, amount = stats.get(status, (0, 0))
        return PaymentStatusTotals(count=count, amount=amount)

    return PaymentStats(
        total_count=sum(count for count, _ in stats.values()),
        total_amount=sum(amount for _, amount in stats.values()),
        pending=totals(PaymentStatus.PENDING),
        verified=totals(PaymentStatus.VERIFIED),
        rejected=totals(PaymentStatus.REJECTED),
        duplicate=totals(PaymentStatus.DUPLICATE),
    )
