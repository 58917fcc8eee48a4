"""
Payments Router

API endpoints for applicants paying the application fee via M-Pesa.

Endpoints:
- POST /payments - Report a completed M-Pesa payment
- POST /payments/parse-message - Extract payment details from a pasted SMS
- GET /payments/applications/{application_id}/status - Payment status snapshot

Security:
- All endpoints require a valid access token
- Payment submission is rate limited per user via Redis
- Applications of other users are reported as not found
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from placement_api.core.auth import CurrentUser, get_current_user
from placement_api.core.database import get_db
from placement_api.core.rate_limit import enforce_rate_limit
from placement_api.modules.payments import service
from placement_api.modules.payments.schemas import (
    ParseMessageRequest,
    ParseMessageResponse,
    PaymentResponse,
    PaymentStatusResponse,
    PaymentSubmitRequest,
    PaymentSubmitResponse,
)
from placement_api.modules.payments.service import PaymentServiceError
from placement_api.modules.payments.validation import parse_mpesa_message

logger = logging.getLogger(__name__)

router = APIRouter()

RATE_LIMIT_SUBMIT = (5, 60)  # 5 submissions per minute per user


def _handle_service_error(e: PaymentServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
            **e.details,
        },
    )


@router.post(
    "",
    response_model=PaymentSubmitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Payment",
    description="""
Report a completed M-Pesa payment of the application fee.

**Validation:**
- `transaction_code`: exactly 10 letters/digits (case-insensitive)
- `phone_number`: 2547XXXXXXXX, 07XXXXXXXX or 7XXXXXXXX
- `amount`: the application fee (KES 500) within KES 10

Every validation failure is listed in `detail.errors`.

**Duplicate Prevention:**
A transaction code can only ever be used once. Reporting a code that was
already verified for another application rejects this application.

**Rate Limit:** 5 submissions per minute per user
""",
    responses={
        400: {
            "description": "Invalid code, phone or amount",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "AMOUNT_MISMATCH",
                            "message": "Amount mismatch. Expected: KES 500, Received: KES 450",
                            "errors": ["Amount mismatch. Expected: KES 500, Received: KES 450"],
                            "error_codes": ["AMOUNT_MISMATCH"],
                            "discrepancy": 50,
                        }
                    }
                }
            },
        },
        404: {"description": "Application not found"},
        409: {"description": "Duplicate transaction code or application not awaiting payment"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def submit_payment(
    data: PaymentSubmitRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> PaymentSubmitResponse:
    await enforce_rate_limit(f"payments:submit:{user.id}", *RATE_LIMIT_SUBMIT)

    try:
        result = await service.submit_payment(db, user, data)
    except PaymentServiceError as e:
        _handle_service_error(e)

    return PaymentSubmitResponse(
        payment=PaymentResponse.model_validate(result.payment),
        application_status=result.application.status,
        warnings=result.warnings,
        message=result.message,
    )


@router.post(
    "/parse-message",
    response_model=ParseMessageResponse,
    summary="Parse M-Pesa Message",
    description="""
Extract the transaction code, amount, phone number, sender name and time
from a pasted M-Pesa confirmation SMS, to pre-fill the payment form.
Fields that cannot be found are returned as null.
""",
)
async def parse_message(
    request: ParseMessageRequest,
    user: CurrentUser = Depends(get_current_user),
) -> ParseMessageResponse:
    parsed = parse_mpesa_message(request.message)
    if parsed is None:
        return ParseMessageResponse(parsed=False)

    logger.debug(f"Parsed M-Pesa message for user {user.id}: code={parsed.transaction_code}")
    return ParseMessageResponse(
        parsed=parsed.transaction_code is not None or parsed.amount is not None,
        transaction_code=parsed.transaction_code,
        amount=parsed.amount,
        phone_number=parsed.phone_number,
        sender_name=parsed.sender_name,
        timestamp=parsed.timestamp,
    )


@router.get(
    "/applications/{application_id}/status",
    response_model=PaymentStatusResponse,
    summary="Get Payment Status",
    description="Current application and payment status, with every payment attempt.",
    responses={404: {"description": "Application not found"}},
)
async def get_payment_status(
    application_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> PaymentStatusResponse:
    try:
        return await service.get_payment_status(db, user, application_id)
    except PaymentServiceError as e:
        _handle_service_error(e)
