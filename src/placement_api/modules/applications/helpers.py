"""
Applications Shared Helpers

Pure rules shared by the applications service, the payments service and
the request schemas.
"""

from pathlib import PurePosixPath
from urllib.parse import urlparse

from placement_api.modules.applications.models import (
    Application,
    ApplicationPaymentStatus,
    ApplicationStatus,
)

# Statuses in which the owner may still edit the application
EDITABLE_STATUSES = frozenset({ApplicationStatus.DRAFT, ApplicationStatus.PENDING})

# Statuses in which a first payment may be submitted
AWAITING_PAYMENT_STATUSES = frozenset({ApplicationStatus.PENDING, ApplicationStatus.SUBMITTED})

# Statuses from which an admin may make a review decision
REVIEWABLE_STATUSES = frozenset(
    {
        ApplicationStatus.PAYMENT_VERIFIED,
        ApplicationStatus.UNDER_REVIEW,
        ApplicationStatus.SHORTLISTED,
    }
)

REVIEW_DECISIONS = frozenset(
    {
        ApplicationStatus.UNDER_REVIEW,
        ApplicationStatus.SHORTLISTED,
        ApplicationStatus.ACCEPTED,
        ApplicationStatus.REJECTED,
    }
)

ALLOWED_DOCUMENT_TYPES = {
    "application/pdf": ".pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
}


def is_editable(application: Application) -> bool:
    return application.status in EDITABLE_STATUSES


def can_accept_payment(application: Application) -> bool:
    """
    Whether the applicant may submit a payment now.

    - First attempt: the application is pending or submitted
    - After an admin rejected the payment: the application is rejected
      with payment status REJECTED
    - After a payment was flagged as duplicate: the application is still
      payment-submitted with payment status FAILED

    An application auto-rejected for reusing a verified code (status
    REJECTED, payment FAILED) cannot pay again.
    """
    if application.status in AWAITING_PAYMENT_STATUSES:
        return True
    if application.status == ApplicationStatus.REJECTED:
        return application.payment_status == ApplicationPaymentStatus.REJECTED
    if application.status == ApplicationStatus.PAYMENT_SUBMITTED:
        return application.payment_status == ApplicationPaymentStatus.FAILED
    return False


def validate_document(
    url: str,
    content_type: str,
    size_bytes: int,
    max_size_bytes: int,
) -> str | None:
    """
    Check an uploaded document reference.

    Only PDF and DOCX files up to ``max_size_bytes`` are accepted; the
    MIME type and the file extension in the URL must agree.

    Returns:
        An error message, or None when the document is acceptable
    """
    expected_extension = ALLOWED_DOCUMENT_TYPES.get(content_type.lower().strip())
    if expected_extension is None:
        return "Only PDF and DOCX files are allowed"

    path = urlparse(url).path
    extension = PurePosixPath(path).suffix.lower()
    if extension != expected_extension:
        return f"File extension '{extension or 'none'}' does not match content type {content_type}"

    if size_bytes <= 0:
        return "Document is empty"
    if size_bytes > max_size_bytes:
        limit_mb = max_size_bytes / (1024 * 1024)
        return f"Document exceeds the {limit_mb:g}MB size limit"

    return None
