"""
Fixtures for payments tests.
"""

from datetime import UTC, datetime
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from placement_api.modules.applications.models import (
    Application,
    ApplicationPaymentStatus,
    ApplicationStatus,
)
from placement_api.modules.opportunities.models import Opportunity
from placement_api.modules.payments.models import Payment, PaymentStatus
from placement_api.modules.payments.schemas import PaymentSubmitRequest


@pytest.fixture
def pending_application(applicant):
    """A PENDING application owned by ``applicant``, awaiting its fee."""
    application = MagicMock(spec=Application)
    application.id = uuid4()
    application.applicant_id = applicant.id
    application.opportunity_id = uuid4()
    application.full_name = "Jane Wanjiku"
    application.email = "jane@students.ac.ke"
    application.status = ApplicationStatus.PENDING
    application.payment_status = ApplicationPaymentStatus.PENDING
    application.rejection_reason = None
    application.mpesa_receipt_number = None
    return application


@pytest.fixture
def submitted_application(pending_application):
    """The same application after a payment was reported."""
    pending_application.status = ApplicationStatus.PAYMENT_SUBMITTED
    pending_application.payment_status = ApplicationPaymentStatus.PENDING
    return pending_application


@pytest.fixture
def pending_payment(applicant, pending_application):
    payment = MagicMock(spec=Payment)
    payment.id = uuid4()
    payment.application_id = pending_application.id
    payment.user_id = applicant.id
    payment.amount = 500
    payment.transaction_code = "QHG31YRWPF"
    payment.phone_number = "254712345678"
    payment.status = PaymentStatus.PENDING
    payment.warnings = []
    payment.verified_at = None
    payment.verified_by = None
    payment.verification_notes = None
    payment.rejection_reason = None
    payment.rejected_at = None
    payment.rejected_by = None
    payment.created_at = datetime.now(UTC)
    return payment


@pytest.fixture
def opportunity():
    opportunity = MagicMock(spec=Opportunity)
    opportunity.id = uuid4()
    opportunity.title = "Data Analyst Attachment"
    return opportunity


@pytest.fixture
def submit_request(pending_application):
    return PaymentSubmitRequest(
        application_id=pending_application.id,
        transaction_code="qhg31yrwpf",
        phone_number="0712345678",
        amount=500,
    )
