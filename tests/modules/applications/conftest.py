"""
Fixtures for applications tests.
"""

from datetime import UTC, date, datetime, timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from placement_api.modules.applications.models import (
    Application,
    ApplicationPaymentStatus,
    ApplicationStatus,
    ApplicationType,
    IdType,
)
from placement_api.modules.applications.schemas import ApplicationCreate, DocumentReference
from placement_api.modules.opportunities.models import (
    Opportunity,
    OpportunityStatus,
    OpportunityType,
)


def _document(name: str) -> DocumentReference:
    return DocumentReference(
        url=f"https://files.example.com/uploads/{name}.pdf",
        public_id=f"uploads/{name}",
        content_type="application/pdf",
        size_bytes=120_000,
    )


@pytest.fixture
def sample_opportunity():
    """An open opportunity with slots left and a deadline next week."""
    opportunity = MagicMock(spec=Opportunity)
    opportunity.id = uuid4()
    opportunity.title = "Software Engineering Intern"
    opportunity.company_name = "Safari Tech"
    opportunity.opportunity_type = OpportunityType.INTERNSHIP
    opportunity.status = OpportunityStatus.OPEN
    opportunity.available_slots = 3
    opportunity.application_deadline = datetime.now(UTC) + timedelta(days=7)
    return opportunity


@pytest.fixture
def sample_application_create(sample_opportunity):
    return ApplicationCreate(
        opportunity_id=sample_opportunity.id,
        first_name="Jane",
        last_name="Wanjiku",
        email="jane@students.ac.ke",
        phone="0712345678",
        date_of_birth=date(2002, 4, 17),
        nationality="Kenyan",
        id_type=IdType.NATIONAL_ID,
        id_number="32145678",
        institution="University of Nairobi",
        course="Computer Science",
        year_of_study=3,
        student_id="SCS/1234/2021",
        application_type=ApplicationType.INTERNSHIP,
        resume=_document("resume"),
        recommendation_letter=_document("recommendation"),
    )


@pytest.fixture
def sample_application(applicant, sample_opportunity):
    """A DRAFT application owned by ``applicant``."""
    application = MagicMock(spec=Application)
    application.id = uuid4()
    application.applicant_id = applicant.id
    application.opportunity_id = sample_opportunity.id
    application.first_name = "Jane"
    application.last_name = "Wanjiku"
    application.full_name = "Jane Wanjiku"
    application.email = "jane@students.ac.ke"
    application.status = ApplicationStatus.DRAFT
    application.payment_status = ApplicationPaymentStatus.PENDING
    application.submitted_at = None
    application.reviewed_at = None
    application.reviewed_by = None
    application.rejection_reason = None
    application.mpesa_receipt_number = None
    return application
