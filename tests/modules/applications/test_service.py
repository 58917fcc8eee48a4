"""
Unit tests for the applications service layer.

These tests cover:
- Creating applications (duplicates, closed opportunities)
- Editing while draft or pending, locking afterwards
- Submitting and finalizing
- Admin review decisions and dashboard counts
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from placement_api.modules.applications.helpers import EDITABLE_STATUSES
from placement_api.modules.applications.models import Application, ApplicationStatus
from placement_api.modules.applications.schemas import ApplicationUpdate
from placement_api.modules.applications.service import (
    ApplicationLockedError,
    ApplicationNotFoundError,
    ApplicationServiceError,
    CannotReviewApplicationError,
    DuplicateApplicationError,
    InvalidApplicationStateError,
    OpportunityClosedError,
    OpportunityNotFoundError,
    admin_get_dashboard_stats,
    admin_update_status,
    create_application,
    get_application,
    submit_application,
    update_application,
)
from placement_api.modules.notifications.models import NotificationEventType
from placement_api.modules.opportunities.models import OpportunityStatus

SERVICE = "placement_api.modules.applications.service"


def _with_status(status: ApplicationStatus) -> MagicMock:
    application = MagicMock(spec=Application)
    application.status = status
    return application


class TestCreateApplication:
    """Tests for create_application."""

    @pytest.mark.asyncio
    async def test_create_success(
        self, mock_db, applicant, sample_application, sample_application_create, sample_opportunity
    ):
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.opportunities_repository") as mock_opps,
        ):
            mock_repo.get_by_applicant_and_opportunity = AsyncMock(return_value=None)
            mock_repo.create = AsyncMock(return_value=sample_application)
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)
            mock_opps.get_for_application = AsyncMock(return_value=sample_opportunity)

            result = await create_application(mock_db, applicant, sample_application_create)

            assert result is sample_application
            mock_repo.create.assert_awaited_once_with(
                mock_db, sample_application_create, applicant.id
            )
            mock_db.commit.assert_awaited_once()
            mock_repo.get_by_id.assert_awaited_once_with(
                mock_db, sample_application.id, refresh=True
            )

    @pytest.mark.asyncio
    async def test_duplicate_precheck(
        self, mock_db, applicant, sample_application, sample_application_create
    ):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_applicant_and_opportunity = AsyncMock(return_value=sample_application)
            mock_repo.create = AsyncMock()

            with pytest.raises(DuplicateApplicationError) as exc_info:
                await create_application(mock_db, applicant, sample_application_create)

            assert exc_info.value.status_code == 409
            mock_repo.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_maps_integrity_error(
        self, mock_db, applicant, sample_application_create, sample_opportunity
    ):
        """Two simultaneous creates: the unique constraint decides."""
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.opportunities_repository") as mock_opps,
        ):
            mock_repo.get_by_applicant_and_opportunity = AsyncMock(return_value=None)
            mock_repo.create = AsyncMock(
                side_effect=IntegrityError(
                    "INSERT", {}, Exception("uq_applications_applicant_opportunity")
                )
            )
            mock_opps.get_for_application = AsyncMock(return_value=sample_opportunity)

            with pytest.raises(DuplicateApplicationError):
                await create_application(mock_db, applicant, sample_application_create)

            mock_db.rollback.assert_awaited_once()
            mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_closed_opportunity(
        self, mock_db, applicant, sample_application_create, sample_opportunity
    ):
        sample_opportunity.status = OpportunityStatus.CLOSED

        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.opportunities_repository") as mock_opps,
        ):
            mock_repo.get_by_applicant_and_opportunity = AsyncMock(return_value=None)
            mock_repo.create = AsyncMock()
            mock_opps.get_for_application = AsyncMock(return_value=sample_opportunity)

            with pytest.raises(OpportunityClosedError) as exc_info:
                await create_application(mock_db, applicant, sample_application_create)

            assert exc_info.value.details == {"opportunity_status": "closed"}
            mock_repo.create.assert_not_called()
            mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_deadline_passed_but_not_yet_swept(
        self, mock_db, applicant, sample_application_create, sample_opportunity
    ):
        """An OPEN posting past its deadline is closed for new applications."""
        sample_opportunity.application_deadline = datetime.now(UTC) - timedelta(minutes=1)

        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.opportunities_repository") as mock_opps,
        ):
            mock_repo.get_by_applicant_and_opportunity = AsyncMock(return_value=None)
            mock_opps.get_for_application = AsyncMock(return_value=sample_opportunity)

            with pytest.raises(OpportunityClosedError):
                await create_application(mock_db, applicant, sample_application_create)

    @pytest.mark.asyncio
    async def test_no_slots_left(
        self, mock_db, applicant, sample_application_create, sample_opportunity
    ):
        sample_opportunity.available_slots = 0

        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.opportunities_repository") as mock_opps,
        ):
            mock_repo.get_by_applicant_and_opportunity = AsyncMock(return_value=None)
            mock_opps.get_for_application = AsyncMock(return_value=sample_opportunity)

            with pytest.raises(OpportunityClosedError):
                await create_application(mock_db, applicant, sample_application_create)

    @pytest.mark.asyncio
    async def test_unknown_opportunity(self, mock_db, applicant, sample_application_create):
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.opportunities_repository") as mock_opps,
        ):
            mock_repo.get_by_applicant_and_opportunity = AsyncMock(return_value=None)
            mock_opps.get_for_application = AsyncMock(return_value=None)

            with pytest.raises(OpportunityNotFoundError):
                await create_application(mock_db, applicant, sample_application_create)


class TestUpdateApplication:
    """Tests for update_application."""

    @pytest.mark.asyncio
    async def test_update_draft(self, mock_db, applicant, sample_application):
        data = ApplicationUpdate(cover_letter="I am keen to learn.")

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)
            mock_repo.update_editable_fields = AsyncMock(return_value=True)

            result = await update_application(mock_db, applicant, sample_application.id, data)

            assert result is sample_application
            mock_repo.update_editable_fields.assert_awaited_once_with(
                mock_db,
                sample_application.id,
                EDITABLE_STATUSES,
                {"cover_letter": "I am keen to learn."},
            )
            mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_applicant_gets_not_found(
        self, mock_db, other_applicant, sample_application
    ):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)

            with pytest.raises(ApplicationNotFoundError):
                await update_application(
                    mock_db, other_applicant, sample_application.id, ApplicationUpdate()
                )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status",
        [
            ApplicationStatus.SUBMITTED,
            ApplicationStatus.PAYMENT_SUBMITTED,
            ApplicationStatus.PAYMENT_VERIFIED,
            ApplicationStatus.ACCEPTED,
        ],
    )
    async def test_locked_after_pending(self, mock_db, applicant, sample_application, status):
        sample_application.status = status

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)
            mock_repo.update_editable_fields = AsyncMock()

            with pytest.raises(ApplicationLockedError) as exc_info:
                await update_application(
                    mock_db, applicant, sample_application.id, ApplicationUpdate(course="Maths")
                )

            assert exc_info.value.details["current_status"] == status.value
            mock_repo.update_editable_fields.assert_not_called()

    @pytest.mark.asyncio
    async def test_locked_by_concurrent_payment(self, mock_db, applicant, sample_application):
        """Status moved on between the read and the guarded update."""
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(
                side_effect=[sample_application, _with_status(ApplicationStatus.PAYMENT_SUBMITTED)]
            )
            mock_repo.update_editable_fields = AsyncMock(return_value=False)

            with pytest.raises(ApplicationLockedError) as exc_info:
                await update_application(
                    mock_db, applicant, sample_application.id, ApplicationUpdate(course="Maths")
                )

            assert exc_info.value.details["current_status"] == "payment-submitted"
            mock_db.rollback.assert_awaited_once()
            mock_db.commit.assert_not_called()


class TestSubmitApplication:
    """Tests for submit_application."""

    @pytest.mark.asyncio
    async def test_draft_moves_to_pending(
        self, mock_db, applicant, sample_application, sample_opportunity
    ):
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.opportunities_repository") as mock_opps,
        ):
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)
            mock_repo.transition_status = AsyncMock(return_value=True)
            mock_opps.get_for_application = AsyncMock(return_value=sample_opportunity)

            await submit_application(mock_db, applicant, sample_application.id)

            args, kwargs = mock_repo.transition_status.call_args
            assert args[2:] == (ApplicationStatus.DRAFT, ApplicationStatus.PENDING)
            assert kwargs["note"] == "Application submitted, awaiting payment"
            assert kwargs["actor_id"] == applicant.id
            assert kwargs["submitted_at"] is not None
            mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_pending_moves_to_submitted(
        self, mock_db, applicant, sample_application, sample_opportunity
    ):
        submitted_at = datetime.now(UTC) - timedelta(days=1)
        sample_application.status = ApplicationStatus.PENDING
        sample_application.submitted_at = submitted_at

        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.opportunities_repository") as mock_opps,
        ):
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)
            mock_repo.transition_status = AsyncMock(return_value=True)
            mock_opps.get_for_application = AsyncMock(return_value=sample_opportunity)

            await submit_application(mock_db, applicant, sample_application.id)

            args, kwargs = mock_repo.transition_status.call_args
            assert args[2:] == (ApplicationStatus.PENDING, ApplicationStatus.SUBMITTED)
            assert kwargs["note"] == "Application finalized"
            # First submission time is kept
            assert kwargs["submitted_at"] == submitted_at

    @pytest.mark.asyncio
    async def test_already_submitted(self, mock_db, applicant, sample_application):
        sample_application.status = ApplicationStatus.PAYMENT_SUBMITTED

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)
            mock_repo.transition_status = AsyncMock()

            with pytest.raises(InvalidApplicationStateError) as exc_info:
                await submit_application(mock_db, applicant, sample_application.id)

            assert exc_info.value.details["current_status"] == "payment-submitted"
            mock_repo.transition_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_opportunity_closed_before_submit(
        self, mock_db, applicant, sample_application, sample_opportunity
    ):
        sample_opportunity.status = OpportunityStatus.CLOSED

        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.opportunities_repository") as mock_opps,
        ):
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)
            mock_repo.transition_status = AsyncMock()
            mock_opps.get_for_application = AsyncMock(return_value=sample_opportunity)

            with pytest.raises(OpportunityClosedError):
                await submit_application(mock_db, applicant, sample_application.id)

            mock_repo.transition_status.assert_not_called()
            mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lost_race(self, mock_db, applicant, sample_application, sample_opportunity):
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.opportunities_repository") as mock_opps,
        ):
            mock_repo.get_by_id = AsyncMock(
                side_effect=[sample_application, _with_status(ApplicationStatus.PENDING)]
            )
            mock_repo.transition_status = AsyncMock(return_value=False)
            mock_opps.get_for_application = AsyncMock(return_value=sample_opportunity)

            with pytest.raises(InvalidApplicationStateError) as exc_info:
                await submit_application(mock_db, applicant, sample_application.id)

            assert exc_info.value.details["current_status"] == "pending"
            mock_db.commit.assert_not_called()


class TestGetApplication:
    @pytest.mark.asyncio
    async def test_owner_can_read(self, mock_db, applicant, sample_application):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)

            result = await get_application(mock_db, applicant, sample_application.id)

            assert result is sample_application

    @pytest.mark.asyncio
    async def test_admin_can_read(self, mock_db, admin_user, sample_application):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)

            result = await get_application(mock_db, admin_user, sample_application.id)

            assert result is sample_application

    @pytest.mark.asyncio
    async def test_other_applicant_cannot_see_it_exists(
        self, mock_db, other_applicant, sample_application
    ):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)

            with pytest.raises(ApplicationNotFoundError) as exc_info:
                await get_application(mock_db, other_applicant, sample_application.id)

            assert exc_info.value.status_code == 404


class TestAdminUpdateStatus:
    """Tests for admin review decisions."""

    @pytest.mark.asyncio
    async def test_shortlist_verified_application(
        self, mock_db, admin_user, sample_application, sample_opportunity
    ):
        sample_application.status = ApplicationStatus.PAYMENT_VERIFIED

        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.opportunities_repository") as mock_opps,
            patch(f"{SERVICE}.notify_applicant") as mock_notify,
        ):
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)
            mock_repo.transition_status = AsyncMock(return_value=True)
            mock_opps.get_by_id = AsyncMock(return_value=sample_opportunity)
            mock_opps.decrement_available_slots = AsyncMock()

            await admin_update_status(
                mock_db,
                sample_application.id,
                admin_user.id,
                ApplicationStatus.SHORTLISTED,
                note="Strong portfolio",
            )

            args, kwargs = mock_repo.transition_status.call_args
            assert args[2:] == (ApplicationStatus.PAYMENT_VERIFIED, ApplicationStatus.SHORTLISTED)
            assert kwargs["reviewed_by"] == admin_user.id
            assert kwargs["note"] == "Strong portfolio"
            mock_opps.decrement_available_slots.assert_not_called()

            mock_notify.assert_called_once()
            assert mock_notify.call_args[0][2] == NotificationEventType.APPLICATION_STATUS_CHANGED
            assert mock_notify.call_args.kwargs["status"] == ApplicationStatus.SHORTLISTED
            assert mock_notify.call_args.kwargs["opportunity_title"] == sample_opportunity.title
            mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_accept_takes_a_slot(
        self, mock_db, admin_user, sample_application, sample_opportunity
    ):
        sample_application.status = ApplicationStatus.SHORTLISTED

        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.opportunities_repository") as mock_opps,
            patch(f"{SERVICE}.notify_applicant"),
        ):
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)
            mock_repo.transition_status = AsyncMock(return_value=True)
            mock_opps.get_by_id = AsyncMock(return_value=sample_opportunity)
            mock_opps.decrement_available_slots = AsyncMock(return_value=2)

            await admin_update_status(
                mock_db, sample_application.id, admin_user.id, ApplicationStatus.ACCEPTED
            )

            mock_opps.decrement_available_slots.assert_awaited_once_with(
                mock_db, sample_application.opportunity_id
            )
            mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_accept_when_no_slots_left_still_succeeds(
        self, mock_db, admin_user, sample_application, sample_opportunity
    ):
        sample_application.status = ApplicationStatus.UNDER_REVIEW

        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.opportunities_repository") as mock_opps,
            patch(f"{SERVICE}.notify_applicant"),
        ):
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)
            mock_repo.transition_status = AsyncMock(return_value=True)
            mock_opps.get_by_id = AsyncMock(return_value=sample_opportunity)
            mock_opps.decrement_available_slots = AsyncMock(return_value=None)

            await admin_update_status(
                mock_db, sample_application.id, admin_user.id, ApplicationStatus.ACCEPTED
            )

            mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reject_with_reason(
        self, mock_db, admin_user, sample_application, sample_opportunity
    ):
        sample_application.status = ApplicationStatus.UNDER_REVIEW

        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.opportunities_repository") as mock_opps,
            patch(f"{SERVICE}.notify_applicant") as mock_notify,
        ):
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)
            mock_repo.transition_status = AsyncMock(return_value=True)
            mock_opps.get_by_id = AsyncMock(return_value=sample_opportunity)

            await admin_update_status(
                mock_db,
                sample_application.id,
                admin_user.id,
                ApplicationStatus.REJECTED,
                reason="Positions filled",
            )

            kwargs = mock_repo.transition_status.call_args.kwargs
            assert kwargs["rejection_reason"] == "Positions filled"
            assert kwargs["note"] == "Rejected: Positions filled"
            assert mock_notify.call_args.kwargs["note"] == "Positions filled"

    @pytest.mark.asyncio
    async def test_reject_requires_reason(self, mock_db, admin_user, sample_application):
        sample_application.status = ApplicationStatus.PAYMENT_VERIFIED

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)
            mock_repo.transition_status = AsyncMock()

            with pytest.raises(ApplicationServiceError) as exc_info:
                await admin_update_status(
                    mock_db,
                    sample_application.id,
                    admin_user.id,
                    ApplicationStatus.REJECTED,
                    reason="   ",
                )

            assert exc_info.value.error_code == "REJECTION_REASON_REQUIRED"
            mock_repo.transition_status.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status",
        [
            ApplicationStatus.DRAFT,
            ApplicationStatus.PENDING,
            ApplicationStatus.PAYMENT_SUBMITTED,
            ApplicationStatus.ACCEPTED,
            ApplicationStatus.REJECTED,
        ],
    )
    async def test_cannot_review_before_payment_verified(
        self, mock_db, admin_user, sample_application, status
    ):
        sample_application.status = status

        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=sample_application)
            mock_repo.transition_status = AsyncMock()

            with pytest.raises(CannotReviewApplicationError) as exc_info:
                await admin_update_status(
                    mock_db, sample_application.id, admin_user.id, ApplicationStatus.ACCEPTED
                )

            assert exc_info.value.details["current_status"] == status.value
            mock_repo.transition_status.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_found(self, mock_db, admin_user):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=None)

            with pytest.raises(ApplicationNotFoundError):
                await admin_update_status(
                    mock_db, uuid4(), admin_user.id, ApplicationStatus.UNDER_REVIEW
                )

    @pytest.mark.asyncio
    async def test_concurrent_decision_loses(self, mock_db, admin_user, sample_application):
        sample_application.status = ApplicationStatus.PAYMENT_VERIFIED

        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.notify_applicant") as mock_notify,
        ):
            mock_repo.get_by_id = AsyncMock(
                side_effect=[sample_application, _with_status(ApplicationStatus.ACCEPTED)]
            )
            mock_repo.transition_status = AsyncMock(return_value=False)

            with pytest.raises(CannotReviewApplicationError) as exc_info:
                await admin_update_status(
                    mock_db, sample_application.id, admin_user.id, ApplicationStatus.REJECTED,
                    reason="Late",
                )

            assert exc_info.value.details["current_status"] == "accepted"
            mock_notify.assert_not_called()
            mock_db.commit.assert_not_called()


class TestDashboardStats:
    @pytest.mark.asyncio
    async def test_counts(self, mock_db):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.count_by_status = AsyncMock(
                return_value={
                    ApplicationStatus.DRAFT: 3,
                    ApplicationStatus.PAYMENT_SUBMITTED: 2,
                    ApplicationStatus.PAYMENT_VERIFIED: 1,
                    ApplicationStatus.SHORTLISTED: 1,
                }
            )

            stats = await admin_get_dashboard_stats(mock_db)

            assert stats.total == 7
            assert stats.awaiting_payment_verification == 2
            assert stats.awaiting_review == 2
            assert stats.by_status[ApplicationStatus.ACCEPTED] == 0
