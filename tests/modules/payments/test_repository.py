"""
Unit tests for the payments repository.
"""

from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from placement_api.modules.payments.models import Payment, PaymentStatus
from placement_api.modules.payments.repository import (
    VALID_PAYMENT_TRANSITIONS,
    InvalidPaymentTransitionError,
    create_payment,
    is_valid_payment_transition,
    transition_payment,
)


class TestPaymentTransitions:
    """A payment leaves PENDING exactly once."""

    def test_every_status_has_an_entry(self):
        for status in PaymentStatus:
            assert status in VALID_PAYMENT_TRANSITIONS

    def test_pending_moves_to_any_final_status(self):
        for final in (PaymentStatus.VERIFIED, PaymentStatus.REJECTED, PaymentStatus.DUPLICATE):
            assert is_valid_payment_transition(PaymentStatus.PENDING, final)

    @pytest.mark.parametrize(
        "status", [PaymentStatus.VERIFIED, PaymentStatus.REJECTED, PaymentStatus.DUPLICATE]
    )
    def test_final_statuses_are_terminal(self, status):
        assert VALID_PAYMENT_TRANSITIONS[status] == set()
        for target in PaymentStatus:
            assert not is_valid_payment_transition(status, target)


class TestTransitionPayment:
    @pytest.mark.asyncio
    async def test_invalid_edge_raises(self, mock_db):
        with pytest.raises(InvalidPaymentTransitionError) as exc_info:
            await transition_payment(
                mock_db, uuid4(), PaymentStatus.REJECTED, PaymentStatus.VERIFIED
            )

        assert "rejected -> verified" in str(exc_info.value)
        mock_db.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_applied(self, mock_db):
        mock_db.execute.return_value = MagicMock(rowcount=1)

        applied = await transition_payment(
            mock_db, uuid4(), PaymentStatus.PENDING, PaymentStatus.VERIFIED
        )

        assert applied is True
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_already_processed_by_someone_else(self, mock_db):
        mock_db.execute.return_value = MagicMock(rowcount=0)

        applied = await transition_payment(
            mock_db, uuid4(), PaymentStatus.PENDING, PaymentStatus.REJECTED
        )

        assert applied is False


class TestCreatePayment:
    @pytest.mark.asyncio
    async def test_inserts_pending_and_flushes(self, mock_db):
        application_id = uuid4()

        payment = await create_payment(
            mock_db,
            application_id=application_id,
            user_id=uuid4(),
            amount=500,
            transaction_code="QHG31YRWPF",
            phone_number="254712345678",
            warnings=["Similar payment from this number was recorded 2 minutes ago"],
        )

        assert isinstance(payment, Payment)
        assert payment.status == PaymentStatus.PENDING
        assert payment.application_id == application_id
        assert payment.warnings == ["Similar payment from this number was recorded 2 minutes ago"]
        mock_db.add.assert_called_once_with(payment)
        mock_db.flush.assert_awaited_once()
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_warnings_stored_as_null(self, mock_db):
        payment = await create_payment(
            mock_db,
            application_id=uuid4(),
            user_id=uuid4(),
            amount=500,
            transaction_code="QHG31YRWPF",
            phone_number="254712345678",
            warnings=[],
        )

        assert payment.warnings is None
