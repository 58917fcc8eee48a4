"""
Unit tests for M-Pesa payment validation rules.
"""

import pytest

from placement_api.modules.payments.validation import (
    AMOUNT_MISMATCH,
    INVALID_CODE_FORMAT,
    INVALID_PHONE_FORMAT,
    validate_amount,
    validate_payment,
    validate_phone_number,
    validate_transaction_code,
)


class TestValidateTransactionCode:
    """Tests for transaction code format."""

    def test_valid_code(self):
        result = validate_transaction_code("QHG31YRWPF")
        assert result.valid is True
        assert result.normalized_value == "QHG31YRWPF"

    def test_trims_and_uppercases(self):
        result = validate_transaction_code("  qhg31yrwpf ")
        assert result.valid is True
        assert result.normalized_value == "QHG31YRWPF"

    def test_normalizing_twice_changes_nothing(self):
        once = validate_transaction_code(" qhg31yrwpf").normalized_value
        assert validate_transaction_code(once).normalized_value == once

    @pytest.mark.parametrize(
        "code",
        [
            "abc123456",  # 9 characters
            "QHG31YRWPFX",  # 11 characters
            "QHG-1YRWPF",
            "QHG31 RWPF",
            "ABCDEFGH\ufb00",  # 9 characters, uppercases to ABCDEFGHFF
            "QHG31YRWP\u0131",  # dotless i uppercases to I
        ],
    )
    def test_invalid_format(self, code):
        result = validate_transaction_code(code)
        assert result.valid is False
        assert result.error_code == INVALID_CODE_FORMAT
        assert result.normalized_value is None
        assert "10 letters or digits" in result.error

    @pytest.mark.parametrize("code", [None, "", "   "])
    def test_missing_code(self, code):
        result = validate_transaction_code(code)
        assert result.valid is False
        assert result.error == "M-Pesa transaction code is required"

    def test_non_string_input_is_rejected_not_raised(self):
        assert validate_transaction_code(["QHG31YRWPF"]).valid is False
        assert validate_transaction_code(True).valid is False


class TestValidatePhoneNumber:
    """Tests for Kenyan phone number normalization."""

    @pytest.mark.parametrize(
        "phone",
        [
            "254712345678",
            "0712345678",
            "712345678",
            "+254712345678",
            "+254 712 345 678",
            "0712-345-678",
            "(0712) 345678",
        ],
    )
    def test_accepted_shapes_normalize(self, phone):
        result = validate_phone_number(phone)
        assert result.valid is True
        assert result.normalized_value == "254712345678"

    def test_safaricom_110_prefix(self):
        assert validate_phone_number("0110123456").normalized_value == "254110123456"

    def test_idempotent(self):
        assert validate_phone_number("254712345678").normalized_value == "254712345678"

    @pytest.mark.parametrize(
        "phone",
        [
            "812345678",  # 9 digits not starting with 7
            "25471234567",  # 11 digits
            "255712345678",  # Tanzanian prefix
            "1712345678",  # 10 digits without leading 0
            "07123abc78",
            "phone",
            "\u0660\u0667\u0661\u0662\u0663\u0664\u0665\u0666\u0667\u0668",  # Arabic-Indic digits
        ],
    )
    def test_rejected_shapes(self, phone):
        result = validate_phone_number(phone)
        assert result.valid is False
        assert result.error_code == INVALID_PHONE_FORMAT

    def test_missing_phone(self):
        result = validate_phone_number(None)
        assert result.valid is False
        assert result.error == "Phone number is required"


class TestValidateAmount:
    """Tests for the fee amount rule (expected 500, tolerance 10)."""

    def test_exact_amount(self):
        result = validate_amount(500)
        assert result.valid is True
        assert result.normalized_value == 500
        assert result.discrepancy == 0

    @pytest.mark.parametrize("amount,discrepancy", [(490, 10), (505, 5), (510, 10)])
    def test_within_tolerance(self, amount, discrepancy):
        result = validate_amount(amount)
        assert result.valid is True
        assert result.discrepancy == discrepancy

    def test_underpayment_reports_discrepancy(self):
        result = validate_amount(450)
        assert result.valid is False
        assert result.error_code == AMOUNT_MISMATCH
        assert result.discrepancy == 50
        assert result.error == "Amount mismatch. Expected: KES 500, Received: KES 450"

    def test_just_outside_tolerance(self):
        result = validate_amount(511)
        assert result.valid is False
        assert result.discrepancy == 11

    @pytest.mark.parametrize(
        "amount", [0, -500, 500.5, "abc", None, True, "\u00b2", "\u0665\u0660\u0660", " "]
    )
    def test_not_a_positive_whole_number(self, amount):
        result = validate_amount(amount)
        assert result.valid is False
        assert result.error_code == AMOUNT_MISMATCH
        assert result.error == "Amount must be a positive whole number"

    def test_numeric_string_and_whole_float(self):
        assert validate_amount("500").normalized_value == 500
        assert validate_amount(500.0).normalized_value == 500

    def test_custom_fee_and_tolerance(self):
        assert validate_amount(1000, expected_amount=1000, tolerance=0).valid is True
        assert validate_amount(1001, expected_amount=1000, tolerance=0).valid is False


class TestValidatePayment:
    """Tests for the aggregate payment check."""

    def test_all_valid(self):
        result = validate_payment("qhg31yrwpf", "0712345678", 500)

        assert result.valid is True
        assert result.errors == []
        assert result.warnings == []
        assert result.transaction_code == "QHG31YRWPF"
        assert result.phone_number == "254712345678"
        assert result.amount == 500

    def test_short_code_reported(self):
        result = validate_payment("abc123456", "0712345678", 500)

        assert result.valid is False
        assert result.error_codes == [INVALID_CODE_FORMAT]
        # The other fields are still normalized
        assert result.phone_number == "254712345678"

    def test_every_failure_collected_in_order(self):
        result = validate_payment("bad", "123", 50)

        assert result.valid is False
        assert result.error_codes == [INVALID_CODE_FORMAT, INVALID_PHONE_FORMAT, AMOUNT_MISMATCH]
        assert len(result.errors) == 3
        assert result.discrepancy == 450

    def test_near_miss_amount_warns(self):
        result = validate_payment("QHG31YRWPF", "0712345678", 495)

        assert result.valid is True
        assert result.warnings == ["Amount differs from the KES 500 fee by KES 5"]
