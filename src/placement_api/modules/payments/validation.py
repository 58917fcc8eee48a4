"""
M-Pesa Payment Validation Rules

Pure functions for validating manually reported M-Pesa payments:
- Transaction code format (10 alphanumeric characters, uppercased)
- Kenyan phone number shapes, normalized to 254XXXXXXXXX
- Amount within a tolerance of the application fee
- Parsing of pasted M-Pesa confirmation messages

Every function is total: bad input produces an invalid result, never an
exception. Normalizing an already normalized value returns it unchanged.
"""

import re
from dataclasses import dataclass, field
from typing import Any

INVALID_CODE_FORMAT = "INVALID_CODE_FORMAT"
INVALID_PHONE_FORMAT = "INVALID_PHONE_FORMAT"
AMOUNT_MISMATCH = "AMOUNT_MISMATCH"

DEFAULT_APPLICATION_FEE = 500
DEFAULT_AMOUNT_TOLERANCE = 10

TRANSACTION_CODE_PATTERN = re.compile(r"[A-Z0-9]{10}")
CANONICAL_PHONE_PATTERN = re.compile(r"254[0-9]{9}")
_WHOLE_NUMBER_PATTERN = re.compile(r"[0-9]+")

# Digits plus the separators people type into phone fields
_PHONE_INPUT_PATTERN = re.compile(r"\+?[0-9\s\-().]+")


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of a single validation rule.

    Attributes:
        valid: Whether the input passed
        normalized_value: Canonical form of the input (only when valid)
        error: Human-readable message (only when invalid)
        error_code: Machine-readable code (only when invalid)
        discrepancy: Absolute difference from the expected amount (amount rule only)
    """

    valid: bool
    normalized_value: Any = None
    error: str | None = None
    error_code: str | None = None
    discrepancy: int | None = None

    @classmethod
    def ok(cls, value: Any, discrepancy: int | None = None) -> "ValidationResult":
        return cls(valid=True, normalized_value=value, discrepancy=discrepancy)

    @classmethod
    def fail(
        cls, error_code: str, error: str, discrepancy: int | None = None
    ) -> "ValidationResult":
        return cls(valid=False, error=error, error_code=error_code, discrepancy=discrepancy)


@dataclass(frozen=True)
class PaymentValidation:
    """Aggregate result of validating a whole payment submission."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    error_codes: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    transaction_code: str | None = None
    phone_number: str | None = None
    amount: int | None = None
    discrepancy: int | None = None


@dataclass(frozen=True)
class ParsedMpesaMessage:
    """Fields extracted from an M-Pesa confirmation SMS. Unfound parts are None."""

    raw_message: str
    transaction_code: str | None = None
    amount: int | None = None
    phone_number: str | None = None
    sender_name: str | None = None
    timestamp: str | None = None


def _as_text(value: Any) -> str | None:
    """Coerce str/int input to stripped text; anything else is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return None


def validate_transaction_code(code: Any) -> ValidationResult:
    """
    Validate an M-Pesa transaction code.

    Input is trimmed and uppercased, then must be exactly 10 characters
    from A-Z and 0-9.

    Examples:
        >>> validate_transaction_code(" qhg31yrwpf ").normalized_value
        'QHG31YRWPF'
        >>> validate_transaction_code("abc123456").error_code
        'INVALID_CODE_FORMAT'
    """
    text = _as_text(code)
    if not text:
        return ValidationResult.fail(INVALID_CODE_FORMAT, "M-Pesa transaction code is required")

    # Unicode uppercasing can change the length, so only ASCII is folded
    normalized = text.upper() if text.isascii() else text
    if not TRANSACTION_CODE_PATTERN.fullmatch(normalized):
        return ValidationResult.fail(
            INVALID_CODE_FORMAT,
            "Invalid M-Pesa transaction code format. "
            "Expected 10 letters or digits (e.g., QHG31YRWPF)",
        )

    return ValidationResult.ok(normalized)


def validate_phone_number(phone_number: Any) -> ValidationResult:
    """
    Validate and normalize a Kenyan mobile number to 254XXXXXXXXX.

    Accepted shapes (separators such as spaces, dashes and a leading +
    are ignored):
    - 254712345678 (canonical)
    - 0712345678 (local, leading zero replaced with 254)
    - 712345678 (subscriber number starting with 7, prefixed with 254)
    """
    text = _as_text(phone_number)
    if not text:
        return ValidationResult.fail(INVALID_PHONE_FORMAT, "Phone number is required")

    if not _PHONE_INPUT_PATTERN.fullmatch(text):
        return _invalid_phone()

    digits = re.sub(r"[^0-9]", "", text)

    if len(digits) == 12 and CANONICAL_PHONE_PATTERN.fullmatch(digits):
        return ValidationResult.ok(digits)
    if len(digits) == 10 and digits.startswith("0"):
        return ValidationResult.ok("254" + digits[1:])
    if len(digits) == 9 and digits.startswith("7"):
        return ValidationResult.ok("254" + digits)

    return _invalid_phone()


def _invalid_phone() -> ValidationResult:
    return ValidationResult.fail(
        INVALID_PHONE_FORMAT,
        "Invalid phone number format. Expected: 254XXXXXXXXX, 0712345678 or 712345678",
    )


def validate_amount(
    amount: Any,
    expected_amount: int = DEFAULT_APPLICATION_FEE,
    tolerance: int = DEFAULT_AMOUNT_TOLERANCE,
) -> ValidationResult:
    """
    Validate that an amount is a positive whole number within
    ``tolerance`` of ``expected_amount``.

    The absolute difference is reported as ``discrepancy`` on both
    outcomes so reviewers can see near-miss payments.
    """
    parsed: int | None = None
    if isinstance(amount, bool):
        parsed = None
    elif isinstance(amount, int):
        parsed = amount
    elif isinstance(amount, float) and amount.is_integer():
        parsed = int(amount)
    elif isinstance(amount, str) and _WHOLE_NUMBER_PATTERN.fullmatch(amount.strip()):
        parsed = int(amount.strip())

    if parsed is None or parsed <= 0:
        return ValidationResult.fail(AMOUNT_MISMATCH, "Amount must be a positive whole number")

    discrepancy = abs(parsed - expected_amount)
    if discrepancy > tolerance:
        return ValidationResult.fail(
            AMOUNT_MISMATCH,
            f"Amount mismatch. Expected: KES {expected_amount}, Received: KES {parsed}",
            discrepancy=discrepancy,
        )

    return ValidationResult.ok(parsed, discrepancy=discrepancy)


def validate_payment(
    transaction_code: Any,
    phone_number: Any,
    amount: Any,
    expected_amount: int = DEFAULT_APPLICATION_FEE,
    tolerance: int = DEFAULT_AMOUNT_TOLERANCE,
) -> PaymentValidation:
    """
    Run all three rules and collect every failure rather than stopping
    at the first one.

    Returns:
        PaymentValidation with normalized values for the fields that
        passed, plus a warning when the amount is accepted but not exact.
    """
    errors: list[str] = []
    error_codes: list[str] = []
    warnings: list[str] = []

    code_result = validate_transaction_code(transaction_code)
    phone_result = validate_phone_number(phone_number)
    amount_result = validate_amount(amount, expected_amount, tolerance)

    for result in (code_result, phone_result, amount_result):
        if not result.valid:
            errors.append(result.error)
            error_codes.append(result.error_code)

    if amount_result.valid and amount_result.discrepancy:
        warnings.append(
            f"Amount differs from the KES {expected_amount} fee by KES {amount_result.discrepancy}"
        )

    return PaymentValidation(
        valid=not errors,
        errors=errors,
        error_codes=error_codes,
        warnings=warnings,
        transaction_code=code_result.normalized_value,
        phone_number=phone_result.normalized_value,
        amount=amount_result.normalized_value,
        discrepancy=amount_result.discrepancy,
    )


# ============================================
# Confirmation Message Parsing
# ============================================

# A transaction code contains at least one letter and one digit
_MESSAGE_CODE = re.compile(r"\b(?=[A-Z0-9]*\d)(?=[A-Z0-9]*[A-Z])[A-Z0-9]{10}\b", re.IGNORECASE)
_MESSAGE_AMOUNT = re.compile(r"(?:KES|Ksh)\.?\s*([\d,]+)(?:\.\d{1,2})?", re.IGNORECASE)
_PHONE_TOKEN = r"(\+?254\d{9}|0\d{9}|7\d{8})\b"
_MESSAGE_PHONE = re.compile(r"from\s+(?:[A-Za-z][A-Za-z .']*?\s+)?" + _PHONE_TOKEN, re.IGNORECASE)
_MESSAGE_NAME_AFTER_PHONE = re.compile(r"from\s+\+?\d+\s+([A-Za-z][A-Za-z .']*?)\s+on\b", re.IGNORECASE)
_MESSAGE_NAME_BEFORE_PHONE = re.compile(r"from\s+([A-Za-z][A-Za-z .']*?)\s+\+?\d{9,12}\b", re.IGNORECASE)
_MESSAGE_TIMESTAMP = re.compile(
    r"on\s+(\d{1,2}/\d{1,2}/\d{2,4})\s+(?:at\s+)?(\d{1,2}:\d{2}(?:\s*[AP]M)?)",
    re.IGNORECASE,
)


def parse_mpesa_message(message: Any) -> ParsedMpesaMessage | None:
    """
    Extract payment details from a pasted M-Pesa confirmation SMS.

    Handles both "from 254712345678 JOHN DOE on ..." and
    "received from JOHN DOE 0712345678 on ..." orderings. The phone number
    is normalized when it is a valid Kenyan number.

    Returns:
        ParsedMpesaMessage, or None for empty or non-string input
    """
    if not isinstance(message, str) or not message.strip():
        return None

    code_match = _MESSAGE_CODE.search(message)
    amount_match = _MESSAGE_AMOUNT.search(message)
    phone_match = _MESSAGE_PHONE.search(message)
    time_match = _MESSAGE_TIMESTAMP.search(message)
    name_match = _MESSAGE_NAME_AFTER_PHONE.search(message) or _MESSAGE_NAME_BEFORE_PHONE.search(
        message
    )

    amount = None
    if amount_match:
        digits = amount_match.group(1).replace(",", "")
        amount = int(digits) if digits else None

    phone = None
    if phone_match:
        phone_result = validate_phone_number(phone_match.group(1))
        phone = phone_result.normalized_value if phone_result.valid else phone_match.group(1)

    return ParsedMpesaMessage(
        raw_message=message,
        transaction_code=code_match.group(0).upper() if code_match else None,
        amount=amount,
        phone_number=phone,
        sender_name=name_match.group(1).strip() if name_match else None,
        timestamp=f"{time_match.group(1)} {time_match.group(2)}" if time_match else None,
    )
