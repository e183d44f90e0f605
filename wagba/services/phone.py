"""
Egyptian mobile number validation.

Mobile numbers are ``+20 1XXXXXXXXX``: ten national digits starting with a
known network prefix. Input may carry formatting, the ``20``/``0020``
country code, or the domestic trunk ``0``.
"""

import re
from dataclasses import dataclass
from typing import Optional

COUNTRY_CODE = "20"

VALID_PREFIXES = frozenset({
    "100", "101", "106", "109",              # Vodafone / legacy
    "111", "112", "114", "115",              # Etisalat
    "120", "121", "122", "123", "127", "128",  # Orange
    "150", "151", "152", "154", "155", "156", "157", "158", "159",  # WE
})

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class PhoneValidationResult:
    is_valid: bool
    error: Optional[str] = None
    normalized: Optional[str] = None


def _national_digits(digits: str) -> str:
    if digits.startswith("0020") and len(digits) == 14:
        return digits[4:]
    if digits.startswith(COUNTRY_CODE) and len(digits) == 12:
        return digits[2:]
    if digits.startswith("0") and len(digits) == 11:
        return digits[1:]
    return digits


def validate_egyptian_phone(phone: Optional[str]) -> PhoneValidationResult:
    """
    Validate and normalize an Egyptian mobile number.

    Returns:
        PhoneValidationResult with ``normalized`` in ``+20XXXXXXXXXX`` form
        when valid, or an ``error`` message otherwise.
    """
    if not phone or not phone.strip():
        return PhoneValidationResult(False, "Phone number is required")

    national = _national_digits(_NON_DIGITS.sub("", phone))

    if len(national) != 10:
        return PhoneValidationResult(False, "Egyptian mobile numbers must be 10 digits long")
    if not national.startswith("1"):
        return PhoneValidationResult(False, "Egyptian mobile numbers must start with 1")
    if national[:3] not in VALID_PREFIXES:
        return PhoneValidationResult(False, "Invalid Egyptian mobile network prefix")

    return PhoneValidationResult(True, normalized=f"+{COUNTRY_CODE}{national}")


def format_egyptian_phone(phone: str) -> str:
    """Display form ``+20 1XX XXX XXXX``; invalid input is returned unchanged."""
    result = validate_egyptian_phone(phone)
    if not result.is_valid or not result.normalized:
        return phone
    digits = result.normalized[3:]
    return f"+20 {digits[:3]} {digits[3:6]} {digits[6:]}"
