"""Phone canonicalisation, validation and display helpers.

The stored and compared form of a phone number is always its bare digit
string. Display and messaging formats are derived on demand and never fed
back into comparisons.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Final

import phonenumbers

from contactrecon.domain.errors import ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable

PHONE_MIN_DIGITS: Final = 10
PHONE_MAX_DIGITS: Final = 15
DEFAULT_COUNTRY_CODE: Final = "91"

_NON_DIGIT = re.compile(r"[^0-9]")
_PHONE_LIKE = re.compile(r"\+?[0-9][0-9\s().\-]{8,}[0-9]")


class PhoneIssue(StrEnum):
    NO_DIGITS = "no digits"
    TOO_SHORT = "too short"
    TOO_LONG = "too long"


_ISSUE_MESSAGES: Final[dict[PhoneIssue, str]] = {
    PhoneIssue.NO_DIGITS: "Phone number must contain digits",
    PhoneIssue.TOO_SHORT: f"Phone number must be at least {PHONE_MIN_DIGITS} digits",
    PhoneIssue.TOO_LONG: f"Phone number cannot exceed {PHONE_MAX_DIGITS} digits",
}


@dataclass(slots=True, frozen=True)
class PhoneValidation:
    valid: bool
    reason: PhoneIssue | None = None

    @property
    def message(self) -> str | None:
        return _ISSUE_MESSAGES[self.reason] if self.reason else None


def normalize_phone(phone: str | None) -> str:
    """Return only the ASCII digits of ``phone``."""

    if not phone:
        return ""
    return _NON_DIGIT.sub("", phone)


def validate_phone(phone: str | None) -> PhoneValidation:
    digits = normalize_phone(phone)
    if not digits:
        return PhoneValidation(valid=False, reason=PhoneIssue.NO_DIGITS)
    if len(digits) < PHONE_MIN_DIGITS:
        return PhoneValidation(valid=False, reason=PhoneIssue.TOO_SHORT)
    if len(digits) > PHONE_MAX_DIGITS:
        return PhoneValidation(valid=False, reason=PhoneIssue.TOO_LONG)
    return PhoneValidation(valid=True)


def require_valid_phone(phone: str | None) -> str:
    """Return the normalized phone or raise :class:`ValidationError`."""

    result = validate_phone(phone)
    if not result.valid:
        raise ValidationError(result.message or "Invalid phone number", field="phone", value=phone)
    return normalize_phone(phone)


def phones_equal(left: str | None, right: str | None) -> bool:
    return normalize_phone(left) == normalize_phone(right)


def format_phone_for_display(phone: str | None, *, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Render a phone for humans.

    Ten digit numbers are shown as ``+CC XXXXX XXXXX``. Longer numbers that
    already carry a country code are formatted internationally when the
    ``phonenumbers`` metadata recognises them; anything else is returned as
    bare digits.
    """

    digits = normalize_phone(phone)
    if len(digits) == PHONE_MIN_DIGITS:
        return f"+{country_code} {digits[:5]} {digits[5:]}"
    if len(digits) > PHONE_MIN_DIGITS:
        try:
            parsed = phonenumbers.parse(f"+{digits}", None)
        except phonenumbers.NumberParseException:
            return digits
        if phonenumbers.is_possible_number(parsed):
            return phonenumbers.format_number(
                parsed, phonenumbers.PhoneNumberFormat.INTERNATIONAL
            )
    return digits


def messaging_address(phone: str | None, *, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Digits as expected by chat gateways: country code prefixed to local numbers."""

    digits = normalize_phone(phone)
    if len(digits) == PHONE_MIN_DIGITS:
        return f"{country_code}{digits}"
    return digits


def unique_phones(phones: Iterable[str | None]) -> list[str]:
    """Distinct non-empty normalized phones in first-seen order."""

    seen: dict[str, None] = {}
    for phone in phones:
        digits = normalize_phone(phone)
        if digits:
            seen.setdefault(digits, None)
    return list(seen)


def extract_phones(text: str | None) -> list[str]:
    """Pull phone-like digit runs out of free text, e.g. notes columns."""

    if not text:
        return []
    found = (match.group(0) for match in _PHONE_LIKE.finditer(text))
    return [digits for digits in unique_phones(found) if validate_phone(digits).valid]
