"""Tagged attribute values carried by imported spreadsheet rows."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from numbers import Real
from typing import Final

from contactrecon.domain.model.enums import ValueKind

_NON_AMOUNT_CHARS: Final = re.compile(r"[^0-9.\-]")

type AttributeScalar = str | Decimal | date | None

_VALUE_TYPES: Final[dict[ValueKind, type]] = {
    ValueKind.TEXT: str,
    ValueKind.NUMBER: Decimal,
    ValueKind.DATE: date,
    ValueKind.ABSENT: type(None),
}


@dataclass(slots=True, frozen=True)
class AttributeValue:
    """A single cell value, tagged with its kind.

    Amount detection and output writing dispatch on ``kind`` instead of
    inspecting the runtime type of whatever the spreadsheet reader produced.
    """

    kind: ValueKind
    value: AttributeScalar = None

    def __post_init__(self) -> None:
        expected = _VALUE_TYPES[ValueKind(self.kind)]
        if not isinstance(self.value, expected):
            raise TypeError(
                f"{self.kind} attribute expects {expected.__name__}, got {type(self.value).__name__}"
            )

    @classmethod
    def text(cls, value: str) -> AttributeValue:
        return cls(ValueKind.TEXT, value)

    @classmethod
    def number(cls, value: Decimal | int | str) -> AttributeValue:
        return cls(ValueKind.NUMBER, Decimal(value))

    @classmethod
    def on_date(cls, value: date) -> AttributeValue:
        if isinstance(value, datetime):
            value = value.date()
        return cls(ValueKind.DATE, value)

    @classmethod
    def absent(cls) -> AttributeValue:
        return cls(ValueKind.ABSENT)

    @classmethod
    def from_raw(cls, raw: object) -> AttributeValue:
        """Coerce a raw cell produced by a spreadsheet reader."""

        if raw is None:
            return cls.absent()
        if isinstance(raw, bool):
            return cls.text(str(raw))
        if isinstance(raw, date):
            return cls.on_date(raw)
        if isinstance(raw, Decimal | Real):
            number = Decimal(str(raw))
            if not number.is_finite():
                return cls.absent()
            return cls(ValueKind.NUMBER, number)
        text = str(raw)
        if not text.strip():
            return cls.absent()
        return cls.text(text)

    @property
    def is_empty(self) -> bool:
        if self.kind is ValueKind.ABSENT:
            return True
        return self.kind is ValueKind.TEXT and not str(self.value).strip()

    def as_amount(self) -> Decimal | None:
        """Interpret the value as a monetary amount, if it is one."""

        match self.kind:
            case ValueKind.NUMBER:
                return self.value if isinstance(self.value, Decimal) else None
            case ValueKind.TEXT:
                return parse_amount(str(self.value))
            case ValueKind.DATE | ValueKind.ABSENT:
                return None

    def __str__(self) -> str:
        if self.value is None:
            return ""
        if isinstance(self.value, date):
            return self.value.isoformat()
        return str(self.value)


def parse_amount(text: str) -> Decimal | None:
    """Parse ``"₹ 1,234.50"``-style strings; ``None`` when nothing numeric remains."""

    cleaned = _NON_AMOUNT_CHARS.sub("", text)
    if cleaned in {"", "-", ".", "-."}:
        return None
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None
