"""Checks whether reconciled records can be addressed over a messaging channel."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from contactrecon.domain.reconciliation.phones import (
    DEFAULT_COUNTRY_CODE,
    messaging_address,
    validate_phone,
)
from contactrecon.domain.reconciliation.propagate import check_phone_consistency

if TYPE_CHECKING:
    from collections.abc import Sequence

    from contactrecon.domain.model import ReconciledRecord


@dataclass(slots=True, frozen=True, kw_only=True)
class ReadinessIssue:
    record_index: int
    record_name: str
    message: str


@dataclass(slots=True, frozen=True, kw_only=True)
class MessagingReadiness:
    total_records: int
    ready_count: int
    addresses: dict[int, str]
    issues: tuple[ReadinessIssue, ...]
    recommendations: tuple[str, ...]

    @property
    def is_ready(self) -> bool:
        return self.total_records > 0 and self.ready_count == self.total_records


def check_messaging_readiness(
    records: Sequence[ReconciledRecord],
    *,
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> MessagingReadiness:
    addresses: dict[int, str] = {}
    issues: list[ReadinessIssue] = []
    missing = 0
    invalid = 0
    for record in records:
        if not record.final_phone:
            missing += 1
            issues.append(
                ReadinessIssue(
                    record_index=record.source_row_index,
                    record_name=record.final_name,
                    message="No phone number",
                )
            )
            continue
        check = validate_phone(record.final_phone)
        if not check.valid:
            invalid += 1
            issues.append(
                ReadinessIssue(
                    record_index=record.source_row_index,
                    record_name=record.final_name,
                    message=check.message or "Invalid phone number",
                )
            )
            continue
        addresses[record.source_row_index] = messaging_address(
            record.final_phone, country_code=country_code
        )

    recommendations: list[str] = []
    if missing:
        recommendations.append(f"Add phone numbers for {missing} records before messaging")
    if invalid:
        recommendations.append(f"Fix {invalid} invalid phone numbers")
    inconsistent = check_phone_consistency(records)
    if inconsistent:
        recommendations.append(
            f"Resolve conflicting phone numbers for {len(inconsistent)} contacts"
        )

    return MessagingReadiness(
        total_records=len(records),
        ready_count=len(addresses),
        addresses=addresses,
        issues=tuple(issues),
        recommendations=tuple(recommendations),
    )
