from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from contactrecon.app import build_registry, create_identity, preview_clusters, reconcile_file
from contactrecon.config import configure_logging, get_reconciliation_config
from contactrecon.domain.model import ConflictResolution, ConflictType, ResolutionAction
from contactrecon.domain.reconciliation import check_messaging_readiness, phone_coverage

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)

_BATCH_CHOICES = [
    str(action) for action in ResolutionAction if action is not ResolutionAction.MANUAL_EDIT
]


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile contact sheets against the registry")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    reconcile = subparsers.add_parser("reconcile", help="Reconcile a CSV or Excel sheet")
    reconcile.add_argument("input", type=Path, help="Spreadsheet to reconcile")
    reconcile.add_argument("--output", type=Path, help="Where to write the reconciled CSV")
    reconcile.add_argument(
        "--database-uri",
        type=str,
        help="SQL registry URI (defaults to config; ignored for the HTTP registry)",
    )
    reconcile.add_argument(
        "--resolve",
        action="append",
        default=[],
        metavar="ROW=ACTION",
        help="Decision for one conflict case, e.g. 7=create_identity (repeatable)",
    )
    reconcile.add_argument(
        "--manual",
        action="append",
        nargs=3,
        default=[],
        metavar=("ROW", "NAME", "PHONE"),
        help="Manual name and phone for one conflict case (repeatable)",
    )
    reconcile.add_argument(
        "--batch-action",
        choices=_BATCH_CHOICES,
        help="Decision applied to every case still pending after --resolve/--manual",
    )
    reconcile.add_argument(
        "--batch-filter",
        choices=[str(conflict) for conflict in ConflictType],
        help="Limit --batch-action to one conflict type",
    )

    clusters = subparsers.add_parser("clusters", help="Preview identity clusters of a sheet")
    clusters.add_argument("input", type=Path, help="Spreadsheet to cluster")

    identity = subparsers.add_parser("identity", help="Registry identity commands")
    identity_sub = identity.add_subparsers(dest="identity_command", required=True)
    identity_create = identity_sub.add_parser("create", help="Create a registry identity")
    identity_create.add_argument("--name", type=str, required=True, help="Customer name")
    identity_create.add_argument("--phone", type=str, required=True, help="Phone number")
    identity_create.add_argument("--location", type=str, help="Optional location")
    identity_create.add_argument("--database-uri", type=str, help="SQL registry URI")

    return parser.parse_args(list(argv))


def _parse_row(value: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Invalid row number: {value}") from exc


def _parse_resolutions(args: argparse.Namespace) -> list[ConflictResolution]:
    resolutions: list[ConflictResolution] = []
    for item in args.resolve:
        row, sep, action = item.partition("=")
        if not sep:
            raise ValueError(f"Expected ROW=ACTION, got {item!r}")
        try:
            parsed_action = ResolutionAction(action.strip())
        except ValueError as exc:
            raise ValueError(f"Unknown action {action!r} for row {row}") from exc
        if parsed_action is ResolutionAction.MANUAL_EDIT:
            raise ValueError("Use --manual ROW NAME PHONE for manual edits")
        resolutions.append(
            ConflictResolution(record_index=_parse_row(row.strip()), action=parsed_action)
        )
    for row, name, phone in args.manual:
        resolutions.append(
            ConflictResolution(
                record_index=_parse_row(row),
                action=ResolutionAction.MANUAL_EDIT,
                manual_name=name,
                manual_phone=phone,
            )
        )
    return resolutions


def _run_reconcile(args: argparse.Namespace, resolutions: list[ConflictResolution]) -> None:
    config = get_reconciliation_config()
    result = reconcile_file(
        args.input,
        output_path=args.output,
        registry=build_registry(database_uri=args.database_uri),
        config=config,
        resolutions=resolutions,
        batch_action=ResolutionAction(args.batch_action) if args.batch_action else None,
        batch_filter=ConflictType(args.batch_filter) if args.batch_filter else None,
    )
    summary = result.summary
    log.info(
        "Reconciled %d records: auto_linked=%d, created=%d, skipped=%d, errors=%d (%.1f ms)",
        summary.total_records,
        summary.auto_linked,
        summary.new_identities_created,
        summary.skipped,
        summary.error_count,
        summary.processing_time_ms,
    )
    for error in result.errors:
        log.warning(
            "Row %s (%s) %s: %s",
            error.record_index,
            error.record_name,
            error.error_type,
            error.message,
        )
    for proposal in result.proposed_updates:
        log.info(
            "Registry phone for %s (%s) should change from %r to %s (rows %s)",
            proposal.identity_id,
            proposal.identity_name,
            proposal.current_phone,
            proposal.proposed_phone,
            ", ".join(str(row) for row in proposal.record_indices),
        )
    coverage = phone_coverage(result.records)
    log.info(
        "Phone coverage: %d%% (%d without phone across %d names)",
        coverage.coverage_percentage,
        coverage.without_phone,
        coverage.names_without_phone,
    )
    readiness = check_messaging_readiness(result.records, country_code=config.country_code)
    log.info("Messaging ready: %d/%d", readiness.ready_count, readiness.total_records)
    for recommendation in readiness.recommendations:
        log.info("Recommendation: %s", recommendation)


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    configure_logging()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        resolutions = _parse_resolutions(parsed_args) if parsed_args.command == "reconcile" else []
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    if parsed_args.verbose:
        configure_logging(level=logging.DEBUG, force=True)

    try:
        if parsed_args.command == "reconcile":
            _run_reconcile(parsed_args, resolutions)
        elif parsed_args.command == "clusters":
            clusters, stats = preview_clusters(parsed_args.input)
            for cluster in clusters:
                log.info(
                    "%s %r: members=%d, phone=%s, conflicts=%d, outstanding=%s",
                    cluster.id,
                    cluster.identity_name,
                    len(cluster.members),
                    cluster.primary_phone or "-",
                    cluster.conflict_count,
                    cluster.total_outstanding,
                )
            log.info(
                "Clusters=%d, contacts=%d, with_conflicts=%d, outstanding=%s",
                stats.total_clusters,
                stats.total_contacts,
                stats.clusters_with_conflicts,
                stats.total_outstanding,
            )
        elif parsed_args.command == "identity" and parsed_args.identity_command == "create":
            identity = create_identity(
                name=parsed_args.name,
                phone=parsed_args.phone,
                location=parsed_args.location,
                registry=build_registry(database_uri=parsed_args.database_uri),
            )
            log.info("Created identity %s", identity.id)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error during reconciliation")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
