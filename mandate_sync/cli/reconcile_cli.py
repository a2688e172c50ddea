"""
Command-line interface for mandate reconciliation.

Usage:
    mandate-sync process <file> [options]
    mandate-sync init-db [db options]
    mandate-sync generate <count> [--output-dir DIR] [--seed N]
    mandate-sync modify <file> <percent> [--output-dir DIR] [--seed N]
    mandate-sync audit (--mandate-id ID | --batch-id ID) [--limit N] [db options]

Exit codes:
    0  run succeeded
    1  run completed but failed the exit policy
    2  run-fatal error (bad input, store unreachable, header mismatch)
"""

import argparse
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import psycopg
from dotenv import load_dotenv
from pydantic import ValidationError as SettingsError

from mandate_sync.batch.pipeline import ReconciliationEngine
from mandate_sync.config import (
    DatabaseSettings,
    ExitPolicy,
    ReconciliationConfig,
    load_settings_file,
)
from mandate_sync.core.errors import ReconciliationError
from mandate_sync.core.models import AuditRecord, RunSummary
from mandate_sync.generator import (
    MandateDataGenerator,
    MandateDataModifier,
    parse_record_count,
)
from mandate_sync.observability.logger import get_logger
from mandate_sync.observability.metrics import start_metrics_server
from mandate_sync.utils.validation import (
    ValidationError,
    validate_batch_id,
    validate_file_path,
    validate_limit,
    validate_mandate_id,
    validate_percentage,
)
from mandate_sync.warehouse.audit import (
    get_audit_summary,
    query_audits_by_batch,
    query_audits_by_mandate,
)
from mandate_sync.warehouse.connection import DatabaseConnectionPool
from mandate_sync.warehouse.mandate_store import PostgresMandateStore
from mandate_sync.warehouse.schema_mgmt import SchemaManager

logger = get_logger(__name__)

EXIT_SUCCESS = 0
EXIT_POLICY_FAILURE = 1
EXIT_FATAL = 2

# Errors that end a command before or outside the per-batch containment
FATAL_ERRORS = (
    ReconciliationError,
    ValidationError,
    SettingsError,
    ValueError,
    OSError,
    psycopg.Error,
)


def run_failed(summary: RunSummary, policy: ExitPolicy) -> bool:
    """
    Apply the exit policy to a completed run.

    Args:
        summary: Completed run summary
        policy: SOFT fails only when there were errors and nothing
            succeeded; STRICT fails on any errored record or parse error

    Returns:
        True if the run should exit with a failure status
    """
    if summary.total_errors == 0:
        return False
    if policy == ExitPolicy.STRICT:
        return True
    return summary.succeeded == 0


def format_timestamp(ts: datetime | None) -> str:
    """Format timestamp for display."""
    return ts.strftime("%Y-%m-%d %H:%M:%S") if ts else "N/A"


def print_summary(summary: RunSummary) -> None:
    print(f"\n{'=' * 60}")
    print(f"RUN SUMMARY: {summary.source_file}")
    print(f"{'=' * 60}")
    print(f"  Batch ID:         {summary.batch_id}")
    print(f"  Processed:        {summary.total_processed}")
    print(f"  Inserted:         {summary.inserted}")
    print(f"  Updated:          {summary.updated}")
    print(
        f"  Skipped:          {summary.skipped} "
        f"(timestamp {summary.skipped_by_timestamp}, diff {summary.skipped_by_diff})"
    )
    print(f"  Superseded:       {summary.superseded}")
    print(f"  Errors:           {summary.errored}")
    print(f"  Parse errors:     {summary.parse_errors}")
    print(f"  Audit failures:   {summary.audit_failures}")
    print(f"  Duration:         {summary.duration_seconds:.2f}s ({summary.throughput:.0f} records/sec)")
    if summary.parse_error_samples:
        print("\nSample parse errors:")
        for sample in summary.parse_error_samples:
            print(f"  - {sample}")
    print(f"{'=' * 60}\n")


def print_audit_trail(audits: list[AuditRecord], title: str) -> None:
    print(f"\n{'=' * 80}")
    print(title)
    print(f"{'=' * 80}\n")
    print(f"Total events: {len(audits)}\n")
    print(f"{'Timestamp':<20} {'Type':<8} {'Mandate':<16} {'Field':<28} {'Details'}")
    print(f"{'-' * 80}")

    for audit in audits:
        timestamp = format_timestamp(audit.change_timestamp)
        if not audit.field_changes:
            print(
                f"{timestamp:<20} {audit.change_type.value:<8} {audit.mandate_id:<16} {'-':<28} "
                f"new_update_date={format_timestamp(audit.new_update_date)}"
            )
            continue
        for change in audit.field_changes:
            print(
                f"{timestamp:<20} {audit.change_type.value:<8} {audit.mandate_id:<16} "
                f"{change.field_name:<28} '{change.old_value}' → '{change.new_value}'"
            )

    print(f"\n{'=' * 80}\n")


# =======================
# SETTINGS RESOLUTION
# =======================

def resolve_config(args: argparse.Namespace, file_settings: dict) -> ReconciliationConfig:
    """CLI flags override the config file, which overrides defaults."""
    values = dict(file_settings.get("reconciliation", {}))
    overrides = {
        "batch_size": getattr(args, "batch_size", None),
        "delimiter": getattr(args, "delimiter", None),
        "actor": getattr(args, "actor", None),
        "exit_policy": getattr(args, "exit_policy", None),
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return ReconciliationConfig(**values)


def resolve_db_settings(args: argparse.Namespace, file_settings: dict) -> DatabaseSettings:
    """CLI flags override the config file, which overrides DB_* variables."""
    values = dict(file_settings.get("database", {}))
    overrides = {
        "host": args.db_host,
        "port": args.db_port,
        "database": args.db_name,
        "user": args.db_user,
        "password": args.db_password,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return DatabaseSettings.from_env(**values)


def open_pool(args: argparse.Namespace, file_settings: dict) -> DatabaseConnectionPool:
    settings = resolve_db_settings(args, file_settings)
    pool = DatabaseConnectionPool.from_settings(settings)
    pool.open(max_retries=args.db_retries)
    return pool


# =======================
# COMMANDS
# =======================

def process_command(args: argparse.Namespace, file_settings: dict) -> int:
    """
    Reconcile one mandate file against the store.

    Returns:
        Process exit status
    """
    input_path = Path(validate_file_path(args.file))
    if not input_path.is_file():
        logger.error(f"Input file not found: {input_path}")
        return EXIT_FATAL

    config = resolve_config(args, file_settings)
    if args.metrics_port:
        start_metrics_server(args.metrics_port)
        logger.info(f"Metrics endpoint listening on port {args.metrics_port}")

    pool = open_pool(args, file_settings)
    try:
        engine = ReconciliationEngine(PostgresMandateStore(pool), config)
        summary = engine.process_file(input_path)
    finally:
        pool.close()

    if args.json:
        print(summary.model_dump_json(indent=2))
    else:
        print_summary(summary)

    if run_failed(summary, config.exit_policy):
        logger.error(
            f"Run failed under {config.exit_policy.value} exit policy: "
            f"{summary.errored} errored, {summary.parse_errors} parse errors"
        )
        return EXIT_POLICY_FAILURE
    return EXIT_SUCCESS


def init_db_command(args: argparse.Namespace, file_settings: dict) -> int:
    """Create tables and indexes."""
    pool = open_pool(args, file_settings)
    try:
        manager = SchemaManager(pool)
        manager.ensure_schema()
        counts = manager.row_counts()
    finally:
        pool.close()

    print("\nSchema ready. Row counts:")
    for table, count in counts.items():
        print(f"  {table:<20} {count:>10}")
    print()
    return EXIT_SUCCESS


def generate_command(args: argparse.Namespace, file_settings: dict) -> int:
    """Write a synthetic mandate file."""
    count = parse_record_count(args.count)
    generator = MandateDataGenerator(seed=args.seed)
    output_path = generator.generate_file(count, args.output_dir)
    print(f"\n✓ Generated {count} records: {output_path}\n")
    return EXIT_SUCCESS


def modify_command(args: argparse.Namespace, file_settings: dict) -> int:
    """Write a copy of a mandate file with a share of records edited."""
    input_path = Path(validate_file_path(args.file))
    if not input_path.is_file():
        logger.error(f"Input file not found: {input_path}")
        return EXIT_FATAL

    percentage = validate_percentage(args.percent, "percent")
    modifier = MandateDataModifier(percentage, seed=args.seed)
    result = modifier.modify_file(input_path, args.output_dir)
    print(
        f"\n✓ Modified {result.modified_records} of {result.total_records} records: "
        f"{result.output_path}\n"
    )
    return EXIT_SUCCESS


def audit_command(args: argparse.Namespace, file_settings: dict) -> int:
    """Show the audit trail of a mandate or of a run."""
    limit = validate_limit(args.limit)
    mandate_id = validate_mandate_id(args.mandate_id) if args.mandate_id else None
    batch_id = validate_batch_id(args.batch_id) if args.batch_id else None

    pool = open_pool(args, file_settings)
    try:
        if mandate_id:
            audits = query_audits_by_mandate(pool, mandate_id, limit=limit)
            title = f"AUDIT TRAIL FOR MANDATE: {mandate_id}"
        else:
            audits = query_audits_by_batch(pool, batch_id, limit=limit)
            title = f"AUDIT TRAIL FOR RUN: {batch_id}"
        summary = get_audit_summary(pool, batch_id=batch_id) if batch_id else None
    finally:
        pool.close()

    if not audits:
        print(f"\nNo audit trail found for {mandate_id or batch_id}\n")
        return EXIT_SUCCESS

    print_audit_trail(audits, title)
    if summary:
        print("Changes by type:")
        for change_type, count in sorted(summary["changes_by_type"].items()):
            print(f"  {change_type:<10} {count:>8}")
        print(f"  Unique mandates: {summary['unique_mandates']}\n")
    return EXIT_SUCCESS


COMMANDS = {
    "process": process_command,
    "init-db": init_db_command,
    "generate": generate_command,
    "modify": modify_command,
    "audit": audit_command,
}


# =======================
# ARGUMENT PARSING
# =======================

def _add_db_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("database", "defaults come from DB_* environment variables")
    group.add_argument("--db-host", help="Database host (env: DB_HOST)")
    group.add_argument("--db-port", type=int, help="Database port (env: DB_PORT)")
    group.add_argument("--db-name", help="Database name (env: DB_NAME)")
    group.add_argument("--db-user", help="Database user (env: DB_USER)")
    group.add_argument("--db-password", help="Database password (env: DB_PASSWORD)")
    group.add_argument(
        "--db-retries",
        type=int,
        default=3,
        help="Connection attempts before giving up (default: 3)"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mandate-sync",
        description="Direct debit mandate reconciliation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create tables and indexes
  mandate-sync init-db --env-file .env

  # Generate a 10k record file and reconcile it
  mandate-sync generate 10k --output-dir data/
  mandate-sync process data/mandates_2025-11-17_02-00-00_10.0K.txt

  # Edit 25% of the records and reconcile again
  mandate-sync modify data/mandates_2025-11-17_02-00-00_10.0K.txt 25
  mandate-sync process data/mandates_2025-11-17_02-00-00_10.0K_modified_*.txt --exit-policy strict

  # Inspect the audit trail
  mandate-sync audit --mandate-id MND-0000000042
        """
    )
    parser.add_argument("--env-file", help="Load environment variables from a dotenv file first")
    parser.add_argument("--config", help="YAML settings file (reconciliation and database sections)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Process command
    process_parser = subparsers.add_parser("process", help="Reconcile a mandate file")
    process_parser.add_argument("file", help="Path to the delimited mandate file")
    process_parser.add_argument("--batch-size", type=int, help="Records per batch (default: 200)")
    process_parser.add_argument("--delimiter", help="Field delimiter (default: |)")
    process_parser.add_argument("--actor", help="Identity recorded on audit entries (default: OS user)")
    process_parser.add_argument(
        "--exit-policy",
        choices=[p.value for p in ExitPolicy],
        help="soft: fail only if nothing succeeded; strict: fail on any error (default: soft)"
    )
    process_parser.add_argument("--metrics-port", type=int, help="Expose Prometheus metrics on this port")
    process_parser.add_argument("--json", action="store_true", help="Print the run summary as JSON")
    _add_db_arguments(process_parser)

    # Init-db command
    init_parser = subparsers.add_parser("init-db", help="Create tables and indexes")
    _add_db_arguments(init_parser)

    # Generate command
    generate_parser = subparsers.add_parser("generate", help="Generate a synthetic mandate file")
    generate_parser.add_argument("count", help="Number of records, e.g. 500, 10k, 1.5M")
    generate_parser.add_argument("--output-dir", default=".", help="Output directory (default: .)")
    generate_parser.add_argument("--seed", type=int, help="Random seed for reproducible output")

    # Modify command
    modify_parser = subparsers.add_parser("modify", help="Randomly edit a share of a file's records")
    modify_parser.add_argument("file", help="Input mandate file")
    modify_parser.add_argument("percent", type=float, help="Share of records to edit, 0-100")
    modify_parser.add_argument("--output-dir", help="Output directory (default: input's directory)")
    modify_parser.add_argument("--seed", type=int, help="Random seed for reproducible output")

    # Audit command
    audit_parser = subparsers.add_parser("audit", help="Show the audit trail")
    target = audit_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--mandate-id", help="Show the history of one mandate")
    target.add_argument("--batch-id", help="Show every change made by one run")
    audit_parser.add_argument("--limit", type=int, default=100, help="Maximum entries (default: 100)")
    _add_db_arguments(audit_parser)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_FATAL

    try:
        if args.env_file:
            if not Path(args.env_file).is_file():
                raise FileNotFoundError(f"Env file not found: {args.env_file}")
            load_dotenv(args.env_file, override=False)
        file_settings = load_settings_file(args.config) if args.config else {}
        return COMMANDS[args.command](args, file_settings)
    except FATAL_ERRORS as e:
        logger.error(f"{args.command} failed: {e}", exc_info=True)
        print(f"\nError: {e}", file=sys.stderr)
        return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
