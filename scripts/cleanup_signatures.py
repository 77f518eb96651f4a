#!/usr/bin/env python3
"""
Command-line housekeeping for transient signature storage.

Runs the retention sweep once, or keeps running it on the configured
interval with --daemon.
"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.config import get_retention_days, get_housekeeping_interval, get_storage_dir
from src.core.housekeeping import CleanupReport, cleanup_old_signatures, register_housekeeping
from src.core import heartbeat


def format_report(report: CleanupReport) -> str:
    """Format a cleanup report for display."""
    lines = [f"Operation: {report.operation}"]
    if report.completed_at and report.started_at:
        duration = report.completed_at - report.started_at
        lines.append(f"Duration: {duration.total_seconds():.2f} seconds")

    if report.errors:
        lines.append(f"Status: FAILED ({len(report.errors)} errors)")
    else:
        lines.append("Status: SUCCESS")

    lines.append(f"Files scanned: {report.files_scanned}")
    lines.append(f"Files removed: {report.files_removed}")
    lines.append(f"Bytes removed: {report.bytes_removed}")

    if report.errors:
        lines.append("Errors:")
        for error in report.errors:
            lines.append(f"  - {error}")

    return "\n".join(lines)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Remove stored signature images older than the retention window",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                     # One sweep with SIGNATURE_RETENTION_DAYS
  %(prog)s --max-age-days 1    # One sweep, one day retention
  %(prog)s --json              # Output the report as JSON
  %(prog)s --daemon            # Sweep every HOUSEKEEPING_INTERVAL_SEC

Environment variables:
- SIGNATURE_STORAGE_DIR=./data/hubspot-signatures
- SIGNATURE_RETENTION_DAYS=7
- HOUSEKEEPING_ENABLED=true (required for --daemon)
- HOUSEKEEPING_INTERVAL_SEC=86400
        """
    )

    parser.add_argument(
        "--max-age-days", "-m",
        type=int,
        default=None,
        help="Retention window in days (default: SIGNATURE_RETENTION_DAYS)"
    )

    parser.add_argument(
        "--daemon", "-d",
        action="store_true",
        help="Keep running and sweep on the housekeeping interval"
    )

    parser.add_argument(
        "--json", "-j",
        action="store_true",
        help="Output results as JSON instead of human-readable text"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-error output"
    )

    args = parser.parse_args(argv)

    max_age_days = args.max_age_days if args.max_age_days is not None else get_retention_days()
    if max_age_days < 1:
        parser.error("--max-age-days must be >= 1")

    if args.daemon:
        if not args.quiet:
            print(f"Sweeping {get_storage_dir()} every {get_housekeeping_interval()}s")
        register_housekeeping(max_age_days=max_age_days)
        try:
            heartbeat.start()
        except KeyboardInterrupt:
            heartbeat.stop()
        return 0

    report = cleanup_old_signatures(max_age_days=max_age_days)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2, default=str))
    elif not args.quiet or report.errors:
        print(format_report(report))

    return 1 if report.errors else 0


if __name__ == "__main__":
    sys.exit(main())
