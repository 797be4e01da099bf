#!/usr/bin/env python3
"""Create or upgrade the clinic SQLite database and report the schema state."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from clinicdb import migrations
from clinicdb.db.config import get_database_settings
from clinicdb.logging_config import configure_logging
from clinicdb.store import ClinicStore


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    default_path = os.getenv("CLINICDB_DB_PATH")
    if not default_path:
        default_path = str(get_database_settings().path)

    parser = argparse.ArgumentParser(
        description="Apply schema migrations and structural repairs to the clinic database.",
    )
    parser.add_argument(
        "--database",
        "-d",
        default=default_path,
        help="Path to the SQLite database file (default: %(default)s)",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Exit with status 1 when any startup step failed.",
    )
    parser.add_argument(
        "--retry",
        type=int,
        action="append",
        default=[],
        metavar="VERSION",
        help="Re-run a migration version that was previously skipped (repeatable).",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: CLINICDB_LOG_LEVEL or INFO)")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level, json=False)

    db_path = Path(args.database).expanduser()
    store = ClinicStore(db_path)
    try:
        report = store.start()
        conn = store.connection
        for version in args.retry:
            outcome = migrations.retry_skipped(conn, version)
            report.steps.append(outcome)
        version = migrations.current_version(conn)
        skipped = migrations.skipped_versions(conn)
    finally:
        store.close()

    print(f"Database ready at {store.manager.path}")
    print(f"Schema version: {version}")
    if skipped:
        print("Skipped migrations (run with --retry VERSION after fixing the cause):")
        for skipped_version, error in skipped.items():
            print(f"  - {skipped_version}: {error}")

    failures = report.failures
    if failures:
        print("The following steps failed and were skipped:")
        for step in failures:
            print(f"  - {step.name}: {step.error}")
    else:
        print("All startup steps completed.")

    if args.check and failures:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
