#!/usr/bin/env python3
"""
Standalone script to run the DBR pass outside of the web server.

Usage:
    python run_dbr.py                      # full pass at the current time
    python run_dbr.py --now 2025-08-01T06:00
    python run_dbr.py --reset              # restore order steps from the backup table
    python run_dbr.py --reset --run        # restore, then run a full pass
    python run_dbr.py --conflicts          # list orders on more than one constraint
"""

import argparse
import sys
import os

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dbr_planner import create_app
from dbr_planner.datetime_utils import parse_datetime
from dbr_planner.scheduling import service
from dbr_planner.scheduling.errors import DbrError, SchedulingPassError


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Drum-Buffer-Rope recomputation")
    parser.add_argument("--reset", action="store_true", help="Restore order steps from the backup snapshot")
    parser.add_argument("--run", action="store_true", help="Run the full pass (default unless --reset or --conflicts)")
    parser.add_argument("--conflicts", action="store_true", help="Only list conflicting production orders")
    parser.add_argument("--now", help="Reference instant for the pass (default: current time)")
    return parser.parse_args(argv)


def main(argv=None):
    """Run the requested DBR operations; returns the process exit code."""
    args = parse_args(argv)
    now = None
    if args.now:
        now = parse_datetime(args.now)
        if now is None:
            print(f"Unrecognised --now value: {args.now}")
            return 2

    run_pass = args.run or not (args.reset or args.conflicts)

    app = create_app()
    with app.app_context():
        try:
            if args.conflicts:
                conflicts = service.list_conflicting_orders()
                print(f"Conflicting orders ({len(conflicts['orders'])}): {conflicts['summary'] or '-'}")

            if args.reset:
                result = service.reset_to_backup()
                print(f"Reset complete: {result['rows_restored']} order steps restored (run {result['run_id']})")

            if run_pass:
                summary = service.run_full_pass(now=now)
                print(f"DBR pass {summary['run_id']} complete")
                print(f"  Constraints: {', '.join(summary['constraint_resources']) or '-'}")
                print(f"  Excluded orders: {len(summary['conflicting_orders'])}")
                print(f"  Rows updated: {summary['rows_updated']}")
            return 0

        except SchedulingPassError as e:
            print(f"DBR pass failed in stage '{e.stage}' after {e.rows_processed} rows: {e.message}")
            return 1
        except DbrError as e:
            print(f"DBR operation failed: {e.message}")
            return 1


if __name__ == "__main__":
    exit_code = main()
    sys.exit(exit_code)
