"""
Scheduled Jobs

Command line entry point for the periodic jobs:

    python -m asset_finance.jobs reconcile [--as-of YYYY-MM-DD]
    python -m asset_finance.jobs check
    python -m asset_finance.jobs verify-audit

Jobs run as the system actor against the configured database.
"""

import argparse
import json
import logging
import sys
from datetime import date
from typing import List, Optional

from .backoffice import BackOffice
from .config import get_config
from .logging_config import setup_logging
from .rbac import SYSTEM_ACTOR


logger = logging.getLogger(__name__)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date {value!r}, expected YYYY-MM-DD") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Asset financing back office jobs")
    parser.add_argument("--database-url", help="Override the configured database URL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    reconcile = subparsers.add_parser("reconcile", help="Count missed installments on active loans")
    reconcile.add_argument("--as-of", type=_parse_date, default=None,
                           help="Count installments due before this date (default: today)")

    subparsers.add_parser("check", help="Scan assets, loans and schedules for invariant violations")
    subparsers.add_parser("verify-audit", help="Verify the audit trail hash chain")
    return parser


def main(argv: Optional[List[str]] = None, back_office: Optional[BackOffice] = None) -> int:
    """Run one job; returns the process exit code"""
    args = build_parser().parse_args(argv)
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    if back_office is None:
        if args.database_url:
            config = config.model_copy(update={"database_url": args.database_url})
        back_office = BackOffice(config=config)

    if args.command == "reconcile":
        results = back_office.reconcile_missed_payments(SYSTEM_ACTOR, args.as_of)
        print(json.dumps(results))
        return 1 if results["errors"] else 0

    if args.command == "check":
        violations = back_office.check_consistency(SYSTEM_ACTOR)
        print(json.dumps([
            {"entity_type": v.entity_type, "entity_id": v.entity_id, "message": v.message}
            for v in violations
        ]))
        return 1 if violations else 0

    result = back_office.verify_audit_trail(SYSTEM_ACTOR)
    print(json.dumps(result))
    return 0 if result["valid"] else 1


if __name__ == "__main__":
    sys.exit(main())
