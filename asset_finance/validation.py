"""
Consistency Scan Module

Read-only checks of the cross-entity invariants between assets, loans and
repayment schedules. Violations are reported, never repaired.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List

from .assets import ASSETS_TABLE, AssetStatus
from .exceptions import ConsistencyError
from .loans import ASSET_HOLDING_STATUSES, LOANS_TABLE, LoanStatus
from .schedule import SCHEDULE_TABLE
from .storage import StorageInterface


logger = logging.getLogger(__name__)

_HOLDING = {status.value for status in ASSET_HOLDING_STATUSES}
_SCHEDULED = {LoanStatus.ACTIVE.value, LoanStatus.COMPLETED.value,
              LoanStatus.DEFAULTED.value, LoanStatus.RECOVERED.value}


@dataclass(frozen=True)
class Violation:
    """One broken invariant"""
    entity_type: str
    entity_id: str
    message: str


def find_consistency_violations(storage: StorageInterface) -> List[Violation]:
    """
    Scan assets, loans and schedules for invariant violations

    Checks:
        * an ``assigned`` asset is held by exactly one loan in a holding status
        * a ``transferred`` asset is held by exactly one ``completed`` loan
        * no asset is held by two loans in holding statuses
        * ``0 <= loan_balance <= total_amount``; completed loans have a zero balance
        * scheduled loans have ``total_installments`` rows covering ``total_amount``
        * paid rows never outnumber ``installments_paid``
    """
    violations: List[Violation] = []

    loans = [l for l in storage.load_all(LOANS_TABLE) if not l.get('deleted_at')]
    holders: Dict[str, List[dict]] = defaultdict(list)
    completed: Dict[str, List[dict]] = defaultdict(list)
    for loan in loans:
        if loan.get('status') in _HOLDING:
            holders[loan['asset_id']].append(loan)
        elif loan.get('status') == LoanStatus.COMPLETED.value:
            completed[loan['asset_id']].append(loan)

    for asset in storage.load_all(ASSETS_TABLE):
        if asset.get('deleted_at'):
            continue
        asset_id = asset['id']
        status = asset.get('status')
        held_by = holders.get(asset_id, [])

        if len(held_by) > 1:
            violations.append(Violation(
                "asset", asset_id,
                f"held by {len(held_by)} live loans: "
                + ", ".join(sorted(l['id'] for l in held_by))
            ))
        if status == AssetStatus.ASSIGNED.value and len(held_by) != 1:
            violations.append(Violation(
                "asset", asset_id, f"assigned but held by {len(held_by)} live loans"
            ))
        elif status != AssetStatus.ASSIGNED.value and held_by:
            violations.append(Violation(
                "asset", asset_id, f"{status} but held by live loan {held_by[0]['id']}"
            ))
        if status == AssetStatus.TRANSFERRED.value and len(completed.get(asset_id, [])) != 1:
            violations.append(Violation(
                "asset", asset_id,
                f"transferred but held by {len(completed.get(asset_id, []))} completed loans"
            ))

    schedules: Dict[str, List[dict]] = defaultdict(list)
    for row in storage.load_all(SCHEDULE_TABLE):
        schedules[row['loan_id']].append(row)

    for loan in loans:
        violations.extend(_loan_violations(loan, schedules.get(loan['id'], [])))

    for violation in violations:
        logger.error("Consistency violation on %s %s: %s",
                     violation.entity_type, violation.entity_id, violation.message)
    return violations


def _loan_violations(loan: dict, rows: List[dict]) -> List[Violation]:
    found = []
    loan_id = loan['id']
    balance = Decimal(str(loan['loan_balance']))
    total = Decimal(str(loan['total_amount']))

    if balance < 0 or balance > total:
        found.append(Violation("loan", loan_id, f"balance {balance} outside [0, {total}]"))
    if loan.get('status') == LoanStatus.COMPLETED.value and balance != 0:
        found.append(Violation("loan", loan_id, f"completed with balance {balance}"))

    if loan.get('status') in _SCHEDULED:
        if len(rows) != loan['total_installments']:
            found.append(Violation(
                "loan", loan_id,
                f"{len(rows)} schedule rows, expected {loan['total_installments']}"
            ))
        elif sum(Decimal(str(r['amount_due'])) for r in rows) < total:
            found.append(Violation("loan", loan_id, "schedule does not cover total_amount"))
    elif rows:
        found.append(Violation("loan", loan_id, f"{loan.get('status')} loan has a schedule"))

    paid_rows = sum(1 for r in rows if r.get('is_paid'))
    if paid_rows > loan.get('installments_paid', 0):
        found.append(Violation(
            "loan", loan_id,
            f"{paid_rows} paid rows but installments_paid is {loan.get('installments_paid')}"
        ))
    return found


def assert_consistent(storage: StorageInterface) -> None:
    """
    Raise ConsistencyError if any invariant is violated
    """
    violations = find_consistency_violations(storage)
    if violations:
        logger.critical("%d consistency violations found", len(violations))
        first = violations[0]
        raise ConsistencyError(
            f"{len(violations)} consistency violations, first: "
            f"{first.entity_type} {first.entity_id} {first.message}"
        )
