"""Aggregate compliance figures and hold status derivation.

``recompute`` is the single place the maintained counters on a
``LegalHold`` are written. The hold service calls it after every ledger
mutation, inside the same lock and transaction.
"""

from dataclasses import asdict, dataclass
from typing import Iterable

from lexhold.models.legal_hold import (
    CustodianState,
    HoldCustodian,
    HoldStatus,
    LegalHold,
)
from lexhold.services import reminders


@dataclass(frozen=True)
class ComplianceSnapshot:
    total: int
    acknowledged: int
    rate: int
    non_compliant: int
    escalated: int

    def as_dict(self) -> dict:
        return asdict(self)


def compliance_rate(acknowledged: int, total: int) -> int:
    """Percentage rounded half up, 0 for an empty hold."""
    if total <= 0:
        return 0
    return (acknowledged * 200 + total) // (2 * total)


def snapshot(custodians: Iterable[HoldCustodian]) -> ComplianceSnapshot:
    total = acknowledged = non_compliant = escalated = 0
    for custodian in custodians:
        total += 1
        if custodian.state == CustodianState.acknowledged:
            acknowledged += 1
        elif custodian.state == CustodianState.non_compliant:
            non_compliant += 1
        elif custodian.state == CustodianState.escalated:
            escalated += 1
    return ComplianceSnapshot(
        total=total,
        acknowledged=acknowledged,
        rate=compliance_rate(acknowledged, total),
        non_compliant=non_compliant,
        escalated=escalated,
    )


def derive_status(hold: LegalHold) -> HoldStatus:
    custodians = hold.custodians
    released = sum(1 for c in custodians if c.is_released)
    if custodians and released == len(custodians):
        return HoldStatus.released
    if hold.status == HoldStatus.expired:
        return HoldStatus.expired
    if released:
        return HoldStatus.partially_released
    if hold.status in (HoldStatus.released, HoldStatus.partially_released):
        # Only reachable when every released custodian has been removed.
        return HoldStatus.active
    return hold.status


def recompute(hold: LegalHold) -> ComplianceSnapshot:
    current = snapshot(hold.custodians)
    hold.total_custodians = current.total
    hold.acknowledged_custodians = current.acknowledged
    hold.compliance_rate = current.rate
    hold.status = derive_status(hold)
    hold.next_reminder_at = reminders.next_reminder_at(hold)
    return current
