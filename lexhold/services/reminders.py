"""Reminder cadence evaluation.

Everything here is a pure function of persisted hold state and the
supplied time. Callers dispatch first and call ``record_reminder`` only
for reminders that actually went out.
"""

from datetime import datetime, timedelta

from lexhold.models.legal_hold import (
    IN_FORCE_STATUSES,
    CustodianState,
    HoldCustodian,
    LegalHold,
    ReminderCadence,
)

CADENCE_INTERVALS: dict[ReminderCadence, timedelta | None] = {
    ReminderCadence.none: None,
    ReminderCadence.weekly: timedelta(days=7),
    ReminderCadence.biweekly: timedelta(days=14),
    ReminderCadence.monthly: timedelta(days=30),
    ReminderCadence.quarterly: timedelta(days=90),
}

REMINDABLE_STATES = frozenset({CustodianState.notified, CustodianState.non_compliant})


def cadence_interval(cadence: ReminderCadence) -> timedelta | None:
    return CADENCE_INTERVALS[cadence]


def reminder_anchor(custodian: HoldCustodian) -> datetime | None:
    return custodian.last_reminder_at or custodian.notified_at


def _eligible(hold: LegalHold) -> list[HoldCustodian]:
    if hold.status not in IN_FORCE_STATUSES:
        return []
    return [
        c
        for c in hold.custodians
        if not c.is_released
        and c.state in REMINDABLE_STATES
        and reminder_anchor(c) is not None
    ]


def due_custodians(hold: LegalHold, now: datetime) -> list[HoldCustodian]:
    interval = cadence_interval(hold.reminder_cadence)
    if interval is None:
        return []
    return [c for c in _eligible(hold) if now - reminder_anchor(c) > interval]


def next_reminder_at(hold: LegalHold) -> datetime | None:
    interval = cadence_interval(hold.reminder_cadence)
    if interval is None:
        return None
    anchors = [reminder_anchor(c) for c in _eligible(hold)]
    if not anchors:
        return None
    return min(anchors) + interval
