from datetime import datetime, timedelta, timezone

import pytest

from lexhold.models.legal_hold import (
    AcknowledgmentMethod,
    CustodianState,
    HoldCustodian,
    HoldStatus,
    LegalHold,
    ReminderCadence,
)
from lexhold.services import compliance, reminders

START = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def _hold(cadence=ReminderCadence.weekly, status=HoldStatus.active, custodians=()):
    hold = LegalHold(
        hold_number="LH-2026-TEST0002",
        name="Pure",
        case_ref="CASE-P",
        created_by="counsel@x.com",
        status=status,
        reminder_cadence=cadence,
        audit_sequence=0,
    )
    for position, (email, state, notified_at) in enumerate(custodians):
        hold.custodians.append(
            HoldCustodian(
                position=position,
                email=email,
                email_key=email,
                name=email,
                state=state,
                notified_at=notified_at,
                reminder_count=0,
                is_released=False,
            )
        )
    return hold


class TestComplianceRate:
    @pytest.mark.parametrize(
        "acknowledged,total,rate",
        [
            (0, 0, 0),
            (0, 3, 0),
            (1, 3, 33),
            (2, 3, 67),
            (1, 2, 50),
            (1, 8, 13),
            (3, 3, 100),
        ],
    )
    def test_half_up_rounding(self, acknowledged, total, rate):
        assert compliance.compliance_rate(acknowledged, total) == rate

    def test_snapshot_counts_states(self):
        hold = _hold(
            custodians=[
                ("a@x.com", CustodianState.acknowledged, START),
                ("b@x.com", CustodianState.non_compliant, START),
                ("c@x.com", CustodianState.escalated, START),
                ("d@x.com", CustodianState.notified, START),
            ]
        )
        snap = compliance.snapshot(hold.custodians)
        assert snap.as_dict() == {
            "total": 4,
            "acknowledged": 1,
            "rate": 25,
            "non_compliant": 1,
            "escalated": 1,
        }

    def test_status_derivation(self):
        hold = _hold(
            custodians=[
                ("a@x.com", CustodianState.notified, START),
                ("b@x.com", CustodianState.notified, START),
            ]
        )
        assert compliance.derive_status(hold) == HoldStatus.active
        hold.custodians[0].is_released = True
        assert compliance.derive_status(hold) == HoldStatus.partially_released
        hold.custodians[1].is_released = True
        assert compliance.derive_status(hold) == HoldStatus.released

    def test_expired_stays_expired_until_fully_released(self):
        hold = _hold(
            status=HoldStatus.expired,
            custodians=[("a@x.com", CustodianState.notified, START)],
        )
        assert compliance.derive_status(hold) == HoldStatus.expired
        hold.custodians[0].is_released = True
        assert compliance.derive_status(hold) == HoldStatus.released


class TestDueCustodians:
    def test_not_due_at_exact_interval(self):
        hold = _hold(custodians=[("a@x.com", CustodianState.notified, START)])
        assert reminders.due_custodians(hold, START + timedelta(days=7)) == []
        due = reminders.due_custodians(hold, START + timedelta(days=7, seconds=1))
        assert [c.email for c in due] == ["a@x.com"]

    @pytest.mark.parametrize(
        "cadence,days",
        [
            (ReminderCadence.biweekly, 14),
            (ReminderCadence.monthly, 30),
            (ReminderCadence.quarterly, 90),
        ],
    )
    def test_cadence_intervals(self, cadence, days):
        hold = _hold(
            cadence=cadence,
            custodians=[("a@x.com", CustodianState.notified, START)],
        )
        assert reminders.due_custodians(hold, START + timedelta(days=days)) == []
        later = START + timedelta(days=days, hours=1)
        assert len(reminders.due_custodians(hold, later)) == 1

    def test_cadence_none_never_due(self):
        hold = _hold(
            cadence=ReminderCadence.none,
            custodians=[("a@x.com", CustodianState.notified, START)],
        )
        assert reminders.due_custodians(hold, START + timedelta(days=3650)) == []
        assert reminders.next_reminder_at(hold) is None

    def test_anchor_moves_with_last_reminder(self):
        hold = _hold(custodians=[("a@x.com", CustodianState.non_compliant, START)])
        hold.custodians[0].last_reminder_at = START + timedelta(days=7)
        assert reminders.due_custodians(hold, START + timedelta(days=10)) == []
        assert reminders.due_custodians(hold, START + timedelta(days=14)) == []
        assert len(reminders.due_custodians(hold, START + timedelta(days=15))) == 1

    def test_excludes_ineligible(self):
        hold = _hold(
            custodians=[
                ("pending@x.com", CustodianState.pending, None),
                ("ack@x.com", CustodianState.acknowledged, START),
                ("esc@x.com", CustodianState.escalated, START),
                ("gone@x.com", CustodianState.notified, START),
                ("due@x.com", CustodianState.notified, START),
            ]
        )
        hold.custodians[3].is_released = True
        due = reminders.due_custodians(hold, START + timedelta(days=30))
        assert [c.email for c in due] == ["due@x.com"]

    def test_hold_not_in_force(self):
        hold = _hold(
            status=HoldStatus.draft,
            custodians=[("a@x.com", CustodianState.notified, START)],
        )
        assert reminders.due_custodians(hold, START + timedelta(days=30)) == []

    def test_next_reminder_is_earliest_anchor(self):
        later = START + timedelta(days=3)
        hold = _hold(
            custodians=[
                ("a@x.com", CustodianState.notified, later),
                ("b@x.com", CustodianState.notified, START),
            ]
        )
        assert reminders.next_reminder_at(hold) == START + timedelta(days=7)


class TestReminderCounts:
    def test_count_never_decreases_across_operations(
        self, db_session, service, clock, make_hold
    ):
        hold = make_hold(notify=True)
        counts = []
        for _ in range(3):
            clock.advance(days=7)
            custodian = service.record_reminder(db_session, hold.id, "a@x.com", "system")
            counts.append(custodian.reminder_count)
        service.acknowledge_custodian(
            db_session, hold.id, "a@x.com", AcknowledgmentMethod.email
        )
        assert counts == [1, 2, 3]
        assert hold.custodian_by_email("a@x.com").reminder_count == 3
