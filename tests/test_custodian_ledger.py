import pytest

from lexhold.errors import AlreadyReleased, CustodianReleased, InvalidTransition
from lexhold.models.legal_hold import (
    AcknowledgmentMethod,
    AuditAction,
    CustodianState,
    HoldCustodian,
    HoldStatus,
    LegalHold,
)
from lexhold.services.custodian_ledger import CustodianLedger


def _ledger(clock, status=HoldStatus.active, state=CustodianState.pending):
    hold = LegalHold(
        hold_number="LH-2026-TEST0001",
        name="Test hold",
        case_ref="CASE-1",
        created_by="counsel@x.com",
        status=status,
        audit_sequence=0,
    )
    custodian = HoldCustodian(
        position=0,
        email="A@x.com",
        email_key="a@x.com",
        name="A",
        state=state,
        reminder_count=0,
        is_released=False,
    )
    hold.custodians.append(custodian)
    return CustodianLedger(hold, custodian, clock)


def _actions(ledger):
    return [entry.action for entry in ledger.hold.audit_entries]


class TestNotify:
    def test_pending_to_notified(self, clock):
        ledger = _ledger(clock)
        ledger.notify("counsel@x.com")
        assert ledger.state == CustodianState.notified
        assert ledger.custodian.notified_at == clock.now()
        assert _actions(ledger) == [AuditAction.custodian_notified]

    def test_requires_issued_hold(self, clock):
        ledger = _ledger(clock, status=HoldStatus.draft)
        with pytest.raises(InvalidTransition) as exc:
            ledger.notify("counsel@x.com")
        assert exc.value.details["hold_status"] == "draft"
        assert ledger.state == CustodianState.pending

    def test_notify_twice_rejected(self, clock):
        ledger = _ledger(clock)
        ledger.notify("counsel@x.com")
        with pytest.raises(InvalidTransition) as exc:
            ledger.notify("counsel@x.com")
        assert exc.value.details["current_state"] == "notified"
        assert exc.value.details["attempted"] == "notify"


class TestAcknowledge:
    def test_records_time_and_method(self, clock):
        ledger = _ledger(clock, state=CustodianState.notified)
        assert ledger.acknowledge(AcknowledgmentMethod.email) is True
        assert ledger.state == CustodianState.acknowledged
        assert ledger.custodian.acknowledged_at == clock.now()
        assert ledger.custodian.acknowledgment_method == AcknowledgmentMethod.email

    def test_actor_defaults_to_custodian(self, clock):
        ledger = _ledger(clock, state=CustodianState.notified)
        ledger.acknowledge(AcknowledgmentMethod.system)
        assert ledger.hold.audit_entries[-1].actor == "A@x.com"

    def test_duplicate_is_idempotent(self, clock):
        ledger = _ledger(clock, state=CustodianState.notified)
        ledger.acknowledge(AcknowledgmentMethod.email)
        first_at = ledger.custodian.acknowledged_at
        clock.advance(days=1)

        assert ledger.acknowledge(AcknowledgmentMethod.phone) is False
        assert ledger.custodian.acknowledged_at == first_at
        assert ledger.custodian.acknowledgment_method == AcknowledgmentMethod.email
        assert _actions(ledger) == [
            AuditAction.custodian_acknowledged,
            AuditAction.custodian_acknowledgment_repeated,
        ]

    def test_pending_cannot_acknowledge(self, clock):
        ledger = _ledger(clock)
        with pytest.raises(InvalidTransition):
            ledger.acknowledge(AcknowledgmentMethod.email)
        assert ledger.custodian.acknowledged_at is None

    def test_escalated_can_still_acknowledge(self, clock):
        ledger = _ledger(clock, state=CustodianState.escalated)
        assert ledger.acknowledge(AcknowledgmentMethod.in_person) is True
        assert ledger.state == CustodianState.acknowledged


class TestNonComplianceAndEscalation:
    def test_full_escalation_path(self, clock):
        ledger = _ledger(clock, state=CustodianState.notified)
        ledger.mark_non_compliant("no response", "counsel@x.com")
        assert ledger.state == CustodianState.non_compliant
        assert ledger.custodian.non_compliance_reason == "no response"

        ledger.escalate("manager@x.com", "overdue", "counsel@x.com")
        assert ledger.state == CustodianState.escalated
        assert ledger.custodian.escalated_to == "manager@x.com"

        ledger.resolve("handled by HR", "counsel@x.com")
        assert ledger.state == CustodianState.resolved
        assert ledger.custodian.resolved_at == clock.now()

    def test_escalate_requires_non_compliant(self, clock):
        ledger = _ledger(clock, state=CustodianState.notified)
        with pytest.raises(InvalidTransition) as exc:
            ledger.escalate("manager@x.com", "overdue", "counsel@x.com")
        assert exc.value.details["allowed_from"] == ["non_compliant"]

    def test_acknowledged_cannot_be_marked_non_compliant(self, clock):
        ledger = _ledger(clock, state=CustodianState.acknowledged)
        with pytest.raises(InvalidTransition):
            ledger.mark_non_compliant("late", "counsel@x.com")


class TestReminders:
    def test_count_is_monotonic(self, clock):
        ledger = _ledger(clock, state=CustodianState.notified)
        assert ledger.record_reminder("system") == 1
        clock.advance(days=7)
        assert ledger.record_reminder("system") == 2
        assert ledger.custodian.last_reminder_at == clock.now()
        assert ledger.state == CustodianState.notified

    def test_acknowledged_not_remindable(self, clock):
        ledger = _ledger(clock, state=CustodianState.acknowledged)
        with pytest.raises(InvalidTransition):
            ledger.record_reminder("system")
        assert ledger.custodian.reminder_count == 0


class TestInterview:
    def test_records_interview(self, clock):
        ledger = _ledger(clock, state=CustodianState.acknowledged)
        ledger.record_interview("counsel@x.com", notes="Reviewed mailbox")
        assert ledger.custodian.interview_completed_at == clock.now()
        assert ledger.custodian.interview_notes == "Reviewed mailbox"

    def test_pending_cannot_be_interviewed(self, clock):
        ledger = _ledger(clock)
        with pytest.raises(InvalidTransition):
            ledger.record_interview("counsel@x.com")


class TestRelease:
    def test_release_freezes_ledger(self, clock):
        ledger = _ledger(clock, state=CustodianState.notified)
        ledger.release("matter closed", "counsel@x.com")
        assert ledger.custodian.is_released is True
        assert ledger.state == CustodianState.notified

        with pytest.raises(CustodianReleased):
            ledger.acknowledge(AcknowledgmentMethod.email)
        with pytest.raises(CustodianReleased):
            ledger.release("again", "counsel@x.com")

    def test_released_hold_rejects_transitions(self, clock):
        ledger = _ledger(clock, status=HoldStatus.released)
        with pytest.raises(AlreadyReleased):
            ledger.notify("counsel@x.com")

    def test_expired_hold_rejects_transitions(self, clock):
        ledger = _ledger(
            clock, status=HoldStatus.expired, state=CustodianState.notified
        )
        with pytest.raises(InvalidTransition) as exc:
            ledger.acknowledge(AcknowledgmentMethod.email)
        assert exc.value.details["hold_status"] == "expired"
