"""Per-custodian compliance state machine.

    pending --notify--> notified --acknowledge--> acknowledged
    notified --mark_non_compliant--> non_compliant --acknowledge--> acknowledged
    non_compliant --escalate--> escalated --acknowledge--> acknowledged
    escalated --resolve--> resolved

``release`` sets an orthogonal flag from any state and freezes the ledger.
"""

import logging
from datetime import datetime

from lexhold.errors import AlreadyReleased, CustodianReleased, InvalidTransition
from lexhold.models.legal_hold import (
    IN_FORCE_STATUSES,
    AcknowledgmentMethod,
    AuditAction,
    CustodianState,
    HoldCustodian,
    HoldStatus,
    LegalHold,
)
from lexhold.services import audit_trail
from lexhold.services.clock import Clock, system_clock

logger = logging.getLogger(__name__)

_ACKNOWLEDGEABLE = frozenset(
    {
        CustodianState.notified,
        CustodianState.non_compliant,
        CustodianState.escalated,
    }
)
_REMINDABLE = frozenset({CustodianState.notified, CustodianState.non_compliant})


class CustodianLedger:
    def __init__(
        self,
        hold: LegalHold,
        custodian: HoldCustodian,
        clock: Clock = system_clock,
    ) -> None:
        self.hold = hold
        self.custodian = custodian
        self._clock = clock

    @property
    def state(self) -> CustodianState:
        return self.custodian.state

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _ensure_open(self, attempted: str) -> None:
        if self.custodian.is_released:
            raise CustodianReleased(
                f"Custodian {self.custodian.email} has been released from the hold",
                custodian=self.custodian.email,
                current_state=self.custodian.state,
                attempted=attempted,
            )
        if self.hold.status == HoldStatus.released:
            raise AlreadyReleased(
                f"Legal hold {self.hold.hold_number} has been released",
                hold_status=self.hold.status,
                attempted=attempted,
            )
        if self.hold.status == HoldStatus.expired:
            raise InvalidTransition(
                f"Legal hold {self.hold.hold_number} has expired",
                hold_status=self.hold.status,
                current_state=self.custodian.state,
                attempted=attempted,
            )

    def _require(self, attempted: str, allowed: frozenset[CustodianState]) -> None:
        self._ensure_open(attempted)
        if self.custodian.state not in allowed:
            raise InvalidTransition(
                f"Cannot {attempted} custodian {self.custodian.email} "
                f"in state {self.custodian.state.value}",
                custodian=self.custodian.email,
                current_state=self.custodian.state,
                attempted=attempted,
                allowed_from=sorted(s.value for s in allowed),
            )

    def _audit(self, action: AuditAction, actor: str, detail: str | None, at: datetime):
        return audit_trail.append(
            self.hold,
            action,
            actor,
            detail,
            at,
            custodian_email=self.custodian.email_key,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def notify(self, by: str) -> None:
        self._require("notify", frozenset({CustodianState.pending}))
        if self.hold.status not in IN_FORCE_STATUSES:
            raise InvalidTransition(
                f"Legal hold {self.hold.hold_number} must be issued before "
                "custodians are notified",
                hold_status=self.hold.status,
                current_state=self.custodian.state,
                attempted="notify",
            )
        now = self._clock.now()
        self.custodian.state = CustodianState.notified
        self.custodian.notified_at = now
        self._audit(
            AuditAction.custodian_notified,
            by,
            f"Hold notice requested for {self.custodian.email}",
            now,
        )

    def acknowledge(self, method: AcknowledgmentMethod, by: str | None = None) -> bool:
        """Returns False when the custodian had already acknowledged."""
        actor = by or self.custodian.email
        self._ensure_open("acknowledge")
        now = self._clock.now()
        if self.custodian.state == CustodianState.acknowledged:
            first = self.custodian.acknowledged_at
            self._audit(
                AuditAction.custodian_acknowledgment_repeated,
                actor,
                f"Duplicate acknowledgment via {method.value}; first recorded "
                f"{first.isoformat() if first else 'unknown'}",
                now,
            )
            return False
        self._require("acknowledge", _ACKNOWLEDGEABLE)
        previous = self.custodian.state
        self.custodian.state = CustodianState.acknowledged
        self.custodian.acknowledged_at = now
        self.custodian.acknowledgment_method = method
        self._audit(
            AuditAction.custodian_acknowledged,
            actor,
            f"Hold acknowledged via {method.value} (was {previous.value})",
            now,
        )
        return True

    def mark_non_compliant(self, reason: str, by: str) -> None:
        self._require("mark_non_compliant", frozenset({CustodianState.notified}))
        now = self._clock.now()
        self.custodian.state = CustodianState.non_compliant
        self.custodian.non_compliant_at = now
        self.custodian.non_compliance_reason = reason
        self._audit(AuditAction.custodian_non_compliant, by, reason, now)

    def escalate(self, escalated_to: str, reason: str, by: str) -> None:
        self._require("escalate", frozenset({CustodianState.non_compliant}))
        now = self._clock.now()
        self.custodian.state = CustodianState.escalated
        self.custodian.escalated_at = now
        self.custodian.escalated_to = escalated_to
        self.custodian.escalation_reason = reason
        self._audit(
            AuditAction.custodian_escalated,
            by,
            f"Escalated to {escalated_to}: {reason}",
            now,
        )

    def record_reminder(self, by: str) -> int:
        self._require("record_reminder", _REMINDABLE)
        now = self._clock.now()
        self.custodian.reminder_count = (self.custodian.reminder_count or 0) + 1
        self.custodian.last_reminder_at = now
        self._audit(
            AuditAction.custodian_reminded,
            by,
            f"Reminder #{self.custodian.reminder_count} sent",
            now,
        )
        return self.custodian.reminder_count

    def resolve(self, reason: str, by: str) -> None:
        self._require("resolve", frozenset({CustodianState.escalated}))
        now = self._clock.now()
        self.custodian.state = CustodianState.resolved
        self.custodian.resolved_at = now
        self._audit(AuditAction.custodian_resolved, by, reason, now)

    def record_interview(
        self, by: str, notes: str | None = None, completed_at: datetime | None = None
    ) -> None:
        self._ensure_open("record_interview")
        if self.custodian.state == CustodianState.pending:
            raise InvalidTransition(
                f"Custodian {self.custodian.email} has not been notified yet",
                custodian=self.custodian.email,
                current_state=self.custodian.state,
                attempted="record_interview",
            )
        now = self._clock.now()
        self.custodian.interview_completed_at = completed_at or now
        self.custodian.interview_notes = notes
        self._audit(
            AuditAction.custodian_interviewed,
            by,
            notes or "Custodian interview completed",
            now,
        )

    def release(self, reason: str, by: str) -> None:
        if self.custodian.is_released:
            raise CustodianReleased(
                f"Custodian {self.custodian.email} is already released",
                custodian=self.custodian.email,
                current_state=self.custodian.state,
                attempted="release",
            )
        now = self._clock.now()
        self.custodian.is_released = True
        self.custodian.released_at = now
        self.custodian.released_by = by
        self.custodian.release_reason = reason
        self._audit(AuditAction.custodian_released, by, reason, now)
