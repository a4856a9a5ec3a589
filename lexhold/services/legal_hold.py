from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from lexhold.config import settings
from lexhold.errors import (
    AlreadyReleased,
    DuplicateCustodian,
    DuplicateEvidence,
    EmptyCustodianList,
    HoldError,
    InvalidTransition,
    NotFound,
)
from lexhold.models.legal_hold import (
    IN_FORCE_STATUSES,
    AcknowledgmentMethod,
    AuditAction,
    CustodianState,
    HoldCustodian,
    HoldEvidence,
    HoldStatus,
    LegalHold,
    normalize_email,
)
from lexhold.schemas.legal_hold import (
    AuditCorrectionCreate,
    CustodianAddRequest,
    EvidenceCreate,
    LegalHoldCreate,
    LegalHoldUpdate,
)
from lexhold.services import audit_trail, compliance, reminders
from lexhold.services.audit_trail import AuditFilter, AuditQuery
from lexhold.services.clock import Clock, system_clock
from lexhold.services.common import apply_ordering, apply_pagination, coerce_uuid
from lexhold.services.custodian_ledger import CustodianLedger
from lexhold.services.expiry import ExpiryPolicy
from lexhold.services.locks import HoldLockRegistry, hold_locks
from lexhold.services.notification import (
    DeliveryAttemptResult,
    NoticeKind,
    NoticeRequest,
    queue_hold_notice,
)
from lexhold.services.response import ListResponseMixin

logger = logging.getLogger(__name__)

# Archiving is only allowed once a hold no longer binds anyone.
_ARCHIVABLE = frozenset({HoldStatus.draft, HoldStatus.released, HoldStatus.expired})


@dataclass(frozen=True)
class NotifyResult:
    email: str
    notified: bool
    error: str | None = None
    message: str | None = None


def _ensure_editable(hold: LegalHold, attempted: str) -> None:
    if hold.status == HoldStatus.released:
        raise AlreadyReleased(
            f"Legal hold {hold.hold_number} has been released",
            hold_status=hold.status,
            attempted=attempted,
        )
    if hold.status == HoldStatus.expired:
        raise InvalidTransition(
            f"Legal hold {hold.hold_number} has expired",
            hold_status=hold.status,
            attempted=attempted,
        )


def _new_custodian(position: int, email: str, name: str, department, title):
    return HoldCustodian(
        position=position,
        email=email.strip(),
        email_key=normalize_email(email),
        name=name,
        department=department,
        title=title,
        state=CustodianState.pending,
        reminder_count=0,
        is_released=False,
    )


class LegalHolds(ListResponseMixin):
    """Hold aggregate: owns custodian ledgers, compliance and status.

    Every mutation runs under the hold's lock, reloads the hold row
    (``FOR UPDATE``), applies the change, recomputes the maintained
    counters and commits. Any exception rolls the session back. Notices
    are handed to ``notifier`` only after the lock is released.
    """

    def __init__(
        self,
        clock: Clock = system_clock,
        locks: HoldLockRegistry = hold_locks,
        notifier=queue_hold_notice,
    ) -> None:
        self._clock = clock
        self._locks = locks
        self._notifier = notifier

    @property
    def clock(self) -> Clock:
        return self._clock

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _mutate(self, db: Session, hold_id, allow_archived: bool = False):
        hold_uuid = coerce_uuid(hold_id)
        # Holds are never deleted, so the lock registry stays bounded by
        # the number of holds that exist.
        if db.get(LegalHold, hold_uuid) is None:
            raise NotFound("Legal hold not found", hold_id=str(hold_id))
        with self._locks.hold(hold_uuid):
            try:
                hold = db.get(
                    LegalHold,
                    hold_uuid,
                    options=[selectinload(LegalHold.custodians)],
                    populate_existing=True,
                    with_for_update=True,
                )
                if not hold:
                    raise NotFound("Legal hold not found", hold_id=str(hold_id))
                if not hold.is_active and not allow_archived:
                    raise InvalidTransition(
                        f"Legal hold {hold.hold_number} is archived",
                        hold_status=hold.status,
                    )
                yield hold
                compliance.recompute(hold)
                db.commit()
            except Exception:
                db.rollback()
                raise

    def _ledger(self, hold: LegalHold, email: str) -> CustodianLedger:
        custodian = hold.custodian_by_email(email)
        if not custodian:
            raise NotFound(
                f"Custodian {email} is not on legal hold {hold.hold_number}",
                custodian=email,
            )
        return CustodianLedger(hold, custodian, self._clock)

    def notice_for(
        self, hold: LegalHold, custodian: HoldCustodian, kind: NoticeKind
    ) -> NoticeRequest:
        return NoticeRequest(
            hold_id=str(hold.id),
            custodian_email=custodian.email_key,
            kind=kind,
            channel=hold.notification_channel,
            template_ref=hold.notification_template,
            context={
                "kind": kind.value,
                "hold_number": hold.hold_number,
                "hold_name": hold.name,
                "case_ref": hold.case_ref,
                "case_number": hold.case_number,
                "custodian_name": custodian.name,
                "data_types": list(hold.data_types or []),
                "data_sources": list(hold.data_sources or []),
                "preservation_instructions": hold.preservation_instructions,
                "reminder_count": custodian.reminder_count,
            },
        )

    def _send(self, notices: list[NoticeRequest]) -> None:
        for notice in notices:
            self._notifier(notice)

    def _hold_number(self, now: datetime) -> str:
        return f"{settings.hold_number_prefix}-{now.year}-{uuid.uuid4().hex[:8].upper()}"

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, db: Session, payload: LegalHoldCreate) -> LegalHold:
        if not payload.custodians:
            raise EmptyCustodianList("A legal hold needs at least one custodian")
        seen: dict[str, str] = {}
        for entry in payload.custodians:
            key = normalize_email(entry.email)
            if key in seen:
                raise DuplicateCustodian(
                    f"Custodian {entry.email} is listed more than once",
                    email=entry.email,
                    conflicts_with=seen[key],
                )
            seen[key] = entry.email

        now = self._clock.now()
        data = payload.model_dump(exclude={"custodians"})
        data["data_types"] = [dt.value for dt in payload.data_types]
        data["effective_date"] = payload.effective_date or now
        hold = LegalHold(
            id=uuid.uuid4(),
            hold_number=self._hold_number(now),
            status=HoldStatus.draft,
            audit_sequence=0,
            **data,
        )
        for position, entry in enumerate(payload.custodians):
            hold.custodians.append(
                _new_custodian(
                    position, entry.email, entry.name, entry.department, entry.title
                )
            )

        with self._locks.hold(hold.id):
            try:
                db.add(hold)
                audit_trail.append(
                    hold,
                    AuditAction.hold_created,
                    payload.created_by,
                    f"Hold {hold.name} created for case {hold.case_ref} with "
                    f"{len(hold.custodians)} custodian(s)",
                    now,
                )
                compliance.recompute(hold)
                db.commit()
            except Exception:
                db.rollback()
                raise
        db.refresh(hold)
        logger.info("Created legal hold %s (%s)", hold.id, hold.hold_number)
        return hold

    def get(self, db: Session, hold_id: str) -> LegalHold:
        hold = db.get(LegalHold, coerce_uuid(hold_id))
        if not hold:
            raise NotFound("Legal hold not found", hold_id=str(hold_id))
        return hold

    def list(
        self,
        db: Session,
        status: str | None = None,
        case_ref: str | None = None,
        is_active: bool | None = None,
        order_by: str = "created_at",
        order_dir: str = "desc",
        limit: int = 50,
        offset: int = 0,
    ) -> list[LegalHold]:
        stmt = select(LegalHold)
        if status is not None:
            stmt = stmt.where(LegalHold.status == HoldStatus(status))
        if case_ref is not None:
            stmt = stmt.where(LegalHold.case_ref == case_ref)
        if is_active is None:
            stmt = stmt.where(LegalHold.is_active.is_(True))
        else:
            stmt = stmt.where(LegalHold.is_active == is_active)
        stmt = apply_ordering(
            stmt,
            order_by,
            order_dir,
            {
                "name": LegalHold.name,
                "created_at": LegalHold.created_at,
                "issued_at": LegalHold.issued_at,
                "compliance_rate": LegalHold.compliance_rate,
            },
        )
        return list(db.scalars(apply_pagination(stmt, limit, offset)).all())

    def update(self, db: Session, hold_id: str, payload: LegalHoldUpdate) -> LegalHold:
        data = payload.model_dump(exclude_unset=True, exclude={"updated_by"})
        with self._mutate(db, hold_id) as hold:
            _ensure_editable(hold, "update")
            if "data_types" in data and data["data_types"] is not None:
                data["data_types"] = [dt.value for dt in payload.data_types]
            for key, value in data.items():
                setattr(hold, key, value)
            audit_trail.append(
                hold,
                AuditAction.hold_updated,
                payload.updated_by,
                "Updated fields: " + ", ".join(sorted(data)) if data else "No changes",
                self._clock.now(),
            )
        logger.info("Updated legal hold %s", hold.id)
        return hold

    def archive(self, db: Session, hold_id: str, by: str) -> None:
        with self._mutate(db, hold_id) as hold:
            if hold.status not in _ARCHIVABLE:
                raise InvalidTransition(
                    f"Legal hold {hold.hold_number} is still in force",
                    hold_status=hold.status,
                    attempted="archive",
                )
            hold.is_active = False
            audit_trail.append(
                hold, AuditAction.hold_archived, by, None, self._clock.now()
            )
        logger.info("Archived legal hold %s", hold_id)

    # ------------------------------------------------------------------
    # Hold lifecycle
    # ------------------------------------------------------------------

    def issue(self, db: Session, hold_id: str, by: str) -> LegalHold:
        with self._mutate(db, hold_id) as hold:
            if hold.status != HoldStatus.draft:
                raise InvalidTransition(
                    f"Only draft holds can be issued; {hold.hold_number} is "
                    f"{hold.status.value}",
                    hold_status=hold.status,
                    attempted="issue",
                )
            now = self._clock.now()
            hold.status = HoldStatus.active
            hold.issued_at = now
            hold.issued_by = by
            audit_trail.append(hold, AuditAction.hold_issued, by, None, now)
        logger.info("Issued legal hold %s", hold.id)
        return hold

    def add_custodian(
        self, db: Session, hold_id: str, payload: CustodianAddRequest
    ) -> HoldCustodian:
        with self._mutate(db, hold_id) as hold:
            _ensure_editable(hold, "add_custodian")
            existing = hold.custodian_by_email(payload.email)
            if existing:
                raise DuplicateCustodian(
                    f"Custodian {payload.email} is already on the hold",
                    email=payload.email,
                    conflicts_with=existing.email,
                )
            custodian = _new_custodian(
                len(hold.custodians),
                payload.email,
                payload.name,
                payload.department,
                payload.title,
            )
            hold.custodians.append(custodian)
            audit_trail.append(
                hold,
                AuditAction.custodian_added,
                payload.by,
                f"Added {custodian.name}",
                self._clock.now(),
                custodian_email=custodian.email_key,
            )
        logger.info("Added custodian %s to legal hold %s", custodian.id, hold_id)
        return custodian

    def release_hold(
        self,
        db: Session,
        hold_id: str,
        by: str,
        reason: str,
        custodian_emails: list[str] | None = None,
    ) -> LegalHold:
        notices: list[NoticeRequest] = []
        ledgers: list[CustodianLedger] = []
        with self._mutate(db, hold_id) as hold:
            if hold.status == HoldStatus.released:
                raise AlreadyReleased(
                    f"Legal hold {hold.hold_number} is already released",
                    hold_status=hold.status,
                    attempted="release",
                )
            if custodian_emails is None:
                ledgers = [
                    CustodianLedger(hold, c, self._clock)
                    for c in hold.custodians
                    if not c.is_released
                ]
            else:
                if not custodian_emails:
                    raise InvalidTransition(
                        "No custodians named for a partial release",
                        hold_status=hold.status,
                        attempted="release",
                    )
                seen: set[str] = set()
                for email in custodian_emails:
                    key = normalize_email(email)
                    if key not in seen:
                        seen.add(key)
                        ledgers.append(self._ledger(hold, email))

            for ledger in ledgers:
                ledger.release(reason, by)
                if ledger.state != CustodianState.pending:
                    notices.append(
                        self.notice_for(
                            hold, ledger.custodian, NoticeKind.release_notice
                        )
                    )

            now = self._clock.now()
            released_emails = ", ".join(lg.custodian.email_key for lg in ledgers)
            if all(c.is_released for c in hold.custodians):
                hold.released_at = now
                hold.released_by = by
                hold.release_reason = reason
                audit_trail.append(hold, AuditAction.hold_released, by, reason, now)
            else:
                audit_trail.append(
                    hold,
                    AuditAction.hold_partially_released,
                    by,
                    f"{reason} (released: {released_emails})",
                    now,
                )
        self._send(notices)
        logger.info(
            "Released %d custodian(s) on legal hold %s", len(ledgers), hold.id
        )
        return hold

    def apply_expiry(
        self, db: Session, hold_id: str, policy: ExpiryPolicy, by: str = "system"
    ) -> bool:
        with self._mutate(db, hold_id) as hold:
            now = self._clock.now()
            if hold.status not in IN_FORCE_STATUSES or not policy(hold, now):
                return False
            hold.status = HoldStatus.expired
            hold.expired_at = now
            audit_trail.append(
                hold, AuditAction.hold_expired, by, "Expiry policy elapsed", now
            )
        logger.info("Expired legal hold %s", hold_id)
        return True

    # ------------------------------------------------------------------
    # Custodian operations
    # ------------------------------------------------------------------

    def notify_custodian(
        self, db: Session, hold_id: str, email: str, by: str
    ) -> HoldCustodian:
        with self._mutate(db, hold_id) as hold:
            ledger = self._ledger(hold, email)
            ledger.notify(by)
            notice = self.notice_for(hold, ledger.custodian, NoticeKind.hold_notice)
        self._send([notice])
        logger.info("Notified custodian %s on legal hold %s", email, hold_id)
        return ledger.custodian

    def notify_all(self, db: Session, hold_id: str, by: str) -> list[NotifyResult]:
        results: list[NotifyResult] = []
        notices: list[NoticeRequest] = []
        with self._mutate(db, hold_id) as hold:
            for custodian in hold.custodians:
                ledger = CustodianLedger(hold, custodian, self._clock)
                try:
                    ledger.notify(by)
                except HoldError as e:
                    results.append(
                        NotifyResult(custodian.email, False, e.code, e.message)
                    )
                    continue
                notices.append(
                    self.notice_for(hold, custodian, NoticeKind.hold_notice)
                )
                results.append(NotifyResult(custodian.email, True))
        self._send(notices)
        logger.info(
            "Notified %d of %d custodian(s) on legal hold %s",
            len(notices),
            len(results),
            hold_id,
        )
        return results

    def acknowledge_custodian(
        self,
        db: Session,
        hold_id: str,
        email: str,
        method: AcknowledgmentMethod,
        by: str | None = None,
    ) -> HoldCustodian:
        with self._mutate(db, hold_id) as hold:
            ledger = self._ledger(hold, email)
            changed = ledger.acknowledge(method, by)
        if changed:
            logger.info("Custodian %s acknowledged legal hold %s", email, hold_id)
        else:
            logger.info("Duplicate acknowledgment from %s on %s", email, hold_id)
        return ledger.custodian

    def mark_non_compliant(
        self, db: Session, hold_id: str, email: str, reason: str, by: str
    ) -> HoldCustodian:
        with self._mutate(db, hold_id) as hold:
            ledger = self._ledger(hold, email)
            ledger.mark_non_compliant(reason, by)
        logger.info("Custodian %s non-compliant on legal hold %s", email, hold_id)
        return ledger.custodian

    def escalate_custodian(
        self,
        db: Session,
        hold_id: str,
        email: str,
        escalated_to: str,
        reason: str,
        by: str,
    ) -> HoldCustodian:
        with self._mutate(db, hold_id) as hold:
            ledger = self._ledger(hold, email)
            ledger.escalate(escalated_to, reason, by)
        logger.info(
            "Escalated custodian %s on legal hold %s to %s", email, hold_id, escalated_to
        )
        return ledger.custodian

    def record_reminder(
        self,
        db: Session,
        hold_id: str,
        email: str,
        by: str,
        non_compliance_threshold: int = 0,
    ) -> HoldCustodian:
        """Count a reminder that has been dispatched.

        With a threshold, a custodian still only notified after that many
        reminders is marked non-compliant in the same transaction.
        """
        with self._mutate(db, hold_id) as hold:
            ledger = self._ledger(hold, email)
            count = ledger.record_reminder(by)
            if (
                non_compliance_threshold > 0
                and count >= non_compliance_threshold
                and ledger.state == CustodianState.notified
            ):
                ledger.mark_non_compliant(
                    f"No acknowledgment after {count} reminder(s)", by
                )
        logger.info("Recorded reminder for %s on legal hold %s", email, hold_id)
        return ledger.custodian

    def resolve_custodian(
        self, db: Session, hold_id: str, email: str, reason: str, by: str
    ) -> HoldCustodian:
        with self._mutate(db, hold_id) as hold:
            ledger = self._ledger(hold, email)
            ledger.resolve(reason, by)
        logger.info("Resolved escalation for %s on legal hold %s", email, hold_id)
        return ledger.custodian

    def record_interview(
        self,
        db: Session,
        hold_id: str,
        email: str,
        by: str,
        notes: str | None = None,
        completed_at: datetime | None = None,
    ) -> HoldCustodian:
        with self._mutate(db, hold_id) as hold:
            ledger = self._ledger(hold, email)
            ledger.record_interview(by, notes, completed_at)
        return ledger.custodian

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def compliance_snapshot(self, db: Session, hold_id: str):
        hold_uuid = coerce_uuid(hold_id)
        custodians = db.scalars(
            select(HoldCustodian).where(HoldCustodian.legal_hold_id == hold_uuid)
        ).all()
        if not custodians and not db.get(LegalHold, hold_uuid):
            raise NotFound("Legal hold not found", hold_id=str(hold_id))
        return compliance.snapshot(custodians)

    def audit_query(
        self, db: Session, hold_id: str, audit_filter: AuditFilter | None = None
    ) -> AuditQuery:
        hold = self.get(db, hold_id)
        return AuditQuery(db, hold.id, audit_filter)

    def due_reminders(
        self, db: Session, hold_id: str, now: datetime | None = None
    ) -> list[HoldCustodian]:
        hold = self.get(db, hold_id)
        return reminders.due_custodians(hold, now or self._clock.now())

    def holds_for_custodian(self, db: Session, email: str) -> list[LegalHold]:
        stmt = (
            select(LegalHold)
            .join(HoldCustodian, HoldCustodian.legal_hold_id == LegalHold.id)
            .where(
                HoldCustodian.email_key == normalize_email(email),
                HoldCustodian.is_released.is_(False),
                LegalHold.status.in_(IN_FORCE_STATUSES),
                LegalHold.is_active.is_(True),
            )
            .order_by(LegalHold.issued_at.desc())
        )
        return list(db.scalars(stmt).unique().all())

    # ------------------------------------------------------------------
    # Audit-only appends
    # ------------------------------------------------------------------

    def record_dispatch_outcome(
        self,
        db: Session,
        hold_id: str,
        custodian_email: str,
        kind: NoticeKind,
        result: DeliveryAttemptResult,
    ) -> None:
        action = (
            AuditAction.notice_delivered
            if result.delivered
            else AuditAction.notice_dispatch_failed
        )
        with self._mutate(db, hold_id, allow_archived=True) as hold:
            audit_trail.append(
                hold,
                action,
                "system",
                f"{kind.value} via {result.channel.value}: {result.detail or ''}".strip(),
                self._clock.now(),
                custodian_email=normalize_email(custodian_email),
            )
        if not result.delivered:
            logger.warning(
                "%s to %s on legal hold %s failed: %s",
                kind.value,
                custodian_email,
                hold_id,
                result.detail,
            )

    def record_dispatch_deferral(
        self,
        db: Session,
        hold_id: str,
        custodian_email: str,
        kind: NoticeKind,
        until: datetime,
    ) -> None:
        with self._mutate(db, hold_id, allow_archived=True) as hold:
            audit_trail.append(
                hold,
                AuditAction.notice_deferred,
                "system",
                f"{kind.value} deferred for quiet hours until {until.isoformat()}",
                self._clock.now(),
                custodian_email=normalize_email(custodian_email),
            )

    def record_audit_correction(
        self, db: Session, hold_id: str, payload: AuditCorrectionCreate
    ):
        with self._mutate(db, hold_id, allow_archived=True) as hold:
            if payload.corrects_sequence > hold.audit_sequence:
                raise NotFound(
                    f"Audit entry {payload.corrects_sequence} does not exist",
                    corrects_sequence=payload.corrects_sequence,
                )
            entry = audit_trail.append(
                hold,
                AuditAction.audit_correction,
                payload.actor,
                payload.detail,
                self._clock.now(),
                corrects_sequence=payload.corrects_sequence,
            )
        logger.info(
            "Recorded correction of audit entry %d on legal hold %s",
            payload.corrects_sequence,
            hold_id,
        )
        return entry

    # ------------------------------------------------------------------
    # Evidence references
    # ------------------------------------------------------------------

    def record_evidence(
        self, db: Session, hold_id: str, payload: EvidenceCreate
    ) -> HoldEvidence:
        with self._mutate(db, hold_id) as hold:
            if any(e.evidence_ref == payload.evidence_ref for e in hold.evidence):
                raise DuplicateEvidence(
                    f"Evidence {payload.evidence_ref} is already recorded",
                    evidence_ref=payload.evidence_ref,
                )
            custodian_email = None
            if payload.custodian_email is not None:
                custodian_email = self._ledger(
                    hold, payload.custodian_email
                ).custodian.email_key
            now = self._clock.now()
            evidence = HoldEvidence(
                evidence_ref=payload.evidence_ref,
                custodian_email=custodian_email,
                collected_at=payload.collected_at or now,
                recorded_by=payload.recorded_by,
            )
            hold.evidence.append(evidence)
            audit_trail.append(
                hold,
                AuditAction.evidence_recorded,
                payload.recorded_by,
                f"Evidence {payload.evidence_ref} collected",
                now,
                custodian_email=custodian_email,
            )
        logger.info("Recorded evidence %s on legal hold %s", evidence.id, hold_id)
        return evidence

    def list_evidence(self, db: Session, hold_id: str) -> list[HoldEvidence]:
        hold = self.get(db, hold_id)
        return list(hold.evidence)


legal_holds = LegalHolds()
