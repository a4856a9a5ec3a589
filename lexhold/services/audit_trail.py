"""Append-only, per-hold audit trail."""

import uuid
from dataclasses import dataclass
from datetime import datetime

from prometheus_client import Counter
from sqlalchemy import select
from sqlalchemy.orm import Session, object_session

from lexhold.models.legal_hold import AuditAction, HoldAuditEntry, LegalHold

AUDIT_ENTRIES = Counter(
    "lexhold_audit_entries_total",
    "Audit entries appended to legal holds",
    ["action"],
)


def append(
    hold: LegalHold,
    action: AuditAction,
    actor: str,
    detail: str | None,
    at: datetime,
    custodian_email: str | None = None,
    corrects_sequence: int | None = None,
) -> HoldAuditEntry:
    """Record one action against ``hold``.

    No business validation happens here. The caller must hold the
    hold's lock so the sequence number is not handed out twice.
    """
    hold.audit_sequence = (hold.audit_sequence or 0) + 1
    entry = HoldAuditEntry(
        legal_hold=hold,
        sequence=hold.audit_sequence,
        action=action,
        actor=actor,
        detail=detail,
        custodian_email=custodian_email,
        corrects_sequence=corrects_sequence,
        created_at=at,
    )
    session = object_session(hold)
    if session is not None:
        session.add(entry)
    AUDIT_ENTRIES.labels(action=action.value).inc()
    return entry


@dataclass(frozen=True)
class AuditFilter:
    actor: str | None = None
    action: AuditAction | None = None
    since: datetime | None = None
    until: datetime | None = None
    custodian_email: str | None = None


class AuditQuery:
    """Lazy view over one hold's audit entries in sequence order.

    Nothing is read until iteration. Every iteration runs a fresh query,
    so iterating again yields the same entries plus anything appended
    in between.
    """

    def __init__(
        self,
        db: Session,
        hold_id: uuid.UUID,
        audit_filter: AuditFilter | None = None,
        batch_size: int = 200,
    ) -> None:
        self._db = db
        self._hold_id = hold_id
        self._filter = audit_filter or AuditFilter()
        self._batch_size = batch_size

    def statement(self):
        f = self._filter
        stmt = select(HoldAuditEntry).where(
            HoldAuditEntry.legal_hold_id == self._hold_id
        )
        if f.actor is not None:
            stmt = stmt.where(HoldAuditEntry.actor == f.actor)
        if f.action is not None:
            stmt = stmt.where(HoldAuditEntry.action == f.action)
        if f.since is not None:
            stmt = stmt.where(HoldAuditEntry.created_at >= f.since)
        if f.until is not None:
            stmt = stmt.where(HoldAuditEntry.created_at <= f.until)
        if f.custodian_email is not None:
            stmt = stmt.where(
                HoldAuditEntry.custodian_email == f.custodian_email.strip().lower()
            )
        return stmt.order_by(HoldAuditEntry.sequence.asc())

    def __iter__(self):
        result = self._db.scalars(
            self.statement().execution_options(yield_per=self._batch_size)
        )
        yield from result

    def page(self, limit: int, offset: int) -> list[HoldAuditEntry]:
        stmt = self.statement().limit(limit).offset(offset)
        return list(self._db.scalars(stmt))
