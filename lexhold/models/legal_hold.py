import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lexhold.db import Base, UTCDateTime, utcnow


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class HoldStatus(enum.Enum):
    draft = "draft"
    active = "active"
    released = "released"
    partially_released = "partially_released"
    expired = "expired"


class CustodianState(enum.Enum):
    pending = "pending"
    notified = "notified"
    acknowledged = "acknowledged"
    non_compliant = "non_compliant"
    escalated = "escalated"
    resolved = "resolved"


class ReminderCadence(enum.Enum):
    none = "none"
    weekly = "weekly"
    biweekly = "biweekly"
    monthly = "monthly"
    quarterly = "quarterly"


class AcknowledgmentMethod(enum.Enum):
    email = "email"
    in_person = "in_person"
    phone = "phone"
    system = "system"


class NotificationChannel(enum.Enum):
    email = "email"
    in_app = "in_app"
    sms = "sms"


class DataType(enum.Enum):
    email = "email"
    documents = "documents"
    database = "database"
    social_media = "social_media"
    text_messages = "text_messages"
    voice_mail = "voice_mail"
    calendar = "calendar"
    instant_messages = "instant_messages"
    other = "other"


class AuditAction(enum.Enum):
    hold_created = "hold.created"
    hold_updated = "hold.updated"
    hold_issued = "hold.issued"
    hold_released = "hold.released"
    hold_partially_released = "hold.partially_released"
    hold_expired = "hold.expired"
    hold_archived = "hold.archived"

    custodian_added = "custodian.added"
    custodian_notified = "custodian.notified"
    custodian_acknowledged = "custodian.acknowledged"
    custodian_acknowledgment_repeated = "custodian.acknowledgment_repeated"
    custodian_non_compliant = "custodian.non_compliant"
    custodian_escalated = "custodian.escalated"
    custodian_reminded = "custodian.reminded"
    custodian_resolved = "custodian.resolved"
    custodian_interviewed = "custodian.interviewed"
    custodian_released = "custodian.released"

    notice_delivered = "notice.delivered"
    notice_dispatch_failed = "notice.dispatch_failed"
    notice_deferred = "notice.deferred"

    evidence_recorded = "evidence.recorded"
    audit_correction = "audit.correction"


# Statuses under which custodians may still be notified and reminded.
IN_FORCE_STATUSES = frozenset({HoldStatus.active, HoldStatus.partially_released})


# ---------------------------------------------------------------------------
# Legal Holds
# ---------------------------------------------------------------------------


class LegalHold(Base):
    __tablename__ = "legal_holds"
    __table_args__ = (
        Index("ix_legal_holds_case_ref", "case_ref"),
        Index("ix_legal_holds_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    hold_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    case_ref: Mapped[str] = mapped_column(String(120), nullable=False)
    case_number: Mapped[str | None] = mapped_column(String(120))
    description: Mapped[str | None] = mapped_column(Text)
    legal_basis: Mapped[str | None] = mapped_column(Text)
    scope: Mapped[str | None] = mapped_column(Text)
    data_types: Mapped[list] = mapped_column(JSON, default=list)
    data_sources: Mapped[list] = mapped_column(JSON, default=list)
    preservation_instructions: Mapped[str | None] = mapped_column(Text)

    status: Mapped[HoldStatus] = mapped_column(
        Enum(HoldStatus), default=HoldStatus.draft, nullable=False
    )
    reminder_cadence: Mapped[ReminderCadence] = mapped_column(
        Enum(ReminderCadence), default=ReminderCadence.monthly, nullable=False
    )
    notification_template: Mapped[str | None] = mapped_column(String(255))
    notification_channel: Mapped[NotificationChannel] = mapped_column(
        Enum(NotificationChannel), default=NotificationChannel.email, nullable=False
    )

    issued_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    issued_by: Mapped[str | None] = mapped_column(String(255))
    effective_date: Mapped[datetime | None] = mapped_column(UTCDateTime)
    released_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    released_by: Mapped[str | None] = mapped_column(String(255))
    release_reason: Mapped[str | None] = mapped_column(Text)
    expired_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    total_custodians: Mapped[int] = mapped_column(Integer, default=0)
    acknowledged_custodians: Mapped[int] = mapped_column(Integer, default=0)
    compliance_rate: Mapped[int] = mapped_column(Integer, default=0)
    next_reminder_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    audit_sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )

    custodians = relationship(
        "HoldCustodian",
        back_populates="legal_hold",
        cascade="all, delete-orphan",
        order_by="HoldCustodian.position",
    )
    audit_entries = relationship(
        "HoldAuditEntry",
        back_populates="legal_hold",
        order_by="HoldAuditEntry.sequence",
    )
    evidence = relationship(
        "HoldEvidence",
        back_populates="legal_hold",
        order_by="HoldEvidence.created_at",
    )

    def custodian_by_email(self, email: str) -> "HoldCustodian | None":
        key = normalize_email(email)
        for custodian in self.custodians:
            if custodian.email_key == key:
                return custodian
        return None


# ---------------------------------------------------------------------------
# Custodians
# ---------------------------------------------------------------------------


class HoldCustodian(Base):
    __tablename__ = "hold_custodians"
    __table_args__ = (
        UniqueConstraint(
            "legal_hold_id", "email_key", name="uq_hold_custodians_hold_email"
        ),
        Index("ix_hold_custodians_email_key", "email_key"),
        Index("ix_hold_custodians_state", "state"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    legal_hold_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("legal_holds.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    email_key: Mapped[str] = mapped_column(String(320), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    department: Mapped[str | None] = mapped_column(String(255))
    title: Mapped[str | None] = mapped_column(String(255))

    state: Mapped[CustodianState] = mapped_column(
        Enum(CustodianState), default=CustodianState.pending, nullable=False
    )
    notified_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    acknowledged_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    acknowledgment_method: Mapped[AcknowledgmentMethod | None] = mapped_column(
        Enum(AcknowledgmentMethod)
    )
    reminder_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_reminder_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    non_compliant_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    non_compliance_reason: Mapped[str | None] = mapped_column(Text)
    escalated_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    escalated_to: Mapped[str | None] = mapped_column(String(320))
    escalation_reason: Mapped[str | None] = mapped_column(Text)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    interview_completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    interview_notes: Mapped[str | None] = mapped_column(Text)

    is_released: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    released_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    released_by: Mapped[str | None] = mapped_column(String(255))
    release_reason: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )

    legal_hold = relationship("LegalHold", back_populates="custodians")


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Audit Trail
# ---------------------------------------------------------------------------


class HoldAuditEntry(Base):
    __tablename__ = "hold_audit_entries"
    __table_args__ = (
        UniqueConstraint(
            "legal_hold_id", "sequence", name="uq_hold_audit_entries_hold_sequence"
        ),
        Index("ix_hold_audit_entries_action", "action"),
        Index("ix_hold_audit_entries_actor", "actor"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    legal_hold_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("legal_holds.id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[AuditAction] = mapped_column(Enum(AuditAction), nullable=False)
    actor: Mapped[str] = mapped_column(String(320), nullable=False)
    detail: Mapped[str | None] = mapped_column(Text)
    custodian_email: Mapped[str | None] = mapped_column(String(320))
    corrects_sequence: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    legal_hold = relationship("LegalHold", back_populates="audit_entries")


class AuditEntryImmutable(Exception):
    pass


@event.listens_for(HoldAuditEntry, "before_update")
def _refuse_audit_update(mapper, connection, target):
    raise AuditEntryImmutable(f"Audit entry {target.id} is append-only")


@event.listens_for(HoldAuditEntry, "before_delete")
def _refuse_audit_delete(mapper, connection, target):
    raise AuditEntryImmutable(f"Audit entry {target.id} is append-only")


# ---------------------------------------------------------------------------
# Evidence references
# ---------------------------------------------------------------------------


class HoldEvidence(Base):
    __tablename__ = "hold_evidence"
    __table_args__ = (
        UniqueConstraint(
            "legal_hold_id", "evidence_ref", name="uq_hold_evidence_hold_ref"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    legal_hold_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("legal_holds.id"), nullable=False
    )
    # Opaque id of an externally collected item; lifecycle not owned here.
    evidence_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    custodian_email: Mapped[str | None] = mapped_column(String(320))
    collected_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    recorded_by: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    legal_hold = relationship("LegalHold", back_populates="evidence")


# ---------------------------------------------------------------------------
# Notification preferences
# ---------------------------------------------------------------------------


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    email_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    in_app_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    sms_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    quiet_hours_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    quiet_hours_start: Mapped[str | None] = mapped_column(String(5))  # "22:00"
    quiet_hours_end: Mapped[str | None] = mapped_column(String(5))  # "08:00"
    quiet_hours_days: Mapped[list] = mapped_column(JSON, default=list)
    timezone: Mapped[str] = mapped_column(String(64), default="UTC")

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )
