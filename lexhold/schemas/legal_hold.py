from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lexhold.models.legal_hold import (
    AcknowledgmentMethod,
    AuditAction,
    CustodianState,
    DataType,
    HoldStatus,
    NotificationChannel,
    ReminderCadence,
)


def _check_email(value: str) -> str:
    value = value.strip()
    local, sep, domain = value.partition("@")
    if not sep or not local or "." not in domain:
        raise ValueError(f"Invalid email address: {value!r}")
    return value


# ---------------------------------------------------------------------------
# Custodians
# ---------------------------------------------------------------------------


class CustodianCreate(BaseModel):
    email: str
    name: str
    department: str | None = None
    title: str | None = None

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str) -> str:
        return _check_email(value)


class CustodianRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: str
    department: str | None = None
    title: str | None = None
    state: CustodianState
    notified_at: datetime | None = None
    acknowledged_at: datetime | None = None
    acknowledgment_method: AcknowledgmentMethod | None = None
    reminder_count: int
    last_reminder_at: datetime | None = None
    non_compliance_reason: str | None = None
    escalated_to: str | None = None
    escalated_at: datetime | None = None
    resolved_at: datetime | None = None
    interview_completed_at: datetime | None = None
    is_released: bool
    released_at: datetime | None = None
    released_by: str | None = None


# ---------------------------------------------------------------------------
# LegalHold
# ---------------------------------------------------------------------------


class LegalHoldBase(BaseModel):
    name: str
    case_ref: str
    case_number: str | None = None
    description: str | None = None
    legal_basis: str | None = None
    scope: str | None = None
    data_types: list[DataType] = Field(default_factory=list)
    data_sources: list[str] = Field(default_factory=list)
    preservation_instructions: str | None = None
    effective_date: datetime | None = None
    reminder_cadence: ReminderCadence = ReminderCadence.monthly
    notification_template: str | None = None
    notification_channel: NotificationChannel = NotificationChannel.email


class LegalHoldCreate(LegalHoldBase):
    created_by: str
    custodians: list[CustodianCreate]


class LegalHoldUpdate(BaseModel):
    name: str | None = None
    case_number: str | None = None
    description: str | None = None
    legal_basis: str | None = None
    scope: str | None = None
    data_types: list[DataType] | None = None
    data_sources: list[str] | None = None
    preservation_instructions: str | None = None
    effective_date: datetime | None = None
    reminder_cadence: ReminderCadence | None = None
    notification_template: str | None = None
    notification_channel: NotificationChannel | None = None
    updated_by: str


class LegalHoldRead(LegalHoldBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    hold_number: str
    status: HoldStatus
    issued_at: datetime | None = None
    issued_by: str | None = None
    released_at: datetime | None = None
    released_by: str | None = None
    release_reason: str | None = None
    expired_at: datetime | None = None
    total_custodians: int
    acknowledged_custodians: int
    compliance_rate: int
    next_reminder_at: datetime | None = None
    created_by: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
    custodians: list[CustodianRead]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class ActorRequest(BaseModel):
    by: str


class AcknowledgeRequest(BaseModel):
    method: AcknowledgmentMethod = AcknowledgmentMethod.email
    by: str | None = None


class NonComplianceRequest(ActorRequest):
    reason: str


class EscalateRequest(ActorRequest):
    escalated_to: str
    reason: str


class ResolveRequest(ActorRequest):
    reason: str


class InterviewRequest(ActorRequest):
    notes: str | None = None
    completed_at: datetime | None = None


class ReleaseRequest(ActorRequest):
    reason: str
    custodian_emails: list[str] | None = None


class CustodianAddRequest(CustodianCreate):
    by: str


class NotifyResultRead(BaseModel):
    email: str
    notified: bool
    error: str | None = None
    message: str | None = None


class ComplianceSnapshotRead(BaseModel):
    total: int
    acknowledged: int
    rate: int
    non_compliant: int
    escalated: int


class DueReminderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    email: str
    name: str
    state: CustodianState
    reminder_count: int
    notified_at: datetime | None = None
    last_reminder_at: datetime | None = None


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sequence: int
    action: AuditAction
    actor: str
    detail: str | None = None
    custodian_email: str | None = None
    corrects_sequence: int | None = None
    created_at: datetime


class AuditCorrectionCreate(BaseModel):
    actor: str
    corrects_sequence: int = Field(ge=1)
    detail: str


# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------


class EvidenceCreate(BaseModel):
    evidence_ref: str
    custodian_email: str | None = None
    collected_at: datetime | None = None
    recorded_by: str


class EvidenceRead(EvidenceCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
