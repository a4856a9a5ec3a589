from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from lexhold.api.deps import get_db
from lexhold.models.legal_hold import AuditAction, HoldStatus
from lexhold.schemas.common import ListResponse
from lexhold.schemas.legal_hold import (
    AcknowledgeRequest,
    ActorRequest,
    AuditCorrectionCreate,
    AuditEntryRead,
    ComplianceSnapshotRead,
    CustodianAddRequest,
    CustodianRead,
    DueReminderRead,
    EscalateRequest,
    EvidenceCreate,
    EvidenceRead,
    InterviewRequest,
    LegalHoldCreate,
    LegalHoldRead,
    LegalHoldUpdate,
    NonComplianceRequest,
    NotifyResultRead,
    ReleaseRequest,
    ResolveRequest,
)
from lexhold.services import legal_hold as lh_service
from lexhold.services.audit_trail import AuditFilter

router = APIRouter(tags=["legal-holds"])


# ------------------------------------------------------------------
# LegalHold CRUD
# ------------------------------------------------------------------


@router.post(
    "/legal-holds",
    response_model=LegalHoldRead,
    status_code=status.HTTP_201_CREATED,
)
def create_legal_hold(
    payload: LegalHoldCreate, db: Session = Depends(get_db)
) -> LegalHoldRead:
    return lh_service.legal_holds.create(db, payload)


@router.get(
    "/legal-holds/{hold_id}",
    response_model=LegalHoldRead,
)
def get_legal_hold(hold_id: str, db: Session = Depends(get_db)) -> LegalHoldRead:
    return lh_service.legal_holds.get(db, hold_id)


@router.get(
    "/legal-holds",
    response_model=ListResponse[LegalHoldRead],
)
def list_legal_holds(
    hold_status: HoldStatus | None = Query(default=None, alias="status"),
    case_ref: str | None = None,
    is_active: bool | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> dict:
    return lh_service.legal_holds.list_response(
        db,
        status=hold_status.value if hold_status else None,
        case_ref=case_ref,
        is_active=is_active,
        order_by=order_by,
        order_dir=order_dir,
        limit=limit,
        offset=offset,
    )


@router.patch(
    "/legal-holds/{hold_id}",
    response_model=LegalHoldRead,
)
def update_legal_hold(
    hold_id: str,
    payload: LegalHoldUpdate,
    db: Session = Depends(get_db),
) -> LegalHoldRead:
    return lh_service.legal_holds.update(db, hold_id, payload)


@router.delete(
    "/legal-holds/{hold_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def archive_legal_hold(
    hold_id: str, by: str = Query(...), db: Session = Depends(get_db)
) -> None:
    lh_service.legal_holds.archive(db, hold_id, by)


# ------------------------------------------------------------------
# Hold lifecycle
# ------------------------------------------------------------------


@router.post(
    "/legal-holds/{hold_id}/issue",
    response_model=LegalHoldRead,
)
def issue_legal_hold(
    hold_id: str, payload: ActorRequest, db: Session = Depends(get_db)
) -> LegalHoldRead:
    return lh_service.legal_holds.issue(db, hold_id, payload.by)


@router.post(
    "/legal-holds/{hold_id}/notify",
    response_model=list[NotifyResultRead],
)
def notify_all_custodians(
    hold_id: str, payload: ActorRequest, db: Session = Depends(get_db)
) -> list[dict]:
    results = lh_service.legal_holds.notify_all(db, hold_id, payload.by)
    return [asdict(result) for result in results]


@router.post(
    "/legal-holds/{hold_id}/release",
    response_model=LegalHoldRead,
)
def release_legal_hold(
    hold_id: str, payload: ReleaseRequest, db: Session = Depends(get_db)
) -> LegalHoldRead:
    return lh_service.legal_holds.release_hold(
        db, hold_id, payload.by, payload.reason, payload.custodian_emails
    )


@router.post(
    "/legal-holds/{hold_id}/custodians",
    response_model=CustodianRead,
    status_code=status.HTTP_201_CREATED,
)
def add_custodian(
    hold_id: str, payload: CustodianAddRequest, db: Session = Depends(get_db)
) -> CustodianRead:
    return lh_service.legal_holds.add_custodian(db, hold_id, payload)


# ------------------------------------------------------------------
# Custodian transitions
# ------------------------------------------------------------------


@router.post(
    "/legal-holds/{hold_id}/custodians/{email}/notify",
    response_model=CustodianRead,
)
def notify_custodian(
    hold_id: str, email: str, payload: ActorRequest, db: Session = Depends(get_db)
) -> CustodianRead:
    return lh_service.legal_holds.notify_custodian(db, hold_id, email, payload.by)


@router.post(
    "/legal-holds/{hold_id}/custodians/{email}/acknowledge",
    response_model=CustodianRead,
)
def acknowledge_custodian(
    hold_id: str,
    email: str,
    payload: AcknowledgeRequest,
    db: Session = Depends(get_db),
) -> CustodianRead:
    return lh_service.legal_holds.acknowledge_custodian(
        db, hold_id, email, payload.method, payload.by
    )


@router.post(
    "/legal-holds/{hold_id}/custodians/{email}/non-compliance",
    response_model=CustodianRead,
)
def mark_custodian_non_compliant(
    hold_id: str,
    email: str,
    payload: NonComplianceRequest,
    db: Session = Depends(get_db),
) -> CustodianRead:
    return lh_service.legal_holds.mark_non_compliant(
        db, hold_id, email, payload.reason, payload.by
    )


@router.post(
    "/legal-holds/{hold_id}/custodians/{email}/escalate",
    response_model=CustodianRead,
)
def escalate_custodian(
    hold_id: str,
    email: str,
    payload: EscalateRequest,
    db: Session = Depends(get_db),
) -> CustodianRead:
    return lh_service.legal_holds.escalate_custodian(
        db, hold_id, email, payload.escalated_to, payload.reason, payload.by
    )


@router.post(
    "/legal-holds/{hold_id}/custodians/{email}/reminders",
    response_model=CustodianRead,
)
def record_custodian_reminder(
    hold_id: str, email: str, payload: ActorRequest, db: Session = Depends(get_db)
) -> CustodianRead:
    return lh_service.legal_holds.record_reminder(db, hold_id, email, payload.by)


@router.post(
    "/legal-holds/{hold_id}/custodians/{email}/resolve",
    response_model=CustodianRead,
)
def resolve_custodian(
    hold_id: str,
    email: str,
    payload: ResolveRequest,
    db: Session = Depends(get_db),
) -> CustodianRead:
    return lh_service.legal_holds.resolve_custodian(
        db, hold_id, email, payload.reason, payload.by
    )


@router.post(
    "/legal-holds/{hold_id}/custodians/{email}/interview",
    response_model=CustodianRead,
)
def record_custodian_interview(
    hold_id: str,
    email: str,
    payload: InterviewRequest,
    db: Session = Depends(get_db),
) -> CustodianRead:
    return lh_service.legal_holds.record_interview(
        db, hold_id, email, payload.by, payload.notes, payload.completed_at
    )


# ------------------------------------------------------------------
# Reads
# ------------------------------------------------------------------


@router.get(
    "/legal-holds/{hold_id}/compliance",
    response_model=ComplianceSnapshotRead,
)
def get_compliance(hold_id: str, db: Session = Depends(get_db)) -> dict:
    return lh_service.legal_holds.compliance_snapshot(db, hold_id).as_dict()


@router.get(
    "/legal-holds/{hold_id}/audit",
    response_model=ListResponse[AuditEntryRead],
)
def list_audit_entries(
    hold_id: str,
    actor: str | None = None,
    action: AuditAction | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    custodian_email: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> dict:
    query = lh_service.legal_holds.audit_query(
        db,
        hold_id,
        AuditFilter(
            actor=actor,
            action=action,
            since=since,
            until=until,
            custodian_email=custodian_email,
        ),
    )
    items = query.page(limit, offset)
    return {"items": items, "count": len(items), "limit": limit, "offset": offset}


@router.post(
    "/legal-holds/{hold_id}/audit/corrections",
    response_model=AuditEntryRead,
    status_code=status.HTTP_201_CREATED,
)
def record_audit_correction(
    hold_id: str, payload: AuditCorrectionCreate, db: Session = Depends(get_db)
) -> AuditEntryRead:
    return lh_service.legal_holds.record_audit_correction(db, hold_id, payload)


@router.get(
    "/legal-holds/{hold_id}/due-reminders",
    response_model=list[DueReminderRead],
)
def list_due_reminders(
    hold_id: str, db: Session = Depends(get_db)
) -> list[DueReminderRead]:
    return lh_service.legal_holds.due_reminders(db, hold_id)


@router.get(
    "/custodian-holds",
    response_model=ListResponse[LegalHoldRead],
)
def list_holds_for_custodian(
    email: str = Query(...), db: Session = Depends(get_db)
) -> dict:
    items = lh_service.legal_holds.holds_for_custodian(db, email)
    return {"items": items, "count": len(items), "limit": None, "offset": None}


# ------------------------------------------------------------------
# Evidence references
# ------------------------------------------------------------------


@router.post(
    "/legal-holds/{hold_id}/evidence",
    response_model=EvidenceRead,
    status_code=status.HTTP_201_CREATED,
)
def record_evidence(
    hold_id: str, payload: EvidenceCreate, db: Session = Depends(get_db)
) -> EvidenceRead:
    return lh_service.legal_holds.record_evidence(db, hold_id, payload)


@router.get(
    "/legal-holds/{hold_id}/evidence",
    response_model=list[EvidenceRead],
)
def list_evidence(hold_id: str, db: Session = Depends(get_db)) -> list[EvidenceRead]:
    return lh_service.legal_holds.list_evidence(db, hold_id)
