from lexhold.models.legal_hold import (  # noqa: F401
    AcknowledgmentMethod,
    AuditAction,
    CustodianState,
    DataType,
    HoldAuditEntry,
    HoldCustodian,
    HoldEvidence,
    HoldStatus,
    LegalHold,
    NotificationChannel,
    NotificationPreference,
    ReminderCadence,
)
