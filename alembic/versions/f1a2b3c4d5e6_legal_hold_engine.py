"""legal hold engine

Revision ID: f1a2b3c4d5e6
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "f1a2b3c4d5e6"
down_revision = None
branch_labels = None
depends_on = None

_HOLD_STATUSES = ("draft", "active", "released", "partially_released", "expired")
_CUSTODIAN_STATES = (
    "pending",
    "notified",
    "acknowledged",
    "non_compliant",
    "escalated",
    "resolved",
)
_CADENCES = ("none", "weekly", "biweekly", "monthly", "quarterly")
_ACK_METHODS = ("email", "in_person", "phone", "system")
_CHANNELS = ("email", "in_app", "sms")
# SQLAlchemy stores enum member names, not values.
_AUDIT_ACTIONS = (
    "hold_created",
    "hold_updated",
    "hold_issued",
    "hold_released",
    "hold_partially_released",
    "hold_expired",
    "hold_archived",
    "custodian_added",
    "custodian_notified",
    "custodian_acknowledged",
    "custodian_acknowledgment_repeated",
    "custodian_non_compliant",
    "custodian_escalated",
    "custodian_reminded",
    "custodian_resolved",
    "custodian_interviewed",
    "custodian_released",
    "notice_delivered",
    "notice_dispatch_failed",
    "notice_deferred",
    "evidence_recorded",
    "audit_correction",
)

_ENUMS = {
    "holdstatus": _HOLD_STATUSES,
    "custodianstate": _CUSTODIAN_STATES,
    "remindercadence": _CADENCES,
    "acknowledgmentmethod": _ACK_METHODS,
    "notificationchannel": _CHANNELS,
    "auditaction": _AUDIT_ACTIONS,
}


def _enum(name: str) -> sa.Enum:
    return sa.Enum(*_ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    # --- Enums ---
    for name, values in _ENUMS.items():
        sa.Enum(*values, name=name).create(op.get_bind(), checkfirst=True)

    # --- Legal Holds ---
    op.create_table(
        "legal_holds",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("hold_number", sa.String(40), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("case_ref", sa.String(120), nullable=False),
        sa.Column("case_number", sa.String(120), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("legal_basis", sa.Text(), nullable=True),
        sa.Column("scope", sa.Text(), nullable=True),
        sa.Column("data_types", sa.JSON(), nullable=True),
        sa.Column("data_sources", sa.JSON(), nullable=True),
        sa.Column("preservation_instructions", sa.Text(), nullable=True),
        sa.Column("status", _enum("holdstatus"), nullable=False),
        sa.Column("reminder_cadence", _enum("remindercadence"), nullable=False),
        sa.Column("notification_template", sa.String(255), nullable=True),
        sa.Column(
            "notification_channel", _enum("notificationchannel"), nullable=False
        ),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("issued_by", sa.String(255), nullable=True),
        sa.Column("effective_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_by", sa.String(255), nullable=True),
        sa.Column("release_reason", sa.Text(), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_custodians", sa.Integer(), nullable=True),
        sa.Column("acknowledged_custodians", sa.Integer(), nullable=True),
        sa.Column("compliance_rate", sa.Integer(), nullable=True),
        sa.Column("next_reminder_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("audit_sequence", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("hold_number"),
    )
    op.create_index("ix_legal_holds_case_ref", "legal_holds", ["case_ref"])
    op.create_index("ix_legal_holds_status", "legal_holds", ["status"])

    # --- Custodians ---
    op.create_table(
        "hold_custodians",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("legal_hold_id", sa.UUID(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("email_key", sa.String(320), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("department", sa.String(255), nullable=True),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("state", _enum("custodianstate"), nullable=False),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "acknowledgment_method", _enum("acknowledgmentmethod"), nullable=True
        ),
        sa.Column("reminder_count", sa.Integer(), nullable=False),
        sa.Column("last_reminder_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("non_compliant_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("non_compliance_reason", sa.Text(), nullable=True),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("escalated_to", sa.String(320), nullable=True),
        sa.Column("escalation_reason", sa.Text(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "interview_completed_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column("interview_notes", sa.Text(), nullable=True),
        sa.Column("is_released", sa.Boolean(), nullable=False),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("released_by", sa.String(255), nullable=True),
        sa.Column("release_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["legal_hold_id"], ["legal_holds.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "legal_hold_id", "email_key", name="uq_hold_custodians_hold_email"
        ),
    )
    op.create_index(
        "ix_hold_custodians_email_key", "hold_custodians", ["email_key"]
    )
    op.create_index("ix_hold_custodians_state", "hold_custodians", ["state"])

    # --- Audit Trail ---
    op.create_table(
        "hold_audit_entries",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("legal_hold_id", sa.UUID(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("action", _enum("auditaction"), nullable=False),
        sa.Column("actor", sa.String(320), nullable=False),
        sa.Column("detail", sa.Text(), nullable=True),
        sa.Column("custodian_email", sa.String(320), nullable=True),
        sa.Column("corrects_sequence", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["legal_hold_id"], ["legal_holds.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "legal_hold_id", "sequence", name="uq_hold_audit_entries_hold_sequence"
        ),
    )
    op.create_index(
        "ix_hold_audit_entries_action", "hold_audit_entries", ["action"]
    )
    op.create_index("ix_hold_audit_entries_actor", "hold_audit_entries", ["actor"])

    # --- Evidence references ---
    op.create_table(
        "hold_evidence",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("legal_hold_id", sa.UUID(), nullable=False),
        sa.Column("evidence_ref", sa.String(255), nullable=False),
        sa.Column("custodian_email", sa.String(320), nullable=True),
        sa.Column("collected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recorded_by", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["legal_hold_id"], ["legal_holds.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "legal_hold_id", "evidence_ref", name="uq_hold_evidence_hold_ref"
        ),
    )

    # --- Notification preferences ---
    op.create_table(
        "notification_preferences",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("email_enabled", sa.Boolean(), nullable=True),
        sa.Column("in_app_enabled", sa.Boolean(), nullable=True),
        sa.Column("sms_enabled", sa.Boolean(), nullable=True),
        sa.Column("quiet_hours_enabled", sa.Boolean(), nullable=True),
        sa.Column("quiet_hours_start", sa.String(5), nullable=True),
        sa.Column("quiet_hours_end", sa.String(5), nullable=True),
        sa.Column("quiet_hours_days", sa.JSON(), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )


def downgrade() -> None:
    op.drop_table("notification_preferences")
    op.drop_table("hold_evidence")
    op.drop_index("ix_hold_audit_entries_actor", table_name="hold_audit_entries")
    op.drop_index("ix_hold_audit_entries_action", table_name="hold_audit_entries")
    op.drop_table("hold_audit_entries")
    op.drop_index("ix_hold_custodians_state", table_name="hold_custodians")
    op.drop_index("ix_hold_custodians_email_key", table_name="hold_custodians")
    op.drop_table("hold_custodians")
    op.drop_index("ix_legal_holds_status", table_name="legal_holds")
    op.drop_index("ix_legal_holds_case_ref", table_name="legal_holds")
    op.drop_table("legal_holds")

    for name in reversed(list(_ENUMS)):
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)
