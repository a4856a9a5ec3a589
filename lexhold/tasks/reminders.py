import logging
from datetime import datetime

from lexhold.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="lexhold.tasks.reminders.send_due_reminders", ignore_result=True)
def send_due_reminders() -> None:
    """Periodic sweep that reminds custodians whose cadence has elapsed.

    A reminder is counted only once the dispatcher reports it delivered.
    Custodians inside their quiet hours are picked up on a later sweep.
    """
    from lexhold.config import settings
    from lexhold.db import SessionLocal

    db = SessionLocal()
    try:
        counts = _sweep(db, threshold=settings.non_compliance_reminder_threshold)
        logger.info(
            "Reminder sweep: %d sent, %d failed, %d deferred",
            counts["sent"],
            counts["failed"],
            counts["deferred"],
        )
    except Exception as e:
        logger.exception("Failed to send due reminders: %s", e)
    finally:
        db.close()


def _sweep(
    db: "Session",  # type: ignore[name-defined]  # noqa: F821
    dispatcher=None,
    now: datetime | None = None,
    threshold: int = 0,
    service=None,
) -> dict:
    from lexhold.errors import HoldError
    from lexhold.models.legal_hold import IN_FORCE_STATUSES, LegalHold
    from lexhold.services import reminders
    from lexhold.services.legal_hold import legal_holds
    from lexhold.services.notification import (
        NoticeKind,
        get_dispatcher,
        is_quiet_hours,
        notification_preferences,
        resolve_channel,
        safe_dispatch,
    )

    service = service or legal_holds
    now = now or service.clock.now()
    dispatcher = dispatcher or get_dispatcher()
    counts = {"sent": 0, "failed": 0, "deferred": 0}

    holds = (
        db.query(LegalHold)
        .filter(
            LegalHold.status.in_(IN_FORCE_STATUSES),
            LegalHold.is_active.is_(True),
            LegalHold.next_reminder_at.is_not(None),
            LegalHold.next_reminder_at < now,
        )
        .all()
    )
    for hold in holds:
        hold_id = hold.id
        for custodian in reminders.due_custodians(hold, now):
            email = custodian.email_key
            pref = notification_preferences.find(db, email)
            if is_quiet_hours(pref, now):
                counts["deferred"] += 1
                continue
            notice = service.notice_for(hold, custodian, NoticeKind.reminder)
            result = safe_dispatch(
                dispatcher,
                email,
                resolve_channel(pref, notice.channel),
                notice.template_ref,
                notice.context,
            )
            try:
                if result.delivered:
                    service.record_reminder(
                        db,
                        hold_id,
                        email,
                        "system",
                        non_compliance_threshold=threshold,
                    )
                    counts["sent"] += 1
                else:
                    service.record_dispatch_outcome(
                        db, hold_id, email, NoticeKind.reminder, result
                    )
                    counts["failed"] += 1
            except HoldError as e:
                # State moved on between the due check and the write.
                logger.warning(
                    "Skipped reminder for %s on hold %s: %s", email, hold_id, e
                )
    return counts


@celery_app.task(name="lexhold.tasks.reminders.expire_holds", ignore_result=True)
def expire_holds() -> None:
    """Apply the configured expiry window to holds still in force."""
    from lexhold.config import settings
    from lexhold.db import SessionLocal
    from lexhold.services.expiry import expire_after

    if settings.hold_expiry_days <= 0:
        return

    db = SessionLocal()
    try:
        count = _expire(db, expire_after(settings.hold_expiry_days))
        logger.info("Expired %d legal hold(s)", count)
    except Exception as e:
        logger.exception("Failed to expire legal holds: %s", e)
    finally:
        db.close()


def _expire(
    db: "Session",  # type: ignore[name-defined]  # noqa: F821
    policy,
    service=None,
) -> int:
    from lexhold.models.legal_hold import IN_FORCE_STATUSES, LegalHold
    from lexhold.services.legal_hold import legal_holds

    service = service or legal_holds
    hold_ids = [
        row.id
        for row in db.query(LegalHold.id)
        .filter(
            LegalHold.status.in_(IN_FORCE_STATUSES),
            LegalHold.is_active.is_(True),
        )
        .all()
    ]
    count = 0
    for hold_id in hold_ids:
        if service.apply_expiry(db, hold_id, policy):
            count += 1
    return count
