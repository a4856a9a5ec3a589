import logging
from datetime import datetime

from lexhold.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="lexhold.tasks.notifications.deliver_hold_notice", ignore_result=True
)
def deliver_hold_notice(
    hold_id: str,
    custodian_email: str,
    kind: str,
    channel: str,
    template_ref: str | None = None,
    context: dict | None = None,
    deferred: bool = False,
) -> None:
    """Deliver one hold notice, reminder or release notice to a custodian.

    The outcome is written to the hold's audit trail. A notice that lands
    in the recipient's quiet hours is re-queued for when they end.
    """
    from lexhold.db import SessionLocal

    db = SessionLocal()
    try:
        _deliver(
            db,
            hold_id,
            custodian_email,
            kind,
            channel,
            template_ref,
            context or {},
            deferred=deferred,
        )
    except Exception as e:
        logger.exception(
            "Failed to deliver %s to %s on hold %s: %s",
            kind,
            custodian_email,
            hold_id,
            e,
        )
    finally:
        db.close()


def _deliver(
    db: "Session",  # type: ignore[name-defined]  # noqa: F821
    hold_id: str,
    custodian_email: str,
    kind: str,
    channel: str,
    template_ref: str | None,
    context: dict,
    deferred: bool = False,
    dispatcher=None,
    now: datetime | None = None,
    service=None,
):
    from lexhold.models.legal_hold import NotificationChannel
    from lexhold.services.legal_hold import legal_holds
    from lexhold.services.notification import (
        NoticeKind,
        get_dispatcher,
        is_quiet_hours,
        notification_preferences,
        quiet_hours_end,
        resolve_channel,
        safe_dispatch,
    )

    service = service or legal_holds
    now = now or service.clock.now()
    notice_kind = NoticeKind(kind)
    pref = notification_preferences.find(db, custodian_email)

    # A re-queued notice goes out when it comes due, quiet or not.
    if not deferred and is_quiet_hours(pref, now):
        until = quiet_hours_end(pref, now)
        service.record_dispatch_deferral(
            db, hold_id, custodian_email, notice_kind, until
        )
        deliver_hold_notice.apply_async(
            kwargs={
                "hold_id": hold_id,
                "custodian_email": custodian_email,
                "kind": kind,
                "channel": channel,
                "template_ref": template_ref,
                "context": context,
                "deferred": True,
            },
            eta=until,
        )
        logger.info(
            "Deferred %s to %s until %s", kind, custodian_email, until.isoformat()
        )
        return None

    target = resolve_channel(pref, NotificationChannel(channel))
    result = safe_dispatch(
        dispatcher or get_dispatcher(),
        custodian_email,
        target,
        template_ref,
        {**context, "kind": kind},
    )
    service.record_dispatch_outcome(db, hold_id, custodian_email, notice_kind, result)
    logger.info(
        "%s to %s on hold %s: %s",
        kind,
        custodian_email,
        hold_id,
        "delivered" if result.delivered else "failed",
    )
    return result
