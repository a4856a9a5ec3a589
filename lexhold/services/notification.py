from __future__ import annotations

import enum
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx
from prometheus_client import Counter
from sqlalchemy import select
from sqlalchemy.orm import Session

from lexhold.config import settings
from lexhold.errors import NotFound
from lexhold.models.legal_hold import NotificationChannel, NotificationPreference
from lexhold.schemas.notification import NotificationPreferenceUpdate

logger = logging.getLogger(__name__)

NOTICE_DISPATCHES = Counter(
    "lexhold_notice_dispatch_total",
    "Legal hold notice dispatch attempts",
    ["kind", "outcome"],
)

_WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class NoticeKind(enum.Enum):
    hold_notice = "hold_notice"
    reminder = "reminder"
    release_notice = "release_notice"


@dataclass(frozen=True)
class DeliveryAttemptResult:
    delivered: bool
    channel: NotificationChannel
    detail: str | None = None


@dataclass(frozen=True)
class NoticeRequest:
    """A notice the hold service wants sent once its lock is released."""

    hold_id: str
    custodian_email: str
    kind: NoticeKind
    channel: NotificationChannel
    template_ref: str | None
    context: dict = field(default_factory=dict)


class NotificationDispatcher(Protocol):
    def dispatch(
        self,
        recipient_email: str,
        channel: NotificationChannel,
        template_ref: str | None,
        context: dict,
    ) -> DeliveryAttemptResult: ...


class LoggingDispatcher:
    """Stand-in transport used when no notification service is configured."""

    def dispatch(
        self,
        recipient_email: str,
        channel: NotificationChannel,
        template_ref: str | None,
        context: dict,
    ) -> DeliveryAttemptResult:
        logger.info(
            "Would send %s notice %s to %s via %s",
            context.get("kind", "hold"),
            template_ref or "default",
            recipient_email,
            channel.value,
        )
        return DeliveryAttemptResult(delivered=True, channel=channel, detail="logged")


class WebhookDispatcher:
    """Hands notices to an external notification service over HTTP.

    The body is signed with HMAC-SHA256 when a secret is configured.
    """

    def __init__(self, url: str, secret: str | None = None, timeout: float = 30.0):
        self._url = url
        self._secret = secret
        self._timeout = timeout

    def dispatch(
        self,
        recipient_email: str,
        channel: NotificationChannel,
        template_ref: str | None,
        context: dict,
    ) -> DeliveryAttemptResult:
        body = json.dumps(
            {
                "recipient": recipient_email,
                "channel": channel.value,
                "template": template_ref,
                "context": context,
            },
            default=str,
        )
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._secret:
            sig = hmac.new(
                self._secret.encode(), body.encode(), hashlib.sha256
            ).hexdigest()
            headers["X-Notification-Signature"] = sig
        try:
            with httpx.Client(timeout=self._timeout) as client:
                resp = client.post(self._url, content=body, headers=headers)
        except (httpx.HTTPError, OSError) as e:
            logger.warning("Notice to %s failed: %s", recipient_email, e)
            return DeliveryAttemptResult(delivered=False, channel=channel, detail=str(e))
        if 200 <= resp.status_code < 300:
            return DeliveryAttemptResult(
                delivered=True, channel=channel, detail=f"HTTP {resp.status_code}"
            )
        return DeliveryAttemptResult(
            delivered=False,
            channel=channel,
            detail=f"HTTP {resp.status_code}: {resp.text[:500]}",
        )


def get_dispatcher() -> NotificationDispatcher:
    if settings.notification_webhook_url:
        return WebhookDispatcher(
            settings.notification_webhook_url,
            settings.notification_webhook_secret or None,
            settings.notification_timeout_seconds,
        )
    return LoggingDispatcher()


def safe_dispatch(
    dispatcher: NotificationDispatcher,
    recipient_email: str,
    channel: NotificationChannel,
    template_ref: str | None,
    context: dict,
) -> DeliveryAttemptResult:
    """Dispatch, turning transport exceptions into a failed attempt."""
    try:
        result = dispatcher.dispatch(recipient_email, channel, template_ref, context)
    except Exception as e:
        logger.exception("Dispatcher raised for %s: %s", recipient_email, e)
        result = DeliveryAttemptResult(delivered=False, channel=channel, detail=str(e))
    NOTICE_DISPATCHES.labels(
        kind=context.get("kind", "unknown"),
        outcome="delivered" if result.delivered else "failed",
    ).inc()
    return result


def queue_hold_notice(request: NoticeRequest) -> None:
    """Fire-and-forget: queue a Celery task that delivers one notice.

    Never raises; a failure to enqueue is logged and the hold state
    already committed stays as it is.
    """
    try:
        from lexhold.tasks.notifications import deliver_hold_notice

        deliver_hold_notice.delay(
            hold_id=request.hold_id,
            custodian_email=request.custodian_email,
            kind=request.kind.value,
            channel=request.channel.value,
            template_ref=request.template_ref,
            context=request.context,
        )
        logger.debug(
            "Queued %s for %s on hold %s",
            request.kind.value,
            request.custodian_email,
            request.hold_id,
        )
    except Exception as e:
        logger.exception(
            "Failed to queue %s for %s: %s",
            request.kind.value,
            request.custodian_email,
            e,
        )


# ---------------------------------------------------------------------------
# Quiet hours
# ---------------------------------------------------------------------------


def _parse_hhmm(value: str) -> time:
    hour, minute = (int(part) for part in value.split(":"))
    return time(hour, minute)


def _zone(pref: NotificationPreference):
    try:
        return ZoneInfo(pref.timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r for %s", pref.timezone, pref.email)
        return timezone.utc


def _quiet_days(pref: NotificationPreference) -> set[str]:
    return {day.strip().lower() for day in pref.quiet_hours_days or []}


def _in_window(pref: NotificationPreference, moment: datetime) -> bool:
    if not pref.quiet_hours_start or not pref.quiet_hours_end:
        return False
    start = _parse_hhmm(pref.quiet_hours_start)
    end = _parse_hhmm(pref.quiet_hours_end)
    current = moment.time().replace(second=0, microsecond=0)
    if start < end:
        return start <= current < end
    # Window spans midnight.
    return current >= start or current < end


def is_quiet_hours(pref: NotificationPreference | None, now: datetime) -> bool:
    if pref is None or not pref.quiet_hours_enabled:
        return False
    local = now.astimezone(_zone(pref))
    if _WEEKDAYS[local.weekday()] in _quiet_days(pref):
        return True
    return _in_window(pref, local)


def quiet_hours_end(pref: NotificationPreference | None, now: datetime) -> datetime:
    """First minute at or after ``now`` that falls outside quiet hours."""
    if not is_quiet_hours(pref, now):
        return now
    local = now.astimezone(_zone(pref)).replace(second=0, microsecond=0)
    # A week of minutes bounds any combination of quiet days and windows.
    for _ in range(7 * 24 * 60):
        local += timedelta(minutes=1)
        if not is_quiet_hours(pref, local):
            return local.astimezone(timezone.utc)
    logger.warning("Quiet hours for %s never end; sending anyway", pref.email)
    return now


def resolve_channel(
    pref: NotificationPreference | None, requested: NotificationChannel
) -> NotificationChannel:
    """Honour disabled channels, falling back to email.

    Legal hold notices are mandatory, so they are never suppressed.
    """
    if pref is None:
        return requested
    enabled = {
        NotificationChannel.email: pref.email_enabled,
        NotificationChannel.in_app: pref.in_app_enabled,
        NotificationChannel.sms: pref.sms_enabled,
    }
    if enabled.get(requested, True):
        return requested
    return NotificationChannel.email


# ---------------------------------------------------------------------------
# NotificationPreferences
# ---------------------------------------------------------------------------


class NotificationPreferences:
    @staticmethod
    def find(db: Session, email: str) -> NotificationPreference | None:
        return db.scalar(
            select(NotificationPreference).where(
                NotificationPreference.email == email.strip().lower()
            )
        )

    @staticmethod
    def get(db: Session, email: str) -> NotificationPreference:
        pref = NotificationPreferences.find(db, email)
        if not pref:
            raise NotFound("Notification preference not found", email=email)
        return pref

    @staticmethod
    def get_or_create(db: Session, email: str) -> NotificationPreference:
        pref = NotificationPreferences.find(db, email)
        if pref:
            return pref
        pref = NotificationPreference(email=email.strip().lower())
        db.add(pref)
        db.commit()
        db.refresh(pref)
        logger.info("Created notification preference %s", pref.id)
        return pref

    @staticmethod
    def upsert(
        db: Session, email: str, payload: NotificationPreferenceUpdate
    ) -> NotificationPreference:
        pref = NotificationPreferences.get_or_create(db, email)
        data = payload.model_dump(exclude_unset=True)
        for key, value in data.items():
            setattr(pref, key, value)
        db.commit()
        db.refresh(pref)
        logger.info("Updated notification preference %s", pref.id)
        return pref


notification_preferences = NotificationPreferences()
