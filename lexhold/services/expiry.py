"""Hold expiry policies.

There is no built-in deadline rule; a policy decides whether a hold in
force has lapsed at a given time. ``no_expiry`` is the default.
"""

from datetime import datetime, timedelta
from typing import Callable

from lexhold.models.legal_hold import LegalHold

ExpiryPolicy = Callable[[LegalHold, datetime], bool]


def no_expiry(hold: LegalHold, now: datetime) -> bool:
    return False


def expire_after(days: int) -> ExpiryPolicy:
    """Expire a hold ``days`` after it took effect (or was issued)."""
    limit = timedelta(days=days)

    def policy(hold: LegalHold, now: datetime) -> bool:
        start = hold.effective_date or hold.issued_at
        return start is not None and now >= start + limit

    return policy
