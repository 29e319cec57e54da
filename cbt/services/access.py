"""
Trial / premium access evaluation.

Everything here is a pure function of the stored timestamps and ``now``.
Timestamps that are missing or cannot be read count as absent, so a broken
record ends up "expired" instead of raising.
"""
import calendar
import enum
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

TRIAL_PERIOD = timedelta(days=3)


class AccessType(str, enum.Enum):
    TRIAL = "trial"
    PREMIUM = "premium"
    EXPIRED = "expired"


@dataclass(frozen=True)
class AccessStatus:
    has_access: bool
    type: AccessType
    expires_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hasAccess": self.has_access,
            "type": self.type.value,
            "expiresAt": isoformat(self.expires_at),
        }


def as_utc(value: Any) -> Optional[datetime]:
    """Read a stored timestamp as an aware UTC datetime; ``None`` when unreadable."""
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value: Any) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def add_months(value: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def trial_end(registration_date: Any) -> Optional[datetime]:
    start = as_utc(registration_date)
    return start + TRIAL_PERIOD if start else None


def premium_expiry(user: Any, now: datetime) -> Optional[datetime]:
    """The premium expiry if premium is currently active, else ``None``."""
    if getattr(user, "is_premium", False) is not True:
        return None
    expires_at = as_utc(getattr(user, "premium_expires_at", None))
    if expires_at and expires_at > now:
        return expires_at
    return None


def evaluate_access(user: Any, now: Optional[datetime] = None) -> AccessStatus:
    now = as_utc(now) or datetime.now(timezone.utc)

    expires_at = premium_expiry(user, now)
    if expires_at:
        return AccessStatus(True, AccessType.PREMIUM, expires_at)

    ends = trial_end(getattr(user, "registration_date", None))
    if ends and now < ends:
        return AccessStatus(True, AccessType.TRIAL, ends)

    return AccessStatus(False, AccessType.EXPIRED, ends)


def days_remaining(status: AccessStatus, now: Optional[datetime] = None) -> int:
    """Whole days left on the current access, rounded up; 0 once expired."""
    if not status.has_access or status.expires_at is None:
        return 0
    now = as_utc(now) or datetime.now(timezone.utc)
    seconds = (status.expires_at - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))
