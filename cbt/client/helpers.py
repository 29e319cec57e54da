"""Presentation helpers for client front-ends: timers, grades, trial status."""
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from cbt.services.access import TRIAL_PERIOD, as_utc

MAX_QUESTIONS = 100

# (minimum percentage, grade, message)
GRADE_SCALE = [
    (90, "A+", "Outstanding!"),
    (80, "A", "Excellent!"),
    (70, "B", "Very Good!"),
    (60, "C", "Good!"),
    (50, "D", "Fair"),
    (0, "F", "Keep Practicing"),
]


@dataclass(frozen=True)
class TimeRemaining:
    total: int
    hours: int
    minutes: int
    seconds: int


def time_remaining(start_time: Any, duration_minutes: int, now: Optional[datetime] = None) -> TimeRemaining:
    """Seconds left on a timed exam; ``total`` goes negative once time is up."""
    start = as_utc(start_time)
    now = as_utc(now) or datetime.now(timezone.utc)
    elapsed = math.floor((now - start).total_seconds()) if start else 0
    remaining = duration_minutes * 60 - elapsed
    left = max(remaining, 0)
    return TimeRemaining(remaining, left // 3600, (left % 3600) // 60, left % 60)


def format_time(seconds: int) -> str:
    seconds = max(int(seconds), 0)
    return f"{seconds // 3600:02d}:{(seconds % 3600) // 60:02d}:{seconds % 60:02d}"


def calculate_percentage(score: int, total: int) -> int:
    if total == 0:
        return 0
    return round(score / total * 100)


def grade_for(percentage: float) -> Dict[str, str]:
    for floor, grade, message in GRADE_SCALE:
        if percentage >= floor:
            return {"grade": grade, "message": message}
    return {"grade": "F", "message": "Keep Practicing"}


def validate_exam_config(exam_type: Optional[str], subject: Optional[str],
                         number_of_questions: Optional[int]) -> List[str]:
    """Problems with an exam selection, empty when it can be started."""
    errors = []
    if not exam_type:
        errors.append("Please select an exam type")
    if not subject:
        errors.append("Please select a subject")
    if not number_of_questions or number_of_questions < 1:
        errors.append("Please select number of questions")
    elif number_of_questions > MAX_QUESTIONS:
        errors.append(f"Maximum {MAX_QUESTIONS} questions allowed")
    return errors


def _expiry(user: Optional[Dict[str, Any]]) -> Optional[datetime]:
    if not user:
        return None
    if user.get("isPremium") and user.get("premiumExpiresAt"):
        return as_utc(user["premiumExpiresAt"])
    if user.get("trialEndsAt"):
        return as_utc(user["trialEndsAt"])
    registered = as_utc(user.get("registrationDate"))
    return registered + TRIAL_PERIOD if registered else None


def is_trial_expired(user: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> bool:
    expires_at = _expiry(user)
    if expires_at is None:
        return True
    return expires_at < (as_utc(now) or datetime.now(timezone.utc))


def days_remaining(user: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> int:
    expires_at = _expiry(user)
    if expires_at is None:
        return 0
    seconds = (expires_at - (as_utc(now) or datetime.now(timezone.utc))).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def display_name(user: Optional[Dict[str, Any]]) -> str:
    full_name = (user or {}).get("fullName") or ""
    parts = full_name.split()
    return parts[0] if parts else "User"
