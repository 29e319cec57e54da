import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from cbt.core.database import transactional
from cbt.core.errors import NotFoundError, ValidationError
from cbt.models.orm import ExamAnswer, ExamSession, ExamSessionQuestion, Question, UnlockCode, User
from cbt.services.access import add_months, as_utc, evaluate_access, isoformat
from cbt.services.accounts import serialize_user
from cbt.services.exams import count_sessions

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 10


def _count(db: Session, model, *criteria) -> int:
    stmt = select(func.count()).select_from(model)
    if criteria:
        stmt = stmt.where(*criteria)
    return db.scalar(stmt) or 0


# ---------- Questions ----------

@transactional
def upload_questions(db: Session, questions: List[Dict[str, Any]]) -> int:
    if not questions:
        raise ValidationError("Invalid questions array")
    db.add_all(Question(**q) for q in questions)
    db.commit()
    logger.info(f"Uploaded {len(questions)} questions")
    return len(questions)


@transactional
def delete_question(db: Session, question_id: int) -> None:
    if db.get(Question, question_id) is None:
        raise NotFoundError("Question not found")
    db.execute(delete(ExamAnswer).where(ExamAnswer.question_id == question_id))
    db.execute(delete(ExamSessionQuestion).where(ExamSessionQuestion.question_id == question_id))
    db.execute(delete(Question).where(Question.id == question_id).execution_options(synchronize_session="fetch"))
    db.commit()
    logger.info(f"Deleted question {question_id}")


# ---------- Users ----------

def list_users(db: Session, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    users = db.scalars(select(User).order_by(User.registration_date.desc()))
    return [dict(serialize_user(u), access=evaluate_access(u, now).to_dict()) for u in users]


@transactional
def grant_premium(db: Session, user_id: str, months: int, now: Optional[datetime] = None) -> datetime:
    """Administrative override; bypasses unlock codes entirely."""
    if months < 1:
        raise ValidationError("months must be at least 1")
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    now = as_utc(now) or datetime.now(timezone.utc)
    expires_at = add_months(now, months)
    user.is_premium = True
    user.premium_expires_at = expires_at
    db.commit()
    logger.info(f"Granted premium to {user_id} until {expires_at.isoformat()}")
    return expires_at


@transactional
def revoke_premium(db: Session, user_id: str) -> None:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    user.is_premium = False
    user.premium_expires_at = None
    db.commit()
    logger.info(f"Revoked premium from {user_id}")


# ---------- Reporting ----------

def statistics(db: Session) -> Dict[str, int]:
    total_users = _count(db, User)
    premium_users = _count(db, User, User.is_premium.is_(True))
    total_codes = _count(db, UnlockCode)
    active_codes = _count(db, UnlockCode, UnlockCode.is_used.is_(False))
    return {
        "totalUsers": total_users,
        "premiumUsers": premium_users,
        "trialUsers": total_users - premium_users,
        "totalQuestions": _count(db, Question),
        "totalSessions": count_sessions(db),
        "completedSessions": count_sessions(db, completed=True),
        "totalCodes": total_codes,
        "activeCodes": active_codes,
        "usedCodes": total_codes - active_codes,
    }


def recent_activity(db: Session, limit: int = RECENT_ACTIVITY_LIMIT) -> List[Dict[str, Any]]:
    rows = db.execute(
        select(ExamSession, User)
        .join(User, User.id == ExamSession.user_id)
        .order_by(ExamSession.start_time.desc())
        .limit(limit)
    ).all()
    return [
        {
            "id": s.id,
            "examType": s.exam_type,
            "subject": s.subject,
            "year": s.year,
            "startTime": isoformat(s.start_time),
            "endTime": isoformat(s.end_time),
            "duration": s.duration,
            "totalQuestions": s.total_questions,
            "isCompleted": s.is_completed,
            "score": s.score,
            "user": {"fullName": u.full_name, "email": u.email},
        }
        for s, u in rows
    ]
