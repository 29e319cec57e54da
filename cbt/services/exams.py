"""
Exam delivery: catalog browsing, session start with random sampling,
answer capture and completion/scoring.
"""
import logging
import random
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from cbt.core.database import transactional
from cbt.core.errors import ConflictError, NotFoundError, ValidationError
from cbt.models.orm import ExamAnswer, ExamSession, ExamSessionQuestion, Question
from cbt.services.access import as_utc, isoformat

logger = logging.getLogger(__name__)

DEFAULT_QUESTION_COUNT = 40
MAX_QUESTION_COUNT = 100
# minutes; fixed per exam type
EXAM_DURATIONS = {"JAMB": 120}
DEFAULT_DURATION = 180


def exam_duration(exam_type: str) -> int:
    return EXAM_DURATIONS.get(exam_type, DEFAULT_DURATION)


def serialize_question(q: Question) -> Dict[str, Any]:
    """Question as shown to a candidate: never includes the answer."""
    return {
        "id": q.id,
        "questionText": q.question_text,
        "questionImage": q.question_image,
        "options": q.options,
        "topic": q.topic,
        "questionType": q.question_type,
    }


# ---------- Catalog ----------

def list_exam_types(db: Session) -> List[str]:
    return list(db.scalars(select(Question.exam_type).distinct().order_by(Question.exam_type)))


def list_subjects(db: Session, exam_type: str) -> List[str]:
    stmt = select(Question.subject).where(Question.exam_type == exam_type).distinct().order_by(Question.subject)
    return list(db.scalars(stmt))


def list_years(db: Session, exam_type: str, subject: str) -> List[int]:
    stmt = (
        select(Question.year)
        .where(Question.exam_type == exam_type, Question.subject == subject, Question.year.is_not(None))
        .distinct()
        .order_by(Question.year.desc())
    )
    return list(db.scalars(stmt))


# ---------- Sessions ----------

@transactional
def start_session(db: Session, user_id: str, exam_type: str, subject: str, year: Optional[int] = None,
                  count: int = DEFAULT_QUESTION_COUNT, now: Optional[datetime] = None,
                  rng: Optional[random.Random] = None) -> Dict[str, Any]:
    if not 1 <= count <= MAX_QUESTION_COUNT:
        raise ValidationError(f"numberOfQuestions must be between 1 and {MAX_QUESTION_COUNT}")
    now = as_utc(now) or datetime.now(timezone.utc)

    stmt = select(Question).where(Question.exam_type == exam_type, Question.subject == subject)
    if year is not None:
        stmt = stmt.where(Question.year == year)
    catalog = list(db.scalars(stmt.order_by(Question.id)))
    if not catalog:
        raise NotFoundError("No questions found for this selection")

    questions = (rng or random).sample(catalog, min(count, len(catalog)))
    duration = exam_duration(exam_type)

    session = ExamSession(
        user_id=user_id,
        exam_type=exam_type,
        subject=subject,
        year=year,
        start_time=now,
        duration=duration,
        total_questions=len(questions),
        is_completed=False,
    )
    db.add(session)
    db.flush()
    db.add_all(
        ExamSessionQuestion(session_id=session.id, question_id=q.id, position=pos)
        for pos, q in enumerate(questions)
    )
    db.commit()
    logger.info(f"User {user_id} started session {session.id}: {exam_type}/{subject} with {len(questions)} questions")

    return {
        "sessionId": session.id,
        "questions": [serialize_question(q) for q in questions],
        "duration": duration,
        "examType": exam_type,
        "subject": subject,
        "year": year,
        "startTime": isoformat(now),
        "totalQuestions": len(questions),
    }


def get_owned_session(db: Session, session_id: str, user_id: str) -> ExamSession:
    session = db.get(ExamSession, session_id)
    # someone else's session looks the same as a missing one
    if session is None or session.user_id != user_id:
        raise NotFoundError("Exam session not found")
    return session


def hold_open_session(db: Session, session_id: str) -> None:
    """
    Write-lock the session row if it is still open.

    The lock lasts until the caller commits or rolls back, so an answer
    and the completion of the same session can never interleave.
    """
    held = db.execute(
        update(ExamSession)
        .where(ExamSession.id == session_id, ExamSession.is_completed.is_(False))
        .values(is_completed=False)
        .execution_options(synchronize_session=False)
    )
    if held.rowcount != 1:
        raise ConflictError("Exam session already completed")


# dialects with a single-statement INSERT ... ON CONFLICT DO UPDATE
UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _upsert_answer(db: Session, values: Dict[str, Any]) -> None:
    """Insert or overwrite the answer for (session, question) in one statement."""
    dialect = db.get_bind().dialect.name
    insert = UPSERT_DIALECTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"Answer upsert is only supported on PostgreSQL and SQLite, not {dialect}")

    stmt = insert(ExamAnswer).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["session_id", "question_id"],
        set_={
            "selected_answer": stmt.excluded.selected_answer,
            "is_correct": stmt.excluded.is_correct,
            "marked_for_review": stmt.excluded.marked_for_review,
            "answered_at": stmt.excluded.answered_at,
        },
    )
    db.execute(stmt)


@transactional
def submit_answer(db: Session, user_id: str, session_id: str, question_id: int, selected_answer: str,
                  marked_for_review: bool = False, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = as_utc(now) or datetime.now(timezone.utc)
    get_owned_session(db, session_id, user_id)
    hold_open_session(db, session_id)

    question = db.scalar(
        select(Question)
        .join(ExamSessionQuestion, ExamSessionQuestion.question_id == Question.id)
        .where(ExamSessionQuestion.session_id == session_id, Question.id == question_id)
    )
    if question is None:
        raise ValidationError("Question is not part of this exam session")

    is_correct = question.correct_answer == selected_answer
    _upsert_answer(db, {
        "session_id": session_id,
        "question_id": question_id,
        "selected_answer": selected_answer,
        "is_correct": is_correct,
        "marked_for_review": bool(marked_for_review),
        "answered_at": now,
    })
    db.commit()
    return {"message": "Answer submitted", "isCorrect": is_correct}


def format_percentage(score: int, total: int) -> str:
    if total <= 0:
        raise ValidationError("Cannot score an exam session with no recorded answers")
    return f"{score / total * 100:.2f}"


@transactional
def complete_session(db: Session, user_id: str, session_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = as_utc(now) or datetime.now(timezone.utc)
    session = get_owned_session(db, session_id, user_id)
    # answers are read under the lock, so the score counts every committed answer
    hold_open_session(db, session_id)

    rows = db.execute(
        select(ExamAnswer, Question, ExamSessionQuestion.position)
        .join(Question, Question.id == ExamAnswer.question_id)
        .outerjoin(ExamSessionQuestion, (ExamSessionQuestion.session_id == ExamAnswer.session_id)
                   & (ExamSessionQuestion.question_id == ExamAnswer.question_id))
        .where(ExamAnswer.session_id == session_id)
        .order_by(ExamSessionQuestion.position, ExamAnswer.id)
    ).all()
    if not rows:
        raise ValidationError("Cannot complete an exam session with no recorded answers")

    score = sum(1 for answer, _, _ in rows if answer.is_correct)
    percentage = format_percentage(score, len(rows))

    finished = db.execute(
        update(ExamSession)
        .where(ExamSession.id == session_id, ExamSession.is_completed.is_(False))
        .values(is_completed=True, end_time=now, score=score)
        .execution_options(synchronize_session=False)
    )
    if finished.rowcount != 1:
        raise ConflictError("Exam session already completed")
    db.commit()
    logger.info(f"Session {session_id} completed: {score}/{len(rows)}")

    return {
        "sessionId": session_id,
        "score": score,
        "totalQuestions": len(rows),
        "sessionQuestions": session.total_questions,
        "percentage": percentage,
        "results": [
            {
                "questionId": question.id,
                "questionText": question.question_text,
                "options": question.options,
                "selectedAnswer": answer.selected_answer,
                "correctAnswer": question.correct_answer,
                "isCorrect": answer.is_correct,
                "explanation": question.explanation,
                "markedForReview": answer.marked_for_review,
            }
            for answer, question, _ in rows
        ],
    }


def count_sessions(db: Session, completed: Optional[bool] = None) -> int:
    stmt = select(func.count()).select_from(ExamSession)
    if completed is not None:
        stmt = stmt.where(ExamSession.is_completed.is_(completed))
    return db.scalar(stmt) or 0
