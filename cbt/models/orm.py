import enum
import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import (
    Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, JSON, String, Text, UniqueConstraint
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, enum.Enum):
    STUDENT = "student"
    ADMIN = "admin"


# ========== Accounts ==========

class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_registered", "registration_date"),
        CheckConstraint(
            "is_premium = false OR premium_expires_at IS NOT NULL",
            name="ck_users_premium_expiry",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.STUDENT.value)
    # trial end is derived from this at read time, never stored
    registration_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    is_premium: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    premium_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    used_unlock_code: Mapped[Optional[str]] = mapped_column(String(64))

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


class UnlockCode(Base):
    __tablename__ = "unlock_codes"
    __table_args__ = (
        Index("idx_uc_generated", "generated_at"),
        Index("idx_uc_is_used", "is_used"),
        CheckConstraint("duration > 0", name="ck_unlock_codes_duration"),
        CheckConstraint(
            "is_used = false OR (used_by IS NOT NULL AND used_at IS NOT NULL)",
            name="ck_unlock_codes_used",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # months
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    generated_by: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    used_by: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


# ========== Content ==========

class Question(Base):
    __tablename__ = "questions"
    __table_args__ = (
        Index("idx_questions_catalog", "exam_type", "subject", "year"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    exam_type: Mapped[str] = mapped_column(String(50), nullable=False)
    subject: Mapped[str] = mapped_column(String(100), nullable=False)
    year: Mapped[Optional[int]] = mapped_column(Integer)
    topic: Mapped[Optional[str]] = mapped_column(String(255))
    question_type: Mapped[str] = mapped_column(String(50), nullable=False, default="multiple-choice")
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    question_image: Mapped[Optional[str]] = mapped_column(String(500))
    options: Mapped[List[Any]] = mapped_column(JSON, nullable=False, default=list)
    correct_answer: Mapped[str] = mapped_column(Text, nullable=False)
    explanation: Mapped[Optional[str]] = mapped_column(Text)
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


# ========== Delivery ==========

class ExamSession(Base):
    __tablename__ = "exam_sessions"
    __table_args__ = (
        Index("idx_es_user", "user_id"),
        Index("idx_es_started", "start_time"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    exam_type: Mapped[str] = mapped_column(String(50), nullable=False)
    subject: Mapped[str] = mapped_column(String(100), nullable=False)
    year: Mapped[Optional[int]] = mapped_column(Integer)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # minutes
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    score: Mapped[Optional[int]] = mapped_column(Integer)


class ExamSessionQuestion(Base):
    __tablename__ = "exam_session_questions"
    __table_args__ = (
        Index("idx_esq_session", "session_id"),
        UniqueConstraint("session_id", "position", name="uq_session_question_position"),
        UniqueConstraint("session_id", "question_id", name="uq_session_question"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    session_id: Mapped[str] = mapped_column(String(36), ForeignKey("exam_sessions.id", ondelete="CASCADE"), nullable=False)
    question_id: Mapped[int] = mapped_column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)


class ExamAnswer(Base):
    __tablename__ = "exam_answers"
    __table_args__ = (
        Index("idx_ea_session", "session_id"),
        UniqueConstraint("session_id", "question_id", name="uq_exam_answer"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    session_id: Mapped[str] = mapped_column(String(36), ForeignKey("exam_sessions.id", ondelete="CASCADE"), nullable=False)
    question_id: Mapped[int] = mapped_column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    selected_answer: Mapped[str] = mapped_column(Text, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    marked_for_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    answered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
