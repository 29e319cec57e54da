import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

# Settings are read once at import time, so the environment goes first.
_DB_DIR = tempfile.mkdtemp(prefix="cbt-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'cbt.db')}"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "testing"
os.environ["DB_RETRY_BACKOFF"] = "0"

from fastapi.testclient import TestClient  # noqa: E402

from cbt.core.database import SessionLocal, engine  # noqa: E402
from cbt.main import app  # noqa: E402
from cbt.models.orm import Base, UserRole  # noqa: E402
from cbt.services import accounts, admin  # noqa: E402

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
PASSWORD = "s3cret-pass"


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def factory(email=None, role=UserRole.STUDENT.value, registered=None, full_name="Ada Obi"):
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        return accounts.register_user(db, full_name, email, PASSWORD, role=role,
                                      now=registered or datetime.now(timezone.utc))

    return factory


def auth_headers(user):
    return {"Authorization": f"Bearer {accounts.issue_token(user)}"}


@pytest.fixture
def student(make_user):
    return make_user(email="student@example.com")


@pytest.fixture
def admin_user(make_user):
    return make_user(email="admin@example.com", role=UserRole.ADMIN.value, full_name="Site Admin")


@pytest.fixture
def expired_student(make_user):
    return make_user(email="late@example.com", registered=datetime.now(timezone.utc) - timedelta(days=5))


def question_rows(count, exam_type="JAMB", subject="Mathematics", year=2020, correct="A"):
    return [
        {
            "exam_type": exam_type,
            "subject": subject,
            "year": year,
            "topic": "Algebra",
            "question_text": f"{subject} question {i}",
            "options": ["A", "B", "C", "D"],
            "correct_answer": correct,
            "explanation": f"Because {correct}",
        }
        for i in range(count)
    ]


@pytest.fixture
def seed_questions(db):
    def seed(count, **kwargs):
        return admin.upload_questions(db, question_rows(count, **kwargs))

    return seed


@pytest.fixture
def auth():
    return auth_headers
