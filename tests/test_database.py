import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from cbt.core.database import is_transient, transactional
from cbt.core.errors import NotFoundError, PersistenceError


def locked():
    return OperationalError("UPDATE unlock_codes", {}, Exception("database is locked"))


def test_transient_errors_are_retried(db):
    calls = []

    @transactional
    def flaky(session):
        calls.append(session)
        if len(calls) == 1:
            raise locked()
        return "ok"

    assert flaky(db) == "ok"
    assert len(calls) == 2


def test_retries_are_bounded(db):
    calls = []

    @transactional
    def always_locked(session):
        calls.append(session)
        raise locked()

    with pytest.raises(PersistenceError) as exc_info:
        always_locked(db)
    assert len(calls) == 3
    assert exc_info.value.status_code == 500
    assert "locked" not in exc_info.value.message


def test_integrity_errors_are_not_retried(db):
    calls = []

    @transactional
    def duplicate(session):
        calls.append(session)
        raise IntegrityError("INSERT INTO users", {}, Exception("UNIQUE constraint failed"))

    with pytest.raises(PersistenceError):
        duplicate(db)
    assert len(calls) == 1


def test_business_errors_pass_through_untouched(db):
    calls = []

    @transactional
    def missing(session):
        calls.append(session)
        raise NotFoundError("Question not found")

    with pytest.raises(NotFoundError, match="Question not found"):
        missing(db)
    assert len(calls) == 1


def test_is_transient():
    assert is_transient(locked())
    assert not is_transient(IntegrityError("INSERT", {}, Exception("dup")))
    assert not is_transient(ValueError("nope"))
