import functools
import logging

from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from tenacity import Retrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from cbt.core.config import settings
from cbt.core.errors import PersistenceError

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    options = {"future": True, "pool_pre_ping": True, "echo": settings.DATABASE_ECHO}
    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            options["poolclass"] = StaticPool
    return options


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create tables if they don't exist."""
    from cbt.models.orm import Base

    Base.metadata.create_all(bind=engine)


def is_transient(exc: BaseException) -> bool:
    """Errors worth retrying: lost connections, lock timeouts, serialization failures."""
    if isinstance(exc, OperationalError):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


def transactional(func):
    """Run ``func(db, ...)`` as one unit of work.

    Any exception rolls the session back. Transient database errors are
    retried with exponential backoff; business errors propagate untouched.
    Other database errors surface as ``PersistenceError``.
    """

    @functools.wraps(func)
    def wrapper(db: Session, *args, **kwargs):
        retrying = Retrying(
            retry=retry_if_exception(is_transient),
            stop=stop_after_attempt(max(1, settings.DB_RETRY_ATTEMPTS)),
            wait=wait_exponential(multiplier=settings.DB_RETRY_BACKOFF, max=settings.DB_RETRY_MAX_WAIT),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    try:
                        return func(db, *args, **kwargs)
                    except Exception:
                        db.rollback()
                        raise
        except SQLAlchemyError as exc:
            logger.error(f"Database error in {func.__name__}: {exc}", exc_info=True)
            raise PersistenceError() from exc

    return wrapper
