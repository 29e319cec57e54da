import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cbt.core.auth import create_token, dummy_verify, hash_password, verify_password
from cbt.core.database import transactional
from cbt.core.errors import AuthenticationError, EmailTakenError, InvalidCredentialsError
from cbt.models.orm import User, UserRole
from cbt.services.access import as_utc, evaluate_access, isoformat, trial_end

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Emails are compared case-insensitively: stored and looked up lower-cased."""
    return email.strip().lower()


def serialize_user(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "fullName": user.full_name,
        "email": user.email,
        "phone": user.phone,
        "role": user.role,
        "registrationDate": isoformat(user.registration_date),
        "trialEndsAt": isoformat(trial_end(user.registration_date)),
        "isPremium": user.is_premium,
        "premiumExpiresAt": isoformat(user.premium_expires_at),
        "usedUnlockCode": user.used_unlock_code,
    }


def issue_token(user: User) -> str:
    return create_token(user.id, user.email, user.role)


@transactional
def register_user(db: Session, full_name: str, email: str, password: str, phone: Optional[str] = None,
                  role: str = UserRole.STUDENT.value, now: Optional[datetime] = None) -> User:
    email = normalize_email(email)
    if db.scalar(select(User.id).where(User.email == email)) is not None:
        raise EmailTakenError()

    user = User(
        full_name=full_name.strip(),
        email=email,
        phone=phone,
        password_hash=hash_password(password),
        role=role,
        registration_date=as_utc(now) or datetime.now(timezone.utc),
        is_premium=False,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        # lost a race against a concurrent registration of the same email
        if db.scalar(select(User.id).where(User.email == email)) is not None:
            raise EmailTakenError()
        raise
    logger.info(f"Registered user {user.id} ({role})")
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = db.scalar(select(User).where(User.email == normalize_email(email)))
    if user is None:
        dummy_verify()
        raise InvalidCredentialsError()
    if not verify_password(password, user.password_hash):
        raise InvalidCredentialsError()
    logger.info(f"User {user.id} logged in")
    return user


def load_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise AuthenticationError("User not found")
    return user


def profile(user: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {"user": serialize_user(user), "access": evaluate_access(user, now).to_dict()}
