"""
Unlock codes: generation, listing, deletion and one-time redemption.

Redemption claims the code with a conditional update (``WHERE is_used =
false``) and sets the user's premium fields in the same transaction, so two
concurrent redemptions of one code yield exactly one winner.
"""
import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, aliased

from cbt.core.config import settings
from cbt.core.database import transactional
from cbt.core.errors import ConflictError, InvalidCodeError, NotFoundError, ValidationError
from cbt.models.orm import UnlockCode, User
from cbt.services.access import add_months, as_utc, isoformat, premium_expiry

logger = logging.getLogger(__name__)

CODE_PREFIX = "CBT"
MAX_CODES_PER_REQUEST = 100
DEFAULT_DURATION_MONTHS = 9


def new_code_string() -> str:
    raw = secrets.token_hex(8).upper()
    return "-".join([CODE_PREFIX] + [raw[i:i + 4] for i in range(0, len(raw), 4)])


@transactional
def generate_codes(db: Session, quantity: int, duration: int, generated_by: Optional[str],
                   now: Optional[datetime] = None) -> List[str]:
    if quantity < 1:
        raise ValidationError("quantity must be at least 1")
    if quantity > MAX_CODES_PER_REQUEST:
        raise ValidationError(f"Maximum {MAX_CODES_PER_REQUEST} codes at once")
    if duration < 1:
        raise ValidationError("duration must be at least 1 month")
    now = as_utc(now) or datetime.now(timezone.utc)

    codes: List[str] = []
    while len(codes) < quantity:
        code = new_code_string()
        if code not in codes:
            codes.append(code)
    db.add_all(
        UnlockCode(code=c, duration=duration, is_used=False, generated_by=generated_by, generated_at=now)
        for c in codes
    )
    db.commit()
    logger.info(f"Generated {quantity} unlock codes ({duration} months) by {generated_by}")
    return codes


def find_redeemable_code(db: Session, code: str) -> UnlockCode:
    code = (code or "").strip()
    if not code:
        raise InvalidCodeError()
    unlock = db.scalar(select(UnlockCode).where(UnlockCode.code == code, UnlockCode.is_used.is_(False)))
    if unlock is None:
        raise InvalidCodeError()
    return unlock


def claim_code(db: Session, unlock: UnlockCode, user_id: str, now: datetime) -> datetime:
    """Mark ``unlock`` used by ``user_id`` and grant premium. Caller commits."""
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    claimed = db.execute(
        update(UnlockCode)
        .where(UnlockCode.id == unlock.id, UnlockCode.is_used.is_(False))
        .values(is_used=True, used_by=user_id, used_at=now)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        raise InvalidCodeError()

    base = now
    if settings.UNLOCK_EXTENDS_PREMIUM:
        base = premium_expiry(user, now) or now
    expires_at = add_months(base, unlock.duration)

    user.is_premium = True
    user.premium_expires_at = expires_at
    user.used_unlock_code = unlock.code
    db.flush()
    return expires_at


@transactional
def redeem_code(db: Session, code: str, user_id: str, now: Optional[datetime] = None) -> datetime:
    now = as_utc(now) or datetime.now(timezone.utc)
    unlock = find_redeemable_code(db, code)
    expires_at = claim_code(db, unlock, user_id, now)
    db.commit()
    logger.info(f"User {user_id} redeemed unlock code {unlock.id}; premium until {expires_at.isoformat()}")
    return expires_at


def serialize_code(unlock: UnlockCode, redeemer: Optional[User] = None) -> Dict[str, Any]:
    return {
        "id": unlock.id,
        "code": unlock.code,
        "duration": unlock.duration,
        "isUsed": unlock.is_used,
        "generatedBy": unlock.generated_by,
        "generatedAt": isoformat(unlock.generated_at),
        "usedBy": unlock.used_by,
        "usedAt": isoformat(unlock.used_at),
        "user": {"fullName": redeemer.full_name, "email": redeemer.email} if redeemer else None,
    }


def list_codes(db: Session) -> List[Dict[str, Any]]:
    redeemer = aliased(User)
    rows = db.execute(
        select(UnlockCode, redeemer)
        .outerjoin(redeemer, redeemer.id == UnlockCode.used_by)
        .order_by(UnlockCode.generated_at.desc(), UnlockCode.id.desc())
    ).all()
    return [serialize_code(code, user) for code, user in rows]


@transactional
def delete_code(db: Session, code_id: int) -> None:
    removed = db.execute(
        delete(UnlockCode)
        .where(UnlockCode.id == code_id, UnlockCode.is_used.is_(False))
        .execution_options(synchronize_session=False)
    )
    if removed.rowcount != 1:
        if db.get(UnlockCode, code_id) is None:
            raise NotFoundError("Unlock code not found")
        raise ConflictError("Used unlock codes cannot be deleted")
    db.commit()
    logger.info(f"Deleted unlock code {code_id}")
