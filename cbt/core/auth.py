from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi.security import HTTPBearer
from passlib.context import CryptContext
from pydantic import BaseModel, ValidationError as SchemaError

from cbt.core.config import settings
from cbt.core.errors import AuthenticationError

# pbkdf2 keeps hashing free of the bcrypt backend's 72-byte limit
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

bearer = HTTPBearer(auto_error=False)


class TokenData(BaseModel):
    sub: str
    email: str
    role: str


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def dummy_verify() -> None:
    """Spend one hash verification so unknown emails cost the same as bad passwords."""
    pwd_context.dummy_verify()


def create_token(user_id: str, email: str, role: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    ttl = timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS)
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(payload, settings.SECRET_KEY.get_secret_value(), algorithm=settings.ALGORITHM)


def decode_token(token: Optional[str]) -> TokenData:
    if not token:
        raise AuthenticationError("No token provided")
    try:
        payload = jwt.decode(token, settings.SECRET_KEY.get_secret_value(), algorithms=[settings.ALGORITHM])
        return TokenData(sub=payload["sub"], email=payload.get("email", ""), role=payload.get("role", "student"))
    except (jwt.PyJWTError, KeyError, SchemaError):
        raise AuthenticationError("Invalid or expired token")
