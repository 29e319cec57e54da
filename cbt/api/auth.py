import enum
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from cbt.api.dispatch import ActionContext, ActionRouter, Guard, endpoint
from cbt.services import accounts, unlock
from cbt.services.access import evaluate_access, isoformat


class AuthAction(str, enum.Enum):
    REGISTER = "register"
    LOGIN = "login"
    PROFILE = "profile"
    UNLOCK = "unlock"


class RegisterIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: str = Field(alias="fullName", min_length=1, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(default=None, max_length=50)
    password: str = Field(min_length=1, max_length=256)


class LoginIn(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class UnlockIn(BaseModel):
    code: str = Field(min_length=1, max_length=64)


actions = ActionRouter("auth", AuthAction)


@actions.register("POST", AuthAction.REGISTER, guard=Guard.PUBLIC, schema=RegisterIn, status_code=201)
def register(ctx: ActionContext, payload: RegisterIn):
    user = accounts.register_user(ctx.db, payload.full_name, payload.email, payload.password,
                                  phone=payload.phone, now=ctx.now)
    return {
        "message": "Registration successful! You have 3 days free trial.",
        "token": accounts.issue_token(user),
        "user": accounts.serialize_user(user),
    }


@actions.register("POST", AuthAction.LOGIN, guard=Guard.PUBLIC, schema=LoginIn)
def login(ctx: ActionContext, payload: LoginIn):
    user = accounts.authenticate(ctx.db, payload.email, payload.password)
    return {
        "message": "Login successful",
        "token": accounts.issue_token(user),
        "user": accounts.serialize_user(user),
    }


@actions.register("GET", AuthAction.PROFILE)
def profile(ctx: ActionContext, payload: None):
    return accounts.profile(ctx.user, ctx.now)


@actions.register("POST", AuthAction.UNLOCK, schema=UnlockIn)
def unlock_premium(ctx: ActionContext, payload: UnlockIn):
    expires_at = unlock.redeem_code(ctx.db, payload.code, ctx.user.id, now=ctx.now)
    ctx.db.refresh(ctx.user)
    return {
        "message": "Premium access unlocked successfully!",
        "premiumExpiresAt": isoformat(expires_at),
        "access": evaluate_access(ctx.user, ctx.now).to_dict(),
    }


router = APIRouter()
router.add_api_route("/auth", endpoint(actions), methods=["GET", "POST"])
