"""
Action dispatch for the ``?action=<name>`` resources.

Each resource declares an ``Enum`` of actions and registers one handler per
``(method, action)`` on an ``ActionRouter``, together with the guard it needs
and the pydantic schema its input is validated against. Dispatch resolves
the action, applies the guard, validates the input and only then calls the
handler with an ``ActionContext`` and the parsed payload.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple, Type

from fastapi import Body, Depends, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, ValidationError as SchemaError
from sqlalchemy.orm import Session

from cbt.core.auth import TokenData, bearer, decode_token
from cbt.core.database import get_db
from cbt.core.errors import AccessExpiredError, AuthorizationError, ValidationError
from cbt.models.orm import User
from cbt.services.access import AccessStatus, evaluate_access
from cbt.services.accounts import load_user


class Guard(str, enum.Enum):
    PUBLIC = "public"
    USER = "user"      # valid token for an existing user
    ACCESS = "access"  # ... with an active trial or premium
    ADMIN = "admin"    # ... whose stored role is admin


@dataclass
class ActionRequest:
    method: str
    action: Optional[str]
    query: Dict[str, Any] = field(default_factory=dict)
    body: Dict[str, Any] = field(default_factory=dict)
    token: Optional[str] = None


@dataclass
class ActionContext:
    db: Session
    now: datetime
    principal: Optional[TokenData] = None
    user: Optional[User] = None
    access: Optional[AccessStatus] = None


@dataclass(frozen=True)
class ActionSpec:
    handler: Callable[[ActionContext, Optional[BaseModel]], Any]
    guard: Guard
    schema: Optional[Type[BaseModel]]
    source: str
    status_code: int


def describe_errors(exc: SchemaError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


class ActionRouter:
    def __init__(self, resource: str, actions: Type[enum.Enum]):
        self.resource = resource
        self.actions = actions
        self._routes: Dict[Tuple[str, enum.Enum], ActionSpec] = {}

    def register(self, method: str, action: enum.Enum, *, guard: Guard = Guard.USER,
                 schema: Optional[Type[BaseModel]] = None, source: str = "body", status_code: int = 200):
        def decorator(handler):
            key = (method.upper(), action)
            if key in self._routes:
                raise RuntimeError(f"{self.resource}: {method} {action.value} registered twice")
            self._routes[key] = ActionSpec(handler, guard, schema, source, status_code)
            return handler
        return decorator

    def routes(self):
        return sorted((m, a.value) for m, a in self._routes)

    def resolve(self, method: str, action: Optional[str]) -> ActionSpec:
        try:
            member = self.actions(action)
        except ValueError:
            raise ValidationError("Invalid action")
        spec = self._routes.get((method.upper(), member))
        if spec is None:
            raise ValidationError("Invalid action")
        return spec

    def authorize(self, guard: Guard, request: ActionRequest, ctx: ActionContext) -> None:
        if guard is Guard.PUBLIC:
            return
        ctx.principal = decode_token(request.token)
        ctx.user = load_user(ctx.db, ctx.principal.sub)
        if guard is Guard.ADMIN and not ctx.user.is_admin:
            raise AuthorizationError("Admin access required")
        ctx.access = evaluate_access(ctx.user, ctx.now)
        if guard is Guard.ACCESS and not ctx.access.has_access:
            raise AccessExpiredError()

    @staticmethod
    def parse(spec: ActionSpec, request: ActionRequest) -> Optional[BaseModel]:
        if spec.schema is None:
            return None
        raw = request.query if spec.source == "query" else request.body
        try:
            return spec.schema.model_validate(raw or {})
        except SchemaError as exc:
            raise ValidationError(describe_errors(exc))

    def dispatch(self, request: ActionRequest, db: Session, now: Optional[datetime] = None) -> JSONResponse:
        spec = self.resolve(request.method, request.action)
        ctx = ActionContext(db=db, now=now or datetime.now(timezone.utc))
        self.authorize(spec.guard, request, ctx)
        payload = self.parse(spec, request)
        result = spec.handler(ctx, payload)
        return JSONResponse(status_code=spec.status_code, content=jsonable_encoder(result))


def endpoint(action_router: ActionRouter):
    """FastAPI endpoint that feeds every request on a resource path into ``action_router``."""

    def handle(
        request: Request,
        action: Optional[str] = Query(None),
        body: Optional[Dict[str, Any]] = Body(None),
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
        db: Session = Depends(get_db),
    ):
        return action_router.dispatch(
            ActionRequest(
                method=request.method,
                action=action,
                query=dict(request.query_params),
                body=body or {},
                token=credentials.credentials if credentials else None,
            ),
            db,
        )

    handle.__name__ = f"{action_router.resource}_actions"
    return handle
