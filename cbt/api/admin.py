import enum
from typing import List, Optional, Union

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from cbt.api.dispatch import ActionContext, ActionRouter, Guard, endpoint
from cbt.services import admin, unlock
from cbt.services.access import isoformat


class AdminAction(str, enum.Enum):
    GENERATE_CODES = "generate-codes"
    GET_CODES = "get-codes"
    DELETE_CODE = "delete-code"
    UPLOAD_QUESTIONS = "upload-questions"
    DELETE_QUESTION = "delete-question"
    GET_USERS = "get-users"
    GRANT_PREMIUM = "grant-premium"
    REVOKE_PREMIUM = "revoke-premium"
    STATISTICS = "statistics"
    RECENT_ACTIVITY = "recent-activity"


class GenerateCodesIn(BaseModel):
    # quantity is capped by the service so the error names the limit
    duration: int = Field(default=unlock.DEFAULT_DURATION_MONTHS, ge=1, le=120)
    quantity: int = Field(default=1, ge=1)


class CodeIdQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code_id: int = Field(alias="codeId")


class QuestionIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    exam_type: str = Field(alias="examType", min_length=1, max_length=50)
    subject: str = Field(min_length=1, max_length=100)
    year: Optional[int] = None
    topic: Optional[str] = None
    question_type: str = Field(alias="questionType", default="multiple-choice")
    question_text: str = Field(alias="questionText", min_length=1)
    question_image: Optional[str] = Field(alias="questionImage", default=None)
    options: List[Union[str, dict]] = Field(min_length=1)
    correct_answer: str = Field(alias="correctAnswer", min_length=1)
    explanation: Optional[str] = None
    difficulty: str = "medium"


class UploadQuestionsIn(BaseModel):
    questions: List[QuestionIn] = Field(min_length=1)


class QuestionIdQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question_id: int = Field(alias="questionId")


class GrantPremiumIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    months: int = Field(default=9, ge=1, le=120)


class UserIdQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)


class RecentActivityQuery(BaseModel):
    limit: int = Field(default=admin.RECENT_ACTIVITY_LIMIT, ge=1, le=100)


actions = ActionRouter("admin", AdminAction)


@actions.register("POST", AdminAction.GENERATE_CODES, guard=Guard.ADMIN, schema=GenerateCodesIn, status_code=201)
def generate_codes(ctx: ActionContext, payload: GenerateCodesIn):
    codes = unlock.generate_codes(ctx.db, payload.quantity, payload.duration, ctx.user.id, now=ctx.now)
    return {"message": "Codes generated successfully", "codes": codes}


@actions.register("GET", AdminAction.GET_CODES, guard=Guard.ADMIN)
def get_codes(ctx: ActionContext, payload: None):
    return {"codes": unlock.list_codes(ctx.db)}


@actions.register("DELETE", AdminAction.DELETE_CODE, guard=Guard.ADMIN, schema=CodeIdQuery, source="query")
def delete_code(ctx: ActionContext, payload: CodeIdQuery):
    unlock.delete_code(ctx.db, payload.code_id)
    return {"message": "Code deleted successfully"}


@actions.register("POST", AdminAction.UPLOAD_QUESTIONS, guard=Guard.ADMIN, schema=UploadQuestionsIn, status_code=201)
def upload_questions(ctx: ActionContext, payload: UploadQuestionsIn):
    rows: List[dict] = [q.model_dump() for q in payload.questions]
    count = admin.upload_questions(ctx.db, rows)
    return {"message": "Questions uploaded successfully", "count": count}


@actions.register("DELETE", AdminAction.DELETE_QUESTION, guard=Guard.ADMIN, schema=QuestionIdQuery, source="query")
def delete_question(ctx: ActionContext, payload: QuestionIdQuery):
    admin.delete_question(ctx.db, payload.question_id)
    return {"message": "Question deleted successfully"}


@actions.register("GET", AdminAction.GET_USERS, guard=Guard.ADMIN)
def get_users(ctx: ActionContext, payload: None):
    return {"users": admin.list_users(ctx.db, ctx.now)}


@actions.register("POST", AdminAction.GRANT_PREMIUM, guard=Guard.ADMIN, schema=GrantPremiumIn)
def grant_premium(ctx: ActionContext, payload: GrantPremiumIn):
    expires_at = admin.grant_premium(ctx.db, payload.user_id, payload.months, now=ctx.now)
    return {"message": "Premium access granted", "expiresAt": isoformat(expires_at)}


@actions.register("DELETE", AdminAction.REVOKE_PREMIUM, guard=Guard.ADMIN, schema=UserIdQuery, source="query")
def revoke_premium(ctx: ActionContext, payload: UserIdQuery):
    admin.revoke_premium(ctx.db, payload.user_id)
    return {"message": "Premium access revoked"}


@actions.register("GET", AdminAction.STATISTICS, guard=Guard.ADMIN)
def statistics(ctx: ActionContext, payload: None):
    return admin.statistics(ctx.db)


@actions.register("GET", AdminAction.RECENT_ACTIVITY, guard=Guard.ADMIN, schema=RecentActivityQuery, source="query")
def recent_activity(ctx: ActionContext, payload: RecentActivityQuery):
    return {"sessions": admin.recent_activity(ctx.db, payload.limit)}


router = APIRouter()
router.add_api_route("/admin", endpoint(actions), methods=["GET", "POST", "DELETE"])
