import enum
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from cbt.api.dispatch import ActionContext, ActionRouter, Guard, endpoint
from cbt.services import exams


class ExamAction(str, enum.Enum):
    TYPES = "types"
    SUBJECTS = "subjects"
    YEARS = "years"
    START = "start"
    SUBMIT_ANSWER = "submit-answer"
    COMPLETE = "complete"


class SubjectsQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    exam_type: str = Field(alias="examType", min_length=1)


class YearsQuery(SubjectsQuery):
    subject: str = Field(min_length=1)


class StartIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    exam_type: str = Field(alias="examType", min_length=1)
    subject: str = Field(min_length=1)
    year: Optional[int] = None
    number_of_questions: int = Field(
        alias="numberOfQuestions", default=exams.DEFAULT_QUESTION_COUNT, ge=1, le=exams.MAX_QUESTION_COUNT
    )


class SubmitAnswerIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1)
    question_id: int = Field(alias="questionId")
    selected_answer: str = Field(alias="selectedAnswer", min_length=1)
    marked_for_review: bool = Field(alias="markedForReview", default=False)


class CompleteIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1)


actions = ActionRouter("exams", ExamAction)


@actions.register("GET", ExamAction.TYPES, guard=Guard.ACCESS)
def exam_types(ctx: ActionContext, payload: None):
    return {"examTypes": exams.list_exam_types(ctx.db)}


@actions.register("GET", ExamAction.SUBJECTS, guard=Guard.ACCESS, schema=SubjectsQuery, source="query")
def subjects(ctx: ActionContext, payload: SubjectsQuery):
    return {"subjects": exams.list_subjects(ctx.db, payload.exam_type)}


@actions.register("GET", ExamAction.YEARS, guard=Guard.ACCESS, schema=YearsQuery, source="query")
def years(ctx: ActionContext, payload: YearsQuery):
    return {"years": exams.list_years(ctx.db, payload.exam_type, payload.subject)}


@actions.register("POST", ExamAction.START, guard=Guard.ACCESS, schema=StartIn)
def start(ctx: ActionContext, payload: StartIn):
    return exams.start_session(ctx.db, ctx.user.id, payload.exam_type, payload.subject, year=payload.year,
                               count=payload.number_of_questions, now=ctx.now)


@actions.register("POST", ExamAction.SUBMIT_ANSWER, schema=SubmitAnswerIn)
def submit_answer(ctx: ActionContext, payload: SubmitAnswerIn):
    return exams.submit_answer(ctx.db, ctx.user.id, payload.session_id, payload.question_id,
                               payload.selected_answer, marked_for_review=payload.marked_for_review, now=ctx.now)


@actions.register("POST", ExamAction.COMPLETE, schema=CompleteIn)
def complete(ctx: ActionContext, payload: CompleteIn):
    return exams.complete_session(ctx.db, ctx.user.id, payload.session_id, now=ctx.now)


router = APIRouter()
router.add_api_route("/exams", endpoint(actions), methods=["GET", "POST"])
