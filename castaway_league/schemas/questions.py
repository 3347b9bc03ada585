from pydantic import BaseModel, Field
from datetime import datetime


class QuestionTemplateCreate(BaseModel):
    text: str = Field(..., min_length=1)
    type: str  # MULTIPLE_CHOICE | FILL_IN_THE_BLANK
    options: list[str] | None = None
    point_value: int = 1
    category: str | None = None
    is_wager: bool = True
    min_wager: int | None = None
    max_wager: int | None = None


class QuestionTemplateResponse(BaseModel):
    id: int
    text: str
    type: str
    options: list[str] | None
    point_value: int
    category: str | None
    is_wager: bool
    min_wager: int | None
    max_wager: int | None
    created_at: datetime

    model_config = {"from_attributes": True}


class LeagueQuestionCreate(BaseModel):
    episode_number: int = Field(..., gt=0)
    template_id: int | None = None  # Either a template or the inline fields below
    text: str | None = None
    type: str | None = None
    options: list[str] | None = None
    point_value: int = 1
    sort_order: int | None = Field(default=None, ge=0)
    question_scope: str = "episode"
    is_wager: bool = True
    min_wager: int | None = None
    max_wager: int | None = None


class CreateFromTemplates(BaseModel):
    episode_number: int = Field(..., gt=0)
    template_ids: list[int] = Field(..., min_length=1)


class LeagueQuestionUpdate(BaseModel):
    episode_number: int | None = None
    text: str | None = None
    type: str | None = None
    options: list[str] | None = None
    point_value: int | None = None
    sort_order: int | None = None
    question_scope: str | None = None
    is_wager: bool | None = None
    min_wager: int | None = None
    max_wager: int | None = None


class LeagueQuestionResponse(BaseModel):
    id: int
    league_season_id: int
    episode_number: int
    text: str
    type: str
    options: list[str] | None
    point_value: int
    sort_order: int
    question_scope: str
    is_wager: bool
    min_wager: int | None
    max_wager: int | None
    source_template_id: int | None
    is_scored: bool
    correct_answer: str | None = None

    model_config = {"from_attributes": True}


class SubmitAnswer(BaseModel):
    answer: str
    wager_amount: int | None = None


class SubmissionResponse(BaseModel):
    id: int
    team_id: int
    league_question_id: int
    answer: str
    wager_amount: int
    submitted_at: datetime
    is_graded: bool
    awarded_points: int | None

    model_config = {"from_attributes": True}


class GradeQuestion(BaseModel):
    correct_answer: str


class GradeBatchItem(BaseModel):
    question_id: int
    correct_answer: str


class GradeBatch(BaseModel):
    answers: list[GradeBatchItem] = Field(..., min_length=1)


class GradingResultItem(BaseModel):
    submission_id: int
    team_id: int
    is_correct: bool
    delta: int

    model_config = {"from_attributes": True}


class GradeResponse(BaseModel):
    question_id: int
    results: list[GradingResultItem]


class EpisodeProgressResponse(BaseModel):
    episode_number: int
    total_questions: int
    answered_questions: int
    questions_remaining: int
    open_questions: int
    can_submit: bool
