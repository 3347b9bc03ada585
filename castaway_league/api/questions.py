from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from castaway_league.core.database import get_db
from castaway_league.core.errors import UnknownQuestion
from castaway_league.models.models import (
    FantasyPlayer, LeagueQuestion, QuestionTemplate, Team,
)
from castaway_league.schemas.questions import (
    QuestionTemplateCreate, QuestionTemplateResponse,
    LeagueQuestionCreate, CreateFromTemplates, LeagueQuestionUpdate, LeagueQuestionResponse,
    SubmitAnswer, SubmissionResponse,
    GradeQuestion, GradeBatch, GradingResultItem, GradeResponse,
    EpisodeProgressResponse,
)
from castaway_league.schemas.leaderboard import EpisodeResultsResponse, EpisodeResultItem
from castaway_league.api.deps import get_current_user, get_current_team, require_commissioner, notifier_dep
from castaway_league.services import grading, question_catalog, scoring, wager_ledger
from castaway_league.services.question_catalog import QuestionSpec
from castaway_league.services.notifications import Notifier

templates_router = APIRouter(prefix="/api/question-templates", tags=["Question Templates"])
router = APIRouter(prefix="/api/league-seasons/{league_season_id}/questions", tags=["Questions"])


def _template_response(t: QuestionTemplate) -> QuestionTemplateResponse:
    return QuestionTemplateResponse(
        id=t.id,
        text=t.text,
        type=t.type.value,
        options=t.options,
        point_value=t.point_value,
        category=t.category,
        is_wager=t.is_wager,
        min_wager=t.min_wager,
        max_wager=t.max_wager,
        created_at=t.created_at,
    )


def _question_response(q: LeagueQuestion, reveal: bool = True) -> LeagueQuestionResponse:
    return LeagueQuestionResponse(
        id=q.id,
        league_season_id=q.league_season_id,
        episode_number=q.episode_number,
        text=q.text,
        type=q.type.value,
        options=q.options,
        point_value=q.point_value,
        sort_order=q.sort_order,
        question_scope=q.question_scope.value,
        is_wager=q.is_wager,
        min_wager=q.min_wager,
        max_wager=q.max_wager,
        source_template_id=q.source_template_id,
        is_scored=q.is_scored,
        # Answers stay hidden until the question is graded
        correct_answer=q.correct_answer if reveal or q.is_scored else None,
    )


async def _question_in_league_season(
    db: AsyncSession, league_season_id: int, question_id: int
) -> LeagueQuestion:
    question = await question_catalog.get_league_question(db, question_id)
    if question.league_season_id != league_season_id:
        raise UnknownQuestion(f"League question {question_id} not found in league-season {league_season_id}")
    return question


# --- Templates ---

@templates_router.get("", response_model=list[QuestionTemplateResponse])
async def list_templates(
    category: str | None = None,
    db: AsyncSession = Depends(get_db),
    _: FantasyPlayer = Depends(require_commissioner),
):
    templates = await question_catalog.list_templates(db, category)
    return [_template_response(t) for t in templates]


@templates_router.post("", response_model=QuestionTemplateResponse, status_code=201)
async def create_template(
    body: QuestionTemplateCreate,
    db: AsyncSession = Depends(get_db),
    _: FantasyPlayer = Depends(require_commissioner),
):
    template = await question_catalog.create_template(db, QuestionSpec(**body.model_dump()))
    return _template_response(template)


@templates_router.get("/{template_id}", response_model=QuestionTemplateResponse)
async def get_template(
    template_id: int,
    db: AsyncSession = Depends(get_db),
    _: FantasyPlayer = Depends(require_commissioner),
):
    return _template_response(await question_catalog.get_template(db, template_id))


# --- League questions ---

@router.get("", response_model=list[LeagueQuestionResponse])
async def list_questions(
    league_season_id: int,
    episode_number: int | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: FantasyPlayer = Depends(get_current_user),
):
    questions = await question_catalog.list_league_questions(db, league_season_id, episode_number)
    return [_question_response(q, reveal=current_user.is_commissioner) for q in questions]


@router.post("", response_model=LeagueQuestionResponse, status_code=201)
async def create_question(
    league_season_id: int,
    body: LeagueQuestionCreate,
    db: AsyncSession = Depends(get_db),
    _: FantasyPlayer = Depends(require_commissioner),
):
    if body.template_id is not None:
        source = body.template_id
    else:
        if body.text is None or body.type is None:
            raise HTTPException(
                status_code=400,
                detail="Provide either template_id or both text and type",
            )
        source = QuestionSpec(
            text=body.text,
            type=body.type,
            options=body.options,
            point_value=body.point_value,
            is_wager=body.is_wager,
            min_wager=body.min_wager,
            max_wager=body.max_wager,
            question_scope=body.question_scope,
        )
    question = await question_catalog.instantiate(
        db, source, league_season_id, body.episode_number, sort_order=body.sort_order
    )
    return _question_response(question)


@router.post("/from-templates", response_model=list[LeagueQuestionResponse], status_code=201)
async def create_from_templates(
    league_season_id: int,
    body: CreateFromTemplates,
    db: AsyncSession = Depends(get_db),
    _: FantasyPlayer = Depends(require_commissioner),
):
    created = await question_catalog.create_from_templates(
        db, league_season_id, body.episode_number, body.template_ids
    )
    return [_question_response(q) for q in created]


@router.patch("/{question_id}", response_model=LeagueQuestionResponse)
async def update_question(
    league_season_id: int,
    question_id: int,
    body: LeagueQuestionUpdate,
    db: AsyncSession = Depends(get_db),
    _: FantasyPlayer = Depends(require_commissioner),
):
    await _question_in_league_season(db, league_season_id, question_id)
    changes = body.model_dump(exclude_unset=True)
    question = await question_catalog.update_league_question(db, question_id, **changes)
    return _question_response(question)


@router.delete("/{question_id}", status_code=204)
async def delete_question(
    league_season_id: int,
    question_id: int,
    db: AsyncSession = Depends(get_db),
    _: FantasyPlayer = Depends(require_commissioner),
):
    await _question_in_league_season(db, league_season_id, question_id)
    await question_catalog.delete_league_question(db, question_id)


# --- Answers ---

@router.post("/{question_id}/answer", response_model=SubmissionResponse, status_code=201)
async def submit_answer(
    league_season_id: int,
    question_id: int,
    body: SubmitAnswer,
    db: AsyncSession = Depends(get_db),
    team: Team = Depends(get_current_team),
):
    await _question_in_league_season(db, league_season_id, question_id)
    return await wager_ledger.submit_answer(
        db, team.id, question_id, body.answer, body.wager_amount
    )


@router.get("/mine", response_model=list[SubmissionResponse])
async def my_submissions(
    league_season_id: int,
    db: AsyncSession = Depends(get_db),
    team: Team = Depends(get_current_team),
):
    return await wager_ledger.list_team_submissions(db, team.id)


@router.get("/episode/{episode_number}/progress", response_model=EpisodeProgressResponse)
async def episode_progress(
    league_season_id: int,
    episode_number: int,
    db: AsyncSession = Depends(get_db),
    team: Team = Depends(get_current_team),
):
    return EpisodeProgressResponse(**await wager_ledger.episode_progress(db, team.id, episode_number))


@router.post("/episode/{episode_number}/remind", status_code=202)
async def remind_window_closing(
    league_season_id: int,
    episode_number: int,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(notifier_dep),
    _: FantasyPlayer = Depends(require_commissioner),
):
    event = await wager_ledger.announce_window_closing(db, league_season_id, episode_number, notifier)
    if event is None:
        return {"sent": False, "detail": "No open questions for this episode"}
    return {"sent": True, "payload": event.payload}


# --- Grading ---

@router.post("/{question_id}/grade", response_model=GradeResponse)
async def grade_question(
    league_season_id: int,
    question_id: int,
    body: GradeQuestion,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(notifier_dep),
    _: FantasyPlayer = Depends(require_commissioner),
):
    await _question_in_league_season(db, league_season_id, question_id)
    results = await grading.grade_question(db, question_id, body.correct_answer, notifier=notifier)
    return GradeResponse(
        question_id=question_id,
        results=[GradingResultItem.model_validate(r) for r in results],
    )


@router.post("/grade", response_model=list[GradeResponse])
async def grade_batch(
    league_season_id: int,
    body: GradeBatch,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(notifier_dep),
    _: FantasyPlayer = Depends(require_commissioner),
):
    answers = {item.question_id: item.correct_answer for item in body.answers}
    if len(answers) != len(body.answers):
        raise HTTPException(status_code=400, detail="Each question may appear only once")
    graded = await grading.grade_questions(db, league_season_id, answers, notifier=notifier)
    return [
        GradeResponse(
            question_id=qid,
            results=[GradingResultItem.model_validate(r) for r in results],
        )
        for qid, results in graded.items()
    ]


@router.get("/episode/{episode_number}/results", response_model=EpisodeResultsResponse)
async def episode_results(
    league_season_id: int,
    episode_number: int,
    db: AsyncSession = Depends(get_db),
    _: FantasyPlayer = Depends(get_current_user),
):
    rows = await scoring.episode_results(db, league_season_id, episode_number)
    return EpisodeResultsResponse(
        league_season_id=league_season_id,
        episode_number=episode_number,
        results=[EpisodeResultItem(**r) for r in rows],
    )
