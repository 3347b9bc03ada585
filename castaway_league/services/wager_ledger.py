"""
Wager ledger: one answer and one stake per team per question.

Submissions are final: there is no update-in-place, a second submit for the
same question is a DuplicateSubmission. The window closes as soon as the
question is graded.
"""

import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from castaway_league.core.config import get_settings
from castaway_league.core.database import atomic
from castaway_league.core.errors import (
    DuplicateSubmission, InvalidOption, InvalidWager, ValidationError, WindowClosed,
)
from castaway_league.models.models import LeagueQuestion, QuestionType, Submission, Team
from castaway_league.services.assignment_ledger import get_team
from castaway_league.services.grading import normalize_answer
from castaway_league.services.notifications import Event, EventKind, Notifier
from castaway_league.services.question_catalog import get_league_question, list_league_questions

logger = logging.getLogger(__name__)


def wager_bounds(question: LeagueQuestion) -> tuple[int, int]:
    """(min, max) stake accepted for this question."""
    cap = get_settings().max_wager_cap
    low = question.min_wager if question.min_wager is not None else 0
    high = question.max_wager if question.max_wager is not None else cap
    return low, high


def resolve_wager(question: LeagueQuestion, wager_amount: int | None) -> int:
    """
    Stake to record: the question's point value when omitted (or when the
    question is not a wager question), else the checked amount.

    A supplied amount is never negative and never above the configured cap,
    even on a plain question where it is not used.
    """
    if wager_amount is None:
        return question.point_value
    if isinstance(wager_amount, bool) or not isinstance(wager_amount, int):
        raise InvalidWager(f"Wager must be a whole number, got {wager_amount!r}")
    if wager_amount < 0:
        raise InvalidWager("Wager cannot be negative", wager_amount=wager_amount)
    if not question.is_wager:
        cap = get_settings().max_wager_cap
        if wager_amount > cap:
            raise InvalidWager(f"Wager amount must not exceed {cap}", wager_amount=wager_amount)
        return question.point_value
    low, high = wager_bounds(question)
    if wager_amount < low:
        raise InvalidWager(f"Wager amount must be at least {low}", wager_amount=wager_amount)
    if wager_amount > high:
        raise InvalidWager(f"Wager amount must not exceed {high}", wager_amount=wager_amount)
    return wager_amount


def match_option(question: LeagueQuestion, answer: str) -> str:
    """Check a multiple-choice answer against the declared options (trimmed, case-insensitive)."""
    wanted = normalize_answer(answer)
    for option in question.options or []:
        if normalize_answer(option) == wanted:
            return answer.strip()
    raise InvalidOption(
        f"{answer!r} is not one of the options: {', '.join(question.options or [])}",
        options=list(question.options or []),
    )


async def submit_answer(
    db: AsyncSession,
    team_id: int,
    league_question_id: int,
    answer_text: str,
    wager_amount: int | None = None,
) -> Submission:
    if answer_text is None or not answer_text.strip():
        raise ValidationError("Answer cannot be empty")

    async with atomic(db):
        # Write-lock the open question before anything else. Grading flips
        # is_scored with the same guarded UPDATE, so the two serialize on this
        # row and a submit can never land after the question was graded.
        held = await db.execute(
            update(LeagueQuestion)
            .where(LeagueQuestion.id == league_question_id, LeagueQuestion.is_scored == False)  # noqa: E712
            .values(is_scored=False)
        )
        if held.rowcount != 1:
            await get_league_question(db, league_question_id)
            raise WindowClosed(
                f"Question {league_question_id} has been graded; submissions are closed",
                current_status="scored",
            )

        question = await get_league_question(db, league_question_id)
        await get_team(db, team_id, question.league_season_id)

        existing = (await db.execute(
            select(Submission.id).where(
                Submission.team_id == team_id,
                Submission.league_question_id == league_question_id,
            )
        )).scalar_one_or_none()
        if existing is not None:
            raise DuplicateSubmission(
                f"Team {team_id} already answered question {league_question_id}",
                submission_id=existing,
            )

        if QuestionType(question.type) == QuestionType.MULTIPLE_CHOICE:
            answer = match_option(question, answer_text)
        else:
            answer = answer_text.strip()
        stake = resolve_wager(question, wager_amount)

        submission = Submission(
            team_id=team_id,
            league_question_id=league_question_id,
            answer=answer,
            wager_amount=stake,
            is_graded=False,
        )
        db.add(submission)
        try:
            await db.flush()
        except IntegrityError:
            raise DuplicateSubmission(
                f"Team {team_id} already answered question {league_question_id}"
            )

    logger.info(f"Team {team_id} answered question {league_question_id} staking {stake}")
    return submission


async def list_team_submissions(db: AsyncSession, team_id: int) -> list[Submission]:
    result = await db.execute(
        select(Submission)
        .join(LeagueQuestion, LeagueQuestion.id == Submission.league_question_id)
        .where(Submission.team_id == team_id)
        .order_by(LeagueQuestion.episode_number, LeagueQuestion.sort_order, Submission.id)
    )
    return list(result.scalars().all())


async def list_question_submissions(db: AsyncSession, league_question_id: int) -> list[Submission]:
    result = await db.execute(
        select(Submission)
        .where(Submission.league_question_id == league_question_id)
        .order_by(Submission.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def episode_progress(db: AsyncSession, team_id: int, episode_number: int) -> dict:
    """How many of the episode's questions this team has answered."""
    team = await get_team(db, team_id)
    questions = await list_league_questions(db, team.league_season_id, episode_number)
    question_ids = [q.id for q in questions]
    answered = 0
    if question_ids:
        answered = (await db.execute(
            select(func.count()).select_from(Submission).where(
                Submission.team_id == team_id,
                Submission.league_question_id.in_(question_ids),
            )
        )).scalar() or 0
    open_count = sum(1 for q in questions if not q.is_scored)
    return {
        "episode_number": episode_number,
        "total_questions": len(questions),
        "answered_questions": answered,
        "questions_remaining": len(questions) - answered,
        "open_questions": open_count,
        "can_submit": open_count > 0,
    }


async def announce_window_closing(
    db: AsyncSession,
    league_season_id: int,
    episode_number: int,
    notifier: Notifier,
) -> Event | None:
    """
    Tell the notification service which teams still owe answers for an episode.
    The schedule for calling this lives with the episode-airing workflow.
    """
    questions = [q for q in await list_league_questions(db, league_season_id, episode_number) if not q.is_scored]
    if not questions:
        return None

    teams = (await db.execute(
        select(Team.id).where(Team.league_season_id == league_season_id).order_by(Team.id)
    )).scalars().all()
    answered = (await db.execute(
        select(Submission.team_id, func.count())
        .where(Submission.league_question_id.in_([q.id for q in questions]))
        .group_by(Submission.team_id)
    )).all()
    answered_by_team = {row[0]: row[1] for row in answered}
    missing = [tid for tid in teams if answered_by_team.get(tid, 0) < len(questions)]

    event = Event(
        kind=EventKind.QUESTION_WINDOW_CLOSING,
        league_season_id=league_season_id,
        payload={
            "episode_number": episode_number,
            "open_questions": len(questions),
            "teams_missing_answers": missing,
        },
    )
    await notifier.emit(event)
    return event
