"""
Grading engine: reveal a question's answer and settle every submission.

The scoring rule is pure (see wager_delta / question_delta). Applying it is
idempotent per submission: a submission is flipped to graded with a guarded
UPDATE ... WHERE is_graded = false, and its delta reaches the team total only
if that update hit the row. Re-running grading is therefore safe; the second
run finds nothing left to settle and reports AlreadyGraded.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from castaway_league.core.database import atomic
from castaway_league.core.errors import AlreadyGraded, InvalidOption, UnknownQuestion, ValidationError
from castaway_league.models.models import LeagueQuestion, QuestionType, Submission, utcnow
from castaway_league.services import scoring
from castaway_league.services.notifications import Event, EventKind, LoggingNotifier, Notifier
from castaway_league.services.question_catalog import get_league_question

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GradingResult:
    submission_id: int
    team_id: int
    is_correct: bool
    delta: int


# --- Pure scoring rules ---

def normalize_answer(text: str | None) -> str:
    return (text or "").strip().lower()


def answers_match(question_type: QuestionType, submitted: str, correct: str) -> bool:
    """
    Exact match after trimming and lower-casing, for both question types.
    Fill-in-the-blank gets no fuzzy matching or partial credit.
    """
    return normalize_answer(submitted) == normalize_answer(correct)


def wager_delta(correct: bool, wager: int) -> int:
    """Win the stake or lose it, never more."""
    return wager if correct else -wager


def question_delta(question: LeagueQuestion, submission: Submission, correct: bool) -> int:
    if question.is_wager:
        return wager_delta(correct, submission.wager_amount)
    # Plain questions pay their point value and cost nothing when wrong.
    return question.point_value if correct else 0


# --- Settlement ---

def _check_correct_answer(question: LeagueQuestion, correct_answer: str) -> None:
    if correct_answer is None or not correct_answer.strip():
        raise ValidationError("Correct answer cannot be empty")
    if QuestionType(question.type) == QuestionType.MULTIPLE_CHOICE:
        options = {normalize_answer(o) for o in question.options or []}
        if normalize_answer(correct_answer) not in options:
            raise InvalidOption(
                f"{correct_answer!r} is not one of the options for question {question.id}",
                options=list(question.options or []),
            )


async def _settle(db: AsyncSession, question_id: int, correct_answer: str) -> tuple[LeagueQuestion, list[GradingResult]]:
    """Grade every ungraded submission of one question inside the caller's transaction."""
    question = await get_league_question(db, question_id, lock=True)

    if question.is_scored:
        if normalize_answer(question.correct_answer) != normalize_answer(correct_answer):
            logger.warning(
                f"Question {question_id} was graded with {question.correct_answer!r}; "
                f"ignoring {correct_answer!r} and reconciling against the recorded answer"
            )
        correct_answer = question.correct_answer
        pending = (await db.execute(
            select(func.count()).select_from(Submission).where(
                Submission.league_question_id == question_id,
                Submission.is_graded == False,  # noqa: E712
            )
        )).scalar()
        if not pending:
            raise AlreadyGraded(f"Question {question_id} is already fully graded", question_id=question_id)
    else:
        _check_correct_answer(question, correct_answer)
        closed = await db.execute(
            update(LeagueQuestion)
            .where(LeagueQuestion.id == question_id, LeagueQuestion.is_scored == False)  # noqa: E712
            .values(correct_answer=correct_answer.strip(), is_scored=True, scored_at=utcnow())
        )
        if closed.rowcount != 1:
            raise AlreadyGraded(f"Question {question_id} was graded concurrently", question_id=question_id)

    ungraded = (await db.execute(
        select(Submission)
        .where(
            Submission.league_question_id == question_id,
            Submission.is_graded == False,  # noqa: E712
        )
        .order_by(Submission.id)
        .execution_options(populate_existing=True)
    )).scalars().all()

    results = []
    for submission in ungraded:
        correct = answers_match(question.type, submission.answer, correct_answer)
        delta = question_delta(question, submission, correct)
        marked = await db.execute(
            update(Submission)
            .where(Submission.id == submission.id, Submission.is_graded == False)  # noqa: E712
            .values(is_graded=True, awarded_points=delta, graded_at=utcnow())
        )
        if marked.rowcount != 1:
            continue  # someone else settled it
        await scoring.apply_delta(db, submission.team_id, delta)
        results.append(GradingResult(submission.id, submission.team_id, correct, delta))

    return question, results


async def grade_question(
    db: AsyncSession,
    league_question_id: int,
    correct_answer: str,
    *,
    notifier: Notifier | None = None,
) -> list[GradingResult]:
    """
    Reveal the answer for one question and settle its submissions.

    Returns one GradingResult per submission settled by this call, in
    submission order. Raises UnknownQuestion, or AlreadyGraded when there is
    nothing left to settle.
    """
    notifier = notifier or LoggingNotifier()
    async with atomic(db):
        question, results = await _settle(db, league_question_id, correct_answer)

    net = sum(r.delta for r in results)
    logger.info(
        f"Graded question {league_question_id}: {len(results)} submission(s), "
        f"{sum(r.is_correct for r in results)} correct, net {net:+d}"
    )
    await _announce_results(db, question.league_season_id, {question.episode_number}, notifier)
    return results


async def grade_questions(
    db: AsyncSession,
    league_season_id: int,
    answers: dict[int, str],
    *,
    notifier: Notifier | None = None,
) -> dict[int, list[GradingResult]]:
    """
    Grade several questions of one league-season in a single transaction.
    Questions with nothing left to settle are skipped (empty result list).
    """
    notifier = notifier or LoggingNotifier()
    graded: dict[int, list[GradingResult]] = {}
    episodes: set[int] = set()

    async with atomic(db):
        found = (await db.execute(
            select(LeagueQuestion.id).where(
                LeagueQuestion.id.in_(list(answers)),
                LeagueQuestion.league_season_id == league_season_id,
            )
        )).scalars().all()
        missing = sorted(set(answers) - set(found))
        if missing:
            raise UnknownQuestion(
                f"Question(s) {missing} not found in league-season {league_season_id}",
                question_ids=missing,
            )

        for question_id in sorted(answers):
            try:
                question, results = await _settle(db, question_id, answers[question_id])
            except AlreadyGraded:
                graded[question_id] = []
                continue
            graded[question_id] = results
            episodes.add(question.episode_number)

    settled = sum(len(r) for r in graded.values())
    logger.info(f"Graded {len(graded)} question(s) for league-season {league_season_id}, {settled} submission(s) settled")
    if episodes:
        await _announce_results(db, league_season_id, episodes, notifier)
    return graded


async def _announce_results(
    db: AsyncSession,
    league_season_id: int,
    episode_numbers: set[int],
    notifier: Notifier,
) -> None:
    rows = (await db.execute(
        select(LeagueQuestion.episode_number, LeagueQuestion.is_scored).where(
            LeagueQuestion.league_season_id == league_season_id,
            LeagueQuestion.episode_number.in_(episode_numbers),
        )
    )).all()
    fully_scored = sorted(
        ep for ep in episode_numbers
        if all(scored for number, scored in rows if number == ep)
    )
    await notifier.emit(Event(
        kind=EventKind.RESULTS_AVAILABLE,
        league_season_id=league_season_id,
        payload={
            "episode_numbers": sorted(episode_numbers),
            "fully_scored_episodes": fully_scored,
        },
    ))
