"""
Question catalog: reusable templates and their per-league, per-episode copies.

Instantiating a template snapshots its text, type, options, point value and
wager settings onto the LeagueQuestion. Later template edits never reach
questions that were already created.
"""

import logging
from dataclasses import dataclass, fields

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from castaway_league.core.database import atomic
from castaway_league.core.errors import (
    InvalidQuestion, QuestionLocked, TemplateBatchError, UnknownQuestion, UnknownTemplate,
)
from castaway_league.models.models import (
    LeagueQuestion, QuestionScope, QuestionTemplate, QuestionType, Submission,
)
from castaway_league.services.assignment_ledger import get_league_season

logger = logging.getLogger(__name__)

MIN_CHOICES = 2


@dataclass
class QuestionSpec:
    """Inline question definition, or the snapshot taken from a template."""
    text: str
    type: QuestionType
    options: list[str] | None = None
    point_value: int = 1
    is_wager: bool = True
    min_wager: int | None = None
    max_wager: int | None = None
    question_scope: QuestionScope = QuestionScope.EPISODE
    category: str | None = None

    @classmethod
    def from_template(cls, template: QuestionTemplate) -> "QuestionSpec":
        return cls(
            text=template.text,
            type=QuestionType(template.type),
            options=list(template.options) if template.options else None,
            point_value=template.point_value,
            is_wager=template.is_wager,
            min_wager=template.min_wager,
            max_wager=template.max_wager,
            category=template.category,
        )


def clean_options(options: list[str] | None) -> list[str] | None:
    if options is None:
        return None
    return [o.strip() for o in options if o is not None and o.strip()]


def validation_problems(spec: QuestionSpec) -> list[str]:
    """Everything wrong with a question definition; empty list means valid."""
    problems = []
    if not spec.text or not spec.text.strip():
        problems.append("question text is empty")
    try:
        qtype = QuestionType(spec.type)
    except ValueError:
        problems.append(f"unknown question type {spec.type!r}")
        qtype = None

    if qtype == QuestionType.MULTIPLE_CHOICE:
        options = clean_options(spec.options) or []
        if len(options) < MIN_CHOICES:
            problems.append(f"multiple choice needs at least {MIN_CHOICES} options")
        lowered = [o.lower() for o in options]
        if len(set(lowered)) != len(lowered):
            problems.append("options must be distinct ignoring case")

    try:
        QuestionScope(spec.question_scope)
    except ValueError:
        problems.append(f"unknown question scope {spec.question_scope!r}")

    if spec.point_value is None or spec.point_value < 1:
        problems.append("point value must be at least 1")
    if spec.min_wager is not None and spec.min_wager < 0:
        problems.append("min wager cannot be negative")
    if spec.max_wager is not None and spec.max_wager < 0:
        problems.append("max wager cannot be negative")
    if (
        spec.min_wager is not None
        and spec.max_wager is not None
        and spec.min_wager > spec.max_wager
    ):
        problems.append("min wager is greater than max wager")
    return problems


def validate(spec: QuestionSpec) -> None:
    problems = validation_problems(spec)
    if problems:
        raise InvalidQuestion("; ".join(problems), problems=problems)


# --- Templates ---

async def create_template(db: AsyncSession, spec: QuestionSpec) -> QuestionTemplate:
    validate(spec)
    async with atomic(db):
        template = QuestionTemplate(
            text=spec.text.strip(),
            type=QuestionType(spec.type),
            options=clean_options(spec.options) if QuestionType(spec.type) == QuestionType.MULTIPLE_CHOICE else None,
            point_value=spec.point_value,
            category=spec.category,
            is_wager=spec.is_wager,
            min_wager=spec.min_wager,
            max_wager=spec.max_wager,
        )
        db.add(template)
        await db.flush()
    return template


async def get_template(db: AsyncSession, template_id: int) -> QuestionTemplate:
    result = await db.execute(select(QuestionTemplate).where(QuestionTemplate.id == template_id))
    template = result.scalar_one_or_none()
    if template is None:
        raise UnknownTemplate(f"Question template {template_id} not found")
    return template


async def list_templates(db: AsyncSession, category: str | None = None) -> list[QuestionTemplate]:
    query = select(QuestionTemplate).order_by(QuestionTemplate.category, QuestionTemplate.id)
    if category is not None:
        query = query.where(QuestionTemplate.category == category)
    return list((await db.execute(query)).scalars().all())


# --- League questions ---

async def _next_sort_order(db: AsyncSession, league_season_id: int, episode_number: int) -> int:
    current = (await db.execute(
        select(func.max(LeagueQuestion.sort_order)).where(
            LeagueQuestion.league_season_id == league_season_id,
            LeagueQuestion.episode_number == episode_number,
        )
    )).scalar()
    return 0 if current is None else current + 1


def _build_question(
    spec: QuestionSpec,
    league_season_id: int,
    episode_number: int,
    sort_order: int,
    template_id: int | None,
) -> LeagueQuestion:
    qtype = QuestionType(spec.type)
    return LeagueQuestion(
        league_season_id=league_season_id,
        episode_number=episode_number,
        text=spec.text.strip(),
        type=qtype,
        options=clean_options(spec.options) if qtype == QuestionType.MULTIPLE_CHOICE else None,
        point_value=spec.point_value,
        sort_order=sort_order,
        question_scope=QuestionScope(spec.question_scope),
        is_wager=spec.is_wager,
        min_wager=spec.min_wager,
        max_wager=spec.max_wager,
        source_template_id=template_id,
        is_scored=False,
    )


async def instantiate(
    db: AsyncSession,
    source: int | QuestionSpec,
    league_season_id: int,
    episode_number: int,
    *,
    sort_order: int | None = None,
) -> LeagueQuestion:
    """Create a league question from a template id or an inline QuestionSpec."""
    if episode_number < 1:
        raise InvalidQuestion("episode number must be at least 1")

    async with atomic(db):
        await get_league_season(db, league_season_id)
        template_id = None
        if isinstance(source, QuestionSpec):
            spec = source
        else:
            template = await get_template(db, source)
            template_id = template.id
            spec = QuestionSpec.from_template(template)
        validate(spec)

        if sort_order is None:
            sort_order = await _next_sort_order(db, league_season_id, episode_number)
        question = _build_question(spec, league_season_id, episode_number, sort_order, template_id)
        db.add(question)
        await db.flush()

    logger.info(f"Created question {question.id} for league-season {league_season_id}, episode {episode_number}")
    return question


async def create_from_templates(
    db: AsyncSession,
    league_season_id: int,
    episode_number: int,
    template_ids: list[int],
) -> list[LeagueQuestion]:
    """
    Instantiate a batch of templates for one episode. All or nothing: if any
    template is missing or invalid, nothing is created and the error lists
    every failing template.
    """
    if episode_number < 1:
        raise InvalidQuestion("episode number must be at least 1")

    async with atomic(db):
        await get_league_season(db, league_season_id)
        result = await db.execute(
            select(QuestionTemplate).where(QuestionTemplate.id.in_(template_ids))
        )
        by_id = {t.id: t for t in result.scalars().all()}

        failures: dict[int, str] = {}
        specs: list[tuple[int, QuestionSpec]] = []
        for tid in template_ids:
            template = by_id.get(tid)
            if template is None:
                failures[tid] = "template not found"
                continue
            spec = QuestionSpec.from_template(template)
            problems = validation_problems(spec)
            if problems:
                failures[tid] = "; ".join(problems)
            else:
                specs.append((tid, spec))
        if failures:
            raise TemplateBatchError(failures)

        sort_order = await _next_sort_order(db, league_season_id, episode_number)
        created = []
        for offset, (tid, spec) in enumerate(specs):
            question = _build_question(spec, league_season_id, episode_number, sort_order + offset, tid)
            db.add(question)
            created.append(question)
        await db.flush()

    logger.info(f"Created {len(created)} question(s) from templates for episode {episode_number}")
    return created


async def get_league_question(db: AsyncSession, question_id: int, *, lock: bool = False) -> LeagueQuestion:
    query = select(LeagueQuestion).where(LeagueQuestion.id == question_id).execution_options(populate_existing=True)
    if lock:
        query = query.with_for_update()
    question = (await db.execute(query)).scalar_one_or_none()
    if question is None:
        raise UnknownQuestion(f"League question {question_id} not found")
    return question


async def list_league_questions(
    db: AsyncSession,
    league_season_id: int,
    episode_number: int | None = None,
) -> list[LeagueQuestion]:
    query = select(LeagueQuestion).where(LeagueQuestion.league_season_id == league_season_id)
    if episode_number is not None:
        query = query.where(LeagueQuestion.episode_number == episode_number)
    query = query.order_by(LeagueQuestion.episode_number, LeagueQuestion.sort_order, LeagueQuestion.id)
    return list((await db.execute(query)).scalars().all())


_EDITABLE = {f.name for f in fields(QuestionSpec)} - {"category"} | {"episode_number", "sort_order"}


async def update_league_question(db: AsyncSession, question_id: int, **changes) -> LeagueQuestion:
    """Edit an unscored question. Scored questions are frozen."""
    unknown = set(changes) - _EDITABLE
    if unknown:
        raise InvalidQuestion(f"cannot edit field(s): {', '.join(sorted(unknown))}")

    async with atomic(db):
        question = await get_league_question(db, question_id, lock=True)
        if question.is_scored:
            raise QuestionLocked("Cannot edit a scored question", current_status="scored")

        merged = QuestionSpec(
            text=changes.get("text", question.text),
            type=changes.get("type", question.type),
            options=changes.get("options", question.options),
            point_value=changes.get("point_value", question.point_value),
            is_wager=changes.get("is_wager", question.is_wager),
            min_wager=changes.get("min_wager", question.min_wager),
            max_wager=changes.get("max_wager", question.max_wager),
            question_scope=changes.get("question_scope", question.question_scope),
        )
        validate(merged)
        if changes.get("episode_number") is not None and changes["episode_number"] < 1:
            raise InvalidQuestion("episode number must be at least 1")

        qtype = QuestionType(merged.type)
        question.text = merged.text.strip()
        question.type = qtype
        question.options = clean_options(merged.options) if qtype == QuestionType.MULTIPLE_CHOICE else None
        question.point_value = merged.point_value
        question.is_wager = merged.is_wager
        question.min_wager = merged.min_wager
        question.max_wager = merged.max_wager
        question.question_scope = QuestionScope(merged.question_scope)
        if "episode_number" in changes:
            question.episode_number = changes["episode_number"]
        if "sort_order" in changes:
            question.sort_order = changes["sort_order"]
        await db.flush()
    return question


async def delete_league_question(db: AsyncSession, question_id: int) -> None:
    """Delete an unscored question along with any submissions against it."""
    async with atomic(db):
        question = await get_league_question(db, question_id, lock=True)
        if question.is_scored:
            raise QuestionLocked("Cannot delete a scored question", current_status="scored")
        await db.execute(delete(Submission).where(Submission.league_question_id == question_id))
        await db.delete(question)
    logger.info(f"Deleted question {question_id}")
