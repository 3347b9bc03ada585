"""
Question catalog tests: validation, template snapshots, batch creation and
the edit lock on scored questions.
"""
import pytest
from sqlalchemy import func, select

from castaway_league.core.errors import (
    InvalidQuestion, QuestionLocked, TemplateBatchError, UnknownTemplate,
)
from castaway_league.models.models import LeagueQuestion, QuestionScope, QuestionType, Submission
from castaway_league.services import grading, question_catalog, wager_ledger
from castaway_league.services.question_catalog import QuestionSpec, validation_problems


# ============================================================================
# VALIDATION (pure)
# ============================================================================

class TestValidation:

    def test_valid_multiple_choice(self):
        spec = QuestionSpec(text="Who wins?", type=QuestionType.MULTIPLE_CHOICE, options=["A", "B"])
        assert validation_problems(spec) == []

    def test_multiple_choice_needs_two_options(self):
        spec = QuestionSpec(text="Who wins?", type=QuestionType.MULTIPLE_CHOICE, options=["A", "  "])
        assert any("at least 2 options" in p for p in validation_problems(spec))

    def test_options_must_be_distinct_ignoring_case(self):
        spec = QuestionSpec(text="Who wins?", type=QuestionType.MULTIPLE_CHOICE, options=["Red", "red "])
        assert "options must be distinct ignoring case" in validation_problems(spec)

    def test_fill_in_the_blank_needs_no_options(self):
        spec = QuestionSpec(text="Who goes home?", type=QuestionType.FILL_IN_THE_BLANK)
        assert validation_problems(spec) == []

    def test_collects_every_problem(self):
        spec = QuestionSpec(text=" ", type="TRUE_FALSE", point_value=0, min_wager=5, max_wager=2)
        problems = validation_problems(spec)
        assert len(problems) == 4

    def test_unknown_scope(self):
        spec = QuestionSpec(text="Q", type=QuestionType.FILL_IN_THE_BLANK, question_scope="weekly")
        assert validation_problems(spec) == ["unknown question scope 'weekly'"]


# ============================================================================
# TEMPLATES AND INSTANCES
# ============================================================================

async def _template(db, **overrides):
    spec = QuestionSpec(
        text=overrides.pop("text", "Which tribe wins immunity?"),
        type=overrides.pop("type", QuestionType.MULTIPLE_CHOICE),
        options=overrides.pop("options", ["Cila", "Kalo", "Vatu"]),
        **overrides,
    )
    return await question_catalog.create_template(db, spec)


@pytest.mark.asyncio
async def test_instantiate_snapshots_template(db, league_season):
    template = await _template(db, point_value=5, min_wager=1, max_wager=20)
    question = await question_catalog.instantiate(db, template.id, league_season.id, 3)

    assert question.text == template.text
    assert question.options == ["Cila", "Kalo", "Vatu"]
    assert question.point_value == 5
    assert (question.min_wager, question.max_wager) == (1, 20)
    assert question.source_template_id == template.id
    assert question.episode_number == 3
    assert question.is_scored is False

    # Later template edits do not reach the existing question
    template.text = "Edited text"
    template.options = ["X", "Y"]
    await db.commit()

    fresh = await question_catalog.get_league_question(db, question.id)
    assert fresh.text == "Which tribe wins immunity?"
    assert fresh.options == ["Cila", "Kalo", "Vatu"]


@pytest.mark.asyncio
async def test_instantiate_inline_question(make_question):
    question = await make_question(
        episode_number=2,
        text="  Who is voted out?  ",
        type=QuestionType.FILL_IN_THE_BLANK,
        options=None,
        point_value=10,
    )
    assert question.text == "Who is voted out?"
    assert question.options is None
    assert question.source_template_id is None
    assert question.question_scope == QuestionScope.EPISODE


@pytest.mark.asyncio
async def test_sort_order_appends_within_episode(make_question):
    first = await make_question(episode_number=1)
    second = await make_question(episode_number=1)
    other_episode = await make_question(episode_number=2)
    assert (first.sort_order, second.sort_order) == (0, 1)
    assert other_episode.sort_order == 0


@pytest.mark.asyncio
async def test_instantiate_rejects_bad_input(db, league_season, make_question):
    with pytest.raises(InvalidQuestion):
        await make_question(options=["Only one"])
    with pytest.raises(InvalidQuestion):
        await make_question(episode_number=0)
    with pytest.raises(UnknownTemplate):
        await question_catalog.instantiate(db, 9999, league_season.id, 1)


@pytest.mark.asyncio
async def test_create_from_templates(db, league_season):
    a = await _template(db)
    b = await _template(db, text="Who is voted out?", type=QuestionType.FILL_IN_THE_BLANK, options=None)

    created = await question_catalog.create_from_templates(db, league_season.id, 4, [b.id, a.id])
    assert [q.source_template_id for q in created] == [b.id, a.id]
    assert [q.sort_order for q in created] == [0, 1]


@pytest.mark.asyncio
async def test_create_from_templates_is_all_or_nothing(db, league_season):
    good = await _template(db)
    bad = await _template(db)
    # A template corrupted after creation (e.g. by a direct DB edit)
    bad.options = ["Only one"]
    await db.commit()
    good_id, bad_id = good.id, bad.id

    with pytest.raises(TemplateBatchError) as exc:
        await question_catalog.create_from_templates(db, league_season.id, 1, [good_id, bad_id, 4242])
    assert set(exc.value.failures) == {bad_id, 4242}

    count = (await db.execute(select(func.count()).select_from(LeagueQuestion))).scalar()
    assert count == 0


@pytest.mark.asyncio
async def test_list_templates_by_category(db):
    await _template(db, category="challenges")
    await _template(db, text="Who goes home?", type=QuestionType.FILL_IN_THE_BLANK, options=None, category="tribal")
    assert len(await question_catalog.list_templates(db)) == 2
    tribal = await question_catalog.list_templates(db, "tribal")
    assert [t.text for t in tribal] == ["Who goes home?"]


# ============================================================================
# EDITS
# ============================================================================

@pytest.mark.asyncio
async def test_update_unscored_question(db, make_question):
    question = await make_question()
    updated = await question_catalog.update_league_question(
        db, question.id, text="Which buff color wins?", options=["Red", "Blue", "Green"], point_value=4
    )
    assert updated.text == "Which buff color wins?"
    assert updated.options == ["Red", "Blue", "Green"]
    assert updated.point_value == 4


@pytest.mark.asyncio
async def test_update_rejects_invalid_change(db, make_question):
    question = await make_question()
    question_id = question.id
    with pytest.raises(InvalidQuestion):
        await question_catalog.update_league_question(db, question_id, point_value=0)
    with pytest.raises(InvalidQuestion):
        await question_catalog.update_league_question(db, question_id, correct_answer="Red")

    fresh = await question_catalog.get_league_question(db, question_id)
    assert fresh.point_value == 1


@pytest.mark.asyncio
async def test_scored_question_is_locked(db, make_question, teams):
    question = await make_question()
    question_id = question.id
    await wager_ledger.submit_answer(db, teams[0].id, question_id, "Red", 5)
    await grading.grade_question(db, question_id, "Red")

    with pytest.raises(QuestionLocked):
        await question_catalog.update_league_question(db, question_id, text="New text")
    with pytest.raises(QuestionLocked):
        await question_catalog.delete_league_question(db, question_id)


@pytest.mark.asyncio
async def test_delete_unscored_question_removes_submissions(db, make_question, teams):
    question = await make_question()
    await wager_ledger.submit_answer(db, teams[0].id, question.id, "Blue", 3)

    await question_catalog.delete_league_question(db, question.id)

    assert (await db.execute(select(func.count()).select_from(LeagueQuestion))).scalar() == 0
    assert (await db.execute(select(func.count()).select_from(Submission))).scalar() == 0
