"""
Draft state machine tests: turn order, pick validation, completion and
concurrent picks against one draft.
"""
import asyncio

import pytest
from sqlalchemy import func, select

from castaway_league.core.errors import (
    CastawayUnavailable, ConflictError, DraftAlreadyStarted, DraftClosed,
    DraftNotActive, InsufficientTeams, NotYourTurn, UnknownCastaway, UnknownTeam,
)
from castaway_league.models.models import Assignment, DraftOrderStrategy, DraftStatus
from castaway_league.services import assignment_ledger, draft_engine
from castaway_league.services.draft_engine import build_turn_order, first_turn, next_turn
from castaway_league.services.notifications import EventKind


# ============================================================================
# TURN ORDER (pure)
# ============================================================================

class TestTurnOrder:

    def test_sequential_repeats_order_each_round(self):
        assert build_turn_order([1, 2, 3], 2, DraftOrderStrategy.SEQUENTIAL) == [1, 2, 3, 1, 2, 3]

    def test_snake_reverses_every_other_round(self):
        order = build_turn_order([1, 2, 3], 3, DraftOrderStrategy.SNAKE)
        assert order == [1, 2, 3, 3, 2, 1, 1, 2, 3]

    def test_random_is_deterministic_for_a_seed(self):
        a = build_turn_order([1, 2, 3, 4, 5], 2, DraftOrderStrategy.RANDOM, seed=42)
        b = build_turn_order([1, 2, 3, 4, 5], 2, DraftOrderStrategy.RANDOM, seed=42)
        assert a == b
        assert sorted(a[:5]) == [1, 2, 3, 4, 5]
        # Rounds after the shuffle follow the same order
        assert a[:5] == a[5:]

    def test_next_turn_skips_full_teams(self):
        order = [1, 2, 3, 1, 2, 3]
        remaining = {1: 1, 2: 0, 3: 1}
        assert next_turn(order, 0, remaining) == 2

    def test_next_turn_wraps_around(self):
        order = [1, 2, 3]
        assert next_turn(order, 2, {1: 1, 2: 1, 3: 1}) == 0

    def test_next_turn_none_when_everyone_full(self):
        assert next_turn([1, 2], 0, {1: 0, 2: 0}) is None

    def test_first_turn_starts_at_the_front(self):
        assert first_turn([5, 6, 7], {5: 2, 6: 2, 7: 2}) == 0
        assert first_turn([5, 6, 7], {5: 0, 6: 2, 7: 2}) == 1


# ============================================================================
# LIFECYCLE
# ============================================================================

async def _start(db, league_season, teams, roster_size=1, strategy=DraftOrderStrategy.SEQUENTIAL, notifier=None):
    return await draft_engine.start_draft(
        db,
        league_season.id,
        [t.id for t in teams],
        strategy,
        roster_size=roster_size,
        notifier=notifier,
    )


@pytest.mark.asyncio
async def test_create_draft_is_pending(db, league_season):
    draft = await draft_engine.create_draft(db, league_season.id, roster_size=3)
    assert draft.status == DraftStatus.PENDING
    assert draft.roster_size == 3
    assert draft.turn_pointer is None

    again = await draft_engine.create_draft(db, league_season.id)
    assert again.id == draft.id


@pytest.mark.asyncio
async def test_start_draft_sets_turn_order_and_notifies(db, league_season, teams, notifier):
    draft = await _start(db, league_season, teams, roster_size=2, strategy=DraftOrderStrategy.SNAKE, notifier=notifier)

    ids = [t.id for t in teams]
    assert draft.status == DraftStatus.IN_PROGRESS
    assert draft.turn_order == ids + list(reversed(ids))
    assert draft.turn_pointer == 0

    events = notifier.of_kind(EventKind.DRAFT_TURN)
    assert len(events) == 1
    assert events[0].payload["team_id"] == teams[0].id
    assert events[0].payload["pick_number"] == 1


@pytest.mark.asyncio
async def test_start_draft_needs_two_teams(db, league_season, teams):
    with pytest.raises(InsufficientTeams):
        await draft_engine.start_draft(db, league_season.id, [teams[0].id, teams[0].id])


@pytest.mark.asyncio
async def test_start_draft_rejects_foreign_team(db, league_season, teams):
    with pytest.raises(UnknownTeam):
        await draft_engine.start_draft(db, league_season.id, [teams[0].id, 9999])

    draft = await draft_engine.get_draft_for_league_season(db, league_season.id)
    assert draft is None or draft.status == DraftStatus.PENDING


@pytest.mark.asyncio
async def test_start_draft_twice_fails(db, league_season, teams):
    await _start(db, league_season, teams)
    with pytest.raises(DraftAlreadyStarted):
        await _start(db, league_season, teams)


@pytest.mark.asyncio
async def test_random_draft_persists_seed(db, league_season, teams):
    draft = await _start(db, league_season, teams, roster_size=2, strategy=DraftOrderStrategy.RANDOM)
    assert draft.random_seed is not None
    expected = build_turn_order([t.id for t in teams], 2, DraftOrderStrategy.RANDOM, draft.random_seed)
    assert draft.turn_order == expected


# ============================================================================
# PICKS
# ============================================================================

@pytest.mark.asyncio
async def test_four_team_sequential_draft(db, league_season, teams, castaways, notifier):
    """A picks X, B can't take X, B takes Y, draft completes after four picks."""
    a, b, c, d = teams
    x, y, z, w = castaways[:4]
    draft = await _start(db, league_season, teams, notifier=notifier)
    draft_id = draft.id

    entry = await draft_engine.draft_pick(db, draft_id, a.id, x.id, notifier=notifier)
    assert entry.team_id == a.id
    assert entry.pick_number == 1

    draft = await draft_engine.get_draft(db, draft_id)
    assert draft.turn_order[draft.turn_pointer] == b.id

    with pytest.raises(CastawayUnavailable) as exc:
        await draft_engine.draft_pick(db, draft_id, b.id, x.id)
    assert exc.value.held_by == a.id

    # The failed pick did not move the turn
    draft = await draft_engine.get_draft(db, draft_id)
    assert draft.turn_order[draft.turn_pointer] == b.id

    await draft_engine.draft_pick(db, draft_id, b.id, y.id, notifier=notifier)
    await draft_engine.draft_pick(db, draft_id, c.id, z.id, notifier=notifier)
    await draft_engine.draft_pick(db, draft_id, d.id, w.id, notifier=notifier)

    draft = await draft_engine.get_draft(db, draft_id)
    assert draft.status == DraftStatus.COMPLETED
    assert draft.turn_pointer is None
    assert draft.picks_made == 4
    assert draft.completed_at is not None

    # One turn event at start plus one per pick that left the draft open
    assert len(notifier.of_kind(EventKind.DRAFT_TURN)) == 4


@pytest.mark.asyncio
async def test_pick_out_of_turn(db, league_season, teams, castaways):
    draft = await _start(db, league_season, teams)
    with pytest.raises(NotYourTurn):
        await draft_engine.draft_pick(db, draft.id, teams[2].id, castaways[0].id)


@pytest.mark.asyncio
async def test_pick_before_start(db, league_season, teams, castaways):
    draft = await draft_engine.create_draft(db, league_season.id, roster_size=1)
    with pytest.raises(DraftNotActive) as exc:
        await draft_engine.draft_pick(db, draft.id, teams[0].id, castaways[0].id)
    assert exc.value.current_status == "pending"


@pytest.mark.asyncio
async def test_pick_after_completion(db, league_season, teams, castaways):
    two = teams[:2]
    draft = await _start(db, league_season, two)
    await draft_engine.draft_pick(db, draft.id, two[0].id, castaways[0].id)
    await draft_engine.draft_pick(db, draft.id, two[1].id, castaways[1].id)

    with pytest.raises(DraftClosed):
        await draft_engine.draft_pick(db, draft.id, two[0].id, castaways[2].id)


@pytest.mark.asyncio
async def test_retried_pick_reports_own_team_as_holder(db, league_season, teams, castaways):
    draft = await _start(db, league_season, teams[:2], roster_size=2)
    await draft_engine.draft_pick(db, draft.id, teams[0].id, castaways[0].id)

    # Same request again, after the turn has already moved on
    with pytest.raises(CastawayUnavailable) as exc:
        await draft_engine.draft_pick(db, draft.id, teams[0].id, castaways[0].id)
    assert exc.value.held_by == teams[0].id

    count = (await db.execute(select(func.count()).select_from(Assignment))).scalar()
    assert count == 1


@pytest.mark.asyncio
async def test_pick_unknown_castaway_leaves_turn(db, league_season, teams):
    draft = await _start(db, league_season, teams)
    draft_id = draft.id
    with pytest.raises(UnknownCastaway):
        await draft_engine.draft_pick(db, draft_id, teams[0].id, 9999)

    draft = await draft_engine.get_draft(db, draft_id)
    assert draft.picks_made == 0
    assert draft.turn_pointer == 0


@pytest.mark.asyncio
async def test_snake_draft_full_run(db, league_season, teams, castaways):
    draft = await _start(db, league_season, teams, roster_size=2, strategy=DraftOrderStrategy.SNAKE)
    expected = [t.id for t in teams] + [t.id for t in reversed(teams)]

    for pick, (team_id, castaway) in enumerate(zip(expected, castaways), 1):
        draft = await draft_engine.get_draft(db, draft.id)
        assert draft.status == DraftStatus.IN_PROGRESS
        assert draft.turn_order[draft.turn_pointer] == team_id
        entry = await draft_engine.draft_pick(db, draft.id, team_id, castaway.id)
        assert entry.pick_number == pick

    draft = await draft_engine.get_draft(db, draft.id)
    assert draft.status == DraftStatus.COMPLETED
    counts = await assignment_ledger.held_counts(db, [t.id for t in teams])
    assert counts == {t.id: 2 for t in teams}


@pytest.mark.asyncio
async def test_draft_board(db, league_season, teams, castaways):
    draft = await _start(db, league_season, teams[:2], roster_size=2)
    await draft_engine.draft_pick(db, draft.id, teams[0].id, castaways[0].id)

    board = await draft_engine.draft_board(db, draft.id)
    assert board["status"] == "in_progress"
    assert board["on_the_clock"] == teams[1].id
    assert board["next_pick_number"] == 2
    assert board["remaining"] == {teams[0].id: 1, teams[1].id: 2}
    assert [p.castaway_id for p in board["picks"]] == [castaways[0].id]


# ============================================================================
# CONCURRENCY
# ============================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize("racers", [2, 5, 10])
async def test_concurrent_picks_for_one_turn(session_factory, db, league_season, teams, castaways, racers):
    """The team on the clock fires several picks at once; exactly one lands."""
    draft = await _start(db, league_season, teams)
    draft_id, team_id = draft.id, teams[0].id

    async def pick(castaway_id):
        async with session_factory() as session:
            return await draft_engine.draft_pick(session, draft_id, team_id, castaway_id)

    results = await asyncio.gather(
        *(pick(castaways[i % len(castaways)].id) for i in range(racers)),
        return_exceptions=True,
    )
    successes = [r for r in results if isinstance(r, Assignment)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(successes) == 1
    assert len(failures) == racers - 1
    assert all(isinstance(f, ConflictError) for f in failures)

    async with session_factory() as session:
        count = (await session.execute(select(func.count()).select_from(Assignment))).scalar()
        fresh = await draft_engine.get_draft(session, draft_id)
    assert count == 1
    assert fresh.picks_made == 1
    assert fresh.turn_order[fresh.turn_pointer] == teams[1].id


@pytest.mark.asyncio
@pytest.mark.parametrize("racers", [2, 5, 10])
async def test_concurrent_picks_same_castaway(session_factory, db, league_season, teams, castaways, racers):
    """Every team grabs the same castaway at once; only one can hold it."""
    draft = await _start(db, league_season, teams, roster_size=2)
    draft_id, castaway_id = draft.id, castaways[0].id

    async def pick(team_id):
        async with session_factory() as session:
            return await draft_engine.draft_pick(session, draft_id, team_id, castaway_id)

    results = await asyncio.gather(
        *(pick(teams[i % len(teams)].id) for i in range(racers)),
        return_exceptions=True,
    )
    successes = [r for r in results if isinstance(r, Assignment)]
    assert len(successes) == 1
    assert successes[0].team_id == teams[0].id
    assert all(isinstance(r, (Assignment, ConflictError)) for r in results)

    async with session_factory() as session:
        rows = (await session.execute(
            select(Assignment).where(Assignment.castaway_id == castaway_id)
        )).scalars().all()
    assert len(rows) == 1
    assert rows[0].team_id == teams[0].id
