"""
Draft state machine: turn-based castaway draft for one league-season.

PENDING -> IN_PROGRESS -> COMPLETED, never backwards.

The pick sequence is precomputed when the draft starts (turn_order) and the
draft row carries a pointer into it. Advancing the pointer is a pure function
of (pointer, remaining capacity per team), so the skip-when-full logic can be
tested without a database. Every write to the draft row is a compare-and-swap
on `version`; a pick that loses the race is rolled back whole.
"""

import logging
import random

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from castaway_league.core.config import get_settings
from castaway_league.core.database import atomic
from castaway_league.core.errors import (
    AlreadyAssigned, CastawayUnavailable, DraftAlreadyStarted, DraftClosed,
    DraftNotActive, InsufficientTeams, NotYourTurn, StaleDraft, UnknownDraft,
)
from castaway_league.models.models import (
    Assignment, Draft, DraftOrderStrategy, DraftStatus, utcnow,
)
from castaway_league.services import assignment_ledger
from castaway_league.services.notifications import Event, EventKind, Notifier, LoggingNotifier

logger = logging.getLogger(__name__)

MIN_TEAMS = 2


# --- Pure turn-order logic ---

def build_turn_order(
    team_ids: list[int],
    roster_size: int,
    strategy: DraftOrderStrategy,
    seed: int | None = None,
) -> list[int]:
    """
    Full pick sequence for the whole draft: one entry per pick, roster_size rounds.

    sequential: A B C, A B C, ...
    snake:      A B C, C B A, A B C, ...
    random:     one seeded shuffle, then sequential. Same seed, same order.
    """
    base = list(team_ids)
    if strategy == DraftOrderStrategy.RANDOM:
        random.Random(seed).shuffle(base)

    order: list[int] = []
    for round_index in range(roster_size):
        if strategy == DraftOrderStrategy.SNAKE and round_index % 2 == 1:
            order.extend(reversed(base))
        else:
            order.extend(base)
    return order


def next_turn(turn_order: list[int], pointer: int, remaining: dict[int, int]) -> int | None:
    """
    Index of the next team that can still pick, scanning forward from pointer
    and wrapping around. Teams with no remaining capacity are skipped.
    Returns None once nobody has capacity left.
    """
    n = len(turn_order)
    for step in range(1, n + 1):
        index = (pointer + step) % n
        if remaining.get(turn_order[index], 0) > 0:
            return index
    return None


def first_turn(turn_order: list[int], remaining: dict[int, int]) -> int | None:
    return next_turn(turn_order, -1, remaining)


def _unique(team_ids: list[int]) -> list[int]:
    seen = set()
    ordered = []
    for tid in team_ids:
        if tid not in seen:
            seen.add(tid)
            ordered.append(tid)
    return ordered


def _status(draft: Draft) -> DraftStatus:
    return draft.status if isinstance(draft.status, DraftStatus) else DraftStatus(draft.status)


# --- Queries ---

async def get_draft(db: AsyncSession, draft_id: int, *, lock: bool = False) -> Draft:
    query = select(Draft).where(Draft.id == draft_id).execution_options(populate_existing=True)
    if lock:
        query = query.with_for_update()
    draft = (await db.execute(query)).scalar_one_or_none()
    if draft is None:
        raise UnknownDraft(f"Draft {draft_id} not found")
    return draft


async def get_draft_for_league_season(db: AsyncSession, league_season_id: int) -> Draft | None:
    result = await db.execute(
        select(Draft)
        .where(Draft.league_season_id == league_season_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _compare_and_swap(db: AsyncSession, draft: Draft, **values) -> None:
    """Write to the draft row only if nobody else has since the draft was read."""
    expected = draft.version
    result = await db.execute(
        update(Draft)
        .where(Draft.id == draft.id, Draft.version == expected)
        .values(version=expected + 1, **values)
    )
    if result.rowcount != 1:
        raise StaleDraft(
            f"Draft {draft.id} changed while this request was in flight; refresh and retry",
            draft_id=draft.id,
        )


# --- Lifecycle ---

async def create_draft(
    db: AsyncSession,
    league_season_id: int,
    roster_size: int | None = None,
    strategy: DraftOrderStrategy | None = None,
) -> Draft:
    """Create the league-season's draft in PENDING, or return the one that exists."""
    async with atomic(db):
        draft = await _get_or_create_draft(db, league_season_id, roster_size, strategy)
    return draft


async def _get_or_create_draft(
    db: AsyncSession,
    league_season_id: int,
    roster_size: int | None,
    strategy: DraftOrderStrategy | None,
) -> Draft:
    settings = get_settings()
    await assignment_ledger.get_league_season(db, league_season_id)
    draft = await get_draft_for_league_season(db, league_season_id)
    if draft is None:
        draft = Draft(
            league_season_id=league_season_id,
            status=DraftStatus.PENDING,
            roster_size=roster_size or settings.default_roster_size,
            order_strategy=strategy or DraftOrderStrategy(settings.default_draft_order),
            turn_order=[],
            picks_made=0,
            version=0,
        )
        db.add(draft)
        await db.flush()
        logger.info(f"Created draft {draft.id} for league-season {league_season_id}")
    return draft


async def start_draft(
    db: AsyncSession,
    league_season_id: int,
    team_ids: list[int],
    strategy: DraftOrderStrategy | None = None,
    *,
    roster_size: int | None = None,
    seed: int | None = None,
    notifier: Notifier | None = None,
) -> Draft:
    """
    Fix the turn order and open the draft.

    team_ids and roster_size come from the league collaborator. The team list
    is frozen for the rest of the draft.
    """
    team_ids = _unique(team_ids)
    if len(team_ids) < MIN_TEAMS:
        raise InsufficientTeams(f"A draft needs at least {MIN_TEAMS} teams, got {len(team_ids)}")

    notifier = notifier or LoggingNotifier()

    async with atomic(db):
        draft = await _get_or_create_draft(db, league_season_id, roster_size, strategy)
        draft = await get_draft(db, draft.id, lock=True)
        current = _status(draft)
        if current == DraftStatus.COMPLETED:
            raise DraftClosed("Draft is already completed", current_status=current.value)
        if current == DraftStatus.IN_PROGRESS:
            raise DraftAlreadyStarted("Draft is already in progress", current_status=current.value)

        for tid in team_ids:
            await assignment_ledger.get_team(db, tid, league_season_id)

        size = roster_size or draft.roster_size
        order_strategy = strategy or DraftOrderStrategy(draft.order_strategy)
        if order_strategy == DraftOrderStrategy.RANDOM and seed is None:
            seed = random.SystemRandom().randrange(2**31)

        turn_order = build_turn_order(team_ids, size, order_strategy, seed)
        held = await assignment_ledger.held_counts(db, team_ids)
        remaining = {tid: size - held[tid] for tid in team_ids}
        pointer = first_turn(turn_order, remaining)

        values = dict(
            roster_size=size,
            order_strategy=order_strategy,
            random_seed=seed,
            turn_order=turn_order,
            turn_pointer=pointer,
            started_at=utcnow(),
        )
        if pointer is None:
            # Every roster was already full; nothing to pick.
            values.update(status=DraftStatus.COMPLETED, completed_at=utcnow())
        else:
            values.update(status=DraftStatus.IN_PROGRESS)
        await _compare_and_swap(db, draft, **values)

    draft = await get_draft(db, draft.id)
    logger.info(
        f"Draft {draft.id} started: {len(team_ids)} teams, roster size {size}, "
        f"{order_strategy.value} order"
    )
    if draft.turn_pointer is not None:
        await notifier.emit(_turn_event(draft))
    return draft


async def draft_pick(
    db: AsyncSession,
    draft_id: int,
    requesting_team_id: int,
    castaway_id: int,
    *,
    notifier: Notifier | None = None,
) -> Assignment:
    """
    Take the current turn.

    Raises DraftClosed / DraftNotActive outside IN_PROGRESS, NotYourTurn when
    another team is on the clock, CastawayUnavailable when the castaway is
    taken (held_by == requesting_team_id means this exact pick already
    landed, e.g. a client retry).
    """
    notifier = notifier or LoggingNotifier()

    async with atomic(db):
        draft = await get_draft(db, draft_id, lock=True)
        current = _status(draft)
        if current == DraftStatus.COMPLETED:
            raise DraftClosed("Draft is completed; no more picks", current_status=current.value)
        if current != DraftStatus.IN_PROGRESS:
            raise DraftNotActive("Draft has not started", current_status=current.value)

        held_by = await assignment_ledger.holder_of(db, draft.league_season_id, castaway_id)
        if held_by == requesting_team_id:
            raise CastawayUnavailable(
                f"Castaway {castaway_id} is already on team {held_by}",
                castaway_id=castaway_id,
                held_by=held_by,
            )

        turn_order = list(draft.turn_order)
        on_clock = turn_order[draft.turn_pointer]
        if requesting_team_id != on_clock:
            raise NotYourTurn(
                f"It is team {on_clock}'s turn, not team {requesting_team_id}'s",
                on_clock=on_clock,
            )

        team_ids = _unique(turn_order)
        held = await assignment_ledger.held_counts(db, team_ids)
        remaining = {tid: draft.roster_size - held[tid] for tid in team_ids}
        remaining[requesting_team_id] -= 1  # this pick
        pointer = next_turn(turn_order, draft.turn_pointer, remaining)
        pick_number = draft.picks_made + 1

        values = dict(turn_pointer=pointer, picks_made=pick_number)
        if pointer is None:
            values.update(status=DraftStatus.COMPLETED, completed_at=utcnow())
        # Claim the turn first so concurrent picks serialize on the draft row.
        await _compare_and_swap(db, draft, **values)

        try:
            entry = await assignment_ledger.try_assign(
                db,
                draft.league_season_id,
                requesting_team_id,
                castaway_id,
                draft.roster_size,
                draft_id=draft.id,
                pick_number=pick_number,
            )
        except AlreadyAssigned as e:
            raise CastawayUnavailable(
                f"Castaway {castaway_id} is not available: {e.message}",
                castaway_id=castaway_id,
                held_by=e.held_by,
            ) from e

    logger.info(f"Draft {draft_id} pick #{pick_number}: team {requesting_team_id} took castaway {castaway_id}")

    draft = await get_draft(db, draft_id)
    if _status(draft) == DraftStatus.COMPLETED:
        logger.info(f"Draft {draft_id} completed after {draft.picks_made} picks")
    else:
        await notifier.emit(_turn_event(draft))
    return entry


def _turn_event(draft: Draft) -> Event:
    return Event(
        kind=EventKind.DRAFT_TURN,
        league_season_id=draft.league_season_id,
        payload={
            "draft_id": draft.id,
            "team_id": draft.turn_order[draft.turn_pointer],
            "pick_number": draft.picks_made + 1,
        },
    )


async def draft_board(db: AsyncSession, draft_id: int) -> dict:
    """Everything a polling client needs to render the draft."""
    draft = await get_draft(db, draft_id)
    turn_order = list(draft.turn_order or [])
    team_ids = _unique(turn_order)
    held = await assignment_ledger.held_counts(db, team_ids)
    picks = await assignment_ledger.list_assignments(db, draft.league_season_id)

    on_clock = None
    if _status(draft) == DraftStatus.IN_PROGRESS and draft.turn_pointer is not None:
        on_clock = turn_order[draft.turn_pointer]

    return {
        "draft_id": draft.id,
        "league_season_id": draft.league_season_id,
        "status": _status(draft).value,
        "order_strategy": DraftOrderStrategy(draft.order_strategy).value,
        "roster_size": draft.roster_size,
        "turn_order": turn_order,
        "turn_pointer": draft.turn_pointer,
        "on_the_clock": on_clock,
        "next_pick_number": draft.picks_made + 1 if on_clock is not None else None,
        "remaining": {tid: draft.roster_size - held[tid] for tid in team_ids},
        "picks": [p for p in picks if p.draft_id == draft.id],
        "version": draft.version,
    }
