from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from castaway_league.core.database import get_db
from castaway_league.models.models import (
    Assignment, Draft, DraftOrderStrategy, FantasyPlayer, Team,
)
from castaway_league.schemas.drafts import (
    DraftCreate, DraftStart, DraftPickCreate, DraftResponse,
    AssignmentResponse, DraftBoardResponse,
)
from castaway_league.api.deps import get_current_user, get_current_team, require_commissioner, notifier_dep
from castaway_league.services import assignment_ledger, draft_engine
from castaway_league.services.notifications import Notifier

router = APIRouter(prefix="/api/league-seasons/{league_season_id}/draft", tags=["Draft"])


def _strategy(value: str | None) -> DraftOrderStrategy | None:
    if value is None:
        return None
    try:
        return DraftOrderStrategy(value)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid order strategy. Must be one of: {[s.value for s in DraftOrderStrategy]}",
        )


def _draft_response(draft: Draft) -> DraftResponse:
    return DraftResponse(
        id=draft.id,
        league_season_id=draft.league_season_id,
        status=draft.status.value,
        order_strategy=draft.order_strategy.value,
        roster_size=draft.roster_size,
        turn_order=list(draft.turn_order or []),
        turn_pointer=draft.turn_pointer,
        picks_made=draft.picks_made,
        version=draft.version,
        started_at=draft.started_at,
        completed_at=draft.completed_at,
    )


async def _draft_or_404(db: AsyncSession, league_season_id: int) -> Draft:
    draft = await draft_engine.get_draft_for_league_season(db, league_season_id)
    if draft is None:
        raise HTTPException(status_code=404, detail="Draft not found")
    return draft


@router.post("", response_model=DraftResponse, status_code=201)
async def create_draft(
    league_season_id: int,
    body: DraftCreate,
    db: AsyncSession = Depends(get_db),
    _: FantasyPlayer = Depends(require_commissioner),
):
    draft = await draft_engine.create_draft(
        db, league_season_id, body.roster_size, _strategy(body.order_strategy)
    )
    return _draft_response(draft)


@router.post("/start", response_model=DraftResponse)
async def start_draft(
    league_season_id: int,
    body: DraftStart,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(notifier_dep),
    _: FantasyPlayer = Depends(require_commissioner),
):
    team_ids = body.team_ids
    if team_ids is None:
        # League membership order
        result = await db.execute(
            select(Team.id)
            .where(Team.league_season_id == league_season_id)
            .order_by(Team.created_at, Team.id)
        )
        team_ids = list(result.scalars().all())

    draft = await draft_engine.start_draft(
        db,
        league_season_id,
        team_ids,
        _strategy(body.order_strategy),
        roster_size=body.roster_size,
        seed=body.seed,
        notifier=notifier,
    )
    return _draft_response(draft)


@router.get("", response_model=DraftBoardResponse)
async def draft_board(
    league_season_id: int,
    db: AsyncSession = Depends(get_db),
    _: FantasyPlayer = Depends(get_current_user),
):
    draft = await _draft_or_404(db, league_season_id)
    board = await draft_engine.draft_board(db, draft.id)
    board["picks"] = [AssignmentResponse.model_validate(p) for p in board["picks"]]
    return DraftBoardResponse(**board)


@router.post("/picks", response_model=AssignmentResponse, status_code=201)
async def draft_pick(
    league_season_id: int,
    body: DraftPickCreate,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(notifier_dep),
    team: Team = Depends(get_current_team),
):
    draft = await _draft_or_404(db, league_season_id)
    entry = await draft_engine.draft_pick(
        db, draft.id, team.id, body.castaway_id, notifier=notifier
    )
    return entry


@router.get("/assignments", response_model=list[AssignmentResponse])
async def list_assignments(
    league_season_id: int,
    db: AsyncSession = Depends(get_db),
    _: FantasyPlayer = Depends(get_current_user),
) -> list[Assignment]:
    return await assignment_ledger.list_assignments(db, league_season_id)
