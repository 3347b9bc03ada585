from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from castaway_league.core.database import get_db
from castaway_league.models.models import FantasyPlayer
from castaway_league.schemas.leaderboard import LeaderboardResponse, LeaderboardEntry
from castaway_league.api.deps import get_current_user
from castaway_league.services.assignment_ledger import get_league_season
from castaway_league.services.scoring import leaderboard as build_leaderboard

router = APIRouter(prefix="/api/league-seasons/{league_season_id}", tags=["Leaderboard"])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    league_season_id: int,
    db: AsyncSession = Depends(get_db),
    _: FantasyPlayer = Depends(get_current_user),
):
    await get_league_season(db, league_season_id)
    raw = await build_leaderboard(db, league_season_id)
    return LeaderboardResponse(
        league_season_id=league_season_id,
        entries=[LeaderboardEntry(**e) for e in raw],
    )
