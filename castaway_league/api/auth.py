from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from castaway_league.core.database import get_db
from castaway_league.models.models import FantasyPlayer, Team
from castaway_league.schemas.auth import MeResponse, PlayerResponse, TeamResponse
from castaway_league.api.deps import get_current_user

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.get("/me", response_model=MeResponse)
async def me(
    current_user: FantasyPlayer = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Team).where(Team.owner_id == current_user.id).order_by(Team.id)
    )
    return MeResponse(
        player=PlayerResponse.model_validate(current_user),
        teams=[TeamResponse.model_validate(t) for t in result.scalars().all()],
    )
