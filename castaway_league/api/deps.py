from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from jose import JWTError

from castaway_league.core.database import get_db
from castaway_league.core.security import decode_access_token
from castaway_league.models.models import FantasyPlayer, Team
from castaway_league.services.notifications import Notifier, get_notifier

# Tokens are issued by the auth service; this app only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> FantasyPlayer:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token)
        player_id = int(payload.get("sub"))
    except (JWTError, ValueError, TypeError):
        raise credentials_exception

    result = await db.execute(
        select(FantasyPlayer).where(FantasyPlayer.id == player_id)
    )
    player = result.scalar_one_or_none()
    if player is None:
        raise credentials_exception
    return player


async def require_commissioner(
    current_user: FantasyPlayer = Depends(get_current_user),
) -> FantasyPlayer:
    if not current_user.is_commissioner:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Commissioner access required",
        )
    return current_user


async def get_current_team(
    league_season_id: int,
    current_user: FantasyPlayer = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Team:
    """The caller's team in the league-season from the path."""
    result = await db.execute(
        select(Team).where(
            Team.league_season_id == league_season_id,
            Team.owner_id == current_user.id,
        )
    )
    team = result.scalar_one_or_none()
    if team is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have a team in this league season",
        )
    return team


def notifier_dep() -> Notifier:
    return get_notifier()
