"""
Assignment ledger: which castaway belongs to which team in a league-season.

A castaway appears in at most one assignment per league-season; the unique
constraint on (league_season_id, castaway_id) is the final word on that, the
pre-check here only exists to report who holds the castaway.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from castaway_league.core.errors import (
    AlreadyAssigned, RosterFull, UnknownTeam, UnknownCastaway, UnknownLeagueSeason,
)
from castaway_league.models.models import Assignment, Castaway, LeagueSeason, Team

logger = logging.getLogger(__name__)


async def get_league_season(db: AsyncSession, league_season_id: int) -> LeagueSeason:
    result = await db.execute(select(LeagueSeason).where(LeagueSeason.id == league_season_id))
    league_season = result.scalar_one_or_none()
    if league_season is None:
        raise UnknownLeagueSeason(f"League-season {league_season_id} not found")
    return league_season


async def get_team(db: AsyncSession, team_id: int, league_season_id: int | None = None) -> Team:
    """Fetch a team, optionally requiring it to play in the given league-season."""
    query = select(Team).where(Team.id == team_id)
    if league_season_id is not None:
        query = query.where(Team.league_season_id == league_season_id)
    team = (await db.execute(query)).scalar_one_or_none()
    if team is None:
        scope = f" in league-season {league_season_id}" if league_season_id is not None else ""
        raise UnknownTeam(f"Team {team_id} not found{scope}")
    return team


async def holder_of(db: AsyncSession, league_season_id: int, castaway_id: int) -> int | None:
    """Team id currently holding the castaway in this league-season, if any."""
    result = await db.execute(
        select(Assignment.team_id).where(
            Assignment.league_season_id == league_season_id,
            Assignment.castaway_id == castaway_id,
        )
    )
    return result.scalar_one_or_none()


async def try_assign(
    db: AsyncSession,
    league_season_id: int,
    team_id: int,
    castaway_id: int,
    roster_size: int,
    *,
    draft_id: int | None = None,
    pick_number: int | None = None,
) -> Assignment:
    """
    Put a castaway on a team.

    Raises AlreadyAssigned if another (or the same) team already holds the
    castaway in this league-season, RosterFull if the team is at roster_size.
    Does not commit; callers run this inside their own unit of work.
    """
    league_season = await get_league_season(db, league_season_id)
    await get_team(db, team_id, league_season_id)

    castaway = (await db.execute(
        select(Castaway).where(
            Castaway.id == castaway_id,
            Castaway.season_id == league_season.season_id,
        )
    )).scalar_one_or_none()
    if castaway is None:
        raise UnknownCastaway(f"Castaway {castaway_id} is not in this league-season's show season")

    held_by = await holder_of(db, league_season_id, castaway_id)
    if held_by is not None:
        raise AlreadyAssigned(
            f"{castaway.name} is already on team {held_by}",
            castaway_id=castaway_id,
            held_by=held_by,
        )

    # Guarded increment: only bumps the count while the roster has room.
    bumped = await db.execute(
        update(Team)
        .where(Team.id == team_id, Team.castaway_count < roster_size)
        .values(castaway_count=Team.castaway_count + 1)
    )
    if bumped.rowcount != 1:
        raise RosterFull(f"Team {team_id} already holds {roster_size} castaway(s)", team_id=team_id)

    entry = Assignment(
        league_season_id=league_season_id,
        team_id=team_id,
        castaway_id=castaway_id,
        draft_id=draft_id,
        pick_number=pick_number,
    )
    db.add(entry)
    try:
        await db.flush()
    except IntegrityError:
        # Lost the race to a concurrent writer between the check and the insert.
        raise AlreadyAssigned(
            f"{castaway.name} was assigned concurrently",
            castaway_id=castaway_id,
        )

    logger.info(f"Assigned castaway {castaway_id} to team {team_id} (league-season {league_season_id})")
    return entry


async def list_assignments(db: AsyncSession, league_season_id: int) -> list[Assignment]:
    """All assignments in insertion order, i.e. the draft history."""
    result = await db.execute(
        select(Assignment)
        .where(Assignment.league_season_id == league_season_id)
        .order_by(Assignment.id)
    )
    return list(result.scalars().all())


async def team_roster(db: AsyncSession, team_id: int) -> list[Assignment]:
    result = await db.execute(
        select(Assignment).where(Assignment.team_id == team_id).order_by(Assignment.id)
    )
    return list(result.scalars().all())


async def held_counts(db: AsyncSession, team_ids: list[int]) -> dict[int, int]:
    """Current castaway count per team, read fresh from the database."""
    if not team_ids:
        return {}
    result = await db.execute(
        select(Team.id, Team.castaway_count).where(Team.id.in_(team_ids))
    )
    counts = {row[0]: row[1] for row in result.all()}
    return {tid: counts.get(tid, 0) for tid in team_ids}
