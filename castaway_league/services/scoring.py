"""
Scoring aggregate: each team's running point total, the leaderboard value.

Team.total_points is written only through apply_delta, and only the grading
engine calls apply_delta. Everything else here is read-side.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from castaway_league.core.errors import UnknownTeam
from castaway_league.models.models import FantasyPlayer, LeagueQuestion, Submission, Team


async def current_total(db: AsyncSession, team_id: int) -> int:
    result = await db.execute(select(Team.total_points).where(Team.id == team_id))
    total = result.scalar_one_or_none()
    if total is None:
        raise UnknownTeam(f"Team {team_id} not found")
    return total


async def apply_delta(db: AsyncSession, team_id: int, delta: int) -> None:
    """Single SQL increment, so concurrent deltas never overwrite each other."""
    result = await db.execute(
        update(Team)
        .where(Team.id == team_id)
        .values(total_points=Team.total_points + delta)
    )
    if result.rowcount != 1:
        raise UnknownTeam(f"Team {team_id} not found")


async def leaderboard(db: AsyncSession, league_season_id: int) -> list[dict]:
    """
    Teams by total points descending. Ties go to the team created first,
    then the lower id, so the order is stable between reads.
    """
    result = await db.execute(
        select(Team, FantasyPlayer.display_name)
        .join(FantasyPlayer, FantasyPlayer.id == Team.owner_id)
        .where(Team.league_season_id == league_season_id)
        .order_by(Team.total_points.desc(), Team.created_at, Team.id)
        .execution_options(populate_existing=True)
    )
    board = []
    for rank, (team, owner_name) in enumerate(result.all(), 1):
        board.append({
            "rank": rank,
            "team_id": team.id,
            "team_name": team.name,
            "owner_name": owner_name,
            "total_points": team.total_points,
        })
    return board


async def episode_results(db: AsyncSession, league_season_id: int, episode_number: int) -> list[dict]:
    """Points each team won or lost on one episode's graded questions, ranked."""
    teams_result = await db.execute(
        select(Team.id, Team.name, Team.created_at)
        .where(Team.league_season_id == league_season_id)
    )
    teams = teams_result.all()

    points_result = await db.execute(
        select(Submission.team_id, Submission.awarded_points, Submission.is_graded)
        .join(LeagueQuestion, LeagueQuestion.id == Submission.league_question_id)
        .where(
            LeagueQuestion.league_season_id == league_season_id,
            LeagueQuestion.episode_number == episode_number,
        )
    )
    earned: dict[int, int] = {}
    answered: dict[int, int] = {}
    for team_id, awarded, is_graded in points_result.all():
        answered[team_id] = answered.get(team_id, 0) + 1
        if is_graded:
            earned[team_id] = earned.get(team_id, 0) + (awarded or 0)

    rows = sorted(
        teams,
        key=lambda t: (-earned.get(t.id, 0), t.created_at, t.id),
    )
    return [
        {
            "rank": rank,
            "team_id": t.id,
            "team_name": t.name,
            "episode_points": earned.get(t.id, 0),
            "answers_submitted": answered.get(t.id, 0),
        }
        for rank, t in enumerate(rows, 1)
    ]
