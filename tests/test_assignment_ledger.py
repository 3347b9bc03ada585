import pytest

from castaway_league.core.database import atomic
from castaway_league.core.errors import AlreadyAssigned, RosterFull, UnknownCastaway, UnknownTeam
from castaway_league.models.models import Castaway, Season
from castaway_league.services import assignment_ledger


async def _assign(db, league_season, team, castaway, roster_size=2):
    async with atomic(db):
        return await assignment_ledger.try_assign(db, league_season.id, team.id, castaway.id, roster_size)


@pytest.mark.asyncio
async def test_assign_and_list_in_insertion_order(db, league_season, teams, castaways):
    await _assign(db, league_season, teams[1], castaways[3])
    await _assign(db, league_season, teams[0], castaways[0])

    entries = await assignment_ledger.list_assignments(db, league_season.id)
    assert [(e.team_id, e.castaway_id) for e in entries] == [
        (teams[1].id, castaways[3].id),
        (teams[0].id, castaways[0].id),
    ]
    assert await assignment_ledger.holder_of(db, league_season.id, castaways[0].id) == teams[0].id
    assert await assignment_ledger.holder_of(db, league_season.id, castaways[1].id) is None


@pytest.mark.asyncio
async def test_castaway_held_once_per_league_season(db, league_season, teams, castaways):
    await _assign(db, league_season, teams[0], castaways[0])

    with pytest.raises(AlreadyAssigned) as exc:
        await _assign(db, league_season, teams[1], castaways[0])
    assert exc.value.held_by == teams[0].id

    # Same team, same castaway is also refused
    with pytest.raises(AlreadyAssigned):
        await _assign(db, league_season, teams[0], castaways[0])


@pytest.mark.asyncio
async def test_roster_full(db, league_season, teams, castaways):
    await _assign(db, league_season, teams[0], castaways[0], roster_size=1)
    with pytest.raises(RosterFull):
        await _assign(db, league_season, teams[0], castaways[1], roster_size=1)

    counts = await assignment_ledger.held_counts(db, [teams[0].id, teams[1].id])
    assert counts == {teams[0].id: 1, teams[1].id: 0}


@pytest.mark.asyncio
async def test_castaway_from_another_season_rejected(db, league_season, teams):
    other = Season(season_number=49, name="Survivor 49")
    db.add(other)
    await db.flush()
    stranger = Castaway(season_id=other.id, name="Savannah")
    db.add(stranger)
    await db.commit()

    with pytest.raises(UnknownCastaway):
        await _assign(db, league_season, teams[0], stranger)


@pytest.mark.asyncio
async def test_unknown_team(db, league_season, castaways):
    with pytest.raises(UnknownTeam):
        async with atomic(db):
            await assignment_ledger.try_assign(db, league_season.id, 9999, castaways[0].id, 2)


@pytest.mark.asyncio
async def test_team_roster(db, league_season, teams, castaways):
    await _assign(db, league_season, teams[2], castaways[4])
    await _assign(db, league_season, teams[2], castaways[5])
    roster = await assignment_ledger.team_roster(db, teams[2].id)
    assert [e.castaway_id for e in roster] == [castaways[4].id, castaways[5].id]
