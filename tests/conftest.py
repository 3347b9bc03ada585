"""
Shared fixtures: a throwaway SQLite file per test, plus builders for the
league scaffolding the core expects the league collaborator to have created.

A file database (not :memory:) so concurrency tests can open several
connections against the same data.

Scaffolding rows are expunged once committed. A failed operation rolls the
shared session back, which expires everything still attached to it, and the
fixtures must stay readable afterwards.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./castaway_league_test.db")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from castaway_league.core.database import Base, make_engine
from castaway_league.models.models import (
    Castaway, FantasyPlayer, League, LeagueSeason, QuestionType, Season, Team,
)
from castaway_league.services.notifications import RecordingNotifier
from castaway_league.services.question_catalog import QuestionSpec, instantiate


@pytest.fixture
async def engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
async def league_season(db: AsyncSession):
    league = League(name="Test League")
    season = Season(season_number=50, name="Survivor 50")
    db.add_all([league, season])
    await db.flush()
    league_season = LeagueSeason(league_id=league.id, season_id=season.id)
    db.add(league_season)
    await db.commit()
    db.expunge_all()
    return league_season


@pytest.fixture
async def players(db: AsyncSession):
    rows = [
        FantasyPlayer(username="eric", display_name="Eric", is_commissioner=True),
        FantasyPlayer(username="calvin", display_name="Calvin"),
        FantasyPlayer(username="jake", display_name="Jake"),
        FantasyPlayer(username="josh", display_name="Josh"),
    ]
    db.add_all(rows)
    await db.commit()
    db.expunge_all()
    return rows


@pytest.fixture
async def teams(db: AsyncSession, league_season, players):
    """Four teams, A-D, created in that order."""
    rows = []
    for letter, player in zip("ABCD", players):
        team = Team(league_season_id=league_season.id, owner_id=player.id, name=f"Team {letter}")
        db.add(team)
        await db.flush()
        rows.append(team)
    await db.commit()
    db.expunge_all()
    return rows


@pytest.fixture
async def castaways(db: AsyncSession, league_season):
    names = ["Cirie", "Ozzy", "Coach", "Dee", "Colby", "Aubry", "Kyle", "Q"]
    rows = [Castaway(season_id=league_season.season_id, name=n, starting_tribe="Cila") for n in names]
    db.add_all(rows)
    await db.commit()
    db.expunge_all()
    return rows


@pytest.fixture
def make_question(db: AsyncSession, league_season):
    async def _make(episode_number=1, **overrides):
        spec = QuestionSpec(
            text=overrides.pop("text", "Which tribe wins immunity?"),
            type=overrides.pop("type", QuestionType.MULTIPLE_CHOICE),
            options=overrides.pop("options", ["Red", "Blue"]),
            **overrides,
        )
        return await instantiate(db, spec, league_season.id, episode_number)
    return _make
