"""
Seed script: creates a demo league, Season 50, four teams, the Season 50
cast and a starter set of question templates.
Run with: python -m castaway_league.scripts.seed
"""
import asyncio

from sqlalchemy import select
from castaway_league.core.database import AsyncSessionLocal, engine, Base
from castaway_league.core.security import create_access_token
from castaway_league.models.models import (
    Castaway, CastawayStatus, FantasyPlayer, League, LeagueSeason,
    QuestionTemplate, QuestionType, Season, Team,
)

PLAYERS = [
    {"username": "eric", "display_name": "Eric", "is_commissioner": True},
    {"username": "calvin", "display_name": "Calvin", "is_commissioner": False},
    {"username": "jake", "display_name": "Jake", "is_commissioner": False},
    {"username": "josh", "display_name": "Josh", "is_commissioner": False},
]

CAST = {
    "Cila": ["Cirie Fields", "Ozzy Lusth", "Christian Hubicki", "Rick Devens",
             "Jenna Lewis-Dougherty", "Emily Flippen", "Savannah Louie", "Joe Hunter"],
    "Kalo": ["Benjamin \"Coach\" Wade", "Mike White", "Chrissy Hofbeck", "Charlie Davis",
             "Tiffany Ervin", "Jonathan Young", "Dee Valladares", "Kamilla Karthigesu"],
    "Vatu": ["Colby Donaldson", "Stephenie LaGrossa Kendrick", "Aubry Bracco", "Angelina Keeley",
             "Genevieve Mushaluk", "Kyle Fraser", "Q Burdette", "Rizo Velovic"],
}

TEMPLATES = [
    {"text": "Which tribe wins immunity?", "type": QuestionType.MULTIPLE_CHOICE,
     "options": ["Cila", "Kalo", "Vatu"], "point_value": 5, "category": "challenges"},
    {"text": "Who is voted out tonight?", "type": QuestionType.FILL_IN_THE_BLANK,
     "point_value": 10, "category": "tribal"},
    {"text": "Is a hidden immunity idol played?", "type": QuestionType.MULTIPLE_CHOICE,
     "options": ["Yes", "No"], "point_value": 3, "category": "tribal"},
    {"text": "Does anyone quit or get evacuated?", "type": QuestionType.MULTIPLE_CHOICE,
     "options": ["Yes", "No"], "point_value": 2, "category": "misc", "is_wager": False},
]


async def _get_or_create(db, model, defaults=None, **lookup):
    result = await db.execute(select(model).filter_by(**lookup))
    existing = result.scalar_one_or_none()
    if existing:
        return existing, False
    obj = model(**lookup, **(defaults or {}))
    db.add(obj)
    await db.flush()
    return obj, True


async def seed():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        players = []
        for data in PLAYERS:
            player, created = await _get_or_create(
                db, FantasyPlayer,
                defaults={"display_name": data["display_name"], "is_commissioner": data["is_commissioner"]},
                username=data["username"],
            )
            players.append(player)
            if created:
                print(f"  Created player: {player.display_name} ({'commissioner' if player.is_commissioner else 'player'})")

        league, _ = await _get_or_create(db, League, name="Island Pickers")
        season, created = await _get_or_create(db, Season, defaults={"name": "Survivor 50"}, season_number=50)
        if created:
            for tribe, names in CAST.items():
                for name in names:
                    db.add(Castaway(season_id=season.id, name=name, starting_tribe=tribe, status=CastawayStatus.ACTIVE))
            await db.flush()
            print(f"  Created Season 50 with {sum(len(n) for n in CAST.values())} castaways.")

        league_season, _ = await _get_or_create(db, LeagueSeason, league_id=league.id, season_id=season.id)
        for player in players:
            await _get_or_create(
                db, Team,
                defaults={"name": f"Team {player.display_name}"},
                league_season_id=league_season.id, owner_id=player.id,
            )

        existing = (await db.execute(select(QuestionTemplate.text))).scalars().all()
        for data in TEMPLATES:
            if data["text"] in existing:
                continue
            db.add(QuestionTemplate(**data))
            print(f"  Created template: {data['text']}")

        await db.commit()

        print(f"\nLeague-season id: {league_season.id}")
        for player in players:
            token = create_access_token({"sub": str(player.id), "is_commissioner": player.is_commissioner})
            print(f"  {player.username}: {token}")

    print("\nSeed complete!")


if __name__ == "__main__":
    print("Seeding Castaway League...\n")
    asyncio.run(seed())
