from pydantic import BaseModel


class PlayerResponse(BaseModel):
    id: int
    username: str
    display_name: str
    is_commissioner: bool

    model_config = {"from_attributes": True}


class TeamResponse(BaseModel):
    id: int
    league_season_id: int
    name: str
    total_points: int
    castaway_count: int

    model_config = {"from_attributes": True}


class MeResponse(BaseModel):
    player: PlayerResponse
    teams: list[TeamResponse]
