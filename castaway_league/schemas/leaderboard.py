from pydantic import BaseModel


class LeaderboardEntry(BaseModel):
    rank: int
    team_id: int
    team_name: str
    owner_name: str
    total_points: int


class LeaderboardResponse(BaseModel):
    league_season_id: int
    entries: list[LeaderboardEntry]


class EpisodeResultItem(BaseModel):
    rank: int
    team_id: int
    team_name: str
    episode_points: int
    answers_submitted: int


class EpisodeResultsResponse(BaseModel):
    league_season_id: int
    episode_number: int
    results: list[EpisodeResultItem]
