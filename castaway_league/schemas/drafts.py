from pydantic import BaseModel, Field
from datetime import datetime


class DraftCreate(BaseModel):
    roster_size: int | None = Field(default=None, gt=0)
    order_strategy: str | None = None  # sequential | snake | random


class DraftStart(BaseModel):
    team_ids: list[int] | None = None  # Defaults to every team in join order
    order_strategy: str | None = None
    roster_size: int | None = Field(default=None, gt=0)
    seed: int | None = None


class DraftPickCreate(BaseModel):
    castaway_id: int


class DraftResponse(BaseModel):
    id: int
    league_season_id: int
    status: str
    order_strategy: str
    roster_size: int
    turn_order: list[int]
    turn_pointer: int | None
    picks_made: int
    version: int
    started_at: datetime | None
    completed_at: datetime | None

    model_config = {"from_attributes": True}


class AssignmentResponse(BaseModel):
    id: int
    league_season_id: int
    team_id: int
    castaway_id: int
    draft_id: int | None
    pick_number: int | None
    created_at: datetime

    model_config = {"from_attributes": True}


class DraftBoardResponse(BaseModel):
    draft_id: int
    league_season_id: int
    status: str
    order_strategy: str
    roster_size: int
    turn_order: list[int]
    turn_pointer: int | None
    on_the_clock: int | None
    next_pick_number: int | None
    remaining: dict[int, int]
    picks: list[AssignmentResponse]
    version: int
