from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Text,
    UniqueConstraint, CheckConstraint, Enum as SAEnum, JSON
)
from sqlalchemy.orm import relationship
from castaway_league.core.database import Base
import enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Enums ---

class CastawayStatus(str, enum.Enum):
    ACTIVE = "active"
    ELIMINATED = "eliminated"
    EVACUATED = "evacuated"
    QUIT = "quit"


class DraftStatus(str, enum.Enum):
    PENDING = "pending"           # Created, no turns taken
    IN_PROGRESS = "in_progress"   # Teams are picking
    COMPLETED = "completed"       # Every roster is full (terminal)


class DraftOrderStrategy(str, enum.Enum):
    SEQUENTIAL = "sequential"  # Same order every round
    SNAKE = "snake"            # Order reverses each round
    RANDOM = "random"          # Seeded shuffle, then sequential


class QuestionType(str, enum.Enum):
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    FILL_IN_THE_BLANK = "FILL_IN_THE_BLANK"


class QuestionScope(str, enum.Enum):
    EPISODE = "episode"
    SEASON = "season"


# --- League scope (owned by the league collaborator) ---

class League(Base):
    __tablename__ = "leagues"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    league_seasons = relationship("LeagueSeason", back_populates="league", cascade="all, delete-orphan")


class Season(Base):
    __tablename__ = "seasons"

    id = Column(Integer, primary_key=True, index=True)
    season_number = Column(Integer, unique=True, nullable=False)
    name = Column(String(100), nullable=False)  # e.g. "Survivor 50"
    created_at = Column(DateTime(timezone=True), default=utcnow)

    castaways = relationship("Castaway", back_populates="season", cascade="all, delete-orphan")


class LeagueSeason(Base):
    """One league playing one show-season. Drafts, questions and teams hang off this."""
    __tablename__ = "league_seasons"

    id = Column(Integer, primary_key=True, index=True)
    league_id = Column(Integer, ForeignKey("leagues.id"), nullable=False)
    season_id = Column(Integer, ForeignKey("seasons.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    league = relationship("League", back_populates="league_seasons")
    teams = relationship("Team", back_populates="league_season", cascade="all, delete-orphan")
    drafts = relationship("Draft", cascade="all, delete-orphan")
    assignments = relationship("Assignment", cascade="all, delete-orphan")
    questions = relationship("LeagueQuestion", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("league_id", "season_id", name="uq_league_season"),
    )


class FantasyPlayer(Base):
    """Authenticated user. Rows are written by the auth service."""
    __tablename__ = "fantasy_players"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False)
    display_name = Column(String(100), nullable=False)
    is_commissioner = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    teams = relationship("Team", back_populates="owner")


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    league_season_id = Column(Integer, ForeignKey("league_seasons.id"), nullable=False)
    owner_id = Column(Integer, ForeignKey("fantasy_players.id"), nullable=False)
    name = Column(String(100), nullable=False)
    total_points = Column(Integer, default=0, nullable=False)  # Written only by the grading engine
    castaway_count = Column(Integer, default=0, nullable=False)  # Written only by the assignment ledger
    created_at = Column(DateTime(timezone=True), default=utcnow)

    league_season = relationship("LeagueSeason", back_populates="teams")
    owner = relationship("FantasyPlayer", back_populates="teams")

    __table_args__ = (
        UniqueConstraint("league_season_id", "owner_id", name="uq_team_owner"),
        CheckConstraint("castaway_count >= 0", name="ck_team_castaway_count"),
    )


class Castaway(Base):
    __tablename__ = "castaways"

    id = Column(Integer, primary_key=True, index=True)
    season_id = Column(Integer, ForeignKey("seasons.id"), nullable=False)
    name = Column(String(100), nullable=False)
    starting_tribe = Column(String(100))
    status = Column(SAEnum(CastawayStatus), default=CastawayStatus.ACTIVE, nullable=False)

    season = relationship("Season", back_populates="castaways")

    __table_args__ = (
        UniqueConstraint("season_id", "name", name="uq_castaway_season_name"),
    )


# --- Draft ---

class Draft(Base):
    """
    One draft per league-season.

    turn_order is the full precomputed pick sequence (team ids, one entry per
    pick). turn_pointer indexes into it. Every mutation bumps `version`, and
    writers compare-and-swap on it so two concurrent picks can't both land.
    """
    __tablename__ = "drafts"

    id = Column(Integer, primary_key=True, index=True)
    league_season_id = Column(Integer, ForeignKey("league_seasons.id"), unique=True, nullable=False)
    status = Column(SAEnum(DraftStatus), default=DraftStatus.PENDING, nullable=False)
    order_strategy = Column(SAEnum(DraftOrderStrategy), default=DraftOrderStrategy.SNAKE, nullable=False)
    roster_size = Column(Integer, nullable=False)
    random_seed = Column(Integer)
    turn_order = Column(JSON, nullable=False, default=list)
    turn_pointer = Column(Integer)  # None unless IN_PROGRESS
    picks_made = Column(Integer, default=0, nullable=False)
    version = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint("roster_size > 0", name="ck_draft_roster_size"),
    )


class Assignment(Base):
    """Assignment ledger entry: a castaway on a team. Never updated once written."""
    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True, index=True)
    league_season_id = Column(Integer, ForeignKey("league_seasons.id"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    castaway_id = Column(Integer, ForeignKey("castaways.id"), nullable=False)
    draft_id = Column(Integer, ForeignKey("drafts.id"))
    pick_number = Column(Integer)  # 1-based overall pick
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("league_season_id", "castaway_id", name="uq_assignment_castaway"),
    )


# --- Questions & wagers ---

class QuestionTemplate(Base):
    """Reusable question, independent of any league."""
    __tablename__ = "question_templates"

    id = Column(Integer, primary_key=True, index=True)
    text = Column(Text, nullable=False)
    type = Column(SAEnum(QuestionType), nullable=False)
    options = Column(JSON)  # list[str] for multiple choice
    point_value = Column(Integer, default=1, nullable=False)
    category = Column(String(50))
    is_wager = Column(Boolean, default=True, nullable=False)
    min_wager = Column(Integer)
    max_wager = Column(Integer)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class LeagueQuestion(Base):
    """
    A question asked in one league for one episode.

    Display fields are copied from the template at creation time;
    source_template_id is provenance only and is never read back for display.
    """
    __tablename__ = "league_questions"

    id = Column(Integer, primary_key=True, index=True)
    league_season_id = Column(Integer, ForeignKey("league_seasons.id"), nullable=False)
    episode_number = Column(Integer, nullable=False)
    text = Column(Text, nullable=False)
    type = Column(SAEnum(QuestionType), nullable=False)
    options = Column(JSON)
    point_value = Column(Integer, default=1, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    question_scope = Column(SAEnum(QuestionScope), default=QuestionScope.EPISODE, nullable=False)
    is_wager = Column(Boolean, default=True, nullable=False)
    min_wager = Column(Integer)
    max_wager = Column(Integer)
    source_template_id = Column(Integer, ForeignKey("question_templates.id", ondelete="SET NULL"))
    correct_answer = Column(Text)  # Null until graded
    is_scored = Column(Boolean, default=False, nullable=False)
    scored_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)

    submissions = relationship("Submission", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("point_value >= 1", name="ck_question_point_value"),
    )


class Submission(Base):
    """Wager ledger entry: one team's answer and stake on one question."""
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    league_question_id = Column(Integer, ForeignKey("league_questions.id"), nullable=False)
    answer = Column(Text, nullable=False)
    wager_amount = Column(Integer, nullable=False)
    submitted_at = Column(DateTime(timezone=True), default=utcnow)
    is_graded = Column(Boolean, default=False, nullable=False)
    awarded_points = Column(Integer)  # Null until graded
    graded_at = Column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("team_id", "league_question_id", name="uq_submission_team_question"),
        CheckConstraint("wager_amount >= 0", name="ck_submission_wager"),
    )
