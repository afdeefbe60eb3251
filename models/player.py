"""
Player, match and statistics data models for the pelada system.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, Optional


class PositionGroup(str, Enum):
    """Closed set of position groups every free-text position label maps to."""
    GOALKEEPER = "goalkeeper"
    DEFENDER = "defender"
    MIDFIELDER = "midfielder"
    FORWARD = "forward"
    OTHER = "other"


@dataclass
class PlayerRecord:
    """Database record for a player."""
    id: int
    name: str
    nickname: Optional[str] = None
    position: Optional[str] = None
    position_group: PositionGroup = PositionGroup.OTHER
    total_goals: int = 0
    total_assists: int = 0
    total_matches: int = 0
    total_photos: int = 0
    total_rating: float = 0.0
    overall_dynamic: Optional[int] = None
    overall_last_updated: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.nickname or self.name


@dataclass
class MatchRecord:
    """Database record for a match (pelada)."""
    id: int
    played_at: date
    description: Optional[str] = None
    winner_color: Optional[str] = None
    voting_status: str = "CLOSED"


@dataclass
class PlayerStatRecord:
    """One row of the (player, match) fact table."""
    id: int
    player_id: int
    match_id: int
    present: bool = False
    goals: int = 0
    assists: int = 0
    rating: Optional[float] = None
    appeared_in_photo: bool = False
    played_at: Optional[date] = None


@dataclass
class OverallBreakdown:
    """Intermediate values of an overall computation, kept for audit and history."""
    weights: Dict[str, float]
    goals_norm: float
    assists_norm: float
    presence_norm: float
    rating_norm: float
    raw_overall: int


@dataclass
class PlayerAggregate:
    """A player's stats folded over a set of matches."""
    player: PlayerRecord
    goals: int = 0
    assists: int = 0
    matches: int = 0
    photos: int = 0
    rating: float = 0.0
    overall: Optional[int] = None
    breakdown: Optional[OverallBreakdown] = None
    score: Optional[float] = None
    is_override: bool = False

    @property
    def goals_assists(self) -> int:
        return self.goals + self.assists

    @property
    def has_participation(self) -> bool:
        return self.matches > 0 or self.goals > 0 or self.assists > 0
