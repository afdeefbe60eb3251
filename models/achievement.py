"""
Achievement data models for the pelada system.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Achievement:
    """Catalog entry: a named rule with a numeric target."""
    id: int
    slug: str
    name: str
    category: str
    metric: Optional[str] = None
    target: float = 0.0
    is_numeric: bool = True
    required_position: Optional[str] = None
    description: Optional[str] = None


@dataclass
class PlayerAchievement:
    """Progress of one player towards one achievement; ``unlocked_at`` None means locked."""
    player_id: int
    achievement_id: int
    progress: float = 0.0
    unlocked_at: Optional[str] = None

    @property
    def is_unlocked(self) -> bool:
        return self.unlocked_at is not None


@dataclass
class AchievementUnlock:
    """Descriptor returned for an achievement unlocked by an evaluation run."""
    slug: str
    name: str
    category: str
    progress: float
    target: float
    unlocked_at: str
