"""
Award data models for the pelada system.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass
class WeeklyAward:
    """Best player of a Monday-based week."""
    id: int
    week_start: date
    best_player_id: Optional[int] = None
    winning_match_id: Optional[int] = None


@dataclass
class MonthlyAward:
    """Best player ("craque") of a month."""
    id: int
    year: int
    month: int
    craque_id: Optional[int] = None


@dataclass
class SeasonAward:
    """Season award for one category (e.g. artilheiro, melhor_goleiro)."""
    id: int
    year: int
    category: str
    player_id: Optional[int] = None
