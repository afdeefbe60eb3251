"""
Ranking package for the pelada system.
"""

from .cache import TTLCache
from .ranking_processor import (RankingProcessor, Rankings, DateRange, AwardCount,
                                ColorTally, get_date_range)

__all__ = ['TTLCache', 'RankingProcessor', 'Rankings', 'DateRange', 'AwardCount',
           'ColorTally', 'get_date_range']
