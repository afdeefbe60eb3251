"""
Rating package for the pelada system.

This package contains the overall scorer and the per-match rating engine.
"""

from .overall import OverallScorer, OverallRecalculator, OverallComputation
from .match_ratings import (MatchRatingEngine, MatchRatingResult, MatchAwards,
                            PlayerMatchScore, stars_from_rank, pick_best)

__all__ = ['OverallScorer', 'OverallRecalculator', 'OverallComputation',
           'MatchRatingEngine', 'MatchRatingResult', 'MatchAwards', 'PlayerMatchScore',
           'stars_from_rank', 'pick_best']
