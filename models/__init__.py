"""
Models package for the pelada system.

This package contains all data models and dataclasses used throughout the system.
"""

from .player import (PositionGroup, PlayerRecord, MatchRecord, PlayerStatRecord,
                     PlayerAggregate, OverallBreakdown)
from .vote import VoteSession, VoteToken, Ballot, BallotRanking, BallotRating, VoteSubmission
from .award import WeeklyAward, MonthlyAward, SeasonAward
from .achievement import Achievement, PlayerAchievement, AchievementUnlock
from .results import ErrorKind, ErrorResult, VoteValidationError

__all__ = [
    'PositionGroup', 'PlayerRecord', 'MatchRecord', 'PlayerStatRecord',
    'PlayerAggregate', 'OverallBreakdown',
    'VoteSession', 'VoteToken', 'Ballot', 'BallotRanking', 'BallotRating', 'VoteSubmission',
    'WeeklyAward', 'MonthlyAward', 'SeasonAward',
    'Achievement', 'PlayerAchievement', 'AchievementUnlock',
    'ErrorKind', 'ErrorResult', 'VoteValidationError'
]
