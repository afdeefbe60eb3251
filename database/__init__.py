"""
Database package for the pelada system.
"""

from .database_manager import DatabaseManager
from .player_manager import PlayerManager
from .history_manager import HistoryManager
from .award_manager import AwardManager
from .achievement_manager import AchievementManager
from .vote_manager import VoteManager

__all__ = ['DatabaseManager', 'PlayerManager', 'HistoryManager', 'AwardManager',
           'AchievementManager', 'VoteManager']
