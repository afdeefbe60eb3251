"""
Team sorting package for the pelada system.
"""

from .team_sorter import TeamSorter, TeamDraw, Team, SortedPlayer, snake_distribute

__all__ = ['TeamSorter', 'TeamDraw', 'Team', 'SortedPlayer', 'snake_distribute']
