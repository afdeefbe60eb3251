"""
Achievements package for the pelada system.
"""

from .achievement_evaluator import AchievementEvaluator

__all__ = ['AchievementEvaluator']
