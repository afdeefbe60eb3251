"""
Achievement evaluation for the pelada system.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Union
from database.player_manager import PlayerManager
from database.award_manager import AwardManager
from database.achievement_manager import (
    AchievementManager, METRIC_GOALS, METRIC_ASSISTS, METRIC_PRESENCE, METRIC_AVG_RATING,
    METRIC_RATINGS_AT_LEAST_8, METRIC_RATINGS_AT_LEAST_9, METRIC_HAS_PERFECT_RATING,
    METRIC_WEEKLY_AWARDS, METRIC_MONTHLY_AWARDS)
from models.achievement import Achievement, AchievementUnlock, PlayerAchievement
from models.player import PlayerRecord
from models.results import ErrorKind, ErrorResult

logger = logging.getLogger(__name__)


class AchievementEvaluator:
    """
    Recomputes achievement progress from current stats and award records.

    Progress is never accumulated: every run derives it again, so a stat
    correction can drop a player below a target. With ``revocable_unlocks``
    on (the default) such an achievement is locked again; with it off an
    unlock is permanent.
    """

    def __init__(self, database_manager, revocable_unlocks: Optional[bool] = None):
        self.db_manager = database_manager
        self.player_manager = PlayerManager(database_manager)
        self.award_manager = AwardManager(database_manager)
        self.achievement_manager = AchievementManager(database_manager)
        if revocable_unlocks is None:
            revocable_unlocks = database_manager.get_section('achievements').get('revocable_unlocks', True)
        self.revocable_unlocks = bool(revocable_unlocks)

    def compute_metrics(self, player_id: int) -> Dict[str, float]:
        """Current value of every achievement metric for a player."""
        stats = self.player_manager.get_player_stats(player_id)
        totals = PlayerManager.fold_stats(stats)
        ratings = [s.rating for s in stats if s.rating is not None]
        awards = self.award_manager.count_awards_for_player(player_id)

        return {
            METRIC_GOALS: totals['goals'],
            METRIC_ASSISTS: totals['assists'],
            METRIC_PRESENCE: totals['matches'],
            METRIC_AVG_RATING: totals['rating'],
            METRIC_RATINGS_AT_LEAST_8: sum(1 for r in ratings if r >= 8),
            METRIC_RATINGS_AT_LEAST_9: sum(1 for r in ratings if r >= 9),
            METRIC_HAS_PERFECT_RATING: 1 if any(r >= 10 for r in ratings) else 0,
            METRIC_WEEKLY_AWARDS: awards['weekly'],
            METRIC_MONTHLY_AWARDS: awards['monthly'],
        }

    @staticmethod
    def progress_for(achievement: Achievement, player: PlayerRecord, metrics: Dict[str, float]) -> float:
        if not achievement.is_numeric or achievement.metric not in metrics:
            return 0.0
        if achievement.required_position and player.position_group.value != achievement.required_position:
            return 0.0
        return float(metrics[achievement.metric])

    def evaluate_achievements(self, player_id: int,
                              now: Optional[datetime] = None) -> Union[List[AchievementUnlock], ErrorResult]:
        """Re-derive every achievement of a player. Returns only the achievements newly unlocked by this run."""
        player = self.player_manager.get_player(player_id)
        if player is None:
            return ErrorResult(ErrorKind.INVALID_INPUT, f"Player {player_id} not found")

        timestamp = (now or datetime.now()).isoformat(timespec='seconds')
        metrics = self.compute_metrics(player_id)
        existing = self.achievement_manager.get_player_achievements(player_id)

        changed: List[PlayerAchievement] = []
        unlocks: List[AchievementUnlock] = []
        for achievement in self.achievement_manager.get_achievements():
            previous = existing.get(achievement.id)
            was_unlocked_at = previous.unlocked_at if previous else None
            progress = self.progress_for(achievement, player, metrics)
            unlocked_at = was_unlocked_at

            # Manual achievements keep whatever an admin granted
            if achievement.is_numeric:
                if progress >= achievement.target:
                    if was_unlocked_at is None:
                        unlocked_at = timestamp
                        unlocks.append(AchievementUnlock(slug=achievement.slug, name=achievement.name,
                                                         category=achievement.category, progress=progress,
                                                         target=achievement.target, unlocked_at=timestamp))
                elif was_unlocked_at is not None and self.revocable_unlocks:
                    unlocked_at = None
                    logger.info(f"Achievement {achievement.slug} locked again for player {player_id}")

            if previous is None or previous.progress != progress or was_unlocked_at != unlocked_at:
                changed.append(PlayerAchievement(player_id=player_id, achievement_id=achievement.id,
                                                 progress=progress, unlocked_at=unlocked_at))

        if changed:
            self.achievement_manager.save_player_progress(player_id, changed)
        if unlocks:
            logger.info(f"Player {player_id} unlocked {', '.join(u.slug for u in unlocks)}")
        return unlocks

    def evaluate_all_players(self, now: Optional[datetime] = None) -> Dict[int, List[AchievementUnlock]]:
        """Evaluate every player independently; returns newly unlocked achievements per player."""
        results = {}
        for player in self.player_manager.get_players():
            unlocks = self.evaluate_achievements(player.id, now)
            if isinstance(unlocks, ErrorResult):
                logger.warning(f"Skipping player {player.id}: {unlocks.message}")
                continue
            results[player.id] = unlocks

        total = sum(len(u) for u in results.values())
        logger.info(f"Evaluated achievements for {len(results)} players, {total} new unlocks")
        return results
