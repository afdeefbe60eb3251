"""
Overall (60-95) scoring with position-dependent weights.

Stats are normalized against the maxima of the cohort being scored, so an
overall is always relative to the pool it was computed in.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional
from models.player import PositionGroup, PlayerAggregate, OverallBreakdown
from utils.math_utils import MathUtils

logger = logging.getLogger(__name__)

# (rating, goals, assists, presence); each row sums to 1
POSITION_WEIGHTS: Dict[PositionGroup, Dict[str, float]] = {
    PositionGroup.GOALKEEPER: {'rating': 0.55, 'goals': 0.05, 'assists': 0.10, 'presence': 0.30},
    PositionGroup.DEFENDER: {'rating': 0.50, 'goals': 0.10, 'assists': 0.10, 'presence': 0.30},
    PositionGroup.MIDFIELDER: {'rating': 0.40, 'goals': 0.25, 'assists': 0.20, 'presence': 0.15},
    PositionGroup.FORWARD: {'rating': 0.35, 'goals': 0.35, 'assists': 0.20, 'presence': 0.10},
}
DEFAULT_WEIGHTS = {'rating': 0.45, 'goals': 0.25, 'assists': 0.15, 'presence': 0.15}

BAND_MIN = 60
BAND_MAX = 95


@dataclass
class OverallComputation:
    """Scored entries plus the cohort maxima they were normalized against."""
    computed: List[PlayerAggregate]
    max_goals: int
    max_assists: int
    max_matches: int


class OverallScorer:
    """Converts aggregated stats into banded overall scores."""

    def __init__(self, band_min: int = BAND_MIN, band_max: int = BAND_MAX):
        self.band_min = band_min
        self.band_max = band_max

    @staticmethod
    def get_weights(group: PositionGroup) -> Dict[str, float]:
        return dict(POSITION_WEIGHTS.get(group, DEFAULT_WEIGHTS))

    def compute_overall(self, entries: List[PlayerAggregate]) -> OverallComputation:
        """Score every entry; the input entries are left untouched."""
        max_goals = max((e.goals or 0 for e in entries), default=0)
        max_assists = max((e.assists or 0 for e in entries), default=0)
        max_matches = max((e.matches or 0 for e in entries), default=0)

        computed = []
        for entry in entries:
            weights = self.get_weights(entry.player.position_group)

            goals_norm = MathUtils.safe_ratio(entry.goals or 0, max_goals)
            assists_norm = MathUtils.safe_ratio(entry.assists or 0, max_assists)
            presence_norm = MathUtils.safe_ratio(entry.matches or 0, max_matches)
            rating_norm = (entry.rating or 0) / 10

            score = (rating_norm * weights['rating']
                     + goals_norm * weights['goals']
                     + assists_norm * weights['assists']
                     + presence_norm * weights['presence'])

            raw_overall = MathUtils.round_half_up(MathUtils.clamp(score, 0, 1) * 100)
            span = self.band_max - self.band_min
            scaled = MathUtils.round_half_up(self.band_min + raw_overall / 100 * span)
            overall = int(MathUtils.clamp(scaled, self.band_min, self.band_max))

            breakdown = OverallBreakdown(
                weights=weights,
                goals_norm=goals_norm,
                assists_norm=assists_norm,
                presence_norm=presence_norm,
                rating_norm=rating_norm,
                raw_overall=raw_overall
            )
            computed.append(replace(entry, overall=overall, breakdown=breakdown))

        return OverallComputation(computed=computed, max_goals=max_goals,
                                  max_assists=max_assists, max_matches=max_matches)


class OverallRecalculator:
    """Batch job: recompute every player's overall and append it to overall_history."""

    def __init__(self, player_manager, history_manager, scorer: Optional[OverallScorer] = None,
                 match_window: Optional[int] = None):
        self.player_manager = player_manager
        self.history_manager = history_manager
        config = player_manager.config.get('overall') or {}
        self.scorer = scorer or OverallScorer(config.get('band_min', BAND_MIN),
                                              config.get('band_max', BAND_MAX))
        self.match_window = match_window if match_window is not None else config.get('match_window', 10)

    def recalculate(self, all_time: bool = False) -> int:
        """
        Recompute overall over the last N matches (or all time).
        Players with no present match in the window are skipped.
        Returns the number of snapshots written.
        """
        match_ids = None
        window = 'all-time'
        if not all_time:
            matches = self.player_manager.get_matches()[:self.match_window]
            if not matches:
                logger.info("No matches found; nothing to recalculate")
                return 0
            match_ids = [m.id for m in matches]
            window = f"last-{len(match_ids)}-matches"

        players = self.player_manager.get_players()
        stats = self.player_manager.get_stats_for_players([p.id for p in players], match_ids=match_ids)

        stats_by_player = {p.id: [] for p in players}
        for stat in stats:
            stats_by_player[stat.player_id].append(stat)

        entries = []
        for player in players:
            totals = self.player_manager.fold_stats(stats_by_player[player.id])
            if totals['matches'] == 0:
                continue
            entries.append(PlayerAggregate(player=player, goals=totals['goals'],
                                           assists=totals['assists'], matches=totals['matches'],
                                           photos=totals['photos'], rating=totals['rating']))

        if not entries:
            logger.info(f"No player with stats in window {window}")
            return 0

        logger.info(f"Calculating overall for {len(entries)} players ({window})")
        result = self.scorer.compute_overall(entries)

        snapshots = [{
            'player_id': row.player.id,
            'overall': row.overall,
            'window': window,
            'goals': row.goals,
            'assists': row.assists,
            'matches': row.matches,
            'rating': row.rating,
            'max_goals': result.max_goals,
            'max_assists': result.max_assists,
            'max_matches': result.max_matches,
            'weights': row.breakdown.weights
        } for row in result.computed]

        return self.history_manager.append_snapshots(snapshots)
