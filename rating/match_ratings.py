"""
Per-match final ratings (0-10) and best-of-match awards.

A player's final rating blends the crowd vote with a stats rating:

    final = vote_weight * vote_rating + stats_weight * stats_rating

The vote rating comes from explicit 0-5 star ratings when any ballot carries
them. Otherwise rank orderings are turned into stars and shrunk towards the
global mean star value with a Bayesian confidence constant. The stats rating
normalizes goals and assists against the match's own maxima with
position-dependent weights and a photo bonus.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union, Iterable
from models.player import PositionGroup, PlayerRecord, PlayerStatRecord
from models.vote import Ballot
from models.results import ErrorKind, ErrorResult
from utils.math_utils import MathUtils
from utils.position_utils import PositionUtils

logger = logging.getLogger(__name__)

# (goals, assists, photo bonus) weights of the stats rating
STATS_WEIGHTS: Dict[PositionGroup, tuple] = {
    PositionGroup.GOALKEEPER: (0.2, 0.3, 0.5),
    PositionGroup.DEFENDER: (0.3, 0.4, 0.3),
    PositionGroup.MIDFIELDER: (0.4, 0.4, 0.2),
}
DEFAULT_STATS_WEIGHTS = (0.6, 0.3, 0.1)

AWARD_SLOTS = {
    'goalkeeper': PositionGroup.GOALKEEPER,
    'defender': PositionGroup.DEFENDER,
    'midfielder': PositionGroup.MIDFIELDER,
    'forward': PositionGroup.FORWARD,
}


@dataclass
class PlayerMatchScore:
    """Score breakdown of one present player in one match."""
    player_id: int
    name: str
    position_group: PositionGroup
    goals: int = 0
    assists: int = 0
    appeared_in_photo: bool = False
    votes_count: int = 0
    vote_rating: float = 0.0
    stats_rating: float = 0.0
    final_rating: float = 0.0

    @property
    def goals_assists(self) -> int:
        return self.goals + self.assists


@dataclass
class MatchAwards:
    craque: Optional[PlayerMatchScore] = None
    goalkeeper: Optional[PlayerMatchScore] = None
    defender: Optional[PlayerMatchScore] = None
    midfielder: Optional[PlayerMatchScore] = None
    forward: Optional[PlayerMatchScore] = None

    def winner_ids(self) -> Dict[str, Optional[int]]:
        return {slot: (getattr(self, slot).player_id if getattr(self, slot) else None)
                for slot in ('craque', 'goalkeeper', 'defender', 'midfielder', 'forward')}


@dataclass
class MatchRatingResult:
    match_id: int
    scores: Dict[int, PlayerMatchScore] = field(default_factory=dict)
    awards: MatchAwards = field(default_factory=MatchAwards)
    ballots_count: int = 0
    used_explicit_ratings: bool = False


def stars_from_rank(rank_index: int, total: int) -> float:
    """Best rank gets 5 stars, last gets 1, linearly in between, to the nearest half star.

    Ranks past the end of the group still get 1 star.
    """
    if total <= 1:
        return 5.0
    stars = MathUtils.clamp(5 - 4 * (rank_index / (total - 1)), 1, 5)
    return MathUtils.round_half_up(stars * 2) / 2


def pick_best(candidates: Iterable[PlayerMatchScore]) -> Optional[PlayerMatchScore]:
    """Highest final rating; ties go to goals+assists, then vote count, then the lowest player id."""
    ordered = sorted(candidates, key=lambda s: (-s.final_rating, -s.goals_assists,
                                                -s.votes_count, s.player_id))
    return ordered[0] if ordered else None


class MatchRatingEngine:
    """Computes final ratings and awards for matches."""

    def __init__(self, player_manager, vote_manager, config: Optional[Dict] = None):
        self.player_manager = player_manager
        self.vote_manager = vote_manager
        settings = config if config is not None else (player_manager.config.get('match_ratings') or {})
        self.vote_weight = settings.get('vote_weight', 0.7)
        self.stats_weight = settings.get('stats_weight', 0.3)
        self.confidence_votes = settings.get('confidence_votes', 3)
        self.default_global_mean = settings.get('default_global_mean', 2.5)

    # ------------------------------------------------------------------
    # Pure computation
    # ------------------------------------------------------------------

    def rate_match(self, match_id: int, ballots: List[Ballot], stats: List[PlayerStatRecord],
                   players: Dict[int, PlayerRecord]) -> Union[MatchRatingResult, ErrorResult]:
        """Rate one match from its ballots and present-player stats."""
        present = [s for s in stats if s.present]
        if not present:
            return ErrorResult(ErrorKind.NO_STATS, f"No present-player stats for match {match_id}")

        scores: Dict[int, PlayerMatchScore] = {}
        for stat in present:
            player = players.get(stat.player_id)
            scores[stat.player_id] = PlayerMatchScore(
                player_id=stat.player_id,
                name=player.display_name if player else str(stat.player_id),
                position_group=player.position_group if player else PositionGroup.OTHER,
                goals=stat.goals or 0,
                assists=stat.assists or 0,
                appeared_in_photo=bool(stat.appeared_in_photo)
            )

        explicit = self._apply_explicit_ratings(ballots, scores)
        if not explicit:
            self._apply_rank_ratings(ballots, scores)

        self._apply_stats_ratings(scores)

        for score in scores.values():
            final = self.vote_weight * score.vote_rating + self.stats_weight * score.stats_rating
            score.final_rating = MathUtils.round_to(MathUtils.clamp(final, 0, 10), 2)

        awards = MatchAwards(craque=pick_best(scores.values()))
        for slot, group in AWARD_SLOTS.items():
            setattr(awards, slot, pick_best(s for s in scores.values() if s.position_group == group))

        return MatchRatingResult(match_id=match_id, scores=scores, awards=awards,
                                 ballots_count=len(ballots), used_explicit_ratings=explicit)

    def _apply_explicit_ratings(self, ballots: List[Ballot], scores: Dict[int, PlayerMatchScore]) -> bool:
        sums: Dict[int, float] = {}
        counts: Dict[int, int] = {}
        for ballot in ballots:
            for line in ballot.ratings:
                if line.player_id not in scores:
                    continue
                sums[line.player_id] = sums.get(line.player_id, 0.0) + line.rating
                counts[line.player_id] = counts.get(line.player_id, 0) + 1

        if not counts:
            return False

        for player_id, score in scores.items():
            count = counts.get(player_id, 0)
            average = sums[player_id] / count if count else 0.0
            score.votes_count = count
            score.vote_rating = MathUtils.round_to(MathUtils.clamp(average * 2, 0, 10), 2)
        return True

    def _apply_rank_ratings(self, ballots: List[Ballot], scores: Dict[int, PlayerMatchScore]) -> None:
        star_sums: Dict[int, float] = {}
        counts: Dict[int, int] = {}
        global_sum = 0.0
        global_count = 0

        for ballot in ballots:
            grouped: Dict[PositionGroup, list] = {}
            for line in ballot.rankings:
                grouped.setdefault(PositionUtils.classify(line.position), []).append(line)

            for lines in grouped.values():
                lines.sort(key=lambda line: line.rank if line.rank is not None else 0)
                total = len(lines)
                for idx, line in enumerate(lines):
                    if line.player_id not in scores:
                        continue
                    rank_index = max(0, line.rank - 1) if line.rank is not None else idx
                    stars = stars_from_rank(rank_index, total)
                    star_sums[line.player_id] = star_sums.get(line.player_id, 0.0) + stars
                    counts[line.player_id] = counts.get(line.player_id, 0) + 1
                    global_sum += stars
                    global_count += 1

        global_mean = global_sum / global_count if global_count else self.default_global_mean
        confidence = self.confidence_votes

        for player_id, score in scores.items():
            count = counts.get(player_id, 0)
            if count:
                average = star_sums[player_id] / count
                stars = (average * count + global_mean * confidence) / (count + confidence)
            else:
                stars = global_mean
            score.votes_count = count
            score.vote_rating = MathUtils.round_to(stars * 2, 2)

    @staticmethod
    def _apply_stats_ratings(scores: Dict[int, PlayerMatchScore]) -> None:
        max_goals = max((s.goals for s in scores.values()), default=0)
        max_assists = max((s.assists for s in scores.values()), default=0)

        for score in scores.values():
            goals_weight, assists_weight, photo_weight = STATS_WEIGHTS.get(
                score.position_group, DEFAULT_STATS_WEIGHTS)
            value = (MathUtils.safe_ratio(score.goals, max_goals) * goals_weight
                     + MathUtils.safe_ratio(score.assists, max_assists) * assists_weight
                     + (photo_weight if score.appeared_in_photo else 0))
            score.stats_rating = MathUtils.round_to(min(value, 1.0) * 10, 2)

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------

    def rate_matches(self, match_ids: List[int]) -> Dict[int, Union[MatchRatingResult, ErrorResult]]:
        """
        Rate several matches with one fetch of ballots, stats and players.
        A match that fails to rate yields a transientFailure result instead of aborting the batch.
        """
        match_ids = list(dict.fromkeys(match_ids))
        if not match_ids:
            return {}

        ballots = self.vote_manager.get_ballots_for_matches(match_ids)
        stats = self.player_manager.get_present_stats_for_matches(match_ids)
        player_ids = sorted({s.player_id for rows in stats.values() for s in rows})
        players = {p.id: p for p in self.player_manager.get_players(player_ids)}

        results = {}
        for match_id in match_ids:
            try:
                results[match_id] = self.rate_match(match_id, ballots.get(match_id, []),
                                                    stats.get(match_id, []), players)
            except Exception as e:
                logger.warning(f"Rating computation failed for match {match_id}: {e}")
                results[match_id] = ErrorResult(ErrorKind.TRANSIENT_FAILURE, str(e))
        return results

    def compute_match_ratings_and_awards(self, match_id: int) -> Union[MatchRatingResult, ErrorResult]:
        return self.rate_matches([match_id])[match_id]

    def apply_match_results(self, match_id: int) -> Union[MatchRatingResult, ErrorResult]:
        """Store each present player's final rating on their stat row and close voting on the match."""
        result = self.compute_match_ratings_and_awards(match_id)
        if isinstance(result, ErrorResult):
            return result
        if result.ballots_count == 0:
            return ErrorResult(ErrorKind.NO_DATA, f"No ballots cast for match {match_id}")

        ratings = {player_id: score.final_rating for player_id, score in result.scores.items()}
        self.player_manager.apply_match_ratings(match_id, ratings)
        return result
