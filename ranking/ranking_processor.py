"""
Ranking processor for the pelada system.

Builds every leaderboard for a player pool over a date window. Final match
ratings come from the match rating engine, computed once per distinct match;
a match that cannot be rated falls back to the ratings stored on its stats.
"""

import copy
import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, List, Optional, Any, Union
from database.database_manager import DatabaseManager
from database.player_manager import PlayerManager
from database.vote_manager import VoteManager
from database.award_manager import AwardManager
from models.player import PositionGroup, PlayerRecord, PlayerStatRecord, PlayerAggregate, MatchRecord
from models.results import ErrorResult
from rating.match_ratings import MatchRatingEngine, MatchRatingResult
from rating.overall import OverallScorer
from utils.date_utils import DateUtils
from utils.math_utils import MathUtils
from utils.position_utils import PositionUtils
from utils.text_utils import TextUtils
from .cache import TTLCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DateRange:
    """Half-open window [date_from, date_to); None on both ends means no date filter."""
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    @property
    def is_unbounded(self) -> bool:
        return self.date_from is None and self.date_to is None


@dataclass
class AwardCount:
    player: PlayerRecord
    count: int


@dataclass
class ColorTally:
    color: str
    wins: int


@dataclass
class Rankings:
    """Every leaderboard of one ranking build."""
    date_range: DateRange
    position: Optional[PositionGroup] = None
    goals: List[PlayerAggregate] = field(default_factory=list)
    assists: List[PlayerAggregate] = field(default_factory=list)
    ga: List[PlayerAggregate] = field(default_factory=list)
    ratings: List[PlayerAggregate] = field(default_factory=list)
    matches: List[PlayerAggregate] = field(default_factory=list)
    photos: List[PlayerAggregate] = field(default_factory=list)
    overall: List[PlayerAggregate] = field(default_factory=list)
    weighted: List[PlayerAggregate] = field(default_factory=list)
    recent: List[PlayerAggregate] = field(default_factory=list)
    last10: List[MatchRecord] = field(default_factory=list)
    weekly_awards: List[AwardCount] = field(default_factory=list)
    monthly_awards: List[AwardCount] = field(default_factory=list)
    color_wins: List[ColorTally] = field(default_factory=list)

    def leaderboards(self) -> Dict[str, List[PlayerAggregate]]:
        return {
            'goals': self.goals,
            'assists': self.assists,
            'ga': self.ga,
            'ratings': self.ratings,
            'matches': self.matches,
            'photos': self.photos,
            'overall': self.overall,
            'weighted': self.weighted,
            'recent': self.recent,
        }


def get_date_range(year: Union[str, int, None], month: Union[str, int, None] = None) -> DateRange:
    """
    Date window of a year/month selector.

    "all", a non-numeric year or a year outside the calendar means no filter;
    a month in 1..12 selects that month, anything else selects the whole year.
    """
    if year is None or str(year).strip().lower() == 'all':
        return DateRange()

    try:
        year_num = int(str(year).strip())
    except ValueError:
        return DateRange()
    if not date.min.year <= year_num < date.max.year:
        return DateRange()

    try:
        month_num = int(str(month).strip()) if month is not None else 0
    except ValueError:
        month_num = 0

    if 1 <= month_num <= 12:
        start, end = DateUtils.month_range(year_num, month_num)
        return DateRange(start, end)

    return DateRange(date(year_num, 1, 1), date(year_num + 1, 1, 1))


def _name_key(entry) -> tuple:
    return (TextUtils.sort_name(entry.player.name), entry.player.id)


class RankingProcessor:
    """Aggregates stats of a player pool into leaderboards."""

    def __init__(self, db_path: Optional[str] = None, config_file: str = "config.yaml",
                 cache: Optional[TTLCache] = None):
        self.db = DatabaseManager(db_path, config_file)
        self.player_manager = PlayerManager(self.db)
        self.award_manager = AwardManager(self.db)
        self.vote_manager = VoteManager(self.db, self.award_manager)
        self.engine = MatchRatingEngine(self.player_manager, self.vote_manager)

        overall_config = self.db.get_section('overall')
        self.scorer = OverallScorer(overall_config.get('band_min', 60), overall_config.get('band_max', 95))

        self.config = self.db.get_section('rankings')
        self.cache = cache if cache is not None else TTLCache(self.config.get('cache_ttl_seconds', 60))
        self.team_colors = self.db.config.get('team_colors') or []
        self.legacy_color_wins = self.db.config.get('legacy_color_wins')

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def build_rankings_for_period(self, year: Union[str, int, None] = None,
                                  month: Union[str, int, None] = None,
                                  position: Optional[str] = None,
                                  player_pool: Optional[List[int]] = None) -> Rankings:
        """Rankings for a year/month/position selector; invalid values mean no filter."""
        if year is None or str(year).strip() == '':
            year = date.today().year
        return self.build_rankings(get_date_range(year, month), self._parse_position(position), player_pool)

    def build_rankings(self, date_range: Optional[DateRange] = None,
                       position: Union[str, PositionGroup, None] = None,
                       player_pool: Optional[List[int]] = None) -> Rankings:
        """
        Build every leaderboard for the pool (all players when None) within the date window.
        Results are cached by (from, to, position, pool ids); every call returns its own copy.
        """
        date_range = date_range or DateRange()
        group = self._parse_position(position)
        pool_key = tuple(sorted(set(player_pool))) if player_pool is not None else None
        cache_key = (date_range.date_from, date_range.date_to, group.value if group else None, pool_key)

        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Rankings cache hit for {cache_key}")
            return copy.deepcopy(cached)

        rankings = self._compute_rankings(date_range, group, player_pool)
        self.cache.set(cache_key, rankings)
        return copy.deepcopy(rankings)

    @staticmethod
    def _parse_position(position: Union[str, PositionGroup, None]) -> Optional[PositionGroup]:
        if position is None or isinstance(position, PositionGroup):
            return position
        text = str(position).strip()
        if not text or text.lower() == 'all':
            return None
        try:
            return PositionGroup(text.lower())
        except ValueError:
            group = PositionUtils.classify(text)
            return group if group != PositionGroup.OTHER else None

    # ------------------------------------------------------------------
    # Computation
    # ------------------------------------------------------------------

    def _compute_rankings(self, date_range: DateRange, group: Optional[PositionGroup],
                          player_pool: Optional[List[int]]) -> Rankings:
        rankings = Rankings(date_range=date_range, position=group)

        base_pool = self.player_manager.get_players(player_pool)
        players = [p for p in base_pool if group is None or p.position_group == group]
        rankings.color_wins = self._color_wins(date_range)
        if not players:
            logger.info("Empty player pool; rankings are empty")
            return rankings

        stats = self.player_manager.get_stats_for_players(
            [p.id for p in players], date_range.date_from, date_range.date_to)
        final_ratings = self._final_ratings(sorted({s.match_id for s in stats}))
        stats = [self._with_final_rating(s, final_ratings) for s in stats]

        entries = self._aggregate(players, stats)
        active = [e for e in entries if e.has_participation]

        rankings.goals = sorted(active, key=lambda e: (-e.goals, -e.assists, -e.matches, *_name_key(e)))
        rankings.assists = sorted(active, key=lambda e: (-e.assists, -e.goals, -e.matches, *_name_key(e)))
        rankings.ga = sorted(active, key=lambda e: (-e.goals_assists, -e.matches, *_name_key(e)))
        rankings.ratings = sorted([e for e in entries if e.matches > 0 and e.rating > 0],
                                  key=lambda e: (-e.rating, -e.matches, *_name_key(e)))
        rankings.matches = sorted([e for e in entries if e.matches > 0],
                                  key=lambda e: (-e.matches, -e.goals, -e.assists, *_name_key(e)))
        rankings.photos = sorted([e for e in entries if e.photos > 0],
                                 key=lambda e: (-e.photos, *_name_key(e)))

        rankings.weighted = self._blend(active, self.config.get('weighted_weights') or {})

        base_ids = [p.id for p in base_pool]
        rankings.last10 = self.player_manager.get_recent_matches(
            base_ids, date_range.date_from, date_range.date_to,
            self.config.get('recent_match_window', 10))
        recent_ids = {m.id for m in rankings.last10}
        recent_entries = self._aggregate(players, [s for s in stats if s.match_id in recent_ids])
        rankings.recent = self._blend([e for e in recent_entries if e.has_participation],
                                      self.config.get('recent_weights') or {}, default=(3, 2, 5))

        rankings.overall = self._overall(active)

        pool_by_id = {p.id: p for p in players}
        rankings.weekly_awards = self._count_awards(
            [a.best_player_id for a in self.award_manager.get_weekly_awards(date_range.date_from,
                                                                            date_range.date_to)],
            pool_by_id)
        rankings.monthly_awards = self._count_awards(
            [a.craque_id for a in self.award_manager.get_monthly_awards(date_range.date_from,
                                                                        date_range.date_to)],
            pool_by_id)

        logger.info(f"Built rankings for {len(players)} players over {len(final_ratings)} matches")
        return rankings

    def _final_ratings(self, match_ids: List[int]) -> Dict[int, Union[MatchRatingResult, ErrorResult]]:
        """Rate every distinct match once; any failure leaves the stored ratings in place."""
        if not match_ids:
            return {}
        try:
            results = self.engine.rate_matches(match_ids)
        except Exception as e:
            logger.warning(f"Match rating batch failed, using stored ratings: {e}")
            return {}

        for match_id, result in results.items():
            if isinstance(result, ErrorResult):
                logger.warning(f"Using stored ratings for match {match_id} ({result.kind}: {result.message})")
        return results

    @staticmethod
    def _with_final_rating(stat: PlayerStatRecord,
                           results: Dict[int, Union[MatchRatingResult, ErrorResult]]) -> PlayerStatRecord:
        result = results.get(stat.match_id)
        if isinstance(result, MatchRatingResult) and stat.player_id in result.scores:
            return replace(stat, rating=result.scores[stat.player_id].final_rating)
        return stat

    def _aggregate(self, players: List[PlayerRecord], stats: List[PlayerStatRecord]) -> List[PlayerAggregate]:
        by_player: Dict[int, List[PlayerStatRecord]] = {p.id: [] for p in players}
        for stat in stats:
            if stat.player_id in by_player:
                by_player[stat.player_id].append(stat)

        entries = []
        for player in players:
            totals = PlayerManager.fold_stats(by_player[player.id])
            entries.append(PlayerAggregate(player=player, goals=totals['goals'], assists=totals['assists'],
                                           matches=totals['matches'], photos=totals['photos'],
                                           rating=totals['rating']))
        return entries

    @staticmethod
    def _blend(entries: List[PlayerAggregate], weights: Dict[str, Any],
               default: tuple = (4, 2, 4)) -> List[PlayerAggregate]:
        """Score = (goalsNorm*wg + assistsNorm*wa + rating*wr) / 10, norms scaled to 0-10 by cohort maxima."""
        goals_weight = weights.get('goals', default[0])
        assists_weight = weights.get('assists', default[1])
        rating_weight = weights.get('rating', default[2])
        max_goals = max((e.goals for e in entries), default=0)
        max_assists = max((e.assists for e in entries), default=0)

        scored = []
        for entry in entries:
            goals_norm = MathUtils.safe_ratio(entry.goals, max_goals) * 10
            assists_norm = MathUtils.safe_ratio(entry.assists, max_assists) * 10
            score = (goals_norm * goals_weight + assists_norm * assists_weight
                     + entry.rating * rating_weight) / 10
            scored.append(replace(entry, score=MathUtils.round_to(score, 2)))

        return sorted(scored, key=lambda e: (-e.score, -e.rating, -e.goals, -e.assists, *_name_key(e)))

    def _overall(self, entries: List[PlayerAggregate]) -> List[PlayerAggregate]:
        computed = self.scorer.compute_overall(entries).computed
        ranked = []
        for entry in computed:
            if entry.player.overall_dynamic is not None:
                entry = replace(entry, overall=MathUtils.round_half_up(entry.player.overall_dynamic),
                                is_override=True)
            ranked.append(entry)
        return sorted(ranked, key=lambda e: (-e.overall, -e.rating, -e.goals, -e.assists, *_name_key(e)))

    @staticmethod
    def _count_awards(winner_ids: List[Optional[int]], pool_by_id: Dict[int, PlayerRecord]) -> List[AwardCount]:
        counts: Dict[int, int] = {}
        for player_id in winner_ids:
            if player_id in pool_by_id:
                counts[player_id] = counts.get(player_id, 0) + 1

        tallies = [AwardCount(player=pool_by_id[pid], count=count) for pid, count in counts.items()]
        return sorted(tallies, key=lambda t: (-t.count, *_name_key(t)))

    def _color_wins(self, date_range: DateRange) -> List[ColorTally]:
        """Matches won per configured team color in the window."""
        labels = {TextUtils.normalize_label(color): color for color in self.team_colors}
        counts = {color: 0 for color in self.team_colors}
        for match in self.player_manager.get_matches(date_range.date_from, date_range.date_to):
            color = labels.get(TextUtils.normalize_label(match.winner_color or ''))
            if color is not None:
                counts[color] += 1

        if not any(counts.values()):
            legacy = self._legacy_color_wins(date_range)
            if legacy is not None:
                counts = {color: int(legacy.get(color, 0)) for color in self.team_colors}

        order = {color: index for index, color in enumerate(self.team_colors)}
        return sorted((ColorTally(color, wins) for color, wins in counts.items()),
                      key=lambda t: (-t.wins, order[t.color]))

    def _legacy_color_wins(self, date_range: DateRange) -> Optional[Dict[str, Any]]:
        """
        Fixed historical counts for the one configured month whose match data was never recorded.
        Only that exact month's window qualifies; disabled unless legacy_color_wins is configured.
        """
        legacy = self.legacy_color_wins
        if not legacy:
            return None
        try:
            start, end = DateUtils.month_range(int(legacy['year']), int(legacy['month']))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed legacy_color_wins config: {e}")
            return None
        if (date_range.date_from, date_range.date_to) != (start, end):
            return None

        logger.info(f"Using legacy color win counts for {start.isoformat()}")
        return legacy.get('counts') or {}
