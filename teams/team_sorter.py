"""
Balanced team sorting for pickup games.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union
from database.player_manager import PlayerManager
from models.player import PositionGroup, PlayerAggregate, PlayerRecord, PlayerStatRecord
from models.results import ErrorKind, ErrorResult
from rating.overall import OverallScorer
from utils.math_utils import MathUtils
from utils.position_utils import PositionUtils
from utils.text_utils import TextUtils

logger = logging.getLogger(__name__)

RECENT_MATCHES = 10
GUEST_MIN_STRENGTH = 40
GUEST_MAX_STRENGTH = 100


@dataclass
class SortedPlayer:
    id: Union[int, str]
    name: str
    position: str
    position_group: PositionGroup
    strength: int
    overall: Optional[int] = None
    guest: bool = False


@dataclass
class Team:
    name: str
    players: List[SortedPlayer] = field(default_factory=list)

    @property
    def power(self) -> int:
        return sum(p.strength for p in self.players)


@dataclass
class TeamDraw:
    teams: List[Team]
    bench: List[SortedPlayer]


def snake_distribute(players: List[SortedPlayer], team_count: int) -> List[List[SortedPlayer]]:
    """Deal players left to right, then right to left, and so on."""
    buckets: List[List[SortedPlayer]] = [[] for _ in range(team_count)]
    for index, player in enumerate(players):
        round_number, offset = divmod(index, team_count)
        team_index = offset if round_number % 2 == 0 else team_count - 1 - offset
        buckets[team_index].append(player)
    return buckets


class TeamSorter:
    """
    Splits present players into balanced teams.

    Strength blends the player's overall with recent form:
    ``round(overall*0.6 + last10_score*10*0.4)``. Goalkeepers sit on the bench.
    """

    def __init__(self, database_manager, scorer: Optional[OverallScorer] = None):
        self.player_manager = PlayerManager(database_manager)
        overall_config = database_manager.get_section('overall')
        self.scorer = scorer or OverallScorer(overall_config.get('band_min', 60),
                                              overall_config.get('band_max', 95))
        config = database_manager.get_section('teams')
        self.players_per_team = config.get('min_players_per_team', 6)
        self.max_teams = config.get('max_teams', 4)
        self.guest_default_strength = config.get('guest_default_strength', 60)

    def parse_guests(self, guests_text: str) -> List[SortedPlayer]:
        """Parse ``name;position;strength`` lines; strength defaults and is clamped to [40, 100]."""
        guests = []
        lines = [line.strip() for line in (guests_text or '').splitlines() if line.strip()]
        for index, line in enumerate(lines):
            parts = [part.strip() for part in line.split(';')]
            name = parts[0] if parts and parts[0] else 'Convidado'
            position = parts[1] if len(parts) > 1 and parts[1] else 'Outros'
            try:
                strength = int(parts[2]) if len(parts) > 2 and parts[2] else self.guest_default_strength
            except ValueError:
                strength = self.guest_default_strength
            strength = strength or self.guest_default_strength

            guests.append(SortedPlayer(
                id=f"guest-{index}",
                name=name,
                position=position,
                position_group=PositionUtils.classify(position),
                strength=int(MathUtils.clamp(strength, GUEST_MIN_STRENGTH, GUEST_MAX_STRENGTH)),
                guest=True
            ))
        return guests

    def last10_scores(self, player_ids: List[int]) -> Dict[int, float]:
        """Recent-form score (0-10) over each player's last matches: rating 5, goals 3, assists 2."""
        recent: Dict[int, List[PlayerStatRecord]] = {pid: [] for pid in player_ids}
        stats = self.player_manager.get_stats_for_players(player_ids)
        for stat in sorted(stats, key=lambda s: (s.played_at, s.match_id), reverse=True):
            if len(recent[stat.player_id]) < RECENT_MATCHES:
                recent[stat.player_id].append(stat)

        totals = {pid: PlayerManager.fold_stats(rows) for pid, rows in recent.items() if rows}
        max_goals = max((t['goals'] for t in totals.values()), default=0)
        max_assists = max((t['assists'] for t in totals.values()), default=0)

        scores = {}
        for pid, t in totals.items():
            goals_norm = MathUtils.safe_ratio(t['goals'], max_goals) * 10
            assists_norm = MathUtils.safe_ratio(t['assists'], max_assists) * 10
            scores[pid] = (t['rating'] * 5 + goals_norm * 3 + assists_norm * 2) / 10
        return scores

    def _present_players(self, match_id: Optional[int], present_ids: Optional[List[int]]) -> List[PlayerRecord]:
        if present_ids:
            return self.player_manager.get_players(sorted(set(present_ids)))
        if match_id is None:
            return []
        stats = self.player_manager.get_present_stats_for_matches([match_id]).get(match_id, [])
        return self.player_manager.get_players([s.player_id for s in stats])

    def sort_teams(self, match_id: Optional[int] = None, present_ids: Optional[List[int]] = None,
                   guests_text: str = "", seed_ids: Optional[List[int]] = None) -> Union[TeamDraw, ErrorResult]:
        """Draw teams of the match's present players (or ``present_ids``) plus guests."""
        players = self._present_players(match_id, present_ids)
        guests = self.parse_guests(guests_text)
        if not players and not guests:
            return ErrorResult(ErrorKind.NO_DATA, "No present players or guests to sort")

        computed = self.scorer.compute_overall([
            PlayerAggregate(player=p, goals=p.total_goals, assists=p.total_assists,
                            matches=p.total_matches, rating=p.total_rating)
            for p in players
        ]).computed
        overall_by_id = {entry.player.id: entry.overall for entry in computed}
        last10 = self.last10_scores([p.id for p in players])

        pool = []
        for player in players:
            overall = overall_by_id.get(player.id, self.scorer.band_min)
            strength = MathUtils.round_half_up(overall * 0.6 + last10.get(player.id, 0.0) * 10 * 0.4)
            pool.append(SortedPlayer(id=player.id, name=player.display_name,
                                     position=player.position or 'Outros',
                                     position_group=player.position_group,
                                     strength=strength, overall=overall))
        pool.extend(guests)

        goalkeepers = [p for p in pool if p.position_group == PositionGroup.GOALKEEPER]
        field_players = [p for p in pool if p.position_group != PositionGroup.GOALKEEPER]

        minimum = self.players_per_team * 2
        if len(field_players) < minimum:
            return ErrorResult(ErrorKind.INVALID_INPUT,
                               f"At least {minimum} field players are needed for two teams, "
                               f"got {len(field_players)}")

        team_count = min(self.max_teams, len(field_players) // self.players_per_team)
        places = team_count * self.players_per_team

        field_players.sort(key=lambda p: (-p.strength, TextUtils.sort_name(p.name), str(p.id)))
        seeds = set(seed_ids or [])
        ordered = ([p for p in field_players if p.id in seeds]
                   + [p for p in field_players if p.id not in seeds])

        playing = ordered[:places]
        team_seeds = [p for p in playing if p.id in seeds][:team_count]
        seeded_ids = {p.id for p in team_seeds}
        dealt = snake_distribute([p for p in playing if p.id not in seeded_ids], team_count)

        teams = []
        for index in range(team_count):
            seed = [team_seeds[index]] if index < len(team_seeds) else []
            teams.append(Team(name=f"Time {index + 1}", players=seed + dealt[index]))

        bench = sorted(goalkeepers + ordered[places:],
                       key=lambda p: (-p.strength, TextUtils.sort_name(p.name), str(p.id)))

        logger.info(f"Sorted {places} players into {team_count} teams, {len(bench)} on the bench")
        return TeamDraw(teams=teams, bench=bench)
