"""
Player, match and statistics management for the pelada database.
"""

import sqlite3
import logging
from datetime import date
from typing import List, Optional, Dict, Iterable, Any
from models.player import PlayerRecord, MatchRecord, PlayerStatRecord
from utils.position_utils import PositionUtils
from utils.date_utils import DateUtils
from utils.math_utils import MathUtils

logger = logging.getLogger(__name__)

PLAYER_COLUMNS = """
    id, name, nickname, position, position_group, total_goals, total_assists,
    total_matches, total_photos, total_rating, overall_dynamic, overall_last_updated,
    created_at, updated_at
"""

STAT_COLUMNS = """
    s.id, s.player_id, s.match_id, s.present, s.goals, s.assists, s.rating,
    s.appeared_in_photo, m.played_at
"""


def _placeholders(values: Iterable[Any]) -> str:
    return ','.join('?' for _ in values)


class PlayerManager:
    """Manages player, match and per-match stat operations."""

    def __init__(self, database_manager):
        self.db_manager = database_manager
        self.config = database_manager.config

    # ------------------------------------------------------------------
    # Players
    # ------------------------------------------------------------------

    def create_player(self, name: str, position: Optional[str] = None,
                      nickname: Optional[str] = None,
                      overall_dynamic: Optional[int] = None) -> int:
        """Create a player, classifying the position label into its group. Returns the new id."""
        group = PositionUtils.classify(position)
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO players (name, nickname, position, position_group, overall_dynamic)
                VALUES (?, ?, ?, ?, ?)
            """, (name, nickname, position, group.value, overall_dynamic))
            player_id = cursor.lastrowid
            conn.commit()

        logger.info(f"Created player {name} ({group.value}) with id {player_id}")
        return player_id

    def update_player(self, player_id: int, name: Optional[str] = None,
                      nickname: Optional[str] = None,
                      position: Optional[str] = None) -> bool:
        """Edit a player's identity fields. A new position label is re-classified."""
        updates = {}
        if name is not None:
            updates['name'] = name
        if nickname is not None:
            updates['nickname'] = nickname
        if position is not None:
            updates['position'] = position
            updates['position_group'] = PositionUtils.classify(position).value

        if not updates:
            return False

        assignments = ', '.join(f"{column} = ?" for column in updates)
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(f"""
                UPDATE players SET {assignments}, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            """, (*updates.values(), player_id))
            conn.commit()
            return cursor.rowcount > 0

    def set_overall_override(self, player_id: int, overall: Optional[float]) -> bool:
        """Set (or clear with None) the manual overall that takes precedence over computed values."""
        value = MathUtils.round_half_up(overall) if overall is not None else None
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                UPDATE players
                SET overall_dynamic = ?, overall_last_updated = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            """, (value, DateUtils.now_iso(), player_id))
            conn.commit()
            return cursor.rowcount > 0

    def get_player(self, player_id: int) -> Optional[PlayerRecord]:
        with sqlite3.connect(self.db_manager.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.cursor()
            cursor.execute(f"SELECT {PLAYER_COLUMNS} FROM players WHERE id = ?", (player_id,))
            row = cursor.fetchone()
            return self._row_to_player(row) if row else None

    def get_players(self, player_ids: Optional[List[int]] = None,
                    position_group: Optional[str] = None) -> List[PlayerRecord]:
        """Get players, optionally restricted to ids and/or a stored position group."""
        query = f"SELECT {PLAYER_COLUMNS} FROM players WHERE 1 = 1"
        params: List[Any] = []
        if player_ids is not None:
            if not player_ids:
                return []
            query += f" AND id IN ({_placeholders(player_ids)})"
            params.extend(player_ids)
        if position_group is not None:
            query += " AND position_group = ?"
            params.append(PositionUtils.to_group(position_group).value)
        query += " ORDER BY id"

        with sqlite3.connect(self.db_manager.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [self._row_to_player(row) for row in cursor.fetchall()]

    def _row_to_player(self, row: sqlite3.Row) -> PlayerRecord:
        return PlayerRecord(
            id=row['id'],
            name=row['name'],
            nickname=row['nickname'],
            position=row['position'],
            position_group=PositionUtils.to_group(row['position_group']),
            total_goals=row['total_goals'] or 0,
            total_assists=row['total_assists'] or 0,
            total_matches=row['total_matches'] or 0,
            total_photos=row['total_photos'] or 0,
            total_rating=row['total_rating'] or 0.0,
            overall_dynamic=row['overall_dynamic'],
            overall_last_updated=row['overall_last_updated'],
            created_at=row['created_at'],
            updated_at=row['updated_at']
        )

    # ------------------------------------------------------------------
    # Matches
    # ------------------------------------------------------------------

    def create_match(self, played_at, description: Optional[str] = None,
                     winner_color: Optional[str] = None) -> int:
        played = DateUtils.parse_date(played_at)
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO matches (played_at, description, winner_color)
                VALUES (?, ?, ?)
            """, (played.isoformat(), description, winner_color))
            match_id = cursor.lastrowid
            conn.commit()

        logger.info(f"Created match {match_id} played at {played.isoformat()}")
        return match_id

    def update_match(self, match_id: int, played_at=None, description: Optional[str] = None,
                     winner_color: Optional[str] = None) -> bool:
        updates = {}
        if played_at is not None:
            updates['played_at'] = DateUtils.parse_date(played_at).isoformat()
        if description is not None:
            updates['description'] = description
        if winner_color is not None:
            updates['winner_color'] = winner_color

        if not updates:
            return False

        assignments = ', '.join(f"{column} = ?" for column in updates)
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(f"UPDATE matches SET {assignments} WHERE id = ?",
                           (*updates.values(), match_id))
            conn.commit()
            return cursor.rowcount > 0

    def set_voting_status(self, match_id: int, status: str) -> bool:
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("UPDATE matches SET voting_status = ? WHERE id = ?", (status, match_id))
            conn.commit()
            return cursor.rowcount > 0

    def get_match(self, match_id: int) -> Optional[MatchRecord]:
        with sqlite3.connect(self.db_manager.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.cursor()
            cursor.execute("""
                SELECT id, played_at, description, winner_color, voting_status
                FROM matches WHERE id = ?
            """, (match_id,))
            row = cursor.fetchone()
            return self._row_to_match(row) if row else None

    def get_matches(self, date_from: Optional[date] = None,
                    date_to: Optional[date] = None) -> List[MatchRecord]:
        """Matches played in the half-open window [date_from, date_to), most recent first."""
        query = """
            SELECT id, played_at, description, winner_color, voting_status
            FROM matches WHERE 1 = 1
        """
        params: List[Any] = []
        query, params = self._add_date_filter(query, params, 'played_at', date_from, date_to)
        query += " ORDER BY played_at DESC, id DESC"

        with sqlite3.connect(self.db_manager.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [self._row_to_match(row) for row in cursor.fetchall()]

    def get_recent_matches(self, player_ids: List[int], date_from: Optional[date] = None,
                           date_to: Optional[date] = None, limit: int = 10) -> List[MatchRecord]:
        """The most recently played matches in the window that have stats for any of the players."""
        if not player_ids:
            return []

        query = f"""
            SELECT id, played_at, description, winner_color, voting_status
            FROM matches
            WHERE id IN (SELECT match_id FROM player_stats
                         WHERE player_id IN ({_placeholders(player_ids)}))
        """
        params: List[Any] = list(player_ids)
        query, params = self._add_date_filter(query, params, 'played_at', date_from, date_to)
        query += " ORDER BY played_at DESC, id DESC LIMIT ?"
        params.append(limit)

        with sqlite3.connect(self.db_manager.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [self._row_to_match(row) for row in cursor.fetchall()]

    def _row_to_match(self, row: sqlite3.Row) -> MatchRecord:
        return MatchRecord(
            id=row['id'],
            played_at=DateUtils.parse_date(row['played_at']),
            description=row['description'],
            winner_color=row['winner_color'],
            voting_status=row['voting_status']
        )

    @staticmethod
    def _add_date_filter(query: str, params: List[Any], column: str,
                         date_from: Optional[date], date_to: Optional[date]):
        if date_from is not None:
            query += f" AND {column} >= ?"
            params.append(date_from.isoformat())
        if date_to is not None:
            query += f" AND {column} < ?"
            params.append(date_to.isoformat())
        return query, params

    # ------------------------------------------------------------------
    # Player stats
    # ------------------------------------------------------------------

    def upsert_stat(self, player_id: int, match_id: int, present: bool = True,
                    goals: int = 0, assists: int = 0, rating: Optional[float] = None,
                    appeared_in_photo: bool = False) -> int:
        """Insert or replace the single stat row of a (player, match) pair."""
        if rating is not None and not 0 <= rating <= 10:
            raise ValueError(f"Rating {rating} outside [0, 10]")

        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO player_stats
                    (player_id, match_id, present, goals, assists, rating, appeared_in_photo)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (player_id, match_id) DO UPDATE SET
                    present = excluded.present,
                    goals = excluded.goals,
                    assists = excluded.assists,
                    rating = excluded.rating,
                    appeared_in_photo = excluded.appeared_in_photo
            """, (player_id, match_id, int(bool(present)), goals or 0, assists or 0,
                  rating, int(bool(appeared_in_photo))))
            cursor.execute("SELECT id FROM player_stats WHERE player_id = ? AND match_id = ?",
                           (player_id, match_id))
            stat_id = cursor.fetchone()[0]
            conn.commit()
            return stat_id

    def delete_stat(self, player_id: int, match_id: int) -> bool:
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM player_stats WHERE player_id = ? AND match_id = ?",
                           (player_id, match_id))
            conn.commit()
            return cursor.rowcount > 0

    def get_stats_for_players(self, player_ids: List[int], date_from: Optional[date] = None,
                              date_to: Optional[date] = None,
                              match_ids: Optional[List[int]] = None) -> List[PlayerStatRecord]:
        """Stat rows of the given players, filtered by match date window and/or match ids."""
        if not player_ids:
            return []

        query = f"""
            SELECT {STAT_COLUMNS}
            FROM player_stats s JOIN matches m ON m.id = s.match_id
            WHERE s.player_id IN ({_placeholders(player_ids)})
        """
        params: List[Any] = list(player_ids)
        query, params = self._add_date_filter(query, params, 'm.played_at', date_from, date_to)
        if match_ids is not None:
            if not match_ids:
                return []
            query += f" AND s.match_id IN ({_placeholders(match_ids)})"
            params.extend(match_ids)
        query += " ORDER BY m.played_at, s.match_id, s.player_id"

        with sqlite3.connect(self.db_manager.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [self._row_to_stat(row) for row in cursor.fetchall()]

    def get_player_stats(self, player_id: int) -> List[PlayerStatRecord]:
        return self.get_stats_for_players([player_id])

    def get_present_stats_for_matches(self, match_ids: List[int]) -> Dict[int, List[PlayerStatRecord]]:
        """Present-player stat rows grouped by match id, fetched with one query."""
        grouped: Dict[int, List[PlayerStatRecord]] = {match_id: [] for match_id in match_ids}
        if not match_ids:
            return grouped

        with sqlite3.connect(self.db_manager.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.cursor()
            cursor.execute(f"""
                SELECT {STAT_COLUMNS}
                FROM player_stats s JOIN matches m ON m.id = s.match_id
                WHERE s.present = 1 AND s.match_id IN ({_placeholders(match_ids)})
                ORDER BY s.match_id, s.player_id
            """, list(match_ids))
            for row in cursor.fetchall():
                grouped.setdefault(row['match_id'], []).append(self._row_to_stat(row))

        return grouped

    def apply_match_ratings(self, match_id: int, ratings: Dict[int, float],
                            voting_status: str = "CLOSED") -> int:
        """Write final ratings into the match's stat rows and set its voting status atomically."""
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            updated = 0
            for player_id, rating in ratings.items():
                cursor.execute("""
                    UPDATE player_stats SET rating = ?
                    WHERE match_id = ? AND player_id = ?
                """, (rating, match_id, player_id))
                updated += cursor.rowcount
            cursor.execute("UPDATE matches SET voting_status = ? WHERE id = ?",
                           (voting_status, match_id))
            conn.commit()

        logger.info(f"Applied {updated} final ratings to match {match_id}")
        return updated

    def _row_to_stat(self, row: sqlite3.Row) -> PlayerStatRecord:
        return PlayerStatRecord(
            id=row['id'],
            player_id=row['player_id'],
            match_id=row['match_id'],
            present=bool(row['present']),
            goals=row['goals'] or 0,
            assists=row['assists'] or 0,
            rating=row['rating'],
            appeared_in_photo=bool(row['appeared_in_photo']),
            played_at=DateUtils.parse_date(row['played_at'])
        )

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    @staticmethod
    def fold_stats(stats: Iterable[PlayerStatRecord]) -> Dict[str, Any]:
        """
        Fold stat rows into totals.

        Goals and assists count on every row, matches and photos on flagged rows,
        and the rating is the average of the recorded (non-null) ratings.
        """
        goals = assists = matches = photos = 0
        rating_sum = 0.0
        rating_count = 0
        for stat in stats:
            goals += stat.goals or 0
            assists += stat.assists or 0
            if stat.present:
                matches += 1
            if stat.appeared_in_photo:
                photos += 1
            if stat.rating is not None:
                rating_sum += stat.rating
                rating_count += 1

        return {
            'goals': goals,
            'assists': assists,
            'matches': matches,
            'photos': photos,
            'rating': rating_sum / rating_count if rating_count else 0.0
        }

    def recompute_totals(self, player_ids: Optional[List[int]] = None) -> int:
        """
        Re-derive cumulative totals from player_stats.
        A manual overall override is kept (rounded). Returns the number of players updated.
        """
        players = self.get_players(player_ids)
        if not players:
            return 0

        stats_by_player: Dict[int, List[PlayerStatRecord]] = {p.id: [] for p in players}
        for stat in self.get_stats_for_players([p.id for p in players]):
            stats_by_player[stat.player_id].append(stat)

        now = DateUtils.now_iso()
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            for player in players:
                totals = self.fold_stats(stats_by_player[player.id])
                override = (MathUtils.round_half_up(player.overall_dynamic)
                            if player.overall_dynamic is not None else None)
                cursor.execute("""
                    UPDATE players
                    SET total_goals = ?, total_assists = ?, total_matches = ?, total_photos = ?,
                        total_rating = ?, overall_dynamic = ?, overall_last_updated = ?,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE id = ?
                """, (totals['goals'], totals['assists'], totals['matches'], totals['photos'],
                      totals['rating'], override, now, player.id))
            conn.commit()

        logger.info(f"Recomputed totals for {len(players)} players")
        return len(players)
