"""
Weekly, monthly and season award management for the pelada database.
"""

import sqlite3
import logging
from datetime import date
from typing import List, Optional, Dict, Any
from models.award import WeeklyAward, MonthlyAward, SeasonAward
from utils.date_utils import DateUtils

logger = logging.getLogger(__name__)

SEASON_CATEGORIES = {
    'ARTILHEIRO': 'Artilheiro',
    'ASSISTENTE': 'Assistente',
    'MELHOR_JOGADOR': 'Melhor jogador',
    'MELHOR_GOLEIRO': 'Melhor goleiro',
    'MELHOR_ZAGUEIRO': 'Melhor zagueiro',
    'MELHOR_MEIA': 'Melhor meia',
    'MELHOR_ATACANTE': 'Melhor atacante',
    'REI_DAS_FOTOS': 'Rei das fotos',
}


class AwardManager:
    """Manages award records: one per week, per (year, month) and per (year, category)."""

    def __init__(self, database_manager):
        self.db_manager = database_manager

    # ------------------------------------------------------------------
    # Weekly
    # ------------------------------------------------------------------

    def upsert_weekly_award(self, week_start, best_player_id: Optional[int],
                            winning_match_id: Optional[int] = None) -> int:
        """Create or replace the award of the Monday-based week containing ``week_start``."""
        monday = DateUtils.start_of_week(DateUtils.parse_date(week_start))
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO weekly_awards (week_start, best_player_id, winning_match_id)
                VALUES (?, ?, ?)
                ON CONFLICT (week_start) DO UPDATE SET
                    best_player_id = excluded.best_player_id,
                    winning_match_id = excluded.winning_match_id
            """, (monday.isoformat(), best_player_id, winning_match_id))
            cursor.execute("SELECT id FROM weekly_awards WHERE week_start = ?", (monday.isoformat(),))
            award_id = cursor.fetchone()[0]
            conn.commit()
            return award_id

    def delete_weekly_award(self, award_id: int) -> bool:
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM weekly_awards WHERE id = ?", (award_id,))
            conn.commit()
            return cursor.rowcount > 0

    def get_weekly_awards(self, date_from: Optional[date] = None,
                          date_to: Optional[date] = None) -> List[WeeklyAward]:
        """Weekly awards whose week starts in [date_from, date_to)."""
        query = "SELECT id, week_start, best_player_id, winning_match_id FROM weekly_awards WHERE 1 = 1"
        params: List[Any] = []
        if date_from is not None:
            query += " AND week_start >= ?"
            params.append(date_from.isoformat())
        if date_to is not None:
            query += " AND week_start < ?"
            params.append(date_to.isoformat())
        query += " ORDER BY week_start"

        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [
                WeeklyAward(id=row[0], week_start=DateUtils.parse_date(row[1]),
                            best_player_id=row[2], winning_match_id=row[3])
                for row in cursor.fetchall()
            ]

    def backfill_weekly_awards(self) -> Dict[str, int]:
        """
        Create the missing weekly award of every week that has rated matches.

        The winner is the best stored rating of the week among present players,
        ties going to more goals+assists. Existing awards are never overwritten.
        """
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT m.id, m.played_at, s.player_id, s.rating, s.goals, s.assists
                FROM matches m JOIN player_stats s ON s.match_id = m.id
                WHERE s.present = 1 AND s.rating IS NOT NULL
                ORDER BY m.played_at, m.id, s.player_id
            """)
            rows = cursor.fetchall()

            cursor.execute("SELECT week_start FROM weekly_awards")
            existing = {row[0] for row in cursor.fetchall()}

        best_by_week: Dict[str, Dict[str, Any]] = {}
        for match_id, played_at, player_id, rating, goals, assists in rows:
            week_key = DateUtils.start_of_week(DateUtils.parse_date(played_at)).isoformat()
            tie = (goals or 0) + (assists or 0)
            best = best_by_week.get(week_key)
            if best is None or rating > best['rating'] or (rating == best['rating'] and tie > best['tie']):
                best_by_week[week_key] = {
                    'player_id': player_id, 'match_id': match_id, 'rating': rating, 'tie': tie
                }

        created = 0
        skipped = 0
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            for week_key in sorted(best_by_week):
                if week_key in existing:
                    skipped += 1
                    continue
                best = best_by_week[week_key]
                cursor.execute("""
                    INSERT INTO weekly_awards (week_start, best_player_id, winning_match_id)
                    VALUES (?, ?, ?)
                """, (week_key, best['player_id'], best['match_id']))
                created += 1
            conn.commit()

        logger.info(f"Weekly award backfill: {created} created, {skipped} already existed")
        return {'created': created, 'skipped': skipped}

    # ------------------------------------------------------------------
    # Monthly
    # ------------------------------------------------------------------

    def upsert_monthly_award(self, year: int, month: int, craque_id: Optional[int]) -> int:
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid month {month}")
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO monthly_awards (year, month, craque_id)
                VALUES (?, ?, ?)
                ON CONFLICT (year, month) DO UPDATE SET craque_id = excluded.craque_id
            """, (year, month, craque_id))
            cursor.execute("SELECT id FROM monthly_awards WHERE year = ? AND month = ?", (year, month))
            award_id = cursor.fetchone()[0]
            conn.commit()

        logger.info(f"Monthly award {month:02d}/{year} set to player {craque_id}")
        return award_id

    def delete_monthly_award(self, award_id: int) -> bool:
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM monthly_awards WHERE id = ?", (award_id,))
            conn.commit()
            return cursor.rowcount > 0

    def get_monthly_awards(self, date_from: Optional[date] = None,
                           date_to: Optional[date] = None) -> List[MonthlyAward]:
        """Monthly awards whose month starts in [date_from, date_to)."""
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT id, year, month, craque_id FROM monthly_awards ORDER BY year, month")
            awards = [MonthlyAward(id=row[0], year=row[1], month=row[2], craque_id=row[3])
                      for row in cursor.fetchall()]

        return [
            award for award in awards
            if (date_from is None or date(award.year, award.month, 1) >= date_from)
            and (date_to is None or date(award.year, award.month, 1) < date_to)
        ]

    # ------------------------------------------------------------------
    # Season
    # ------------------------------------------------------------------

    def upsert_season_award(self, year: int, category: str, player_id: Optional[int]) -> int:
        category = category.upper()
        if category not in SEASON_CATEGORIES:
            raise ValueError(f"Unknown season award category {category}")
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO season_awards (year, category, player_id)
                VALUES (?, ?, ?)
                ON CONFLICT (year, category) DO UPDATE SET player_id = excluded.player_id
            """, (year, category, player_id))
            cursor.execute("SELECT id FROM season_awards WHERE year = ? AND category = ?",
                           (year, category))
            award_id = cursor.fetchone()[0]
            conn.commit()
            return award_id

    def delete_season_award(self, award_id: int) -> bool:
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM season_awards WHERE id = ?", (award_id,))
            conn.commit()
            return cursor.rowcount > 0

    def get_season_awards(self, year: Optional[int] = None) -> List[SeasonAward]:
        """Season awards, newest year first, categories alphabetically."""
        query = "SELECT id, year, category, player_id FROM season_awards"
        params: List[Any] = []
        if year is not None:
            query += " WHERE year = ?"
            params.append(year)
        query += " ORDER BY year DESC, category ASC"

        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [SeasonAward(id=row[0], year=row[1], category=row[2], player_id=row[3])
                    for row in cursor.fetchall()]

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    def count_awards_for_player(self, player_id: int) -> Dict[str, int]:
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM weekly_awards WHERE best_player_id = ?", (player_id,))
            weekly = cursor.fetchone()[0]
            cursor.execute("SELECT COUNT(*) FROM monthly_awards WHERE craque_id = ?", (player_id,))
            monthly = cursor.fetchone()[0]
            cursor.execute("SELECT COUNT(*) FROM season_awards WHERE player_id = ?", (player_id,))
            season = cursor.fetchone()[0]

        return {'weekly': weekly, 'monthly': monthly, 'season': season}
