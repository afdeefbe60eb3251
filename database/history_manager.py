"""
Overall history management for the pelada database.
"""

import json
import sqlite3
import logging
from typing import List, Dict, Any

logger = logging.getLogger(__name__)


class HistoryManager:
    """Manages the append-only overall_history snapshots."""

    def __init__(self, database_manager):
        self.db_manager = database_manager

    def append_snapshots(self, snapshots: List[Dict[str, Any]]) -> int:
        """
        Append one overall snapshot per entry in a single transaction.
        Each entry needs player_id, overall and window; stats, maxima and weights are optional.
        Returns the number of rows written.
        """
        if not snapshots:
            return 0

        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.executemany("""
                INSERT INTO overall_history
                    (player_id, overall, window_label, goals, assists, matches, rating,
                     max_goals, max_assists, max_matches, weights)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                (s['player_id'], s['overall'], s['window'],
                 s.get('goals', 0), s.get('assists', 0), s.get('matches', 0), s.get('rating', 0.0),
                 s.get('max_goals', 0), s.get('max_assists', 0), s.get('max_matches', 0),
                 json.dumps(s['weights']) if s.get('weights') is not None else None)
                for s in snapshots
            ])
            conn.commit()

        logger.info(f"Appended {len(snapshots)} overall history rows")
        return len(snapshots)

    def get_player_history(self, player_id: int) -> List[Dict[str, Any]]:
        """Get the overall history of a player, most recent first."""
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()

            cursor.execute("""
                SELECT id, overall, window_label, goals, assists, matches, rating,
                       max_goals, max_assists, max_matches, weights, created_at
                FROM overall_history
                WHERE player_id = ?
                ORDER BY created_at DESC, id DESC
            """, (player_id,))

            history = []
            for row in cursor.fetchall():
                history.append({
                    'id': row[0],
                    'player_id': player_id,
                    'overall': row[1],
                    'window': row[2],
                    'goals': row[3],
                    'assists': row[4],
                    'matches': row[5],
                    'rating': row[6],
                    'max_goals': row[7],
                    'max_assists': row[8],
                    'max_matches': row[9],
                    'weights': json.loads(row[10]) if row[10] else None,
                    'created_at': row[11]
                })

            return history

    def count_snapshots(self, window: str = None) -> int:
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            if window is None:
                cursor.execute("SELECT COUNT(*) FROM overall_history")
            else:
                cursor.execute("SELECT COUNT(*) FROM overall_history WHERE window_label = ?", (window,))
            return cursor.fetchone()[0]
