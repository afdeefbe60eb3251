"""
Core database management for the pelada system.
"""

import sqlite3
import logging
from typing import Dict, Optional, Any
from config.config_manager import ConfigManager

logger = logging.getLogger(__name__)

TABLES = (
    'players', 'matches', 'player_stats', 'vote_sessions', 'vote_tokens',
    'vote_ballots', 'ballot_rankings', 'ballot_ratings', 'weekly_awards',
    'monthly_awards', 'season_awards', 'achievements', 'player_achievements',
    'overall_history'
)


class DatabaseManager:
    """Manages core database operations and initialization."""

    def __init__(self, db_path: Optional[str] = None, config_file: str = "config.yaml"):
        self.config = ConfigManager.load_config(config_file)
        self.db_path = db_path or self.config.get('database_path', 'pelada.db')
        self.init_database()

    def init_database(self) -> None:
        """Initialize the database with required tables."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()

            # Players; position_group is classified from position on every write
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS players (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    nickname TEXT,
                    position TEXT,
                    position_group TEXT NOT NULL DEFAULT 'other',
                    total_goals INTEGER NOT NULL DEFAULT 0,
                    total_assists INTEGER NOT NULL DEFAULT 0,
                    total_matches INTEGER NOT NULL DEFAULT 0,
                    total_photos INTEGER NOT NULL DEFAULT 0,
                    total_rating REAL NOT NULL DEFAULT 0,
                    overall_dynamic INTEGER,
                    overall_last_updated TIMESTAMP,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS matches (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    played_at DATE NOT NULL,
                    description TEXT,
                    winner_color TEXT,
                    voting_status TEXT NOT NULL DEFAULT 'CLOSED',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            # One row per (player, match): the fact table every aggregation folds over
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS player_stats (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    player_id INTEGER NOT NULL REFERENCES players(id),
                    match_id INTEGER NOT NULL REFERENCES matches(id),
                    present INTEGER NOT NULL DEFAULT 0,
                    goals INTEGER NOT NULL DEFAULT 0,
                    assists INTEGER NOT NULL DEFAULT 0,
                    rating REAL CHECK (rating IS NULL OR (rating >= 0 AND rating <= 10)),
                    appeared_in_photo INTEGER NOT NULL DEFAULT 0,
                    UNIQUE (player_id, match_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS vote_sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    kind TEXT NOT NULL,
                    match_id INTEGER REFERENCES matches(id),
                    month INTEGER,
                    year INTEGER,
                    candidates TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    expires_at TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS vote_tokens (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    token TEXT NOT NULL UNIQUE,
                    session_id INTEGER NOT NULL REFERENCES vote_sessions(id),
                    player_id INTEGER REFERENCES players(id),
                    used_at TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS vote_ballots (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    token_id INTEGER NOT NULL UNIQUE REFERENCES vote_tokens(id),
                    kind TEXT NOT NULL,
                    best_overall_player_id INTEGER REFERENCES players(id),
                    candidate_id INTEGER REFERENCES players(id),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS ballot_rankings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    ballot_id INTEGER NOT NULL REFERENCES vote_ballots(id),
                    player_id INTEGER NOT NULL REFERENCES players(id),
                    position TEXT,
                    rank INTEGER
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS ballot_ratings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    ballot_id INTEGER NOT NULL REFERENCES vote_ballots(id),
                    player_id INTEGER NOT NULL REFERENCES players(id),
                    rating REAL NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS weekly_awards (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    week_start DATE NOT NULL UNIQUE,
                    best_player_id INTEGER REFERENCES players(id),
                    winning_match_id INTEGER REFERENCES matches(id),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS monthly_awards (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    year INTEGER NOT NULL,
                    month INTEGER NOT NULL,
                    craque_id INTEGER REFERENCES players(id),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (year, month)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS season_awards (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    year INTEGER NOT NULL,
                    category TEXT NOT NULL,
                    player_id INTEGER REFERENCES players(id),
                    UNIQUE (year, category)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS achievements (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    slug TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    description TEXT,
                    category TEXT NOT NULL,
                    metric TEXT,
                    target REAL NOT NULL DEFAULT 0,
                    is_numeric INTEGER NOT NULL DEFAULT 1,
                    required_position TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS player_achievements (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    player_id INTEGER NOT NULL REFERENCES players(id),
                    achievement_id INTEGER NOT NULL REFERENCES achievements(id),
                    progress REAL NOT NULL DEFAULT 0,
                    unlocked_at TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (player_id, achievement_id)
                )
            """)

            # Append-only overall snapshots
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS overall_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    player_id INTEGER NOT NULL REFERENCES players(id),
                    overall INTEGER NOT NULL,
                    window_label TEXT NOT NULL,
                    goals INTEGER NOT NULL DEFAULT 0,
                    assists INTEGER NOT NULL DEFAULT 0,
                    matches INTEGER NOT NULL DEFAULT 0,
                    rating REAL NOT NULL DEFAULT 0,
                    max_goals INTEGER NOT NULL DEFAULT 0,
                    max_assists INTEGER NOT NULL DEFAULT 0,
                    max_matches INTEGER NOT NULL DEFAULT 0,
                    weights TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_stats_match ON player_stats(match_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_stats_player ON player_stats(player_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_matches_played_at ON matches(played_at)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_history_player ON overall_history(player_id)")
            cursor.execute("CREATE UNIQUE INDEX IF NOT EXISTS idx_ballot_rankings_player "
                           "ON ballot_rankings(ballot_id, player_id)")
            cursor.execute("CREATE UNIQUE INDEX IF NOT EXISTS idx_ballot_ratings_player "
                           "ON ballot_ratings(ballot_id, player_id)")

            conn.commit()
            logger.info("Database initialized successfully")

    def get_section(self, name: str) -> Dict[str, Any]:
        """Configuration section with defaults already merged in."""
        return self.config.get(name) or {}

    def get_database_stats(self) -> Dict[str, int]:
        """Get basic database statistics."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()

            stats = {}
            for table in TABLES:
                cursor.execute(f"SELECT COUNT(*) FROM {table}")
                stats[table] = cursor.fetchone()[0]

            return stats
