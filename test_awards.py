#!/usr/bin/env python3
"""
Tests for weekly, monthly and season award records.
"""

import unittest
import tempfile
import os
import shutil
from datetime import date

from database.database_manager import DatabaseManager
from database.player_manager import PlayerManager
from database.award_manager import AwardManager


class TestAwardManager(unittest.TestCase):
    """Test cases for AwardManager."""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.test_db_path = os.path.join(self.test_dir, "test_pelada.db")
        self.db = DatabaseManager(self.test_db_path, os.path.join(self.test_dir, "missing.yaml"))
        self.players = PlayerManager(self.db)
        self.awards = AwardManager(self.db)

        self.ana = self.players.create_player("Ana", "Meia")
        self.bia = self.players.create_player("Bia", "Atacante")

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_weekly_award_keyed_by_monday(self):
        first = self.awards.upsert_weekly_award("2025-03-05", self.ana)
        second = self.awards.upsert_weekly_award(date(2025, 3, 7), self.bia)

        self.assertEqual(first, second)
        awards = self.awards.get_weekly_awards()
        self.assertEqual(len(awards), 1)
        self.assertEqual(awards[0].week_start, date(2025, 3, 3))
        self.assertEqual(awards[0].best_player_id, self.bia)

    def test_weekly_awards_window(self):
        self.awards.upsert_weekly_award("2025-02-26", self.ana)
        self.awards.upsert_weekly_award("2025-03-05", self.ana)

        in_march = self.awards.get_weekly_awards(date(2025, 3, 1), date(2025, 4, 1))
        self.assertEqual([a.week_start for a in in_march], [date(2025, 3, 3)])

    def test_delete_weekly_award(self):
        award_id = self.awards.upsert_weekly_award("2025-03-05", self.ana)
        self.assertTrue(self.awards.delete_weekly_award(award_id))
        self.assertFalse(self.awards.delete_weekly_award(award_id))

    def test_backfill_creates_missing_weeks_only(self):
        m1 = self.players.create_match("2025-03-04")
        m2 = self.players.create_match("2025-03-06")
        m3 = self.players.create_match("2025-03-11")
        # Same rating in the first week: more goals+assists wins
        self.players.upsert_stat(self.ana, m1, goals=1, rating=8.0)
        self.players.upsert_stat(self.bia, m2, goals=2, assists=1, rating=8.0)
        self.players.upsert_stat(self.ana, m3, rating=9.0)
        self.awards.upsert_weekly_award("2025-03-11", self.bia)

        result = self.awards.backfill_weekly_awards()

        self.assertEqual(result, {'created': 1, 'skipped': 1})
        awards = {a.week_start: a for a in self.awards.get_weekly_awards()}
        self.assertEqual(awards[date(2025, 3, 3)].best_player_id, self.bia)
        self.assertEqual(awards[date(2025, 3, 3)].winning_match_id, m2)
        # The existing award is not overwritten
        self.assertEqual(awards[date(2025, 3, 10)].best_player_id, self.bia)

    def test_backfill_ignores_unrated_and_absent(self):
        match_id = self.players.create_match("2025-03-04")
        self.players.upsert_stat(self.ana, match_id, goals=3)
        self.players.upsert_stat(self.bia, match_id, present=False, rating=9.0)

        self.assertEqual(self.awards.backfill_weekly_awards(), {'created': 0, 'skipped': 0})

    def test_monthly_awards(self):
        self.awards.upsert_monthly_award(2025, 2, self.ana)
        self.awards.upsert_monthly_award(2025, 3, self.ana)
        self.awards.upsert_monthly_award(2025, 3, self.bia)

        with self.assertRaises(ValueError):
            self.awards.upsert_monthly_award(2025, 13, self.ana)

        march = self.awards.get_monthly_awards(date(2025, 3, 1), date(2025, 4, 1))
        self.assertEqual([(a.month, a.craque_id) for a in march], [(3, self.bia)])
        self.assertEqual(len(self.awards.get_monthly_awards()), 2)

    def test_season_awards(self):
        self.awards.upsert_season_award(2024, "artilheiro", self.bia)
        self.awards.upsert_season_award(2025, "ARTILHEIRO", self.ana)
        self.awards.upsert_season_award(2025, "ASSISTENTE", self.ana)

        with self.assertRaises(ValueError):
            self.awards.upsert_season_award(2025, "goleiro_bonito", self.ana)

        season = self.awards.get_season_awards(2025)
        self.assertEqual([a.category for a in season], ['ARTILHEIRO', 'ASSISTENTE'])
        self.assertEqual([a.year for a in self.awards.get_season_awards()], [2025, 2025, 2024])

    def test_delete_monthly_and_season_awards(self):
        monthly_id = self.awards.upsert_monthly_award(2025, 3, self.ana)
        season_id = self.awards.upsert_season_award(2025, "ARTILHEIRO", self.bia)

        self.assertTrue(self.awards.delete_monthly_award(monthly_id))
        self.assertTrue(self.awards.delete_season_award(season_id))
        self.assertFalse(self.awards.delete_season_award(season_id))
        self.assertEqual(self.awards.get_monthly_awards(), [])
        self.assertEqual(self.awards.get_season_awards(), [])

    def test_count_awards_for_player(self):
        self.awards.upsert_weekly_award("2025-03-05", self.ana)
        self.awards.upsert_weekly_award("2025-03-12", self.ana)
        self.awards.upsert_monthly_award(2025, 3, self.ana)
        self.awards.upsert_season_award(2025, "MELHOR_MEIA", self.ana)

        self.assertEqual(self.awards.count_awards_for_player(self.ana),
                         {'weekly': 2, 'monthly': 1, 'season': 1})
        self.assertEqual(self.awards.count_awards_for_player(self.bia),
                         {'weekly': 0, 'monthly': 0, 'season': 0})


if __name__ == '__main__':
    unittest.main()
