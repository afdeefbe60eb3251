#!/usr/bin/env python3
"""
Tests for vote sessions, single-use tokens and ballot submission.
"""

import unittest
import tempfile
import os
import shutil
import sqlite3
import yaml
from datetime import datetime
from unittest.mock import patch

from database.database_manager import DatabaseManager
from database.player_manager import PlayerManager
from database.award_manager import AwardManager
from database.vote_manager import VoteManager
from models.results import ErrorKind, ErrorResult, VoteValidationError
from models.vote import VoteSubmission, VoteSession
from rating.match_ratings import MatchRatingEngine


class VoteTestCase(unittest.TestCase):
    """Shared fixture: four players, two March matches."""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.test_db_path = os.path.join(self.test_dir, "test_pelada.db")
        self.test_config_path = os.path.join(self.test_dir, "test_config.yaml")
        with open(self.test_config_path, 'w') as f:
            yaml.dump({
                'voting': {'match_invalid_candidate': 'null_out', 'monthly_invalid_candidate': 'reject'},
                'monthly_vote': {'min_matches': 2, 'max_candidates': 6}
            }, f)

        self.db = DatabaseManager(self.test_db_path, self.test_config_path)
        self.players = PlayerManager(self.db)
        self.votes = VoteManager(self.db)

        self.ana = self.players.create_player("Ana", "Zagueiro")
        self.bia = self.players.create_player("Bia", "Meia")
        self.caio = self.players.create_player("Caio", "Atacante")
        self.duda = self.players.create_player("Duda", "Meia")

        self.match_id = self.players.create_match("2025-03-04")
        self.players.upsert_stat(self.ana, self.match_id, goals=2, rating=8.0)
        self.players.upsert_stat(self.bia, self.match_id, rating=6.0)
        self.players.upsert_stat(self.caio, self.match_id, goals=1)
        self.players.upsert_stat(self.duda, self.match_id, present=False)

        self.second_match = self.players.create_match("2025-03-11")
        self.players.upsert_stat(self.ana, self.second_match, rating=6.0)
        self.players.upsert_stat(self.bia, self.second_match, assists=2, rating=9.0)

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def open_match_session(self, expires_at=None):
        session = self.votes.create_match_session(self.match_id, expires_at)
        return session, {t.player_id: t.token for t in self.votes.get_tokens(session.id)}

    def stored_ballots(self):
        return self.votes.get_ballots_for_matches([self.match_id])[self.match_id]


class TestMatchSessions(VoteTestCase):
    """Test cases for opening match votes."""

    def test_one_token_per_present_player(self):
        session, tokens = self.open_match_session()

        self.assertIsInstance(session, VoteSession)
        self.assertEqual(session.match_id, self.match_id)
        self.assertEqual(set(tokens), {self.ana, self.bia, self.caio})
        self.assertEqual(len(set(tokens.values())), 3)
        for token in tokens.values():
            self.assertRegex(token, r"^[A-Za-z0-9_-]{22}$")
        self.assertEqual(self.players.get_match(self.match_id).voting_status, "OPEN")

    def test_unknown_match_is_invalid_input(self):
        result = self.votes.create_match_session(999)
        self.assertEqual(result.kind, ErrorKind.INVALID_INPUT)

    def test_match_without_present_players_is_no_stats(self):
        empty_match = self.players.create_match("2025-03-18")
        self.players.upsert_stat(self.duda, empty_match, present=False)

        result = self.votes.create_match_session(empty_match)
        self.assertEqual(result.kind, ErrorKind.NO_STATS)


class TestMatchBallots(VoteTestCase):
    """Test cases for ranking and rating ballots."""

    def test_absent_best_overall_is_stored_as_null(self):
        _, tokens = self.open_match_session()

        result = self.votes.submit_match_ballot(
            tokens[self.ana], rankings=[{'player_id': self.bia, 'rank': 1}], best_overall_id=self.duda)

        self.assertIsInstance(result, VoteSubmission)
        self.assertEqual(len(result.dropped), 1)
        ballots = self.stored_ballots()
        self.assertEqual(len(ballots), 1)
        self.assertIsNone(ballots[0].best_overall_player_id)
        self.assertEqual(ballots[0].kind, 'ranking')
        self.assertEqual([(r.player_id, r.position, r.rank) for r in ballots[0].rankings],
                         [(self.bia, 'Meia', 1)])

    def test_self_vote_for_best_overall_is_nulled(self):
        _, tokens = self.open_match_session()

        self.votes.submit_match_ballot(tokens[self.ana], best_overall_id=self.ana)
        self.votes.submit_match_ballot(tokens[self.bia], best_overall_id=self.ana)

        best = [b.best_overall_player_id for b in self.stored_ballots()]
        self.assertEqual(best, [None, self.ana])

    def test_invalid_ranking_lines_are_dropped(self):
        _, tokens = self.open_match_session()

        result = self.votes.submit_match_ballot(tokens[self.ana], rankings=[
            {'player_id': self.duda, 'rank': 1},
            {'player_id': self.bia, 'rank': 0},
            {'player_id': self.caio, 'rank': 1, 'position': 'Atacante'},
        ])

        self.assertEqual(len(result.dropped), 2)
        rankings = self.stored_ballots()[0].rankings
        self.assertEqual([r.player_id for r in rankings], [self.caio])

    def test_rating_ballot_drops_out_of_range_stars(self):
        _, tokens = self.open_match_session()

        result = self.votes.submit_match_ballot(tokens[self.ana], ratings={self.bia: 7, self.caio: 4})

        self.assertEqual(len(result.dropped), 1)
        ballot = self.stored_ballots()[0]
        self.assertEqual(ballot.kind, 'rating')
        self.assertEqual([(r.player_id, r.rating) for r in ballot.ratings], [(self.caio, 4.0)])

    def test_rank_past_position_group_is_dropped(self):
        _, tokens = self.open_match_session()

        result = self.votes.submit_match_ballot(tokens[self.ana], rankings=[
            {'player_id': self.bia, 'rank': 1, 'position': 'Meia'},
            {'player_id': self.caio, 'rank': 9, 'position': 'Meia'},
        ])

        self.assertEqual(len(result.dropped), 1)
        self.assertEqual([(r.player_id, r.rank) for r in self.stored_ballots()[0].rankings], [(self.bia, 1)])

        rated = MatchRatingEngine(self.players, self.votes).compute_match_ratings_and_awards(self.match_id)
        for score in rated.scores.values():
            self.assertTrue(0 < score.vote_rating <= 10, score)
            self.assertGreater(score.final_rating, 0)

    def test_duplicate_ranking_lines_keep_the_first(self):
        _, tokens = self.open_match_session()

        result = self.votes.submit_match_ballot(tokens[self.ana], rankings=[
            {'player_id': self.bia, 'rank': 1},
            {'player_id': self.bia, 'rank': 2},
            {'player_id': self.caio, 'rank': 1},
        ])

        self.assertEqual(len(result.dropped), 1)
        rankings = self.stored_ballots()[0].rankings
        self.assertEqual(sorted((r.player_id, r.rank) for r in rankings), [(self.bia, 1), (self.caio, 1)])

    def test_reject_policy_refuses_rank_past_group(self):
        reject_config = os.path.join(self.test_dir, "reject.yaml")
        with open(reject_config, 'w') as f:
            yaml.dump({'voting': {'match_invalid_candidate': 'reject'}}, f)
        strict_votes = VoteManager(DatabaseManager(self.test_db_path, reject_config))
        session, tokens = self.open_match_session()

        result = strict_votes.submit_match_ballot(tokens[self.ana], rankings=[
            {'player_id': self.bia, 'rank': 1}, {'player_id': self.bia, 'rank': 1}])
        self.assertEqual(result.kind, ErrorKind.CONSISTENCY_VIOLATION)

        result = strict_votes.submit_match_ballot(tokens[self.ana], rankings=[
            {'player_id': self.bia, 'rank': 3}])
        self.assertEqual(result.kind, ErrorKind.CONSISTENCY_VIOLATION)
        self.assertEqual(self.stored_ballots(), [])
        self.assertFalse(any(t.is_used for t in self.votes.get_tokens(session.id)))

    def test_non_numeric_stars_are_dropped(self):
        _, tokens = self.open_match_session()

        result = self.votes.submit_match_ballot(tokens[self.ana],
                                                ratings={self.bia: "4", self.caio: "four", self.ana: None})

        self.assertIsInstance(result, VoteSubmission)
        self.assertEqual(len(result.dropped), 2)
        ratings = self.stored_ballots()[0].ratings
        self.assertEqual([(r.player_id, r.rating) for r in ratings], [(self.bia, 4.0)])

    def test_token_cannot_be_reused(self):
        _, tokens = self.open_match_session()

        first = self.votes.submit_match_ballot(tokens[self.ana], ratings={self.bia: 4})
        second = self.votes.submit_match_ballot(tokens[self.ana], ratings={self.bia: 1})

        self.assertIsInstance(first, VoteSubmission)
        self.assertIsInstance(second, ErrorResult)
        self.assertEqual(second.kind, ErrorKind.CONSISTENCY_VIOLATION)
        self.assertEqual(len(self.stored_ballots()), 1)

    def test_unknown_or_missing_token_is_invalid_input(self):
        self.open_match_session()
        self.assertEqual(self.votes.submit_match_ballot("not-a-token").kind, ErrorKind.INVALID_INPUT)
        self.assertEqual(self.votes.submit_match_ballot("").kind, ErrorKind.INVALID_INPUT)

    def test_expired_session_is_rejected(self):
        session, tokens = self.open_match_session(expires_at=datetime(2025, 3, 5, 12, 0))

        result = self.votes.submit_match_ballot(tokens[self.ana], ratings={self.bia: 4},
                                                now=datetime(2025, 3, 6, 9, 0))

        self.assertEqual(result.kind, ErrorKind.CONSISTENCY_VIOLATION)
        self.assertFalse(any(t.is_used for t in self.votes.get_tokens(session.id)))

    def test_reject_policy_stores_nothing(self):
        reject_config = os.path.join(self.test_dir, "reject.yaml")
        with open(reject_config, 'w') as f:
            yaml.dump({'voting': {'match_invalid_candidate': 'reject'}}, f)
        strict_votes = VoteManager(DatabaseManager(self.test_db_path, reject_config))
        session, tokens = self.open_match_session()

        result = strict_votes.submit_match_ballot(
            tokens[self.ana], rankings=[{'player_id': self.bia, 'rank': 1}], best_overall_id=self.duda)

        self.assertEqual(result.kind, ErrorKind.CONSISTENCY_VIOLATION)
        self.assertEqual(self.stored_ballots(), [])
        self.assertFalse(any(t.is_used for t in self.votes.get_tokens(session.id)))

    def test_ballot_and_token_consumption_are_atomic(self):
        session, tokens = self.open_match_session()

        with patch.object(self.votes, '_consume_token', side_effect=VoteValidationError("token race")):
            result = self.votes.submit_match_ballot(tokens[self.ana],
                                                    rankings=[{'player_id': self.bia, 'rank': 1}])

        self.assertEqual(result.kind, ErrorKind.CONSISTENCY_VIOLATION)
        stats = self.db.get_database_stats()
        self.assertEqual(stats['vote_ballots'], 0)
        self.assertEqual(stats['ballot_rankings'], 0)

    def test_duplicate_ballot_rejected_by_schema(self):
        session, tokens = self.open_match_session()
        token_id = self.votes.get_tokens(session.id)[0].id
        with sqlite3.connect(self.test_db_path) as conn:
            conn.execute("INSERT INTO vote_ballots (token_id, kind) VALUES (?, 'ranking')", (token_id,))
            with self.assertRaises(sqlite3.IntegrityError):
                conn.execute("INSERT INTO vote_ballots (token_id, kind) VALUES (?, 'ranking')", (token_id,))

    def test_duplicate_ranking_line_rejected_by_schema(self):
        _, tokens = self.open_match_session()
        ballot_id = self.votes.submit_match_ballot(tokens[self.ana], rankings=[
            {'player_id': self.bia, 'rank': 1}]).ballot_id
        with sqlite3.connect(self.test_db_path) as conn:
            with self.assertRaises(sqlite3.IntegrityError):
                conn.execute("INSERT INTO ballot_rankings (ballot_id, player_id, position, rank) "
                             "VALUES (?, ?, 'Meia', 2)", (ballot_id, self.bia))


class TestMonthlyVote(VoteTestCase):
    """Test cases for the monthly craque vote."""

    def test_candidates_need_minimum_matches(self):
        data = self.votes.compute_monthly_candidates(2025, 3)

        self.assertEqual([c['id'] for c in data['candidates']], [self.bia, self.ana])
        self.assertEqual(data['eligible_voters'], [self.ana, self.bia, self.caio])
        # Per-match averages: goals*.3 + assists*.2 + rating*.5
        self.assertAlmostEqual(data['candidates'][0]['score'], 3.95)
        self.assertAlmostEqual(data['candidates'][1]['score'], 3.8)

    def test_invalid_period_or_empty_month(self):
        self.assertEqual(self.votes.create_monthly_session(2025, 13).kind, ErrorKind.INVALID_INPUT)
        self.assertEqual(self.votes.create_monthly_session("abc", 3).kind, ErrorKind.INVALID_INPUT)
        self.assertEqual(self.votes.create_monthly_session(2025, 7).kind, ErrorKind.NO_DATA)

    def test_new_session_replaces_previous_one(self):
        first = self.votes.create_monthly_session(2025, 3)
        second = self.votes.create_monthly_session(2025, 3)

        self.assertIsNone(self.votes.get_session(first.id))
        self.assertEqual(len(self.votes.get_tokens(second.id)), 3)
        self.assertEqual(self.votes.get_tokens(first.id), [])

    def test_off_list_candidate_is_rejected(self):
        session = self.votes.create_monthly_session(2025, 3)
        tokens = {t.player_id: t.token for t in self.votes.get_tokens(session.id)}

        result = self.votes.submit_monthly_ballot(tokens[self.caio], self.caio)

        self.assertEqual(result.kind, ErrorKind.CONSISTENCY_VIOLATION)
        self.assertFalse(any(t.is_used for t in self.votes.get_tokens(session.id)))

    def test_match_token_cannot_vote_monthly(self):
        _, tokens = self.open_match_session()
        self.votes.create_monthly_session(2025, 3)

        result = self.votes.submit_monthly_ballot(tokens[self.ana], self.bia)
        self.assertEqual(result.kind, ErrorKind.INVALID_INPUT)

    def test_tally_and_close(self):
        session = self.votes.create_monthly_session(2025, 3)
        tokens = {t.player_id: t.token for t in self.votes.get_tokens(session.id)}
        self.votes.submit_monthly_ballot(tokens[self.ana], self.bia)
        self.votes.submit_monthly_ballot(tokens[self.bia], self.bia)
        self.votes.submit_monthly_ballot(tokens[self.caio], self.ana)

        tally = self.votes.tally_monthly_vote(session.id)
        self.assertEqual([(c['id'], c['votes']) for c in tally], [(self.bia, 2), (self.ana, 1)])

        winner = self.votes.close_monthly_vote(session.id, now=datetime(2025, 4, 1, 10, 0))
        self.assertEqual(winner['id'], self.bia)
        awards = AwardManager(self.db).get_monthly_awards()
        self.assertEqual([(a.year, a.month, a.craque_id) for a in awards], [(2025, 3, self.bia)])

    def test_tally_of_unknown_session(self):
        self.assertEqual(self.votes.tally_monthly_vote(42).kind, ErrorKind.INVALID_INPUT)


if __name__ == '__main__':
    unittest.main()
