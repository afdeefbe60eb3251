#!/usr/bin/env python3
"""
Tests for per-match final ratings and best-of-match awards.
"""

import unittest
import tempfile
import os
import shutil
import yaml
from unittest.mock import patch

from database.database_manager import DatabaseManager
from database.player_manager import PlayerManager
from database.vote_manager import VoteManager
from models.player import PositionGroup, PlayerRecord, PlayerStatRecord
from models.vote import Ballot, BallotRanking, BallotRating
from models.results import ErrorKind, ErrorResult
from utils.position_utils import PositionUtils
from rating.match_ratings import (MatchRatingEngine, MatchRatingResult, PlayerMatchScore,
                                  stars_from_rank, pick_best)


def make_player(player_id, name, position):
    return PlayerRecord(id=player_id, name=name, position=position,
                        position_group=PositionUtils.classify(position))


def make_stat(player_id, match_id=1, present=True, goals=0, assists=0, photo=False):
    return PlayerStatRecord(id=player_id, player_id=player_id, match_id=match_id, present=present,
                            goals=goals, assists=assists, appeared_in_photo=photo)


class TestRatingHelpers(unittest.TestCase):
    """Test cases for star interpolation and award tie-breaks."""

    def test_stars_from_rank(self):
        self.assertEqual(stars_from_rank(0, 1), 5.0)
        self.assertEqual(stars_from_rank(0, 5), 5.0)
        self.assertEqual(stars_from_rank(1, 5), 4.0)
        self.assertEqual(stars_from_rank(4, 5), 1.0)
        # 3.67 stars rounds to the nearest half star
        self.assertEqual(stars_from_rank(1, 4), 3.5)
        # Ranks past the end of the group never drop below one star
        self.assertEqual(stars_from_rank(8, 2), 1.0)
        self.assertEqual(stars_from_rank(5, 5), 1.0)

    def test_pick_best_tie_breaks(self):
        base = dict(name="x", position_group=PositionGroup.FORWARD, final_rating=7.0)
        fewer_goals = PlayerMatchScore(player_id=1, goals=1, votes_count=5, **base)
        more_goals = PlayerMatchScore(player_id=2, goals=2, votes_count=1, **base)
        self.assertEqual(pick_best([fewer_goals, more_goals]).player_id, 2)

        fewer_votes = PlayerMatchScore(player_id=3, goals=1, votes_count=1, **base)
        more_votes = PlayerMatchScore(player_id=4, goals=1, votes_count=3, **base)
        self.assertEqual(pick_best([fewer_votes, more_votes]).player_id, 4)

        twin_a = PlayerMatchScore(player_id=9, goals=1, votes_count=1, **base)
        twin_b = PlayerMatchScore(player_id=8, goals=1, votes_count=1, **base)
        self.assertEqual(pick_best([twin_a, twin_b]).player_id, 8)
        self.assertEqual(pick_best([twin_b, twin_a]).player_id, 8)

    def test_pick_best_empty(self):
        self.assertIsNone(pick_best([]))


class TestRateMatch(unittest.TestCase):
    """Test cases for the pure rating computation."""

    def setUp(self):
        self.engine = MatchRatingEngine(None, None, config={})
        self.players = {
            1: make_player(1, "Ana", "Meia"),
            2: make_player(2, "Bia", "Meia"),
            3: make_player(3, "Caio", "Meia"),
            4: make_player(4, "Duda", "Goleiro"),
            5: make_player(5, "Edu", "Zagueiro"),
            6: make_player(6, "Fabi", "Atacante"),
        }

    def test_no_present_players_is_no_stats(self):
        result = self.engine.rate_match(1, [], [make_stat(1, present=False)], self.players)
        self.assertIsInstance(result, ErrorResult)
        self.assertEqual(result.kind, ErrorKind.NO_STATS)

    def test_single_player_without_votes(self):
        result = self.engine.rate_match(1, [], [make_stat(6, goals=2)], self.players)

        score = result.scores[6]
        self.assertEqual(score.vote_rating, 5.0)
        self.assertEqual(score.stats_rating, 6.0)
        self.assertAlmostEqual(score.final_rating, 0.7 * 5.0 + 0.3 * 6.0)
        self.assertEqual(score.votes_count, 0)

        winners = result.awards.winner_ids()
        self.assertEqual(winners['craque'], 6)
        self.assertEqual(winners['forward'], 6)
        self.assertIsNone(winners['goalkeeper'])
        self.assertIsNone(winners['defender'])
        self.assertIsNone(winners['midfielder'])
        self.assertEqual(result.ballots_count, 0)
        self.assertFalse(result.used_explicit_ratings)

    def test_unranked_player_gets_global_mean(self):
        ballot = Ballot(id=1, token_id=1, kind='ranking', rankings=[
            BallotRanking(1, 'Meia', 1),
            BallotRanking(2, 'Meia', 2),
        ])
        stats = [make_stat(1), make_stat(2), make_stat(3)]

        result = self.engine.rate_match(1, [ballot], stats, self.players)

        # Stars 5 and 1 give a global mean of 3; smoothing uses C=3
        self.assertEqual(result.scores[3].votes_count, 0)
        self.assertEqual(result.scores[3].vote_rating, 6.0)
        self.assertEqual(result.scores[1].vote_rating, 7.0)
        self.assertEqual(result.scores[2].vote_rating, 5.0)
        self.assertEqual(result.awards.craque.player_id, 1)
        self.assertEqual(result.awards.midfielder.player_id, 1)

    def test_stored_rank_past_group_size_keeps_ratings_in_range(self):
        ballot = Ballot(id=1, token_id=1, kind='ranking', rankings=[
            BallotRanking(2, 'Meia', 1),
            BallotRanking(3, 'Meia', 9),
        ])
        stats = [make_stat(1), make_stat(2), make_stat(3)]

        result = self.engine.rate_match(1, [ballot], stats, self.players)

        self.assertEqual(result.scores[1].vote_rating, 6.0)
        self.assertEqual(result.scores[2].vote_rating, 7.0)
        self.assertEqual(result.scores[3].vote_rating, 5.0)
        for score in result.scores.values():
            self.assertGreater(score.final_rating, 0)

    def test_rankings_are_interpolated_per_position_group(self):
        ballot = Ballot(id=1, token_id=1, kind='ranking', rankings=[
            BallotRanking(1, 'Meia', 1),
            BallotRanking(2, 'Meia', 2),
            BallotRanking(5, 'Zagueiro', 1),
        ])
        stats = [make_stat(1), make_stat(2), make_stat(5)]

        result = self.engine.rate_match(1, [ballot], stats, self.players)

        # Alone in the defender group, the full 5 stars
        self.assertEqual(result.scores[5].votes_count, 1)
        self.assertGreater(result.scores[5].vote_rating, result.scores[2].vote_rating)

    def test_explicit_ratings_take_precedence(self):
        ballots = [
            Ballot(id=1, token_id=1, kind='rating', ratings=[BallotRating(1, 4.0)],
                   rankings=[BallotRanking(2, 'Meia', 1)]),
            Ballot(id=2, token_id=2, kind='rating', ratings=[BallotRating(1, 5.0)]),
        ]
        stats = [make_stat(1), make_stat(2)]

        result = self.engine.rate_match(1, ballots, stats, self.players)

        self.assertTrue(result.used_explicit_ratings)
        self.assertEqual(result.scores[1].vote_rating, 9.0)
        self.assertEqual(result.scores[1].votes_count, 2)
        self.assertEqual(result.scores[2].vote_rating, 0.0)

    def test_stats_rating_by_position(self):
        stats = [
            make_stat(4, photo=True),
            make_stat(5, assists=2, photo=True),
            make_stat(1, goals=1, assists=1),
            make_stat(6, goals=2),
        ]
        result = self.engine.rate_match(1, [], stats, self.players)

        self.assertAlmostEqual(result.scores[4].stats_rating, 5.0)
        self.assertAlmostEqual(result.scores[5].stats_rating, 7.0)
        # Midfielder: half the goals and half the assists of the match leaders
        self.assertAlmostEqual(result.scores[1].stats_rating, 4.0)
        self.assertAlmostEqual(result.scores[6].stats_rating, 6.0)

        winners = result.awards.winner_ids()
        self.assertEqual(winners['goalkeeper'], 4)
        self.assertEqual(winners['defender'], 5)
        self.assertEqual(winners['midfielder'], 1)
        self.assertEqual(winners['forward'], 6)
        self.assertEqual(winners['craque'], 5)

    def test_final_rating_stays_within_scale(self):
        ballots = [Ballot(id=1, token_id=1, kind='rating', ratings=[BallotRating(6, 5.0)])]
        result = self.engine.rate_match(1, ballots, [make_stat(6, goals=3, assists=3, photo=True)],
                                        self.players)
        self.assertLessEqual(result.scores[6].final_rating, 10.0)
        self.assertEqual(result.scores[6].stats_rating, 10.0)


class TestMatchRatingEngine(unittest.TestCase):
    """Test cases for the database-backed rating operations."""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.test_db_path = os.path.join(self.test_dir, "test_pelada.db")
        self.test_config_path = os.path.join(self.test_dir, "test_config.yaml")
        with open(self.test_config_path, 'w') as f:
            yaml.dump({'match_ratings': {'vote_weight': 0.7, 'stats_weight': 0.3}}, f)

        self.db = DatabaseManager(self.test_db_path, self.test_config_path)
        self.players = PlayerManager(self.db)
        self.votes = VoteManager(self.db)
        self.engine = MatchRatingEngine(self.players, self.votes)

        self.ana = self.players.create_player("Ana", "Meia")
        self.bia = self.players.create_player("Bia", "Atacante")
        self.match_id = self.players.create_match("2025-03-04")
        self.players.upsert_stat(self.ana, self.match_id, goals=1)
        self.players.upsert_stat(self.bia, self.match_id, goals=2)

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_unknown_or_empty_match_is_no_stats(self):
        empty_match = self.players.create_match("2025-03-11")
        result = self.engine.compute_match_ratings_and_awards(empty_match)
        self.assertEqual(result.kind, ErrorKind.NO_STATS)

    def test_apply_without_ballots_is_no_data(self):
        result = self.engine.apply_match_results(self.match_id)
        self.assertEqual(result.kind, ErrorKind.NO_DATA)
        self.assertIsNone(self.players.get_player_stats(self.ana)[0].rating)

    def test_apply_writes_final_ratings(self):
        session = self.votes.create_match_session(self.match_id)
        tokens = {t.player_id: t.token for t in self.votes.get_tokens(session.id)}
        self.votes.submit_match_ballot(tokens[self.ana], ratings={self.bia: 5})
        self.votes.submit_match_ballot(tokens[self.bia], ratings={self.ana: 3})

        result = self.engine.apply_match_results(self.match_id)

        self.assertIsInstance(result, MatchRatingResult)
        self.assertEqual(result.ballots_count, 2)
        self.assertEqual(result.awards.craque.player_id, self.bia)
        stored = {s.player_id: s.rating for s in self.players.get_stats_for_players([self.ana, self.bia])}
        self.assertEqual(stored[self.bia], result.scores[self.bia].final_rating)
        self.assertEqual(stored[self.ana], result.scores[self.ana].final_rating)
        self.assertEqual(self.players.get_match(self.match_id).voting_status, "CLOSED")

    def test_failing_match_does_not_abort_batch(self):
        other_match = self.players.create_match("2025-03-11")
        self.players.upsert_stat(self.ana, other_match)
        original = self.engine.rate_match

        def flaky(match_id, ballots, stats, players):
            if match_id == other_match:
                raise RuntimeError("corrupt ballot")
            return original(match_id, ballots, stats, players)

        with patch.object(self.engine, 'rate_match', side_effect=flaky):
            results = self.engine.rate_matches([self.match_id, other_match])

        self.assertIsInstance(results[self.match_id], MatchRatingResult)
        self.assertEqual(results[other_match].kind, ErrorKind.TRANSIENT_FAILURE)

    def test_rate_matches_deduplicates_ids(self):
        results = self.engine.rate_matches([self.match_id, self.match_id])
        self.assertEqual(list(results), [self.match_id])
        self.assertEqual(self.engine.rate_matches([]), {})


if __name__ == '__main__':
    unittest.main()
