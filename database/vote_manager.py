"""
Vote sessions, single-use tokens and ballots for the pelada database.

Match sessions hand one token to every present player; each token can submit
one ranking or rating ballot. Monthly sessions hand one token to every player
who played in the month; each token picks one candidate from a fixed list.
"""

import json
import secrets
import sqlite3
import logging
from datetime import datetime
from typing import List, Optional, Dict, Any, Union, Iterable
from models.vote import (VoteSession, VoteToken, Ballot, BallotRanking, BallotRating,
                         VoteSubmission, BALLOT_RANKING, BALLOT_RATING, BALLOT_CANDIDATE,
                         SESSION_MATCH, SESSION_MONTHLY, NULL_OUT, REJECT)
from models.results import ErrorKind, ErrorResult, VoteValidationError
from utils.date_utils import DateUtils
from utils.math_utils import MathUtils
from utils.position_utils import PositionUtils
from utils.text_utils import TextUtils
from .award_manager import AwardManager

logger = logging.getLogger(__name__)


def _placeholders(values: Iterable[Any]) -> str:
    return ','.join('?' for _ in values)


class VoteManager:
    """Manages vote sessions, tokens, ballot submission and the monthly tally."""

    def __init__(self, database_manager, award_manager=None):
        self.db_manager = database_manager
        self.award_manager = award_manager or AwardManager(database_manager)
        self.voting_config = database_manager.get_section('voting')
        self.monthly_config = database_manager.get_section('monthly_vote')

    def _policy(self, key: str, default: str) -> str:
        policy = self.voting_config.get(key, default)
        if policy not in (NULL_OUT, REJECT):
            logger.warning(f"Unknown invalid-candidate policy '{policy}' for {key}, using {default}")
            return default
        return policy

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_match_session(self, match_id: int,
                             expires_at: Optional[datetime] = None) -> Union[VoteSession, ErrorResult]:
        """Open voting on a match: one token per present player."""
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT id FROM matches WHERE id = ?", (match_id,))
            if cursor.fetchone() is None:
                return ErrorResult(ErrorKind.INVALID_INPUT, f"Match {match_id} not found")

            cursor.execute("""
                SELECT player_id FROM player_stats
                WHERE match_id = ? AND present = 1 ORDER BY player_id
            """, (match_id,))
            voters = [row[0] for row in cursor.fetchall()]
            if not voters:
                return ErrorResult(ErrorKind.NO_STATS, f"No present players recorded for match {match_id}")

            cursor.execute("""
                INSERT INTO vote_sessions (kind, match_id, expires_at) VALUES (?, ?, ?)
            """, (SESSION_MATCH, match_id, expires_at.isoformat() if expires_at else None))
            session_id = cursor.lastrowid
            self._create_tokens(cursor, session_id, voters)
            cursor.execute("UPDATE matches SET voting_status = 'OPEN' WHERE id = ?", (match_id,))
            conn.commit()

        logger.info(f"Opened vote session {session_id} for match {match_id} with {len(voters)} tokens")
        return self.get_session(session_id)

    def compute_monthly_candidates(self, year: int, month: int) -> Dict[str, Any]:
        """
        Score every player present in the month by per-match averages.

        Returns the eligible voters (everyone who played) and the top candidates
        among players with the minimum number of present matches.
        """
        start, end = DateUtils.month_range(year, month)
        weights = self.monthly_config.get('weights', {})
        min_matches = self.monthly_config.get('min_matches', 2)
        max_candidates = self.monthly_config.get('max_candidates', 6)

        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT p.id, p.name, p.nickname, s.goals, s.assists, s.rating, s.appeared_in_photo
                FROM player_stats s
                JOIN matches m ON m.id = s.match_id
                JOIN players p ON p.id = s.player_id
                WHERE s.present = 1 AND m.played_at >= ? AND m.played_at < ?
                ORDER BY p.id
            """, (start.isoformat(), end.isoformat()))
            rows = cursor.fetchall()

        aggregates: Dict[int, Dict[str, Any]] = {}
        for player_id, name, nickname, goals, assists, rating, photo in rows:
            agg = aggregates.setdefault(player_id, {
                'id': player_id, 'name': name, 'nickname': nickname, 'matches': 0,
                'goals': 0, 'assists': 0, 'photos': 0, 'rating_sum': 0.0, 'rating_count': 0
            })
            agg['matches'] += 1
            agg['goals'] += goals or 0
            agg['assists'] += assists or 0
            agg['photos'] += 1 if photo else 0
            if rating is not None:
                agg['rating_sum'] += rating
                agg['rating_count'] += 1

        scored = []
        for agg in aggregates.values():
            avg_goals = agg['goals'] / agg['matches']
            avg_assists = agg['assists'] / agg['matches']
            avg_rating = agg['rating_sum'] / agg['rating_count'] if agg['rating_count'] else 0.0
            score = (avg_goals * weights.get('goals', 0.3)
                     + avg_assists * weights.get('assists', 0.2)
                     + avg_rating * weights.get('rating', 0.5))
            scored.append({
                'id': agg['id'],
                'name': agg['name'],
                'nickname': agg['nickname'],
                'matches': agg['matches'],
                'goals': agg['goals'],
                'assists': agg['assists'],
                'photos': agg['photos'],
                'avg_goals': MathUtils.round_to(avg_goals, 2),
                'avg_assists': MathUtils.round_to(avg_assists, 2),
                'avg_rating': MathUtils.round_to(avg_rating, 2),
                'score': MathUtils.round_to(score, 4)
            })

        candidates = sorted(
            (row for row in scored if row['matches'] >= min_matches),
            key=lambda row: (-row['score'], TextUtils.sort_name(row['name']), row['id'])
        )[:max_candidates]

        return {'candidates': candidates, 'eligible_voters': sorted(aggregates)}

    def create_monthly_session(self, year: int, month: int,
                               expires_at: Optional[datetime] = None) -> Union[VoteSession, ErrorResult]:
        """Open the monthly vote, replacing any earlier session of the same month."""
        try:
            year = int(year)
            month = int(month)
        except (TypeError, ValueError):
            return ErrorResult(ErrorKind.INVALID_INPUT, "Year and month must be numbers")
        if not 1 <= month <= 12:
            return ErrorResult(ErrorKind.INVALID_INPUT, f"Invalid month {month}")

        data = self.compute_monthly_candidates(year, month)
        if not data['eligible_voters']:
            return ErrorResult(ErrorKind.NO_DATA, f"No players present in {month:02d}/{year}")
        if not data['candidates']:
            return ErrorResult(ErrorKind.NO_DATA, f"No eligible candidates in {month:02d}/{year}")

        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT id FROM vote_sessions WHERE kind = ? AND year = ? AND month = ?
            """, (SESSION_MONTHLY, year, month))
            for (old_session_id,) in cursor.fetchall():
                self._delete_session(cursor, old_session_id)

            cursor.execute("""
                INSERT INTO vote_sessions (kind, month, year, candidates, expires_at)
                VALUES (?, ?, ?, ?, ?)
            """, (SESSION_MONTHLY, month, year, json.dumps(data['candidates']),
                  expires_at.isoformat() if expires_at else None))
            session_id = cursor.lastrowid
            self._create_tokens(cursor, session_id, data['eligible_voters'])
            conn.commit()

        logger.info(f"Opened monthly vote {month:02d}/{year} with {len(data['candidates'])} candidates "
                    f"and {len(data['eligible_voters'])} voters")
        return self.get_session(session_id)

    def _create_tokens(self, cursor: sqlite3.Cursor, session_id: int, player_ids: List[int]) -> None:
        cursor.executemany("""
            INSERT INTO vote_tokens (token, session_id, player_id) VALUES (?, ?, ?)
        """, [(secrets.token_urlsafe(16), session_id, player_id) for player_id in player_ids])

    def _delete_session(self, cursor: sqlite3.Cursor, session_id: int) -> None:
        cursor.execute("""
            SELECT b.id FROM vote_ballots b JOIN vote_tokens t ON t.id = b.token_id
            WHERE t.session_id = ?
        """, (session_id,))
        ballot_ids = [row[0] for row in cursor.fetchall()]
        if ballot_ids:
            marks = _placeholders(ballot_ids)
            cursor.execute(f"DELETE FROM ballot_rankings WHERE ballot_id IN ({marks})", ballot_ids)
            cursor.execute(f"DELETE FROM ballot_ratings WHERE ballot_id IN ({marks})", ballot_ids)
            cursor.execute(f"DELETE FROM vote_ballots WHERE id IN ({marks})", ballot_ids)
        cursor.execute("DELETE FROM vote_tokens WHERE session_id = ?", (session_id,))
        cursor.execute("DELETE FROM vote_sessions WHERE id = ?", (session_id,))

    def get_session(self, session_id: int) -> Optional[VoteSession]:
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT id, kind, match_id, month, year, candidates, created_at, expires_at
                FROM vote_sessions WHERE id = ?
            """, (session_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            return VoteSession(id=row[0], kind=row[1], match_id=row[2], month=row[3], year=row[4],
                               candidates=json.loads(row[5]) if row[5] else [],
                               created_at=row[6], expires_at=row[7])

    def get_tokens(self, session_id: int) -> List[VoteToken]:
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT id, token, session_id, player_id, used_at
                FROM vote_tokens WHERE session_id = ? ORDER BY id
            """, (session_id,))
            return [VoteToken(id=row[0], token=row[1], session_id=row[2], player_id=row[3], used_at=row[4])
                    for row in cursor.fetchall()]

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _load_token(self, cursor: sqlite3.Cursor, token_value: str, kind: str,
                    now: datetime) -> Dict[str, Any]:
        """Resolve a token inside the submission transaction or raise VoteValidationError."""
        if not token_value:
            raise VoteValidationError("Missing voting token", ErrorKind.INVALID_INPUT)

        cursor.execute("""
            SELECT t.id, t.player_id, t.used_at, s.id, s.kind, s.match_id, s.candidates, s.expires_at
            FROM vote_tokens t JOIN vote_sessions s ON s.id = t.session_id
            WHERE t.token = ?
        """, (token_value,))
        row = cursor.fetchone()
        if row is None:
            raise VoteValidationError("Invalid voting token", ErrorKind.INVALID_INPUT)

        token_id, voter_id, used_at, session_id, session_kind, match_id, candidates, expires_at = row
        if session_kind != kind:
            raise VoteValidationError("This token belongs to another kind of vote", ErrorKind.INVALID_INPUT)
        if used_at is not None:
            raise VoteValidationError("This token was already used to vote")
        if expires_at and datetime.fromisoformat(expires_at) < now:
            raise VoteValidationError("This voting link has expired")

        return {
            'token_id': token_id,
            'voter_id': voter_id,
            'session_id': session_id,
            'match_id': match_id,
            'candidates': json.loads(candidates) if candidates else []
        }

    def _consume_token(self, cursor: sqlite3.Cursor, token_id: int, now: datetime) -> None:
        cursor.execute("""
            UPDATE vote_tokens SET used_at = ? WHERE id = ? AND used_at IS NULL
        """, (now.isoformat(), token_id))
        if cursor.rowcount != 1:
            raise VoteValidationError("This token was already used to vote")

    @staticmethod
    def _drop_ranks_past_group(lines: List[tuple], invalid) -> List[tuple]:
        """Ranks count within a position group; drop ranks past the group's size until none are left."""
        while True:
            sizes: Dict[Any, int] = {}
            for _, position, _ in lines:
                group = PositionUtils.classify(position)
                sizes[group] = sizes.get(group, 0) + 1

            kept = []
            for player_id, position, rank in lines:
                size = sizes[PositionUtils.classify(position)]
                if rank is not None and rank > size:
                    invalid(f"Rank {rank} for player {player_id} is past the {size} ranked players of that position")
                    continue
                kept.append((player_id, position, rank))

            if len(kept) == len(lines):
                return kept
            lines = kept

    def submit_match_ballot(self, token: str, rankings: Optional[List[Dict[str, Any]]] = None,
                            ratings: Optional[Dict[int, float]] = None,
                            best_overall_id: Optional[int] = None,
                            now: Optional[datetime] = None) -> Union[VoteSubmission, ErrorResult]:
        """
        Store a ranking or rating ballot for a match and consume its token atomically.

        ``rankings`` is a list of {player_id, rank, position}; ``position`` defaults
        to the player's own position label. ``ratings`` maps player id to 0-5 stars.
        Candidates not present in the match, out-of-range stars and a best-overall
        pick that is absent or the voter themself are handled by the
        ``voting.match_invalid_candidate`` policy: dropped (``null_out``) or the
        whole ballot rejected (``reject``).
        """
        now = now or datetime.now()
        policy = self._policy('match_invalid_candidate', NULL_OUT)
        dropped: List[str] = []

        def invalid(message: str) -> None:
            if policy == REJECT:
                raise VoteValidationError(message)
            dropped.append(message)

        try:
            with sqlite3.connect(self.db_manager.db_path) as conn:
                cursor = conn.cursor()
                context = self._load_token(cursor, token, SESSION_MATCH, now)

                cursor.execute("""
                    SELECT p.id, p.position FROM player_stats s JOIN players p ON p.id = s.player_id
                    WHERE s.match_id = ? AND s.present = 1
                """, (context['match_id'],))
                present = {row[0]: row[1] for row in cursor.fetchall()}

                ranking_lines = []
                for line in rankings or []:
                    player_id = line.get('player_id')
                    rank = line.get('rank')
                    if player_id not in present:
                        invalid(f"Player {player_id} was not present in the match")
                        continue
                    if any(existing[0] == player_id for existing in ranking_lines):
                        invalid(f"Player {player_id} was ranked more than once")
                        continue
                    if rank is not None and (isinstance(rank, bool) or not isinstance(rank, int) or rank <= 0):
                        invalid(f"Invalid rank {rank} for player {player_id}")
                        continue
                    position = line.get('position') or present[player_id] or 'Outros'
                    ranking_lines.append((player_id, position, rank))
                ranking_lines = self._drop_ranks_past_group(ranking_lines, invalid)

                rating_lines = []
                for player_id, stars in (ratings or {}).items():
                    if player_id not in present:
                        invalid(f"Player {player_id} was not present in the match")
                        continue
                    try:
                        stars = float(stars)
                    except (TypeError, ValueError):
                        invalid(f"Rating {stars!r} for player {player_id} is not a number")
                        continue
                    if not 0 <= stars <= 5:
                        invalid(f"Rating {stars} for player {player_id} is outside 0-5 stars")
                        continue
                    rating_lines.append((player_id, stars))

                best = best_overall_id
                if best is not None:
                    if best not in present:
                        invalid(f"Best overall pick {best} was not present in the match")
                        best = None
                    elif context['voter_id'] is not None and best == context['voter_id']:
                        invalid("Voters cannot pick themselves as best overall")
                        best = None

                kind = BALLOT_RATING if rating_lines else BALLOT_RANKING
                cursor.execute("""
                    INSERT INTO vote_ballots (token_id, kind, best_overall_player_id, created_at)
                    VALUES (?, ?, ?, ?)
                """, (context['token_id'], kind, best, now.isoformat()))
                ballot_id = cursor.lastrowid

                cursor.executemany("""
                    INSERT INTO ballot_rankings (ballot_id, player_id, position, rank) VALUES (?, ?, ?, ?)
                """, [(ballot_id, *line) for line in ranking_lines])
                cursor.executemany("""
                    INSERT INTO ballot_ratings (ballot_id, player_id, rating) VALUES (?, ?, ?)
                """, [(ballot_id, *line) for line in rating_lines])

                self._consume_token(cursor, context['token_id'], now)
                conn.commit()

        except VoteValidationError as e:
            logger.warning(f"Match ballot rejected: {e.message}")
            return e.to_result()
        except sqlite3.IntegrityError as e:
            logger.warning(f"Match ballot rejected by the database: {e}")
            return ErrorResult(ErrorKind.CONSISTENCY_VIOLATION, "This token was already used to vote")

        if dropped:
            logger.info(f"Ballot {ballot_id} stored with {len(dropped)} invalid selections dropped")
        return VoteSubmission(ballot_id=ballot_id, token_id=context['token_id'], dropped=dropped)

    def submit_monthly_ballot(self, token: str, candidate_id: Optional[int],
                              now: Optional[datetime] = None) -> Union[VoteSubmission, ErrorResult]:
        """Store a monthly pick and consume its token; an off-list pick follows ``voting.monthly_invalid_candidate``."""
        now = now or datetime.now()
        policy = self._policy('monthly_invalid_candidate', REJECT)
        dropped: List[str] = []

        try:
            with sqlite3.connect(self.db_manager.db_path) as conn:
                cursor = conn.cursor()
                context = self._load_token(cursor, token, SESSION_MONTHLY, now)
                if not context['candidates']:
                    raise VoteValidationError("No candidates available for this vote", ErrorKind.NO_DATA)

                candidate_ids = {int(c['id']) for c in context['candidates']}
                if candidate_id not in candidate_ids:
                    message = "Select a valid candidate"
                    if policy == REJECT:
                        raise VoteValidationError(message)
                    dropped.append(message)
                    candidate_id = None

                cursor.execute("""
                    INSERT INTO vote_ballots (token_id, kind, candidate_id, created_at)
                    VALUES (?, ?, ?, ?)
                """, (context['token_id'], BALLOT_CANDIDATE, candidate_id, now.isoformat()))
                ballot_id = cursor.lastrowid
                self._consume_token(cursor, context['token_id'], now)
                conn.commit()

        except VoteValidationError as e:
            logger.warning(f"Monthly ballot rejected: {e.message}")
            return e.to_result()
        except sqlite3.IntegrityError as e:
            logger.warning(f"Monthly ballot rejected by the database: {e}")
            return ErrorResult(ErrorKind.CONSISTENCY_VIOLATION, "This token was already used to vote")

        return VoteSubmission(ballot_id=ballot_id, token_id=context['token_id'], dropped=dropped)

    # ------------------------------------------------------------------
    # Reading ballots
    # ------------------------------------------------------------------

    def get_ballots_for_matches(self, match_ids: List[int]) -> Dict[int, List[Ballot]]:
        """Ballots of every match session for the given matches, with their lines, grouped by match id."""
        grouped: Dict[int, List[Ballot]] = {match_id: [] for match_id in match_ids}
        if not match_ids:
            return grouped

        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(f"""
                SELECT b.id, b.token_id, b.kind, b.best_overall_player_id, b.candidate_id,
                       s.match_id, b.created_at
                FROM vote_ballots b
                JOIN vote_tokens t ON t.id = b.token_id
                JOIN vote_sessions s ON s.id = t.session_id
                WHERE s.kind = ? AND s.match_id IN ({_placeholders(match_ids)})
                ORDER BY b.id
            """, [SESSION_MATCH, *match_ids])
            ballots = {
                row[0]: Ballot(id=row[0], token_id=row[1], kind=row[2], best_overall_player_id=row[3],
                               candidate_id=row[4], match_id=row[5], created_at=row[6])
                for row in cursor.fetchall()
            }

            if ballots:
                marks = _placeholders(ballots)
                cursor.execute(f"""
                    SELECT ballot_id, player_id, position, rank FROM ballot_rankings
                    WHERE ballot_id IN ({marks}) ORDER BY id
                """, list(ballots))
                for ballot_id, player_id, position, rank in cursor.fetchall():
                    ballots[ballot_id].rankings.append(BallotRanking(player_id, position, rank))

                cursor.execute(f"""
                    SELECT ballot_id, player_id, rating FROM ballot_ratings
                    WHERE ballot_id IN ({marks}) ORDER BY id
                """, list(ballots))
                for ballot_id, player_id, rating in cursor.fetchall():
                    ballots[ballot_id].ratings.append(BallotRating(player_id, rating))

        for ballot in ballots.values():
            grouped.setdefault(ballot.match_id, []).append(ballot)
        return grouped

    # ------------------------------------------------------------------
    # Monthly tally
    # ------------------------------------------------------------------

    def tally_monthly_vote(self, session_id: int) -> Union[List[Dict[str, Any]], ErrorResult]:
        """Candidates with their vote counts, winner first (votes, then score, then name)."""
        session = self.get_session(session_id)
        if session is None or session.kind != SESSION_MONTHLY:
            return ErrorResult(ErrorKind.INVALID_INPUT, f"Monthly vote session {session_id} not found")
        if not session.candidates:
            return ErrorResult(ErrorKind.NO_DATA, "Monthly vote has no candidates")

        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT b.candidate_id, COUNT(*)
                FROM vote_ballots b JOIN vote_tokens t ON t.id = b.token_id
                WHERE t.session_id = ? AND b.candidate_id IS NOT NULL
                GROUP BY b.candidate_id
            """, (session_id,))
            counts = dict(cursor.fetchall())

        tally = [dict(candidate, votes=counts.get(int(candidate['id']), 0))
                 for candidate in session.candidates]
        tally.sort(key=lambda c: (-c['votes'], -(c.get('score') or 0),
                                  TextUtils.sort_name(c.get('name')), int(c['id'])))
        return tally

    def close_monthly_vote(self, session_id: int,
                           now: Optional[datetime] = None) -> Union[Dict[str, Any], ErrorResult]:
        """Expire the session and record its winner as the month's craque."""
        tally = self.tally_monthly_vote(session_id)
        if isinstance(tally, ErrorResult):
            return tally

        now = now or datetime.now()
        session = self.get_session(session_id)
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("UPDATE vote_sessions SET expires_at = ? WHERE id = ?",
                           (now.isoformat(), session_id))
            conn.commit()

        winner = tally[0]
        self.award_manager.upsert_monthly_award(session.year, session.month, int(winner['id']))

        logger.info(f"Closed monthly vote {session.month:02d}/{session.year}: "
                    f"winner {winner['name']} with {winner['votes']} votes")
        return winner
