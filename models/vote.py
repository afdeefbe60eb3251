"""
Voting data models: sessions, single-use tokens and ballots.

A ballot is one voter's single submission. It comes in three variants that
share the same token lifecycle:

- ``ranking``: candidates ordered within position groups, plus an optional best overall pick
- ``rating``: explicit 0-5 star ratings per candidate
- ``candidate``: a single pick from a fixed candidate list (monthly vote)
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

BALLOT_RANKING = "ranking"
BALLOT_RATING = "rating"
BALLOT_CANDIDATE = "candidate"

SESSION_MATCH = "match"
SESSION_MONTHLY = "monthly"

NULL_OUT = "null_out"
REJECT = "reject"


@dataclass
class VoteSession:
    """A voting round, either for one match or for one month."""
    id: int
    kind: str
    match_id: Optional[int] = None
    month: Optional[int] = None
    year: Optional[int] = None
    candidates: List[Dict[str, Any]] = field(default_factory=list)
    created_at: Optional[str] = None
    expires_at: Optional[str] = None


@dataclass
class VoteToken:
    """Single-use voting token handed to one voter."""
    id: int
    token: str
    session_id: int
    player_id: Optional[int] = None
    used_at: Optional[str] = None

    @property
    def is_used(self) -> bool:
        return self.used_at is not None


@dataclass
class BallotRanking:
    player_id: int
    position: Optional[str]
    rank: Optional[int]


@dataclass
class BallotRating:
    player_id: int
    rating: float


@dataclass
class Ballot:
    """A stored ballot with its ranking or rating lines."""
    id: int
    token_id: int
    kind: str
    best_overall_player_id: Optional[int] = None
    candidate_id: Optional[int] = None
    rankings: List[BallotRanking] = field(default_factory=list)
    ratings: List[BallotRating] = field(default_factory=list)
    match_id: Optional[int] = None
    created_at: Optional[str] = None


@dataclass
class VoteSubmission:
    """Outcome of a successful ballot submission."""
    ballot_id: int
    token_id: int
    dropped: List[str] = field(default_factory=list)
