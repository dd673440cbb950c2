"""
medals_rewards/protocol/curator.py

Curator reward processing.

Designated curators upvote posts; each eligible upvote pays the post author a
fixed MEDALS amount from the rewards account, up to a daily cap per curator.

Two stages:
1. filter_curator_votes - stateless pre-filter. Drops votes from
   non-curators, non-positive weights, and votes whose unique id was already
   processed (or repeats earlier in the same batch).
2. process_curator_votes - sequential cap stage. Walks votes in batch order,
   threading each curator's daily counter through; once a curator hits the
   cap, later votes from them in the batch are skipped.

Neither stage mutates caller state. The processor returns the rewards, a new
counter map and a skip audit trail; the caller persists them together with
the processed vote ids.

Reward rate by platform year:
| Year | MEDALS / vote |
|------|---------------|
| 1-3  | 100           |
| 4+   | 150           |

Usage:
    from medals_rewards.protocol.curator import filter_curator_votes, process_curator_votes

    fresh = filter_curator_votes(votes, processed_ids, config)
    batch = process_curator_votes(fresh, daily_counts, config, now=ts)
"""

import logging
import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from ..config import (
    RewardsConfig,
    CURATOR_REWARD_Y1_3,
    CURATOR_REWARD_Y4_PLUS,
    CURATOR_RATE_STEP_YEAR,
)
from .periods import get_daily_key, get_platform_year

logger = logging.getLogger("medals_rewards.protocol.curator")


# ============================================================================
# DATA STRUCTURES
# ============================================================================

class SkipReason(Enum):
    """Why a curator vote earned nothing."""
    NOT_CURATOR = "not_curator"
    DAILY_LIMIT = "daily_limit"


@dataclass(frozen=True)
class CuratorVote:
    """An observed on-chain vote."""
    voter: str
    author: str
    permlink: str
    weight: int                     # Positive = upvote
    timestamp: int
    block_num: int
    transaction_id: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CuratorVote":
        return cls(**data)


@dataclass(frozen=True)
class CuratorReward:
    """A reward owed to a post author for a curator upvote."""
    author: str
    curator: str
    permlink: str
    amount: float
    vote_timestamp: int
    processed_at: int
    transaction_id: str
    vote_id: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CuratorReward":
        return cls(**data)


@dataclass(frozen=True)
class CuratorDailyStats:
    """Reporting view over one curator's counter for a day."""
    curator: str
    date: str
    votes_used: int
    votes_remaining: int
    total_rewarded: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class CuratorRewardDecision:
    """Eligibility of a single vote given the curator's current count."""
    amount: float
    eligible: bool
    reason: Optional[SkipReason] = None
    message: str = ""


@dataclass(frozen=True)
class SkippedVote:
    """Audit entry for a vote that was not rewarded."""
    vote: CuratorVote
    reason: SkipReason
    message: str

    def to_dict(self) -> dict:
        return {
            "vote": self.vote.to_dict(),
            "reason": self.reason.value,
            "message": self.message,
        }


@dataclass
class CuratorBatchResult:
    """Output of the cap stage for one batch."""
    rewards: List[CuratorReward]
    updated_stats: Dict[str, int]
    skipped: List[SkippedVote] = field(default_factory=list)
    processed_at: int = 0

    @property
    def processed_vote_ids(self) -> List[str]:
        """Ids of the votes that were rewarded, in batch order."""
        return [r.vote_id for r in self.rewards]

    @property
    def total_rewarded(self) -> float:
        return sum(r.amount for r in self.rewards)

    def to_dict(self) -> dict:
        return {
            "rewards": [r.to_dict() for r in self.rewards],
            "updated_stats": dict(self.updated_stats),
            "skipped": [s.to_dict() for s in self.skipped],
            "processed_at": self.processed_at,
        }


# ============================================================================
# HELPERS
# ============================================================================

def get_vote_unique_id(vote: CuratorVote) -> str:
    """Replay key for a vote: voter-author-permlink-block."""
    return f"{vote.voter}-{vote.author}-{vote.permlink}-{vote.block_num}"


def is_curator(account: str, config: Optional[RewardsConfig] = None) -> bool:
    """Check if an account is a designated curator."""
    return (config or RewardsConfig()).is_curator(account)


def get_curator_reward_amount(
    config: Optional[RewardsConfig] = None,
    now: Optional[int] = None,
) -> float:
    """MEDALS paid per eligible curator vote at time `now`."""
    config = config or RewardsConfig()
    year = get_platform_year(now, config.launch_date)
    return CURATOR_REWARD_Y4_PLUS if year >= CURATOR_RATE_STEP_YEAR else CURATOR_REWARD_Y1_3


# ============================================================================
# PROCESSOR
# ============================================================================

class CuratorRewardProcessor:
    """
    Applies curator eligibility and daily caps to vote batches.

    The processor is stateless; counters and processed ids are passed in and
    new values are returned.
    """

    def __init__(self, config: Optional[RewardsConfig] = None):
        self.config = config or RewardsConfig()

    def decide(
        self,
        curator: str,
        daily_vote_count: int,
        now: Optional[int] = None,
    ) -> CuratorRewardDecision:
        """Decide whether one more vote from `curator` earns a reward today."""
        if not self.config.is_curator(curator):
            return CuratorRewardDecision(
                amount=0.0,
                eligible=False,
                reason=SkipReason.NOT_CURATOR,
                message=f"{curator} is not a designated curator",
            )

        cap = self.config.max_votes_per_day
        if daily_vote_count >= cap:
            return CuratorRewardDecision(
                amount=0.0,
                eligible=False,
                reason=SkipReason.DAILY_LIMIT,
                message=f"Curator {curator} has reached daily vote limit ({cap})",
            )

        return CuratorRewardDecision(
            amount=get_curator_reward_amount(self.config, now),
            eligible=True,
        )

    def filter_votes(
        self,
        votes: Iterable[CuratorVote],
        processed_vote_ids: Set[str],
    ) -> List[CuratorVote]:
        """
        Pre-filter a batch before the cap stage.

        Keeps votes that are curator upvotes whose unique id is neither in
        `processed_vote_ids` nor seen earlier in this batch.
        """
        seen: Set[str] = set()
        kept = []
        for vote in votes:
            if not self.config.is_curator(vote.voter):
                continue
            if vote.weight <= 0:
                continue
            vote_id = get_vote_unique_id(vote)
            if vote_id in processed_vote_ids or vote_id in seen:
                logger.debug(f"Dropping replayed vote {vote_id}")
                continue
            seen.add(vote_id)
            kept.append(vote)
        return kept

    def process(
        self,
        votes: List[CuratorVote],
        curator_daily_stats: Mapping[str, int],
        now: Optional[int] = None,
    ) -> CuratorBatchResult:
        """
        Run the sequential cap stage over a batch.

        Order matters: the running count for each curator is updated after
        every accepted vote, so a cap reached mid-batch skips the rest.

        Args:
            votes: Pre-filtered votes in processing order
            curator_daily_stats: curator -> votes already rewarded today
            now: Unix timestamp of processing (defaults to current time)

        Returns:
            CuratorBatchResult with rewards, new counters and skips
        """
        if not isinstance(votes, (list, tuple)):
            raise TypeError(f"votes must be a list, got {type(votes).__name__}")

        if now is None:
            now = int(time.time())

        updated_stats: Dict[str, int] = dict(curator_daily_stats)
        rewards: List[CuratorReward] = []
        skipped: List[SkippedVote] = []

        for vote in votes:
            current = updated_stats.get(vote.voter, 0)
            decision = self.decide(vote.voter, current, now)

            if not decision.eligible:
                skipped.append(SkippedVote(vote=vote, reason=decision.reason, message=decision.message))
                logger.debug(f"Skipped vote by {vote.voter} on {vote.author}/{vote.permlink}: {decision.message}")
                continue

            rewards.append(CuratorReward(
                author=vote.author,
                curator=vote.voter,
                permlink=vote.permlink,
                amount=decision.amount,
                vote_timestamp=vote.timestamp,
                processed_at=now,
                transaction_id=vote.transaction_id,
                vote_id=get_vote_unique_id(vote),
            ))
            updated_stats[vote.voter] = current + 1

        logger.info(
            f"Processed {len(votes)} curator votes: {len(rewards)} rewarded, {len(skipped)} skipped"
        )
        return CuratorBatchResult(
            rewards=rewards,
            updated_stats=updated_stats,
            skipped=skipped,
            processed_at=now,
        )

    def stats_summary(
        self,
        curator_daily_stats: Mapping[str, int],
        now: Optional[int] = None,
    ) -> List[CuratorDailyStats]:
        """Per-curator usage for the day holding `now`, in configured order."""
        today = get_daily_key(now)
        reward_amount = get_curator_reward_amount(self.config, now)
        cap = self.config.max_votes_per_day

        summary = []
        for curator in self.config.curator_accounts:
            used = curator_daily_stats.get(curator, 0)
            summary.append(CuratorDailyStats(
                curator=curator,
                date=today,
                votes_used=used,
                votes_remaining=max(0, cap - used),
                total_rewarded=used * reward_amount,
            ))
        return summary


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

def calculate_curator_reward(
    curator: str,
    daily_vote_count: int,
    config: Optional[RewardsConfig] = None,
    now: Optional[int] = None,
) -> CuratorRewardDecision:
    """Reward decision for one vote given the curator's count so far today."""
    return CuratorRewardProcessor(config).decide(curator, daily_vote_count, now)


def filter_curator_votes(
    votes: Iterable[CuratorVote],
    processed_vote_ids: Set[str],
    config: Optional[RewardsConfig] = None,
) -> List[CuratorVote]:
    """Drop non-curator, non-positive and already-processed votes."""
    return CuratorRewardProcessor(config).filter_votes(votes, processed_vote_ids)


def process_curator_votes(
    votes: List[CuratorVote],
    curator_daily_stats: Mapping[str, int],
    config: Optional[RewardsConfig] = None,
    now: Optional[int] = None,
) -> CuratorBatchResult:
    """Apply the daily cap to a pre-filtered batch."""
    return CuratorRewardProcessor(config).process(votes, curator_daily_stats, now)


def get_curator_stats_summary(
    curator_daily_stats: Mapping[str, int],
    config: Optional[RewardsConfig] = None,
    now: Optional[int] = None,
) -> List[CuratorDailyStats]:
    """Daily usage summary for every configured curator."""
    return CuratorRewardProcessor(config).stats_summary(curator_daily_stats, now)
