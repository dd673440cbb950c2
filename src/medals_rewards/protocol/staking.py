"""
medals_rewards/protocol/staking.py

Weekly MEDALS staking reward calculation.

Two sizing models (see StakingModel):
- FIXED_APR (default): every eligible staker earns staked * annual_rate / 52.
  The weekly pool is the sum of those amounts and is informational only.
- WEEKLY_POOL: the platform-year weekly pool is split by stake share.

Either way the calculation is a pure function of (stakers, config, now):
- Founders and accounts below the minimum stake are excluded
- Amounts round half away from zero to 3 decimals, percentages to 4
- Distributions sort by amount descending, ties keep input order
- week_id is the ISO week of `now`, the idempotency key for the run

Callers guarantee each account appears once in the snapshot; duplicates are
not merged.

Usage:
    from medals_rewards.protocol.staking import StakerInfo, calculate_staking_rewards

    result = calculate_staking_rewards(
        [StakerInfo("alice", 1000.0), StakerInfo("bob", 250.0)],
        now=int(time.time()),
    )
"""

import logging
import math
import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Union

from ..config import (
    RewardsConfig,
    StakingModel,
    WEEKLY_STAKING_POOLS,
    WEEKS_PER_YEAR,
)
from ..ledger.transfers import round_amount
from .periods import get_platform_year, get_week_id

logger = logging.getLogger("medals_rewards.protocol.staking")

AMOUNT_PRECISION = 3
PERCENTAGE_PRECISION = 4
APY_PRECISION = 2


# ============================================================================
# DATA STRUCTURES
# ============================================================================

class ExclusionReason(Enum):
    """Why a staker received nothing this week."""
    FOUNDER = "founder"
    BELOW_MINIMUM = "below_minimum"
    INVALID_STAKE = "invalid_stake"  # Negative or non-finite, clamped to zero


@dataclass(frozen=True)
class StakerInfo:
    """One account's staked balance at snapshot time."""
    account: str
    staked: float

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StakerInfo":
        return cls(account=str(data["account"]), staked=float(data["staked"]))


@dataclass(frozen=True)
class RewardDistribution:
    """A single staker's weekly reward."""
    account: str
    amount: float
    percentage: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class StakerExclusion:
    """Audit entry for an excluded staker."""
    account: str
    staked: float
    reason: ExclusionReason

    def to_dict(self) -> dict:
        return {"account": self.account, "staked": self.staked, "reason": self.reason.value}


@dataclass
class DistributionResult:
    """Complete result of one weekly staking calculation."""
    weekly_pool: float
    total_staked: float
    staker_count: int
    eligible_staker_count: int
    distributions: List[RewardDistribution]
    timestamp: int
    week_id: str
    annual_rate: float
    staking_model: StakingModel = StakingModel.FIXED_APR
    platform_year: int = 1
    excluded: List[StakerExclusion] = field(default_factory=list)

    @property
    def total_distributed(self) -> float:
        """Sum of all distribution amounts."""
        return round_amount(math.fsum(d.amount for d in self.distributions))

    def to_dict(self) -> dict:
        return {
            "weekly_pool": self.weekly_pool,
            "total_staked": self.total_staked,
            "staker_count": self.staker_count,
            "eligible_staker_count": self.eligible_staker_count,
            "distributions": [d.to_dict() for d in self.distributions],
            "timestamp": self.timestamp,
            "week_id": self.week_id,
            "annual_rate": self.annual_rate,
            "staking_model": self.staking_model.value,
            "platform_year": self.platform_year,
            "excluded": [e.to_dict() for e in self.excluded],
            "total_distributed": self.total_distributed,
        }


# ============================================================================
# POOL HELPERS
# ============================================================================

def get_weekly_staking_pool(platform_year: int) -> float:
    """
    Weekly staking pool for a platform year.

    Years beyond the table use the year 4 amount; anything below 1 uses year 1.
    """
    if platform_year >= 4:
        return WEEKLY_STAKING_POOLS[4]
    return WEEKLY_STAKING_POOLS.get(platform_year, WEEKLY_STAKING_POOLS[1])


def _coerce_staker(entry: Union[StakerInfo, Mapping[str, Any]]) -> StakerInfo:
    if isinstance(entry, StakerInfo):
        return entry
    if isinstance(entry, Mapping):
        return StakerInfo.from_dict(entry)
    raise TypeError(f"Expected StakerInfo or mapping, got {type(entry).__name__}")


# ============================================================================
# CALCULATOR
# ============================================================================

class StakingRewardCalculator:
    """
    Calculates weekly staking rewards from a staker snapshot.

    Holds no state between calls; the same snapshot, config and timestamp
    always give the same result.
    """

    def __init__(self, config: Optional[RewardsConfig] = None):
        self.config = config or RewardsConfig()

    def split_eligible(self, stakers: Iterable[StakerInfo]):
        """
        Partition stakers into eligible entries and exclusions.

        Returns:
            (eligible: list of StakerInfo, excluded: list of StakerExclusion)
        """
        eligible: List[StakerInfo] = []
        excluded: List[StakerExclusion] = []

        for staker in stakers:
            staked = staker.staked
            if not math.isfinite(staked) or staked < 0:
                logger.debug(f"Clamping invalid stake {staked!r} for {staker.account}")
                excluded.append(StakerExclusion(staker.account, 0.0, ExclusionReason.INVALID_STAKE))
                continue
            if self.config.is_founder(staker.account):
                excluded.append(StakerExclusion(staker.account, staked, ExclusionReason.FOUNDER))
                continue
            # Zero stake is never eligible, even with a zero threshold
            if staked <= 0 or staked < self.config.min_stake:
                excluded.append(StakerExclusion(staker.account, staked, ExclusionReason.BELOW_MINIMUM))
                continue
            eligible.append(staker)

        return eligible, excluded

    def weekly_amount(self, staked: float, total_staked: float, platform_year: int) -> float:
        """Unrounded weekly reward for one staker."""
        if self.config.staking_model == StakingModel.WEEKLY_POOL:
            return staked / total_staked * get_weekly_staking_pool(platform_year)
        return staked * self.config.annual_rate / WEEKS_PER_YEAR

    def calculate(
        self,
        stakers: List[Union[StakerInfo, Mapping[str, Any]]],
        now: Optional[int] = None,
    ) -> DistributionResult:
        """
        Calculate the weekly distribution.

        Never raises for empty or degenerate snapshots; a week with no eligible
        stake returns an empty distribution with a zero pool.

        Args:
            stakers: Snapshot of (account, staked) entries
            now: Unix timestamp of the run (defaults to current time)

        Returns:
            DistributionResult
        """
        if not isinstance(stakers, (list, tuple)):
            raise TypeError(f"stakers must be a list, got {type(stakers).__name__}")

        if now is None:
            now = int(time.time())

        snapshot = [_coerce_staker(s) for s in stakers]
        week_id = get_week_id(now)
        platform_year = get_platform_year(now, self.config.launch_date)
        model = self.config.staking_model

        eligible, excluded = self.split_eligible(snapshot)
        total_staked = math.fsum(s.staked for s in eligible)

        if total_staked == 0:
            logger.info(f"No eligible stake for {week_id} ({len(snapshot)} stakers in snapshot)")
            return DistributionResult(
                weekly_pool=0.0,
                total_staked=0.0,
                staker_count=len(snapshot),
                eligible_staker_count=0,
                distributions=[],
                timestamp=now,
                week_id=week_id,
                annual_rate=self.config.annual_rate,
                staking_model=model,
                platform_year=platform_year,
                excluded=excluded,
            )

        distributions = [
            RewardDistribution(
                account=s.account,
                amount=round_amount(
                    self.weekly_amount(s.staked, total_staked, platform_year), AMOUNT_PRECISION
                ),
                percentage=round_amount(s.staked / total_staked * 100, PERCENTAGE_PRECISION),
            )
            for s in eligible
        ]
        # sorted() is stable with reverse=True, so equal amounts keep snapshot order
        distributions = sorted(distributions, key=lambda d: d.amount, reverse=True)

        if model == StakingModel.WEEKLY_POOL:
            weekly_pool = get_weekly_staking_pool(platform_year)
        else:
            weekly_pool = round_amount(
                total_staked * self.config.annual_rate / WEEKS_PER_YEAR, AMOUNT_PRECISION
            )

        logger.info(
            f"Calculated staking rewards for {week_id}: {len(eligible)} eligible of "
            f"{len(snapshot)}, pool {weekly_pool} {self.config.symbol} ({model.value})"
        )

        return DistributionResult(
            weekly_pool=weekly_pool,
            total_staked=total_staked,
            staker_count=len(snapshot),
            eligible_staker_count=len(eligible),
            distributions=distributions,
            timestamp=now,
            week_id=week_id,
            annual_rate=self.config.annual_rate,
            staking_model=model,
            platform_year=platform_year,
            excluded=excluded,
        )

    def estimate_apy(
        self,
        staked_amount: float,
        total_staked: float,
        now: Optional[int] = None,
    ) -> float:
        """
        Estimate annual percentage yield for a stake.

        Returns 0 when either amount is zero.
        """
        if total_staked <= 0 or staked_amount <= 0:
            return 0.0
        if self.config.staking_model == StakingModel.FIXED_APR:
            return round_amount(self.config.annual_rate * 100, APY_PRECISION)

        platform_year = get_platform_year(now, self.config.launch_date)
        weekly_reward = staked_amount / total_staked * get_weekly_staking_pool(platform_year)
        annual_reward = weekly_reward * WEEKS_PER_YEAR
        return round_amount(annual_reward / staked_amount * 100, APY_PRECISION)


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

def calculate_staking_rewards(
    stakers: List[Union[StakerInfo, Mapping[str, Any]]],
    config: Optional[RewardsConfig] = None,
    now: Optional[int] = None,
) -> DistributionResult:
    """Calculate weekly staking rewards for a snapshot."""
    return StakingRewardCalculator(config).calculate(stakers, now)


def estimate_staking_apy(
    staked_amount: float,
    total_staked: float,
    config: Optional[RewardsConfig] = None,
    now: Optional[int] = None,
) -> float:
    """Estimate APY (percent, 2 decimals) for a stake."""
    return StakingRewardCalculator(config).estimate_apy(staked_amount, total_staked, now)
