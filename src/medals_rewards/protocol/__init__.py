"""
medals_rewards/protocol/

Pure reward calculations: staking, curation and the time keys they share.
"""

from .periods import get_platform_year, get_week_id, get_previous_week_id, get_daily_key
from .staking import (
    StakerInfo,
    RewardDistribution,
    DistributionResult,
    StakerExclusion,
    ExclusionReason,
    StakingRewardCalculator,
    calculate_staking_rewards,
    estimate_staking_apy,
    get_weekly_staking_pool,
)
from .curator import (
    CuratorVote,
    CuratorReward,
    CuratorDailyStats,
    CuratorRewardDecision,
    CuratorBatchResult,
    SkippedVote,
    SkipReason,
    CuratorRewardProcessor,
    get_vote_unique_id,
    is_curator,
    get_curator_reward_amount,
    calculate_curator_reward,
    filter_curator_votes,
    process_curator_votes,
    get_curator_stats_summary,
)

__all__ = [
    # Time keys
    "get_platform_year",
    "get_week_id",
    "get_previous_week_id",
    "get_daily_key",
    # Staking
    "StakerInfo",
    "RewardDistribution",
    "DistributionResult",
    "StakerExclusion",
    "ExclusionReason",
    "StakingRewardCalculator",
    "calculate_staking_rewards",
    "estimate_staking_apy",
    "get_weekly_staking_pool",
    # Curation
    "CuratorVote",
    "CuratorReward",
    "CuratorDailyStats",
    "CuratorRewardDecision",
    "CuratorBatchResult",
    "SkippedVote",
    "SkipReason",
    "CuratorRewardProcessor",
    "get_vote_unique_id",
    "is_curator",
    "get_curator_reward_amount",
    "calculate_curator_reward",
    "filter_curator_votes",
    "process_curator_votes",
    "get_curator_stats_summary",
]
