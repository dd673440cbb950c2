"""
medals_rewards - MEDALS token reward engine

Pure calculation of:
- Weekly staking rewards (fixed APR or platform-year pool)
- Curator vote rewards with per-curator daily caps
- Transfer instructions and distribution records for the sidechain

No I/O happens in the calculators: snapshots, counters and processed vote ids
are passed in, and new state is returned for the caller to persist.

Usage:
    from medals_rewards import (
        RewardsConfig,
        StakerInfo,
        calculate_staking_rewards,
        build_reward_transfer_operations,
        validate_rewards_balance,
    )

    config = RewardsConfig.from_env()
    result = calculate_staking_rewards(stakers, config=config, now=now)
    ops = build_reward_transfer_operations(result.distributions)
    check = validate_rewards_balance(available, result.total_distributed)

Scheduler Usage:
    import trio
    from medals_rewards.scheduler import RewardScheduler, InMemoryRewardsStore

    scheduler = RewardScheduler(store=InMemoryRewardsStore(), staker_source=source)
    report = trio.run(scheduler.run_staking)
"""

from .config import (
    RewardsConfig,
    StakingModel,
    MEDALS_SYMBOL,
    MEDALS_PRECISION,
    REWARDS_ACCOUNT,
)
from .protocol import (
    StakerInfo,
    RewardDistribution,
    DistributionResult,
    CuratorVote,
    CuratorReward,
    CuratorDailyStats,
    CuratorBatchResult,
    SkipReason,
    get_platform_year,
    get_week_id,
    get_daily_key,
    calculate_staking_rewards,
    estimate_staking_apy,
    get_vote_unique_id,
    filter_curator_votes,
    process_curator_votes,
    get_curator_stats_summary,
)
from .ledger import (
    TransferInstruction,
    BalanceCheck,
    DistributionRecord,
    RecordStatus,
    build_reward_transfer_operations,
    build_curator_reward_transfer,
    validate_rewards_balance,
    build_staking_record,
    build_curator_record,
)

__version__ = "0.1.0"

__all__ = [
    # Config
    "RewardsConfig",
    "StakingModel",
    "MEDALS_SYMBOL",
    "MEDALS_PRECISION",
    "REWARDS_ACCOUNT",
    # Calculation
    "StakerInfo",
    "RewardDistribution",
    "DistributionResult",
    "CuratorVote",
    "CuratorReward",
    "CuratorDailyStats",
    "CuratorBatchResult",
    "SkipReason",
    "get_platform_year",
    "get_week_id",
    "get_daily_key",
    "calculate_staking_rewards",
    "estimate_staking_apy",
    "get_vote_unique_id",
    "filter_curator_votes",
    "process_curator_votes",
    "get_curator_stats_summary",
    # Ledger
    "TransferInstruction",
    "BalanceCheck",
    "DistributionRecord",
    "RecordStatus",
    "build_reward_transfer_operations",
    "build_curator_reward_transfer",
    "validate_rewards_balance",
    "build_staking_record",
    "build_curator_record",
]
