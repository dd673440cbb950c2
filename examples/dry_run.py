"""
medals_rewards/examples/dry_run.py

Example dry run of the reward scheduler against static data.

This shows how a deployment wires the scheduler:
1. Implement the collaborator interfaces (snapshot, votes, balance, ledger)
2. Build a RewardsConfig from the environment
3. Run the weekly staking job and the curator job
4. Inspect the RunReport before switching dry_run off

Usage:
    python examples/dry_run.py [staking|curator]
"""

import json
import logging
import time

import trio

from medals_rewards import RewardsConfig, StakerInfo, CuratorVote
from medals_rewards.scheduler import (
    BalanceSource,
    InMemoryRewardsStore,
    RewardScheduler,
    StakerSource,
    VoteSource,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [REWARDS] %(levelname)s: %(message)s'
)
logger = logging.getLogger(__name__)


class StaticStakers(StakerSource):
    """Fixed staker snapshot."""

    async def fetch_stakers(self):
        return [
            StakerInfo("alice", 12500.0),
            StakerInfo("bob", 3200.5),
            StakerInfo("carol", 0.25),       # Below threshold
            StakerInfo("niallon11", 90000.0),  # Founder
        ]


class StaticVotes(VoteSource):
    """A handful of votes from the last few minutes."""

    async def fetch_votes(self):
        now = int(time.time())
        return [
            CuratorVote("bozz", "alice", "derby-preview", 10000, now - 120, 9001, "a1"),
            CuratorVote("bozz", "bob", "transfer-rumours", 5000, now - 90, 9002, "b2"),
            CuratorVote("someone", "carol", "hot-take", 10000, now - 60, 9003, "c3"),
        ]


class StaticBalance(BalanceSource):
    """Rewards account with a fixed balance."""

    def __init__(self, balance: float):
        self.balance = balance

    async def get_balance(self, account: str, symbol: str) -> float:
        return self.balance


# ========== Example Usage ==========

def _scheduler() -> RewardScheduler:
    return RewardScheduler(
        store=InMemoryRewardsStore(),
        config=RewardsConfig.from_env(),
        staker_source=StaticStakers(),
        vote_source=StaticVotes(),
        balance_source=StaticBalance(5000.0),
    )


async def example_staking():
    """Example: weekly staking dry run."""
    report = await _scheduler().run_staking(dry_run=True)
    logger.info(f"{report.key}: {report.status.value} - {report.message}")
    print(json.dumps(report.to_dict(), indent=2))


async def example_curator():
    """Example: curator dry run."""
    report = await _scheduler().run_curator(dry_run=True)
    logger.info(f"{report.key}: {report.status.value} - {report.message}")
    print(json.dumps(report.to_dict(), indent=2))


if __name__ == "__main__":
    import sys

    mode = sys.argv[1] if len(sys.argv) > 1 else "staking"

    if mode == "curator":
        trio.run(example_curator)
    else:
        trio.run(example_staking)
