"""
medals_rewards/config.py

Configuration constants and the injectable rewards configuration.

Every environment-dependent value (curator list, founders list, launch date,
annual rate) lives on RewardsConfig so the calculators never read the process
environment themselves. Only the scheduler builds a config from_env().
"""

import os
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Mapping, Optional

logger = logging.getLogger("medals_rewards.config")


# ============================================================================
# TOKEN CONSTANTS
# ============================================================================

MEDALS_SYMBOL = "MEDALS"
MEDALS_PRECISION = 3                 # Decimal places on the sidechain
TRANSFER_CONTRACT = "tokens"
TRANSFER_ACTION = "transfer"

# Paying account
REWARDS_ACCOUNT = "sp-blockrewards"  # Pays staking and curator rewards

DEFAULT_FOUNDER_ACCOUNTS = ["niallon11", "blanchy"]
DEFAULT_CURATOR_ACCOUNTS = ["niallon11", "bozz", "talesfrmthecrypt", "ablaze"]

# Platform launch: 2026-04-01 00:00 UTC
DEFAULT_LAUNCH_DATE = int(datetime(2026, 4, 1, tzinfo=timezone.utc).timestamp())


# ============================================================================
# STAKING CONSTANTS
# ============================================================================

DEFAULT_ANNUAL_RATE = 0.10           # 10% APR under the fixed-rate model
WEEKS_PER_YEAR = 52
STAKING_REWARD_THRESHOLD = 1.0       # Minimum staked MEDALS to earn
MIN_TRANSFER_AMOUNT = 0.001          # Smallest representable transfer

# Weekly pool by platform year (year 4+ is flat)
#
# | Year | MEDALS / week |
# |------|---------------|
# | 1    | 30,000        |
# | 2    | 40,000        |
# | 3    | 50,000        |
# | 4+   | 60,000        |
WEEKLY_STAKING_POOLS: Dict[int, float] = {
    1: 30000.0,
    2: 40000.0,
    3: 50000.0,
    4: 60000.0,
}

DEFAULT_STAKING_MEMO = "Weekly MEDALS staking reward"


# ============================================================================
# CURATOR CONSTANTS
# ============================================================================

CURATOR_REWARD_Y1_3 = 100.0          # MEDALS per curator vote, years 1-3
CURATOR_REWARD_Y4_PLUS = 150.0       # MEDALS per curator vote, year 4+
CURATOR_RATE_STEP_YEAR = 4
MAX_CURATOR_VOTES_PER_DAY = 5


class StakingModel(Enum):
    """How weekly staking rewards are sized."""
    FIXED_APR = "fixed_apr"          # Each staker earns staked * rate / 52
    WEEKLY_POOL = "weekly_pool"      # Platform-year pool split by stake share


def _split_accounts(raw: str) -> List[str]:
    return [a.strip() for a in raw.split(",") if a.strip()]


def _parse_launch_date(raw: str) -> int:
    """Parse a YYYY-MM-DD launch date as midnight UTC."""
    try:
        dt = datetime.strptime(raw.strip(), "%Y-%m-%d")
    except ValueError as e:
        raise ValueError(f"Invalid launch date '{raw}', expected YYYY-MM-DD") from e
    return int(dt.replace(tzinfo=timezone.utc).timestamp())


@dataclass
class RewardsConfig:
    """
    Configuration for reward calculation.

    Usage:
        config = RewardsConfig(curator_accounts=["alice", "bob"])
        result = calculate_staking_rewards(stakers, config=config, now=ts)
    """

    # Staking
    annual_rate: float = DEFAULT_ANNUAL_RATE
    staking_model: StakingModel = StakingModel.FIXED_APR
    min_stake: float = STAKING_REWARD_THRESHOLD
    founder_accounts: List[str] = field(default_factory=lambda: list(DEFAULT_FOUNDER_ACCOUNTS))

    # Curation
    curator_accounts: List[str] = field(default_factory=lambda: list(DEFAULT_CURATOR_ACCOUNTS))
    max_votes_per_day: int = MAX_CURATOR_VOTES_PER_DAY

    # Platform
    launch_date: int = DEFAULT_LAUNCH_DATE
    rewards_account: str = REWARDS_ACCOUNT
    symbol: str = MEDALS_SYMBOL

    def __post_init__(self):
        if isinstance(self.staking_model, str):
            self.staking_model = StakingModel(self.staking_model)
        if self.annual_rate < 0:
            raise ValueError(f"Annual rate must be non-negative, got {self.annual_rate}")
        if self.min_stake < 0:
            raise ValueError(f"Minimum stake must be non-negative, got {self.min_stake}")
        if self.max_votes_per_day < 0:
            raise ValueError(f"Max votes per day must be non-negative, got {self.max_votes_per_day}")

    def is_curator(self, account: str) -> bool:
        """Check if an account is a designated curator."""
        return account in self.curator_accounts

    def is_founder(self, account: str) -> bool:
        """Check if an account is excluded from staking rewards."""
        return account in self.founder_accounts

    def to_dict(self) -> dict:
        return {
            "annual_rate": self.annual_rate,
            "staking_model": self.staking_model.value,
            "min_stake": self.min_stake,
            "founder_accounts": list(self.founder_accounts),
            "curator_accounts": list(self.curator_accounts),
            "max_votes_per_day": self.max_votes_per_day,
            "launch_date": self.launch_date,
            "rewards_account": self.rewards_account,
            "symbol": self.symbol,
        }

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RewardsConfig":
        """
        Build a config from environment variables.

        Unset variables keep their defaults. Recognised variables:
            CURATOR_ACCOUNTS          comma-separated curator accounts
            MEDALS_FOUNDER_ACCOUNTS   comma-separated excluded accounts
            MEDALS_ANNUAL_RATE        e.g. "0.12"
            MEDALS_STAKING_MODEL      "fixed_apr" or "weekly_pool"
            MEDALS_LAUNCH_DATE        YYYY-MM-DD (UTC)
            MEDALS_REWARDS_ACCOUNT    paying account
            MEDALS_MAX_CURATOR_VOTES  daily cap per curator
        """
        env = os.environ if environ is None else environ
        config = cls()

        curators = _split_accounts(env.get("CURATOR_ACCOUNTS", ""))
        if curators:
            config.curator_accounts = curators

        founders = env.get("MEDALS_FOUNDER_ACCOUNTS")
        if founders is not None:
            config.founder_accounts = _split_accounts(founders)

        if env.get("MEDALS_ANNUAL_RATE"):
            config.annual_rate = float(env["MEDALS_ANNUAL_RATE"])
        if env.get("MEDALS_STAKING_MODEL"):
            config.staking_model = StakingModel(env["MEDALS_STAKING_MODEL"].strip().lower())
        if env.get("MEDALS_LAUNCH_DATE"):
            config.launch_date = _parse_launch_date(env["MEDALS_LAUNCH_DATE"])
        if env.get("MEDALS_REWARDS_ACCOUNT"):
            config.rewards_account = env["MEDALS_REWARDS_ACCOUNT"].strip()
        if env.get("MEDALS_MAX_CURATOR_VOTES"):
            config.max_votes_per_day = int(env["MEDALS_MAX_CURATOR_VOTES"])

        # Re-run validation on the overridden values
        config.__post_init__()
        logger.debug(
            f"Loaded rewards config: {len(config.curator_accounts)} curators, "
            f"model={config.staking_model.value}, rate={config.annual_rate}"
        )
        return config
