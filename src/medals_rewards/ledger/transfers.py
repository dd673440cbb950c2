"""
medals_rewards/ledger/transfers.py

Transfer instruction builder for the MEDALS sidechain.

Produces ledger-agnostic transfer instructions in the sidechain's
custom_json shape:

    {
        "contractName": "tokens",
        "contractAction": "transfer",
        "contractPayload": {"symbol", "to", "quantity", "memo"}
    }

Quantities are always fixed-point strings with exactly MEDALS_PRECISION
decimals ("12.500"), never scientific notation. Nothing here signs or
broadcasts; the caller hands the instructions to its ledger sink.

Usage:
    from medals_rewards.ledger.transfers import (
        build_reward_transfer_operations,
        validate_rewards_balance,
    )

    ops = build_reward_transfer_operations(result.distributions)
    check = validate_rewards_balance(available, total_transfer_amount(ops))
"""

import logging
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Iterable, List, TYPE_CHECKING

from ..config import (
    MEDALS_PRECISION,
    MEDALS_SYMBOL,
    MIN_TRANSFER_AMOUNT,
    TRANSFER_ACTION,
    TRANSFER_CONTRACT,
    DEFAULT_STAKING_MEMO,
)

if TYPE_CHECKING:
    from ..protocol.staking import RewardDistribution
    from ..protocol.curator import CuratorReward

logger = logging.getLogger("medals_rewards.ledger.transfers")


# ============================================================================
# AMOUNT HELPERS
# ============================================================================

def _to_decimal(value: float) -> Decimal:
    # repr gives the shortest string that round-trips, so 2.675 stays 2.675
    return Decimal(repr(float(value)))


def _quantize(value: float, places: int) -> Decimal:
    """Round half away from zero, with enough precision for any finite float."""
    amount = _to_decimal(value)
    quantum = Decimal(1).scaleb(-places)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, amount.adjusted() + places + 2)
        return amount.quantize(quantum, rounding=ROUND_HALF_UP)


def round_amount(value: float, places: int = MEDALS_PRECISION) -> float:
    """
    Round half away from zero to a fixed number of decimals.

    Python's round() is banker's rounding on binary floats; token amounts
    need the same result every run, so this goes through Decimal.
    """
    return float(_quantize(value, places))


def format_quantity(amount: float, precision: int = MEDALS_PRECISION) -> str:
    """Format an amount as a fixed-point string with exactly `precision` decimals."""
    quantized = _quantize(amount, precision)
    if quantized == 0:
        quantized = abs(quantized)  # no "-0.000"
    return f"{quantized:f}"


def is_transferable(amount: float) -> bool:
    """True if the amount is at least one token unit once rounded."""
    return round_amount(amount) >= MIN_TRANSFER_AMOUNT


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class TransferPayload:
    """Payload of a token transfer."""
    symbol: str
    to: str
    quantity: str
    memo: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class TransferInstruction:
    """A token movement, built but not yet submitted to any ledger."""
    contract_name: str
    contract_action: str
    contract_payload: TransferPayload

    @property
    def recipient(self) -> str:
        return self.contract_payload.to

    @property
    def amount(self) -> float:
        return float(self.contract_payload.quantity)

    def to_dict(self) -> dict:
        """Wire format expected by the sidechain."""
        return {
            "contractName": self.contract_name,
            "contractAction": self.contract_action,
            "contractPayload": self.contract_payload.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TransferInstruction":
        return cls(
            contract_name=data["contractName"],
            contract_action=data["contractAction"],
            contract_payload=TransferPayload(**data["contractPayload"]),
        )


@dataclass(frozen=True)
class BalanceCheck:
    """Result of the pre-flight solvency check."""
    valid: bool
    shortfall: float
    message: str
    available: float = 0.0
    required: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


# ============================================================================
# BUILDERS
# ============================================================================

def build_transfer(
    to: str,
    amount: float,
    memo: str,
    symbol: str = MEDALS_SYMBOL,
) -> TransferInstruction:
    """Build a single transfer instruction."""
    return TransferInstruction(
        contract_name=TRANSFER_CONTRACT,
        contract_action=TRANSFER_ACTION,
        contract_payload=TransferPayload(
            symbol=symbol,
            to=to,
            quantity=format_quantity(amount),
            memo=memo,
        ),
    )


def build_reward_transfer_operations(
    distributions: Iterable["RewardDistribution"],
    memo: str = DEFAULT_STAKING_MEMO,
    symbol: str = MEDALS_SYMBOL,
) -> List[TransferInstruction]:
    """
    Build transfer instructions for staking distributions.

    Entries that round below MIN_TRANSFER_AMOUNT produce no instruction.
    Output order follows the input order.

    Args:
        distributions: Calculated reward distributions
        memo: Memo attached to every transfer
        symbol: Token symbol

    Returns:
        List of TransferInstruction
    """
    operations = []
    for distribution in distributions:
        if not is_transferable(distribution.amount):
            logger.debug(f"Skipping zero transfer to {distribution.account}")
            continue
        operations.append(build_transfer(distribution.account, distribution.amount, memo, symbol))
    return operations


def curator_reward_memo(curator: str, permlink: str) -> str:
    return f"Curator reward from @{curator} for your post: {permlink}"


def build_curator_reward_transfer(
    author: str,
    amount: float,
    curator: str,
    permlink: str,
    symbol: str = MEDALS_SYMBOL,
) -> TransferInstruction:
    """Build the transfer paying a post author for a curator upvote."""
    return build_transfer(author, amount, curator_reward_memo(curator, permlink), symbol)


def build_curator_transfer_operations(
    rewards: Iterable["CuratorReward"],
    symbol: str = MEDALS_SYMBOL,
) -> List[TransferInstruction]:
    """Build transfers for a batch of curator rewards, dropping zero amounts."""
    return [
        build_curator_reward_transfer(r.author, r.amount, r.curator, r.permlink, symbol)
        for r in rewards
        if is_transferable(r.amount)
    ]


def total_transfer_amount(operations: Iterable[TransferInstruction]) -> float:
    """Sum of instruction quantities, exact to token precision."""
    total = sum((Decimal(op.contract_payload.quantity) for op in operations), Decimal(0))
    return float(total)


# ============================================================================
# SOLVENCY
# ============================================================================

def validate_rewards_balance(
    available: float,
    required: float,
    symbol: str = MEDALS_SYMBOL,
) -> BalanceCheck:
    """
    Check that the paying account can cover a distribution.

    Pure pre-flight check; the caller supplies the live balance.

    Args:
        available: Current balance of the rewards account
        required: Total amount the distribution needs

    Returns:
        BalanceCheck with valid flag, shortfall and an operator message
    """
    if available >= required:
        return BalanceCheck(
            valid=True,
            shortfall=0.0,
            message=(
                f"Sufficient balance: {available} {symbol} available "
                f"for {required} {symbol} distribution"
            ),
            available=available,
            required=required,
        )

    shortfall = required - available
    return BalanceCheck(
        valid=False,
        shortfall=shortfall,
        message=(
            f"Insufficient balance: {available} {symbol} available, "
            f"need {required} {symbol} (shortfall: {shortfall} {symbol})"
        ),
        available=available,
        required=required,
    )
