"""
medals_rewards/ledger/

Ledger-facing output of the reward engine: transfer instructions, the
solvency check, and auditable distribution records. Nothing here signs or
broadcasts.
"""

from .transfers import (
    TransferInstruction,
    TransferPayload,
    BalanceCheck,
    round_amount,
    format_quantity,
    is_transferable,
    build_transfer,
    build_reward_transfer_operations,
    build_curator_reward_transfer,
    build_curator_transfer_operations,
    total_transfer_amount,
    validate_rewards_balance,
)
from .records import (
    MerkleTree,
    RecordStatus,
    RecordEntry,
    DistributionRecord,
    worst_status,
    staking_record_key,
    curator_record_key,
    build_staking_record,
    build_curator_record,
    build_vote_entry,
    merge_curator_records,
)

__all__ = [
    # Transfers
    "TransferInstruction",
    "TransferPayload",
    "BalanceCheck",
    "round_amount",
    "format_quantity",
    "is_transferable",
    "build_transfer",
    "build_reward_transfer_operations",
    "build_curator_reward_transfer",
    "build_curator_transfer_operations",
    "total_transfer_amount",
    "validate_rewards_balance",
    # Records
    "MerkleTree",
    "RecordStatus",
    "RecordEntry",
    "DistributionRecord",
    "worst_status",
    "staking_record_key",
    "curator_record_key",
    "build_staking_record",
    "build_curator_record",
    "build_vote_entry",
    "merge_curator_records",
]
