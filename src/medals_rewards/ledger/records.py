"""
medals_rewards/ledger/records.py

Canonical distribution records.

A DistributionRecord is what the scheduler persists for each run:
- key: idempotency key ("staking-2026-W15", "curator-rewards-2026-04-09")
- entries: recipient/amount lines in payout order
- merkle_root: sha256 merkle root over the entries, so an auditor can check
  any single payout against the stored root
- status: pending -> completed | failed

Building a record is pure; identical inputs give byte-identical to_dict()
output.
"""

import hashlib
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, TYPE_CHECKING

from .transfers import format_quantity, is_transferable, round_amount

if TYPE_CHECKING:
    from ..protocol.staking import DistributionResult
    from ..protocol.curator import CuratorBatchResult, CuratorReward

logger = logging.getLogger("medals_rewards.ledger.records")

STAKING_KEY_PREFIX = "staking"
CURATOR_KEY_PREFIX = "curator-rewards"


# ============================================================================
# MERKLE TREE
# ============================================================================

class MerkleTree:
    """
    Merkle tree over payout leaves.

    Odd levels duplicate their last node.
    """

    def __init__(self, leaves: Optional[List[str]] = None):
        """
        Initialize MerkleTree.

        Args:
            leaves: List of leaf hashes (hex strings)
        """
        self.leaves = list(leaves or [])
        self.root: str = ""
        self._build()

    def _build(self) -> None:
        if not self.leaves:
            self.root = ""
            return

        current_level = list(self.leaves)
        while len(current_level) > 1:
            current_level = self._next_level(current_level)
        self.root = current_level[0]

    @staticmethod
    def _next_level(level: List[str]) -> List[str]:
        next_level = []
        for i in range(0, len(level), 2):
            left = level[i]
            right = level[i + 1] if i + 1 < len(level) else left
            next_level.append(hashlib.sha256((left + right).encode()).hexdigest())
        return next_level

    def get_proof(self, leaf_index: int) -> List[Tuple[str, str]]:
        """
        Get merkle proof for a leaf.

        Returns:
            List of (direction, sibling_hash) tuples, empty if out of range
        """
        if leaf_index < 0 or leaf_index >= len(self.leaves):
            return []

        proof = []
        current_level = list(self.leaves)
        idx = leaf_index

        while len(current_level) > 1:
            if idx % 2 == 0:
                sibling_idx = idx + 1
                direction = "right"
            else:
                sibling_idx = idx - 1
                direction = "left"

            if sibling_idx < len(current_level):
                proof.append((direction, current_level[sibling_idx]))
            else:
                proof.append((direction, current_level[idx]))

            current_level = self._next_level(current_level)
            idx //= 2

        return proof

    @staticmethod
    def verify_proof(leaf_hash: str, merkle_root: str, proof: List[Tuple[str, str]]) -> bool:
        """Check a leaf against a root using a proof from get_proof()."""
        current_hash = leaf_hash
        for direction, sibling_hash in proof:
            if direction == "left":
                combined = sibling_hash + current_hash
            else:
                combined = current_hash + sibling_hash
            current_hash = hashlib.sha256(combined.encode()).hexdigest()
        return current_hash == merkle_root


def hash_payout_leaf(reference: str, recipient: str, amount: float) -> str:
    """Deterministic leaf hash for one payout line."""
    leaf_data = f"{reference}:{recipient}:{format_quantity(amount)}"
    return hashlib.sha256(leaf_data.encode()).hexdigest()


# ============================================================================
# RECORDS
# ============================================================================

class RecordStatus(Enum):
    """Lifecycle of a persisted distribution."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# A record is only as settled as its least settled entry
_STATUS_SEVERITY = {
    RecordStatus.COMPLETED: 0,
    RecordStatus.PENDING: 1,
    RecordStatus.FAILED: 2,
}


def worst_status(statuses: Iterable[RecordStatus], default: RecordStatus) -> RecordStatus:
    """Most severe status in `statuses`, or `default` when there are none."""
    statuses = list(statuses)
    if not statuses:
        return default
    return max(statuses, key=lambda s: _STATUS_SEVERITY[s])


@dataclass(frozen=True)
class RecordEntry:
    """
    One payout line. `reference` is the week id or the vote unique id.

    Status and tx_id track the submission that paid (or failed to pay) this
    line; they are not part of the leaf hash.
    """
    reference: str
    recipient: str
    amount: float
    status: RecordStatus = RecordStatus.PENDING
    tx_id: Optional[str] = None

    @property
    def leaf_hash(self) -> str:
        return hash_payout_leaf(self.reference, self.recipient, self.amount)

    def to_dict(self) -> dict:
        return {
            "reference": self.reference,
            "recipient": self.recipient,
            "amount": format_quantity(self.amount),
            "status": self.status.value,
            "tx_id": self.tx_id,
        }


@dataclass
class DistributionRecord:
    """Auditable record of one distribution run."""
    key: str
    kind: str
    period: str
    entries: List[RecordEntry]
    total_amount: float
    merkle_root: str
    status: RecordStatus = RecordStatus.PENDING
    error: Optional[str] = None
    created_at: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def recipient_count(self) -> int:
        return len(self.entries)

    def settle(
        self,
        references: Iterable[str],
        status: RecordStatus,
        tx_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> "DistributionRecord":
        """
        Copy of this record with the entries in `references` moved to `status`.

        The record status becomes the worst entry status, so settling one
        batch never hides an earlier failure in the same record.
        """
        refs = set(references)
        entries = [
            replace(e, status=status, tx_id=tx_id) if e.reference in refs else e
            for e in self.entries
        ]
        overall = worst_status((e.status for e in entries), status)

        metadata = dict(self.metadata)
        if tx_id is not None:
            metadata["tx_ids"] = list(metadata.get("tx_ids", [])) + [tx_id]

        return DistributionRecord(
            key=self.key,
            kind=self.kind,
            period=self.period,
            entries=entries,
            total_amount=self.total_amount,
            merkle_root=self.merkle_root,
            status=overall,
            error=_carry_error(self, error, overall),
            created_at=self.created_at,
            metadata=metadata,
        )

    def unsettled(self) -> List[RecordEntry]:
        """Entries not yet paid, in record order."""
        return [e for e in self.entries if e.status != RecordStatus.COMPLETED]

    def verify_entry(self, index: int) -> bool:
        """Check one entry against the stored merkle root."""
        if index < 0 or index >= len(self.entries):
            return False
        tree = MerkleTree([e.leaf_hash for e in self.entries])
        return MerkleTree.verify_proof(
            self.entries[index].leaf_hash, self.merkle_root, tree.get_proof(index)
        )

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "kind": self.kind,
            "period": self.period,
            "entries": [e.to_dict() for e in self.entries],
            "total_amount": format_quantity(self.total_amount),
            "recipient_count": self.recipient_count,
            "merkle_root": self.merkle_root,
            "status": self.status.value,
            "error": self.error,
            "created_at": self.created_at,
            "metadata": dict(self.metadata),
        }


def staking_record_key(week_id: str) -> str:
    return f"{STAKING_KEY_PREFIX}-{week_id}"


def curator_record_key(date_key: str) -> str:
    return f"{CURATOR_KEY_PREFIX}-{date_key}"


def _carry_error(previous: DistributionRecord, error: Optional[str], status: RecordStatus) -> Optional[str]:
    # Earlier failure messages stay while any entry is still failed
    if status != RecordStatus.FAILED:
        return error
    messages = []
    if previous.status == RecordStatus.FAILED and previous.error:
        messages.append(previous.error)
    if error and error not in messages:
        messages.append(error)
    return "; ".join(messages) or None


def _build_record(
    key: str,
    kind: str,
    period: str,
    entries: List[RecordEntry],
    created_at: int,
    status: RecordStatus,
    error: Optional[str],
    metadata: Dict[str, Any],
) -> DistributionRecord:
    tree = MerkleTree([e.leaf_hash for e in entries])
    total = round_amount(sum(round_amount(e.amount) for e in entries))
    record = DistributionRecord(
        key=key,
        kind=kind,
        period=period,
        entries=entries,
        total_amount=total,
        merkle_root=tree.root,
        status=status,
        error=error,
        created_at=created_at,
        metadata=metadata,
    )
    logger.debug(f"Built record {key}: {len(entries)} entries, root {tree.root[:16]}")
    return record


def build_staking_record(
    result: "DistributionResult",
    status: RecordStatus = RecordStatus.PENDING,
    error: Optional[str] = None,
) -> DistributionRecord:
    """
    Build the weekly staking record, keyed by week id.

    Zero-amount distributions are left out, matching the transfer list.
    """
    entries = [
        RecordEntry(reference=result.week_id, recipient=d.account, amount=d.amount, status=status)
        for d in result.distributions
        if is_transferable(d.amount)
    ]
    metadata = {
        "weekly_pool": result.weekly_pool,
        "total_staked": result.total_staked,
        "staker_count": result.staker_count,
        "eligible_staker_count": result.eligible_staker_count,
        "annual_rate": result.annual_rate,
        "staking_model": result.staking_model.value,
        "platform_year": result.platform_year,
    }
    return _build_record(
        key=staking_record_key(result.week_id),
        kind=STAKING_KEY_PREFIX,
        period=result.week_id,
        entries=entries,
        created_at=result.timestamp,
        status=status,
        error=error,
        metadata=metadata,
    )


def build_vote_entry(
    reward: "CuratorReward",
    status: RecordStatus = RecordStatus.PENDING,
) -> RecordEntry:
    """Payout line for a single curator reward, keyed by vote unique id."""
    return RecordEntry(
        reference=reward.vote_id, recipient=reward.author, amount=reward.amount, status=status
    )


def build_curator_record(
    batch: "CuratorBatchResult",
    date_key: str,
    status: RecordStatus = RecordStatus.PENDING,
    error: Optional[str] = None,
) -> DistributionRecord:
    """Build the record for one curator batch, keyed by UTC date."""
    entries = [build_vote_entry(r, status) for r in batch.rewards if is_transferable(r.amount)]
    metadata = {
        "processed_vote_ids": batch.processed_vote_ids,
        "curator_counts": dict(sorted(batch.updated_stats.items())),
        "skipped": [s.to_dict() for s in batch.skipped],
    }
    return _build_record(
        key=curator_record_key(date_key),
        kind=CURATOR_KEY_PREFIX,
        period=date_key,
        entries=entries,
        created_at=batch.processed_at,
        status=status,
        error=error,
        metadata=metadata,
    )


def merge_curator_records(
    existing: DistributionRecord,
    new: DistributionRecord,
) -> DistributionRecord:
    """
    Fold a later curator batch into the day's record.

    Entries already present (same vote id) are not duplicated and keep their
    own status and tx_id. Counters from the newer batch win; processed ids
    and skips accumulate; other metadata (tx_ids) is carried over. The merged
    status is the worst entry status, so a failed payout earlier in the day
    keeps the record FAILED until it is reconciled.
    """
    if existing.key != new.key:
        raise ValueError(f"Cannot merge records with different keys: {existing.key} != {new.key}")

    known = {e.reference for e in existing.entries}
    entries = list(existing.entries) + [e for e in new.entries if e.reference not in known]

    old_ids = existing.metadata.get("processed_vote_ids", [])
    new_ids = [i for i in new.metadata.get("processed_vote_ids", []) if i not in set(old_ids)]
    metadata = dict(existing.metadata)
    metadata.update({
        "processed_vote_ids": list(old_ids) + new_ids,
        "curator_counts": dict(sorted({
            **existing.metadata.get("curator_counts", {}),
            **new.metadata.get("curator_counts", {}),
        }.items())),
        "skipped": list(existing.metadata.get("skipped", [])) + list(new.metadata.get("skipped", [])),
    })

    status = worst_status((e.status for e in entries), new.status)
    return _build_record(
        key=existing.key,
        kind=existing.kind,
        period=existing.period,
        entries=entries,
        created_at=existing.created_at,
        status=status,
        error=_carry_error(existing, new.error, status),
        metadata=metadata,
    )
