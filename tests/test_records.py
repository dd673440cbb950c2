"""
Tests for medals_rewards/ledger/records.py

Merkle proofs, record keys and curator record merging.
"""

import hashlib
import pytest
from datetime import datetime, timezone

from medals_rewards.config import RewardsConfig
from medals_rewards.protocol.staking import StakerInfo, calculate_staking_rewards
from medals_rewards.protocol.curator import CuratorVote, process_curator_votes
from medals_rewards.ledger.records import (
    MerkleTree,
    RecordStatus,
    RecordEntry,
    build_staking_record,
    build_curator_record,
    curator_record_key,
    hash_payout_leaf,
    merge_curator_records,
    staking_record_key,
    worst_status,
)


NOW = int(datetime(2026, 4, 9, 12, 0, tzinfo=timezone.utc).timestamp())


@pytest.fixture
def config():
    return RewardsConfig(
        annual_rate=0.52,
        founder_accounts=["founder"],
        curator_accounts=["curator1"],
        max_votes_per_day=5,
    )


def vote(block_num, author="author1"):
    return CuratorVote("curator1", author, f"post-{block_num}", 10000, NOW - 10, block_num, f"tx{block_num}")


# ============================================================================
# MERKLE TREE
# ============================================================================

class TestMerkleTree:
    """Tests for MerkleTree."""

    def leaves(self, n):
        return [hashlib.sha256(f"leaf{i}".encode()).hexdigest() for i in range(n)]

    def test_empty(self):
        assert MerkleTree([]).root == ""

    def test_single_leaf_is_root(self):
        leaves = self.leaves(1)
        assert MerkleTree(leaves).root == leaves[0]

    def test_two_leaves(self):
        a, b = self.leaves(2)
        expected = hashlib.sha256((a + b).encode()).hexdigest()
        assert MerkleTree([a, b]).root == expected

    @pytest.mark.parametrize("n", [2, 3, 5, 8])
    def test_every_proof_verifies(self, n):
        leaves = self.leaves(n)
        tree = MerkleTree(leaves)
        for i, leaf in enumerate(leaves):
            assert MerkleTree.verify_proof(leaf, tree.root, tree.get_proof(i))

    def test_wrong_leaf_fails(self):
        leaves = self.leaves(4)
        tree = MerkleTree(leaves)
        assert not MerkleTree.verify_proof(leaves[1], tree.root, tree.get_proof(0))

    def test_out_of_range_proof(self):
        assert MerkleTree(self.leaves(3)).get_proof(7) == []

    def test_leaf_hash_uses_formatted_quantity(self):
        assert hash_payout_leaf("2026-W15", "alice", 12.5) == hashlib.sha256(
            b"2026-W15:alice:12.500"
        ).hexdigest()


# ============================================================================
# STAKING RECORDS
# ============================================================================

class TestStakingRecord:
    """Tests for build_staking_record."""

    def test_key_and_entries(self, config):
        result = calculate_staking_rewards(
            [StakerInfo("alice", 1000.0), StakerInfo("bob", 3000.0), StakerInfo("founder", 9e6)],
            config=config,
            now=NOW,
        )
        record = build_staking_record(result)

        assert record.key == "staking-2026-W15"
        assert record.kind == "staking"
        assert record.period == "2026-W15"
        assert record.status == RecordStatus.PENDING
        assert [(e.recipient, e.amount) for e in record.entries] == [("bob", 30.0), ("alice", 10.0)]
        assert record.total_amount == 40.0
        assert record.recipient_count == 2
        assert record.metadata["eligible_staker_count"] == 2
        assert record.metadata["staking_model"] == "fixed_apr"
        assert record.created_at == NOW

    def test_entries_verify(self, config):
        stakers = [StakerInfo(f"s{i}", 100.0 + i) for i in range(7)]
        record = build_staking_record(calculate_staking_rewards(stakers, config=config, now=NOW))
        assert all(record.verify_entry(i) for i in range(record.recipient_count))
        assert not record.verify_entry(99)

    def test_deterministic(self, config):
        stakers = [StakerInfo("alice", 1000.0), StakerInfo("bob", 250.0)]
        a = build_staking_record(calculate_staking_rewards(stakers, config=config, now=NOW))
        b = build_staking_record(calculate_staking_rewards(stakers, config=config, now=NOW))
        assert a.to_dict() == b.to_dict()

    def test_empty_week(self, config):
        record = build_staking_record(calculate_staking_rewards([], config=config, now=NOW))
        assert record.entries == []
        assert record.merkle_root == ""
        assert record.total_amount == 0

    def test_settle_completed(self, config):
        record = build_staking_record(
            calculate_staking_rewards([StakerInfo("alice", 1000.0)], config=config, now=NOW)
        )
        settled = record.settle(["2026-W15"], RecordStatus.COMPLETED, tx_id="tx-9")
        assert settled.status == RecordStatus.COMPLETED
        assert settled.entries[0].tx_id == "tx-9"
        assert settled.metadata["tx_ids"] == ["tx-9"]
        assert settled.merkle_root == record.merkle_root
        assert record.status == RecordStatus.PENDING

    def test_settle_failed(self, config):
        record = build_staking_record(
            calculate_staking_rewards([StakerInfo("alice", 1000.0)], config=config, now=NOW)
        )
        failed = record.settle(["2026-W15"], RecordStatus.FAILED, error="broadcast rejected")
        assert failed.status == RecordStatus.FAILED
        assert failed.error == "broadcast rejected"
        assert failed.unsettled() == failed.entries

    def test_to_dict_quantities(self, config):
        record = build_staking_record(
            calculate_staking_rewards([StakerInfo("alice", 1000.0)], config=config, now=NOW)
        )
        data = record.to_dict()
        assert data["total_amount"] == "10.000"
        assert data["entries"] == [{
            "reference": "2026-W15", "recipient": "alice", "amount": "10.000",
            "status": "pending", "tx_id": None,
        }]
        assert data["status"] == "pending"


# ============================================================================
# CURATOR RECORDS
# ============================================================================

class TestCuratorRecord:
    """Tests for curator day records."""

    def test_keys(self):
        assert staking_record_key("2026-W15") == "staking-2026-W15"
        assert curator_record_key("2026-04-09") == "curator-rewards-2026-04-09"

    def test_build(self, config):
        batch = process_curator_votes([vote(1), vote(2)], {}, config, now=NOW)
        record = build_curator_record(batch, "2026-04-09")
        assert record.key == "curator-rewards-2026-04-09"
        assert [e.reference for e in record.entries] == batch.processed_vote_ids
        assert record.total_amount == 200.0
        assert record.metadata["curator_counts"] == {"curator1": 2}

    def test_merge_accumulates(self, config):
        first = process_curator_votes([vote(1)], {}, config, now=NOW)
        second = process_curator_votes([vote(2), vote(3)], first.updated_stats, config, now=NOW + 60)
        merged = merge_curator_records(
            build_curator_record(first, "2026-04-09"),
            build_curator_record(second, "2026-04-09"),
        )
        assert merged.recipient_count == 3
        assert merged.total_amount == 300.0
        assert merged.metadata["curator_counts"] == {"curator1": 3}
        assert len(merged.metadata["processed_vote_ids"]) == 3
        assert merged.created_at == NOW
        assert all(merged.verify_entry(i) for i in range(3))

    def test_merge_dedupes_entries(self, config):
        batch = process_curator_votes([vote(1)], {}, config, now=NOW)
        record = build_curator_record(batch, "2026-04-09")
        merged = merge_curator_records(record, record)
        assert merged.recipient_count == 1
        assert merged.metadata["processed_vote_ids"] == batch.processed_vote_ids

    def test_merge_rejects_key_mismatch(self, config):
        batch = process_curator_votes([vote(1)], {}, config, now=NOW)
        with pytest.raises(ValueError):
            merge_curator_records(
                build_curator_record(batch, "2026-04-09"),
                build_curator_record(batch, "2026-04-10"),
            )

    def test_merge_keeps_earlier_failure(self, config):
        first = process_curator_votes([vote(1)], {}, config, now=NOW)
        failed = build_curator_record(first, "2026-04-09").settle(
            first.processed_vote_ids, RecordStatus.FAILED, error="node down"
        )
        second = process_curator_votes([vote(2)], first.updated_stats, config, now=NOW + 60)
        merged = merge_curator_records(failed, build_curator_record(second, "2026-04-09"))
        paid = merged.settle(second.processed_vote_ids, RecordStatus.COMPLETED, tx_id="tx-2")

        assert merged.status == RecordStatus.FAILED
        assert paid.status == RecordStatus.FAILED
        assert paid.error == "node down"
        assert [e.status for e in paid.entries] == [RecordStatus.FAILED, RecordStatus.COMPLETED]
        assert paid.entries[1].tx_id == "tx-2"
        assert paid.metadata["tx_ids"] == ["tx-2"]
        assert [e.reference for e in paid.unsettled()] == first.processed_vote_ids

    def test_merge_carries_tx_ids(self, config):
        first = process_curator_votes([vote(1)], {}, config, now=NOW)
        done = build_curator_record(first, "2026-04-09").settle(
            first.processed_vote_ids, RecordStatus.COMPLETED, tx_id="tx-1"
        )
        second = process_curator_votes([vote(2)], first.updated_stats, config, now=NOW + 60)
        merged = merge_curator_records(done, build_curator_record(second, "2026-04-09"))
        assert merged.status == RecordStatus.PENDING
        assert merged.error is None
        assert merged.metadata["tx_ids"] == ["tx-1"]
        assert merged.entries[0].tx_id == "tx-1"

    def test_worst_status(self):
        assert worst_status([RecordStatus.COMPLETED, RecordStatus.FAILED], RecordStatus.PENDING) == RecordStatus.FAILED
        assert worst_status([RecordStatus.COMPLETED, RecordStatus.PENDING], RecordStatus.COMPLETED) == RecordStatus.PENDING
        assert worst_status([], RecordStatus.COMPLETED) == RecordStatus.COMPLETED

    def test_entry_to_dict(self):
        entry = RecordEntry("vote-1", "alice", 100)
        assert entry.to_dict() == {
            "reference": "vote-1", "recipient": "alice", "amount": "100.000",
            "status": "pending", "tx_id": None,
        }
