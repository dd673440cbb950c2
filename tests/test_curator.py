"""
Tests for medals_rewards/protocol/curator.py

Curator eligibility, daily caps, replay protection and reward tiers.
"""

import pytest
from datetime import datetime, timezone

from medals_rewards.config import RewardsConfig, DEFAULT_LAUNCH_DATE
from medals_rewards.protocol.periods import SECONDS_PER_YEAR
from medals_rewards.protocol.curator import (
    CuratorVote,
    CuratorRewardProcessor,
    SkipReason,
    calculate_curator_reward,
    filter_curator_votes,
    get_curator_reward_amount,
    get_curator_stats_summary,
    get_vote_unique_id,
    is_curator,
    process_curator_votes,
)


NOW = int(datetime(2026, 4, 9, 15, 0, tzinfo=timezone.utc).timestamp())


@pytest.fixture
def config():
    return RewardsConfig(curator_accounts=["curator1", "curator2"], max_votes_per_day=5)


def make_vote(voter="curator1", author="author1", permlink="post-1", weight=10000, block_num=100):
    return CuratorVote(
        voter=voter,
        author=author,
        permlink=permlink,
        weight=weight,
        timestamp=NOW - 60,
        block_num=block_num,
        transaction_id=f"tx-{voter}-{block_num}",
    )


# ============================================================================
# ELIGIBILITY
# ============================================================================

class TestEligibility:
    """Tests for single-vote decisions."""

    def test_curator_under_cap(self, config):
        decision = calculate_curator_reward("curator1", 0, config, now=NOW)
        assert decision.eligible is True
        assert decision.amount == 100.0
        assert decision.reason is None

    def test_not_curator(self, config):
        decision = calculate_curator_reward("random", 0, config, now=NOW)
        assert decision.eligible is False
        assert decision.amount == 0
        assert decision.reason == SkipReason.NOT_CURATOR
        assert decision.message == "random is not a designated curator"

    def test_at_cap(self, config):
        decision = calculate_curator_reward("curator1", 5, config, now=NOW)
        assert decision.eligible is False
        assert decision.reason == SkipReason.DAILY_LIMIT
        assert decision.message == "Curator curator1 has reached daily vote limit (5)"

    def test_last_vote_under_cap(self, config):
        assert calculate_curator_reward("curator1", 4, config, now=NOW).eligible is True

    def test_is_curator(self, config):
        assert is_curator("curator2", config)
        assert not is_curator("curator3", config)

    def test_default_curators(self):
        assert is_curator("bozz")


# ============================================================================
# REWARD TIERS
# ============================================================================

class TestRewardTiers:
    """Reward per vote steps up in platform year 4."""

    def test_years_one_to_three(self, config):
        assert get_curator_reward_amount(config, DEFAULT_LAUNCH_DATE) == 100.0
        year_three = DEFAULT_LAUNCH_DATE + int(2.5 * SECONDS_PER_YEAR)
        assert get_curator_reward_amount(config, year_three) == 100.0

    def test_year_four_onwards(self, config):
        year_four = DEFAULT_LAUNCH_DATE + int(3 * SECONDS_PER_YEAR) + 1
        assert get_curator_reward_amount(config, year_four) == 150.0
        year_six = DEFAULT_LAUNCH_DATE + int(5.5 * SECONDS_PER_YEAR)
        assert get_curator_reward_amount(config, year_six) == 150.0


# ============================================================================
# PRE-FILTER
# ============================================================================

class TestFilter:
    """Tests for filter_curator_votes."""

    def test_drops_non_curators(self, config):
        votes = [make_vote(voter="curator1"), make_vote(voter="someone", block_num=101)]
        kept = filter_curator_votes(votes, set(), config)
        assert [v.voter for v in kept] == ["curator1"]

    def test_drops_non_positive_weight(self, config):
        votes = [
            make_vote(weight=0, block_num=1),
            make_vote(weight=-5000, block_num=2),
            make_vote(weight=1, block_num=3),
        ]
        kept = filter_curator_votes(votes, set(), config)
        assert [v.block_num for v in kept] == [3]

    def test_drops_processed(self, config):
        vote = make_vote()
        kept = filter_curator_votes([vote], {get_vote_unique_id(vote)}, config)
        assert kept == []

    def test_drops_repeats_in_batch(self, config):
        vote = make_vote()
        kept = filter_curator_votes([vote, vote], set(), config)
        assert kept == [vote]

    def test_same_post_different_block_is_new(self, config):
        kept = filter_curator_votes(
            [make_vote(block_num=100), make_vote(block_num=200)], set(), config
        )
        assert len(kept) == 2

    def test_unique_id_format(self):
        vote = make_vote(voter="curator1", author="bob", permlink="my-post", block_num=42)
        assert get_vote_unique_id(vote) == "curator1-bob-my-post-42"


# ============================================================================
# CAP STAGE
# ============================================================================

class TestProcess:
    """Tests for process_curator_votes."""

    def test_rewards_built(self, config):
        vote = make_vote(author="alice", permlink="match-report")
        batch = process_curator_votes([vote], {}, config, now=NOW)
        assert len(batch.rewards) == 1
        reward = batch.rewards[0]
        assert reward.author == "alice"
        assert reward.curator == "curator1"
        assert reward.permlink == "match-report"
        assert reward.amount == 100.0
        assert reward.vote_timestamp == NOW - 60
        assert reward.processed_at == NOW
        assert reward.transaction_id == "tx-curator1-100"
        assert reward.vote_id == get_vote_unique_id(vote)
        assert batch.updated_stats == {"curator1": 1}

    def test_cap_reached_mid_batch(self, config):
        """Starting at 4 of 5, only the first of three votes is paid."""
        votes = [make_vote(block_num=i) for i in (1, 2, 3)]
        batch = process_curator_votes(votes, {"curator1": 4}, config, now=NOW)
        assert len(batch.rewards) == 1
        assert batch.rewards[0].vote_id == get_vote_unique_id(votes[0])
        assert batch.updated_stats["curator1"] == 5
        assert [s.reason for s in batch.skipped] == [SkipReason.DAILY_LIMIT] * 2

    def test_cap_bound_holds(self, config):
        votes = [make_vote(block_num=i) for i in range(20)]
        batch = process_curator_votes(votes, {}, config, now=NOW)
        assert len(batch.rewards) == 5
        assert batch.updated_stats["curator1"] == 5

    def test_curators_counted_independently(self, config):
        votes = [make_vote(voter="curator1", block_num=1), make_vote(voter="curator2", block_num=2)]
        batch = process_curator_votes(votes, {"curator1": 5}, config, now=NOW)
        assert [r.curator for r in batch.rewards] == ["curator2"]
        assert batch.updated_stats == {"curator1": 5, "curator2": 1}

    def test_unfiltered_non_curator_is_skipped(self, config):
        batch = process_curator_votes([make_vote(voter="stranger")], {}, config, now=NOW)
        assert batch.rewards == []
        assert batch.skipped[0].reason == SkipReason.NOT_CURATOR

    def test_input_counters_not_mutated(self, config):
        counts = {"curator1": 2}
        process_curator_votes([make_vote()], counts, config, now=NOW)
        assert counts == {"curator1": 2}

    def test_order_decides_who_is_paid(self, config):
        """The cap is order-dependent; the earliest votes win."""
        a = make_vote(author="alice", block_num=1)
        b = make_vote(author="bob", block_num=2)
        first = process_curator_votes([a, b], {"curator1": 4}, config, now=NOW)
        second = process_curator_votes([b, a], {"curator1": 4}, config, now=NOW)
        assert first.rewards[0].author == "alice"
        assert second.rewards[0].author == "bob"

    def test_processed_ids_and_total(self, config):
        votes = [make_vote(block_num=1), make_vote(block_num=2)]
        batch = process_curator_votes(votes, {}, config, now=NOW)
        assert batch.processed_vote_ids == [get_vote_unique_id(v) for v in votes]
        assert batch.total_rewarded == 200.0

    def test_non_list_raises(self, config):
        with pytest.raises(TypeError):
            process_curator_votes(make_vote(), {}, config, now=NOW)

    def test_empty_batch(self, config):
        batch = process_curator_votes([], {"curator1": 3}, config, now=NOW)
        assert batch.rewards == []
        assert batch.updated_stats == {"curator1": 3}

    def test_filter_then_process_rejects_replay(self, config):
        """A vote processed in an earlier batch earns nothing the second time."""
        processor = CuratorRewardProcessor(config)
        vote = make_vote()
        first = processor.process(processor.filter_votes([vote], set()), {}, NOW)
        processed = set(first.processed_vote_ids)
        second = processor.process(processor.filter_votes([vote], processed), first.updated_stats, NOW)
        assert len(first.rewards) == 1
        assert second.rewards == []


# ============================================================================
# STATS SUMMARY
# ============================================================================

class TestStatsSummary:
    """Tests for get_curator_stats_summary."""

    def test_summary(self, config):
        summary = get_curator_stats_summary({"curator1": 3}, config, now=NOW)
        assert [s.curator for s in summary] == ["curator1", "curator2"]
        first = summary[0]
        assert first.date == "2026-04-09"
        assert first.votes_used == 3
        assert first.votes_remaining == 2
        assert first.total_rewarded == 300.0
        assert summary[1].votes_used == 0
        assert summary[1].votes_remaining == 5

    def test_remaining_never_negative(self, config):
        summary = get_curator_stats_summary({"curator1": 9}, config, now=NOW)
        assert summary[0].votes_remaining == 0
