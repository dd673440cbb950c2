"""
medals_rewards/scheduler.py

Reference orchestrator for the reward engine.

The calculators are pure; this module is the caller's side of the contract:
fetch inputs, claim the idempotency key, persist state, hand transfers to the
ledger. Collaborators are abstract so any backend (database, sidechain RPC)
can be plugged in.

Staking flow (weekly):
1. Claim "staking-{week_id}" (conditional create; skip if already claimed)
2. Fetch staker snapshot and rewards-account balance
3. Calculate distribution, build transfers, check solvency
4. Save the record as pending
5. If not a dry run and solvent: submit, then mark completed / failed

Curator flow (every few minutes):
1. Load processed vote ids and today's counters, fetch new votes
2. Pre-filter, verify posts (optional PostVerifier), apply daily caps;
   stop here if nothing earns a reward
3. If not a dry run and solvent: commit ids + counters + record together,
   then submit and settle this batch's entries as completed / failed

Overlapping runs in one process are serialised by a trio.Lock; the store's
claim() guards across processes. Each run is bounded by trio.fail_after.

Usage:
    scheduler = RewardScheduler(
        store=InMemoryRewardsStore(),
        staker_source=my_snapshot_source,
        balance_source=my_balance_source,
        ledger=my_ledger_sink,
    )
    report = trio.run(scheduler.run_staking)
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

import trio

from .config import RewardsConfig
from .ledger.records import (
    DistributionRecord,
    RecordStatus,
    build_curator_record,
    build_staking_record,
    curator_record_key,
    merge_curator_records,
    staking_record_key,
)
from .ledger.transfers import (
    BalanceCheck,
    TransferInstruction,
    build_curator_transfer_operations,
    build_reward_transfer_operations,
    total_transfer_amount,
    validate_rewards_balance,
)
from .protocol.curator import CuratorVote, filter_curator_votes, process_curator_votes
from .protocol.periods import get_daily_key, get_week_id
from .protocol.staking import StakerInfo, calculate_staking_rewards

logger = logging.getLogger("medals_rewards.scheduler")


# ============================================================================
# CONSTANTS
# ============================================================================

DISTRIBUTION_TIMEOUT = 60        # Seconds allowed for one run


def _root_cause(exc: BaseException) -> BaseException:
    # Nurseries wrap child errors in an exception group
    while len(getattr(exc, "exceptions", ())) == 1:
        exc = exc.exceptions[0]
    return exc


# ============================================================================
# COLLABORATORS
# ============================================================================

class StakerSource(ABC):
    """Supplies the staker snapshot."""

    @abstractmethod
    async def fetch_stakers(self) -> List[StakerInfo]:
        """Return every account with a non-zero stake."""
        pass


class VoteSource(ABC):
    """Supplies newly observed votes."""

    @abstractmethod
    async def fetch_votes(self) -> List[CuratorVote]:
        """Return votes observed since the last checkpoint, in chain order."""
        pass


class PostVerifier(ABC):
    """Confirms a voted post belongs to the platform."""

    @abstractmethod
    async def verify_post(self, author: str, permlink: str) -> bool:
        """Return True if author/permlink is a platform post."""
        pass


class BalanceSource(ABC):
    """Reads live token balances."""

    @abstractmethod
    async def get_balance(self, account: str, symbol: str) -> float:
        pass


class LedgerSink(ABC):
    """Submits transfer instructions to the ledger."""

    @abstractmethod
    async def submit(self, operations: List[TransferInstruction]) -> str:
        """
        Submit transfers.

        Returns:
            Transaction id assigned by the ledger
        """
        pass


class RewardsStore(ABC):
    """Persistence for idempotency keys, records and curator state."""

    @abstractmethod
    async def claim(self, key: str) -> bool:
        """Create the key if absent. Returns False if it already existed."""
        pass

    @abstractmethod
    async def release(self, key: str) -> None:
        """Drop a claim made by a run that failed before saving a record."""
        pass

    @abstractmethod
    async def get_record(self, key: str) -> Optional[DistributionRecord]:
        pass

    @abstractmethod
    async def save_record(self, record: DistributionRecord) -> None:
        pass

    @abstractmethod
    async def get_processed_vote_ids(self) -> Set[str]:
        pass

    @abstractmethod
    async def get_daily_counts(self, date_key: str) -> Dict[str, int]:
        pass

    @abstractmethod
    async def commit_curator_batch(
        self,
        date_key: str,
        record: DistributionRecord,
        vote_ids: List[str],
        counts: Dict[str, int],
    ) -> None:
        """Persist record, processed ids and counters atomically."""
        pass


class InMemoryRewardsStore(RewardsStore):
    """
    Dict-backed RewardsStore.

    Used for dry runs and tests; a production store would back claim() with a
    conditional insert.
    """

    def __init__(self):
        self._claims: Set[str] = set()
        self._records: Dict[str, DistributionRecord] = {}
        self._processed_vote_ids: Set[str] = set()
        self._daily_counts: Dict[str, Dict[str, int]] = {}  # date -> curator -> count

    async def claim(self, key: str) -> bool:
        if key in self._claims:
            return False
        self._claims.add(key)
        return True

    async def release(self, key: str) -> None:
        self._claims.discard(key)

    async def get_record(self, key: str) -> Optional[DistributionRecord]:
        return self._records.get(key)

    async def save_record(self, record: DistributionRecord) -> None:
        self._records[record.key] = record

    async def get_processed_vote_ids(self) -> Set[str]:
        return set(self._processed_vote_ids)

    async def get_daily_counts(self, date_key: str) -> Dict[str, int]:
        return dict(self._daily_counts.get(date_key, {}))

    async def commit_curator_batch(
        self,
        date_key: str,
        record: DistributionRecord,
        vote_ids: List[str],
        counts: Dict[str, int],
    ) -> None:
        self._records[record.key] = record
        self._processed_vote_ids.update(vote_ids)
        self._daily_counts[date_key] = dict(counts)

    def get_records(self) -> List[DistributionRecord]:
        """All saved records, in save order."""
        return list(self._records.values())


# ============================================================================
# RUN REPORT
# ============================================================================

class RunStatus(Enum):
    """Outcome of a scheduler run."""
    SKIPPED = "skipped"                      # Already processed / nothing to do
    PENDING = "pending"                      # Calculated and recorded, not submitted
    INSUFFICIENT_FUNDS = "insufficient_funds"
    COMPLETED = "completed"                  # Submitted to the ledger
    FAILED = "failed"


@dataclass
class RunReport:
    """Summary of one scheduler run."""
    kind: str
    key: str
    status: RunStatus
    message: str = ""
    record: Optional[DistributionRecord] = None
    operations: List[TransferInstruction] = field(default_factory=list)
    balance_check: Optional[BalanceCheck] = None
    tx_id: Optional[str] = None
    error: Optional[str] = None
    dry_run: bool = True
    duration: float = 0.0

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "key": self.key,
            "status": self.status.value,
            "message": self.message,
            "record": self.record.to_dict() if self.record else None,
            "operations": [op.to_dict() for op in self.operations],
            "balance_check": self.balance_check.to_dict() if self.balance_check else None,
            "tx_id": self.tx_id,
            "error": self.error,
            "dry_run": self.dry_run,
            "duration": self.duration,
        }


# ============================================================================
# SCHEDULER
# ============================================================================

class RewardScheduler:
    """
    Drives staking and curator runs against pluggable collaborators.

    Never raises for business outcomes; collaborator failures come back as
    RunStatus.FAILED reports.
    """

    def __init__(
        self,
        store: RewardsStore,
        config: Optional[RewardsConfig] = None,
        staker_source: Optional[StakerSource] = None,
        vote_source: Optional[VoteSource] = None,
        post_verifier: Optional[PostVerifier] = None,
        balance_source: Optional[BalanceSource] = None,
        ledger: Optional[LedgerSink] = None,
        timeout: float = DISTRIBUTION_TIMEOUT,
    ):
        """
        Initialize RewardScheduler.

        Args:
            store: Idempotency and state store
            config: Rewards configuration (defaults to RewardsConfig.from_env())
            staker_source: Snapshot source for staking runs
            vote_source: Vote source for curator runs
            post_verifier: Optional check that voted posts are platform posts
            balance_source: Live balance reader for the solvency check
            ledger: Transfer sink; required for non-dry runs
            timeout: Seconds allowed per run
        """
        self.store = store
        self.config = config or RewardsConfig.from_env()
        self.staker_source = staker_source
        self.vote_source = vote_source
        self.post_verifier = post_verifier
        self.balance_source = balance_source
        self.ledger = ledger
        self.timeout = timeout
        self._lock = trio.Lock()

    # ========================================================================
    # STAKING
    # ========================================================================

    async def run_staking(
        self,
        now: Optional[int] = None,
        dry_run: bool = True,
        force: bool = False,
    ) -> RunReport:
        """
        Run the weekly staking distribution.

        Args:
            now: Unix timestamp of the run (defaults to current time)
            dry_run: Record the distribution without submitting transfers
            force: Recalculate even if the week was already claimed

        Returns:
            RunReport
        """
        if now is None:
            now = int(time.time())
        key = staking_record_key(get_week_id(now))
        started = time.monotonic()

        async with self._lock:
            try:
                with trio.fail_after(self.timeout):
                    report = await self._run_staking(key, now, dry_run, force)
            except trio.TooSlowError:
                # The claim is kept: transfers may already be in flight
                logger.error(f"Staking run {key} timed out after {self.timeout}s")
                report = RunReport(
                    kind="staking", key=key, status=RunStatus.FAILED,
                    error=f"Timed out after {self.timeout}s", dry_run=dry_run,
                )

        report.duration = time.monotonic() - started
        return report

    async def _run_staking(self, key: str, now: int, dry_run: bool, force: bool) -> RunReport:
        if self.staker_source is None:
            raise ValueError("staker_source is required for staking runs")
        if not dry_run and (self.ledger is None or self.balance_source is None):
            raise ValueError("ledger and balance_source are required when dry_run is False")

        claimed = await self._claim(key)
        if not claimed and not force:
            return RunReport(
                kind="staking", key=key, status=RunStatus.SKIPPED,
                message=f"Staking rewards already processed for {key}", dry_run=dry_run,
            )

        try:
            stakers, available = await self._fetch_staking_inputs()
        except Exception as e:
            cause = _root_cause(e)
            logger.error(f"Failed to fetch staking inputs for {key}: {cause}")
            await self._release_quietly(key)
            return RunReport(
                kind="staking", key=key, status=RunStatus.FAILED,
                error=str(cause), dry_run=dry_run,
            )

        logger.info(f"Found {len(stakers)} stakers for {key}")
        result = calculate_staking_rewards(stakers, config=self.config, now=now)
        operations = build_reward_transfer_operations(
            result.distributions, symbol=self.config.symbol
        )
        balance_check = self._check_balance(available, total_transfer_amount(operations))

        error = None
        if balance_check and not balance_check.valid:
            logger.warning(balance_check.message)
            error = balance_check.message
        record = build_staking_record(result, RecordStatus.PENDING, error)
        await self.store.save_record(record)

        return await self._finish(
            "staking", key, record, operations, balance_check, dry_run,
            references=[e.reference for e in record.entries],
            message=(
                f"Staking rewards calculated for {result.week_id}: "
                f"{result.eligible_staker_count} eligible stakers"
            ),
        )

    async def _fetch_staking_inputs(self):
        results = {}

        async def fetch_stakers():
            results["stakers"] = await self.staker_source.fetch_stakers()

        async def fetch_balance():
            results["available"] = await self._get_rewards_balance()

        async with trio.open_nursery() as nursery:
            nursery.start_soon(fetch_stakers)
            nursery.start_soon(fetch_balance)

        return results["stakers"], results["available"]

    # ========================================================================
    # CURATION
    # ========================================================================

    async def run_curator(
        self,
        now: Optional[int] = None,
        dry_run: bool = True,
    ) -> RunReport:
        """
        Process new curator votes.

        A dry run computes rewards without committing processed ids or
        counters, so the same votes stay payable on the next real run.

        Args:
            now: Unix timestamp of the run (defaults to current time)
            dry_run: Compute without persisting or submitting

        Returns:
            RunReport
        """
        if now is None:
            now = int(time.time())
        date_key = get_daily_key(now)
        key = curator_record_key(date_key)
        started = time.monotonic()

        async with self._lock:
            try:
                with trio.fail_after(self.timeout):
                    report = await self._run_curator(key, date_key, now, dry_run)
            except trio.TooSlowError:
                logger.error(f"Curator run {key} timed out after {self.timeout}s")
                report = RunReport(
                    kind="curator", key=key, status=RunStatus.FAILED,
                    error=f"Timed out after {self.timeout}s", dry_run=dry_run,
                )

        report.duration = time.monotonic() - started
        return report

    async def _run_curator(self, key: str, date_key: str, now: int, dry_run: bool) -> RunReport:
        if self.vote_source is None:
            raise ValueError("vote_source is required for curator runs")
        if not dry_run and (self.ledger is None or self.balance_source is None):
            raise ValueError("ledger and balance_source are required when dry_run is False")

        try:
            processed_ids = await self.store.get_processed_vote_ids()
            counts = await self.store.get_daily_counts(date_key)
            votes = await self.vote_source.fetch_votes()
        except Exception as e:
            logger.error(f"Failed to load curator inputs for {key}: {e}")
            return RunReport(
                kind="curator", key=key, status=RunStatus.FAILED,
                error=str(e), dry_run=dry_run,
            )

        logger.info(f"Found {len(votes)} total votes")
        fresh = filter_curator_votes(votes, processed_ids, self.config)
        logger.info(f"{len(fresh)} eligible votes after filtering")
        if not fresh:
            return RunReport(
                kind="curator", key=key, status=RunStatus.SKIPPED,
                message="No new curator votes to process", dry_run=dry_run,
            )

        if self.post_verifier is not None:
            fresh = await self._verify_posts(fresh)
            logger.info(f"{len(fresh)} votes on platform posts")
            if not fresh:
                return RunReport(
                    kind="curator", key=key, status=RunStatus.SKIPPED,
                    message="No curator votes on platform posts", dry_run=dry_run,
                )

        batch = process_curator_votes(fresh, counts, self.config, now)
        if not batch.rewards:
            # Nothing to pay: leave the day's record and counters untouched
            return RunReport(
                kind="curator", key=key, status=RunStatus.SKIPPED,
                message=f"No curator rewards, {len(batch.skipped)} votes skipped",
                dry_run=dry_run,
            )
        operations = build_curator_transfer_operations(batch.rewards, self.config.symbol)

        try:
            available = await self._get_rewards_balance()
        except Exception as e:
            logger.error(f"Failed to read rewards balance for {key}: {e}")
            return RunReport(
                kind="curator", key=key, status=RunStatus.FAILED,
                error=str(e), dry_run=dry_run,
            )
        balance_check = self._check_balance(available, total_transfer_amount(operations))

        record = build_curator_record(batch, date_key)
        existing = await self.store.get_record(key)
        if existing is not None:
            record = merge_curator_records(existing, record)

        message = f"{len(batch.rewards)} curator rewards, {len(batch.skipped)} skipped"
        if dry_run:
            return RunReport(
                kind="curator", key=key, status=RunStatus.PENDING, message=message,
                record=record, operations=operations, balance_check=balance_check,
                dry_run=True,
            )
        if balance_check and not balance_check.valid:
            logger.warning(balance_check.message)
            return RunReport(
                kind="curator", key=key, status=RunStatus.INSUFFICIENT_FUNDS,
                message=balance_check.message, record=record, operations=operations,
                balance_check=balance_check, dry_run=False,
            )

        # Commit before submitting: a crash after this point leaves a pending
        # record to reconcile, never an unrecorded payout.
        await self.store.commit_curator_batch(
            date_key, record, batch.processed_vote_ids, batch.updated_stats
        )
        return await self._finish(
            "curator", key, record, operations, balance_check, dry_run, message=message,
            references=batch.processed_vote_ids,
        )

    # ========================================================================
    # HELPERS
    # ========================================================================

    async def _finish(
        self,
        kind: str,
        key: str,
        record: DistributionRecord,
        operations: List[TransferInstruction],
        balance_check: Optional[BalanceCheck],
        dry_run: bool,
        message: str,
        references: List[str],
    ) -> RunReport:
        """Submit this run's transfers and settle the record entries they pay."""
        report = RunReport(
            kind=kind, key=key, status=RunStatus.PENDING, message=message,
            record=record, operations=operations, balance_check=balance_check,
            dry_run=dry_run,
        )
        if balance_check and not balance_check.valid:
            report.status = RunStatus.INSUFFICIENT_FUNDS
            return report
        if dry_run or not operations:
            return report

        try:
            tx_id = await self.ledger.submit(operations)
        except Exception as e:
            logger.error(f"Ledger submission failed for {key}: {e}")
            failed = record.settle(references, RecordStatus.FAILED, error=str(e))
            await self.store.save_record(failed)
            report.record = failed
            report.status = RunStatus.FAILED
            report.error = str(e)
            return report

        settled = record.settle(references, RecordStatus.COMPLETED, tx_id=tx_id)
        await self.store.save_record(settled)
        logger.info(f"Submitted {len(operations)} transfers for {key}: {tx_id}")
        if settled.status != RecordStatus.COMPLETED:
            logger.warning(
                f"Record {key} still has {len(settled.unsettled())} unsettled entries: {settled.error}"
            )
        report.record = settled
        report.status = RunStatus.COMPLETED
        report.tx_id = tx_id
        return report

    async def _verify_posts(self, votes: List[CuratorVote]) -> List[CuratorVote]:
        verified = []
        for vote in votes:
            try:
                ok = await self.post_verifier.verify_post(vote.author, vote.permlink)
            except Exception as e:
                # Unverifiable posts are not paid
                logger.warning(f"Post check failed for {vote.author}/{vote.permlink}: {e}")
                ok = False
            if ok:
                verified.append(vote)
            else:
                logger.debug(f"Dropping vote on non-platform post {vote.author}/{vote.permlink}")
        return verified

    async def _claim(self, key: str) -> bool:
        try:
            return await self.store.claim(key)
        except Exception as e:
            # Assume processed rather than risk paying twice
            logger.error(f"Error checking processed status for {key}: {e}")
            return False

    async def _release_quietly(self, key: str) -> None:
        try:
            await self.store.release(key)
        except Exception as e:
            logger.warning(f"Failed to release claim {key}: {e}")

    async def _get_rewards_balance(self) -> Optional[float]:
        if self.balance_source is None:
            return None
        return await self.balance_source.get_balance(
            self.config.rewards_account, self.config.symbol
        )

    def _check_balance(self, available: Optional[float], required: float) -> Optional[BalanceCheck]:
        if available is None:
            return None
        return validate_rewards_balance(available, required, self.config.symbol)
