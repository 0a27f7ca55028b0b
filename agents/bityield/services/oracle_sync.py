"""
Oracle Sync - keeps the on-chain pool oracle close to live APY/TVL figures.

Every cycle re-aggregates, picks one representative pool per tracked
protocol, converts it to (basis points, sats) and pushes an update only
when the change against the last pushed baseline is significant. A single
asyncio.Lock is the in-progress guard: a trigger arriving while a cycle
runs is dropped, never queued, and the baseline is only touched under it.
"""
import asyncio
from datetime import datetime, timezone
from typing import Protocol
from agents.bityield.models.schemas import Opportunity, OracleReading, SyncResult, SyncStats
from agents.bityield.services.aggregator import YieldAggregator
from agents.bityield.errors import ConfigurationError
from agents.bityield.config import (
    DUST_POOL_TVL_USD,
    MIN_APY_CHANGE_BPS,
    MIN_TVL_CHANGE_RATIO,
    ORACLE_SYNC_INTERVAL,
    SATS_PER_BTC,
    TRACKED_POOLS,
)
from shared.utils import scheduler
import structlog

logger = structlog.get_logger()

MAX_APY_BPS = 10_000
SYNC_JOB_ID = "oracle_sync"


class OracleSubmitter(Protocol):
    def submit(self, apy_a: int, apy_b: int, tvl_a: int, tvl_b: int) -> str: ...

    def read_state(self) -> dict: ...


class PriceSource(Protocol):
    async def get_btc_usd(self) -> float: ...


def select_tracked_pool(
    opportunities: list[Opportunity],
    protocol: str,
    name_tokens: tuple[str, ...],
) -> Opportunity | None:
    """Most liquid pool of `protocol` whose name has every token, ignoring dust."""
    candidates = [
        opp for opp in opportunities
        if opp.protocol == protocol
        and all(token in opp.pool_name for token in name_tokens)
        and opp.tvl > DUST_POOL_TVL_USD
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda o: o.tvl)


def to_reading(opp: Opportunity | None, btc_usd: float) -> OracleReading:
    if opp is None:
        return OracleReading(apy_bps=0, tvl_sats=0)
    apy_bps = min(MAX_APY_BPS, int(round(opp.apy * 100)))
    tvl_sats = int(round(opp.tvl / btc_usd * SATS_PER_BTC))
    return OracleReading(apy_bps=apy_bps, tvl_sats=tvl_sats)


def tvl_change_ratio(old_sats: int, new_sats: int) -> float:
    if old_sats == 0:
        return 0.0 if new_sats == 0 else float("inf")
    return abs(new_sats - old_sats) / old_sats


def needs_push(
    baseline: dict[str, OracleReading] | None,
    reading: dict[str, OracleReading],
) -> tuple[bool, str]:
    """Significance test. Returns (push, reason)."""
    if baseline is None:
        return True, "no_baseline"

    for protocol, new in reading.items():
        old = baseline.get(protocol)
        if old is None:
            return True, f"new_protocol:{protocol}"
        if abs(new.apy_bps - old.apy_bps) >= MIN_APY_CHANGE_BPS:
            return True, f"apy_change:{protocol}"
        if tvl_change_ratio(old.tvl_sats, new.tvl_sats) >= MIN_TVL_CHANGE_RATIO:
            return True, f"tvl_change:{protocol}"

    return False, "below_threshold"


class OracleSyncPolicy:
    def __init__(
        self,
        aggregator: YieldAggregator,
        price_feed: PriceSource,
        submitter: OracleSubmitter,
        tracked_pools: dict[str, tuple[str, ...]] = TRACKED_POOLS,
        interval: int = ORACLE_SYNC_INTERVAL,
    ):
        if len(tracked_pools) != 2:
            raise ValueError("Oracle sync tracks exactly two protocols")
        self.aggregator = aggregator
        self.price_feed = price_feed
        self.submitter = submitter
        self.tracked_pools = dict(tracked_pools)
        self.interval = interval
        self.stats = SyncStats()
        self._baseline: dict[str, OracleReading] | None = None
        self._guard = asyncio.Lock()
        self._running = False

    @property
    def syncing(self) -> bool:
        return self._guard.locked()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def baseline(self) -> dict[str, OracleReading] | None:
        return dict(self._baseline) if self._baseline is not None else None

    def start(self):
        if self._running:
            logger.warning("oracle_sync_already_running")
            return
        scheduler.add_interval_job(
            self.scheduled_cycle,
            seconds=self.interval,
            job_id=SYNC_JOB_ID,
            next_run_time=datetime.now(timezone.utc),
        )
        self._running = True
        logger.info(
            "oracle_sync_started",
            interval_seconds=self.interval,
            apy_threshold_bps=MIN_APY_CHANGE_BPS,
            tvl_threshold=MIN_TVL_CHANGE_RATIO,
        )

    def stop(self):
        if scheduler.remove_job(SYNC_JOB_ID):
            logger.info("oracle_sync_stopped")
        self._running = False

    async def read_on_chain(self) -> dict | None:
        """Values the contract holds right now, or None when it can't be read."""
        try:
            return await asyncio.to_thread(self.submitter.read_state)
        except ConfigurationError:
            return None
        except Exception as e:
            logger.warning("oracle_read_failed", error=str(e))
            return None

    async def scheduled_cycle(self):
        try:
            await self.run_sync_cycle()
        except Exception as e:
            logger.error("oracle_sync_job_failed", error=str(e))

    async def run_sync_cycle(self) -> SyncResult:
        if self._guard.locked():
            logger.debug("oracle_sync_skipped_in_progress")
            return SyncResult(pushed=False, reason="sync_in_progress")
        async with self._guard:
            return await self._cycle()

    async def force_sync_cycle(self) -> SyncResult:
        """Clear the baseline and sync, so the evaluation always pushes."""
        if self._guard.locked():
            logger.debug("oracle_force_sync_skipped_in_progress")
            return SyncResult(pushed=False, reason="sync_in_progress")
        async with self._guard:
            logger.info("oracle_force_sync")
            self._baseline = None
            return await self._cycle()

    async def _read_current(self) -> dict[str, OracleReading] | None:
        aggregated = await self.aggregator.aggregate()
        opportunities = aggregated.opportunities
        selected = {
            protocol: select_tracked_pool(opportunities, protocol, tokens)
            for protocol, tokens in self.tracked_pools.items()
        }
        if all(opp is None for opp in selected.values()):
            return None

        btc_usd = await self.price_feed.get_btc_usd()
        reading = {protocol: to_reading(opp, btc_usd) for protocol, opp in selected.items()}
        for protocol, opp in selected.items():
            if opp is None:
                logger.warning("tracked_pool_missing", protocol=protocol)
        logger.info(
            "oracle_reading",
            btc_usd=btc_usd,
            **{p: {"apy_bps": r.apy_bps, "tvl_sats": r.tvl_sats} for p, r in reading.items()},
        )
        return reading

    def _record_failure(self, error: str) -> None:
        self.stats.failed_syncs += 1
        self.stats.last_error = error

    def _record_success(self) -> None:
        self.stats.total_syncs += 1
        self.stats.last_successful_sync = datetime.now(timezone.utc)
        self.stats.last_error = None

    async def _cycle(self) -> SyncResult:
        self.stats.last_sync_attempt = datetime.now(timezone.utc)

        try:
            reading = await self._read_current()
        except Exception as e:
            self._record_failure(str(e))
            logger.error("oracle_fetch_failed", error=str(e))
            return SyncResult(pushed=False, reason="fetch_failed")

        if reading is None:
            self._record_failure("No tracked pools found")
            logger.warning("oracle_no_tracked_pools", tracked=list(self.tracked_pools))
            return SyncResult(pushed=False, reason="no_tracked_pools")

        push, reason = needs_push(self._baseline, reading)
        if not push:
            self._record_success()
            logger.info("oracle_change_below_threshold")
            return SyncResult(pushed=False, reason=reason, reading=reading)

        protocol_a, protocol_b = self.tracked_pools
        a, b = reading[protocol_a], reading[protocol_b]
        try:
            tx_hash = await asyncio.to_thread(
                self.submitter.submit, a.apy_bps, b.apy_bps, a.tvl_sats, b.tvl_sats
            )
        except ConfigurationError as e:
            self._record_failure(str(e))
            logger.error("oracle_not_configured", error=str(e))
            raise
        except Exception as e:
            # Baseline stays put; the next cycle compares against it again
            self._record_failure(str(e))
            logger.error("oracle_submission_failed", error=str(e), reason=reason)
            return SyncResult(pushed=False, reason="submission_failed", reading=reading)

        self._baseline = reading
        self._record_success()
        logger.info("oracle_synced", tx_hash=tx_hash, reason=reason)
        return SyncResult(pushed=True, reason=reason, tx_hash=tx_hash, reading=reading)
