"""
feeshare/scheduler.py

Recurring distribution of accumulated creator fees.

Every tick the scheduler walks the active assets in store order, one at a
time:

    has_shareholder_config?  no  -> skip
    vault balance >= auto threshold?  no -> skip
    distribute_creator_fees
    buyback_enabled and distribution succeeded -> execute_buyback(agent share)
    pace

At most one run is active at any time. A tick that fires while a run is in
progress is skipped; a manual run requested while another run is active
returns a skipped BatchResult. Errors on one asset are recorded against that
asset and the run moves on.

Usage:
    scheduler = DistributionScheduler(asset_store, fee_sharing, buyback, config)

    async with trio.open_nursery() as nursery:
        await scheduler.start(nursery)
        ...
        await scheduler.stop()        # in-flight run still completes

    result = await scheduler.trigger_manual_run()
"""

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Optional, Tuple, TYPE_CHECKING

import trio

from .assets import Asset, AssetStore, AuditEvent, AuditLog, NullAuditLog
from .config import FeeShareConfig
from .metrics import EngineMetrics
from .pacing import FixedDelayPacer, Pacer
from .results import AssetOutcome, BatchResult, BuybackSuccess, DistributionSuccess
from .rpc.client import lamports_to_sol

if TYPE_CHECKING:
    from .blockchain.buyback import BuybackService
    from .blockchain.fee_sharing import FeeSharingService

logger = logging.getLogger("feeshare.scheduler")


class SchedulerRunState(Enum):
    IDLE = "idle"
    RUNNING = "running"


class AssetStage(Enum):
    """Furthest step one asset reached during a run."""
    SKIPPED = "skipped"            # no sharing config
    CHECKED = "checked"            # vault balance read
    DISTRIBUTING = "distributing"  # distribution submitted


class DistributionScheduler:
    """
    Periodic, mutually exclusive auto-distribution across active assets.

    The timer loop runs in a caller-supplied nursery. stop() cancels only
    the timer; each run is spawned separately and shielded, so a run that
    has started always finishes.
    """

    def __init__(
        self,
        assets: AssetStore,
        fee_sharing: "FeeSharingService",
        buyback: Optional["BuybackService"] = None,
        config: Optional[FeeShareConfig] = None,
        audit: Optional[AuditLog] = None,
        metrics: Optional[EngineMetrics] = None,
        pacer: Optional[Pacer] = None,
    ):
        """
        Initialize DistributionScheduler.

        Args:
            assets: Source of active assets
            fee_sharing: Vault reads and distribution
            buyback: Buy-and-burn for assets with buyback_enabled (None disables)
            config: Threshold and interval settings (defaults to fee_sharing.config)
            audit: Trail for run summaries
            metrics: Counters updated by every run
            pacer: Delay policy after each asset that reached distribution
        """
        self.assets = assets
        self.fee_sharing = fee_sharing
        self.buyback = buyback
        self.config = config or fee_sharing.config
        self.audit = audit or NullAuditLog()
        self.metrics = metrics or EngineMetrics()
        self.pacer = pacer or FixedDelayPacer(self.config.distribution_delay_seconds)

        self.run_state = SchedulerRunState.IDLE
        self._nursery: Optional[trio.Nursery] = None
        self._timer_scope: Optional[trio.CancelScope] = None
        self._last_result: Optional[BatchResult] = None

    @property
    def is_running(self) -> bool:
        return self.run_state == SchedulerRunState.RUNNING

    @property
    def is_scheduled(self) -> bool:
        return self._timer_scope is not None

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def start(self, nursery: trio.Nursery) -> bool:
        """
        Arm the recurring timer.

        Args:
            nursery: Nursery that owns the timer and the spawned runs

        Returns:
            True if started (or already started)
        """
        if self._timer_scope is not None:
            return True

        self._nursery = nursery
        self._timer_scope = trio.CancelScope()
        nursery.start_soon(self._timer_loop, self._timer_scope)

        logger.info(
            f"Distribution scheduler started (every {self.config.tick_interval_seconds:g}s, "
            f"threshold {lamports_to_sol(self.config.auto_distribute_threshold_lamports)} SOL)"
        )
        return True

    async def stop(self) -> None:
        """Disarm the timer. A run already in progress completes."""
        if self._timer_scope is not None:
            self._timer_scope.cancel()
            self._timer_scope = None
        logger.info("Distribution scheduler stopped")

    async def _timer_loop(self, scope: trio.CancelScope) -> None:
        with scope:
            while True:
                await trio.sleep(self.config.tick_interval_seconds)
                self._nursery.start_soon(self.run_tick)

    # ========================================================================
    # RUNS
    # ========================================================================

    @contextmanager
    def _claim_run(self) -> Iterator[bool]:
        """Yield True if this caller now owns the run; always releases it."""
        if self.run_state == SchedulerRunState.RUNNING:
            yield False
            return

        self.run_state = SchedulerRunState.RUNNING
        try:
            yield True
        finally:
            self.run_state = SchedulerRunState.IDLE

    async def run_tick(self) -> BatchResult:
        """One scheduled run; skipped if another run is in progress."""
        return await self._guarded_run("scheduled")

    async def trigger_manual_run(self) -> BatchResult:
        """
        Run the batch now and return the full per-asset result.

        Shares the run guard with scheduled ticks: if a run is already in
        progress the result has skipped=True and no asset is touched.
        """
        return await self._guarded_run("manual")

    async def _guarded_run(self, trigger: str) -> BatchResult:
        with self._claim_run() as acquired:
            if not acquired:
                logger.warning(f"Distribution run in progress, skipping {trigger} run")
                self.metrics.record_skipped_run()
                return BatchResult(skipped=True)

            with trio.CancelScope(shield=True):
                logger.info(f"Starting {trigger} fee distribution run")
                result = await self._run_batch()

        self._last_result = result
        self.audit.record(
            AuditEvent.RUN, "", {"trigger": trigger, "success": not result.errors, **result.to_dict()}
        )
        return result

    async def _run_batch(self) -> BatchResult:
        started = trio.current_time()
        result = BatchResult()
        self.pacer.reset()

        try:
            assets = await self.assets.list_active_assets()
        except Exception as e:
            logger.error(f"Failed to list active assets: {e}")
            result.run_error = f"Failed to list active assets: {e}"
            assets = []

        for asset in assets:
            outcome, stage = await self._process_asset(asset)
            if stage != AssetStage.SKIPPED:
                result.tokens_checked += 1

            if outcome is not None:
                result.results.append(outcome)
                if outcome.success:
                    result.tokens_distributed += 1
                    result.total_distributed_lamports += outcome.amount_lamports or 0
                if isinstance(outcome.buyback, BuybackSuccess):
                    result.buybacks_executed += 1

            if stage == AssetStage.DISTRIBUTING:
                await self.pacer.wait()

        elapsed = trio.current_time() - started
        result.duration_ms = int(elapsed * 1000)
        self.metrics.record_run(result.tokens_checked, elapsed)

        logger.info(
            f"Fee distribution run complete: {result.tokens_distributed}/{result.tokens_checked} distributed, "
            f"{lamports_to_sol(result.total_distributed_lamports)} SOL total, "
            f"{result.buybacks_executed} buybacks, {len(result.errors)} errors"
        )
        return result

    async def _process_asset(self, asset: Asset) -> Tuple[Optional[AssetOutcome], AssetStage]:
        """
        Drive one asset through distribution and optional buyback.

        Returns:
            (outcome, stage). outcome is None for assets skipped before
            distribution; stage is the furthest step the asset reached.
        """
        mint = asset.mint
        stage = AssetStage.SKIPPED
        try:
            if not await self.fee_sharing.has_shareholder_config(mint):
                logger.debug(f"{asset.symbol}: no fee sharing config, skipping")
                return None, stage

            stage = AssetStage.CHECKED
            balance = await self.fee_sharing.get_creator_vault_balance(mint)
            if balance < self.config.auto_distribute_threshold_lamports:
                logger.debug(f"{asset.symbol}: balance {balance} below auto threshold")
                return None, stage

            logger.info(f"{asset.symbol}: distributing {lamports_to_sol(balance)} SOL")
            stage = AssetStage.DISTRIBUTING
            distribution = await self.fee_sharing.distribute_creator_fees(mint)
            self.metrics.record_distribution(
                distribution.success,
                distribution.amount_distributed if isinstance(distribution, DistributionSuccess) else 0,
            )

            if not isinstance(distribution, DistributionSuccess):
                return AssetOutcome(mint, asset.symbol, False, error=distribution.error), stage

            outcome = AssetOutcome(
                mint,
                asset.symbol,
                True,
                amount_lamports=distribution.amount_distributed,
                tx_signature=distribution.tx_signature,
            )

            if asset.buyback_enabled and self.buyback is not None:
                agent_share = self.buyback.calculate_agent_share(distribution.amount_distributed)
                logger.info(f"{asset.symbol}: buyback with {lamports_to_sol(agent_share)} SOL")
                buyback = await self.buyback.execute_buyback(mint, agent_share)
                outcome.buyback = buyback
                if isinstance(buyback, BuybackSuccess):
                    self.metrics.record_buyback(True, buyback.tokens_burned)
                else:
                    self.metrics.record_buyback(False)
                    outcome.error = f"Buyback failed: {buyback.error}"

            return outcome, stage

        except Exception as e:
            logger.error(f"{asset.symbol}: fee processing failed: {e}")
            return AssetOutcome(mint, asset.symbol, False, error=str(e)), stage

    # ========================================================================
    # STATISTICS
    # ========================================================================

    def get_stats(self) -> dict:
        """Get scheduler statistics."""
        return {
            "scheduled": self.is_scheduled,
            "run_state": self.run_state.value,
            "tick_interval_seconds": self.config.tick_interval_seconds,
            "auto_distribute_threshold_lamports": self.config.auto_distribute_threshold_lamports,
            "last_run": self._last_result.to_dict() if self._last_result else None,
            "metrics": self.metrics.get_stats(),
        }
