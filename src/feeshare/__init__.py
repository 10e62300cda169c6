"""
feeshare - Creator-fee distribution and buyback engine for bonding-curve launches

Built on solana-py and trio with:
- Shareholder config setup (agent / platform treasury split)
- Vault balance and threshold monitoring
- Blockhash-aware transaction retry
- Scheduled, mutually exclusive auto-distribution
- Buy-and-burn of the agent share for opted-in assets

Usage:
    from feeshare import FeeShareConfig, ChainClient, FeeSharingService

    config = FeeShareConfig.from_env()
    config.validate()

    async with ChainClient(config.rpc_url) as chain:
        service = FeeSharingService(chain, config)
        result = await service.setup_fee_sharing(mint, agent_wallet)

Scheduler Usage:
    from feeshare import DistributionScheduler, JsonAssetStore

    scheduler = DistributionScheduler(JsonAssetStore("assets.json"), service, buyback)

    async with trio.open_nursery() as nursery:
        await scheduler.start(nursery)

Metrics Usage:
    prometheus_output = scheduler.metrics.collect()
"""

from .config import FeeShareConfig, ConfigError
from .rpc import ChainClient, ChainError, BlockhashExpiredError
from .assets import (
    Asset,
    AssetStatus,
    AssetStore,
    InMemoryAssetStore,
    JsonAssetStore,
    AuditLog,
    NullAuditLog,
    JsonlAuditLog,
)
from .results import (
    Ok,
    Err,
    SetupSuccess,
    SetupFailure,
    UpdateSuccess,
    UpdateFailure,
    DistributionSuccess,
    DistributionFailure,
    BuybackSuccess,
    BuybackFailure,
    AssetOutcome,
    BatchResult,
)
from .blockchain import (
    FeeSharingService,
    BuybackService,
    TransactionSender,
    TransactionFailed,
    Shareholder,
    InvalidShareSplit,
)
from .pacing import Pacer, FixedDelayPacer
from .metrics import EngineMetrics
from .scheduler import DistributionScheduler, SchedulerRunState

__version__ = "0.1.0"
__all__ = [
    # Configuration
    "FeeShareConfig",
    "ConfigError",
    # Chain access
    "ChainClient",
    "ChainError",
    "BlockhashExpiredError",
    # Collaborators
    "Asset",
    "AssetStatus",
    "AssetStore",
    "InMemoryAssetStore",
    "JsonAssetStore",
    "AuditLog",
    "NullAuditLog",
    "JsonlAuditLog",
    # Results
    "Ok",
    "Err",
    "SetupSuccess",
    "SetupFailure",
    "UpdateSuccess",
    "UpdateFailure",
    "DistributionSuccess",
    "DistributionFailure",
    "BuybackSuccess",
    "BuybackFailure",
    "AssetOutcome",
    "BatchResult",
    # Services
    "FeeSharingService",
    "BuybackService",
    "TransactionSender",
    "TransactionFailed",
    "Shareholder",
    "InvalidShareSplit",
    # Scheduling
    "Pacer",
    "FixedDelayPacer",
    "EngineMetrics",
    "DistributionScheduler",
    "SchedulerRunState",
]
