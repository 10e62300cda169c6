"""
feeshare/results.py

Result types returned by the fee-sharing services.

Each outcome is a tagged variant: a success class that carries every field
a success requires, and a failure class that carries the error. Callers
discriminate with isinstance (or the `success` tag) instead of probing
optional fields.
"""

from dataclasses import dataclass, field
from typing import Generic, List, Optional, TypeVar, Union

T = TypeVar("T")


# ============================================================================
# READS
# ============================================================================

@dataclass(frozen=True)
class Ok(Generic[T]):
    """A chain read that succeeded."""
    value: T
    ok: bool = field(default=True, init=False)

    def unwrap_or(self, default: T) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    """A chain read that failed; the caller decides the fallback."""
    error: str
    ok: bool = field(default=False, init=False)

    def unwrap_or(self, default: T) -> T:
        return default


ReadResult = Union[Ok[T], Err]


# ============================================================================
# SHAREHOLDER CONFIG SETUP
# ============================================================================

class SetupStage:
    """Stage at which fee-sharing setup stopped."""
    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class SetupSuccess:
    config_address: str
    setup_tx_signature: str
    update_tx_signature: str
    success: bool = field(default=True, init=False)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "config_address": self.config_address,
            "setup_tx_signature": self.setup_tx_signature,
            "update_tx_signature": self.update_tx_signature,
        }


@dataclass(frozen=True)
class SetupFailure:
    """
    Setup stopped at `stage`.

    When stage is UPDATE the config exists on-chain with the platform as
    sole shareholder; setup_tx_signature is set and the update step can
    be retried alone.
    """
    error: str
    stage: str
    config_address: Optional[str] = None
    setup_tx_signature: Optional[str] = None
    success: bool = field(default=False, init=False)

    @property
    def recoverable(self) -> bool:
        return self.stage == SetupStage.UPDATE

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": self.error,
            "stage": self.stage,
            "config_address": self.config_address,
            "setup_tx_signature": self.setup_tx_signature,
        }


SetupResult = Union[SetupSuccess, SetupFailure]


@dataclass(frozen=True)
class UpdateSuccess:
    config_address: str
    update_tx_signature: str
    success: bool = field(default=True, init=False)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "config_address": self.config_address,
            "update_tx_signature": self.update_tx_signature,
        }


@dataclass(frozen=True)
class UpdateFailure:
    error: str
    success: bool = field(default=False, init=False)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.error}


UpdateResult = Union[UpdateSuccess, UpdateFailure]


# ============================================================================
# DISTRIBUTION
# ============================================================================

@dataclass(frozen=True)
class DistributionSuccess:
    tx_signature: str
    amount_distributed: int  # lamports
    success: bool = field(default=True, init=False)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "tx_signature": self.tx_signature,
            "amount_distributed_lamports": self.amount_distributed,
        }


@dataclass(frozen=True)
class DistributionFailure:
    error: str
    success: bool = field(default=False, init=False)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.error}


DistributionResult = Union[DistributionSuccess, DistributionFailure]


# ============================================================================
# BUYBACK
# ============================================================================

@dataclass(frozen=True)
class BuybackSuccess:
    buy_tx_signature: str
    burn_tx_signature: str
    tokens_burned: int
    lamports_spent: int
    success: bool = field(default=True, init=False)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "buy_tx_signature": self.buy_tx_signature,
            "burn_tx_signature": self.burn_tx_signature,
            "tokens_burned": self.tokens_burned,
            "lamports_spent": self.lamports_spent,
        }


@dataclass(frozen=True)
class BuybackFailure:
    """
    Buyback did not complete.

    If the purchase landed but the burn did not, buy_tx_signature and
    tokens_bought identify the unburned tokens held by the platform wallet.
    tokens_bought is None when the purchased balance could not be read.
    """
    error: str
    buy_tx_signature: Optional[str] = None
    tokens_bought: Optional[int] = 0
    success: bool = field(default=False, init=False)

    @property
    def needs_manual_burn(self) -> bool:
        if self.buy_tx_signature is None:
            return False
        return self.tokens_bought is None or self.tokens_bought > 0

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": self.error,
            "buy_tx_signature": self.buy_tx_signature,
            "tokens_bought": self.tokens_bought,
        }


BuybackResult = Union[BuybackSuccess, BuybackFailure]


# ============================================================================
# BATCH
# ============================================================================

@dataclass
class AssetOutcome:
    """Outcome for one asset within a scheduled or manual run."""
    mint: str
    symbol: str
    success: bool
    amount_lamports: Optional[int] = None
    tx_signature: Optional[str] = None
    error: Optional[str] = None
    buyback: Optional[BuybackResult] = None

    def to_dict(self) -> dict:
        return {
            "mint": self.mint,
            "symbol": self.symbol,
            "success": self.success,
            "amount_lamports": self.amount_lamports,
            "tx_signature": self.tx_signature,
            "error": self.error,
            "buyback": self.buyback.to_dict() if self.buyback is not None else None,
        }


@dataclass
class BatchResult:
    """Structured summary of one distribution run."""
    tokens_checked: int = 0
    tokens_distributed: int = 0
    buybacks_executed: int = 0
    total_distributed_lamports: int = 0
    results: List[AssetOutcome] = field(default_factory=list)
    duration_ms: int = 0
    skipped: bool = False
    run_error: Optional[str] = None

    @property
    def errors(self) -> List[str]:
        errors = [self.run_error] if self.run_error else []
        return errors + [f"{r.symbol}: {r.error}" for r in self.results if r.error]

    def to_dict(self) -> dict:
        return {
            "tokens_checked": self.tokens_checked,
            "tokens_distributed": self.tokens_distributed,
            "buybacks_executed": self.buybacks_executed,
            "total_distributed_lamports": self.total_distributed_lamports,
            "duration_ms": self.duration_ms,
            "skipped": self.skipped,
            "errors": self.errors,
            "results": [r.to_dict() for r in self.results],
        }
