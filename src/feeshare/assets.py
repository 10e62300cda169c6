"""
feeshare/assets.py

Collaborator interfaces consumed by the distribution engine.

Architecture:
    AssetStore (abstract)
    ├── InMemoryAssetStore (tests, embedding)
    └── JsonAssetStore (CLI, reads an exported asset list)

    AuditLog (abstract)
    ├── NullAuditLog
    └── JsonlAuditLog (append-only JSON lines)

The engine only reads assets and only appends audit records. Audit writes
are advisory: a failing audit log is logged and never interrupts a run.
"""

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger("feeshare.assets")


class AssetStatus(Enum):
    """Lifecycle of a launched asset."""
    ACTIVE = "active"
    GRADUATED = "graduated"
    FAILED = "failed"


@dataclass
class Asset:
    """A launched token as seen by the distribution engine."""
    mint: str
    symbol: str
    buyback_enabled: bool = False
    status: AssetStatus = AssetStatus.ACTIVE
    agent_address: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Asset":
        return cls(
            mint=data.get("mint") or data["mint_address"],
            symbol=data.get("symbol", ""),
            buyback_enabled=bool(data.get("buyback_enabled", False)),
            status=AssetStatus(data.get("status", AssetStatus.ACTIVE.value)),
            agent_address=data.get("agent_address"),
        )

    def to_dict(self) -> dict:
        return {
            "mint": self.mint,
            "symbol": self.symbol,
            "buyback_enabled": self.buyback_enabled,
            "status": self.status.value,
            "agent_address": self.agent_address,
        }


# ============================================================================
# ASSET STORE
# ============================================================================

class AssetStore(ABC):
    """Read access to launched assets."""

    @abstractmethod
    async def list_active_assets(self) -> List[Asset]:
        """All assets with status ACTIVE, in store order."""
        pass

    @abstractmethod
    async def find_asset_by_mint(self, mint: str) -> Optional[Asset]:
        pass


class InMemoryAssetStore(AssetStore):

    def __init__(self, assets: Optional[Iterable[Asset]] = None):
        self._assets: Dict[str, Asset] = {}
        for asset in assets or []:
            self.add(asset)

    def add(self, asset: Asset) -> None:
        self._assets[asset.mint] = asset

    async def list_active_assets(self) -> List[Asset]:
        return [a for a in self._assets.values() if a.status == AssetStatus.ACTIVE]

    async def find_asset_by_mint(self, mint: str) -> Optional[Asset]:
        return self._assets.get(mint)


class JsonAssetStore(AssetStore):
    """
    Asset list read from a JSON file.

    Accepts either a list of asset objects or {"tokens": [...]}. The file
    is re-read on every call so external updates are picked up between
    scheduler ticks.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def _load(self) -> List[Asset]:
        with open(self.path, "r") as f:
            raw = json.load(f)
        if isinstance(raw, dict):
            raw = raw.get("tokens", [])
        return [Asset.from_dict(item) for item in raw]

    async def list_active_assets(self) -> List[Asset]:
        return [a for a in self._load() if a.status == AssetStatus.ACTIVE]

    async def find_asset_by_mint(self, mint: str) -> Optional[Asset]:
        for asset in self._load():
            if asset.mint == mint:
                return asset
        return None


# ============================================================================
# AUDIT LOG
# ============================================================================

class AuditEvent:
    SETUP = "fee_sharing_setup"
    DISTRIBUTION = "fee_distribution"
    BUYBACK = "buyback"
    RUN = "distribution_run"


class AuditLog(ABC):
    """Write-only trail of distribution and buyback outcomes."""

    @abstractmethod
    def _write(self, record: Dict[str, Any]) -> None:
        pass

    def record(self, event: str, mint: str, details: Dict[str, Any]) -> None:
        """Append an outcome (details usually a result's to_dict()). Never raises."""
        record = {
            "event": event,
            "mint": mint,
            "timestamp": int(time.time()),
            **details,
        }
        try:
            self._write(record)
        except Exception as e:
            logger.warning(f"Audit write failed for {event} {mint}: {e}")


class NullAuditLog(AuditLog):

    def _write(self, record: Dict[str, Any]) -> None:
        pass


class JsonlAuditLog(AuditLog):

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _write(self, record: Dict[str, Any]) -> None:
        line = json.dumps(record, default=str)
        with self._lock:
            with open(self.path, "a") as f:
                f.write(line + "\n")

    def read_all(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        with open(self.path, "r") as f:
            return [json.loads(line) for line in f if line.strip()]
