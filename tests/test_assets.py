"""
Tests for feeshare/assets.py

Tests the asset stores and the advisory audit log.
"""

import json

import pytest

from feeshare.assets import (
    Asset,
    AssetStatus,
    AuditEvent,
    AuditLog,
    InMemoryAssetStore,
    JsonAssetStore,
    JsonlAuditLog,
)


# ============================================================================
# ASSET STORE TESTS
# ============================================================================

class TestAssetStores:

    @pytest.mark.trio
    async def test_in_memory_filters_inactive(self):
        store = InMemoryAssetStore([
            Asset("mint1", "ONE"),
            Asset("mint2", "TWO", status=AssetStatus.GRADUATED),
            Asset("mint3", "THREE", buyback_enabled=True),
        ])
        active = await store.list_active_assets()
        assert [a.symbol for a in active] == ["ONE", "THREE"]
        assert (await store.find_asset_by_mint("mint2")).status == AssetStatus.GRADUATED
        assert await store.find_asset_by_mint("missing") is None

    @pytest.mark.trio
    async def test_json_store_list_format(self, tmp_path):
        path = tmp_path / "assets.json"
        path.write_text(json.dumps([
            {"mint": "mint1", "symbol": "ONE", "buyback_enabled": True},
            {"mint": "mint2", "symbol": "TWO", "status": "failed"},
        ]))
        store = JsonAssetStore(str(path))

        active = await store.list_active_assets()
        assert len(active) == 1
        assert active[0].buyback_enabled is True

    @pytest.mark.trio
    async def test_json_store_tokens_format(self, tmp_path):
        path = tmp_path / "assets.json"
        path.write_text(json.dumps({"tokens": [{"mint_address": "mint1", "symbol": "ONE"}]}))
        store = JsonAssetStore(str(path))

        asset = await store.find_asset_by_mint("mint1")
        assert asset.symbol == "ONE"
        assert asset.status == AssetStatus.ACTIVE

    @pytest.mark.trio
    async def test_json_store_rereads_file(self, tmp_path):
        path = tmp_path / "assets.json"
        path.write_text(json.dumps([]))
        store = JsonAssetStore(str(path))
        assert await store.list_active_assets() == []

        path.write_text(json.dumps([{"mint": "mint1", "symbol": "ONE"}]))
        assert len(await store.list_active_assets()) == 1

    def test_asset_dict_round_trip(self):
        asset = Asset("mint1", "ONE", buyback_enabled=True, agent_address="agent")
        assert Asset.from_dict(asset.to_dict()) == asset


# ============================================================================
# AUDIT LOG TESTS
# ============================================================================

class BrokenAuditLog(AuditLog):
    def _write(self, record):
        raise OSError("disk full")


class TestAuditLog:

    def test_jsonl_append_and_read(self, tmp_path):
        log = JsonlAuditLog(str(tmp_path / "audit.jsonl"))
        log.record(AuditEvent.DISTRIBUTION, "mint1", {"success": True, "tx_signature": "sig"})
        log.record(AuditEvent.BUYBACK, "mint1", {"success": False, "error": "graduated"})

        records = log.read_all()
        assert [r["event"] for r in records] == [AuditEvent.DISTRIBUTION, AuditEvent.BUYBACK]
        assert records[0]["tx_signature"] == "sig"
        assert "timestamp" in records[0]

    def test_read_missing_file(self, tmp_path):
        assert JsonlAuditLog(str(tmp_path / "none.jsonl")).read_all() == []

    def test_write_failure_never_raises(self):
        BrokenAuditLog().record(AuditEvent.RUN, "", {"success": True})
