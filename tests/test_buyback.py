"""
Tests for feeshare/blockchain/buyback.py

Tests the buy-then-burn flow, its preconditions, and containment of a
failed burn after a successful buy.
"""

import struct

import pytest
from spl.token.constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
)

from feeshare.assets import AuditEvent
from feeshare.blockchain.buyback import BuybackService
from feeshare.blockchain.pump_program import (
    PUMP_PROGRAM_ID,
    BondingCurve,
    apply_slippage,
    bonding_curve_pda,
    estimate_tokens_out,
)
from feeshare.results import BuybackFailure, BuybackSuccess
from feeshare.rpc.client import ChainError

from conftest import add_coin, instruction_data, platform_ata, program_ids


@pytest.fixture
def service(chain, config, audit_log):
    return BuybackService(chain, config, audit=audit_log)


# ============================================================================
# AGENT SHARE TESTS
# ============================================================================

class TestAgentShare:

    def test_default_share(self, service):
        assert service.calculate_agent_share(2_000_000_000) == 1_400_000_000

    def test_share_floors(self, service):
        assert service.calculate_agent_share(1) == 0
        assert service.calculate_agent_share(999) == 699


# ============================================================================
# BUYBACK FLOW TESTS
# ============================================================================

class TestExecuteBuyback:

    @pytest.mark.trio
    async def test_buy_and_burn(self, service, chain, config, mint, audit_log):
        add_coin(chain, mint)
        chain.token_balances[platform_ata(config, mint)] = 45_000_000_000

        result = await service.execute_buyback(str(mint), 1_400_000_000)

        assert isinstance(result, BuybackSuccess)
        assert result.buy_tx_signature == chain.signatures[0]
        assert result.burn_tx_signature == chain.signatures[1]
        assert result.tokens_burned == 45_000_000_000
        assert result.lamports_spent == 1_400_000_000

        # Platform token account created alongside the buy
        assert program_ids(chain.sent[0]) == [ASSOCIATED_TOKEN_PROGRAM_ID, PUMP_PROGRAM_ID]
        # Burn account created alongside the transfer
        assert program_ids(chain.sent[1]) == [ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID]

        assert audit_log.read_all()[-1]["event"] == AuditEvent.BUYBACK

    @pytest.mark.trio
    async def test_buy_amount_net_of_slippage(self, service, chain, config, mint):
        add_coin(chain, mint)
        chain.token_balances[platform_ata(config, mint)] = 1

        lamports = 1_400_000_000
        await service.execute_buyback(str(mint), lamports)

        curve = BondingCurve.decode(chain.accounts[bonding_curve_pda(mint)].data)
        expected = apply_slippage(estimate_tokens_out(lamports, curve), 500)
        data = instruction_data(chain.sent[0], 1)
        assert struct.unpack_from("<QQ", data, 8) == (expected, lamports)

    @pytest.mark.trio
    async def test_existing_accounts_not_recreated(self, service, chain, config, mint):
        add_coin(chain, mint)
        ata = platform_ata(config, mint)
        chain.set_account(ata, b"\x00" * 165)
        chain.token_balances[ata] = 10

        await service.execute_buyback(str(mint), 100_000_000)

        assert program_ids(chain.sent[0]) == [PUMP_PROGRAM_ID]

    @pytest.mark.trio
    async def test_token_2022_mint(self, service, chain, config, mint):
        add_coin(chain, mint, token_program=TOKEN_2022_PROGRAM_ID)
        chain.token_balances[platform_ata(config, mint, TOKEN_2022_PROGRAM_ID)] = 10

        result = await service.execute_buyback(str(mint), 100_000_000)

        assert isinstance(result, BuybackSuccess)
        assert TOKEN_2022_PROGRAM_ID in chain.sent[0].message.account_keys
        assert program_ids(chain.sent[1])[-1] == TOKEN_2022_PROGRAM_ID

    @pytest.mark.trio
    async def test_graduated_fails_fast(self, service, chain, mint):
        add_coin(chain, mint, complete=True)

        result = await service.execute_buyback(str(mint), 1_000_000_000)

        assert isinstance(result, BuybackFailure)
        assert "graduated" in result.error
        assert chain.sent == []

    @pytest.mark.trio
    async def test_missing_curve(self, service, chain, mint):
        result = await service.execute_buyback(str(mint), 1_000_000_000)

        assert isinstance(result, BuybackFailure)
        assert result.error == "Bonding curve not found"
        assert chain.sent == []

    @pytest.mark.trio
    async def test_missing_mint_account(self, service, chain, mint):
        add_coin(chain, mint)
        del chain.accounts[mint]

        result = await service.execute_buyback(str(mint), 1_000_000_000)

        assert isinstance(result, BuybackFailure)
        assert result.error == "Mint account not found"

    @pytest.mark.trio
    async def test_non_positive_amount(self, service, chain, mint):
        add_coin(chain, mint)
        result = await service.execute_buyback(str(mint), 0)

        assert isinstance(result, BuybackFailure)
        assert chain.sent == []

    @pytest.mark.trio
    async def test_buy_failure(self, service, chain, mint):
        add_coin(chain, mint)
        chain.send_errors = [ChainError("insufficient lamports")]

        result = await service.execute_buyback(str(mint), 1_000_000_000)

        assert isinstance(result, BuybackFailure)
        assert result.buy_tx_signature is None
        assert not result.needs_manual_burn
        assert len(chain.sent) == 1

    @pytest.mark.trio
    async def test_zero_tokens_received_skips_burn(self, service, chain, config, mint):
        add_coin(chain, mint)
        chain.token_balances[platform_ata(config, mint)] = 0

        result = await service.execute_buyback(str(mint), 1_000_000_000)

        assert isinstance(result, BuybackFailure)
        assert result.error == "No tokens received from buy"
        assert result.buy_tx_signature == chain.signatures[0]
        assert len(chain.sent) == 1

    @pytest.mark.trio
    async def test_burn_failure_keeps_buy_reference(self, service, chain, config, mint):
        add_coin(chain, mint)
        chain.token_balances[platform_ata(config, mint)] = 45_000_000_000
        chain.send_errors = [None, ChainError("custom program error: 0x1")]

        result = await service.execute_buyback(str(mint), 1_400_000_000)

        assert isinstance(result, BuybackFailure)
        assert result.buy_tx_signature == chain.signatures[0]
        assert result.tokens_bought == 45_000_000_000
        assert result.needs_manual_burn
        assert len(chain.sent) == 2

    @pytest.mark.trio
    async def test_unreadable_balance_after_buy_needs_manual_burn(self, service, chain, mint):
        add_coin(chain, mint)
        # No token balance registered: the post-buy read fails

        result = await service.execute_buyback(str(mint), 1_000_000_000)

        assert isinstance(result, BuybackFailure)
        assert result.buy_tx_signature == chain.signatures[0]
        assert result.tokens_bought is None
        assert result.needs_manual_burn
        assert len(chain.sent) == 1

    def test_zero_tokens_bought_needs_no_burn(self):
        assert not BuybackFailure("No tokens received from buy", "buysig", 0).needs_manual_burn
