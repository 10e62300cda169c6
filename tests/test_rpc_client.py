"""
Tests for feeshare/rpc/client.py

The solana-py AsyncClient is replaced with a Mock; tests cover response
unwrapping, error wrapping and confirmation polling.
"""

from unittest.mock import AsyncMock, Mock

import pytest
import trio
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction_status import TransactionConfirmationStatus

from feeshare.rpc.client import (
    BlockhashExpiredError,
    ChainClient,
    ChainError,
    is_valid_address,
    lamports_to_sol,
    shorten_address,
    sol_to_lamports,
    to_pubkey,
)

SIGNATURE = str(Signature.default())


def make_client() -> ChainClient:
    client = ChainClient("http://localhost:8899", poll_interval=0.5)
    client._client = Mock()
    return client


def status(confirmation=None, err=None):
    return Mock(confirmation_status=confirmation, err=err)


# ============================================================================
# UTILITY TESTS
# ============================================================================

class TestUtilities:

    def test_address_validation(self):
        assert is_valid_address(str(Pubkey.new_unique()))
        assert not is_valid_address("")
        assert not is_valid_address("0OIl")
        assert not is_valid_address(None)

    def test_to_pubkey(self):
        key = Pubkey.new_unique()
        assert to_pubkey(str(key)) == key
        assert to_pubkey(key) is key
        with pytest.raises(ChainError, match="Invalid public key"):
            to_pubkey("bogus")

    def test_unit_conversion(self):
        assert lamports_to_sol(1_500_000_000) == 1.5
        assert sol_to_lamports(0.01) == 10_000_000

    def test_shorten_address(self):
        assert shorten_address("abcdefghijkl") == "abcd...ijkl"


# ============================================================================
# READ TESTS
# ============================================================================

class TestReads:

    @pytest.mark.trio
    async def test_missing_account(self):
        client = make_client()
        client._client.get_account_info = AsyncMock(return_value=Mock(value=None))
        assert await client.get_account_info(Pubkey.new_unique()) is None

    @pytest.mark.trio
    async def test_account_info(self):
        client = make_client()
        owner = Pubkey.new_unique()
        account = Mock(lamports=42, owner=owner, data=b"\x01\x02", executable=False)
        client._client.get_account_info = AsyncMock(return_value=Mock(value=account))

        info = await client.get_account_info(Pubkey.new_unique())

        assert info.lamports == 42
        assert info.owner == owner
        assert info.data == b"\x01\x02"

    @pytest.mark.trio
    async def test_rpc_errors_wrapped(self):
        client = make_client()
        client._client.get_balance = AsyncMock(side_effect=RuntimeError("connection reset"))

        with pytest.raises(ChainError, match="connection reset"):
            await client.get_balance(Pubkey.new_unique())

    @pytest.mark.trio
    async def test_token_balance(self):
        client = make_client()
        client._client.get_token_account_balance = AsyncMock(
            return_value=Mock(value=Mock(amount="45000000000"))
        )
        assert await client.get_token_balance(Pubkey.new_unique()) == 45_000_000_000

    @pytest.mark.trio
    async def test_latest_blockhash(self):
        client = make_client()
        blockhash = Hash.new_unique()
        client._client.get_latest_blockhash = AsyncMock(
            return_value=Mock(value=Mock(blockhash=blockhash, last_valid_block_height=77))
        )
        assert await client.get_latest_blockhash() == (blockhash, 77)


# ============================================================================
# CONFIRMATION TESTS
# ============================================================================

class TestConfirmTransaction:

    @pytest.mark.trio
    async def test_confirmed(self):
        client = make_client()
        client._client.get_signature_statuses = AsyncMock(
            return_value=Mock(value=[status(TransactionConfirmationStatus.Confirmed)])
        )
        await client.confirm_transaction(SIGNATURE, 100)

    @pytest.mark.trio
    async def test_polls_until_confirmed(self, autojump_clock):
        client = make_client()
        client._client.get_signature_statuses = AsyncMock(side_effect=[
            Mock(value=[None]),
            Mock(value=[status(TransactionConfirmationStatus.Processed)]),
            Mock(value=[status(TransactionConfirmationStatus.Finalized)]),
        ])
        client._client.get_block_height = AsyncMock(return_value=Mock(value=50))

        start = trio.current_time()
        await client.confirm_transaction(SIGNATURE, 100)

        assert client._client.get_signature_statuses.await_count == 3
        assert trio.current_time() - start == pytest.approx(1.0)

    @pytest.mark.trio
    async def test_expired(self):
        client = make_client()
        client._client.get_signature_statuses = AsyncMock(return_value=Mock(value=[None]))
        client._client.get_block_height = AsyncMock(return_value=Mock(value=101))

        with pytest.raises(BlockhashExpiredError) as exc_info:
            await client.confirm_transaction(SIGNATURE, 100)
        assert "block height exceeded" in str(exc_info.value)

    @pytest.mark.trio
    async def test_on_chain_failure(self):
        client = make_client()
        client._client.get_signature_statuses = AsyncMock(
            return_value=Mock(value=[status(err="InstructionError")])
        )
        with pytest.raises(ChainError, match="InstructionError"):
            await client.confirm_transaction(SIGNATURE, 100)


# ============================================================================
# SIMULATION TESTS
# ============================================================================

class TestSimulation:

    def _client_with_simulation(self, value):
        client = make_client()
        client._client.get_latest_blockhash = AsyncMock(
            return_value=Mock(value=Mock(blockhash=Hash.new_unique(), last_valid_block_height=1))
        )
        client._client.simulate_transaction = AsyncMock(return_value=Mock(value=value))
        return client

    def _instruction(self, payer):
        return transfer(TransferParams(from_pubkey=payer, to_pubkey=Pubkey.new_unique(), lamports=1))

    @pytest.mark.trio
    async def test_return_data(self):
        payer = Pubkey.new_unique()
        client = self._client_with_simulation(
            Mock(err=None, return_data=Mock(data=b"\x2a\x00"))
        )
        assert await client.simulate_return_data([self._instruction(payer)], payer) == b"\x2a\x00"

    @pytest.mark.trio
    async def test_no_return_data(self):
        payer = Pubkey.new_unique()
        client = self._client_with_simulation(Mock(err=None, return_data=None))
        assert await client.simulate_return_data([self._instruction(payer)], payer) is None

    @pytest.mark.trio
    async def test_simulation_error(self):
        payer = Pubkey.new_unique()
        client = self._client_with_simulation(Mock(err="AccountNotFound", return_data=None))
        with pytest.raises(ChainError, match="AccountNotFound"):
            await client.simulate_return_data([self._instruction(payer)], payer)
