"""
feeshare/rpc/client.py

Solana JSON-RPC client for fee-sharing chain interaction.

Provides methods for:
- Account and balance lookups
- Token account balances
- Transaction submission and confirmation
- Simulation with program return data
"""

import base64
import logging
from typing import Optional, List, Tuple, Any
from dataclasses import dataclass

import trio
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus

from ..config import LAMPORTS_PER_SOL, CONFIRM_POLL_SECONDS, MAINNET_RPC

logger = logging.getLogger("feeshare.rpc.client")


# ============================================================================
# ERRORS
# ============================================================================

class ChainError(Exception):
    """Exception raised for RPC or on-chain errors."""
    pass


class BlockhashExpiredError(ChainError):
    """The transaction's reference blockhash expired before confirmation."""

    def __init__(self, signature: str, last_valid_block_height: int):
        self.signature = signature
        self.last_valid_block_height = last_valid_block_height
        super().__init__(
            f"Signature {signature} has expired: block height exceeded "
            f"({last_valid_block_height})"
        )


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class AccountInfo:
    """Raw account state."""
    address: Pubkey
    lamports: int
    owner: Pubkey
    data: bytes
    executable: bool = False

    def to_dict(self) -> dict:
        return {
            "address": str(self.address),
            "lamports": self.lamports,
            "owner": str(self.owner),
            "data_len": len(self.data),
            "executable": self.executable,
        }


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================

def is_valid_address(address: Any) -> bool:
    """Check whether a string is a valid base58 public key."""
    if not isinstance(address, str) or not address:
        return False
    try:
        Pubkey.from_string(address)
        return True
    except Exception:
        return False


def to_pubkey(address: Any) -> Pubkey:
    """
    Convert an address to a Pubkey.

    Raises:
        ChainError: If the address is not a valid public key
    """
    if isinstance(address, Pubkey):
        return address
    if not is_valid_address(address):
        raise ChainError(f"Invalid public key: {address}")
    return Pubkey.from_string(address)


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL


def sol_to_lamports(sol: float) -> int:
    return int(sol * LAMPORTS_PER_SOL)


def shorten_address(address: str, chars: int = 4) -> str:
    return f"{address[:chars]}...{address[-chars:]}"


# ============================================================================
# CHAIN CLIENT
# ============================================================================

class ChainClient:
    """
    Async Solana RPC client.

    Wraps solana-py's AsyncClient with the small surface the fee-sharing
    engine needs. Confirmation is polled here with trio.sleep so that
    blockhash expiry surfaces as BlockhashExpiredError.

    Example:
        async with ChainClient("https://api.devnet.solana.com") as client:
            lamports = await client.get_balance(address)
            blockhash, last_valid = await client.get_latest_blockhash()
    """

    def __init__(
        self,
        rpc_url: str = MAINNET_RPC,
        timeout: float = 30.0,
        poll_interval: float = CONFIRM_POLL_SECONDS,
    ):
        """
        Initialize the client.

        Args:
            rpc_url: JSON-RPC endpoint
            timeout: HTTP timeout in seconds
            poll_interval: Seconds between signature status polls
        """
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._client: Optional[AsyncClient] = None

    @property
    def rpc(self) -> AsyncClient:
        if self._client is None:
            self._client = AsyncClient(self.rpc_url, commitment=Confirmed, timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def __aenter__(self) -> "ChainClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ========================================================================
    # READS
    # ========================================================================

    async def get_account_info(self, address: Pubkey) -> Optional[AccountInfo]:
        """
        Fetch an account.

        Returns:
            AccountInfo, or None if the account does not exist
        """
        try:
            resp = await self.rpc.get_account_info(address, commitment=Confirmed)
        except Exception as e:
            raise ChainError(f"getAccountInfo failed for {address}: {e}") from e

        account = resp.value
        if account is None:
            return None
        return AccountInfo(
            address=address,
            lamports=account.lamports,
            owner=account.owner,
            data=bytes(account.data),
            executable=account.executable,
        )

    async def get_balance(self, address: Pubkey) -> int:
        """Get an account's lamport balance."""
        try:
            resp = await self.rpc.get_balance(address, commitment=Confirmed)
        except Exception as e:
            raise ChainError(f"getBalance failed for {address}: {e}") from e
        return resp.value

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        try:
            resp = await self.rpc.get_minimum_balance_for_rent_exemption(size)
        except Exception as e:
            raise ChainError(f"getMinimumBalanceForRentExemption failed: {e}") from e
        return resp.value

    async def get_token_balance(self, token_account: Pubkey) -> int:
        """
        Get a token account's balance in base units.

        Raises:
            ChainError: If the account is missing or the call fails
        """
        try:
            resp = await self.rpc.get_token_account_balance(token_account, commitment=Confirmed)
        except Exception as e:
            raise ChainError(f"getTokenAccountBalance failed for {token_account}: {e}") from e
        return int(resp.value.amount)

    async def get_latest_blockhash(self) -> Tuple[Hash, int]:
        """
        Returns:
            (blockhash, last_valid_block_height)
        """
        try:
            resp = await self.rpc.get_latest_blockhash(commitment=Confirmed)
        except Exception as e:
            raise ChainError(f"getLatestBlockhash failed: {e}") from e
        return resp.value.blockhash, resp.value.last_valid_block_height

    async def get_block_height(self) -> int:
        try:
            resp = await self.rpc.get_block_height(commitment=Confirmed)
        except Exception as e:
            raise ChainError(f"getBlockHeight failed: {e}") from e
        return resp.value

    # ========================================================================
    # WRITES
    # ========================================================================

    async def send_transaction(self, tx: Transaction) -> str:
        """
        Submit a signed transaction (preflight only, no confirmation).

        Returns:
            Transaction signature as base58 string
        """
        opts = TxOpts(skip_confirmation=True, preflight_commitment=Confirmed)
        try:
            resp = await self.rpc.send_raw_transaction(bytes(tx), opts=opts)
        except Exception as e:
            raise ChainError(str(e)) from e
        return str(resp.value)

    async def confirm_transaction(self, signature: str, last_valid_block_height: int) -> None:
        """
        Wait for a signature to reach confirmed commitment.

        Raises:
            BlockhashExpiredError: If the block height passes last_valid_block_height
            ChainError: If the transaction failed on-chain
        """
        sig = Signature.from_string(signature)
        while True:
            try:
                resp = await self.rpc.get_signature_statuses([sig])
            except Exception as e:
                raise ChainError(f"getSignatureStatuses failed: {e}") from e

            status = resp.value[0] if resp.value else None
            if status is not None:
                if status.err is not None:
                    raise ChainError(f"Transaction {signature} failed: {status.err}")
                if status.confirmation_status in (
                    TransactionConfirmationStatus.Confirmed,
                    TransactionConfirmationStatus.Finalized,
                ):
                    return

            if await self.get_block_height() > last_valid_block_height:
                raise BlockhashExpiredError(signature, last_valid_block_height)

            await trio.sleep(self.poll_interval)

    async def simulate_return_data(
        self,
        instructions: List[Instruction],
        payer: Pubkey,
    ) -> Optional[bytes]:
        """
        Simulate an unsigned transaction and return the program return data.

        Returns:
            Raw return data bytes, or None if the program returned nothing

        Raises:
            ChainError: If the simulation fails
        """
        blockhash, _ = await self.get_latest_blockhash()
        message = Message.new_with_blockhash(instructions, payer, blockhash)
        tx = Transaction.new_unsigned(message)
        try:
            resp = await self.rpc.simulate_transaction(tx, sig_verify=False, commitment=Confirmed)
        except Exception as e:
            raise ChainError(f"simulateTransaction failed: {e}") from e

        result = resp.value
        if result.err is not None:
            raise ChainError(f"Simulation failed: {result.err}")
        if result.return_data is None:
            return None

        data = result.return_data.data
        if isinstance(data, str):
            return base64.b64decode(data)
        return bytes(data)
