"""
Shared fixtures for feeshare tests.

FakeChain stands in for ChainClient: accounts and token balances are plain
dicts, and submissions are recorded instead of sent.
"""

from typing import Dict, List, Optional

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from feeshare.assets import Asset, InMemoryAssetStore, JsonlAuditLog
from feeshare.blockchain.pump_program import (
    BondingCurve,
    ConfigStatus,
    GlobalState,
    MinimumDistributableFee,
    Shareholder,
    SharingConfig,
    bonding_curve_pda,
    creator_vault_pda,
    fee_sharing_config_pda,
    global_pda,
)
from feeshare.config import FeeShareConfig
from feeshare.rpc.client import AccountInfo, BlockhashExpiredError, ChainError

RENT_EXEMPT_MINIMUM = 890_880
LAST_VALID_BLOCK_HEIGHT = 1_000


# ============================================================================
# FAKE CHAIN
# ============================================================================

class FakeChain:
    """In-memory ChainClient double."""

    def __init__(self):
        self.accounts: Dict[Pubkey, AccountInfo] = {}
        self.token_balances: Dict[Pubkey, int] = {}
        self.return_data: Optional[bytes] = None

        # Per-call outcomes, consumed in order; None means success
        self.send_errors: List[Optional[Exception]] = []
        self.confirm_errors: List[Optional[Exception]] = []
        self.expire_forever = False
        self.fail_reads = False

        self.sent: List[Transaction] = []
        self.blockhash_requests = 0

    def set_account(self, address: Pubkey, data: bytes = b"", lamports: int = 0, owner: Pubkey = None):
        self.accounts[address] = AccountInfo(
            address=address,
            lamports=lamports,
            owner=owner or Pubkey.default(),
            data=data,
        )

    @property
    def signatures(self) -> List[str]:
        return [str(tx.signatures[0]) for tx in self.sent]

    async def get_account_info(self, address: Pubkey) -> Optional[AccountInfo]:
        if self.fail_reads:
            raise ChainError("getAccountInfo failed: connection reset")
        return self.accounts.get(address)

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        return RENT_EXEMPT_MINIMUM

    async def get_token_balance(self, token_account: Pubkey) -> int:
        if token_account not in self.token_balances:
            raise ChainError(f"could not find account {token_account}")
        return self.token_balances[token_account]

    async def get_latest_blockhash(self):
        self.blockhash_requests += 1
        return Hash.new_unique(), LAST_VALID_BLOCK_HEIGHT

    async def send_transaction(self, tx: Transaction) -> str:
        self.sent.append(tx)
        error = self.send_errors.pop(0) if self.send_errors else None
        if error is not None:
            raise error
        return str(tx.signatures[0])

    async def confirm_transaction(self, signature: str, last_valid_block_height: int) -> None:
        if self.expire_forever:
            raise BlockhashExpiredError(signature, last_valid_block_height)
        error = self.confirm_errors.pop(0) if self.confirm_errors else None
        if error is not None:
            raise error

    async def simulate_return_data(self, instructions, payer: Pubkey) -> Optional[bytes]:
        if self.fail_reads:
            raise ChainError("simulateTransaction failed: connection reset")
        return self.return_data


def program_ids(tx: Transaction) -> List[Pubkey]:
    """Program id of each instruction in a recorded transaction."""
    keys = tx.message.account_keys
    return [keys[ix.program_id_index] for ix in tx.message.instructions]


def instruction_data(tx: Transaction, index: int) -> bytes:
    return bytes(tx.message.instructions[index].data)


def minimum_fee_return_data(minimum: int, distributable: int = 0) -> bytes:
    return MinimumDistributableFee.LAYOUT.pack(minimum, distributable, distributable >= minimum)


# ============================================================================
# CHAIN STATE BUILDERS
# ============================================================================

def add_coin(
    chain: FakeChain,
    mint: Pubkey,
    *,
    configured: bool = True,
    vault_balance: int = 0,
    complete: bool = False,
    admin: Optional[Pubkey] = None,
    shareholders: Optional[List[Shareholder]] = None,
    token_program: Pubkey = TOKEN_PROGRAM_ID,
    decimals: int = 6,
) -> None:
    """
    Put a launched coin on the fake chain.

    A configured coin has its bonding-curve creator set to the sharing
    config PDA, a sharing config account, and a creator vault holding
    vault_balance lamports above rent.
    """
    config_pda = fee_sharing_config_pda(mint)
    creator = config_pda if configured else Pubkey.new_unique()

    curve = BondingCurve(
        virtual_token_reserves=1_073_000_000_000_000,
        virtual_sol_reserves=30_000_000_000,
        real_token_reserves=793_100_000_000_000,
        real_sol_reserves=0,
        token_total_supply=1_000_000_000_000_000,
        complete=complete,
        creator=creator,
    )
    chain.set_account(bonding_curve_pda(mint), curve.encode(), lamports=RENT_EXEMPT_MINIMUM)

    mint_data = bytearray(82)
    mint_data[44] = decimals
    chain.set_account(mint, bytes(mint_data), lamports=RENT_EXEMPT_MINIMUM, owner=token_program)

    chain.set_account(creator_vault_pda(creator), lamports=RENT_EXEMPT_MINIMUM + vault_balance)

    if configured:
        sharing = SharingConfig(
            bump=255,
            version=1,
            status=ConfigStatus.ACTIVE,
            mint=mint,
            admin=admin or Pubkey.new_unique(),
            admin_revoked=False,
            shareholders=shareholders or [
                Shareholder(str(Pubkey.new_unique()), 7000),
                Shareholder(str(Pubkey.new_unique()), 3000),
            ],
        )
        chain.set_account(config_pda, sharing.encode())


def add_global_state(chain: FakeChain) -> None:
    state = GlobalState(
        initialized=True,
        authority=Pubkey.new_unique(),
        fee_recipient=Pubkey.new_unique(),
        initial_virtual_token_reserves=1_073_000_000_000_000,
        initial_virtual_sol_reserves=30_000_000_000,
        initial_real_token_reserves=793_100_000_000_000,
        token_total_supply=1_000_000_000_000_000,
        fee_basis_points=95,
    )
    chain.set_account(global_pda(), state.encode())


def platform_ata(config: FeeShareConfig, mint: Pubkey, token_program: Pubkey = TOKEN_PROGRAM_ID) -> Pubkey:
    return get_associated_token_address(config.platform_keypair().pubkey(), mint, token_program)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def platform_keypair():
    return Keypair()


@pytest.fixture
def treasury():
    return str(Pubkey.new_unique())


@pytest.fixture
def agent():
    return str(Pubkey.new_unique())


@pytest.fixture
def config(platform_keypair, treasury):
    """Config with the real split and thresholds, and no pacing delays."""
    return FeeShareConfig(
        rpc_url="http://localhost:8899",
        platform_wallet_private_key=str(platform_keypair),
        treasury_wallet=treasury,
        distribution_delay_seconds=0.0,
        batch_delay_seconds=0.0,
        buy_settle_delay_seconds=0.0,
    )


@pytest.fixture
def chain():
    fake = FakeChain()
    add_global_state(fake)
    return fake


@pytest.fixture
def mint():
    return Pubkey.new_unique()


@pytest.fixture
def audit_log(tmp_path):
    return JsonlAuditLog(str(tmp_path / "audit.jsonl"))


@pytest.fixture
def asset_store():
    return InMemoryAssetStore()


def make_asset(mint: Pubkey, symbol: str = "TEST", buyback_enabled: bool = False) -> Asset:
    return Asset(mint=str(mint), symbol=symbol, buyback_enabled=buyback_enabled)

