"""
feeshare/blockchain/pump_program.py

Offline codec for the bonding-curve launch program and its fee-sharing
companion program.

Provides:
- Program ids and PDA derivation
- Account layout decoders (bonding curve, global state, sharing config)
- Instruction builders (fee-sharing config, fee distribution, buy)
- Basis-point split math shared by setup and buyback

Nothing here touches the network. Online reads live in the services that
pair these decoders with a ChainClient.
"""

import hashlib
import logging
import struct
from dataclasses import dataclass, field
from typing import List, Sequence

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from spl.token.constants import (
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    WRAPPED_SOL_MINT,
)
from spl.token.instructions import get_associated_token_address

from ..config import BPS_DENOMINATOR

logger = logging.getLogger("feeshare.blockchain.pump_program")


# ============================================================================
# CONSTANTS
# ============================================================================

PUMP_PROGRAM_ID = Pubkey.from_string("6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P")
PUMP_AMM_PROGRAM_ID = Pubkey.from_string("pAMMBay6oceH9fJKBRHGP5D4bD4sWpmSwMn52FMfXEA")
PUMP_FEES_PROGRAM_ID = Pubkey.from_string("pfeeUxB6jkeY1Hxd7CsFCAjcbHA9rWtchMGdZ6VojVZ")

GLOBAL_SEED = b"global"
BONDING_CURVE_SEED = b"bonding-curve"
CREATOR_VAULT_SEED = b"creator-vault"
AMM_CREATOR_VAULT_SEED = b"creator_vault"
SHARING_CONFIG_SEED = b"sharing-config"
EVENT_AUTHORITY_SEED = b"__event_authority"
GLOBAL_VOLUME_ACCUMULATOR_SEED = b"global_volume_accumulator"
USER_VOLUME_ACCUMULATOR_SEED = b"user_volume_accumulator"
FEE_CONFIG_SEED = b"fee_config"


def _discriminator(namespace: str, name: str) -> bytes:
    return hashlib.sha256(f"{namespace}:{name}".encode()).digest()[:8]


# Instruction discriminators
IX_CREATE_FEE_SHARING_CONFIG = _discriminator("global", "create_fee_sharing_config")
IX_UPDATE_FEE_SHARES = _discriminator("global", "update_fee_shares")
IX_DISTRIBUTE_CREATOR_FEES = _discriminator("global", "distribute_creator_fees")
IX_GET_MINIMUM_DISTRIBUTABLE_FEE = _discriminator("global", "get_minimum_distributable_fee")
IX_BUY = _discriminator("global", "buy")

# Account discriminators
ACCOUNT_BONDING_CURVE = _discriminator("account", "BondingCurve")
ACCOUNT_GLOBAL = _discriminator("account", "Global")
ACCOUNT_SHARING_CONFIG = _discriminator("account", "SharingConfig")


class AccountDecodeError(ValueError):
    """Account data does not match the expected layout."""
    pass


class InvalidShareSplit(ValueError):
    """A shareholder list that must not be submitted."""
    pass


# ============================================================================
# PDA DERIVATION
# ============================================================================

def global_pda() -> Pubkey:
    return Pubkey.find_program_address([GLOBAL_SEED], PUMP_PROGRAM_ID)[0]


def bonding_curve_pda(mint: Pubkey) -> Pubkey:
    return Pubkey.find_program_address([BONDING_CURVE_SEED, bytes(mint)], PUMP_PROGRAM_ID)[0]


def creator_vault_pda(creator: Pubkey) -> Pubkey:
    """Native-currency vault of the bonding-curve program for a creator."""
    return Pubkey.find_program_address([CREATOR_VAULT_SEED, bytes(creator)], PUMP_PROGRAM_ID)[0]


def amm_creator_vault_authority_pda(creator: Pubkey) -> Pubkey:
    """Authority owning a graduated coin's wrapped-SOL creator vault."""
    return Pubkey.find_program_address(
        [AMM_CREATOR_VAULT_SEED, bytes(creator)], PUMP_AMM_PROGRAM_ID
    )[0]


def amm_creator_vault_ata(creator: Pubkey) -> Pubkey:
    return get_associated_token_address(
        amm_creator_vault_authority_pda(creator), WRAPPED_SOL_MINT
    )


def fee_sharing_config_pda(mint: Pubkey) -> Pubkey:
    return Pubkey.find_program_address([SHARING_CONFIG_SEED, bytes(mint)], PUMP_FEES_PROGRAM_ID)[0]


def event_authority_pda(program_id: Pubkey) -> Pubkey:
    return Pubkey.find_program_address([EVENT_AUTHORITY_SEED], program_id)[0]


def global_volume_accumulator_pda() -> Pubkey:
    return Pubkey.find_program_address([GLOBAL_VOLUME_ACCUMULATOR_SEED], PUMP_PROGRAM_ID)[0]


def user_volume_accumulator_pda(user: Pubkey) -> Pubkey:
    return Pubkey.find_program_address(
        [USER_VOLUME_ACCUMULATOR_SEED, bytes(user)], PUMP_PROGRAM_ID
    )[0]


def fee_config_pda(program_id: Pubkey = PUMP_PROGRAM_ID) -> Pubkey:
    """Fee tier config kept by the fee program for a trading program."""
    return Pubkey.find_program_address(
        [FEE_CONFIG_SEED, bytes(program_id)], PUMP_FEES_PROGRAM_ID
    )[0]


def has_coin_creator_migrated_to_sharing_config(mint: Pubkey, creator: Pubkey) -> bool:
    """
    A coin is under fee sharing exactly when its bonding-curve creator
    field has been rewritten to the mint's sharing-config PDA.
    """
    return creator == fee_sharing_config_pda(mint)


def token_program_for_owner(owner: Pubkey) -> Pubkey:
    """Pick the token program from a mint account's owner."""
    return TOKEN_2022_PROGRAM_ID if owner == TOKEN_2022_PROGRAM_ID else TOKEN_PROGRAM_ID


# ============================================================================
# SPLIT MATH
# ============================================================================

@dataclass(frozen=True)
class Shareholder:
    """One beneficiary of a sharing config."""
    address: str
    share_bps: int

    def to_dict(self) -> dict:
        return {"address": self.address, "share_bps": self.share_bps}


def apply_bps(amount: int, bps: int) -> int:
    """Integer multiply-then-floor-divide; never produces fractional units."""
    if amount < 0 or bps < 0:
        raise ValueError("amount and bps must be non-negative")
    return amount * bps // BPS_DENOMINATOR


def validate_shareholders(shareholders: Sequence[Shareholder]) -> None:
    """
    Reject a shareholder list before it is submitted.

    Raises:
        InvalidShareSplit: On an empty list, negative share, duplicate
            address, or a total other than 10,000 bps
    """
    if not shareholders:
        raise InvalidShareSplit("At least one shareholder is required")

    seen = set()
    total = 0
    for holder in shareholders:
        if holder.share_bps < 0:
            raise InvalidShareSplit(f"Negative share for {holder.address}: {holder.share_bps}")
        if holder.address in seen:
            raise InvalidShareSplit(f"Duplicate shareholder: {holder.address}")
        seen.add(holder.address)
        total += holder.share_bps

    if total != BPS_DENOMINATOR:
        raise InvalidShareSplit(f"Shares must sum to {BPS_DENOMINATOR} bps, got {total}")


def split_shareholders(
    agent_address: str,
    treasury_address: str,
    agent_share_bps: int,
) -> List[Shareholder]:
    """Two-party split: agent at its share, treasury at the complement."""
    shareholders = [
        Shareholder(agent_address, agent_share_bps),
        Shareholder(treasury_address, BPS_DENOMINATOR - agent_share_bps),
    ]
    validate_shareholders(shareholders)
    return shareholders


# ============================================================================
# ACCOUNT LAYOUTS
# ============================================================================

def _check_discriminator(data: bytes, expected: bytes, name: str) -> None:
    if len(data) < 8 or data[:8] != expected:
        raise AccountDecodeError(f"Account is not a {name}")


@dataclass
class BondingCurve:
    """Reserve state of a coin still trading on its bonding curve."""
    virtual_token_reserves: int
    virtual_sol_reserves: int
    real_token_reserves: int
    real_sol_reserves: int
    token_total_supply: int
    complete: bool
    creator: Pubkey

    LAYOUT = struct.Struct("<QQQQQ?32s")

    @classmethod
    def decode(cls, data: bytes) -> "BondingCurve":
        _check_discriminator(data, ACCOUNT_BONDING_CURVE, "BondingCurve")
        body = data[8:8 + cls.LAYOUT.size]
        if len(body) < cls.LAYOUT.size:
            raise AccountDecodeError(f"BondingCurve too short: {len(data)} bytes")
        vtr, vsr, rtr, rsr, supply, complete, creator = cls.LAYOUT.unpack(body)
        return cls(
            virtual_token_reserves=vtr,
            virtual_sol_reserves=vsr,
            real_token_reserves=rtr,
            real_sol_reserves=rsr,
            token_total_supply=supply,
            complete=complete,
            creator=Pubkey.from_bytes(creator),
        )

    def encode(self) -> bytes:
        return ACCOUNT_BONDING_CURVE + self.LAYOUT.pack(
            self.virtual_token_reserves,
            self.virtual_sol_reserves,
            self.real_token_reserves,
            self.real_sol_reserves,
            self.token_total_supply,
            self.complete,
            bytes(self.creator),
        )


@dataclass
class GlobalState:
    """Program-wide settings of the bonding-curve program."""
    initialized: bool
    authority: Pubkey
    fee_recipient: Pubkey
    initial_virtual_token_reserves: int
    initial_virtual_sol_reserves: int
    initial_real_token_reserves: int
    token_total_supply: int
    fee_basis_points: int

    LAYOUT = struct.Struct("<?32s32sQQQQQ")

    @classmethod
    def decode(cls, data: bytes) -> "GlobalState":
        _check_discriminator(data, ACCOUNT_GLOBAL, "Global")
        body = data[8:8 + cls.LAYOUT.size]
        if len(body) < cls.LAYOUT.size:
            raise AccountDecodeError(f"Global too short: {len(data)} bytes")
        (initialized, authority, fee_recipient, ivtr, ivsr, irtr,
         supply, fee_bps) = cls.LAYOUT.unpack(body)
        return cls(
            initialized=initialized,
            authority=Pubkey.from_bytes(authority),
            fee_recipient=Pubkey.from_bytes(fee_recipient),
            initial_virtual_token_reserves=ivtr,
            initial_virtual_sol_reserves=ivsr,
            initial_real_token_reserves=irtr,
            token_total_supply=supply,
            fee_basis_points=fee_bps,
        )

    def encode(self) -> bytes:
        return ACCOUNT_GLOBAL + self.LAYOUT.pack(
            self.initialized,
            bytes(self.authority),
            bytes(self.fee_recipient),
            self.initial_virtual_token_reserves,
            self.initial_virtual_sol_reserves,
            self.initial_real_token_reserves,
            self.token_total_supply,
            self.fee_basis_points,
        )


class ConfigStatus:
    PAUSED = 0
    ACTIVE = 1


@dataclass
class SharingConfig:
    """On-chain mapping of a mint to its shareholders."""
    bump: int
    version: int
    status: int
    mint: Pubkey
    admin: Pubkey
    admin_revoked: bool
    shareholders: List[Shareholder] = field(default_factory=list)

    HEADER = struct.Struct("<BBB32s32s?")
    SHAREHOLDER = struct.Struct("<32sH")

    @classmethod
    def decode(cls, data: bytes) -> "SharingConfig":
        _check_discriminator(data, ACCOUNT_SHARING_CONFIG, "SharingConfig")
        offset = 8
        try:
            bump, version, status, mint, admin, revoked = cls.HEADER.unpack_from(data, offset)
            offset += cls.HEADER.size
            (count,) = struct.unpack_from("<I", data, offset)
            offset += 4
            shareholders = []
            for _ in range(count):
                address, share_bps = cls.SHAREHOLDER.unpack_from(data, offset)
                offset += cls.SHAREHOLDER.size
                shareholders.append(Shareholder(str(Pubkey.from_bytes(address)), share_bps))
        except struct.error as e:
            raise AccountDecodeError(f"SharingConfig truncated: {e}")

        return cls(
            bump=bump,
            version=version,
            status=status,
            mint=Pubkey.from_bytes(mint),
            admin=Pubkey.from_bytes(admin),
            admin_revoked=revoked,
            shareholders=shareholders,
        )

    def encode(self) -> bytes:
        return (
            ACCOUNT_SHARING_CONFIG
            + self.HEADER.pack(
                self.bump, self.version, self.status,
                bytes(self.mint), bytes(self.admin), self.admin_revoked,
            )
            + encode_shareholders(self.shareholders)
        )

    def shareholder_pubkeys(self) -> List[Pubkey]:
        return [Pubkey.from_string(s.address) for s in self.shareholders]


def encode_shareholders(shareholders: Sequence[Shareholder]) -> bytes:
    out = struct.pack("<I", len(shareholders))
    for holder in shareholders:
        out += SharingConfig.SHAREHOLDER.pack(
            bytes(Pubkey.from_string(holder.address)), holder.share_bps
        )
    return out


@dataclass(frozen=True)
class MinimumDistributableFee:
    """Return data of the get_minimum_distributable_fee view instruction."""
    minimum_required: int
    distributable_fees: int
    can_distribute: bool

    LAYOUT = struct.Struct("<QQ?")

    @classmethod
    def decode(cls, data: bytes) -> "MinimumDistributableFee":
        if len(data) < cls.LAYOUT.size:
            raise AccountDecodeError(f"Minimum fee return data too short: {len(data)} bytes")
        minimum, distributable, can = cls.LAYOUT.unpack_from(data, 0)
        return cls(minimum, distributable, can)


# ============================================================================
# BUY QUOTE
# ============================================================================

def estimate_tokens_out(sol_amount: int, curve: BondingCurve) -> int:
    """Constant-product quote against the curve's virtual reserves."""
    if sol_amount <= 0:
        return 0
    return sol_amount * curve.virtual_token_reserves // (curve.virtual_sol_reserves + sol_amount)


def apply_slippage(tokens: int, slippage_bps: int) -> int:
    """Minimum acceptable token quantity after slippage tolerance."""
    return apply_bps(tokens, BPS_DENOMINATOR - slippage_bps)


# ============================================================================
# INSTRUCTION BUILDERS
# ============================================================================

def _meta(pubkey: Pubkey, signer: bool = False, writable: bool = False) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=signer, is_writable=writable)


def create_fee_sharing_config_ix(creator: Pubkey, mint: Pubkey) -> Instruction:
    """
    Create the sharing config for a coin still on its bonding curve.

    The creator pays, becomes admin and sole initial shareholder.
    """
    accounts = [
        _meta(event_authority_pda(PUMP_FEES_PROGRAM_ID)),
        _meta(PUMP_FEES_PROGRAM_ID),
        _meta(creator, signer=True, writable=True),
        _meta(mint),
        _meta(fee_sharing_config_pda(mint), writable=True),
        _meta(SYSTEM_PROGRAM_ID),
        _meta(bonding_curve_pda(mint), writable=True),
        _meta(PUMP_PROGRAM_ID),
        _meta(event_authority_pda(PUMP_PROGRAM_ID)),
    ]
    return Instruction(PUMP_FEES_PROGRAM_ID, IX_CREATE_FEE_SHARING_CONFIG, accounts)


def update_fee_shares_ix(
    authority: Pubkey,
    mint: Pubkey,
    current_shareholders: Sequence[Pubkey],
    new_shareholders: Sequence[Shareholder],
) -> Instruction:
    """
    Replace the shareholder list.

    Current shareholders are passed as remaining accounts so their pending
    fees are settled before the split changes.

    Raises:
        InvalidShareSplit: If new_shareholders does not sum to 10,000 bps
    """
    validate_shareholders(new_shareholders)

    sharing_config = fee_sharing_config_pda(mint)
    accounts = [
        _meta(event_authority_pda(PUMP_FEES_PROGRAM_ID)),
        _meta(PUMP_FEES_PROGRAM_ID),
        _meta(authority, signer=True, writable=True),
        _meta(mint),
        _meta(sharing_config, writable=True),
        _meta(bonding_curve_pda(mint)),
        _meta(creator_vault_pda(sharing_config), writable=True),
        _meta(SYSTEM_PROGRAM_ID),
        _meta(PUMP_PROGRAM_ID),
        _meta(event_authority_pda(PUMP_PROGRAM_ID)),
    ]
    accounts += [_meta(holder, writable=True) for holder in current_shareholders]
    data = IX_UPDATE_FEE_SHARES + encode_shareholders(new_shareholders)
    return Instruction(PUMP_FEES_PROGRAM_ID, data, accounts)


def _distribution_accounts(mint: Pubkey, config: SharingConfig) -> List[AccountMeta]:
    sharing_config = fee_sharing_config_pda(mint)
    accounts = [
        _meta(mint),
        _meta(bonding_curve_pda(mint)),
        _meta(sharing_config),
        _meta(creator_vault_pda(sharing_config), writable=True),
        _meta(SYSTEM_PROGRAM_ID),
        _meta(event_authority_pda(PUMP_PROGRAM_ID)),
        _meta(PUMP_PROGRAM_ID),
    ]
    accounts += [_meta(holder, writable=True) for holder in config.shareholder_pubkeys()]
    return accounts


def distribute_creator_fees_ix(mint: Pubkey, config: SharingConfig) -> Instruction:
    """Drain the creator vault to the config's shareholders."""
    return Instruction(PUMP_PROGRAM_ID, IX_DISTRIBUTE_CREATOR_FEES, _distribution_accounts(mint, config))


def get_minimum_distributable_fee_ix(mint: Pubkey, config: SharingConfig) -> Instruction:
    """View instruction; the answer comes back as program return data."""
    return Instruction(
        PUMP_PROGRAM_ID, IX_GET_MINIMUM_DISTRIBUTABLE_FEE, _distribution_accounts(mint, config)
    )


def buy_ix(
    global_state: GlobalState,
    mint: Pubkey,
    curve: BondingCurve,
    user: Pubkey,
    amount: int,
    max_sol_cost: int,
    token_program: Pubkey = TOKEN_PROGRAM_ID,
    track_volume: bool = False,
) -> Instruction:
    """
    Buy `amount` tokens from the bonding curve, paying at most `max_sol_cost`.

    Account order follows the program's current buy layout: the twelve
    curve accounts, then the volume accumulators and the fee program's
    fee_config.
    """
    bonding_curve = bonding_curve_pda(mint)
    accounts = [
        _meta(global_pda()),
        _meta(global_state.fee_recipient, writable=True),
        _meta(mint),
        _meta(bonding_curve, writable=True),
        _meta(get_associated_token_address(bonding_curve, mint, token_program), writable=True),
        _meta(get_associated_token_address(user, mint, token_program), writable=True),
        _meta(user, signer=True, writable=True),
        _meta(SYSTEM_PROGRAM_ID),
        _meta(token_program),
        _meta(creator_vault_pda(curve.creator), writable=True),
        _meta(event_authority_pda(PUMP_PROGRAM_ID)),
        _meta(PUMP_PROGRAM_ID),
        _meta(global_volume_accumulator_pda(), writable=True),
        _meta(user_volume_accumulator_pda(user), writable=True),
        _meta(fee_config_pda()),
        _meta(PUMP_FEES_PROGRAM_ID),
    ]
    # amount, max_sol_cost, track_volume (OptionBool)
    data = IX_BUY + struct.pack("<QQ?", amount, max_sol_cost, track_volume)
    return Instruction(PUMP_PROGRAM_ID, data, accounts)
