"""
feeshare/blockchain/

On-chain fee sharing for bonding-curve token launches.

Codec for the launch and fee-sharing programs, retrying transaction
submission, and the fee-sharing and buyback services built on them.
"""

from .pump_program import (
    Shareholder,
    BondingCurve,
    GlobalState,
    SharingConfig,
    AccountDecodeError,
    InvalidShareSplit,
    apply_bps,
    validate_shareholders,
    split_shareholders,
    fee_sharing_config_pda,
    bonding_curve_pda,
    has_coin_creator_migrated_to_sharing_config,
)

from .tx_sender import (
    TransactionSender,
    TransactionFailed,
    is_blockhash_expired,
)

from .fee_sharing import (
    FeeSharingService,
    FeeStatus,
)

from .buyback import BuybackService

__all__ = [
    # Program codec
    "Shareholder",
    "BondingCurve",
    "GlobalState",
    "SharingConfig",
    "AccountDecodeError",
    "InvalidShareSplit",
    "apply_bps",
    "validate_shareholders",
    "split_shareholders",
    "fee_sharing_config_pda",
    "bonding_curve_pda",
    "has_coin_creator_migrated_to_sharing_config",
    # Submission
    "TransactionSender",
    "TransactionFailed",
    "is_blockhash_expired",
    # Services
    "FeeSharingService",
    "FeeStatus",
    "BuybackService",
]
