"""
feeshare/rpc - Solana RPC client for fee-sharing chain interaction.

Provides account reads, balance queries, transaction submission and
confirmation for the distribution and buyback services.
"""

from .client import (
    ChainClient,
    ChainError,
    BlockhashExpiredError,
    AccountInfo,
    is_valid_address,
    to_pubkey,
    lamports_to_sol,
    sol_to_lamports,
    shorten_address,
)

__all__ = [
    "ChainClient",
    "ChainError",
    "BlockhashExpiredError",
    "AccountInfo",
    "is_valid_address",
    "to_pubkey",
    "lamports_to_sol",
    "sol_to_lamports",
    "shorten_address",
]
