"""
feeshare/blockchain/buyback.py

Buy-and-burn of a coin using its agent's share of distributed fees.

Flow:
    1. Read the bonding curve (fail if missing or graduated) and the mint
       (fail if missing; token program taken from the mint's owner)
    2. Buy from the curve into the platform wallet's token account
    3. Wait for the balance to settle and read what was received
    4. Transfer the full amount to the burn address's token account

The buy and the burn are separate transactions. If the buy lands and the
burn does not, the tokens stay in the platform wallet and the failure
result carries the buy signature and quantity so they can be burned by
hand.

Usage:
    from feeshare.blockchain.buyback import BuybackService

    service = BuybackService(chain_client, config)
    result = await service.execute_buyback(mint, agent_share_lamports)
"""

import logging
from typing import Optional, TYPE_CHECKING

import trio
from solders.pubkey import Pubkey
from spl.token.instructions import (
    TransferCheckedParams,
    create_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)

from ..assets import AuditEvent, AuditLog, NullAuditLog
from ..config import FeeShareConfig
from ..results import BuybackFailure, BuybackResult, BuybackSuccess
from ..rpc.client import lamports_to_sol, to_pubkey
from .pump_program import (
    BondingCurve,
    GlobalState,
    apply_bps,
    apply_slippage,
    bonding_curve_pda,
    buy_ix,
    estimate_tokens_out,
    global_pda,
    token_program_for_owner,
)
from .tx_sender import TransactionSender

if TYPE_CHECKING:
    from ..rpc.client import ChainClient

logger = logging.getLogger("feeshare.blockchain.buyback")

# Offset of the decimals byte in an SPL mint account
MINT_DECIMALS_OFFSET = 44


class BuybackService:
    """
    Converts native-currency fees into a token buy followed by a burn.

    Only coins still trading on their bonding curve are supported.
    """

    def __init__(
        self,
        chain: "ChainClient",
        config: FeeShareConfig,
        sender: Optional[TransactionSender] = None,
        audit: Optional[AuditLog] = None,
    ):
        self.chain = chain
        self.config = config
        self.sender = sender or TransactionSender(
            chain,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay_seconds,
        )
        self.audit = audit or NullAuditLog()

    def calculate_agent_share(self, total_fees: int) -> int:
        """Agent portion of a distributed amount, floored to whole lamports."""
        return apply_bps(total_fees, self.config.agent_share_bps)

    async def execute_buyback(self, mint: str, lamports: int) -> BuybackResult:
        """
        Buy the coin with `lamports` and burn everything received.

        Args:
            mint: Mint of a coin still on its bonding curve
            lamports: Native amount to spend (> 0)

        Returns:
            BuybackSuccess, or BuybackFailure (with buy_tx_signature and
            tokens_bought set when the purchase landed)
        """
        result = await self._execute(mint, lamports)
        self.audit.record(AuditEvent.BUYBACK, mint, result.to_dict())
        return result

    async def _execute(self, mint: str, lamports: int) -> BuybackResult:
        if lamports <= 0:
            return BuybackFailure(f"Buyback amount must be positive, got {lamports}")

        try:
            mint_pk = to_pubkey(mint)
            platform = self.config.platform_keypair()

            curve_info = await self.chain.get_account_info(bonding_curve_pda(mint_pk))
            if curve_info is None:
                return BuybackFailure("Bonding curve not found")
            curve = BondingCurve.decode(curve_info.data)
            if curve.complete:
                return BuybackFailure("Token has graduated from bonding curve, buyback not supported")

            mint_info = await self.chain.get_account_info(mint_pk)
            if mint_info is None:
                return BuybackFailure("Mint account not found")
            token_program = token_program_for_owner(mint_info.owner)
            decimals = mint_info.data[MINT_DECIMALS_OFFSET]

            global_info = await self.chain.get_account_info(global_pda())
            if global_info is None:
                return BuybackFailure("Global state not found")
            global_state = GlobalState.decode(global_info.data)
        except Exception as e:
            logger.error(f"Buyback preparation failed for {mint}: {e}")
            return BuybackFailure(str(e))

        logger.info(f"Executing buyback for {mint}: {lamports_to_sol(lamports)} SOL")

        # Buy
        expected = estimate_tokens_out(lamports, curve)
        min_tokens = apply_slippage(expected, self.config.slippage_bps)
        if min_tokens <= 0:
            return BuybackFailure(f"Buy amount {lamports} too small for any tokens")

        platform_ata = get_associated_token_address(platform.pubkey(), mint_pk, token_program)
        try:
            instructions = []
            if await self.chain.get_account_info(platform_ata) is None:
                instructions.append(create_associated_token_account(
                    platform.pubkey(), platform.pubkey(), mint_pk, token_program_id=token_program
                ))
            instructions.append(buy_ix(
                global_state, mint_pk, curve, platform.pubkey(),
                amount=min_tokens, max_sol_cost=lamports, token_program=token_program,
            ))
            buy_sig = await self.sender.send_with_retry(
                instructions, [platform], f"Buyback buy for {mint}"
            )
        except Exception as e:
            logger.error(f"Buyback buy failed for {mint}: {e}")
            return BuybackFailure(str(e))

        logger.info(f"Buy transaction confirmed: {buy_sig}")

        await trio.sleep(self.config.buy_settle_delay_seconds)

        try:
            tokens_bought = await self.chain.get_token_balance(platform_ata)
        except Exception as e:
            logger.error(f"Could not read purchased balance for {mint}: {e}")
            return BuybackFailure(str(e), buy_tx_signature=buy_sig, tokens_bought=None)

        if tokens_bought <= 0:
            return BuybackFailure("No tokens received from buy", buy_tx_signature=buy_sig)

        logger.info(f"Received {tokens_bought} tokens, burning")

        # Burn
        try:
            burn_sig = await self._burn(
                mint_pk, platform, platform_ata, tokens_bought, decimals, token_program
            )
        except Exception as e:
            logger.error(
                f"Burn failed for {mint}; {tokens_bought} tokens remain in platform wallet (buy tx {buy_sig}): {e}"
            )
            return BuybackFailure(str(e), buy_tx_signature=buy_sig, tokens_bought=tokens_bought)

        logger.info(f"Burn transaction confirmed: {burn_sig}")
        return BuybackSuccess(
            buy_tx_signature=buy_sig,
            burn_tx_signature=burn_sig,
            tokens_burned=tokens_bought,
            lamports_spent=lamports,
        )

    async def _burn(
        self,
        mint: Pubkey,
        platform,
        source: Pubkey,
        amount: int,
        decimals: int,
        token_program: Pubkey,
    ) -> str:
        burn_owner = to_pubkey(self.config.burn_address)
        burn_ata = get_associated_token_address(burn_owner, mint, token_program)

        instructions = []
        if await self.chain.get_account_info(burn_ata) is None:
            instructions.append(create_associated_token_account(
                platform.pubkey(), burn_owner, mint, token_program_id=token_program
            ))
        instructions.append(transfer_checked(TransferCheckedParams(
            program_id=token_program,
            source=source,
            mint=mint,
            dest=burn_ata,
            owner=platform.pubkey(),
            amount=amount,
            decimals=decimals,
            signers=[],
        )))
        return await self.sender.send_with_retry(
            instructions, [platform], f"Buyback burn for {mint}"
        )
