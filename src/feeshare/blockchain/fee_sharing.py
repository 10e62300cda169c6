"""
feeshare/blockchain/fee_sharing.py

On-chain fee sharing for launched coins.

Each coin's creator fees accrue in a vault owned by the bonding-curve
program. After launch the platform wallet creates a sharing config for the
mint (becoming its admin and sole shareholder), then replaces itself with
the agent/treasury split. From then on anyone holding the platform key can
drain the vault to the shareholders with a distribution instruction; the
beneficiaries themselves cannot change the split.

Flow:
    setup_fee_sharing(mint, agent)      create config -> update shareholders
    has_shareholder_config(mint)        creator field == sharing-config PDA
    get_creator_vault_balance(mint)     undistributed lamports
    distribute_creator_fees(mint)       config + minimum checks -> distribute

Read policy: read_* methods return Ok/Err. The public getters map Err to
a conservative default (balance 0, config absent, static minimum) and log
the degradation, so scheduling decisions skip rather than distribute.

Usage:
    from feeshare.blockchain.fee_sharing import FeeSharingService

    service = FeeSharingService(chain_client, config)
    result = await service.setup_fee_sharing(mint, agent_wallet)
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, TYPE_CHECKING

from solders.pubkey import Pubkey

from ..assets import AuditEvent, AuditLog, NullAuditLog
from ..config import BPS_DENOMINATOR, FeeShareConfig
from ..pacing import FixedDelayPacer, Pacer
from ..results import (
    DistributionFailure,
    DistributionResult,
    DistributionSuccess,
    Err,
    Ok,
    ReadResult,
    SetupFailure,
    SetupResult,
    SetupStage,
    SetupSuccess,
    UpdateFailure,
    UpdateResult,
    UpdateSuccess,
)
from ..rpc.client import ChainError, lamports_to_sol, to_pubkey
from .pump_program import (
    BondingCurve,
    MinimumDistributableFee,
    Shareholder,
    SharingConfig,
    amm_creator_vault_ata,
    bonding_curve_pda,
    create_fee_sharing_config_ix,
    creator_vault_pda,
    distribute_creator_fees_ix,
    fee_sharing_config_pda,
    get_minimum_distributable_fee_ix,
    has_coin_creator_migrated_to_sharing_config,
    split_shareholders,
    update_fee_shares_ix,
)
from .tx_sender import TransactionSender

if TYPE_CHECKING:
    from solders.keypair import Keypair
    from ..rpc.client import ChainClient

logger = logging.getLogger("feeshare.blockchain.fee_sharing")


@dataclass
class FeeStatus:
    """Fee-sharing state of one mint, for administrative display."""
    mint: str
    fee_sharing_enabled: bool
    vault_balance_lamports: int
    min_distributable_lamports: int
    agent_share_bps: int
    platform_share_bps: int

    @property
    def can_distribute(self) -> bool:
        return (
            self.fee_sharing_enabled
            and self.vault_balance_lamports > 0
            and self.vault_balance_lamports >= self.min_distributable_lamports
        )

    def to_dict(self) -> dict:
        return {
            "mint_address": self.mint,
            "fee_sharing_enabled": self.fee_sharing_enabled,
            "vault_balance_lamports": self.vault_balance_lamports,
            "min_distributable_lamports": self.min_distributable_lamports,
            "can_distribute": self.can_distribute,
            "fee_split": {
                "agent_percent": self.agent_share_bps / 100,
                "platform_percent": self.platform_share_bps / 100,
            },
        }


class FeeSharingService:
    """
    Sets up sharing configs, reads creator vaults and distributes fees.

    All chain writes are signed by the platform wallet and submitted
    through a TransactionSender.
    """

    def __init__(
        self,
        chain: "ChainClient",
        config: FeeShareConfig,
        sender: Optional[TransactionSender] = None,
        audit: Optional[AuditLog] = None,
        batch_pacer: Optional[Pacer] = None,
    ):
        """
        Initialize FeeSharingService.

        Args:
            chain: ChainClient for reads
            config: Engine configuration (split, thresholds, platform key)
            sender: TransactionSender for writes (built from chain if None)
            audit: Audit trail for setup and distribution outcomes
            batch_pacer: Pacing between mints in batch_distribute_creator_fees
        """
        self.chain = chain
        self.config = config
        self.sender = sender or TransactionSender(
            chain,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay_seconds,
        )
        self.audit = audit or NullAuditLog()
        self.batch_pacer = batch_pacer or FixedDelayPacer(config.batch_delay_seconds)

    def _platform(self) -> "Keypair":
        return self.config.platform_keypair()

    # ========================================================================
    # SHAREHOLDER CONFIG
    # ========================================================================

    async def setup_fee_sharing(self, mint: str, agent_address: str) -> SetupResult:
        """
        Create the sharing config for a freshly launched coin and install
        the agent/treasury split.

        Step 2 runs only if step 1 confirmed. If step 2 fails the config
        exists with the platform as sole shareholder; call
        update_shareholders() to finish.

        Args:
            mint: Mint address of a coin whose creation has confirmed
            agent_address: Agent wallet receiving agent_share_bps

        Returns:
            SetupSuccess or SetupFailure (with the stage that failed)
        """
        try:
            mint_pk = to_pubkey(mint)
            to_pubkey(agent_address)
            shareholders = split_shareholders(
                agent_address, self.config.treasury_wallet, self.config.agent_share_bps
            )
            to_pubkey(self.config.treasury_wallet)
            platform = self._platform()
        except Exception as e:
            logger.error(f"Fee sharing setup rejected for {mint}: {e}")
            return self._record_setup(mint, SetupFailure(str(e), SetupStage.CREATE))

        config_address = str(fee_sharing_config_pda(mint_pk))

        logger.info(f"Setting up fee sharing for mint {mint}")
        logger.info(f"  Agent ({self.config.agent_share_bps / 100:g}%): {agent_address}")
        logger.info(f"  Treasury ({self.config.platform_share_bps / 100:g}%): {self.config.treasury_wallet}")

        # Step 1: platform wallet pays, becomes admin and sole shareholder
        try:
            setup_sig = await self.sender.send_with_retry(
                [create_fee_sharing_config_ix(platform.pubkey(), mint_pk)],
                [platform],
                f"Create fee sharing config for {mint}",
            )
        except Exception as e:
            logger.error(f"Fee sharing config creation failed for {mint}: {e}")
            return self._record_setup(mint, SetupFailure(str(e), SetupStage.CREATE))

        logger.info(f"Fee sharing config created: {setup_sig}")

        # Step 2: replace the platform with the two-party split
        try:
            update_sig = await self._submit_update(
                mint_pk, [platform.pubkey()], shareholders, platform
            )
        except Exception as e:
            logger.error(f"Fee share update failed for {mint} (config {config_address} left with platform as sole shareholder): {e}")
            return self._record_setup(mint, SetupFailure(
                str(e),
                SetupStage.UPDATE,
                config_address=config_address,
                setup_tx_signature=setup_sig,
            ))

        logger.info(f"Fee shares updated: {update_sig}")
        return self._record_setup(mint, SetupSuccess(config_address, setup_sig, update_sig))

    async def update_shareholders(self, mint: str, agent_address: str) -> UpdateResult:
        """
        Install the agent/treasury split on an existing sharing config.

        Recovery path for a setup that stopped after step 1. The current
        shareholders are read from chain.
        """
        try:
            mint_pk = to_pubkey(mint)
            to_pubkey(agent_address)
            shareholders = split_shareholders(
                agent_address, self.config.treasury_wallet, self.config.agent_share_bps
            )
            sharing_config = await self._fetch_sharing_config(mint_pk)
            if sharing_config is None:
                return UpdateFailure("Fee sharing config not found")

            platform = self._platform()
            if sharing_config.admin != platform.pubkey():
                return UpdateFailure(
                    f"Sharing config admin {sharing_config.admin} is not the platform wallet"
                )

            current = sharing_config.shareholder_pubkeys()
            update_sig = await self._submit_update(mint_pk, current, shareholders, platform)
        except Exception as e:
            logger.error(f"Shareholder update failed for {mint}: {e}")
            return UpdateFailure(str(e))

        logger.info(f"Fee shares updated for {mint}: {update_sig}")
        result = UpdateSuccess(str(fee_sharing_config_pda(mint_pk)), update_sig)
        self.audit.record(AuditEvent.SETUP, mint, result.to_dict())
        return result

    async def _submit_update(
        self,
        mint: Pubkey,
        current: Sequence[Pubkey],
        shareholders: Sequence[Shareholder],
        platform: "Keypair",
    ) -> str:
        ix = update_fee_shares_ix(platform.pubkey(), mint, current, shareholders)
        return await self.sender.send_with_retry(
            [ix], [platform], f"Update fee shares for {mint}"
        )

    def _record_setup(self, mint: str, result: SetupResult) -> SetupResult:
        self.audit.record(AuditEvent.SETUP, mint, result.to_dict())
        return result

    async def fetch_current_shareholders(self, mint: str) -> List[Shareholder]:
        """Shareholders on chain; empty if the config is absent or unreadable."""
        try:
            sharing_config = await self._fetch_sharing_config(to_pubkey(mint))
        except Exception as e:
            logger.warning(f"Failed to fetch current shareholders for {mint}: {e}")
            return []
        if sharing_config is None:
            return []
        return list(sharing_config.shareholders)

    async def _fetch_sharing_config(self, mint: Pubkey) -> Optional[SharingConfig]:
        info = await self.chain.get_account_info(fee_sharing_config_pda(mint))
        if info is None:
            return None
        return SharingConfig.decode(info.data)

    # ========================================================================
    # VAULT MONITOR
    # ========================================================================

    async def _fetch_bonding_curve(self, mint: Pubkey) -> BondingCurve:
        info = await self.chain.get_account_info(bonding_curve_pda(mint))
        if info is None:
            raise ChainError(f"Bonding curve not found for {mint}")
        return BondingCurve.decode(info.data)

    async def _curve_vault_balance(self, creator: Pubkey) -> int:
        """Lamports above rent in the bonding-curve program's creator vault."""
        vault = await self.chain.get_account_info(creator_vault_pda(creator))
        if vault is None:
            return 0
        rent_exempt = await self.chain.get_minimum_balance_for_rent_exemption(0)
        return max(0, vault.lamports - rent_exempt)

    async def _creator_vault_balance(self, creator: Pubkey) -> int:
        """Undistributed lamports across the curve vault and the AMM vault."""
        total = await self._curve_vault_balance(creator)

        amm_vault = amm_creator_vault_ata(creator)
        if await self.chain.get_account_info(amm_vault) is not None:
            total += await self.chain.get_token_balance(amm_vault)

        return total

    async def read_creator_vault_balance(self, mint: str) -> ReadResult[int]:
        try:
            curve = await self._fetch_bonding_curve(to_pubkey(mint))
            return Ok(await self._creator_vault_balance(curve.creator))
        except Exception as e:
            return Err(str(e))

    async def get_creator_vault_balance(self, mint: str) -> int:
        """Undistributed fee balance in lamports; 0 if it cannot be read."""
        result = await self.read_creator_vault_balance(mint)
        if not result.ok:
            logger.warning(f"Failed to get creator vault balance for {mint}: {result.error}")
        return result.unwrap_or(0)

    async def read_has_shareholder_config(self, mint: str) -> ReadResult[bool]:
        try:
            mint_pk = to_pubkey(mint)
            curve = await self._fetch_bonding_curve(mint_pk)
            return Ok(has_coin_creator_migrated_to_sharing_config(mint_pk, curve.creator))
        except Exception as e:
            return Err(str(e))

    async def has_shareholder_config(self, mint: str) -> bool:
        """Whether the coin's creator has migrated to a sharing config; False if unknown."""
        result = await self.read_has_shareholder_config(mint)
        if not result.ok:
            logger.warning(f"Failed to check fee sharing config for {mint}: {result.error}")
        return result.unwrap_or(False)

    async def read_minimum_distributable_fee(self, mint: str) -> ReadResult[int]:
        try:
            mint_pk = to_pubkey(mint)
            sharing_config = await self._fetch_sharing_config(mint_pk)
            if sharing_config is None:
                return Err("Fee sharing config not found")
            return await self._read_minimum(mint_pk, sharing_config)
        except Exception as e:
            return Err(str(e))

    async def _read_minimum(self, mint: Pubkey, sharing_config: SharingConfig) -> ReadResult[int]:
        try:
            data = await self.chain.simulate_return_data(
                [get_minimum_distributable_fee_ix(mint, sharing_config)],
                self._platform().pubkey(),
            )
            if data is None:
                return Err("No return data from minimum fee query")
            return Ok(MinimumDistributableFee.decode(data).minimum_required)
        except Exception as e:
            return Err(str(e))

    async def get_minimum_distributable_fee(self, mint: str) -> int:
        """Protocol minimum in lamports; the static default if it cannot be read."""
        result = await self.read_minimum_distributable_fee(mint)
        if not result.ok:
            logger.debug(f"Using default minimum distributable fee for {mint}: {result.error}")
        return result.unwrap_or(self.config.min_distributable_lamports)

    async def get_fee_status(self, mint: str) -> FeeStatus:
        return FeeStatus(
            mint=mint,
            fee_sharing_enabled=await self.has_shareholder_config(mint),
            vault_balance_lamports=await self.get_creator_vault_balance(mint),
            min_distributable_lamports=await self.get_minimum_distributable_fee(mint),
            agent_share_bps=self.config.agent_share_bps,
            platform_share_bps=BPS_DENOMINATOR - self.config.agent_share_bps,
        )

    # ========================================================================
    # DISTRIBUTION
    # ========================================================================

    async def distribute_creator_fees(self, mint: str) -> DistributionResult:
        """
        Distribute a coin's accumulated creator fees to its shareholders.

        Nothing is submitted if the sharing config is missing or the vault
        holds less than the minimum distributable amount.

        Returns:
            DistributionSuccess with the pre-distribution vault balance as
            amount distributed, or DistributionFailure
        """
        try:
            mint_pk = to_pubkey(mint)
            sharing_config = await self._fetch_sharing_config(mint_pk)
            if sharing_config is None:
                return self._record_distribution(
                    mint, DistributionFailure("Fee sharing config not found")
                )

            minimum = (await self._read_minimum(mint_pk, sharing_config)).unwrap_or(
                self.config.min_distributable_lamports
            )
            # The distribution instruction drains the curve vault only
            curve = await self._fetch_bonding_curve(mint_pk)
            balance = await self._curve_vault_balance(curve.creator)

            if balance <= 0 or balance < minimum:
                logger.info(f"Skipping distribution for {mint}: balance {balance} < min {minimum}")
                return self._record_distribution(mint, DistributionFailure(
                    f"Balance {balance} below minimum distributable {minimum}"
                ))

            platform = self._platform()
            signature = await self.sender.send_with_retry(
                [distribute_creator_fees_ix(mint_pk, sharing_config)],
                [platform],
                f"Distribute creator fees for {mint}",
            )
        except Exception as e:
            logger.error(f"Fee distribution failed for {mint}: {e}")
            return self._record_distribution(mint, DistributionFailure(str(e)))

        logger.info(
            f"Creator fees distributed for {mint}: {lamports_to_sol(balance)} SOL (tx: {signature})"
        )
        return self._record_distribution(mint, DistributionSuccess(signature, balance))

    def _record_distribution(self, mint: str, result: DistributionResult) -> DistributionResult:
        self.audit.record(AuditEvent.DISTRIBUTION, mint, result.to_dict())
        return result

    async def get_tokens_ready_for_distribution(self, mints: Sequence[str]) -> List[str]:
        """Mints with a sharing config and at least the static minimum in their vault."""
        ready = []
        for mint in mints:
            if not await self.has_shareholder_config(mint):
                continue
            balance = await self.get_creator_vault_balance(mint)
            if balance >= self.config.min_distributable_lamports:
                ready.append(mint)
        return ready

    async def batch_distribute_creator_fees(
        self,
        mints: Sequence[str],
    ) -> Dict[str, DistributionResult]:
        """Distribute for each mint in order, pacing between submissions."""
        results: Dict[str, DistributionResult] = {}
        self.batch_pacer.reset()

        for mint in mints:
            results[mint] = await self.distribute_creator_fees(mint)
            await self.batch_pacer.wait()

        return results
