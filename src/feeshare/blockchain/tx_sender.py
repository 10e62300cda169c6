"""
feeshare/blockchain/tx_sender.py

Transaction submission with bounded retry on blockhash expiry.

Every chain write made by the fee-sharing and buyback services goes
through TransactionSender.send_with_retry:

    Attempt(n) --confirmed--------------------------> return signature
    Attempt(n) --blockhash expired, n < max_retries--> sleep, Attempt(n+1)
    Attempt(n) --any other error, or n == max_retries-> raise TransactionFailed

An "expired" attempt may still have landed. The chain's signature replay
protection is relied on to prevent double execution; the sender does not
look the old signature up before resubmitting.
"""

import logging
from typing import Optional, Sequence, TYPE_CHECKING

import trio
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.transaction import Transaction

from ..config import MAX_RETRIES, RETRY_DELAY_SECONDS
from ..rpc.client import BlockhashExpiredError

if TYPE_CHECKING:
    from ..rpc.client import ChainClient

logger = logging.getLogger("feeshare.blockchain.tx_sender")


# Substrings of RPC errors that mean the reference blockhash is gone
BLOCKHASH_EXPIRED_MARKERS = (
    "block height exceeded",
    "blockhash not found",
    "blockhash expired",
)


class TransactionFailed(Exception):
    """A transaction could not be confirmed."""

    def __init__(self, description: str, attempts: int, cause: Optional[BaseException] = None):
        self.description = description
        self.attempts = attempts
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{description} failed after {attempts} attempt(s){detail}")


def is_blockhash_expired(error: BaseException) -> bool:
    """Classify an error as a retryable blockhash expiry."""
    if isinstance(error, BlockhashExpiredError):
        return True
    message = str(error).lower()
    return any(marker in message for marker in BLOCKHASH_EXPIRED_MARKERS)


class TransactionSender:
    """
    Builds, signs, submits and confirms transactions.

    The first signer pays fees. A fresh blockhash is fetched for every
    attempt, so the transaction is rebuilt and re-signed each time.

    Example:
        sender = TransactionSender(chain_client)
        signature = await sender.send_with_retry(
            [instruction], [platform_keypair], "Distribute fees for <mint>"
        )
    """

    def __init__(
        self,
        chain: "ChainClient",
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ):
        """
        Initialize TransactionSender.

        Args:
            chain: ChainClient used for blockhash, submission and confirmation
            max_retries: Total attempts allowed, including the first
            retry_delay: Fixed seconds to wait before each retry
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.chain = chain
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    async def send_with_retry(
        self,
        instructions: Sequence[Instruction],
        signers: Sequence[Keypair],
        description: str,
    ) -> str:
        """
        Submit instructions as one transaction and wait for confirmation.

        Args:
            instructions: Instructions to include, in order
            signers: Keypairs that must sign; signers[0] is the fee payer
            description: Human-readable label for logs and errors

        Returns:
            Confirmed transaction signature

        Raises:
            TransactionFailed: On a non-retryable error or after max_retries
                expired attempts
        """
        if not signers:
            raise TransactionFailed(description, 0, ValueError("no signers"))

        fee_payer = signers[0].pubkey()

        for attempt in range(1, self.max_retries + 1):
            try:
                blockhash, last_valid_block_height = await self.chain.get_latest_blockhash()
                message = Message.new_with_blockhash(list(instructions), fee_payer, blockhash)
                tx = Transaction(list(signers), message, blockhash)

                logger.info(f"{description} - attempt {attempt}/{self.max_retries}")

                signature = await self.chain.send_transaction(tx)
                await self.chain.confirm_transaction(signature, last_valid_block_height)

                logger.info(f"{description} succeeded: {signature}")
                return signature

            except Exception as e:
                if is_blockhash_expired(e) and attempt < self.max_retries:
                    logger.warning(
                        f"{description} - blockhash expired, retrying in {self.retry_delay}s"
                    )
                    await trio.sleep(self.retry_delay)
                    continue

                logger.error(f"{description} failed on attempt {attempt}: {e}")
                raise TransactionFailed(description, attempt, e) from e

        # Unreachable: the last attempt either returns or raises
        raise TransactionFailed(description, self.max_retries)
