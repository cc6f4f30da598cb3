"""Solana client for the ClawWorld SPL token"""
import asyncio
import logging
from typing import Optional, Union

import httpx
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import (
    RPCException,
    TransactionExpiredBlockheightExceededError,
    UnconfirmedTxError,
)
from solana.rpc.types import TokenAccountOpts, TxOpts
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferCheckedParams,
    create_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)

from ..errors import LedgerSubmissionError, LedgerTimeout

logger = logging.getLogger(__name__)

# Errors raised by solana-py for a rejected or undeliverable request
LEDGER_ERRORS = (RPCException, SolanaRpcException, httpx.HTTPError)

PubkeyLike = Union[Pubkey, str]


def _pubkey(value: PubkeyLike) -> Pubkey:
    return value if isinstance(value, Pubkey) else Pubkey.from_string(value)


def is_valid_address(address: str) -> bool:
    """Check whether a string parses as a base58 Solana address."""
    try:
        Pubkey.from_string(address)
        return True
    except (ValueError, TypeError):
        return False


class TokenLedgerClient:
    """
    Balance queries and transfers for one SPL token mint.

    Holds no state besides the RPC connection. Every transfer blocks until
    the cluster reports ``confirmed`` commitment or the confirmation
    timeout runs out. Nothing is retried here; callers decide whether a
    failed operation may be resubmitted.
    """

    def __init__(
        self,
        rpc_url: str,
        mint: PubkeyLike,
        decimals: int = 9,
        confirm_timeout: float = 60.0,
        client: Optional[AsyncClient] = None,
    ):
        """
        Initialize the client.

        Args:
            rpc_url: Solana RPC URL
            mint: Mint address of the designated token
            decimals: Decimals of the mint (used by transfer_checked)
            confirm_timeout: Seconds to wait for confirmation of a transaction
            client: Pre-built AsyncClient (optional, for tests)
        """
        self.rpc_url = rpc_url
        self.mint = _pubkey(mint)
        self.decimals = decimals
        self.confirm_timeout = confirm_timeout
        self.client: Optional[AsyncClient] = client

    async def connect(self):
        """Connect to Solana"""
        if self.client is None:
            self.client = AsyncClient(self.rpc_url, commitment=Confirmed)
        logger.info(f"Connected to {self.rpc_url} (mint {self.mint})")

    async def disconnect(self):
        """Disconnect from Solana"""
        if self.client:
            await self.client.close()
            logger.info("Disconnected from Solana")

    def to_base_units(self, tokens: int) -> int:
        return int(tokens) * 10 ** self.decimals

    def to_tokens(self, units: int) -> float:
        return units / 10 ** self.decimals

    def token_account_address(self, owner: PubkeyLike) -> Pubkey:
        """Associated token account of ``owner`` for the mint"""
        return get_associated_token_address(_pubkey(owner), self.mint)

    async def fetch_balance(self, address: PubkeyLike) -> int:
        """
        Token balance of a wallet in base units, 0 if it has no token account.

        Raises:
            LedgerSubmissionError: the lookup failed, so the balance is unknown
        """
        try:
            resp = await self.client.get_token_accounts_by_owner_json_parsed(
                _pubkey(address), TokenAccountOpts(mint=self.mint)
            )
            if not resp.value:
                return 0
            info = resp.value[0].account.data.parsed["info"]
            return int(info["tokenAmount"]["amount"])
        except (*LEDGER_ERRORS, KeyError, TypeError, ValueError, AttributeError) as e:
            raise LedgerSubmissionError(f"Balance lookup for {address} failed: {e}") from e

    async def get_balance(self, address: PubkeyLike) -> int:
        """
        Token balance of a wallet in base units.

        Returns 0 when the wallet has no token account yet, and also when the
        lookup itself fails (the fault is logged). Use ``fetch_balance`` where
        an unknown balance must not read as empty.
        """
        try:
            return await self.fetch_balance(address)
        except LedgerSubmissionError as e:
            logger.error(f"Error getting token balance for {str(address)[:12]}...: {e}")
            return 0

    async def get_native_balance(self, address: PubkeyLike) -> int:
        """SOL balance in lamports (for fee sufficiency checks)."""
        resp = await self.client.get_balance(_pubkey(address))
        return resp.value

    async def ensure_token_account(self, payer: Keypair, owner: PubkeyLike) -> Pubkey:
        """
        Make sure ``owner`` has an associated token account, creating it if
        absent with ``payer`` covering rent. Returns the account address.
        """
        owner_key = _pubkey(owner)
        ata = self.token_account_address(owner_key)
        try:
            resp = await self.client.get_account_info(ata)
        except LEDGER_ERRORS as e:
            raise LedgerSubmissionError(f"Token account lookup failed: {e}") from e
        if resp.value is not None:
            return ata

        ix = create_associated_token_account(payer.pubkey(), owner_key, self.mint)
        sig = await self._send_and_confirm([ix], payer)
        logger.info(f"Created token account {ata} for {owner_key} (tx: {sig[:16]}...)")
        return ata

    async def transfer(self, from_keypair: Keypair, to_address: PubkeyLike, amount: int) -> str:
        """
        Transfer ``amount`` base units of the mint.

        Token accounts for both parties are created first when missing (paid
        by the sender). Either a confirmed signature is returned or an
        exception propagates; account creation may have happened even then.

        Raises:
            LedgerSubmissionError: the cluster rejected a transaction
            LedgerTimeout: the transfer was sent but not confirmed in time
        """
        if amount <= 0:
            raise ValueError(f"Transfer amount must be positive, got {amount}")

        source = await self.ensure_token_account(from_keypair, from_keypair.pubkey())
        dest = await self.ensure_token_account(from_keypair, to_address)

        ix = transfer_checked(
            TransferCheckedParams(
                program_id=TOKEN_PROGRAM_ID,
                source=source,
                mint=self.mint,
                dest=dest,
                owner=from_keypair.pubkey(),
                amount=amount,
                decimals=self.decimals,
            )
        )
        sig = await self._send_and_confirm([ix], from_keypair)
        logger.info(
            f"Transfer {amount} units {from_keypair.pubkey()} -> {to_address}: {sig}"
        )
        return sig

    async def _send_and_confirm(self, instructions: list[Instruction], payer: Keypair) -> str:
        """Sign, send and wait for ``confirmed`` commitment."""
        try:
            recent = await self.client.get_latest_blockhash()
            blockhash = recent.value.blockhash
            msg = Message.new_with_blockhash(instructions, payer.pubkey(), blockhash)
            tx = Transaction.new_unsigned(msg)
            tx.sign([payer], blockhash)
            resp = await self.client.send_transaction(
                tx, opts=TxOpts(skip_confirmation=True, preflight_commitment=Confirmed),
            )
        except LEDGER_ERRORS as e:
            raise LedgerSubmissionError(f"Transaction rejected: {e}") from e

        signature: Signature = resp.value
        sig = str(signature)
        try:
            confirmation = await asyncio.wait_for(
                self.client.confirm_transaction(
                    signature,
                    commitment=Confirmed,
                    last_valid_block_height=recent.value.last_valid_block_height,
                ),
                timeout=self.confirm_timeout,
            )
        except (asyncio.TimeoutError, UnconfirmedTxError, TransactionExpiredBlockheightExceededError) as e:
            raise LedgerTimeout(f"Transaction {sig} not confirmed: {str(e) or 'timeout'}", signature=sig) from e
        except LEDGER_ERRORS as e:
            raise LedgerSubmissionError(f"Confirmation of {sig} failed: {e}") from e

        status = confirmation.value[0] if confirmation.value else None
        if status is not None and status.err is not None:
            raise LedgerSubmissionError(f"Transaction {sig} failed on-chain: {status.err}")
        return sig
