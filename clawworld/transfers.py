"""
Bot-to-bot token transfers with a protocol fee.

A transfer is two ledger operations: the net amount to the recipient,
then the fee to the treasury. The first decides the outcome. The second is
best effort; its result is reported in ``fee_status`` and never undoes or
fails the primary transfer.

Transfers are not idempotent. A caller that retries after an error should
first look for a transfer record with the same parameters.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import (
    BotNotFound,
    InsufficientBalance,
    InvalidRequest,
    LedgerSubmissionError,
    RecordStoreError,
)
from .solana_client import TokenLedgerClient, is_valid_address
from .store import BOTS, TRANSACTIONS, RecordStore
from .wallets import SecretSealer

logger = logging.getLogger(__name__)

DEFAULT_FEE_BPS = 250  # 2.5%
MEMO_MAX_LENGTH = 200


class FeeStatus(str, Enum):
    SWEPT = "swept"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class TransferResult:
    """Outcome of a confirmed transfer"""
    signature: str
    fee_signature: Optional[str]
    fee_status: FeeStatus
    from_bot_id: str
    from_name: str
    to_address: str
    to_bot_id: Optional[str]
    to_name: Optional[str]
    amount: int
    fee: int
    net_amount: int
    memo: str = ""
    recorded: bool = True

    def to_dict(self) -> dict:
        return {
            "success": True,
            "transaction": {
                "signature": self.signature,
                "feeSignature": self.fee_signature,
                "feeStatus": self.fee_status.value,
                "from": self.from_name,
                "to": self.to_name or self.to_address,
                "amount": self.amount,
                "fee": self.fee,
                "netAmount": self.net_amount,
                "memo": self.memo,
                "recorded": self.recorded,
            },
        }


def compute_fee(amount: int, fee_bps: int = DEFAULT_FEE_BPS) -> tuple[int, int]:
    """Split ``amount`` into (fee, net) with fee = floor(amount * bps / 10000)."""
    fee = amount * fee_bps // 10_000
    return fee, amount - fee


class TransferOrchestrator:
    """Validates, executes and records bot-to-bot transfers."""

    def __init__(
        self,
        store: RecordStore,
        ledger: TokenLedgerClient,
        sealer: SecretSealer,
        treasury_address: Optional[str],
        fee_bps: int = DEFAULT_FEE_BPS,
    ):
        self.store = store
        self.ledger = ledger
        self.sealer = sealer
        self.treasury_address = treasury_address
        self.fee_bps = fee_bps

    async def transfer(
        self,
        from_bot_id,
        to_address: str,
        amount: int,
        memo: Optional[str] = "",
    ) -> TransferResult:
        """
        Send ``amount`` whole tokens from a bot's custodial wallet.

        The balance pre-check is advisory; the ledger has the final word, so
        a concurrent spend can still make the net transfer fail.

        Raises:
            InvalidRequest: bad amount, recipient address or memo
            BotNotFound: unknown sender
            InsufficientBalance: live balance below ``amount`` (no ledger call made)
            LedgerSubmissionError: net transfer rejected or unconfirmed (nothing recorded)
        """
        memo = memo or ""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidRequest(f"Amount must be a positive whole number of tokens, got {amount!r}")
        if not to_address or not is_valid_address(to_address):
            raise InvalidRequest(f"Invalid recipient address: {to_address!r}")
        if len(memo) > MEMO_MAX_LENGTH:
            raise InvalidRequest(f"Memo too long (max {MEMO_MAX_LENGTH} chars)")

        sender = await self.store.select_one(BOTS, [("id", "eq", from_bot_id)], privileged=True)
        if sender is None:
            raise BotNotFound("Sender not found")

        balance = await self.ledger.get_balance(sender["wallet_address"])
        if balance < self.ledger.to_base_units(amount):
            raise InsufficientBalance(self.ledger.to_tokens(balance), amount)

        fee, net_amount = compute_fee(amount, self.fee_bps)
        keypair = self.sealer.unseal_keypair(
            sender["wallet_private_key_encrypted"], sender["wallet_address"]
        )

        signature = await self.ledger.transfer(
            keypair, to_address, self.ledger.to_base_units(net_amount)
        )
        fee_signature, fee_status = await self._sweep_fee(keypair, sender, fee)

        receiver = await self._find_receiver(to_address)
        result = TransferResult(
            signature=signature,
            fee_signature=fee_signature,
            fee_status=fee_status,
            from_bot_id=sender["id"],
            from_name=sender["name"],
            to_address=to_address,
            to_bot_id=receiver["id"] if receiver else None,
            to_name=receiver["name"] if receiver else None,
            amount=amount,
            fee=fee,
            net_amount=net_amount,
            memo=memo,
        )
        result.recorded = await self._record(result)

        logger.info(
            f"Transfer {sender['name']!r} -> {result.to_name or to_address[:12]}: "
            f"{net_amount} + fee {fee} ({fee_status.value}), tx={signature[:16]}..."
        )
        return result

    async def _sweep_fee(self, keypair, sender: dict, fee: int) -> tuple[Optional[str], FeeStatus]:
        if fee <= 0:
            return None, FeeStatus.SKIPPED
        if not self.treasury_address:
            logger.warning(f"No treasury configured, fee of {fee} from {sender['name']!r} not collected")
            return None, FeeStatus.SKIPPED
        try:
            sig = await self.ledger.transfer(
                keypair, self.treasury_address, self.ledger.to_base_units(fee)
            )
            return sig, FeeStatus.SWEPT
        except LedgerSubmissionError as e:
            logger.error(f"Fee transfer failed for {sender['name']!r} (fee {fee}): {e}")
            return None, FeeStatus.FAILED

    async def _find_receiver(self, to_address: str) -> Optional[dict]:
        try:
            return await self.store.select_one(
                BOTS, [("wallet_address", "eq", to_address)], columns=["id", "name"]
            )
        except RecordStoreError as e:
            logger.warning(f"Could not resolve recipient {to_address[:12]}...: {e}")
            return None

    async def _record(self, result: TransferResult) -> bool:
        try:
            await self.store.insert(TRANSACTIONS, {
                "from_bot_id": result.from_bot_id,
                "to_bot_id": result.to_bot_id,
                "to_wallet": result.to_address,
                "amount": result.amount,
                "fee": result.fee,
                "net_amount": result.net_amount,
                "memo": result.memo,
                "tx_signature": result.signature,
                "fee_tx_signature": result.fee_signature,
                "fee_status": result.fee_status.value,
            })
            return True
        except RecordStoreError as e:
            # The tokens moved; surface the gap instead of failing the transfer
            logger.error(f"Transfer {result.signature} confirmed but not recorded: {e}")
            return False
