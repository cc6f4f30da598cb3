"""Token ledger gateway against a mocked RPC client"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from solana.rpc.core import RPCException
from solders.hash import Hash
from solders.keypair import Keypair
from solders.signature import Signature

from clawworld.errors import LedgerSubmissionError, LedgerTimeout
from clawworld.solana_client import TokenLedgerClient, is_valid_address

MINT = str(Keypair().pubkey())


def _rpc(account_exists=True):
    rpc = MagicMock()
    rpc.get_account_info = AsyncMock(return_value=MagicMock(value=MagicMock() if account_exists else None))
    rpc.get_latest_blockhash = AsyncMock(
        return_value=MagicMock(value=MagicMock(blockhash=Hash.new_unique(), last_valid_block_height=100))
    )
    rpc.send_transaction = AsyncMock(return_value=MagicMock(value=Signature.default()))
    rpc.confirm_transaction = AsyncMock(return_value=MagicMock(value=[MagicMock(err=None)]))
    rpc.close = AsyncMock()
    return rpc


def _ledger(rpc, **kwargs) -> TokenLedgerClient:
    return TokenLedgerClient("http://rpc.test", MINT, client=rpc, **kwargs)


def test_unit_conversion():
    ledger = _ledger(_rpc())
    assert ledger.to_base_units(400) == 400_000_000_000
    assert ledger.to_tokens(1_500_000_000) == 1.5


def test_address_validation():
    assert is_valid_address(str(Keypair().pubkey()))
    assert not is_valid_address("not-an-address")
    assert not is_valid_address("")


@pytest.mark.asyncio
async def test_get_balance_reads_parsed_amount():
    rpc = _rpc()
    account = MagicMock()
    account.account.data.parsed = {"info": {"tokenAmount": {"amount": "1500"}}}
    rpc.get_token_accounts_by_owner_json_parsed = AsyncMock(return_value=MagicMock(value=[account]))
    assert await _ledger(rpc).get_balance(str(Keypair().pubkey())) == 1500


@pytest.mark.asyncio
async def test_get_balance_without_token_account_is_zero():
    rpc = _rpc()
    rpc.get_token_accounts_by_owner_json_parsed = AsyncMock(return_value=MagicMock(value=[]))
    assert await _ledger(rpc).get_balance(str(Keypair().pubkey())) == 0


@pytest.mark.asyncio
async def test_get_balance_failure_is_zero():
    rpc = _rpc()
    rpc.get_token_accounts_by_owner_json_parsed = AsyncMock(side_effect=RPCException("down"))
    assert await _ledger(rpc).get_balance(str(Keypair().pubkey())) == 0


@pytest.mark.asyncio
async def test_fetch_balance_failure_raises():
    rpc = _rpc()
    rpc.get_token_accounts_by_owner_json_parsed = AsyncMock(side_effect=RPCException("down"))
    with pytest.raises(LedgerSubmissionError):
        await _ledger(rpc).fetch_balance(str(Keypair().pubkey()))


@pytest.mark.asyncio
async def test_fetch_balance_without_token_account_is_zero():
    rpc = _rpc()
    rpc.get_token_accounts_by_owner_json_parsed = AsyncMock(return_value=MagicMock(value=[]))
    assert await _ledger(rpc).fetch_balance(str(Keypair().pubkey())) == 0


@pytest.mark.asyncio
async def test_transfer_returns_confirmed_signature():
    rpc = _rpc()
    sig = await _ledger(rpc).transfer(Keypair(), str(Keypair().pubkey()), 10)
    assert sig == str(Signature.default())
    rpc.send_transaction.assert_awaited_once()
    rpc.confirm_transaction.assert_awaited_once()


@pytest.mark.asyncio
async def test_transfer_creates_missing_recipient_account():
    rpc = _rpc()
    rpc.get_account_info = AsyncMock(side_effect=[MagicMock(value=MagicMock()), MagicMock(value=None)])
    await _ledger(rpc).transfer(Keypair(), str(Keypair().pubkey()), 10)
    assert rpc.send_transaction.await_count == 2


@pytest.mark.asyncio
async def test_transfer_rejects_non_positive_amount():
    rpc = _rpc()
    with pytest.raises(ValueError):
        await _ledger(rpc).transfer(Keypair(), str(Keypair().pubkey()), 0)
    rpc.send_transaction.assert_not_awaited()


@pytest.mark.asyncio
async def test_rejected_send_raises_submission_error():
    rpc = _rpc()
    rpc.send_transaction = AsyncMock(side_effect=RPCException("insufficient funds"))
    with pytest.raises(LedgerSubmissionError) as exc_info:
        await _ledger(rpc).transfer(Keypair(), str(Keypair().pubkey()), 10)
    assert not isinstance(exc_info.value, LedgerTimeout)


@pytest.mark.asyncio
async def test_slow_confirmation_raises_timeout_with_signature():
    async def never_confirms(*args, **kwargs):
        await asyncio.sleep(5)

    rpc = _rpc()
    rpc.confirm_transaction = AsyncMock(side_effect=never_confirms)
    with pytest.raises(LedgerTimeout) as exc_info:
        await _ledger(rpc, confirm_timeout=0.01).transfer(Keypair(), str(Keypair().pubkey()), 10)
    assert exc_info.value.signature == str(Signature.default())


@pytest.mark.asyncio
async def test_on_chain_error_raises():
    rpc = _rpc()
    rpc.confirm_transaction = AsyncMock(return_value=MagicMock(value=[MagicMock(err="InstructionError")]))
    with pytest.raises(LedgerSubmissionError):
        await _ledger(rpc).transfer(Keypair(), str(Keypair().pubkey()), 10)


@pytest.mark.asyncio
async def test_disconnect_closes_client():
    rpc = _rpc()
    await _ledger(rpc).disconnect()
    rpc.close.assert_awaited_once()
