"""
Fund bots left at ``spawning`` after their registration grant failed.

A bot that already holds tokens is assumed to have been funded and only
has its status corrected; one that received tokens from elsewhere before
its grant arrived has to be funded by hand. A bot whose balance cannot be
read is skipped and reported as failed.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

import click
from solders.keypair import Keypair

from .. import config
from ..allocation import tier_for_generation
from ..errors import LedgerSubmissionError, RecordStoreError
from ..solana_client import TokenLedgerClient
from ..store import BOTS, PostgrestRecordStore, RecordStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    funded: list[str] = field(default_factory=list)
    already_funded: list[str] = field(default_factory=list)
    no_grant: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


async def reconcile_funding(
    store: RecordStore,
    ledger: TokenLedgerClient,
    hot_wallet: Keypair,
    dry_run: bool = False,
    pause: float = 0.0,
) -> ReconcileReport:
    report = ReconcileReport()
    pending = await store.select(
        BOTS,
        [("status", "eq", "spawning")],
        columns=["id", "name", "wallet_address", "generation"],
        order="created_at.asc",
    )
    logger.info(f"{len(pending)} bots waiting for their grant")

    for bot in pending:
        name = bot["name"]
        tier = tier_for_generation(bot.get("generation") or "")

        if tier is None:
            logger.info(f"  {name}: {bot.get('generation')!r} has no grant, marking active")
            report.no_grant.append(name)
        else:
            try:
                balance = await ledger.fetch_balance(bot["wallet_address"])
            except LedgerSubmissionError as e:
                # An unknown balance must not be mistaken for an unfunded wallet
                logger.error(f"  {name}: balance unknown, skipped: {e}")
                report.failed.append(name)
                continue

            if balance > 0:
                logger.info(f"  {name}: already holds tokens, marking active")
                report.already_funded.append(name)
            elif dry_run:
                logger.info(f"  {name}: would send {tier.tokens:,} tokens ({tier.label})")
                continue
            else:
                try:
                    sig = await ledger.transfer(
                        hot_wallet, bot["wallet_address"], ledger.to_base_units(tier.tokens)
                    )
                except LedgerSubmissionError as e:
                    logger.error(f"  {name}: funding failed: {e}")
                    report.failed.append(name)
                    continue
                logger.info(f"  {name}: FUNDED {tier.tokens:,} tokens, tx={sig}")
                report.funded.append(name)
                await asyncio.sleep(pause)

        if dry_run:
            continue
        try:
            await store.patch(BOTS, [("id", "eq", bot["id"])], {"status": "active"})
        except RecordStoreError as e:
            logger.error(f"  {name}: status update failed: {e}")

    return report


async def _run(dry_run: bool, pause: float) -> ReconcileReport:
    # Imported here so the script does not configure logging on import
    from ..main import load_hot_wallet

    hot_wallet: Optional[Keypair] = load_hot_wallet()
    if hot_wallet is None:
        raise click.ClickException("Hot wallet not configured (HOT_WALLET_JSON or HOT_WALLET_PATH)")

    store = PostgrestRecordStore(
        base_url=config.SUPABASE_URL,
        anon_key=config.SUPABASE_ANON_KEY,
        service_key=config.SUPABASE_SERVICE_KEY,
    )
    ledger = TokenLedgerClient(
        rpc_url=config.SOLANA_RPC_URL,
        mint=config.TOKEN_MINT,
        decimals=config.TOKEN_DECIMALS,
        confirm_timeout=config.LEDGER_CONFIRM_TIMEOUT,
    )
    await store.connect()
    await ledger.connect()
    try:
        return await reconcile_funding(store, ledger, hot_wallet, dry_run=dry_run, pause=pause)
    finally:
        await ledger.disconnect()
        await store.disconnect()


@click.command()
@click.option("--dry-run", is_flag=True, help="Only report what would be sent")
@click.option("--pause", default=2.0, type=float, help="Seconds between grants")
def main(dry_run: bool, pause: float):
    """Send missing generation grants and mark bots active."""
    report = asyncio.run(_run(dry_run, pause))
    click.echo(
        f"\nDone! funded={len(report.funded)} already_funded={len(report.already_funded)} "
        f"no_grant={len(report.no_grant)} failed={len(report.failed)}"
    )


if __name__ == "__main__":
    main()
