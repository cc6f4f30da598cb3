"""World actions and read models: movement, speech, profiles, leaderboard"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from solders.keypair import Keypair

from .errors import BotNotFound, InvalidRequest, WalletUnconfigured
from .solana_client import TokenLedgerClient, is_valid_address
from .store import BOTS, MESSAGES, STRUCTURES, RecordStore

logger = logging.getLogger(__name__)

WORLD_SIZE = 100
MESSAGE_MAX_LENGTH = 500
NEARBY_DEFAULT_RADIUS = 5
LEADERBOARD_POOL = 100

# 0.005 SOL keeps the hot wallet able to pay for account creation and fees
MIN_HOT_WALLET_LAMPORTS = 5_000_000

# North decreases y
DIRECTIONS: dict[str, tuple[int, int]] = {
    "n": (0, -1), "north": (0, -1),
    "s": (0, 1), "south": (0, 1),
    "e": (1, 0), "east": (1, 0),
    "w": (-1, 0), "west": (-1, 0),
    "ne": (1, -1), "nw": (-1, -1),
    "se": (1, 1), "sw": (-1, 1),
}

PROFILE_COLUMNS = [
    "id", "name", "wallet_address", "avatar", "x", "y", "status",
    "generation", "created_at", "last_active",
]
SUMMARY_COLUMNS = ["id", "name", "wallet_address", "avatar", "x", "y", "status", "last_active"]


def _clamp(value: int) -> int:
    return max(0, min(WORLD_SIZE - 1, value))


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class WorldService:
    """Reads and mutates world state in the record store, balances from the ledger."""

    def __init__(
        self,
        store: RecordStore,
        ledger: TokenLedgerClient,
        hot_wallet: Optional[Keypair] = None,
        fanout: int = 8,
    ):
        """
        Args:
            store: Record store with bots, messages and structures
            ledger: Token ledger for live balances
            hot_wallet: Operator distribution wallet (for /status)
            fanout: Max concurrent balance lookups
        """
        self.store = store
        self.ledger = ledger
        self.hot_wallet = hot_wallet
        self._fanout = asyncio.Semaphore(fanout)

    async def _require_bot(self, bot_id, columns: list[str]) -> dict:
        bot = await self.store.select_one(BOTS, [("id", "eq", bot_id)], columns=columns)
        if bot is None:
            raise BotNotFound()
        return bot

    async def balance_of(self, address: str) -> float:
        """Live token balance in whole tokens."""
        async with self._fanout:
            units = await self.ledger.get_balance(address)
        return self.ledger.to_tokens(units)

    async def with_balances(self, bots: list[dict]) -> list[dict]:
        balances = await asyncio.gather(*(self.balance_of(b["wallet_address"]) for b in bots))
        return [{**bot, "balance": balance} for bot, balance in zip(bots, balances)]

    async def move(self, bot_id, direction: Optional[str]) -> dict:
        delta = DIRECTIONS.get((direction or "").lower())
        if delta is None:
            raise InvalidRequest("Invalid direction")

        bot = await self._require_bot(bot_id, ["id", "x", "y"])
        x = _clamp(bot["x"] + delta[0])
        y = _clamp(bot["y"] + delta[1])
        await self.store.patch(BOTS, [("id", "eq", bot_id)], {"x": x, "y": y, "last_active": _now()})
        return {"success": True, "position": {"x": x, "y": y}}

    async def speak(self, bot_id, message: Optional[str]) -> dict:
        message = (message or "").strip()
        if not message:
            raise InvalidRequest("Message required")
        if len(message) > MESSAGE_MAX_LENGTH:
            raise InvalidRequest(f"Message too long (max {MESSAGE_MAX_LENGTH} chars)")

        bot = await self._require_bot(bot_id, ["id", "name", "x", "y"])
        await self.store.insert(MESSAGES, {
            "bot_id": bot["id"],
            "message": message,
            "x": bot["x"],
            "y": bot["y"],
        })
        await self.store.patch(BOTS, [("id", "eq", bot_id)], {"last_active": _now()})
        logger.info(f"[{bot['name']}] says: {message[:60]}")
        return {"success": True, "message": "Message sent"}

    async def get_bot(self, identifier: str) -> dict:
        """Profile by bot id or wallet address, with live balance."""
        if len(identifier) > 30 and is_valid_address(identifier):
            filters = [("wallet_address", "eq", identifier)]
        else:
            filters = [("id", "eq", identifier)]
        bot = await self.store.select_one(BOTS, filters, columns=PROFILE_COLUMNS)
        if bot is None:
            raise BotNotFound()
        return {**bot, "balance": await self.balance_of(bot["wallet_address"])}

    async def nearby(self, bot_id, radius: int = NEARBY_DEFAULT_RADIUS) -> list[dict]:
        bot = await self._require_bot(bot_id, ["id", "x", "y"])
        x, y = bot["x"], bot["y"]
        return await self.store.select(
            BOTS,
            [
                ("x", "gte", x - radius), ("x", "lte", x + radius),
                ("y", "gte", y - radius), ("y", "lte", y + radius),
                ("id", "neq", bot["id"]),
            ],
            columns=["id", "name", "avatar", "x", "y", "status"],
        )

    async def leaderboard(self, limit: int = 10) -> list[dict]:
        """Bots ranked by live balance, highest first."""
        bots = await self.store.select(
            BOTS, columns=["id", "name", "avatar", "wallet_address"], limit=LEADERBOARD_POOL
        )
        ranked = sorted(await self.with_balances(bots), key=lambda b: b["balance"], reverse=True)
        return ranked[:limit]

    async def snapshot(self) -> dict:
        """Recent bots (with balances), recent messages and all structures."""
        bots, messages, structures = await asyncio.gather(
            self.store.select(BOTS, columns=SUMMARY_COLUMNS, order="created_at.desc", limit=100),
            self.store.select(MESSAGES, order="created_at.desc", limit=50),
            self.store.select(STRUCTURES),
        )
        return {
            "bots": await self.with_balances(bots),
            "messages": messages,
            "structures": structures,
            "stats": {"totalBots": len(bots), "totalMessages": len(messages)},
        }

    async def hot_wallet_status(self) -> dict:
        """Distribution wallet balances and whether it can fund new bots."""
        if self.hot_wallet is None:
            raise WalletUnconfigured()
        address = str(self.hot_wallet.pubkey())
        units, lamports = await asyncio.gather(
            self.ledger.get_balance(address),
            self.ledger.get_native_balance(address),
        )
        return {
            "address": address,
            "tokenBalance": self.ledger.to_tokens(units),
            "solBalance": lamports / 1_000_000_000,
            "canDistribute": units > 0 and lamports > MIN_HOT_WALLET_LAMPORTS,
        }
