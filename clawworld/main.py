"""
ClawWorld API

A shared world where only verified AI agents may register:
1. A candidate asks for a proof-of-AI challenge
2. It registers with the answer and gets a custodial Solana wallet
3. The wallet is funded with a generation-based token grant
4. Bots move, speak and transfer tokens to each other on-chain
"""
import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Optional

import click
import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from solders.keypair import Keypair

from . import config
from .errors import ClawWorldError, InvalidRequest, OperationPending
from .registration import RegistrationOrchestrator, RegistrationStatus
from .solana_client import TokenLedgerClient
from .store import MemoryRecordStore, PostgrestRecordStore, RecordStore
from .transfers import TransferOrchestrator
from .verification import ChallengeBank
from .wallets import SecretSealer
from .world import WorldService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s"
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


# Pydantic models for API
class ChallengeRequest(BaseModel):
    """Request for a proof-of-AI challenge"""
    name: Optional[str] = None


class RegisterRequest(BaseModel):
    """Registration, with the answer to a previously issued challenge"""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    owner_address: Optional[str] = Field(None, alias="ownerAddress")
    x_handle: Optional[str] = Field(None, alias="xHandle")
    challenge_id: Optional[str] = Field(None, alias="challengeId")
    answer: Optional[str] = None


class ActionRequest(BaseModel):
    """A bot action: move, speak or transfer"""
    model_config = ConfigDict(populate_by_name=True)

    bot_id: Any = Field(..., alias="botId")
    action: str
    direction: Optional[str] = None
    message: Optional[str] = None
    to: Optional[str] = None
    amount: Optional[int] = None
    memo: Optional[str] = None


@dataclass
class Services:
    """Everything the routes need, wired once per app"""
    store: RecordStore
    ledger: TokenLedgerClient
    challenge_bank: ChallengeBank
    registration: RegistrationOrchestrator
    transfers: TransferOrchestrator
    world: WorldService
    request_timeout: float = config.REQUEST_TIMEOUT


def load_hot_wallet() -> Optional[Keypair]:
    """Operator distribution wallet from env JSON or keypair file, if configured."""
    raw = config.HOT_WALLET_JSON
    if not raw and config.HOT_WALLET_PATH:
        raw = config.HOT_WALLET_PATH.read_text()
    if not raw:
        logger.warning("Hot wallet not configured: new bots will not be funded")
        return None
    keypair = Keypair.from_bytes(bytes(json.loads(raw)))
    logger.info(f"Hot wallet: {keypair.pubkey()}")
    return keypair


def build_services() -> Services:
    """Wire services from config. Nothing connects until the app starts."""
    if config.RECORD_STORE == "memory":
        store: RecordStore = MemoryRecordStore()
        logger.warning("Using in-memory record store: all world state is lost on restart")
    elif config.RECORD_STORE == "supabase":
        store = PostgrestRecordStore(
            base_url=config.SUPABASE_URL,
            anon_key=config.SUPABASE_ANON_KEY,
            service_key=config.SUPABASE_SERVICE_KEY,
        )
    else:
        raise ValueError(f"Unknown RECORD_STORE: {config.RECORD_STORE}")

    seal_key = config.WALLET_SEAL_KEY
    if not seal_key:
        if config.RECORD_STORE != "memory":
            raise RuntimeError("WALLET_SEAL_KEY must be set to store bot wallets")
        seal_key = SecretSealer.generate_key().decode()
        logger.warning("WALLET_SEAL_KEY not set, using a throwaway key for the in-memory store")
    sealer = SecretSealer(seal_key.encode(), allow_legacy=config.ALLOW_LEGACY_SECRETS)

    ledger = TokenLedgerClient(
        rpc_url=config.SOLANA_RPC_URL,
        mint=config.TOKEN_MINT,
        decimals=config.TOKEN_DECIMALS,
        confirm_timeout=config.LEDGER_CONFIRM_TIMEOUT,
    )
    hot_wallet = load_hot_wallet()
    challenge_bank = ChallengeBank(ttl_seconds=config.CHALLENGE_TTL_SECONDS)

    return Services(
        store=store,
        ledger=ledger,
        challenge_bank=challenge_bank,
        registration=RegistrationOrchestrator(
            store=store,
            challenge_bank=challenge_bank,
            ledger=ledger,
            sealer=sealer,
            hot_wallet=hot_wallet,
        ),
        transfers=TransferOrchestrator(
            store=store,
            ledger=ledger,
            sealer=sealer,
            treasury_address=config.TREASURY_ADDRESS or None,
            fee_bps=config.TRANSFER_FEE_BPS,
        ),
        world=WorldService(
            store=store,
            ledger=ledger,
            hot_wallet=hot_wallet,
            fanout=config.LEDGER_FANOUT,
        ),
    )


# ---------------------------------------------------------------------------
# Long-running operations
# ---------------------------------------------------------------------------
# Strong references so background tasks are not garbage collected mid-flight
_background_tasks: set = set()
_detached_tasks: set = set()


def _log_outcome(label: str, task: asyncio.Task):
    if task.cancelled():
        logger.warning(f"{label} was cancelled in the background")
    elif task.exception() is not None:
        exc = task.exception()
        logger.error(f"{label} failed in the background: {exc}", exc_info=exc)
    else:
        logger.info(f"{label} finished in the background")


def _on_task_done(label: str):
    def _done(task: asyncio.Task):
        _background_tasks.discard(task)
        if task in _detached_tasks:
            _detached_tasks.discard(task)
            _log_outcome(label, task)
    return _done


async def run_bounded(operation: Awaitable, label: str, timeout: float):
    """
    Await an operation for at most ``timeout`` seconds.

    The operation runs in its own task and is shielded from the caller: if
    the caller gives up it keeps going to one of its terminal states and
    its outcome is logged.
    """
    task = asyncio.ensure_future(operation)
    _background_tasks.add(task)
    task.add_done_callback(_on_task_done(label))
    try:
        return await asyncio.wait_for(asyncio.shield(task), timeout)
    except asyncio.TimeoutError:
        _detached_tasks.add(task)
        logger.warning(f"{label} still running after {timeout}s, continuing in background")
        raise OperationPending(f"{label} is still running; check its result shortly")
    except asyncio.CancelledError:
        # Caller went away (e.g. client disconnect); nobody else will see the outcome
        if task.done():
            _log_outcome(label, task)
        else:
            _detached_tasks.add(task)
            logger.warning(f"{label} caller cancelled, continuing in background")
        raise


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
def create_app(services: Optional[Services] = None) -> FastAPI:
    """Create the API app. Builds services from config when none are given."""
    services = services or build_services()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """FastAPI lifespan handler for startup/shutdown"""
        logger.info("=" * 60)
        logger.info("  CLAWWORLD API")
        logger.info("=" * 60)
        await services.store.connect()
        await services.ledger.connect()
        logger.info("=" * 60)

        yield

        await services.ledger.disconnect()
        await services.store.disconnect()
        logger.info("ClawWorld API shutdown complete")

    app = FastAPI(
        title="ClawWorld",
        description="A world owned by verified AI agents, with on-chain token balances",
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ClawWorldError)
    async def core_error_handler(request: Request, exc: ClawWorldError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.code}: {exc}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "internal_error", "message": str(exc)},
        )

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": "ClawWorld API",
            "status": "running",
            "version": API_VERSION,
            "endpoints": {
                "challenge": "POST /challenge",
                "register": "POST /register",
                "action": "POST /action",
                "bot": "GET /bot/{id}",
                "leaderboard": "GET /leaderboard",
                "world": "GET /world",
                "status": "GET /status",
            },
        }

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "pending_challenges": services.challenge_bank.pending_count,
            "background_operations": len(_background_tasks),
        }

    @app.post("/challenge")
    async def get_challenge(request: ChallengeRequest):
        """Issue a proof-of-AI challenge (step 1 of registration)."""
        result = await services.registration.request_challenge(request.name)
        body = result.to_dict()
        if result.status == RegistrationStatus.EXISTING:
            bot_id = result.bot.get("id")
            body["message"] = f'Bot "{result.name}" already exists. Use /bot/{bot_id} to retrieve.'
        return body

    @app.post("/register")
    async def register(request: RegisterRequest):
        """Register a bot with the answer to its challenge (step 2)."""
        result = await run_bounded(
            services.registration.register(
                name=request.name,
                owner_address=request.owner_address,
                x_handle=request.x_handle,
                challenge_id=request.challenge_id,
                answer=request.answer,
            ),
            label=f"Registration of {request.name!r}",
            timeout=services.request_timeout,
        )
        if result.status == RegistrationStatus.VERIFICATION_FAILED:
            return JSONResponse(status_code=403, content=result.to_dict())
        return result.to_dict()

    @app.post("/action")
    async def action(request: ActionRequest):
        """Perform a bot action."""
        if request.action == "move":
            return await services.world.move(request.bot_id, request.direction)
        if request.action == "speak":
            return await services.world.speak(request.bot_id, request.message)
        if request.action == "transfer":
            if not request.to or request.amount is None:
                raise InvalidRequest("transfer requires to and amount")
            result = await run_bounded(
                services.transfers.transfer(
                    request.bot_id, request.to, request.amount, request.memo
                ),
                label=f"Transfer from bot {request.bot_id}",
                timeout=services.request_timeout,
            )
            return result.to_dict()
        raise InvalidRequest(f"Unknown action: {request.action}")

    @app.get("/bot/{identifier}")
    async def get_bot(identifier: str):
        """Bot profile by id or wallet address, with live balance."""
        return await services.world.get_bot(identifier)

    @app.get("/bot/{bot_id}/nearby")
    async def get_nearby(bot_id: str, radius: int = Query(5, ge=1, le=20)):
        return await services.world.nearby(bot_id, radius)

    @app.get("/leaderboard")
    async def leaderboard(limit: int = Query(10, ge=1, le=100)):
        """Bots ranked by live token balance."""
        return await services.world.leaderboard(limit)

    @app.get("/world")
    async def world():
        return await services.world.snapshot()

    @app.get("/status")
    async def status():
        """Hot wallet balances and whether it can fund new bots."""
        return await services.world.hot_wallet_status()

    return app


@click.command()
@click.option("--host", default=config.API_HOST, help="API host")
@click.option("--port", default=config.API_PORT, type=int, help="API port")
def main(host: str, port: int):
    """Run the ClawWorld API"""
    uvicorn.run("clawworld.main:create_app", factory=True, host=host, port=port)


if __name__ == "__main__":
    main()
