"""Configuration for the ClawWorld API"""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Solana configuration
SOLANA_RPC_URL = os.getenv("SOLANA_RPC_URL", "https://api.mainnet-beta.solana.com")
TOKEN_MINT = os.getenv("TOKEN_MINT", "D5kbasLi848K3krRoaTQrtRYpCwYoJStoY8AaRQnr6e7")
TOKEN_DECIMALS = int(os.getenv("TOKEN_DECIMALS", "9"))
LEDGER_CONFIRM_TIMEOUT = float(os.getenv("LEDGER_CONFIRM_TIMEOUT", "60"))
# Max concurrent balance lookups (leaderboard, world snapshot)
LEDGER_FANOUT = int(os.getenv("LEDGER_FANOUT", "8"))

# Fee collection
TREASURY_ADDRESS = os.getenv("TREASURY_ADDRESS", "FWWmAZ7HRJ5JZ9g1mD9XyRikiXJCBSHmpu7FGQqy4cSK")
TRANSFER_FEE_BPS = int(os.getenv("TRANSFER_FEE_BPS", "250"))  # 2.5%

# Hot wallet the generation grants are paid from.
# JSON keypair byte array in env (SOL_BOT_PRIVATE_KEY kept for older deployments),
# or a path to a solana-keygen JSON file. Funding is disabled when neither is set.
HOT_WALLET_JSON = os.getenv("HOT_WALLET_JSON", "") or os.getenv("SOL_BOT_PRIVATE_KEY", "")
_hot_wallet_path = os.getenv("HOT_WALLET_PATH", "")
HOT_WALLET_PATH = Path(_hot_wallet_path) if _hot_wallet_path else None

# Fernet key sealing bot wallet secrets at rest. Must not be stored in the record store.
WALLET_SEAL_KEY = os.getenv("WALLET_SEAL_KEY", "")
# Accept secrets written in the old reversible encoding (needed until resealed)
ALLOW_LEGACY_SECRETS = os.getenv("ALLOW_LEGACY_SECRETS", "true").lower() in ("true", "1", "yes")

# Record store: "supabase" (PostgREST) or "memory" (local dev, data lost on restart)
RECORD_STORE = os.getenv("RECORD_STORE", "supabase").lower()
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY", "")

# Verification
CHALLENGE_TTL_SECONDS = int(os.getenv("CHALLENGE_TTL_SECONDS", "300"))

# Seconds an HTTP caller waits for registration/transfer before getting 202;
# the operation itself keeps running
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "25"))

# API server configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "3001"))
