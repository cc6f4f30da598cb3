"""
Custodial wallets for registered bots.

Each bot gets a fresh Solana keypair. The 64-byte secret is sealed with
Fernet (AES-128-CBC + HMAC-SHA256) under a key that lives in the service
environment, never in the record store, and is bound to the wallet
address so a blob copied onto another bot record will not unseal.

Blobs written by the first version of the service used a reversible
base64 encoding, ``base64(json(secret) + ":" + address)``. That encoding
gives no confidentiality to anyone who can read the ``bots`` table. Such
blobs are still readable here so existing bots keep working, and
``SecretSealer.reseal`` moves them to the sealed format.
"""
import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from solders.keypair import Keypair

from .errors import SealedSecretError

logger = logging.getLogger(__name__)

# Every Fernet token starts with version byte 0x80, which base64-encodes to "gAAAAA"
FERNET_PREFIX = "gAAAAA"


@dataclass
class IssuedWallet:
    """A freshly generated custodial wallet"""
    address: str
    secret: bytes

    def keypair(self) -> Keypair:
        return Keypair.from_bytes(self.secret)


def issue_wallet() -> IssuedWallet:
    """Generate a new keypair for a bot."""
    keypair = Keypair()
    return IssuedWallet(address=str(keypair.pubkey()), secret=bytes(keypair))


def legacy_encode(secret: bytes, salt: str) -> str:
    """Reference encoding. Reversible by anyone; kept for tests and migration."""
    raw = json.dumps(list(secret), separators=(",", ":")) + ":" + salt
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def legacy_decode(blob: str) -> tuple[bytes, str]:
    """Decode a blob in the reference encoding into (secret, salt)."""
    try:
        decoded = base64.b64decode(blob).decode("utf-8")
        encoded_secret, _, salt = decoded.partition(":")
        return bytes(json.loads(encoded_secret)), salt
    except (binascii.Error, UnicodeDecodeError, ValueError, TypeError) as e:
        raise SealedSecretError(f"Malformed legacy wallet secret: {e}") from e


class SecretSealer:
    """Seals and unseals bot wallet secrets for at-rest storage."""

    def __init__(self, key: bytes, allow_legacy: bool = True):
        """
        Args:
            key: urlsafe-base64 Fernet key (see Fernet.generate_key)
            allow_legacy: Accept blobs in the reference base64 encoding
        """
        self._fernet = Fernet(key)
        self.allow_legacy = allow_legacy

    @staticmethod
    def generate_key() -> bytes:
        return Fernet.generate_key()

    def seal_secret(self, secret: bytes, salt: str) -> str:
        """Seal a secret, binding it to ``salt`` (the wallet address)."""
        payload = json.dumps({"salt": salt, "secret": secret.hex()})
        return self._fernet.encrypt(payload.encode("utf-8")).decode("ascii")

    def unseal_secret(self, blob: str, salt: Optional[str] = None) -> bytes:
        """
        Recover a secret.

        Args:
            blob: Sealed secret as stored on the bot record
            salt: Expected wallet address; checked when given

        Raises:
            SealedSecretError: wrong key, tampered blob, or salt mismatch
        """
        if is_legacy_blob(blob):
            if not self.allow_legacy:
                raise SealedSecretError("Legacy wallet secret encoding is disabled")
            secret, stored_salt = legacy_decode(blob)
            if salt is not None and stored_salt != salt:
                raise SealedSecretError("Wallet secret is bound to a different address")
            logger.warning("Unsealing wallet secret stored in legacy encoding")
            return secret

        try:
            payload = json.loads(self._fernet.decrypt(blob.encode("ascii")))
        except (InvalidToken, ValueError, UnicodeEncodeError) as e:
            raise SealedSecretError("Wallet secret could not be unsealed") from e

        if salt is not None and payload.get("salt") != salt:
            raise SealedSecretError("Wallet secret is bound to a different address")
        return bytes.fromhex(payload["secret"])

    def unseal_keypair(self, blob: str, address: str) -> Keypair:
        """Unseal a bot's secret and check it matches its wallet address."""
        keypair = Keypair.from_bytes(self.unseal_secret(blob, salt=address))
        if str(keypair.pubkey()) != address:
            raise SealedSecretError("Unsealed keypair does not match wallet address")
        return keypair

    def reseal(self, blob: str, salt: str) -> str:
        """Re-seal a blob in the current format (migrates legacy blobs)."""
        return self.seal_secret(self.unseal_secret(blob, salt=salt), salt)


def is_legacy_blob(blob: str) -> bool:
    return not blob.startswith(FERNET_PREFIX)
