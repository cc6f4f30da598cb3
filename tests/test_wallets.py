"""Custodial wallet issuance and secret sealing"""
import pytest
from solders.keypair import Keypair

from clawworld.errors import SealedSecretError
from clawworld.wallets import (
    SecretSealer,
    is_legacy_blob,
    issue_wallet,
    legacy_decode,
    legacy_encode,
)


def test_issued_wallets_are_distinct():
    a, b = issue_wallet(), issue_wallet()
    assert a.address != b.address
    assert len(a.secret) == 64
    assert str(a.keypair().pubkey()) == a.address


def test_seal_and_unseal(sealer):
    wallet = issue_wallet()
    blob = sealer.seal_secret(wallet.secret, wallet.address)
    assert not is_legacy_blob(blob)
    assert wallet.address not in blob
    assert sealer.unseal_secret(blob, wallet.address) == wallet.secret
    assert sealer.unseal_keypair(blob, wallet.address).pubkey() == wallet.keypair().pubkey()


def test_sealing_is_not_deterministic(sealer):
    wallet = issue_wallet()
    assert sealer.seal_secret(wallet.secret, wallet.address) != sealer.seal_secret(wallet.secret, wallet.address)


def test_wrong_salt_rejected(sealer):
    wallet = issue_wallet()
    blob = sealer.seal_secret(wallet.secret, wallet.address)
    with pytest.raises(SealedSecretError):
        sealer.unseal_secret(blob, issue_wallet().address)


def test_wrong_key_rejected(sealer):
    wallet = issue_wallet()
    blob = sealer.seal_secret(wallet.secret, wallet.address)
    other = SecretSealer(SecretSealer.generate_key())
    with pytest.raises(SealedSecretError):
        other.unseal_secret(blob, wallet.address)


def test_tampered_blob_rejected(sealer):
    wallet = issue_wallet()
    blob = sealer.seal_secret(wallet.secret, wallet.address)
    tampered = blob[:-4] + ("AAAA" if not blob.endswith("AAAA") else "BBBB")
    with pytest.raises(SealedSecretError):
        sealer.unseal_secret(tampered, wallet.address)


def test_keypair_must_match_address(sealer):
    wallet = issue_wallet()
    other = issue_wallet()
    blob = sealer.seal_secret(wallet.secret, other.address)
    with pytest.raises(SealedSecretError):
        sealer.unseal_keypair(blob, other.address)


def test_legacy_encoding_layout():
    wallet = issue_wallet()
    blob = legacy_encode(wallet.secret, wallet.address)
    assert is_legacy_blob(blob)
    assert legacy_decode(blob) == (wallet.secret, wallet.address)


def test_malformed_legacy_blob():
    with pytest.raises(SealedSecretError):
        legacy_decode("not base64 at all!")


def test_legacy_blob_readable_and_resealed(sealer):
    wallet = issue_wallet()
    blob = legacy_encode(wallet.secret, wallet.address)
    assert sealer.unseal_secret(blob, wallet.address) == wallet.secret

    resealed = sealer.reseal(blob, wallet.address)
    assert not is_legacy_blob(resealed)
    assert sealer.unseal_keypair(resealed, wallet.address).pubkey() == Keypair.from_bytes(wallet.secret).pubkey()


def test_legacy_blob_wrong_address(sealer):
    wallet = issue_wallet()
    blob = legacy_encode(wallet.secret, wallet.address)
    with pytest.raises(SealedSecretError):
        sealer.unseal_secret(blob, issue_wallet().address)


def test_legacy_disabled():
    sealer = SecretSealer(SecretSealer.generate_key(), allow_legacy=False)
    wallet = issue_wallet()
    with pytest.raises(SealedSecretError):
        sealer.unseal_secret(legacy_encode(wallet.secret, wallet.address))
