"""Tests for order signing and signature recovery."""

import pytest
from eth_account import Account

from rfqbridge.config import get_settings
from rfqbridge.crypto import KeyEncryptor, decrypt_secret, generate_master_key, keccak256
from rfqbridge.signing import (
    KeyNotFoundError,
    LocalSigner,
    Secp256k1Verifier,
    SigningError,
    eth_address,
    get_signer,
    reset_signer,
)

SIGNER_KEY_HEX = "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
SIGNER_ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
MESSAGE_HASH = keccak256(b"order")


@pytest.fixture
def clean_signer_env(monkeypatch):
    """Reset cached settings and signer around env changes."""
    monkeypatch.delenv("SWAP_SIGNER_PRIVATE_KEY", raising=False)
    monkeypatch.delenv("MASTER_KEY", raising=False)
    monkeypatch.delenv("SIGNER_BACKEND", raising=False)
    get_settings.cache_clear()
    reset_signer()
    yield monkeypatch
    get_settings.cache_clear()
    reset_signer()


class TestLocalSigner:
    """Tests for the local signing backend."""

    def test_address_of_known_key(self, order_signer: LocalSigner):
        assert order_signer.address == eth_address(SIGNER_ADDRESS)
        assert order_signer.checksum_address == SIGNER_ADDRESS

    def test_address_matches_eth_account(self, other_signer: LocalSigner):
        account = Account.from_key(other_signer._key.to_bytes())

        assert other_signer.address == eth_address(account.address)

    @pytest.mark.asyncio
    async def test_signature_layout(self, order_signer: LocalSigner):
        result = await order_signer.sign_hash(MESSAGE_HASH)

        assert len(result.signature) == 65
        assert result.v in (0, 1)
        assert result.signature[64] == result.v
        assert result.signature[:32] == result.r.to_bytes(32, "big")
        assert result.hex.startswith("0x")

    @pytest.mark.asyncio
    async def test_rejects_short_hash(self, order_signer: LocalSigner):
        with pytest.raises(SigningError):
            await order_signer.sign_hash(b"\x00" * 31)


class TestVerifier:
    """Tests for signature recovery."""

    @pytest.mark.asyncio
    async def test_round_trip_recovers_signer(self, order_signer: LocalSigner):
        result = await order_signer.sign_hash(MESSAGE_HASH)
        verifier = Secp256k1Verifier()

        assert verifier.recover_address(MESSAGE_HASH, result.signature) == order_signer.address
        assert verifier.verify(MESSAGE_HASH, result.signature, order_signer.address)

    @pytest.mark.asyncio
    async def test_other_key_does_not_verify(self, order_signer, other_signer):
        result = await other_signer.sign_hash(MESSAGE_HASH)

        assert not Secp256k1Verifier().verify(MESSAGE_HASH, result.signature, order_signer.address)

    @pytest.mark.asyncio
    async def test_other_hash_does_not_verify(self, order_signer: LocalSigner):
        result = await order_signer.sign_hash(MESSAGE_HASH)

        assert not Secp256k1Verifier().verify(
            keccak256(b"other order"), result.signature, order_signer.address
        )

    @pytest.mark.asyncio
    async def test_recovery_id_27_28_normalized(self, order_signer: LocalSigner):
        result = await order_signer.sign_hash(MESSAGE_HASH)
        legacy = result.signature[:64] + bytes([result.v + 27])

        assert Secp256k1Verifier().recover_address(MESSAGE_HASH, legacy) == order_signer.address

    def test_malformed_signature_raises(self):
        with pytest.raises(SigningError):
            Secp256k1Verifier().recover_address(MESSAGE_HASH, b"\x01" * 64)

    def test_malformed_signature_does_not_verify(self, order_signer: LocalSigner):
        assert not Secp256k1Verifier().verify(MESSAGE_HASH, b"\x01" * 10, order_signer.address)

    def test_invalid_recovery_id_does_not_verify(self, order_signer: LocalSigner):
        signature = b"\x01" * 64 + bytes([5])

        assert not Secp256k1Verifier().verify(MESSAGE_HASH, signature, order_signer.address)


class TestSignerFactory:
    """Tests for loading the signer from settings."""

    def test_loads_plain_key(self, clean_signer_env):
        clean_signer_env.setenv("SWAP_SIGNER_PRIVATE_KEY", "0x" + SIGNER_KEY_HEX)

        signer = get_signer()

        assert signer.address == eth_address(SIGNER_ADDRESS)
        assert get_signer() is signer

    def test_loads_encrypted_key(self, clean_signer_env):
        master_key = generate_master_key()
        token = KeyEncryptor(master_key).encrypt(SIGNER_KEY_HEX)
        clean_signer_env.setenv("MASTER_KEY", master_key)
        clean_signer_env.setenv("SWAP_SIGNER_PRIVATE_KEY", token)

        assert get_signer().address == eth_address(SIGNER_ADDRESS)

    def test_missing_key(self, clean_signer_env):
        with pytest.raises(KeyNotFoundError):
            get_signer()

    def test_unsupported_backend(self, clean_signer_env):
        clean_signer_env.setenv("SIGNER_BACKEND", "hsm")

        with pytest.raises(ValueError):
            get_signer()


class TestSecretDecryption:
    """Tests for Fernet-encrypted secrets."""

    def test_plain_value_unchanged(self, clean_signer_env):
        assert decrypt_secret(SIGNER_KEY_HEX) == SIGNER_KEY_HEX

    def test_encrypted_without_master_key(self, clean_signer_env):
        token = KeyEncryptor(generate_master_key()).encrypt(SIGNER_KEY_HEX)

        with pytest.raises(ValueError, match="MASTER_KEY is not set"):
            decrypt_secret(token)

    def test_encrypted_with_wrong_master_key(self, clean_signer_env):
        token = KeyEncryptor(generate_master_key()).encrypt(SIGNER_KEY_HEX)
        clean_signer_env.setenv("MASTER_KEY", generate_master_key())
        get_settings.cache_clear()

        with pytest.raises(ValueError, match="could not be decrypted"):
            decrypt_secret(token)
