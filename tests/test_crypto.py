"""Unit tests for key derivation and authenticated encryption."""

import pytest

from taskvault import crypto
from taskvault.crypto import (
    KDF_ITERATIONS,
    KEY_SIZE,
    NONCE_SIZE,
    SALT_SIZE,
    EncryptedBlob,
    decrypt_blob,
    derive_key,
    encrypt_blob,
    generate_salt,
)
from taskvault.errors import AuthenticationFailure, EmptyPassword


class TestDeriveKey:
    """Tests for derive_key."""

    def test_key_length(self):
        key = derive_key("hunters2", b"s" * SALT_SIZE)
        assert len(key) == KEY_SIZE == 32

    def test_deterministic(self):
        salt = generate_salt()
        assert derive_key("hunters2", salt) == derive_key("hunters2", salt)

    def test_different_salt_different_key(self):
        assert derive_key("hunters2", b"a" * 16) != derive_key("hunters2", b"b" * 16)

    def test_different_password_different_key(self):
        salt = generate_salt()
        assert derive_key("hunters2", salt) != derive_key("hunters3", salt)

    def test_unicode_password(self):
        key = derive_key("пароль-🔒", generate_salt())
        assert len(key) == KEY_SIZE

    def test_empty_password_rejected(self):
        with pytest.raises(EmptyPassword):
            derive_key("", generate_salt())

    @pytest.mark.parametrize("size", [0, 15, 17, 32])
    def test_wrong_salt_size_rejected(self, size):
        with pytest.raises(ValueError, match="Salt must be 16 bytes"):
            derive_key("hunters2", b"x" * size)

    def test_iteration_floor(self):
        assert KDF_ITERATIONS >= 200_000


class TestGenerateSalt:
    def test_size(self):
        assert len(generate_salt()) == SALT_SIZE == 16

    def test_random(self):
        assert generate_salt() != generate_salt()


class TestCipher:
    """Tests for encrypt_blob / decrypt_blob."""

    @pytest.fixture
    def key(self):
        return derive_key("hunters2", b"k" * SALT_SIZE)

    def test_round_trip(self, key):
        blob = encrypt_blob(key, b"hello vault")
        assert decrypt_blob(key, blob) == b"hello vault"

    def test_empty_plaintext(self, key):
        assert decrypt_blob(key, encrypt_blob(key, b"")) == b""

    def test_nonce_size(self, key):
        blob = encrypt_blob(key, b"x")
        assert len(blob.nonce) == NONCE_SIZE == 12

    def test_ciphertext_includes_tag(self, key):
        blob = encrypt_blob(key, b"12345")
        assert len(blob.ciphertext) == 5 + crypto.TAG_SIZE

    def test_ciphertext_differs_from_plaintext(self, key):
        blob = encrypt_blob(key, b"secret task list")
        assert b"secret task list" not in blob.ciphertext

    def test_encrypt_non_deterministic(self, key):
        first = encrypt_blob(key, b"same")
        second = encrypt_blob(key, b"same")
        assert first.nonce != second.nonce
        assert first.ciphertext != second.ciphertext

    def test_nonce_uniqueness(self, key):
        """No nonce repeats across 10,000 encryptions under one key."""
        nonces = {encrypt_blob(key, b"x").nonce for _ in range(10_000)}
        assert len(nonces) == 10_000

    def test_wrong_key_rejected(self, key):
        blob = encrypt_blob(key, b"data")
        other = derive_key("hunters3", b"k" * SALT_SIZE)
        with pytest.raises(AuthenticationFailure):
            decrypt_blob(other, blob)

    def test_bit_flip_in_ciphertext_rejected(self, key):
        blob = encrypt_blob(key, b"data that matters")
        tampered = bytearray(blob.ciphertext)
        tampered[0] ^= 0x01
        with pytest.raises(AuthenticationFailure):
            decrypt_blob(key, EncryptedBlob(blob.nonce, bytes(tampered)))

    def test_bit_flip_in_tag_rejected(self, key):
        blob = encrypt_blob(key, b"data")
        tampered = bytearray(blob.ciphertext)
        tampered[-1] ^= 0x80
        with pytest.raises(AuthenticationFailure):
            decrypt_blob(key, EncryptedBlob(blob.nonce, bytes(tampered)))

    def test_wrong_nonce_rejected(self, key):
        blob = encrypt_blob(key, b"data")
        with pytest.raises(AuthenticationFailure):
            decrypt_blob(key, EncryptedBlob(b"\x00" * NONCE_SIZE, blob.ciphertext))

    def test_truncated_envelope_rejected(self, key):
        with pytest.raises(AuthenticationFailure):
            decrypt_blob(key, EncryptedBlob(b"\x00" * NONCE_SIZE, b"short"))
        with pytest.raises(AuthenticationFailure):
            decrypt_blob(key, EncryptedBlob(b"\x00" * 5, b"x" * 40))

    def test_failure_message_is_generic(self, key):
        blob = encrypt_blob(key, b"data")
        other = derive_key("nope", b"k" * SALT_SIZE)
        with pytest.raises(AuthenticationFailure) as exc_info:
            decrypt_blob(other, blob)
        assert str(exc_info.value) == "Authentication failed"
