#!/usr/bin/env python3
"""Vault Crypto - Password-based key derivation and authenticated encryption.

Keys come from PBKDF2-HMAC-SHA256 over a per-vault salt. The vault blob is
sealed with ChaCha20-Poly1305 (IETF, 96-bit nonce) from libsodium via pynacl.
"""

from dataclasses import dataclass

import nacl.bindings
import nacl.exceptions
import nacl.utils
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import AuthenticationFailure, EmptyPassword

# Constants
SALT_SIZE = 16
NONCE_SIZE = nacl.bindings.crypto_aead_chacha20poly1305_ietf_NPUBBYTES  # 12
KEY_SIZE = nacl.bindings.crypto_aead_chacha20poly1305_ietf_KEYBYTES  # 32
TAG_SIZE = nacl.bindings.crypto_aead_chacha20poly1305_ietf_ABYTES  # 16
# Fixed for every vault, not stored in metadata. Raising it orphans old vaults.
KDF_ITERATIONS = 200_000


@dataclass(frozen=True)
class EncryptedBlob:
    """Nonce plus ciphertext (the Poly1305 tag is appended to the ciphertext)."""

    nonce: bytes
    ciphertext: bytes


def generate_salt():
    """Generate a fresh random salt for a new vault."""
    return nacl.utils.random(SALT_SIZE)


def derive_key(password, salt):
    """Derive a 256-bit key from password and salt using PBKDF2-HMAC-SHA256.

    A wrong password still yields a well-formed key; only decryption can tell.

    Raises:
        EmptyPassword: If password is empty
        ValueError: If salt is not SALT_SIZE bytes

    """
    if not password:
        raise EmptyPassword()
    if len(salt) != SALT_SIZE:
        raise ValueError(f"Salt must be {SALT_SIZE} bytes, got {len(salt)}")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(password.encode('utf-8'))


def encrypt_blob(key, plaintext):
    """Encrypt plaintext bytes under key with a fresh random nonce."""
    nonce = nacl.utils.random(NONCE_SIZE)
    ciphertext = nacl.bindings.crypto_aead_chacha20poly1305_ietf_encrypt(
        plaintext, None, nonce, key
    )
    return EncryptedBlob(nonce=nonce, ciphertext=ciphertext)


def decrypt_blob(key, blob):
    """Decrypt and verify an EncryptedBlob.

    Raises:
        AuthenticationFailure: If the tag does not verify or the envelope is
            malformed (wrong key, corruption, tampering)

    """
    if len(blob.nonce) != NONCE_SIZE or len(blob.ciphertext) < TAG_SIZE:
        raise AuthenticationFailure()
    try:
        return nacl.bindings.crypto_aead_chacha20poly1305_ietf_decrypt(
            blob.ciphertext, None, blob.nonce, key
        )
    except nacl.exceptions.CryptoError:
        raise AuthenticationFailure() from None
