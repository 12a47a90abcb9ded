"""taskvault - A personal task and notes dashboard kept in an encrypted local vault.
Uses PBKDF2 key derivation and ChaCha20-Poly1305 via pynacl.
"""

__version__ = "1.0.0"
