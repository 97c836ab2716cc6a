"""AES-256 in counter mode and the password primitives used by the vault."""

from __future__ import annotations

import hashlib

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

BLOCK_SIZE = 16
KEY_LEN = 32
RANDOM_LEN = 0x70
KDF_ITERATIONS = 10

USER_PWD_SALT_OFFSET = 0x00
KEK_SALT_OFFSET = 0x10
DATA_KEY_IV_OFFSET = 0x20
DATA_IV_OFFSET = 0x30
NAME_ID_IV_OFFSET = 0x40
ID_IDX_IV_OFFSET = 0x50
CAT_ID_IV_OFFSET = 0x60

_COUNTER_MODULUS = 1 << (8 * BLOCK_SIZE)


def _as_bytes(value: bytes | str) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


def increment_counter(iv: bytes, amount: int) -> bytes:
    """Return the 16-byte counter block advanced by ``amount`` blocks."""
    if len(iv) != BLOCK_SIZE:
        raise ValueError(f"counter block must be {BLOCK_SIZE} bytes")
    value = (int.from_bytes(iv, "big") + amount) % _COUNTER_MODULUS
    return value.to_bytes(BLOCK_SIZE, "big")


class CtrCipher:
    """AES-256-CTR with a fixed key; each call supplies its own counter block."""

    def __init__(self, key: bytes) -> None:
        key = bytes(key)
        if len(key) != KEY_LEN:
            raise ValueError(f"key must be {KEY_LEN} bytes")
        self._algorithm = algorithms.AES(key)

    def _apply(self, data: bytes, iv: bytes) -> bytes:
        if len(iv) != BLOCK_SIZE:
            raise ValueError(f"counter block must be {BLOCK_SIZE} bytes")
        ctx = Cipher(self._algorithm, modes.CTR(bytes(iv))).encryptor()
        return ctx.update(bytes(data)) + ctx.finalize()

    def encrypt(self, data: bytes, iv: bytes) -> bytes:
        """Encrypt ``data`` starting at counter block ``iv``."""
        return self._apply(data, iv)

    def decrypt(self, data: bytes, iv: bytes) -> bytes:
        """Decrypt ``data`` starting at counter block ``iv``."""
        return self._apply(data, iv)


def ctr_transform(key: bytes, iv: bytes, data: bytes) -> bytes:
    """Encrypt or decrypt ``data`` once with AES-256-CTR."""
    return CtrCipher(key).encrypt(data, iv)


def hash_password(password: bytes | str, salt: bytes) -> bytes:
    """SHA3-512 of the password followed by its salt."""
    digest = hashlib.sha3_512()
    digest.update(_as_bytes(password))
    digest.update(bytes(salt))
    return digest.digest()


def derive_kek(password: bytes | str, salt: bytes) -> bytes:
    """Derive the 32-byte key-encryption key with PBKDF2-HMAC-SHA512."""
    return hashlib.pbkdf2_hmac(
        "sha512", _as_bytes(password), bytes(salt), KDF_ITERATIONS, dklen=KEY_LEN
    )