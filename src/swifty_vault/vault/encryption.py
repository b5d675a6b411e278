# Vault - Encryption Service
#
# Authenticated encryption for vault files (AES-256-GCM)
# Raw 256-bit keys are used directly; passphrases go through PBKDF2
# with a random salt per blob. The round count is stored in the blob, so
# a vault stays readable after the configured count changes.
#
# Blob layouts:
#   0x01 + nonce(12) + ciphertext+tag                               raw 32-byte key
#   0x02 + iterations(4) + salt(32) + nonce(12) + ciphertext+tag   passphrase

import os
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..config import get_settings
from ..exceptions import DecryptionError

Key = Union[bytes, str]


class VaultCipher:
    """
    Encrypts and decrypts vault payloads with AES-256-GCM.

    Flow:
    1. Caller supplies a key (32 raw bytes) or a passphrase (str)
    2. Passphrases are stretched with PBKDF2-SHA256 and a fresh salt
    3. AES-256-GCM seals the payload under a fresh nonce
    4. Decryption fails loudly on tamper, truncation or wrong key
    """

    KEY_LENGTH = 32    # 256 bits for AES-256
    SALT_LENGTH = 32   # 256-bit salt
    NONCE_LENGTH = 12  # 96-bit nonce for GCM (recommended)
    TAG_LENGTH = 16    # GCM authentication tag
    ITERATIONS_LENGTH = 4   # big-endian PBKDF2 round count
    MAX_ITERATIONS = 10_000_000

    RAW_KEY_FORMAT = 0x01
    PASSPHRASE_FORMAT = 0x02

    def __init__(self, iterations: Optional[int] = None):
        """
        Args:
            iterations: PBKDF2 rounds for passphrase keys
                        (default: settings.kdf_iterations)
        """
        self.iterations = get_settings().kdf_iterations if iterations is None else iterations
        if not 1 <= self.iterations <= self.MAX_ITERATIONS:
            raise ValueError(f"PBKDF2 iterations must be between 1 and {self.MAX_ITERATIONS}")

    @staticmethod
    def generate_key() -> bytes:
        """Generate a random 256-bit key."""
        return os.urandom(VaultCipher.KEY_LENGTH)

    def derive_key(self, passphrase: str, salt: bytes, iterations: Optional[int] = None) -> bytes:
        """Derive a 256-bit key from passphrase + salt via PBKDF2-SHA256."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=self.KEY_LENGTH,
            salt=salt,
            iterations=iterations or self.iterations,
        )
        return kdf.derive(passphrase.encode("utf-8"))

    def _check_raw_key(self, key: bytes) -> bytes:
        if len(key) != self.KEY_LENGTH:
            raise ValueError(f"Raw vault key must be {self.KEY_LENGTH} bytes, got {len(key)}")
        return key

    def encrypt(self, plaintext: bytes, key: Key) -> bytes:
        """
        Encrypt plaintext with AES-256-GCM.

        Args:
            plaintext: Bytes to seal
            key: 32-byte key or passphrase

        Returns:
            Self-describing blob (format byte, KDF parameters if any, nonce, ciphertext+tag)
        """
        nonce = os.urandom(self.NONCE_LENGTH)

        if isinstance(key, str):
            salt = os.urandom(self.SALT_LENGTH)
            aes_key = self.derive_key(key, salt)
            header = (
                bytes([self.PASSPHRASE_FORMAT])
                + self.iterations.to_bytes(self.ITERATIONS_LENGTH, "big")
                + salt
                + nonce
            )
        elif isinstance(key, (bytes, bytearray)):
            aes_key = self._check_raw_key(bytes(key))
            header = bytes([self.RAW_KEY_FORMAT]) + nonce
        else:
            raise TypeError(f"Vault key must be bytes or str, not {type(key).__name__}")

        return header + AESGCM(aes_key).encrypt(nonce, plaintext, None)

    def decrypt(self, blob: bytes, key: Key) -> bytes:
        """
        Decrypt a blob produced by encrypt().

        Passphrase blobs are opened with the iteration count stored in the
        blob, not the one this cipher was built with.

        Raises:
            DecryptionError: Wrong key, wrong key type for the blob, or corrupt data
        """
        if isinstance(key, str):
            expected_format = self.PASSPHRASE_FORMAT
            header_size = 1 + self.ITERATIONS_LENGTH + self.SALT_LENGTH + self.NONCE_LENGTH
        elif isinstance(key, (bytes, bytearray)):
            self._check_raw_key(bytes(key))
            expected_format = self.RAW_KEY_FORMAT
            header_size = 1 + self.NONCE_LENGTH
        else:
            raise TypeError(f"Vault key must be bytes or str, not {type(key).__name__}")

        if len(blob) < header_size + self.TAG_LENGTH:
            raise DecryptionError("Encrypted data too short to be a valid vault blob")
        if blob[0] != expected_format:
            raise DecryptionError("Encrypted data was not sealed with this kind of key")

        if expected_format == self.PASSPHRASE_FORMAT:
            salt_start = 1 + self.ITERATIONS_LENGTH
            iterations = int.from_bytes(blob[1:salt_start], "big")
            if not 1 <= iterations <= self.MAX_ITERATIONS:
                raise DecryptionError(f"Encrypted data declares an invalid KDF iteration count ({iterations})")
            salt = blob[salt_start : salt_start + self.SALT_LENGTH]
            nonce = blob[salt_start + self.SALT_LENGTH : header_size]
            aes_key = self.derive_key(key, salt, iterations)
        else:
            nonce = blob[1:header_size]
            aes_key = bytes(key)

        try:
            return AESGCM(aes_key).decrypt(nonce, blob[header_size:], None)
        except InvalidTag as e:
            raise DecryptionError("Decryption failed: wrong key or corrupted data") from e
