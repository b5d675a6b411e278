"""Encrypted file round-trip for vault documents.

save() writes to a temporary file in the target directory and swaps it into
place with os.replace, so readers see either the old file or the new one.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional, Union

import structlog

from ..exceptions import VaultIOError
from .encryption import Key, VaultCipher

logger = structlog.get_logger(__name__)

PathLike = Union[str, Path]


class EncryptedStore:
    """Reads and writes AEAD-sealed blobs at a path."""

    def __init__(self, cipher: Optional[VaultCipher] = None):
        self.cipher = cipher or VaultCipher()

    def save(self, path: PathLike, plaintext: bytes, key: Key) -> None:
        """
        Encrypt plaintext under key and write it to path.

        Raises:
            VaultIOError: Directory or file could not be written. The previous
                          file content is left untouched.
        """
        path = Path(path)
        blob = self.cipher.encrypt(plaintext, key)

        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
            )
            with os.fdopen(fd, "wb") as f:
                f.write(blob)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            logger.error("vault_file_write_failed", path=str(path), error=str(e))
            raise VaultIOError(f"Failed to write vault file {path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        logger.debug("vault_file_written", path=str(path), size_bytes=len(blob))

    def load(self, path: PathLike, key: Key) -> bytes:
        """
        Read the blob at path and decrypt it under key.

        Raises:
            VaultIOError: File missing or unreadable
            DecryptionError: Wrong key or corrupted ciphertext
        """
        path = Path(path)
        try:
            blob = path.read_bytes()
        except OSError as e:
            logger.error("vault_file_read_failed", path=str(path), error=str(e))
            raise VaultIOError(f"Failed to read vault file {path}: {e}") from e

        return self.cipher.decrypt(blob, key)
