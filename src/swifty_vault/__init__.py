"""
Swifty Vault - local, file-backed encrypted store for small typed secrets.
"""

__version__ = "0.3.0"

from .exceptions import (
    AuthenticationError,
    BoxNotFoundError,
    DecryptionError,
    FieldError,
    MalformedRecordError,
    MalformedVaultError,
    VaultError,
    VaultIOError,
)
from .vault import (
    Box,
    BoxKind,
    EncryptedStore,
    MergeResult,
    Vault,
    VaultCipher,
    list_vaults,
)

__all__ = [
    "AuthenticationError",
    "Box",
    "BoxKind",
    "BoxNotFoundError",
    "DecryptionError",
    "EncryptedStore",
    "FieldError",
    "MalformedRecordError",
    "MalformedVaultError",
    "MergeResult",
    "Vault",
    "VaultCipher",
    "VaultError",
    "VaultIOError",
    "list_vaults",
]
