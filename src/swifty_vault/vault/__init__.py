# Vault Module - Encrypted Box Store
#
# File-backed, AES-256-GCM sealed collections of typed secrets ("boxes"),
# with tombstone-aware last-writer-wins merging of independently edited copies.

from .box import Box, BoxKind
from .encryption import VaultCipher
from .merge import MergeResult, merge_vaults
from .store import EncryptedStore
from .vault import EXTENSION, Vault, VaultDocument, list_vaults

__all__ = [
    "Box",
    "BoxKind",
    "EncryptedStore",
    "EXTENSION",
    "MergeResult",
    "Vault",
    "VaultCipher",
    "VaultDocument",
    "list_vaults",
    "merge_vaults",
]
