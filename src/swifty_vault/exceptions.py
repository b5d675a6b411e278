"""
Vault Exception Classes
"""


class VaultError(Exception):
    """Base exception for vault operations"""
    pass


class VaultIOError(VaultError, OSError):
    """Raised when a vault file cannot be read or written"""
    pass


class DecryptionError(VaultError):
    """Raised when ciphertext is malformed or the key is wrong"""
    pass


class MalformedRecordError(VaultError, ValueError):
    """Raised when a persisted record is missing required fields"""
    pass


class MalformedVaultError(VaultError, ValueError):
    """Raised when a decrypted vault document is not a valid vault"""
    pass


class AuthenticationError(VaultError):
    """Raised when a mutating call supplies a key that does not match the session"""
    pass


class BoxNotFoundError(VaultError, KeyError):
    """Raised when an operation targets a box id absent from the vault"""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


class FieldError(VaultError, ValueError):
    """Raised when an update touches an untracked or immutable field"""
    pass
