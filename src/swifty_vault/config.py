# Vault Settings
# Process-wide defaults for the vault engine.
#
# Every field has a sane default; environment variables override them when
# settings are built with VaultSettings.from_env(). The engine never reads
# the environment directly, it only consumes get_settings().

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

ENV_VAULT_DIR = "SWIFTY_VAULT_DIR"
ENV_KDF_ITERATIONS = "SWIFTY_VAULT_KDF_ITERATIONS"
ENV_LOG_LEVEL = "SWIFTY_VAULT_LOG_LEVEL"
ENV_LOG_JSON = "SWIFTY_VAULT_LOG_JSON"

DEFAULT_VAULT_DIR = Path("data/vaults")
DEFAULT_KDF_ITERATIONS = 600_000  # OWASP 2023: 600k iterations for PBKDF2-SHA256
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass
class VaultSettings:
    """
    Settings for the vault engine.

    Args:
        vault_dir: Default directory for vault files
        kdf_iterations: PBKDF2 rounds used when a passphrase is the key
        log_level: Minimum level passed to configure_logging()
        log_json: Render log records as JSON (console renderer otherwise)
    """

    vault_dir: Path = field(default_factory=lambda: DEFAULT_VAULT_DIR)
    kdf_iterations: int = DEFAULT_KDF_ITERATIONS
    log_level: str = "INFO"
    log_json: bool = True

    def __post_init__(self):
        self.vault_dir = Path(self.vault_dir)
        self.log_level = self.log_level.upper()
        if self.kdf_iterations < 1:
            raise ValueError("kdf_iterations must be a positive integer")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "VaultSettings":
        """Build settings from environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        kwargs = {}

        if env.get(ENV_VAULT_DIR):
            kwargs["vault_dir"] = Path(env[ENV_VAULT_DIR]).expanduser()

        if env.get(ENV_KDF_ITERATIONS):
            raw = env[ENV_KDF_ITERATIONS]
            try:
                kwargs["kdf_iterations"] = int(raw)
            except ValueError:
                raise ValueError(f"{ENV_KDF_ITERATIONS} must be an integer, got {raw!r}") from None

        if env.get(ENV_LOG_LEVEL):
            kwargs["log_level"] = env[ENV_LOG_LEVEL]

        if env.get(ENV_LOG_JSON):
            kwargs["log_json"] = _parse_bool(ENV_LOG_JSON, env[ENV_LOG_JSON])

        return cls(**kwargs)


# Global settings instance
_settings: Optional[VaultSettings] = None


def get_settings() -> VaultSettings:
    """Get global vault settings (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = VaultSettings.from_env()
    return _settings


def reset_settings(settings: Optional[VaultSettings] = None) -> None:
    """Replace the global settings, or drop them so the next get re-reads the env."""
    global _settings
    _settings = settings
