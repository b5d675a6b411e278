"""
Shared pytest fixtures for the Swifty Vault test suite.

Autouse fixtures below isolate tests from the real environment:
  - Settings -> temp vault directory and a cheap PBKDF2 iteration count
"""

import json
from pathlib import Path

import pytest

from swifty_vault.config import VaultSettings, reset_settings
from swifty_vault.vault import EncryptedStore, VaultCipher

FIXTURES = Path(__file__).parent / "fixtures"

T0 = 1640995200000  # 2022-01-01T00:00:00Z
T1 = 1641081600000  # 2022-01-02T00:00:00Z


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def set(self, now: int) -> None:
        self.now = now


class SequentialIds:
    """Deterministic id factory: id-1, id-2, ..."""

    def __init__(self, prefix: str = "id"):
        self.prefix = prefix
        self.count = 0

    def __call__(self) -> str:
        self.count += 1
        return f"{self.prefix}-{self.count}"


def load_fixture(name: str) -> dict:
    return json.loads((FIXTURES / name).read_text(encoding="utf-8"))


def write_vault_file(directory: Path, document: dict, key, store: EncryptedStore) -> Path:
    """Seal a plain vault document into <directory>/<id>.swftx."""
    path = directory / f"{document['id']}.swftx"
    store.save(path, json.dumps(document).encode("utf-8"), key)
    return path


@pytest.fixture(autouse=True)
def _isolate_settings(tmp_path):
    """Point the global settings at a temp directory for every test.

    600k PBKDF2 rounds per passphrase operation would make the suite crawl,
    so passphrase tests run with a small iteration count instead.
    """
    reset_settings(VaultSettings(vault_dir=tmp_path / "default_vaults", kdf_iterations=1_000))
    yield
    reset_settings(None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ids():
    return SequentialIds()


@pytest.fixture
def key():
    return VaultCipher.generate_key()


@pytest.fixture
def other_key():
    return VaultCipher.generate_key()


@pytest.fixture
def store():
    return EncryptedStore()


@pytest.fixture
def vault(tmp_path, key, store, clock, ids):
    """Fresh empty vault named 'Personal' created at T0."""
    from swifty_vault.vault import Vault

    return Vault.initialize(tmp_path, "Personal", key, store=store, clock=clock, id_factory=ids)
