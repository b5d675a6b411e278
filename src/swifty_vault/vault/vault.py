# Vault - Encrypted Box Collection
#
# One vault is one AES-256-GCM sealed JSON document on disk:
#   <directory>/<id>.swftx
#
# Security:
#   - The key is passed per call and never kept on the instance
#   - A session tag (the vault id and a timestamp, sealed under the key given
#     at construction) lets every mutating call check that it was handed the
#     same key, without holding the key itself
#   - Mutations that fail authentication never touch memory or disk
#
# Every mutation runs authenticate -> mutate -> persist. If persisting fails
# the in-memory state is rolled back before the error propagates.

import json
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

import structlog

from ..config import get_settings
from ..core.clock import Clock, IdFactory, new_id, now_ms
from ..exceptions import (
    AuthenticationError,
    BoxNotFoundError,
    DecryptionError,
    MalformedRecordError,
    MalformedVaultError,
)
from .box import KIND, TITLE, TYPE, Box
from .encryption import Key
from .merge import MergeResult, merge_vaults
from .store import EncryptedStore, PathLike

logger = structlog.get_logger(__name__)

EXTENSION = "swftx"


# ── Data Model ───────────────────────────────────────────────────────


@dataclass
class VaultDocument:
    """Decoded form of the JSON document stored inside a vault file."""
    id: str
    name: str
    contents: List[Box] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    created_at: int = 0
    updated_at: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VaultDocument":
        """
        Validate and decode a vault document.

        Documents written before tombstones existed carry neither ``deleted``
        nor ``updatedAt``; they load with no tombstones and
        updatedAt == createdAt.

        Raises:
            MalformedVaultError: Required vault fields missing or of the wrong type
            MalformedRecordError: A box inside contents is malformed
        """
        if not isinstance(data, Mapping):
            raise MalformedVaultError(f"Vault document must be an object, got {type(data).__name__}")

        missing = [name for name in ("id", "name", "contents", "createdAt") if name not in data]
        if missing:
            raise MalformedVaultError(f"Vault document is missing required fields: {', '.join(missing)}")

        vault_id, name = data["id"], data["name"]
        if not isinstance(vault_id, str) or not vault_id:
            raise MalformedVaultError("Vault id must be a non-empty string")
        if not isinstance(name, str):
            raise MalformedVaultError(f"Vault {vault_id}: name must be a string")
        if not isinstance(data["contents"], list):
            raise MalformedVaultError(f"Vault {vault_id}: contents must be a list")

        deleted = data.get("deleted", [])
        if not isinstance(deleted, list) or not all(isinstance(i, str) for i in deleted):
            raise MalformedVaultError(f"Vault {vault_id}: deleted must be a list of ids")

        created_at = data["createdAt"]
        updated_at = data.get("updatedAt", created_at)
        for label, stamp in (("createdAt", created_at), ("updatedAt", updated_at)):
            if isinstance(stamp, bool) or not isinstance(stamp, int):
                raise MalformedVaultError(f"Vault {vault_id}: {label} must be an integer timestamp")

        contents = [Box.load(item) for item in data["contents"]]

        ids = [box.id for box in contents]
        if len(set(ids)) != len(ids):
            raise MalformedVaultError(f"Vault {vault_id}: duplicate box ids in contents")
        resurrected = set(ids) & set(deleted)
        if resurrected:
            raise MalformedVaultError(
                f"Vault {vault_id}: deleted boxes still present in contents: {', '.join(sorted(resurrected))}"
            )

        return cls(
            id=vault_id,
            name=name,
            contents=contents,
            deleted=list(dict.fromkeys(deleted)),
            created_at=created_at,
            updated_at=updated_at,
        )

    @classmethod
    def from_json(cls, raw: Union[bytes, str]) -> "VaultDocument":
        """Decode a UTF-8 JSON vault document."""
        try:
            text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            data = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedVaultError(f"Vault document is not valid JSON: {e}") from e
        return cls.from_dict(data)


# ── Vault ────────────────────────────────────────────────────────────


class Vault:
    """
    An ordered collection of boxes plus a tombstone log, persisted encrypted.

    Create with Vault.initialize() or open with Vault.load(). Every mutating
    method takes the vault key and raises AuthenticationError if it differs
    from the key the instance was opened with.

    Attributes:
        id: Vault id, also the file name stem
        name: Display name
        location: Path of the vault file
        contents: Boxes, unique by id
        deleted: Ids of removed boxes (append-only)
        created_at, updated_at: Millisecond timestamps
    """

    def __init__(
        self,
        document: VaultDocument,
        location: PathLike,
        key: Key,
        store: Optional[EncryptedStore] = None,
        clock: Clock = now_ms,
        id_factory: IdFactory = new_id,
    ):
        self.id = document.id
        self.name = document.name
        self.location = Path(location)
        self.contents: List[Box] = list(document.contents)
        self.deleted: List[str] = list(document.deleted)
        self.created_at = document.created_at
        self.updated_at = document.updated_at

        self._store = store or EncryptedStore()
        self._clock = clock
        self._id_factory = id_factory
        # Not persisted; discarded with the instance
        self._session_tag = self._store.cipher.encrypt(
            f"{self.id}.{self._clock()}".encode("utf-8"), key
        )

    # ── Construction ─────────────────────────────────────────────────

    @staticmethod
    def file_path(directory: PathLike, vault_id: str) -> Path:
        """Path of the vault file for vault_id inside directory."""
        return Path(directory) / f"{vault_id}.{EXTENSION}"

    @classmethod
    def initialize(
        cls,
        directory: Optional[PathLike],
        name: str,
        key: Key,
        store: Optional[EncryptedStore] = None,
        clock: Clock = now_ms,
        id_factory: IdFactory = new_id,
    ) -> "Vault":
        """
        Create an empty vault and write it to disk.

        Args:
            directory: Where to create the vault file (default: settings.vault_dir)
            name: Display name
            key: 32-byte key or passphrase

        Raises:
            VaultIOError: The vault file could not be written
        """
        if directory is None:
            directory = get_settings().vault_dir

        vault_id = id_factory()
        created_at = clock()
        document = VaultDocument(
            id=vault_id, name=name, created_at=created_at, updated_at=created_at
        )
        vault = cls(
            document,
            cls.file_path(directory, vault_id),
            key,
            store=store,
            clock=clock,
            id_factory=id_factory,
        )
        vault._persist(key)

        logger.info("vault_created", vault_id=vault_id, path=str(vault.location))
        return vault

    @classmethod
    def load(
        cls,
        directory: PathLike,
        vault_id: str,
        key: Key,
        store: Optional[EncryptedStore] = None,
        clock: Clock = now_ms,
        id_factory: IdFactory = new_id,
    ) -> "Vault":
        """
        Open an existing vault file.

        Raises:
            VaultIOError: File missing or unreadable
            DecryptionError: Wrong key or corrupted file
            MalformedVaultError, MalformedRecordError: Decrypted document is invalid
        """
        store = store or EncryptedStore()
        location = cls.file_path(directory, vault_id)

        try:
            plaintext = store.load(location, key)
        except DecryptionError:
            logger.warning("vault_decryption_failed", vault_id=vault_id, path=str(location))
            raise

        document = VaultDocument.from_json(plaintext)
        if document.id != vault_id:
            raise MalformedVaultError(
                f"Vault file {location} holds vault {document.id}, expected {vault_id}"
            )

        vault = cls(document, location, key, store=store, clock=clock, id_factory=id_factory)
        logger.info("vault_loaded", vault_id=vault_id, boxes=len(vault.contents))
        return vault

    # ── Session authentication ───────────────────────────────────────

    def authenticate(self, key: Key) -> bool:
        """True if key is the key this instance was opened with."""
        try:
            plaintext = self._store.cipher.decrypt(self._session_tag, key)
        except (DecryptionError, TypeError, ValueError):
            return False

        try:
            text = plaintext.decode("utf-8")
        except UnicodeDecodeError:
            return False
        return re.fullmatch(re.escape(self.id) + r"\.\d+", text) is not None

    def _require_key(self, key: Key, operation: str) -> None:
        if not self.authenticate(key):
            logger.warning("vault_authentication_failed", vault_id=self.id, operation=operation)
            raise AuthenticationError(f"Key does not match vault {self.id}; {operation} aborted")

    # ── Persistence ──────────────────────────────────────────────────

    def _persist(self, key: Key) -> None:
        self._store.save(self.location, self.serialize().encode("utf-8"), key)
        logger.debug("vault_saved", vault_id=self.id, boxes=len(self.contents))

    def save(self, key: Key) -> None:
        """Write the current state to disk."""
        self._require_key(key, "save")
        self._persist(key)

    @contextmanager
    def _transaction(self):
        """Restore the in-memory state if the wrapped mutation or persist fails."""
        contents = list(self.contents)
        box_states = [(box, box.snapshot()) for box in contents]
        snapshot = (list(self.deleted), self.name, self.updated_at)
        try:
            yield
        except Exception:
            # restore into the same Box instances
            for box, values in box_states:
                box.restore(values)
            self.contents = contents
            self.deleted, self.name, self.updated_at = snapshot
            raise

    def _touch(self) -> None:
        self.updated_at = max(self._clock(), self.created_at)

    # ── CRUD ─────────────────────────────────────────────────────────

    def add(self, fields: Mapping[str, Any], key: Key) -> Box:
        """
        Create a box from fields and append it.

        fields must include ``type`` (or ``kind``) and ``title``; everything
        else becomes the box's tracked extras.

        Raises:
            AuthenticationError: Key mismatch
            MalformedRecordError: type/kind or title missing
        """
        self._require_key(key, "add")

        kind = fields.get(TYPE) or fields.get(KIND)
        title = fields.get(TITLE)
        if not kind or not title:
            raise MalformedRecordError("A new box needs both a type and a title")

        with self._transaction():
            box = Box.initialize(kind, title, fields, clock=self._clock, id_factory=self._id_factory)
            self.contents.append(box)
            self._touch()
            self._persist(key)

        logger.info("box_added", vault_id=self.id, box_id=box.id, kind=box.kind)
        return box

    def update(self, box_id: str, fields: Mapping[str, Any], key: Key) -> Box:
        """
        Rewrite tracked fields of an existing box.

        Raises:
            AuthenticationError: Key mismatch
            BoxNotFoundError: No box with box_id
            FieldError: A field is immutable or not tracked by the box
        """
        self._require_key(key, "update")
        index = self._index_of(box_id)

        with self._transaction():
            box = self.contents[index].update(fields, clock=self._clock)
            self._touch()
            self._persist(key)

        logger.info("box_updated", vault_id=self.id, box_id=box_id, fields=sorted(fields))
        return box

    def remove(self, box_id: str, key: Key) -> None:
        """Remove a box (no-op if absent) and record its tombstone."""
        self._require_key(key, "remove")

        with self._transaction():
            self.contents = [box for box in self.contents if box.id != box_id]
            if box_id not in self.deleted:
                self.deleted.append(box_id)
            self._touch()
            self._persist(key)

        logger.info("box_removed", vault_id=self.id, box_id=box_id)

    def rename(self, name: str, key: Key) -> None:
        """Change the vault's display name."""
        self._require_key(key, "rename")

        with self._transaction():
            self.name = name
            self._touch()
            self._persist(key)

        logger.info("vault_renamed", vault_id=self.id)

    # ── Merge ────────────────────────────────────────────────────────

    def merge(self, remote: Union["Vault", Mapping[str, Any]], key: Key) -> MergeResult:
        """
        Reconcile this vault with an independently modified copy.

        Args:
            remote: Another copy of this vault, or its plain document (e.g. a sync payload)
            key: This vault's key

        Returns:
            MergeResult describing which boxes were replaced, added or dropped

        Raises:
            AuthenticationError: Key mismatch
            MalformedVaultError: remote is a different vault
            MalformedVaultError, MalformedRecordError: remote document is invalid
        """
        self._require_key(key, "merge")

        if not isinstance(remote, Vault):
            remote = VaultDocument.from_dict(remote)
        if remote.id != self.id:
            raise MalformedVaultError(f"Cannot merge vault {remote.id} into vault {self.id}")

        with self._transaction():
            result = merge_vaults(self, remote)
            self.contents = result.contents
            self.deleted = result.deleted
            self.name = result.name
            self._touch()
            self._persist(key)

        logger.info(
            "vault_merged",
            vault_id=self.id,
            remote_id=remote.id,
            replaced=len(result.replaced),
            added=len(result.added),
            dropped=len(result.dropped),
            boxes=len(self.contents),
            tombstones=len(self.deleted),
        )
        return result

    # ── Queries ──────────────────────────────────────────────────────

    def _index_of(self, box_id: str) -> int:
        for index, box in enumerate(self.contents):
            if box.id == box_id:
                return index
        raise BoxNotFoundError(f"Box {box_id} not found in vault {self.id}")

    def get(self, box_id: str) -> Box:
        """Return the box with box_id, or raise BoxNotFoundError."""
        return self.contents[self._index_of(box_id)]

    def find(self, kind: Optional[str] = None, title: Optional[str] = None) -> List[Box]:
        """Boxes matching kind and/or a case-insensitive title substring."""
        kind = getattr(kind, "value", kind)
        needle = title.lower() if title else None
        return [
            box for box in self.contents
            if (kind is None or box.kind == kind)
            and (needle is None or needle in str(box.title).lower())
        ]

    def __len__(self) -> int:
        return len(self.contents)

    def __iter__(self) -> Iterator[Box]:
        return iter(list(self.contents))

    def __contains__(self, box_id: object) -> bool:
        return any(box.id == box_id for box in self.contents)

    def __repr__(self) -> str:
        return f"Vault(id={self.id!r}, name={self.name!r}, boxes={len(self.contents)})"

    # ── Serialization ────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "contents": [box.serialize() for box in self.contents],
            "deleted": list(self.deleted),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def serialize(self) -> str:
        """Compact JSON document, as stored (encrypted) on disk."""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)


def list_vaults(directory: PathLike) -> List[str]:
    """Ids of the vault files in directory, sorted."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(path.stem for path in directory.glob(f"*.{EXTENSION}") if path.is_file())
