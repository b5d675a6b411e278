# Vault - Box (single typed secret entry)
#
# A box carries exactly the fields it was created or loaded with. The set of
# field names is fixed for the lifetime of the instance and is what gets
# serialized, in insertion order.

from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional

from ..core.clock import Clock, IdFactory, new_id, now_ms
from ..exceptions import FieldError, MalformedRecordError

ID = "id"
TYPE = "type"
KIND = "kind"
TITLE = "title"
CREATED_AT = "createdAt"
UPDATED_AT = "updatedAt"

IMMUTABLE_FIELDS = frozenset({ID, CREATED_AT, UPDATED_AT})


class BoxKind(str, Enum):
    """Well-known box kinds. Any non-empty string is accepted as a kind."""
    LOGIN = "login"
    NOTE = "note"
    CARD = "card"
    OTP = "otp"


def _kind_value(kind: Any) -> str:
    return kind.value if isinstance(kind, Enum) else kind


class Box:
    """
    A single typed secret entry.

    Serialized form is a flat mapping, e.g.::

        {"id": "...", "createdAt": 1640995200000, "updatedAt": 1640995200000,
         "type": "login", "title": "Github", "username": "...", "password": "..."}

    Use Box.initialize() for new entries and Box.load() for persisted ones.
    """

    def __init__(self, values: Mapping[str, Any]):
        self._values: Dict[str, Any] = dict(values)

    @classmethod
    def initialize(
        cls,
        kind: Any,
        title: str,
        fields: Optional[Mapping[str, Any]] = None,
        clock: Clock = now_ms,
        id_factory: IdFactory = new_id,
    ) -> "Box":
        """Create a new box with a fresh id and createdAt == updatedAt == now."""
        extras = dict(fields or {})
        for reserved in (ID, CREATED_AT, UPDATED_AT, TYPE, KIND, TITLE):
            extras.pop(reserved, None)

        created_at = clock()
        return cls({
            ID: id_factory(),
            CREATED_AT: created_at,
            UPDATED_AT: created_at,
            TYPE: _kind_value(kind),
            TITLE: title,
            **extras,
        })

    @classmethod
    def load(cls, values: Mapping[str, Any]) -> "Box":
        """
        Rebuild a box from its serialized mapping.

        Raises:
            MalformedRecordError: id, type/kind or title missing, or timestamps inconsistent
        """
        if not isinstance(values, Mapping):
            raise MalformedRecordError(f"Box must be a mapping, got {type(values).__name__}")

        missing = [name for name in (ID, TITLE) if not values.get(name)]
        if not (values.get(TYPE) or values.get(KIND)):
            missing.append(TYPE)
        if missing:
            raise MalformedRecordError(f"Box is missing required fields: {', '.join(missing)}")

        created_at = values.get(CREATED_AT)
        updated_at = values.get(UPDATED_AT)
        for name, stamp in ((CREATED_AT, created_at), (UPDATED_AT, updated_at)):
            if stamp is not None and (isinstance(stamp, bool) or not isinstance(stamp, int)):
                raise MalformedRecordError(f"Box {values[ID]}: {name} must be an integer timestamp")
        if created_at is not None and updated_at is not None and updated_at < created_at:
            raise MalformedRecordError(f"Box {values[ID]}: updatedAt precedes createdAt")

        return cls(values)

    # ── Accessors ────────────────────────────────────────────────────

    @property
    def id(self) -> str:
        return self._values[ID]

    @property
    def kind(self) -> str:
        return self._values.get(TYPE, self._values.get(KIND))

    @property
    def title(self) -> str:
        return self._values[TITLE]

    @property
    def created_at(self) -> int:
        return self._values.get(CREATED_AT, 0)

    @property
    def updated_at(self) -> int:
        return self._values.get(UPDATED_AT, self.created_at)

    @property
    def field_names(self):
        """Tracked field names, in serialization order."""
        return tuple(self._values)

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Box):
            return NotImplemented
        return list(self._values.items()) == list(other._values.items())

    def __repr__(self) -> str:
        return f"Box(id={self.id!r}, kind={self.kind!r}, title={self.title!r})"

    # ── Mutation ─────────────────────────────────────────────────────

    def _resolve(self, name: str) -> str:
        # "kind" and "type" name the same field
        if name in (TYPE, KIND):
            return TYPE if TYPE in self._values else KIND
        return name

    def update(self, fields: Mapping[str, Any], clock: Clock = now_ms) -> "Box":
        """
        Rewrite tracked fields and refresh updatedAt.

        Only fields the box already carries may be changed; id, createdAt and
        updatedAt may not be changed at all. An empty update still refreshes
        updatedAt.

        Raises:
            FieldError: A field is immutable or not tracked by this box
        """
        changes = {}
        for name, value in fields.items():
            target = self._resolve(name)
            if target in IMMUTABLE_FIELDS:
                raise FieldError(f"Box {self.id}: field '{name}' cannot be updated")
            if target not in self._values:
                raise FieldError(f"Box {self.id}: field '{name}' is not tracked by this box")
            changes[target] = _kind_value(value) if target in (TYPE, KIND) else value

        self._values.update(changes)
        self._values[UPDATED_AT] = max(clock(), self.created_at)
        return self

    def serialize(self) -> Dict[str, Any]:
        """Flat mapping of exactly the tracked fields."""
        return dict(self._values)

    def copy(self) -> "Box":
        return Box(self._values)

    def snapshot(self) -> Dict[str, Any]:
        """Copy of the current field values, for restore()."""
        return dict(self._values)

    def restore(self, values: Mapping[str, Any]) -> None:
        """Put back values taken with snapshot(), keeping this instance."""
        self._values = dict(values)
