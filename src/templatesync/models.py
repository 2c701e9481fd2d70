"""Core TemplateSync data models.

Frontmatter values are represented as a small tagged union so the differ and
the patcher can dispatch on ``kind`` instead of probing Python types:

    MetaScalar("draft")                 -> "draft"
    NULL                                -> null
    MetaSequence([MetaScalar(1)])       -> [1]
    MetaRecord({"a": MetaScalar(1)})    -> {"a": 1}
"""

from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple


class ValueKind(Enum):
    SCALAR = auto()
    NULL = auto()
    SEQUENCE = auto()
    RECORD = auto()


class MetaValue:
    """Base class for frontmatter values.  Not instantiated directly."""

    __slots__ = ()
    kind: ClassVar[ValueKind]

    def clone(self) -> MetaValue:
        raise NotImplementedError


def _is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


@dataclass(frozen=True, slots=True, eq=False)
class MetaScalar(MetaValue):
    """A leaf value: string, number, boolean or a YAML date/timestamp."""

    value: Any
    kind: ClassVar[ValueKind] = ValueKind.SCALAR

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MetaScalar):
            return NotImplemented
        # bool is a subclass of int, True must not equal 1
        if (type(self.value) is bool) != (type(other.value) is bool):
            return False
        if _is_nan(self.value) and _is_nan(other.value):
            return True
        return self.value == other.value

    def __hash__(self) -> int:
        if _is_nan(self.value):
            return hash((False, "nan"))
        return hash((type(self.value) is bool, self.value))

    def clone(self) -> MetaScalar:
        return self


@dataclass(frozen=True, slots=True)
class MetaNull(MetaValue):
    """The YAML ``null``.  Inside a diff it marks a key for removal."""

    kind: ClassVar[ValueKind] = ValueKind.NULL

    def clone(self) -> MetaNull:
        return self


NULL = MetaNull()


@dataclass(slots=True)
class MetaSequence(MetaValue):
    """An ordered list of values.  Always replaced wholesale, never merged."""

    items: List[MetaValue] = field(default_factory=list)
    kind: ClassVar[ValueKind] = ValueKind.SEQUENCE

    def __len__(self) -> int:
        return len(self.items)

    def clone(self) -> MetaSequence:
        return MetaSequence([item.clone() for item in self.items])


@dataclass(slots=True)
class MetaRecord(MetaValue):
    """A mutable string-keyed mapping of values (a frontmatter block)."""

    entries: Dict[str, MetaValue] = field(default_factory=dict)
    kind: ClassVar[ValueKind] = ValueKind.RECORD

    def __getitem__(self, key: str) -> MetaValue:
        return self.entries[key]

    def __setitem__(self, key: str, value: MetaValue) -> None:
        self.entries[key] = value

    def __delitem__(self, key: str) -> None:
        del self.entries[key]

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, key: str, default: Optional[MetaValue] = None) -> Optional[MetaValue]:
        return self.entries.get(key, default)

    def pop(self, key: str, default: Optional[MetaValue] = None) -> Optional[MetaValue]:
        return self.entries.pop(key, default)

    def items(self):
        return self.entries.items()

    def keys(self):
        return self.entries.keys()

    def clone(self) -> MetaRecord:
        return MetaRecord({key: value.clone() for key, value in self.entries.items()})


_SCALAR_TYPES = (str, bool, int, float, dt.date, dt.datetime)


def from_python(obj: Any) -> MetaValue:
    """Convert parsed YAML/JSON data into a tagged value."""
    if obj is None:
        return NULL
    if isinstance(obj, dict):
        return MetaRecord({str(key): from_python(value) for key, value in obj.items()})
    if isinstance(obj, (list, tuple)):
        return MetaSequence([from_python(item) for item in obj])
    if isinstance(obj, _SCALAR_TYPES):
        return MetaScalar(obj)
    raise TypeError(f"Unsupported frontmatter value: {type(obj).__name__}")


def record_from_python(obj: Dict[str, Any]) -> MetaRecord:
    """Like :func:`from_python` but guarantees a record."""
    value = from_python(obj)
    if not isinstance(value, MetaRecord):
        raise TypeError(f"Expected a mapping, got {type(obj).__name__}")
    return value


def to_python(value: MetaValue) -> Any:
    """Convert a tagged value back into plain Python data."""
    if value.kind is ValueKind.RECORD:
        return {key: to_python(item) for key, item in value.entries.items()}
    if value.kind is ValueKind.SEQUENCE:
        return [to_python(item) for item in value.items]
    if value.kind is ValueKind.NULL:
        return None
    return value.value


@dataclass(slots=True)
class Diff:
    """Added/updated/deleted trees describing how one record became another."""

    added: MetaRecord = field(default_factory=MetaRecord)
    updated: MetaRecord = field(default_factory=MetaRecord)
    deleted: MetaRecord = field(default_factory=MetaRecord)

    def is_empty(self) -> bool:
        return not (self.added or self.updated or self.deleted)

    def to_python(self) -> Dict[str, Any]:
        return {
            "added": to_python(self.added),
            "updated": to_python(self.updated),
            "deleted": to_python(self.deleted),
        }

    def changes(self) -> List[Tuple[str, str, Any]]:
        """Flatten the three trees into ``(section, dotted.path, value)`` rows."""
        rows: List[Tuple[str, str, Any]] = []
        for section, tree in (("added", self.added), ("updated", self.updated), ("deleted", self.deleted)):
            _flatten(section, tree, (), rows)
        return rows


def _flatten(section: str, tree: MetaRecord, prefix: Tuple[str, ...], rows: list) -> None:
    for key, value in tree.items():
        path = prefix + (key,)
        if value.kind is ValueKind.RECORD and value:
            _flatten(section, value, path, rows)
        else:
            rows.append((section, ".".join(path), to_python(value)))


class EventKind(Enum):
    MODIFY = "modify"
    RENAME = "rename"
    DELETE = "delete"
    METADATA_CHANGED = "metadata-changed"


@dataclass(frozen=True, slots=True)
class VaultEvent:
    """A document change notification."""

    kind: EventKind
    doc_id: str
    old_id: Optional[str] = None

    @classmethod
    def modify(cls, doc_id: str) -> VaultEvent:
        return cls(EventKind.MODIFY, doc_id)

    @classmethod
    def rename(cls, doc_id: str, old_id: str) -> VaultEvent:
        return cls(EventKind.RENAME, doc_id, old_id)

    @classmethod
    def delete(cls, doc_id: str) -> VaultEvent:
        return cls(EventKind.DELETE, doc_id)

    @classmethod
    def metadata_changed(cls, doc_id: str) -> VaultEvent:
        return cls(EventKind.METADATA_CHANGED, doc_id)

    @property
    def doc_ids(self) -> Tuple[str, ...]:
        """All document ids this event touches."""
        if self.old_id is None or self.old_id == self.doc_id:
            return (self.doc_id,)
        return tuple(sorted((self.doc_id, self.old_id)))


@dataclass(frozen=True, slots=True)
class FrontmatterLink:
    """A link found in a frontmatter property, e.g. ``template: "[[Book]]"``."""

    key: str
    link: str


@dataclass(slots=True)
class NoteCache:
    """Parsed state of one markdown note."""

    doc_id: str
    frontmatter: Optional[MetaRecord]
    frontmatter_links: List[FrontmatterLink]
    links: List[str]
    sha256: str
