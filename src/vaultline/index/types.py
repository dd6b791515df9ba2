# types.py
# Vaultline – Record types shared by the parse, write and read paths

from dataclasses import dataclass, field, fields, replace
from typing import Any, Generic, List, Optional, Tuple, TypeVar

T = TypeVar("T")

PARSE_STAGES = ("tokenize", "parse", "transform")
FILE_STATUSES = ("parsed", "skipped", "empty", "unknown")
TOO_LARGE = "tooLarge"


# ============================================================
# Parse Errors
# ============================================================

@dataclass(frozen=True)
class ParseError:
    """A failure captured while parsing one file. Never raised."""
    stage: str
    message: str
    line: Optional[str] = None  # serialized offending token, if any

    def to_json(self) -> dict:
        data = {"stage": self.stage, "message": self.message}
        if self.line is not None:
            data["line"] = self.line
        return data

    @classmethod
    def from_json(cls, data: dict) -> "ParseError":
        return cls(stage=data["stage"], message=data["message"], line=data.get("line"))


# ============================================================
# Files
# ============================================================

@dataclass(frozen=True)
class DataFileKey:
    """Index entry for one leaf file. `iv` points at the encrypted payload."""
    provider: str
    path: Tuple[str, ...]
    slug: str
    skipped: Optional[str] = None
    iv: Optional[str] = None
    status: Optional[str] = None
    errors: Tuple[ParseError, ...] = ()

    @property
    def joined_path(self) -> str:
        return "/".join(self.path)

    def to_json(self) -> dict:
        return {
            "provider": self.provider,
            "path": list(self.path),
            "slug": self.slug,
            "skipped": self.skipped,
            "iv": self.iv,
            "status": self.status,
            "errors": [e.to_json() for e in self.errors],
        }

    @classmethod
    def from_json(cls, data: dict) -> "DataFileKey":
        return cls(
            provider=data["provider"],
            path=tuple(data["path"]),
            slug=data["slug"],
            skipped=data.get("skipped"),
            iv=data.get("iv"),
            status=data.get("status"),
            errors=tuple(ParseError.from_json(e) for e in data.get("errors", [])),
        )


@dataclass(frozen=True)
class DataFile(DataFileKey):
    """A DataFileKey plus the raw bytes (empty when skipped)."""
    data: bytes = b""

    def key(self, iv: Optional[str] = None) -> DataFileKey:
        return DataFileKey(
            provider=self.provider,
            path=self.path,
            slug=self.slug,
            skipped=self.skipped,
            iv=iv if iv is not None else self.iv,
            status=self.status,
            errors=self.errors,
        )

    @classmethod
    def hydrate(cls, key: DataFileKey, data: bytes) -> "DataFile":
        return cls(**{f.name: getattr(key, f.name) for f in fields(DataFileKey)}, data=data)


# ============================================================
# Timeline
# ============================================================

@dataclass(frozen=True)
class TimelineEntryKey(Generic[T]):
    """
    Index row for one timeline entry.

    The payload lives in a batched record shared with sibling entries:
    `iv` names the record and `offset` selects this entry within it.
    """
    day: str
    timestamp: float
    slug: str
    category: T
    iv: Optional[str] = None
    offset: Optional[int] = None

    def to_row(self) -> list:
        return [self.iv, self.offset, self.day, self.timestamp, self.slug, self.category]

    @classmethod
    def from_row(cls, row: list, category_type=None) -> "TimelineEntryKey":
        iv, offset, day, timestamp, slug, category = row
        if category_type is not None:
            category = category_type(category)
        return cls(day=day, timestamp=timestamp, slug=slug, category=category, iv=iv, offset=offset)


@dataclass(frozen=True)
class TimelineEntry(TimelineEntryKey[T]):
    """A TimelineEntryKey plus its provenance, rendering hint and raw token."""
    file: Tuple[str, ...] = ()
    context: Any = None
    value: Any = None

    def key(self) -> TimelineEntryKey[T]:
        return TimelineEntryKey(
            day=self.day,
            timestamp=self.timestamp,
            slug=self.slug,
            category=self.category,
            iv=self.iv,
            offset=self.offset,
        )

    def payload(self) -> list:
        return [list(self.file), _listify(self.context), self.value]

    @classmethod
    def hydrate(cls, key: TimelineEntryKey[T], payload: list) -> "TimelineEntry[T]":
        file, context, value = payload
        return cls(
            day=key.day,
            timestamp=key.timestamp,
            slug=key.slug,
            category=key.category,
            iv=key.iv,
            offset=key.offset,
            file=tuple(file),
            context=_tuplify(context),
            value=value,
        )

    def with_pointer(self, iv: str, offset: int) -> "TimelineEntry[T]":
        return replace(self, iv=iv, offset=offset)


def _listify(context):
    return list(context) if isinstance(context, tuple) else context


def _tuplify(context):
    return tuple(context) if isinstance(context, list) else context


# ============================================================
# Provider Index
# ============================================================

@dataclass
class ProviderIndex:
    """The committed, sorted summary of one provider's import."""
    files: List[DataFileKey] = field(default_factory=list)
    metadata: List[Tuple[str, Any]] = field(default_factory=list)
    timeline: List[list] = field(default_factory=list)
    has_errors: bool = False

    def to_json(self) -> dict:
        return {
            "files": [f.to_json() for f in self.files],
            "metadata": [[k, v] for k, v in self.metadata],
            "timeline": self.timeline,
            "hasErrors": self.has_errors,
        }

    @classmethod
    def from_json(cls, data: dict) -> "ProviderIndex":
        return cls(
            files=[DataFileKey.from_json(f) for f in data.get("files", [])],
            metadata=[(k, v) for k, v in data.get("metadata", [])],
            timeline=[list(row) for row in data.get("timeline", [])],
            has_errors=bool(data.get("hasErrors", False)),
        )
