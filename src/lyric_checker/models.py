"""
Data models for the lyric submission checker.

Every record is created once per validation run and never mutated afterwards,
so all dataclasses are frozen.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from types import MappingProxyType
from typing import Dict, FrozenSet, Mapping, Optional, Tuple, Union


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ConflictKind(str, Enum):
    NEW = "new"
    REPLACES = "replaces"
    DUPLICATE_OF = "duplicate_of"
    STALE_RELATIVE_TO = "stale_relative_to"
    LOOKUP_UNAVAILABLE = "lookup_unavailable"
    NOT_CHECKED = "not_checked"


# Conflict kinds that block acceptance on their own
BLOCKING_CONFLICTS = frozenset({
    ConflictKind.DUPLICATE_OF,
    ConflictKind.STALE_RELATIVE_TO,
    ConflictKind.LOOKUP_UNAVAILABLE,
    ConflictKind.NOT_CHECKED,
})


@dataclass(frozen=True)
class RawSubmission:
    submission_id: str
    body: Union[str, bytes]
    submitter: str = ""


@dataclass(frozen=True)
class ExtractedPayload:
    """Labelled issue fields (normalized keys, read-only) plus the verbatim lyric block."""
    fields: Mapping[str, str]
    lyric_block: str

    def __post_init__(self):
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def get(self, name: str) -> Optional[str]:
        value = self.fields.get(name)
        return value if value else None


@dataclass(frozen=True)
class LyricLine:
    timestamp: timedelta
    text: str
    line_index: int


@dataclass(frozen=True)
class LyricHeader:
    title: Optional[str] = None
    artist: Optional[str] = None
    track_id: Optional[str] = None
    contributors: FrozenSet[str] = frozenset()
    base_revision: Optional[int] = None
    source_url: Optional[str] = None


@dataclass(frozen=True)
class LyricDocument:
    header: LyricHeader
    lines: Tuple[LyricLine, ...]
    raw_block: str
    content_hash: str


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    rule_id: str
    message: str
    line_index: Optional[int] = None

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def to_dict(self) -> Dict[str, object]:
        return {
            "severity": self.severity.value,
            "rule_id": self.rule_id,
            "line_index": self.line_index,
            "message": self.message,
        }


@dataclass(frozen=True)
class CanonicalRecord:
    """Current canonical entry for a track as reported by the external store."""
    record_id: str
    content_hash: str
    revision: int


@dataclass(frozen=True)
class ConflictClassification:
    kind: ConflictKind
    existing_id: Optional[str] = None
    detail: str = ""

    @classmethod
    def new(cls) -> "ConflictClassification":
        return cls(ConflictKind.NEW)

    @classmethod
    def replaces(cls, existing_id: str) -> "ConflictClassification":
        return cls(ConflictKind.REPLACES, existing_id)

    @classmethod
    def duplicate_of(cls, existing_id: str) -> "ConflictClassification":
        return cls(ConflictKind.DUPLICATE_OF, existing_id)

    @classmethod
    def stale_relative_to(cls, existing_id: str) -> "ConflictClassification":
        return cls(ConflictKind.STALE_RELATIVE_TO, existing_id)

    @classmethod
    def lookup_unavailable(cls, detail: str = "") -> "ConflictClassification":
        return cls(ConflictKind.LOOKUP_UNAVAILABLE, detail=detail)

    @classmethod
    def not_checked(cls, detail: str = "") -> "ConflictClassification":
        return cls(ConflictKind.NOT_CHECKED, detail=detail)

    @property
    def blocks_acceptance(self) -> bool:
        return self.kind in BLOCKING_CONFLICTS

    @property
    def retryable(self) -> bool:
        return self.kind is ConflictKind.LOOKUP_UNAVAILABLE

    def to_dict(self) -> Dict[str, object]:
        return {
            "kind": self.kind.value,
            "existing_id": self.existing_id,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class Verdict:
    """Terminal artifact of one validation run."""
    submission_id: str
    parse_succeeded: bool
    diagnostics: Tuple[Diagnostic, ...]
    conflict: ConflictClassification
    accepted: bool
    content_hash: Optional[str] = None
    checker_version: str = field(default="")

    @property
    def error_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.is_error)

    @property
    def warning_count(self) -> int:
        return len(self.diagnostics) - self.error_count

    @property
    def retryable(self) -> bool:
        """True when only the unreachable lookup stands between this run and a decision."""
        return (
            self.conflict.retryable
            and self.parse_succeeded
            and self.error_count == 0
        )

    @property
    def status(self) -> str:
        if self.accepted:
            return "accepted"
        if self.retryable:
            return "retry"
        return "rejected"
