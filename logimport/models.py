"""Data model for one import attempt: patterns, previews, chunks, progress."""

import re
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional

# %{SYNTAX:field} or %{SYNTAX:field:type}
_GROK_FIELD_RE = re.compile(r"%\{[A-Za-z0-9_]+:([A-Za-z0-9_@.\[\]\-]+)(?::[a-z]+)?\}")


def extract_fields(expression: str) -> list[str]:
    """Return the named captures of a grok expression, in order, without duplicates."""
    fields: list[str] = []
    for name in _GROK_FIELD_RE.findall(expression or ""):
        if name not in fields:
            fields.append(name)
    return fields


@dataclass(eq=False)
class Pattern:
    name: str
    expression: str
    description: str = ""
    custom_subpatterns: dict = field(default_factory=dict)
    fields: list = field(default_factory=list)
    priority: int = 0

    def __post_init__(self):
        if not self.fields:
            self.fields = extract_fields(self.expression)

    # Identity is the expression text; names are labels only.
    def __eq__(self, other):
        if not isinstance(other, Pattern):
            return NotImplemented
        return self.expression == other.expression

    def __hash__(self):
        return hash(self.expression)

    @classmethod
    def from_api(cls, data: dict) -> "Pattern":
        """Build a Pattern from a backend grok-pattern record."""
        return cls(
            name=data.get("name", ""),
            expression=data.get("pattern", ""),
            description=data.get("description", ""),
            custom_subpatterns=dict(data.get("custom_patterns") or {}),
            fields=list(data.get("fields") or []),
            priority=int(data.get("priority") or 0),
        )


DEFAULT_PATTERN = Pattern(
    name="Custom Pattern",
    expression="%{GREEDYDATA:message}",
    description="Creating a custom pattern",
    fields=["message"],
    priority=0,
)


@dataclass(frozen=True)
class PreviewSample:
    lines: tuple
    source_name: str = ""

    def head(self, count: int) -> list[str]:
        return list(self.lines[:count])


@dataclass(frozen=True)
class Chunk:
    index: int
    lines: tuple
    offset: int
    total_estimate: int
    final: bool = False

    @property
    def end_offset(self) -> int:
        return self.offset + len(self.lines)


@dataclass(frozen=True)
class Page:
    index: int
    items: tuple
    next_token: Optional[str] = None
    has_more: bool = False


@dataclass(frozen=True)
class ProgressState:
    processed_lines: int = 0
    total_lines_estimate: int = 0
    percent: int = 0


class SessionStatus(str, Enum):
    UNSTARTED = "unstarted"
    ACTIVE = "active"
    ENDED = "ended"


@dataclass(frozen=True)
class IngestReceipt:
    processed: int
    failed: int


@dataclass
class SessionOptions:
    """Body of the ingest start request."""

    pattern: str
    name: str = ""
    priority: int = 0
    custom_patterns: dict = field(default_factory=dict)
    source: str = ""
    smart_decoder: bool = True
    force_timezone: str = ""
    force_start_year: str = ""
    force_start_month: str = ""
    force_start_day: str = ""
    meta: dict = field(default_factory=dict)

    @classmethod
    def for_pattern(cls, pattern: Pattern, source: str, **kwargs) -> "SessionOptions":
        return cls(
            pattern=pattern.expression,
            name=pattern.name,
            priority=pattern.priority,
            custom_patterns=dict(pattern.custom_subpatterns),
            source=source,
            **kwargs,
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DetectionResult:
    pattern: Pattern
    parsed_records: list = field(default_factory=list)
    custom_pattern_required: bool = False
    error: Optional[str] = None


class ImportStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ImportResult:
    session_id: Optional[str]
    status: ImportStatus
    handled_lines: int = 0
    chunks_ingested: int = 0
    progress: ProgressState = field(default_factory=ProgressState)
    error: Optional[str] = None
    failed_chunk_index: Optional[int] = None
    failed_page_index: Optional[int] = None
    metrics: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status is ImportStatus.COMPLETED

    @property
    def empty(self) -> bool:
        """Completed, but the source delivered no lines at all."""
        return self.ok and self.handled_lines == 0
