"""Data models used throughout vjournal."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Union


SOLO = "solo"
CONVERSATIONAL = "conversational"

UNTITLED_TOPIC = "Untitled Topic"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Entry:
    """A journal entry and its background-enriched fields."""
    id: int
    mode: str = SOLO
    date: str = ""
    audio_path: str | None = None
    transcript: str | None = None
    summary: str | None = None
    name: str | None = None
    embedding: list[float] | None = None
    topics: list[str] | None = None
    cluster_id: int | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def text(self) -> str:
        """Best available text for enrichment."""
        return self.transcript or self.summary or ""

    def sample_text(self, limit: int = 200) -> str:
        """Short text used when labeling a cluster."""
        return self.summary or (self.transcript or "")[:limit]


@dataclass
class ConversationMessage:
    id: int
    entry_id: int
    role: str
    content: str
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class DateRange:
    """Either the last N days or an explicit [start, end] window."""
    type: Literal["last_n_days", "range"]
    value: int | None = None
    start: datetime | None = None
    end: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.type == "last_n_days":
            return {"type": self.type, "value": self.value}
        return {
            "type": self.type,
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DateRange":
        return cls(
            type=data["type"],
            value=data.get("value"),
            start=parse_timestamp(data.get("start")),
            end=parse_timestamp(data.get("end")),
        )


@dataclass
class FolderRules:
    """Declarative filter behind a rule folder."""
    date_range: DateRange | None = None
    mode: str | None = None
    text_contains: str | None = None
    topics_contain: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date_range": self.date_range.to_dict() if self.date_range else None,
            "mode": self.mode,
            "text_contains": self.text_contains,
            "topics_contain": list(self.topics_contain),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FolderRules":
        date_range = data.get("date_range")
        return cls(
            date_range=DateRange.from_dict(date_range) if date_range else None,
            mode=data.get("mode"),
            text_contains=data.get("text_contains"),
            topics_contain=list(data.get("topics_contain") or []),
        )


@dataclass
class ClusterFolder:
    """Derived grouping; members are entries whose cluster_id equals cluster_index."""
    id: int
    name: str
    cluster_index: int
    color: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    kind: Literal["cluster"] = "cluster"


@dataclass
class RuleFolder:
    """User-defined folder whose membership is computed on demand."""
    id: int
    name: str
    rules: FolderRules
    color: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    kind: Literal["rule"] = "rule"


@dataclass
class ManualFolder:
    """Folder with explicitly added entries."""
    id: int
    name: str
    created_at: datetime = field(default_factory=utcnow)
    kind: Literal["manual"] = "manual"


SmartFolder = Union[ClusterFolder, RuleFolder]
Folder = Union[ClusterFolder, RuleFolder, ManualFolder]


@dataclass(frozen=True)
class ClusterAssignment:
    entry_id: int
    cluster_id: int


@dataclass
class ClusteringState:
    """Persisted clustering bookkeeping."""
    last_clustering_date: datetime | None = None
    cluster_count: int | None = None
    cluster_threshold: int | None = None


@dataclass
class ClusterSummary:
    cluster_index: int
    name: str
    folder_id: int
    entry_count: int = 0


@dataclass
class ClusteringStats:
    total_clusters: int = 0
    total_entries_with_embeddings: int = 0
    last_clustering_date: datetime | None = None
    clusters: list[ClusterSummary] = field(default_factory=list)


@dataclass
class SearchResult:
    """A ranked search hit."""
    entry: Entry
    score: float
    semantic_score: float = 0.0
    keyword_score: float = 0.0
    match_types: list[str] = field(default_factory=list)


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an ISO or SQLite timestamp; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
