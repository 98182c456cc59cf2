"""
Catalog data types.

``NodeRecord`` is the persisted, validated integration descriptor; the other
types are lightweight value objects passed between the remote source, the
parser, the cache store and the registry.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

# Known n8n node groups plus the registry's own category labels. The cache
# indexes only these categories; others stay on the record but are not indexed.
NODE_GROUPS = ["trigger", "input", "output", "transform", "organization", "schedule"]

REGISTRY_CATEGORIES = [
    "Core Nodes",
    "AI Nodes",
    "Database Nodes",
    "Communication Nodes",
    "Productivity Nodes",
]

DEFAULT_KNOWN_CATEGORIES = NODE_GROUPS + ["misc"] + REGISTRY_CATEGORIES

NodeVersion = Union[int, float, List[Union[int, float]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NodeRecord(BaseModel):
    """
    One integration descriptor.

    Records are immutable: a sync replaces the whole set, never a field.
    ``properties``, ``credentials`` and ``operations`` are opaque payloads that
    the catalog stores and returns unchanged.
    """

    model_config = {"frozen": True, "extra": "ignore"}

    name: str = Field(..., min_length=1, description="Namespaced node name, e.g. n8n-nodes-base.slack")
    display_name: str = Field(..., description="Human-readable name")
    description: str = Field(default="", description="One-line summary")
    category: str = Field(default="misc", description="Primary category or node group")
    subcategory: Optional[str] = Field(None, description="Finer grouping within the category")
    version: NodeVersion = Field(default=1, description="Node version or list of supported versions")
    properties: List[Dict[str, Any]] = Field(default_factory=list, description="Parameter descriptors")
    credentials: List[Dict[str, Any]] = Field(default_factory=list, description="Credential requirements")
    operations: List[Dict[str, Any]] = Field(default_factory=list, description="Operation descriptors")
    is_trigger: bool = False
    is_webhook: bool = False
    is_ai_tool: bool = False
    is_versioned: bool = False
    package_name: Optional[str] = Field(None, description="Source package, e.g. n8n-nodes-base")
    style: Literal["declarative", "programmatic"] = "programmatic"
    documentation_url: Optional[str] = None
    last_updated: datetime = Field(default_factory=_utcnow)

    @field_validator("display_name", mode="before")
    @classmethod
    def _default_display_name(cls, value: Any) -> Any:
        return value if value is not None else ""

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match over name, display name and description."""
        needle = query.lower()
        return (
            needle in self.name.lower()
            or needle in self.display_name.lower()
            or needle in self.description.lower()
        )

    def in_category(self, category: str) -> bool:
        return self.category == category or (
            self.subcategory is not None and self.subcategory == category
        )

    def credential_names(self) -> List[str]:
        return [str(cred["name"]) for cred in self.credentials if cred.get("name")]

    def to_summary(self) -> "NodeSummary":
        return NodeSummary(
            name=self.name,
            display_name=self.display_name,
            description=self.description,
            category=self.category,
            package_name=self.package_name,
            version=self.version,
            is_trigger=self.is_trigger,
            is_webhook=self.is_webhook,
            is_ai_tool=self.is_ai_tool,
        )


@dataclass
class NodeSummary:
    """Compact projection of a NodeRecord for listings."""

    name: str
    display_name: str
    description: str
    category: str
    package_name: Optional[str] = None
    version: NodeVersion = 1
    is_trigger: bool = False
    is_webhook: bool = False
    is_ai_tool: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RawEntry:
    """Unparsed node source as delivered by a remote source.

    Attributes:
        name: Entry name derived from the file name (e.g. ``Slack``)
        source_text: Full source file contents
        source_path: Path of the file inside the remote repository
        package_name: Package the file belongs to, if known
        sha: Content hash reported by the remote, if any
    """

    name: str
    source_text: str
    source_path: str
    package_name: Optional[str] = None
    sha: Optional[str] = None


@dataclass(frozen=True)
class ParseFailure:
    """Why one RawEntry could not be turned into a NodeRecord."""

    entry_name: str
    source_path: str
    reason: str


@dataclass(frozen=True)
class DiscoverySnapshot:
    """A committed record set, tagged with the version token it was built from."""

    version_token: Optional[str]
    record_count: int
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version_token": self.version_token,
            "record_count": self.record_count,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class QueryStats:
    """Lazy registry counters; monotonic for the registry's lifetime."""

    cache_hits: int = 0
    cache_misses: int = 0
    loaded_count: int = 0
    registry_size: int = 0
    core_count: int = 0
    categories: List[str] = field(default_factory=list)

    @property
    def cache_efficiency(self) -> float:
        return self.loaded_count / max(1, self.registry_size)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["cache_efficiency"] = self.cache_efficiency
        return data


@dataclass
class DiscoveryStats:
    """Sync coordinator counters and the state of the last sync."""

    total_nodes: int = 0
    total_credentials: int = 0
    category_counts: Dict[str, int] = field(default_factory=dict)
    last_sync: Optional[datetime] = None
    cache_hits: int = 0
    cache_misses: int = 0
    last_commit_sha: Optional[str] = None
    remote_failures: int = 0
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["last_sync"] = self.last_sync.isoformat() if self.last_sync else None
        return data
