"""Registry data models -- entries, stats, aggregate counts and run history."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class RegistryEntry:
    """A single MCP server in the registry."""

    # Identity
    name: str
    slug: str
    repository_url: str  # Canonical source URL, unique
    repository_owner: str
    repository_name: str

    # Description
    tagline: str = ""
    description: str = ""

    # Classification
    category: str = "custom"
    tags: list[str] = field(default_factory=list)

    # Package
    package_name: str | None = None

    # Status
    verified: bool = False
    featured: bool = False

    # Store-assigned
    id: int | None = None
    created_at: str = ""  # ISO 8601
    updated_at: str = ""  # ISO 8601

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "tagline": self.tagline,
            "description": self.description,
            "category": self.category,
            "tags": list(self.tags),
            "repository_url": self.repository_url,
            "repository_owner": self.repository_owner,
            "repository_name": self.repository_name,
            "package_name": self.package_name,
            "verified": self.verified,
            "featured": self.featured,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class StatsRecord:
    """Per-entry statistics. Install count is only ever incremented."""

    entry_id: int
    stars: int = 0
    forks: int = 0
    installs: int = 0
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "stars": self.stars,
            "forks": self.forks,
            "installs": self.installs,
            "updated_at": self.updated_at,
        }


@dataclass
class RegistryCounts:
    """Aggregate registry counts for the status operation."""

    total: int = 0
    verified: int = 0
    added_last_day: int = 0
    added_last_week: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "verified": self.verified,
            "added_last_day": self.added_last_day,
            "added_last_week": self.added_last_week,
        }


@dataclass
class DiscoveryRun:
    """Persisted summary of a finished discovery run."""

    started_at: str
    finished_at: str
    discovered: int = 0
    processed: int = 0
    added: int = 0
    duplicate_skipped: int = 0
    rejected: int = 0
    failed: int = 0
    duration_ms: int = 0
    partial: bool = False
    aborted: bool = False
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "discovered": self.discovered,
            "processed": self.processed,
            "added": self.added,
            "duplicate_skipped": self.duplicate_skipped,
            "rejected": self.rejected,
            "failed": self.failed,
            "duration_ms": self.duration_ms,
            "partial": self.partial,
            "aborted": self.aborted,
        }
