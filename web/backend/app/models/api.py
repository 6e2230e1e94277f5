"""Pydantic models for API request/response serialization.

These models mirror the Scout dataclasses and provide proper JSON
serialization for the FastAPI endpoints.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Registry models
# ---------------------------------------------------------------------------


class ServerEntryResponse(BaseModel):
    """Mirrors scout.registry.models.RegistryEntry."""

    id: Optional[int] = None
    name: str
    slug: str
    tagline: str = ""
    description: str = ""
    category: str = "custom"
    tags: list[str] = Field(default_factory=list)
    repository_url: str
    repository_owner: str
    repository_name: str
    package_name: Optional[str] = None
    verified: bool = False
    featured: bool = False
    created_at: str = ""
    updated_at: str = ""


class StatsResponse(BaseModel):
    """Mirrors scout.registry.models.StatsRecord."""

    entry_id: int
    stars: int = 0
    forks: int = 0
    installs: int = 0
    updated_at: str = ""


class ServerDetailResponse(BaseModel):
    """A registry entry with its stats and the queries that found it."""

    entry: ServerEntryResponse
    stats: Optional[StatsResponse] = None
    sources: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Discovery models
# ---------------------------------------------------------------------------


class DiscoveryReportResponse(BaseModel):
    """Mirrors scout.discovery.report.DiscoveryReport."""

    success: bool = True
    discovered: int = 0
    processed: int = 0
    added: int = 0
    duplicate_skipped: int = 0
    rejected: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)
    rejections: list[str] = Field(default_factory=list)
    dropped_messages: int = 0
    duration_ms: int = 0
    partial: bool = False
    aborted: bool = False
    fatal_error: str = ""
    started_at: str = ""
    finished_at: str = ""


class RegistryCountsResponse(BaseModel):
    """Mirrors scout.registry.models.RegistryCounts."""

    total: int = 0
    verified: int = 0
    added_last_day: int = 0
    added_last_week: int = 0


class DiscoveryRunResponse(BaseModel):
    """Mirrors scout.registry.models.DiscoveryRun."""

    id: Optional[int] = None
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


class DiscoveryStatusResponse(BaseModel):
    counts: RegistryCountsResponse
    last_run: Optional[DiscoveryRunResponse] = None


class SubmitRequest(BaseModel):
    """Request body for submitting one repository."""

    url: str = Field(..., description="GitHub URL or owner/name")
    force: bool = Field(False, description="Reprocess an already registered repository")


class SubmitResponse(BaseModel):
    """Mirrors scout.discovery.report.CandidateOutcome."""

    url: str
    status: str
    reason: str = ""
    entry_id: Optional[int] = None
