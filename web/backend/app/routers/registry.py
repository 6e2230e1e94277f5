"""Registry router -- browse MCP servers and record installs."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from scout.errors import FatalStoreFailure, StoreTimeout
from scout.registry.models import RegistryEntry, StatsRecord
from scout.registry.store import RegistryStore

from web.backend.app.middleware.auth import get_store
from web.backend.app.models.api import (
    ServerDetailResponse,
    ServerEntryResponse,
    StatsResponse,
)

router = APIRouter(prefix="/api/registry", tags=["registry"])


def _entry_to_response(entry: RegistryEntry) -> ServerEntryResponse:
    """Convert a RegistryEntry dataclass to a Pydantic response model."""
    return ServerEntryResponse(**entry.to_dict())


def _stats_to_response(stats: StatsRecord) -> StatsResponse:
    return StatsResponse(**stats.to_dict())


@router.get(
    "",
    response_model=list[ServerEntryResponse],
    summary="List all servers",
)
def list_servers(
    category: Optional[str] = Query(None, description="Filter by category"),
    store: RegistryStore = Depends(get_store),
):
    """List every server in the registry, oldest first."""
    try:
        entries = store.list_entries(category=category)
    except StoreTimeout as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except FatalStoreFailure as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    return [_entry_to_response(e) for e in entries]


@router.get(
    "/{slug}",
    response_model=ServerDetailResponse,
    summary="Get a server by slug",
)
def get_server(slug: str, store: RegistryStore = Depends(get_store)):
    """Return one server with its stats and discovery sources."""
    try:
        with store.session() as registry:
            entry = registry.find_by_slug(slug)
            if entry is None:
                raise HTTPException(status_code=404, detail=f"Server '{slug}' not found")
            stats = registry.get_stats(entry.id)
            sources = registry.sources_for(entry.id)
    except StoreTimeout as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except FatalStoreFailure as exc:
        raise HTTPException(status_code=500, detail=str(exc))

    return ServerDetailResponse(
        entry=_entry_to_response(entry),
        stats=_stats_to_response(stats) if stats else None,
        sources=sources,
    )


@router.post(
    "/{slug}/installs",
    response_model=StatsResponse,
    summary="Record an install",
)
def record_install(
    slug: str,
    amount: int = Query(1, ge=1, description="Number of installs to record"),
    store: RegistryStore = Depends(get_store),
):
    """Increment the install count of a server and return its stats."""
    try:
        with store.session() as registry:
            entry = registry.find_by_slug(slug)
            if entry is None:
                raise HTTPException(status_code=404, detail=f"Server '{slug}' not found")
            stats = registry.increment_installs(entry.id, amount)
    except StoreTimeout as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except FatalStoreFailure as exc:
        raise HTTPException(status_code=500, detail=str(exc))

    if stats is None:
        raise HTTPException(status_code=404, detail=f"Server '{slug}' has no stats")
    return _stats_to_response(stats)
