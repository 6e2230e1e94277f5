"""FastAPI application for the Scout discovery service.

Provides REST API endpoints wrapping the Scout Python package for:
- Triggering discovery runs (scheduler-facing, shared-secret guarded)
- Registry status, browsing and install recording
- Single-repository submission
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the Scout package is importable by adding the project root to sys.path.
_project_root = str(Path(__file__).resolve().parents[3])
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from scout import __version__
from web.backend.app.routers import discovery, registry

app = FastAPI(
    title="Scout API",
    description=(
        "REST API for Scout MCP server discovery. "
        "Provides endpoints for running discovery, reading registry status, "
        "browsing servers and recording installs."
    ),
    version=__version__,
)

# ---------------------------------------------------------------------------
# CORS middleware (allow all origins for development)
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Include routers
# ---------------------------------------------------------------------------
app.include_router(discovery.router)
app.include_router(registry.router)


# ---------------------------------------------------------------------------
# Root and health-check endpoints
# ---------------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root():
    """Return basic API information."""
    return {
        "name": "Scout API",
        "version": __version__,
        "description": "MCP server discovery REST API",
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


@app.get("/health", tags=["meta"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
