"""Discovery router -- trigger runs, read status, submit single repositories."""

from __future__ import annotations

from typing import Iterator, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse

from scout.config import ScoutConfig
from scout.discovery.orchestrator import DiscoveryOrchestrator
from scout.discovery.report import DiscoveryReport
from scout.errors import FatalStoreFailure, StoreTimeout
from scout.github.client import GitHubClient
from scout.registry.store import RegistryStore

from web.backend.app.middleware.auth import (
    check_cron_secret,
    get_config,
    get_store,
    require_cron_secret,
)
from web.backend.app.models.api import (
    DiscoveryReportResponse,
    DiscoveryRunResponse,
    DiscoveryStatusResponse,
    RegistryCountsResponse,
    SubmitRequest,
    SubmitResponse,
)

router = APIRouter(prefix="/api/discovery", tags=["discovery"])


def get_index(config: ScoutConfig = Depends(get_config)) -> Iterator[GitHubClient]:
    """Yield a GitHub client for the duration of one request."""
    client = GitHubClient(
        token=config.github_token,
        api_base=config.api_base,
        timeout=config.request_timeout,
        user_agent=config.user_agent,
    )
    try:
        yield client
    finally:
        client.close()


def _report_to_response(report: DiscoveryReport) -> DiscoveryReportResponse:
    return DiscoveryReportResponse(success=report.success, **report.to_dict())


@router.post(
    "",
    response_model=DiscoveryReportResponse,
    summary="Run discovery",
    dependencies=[Depends(require_cron_secret)],
)
def trigger_discovery(
    config: ScoutConfig = Depends(get_config),
    store: RegistryStore = Depends(get_store),
    index=Depends(get_index),
):
    """Run a full discovery pass and return its report.

    Per-candidate problems are part of a successful report. Only an
    aborted run (registry store unreachable) answers with HTTP 500.
    """
    report = DiscoveryOrchestrator(index, store, config).run()
    response = _report_to_response(report)
    if report.aborted:
        return JSONResponse(status_code=500, content=response.model_dump())
    return response


@router.get(
    "",
    response_model=DiscoveryStatusResponse,
    summary="Registry status",
)
def discovery_status(store: RegistryStore = Depends(get_store)):
    """Return registry counts and the last recorded discovery run."""
    try:
        counts = store.counts()
        last = store.last_run()
    except StoreTimeout as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except FatalStoreFailure as exc:
        raise HTTPException(status_code=500, detail=str(exc))

    return DiscoveryStatusResponse(
        counts=RegistryCountsResponse(**counts.to_dict()),
        last_run=DiscoveryRunResponse(**last.to_dict()) if last else None,
    )


@router.post(
    "/submit",
    response_model=SubmitResponse,
    summary="Submit one repository",
)
def submit_repository(
    request: SubmitRequest,
    authorization: Optional[str] = Header(None),
    config: ScoutConfig = Depends(get_config),
    store: RegistryStore = Depends(get_store),
    index=Depends(get_index),
):
    """Run one repository through validation and add it when it qualifies.

    Forced reprocessing of an already registered repository requires the
    trigger secret.
    """
    if request.force:
        check_cron_secret(authorization, config)

    orchestrator = DiscoveryOrchestrator(index, store, config)
    try:
        outcome = orchestrator.process_one(request.url, force=request.force)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except StoreTimeout as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except FatalStoreFailure as exc:
        raise HTTPException(status_code=500, detail=str(exc))

    return SubmitResponse(
        url=outcome.url,
        status=outcome.status.value,
        reason=outcome.reason,
        entry_id=outcome.entry_id,
    )
