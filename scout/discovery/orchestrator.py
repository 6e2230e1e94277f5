"""Discovery orchestrator -- drives a full run and builds its report.

A run searches once, then hands every unique candidate to a bounded
worker pool. Each worker runs validate -> normalize -> upsert for one
candidate and returns a ``CandidateOutcome``; only the coordinating thread
touches the ``DiscoveryReport``.

The run stops early in three cases:

- the wall-clock budget is exhausted (report marked ``partial``),
- the caller sets the cancellation event (report marked ``partial``),
- the registry store becomes unreachable (report marked ``aborted``).
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Optional

from scout.config import ScoutConfig
from scout.discovery.aggregator import QueryAggregator
from scout.discovery.normalizer import MetadataNormalizer
from scout.discovery.report import CandidateOutcome, DiscoveryReport, OutcomeStatus
from scout.discovery.upserter import RegistryUpserter
from scout.discovery.validator import AlreadyRegistered, CandidateValidator
from scout.errors import (
    ConflictNoop,
    FatalStoreFailure,
    FetchFailure,
    SlugConflict,
    StoreTimeout,
    ValidationRejection,
)
from scout.models.candidate import Candidate, parse_repo_url
from scout.registry.store import RegistrySession, RegistryStore, to_iso, utc_now

logger = logging.getLogger(__name__)

SUBMISSION_SOURCE = "submission"

# How often the coordinator wakes up to check the deadline and cancellation
_POLL_INTERVAL = 0.2


@dataclass
class _Chain:
    validator: CandidateValidator
    normalizer: MetadataNormalizer
    upserter: RegistryUpserter


class DiscoveryOrchestrator:
    """Runs discovery against an injected index client and registry store.

    Parameters
    ----------
    index
        Object exposing ``search_repositories``, ``get_repository`` and
        ``get_file`` (normally a :class:`scout.github.GitHubClient`).
    store : RegistryStore
        Registry store. One session is opened per run and closed on every
        exit path.
    config : ScoutConfig
        Queries, limits and normalization rules.
    """

    def __init__(
        self,
        index,
        store: RegistryStore,
        config: ScoutConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.index = index
        self.store = store
        self.config = config or ScoutConfig()
        self._clock = clock

    # ------------------------------------------------------------------
    # Trigger
    # ------------------------------------------------------------------

    def run(
        self,
        cancel: Optional[threading.Event] = None,
        time_budget: float | None = None,
    ) -> DiscoveryReport:
        """Run a full discovery pass and return its report.

        Never raises for per-query or per-candidate problems. A fatal store
        failure is reported through ``report.aborted`` / ``fatal_error``.
        """
        budget = time_budget if time_budget is not None else self.config.time_budget
        start = self._clock()
        deadline = start + budget
        stop = threading.Event()

        def should_stop() -> bool:
            if stop.is_set():
                return True
            if cancel is not None and cancel.is_set():
                return True
            return self._clock() >= deadline

        report = DiscoveryReport(max_errors=self.config.max_errors)
        report.started_at = to_iso(utc_now())
        logger.info("Starting discovery (%d queries, budget %.0fs)", len(self.config.queries), budget)

        try:
            with self.store.session() as registry:
                try:
                    self._run_candidates(registry, report, should_stop, stop, deadline, cancel)
                except FatalStoreFailure as exc:
                    self._abort(report, exc)
                self._finish(report, start)
                self._record_run(registry, report)
        except FatalStoreFailure as exc:
            self._abort(report, exc)
            self._finish(report, start)

        logger.info(
            "Discovery finished in %dms: discovered=%d processed=%d added=%d "
            "duplicates=%d rejected=%d failed=%d partial=%s aborted=%s",
            report.duration_ms,
            report.discovered,
            report.processed,
            report.added,
            report.duplicate_skipped,
            report.rejected,
            report.failed,
            report.partial,
            report.aborted,
        )
        return report

    def _run_candidates(
        self,
        registry: RegistrySession,
        report: DiscoveryReport,
        should_stop: Callable[[], bool],
        stop: threading.Event,
        deadline: float,
        cancel: Optional[threading.Event],
    ) -> None:
        aggregator = QueryAggregator(
            self.index,
            self.config.queries,
            per_page=self.config.per_page,
            max_results=self.config.max_results_per_query,
        )
        aggregation = aggregator.aggregate(should_stop=should_stop)
        for failure in aggregation.failures:
            report.add_error(f"Search failed: {failure.query}")
        report.discovered = aggregation.count

        if aggregation.interrupted:
            report.partial = True
            return

        chain = self._build_chain(registry)
        executor = ThreadPoolExecutor(
            max_workers=self.config.workers, thread_name_prefix="scout-worker"
        )
        pending: set[Future] = set()
        try:
            pending = {
                executor.submit(self._process, candidate, chain, should_stop)
                for candidate in aggregation.candidates
            }
            while pending:
                remaining = deadline - self._clock()
                if remaining <= 0 or (cancel is not None and cancel.is_set()):
                    break
                done, pending = wait(
                    pending,
                    timeout=min(remaining, _POLL_INTERVAL),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    report.record(future.result())
        finally:
            stop.set()
            executor.shutdown(wait=True, cancel_futures=True)

        if pending:
            report.partial = True
            # Work that finished while the pool drained still counts.
            for future in pending:
                if future.done() and not future.cancelled() and future.exception() is None:
                    report.record(future.result())
            logger.warning(
                "Discovery stopped early; %d candidates not processed",
                report.discovered - report.processed,
            )

    # ------------------------------------------------------------------
    # Single repository (community submission / admin reprocessing)
    # ------------------------------------------------------------------

    def process_one(self, url: str, force: bool = False) -> CandidateOutcome:
        """Run one repository through validation and upsert.

        With *force* the existence check is bypassed and an existing entry
        gets its star and fork counts refreshed. Install counts are never
        touched.

        Raises:
            ValueError: If *url* is not a GitHub repository reference.
            FatalStoreFailure: If the registry store is unreachable.
        """
        candidate = parse_repo_url(url).with_queries({SUBMISSION_SOURCE})
        with self.store.session() as registry:
            return self._process(candidate, self._build_chain(registry), lambda: False, force=force)

    # ------------------------------------------------------------------
    # Per-candidate chain
    # ------------------------------------------------------------------

    def _build_chain(self, registry: RegistrySession) -> _Chain:
        return _Chain(
            validator=CandidateValidator(
                self.index,
                registry,
                signature_package=self.config.signature_package,
                manifest_path=self.config.manifest_path,
            ),
            normalizer=MetadataNormalizer(self.config.category_rules, self.config.default_category),
            upserter=RegistryUpserter(registry),
        )

    def _process(
        self,
        candidate: Candidate,
        chain: _Chain,
        should_stop: Callable[[], bool],
        force: bool = False,
    ) -> CandidateOutcome:
        url = candidate.url
        if should_stop():
            return CandidateOutcome(url, OutcomeStatus.ABANDONED)

        try:
            try:
                validated = chain.validator.validate(candidate, force=force)
            except AlreadyRegistered:
                logger.debug("Skipping %s: already registered", url)
                return CandidateOutcome(url, OutcomeStatus.DUPLICATE, "already registered")
            except ValidationRejection as exc:
                reason = f"{exc.reason} ({exc.detail})" if exc.detail else exc.reason
                logger.info("Rejected %s: %s", url, reason)
                return CandidateOutcome(url, OutcomeStatus.REJECTED, reason)
            except FetchFailure as exc:
                logger.warning("Fetch failed for %s: %s", url, exc.reason)
                return CandidateOutcome(url, OutcomeStatus.FAILED, exc.reason)

            if should_stop():
                return CandidateOutcome(url, OutcomeStatus.ABANDONED)

            normalized = chain.normalizer.normalize(validated)
            try:
                result = chain.upserter.upsert(normalized, force=force)
            except ConflictNoop:
                logger.debug("Skipping %s: insert conflict", url)
                return CandidateOutcome(url, OutcomeStatus.DUPLICATE, "insert conflict")
            except SlugConflict as exc:
                logger.warning("Could not add %s: %s", url, exc)
                return CandidateOutcome(url, OutcomeStatus.FAILED, str(exc))
            except StoreTimeout as exc:
                logger.warning("Store busy while adding %s: %s", url, exc.reason)
                return CandidateOutcome(url, OutcomeStatus.FAILED, exc.reason)

        except FatalStoreFailure:
            raise
        except Exception as exc:
            logger.exception("Unexpected error processing %s", url)
            return CandidateOutcome(url, OutcomeStatus.FAILED, f"unexpected error: {exc}")

        if result.added:
            return CandidateOutcome(url, OutcomeStatus.ADDED, entry_id=result.entry_id)
        return CandidateOutcome(
            url, OutcomeStatus.DUPLICATE, "already registered, stats refreshed", entry_id=result.entry_id
        )

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def _abort(self, report: DiscoveryReport, exc: FatalStoreFailure) -> None:
        logger.error("Discovery aborted: %s", exc)
        report.abort(str(exc))

    def _finish(self, report: DiscoveryReport, start: float) -> None:
        report.duration_ms = int((self._clock() - start) * 1000)
        report.finished_at = to_iso(utc_now())

    def _record_run(self, registry: RegistrySession, report: DiscoveryReport) -> None:
        try:
            registry.record_run(report.to_run())
        except (FatalStoreFailure, StoreTimeout):
            logger.warning("Could not record discovery run", exc_info=True)
