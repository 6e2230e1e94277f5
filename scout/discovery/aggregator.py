"""Query aggregation -- run every search query and merge the results."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from scout.errors import QueryFailure
from scout.models.candidate import Candidate

logger = logging.getLogger(__name__)


@dataclass
class AggregationResult:
    """Deduplicated candidates plus the queries that failed along the way."""

    candidates: list[Candidate] = field(default_factory=list)
    failures: list[QueryFailure] = field(default_factory=list)
    interrupted: bool = False

    @property
    def count(self) -> int:
        return len(self.candidates)


class QueryAggregator:
    """Issues a fixed list of search queries and merges their candidates.

    Candidates are keyed by canonical URL, so a repository returned by
    several queries appears once. The queries that found it are kept on
    ``Candidate.queries``.
    """

    def __init__(
        self,
        index,
        queries: Sequence[str],
        per_page: int = 100,
        max_results: int = 100,
    ):
        self.index = index
        self.queries = list(queries)
        self.per_page = per_page
        self.max_results = max_results

    def aggregate(self, should_stop: Optional[Callable[[], bool]] = None) -> AggregationResult:
        """Run every query. A failing query never stops the others.

        *should_stop* is polled before each query; when it returns True the
        remaining queries are skipped and the result is marked interrupted.
        """
        result = AggregationResult()
        found: dict[str, Candidate] = {}
        provenance: dict[str, set[str]] = {}

        for query in self.queries:
            if should_stop is not None and should_stop():
                result.interrupted = True
                break
            try:
                hits = self.index.search_repositories(
                    query, per_page=self.per_page, max_results=self.max_results
                )
            except QueryFailure as exc:
                logger.warning("Query failed: %s (%s)", query, exc.reason)
                result.failures.append(exc)
                continue
            except Exception as exc:
                logger.warning("Query failed: %s", query, exc_info=True)
                result.failures.append(QueryFailure(query, str(exc) or type(exc).__name__))
                continue

            for hit in hits:
                found.setdefault(hit.url, hit)
                provenance.setdefault(hit.url, set()).add(query)

        result.candidates = [
            found[url].with_queries(provenance[url]) for url in found
        ]
        logger.info(
            "Found %d unique repositories from %d queries (%d failed)",
            result.count,
            len(self.queries),
            len(result.failures),
        )
        return result
