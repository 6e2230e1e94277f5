"""Error taxonomy for the discovery pipeline.

Only ``FatalStoreFailure`` ends a run. Every other condition is recovered
per query or per candidate and folded into the ``DiscoveryReport``.
"""

from __future__ import annotations


class ScoutError(Exception):
    """Base class for all Scout errors."""


class ConfigurationError(ScoutError):
    """Invalid or unreadable configuration."""


class QueryFailure(ScoutError):
    """A single search query failed (network, rate limit or parse error)."""

    def __init__(self, query: str, reason: str) -> None:
        super().__init__(f"Search failed: {query} ({reason})")
        self.query = query
        self.reason = reason


class FetchFailure(ScoutError):
    """Manifest or metadata for a candidate could not be fetched or parsed."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class StoreTimeout(FetchFailure):
    """A registry statement hit the busy timeout; fails one candidate only."""

    def __init__(self, reason: str, url: str = "") -> None:
        super().__init__(url, reason)
        self.args = (reason,)


class ValidationRejection(ScoutError):
    """Candidate failed the signature or fork check. Not an error outcome."""

    def __init__(self, url: str, reason: str, detail: str = "") -> None:
        message = f"{url}: {reason}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)
        self.url = url
        self.reason = reason
        self.detail = detail


class ConflictNoop(ScoutError):
    """Insert hit an existing unique key; counted as a duplicate-skip."""

    def __init__(self, url: str) -> None:
        super().__init__(f"{url}: already registered")
        self.url = url


class FatalStoreFailure(ScoutError):
    """The registry store is unreachable; the run cannot continue."""


class SlugConflict(ScoutError):
    """The derived slug is already taken by a different entry."""

    def __init__(self, slug: str) -> None:
        super().__init__(f"slug already taken: {slug}")
        self.slug = slug
