"""Registry upsert -- insert-or-skip the entry, then upsert its stats."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from scout.discovery.normalizer import NormalizedCandidate, slugify
from scout.errors import ConflictNoop, SlugConflict
from scout.registry.models import StatsRecord
from scout.registry.store import RegistrySession

logger = logging.getLogger(__name__)


@dataclass
class UpsertResult:
    entry_id: int
    added: bool
    stats: StatsRecord


class RegistryUpserter:
    """Writes one normalized candidate in a single store transaction.

    The entry insert is conditional on the canonical URL being new. When a
    row already exists (a concurrent or earlier run won the race) the
    insert is a no-op and ``ConflictNoop`` is raised, unless *force* asks
    for the existing entry's stars and forks to be refreshed.
    """

    def __init__(self, registry: RegistrySession):
        self.registry = registry

    def upsert(self, normalized: NormalizedCandidate, force: bool = False) -> UpsertResult:
        entry = normalized.entry
        with self.registry.transaction():
            entry_id = self._insert(normalized)
            if entry_id is None:
                if not force:
                    raise ConflictNoop(entry.repository_url)
                existing = self.registry.find_by_url(entry.repository_url)
                if existing is None or existing.id is None:
                    raise ConflictNoop(entry.repository_url)
                stats = self.registry.upsert_stats(
                    existing.id, normalized.stars, normalized.forks
                )
                logger.info("Refreshed stats for %s", entry.repository_url)
                return UpsertResult(entry_id=existing.id, added=False, stats=stats)

            stats = self.registry.upsert_stats(entry_id, normalized.stars, normalized.forks)
            self.registry.record_sources(entry_id, normalized.queries)

        logger.info("Added %s as %s (%s)", entry.repository_url, entry.slug, entry.category)
        return UpsertResult(entry_id=entry_id, added=True, stats=stats)

    def _insert(self, normalized: NormalizedCandidate) -> int | None:
        entry = normalized.entry
        try:
            return self.registry.insert_entry(entry)
        except SlugConflict:
            qualified = slugify(f"{entry.repository_owner}-{entry.name}")
            if qualified == entry.slug:
                raise
            logger.debug("Slug %s taken, retrying as %s", entry.slug, qualified)
            entry.slug = qualified
            return self.registry.insert_entry(entry)
