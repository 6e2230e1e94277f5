"""Metadata normalization: category, slug and package name.

Everything here is a pure function of its inputs, so a repository with
unchanged name, description and topics always gets the same slug and
category.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from scout.config import DEFAULT_CATEGORY, DEFAULT_CATEGORY_RULES
from scout.models.candidate import ValidatedCandidate
from scout.registry.models import RegistryEntry

DEFAULT_TAGLINE = "MCP Server"

_SLUG_INVALID = re.compile(r"[^a-z0-9-]")

CategoryRules = Sequence[tuple[str, Sequence[str]]]


def slugify(name: str) -> str:
    """Lowercase *name* and replace every character outside ``[a-z0-9-]`` with ``-``.

    Consecutive dashes are kept as they are.
    """
    return _SLUG_INVALID.sub("-", name.lower())


def detect_category(
    description: str,
    topics: Sequence[str],
    rules: CategoryRules = DEFAULT_CATEGORY_RULES,
    default: str = DEFAULT_CATEGORY,
) -> str:
    """Return the first category whose keywords occur in the description or topics."""
    text = f"{description} {' '.join(topics)}".lower()
    for category, keywords in rules:
        if any(keyword in text for keyword in keywords):
            return category
    return default


@dataclass
class NormalizedCandidate:
    """A registry entry ready to insert, plus the stats to seed it with."""

    entry: RegistryEntry
    stars: int
    forks: int
    queries: frozenset[str]


class MetadataNormalizer:
    """Turns a validated candidate into a ``RegistryEntry``."""

    def __init__(self, rules: CategoryRules = DEFAULT_CATEGORY_RULES, default_category: str = DEFAULT_CATEGORY):
        self.rules = rules
        self.default_category = default_category

    def normalize(self, validated: ValidatedCandidate) -> NormalizedCandidate:
        candidate = validated.candidate
        metadata = validated.metadata
        display_name = metadata.name or candidate.name

        entry = RegistryEntry(
            name=display_name,
            slug=slugify(display_name),
            repository_url=candidate.url,
            repository_owner=candidate.owner,
            repository_name=candidate.name,
            tagline=metadata.description or DEFAULT_TAGLINE,
            description=metadata.description,
            category=detect_category(
                metadata.description, metadata.topics, self.rules, self.default_category
            ),
            tags=list(metadata.topics),
            package_name=validated.manifest.name,
            verified=False,
            featured=False,
        )
        return NormalizedCandidate(
            entry=entry,
            stars=metadata.stars,
            forks=metadata.forks,
            queries=candidate.queries,
        )
