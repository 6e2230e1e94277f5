"""Tests for the registry upserter."""

import pytest

from scout.discovery.normalizer import NormalizedCandidate
from scout.discovery.upserter import RegistryUpserter
from scout.errors import ConflictNoop, SlugConflict
from scout.registry.models import RegistryEntry


def _normalized(owner="acme", name="foo-mcp", slug=None, stars=10, forks=2, queries=("q1",)):
    entry = RegistryEntry(
        name=name,
        slug=slug or name,
        repository_url=f"https://github.com/{owner}/{name}",
        repository_owner=owner,
        repository_name=name,
        category="memory",
    )
    return NormalizedCandidate(entry=entry, stars=stars, forks=forks, queries=frozenset(queries))


def test_insert_creates_entry_stats_and_sources(store):
    with store.session() as reg:
        result = RegistryUpserter(reg).upsert(_normalized(queries=("q1", "q2")))
        assert result.added
        assert result.stats.stars == 10
        assert result.stats.installs == 0
        assert reg.get_stats(result.entry_id).forks == 2
        assert reg.sources_for(result.entry_id) == ["q1", "q2"]


def test_existing_url_is_conflict_noop(store):
    with store.session() as reg:
        upserter = RegistryUpserter(reg)
        upserter.upsert(_normalized())
        with pytest.raises(ConflictNoop):
            upserter.upsert(_normalized(stars=99))
        assert reg.get_stats(reg.find_by_slug("foo-mcp").id).stars == 10


def test_force_refreshes_stats_but_not_installs(store):
    with store.session() as reg:
        upserter = RegistryUpserter(reg)
        first = upserter.upsert(_normalized())
        reg.increment_installs(first.entry_id, 4)

        second = upserter.upsert(_normalized(stars=50, forks=8), force=True)

        assert not second.added
        assert second.entry_id == first.entry_id
        assert (second.stats.stars, second.stats.forks, second.stats.installs) == (50, 8, 4)


def test_slug_collision_falls_back_to_owner_slug(store):
    with store.session() as reg:
        upserter = RegistryUpserter(reg)
        upserter.upsert(_normalized(owner="other"))
        result = upserter.upsert(_normalized(owner="acme"))

        assert result.added
        assert reg.find_by_url("https://github.com/acme/foo-mcp").slug == "acme-foo-mcp"


def test_second_slug_collision_fails(store):
    with store.session() as reg:
        upserter = RegistryUpserter(reg)
        upserter.upsert(_normalized(owner="other"))
        upserter.upsert(_normalized(owner="third", name="acme-foo-mcp"))

        with pytest.raises(SlugConflict):
            upserter.upsert(_normalized(owner="acme"))
        assert reg.find_by_url("https://github.com/acme/foo-mcp") is None
