"""Shared fixtures: an in-memory code index and throwaway registry stores."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Callable, Optional

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scout.config import SIGNATURE_PACKAGE, ScoutConfig  # noqa: E402
from scout.errors import FetchFailure  # noqa: E402
from scout.models.candidate import Candidate, RepoMetadata  # noqa: E402
from scout.registry.store import RegistryStore  # noqa: E402

SCOUT_ENV = (
    "GITHUB_TOKEN",
    "SCOUT_CONFIG",
    "SCOUT_DB_PATH",
    "SCOUT_WORKERS",
    "SCOUT_TIME_BUDGET",
    "SCOUT_REQUEST_TIMEOUT",
    "SCOUT_CRON_SECRET",
)


class FakeIndex:
    """Stands in for ``GitHubClient``; repositories are registered by tests.

    Every manifest and metadata fetch is appended to ``calls`` as
    ``(method, "owner/name")``. ``on_get_file`` runs before a manifest is
    served, letting tests cancel a run or move a clock mid-flight.
    """

    def __init__(self) -> None:
        self.results: dict[str, list[Candidate]] = {}
        self.query_errors: dict[str, Exception] = {}
        self.manifests: dict[str, bytes] = {}
        self.metadata: dict[str, RepoMetadata] = {}
        self.errors: dict[tuple[str, str], Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self.searches: list[str] = []
        self.on_get_file: Optional[Callable[[str], None]] = None

    def add_repo(
        self,
        owner: str,
        name: str,
        queries=("q1",),
        dependencies: Optional[dict] = None,
        dev_dependencies: Optional[dict] = None,
        description: str = "",
        topics=(),
        fork: bool = False,
        parent_url: str = "",
        stars: int = 0,
        forks: int = 0,
        package_name: Optional[str] = None,
    ) -> Candidate:
        if dependencies is None and dev_dependencies is None:
            dependencies = {SIGNATURE_PACKAGE: "^1.0.0"}
        candidate = Candidate(owner=owner, name=name)
        for query in queries:
            self.results.setdefault(query, []).append(candidate)

        manifest = {"name": package_name or name, "version": "1.0.0"}
        if dependencies:
            manifest["dependencies"] = dependencies
        if dev_dependencies:
            manifest["devDependencies"] = dev_dependencies
        self.manifests[candidate.full_name] = json.dumps(manifest).encode()
        self.metadata[candidate.full_name] = RepoMetadata(
            name=name,
            description=description,
            topics=list(topics),
            fork=fork,
            parent_url=parent_url,
            stars=stars,
            forks=forks,
        )
        return candidate

    def fetch_calls_for(self, full_name: str) -> list[str]:
        return [method for method, repo in self.calls if repo == full_name]

    # -- index protocol --------------------------------------------------------

    def search_repositories(self, query, per_page=100, max_results=100):
        self.searches.append(query)
        if query in self.query_errors:
            raise self.query_errors[query]
        return list(self.results.get(query, []))[:max_results]

    def get_file(self, owner, name, path):
        full_name = f"{owner}/{name}"
        self.calls.append(("get_file", full_name))
        if self.on_get_file is not None:
            self.on_get_file(full_name)
        if ("get_file", full_name) in self.errors:
            raise self.errors[("get_file", full_name)]
        if full_name not in self.manifests:
            raise FetchFailure(
                Candidate(owner, name).url, f"{path} fetch failed: not found (HTTP 404)"
            )
        return self.manifests[full_name]

    def get_repository(self, owner, name):
        full_name = f"{owner}/{name}"
        self.calls.append(("get_repository", full_name))
        if ("get_repository", full_name) in self.errors:
            raise self.errors[("get_repository", full_name)]
        if full_name not in self.metadata:
            raise FetchFailure(
                Candidate(owner, name).url, "metadata fetch failed: not found (HTTP 404)"
            )
        return self.metadata[full_name]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of configuration loading."""
    for name in SCOUT_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_index() -> FakeIndex:
    return FakeIndex()


@pytest.fixture
def store(tmp_path) -> RegistryStore:
    return RegistryStore(tmp_path / "registry.db")


@pytest.fixture
def config(tmp_path) -> ScoutConfig:
    return ScoutConfig(
        queries=["q1", "q2"],
        workers=2,
        time_budget=60.0,
        db_path=str(tmp_path / "registry.db"),
    )
