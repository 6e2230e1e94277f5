"""Models for discovery candidates and the data fetched for them.

External API payloads are loosely typed JSON. They are parsed into the
dataclasses below at the fetch boundary so the rest of the pipeline works
with checked structures only. Parse problems raise ``ValueError`` and are
turned into ``FetchFailure`` by the caller.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

GITHUB_URL = "https://github.com"

_REPO_URL_RE = re.compile(r"github\.com/([^/\s]+)/([^/\s?#]+)")


@dataclass(frozen=True)
class Candidate:
    """A repository that may implement the target protocol.

    Identity is ``owner/name``; ``queries`` records which search queries
    surfaced it and is ignored for equality.
    """

    owner: str
    name: str
    queries: frozenset[str] = field(default=frozenset(), compare=False)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def url(self) -> str:
        """Canonical source URL, the registry's unique key.

        GitHub owner and repository names are case-insensitive, so the URL
        is lowercased.
        """
        return f"{GITHUB_URL}/{self.owner}/{self.name}".lower()

    def with_queries(self, queries: set[str] | frozenset[str]) -> "Candidate":
        return Candidate(owner=self.owner, name=self.name, queries=frozenset(queries))


def parse_repo_url(url: str) -> Candidate:
    """Parse a GitHub repository URL (or ``owner/name``) into a Candidate.

    Raises:
        ValueError: If *url* does not name a GitHub repository.
    """
    text = url.strip()
    match = _REPO_URL_RE.search(text)
    if match:
        owner, name = match.group(1), match.group(2)
    elif re.fullmatch(r"[\w.-]+/[\w.-]+", text):
        owner, name = text.split("/", 1)
    else:
        raise ValueError(f"Invalid GitHub URL: {url}")

    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not owner or not name:
        raise ValueError(f"Invalid GitHub URL: {url}")
    return Candidate(owner=owner, name=name)


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


@dataclass
class Manifest:
    """Dependency declarations from a candidate's ``package.json``."""

    name: str | None = None
    version: str | None = None
    dependencies: dict[str, str] = field(default_factory=dict)
    dev_dependencies: dict[str, str] = field(default_factory=dict)
    peer_dependencies: dict[str, str] = field(default_factory=dict)

    def declares(self, package: str) -> bool:
        """True if any of the three dependency maps contains *package*."""
        return (
            package in self.dependencies
            or package in self.dev_dependencies
            or package in self.peer_dependencies
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Manifest":
        """Parse raw manifest bytes.

        Raises:
            ValueError: On undecodable bytes, invalid JSON, or a document
                whose shape is not a package manifest.
        """
        try:
            data = json.loads(raw.decode("utf-8-sig"))
        except UnicodeDecodeError as exc:
            raise ValueError(f"manifest is not UTF-8: {exc}")
        except json.JSONDecodeError as exc:
            raise ValueError(f"manifest is not valid JSON: {exc.msg}")

        if not isinstance(data, dict):
            raise ValueError("manifest is not a JSON object")

        return cls(
            name=_optional_str(data.get("name")),
            version=_optional_str(data.get("version")),
            dependencies=_dependency_map(data, "dependencies"),
            dev_dependencies=_dependency_map(data, "devDependencies"),
            peer_dependencies=_dependency_map(data, "peerDependencies"),
        )


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _dependency_map(data: dict[str, Any], key: str) -> dict[str, str]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{key}' is not an object")
    return {str(k): str(v) for k, v in value.items()}


# ---------------------------------------------------------------------------
# Repository metadata
# ---------------------------------------------------------------------------


@dataclass
class RepoMetadata:
    """The subset of repository metadata the pipeline needs."""

    name: str
    description: str = ""
    topics: list[str] = field(default_factory=list)
    fork: bool = False
    parent_url: str = ""
    stars: int = 0
    forks: int = 0
    default_branch: str = "main"
    pushed_at: str = ""

    @classmethod
    def from_api(cls, payload: Any) -> "RepoMetadata":
        """Build from a GitHub ``GET /repos/{owner}/{repo}`` payload.

        Raises:
            ValueError: If required fields are missing or mistyped.
        """
        if not isinstance(payload, dict):
            raise ValueError("repository payload is not a JSON object")

        name = payload.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError("repository payload has no name")

        topics = payload.get("topics") or []
        if not isinstance(topics, list):
            raise ValueError("'topics' is not a list")

        parent = payload.get("parent") or {}
        return cls(
            name=name,
            description=payload.get("description") or "",
            topics=[str(t) for t in topics],
            fork=bool(payload.get("fork", False)),
            parent_url=parent.get("html_url", "") if isinstance(parent, dict) else "",
            stars=_count(payload, "stargazers_count"),
            forks=_count(payload, "forks_count"),
            default_branch=payload.get("default_branch") or "main",
            pushed_at=payload.get("pushed_at") or payload.get("updated_at") or "",
        )


def _count(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key, 0)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{key}' is not an integer")
    return value


@dataclass
class ValidatedCandidate:
    """A candidate that passed every check, with its fetched data retained."""

    candidate: Candidate
    manifest: Manifest
    metadata: RepoMetadata

    @property
    def url(self) -> str:
        return self.candidate.url
