"""GitHub REST client for the three capabilities discovery consumes.

- search: query string -> candidates (paginated)
- metadata fetch: owner/name -> ``RepoMetadata``
- content fetch: owner/name + path -> raw file bytes

Every request is bounded by the client timeout. Transport errors,
timeouts, non-2xx responses and malformed payloads are raised as
``QueryFailure`` (search) or ``FetchFailure`` (per-repository calls).
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any
from urllib.parse import quote

import httpx

from scout.config import GITHUB_API_BASE, USER_AGENT
from scout.errors import FetchFailure, QueryFailure
from scout.models.candidate import Candidate, RepoMetadata, parse_repo_url

logger = logging.getLogger(__name__)


class GitHubClient:
    """Thin synchronous wrapper around the GitHub REST API.

    Parameters
    ----------
    token : str
        Personal access token. Without one, GitHub applies the much lower
        anonymous rate limit.
    transport : httpx.BaseTransport | None
        Optional transport, used by tests to serve canned responses.
    """

    def __init__(
        self,
        token: str = "",
        api_base: str = GITHUB_API_BASE,
        timeout: float = 15.0,
        user_agent: str = USER_AGENT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": user_agent,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        else:
            logger.warning("GITHUB_TOKEN not set; GitHub requests will be rate limited")

        self._client = httpx.Client(
            base_url=api_base,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -- search --------------------------------------------------------------

    def search_repositories(
        self, query: str, per_page: int = 100, max_results: int = 100
    ) -> list[Candidate]:
        """Return up to *max_results* repositories matching *query*.

        Pages are requested until the cap is reached or a short page shows
        the results are exhausted.

        Raises:
            QueryFailure: If any page request fails or cannot be parsed.
        """
        candidates: list[Candidate] = []
        page = 1
        while len(candidates) < max_results:
            size = min(per_page, max_results - len(candidates))
            try:
                data = self._get_json(
                    "/search/repositories",
                    params={
                        "q": query,
                        "sort": "updated",
                        "order": "desc",
                        "per_page": size,
                        "page": page,
                    },
                )
            except _RequestError as exc:
                raise QueryFailure(query, exc.reason) from exc

            items = data.get("items") if isinstance(data, dict) else None
            if not isinstance(items, list):
                raise QueryFailure(query, "response has no 'items' list")

            for item in items:
                candidate = _candidate_from_item(item)
                if candidate is not None:
                    candidates.append(candidate)

            if len(items) < size:
                break
            page += 1

        logger.debug("Found %d repos for query: %s", len(candidates), query)
        return candidates[:max_results]

    # -- metadata ------------------------------------------------------------

    def get_repository(self, owner: str, name: str) -> RepoMetadata:
        """Fetch and parse repository metadata.

        Raises:
            FetchFailure: On request failure or an unparsable payload.
        """
        url = Candidate(owner=owner, name=name).url
        try:
            data = self._get_json(f"/repos/{_seg(owner)}/{_seg(name)}")
        except _RequestError as exc:
            raise FetchFailure(url, f"metadata fetch failed: {exc.reason}") from exc
        try:
            return RepoMetadata.from_api(data)
        except ValueError as exc:
            raise FetchFailure(url, f"metadata unparsable: {exc}") from exc

    # -- content -------------------------------------------------------------

    def get_file(self, owner: str, name: str, path: str) -> bytes:
        """Fetch the raw bytes of *path* on the default branch.

        Raises:
            FetchFailure: If the file is missing, unreachable, or not a
                base64-encoded file entry.
        """
        url = Candidate(owner=owner, name=name).url
        try:
            data = self._get_json(
                f"/repos/{_seg(owner)}/{_seg(name)}/contents/{quote(path)}"
            )
        except _RequestError as exc:
            raise FetchFailure(url, f"{path} fetch failed: {exc.reason}") from exc

        if not isinstance(data, dict) or "content" not in data:
            raise FetchFailure(url, f"{path} is not a file")
        if data.get("encoding", "base64") != "base64":
            raise FetchFailure(url, f"{path} has unsupported encoding {data.get('encoding')!r}")
        try:
            return base64.b64decode(data["content"] or "")
        except (binascii.Error, TypeError, ValueError) as exc:
            raise FetchFailure(url, f"{path} content undecodable: {exc}") from exc

    # -- internals -----------------------------------------------------------

    def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        try:
            resp = self._client.get(path, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.TimeoutException as exc:
            raise _RequestError("timed out") from exc
        except httpx.HTTPStatusError as exc:
            raise _RequestError(_describe_status(exc.response)) from exc
        except httpx.RequestError as exc:
            raise _RequestError(f"request error: {exc}") from exc
        except ValueError as exc:
            raise _RequestError(f"invalid JSON: {exc}") from exc


class _RequestError(Exception):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def _describe_status(response: httpx.Response) -> str:
    status = response.status_code
    if status in (403, 429) and response.headers.get("X-RateLimit-Remaining") == "0":
        return f"rate limit exceeded (HTTP {status})"
    if status == 404:
        return "not found (HTTP 404)"
    return f"HTTP {status}"


def _seg(value: str) -> str:
    return quote(value, safe="")


def _candidate_from_item(item: Any) -> Candidate | None:
    if not isinstance(item, dict):
        return None
    ref = item.get("html_url") or item.get("full_name")
    if not isinstance(ref, str):
        return None
    try:
        return parse_repo_url(ref)
    except ValueError:
        logger.debug("Skipping unparsable search item: %r", ref)
        return None
