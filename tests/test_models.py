"""Tests for candidate parsing and the manifest / metadata boundary models."""

import pytest

from scout.models.candidate import Candidate, Manifest, RepoMetadata, parse_repo_url


def test_parse_repo_url_forms():
    assert parse_repo_url("https://github.com/acme/foo-mcp") == Candidate("acme", "foo-mcp")
    assert parse_repo_url("https://github.com/acme/foo-mcp.git") == Candidate("acme", "foo-mcp")
    assert parse_repo_url("github.com/acme/foo-mcp/tree/main") == Candidate("acme", "foo-mcp")
    assert parse_repo_url("acme/foo-mcp") == Candidate("acme", "foo-mcp")


def test_parse_repo_url_rejects_garbage():
    with pytest.raises(ValueError):
        parse_repo_url("not a url")
    with pytest.raises(ValueError):
        parse_repo_url("https://gitlab.com/acme")


def test_candidate_identity_ignores_queries():
    a = Candidate("acme", "foo", queries=frozenset({"q1"}))
    b = Candidate("acme", "foo", queries=frozenset({"q2"}))
    assert a == b
    assert a.url == "https://github.com/acme/foo"
    assert a.with_queries({"q1", "q2"}).queries == frozenset({"q1", "q2"})


def test_manifest_declares_any_dependency_kind():
    raw = b'{"name": "foo", "peerDependencies": {"@modelcontextprotocol/sdk": "^1"}}'
    manifest = Manifest.from_bytes(raw)
    assert manifest.name == "foo"
    assert manifest.declares("@modelcontextprotocol/sdk")
    assert not manifest.declares("express")


def test_manifest_dev_dependency():
    raw = b'{"devDependencies": {"@modelcontextprotocol/sdk": "^1"}}'
    assert Manifest.from_bytes(raw).declares("@modelcontextprotocol/sdk")


def test_manifest_tolerates_bom():
    raw = b'\xef\xbb\xbf{"name": "foo"}'
    assert Manifest.from_bytes(raw).name == "foo"


def test_manifest_rejects_invalid_documents():
    with pytest.raises(ValueError):
        Manifest.from_bytes(b"{not json")
    with pytest.raises(ValueError):
        Manifest.from_bytes(b'["a", "b"]')
    with pytest.raises(ValueError):
        Manifest.from_bytes(b'{"dependencies": ["x"]}')
    with pytest.raises(ValueError):
        Manifest.from_bytes(b"\xff\xfe\x00")


def test_repo_metadata_from_api():
    meta = RepoMetadata.from_api(
        {
            "name": "foo",
            "description": None,
            "topics": ["mcp"],
            "fork": True,
            "parent": {"html_url": "https://github.com/orig/foo"},
            "stargazers_count": 3,
            "forks_count": 1,
        }
    )
    assert meta.description == ""
    assert meta.fork is True
    assert meta.parent_url == "https://github.com/orig/foo"
    assert (meta.stars, meta.forks) == (3, 1)


def test_repo_metadata_rejects_bad_payloads():
    with pytest.raises(ValueError):
        RepoMetadata.from_api({"description": "no name"})
    with pytest.raises(ValueError):
        RepoMetadata.from_api({"name": "foo", "topics": "mcp"})
    with pytest.raises(ValueError):
        RepoMetadata.from_api({"name": "foo", "stargazers_count": "many"})


def test_candidate_url_is_lowercased():
    assert parse_repo_url("https://github.com/ACME/Foo-MCP").url == "https://github.com/acme/foo-mcp"
    assert Candidate("Acme", "foo").url == Candidate("acme", "FOO").url
