"""End-to-end tests for discovery runs against a fake index and a real store."""

import sqlite3
import threading

from scout.discovery.orchestrator import SUBMISSION_SOURCE, DiscoveryOrchestrator
from scout.discovery.report import OutcomeStatus
from scout.errors import FetchFailure, QueryFailure
from scout.registry.store import RegistryStore


def _seed_examples(fake_index):
    fake_index.add_repo(
        "acme",
        "foo-mcp",
        description="Persistent memory for agents",
        topics=["mcp"],
        stars=12,
        forks=3,
    )
    fake_index.add_repo("acme", "bar-tool", dependencies={"express": "^4.18.0"})


def test_memory_server_added_and_plain_tool_rejected(fake_index, store, config):
    _seed_examples(fake_index)

    report = DiscoveryOrchestrator(fake_index, store, config).run()

    assert report.success
    assert report.discovered == 2
    assert report.processed == 2
    assert report.added == 1
    assert report.rejected == 1
    assert report.failed == 0
    assert report.errors == []
    assert report.rejections == ["https://github.com/acme/bar-tool: no signature"]
    assert not report.partial

    entry = store.get_by_slug("foo-mcp")
    assert entry is not None
    assert entry.category == "memory"
    assert entry.tagline == "Persistent memory for agents"
    assert entry.verified is False
    assert entry.repository_url == "https://github.com/acme/foo-mcp"
    assert store.get_by_slug("bar-tool") is None

    with store.session() as reg:
        stats = reg.get_stats(entry.id)
        assert (stats.stars, stats.forks, stats.installs) == (12, 3, 0)
        assert reg.sources_for(entry.id) == ["q1"]


def test_rerun_skips_registered_without_fetching(fake_index, store, config):
    _seed_examples(fake_index)
    DiscoveryOrchestrator(fake_index, store, config).run()
    fake_index.calls.clear()

    report = DiscoveryOrchestrator(fake_index, store, config).run()

    assert report.added == 0
    assert report.duplicate_skipped == 1
    assert report.rejected == 1
    assert fake_index.fetch_calls_for("acme/foo-mcp") == []
    assert len(store.list_entries()) == 1


def test_runs_are_idempotent(fake_index, store, config):
    for i in range(5):
        fake_index.add_repo("acme", f"server-{i}", queries=("q1", "q2"))

    first = DiscoveryOrchestrator(fake_index, store, config).run()
    before = [e.to_dict() for e in store.list_entries()]
    second = DiscoveryOrchestrator(fake_index, store, config).run()
    after = [e.to_dict() for e in store.list_entries()]

    assert first.added == 5
    assert second.added == 0
    assert second.duplicate_skipped == 5
    assert before == after


def test_duplicate_results_processed_once(fake_index, store, config):
    fake_index.add_repo("acme", "foo-mcp", queries=("q1", "q2"))

    report = DiscoveryOrchestrator(fake_index, store, config).run()

    assert report.discovered == 1
    assert report.processed == 1
    assert fake_index.fetch_calls_for("acme/foo-mcp") == ["get_file", "get_repository"]
    entry = store.get_by_slug("foo-mcp")
    with store.session() as reg:
        assert reg.sources_for(entry.id) == ["q1", "q2"]


def test_failures_are_isolated(fake_index, store, config):
    fake_index.add_repo("acme", "good-mcp")
    fake_index.add_repo("acme", "flaky")
    fake_index.add_repo("acme", "broken")
    fake_index.errors[("get_file", "acme/flaky")] = FetchFailure(
        "https://github.com/acme/flaky", "package.json fetch failed: timed out"
    )
    fake_index.errors[("get_repository", "acme/broken")] = RuntimeError("boom")
    fake_index.query_errors["q2"] = QueryFailure("q2", "rate limit exceeded (HTTP 403)")

    report = DiscoveryOrchestrator(fake_index, store, config).run()

    assert report.success
    assert report.added == 1
    assert report.failed == 2
    assert "Search failed: q2" in report.errors
    assert "Failed: https://github.com/acme/flaky: package.json fetch failed: timed out" in report.errors
    assert any(e.startswith("Failed: https://github.com/acme/broken: unexpected error") for e in report.errors)
    assert store.get_by_slug("good-mcp") is not None


def test_fork_is_rejected_with_parent(fake_index, store, config):
    fake_index.add_repo("acme", "foo-mcp", fork=True, parent_url="https://github.com/orig/foo-mcp")

    report = DiscoveryOrchestrator(fake_index, store, config).run()

    assert report.rejected == 1
    assert report.rejections == [
        "https://github.com/acme/foo-mcp: is a fork (https://github.com/orig/foo-mcp)"
    ]


def test_error_list_is_bounded(fake_index, store, config):
    config.max_errors = 2
    for i in range(4):
        fake_index.add_repo("acme", f"bad-{i}")
        fake_index.manifests[f"acme/bad-{i}"] = b"not json"

    report = DiscoveryOrchestrator(fake_index, store, config).run()

    assert report.failed == 4
    assert len(report.errors) == 2
    assert report.dropped_messages == 2


def test_unreachable_store_aborts(fake_index, tmp_path, config):
    fake_index.add_repo("acme", "foo-mcp")
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    store = RegistryStore(blocker / "registry.db")

    report = DiscoveryOrchestrator(fake_index, store, config).run()

    assert report.aborted
    assert not report.success
    assert report.fatal_error.startswith("Registry store unreachable")
    assert report.errors == [report.fatal_error]
    assert report.added == 0
    assert fake_index.calls == []


def test_run_is_recorded(fake_index, store, config):
    _seed_examples(fake_index)

    DiscoveryOrchestrator(fake_index, store, config).run()

    last = store.last_run()
    assert last is not None
    assert last.added == 1
    assert last.rejected == 1
    assert last.aborted is False
    assert store.counts().total == 1


def test_cancellation_returns_partial_report(fake_index, store, config):
    config.workers = 1
    for name in ("first", "second", "third"):
        fake_index.add_repo("acme", name)
    cancel = threading.Event()

    def cancel_on_second(full_name):
        if full_name == "acme/second":
            cancel.set()

    fake_index.on_get_file = cancel_on_second

    report = DiscoveryOrchestrator(fake_index, store, config).run(cancel=cancel)

    assert report.partial
    assert report.success
    assert report.discovered == 3
    assert report.processed == 1
    assert report.added == 1
    assert store.get_by_slug("first") is not None
    assert store.get_by_slug("second") is None
    assert store.get_by_slug("third") is None


def test_time_budget_returns_partial_report(fake_index, store, config):
    config.workers = 1
    for name in ("first", "second", "third"):
        fake_index.add_repo("acme", name)
    now = [0.0]

    def advance_on_second(full_name):
        if full_name == "acme/second":
            now[0] += 1000.0

    fake_index.on_get_file = advance_on_second

    report = DiscoveryOrchestrator(fake_index, store, config, clock=lambda: now[0]).run(
        time_budget=10.0
    )

    assert report.partial
    assert report.processed == 1
    assert report.added == 1
    assert store.get_by_slug("second") is None
    assert store.last_run().partial is True


def test_cancel_before_start_skips_everything(fake_index, store, config):
    fake_index.add_repo("acme", "foo-mcp")
    cancel = threading.Event()
    cancel.set()

    report = DiscoveryOrchestrator(fake_index, store, config).run(cancel=cancel)

    assert report.partial
    assert report.processed == 0
    assert fake_index.searches == []


def test_process_one_adds_submission(fake_index, store, config):
    fake_index.add_repo("acme", "foo-mcp", queries=())

    outcome = DiscoveryOrchestrator(fake_index, store, config).process_one(
        "https://github.com/acme/foo-mcp"
    )

    assert outcome.status == OutcomeStatus.ADDED
    assert outcome.entry_id is not None
    with store.session() as reg:
        assert reg.sources_for(outcome.entry_id) == [SUBMISSION_SOURCE]


def test_process_one_duplicate_and_force(fake_index, store, config):
    fake_index.add_repo("acme", "foo-mcp", stars=1)
    orchestrator = DiscoveryOrchestrator(fake_index, store, config)
    added = orchestrator.process_one("acme/foo-mcp")
    with store.session() as reg:
        reg.increment_installs(added.entry_id, 7)

    duplicate = orchestrator.process_one("acme/foo-mcp")
    assert duplicate.status == OutcomeStatus.DUPLICATE
    assert duplicate.reason == "already registered"

    fake_index.metadata["acme/foo-mcp"].stars = 40
    refreshed = orchestrator.process_one("acme/foo-mcp", force=True)
    assert refreshed.status == OutcomeStatus.DUPLICATE
    assert refreshed.entry_id == added.entry_id
    with store.session() as reg:
        stats = reg.get_stats(added.entry_id)
        assert (stats.stars, stats.installs) == (40, 7)


def test_process_one_rejection(fake_index, store, config):
    fake_index.add_repo("acme", "bar-tool", dependencies={"express": "^4"})

    outcome = DiscoveryOrchestrator(fake_index, store, config).process_one("acme/bar-tool")

    assert outcome.status == OutcomeStatus.REJECTED
    assert outcome.reason == "no signature"


def test_busy_store_fails_candidates_without_aborting(fake_index, tmp_path, config):
    config.workers = 1
    for name in ("a-mcp", "b-mcp", "c-mcp"):
        fake_index.add_repo("acme", name)
    db_path = tmp_path / "busy.db"
    store = RegistryStore(db_path, timeout=0.2)
    blockers = []

    def hold_write_lock(full_name):
        if not blockers:
            conn = sqlite3.connect(str(db_path), isolation_level=None, check_same_thread=False)
            conn.execute("BEGIN IMMEDIATE")
            blockers.append(conn)

    fake_index.on_get_file = hold_write_lock
    try:
        report = DiscoveryOrchestrator(fake_index, store, config).run()
    finally:
        for conn in blockers:
            conn.execute("ROLLBACK")
            conn.close()

    assert not report.aborted
    assert report.success
    assert report.fatal_error == ""
    assert report.processed == 3
    assert report.failed == 3
    assert report.added == 0
    assert all("timed out" in message for message in report.errors)

    fake_index.on_get_file = None
    report = DiscoveryOrchestrator(fake_index, store, config).run()
    assert report.added == 3


def test_submission_with_different_case_is_duplicate(fake_index, store, config):
    fake_index.add_repo("acme", "foo-mcp")
    # GitHub resolves owner and name case-insensitively
    fake_index.metadata["ACME/Foo-MCP"] = fake_index.metadata["acme/foo-mcp"]
    fake_index.manifests["ACME/Foo-MCP"] = fake_index.manifests["acme/foo-mcp"]
    orchestrator = DiscoveryOrchestrator(fake_index, store, config)

    added = orchestrator.process_one("https://github.com/acme/foo-mcp")
    again = orchestrator.process_one("https://github.com/ACME/Foo-MCP")

    assert added.status == OutcomeStatus.ADDED
    assert again.status == OutcomeStatus.DUPLICATE
    assert again.reason == "already registered"
    entries = store.list_entries()
    assert [e.repository_url for e in entries] == ["https://github.com/acme/foo-mcp"]
