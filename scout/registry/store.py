"""SQLite-backed registry store.

The registry holds one row per MCP server (``mcp_servers``), a 1:1 stats
row (``server_stats``), the search queries that surfaced each server
(``discovery_sources``) and a summary of every discovery run
(``discovery_runs``).

A discovery run opens one ``RegistrySession`` and shares it between its
worker threads; statements are serialized by a lock and each candidate's
writes happen inside ``RegistrySession.transaction()``.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Iterator

from scout.errors import FatalStoreFailure, SlugConflict, StoreTimeout
from scout.registry.models import (
    DiscoveryRun,
    RegistryCounts,
    RegistryEntry,
    StatsRecord,
)

logger = logging.getLogger(__name__)

# Primary SQLite result codes
_SQLITE_BUSY = 5
_SQLITE_LOCKED = 6


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds")


class RegistryStore:
    """Factory for registry sessions against one SQLite database file."""

    SCHEMA_VERSION = 1

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS schema_info (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS mcp_servers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE,
        tagline TEXT,
        description TEXT,
        category TEXT NOT NULL DEFAULT 'custom',
        tags TEXT NOT NULL DEFAULT '[]',        -- JSON array
        repository_url TEXT NOT NULL COLLATE NOCASE UNIQUE,
        repository_owner TEXT NOT NULL,
        repository_name TEXT NOT NULL,
        package_name TEXT,
        verified INTEGER NOT NULL DEFAULT 0,
        featured INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS server_stats (
        server_id INTEGER PRIMARY KEY REFERENCES mcp_servers(id),
        github_stars INTEGER NOT NULL DEFAULT 0,
        github_forks INTEGER NOT NULL DEFAULT 0,
        cli_installs INTEGER NOT NULL DEFAULT 0,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS discovery_sources (
        server_id INTEGER NOT NULL REFERENCES mcp_servers(id),
        query TEXT NOT NULL,
        discovered_at TEXT NOT NULL,
        PRIMARY KEY (server_id, query)
    );

    CREATE TABLE IF NOT EXISTS discovery_runs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        started_at TEXT NOT NULL,
        finished_at TEXT NOT NULL,
        discovered INTEGER NOT NULL,
        processed INTEGER NOT NULL,
        added INTEGER NOT NULL,
        duplicate_skipped INTEGER NOT NULL,
        rejected INTEGER NOT NULL,
        failed INTEGER NOT NULL,
        duration_ms INTEGER NOT NULL,
        partial INTEGER NOT NULL,
        aborted INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_servers_created_at ON mcp_servers(created_at);
    CREATE INDEX IF NOT EXISTS idx_servers_category ON mcp_servers(category);
    """

    def __init__(self, db_path: str | Path, timeout: float = 10.0):
        self.db_path = str(db_path)
        self.timeout = timeout

    @contextmanager
    def session(self) -> Iterator["RegistrySession"]:
        """Open a session for the duration of a ``with`` block.

        The connection is closed on every exit path.

        Raises:
            FatalStoreFailure: If the database cannot be opened or
                initialized.
        """
        conn = self._connect()
        try:
            yield RegistrySession(conn)
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                self.db_path,
                timeout=self.timeout,
                check_same_thread=False,
                isolation_level=None,
            )
        except (OSError, sqlite3.Error) as exc:
            raise FatalStoreFailure(f"Registry store unreachable: {exc}") from exc

        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.executescript(self.SCHEMA)
            conn.execute(
                "INSERT OR REPLACE INTO schema_info (key, value) VALUES (?, ?)",
                ("schema_version", str(self.SCHEMA_VERSION)),
            )
        except sqlite3.Error as exc:
            conn.close()
            raise FatalStoreFailure(f"Registry store unreachable: {exc}") from exc
        return conn

    # -- one-shot helpers ----------------------------------------------------

    def counts(self, now: datetime | None = None) -> RegistryCounts:
        with self.session() as registry:
            return registry.counts(now=now)

    def last_run(self) -> DiscoveryRun | None:
        with self.session() as registry:
            return registry.last_run()

    def list_entries(self, category: str | None = None) -> list[RegistryEntry]:
        with self.session() as registry:
            return registry.list_entries(category=category)

    def get_by_slug(self, slug: str) -> RegistryEntry | None:
        with self.session() as registry:
            return registry.find_by_slug(slug)


class RegistrySession:
    """Registry operations over one open connection, safe to share across threads."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """Run one statement.

        Raises:
            StoreTimeout: If the database stayed locked past the busy
                timeout.
            FatalStoreFailure: On any other operational error.
        """
        with self._lock:
            try:
                return self._conn.execute(sql, params)
            except sqlite3.OperationalError as exc:
                if _is_busy(exc):
                    raise StoreTimeout(f"registry store timed out: {exc}") from exc
                raise FatalStoreFailure(f"Registry store unreachable: {exc}") from exc

    @contextmanager
    def transaction(self) -> Iterator["RegistrySession"]:
        """Run the enclosed statements atomically.

        Other threads are held off until the transaction ends. A failed
        COMMIT rolls back like any other error.
        """
        with self._lock:
            self._execute("BEGIN IMMEDIATE")
            try:
                yield self
                self._execute("COMMIT")
            except BaseException:
                if self._conn.in_transaction:
                    try:
                        self._conn.execute("ROLLBACK")
                    except sqlite3.Error:
                        logger.warning("Rollback failed", exc_info=True)
                raise

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def find_by_url(self, repository_url: str) -> RegistryEntry | None:
        row = self._execute(
            "SELECT * FROM mcp_servers WHERE repository_url = ?", (repository_url,)
        ).fetchone()
        return _row_to_entry(row) if row else None

    def find_by_slug(self, slug: str) -> RegistryEntry | None:
        row = self._execute(
            "SELECT * FROM mcp_servers WHERE slug = ?", (slug,)
        ).fetchone()
        return _row_to_entry(row) if row else None

    def list_entries(self, category: str | None = None) -> list[RegistryEntry]:
        if category:
            rows = self._execute(
                "SELECT * FROM mcp_servers WHERE category = ? ORDER BY created_at, id",
                (category,),
            ).fetchall()
        else:
            rows = self._execute(
                "SELECT * FROM mcp_servers ORDER BY created_at, id"
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def insert_entry(self, entry: RegistryEntry, now: datetime | None = None) -> int | None:
        """Insert *entry* unless its repository URL is already registered.

        Returns:
            The new entry id, or None when the URL already exists.

        Raises:
            SlugConflict: If a different entry already uses the slug.
        """
        stamp = to_iso(now or utc_now())
        try:
            cursor = self._execute(
                """
                INSERT INTO mcp_servers (
                    name, slug, tagline, description, category, tags,
                    repository_url, repository_owner, repository_name,
                    package_name, verified, featured, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(repository_url) DO NOTHING
                """,
                (
                    entry.name,
                    entry.slug,
                    entry.tagline,
                    entry.description,
                    entry.category,
                    json.dumps(list(entry.tags)),
                    entry.repository_url,
                    entry.repository_owner,
                    entry.repository_name,
                    entry.package_name,
                    int(entry.verified),
                    int(entry.featured),
                    stamp,
                    stamp,
                ),
            )
        except sqlite3.IntegrityError as exc:
            if "slug" in str(exc):
                raise SlugConflict(entry.slug) from exc
            raise

        if cursor.rowcount == 0:
            return None
        entry.id = cursor.lastrowid
        entry.created_at = entry.updated_at = stamp
        return entry.id

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def upsert_stats(
        self, entry_id: int, stars: int, forks: int, now: datetime | None = None
    ) -> StatsRecord:
        """Create the stats row, or refresh stars/forks of an existing one.

        The install count is set to zero on creation and never written here.
        """
        stamp = to_iso(now or utc_now())
        self._execute(
            """
            INSERT INTO server_stats (server_id, github_stars, github_forks, cli_installs, updated_at)
            VALUES (?, ?, ?, 0, ?)
            ON CONFLICT(server_id) DO UPDATE SET
                github_stars = excluded.github_stars,
                github_forks = excluded.github_forks,
                updated_at = excluded.updated_at
            """,
            (entry_id, stars, forks, stamp),
        )
        stats = self.get_stats(entry_id)
        if stats is None:
            raise FatalStoreFailure(f"Stats row for entry {entry_id} missing after upsert")
        return stats

    def get_stats(self, entry_id: int) -> StatsRecord | None:
        row = self._execute(
            "SELECT * FROM server_stats WHERE server_id = ?", (entry_id,)
        ).fetchone()
        if row is None:
            return None
        return StatsRecord(
            entry_id=row["server_id"],
            stars=row["github_stars"],
            forks=row["github_forks"],
            installs=row["cli_installs"],
            updated_at=row["updated_at"],
        )

    def increment_installs(self, entry_id: int, amount: int = 1) -> StatsRecord | None:
        """Record installs for an entry. Returns None for an unknown entry."""
        if amount < 1:
            raise ValueError("install increments must be positive")
        self._execute(
            "UPDATE server_stats SET cli_installs = cli_installs + ? WHERE server_id = ?",
            (amount, entry_id),
        )
        return self.get_stats(entry_id)

    # ------------------------------------------------------------------
    # Provenance
    # ------------------------------------------------------------------

    def record_sources(
        self, entry_id: int, queries: Iterable[str], now: datetime | None = None
    ) -> None:
        stamp = to_iso(now or utc_now())
        for query in sorted(set(queries)):
            self._execute(
                """
                INSERT INTO discovery_sources (server_id, query, discovered_at)
                VALUES (?, ?, ?)
                ON CONFLICT(server_id, query) DO NOTHING
                """,
                (entry_id, query, stamp),
            )

    def sources_for(self, entry_id: int) -> list[str]:
        rows = self._execute(
            "SELECT query FROM discovery_sources WHERE server_id = ? ORDER BY query",
            (entry_id,),
        ).fetchall()
        return [r["query"] for r in rows]

    # ------------------------------------------------------------------
    # Aggregates and run history
    # ------------------------------------------------------------------

    def counts(self, now: datetime | None = None) -> RegistryCounts:
        now = now or utc_now()
        day_ago = to_iso(now - timedelta(days=1))
        week_ago = to_iso(now - timedelta(days=7))
        row = self._execute(
            """
            SELECT
                COUNT(*) AS total,
                COALESCE(SUM(verified = 1), 0) AS verified,
                COALESCE(SUM(created_at > ?), 0) AS added_last_day,
                COALESCE(SUM(created_at > ?), 0) AS added_last_week
            FROM mcp_servers
            """,
            (day_ago, week_ago),
        ).fetchone()
        return RegistryCounts(
            total=row["total"],
            verified=row["verified"],
            added_last_day=row["added_last_day"],
            added_last_week=row["added_last_week"],
        )

    def record_run(self, run: DiscoveryRun) -> int:
        cursor = self._execute(
            """
            INSERT INTO discovery_runs (
                started_at, finished_at, discovered, processed, added,
                duplicate_skipped, rejected, failed, duration_ms, partial, aborted
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                run.started_at,
                run.finished_at,
                run.discovered,
                run.processed,
                run.added,
                run.duplicate_skipped,
                run.rejected,
                run.failed,
                run.duration_ms,
                int(run.partial),
                int(run.aborted),
            ),
        )
        run.id = cursor.lastrowid
        return run.id

    def last_run(self) -> DiscoveryRun | None:
        row = self._execute(
            "SELECT * FROM discovery_runs ORDER BY id DESC LIMIT 1"
        ).fetchone()
        if row is None:
            return None
        return DiscoveryRun(
            id=row["id"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            discovered=row["discovered"],
            processed=row["processed"],
            added=row["added"],
            duplicate_skipped=row["duplicate_skipped"],
            rejected=row["rejected"],
            failed=row["failed"],
            duration_ms=row["duration_ms"],
            partial=bool(row["partial"]),
            aborted=bool(row["aborted"]),
        )


def _is_busy(exc: sqlite3.OperationalError) -> bool:
    code = getattr(exc, "sqlite_errorcode", None)  # Python 3.11+
    if code is not None:
        return (code & 0xFF) in (_SQLITE_BUSY, _SQLITE_LOCKED)
    return "locked" in str(exc) or "busy" in str(exc)


def _row_to_entry(row: sqlite3.Row) -> RegistryEntry:
    try:
        tags = json.loads(row["tags"] or "[]")
    except json.JSONDecodeError:
        tags = []
    return RegistryEntry(
        id=row["id"],
        name=row["name"],
        slug=row["slug"],
        tagline=row["tagline"] or "",
        description=row["description"] or "",
        category=row["category"],
        tags=tags,
        repository_url=row["repository_url"],
        repository_owner=row["repository_owner"],
        repository_name=row["repository_name"],
        package_name=row["package_name"],
        verified=bool(row["verified"]),
        featured=bool(row["featured"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
