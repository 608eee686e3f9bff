from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Database:
    conn: sqlite3.Connection
    lock: threading.Lock


_MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
          version INTEGER NOT NULL PRIMARY KEY
        );

        CREATE TABLE IF NOT EXISTS result_cache (
          instance_id TEXT NOT NULL PRIMARY KEY,
          result_json TEXT NOT NULL,
          computed_at TEXT NOT NULL,
          updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS instance_health (
          instance_id TEXT NOT NULL PRIMARY KEY,
          last_run_at TEXT NULL,
          last_success_at TEXT NULL,
          last_error_at TEXT NULL,
          last_error TEXT NULL,
          consecutive_failures INTEGER NOT NULL DEFAULT 0,
          success_count INTEGER NOT NULL DEFAULT 0,
          error_count INTEGER NOT NULL DEFAULT 0,
          last_count INTEGER NULL,
          last_stale INTEGER NOT NULL DEFAULT 0
        );
        """,
    ),
]


def open_database(path: Path) -> Database:
    if str(path) != ":memory:":
        path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=5000;")
    _apply_migrations(conn)
    return Database(conn=conn, lock=threading.Lock())


def _apply_migrations(conn: sqlite3.Connection) -> None:
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER NOT NULL PRIMARY KEY);"
    )
    row = conn.execute(
        "SELECT COALESCE(MAX(version), 0) AS v FROM schema_migrations;"
    ).fetchone()
    current_version = int(row["v"])

    for version, sql in _MIGRATIONS:
        if version <= current_version:
            continue
        conn.executescript(sql)
        conn.execute("INSERT INTO schema_migrations(version) VALUES (?);", (version,))
        conn.commit()
