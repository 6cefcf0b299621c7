import sqlite3
import time
from dataclasses import dataclass
from typing import Callable, List


@dataclass(frozen=True)
class Migration:
    migration_id: str
    description: str
    apply: Callable[[sqlite3.Connection], None]


def _table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({table});").fetchall()
    return {str(r["name"]) for r in rows}


def _safe_add_column(conn: sqlite3.Connection, table: str, name: str, coltype: str) -> None:
    if name in _table_columns(conn, table):
        return
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {name} {coltype};")


def _migration_0001_initial(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS users (
          username TEXT PRIMARY KEY,
          password_hash TEXT NOT NULL,
          created_at REAL NOT NULL
        );

        CREATE TABLE IF NOT EXISTS sessions (
          token TEXT PRIMARY KEY,
          username TEXT NOT NULL REFERENCES users(username) ON DELETE CASCADE,
          created_at REAL NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_sessions_username ON sessions(username);
        """
    )


def _migration_0002_saves(conn: sqlite3.Connection) -> None:
    """One save row per user; every write replaces the full snapshot."""
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS saves (
          username TEXT PRIMARY KEY REFERENCES users(username) ON DELETE CASCADE,
          data_json TEXT NOT NULL,
          updated_at REAL NOT NULL
        );
        """
    )


def _migration_0003_save_ranking_columns(conn: sqlite3.Connection) -> None:
    """Denormalized lifetime qi / realm columns for leaderboard style queries."""
    _safe_add_column(conn, "saves", "total_qi", "REAL NOT NULL DEFAULT 0")
    _safe_add_column(conn, "saves", "realm_id", "INTEGER NOT NULL DEFAULT 1")
    _safe_add_column(conn, "saves", "last_save_time", "INTEGER NOT NULL DEFAULT 0")


def _migrations() -> List[Migration]:
    return [
        Migration("0001_initial", "Create user and session tables", _migration_0001_initial),
        Migration("0002_saves", "Add single-row-per-user save table", _migration_0002_saves),
        Migration("0003_save_ranking_columns", "Add total_qi/realm_id/last_save_time to saves", _migration_0003_save_ranking_columns),
    ]


def apply_migrations(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
          migration_id TEXT PRIMARY KEY,
          description TEXT NOT NULL,
          applied_at REAL NOT NULL
        );
        """
    )

    applied = {
        str(r["migration_id"])
        for r in conn.execute("SELECT migration_id FROM schema_migrations").fetchall()
    }

    for migration in _migrations():
        if migration.migration_id in applied:
            continue
        migration.apply(conn)
        conn.execute(
            "INSERT INTO schema_migrations (migration_id,description,applied_at) VALUES (?,?,?)",
            (migration.migration_id, migration.description, time.time()),
        )
