"""
Database migration tests — verify that migrations apply cleanly and
produce the expected schema.

Catches:
  - SQL syntax errors in migration functions
  - Idempotency failures (running migrations twice)
  - Missing tables or columns after migration
  - Foreign key constraint issues
"""

import sqlite3
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


# ── Migration application ─────────────────────────────────────────────────

class TestMigrationsApply:
    def test_all_migrations_apply_to_fresh_db(self):
        """All migrations should apply without error to an empty database."""
        from db_migrations import apply_migrations

        conn = sqlite3.connect(":memory:")
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON;")
        apply_migrations(conn)

        # Verify the tracking table exists and has entries
        rows = conn.execute("SELECT migration_id FROM schema_migrations ORDER BY migration_id").fetchall()
        ids = [r["migration_id"] for r in rows]
        assert len(ids) >= 1
        assert ids[0] == "0001_initial"
        conn.close()

    def test_migrations_are_idempotent(self):
        """Running apply_migrations twice should not raise."""
        from db_migrations import apply_migrations

        conn = sqlite3.connect(":memory:")
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON;")
        apply_migrations(conn)
        # Second run should be a no-op
        apply_migrations(conn)
        conn.close()

    def test_migration_ids_are_sequential(self):
        """Migration IDs should be in sorted order."""
        from db_migrations import _migrations

        ids = [m.migration_id for m in _migrations()]
        assert ids == sorted(ids), f"Migration IDs are not sorted: {ids}"

    def test_no_duplicate_migration_ids(self):
        """Each migration_id must be unique."""
        from db_migrations import _migrations

        ids = [m.migration_id for m in _migrations()]
        assert len(ids) == len(set(ids)), f"Duplicate migration IDs: {[x for x in ids if ids.count(x) > 1]}"


# ── Schema expectations ───────────────────────────────────────────────────

EXPECTED_TABLES = [
    "users",
    "sessions",
    "saves",
    "schema_migrations",
]


class TestSchemaAfterMigrations:
    def test_expected_tables_exist(self, db_conn: sqlite3.Connection):
        tables = {
            r[0]
            for r in db_conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }
        for t in EXPECTED_TABLES:
            assert t in tables, f"Expected table '{t}' not found. Tables: {tables}"

    def test_users_table_has_core_columns(self, db_conn: sqlite3.Connection):
        cols = {r["name"] for r in db_conn.execute("PRAGMA table_info(users)").fetchall()}
        for c in ("username", "password_hash", "created_at"):
            assert c in cols, f"users table missing column: {c}"

    def test_saves_table_has_ranking_columns(self, db_conn: sqlite3.Connection):
        cols = {r["name"] for r in db_conn.execute("PRAGMA table_info(saves)").fetchall()}
        for c in ("username", "data_json", "updated_at", "total_qi", "realm_id", "last_save_time"):
            assert c in cols, f"saves table missing column: {c}"

    def test_foreign_keys_enabled(self, db_conn: sqlite3.Connection):
        fk = db_conn.execute("PRAGMA foreign_keys;").fetchone()
        assert fk[0] == 1


# ── Save rows ─────────────────────────────────────────────────────────────

class TestSaveRows:
    def _add_user(self, conn: sqlite3.Connection, username: str) -> None:
        from auth_repository import create_account
        from auth_service import hash_password

        create_account(conn, username, hash_password(username, "lotus123"), 0.0)

    def test_upsert_keeps_one_row_per_user(self, db_conn: sqlite3.Connection, helpers):
        import saves_repository

        self._add_user(db_conn, "wei_ying")
        saves_repository.upsert_save(db_conn, "wei_ying", helpers.build_payload(qi=1, last_save_time=1))
        saves_repository.upsert_save(db_conn, "wei_ying", helpers.build_payload(qi=2, realm_id=3, last_save_time=2))

        rows = db_conn.execute("SELECT realm_id,last_save_time FROM saves").fetchall()
        assert len(rows) == 1
        assert (rows[0]["realm_id"], rows[0]["last_save_time"]) == (3, 2)
        assert saves_repository.get_save(db_conn, "wei_ying")["resources"]["qi"] == 2

    def test_save_requires_existing_user(self, db_conn: sqlite3.Connection, helpers):
        import saves_repository

        with pytest.raises(sqlite3.IntegrityError):
            saves_repository.upsert_save(db_conn, "ghost", helpers.build_payload())

    def test_delete_save(self, db_conn: sqlite3.Connection, helpers):
        import saves_repository

        self._add_user(db_conn, "wei_ying")
        saves_repository.upsert_save(db_conn, "wei_ying", helpers.build_payload(qi=1, last_save_time=1))
        saves_repository.delete_save(db_conn, "wei_ying")
        assert saves_repository.get_save(db_conn, "wei_ying") is None
