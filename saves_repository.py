import json
import sqlite3
import time
from typing import Any, Dict, Optional


def get_save(conn: sqlite3.Connection, username: str) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        "SELECT data_json FROM saves WHERE username=?",
        (username,),
    ).fetchone()
    if not row:
        return None
    return json.loads(row["data_json"])


def upsert_save(conn: sqlite3.Connection, username: str, payload: Dict[str, Any]) -> float:
    """Replace the user's save row with the full snapshot. Last write wins."""
    now = time.time()
    conn.execute(
        """
        INSERT INTO saves (username,data_json,updated_at,total_qi,realm_id,last_save_time)
        VALUES (?,?,?,?,?,?)
        ON CONFLICT(username) DO UPDATE SET
          data_json=excluded.data_json,
          updated_at=excluded.updated_at,
          total_qi=excluded.total_qi,
          realm_id=excluded.realm_id,
          last_save_time=excluded.last_save_time
        """,
        (
            username,
            json.dumps(payload, separators=(",", ":")),
            now,
            float(payload["resources"]["totalQi"]),
            int(payload["realm"]["id"]),
            int(payload["lastSaveTime"]),
        ),
    )
    return now


def delete_save(conn: sqlite3.Connection, username: str) -> None:
    conn.execute("DELETE FROM saves WHERE username=?", (username,))
