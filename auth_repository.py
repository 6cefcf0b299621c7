import sqlite3
from typing import Optional


def find_user_for_login(conn: sqlite3.Connection, username: str) -> Optional[sqlite3.Row]:
    return conn.execute(
        "SELECT username,password_hash FROM users WHERE username=?",
        (username,),
    ).fetchone()


def account_exists(conn: sqlite3.Connection, username: str) -> bool:
    row = conn.execute("SELECT 1 FROM users WHERE username=?", (username,)).fetchone()
    return bool(row)


def create_account(conn: sqlite3.Connection, username: str, password_hash: str, created_at: float) -> None:
    conn.execute(
        "INSERT INTO users (username,password_hash,created_at) VALUES (?,?,?)",
        (username, password_hash, created_at),
    )


def delete_sessions(conn: sqlite3.Connection, username: str) -> None:
    conn.execute("DELETE FROM sessions WHERE username=?", (username,))


def delete_session_token(conn: sqlite3.Connection, token: str) -> None:
    conn.execute("DELETE FROM sessions WHERE token=?", (token,))


def delete_account(conn: sqlite3.Connection, username: str) -> None:
    conn.execute("DELETE FROM sessions WHERE username=?", (username,))
    conn.execute("DELETE FROM users WHERE username=?", (username,))
