import hashlib
import hmac
import os
import re
import secrets
import sqlite3
import time
from typing import Any, Optional

from fastapi import HTTPException, Request

SESSION_COOKIE_NAME = "session_token"
AUTH_PASSWORD_SALT = os.environ.get("AUTH_PASSWORD_SALT", "qi_ascension_auth_salt_v1")
DEV_SKIP_AUTH = os.environ.get("DEV_SKIP_AUTH", "").strip().lower() in ("1", "true", "yes")
DEV_USERNAME = os.environ.get("DEV_USERNAME", "daoist")


class _DevUserRow:
    """Dict-like object returned when auth is bypassed via DEV_SKIP_AUTH."""
    def __getitem__(self, key: str) -> Any:
        return {"username": DEV_USERNAME, "created_at": 0.0}.get(key)
    def __contains__(self, key: str) -> bool:
        return key in ("username", "created_at")
    def get(self, key: str, default: Any = None) -> Any:
        return self[key] if key in self else default

_DEV_USER = _DevUserRow()


def hash_password(username: str, password: str) -> str:
    payload = f"{AUTH_PASSWORD_SALT}:{username.strip().lower()}:{password}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def passwords_match(stored_hash: str, candidate_hash: str) -> bool:
    return hmac.compare_digest(stored_hash, candidate_hash)


def valid_username(raw: Any) -> bool:
    username = str(raw or "").strip().lower()
    return bool(re.fullmatch(r"[a-z0-9_]{3,32}", username))


def create_session(conn: sqlite3.Connection, username: str) -> str:
    token = secrets.token_urlsafe(32)
    conn.execute(
        "INSERT INTO sessions (token,username,created_at) VALUES (?,?,?)",
        (token, username, time.time()),
    )
    return token


def get_user_by_session_token(conn: sqlite3.Connection, token: str) -> Optional[sqlite3.Row]:
    return conn.execute(
        """
        SELECT u.username,u.created_at
        FROM sessions s
        JOIN users u ON u.username=s.username
        WHERE s.token=?
        """,
        (token,),
    ).fetchone()


def ensure_dev_user(conn: sqlite3.Connection) -> None:
    """Make sure the bypass user exists so its saves satisfy the foreign key."""
    conn.execute(
        "INSERT OR IGNORE INTO users (username,password_hash,created_at) VALUES (?,?,?)",
        (DEV_USERNAME, hash_password(DEV_USERNAME, secrets.token_urlsafe(16)), time.time()),
    )


def get_current_user(conn: sqlite3.Connection, request: Request) -> Optional[Any]:
    if DEV_SKIP_AUTH:
        return _DEV_USER
    token = (request.cookies.get(SESSION_COOKIE_NAME) or "").strip()
    if not token:
        return None
    return get_user_by_session_token(conn, token)


def require_login(conn: sqlite3.Connection, request: Request) -> Any:
    user = get_current_user(conn, request)
    if not user:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user
