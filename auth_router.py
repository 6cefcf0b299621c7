import os
import time
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel

from auth_service import (
    SESSION_COOKIE_NAME,
    create_session,
    hash_password,
    passwords_match,
    require_login,
    valid_username,
)
from auth_repository import (
    account_exists,
    create_account,
    delete_account,
    delete_session_token,
    delete_sessions,
    find_user_for_login,
)
from db import connect_db
import saves_repository

router = APIRouter(tags=["auth"])

COOKIE_SECURE = os.environ.get("COOKIE_SECURE", "0") == "1"
COOKIE_SAMESITE = os.environ.get("COOKIE_SAMESITE", "lax")


class CredentialsReq(BaseModel):
    username: str
    password: str


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite=COOKIE_SAMESITE,
        path="/",
    )


@router.post("/api/auth/register", status_code=201)
def api_auth_register(req: CredentialsReq, response: Response) -> Dict[str, Any]:
    username = (req.username or "").strip().lower()
    password = str(req.password or "")
    if not valid_username(username):
        raise HTTPException(status_code=400, detail="username must be 3-32 chars [a-z0-9_]")
    if len(password) < 3:
        raise HTTPException(status_code=400, detail="password must be at least 3 characters")

    conn = connect_db()
    try:
        if account_exists(conn, username):
            raise HTTPException(status_code=400, detail="Username already taken")
        create_account(conn, username, hash_password(username, password), time.time())
        token = create_session(conn, username)
        conn.commit()
        _set_session_cookie(response, token)
        return {"ok": True, "user": {"username": username}}
    finally:
        conn.close()


@router.post("/api/auth/login")
def api_auth_login(req: CredentialsReq, response: Response) -> Dict[str, Any]:
    username = (req.username or "").strip().lower()
    password = str(req.password or "")
    if not valid_username(username):
        raise HTTPException(status_code=400, detail="Invalid username format")
    if not password:
        raise HTTPException(status_code=400, detail="password is required")

    conn = connect_db()
    try:
        row = find_user_for_login(conn, username)
        if not row or not passwords_match(str(row["password_hash"]), hash_password(username, password)):
            raise HTTPException(status_code=401, detail="Invalid credentials")

        delete_sessions(conn, username)
        token = create_session(conn, username)
        conn.commit()
        _set_session_cookie(response, token)
        return {"ok": True, "user": {"username": row["username"]}}
    finally:
        conn.close()


@router.post("/api/auth/logout")
def api_auth_logout(request: Request, response: Response) -> Dict[str, Any]:
    token = (request.cookies.get(SESSION_COOKIE_NAME) or "").strip()
    conn = connect_db()
    try:
        if token:
            delete_session_token(conn, token)
            conn.commit()
    finally:
        conn.close()
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"ok": True}


@router.get("/api/auth/me")
def api_auth_me(request: Request) -> Dict[str, Any]:
    conn = connect_db()
    try:
        user = require_login(conn, request)
        return {"ok": True, "user": {"username": user["username"]}}
    finally:
        conn.close()


@router.delete("/api/auth/account")
def api_auth_delete_account(request: Request, response: Response) -> Dict[str, Any]:
    conn = connect_db()
    try:
        user = require_login(conn, request)
        username = str(user["username"])
        saves_repository.delete_save(conn, username)
        delete_account(conn, username)
        conn.commit()
    finally:
        conn.close()
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"ok": True}
