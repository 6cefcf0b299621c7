"""
Remote save store routes.

  GET  /api/saves/latest   current user's save, 404 when none exists
  POST /api/saves          replace the current user's save (full snapshot)

Payloads are structurally validated against GameState; economy values are
taken as sent.
"""

import sqlite3
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import ValidationError

from auth_service import require_login
from db import get_db
from game_models import GameState, dump_payload
import saves_repository

router = APIRouter(tags=["saves"])


@router.get("/api/saves/latest")
def api_saves_latest(request: Request, conn: sqlite3.Connection = Depends(get_db)) -> Dict[str, Any]:
    user = require_login(conn, request)
    payload = saves_repository.get_save(conn, str(user["username"]))
    if payload is None:
        raise HTTPException(status_code=404, detail="No save found")
    return payload


@router.post("/api/saves")
def api_saves_sync(
    request: Request,
    body: Any = Body(None),
    conn: sqlite3.Connection = Depends(get_db),
) -> Dict[str, Any]:
    user = require_login(conn, request)
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid save data")
    try:
        state = GameState.model_validate(body)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ()))
        raise HTTPException(status_code=400, detail=f"Invalid save data: {loc} {first.get('msg', '')}".strip())

    updated_at = saves_repository.upsert_save(conn, str(user["username"]), dump_payload(state))
    conn.commit()
    return {"success": True, "timestamp": int(updated_at * 1000)}
