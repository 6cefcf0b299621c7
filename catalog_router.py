"""
Catalog API routes — read-only views of the static progression data.

  /api/health
  /api/catalog/realms
  /api/catalog/generators
  /api/catalog/factions
"""

import sqlite3
from typing import Any, Dict

from fastapi import APIRouter, Depends

from constants import FACTIONS, GENERATOR_COST_GROWTH, GENERATORS, REALMS, WORLDS
from db import get_db
import progression_service

router = APIRouter(tags=["catalog"])


@router.get("/api/health")
def api_health(conn: sqlite3.Connection = Depends(get_db)) -> Dict[str, Any]:
    conn.execute("SELECT 1")
    return {
        "ok": True,
        "service": "qi-ascension-saves",
    }


@router.get("/api/catalog/realms")
def api_catalog_realms() -> Dict[str, Any]:
    realms = []
    for realm in REALMS:
        realms.append(
            {
                "id": realm["id"],
                "name": realm["name"],
                "world": realm["world"],
                "world_index": realm["world_index"],
                "stages": realm["stages"],
                "description": realm["description"],
                "base_multiplier": progression_service.calculate_multiplier(realm["id"], 1, realm["world_index"]),
                "required_qi_first_stage": progression_service.calculate_required_qi(realm["id"], 1),
            }
        )
    return {"worlds": WORLDS, "realms": realms}


@router.get("/api/catalog/generators")
def api_catalog_generators() -> Dict[str, Any]:
    return {
        "cost_growth": GENERATOR_COST_GROWTH,
        "generators": GENERATORS,
    }


@router.get("/api/catalog/factions")
def api_catalog_factions() -> Dict[str, Any]:
    return {"factions": FACTIONS}
