"""
Pydantic models for the persisted game state.

The JSON shape (camelCase) is shared by the local cache file, the remote
``/api/saves`` body and the sqlite ``saves.data_json`` column.  Python code
uses the snake_case attribute names; ``dump_payload`` produces the wire form.
"""

import json
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from constants import (
    DEFAULT_THEME,
    GENERATOR_BY_KEY,
    GENERATOR_KEYS,
    INITIAL_STATE,
    REALM_BY_ID,
)

FactionId = Literal["demonic", "righteous", "heavenly"]
Theme = Literal["light", "dark"]


class _SaveModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


class Resources(_SaveModel):
    qi: float = Field(0.0, ge=0)
    total_qi: float = Field(0.0, ge=0, alias="totalQi")
    ascension_points: float = Field(0.0, ge=0, alias="ascensionPoints")


class RealmState(_SaveModel):
    id: int
    stage: int
    name: str = ""
    world: str = ""
    multiplier: float = 1.0

    @model_validator(mode="after")
    def _check_catalog_range(self) -> "RealmState":
        realm = REALM_BY_ID.get(self.id)
        if realm is None:
            raise ValueError(f"realm id {self.id} is not in the realm catalog")
        if not 1 <= self.stage <= int(realm["stages"]):
            raise ValueError(
                f"stage {self.stage} is outside 1..{realm['stages']} for realm {self.id}"
            )
        return self


class Settings(_SaveModel):
    theme: Theme = DEFAULT_THEME


class Stats(_SaveModel):
    qi_per_tap: float = Field(1.0, ge=0, alias="qiPerTap")


class GameState(_SaveModel):
    resources: Resources = Field(default_factory=Resources)
    generators: Dict[str, int] = Field(default_factory=lambda: {key: 0 for key in GENERATOR_KEYS})
    realm: RealmState
    faction: Optional[FactionId] = None
    upgrades: List[str] = Field(default_factory=list)
    achievements: List[str] = Field(default_factory=list)
    settings: Settings = Field(default_factory=Settings)
    stats: Stats = Field(default_factory=Stats)
    last_save_time: int = Field(0, ge=0, alias="lastSaveTime")

    @field_validator("generators")
    @classmethod
    def _check_generators(cls, value: Dict[str, int]) -> Dict[str, int]:
        unknown = sorted(set(value) - set(GENERATOR_BY_KEY))
        if unknown:
            raise ValueError(f"unknown generator keys: {', '.join(unknown)}")
        negative = sorted(k for k, v in value.items() if v < 0)
        if negative:
            raise ValueError(f"negative generator counts: {', '.join(negative)}")
        return {key: int(value.get(key, 0)) for key in GENERATOR_KEYS}

    @field_validator("upgrades", "achievements")
    @classmethod
    def _as_id_set(cls, value: List[str]) -> List[str]:
        return sorted(set(value))


def initial_game_state(last_save_time: int = 0) -> GameState:
    state = GameState.model_validate(INITIAL_STATE)
    if last_save_time:
        state = state.model_copy(update={"last_save_time": int(last_save_time)})
    return state


def dump_payload(state: GameState) -> Dict[str, Any]:
    """Return the JSON-ready camelCase payload for a state."""
    return state.model_dump(by_alias=True, mode="json")


def payload_fingerprint(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))
