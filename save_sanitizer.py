"""
State sanitizer — turns a loaded snapshot into a structurally valid GameState.

Rules, in order:
  1. The payload must be a JSON object.
  2. Legacy saves (realm stored as a bare name, no id) are rejected with
     LegacySaveError; loaders treat them as "no save".
  3. A realm block without an id resets to the initial state, keeping the
     stored settings when they are valid.
  4. Generator keys outside the catalog are dropped; missing keys become 0.
  5. Realm name/world/multiplier are recomputed from (id, stage).
  6. Upgrade and achievement ids are de-duplicated.
  7. stats.qiPerTap is recomputed.
Anything else that is out of range raises SaveValidationError; it is never
coerced.
"""

import copy
import logging
from typing import Any, Dict, Mapping

from pydantic import ValidationError

from constants import GENERATOR_BY_KEY, GENERATOR_KEYS, MIN_REALM_ID, THEMES
from game_models import GameState, Settings, Stats, initial_game_state
from save_errors import LegacySaveError, SaveValidationError
import accumulator_service
import progression_service


def is_legacy_payload(raw: Mapping[str, Any]) -> bool:
    realm = raw.get("realm")
    if isinstance(realm, str):
        return True
    if isinstance(realm, Mapping):
        return isinstance(realm.get("name"), str) and realm.get("id") in (None, "")
    return False


def _clean_generators(raw_generators: Any) -> Dict[str, Any]:
    if raw_generators is None:
        raw_generators = {}
    if not isinstance(raw_generators, Mapping):
        raise SaveValidationError("generators must be an object")
    dropped = sorted(k for k in raw_generators if k not in GENERATOR_BY_KEY)
    if dropped:
        logging.info("Dropping orphaned generator keys from save: %s", ", ".join(dropped))
    return {key: raw_generators.get(key) or 0 for key in GENERATOR_KEYS}


def _reset_keeping_settings(raw: Mapping[str, Any]) -> GameState:
    state = initial_game_state()
    settings = raw.get("settings")
    if isinstance(settings, Mapping) and settings.get("theme") in THEMES:
        state = state.model_copy(update={"settings": Settings(theme=settings["theme"])})
    return state


def with_derived_fields(state: GameState) -> GameState:
    """Overwrite every cached/derived field from the authoritative ones."""
    realm = progression_service.realm_snapshot(state.realm.id, state.realm.stage)
    state = state.model_copy(update={"realm": realm})
    return state.model_copy(update={"stats": Stats(qi_per_tap=accumulator_service.click_power(state))})


def sanitize_state(raw: Any) -> GameState:
    if isinstance(raw, GameState):
        return with_derived_fields(raw)
    if not isinstance(raw, Mapping):
        raise SaveValidationError("Save payload was not an object.")
    if is_legacy_payload(raw):
        raise LegacySaveError("Save uses the legacy realm layout.")

    payload = copy.deepcopy(dict(raw))
    realm = payload.get("realm")
    if not isinstance(realm, Mapping) or not realm.get("id"):
        logging.warning("Save has no realm id; resetting progression")
        return with_derived_fields(_reset_keeping_settings(payload))

    payload["generators"] = _clean_generators(payload.get("generators"))
    realm = dict(realm)
    realm.setdefault("stage", 1)
    payload["realm"] = realm
    payload.setdefault("lastSaveTime", 0)

    try:
        state = GameState.model_validate(payload)
    except ValidationError as exc:
        raise SaveValidationError(_describe(exc)) from exc
    return with_derived_fields(state)


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc or 'save'}: {err.get('msg')}")
    return "Invalid save: " + "; ".join(parts)


def is_mostly_empty(state: GameState) -> bool:
    """True for a blank slate: no generators, floor realm, no lifetime qi."""
    return (
        all(count == 0 for count in state.generators.values())
        and state.realm.id == MIN_REALM_ID
        and state.realm.stage == 1
        and state.resources.total_qi <= 0
    )
