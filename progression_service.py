"""
Progression model — pure realm/stage math and the breakthrough transition.

Multiplier model:
  - World bonus:  x(1 + world_index)
  - Major realm:  x1.9 per realm above the first
  - Minor stage:  x1.5 per stage above the first

Breakthrough threshold grows 2.5x per cumulative stage ("total step") from a
100k base.  A successful breakthrough spends the threshold and carries the
remaining qi forward; lifetime qi is never reduced.

Nothing in here performs I/O or raises on a validated GameState.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from constants import (
    BREAKTHROUGH_DISCOUNT_FACTOR,
    GENERATOR_COST_GROWTH,
    MULTIPLIER_ROUNDING_THRESHOLD,
    QI_DISCOUNT_FACTIONS,
    REALM_BY_ID,
    REALM_MULTIPLIER_BASE,
    REALMS,
    REQUIRED_QI_BASE,
    REQUIRED_QI_GROWTH,
    STAGE_MULTIPLIER_BASE,
    WORLD_MULTIPLIER_STEP,
)
from game_models import GameState, RealmState

OUTCOME_MINOR = "minor_breakthrough"
OUTCOME_MAJOR = "major_breakthrough"
OUTCOME_INSUFFICIENT = "insufficient_qi"
OUTCOME_MAX_LEVEL = "max_level"


@dataclass(frozen=True)
class BreakthroughResult:
    state: GameState
    outcome: str
    required_qi: float

    @property
    def advanced(self) -> bool:
        return self.outcome in (OUTCOME_MINOR, OUTCOME_MAJOR)


# ── Catalog lookups ────────────────────────────────────────────────────────────

def get_realm(realm_id: int) -> Optional[Dict[str, Any]]:
    return REALM_BY_ID.get(int(realm_id))


def get_next_realm(realm_id: int) -> Optional[Dict[str, Any]]:
    return REALM_BY_ID.get(int(realm_id) + 1)


def stages_of(realm_id: int) -> int:
    realm = get_realm(realm_id)
    return int(realm["stages"]) if realm else 0


def world_index_of(realm_id: int) -> int:
    realm = get_realm(realm_id)
    return int(realm["world_index"]) if realm else 0


# ── Formulas ───────────────────────────────────────────────────────────────────

def calculate_multiplier(realm_id: int, stage: int, world_index: int) -> float:
    world_mult = 1 + WORLD_MULTIPLIER_STEP * world_index
    realm_mult = REALM_MULTIPLIER_BASE ** (realm_id - 1)
    stage_mult = STAGE_MULTIPLIER_BASE ** (stage - 1)
    total = world_mult * realm_mult * stage_mult
    if total > MULTIPLIER_ROUNDING_THRESHOLD:
        return float(round(total))
    return round(total, 2)


def total_steps(realm_id: int, stage: int) -> int:
    """Stages cleared before reaching (realm_id, stage)."""
    steps = sum(int(r["stages"]) for r in REALMS if r["id"] < realm_id)
    return steps + (stage - 1)


def calculate_required_qi(realm_id: int, stage: int) -> int:
    return math.floor(REQUIRED_QI_BASE * REQUIRED_QI_GROWTH ** total_steps(realm_id, stage))


def calculate_generator_cost(base_cost: float, owned_count: int) -> int:
    return math.floor(base_cost * GENERATOR_COST_GROWTH ** max(0, int(owned_count)))


def realm_snapshot(realm_id: int, stage: int) -> RealmState:
    """Build a RealmState whose cached fields are derived from (realm_id, stage)."""
    realm = REALM_BY_ID[int(realm_id)]
    return RealmState(
        id=int(realm_id),
        stage=int(stage),
        name=str(realm["name"]),
        world=str(realm["world"]),
        multiplier=calculate_multiplier(int(realm_id), int(stage), int(realm["world_index"])),
    )


def breakthrough_cost(state: GameState) -> float:
    required = float(calculate_required_qi(state.realm.id, state.realm.stage))
    if state.faction in QI_DISCOUNT_FACTIONS:
        required *= BREAKTHROUGH_DISCOUNT_FACTOR
    return required


# ── Breakthrough transition ────────────────────────────────────────────────────

def next_position(realm_id: int, stage: int) -> Optional[tuple]:
    """Return the (realm_id, stage) after a breakthrough, or None at the apex."""
    if stage < stages_of(realm_id):
        return realm_id, stage + 1
    if get_next_realm(realm_id) is None:
        return None
    return realm_id + 1, 1


def breakthrough(state: GameState) -> BreakthroughResult:
    required = breakthrough_cost(state)
    if state.resources.qi < required:
        return BreakthroughResult(state=state, outcome=OUTCOME_INSUFFICIENT, required_qi=required)

    position = next_position(state.realm.id, state.realm.stage)
    if position is None:
        return BreakthroughResult(state=state, outcome=OUTCOME_MAX_LEVEL, required_qi=required)

    next_realm_id, next_stage = position
    resources = state.resources.model_copy(update={"qi": state.resources.qi - required})
    advanced = state.model_copy(
        update={"resources": resources, "realm": realm_snapshot(next_realm_id, next_stage)}
    )
    outcome = OUTCOME_MAJOR if next_realm_id > state.realm.id else OUTCOME_MINOR
    return BreakthroughResult(state=advanced, outcome=outcome, required_qi=required)


# ── Display helpers ────────────────────────────────────────────────────────────

_NUMBER_SUFFIXES = ["k", "M", "B", "T", "Qa", "Qi", "Sx", "Sp", "Oc", "No", "Dc", "Ud", "Dd", "Td"]


def format_number(num: float) -> str:
    if num < 1000:
        return str(int(math.floor(num)))
    digits = len(str(int(math.floor(num))))
    suffix_index = (digits - 1) // 3
    if suffix_index > len(_NUMBER_SUFFIXES):
        return "Infinite"
    short_value = float(f"{num / 1000 ** suffix_index:.3g}")
    if short_value.is_integer():
        return f"{int(short_value)}{_NUMBER_SUFFIXES[suffix_index - 1]}"
    return f"{round(short_value, 1)}{_NUMBER_SUFFIXES[suffix_index - 1]}"
