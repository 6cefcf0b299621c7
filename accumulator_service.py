"""
Resource accumulator — the pure reducer for every player action.

Actions never mutate the state they are given; each returns an ActionResult
with the next state and an outcome code the caller can surface.  Passive
production follows a settle-on-access pattern: qi is credited from the
elapsed monotonic time since the previous settlement rather than from a
fixed per-tick constant, so a suspended or throttled client is credited
exactly for the time that passed.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from constants import (
    CLICK_BOOST_FACTIONS,
    CLICK_BOOST_FACTOR,
    FACTION_BY_ID,
    GENERATOR_BY_KEY,
    THEMES,
)
from game_models import GameState, Settings, initial_game_state
import progression_service

OUTCOME_OK = "ok"
OUTCOME_INSUFFICIENT = progression_service.OUTCOME_INSUFFICIENT
OUTCOME_UNKNOWN_GENERATOR = "unknown_generator"
OUTCOME_FACTION_LOCKED = "faction_locked"
OUTCOME_UNKNOWN_FACTION = "unknown_faction"
OUTCOME_UNKNOWN_THEME = "unknown_theme"
OUTCOME_UNKNOWN_ACTION = "unknown_action"

ACTION_CLICK = "click"
ACTION_PURCHASE = "purchase"
ACTION_BREAKTHROUGH = "breakthrough"
ACTION_SELECT_FACTION = "select_faction"
ACTION_CHANGE_SETTINGS = "change_settings"
ACTION_ACCRUE = "accrue"
ACTION_HARD_RESET = "hard_reset"


@dataclass(frozen=True)
class Action:
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ActionResult:
    state: GameState
    outcome: str = OUTCOME_OK
    detail: Dict[str, Any] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return self.outcome not in _NO_OP_OUTCOMES


_NO_OP_OUTCOMES = {
    OUTCOME_INSUFFICIENT,
    OUTCOME_UNKNOWN_GENERATOR,
    OUTCOME_FACTION_LOCKED,
    OUTCOME_UNKNOWN_FACTION,
    OUTCOME_UNKNOWN_THEME,
    OUTCOME_UNKNOWN_ACTION,
    progression_service.OUTCOME_MAX_LEVEL,
}


# ── Rates ──────────────────────────────────────────────────────────────────────

def faction_bonus(state: GameState) -> float:
    return CLICK_BOOST_FACTOR if state.faction in CLICK_BOOST_FACTIONS else 1.0


def click_power(state: GameState) -> float:
    power = 1.0
    for key, count in state.generators.items():
        generator = GENERATOR_BY_KEY.get(key)
        if generator:
            power += count * float(generator["click_power_bonus"])
    return power * state.realm.multiplier * faction_bonus(state)


def passive_rate(state: GameState) -> float:
    """Passive qi per second."""
    base = 0.0
    for key, count in state.generators.items():
        generator = GENERATOR_BY_KEY.get(key)
        if generator:
            base += count * float(generator["base_production"])
    return base * state.realm.multiplier * faction_bonus(state)


def _credit(state: GameState, amount: float) -> GameState:
    resources = state.resources.model_copy(
        update={
            "qi": state.resources.qi + amount,
            "total_qi": state.resources.total_qi + amount,
        }
    )
    return state.model_copy(update={"resources": resources})


# ── Actions ────────────────────────────────────────────────────────────────────

def apply_click(state: GameState) -> ActionResult:
    gained = click_power(state)
    return ActionResult(state=_credit(state, gained), detail={"gained": gained})


def accrue_passive(state: GameState, elapsed_s: float) -> ActionResult:
    elapsed_s = max(0.0, float(elapsed_s))
    gained = passive_rate(state) * elapsed_s
    if gained <= 0:
        return ActionResult(state=state, detail={"gained": 0.0, "elapsed_s": elapsed_s})
    return ActionResult(state=_credit(state, gained), detail={"gained": gained, "elapsed_s": elapsed_s})


def generator_price(state: GameState, key: str) -> Optional[int]:
    generator = GENERATOR_BY_KEY.get(key)
    if not generator:
        return None
    return progression_service.calculate_generator_cost(
        float(generator["base_cost"]), state.generators.get(key, 0)
    )


def purchase_generator(state: GameState, key: str) -> ActionResult:
    cost = generator_price(state, key)
    if cost is None:
        return ActionResult(state=state, outcome=OUTCOME_UNKNOWN_GENERATOR, detail={"generator": key})
    if state.resources.qi < cost:
        return ActionResult(state=state, outcome=OUTCOME_INSUFFICIENT, detail={"generator": key, "cost": cost})

    generators = dict(state.generators)
    generators[key] = generators.get(key, 0) + 1
    resources = state.resources.model_copy(update={"qi": state.resources.qi - cost})
    next_state = state.model_copy(update={"resources": resources, "generators": generators})
    return ActionResult(state=next_state, detail={"generator": key, "cost": cost, "owned": generators[key]})


def apply_breakthrough(state: GameState) -> ActionResult:
    result = progression_service.breakthrough(state)
    detail: Dict[str, Any] = {"required_qi": result.required_qi}
    if result.advanced:
        detail.update(
            {
                "realm_id": result.state.realm.id,
                "stage": result.state.realm.stage,
                "realm_name": result.state.realm.name,
                "multiplier": result.state.realm.multiplier,
            }
        )
    return ActionResult(state=result.state, outcome=result.outcome, detail=detail)


def select_faction(state: GameState, faction: str) -> ActionResult:
    if faction not in FACTION_BY_ID:
        return ActionResult(state=state, outcome=OUTCOME_UNKNOWN_FACTION, detail={"faction": faction})
    if state.faction is not None:
        return ActionResult(state=state, outcome=OUTCOME_FACTION_LOCKED, detail={"faction": state.faction})
    return ActionResult(state=state.model_copy(update={"faction": faction}), detail={"faction": faction})


def change_settings(state: GameState, theme: str) -> ActionResult:
    if theme not in THEMES:
        return ActionResult(state=state, outcome=OUTCOME_UNKNOWN_THEME, detail={"theme": theme})
    return ActionResult(state=state.model_copy(update={"settings": Settings(theme=theme)}))


def hard_reset(state: GameState) -> ActionResult:
    return ActionResult(state=initial_game_state(), detail={"previous_realm_id": state.realm.id})


_HANDLERS: Dict[str, Callable[[GameState, Dict[str, Any]], ActionResult]] = {
    ACTION_CLICK: lambda s, p: apply_click(s),
    ACTION_PURCHASE: lambda s, p: purchase_generator(s, str(p.get("generator") or "")),
    ACTION_BREAKTHROUGH: lambda s, p: apply_breakthrough(s),
    ACTION_SELECT_FACTION: lambda s, p: select_faction(s, str(p.get("faction") or "")),
    ACTION_CHANGE_SETTINGS: lambda s, p: change_settings(s, str(p.get("theme") or "")),
    ACTION_ACCRUE: lambda s, p: accrue_passive(s, float(p.get("elapsed_s") or 0.0)),
    ACTION_HARD_RESET: lambda s, p: hard_reset(s),
}


def reduce(state: GameState, action: Action) -> ActionResult:
    handler = _HANDLERS.get(action.kind)
    if handler is None:
        return ActionResult(state=state, outcome=OUTCOME_UNKNOWN_ACTION, detail={"kind": action.kind})
    return handler(state, action.payload)


# ── Passive production clock ───────────────────────────────────────────────────

class PassiveProductionClock:
    """Settle-on-access production anchored on a monotonic clock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._anchor_s = clock()

    def reset(self) -> None:
        self._anchor_s = self._clock()

    def elapsed_s(self) -> float:
        return max(0.0, self._clock() - self._anchor_s)

    def settle(self, state: GameState) -> ActionResult:
        now_s = self._clock()
        elapsed_s = max(0.0, now_s - self._anchor_s)
        self._anchor_s = now_s
        return accrue_passive(state, elapsed_s)
