"""
Client game session — owns the single in-memory GameState.

Every action goes through the pure reducer under one lock, and the reducer
output is handed to the save scheduler.  Nothing can be played until the
reconciliation engine has produced the canonical state; while loading is in
ERROR the session stays blocked until ``retry_load`` succeeds.
"""

import logging
import threading
from typing import Callable, Optional

import accumulator_service
from accumulator_service import Action, ActionResult, PassiveProductionClock
from game_models import GameState
from local_cache import LocalSaveCache
from reconciliation_service import LoadPhase, ReconcileOutcome, ReconciliationEngine
from save_client import RemoteSaveStore
from save_errors import AuthError, SessionNotReadyError
from save_scheduler import LOGOUT_FLUSH_GRACE_S, ChangeKind, SaveScheduler, SyncResult


class GameSession:
    def __init__(
        self,
        local: LocalSaveCache,
        remote: RemoteSaveStore,
        *,
        scheduler: Optional[SaveScheduler] = None,
        production_clock: Optional[PassiveProductionClock] = None,
        on_session_invalidated: Optional[Callable[[], None]] = None,
    ) -> None:
        self._on_session_invalidated = on_session_invalidated
        self._engine = ReconciliationEngine(local, remote)
        self._scheduler = scheduler or SaveScheduler(
            local, remote, on_session_invalidated=self._session_invalidated
        )
        self._production = production_clock or PassiveProductionClock()
        self._lock = threading.RLock()
        self._state: Optional[GameState] = None
        self._outcome: Optional[ReconcileOutcome] = None
        self.auth_required = False

    # ---------- status ----------

    @property
    def phase(self) -> LoadPhase:
        return self._engine.phase

    @property
    def ready(self) -> bool:
        return self._state is not None and self._engine.phase == LoadPhase.RECONCILED

    @property
    def degraded(self) -> bool:
        """True while the remote store is known to be behind the local copy."""
        remote_writes, last_error = self._scheduler.remote_health()
        if last_error is not None:
            return True
        return self._outcome is not None and self._outcome.degraded and remote_writes == 0

    @property
    def last_error(self) -> Optional[Exception]:
        return self._engine.last_error

    @property
    def state(self) -> GameState:
        self._require_ready()
        return self._state

    @property
    def scheduler(self) -> SaveScheduler:
        return self._scheduler

    # ---------- loading ----------

    def load(self) -> ReconcileOutcome:
        with self._lock:
            try:
                outcome = self._engine.reconcile()
            except AuthError:
                self._session_invalidated()
                raise
            self.auth_required = False
            self._outcome = outcome
            self._state = outcome.state
            self._scheduler.start(outcome.state, hold_until_critical=outcome.fresh)
            self._production.reset()
            return outcome

    def retry_load(self) -> ReconcileOutcome:
        if self.ready:
            return self._outcome
        return self.load()

    # ---------- actions ----------

    def dispatch(self, action: Action) -> ActionResult:
        with self._lock:
            self._require_ready()
            result = accumulator_service.reduce(self._state, action)
            self._state = result.state
            self._scheduler.observe(result.state)
            return result

    def click(self) -> ActionResult:
        return self.dispatch(Action(accumulator_service.ACTION_CLICK))

    def purchase(self, generator: str) -> ActionResult:
        return self.dispatch(Action(accumulator_service.ACTION_PURCHASE, {"generator": generator}))

    def breakthrough(self) -> ActionResult:
        return self.dispatch(Action(accumulator_service.ACTION_BREAKTHROUGH))

    def select_faction(self, faction: str) -> ActionResult:
        return self.dispatch(Action(accumulator_service.ACTION_SELECT_FACTION, {"faction": faction}))

    def change_theme(self, theme: str) -> ActionResult:
        return self.dispatch(Action(accumulator_service.ACTION_CHANGE_SETTINGS, {"theme": theme}))

    def settle_passive(self) -> ActionResult:
        with self._lock:
            self._require_ready()
            result = self._production.settle(self._state)
            self._state = result.state
            self._scheduler.observe(result.state)
            return result

    def tick(self) -> ChangeKind:
        """Credit passive production and run any periodic saves that are due."""
        result = self.settle_passive()
        self._scheduler.tick()
        return ChangeKind.INCIDENTAL if result.detail.get("gained") else ChangeKind.NONE

    # ---------- persistence ----------

    def sync(self) -> SyncResult:
        self._require_ready()
        return self._scheduler.manual_sync()

    def hard_reset(self) -> SyncResult:
        """Start over, overwriting both stores so the old save cannot come back."""
        with self._lock:
            self._require_ready()
            result = accumulator_service.reduce(self._state, Action(accumulator_service.ACTION_HARD_RESET))
            sync = self._scheduler.force_save(result.state)
            self._state = self._scheduler.last_saved
            self._production.reset()
        if sync.error is not None:
            logging.warning("Hard reset reached the local cache only: %s", sync.error)
        return sync

    def logout(self, grace_s: float = LOGOUT_FLUSH_GRACE_S) -> bool:
        """Flush and tear down within roughly ``grace_s``, whatever the store does.

        Queued background pushes are dropped first; the flush carries a newer
        full snapshot, so it is forced through when anything was dropped.
        """
        flushed = False
        dropped = self._scheduler.shutdown(timeout_s=0)
        if self.ready:
            self.settle_passive()
            flushed = self._scheduler.flush_on_logout(grace_s, force=dropped > 0)
        self._scheduler.shutdown(timeout_s=0)
        with self._lock:
            self._state = None
            self._outcome = None
            self._engine.phase = LoadPhase.UNLOADED
        return flushed

    # ---------- internals ----------

    def _require_ready(self) -> None:
        if not self.ready:
            raise SessionNotReadyError(f"Game state is not loaded (phase={self._engine.phase.value})")

    def _session_invalidated(self) -> None:
        self.auth_required = True
        if self._on_session_invalidated is not None:
            self._on_session_invalidated()
