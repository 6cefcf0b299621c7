"""
Reconciliation engine — picks the canonical state at startup.

Phases: UNLOADED -> LOADING -> RECONCILED, or LOADING -> ERROR (retryable).

Both stores are read concurrently.  The snapshot with the strictly newer
lastSaveTime wins and a tie goes to the local cache.  Whichever store lost (or
never had the data) is overwritten with the winner's sanitized payload, so
running the same pair through twice leaves both stores unchanged the second
time.  A fresh player with no save anywhere gets the initial state and
nothing is written until the first critical action.

A remote failure is only fatal when there is no local data to fall back on;
in that case the engine refuses to invent a blank state and stays in ERROR
until retried.  A 401 is not a data problem and propagates as AuthError.
"""

import enum
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Optional

from game_models import GameState, dump_payload, initial_game_state, payload_fingerprint
from local_cache import LocalSaveCache
from save_client import RemoteSaveStore
from save_errors import AuthError, LegacySaveError, SaveValidationError, TransientNetworkError
from save_sanitizer import sanitize_state

SOURCE_LOCAL = "local"
SOURCE_REMOTE = "remote"
SOURCE_INITIAL = "initial"


class LoadPhase(str, enum.Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    RECONCILED = "reconciled"
    ERROR = "error"


@dataclass(frozen=True)
class ReconcileOutcome:
    state: GameState
    source: str
    repaired_local: bool = False
    repaired_remote: bool = False
    degraded: bool = False

    @property
    def fresh(self) -> bool:
        return self.source == SOURCE_INITIAL


def _load_snapshot(raw: Optional[Dict[str, Any]], source: str) -> Optional[GameState]:
    if raw is None:
        return None
    try:
        return sanitize_state(raw)
    except LegacySaveError:
        logging.info("Legacy %s save detected; treating it as absent", source)
    except SaveValidationError as exc:
        logging.warning("Discarding invalid %s save: %s", source, exc)
    return None


def _same(raw: Optional[Dict[str, Any]], payload: Dict[str, Any]) -> bool:
    return raw is not None and payload_fingerprint(raw) == payload_fingerprint(payload)


def choose_winner(local: Optional[GameState], remote: Optional[GameState]) -> Optional[str]:
    """Return SOURCE_LOCAL / SOURCE_REMOTE, or None when neither exists."""
    if local is not None and remote is not None:
        return SOURCE_REMOTE if remote.last_save_time > local.last_save_time else SOURCE_LOCAL
    if remote is not None:
        return SOURCE_REMOTE
    if local is not None:
        return SOURCE_LOCAL
    return None


class ReconciliationEngine:
    def __init__(self, local: LocalSaveCache, remote: RemoteSaveStore) -> None:
        self._local = local
        self._remote = remote
        self.phase = LoadPhase.UNLOADED
        self.last_error: Optional[Exception] = None
        self.outcome: Optional[ReconcileOutcome] = None

    @property
    def retryable(self) -> bool:
        return self.phase == LoadPhase.ERROR

    def reconcile(self) -> ReconcileOutcome:
        self.phase = LoadPhase.LOADING
        self.last_error = None
        remote_error: Optional[TransientNetworkError] = None
        remote_raw: Optional[Dict[str, Any]] = None

        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="save-fetch") as pool:
            remote_future = pool.submit(self._remote.fetch_latest)
            local_raw = self._local.read()
            try:
                remote_raw = remote_future.result()
            except AuthError:
                self.phase = LoadPhase.UNLOADED
                raise
            except TransientNetworkError as exc:
                remote_error = exc

        local_state = _load_snapshot(local_raw, SOURCE_LOCAL)

        if remote_error is not None:
            if local_state is None:
                logging.warning("Remote save unavailable and no local save; blocking load: %s", remote_error)
                self.phase = LoadPhase.ERROR
                self.last_error = remote_error
                raise remote_error
            logging.warning("Remote save unavailable; continuing from local cache: %s", remote_error)
            payload = dump_payload(local_state)
            repaired_local = not _same(local_raw, payload) and self._local.write(payload)
            return self._finish(
                ReconcileOutcome(local_state, SOURCE_LOCAL, repaired_local=repaired_local, degraded=True)
            )

        remote_state = _load_snapshot(remote_raw, SOURCE_REMOTE)
        winner = choose_winner(local_state, remote_state)

        if winner is None:
            logging.info("No save found; starting fresh without writing")
            return self._finish(ReconcileOutcome(initial_game_state(), SOURCE_INITIAL))

        state = local_state if winner == SOURCE_LOCAL else remote_state
        payload = dump_payload(state)
        logging.info("Loading save from %s (lastSaveTime=%s)", winner, state.last_save_time)

        repaired_local = False
        if not _same(local_raw, payload):
            repaired_local = self._local.write(payload)

        repaired_remote = False
        degraded = False
        if not _same(remote_raw, payload):
            try:
                self._remote.push(payload)
                repaired_remote = True
            except AuthError:
                self.phase = LoadPhase.UNLOADED
                raise
            except (TransientNetworkError, SaveValidationError) as exc:
                logging.warning("Could not repair remote save: %s", exc)
                degraded = True

        return self._finish(
            ReconcileOutcome(
                state,
                winner,
                repaired_local=repaired_local,
                repaired_remote=repaired_remote,
                degraded=degraded,
            )
        )

    def _finish(self, outcome: ReconcileOutcome) -> ReconcileOutcome:
        self.phase = LoadPhase.RECONCILED
        self.outcome = outcome
        return outcome
