"""
Save scheduler — decides when and where each state transition is persisted.

  critical   generators, realm id/stage, faction, upgrades, achievements,
             settings: written to the local cache and pushed to the remote
             store immediately.
  incidental qi/lifetime qi only: local cache every LOCAL_SAVE_INTERVAL_S,
             remote store every REMOTE_SAVE_INTERVAL_S or on manual sync.

A mostly empty state with no critical change since the last save is never
written, and after a fresh start the scheduler holds every write until the
first critical action.  Remote writes carry the full snapshot and are
last-write-wins; a superseded write is allowed to finish.
"""

import enum
import logging
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from game_models import GameState, dump_payload
from local_cache import LocalSaveCache
from save_client import RemoteSaveStore
from save_errors import AuthError, SaveValidationError, TransientNetworkError
from save_sanitizer import is_mostly_empty, with_derived_fields

LOCAL_SAVE_INTERVAL_S = float(os.environ.get("LOCAL_SAVE_INTERVAL_S", "5"))
REMOTE_SAVE_INTERVAL_S = float(os.environ.get("REMOTE_SAVE_INTERVAL_S", "60"))
LOGOUT_FLUSH_GRACE_S = float(os.environ.get("LOGOUT_FLUSH_GRACE_S", "2"))


class ChangeKind(str, enum.Enum):
    NONE = "none"
    INCIDENTAL = "incidental"
    CRITICAL = "critical"


def critical_signature(state: GameState) -> Tuple[Any, ...]:
    return (
        tuple(sorted(state.generators.items())),
        state.realm.id,
        state.realm.stage,
        state.faction,
        tuple(sorted(set(state.upgrades))),
        tuple(sorted(set(state.achievements))),
        state.settings.theme,
    )


def classify_change(previous: GameState, current: GameState) -> ChangeKind:
    if critical_signature(previous) != critical_signature(current):
        return ChangeKind.CRITICAL
    if previous.resources != current.resources:
        return ChangeKind.INCIDENTAL
    return ChangeKind.NONE


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class SyncResult:
    local_written: bool = False
    remote_written: bool = False
    skipped: bool = False
    timestamp: int = 0
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None and (self.skipped or self.remote_written)


class SaveScheduler:
    def __init__(
        self,
        local: LocalSaveCache,
        remote: RemoteSaveStore,
        *,
        dispatch: Optional[Callable[[Callable[[], None]], Any]] = None,
        wall_clock_ms: Callable[[], int] = now_ms,
        monotonic: Callable[[], float] = time.monotonic,
        on_session_invalidated: Optional[Callable[[], None]] = None,
        local_interval_s: float = LOCAL_SAVE_INTERVAL_S,
        remote_interval_s: float = REMOTE_SAVE_INTERVAL_S,
    ) -> None:
        self._local = local
        self._remote = remote
        self._wall_clock_ms = wall_clock_ms
        self._monotonic = monotonic
        self._on_session_invalidated = on_session_invalidated
        self.local_interval_s = local_interval_s
        self.remote_interval_s = remote_interval_s

        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: List[Future] = []
        self._dispatch = dispatch or self._submit
        self._lock = threading.Lock()

        self._current: Optional[GameState] = None
        self._last_saved: Optional[GameState] = None
        self._held = False
        self._last_stamp_ms = 0
        self._last_local_s = 0.0
        self._last_remote_s = 0.0

        self.remote_writes = 0
        self.remote_failures = 0
        self.last_remote_error: Optional[Exception] = None

    # ---------- lifecycle ----------

    def start(self, state: GameState, *, hold_until_critical: bool = False) -> None:
        now_s = self._monotonic()
        with self._lock:
            self._current = state
            self._last_saved = state
            self._held = hold_until_critical
            self._last_stamp_ms = state.last_save_time
            self._last_local_s = now_s
            self._last_remote_s = now_s
            self.remote_writes = 0
            self.remote_failures = 0
            self.last_remote_error = None

    def shutdown(self, timeout_s: Optional[float] = LOGOUT_FLUSH_GRACE_S) -> int:
        """Stop the push worker, waiting at most ``timeout_s`` for submitted pushes.

        Pushes still queued after the deadline are cancelled; one already in
        flight is left to finish on its own.  Returns how many were unfinished.
        """
        executor = self._executor
        if executor is None:
            return 0
        self._executor = None
        with self._lock:
            pending = [f for f in self._pending if not f.done()]
            self._pending = []
        unfinished = 0
        if pending:
            _, not_done = wait(pending, timeout=timeout_s)
            unfinished = len(not_done)
            if unfinished:
                logging.warning("Dropping %d unfinished remote saves at shutdown", unfinished)
        executor.shutdown(wait=False, cancel_futures=True)
        return unfinished

    @property
    def held(self) -> bool:
        return self._held

    @property
    def last_saved(self) -> Optional[GameState]:
        return self._last_saved

    def remote_health(self) -> Tuple[int, Optional[Exception]]:
        """(accepted remote writes since start, last remote error or None)."""
        with self._lock:
            return self.remote_writes, self.last_remote_error

    # ---------- observation ----------

    def observe(self, state: GameState) -> ChangeKind:
        """Record a reducer output; critical changes are persisted immediately."""
        with self._lock:
            self._current = state
            if self._last_saved is None:
                return ChangeKind.NONE
            kind = classify_change(self._last_saved, state)
            if kind != ChangeKind.CRITICAL:
                return kind
            stamped = self._stamp(state)
            self._last_saved = stamped
            self._held = False
            self._last_local_s = self._monotonic()
        logging.info("Critical state change detected; saving immediately")
        payload = dump_payload(stamped)
        self._local.write(payload)
        self._dispatch(lambda: self._push_remote(payload))
        return kind

    def tick(self) -> Dict[str, bool]:
        """Run the periodic local/remote saves that are due."""
        written = {"local": False, "remote": False}
        now_s = self._monotonic()
        with self._lock:
            state = self._current
            if state is None or self._held or self._guarded(state):
                return written
            local_due = now_s - self._last_local_s >= self.local_interval_s
            remote_due = now_s - self._last_remote_s >= self.remote_interval_s
            if not (local_due or remote_due):
                return written
            stamped = self._stamp(state)
            if local_due:
                self._last_local_s = now_s
            if remote_due:
                self._last_remote_s = now_s
                self._last_saved = stamped

        payload = dump_payload(stamped)
        if local_due:
            written["local"] = self._local.write(payload)
        if remote_due:
            logging.info("Periodic remote save")
            self._dispatch(lambda: self._push_remote(payload))
            written["remote"] = True
        return written

    # ---------- explicit saves ----------

    def manual_sync(self) -> SyncResult:
        """Serialize, write the local cache, then try the remote store.

        A remote failure leaves the local cache as the durable copy and is
        reported on the result rather than raised.
        """
        with self._lock:
            state = self._current
            if state is None or self._guarded(state):
                return SyncResult(skipped=True)
            stamped = self._stamp(state)
        payload = dump_payload(stamped)
        local_written = self._local.write(payload)
        error = self._try_remote(payload)
        if error is None:
            with self._lock:
                self._last_saved = stamped
                self._last_remote_s = self._monotonic()
        return SyncResult(
            local_written=local_written,
            remote_written=error is None,
            timestamp=stamped.last_save_time,
            error=error,
        )

    def force_save(self, state: GameState) -> SyncResult:
        """Overwrite both stores with ``state``, bypassing every guard."""
        now_s = self._monotonic()
        with self._lock:
            stamped = self._stamp(state)
            self._current = stamped
            self._last_saved = stamped
            self._held = False
            self._last_local_s = now_s
            self._last_remote_s = now_s
        payload = dump_payload(stamped)
        local_written = self._local.write(payload)
        error = self._try_remote(payload)
        return SyncResult(
            local_written=local_written,
            remote_written=error is None,
            timestamp=stamped.last_save_time,
            error=error,
        )

    def flush_on_logout(self, grace_s: float = LOGOUT_FLUSH_GRACE_S, *, force: bool = False) -> bool:
        """Last remote flush before the session is torn down; never raises.

        ``force`` skips the empty-state guard, for when queued pushes were
        dropped and this flush is the only remaining copy of them.
        """
        with self._lock:
            state = self._current
            if state is None:
                return False
            if not force and (self._held or self._guarded(state)):
                return False
            stamped = self._stamp(state)
        payload = dump_payload(stamped)
        self._local.write(payload)

        result: Dict[str, Optional[Exception]] = {}

        def _flush() -> None:
            result["error"] = self._try_remote(payload, timeout_s=grace_s)

        worker = threading.Thread(target=_flush, name="save-logout-flush", daemon=True)
        worker.start()
        worker.join(grace_s)
        if worker.is_alive():
            logging.warning("Logout save flush did not finish within %.1fs", grace_s)
            return False
        if result.get("error") is not None:
            logging.warning("Logout save flush failed: %s", result["error"])
            return False
        with self._lock:
            self._last_saved = stamped
        return True

    # ---------- internals ----------

    def _guarded(self, state: GameState) -> bool:
        if not is_mostly_empty(state):
            return False
        return self._last_saved is None or classify_change(self._last_saved, state) != ChangeKind.CRITICAL

    def _stamp(self, state: GameState) -> GameState:
        stamp = max(int(self._wall_clock_ms()), self._last_stamp_ms)
        self._last_stamp_ms = stamp
        return with_derived_fields(state).model_copy(update={"last_save_time": stamp})

    def _submit(self, fn: Callable[[], None]) -> Future:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="save-push")
        future = self._executor.submit(fn)
        with self._lock:
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)
        return future

    def _try_remote(self, payload: Dict[str, Any], timeout_s: Optional[float] = None) -> Optional[Exception]:
        try:
            self._remote.push(payload, timeout_s=timeout_s)
        except AuthError as exc:
            logging.warning("Save store rejected the session")
            self._record_failure(exc)
            if self._on_session_invalidated is not None:
                self._on_session_invalidated()
            return exc
        except (TransientNetworkError, SaveValidationError) as exc:
            logging.warning("Remote save failed: %s", exc)
            self._record_failure(exc)
            return exc
        with self._lock:
            self.remote_writes += 1
            self.last_remote_error = None
        return None

    def _push_remote(self, payload: Dict[str, Any]) -> None:
        self._try_remote(payload)

    def _record_failure(self, exc: Exception) -> None:
        with self._lock:
            self.remote_failures += 1
            self.last_remote_error = exc
