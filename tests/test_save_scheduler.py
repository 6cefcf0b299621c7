"""
Save scheduler tests — change classification, save cadence, the empty-state
guard, manual sync, forced saves and the bounded logout flush.
"""

import threading
import time

import pytest

from save_errors import AuthError, TransientNetworkError
from save_scheduler import ChangeKind, classify_change


# ── Classification ────────────────────────────────────────────────────────

class TestClassifyChange:
    def test_identical(self, helpers):
        state = helpers.build_state(qi=5)
        assert classify_change(state, state) == ChangeKind.NONE

    def test_qi_only_is_incidental(self, helpers):
        before = helpers.build_state(qi=5)
        after = helpers.build_state(qi=6, total_qi=6)
        assert classify_change(before, after) == ChangeKind.INCIDENTAL

    @pytest.mark.parametrize(
        "change",
        [
            {"generators": {"meditation_mat": 1}},
            {"stage": 2},
            {"realm_id": 2},
            {"faction": "heavenly"},
            {"upgrades": ["jade_slip"]},
            {"theme": "light"},
        ],
    )
    def test_critical_fields(self, helpers, change):
        before = helpers.build_state(qi=5)
        after = helpers.build_state(qi=5, **change)
        assert classify_change(before, after) == ChangeKind.CRITICAL


# ── Cadence ───────────────────────────────────────────────────────────────

class TestCadence:
    def test_critical_change_saves_both_stores_immediately(
        self, make_scheduler, local_cache, remote_store, helpers, wall_ms
    ):
        scheduler = make_scheduler()
        scheduler.start(helpers.build_state(qi=20, last_save_time=10))

        kind = scheduler.observe(helpers.build_state(qi=5, total_qi=20, generators={"meditation_mat": 1}))

        assert kind == ChangeKind.CRITICAL
        assert len(local_cache.writes) == 1
        assert len(remote_store.pushes) == 1
        assert remote_store.pushes[0]["generators"]["meditation_mat"] == 1
        assert remote_store.pushes[0]["lastSaveTime"] == int(wall_ms())
        assert scheduler.last_saved.last_save_time == int(wall_ms())

    def test_incidental_change_waits_for_interval(self, make_scheduler, local_cache, remote_store, helpers, monotonic):
        scheduler = make_scheduler()
        scheduler.start(helpers.build_state(qi=20, generators={"meditation_mat": 1}))
        scheduler.observe(helpers.build_state(qi=21, total_qi=21, generators={"meditation_mat": 1}))

        assert scheduler.tick() == {"local": False, "remote": False}
        assert local_cache.writes == []

        monotonic.advance(5)
        assert scheduler.tick() == {"local": True, "remote": False}
        assert local_cache.read()["resources"]["qi"] == 21
        assert remote_store.pushes == []

        monotonic.advance(55)
        written = scheduler.tick()
        assert written["remote"]
        assert remote_store.payload["resources"]["qi"] == 21

    def test_timestamps_never_go_backwards(self, make_scheduler, remote_store, helpers, wall_ms):
        scheduler = make_scheduler()
        scheduler.start(helpers.build_state(qi=20))
        scheduler.observe(helpers.build_state(qi=20, theme="light"))
        first = remote_store.pushes[-1]["lastSaveTime"]

        wall_ms.advance(-60_000)
        scheduler.observe(helpers.build_state(qi=20, theme="dark"))

        assert remote_store.pushes[-1]["lastSaveTime"] >= first

    def test_stamp_never_precedes_loaded_save(self, make_scheduler, remote_store, helpers, wall_ms):
        scheduler = make_scheduler()
        future = int(wall_ms()) + 10_000
        scheduler.start(helpers.build_state(qi=20, last_save_time=future))
        scheduler.observe(helpers.build_state(qi=20, theme="light"))
        assert remote_store.pushes[-1]["lastSaveTime"] == future

    def test_payload_carries_derived_fields(self, make_scheduler, remote_store, helpers):
        scheduler = make_scheduler()
        scheduler.start(helpers.build_state(qi=20))
        after = helpers.build_state(qi=20, generators={"spirit_well": 1})
        scheduler.observe(after.model_copy(update={"stats": after.stats.model_copy(update={"qi_per_tap": 0.0})}))
        assert remote_store.pushes[-1]["stats"]["qiPerTap"] == 9.0


# ── Empty-state guard ─────────────────────────────────────────────────────

class TestEmptyStateGuard:
    def test_fresh_start_is_held(self, make_scheduler, local_cache, remote_store, helpers, monotonic):
        scheduler = make_scheduler()
        scheduler.start(helpers.build_state(), hold_until_critical=True)
        assert scheduler.held

        scheduler.observe(helpers.build_state(qi=3, total_qi=3))
        monotonic.advance(600)
        assert scheduler.tick() == {"local": False, "remote": False}
        assert local_cache.writes == []
        assert remote_store.pushes == []

    def test_first_critical_action_releases_hold(self, make_scheduler, remote_store, helpers, monotonic):
        scheduler = make_scheduler()
        scheduler.start(helpers.build_state(), hold_until_critical=True)

        scheduler.observe(helpers.build_state(qi=0, total_qi=15, generators={"meditation_mat": 1}))

        assert not scheduler.held
        assert len(remote_store.pushes) == 1

    def test_empty_state_is_never_synced(self, make_scheduler, local_cache, remote_store, helpers, monotonic):
        scheduler = make_scheduler()
        scheduler.start(helpers.build_state())
        monotonic.advance(600)

        assert scheduler.tick() == {"local": False, "remote": False}
        assert scheduler.manual_sync().skipped
        assert not scheduler.flush_on_logout(0.5)
        assert local_cache.writes == []
        assert remote_store.pushes == []

    def test_settings_change_on_empty_state_is_saved(self, make_scheduler, remote_store, helpers):
        scheduler = make_scheduler()
        scheduler.start(helpers.build_state(), hold_until_critical=True)
        scheduler.observe(helpers.build_state(theme="light"))
        assert remote_store.payload["settings"]["theme"] == "light"


# ── Manual sync & forced saves ────────────────────────────────────────────

class TestExplicitSaves:
    def test_manual_sync_writes_both(self, make_scheduler, local_cache, remote_store, helpers, wall_ms):
        scheduler = make_scheduler()
        scheduler.start(helpers.build_state(qi=40, generators={"meditation_mat": 2}))

        result = scheduler.manual_sync()

        assert result.ok
        assert result.local_written
        assert result.remote_written
        assert result.timestamp == int(wall_ms())
        assert local_cache.read() == remote_store.payload

    def test_manual_sync_failure_keeps_local_copy(self, make_scheduler, local_cache, remote_store, helpers):
        scheduler = make_scheduler()
        scheduler.start(helpers.build_state(qi=40, generators={"meditation_mat": 2}))
        remote_store.push_error = TransientNetworkError("offline")

        result = scheduler.manual_sync()

        assert not result.ok
        assert result.local_written
        assert isinstance(result.error, TransientNetworkError)
        assert local_cache.read()["resources"]["qi"] == 40
        assert scheduler.remote_failures == 1
        assert scheduler.last_remote_error is result.error

    def test_recovery_clears_last_error(self, make_scheduler, remote_store, helpers):
        scheduler = make_scheduler()
        scheduler.start(helpers.build_state(qi=40, generators={"meditation_mat": 2}))
        remote_store.push_error = TransientNetworkError("offline")
        scheduler.manual_sync()

        remote_store.push_error = None
        assert scheduler.manual_sync().ok
        assert scheduler.last_remote_error is None
        assert scheduler.remote_writes == 1

    def test_force_save_bypasses_guard(self, make_scheduler, local_cache, remote_store, helpers):
        scheduler = make_scheduler()
        scheduler.start(helpers.build_state(qi=900, generators={"spirit_well": 4}, last_save_time=50))

        result = scheduler.force_save(helpers.build_state())

        assert result.ok
        assert remote_store.payload["generators"]["spirit_well"] == 0
        assert local_cache.read()["generators"]["spirit_well"] == 0
        assert remote_store.payload["lastSaveTime"] > 50

    def test_expired_session_triggers_callback(self, make_scheduler, remote_store, helpers):
        calls = []
        scheduler = make_scheduler(on_session_invalidated=lambda: calls.append(True))
        scheduler.start(helpers.build_state(qi=40, generators={"meditation_mat": 2}))
        remote_store.push_error = AuthError("Authentication required")

        result = scheduler.manual_sync()

        assert isinstance(result.error, AuthError)
        assert calls == [True]


# ── Logout flush ──────────────────────────────────────────────────────────

class TestLogoutFlush:
    def test_flush_succeeds(self, make_scheduler, remote_store, helpers):
        scheduler = make_scheduler()
        scheduler.start(helpers.build_state(qi=40, generators={"meditation_mat": 2}))
        assert scheduler.flush_on_logout(1.0)
        assert remote_store.payload["resources"]["qi"] == 40

    def test_slow_store_does_not_block_logout(self, make_scheduler, local_cache, remote_store, helpers):
        scheduler = make_scheduler()
        scheduler.start(helpers.build_state(qi=40, generators={"meditation_mat": 2}))
        remote_store.push_delay_s = 1.0

        started = time.monotonic()
        flushed = scheduler.flush_on_logout(0.05)

        assert not flushed
        assert time.monotonic() - started < 0.9
        assert local_cache.read()["resources"]["qi"] == 40

    def test_failed_flush_returns_false(self, make_scheduler, remote_store, helpers):
        scheduler = make_scheduler()
        scheduler.start(helpers.build_state(qi=40, generators={"meditation_mat": 2}))
        remote_store.push_error = TransientNetworkError("offline")
        assert not scheduler.flush_on_logout(1.0)


# ── Background push worker ────────────────────────────────────────────────

class TestBackgroundPushes:
    """Schedulers here use the real push executor rather than inline dispatch."""

    def test_critical_change_reaches_remote(self, make_scheduler, remote_store, helpers):
        scheduler = make_scheduler(dispatch=None)
        scheduler.start(helpers.build_state(qi=20))

        scheduler.observe(helpers.build_state(qi=5, total_qi=20, generators={"meditation_mat": 1}))

        assert scheduler.shutdown(timeout_s=5.0) == 0
        assert len(remote_store.pushes) == 1
        assert remote_store.payload["generators"]["meditation_mat"] == 1
        assert scheduler.remote_health() == (1, None)

    def test_periodic_remote_save(self, make_scheduler, remote_store, helpers, monotonic):
        scheduler = make_scheduler(dispatch=None)
        scheduler.start(helpers.build_state(qi=20, generators={"meditation_mat": 1}))
        scheduler.observe(helpers.build_state(qi=30, total_qi=30, generators={"meditation_mat": 1}))

        monotonic.advance(60)
        assert scheduler.tick()["remote"]

        scheduler.shutdown(timeout_s=5.0)
        assert remote_store.payload["resources"]["qi"] == 30

    def test_pushes_run_in_submission_order(self, make_scheduler, remote_store, helpers):
        scheduler = make_scheduler(dispatch=None)
        scheduler.start(helpers.build_state(qi=20))
        for theme in ("light", "dark", "light"):
            scheduler.observe(helpers.build_state(qi=20, theme=theme))

        scheduler.shutdown(timeout_s=5.0)
        assert [p["settings"]["theme"] for p in remote_store.pushes] == ["light", "dark", "light"]

    def test_shutdown_is_bounded_with_slow_store(self, make_scheduler, remote_store, helpers):
        scheduler = make_scheduler(dispatch=None)
        scheduler.start(helpers.build_state(qi=20))
        remote_store.push_delay_s = 0.5
        for theme in ("light", "dark", "light"):
            scheduler.observe(helpers.build_state(qi=20, theme=theme))

        started = time.monotonic()
        unfinished = scheduler.shutdown(timeout_s=0.05)

        assert time.monotonic() - started < 0.4
        assert unfinished == 3
        time.sleep(1.2)
        assert len(remote_store.pushes) <= 1

    def test_scheduler_restarts_after_shutdown(self, make_scheduler, remote_store, helpers):
        scheduler = make_scheduler(dispatch=None)
        scheduler.start(helpers.build_state(qi=20))
        scheduler.shutdown()

        scheduler.start(helpers.build_state(qi=20))
        scheduler.observe(helpers.build_state(qi=20, theme="light"))
        scheduler.shutdown(timeout_s=5.0)
        assert remote_store.payload["settings"]["theme"] == "light"

    def test_counters_survive_concurrent_syncs(self, make_scheduler, remote_store, helpers):
        scheduler = make_scheduler(dispatch=None)
        scheduler.start(helpers.build_state(qi=40, generators={"meditation_mat": 2}))

        def _sync_many():
            for _ in range(25):
                scheduler.manual_sync()

        workers = [threading.Thread(target=_sync_many) for _ in range(8)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        assert scheduler.remote_health() == (200, None)
        assert len(remote_store.pushes) == 200
