"""Tests for the timer registry on APScheduler and the manual fakes."""

import asyncio

from apscheduler.schedulers.background import BackgroundScheduler

from core.timers import SchedulerTimers


class TestSchedulerTimers:
    """Tests for SchedulerTimers on an unstarted scheduler."""

    def test_jobs_are_namespaced(self):
        scheduler = BackgroundScheduler()
        persistence = SchedulerTimers(scheduler, "persistence")
        reminders = SchedulerTimers(scheduler, "reminders")

        persistence.call_later("debounce", 1, lambda: None)
        reminders.call_every("streak_check", 3600, lambda: None)

        job_ids = {job.id for job in scheduler.get_jobs()}
        assert job_ids == {"persistence:debounce", "reminders:streak_check"}

    def test_cancel_all_only_touches_own_namespace(self):
        scheduler = BackgroundScheduler()
        persistence = SchedulerTimers(scheduler, "persistence")
        reminders = SchedulerTimers(scheduler, "reminders")

        persistence.call_later("batch", 5, lambda: None)
        reminders.call_later("motivational", 60, lambda: None)
        reminders.call_later("encouragement", 60, lambda: None)

        assert reminders.cancel_all() == 2
        assert persistence.pending_keys() == ["batch"]
        assert [job.id for job in scheduler.get_jobs()] == ["persistence:batch"]

    def test_same_key_replaces_job(self):
        scheduler = BackgroundScheduler()
        timers = SchedulerTimers(scheduler, "ns")

        timers.call_later("debounce", 1, lambda: None)
        timers.call_later("debounce", 2, lambda: None)

        assert len(scheduler.get_jobs()) == 1
        assert timers.is_pending("debounce")

    def test_fire_runs_callback_once_for_one_shot(self):
        scheduler = BackgroundScheduler()
        timers = SchedulerTimers(scheduler, "ns")
        calls = []

        timers.call_later("once", 1, lambda: calls.append(1))
        asyncio.run(timers._fire("once"))
        asyncio.run(timers._fire("once"))

        assert calls == [1]
        assert not timers.is_pending("once")

    def test_fire_logs_callback_errors(self, caplog):
        scheduler = BackgroundScheduler()
        timers = SchedulerTimers(scheduler, "ns")

        def boom():
            raise RuntimeError("boom")

        timers.call_every("tick", 10, boom)
        asyncio.run(timers._fire("tick"))

        assert "ns:tick" in caplog.text
        assert timers.is_pending("tick")

    def test_cancel_unknown_key(self):
        timers = SchedulerTimers(BackgroundScheduler(), "ns")
        assert timers.cancel("missing") is False


class TestManualScheduler:
    """Sanity checks for the manual fake used across the suite."""

    def test_fires_in_order_and_moves_clock(self, scheduler, clock):
        fired = []
        timers = scheduler.registry("ns")
        start = clock.now()

        timers.call_later("b", 20, lambda: fired.append(("b", clock.now())))
        timers.call_later("a", 10, lambda: fired.append(("a", clock.now())))
        scheduler.advance(30)

        assert [name for name, _ in fired] == ["a", "b"]
        assert (fired[0][1] - start).total_seconds() == 10
        assert (clock.now() - start).total_seconds() == 30

    def test_interval_repeats(self, scheduler):
        ticks = []
        scheduler.registry("ns").call_every("tick", 60, lambda: ticks.append(1))
        scheduler.advance(180)
        assert len(ticks) == 3
