"""Tests for the activity tracker."""

import json
import math
from datetime import datetime, timedelta

import pytest

from core.storage import QuotaExceededError, StorageReadError
from services.activity_tracker import ActivityTracker

ACTIVITY_KEY = "habitquest_activity_data"


class TestStreaks:
    """Streak recomputation on local calendar days."""

    def test_consecutive_days(self, tracker, clock):
        tracker.record_habit_completion("read")
        clock.advance(days=1)
        record = tracker.record_habit_completion("read")
        assert record.current_streak == 2

    def test_gap_resets_streak(self, tracker, clock):
        tracker.record_habit_completion("read")
        clock.advance(days=1)
        tracker.record_habit_completion("read")
        clock.advance(days=2)
        assert tracker.record_habit_completion("read").current_streak == 1

    def test_same_day_is_unchanged(self, tracker, clock):
        tracker.record_habit_completion("read")
        clock.advance(hours=3)
        assert tracker.record_habit_completion("read").current_streak == 1

    def test_calendar_days_not_24h_windows(self, tracker, clock):
        clock.set(datetime(2026, 3, 10, 23, 30))
        tracker.record_habit_completion("read")
        clock.set(datetime(2026, 3, 11, 0, 15))
        assert tracker.record_habit_completion("read").current_streak == 2

    def test_completion_clears_risk_flag(self, tracker, clock):
        tracker.record_habit_completion("read")
        tracker.mark_streak_warning_sent("read")
        assert tracker.log.streak_data["read"].streak_risk

        clock.advance(days=1)
        tracker.record_habit_completion("read")
        assert not tracker.log.streak_data["read"].streak_risk

    def test_streaks_are_per_habit(self, tracker, clock):
        tracker.record_habit_completion("read")
        tracker.record_habit_completion("run")
        clock.advance(days=1)
        tracker.record_habit_completion("read")

        assert tracker.get_streak("read") == 2
        assert tracker.get_streak("run") == 1
        assert tracker.get_streak("unknown") == 0


class TestStreakWarnings:
    """Risk detection and warning eligibility."""

    @pytest.mark.parametrize("hours,expected", [(17, False), (19, True), (25, False)])
    def test_warning_window(self, tracker, clock, hours, expected):
        tracker.record_habit_completion("read")
        clock.advance(hours=hours)
        assert tracker.should_send_streak_warning("read") is expected

    def test_single_warning_per_risk_window(self, tracker, clock):
        tracker.record_habit_completion("read")
        clock.advance(hours=19)
        assert tracker.should_send_streak_warning("read")

        tracker.mark_streak_warning_sent("read")
        clock.advance(hours=1)
        assert not tracker.should_send_streak_warning("read")

    def test_unknown_habit_never_warns(self, tracker):
        assert not tracker.should_send_streak_warning("missing")

    def test_streaks_at_risk_hours_remaining(self, tracker, clock):
        tracker.record_habit_completion("read")
        clock.advance(hours=5, minutes=30)
        risks = tracker.get_streaks_at_risk()

        assert len(risks) == 1
        assert risks[0].habit_id == "read"
        assert risks[0].streak_count == 1
        assert risks[0].hours_remaining == 18

    def test_fresh_completion_is_not_at_risk(self, tracker, clock):
        tracker.record_habit_completion("read")
        clock.advance(hours=2)
        assert tracker.get_streaks_at_risk() == []

    def test_expired_window_is_not_at_risk(self, tracker, clock):
        tracker.record_habit_completion("read")
        clock.advance(hours=24, minutes=1)
        assert tracker.get_streaks_at_risk() == []

    def test_legacy_record_uses_midnight(self, storage, scheduler, clock):
        storage.set(ACTIVITY_KEY, json.dumps({
            "streakData": {"read": {"currentStreak": 4, "lastCompletionDate": "2026-03-10", "streakRisk": False}},
        }))
        tracker = ActivityTracker(storage, scheduler.registry("activity"), clock)
        tracker.start()

        clock.set(datetime(2026, 3, 10, 19, 0))
        assert tracker.should_send_streak_warning("read")


class TestSessions:
    """Session lifecycle and counters."""

    def test_timeout_closes_session(self, tracker, scheduler):
        tracker.start()
        assert tracker.current_session is not None

        scheduler.advance(minutes=15)

        assert tracker.current_session is None
        assert tracker.log.total_sessions == 1
        assert tracker.log.daily_sessions == {"2026-03-10": 1}

    def test_interactions_extend_session(self, tracker, scheduler):
        tracker.start()
        scheduler.advance(minutes=10)
        tracker.record_interaction("scroll")
        scheduler.advance(minutes=10)

        assert tracker.current_session is not None
        assert tracker.current_session.interaction_count == 1

    def test_unknown_interaction_kind(self, tracker):
        tracker.start()
        with pytest.raises(ValueError):
            tracker.record_interaction("telepathy")

    def test_unload_updates_average(self, tracker, clock):
        tracker.start()
        clock.advance(minutes=10)
        tracker.handle_unload()
        tracker.handle_focus()
        clock.advance(minutes=20)
        tracker.handle_unload()

        assert tracker.log.total_sessions == 2
        assert tracker.log.average_session_length == pytest.approx(15.0)

    def test_daily_count_uses_session_start_date(self, tracker, clock):
        clock.set(datetime(2026, 3, 10, 23, 55))
        tracker.start()
        clock.advance(minutes=10)
        tracker.handle_unload()

        assert tracker.log.daily_sessions == {"2026-03-10": 1}

    def test_focus_after_absence_starts_new_session(self, tracker, scheduler):
        tracker.start()
        first = tracker.current_session.session_id
        scheduler.advance(minutes=30)
        tracker.handle_focus()

        assert tracker.current_session is not None
        assert tracker.current_session.session_id != first

    def test_completion_recorded_in_session(self, tracker):
        tracker.start()
        tracker.record_habit_completion("read", "Read")
        assert tracker.current_session.habit_completions == ["read"]

    def test_shutdown_closes_session_and_timers(self, tracker, scheduler):
        tracker.start()
        tracker.shutdown()

        assert tracker.log.total_sessions == 1
        assert scheduler.registry("activity").pending_keys() == []


class TestEngagement:
    """Weekly score, optimal hours and idle checks."""

    def test_weekly_score_full(self, tracker, clock):
        today = clock.now().date()
        for offset in range(7):
            tracker.log.daily_sessions[(today - timedelta(days=offset)).isoformat()] = 1
        assert tracker.get_weekly_activity_score() == pytest.approx(100.0)

    def test_weekly_score_empty(self, tracker):
        assert tracker.get_weekly_activity_score() == 0

    def test_weekly_score_ignores_older_days(self, tracker, clock):
        today = clock.now().date()
        tracker.log.daily_sessions[(today - timedelta(days=7)).isoformat()] = 3
        tracker.log.daily_sessions[today.isoformat()] = 1
        assert tracker.get_weekly_activity_score() == pytest.approx(100 / 7)

    def test_optimal_times_default(self, tracker):
        assert tracker.get_optimal_reminder_times() == [9, 14, 19]

    def test_optimal_times_top_three_with_tie_break(self, tracker, clock):
        day = datetime(2026, 3, 1)
        for hour in (20, 20, 7, 7, 13, 13, 18):
            clock.set(day.replace(hour=hour))
            tracker.record_habit_completion("read")
            day += timedelta(days=1)

        assert tracker.get_optimal_reminder_times() == [7, 13, 20]

    def test_optimal_times_per_habit(self, tracker, clock):
        clock.set(datetime(2026, 3, 1, 6))
        tracker.record_habit_completion("run")
        clock.set(datetime(2026, 3, 1, 21))
        tracker.record_habit_completion("read")

        assert tracker.get_optimal_reminder_times("run") == [6]
        assert tracker.get_optimal_reminder_times("nothing") == [9, 14, 19]

    def test_completion_hours_and_today(self, tracker, clock):
        assert math.isinf(tracker.get_last_habit_completion_hours())
        assert not tracker.has_completed_habits_today()

        tracker.record_habit_completion("read")
        clock.advance(hours=3)
        assert tracker.get_last_habit_completion_hours() == pytest.approx(3)
        assert tracker.has_completed_habits_today()

        clock.advance(days=1)
        assert not tracker.has_completed_habits_today()

    def test_inactivity(self, tracker, clock):
        assert tracker.has_been_inactive_for(1)
        tracker.start()
        clock.advance(hours=2)
        assert tracker.has_been_inactive_for(2)
        tracker.record_interaction("key")
        assert not tracker.has_been_inactive_for(1)

    def test_stats_shape(self, tracker):
        tracker.start()
        stats = tracker.get_stats()
        assert stats["last_habit_completion_hours"] is None
        assert stats["streaks_at_risk"] == []
        assert stats["current_session"]["sessionId"].startswith("session_")


class TestActivityPersistence:
    """Activity log persistence is best effort."""

    def test_log_survives_restart(self, tracker, storage, scheduler, clock):
        tracker.start()
        tracker.record_habit_completion("read")
        tracker.shutdown()

        restarted = ActivityTracker(storage, scheduler.registry("activity2"), clock)
        restarted.start()
        assert restarted.get_streak("read") == 1
        assert restarted.log.total_sessions == 1

    def test_unreadable_log_is_replaced(self, storage, scheduler, clock):
        storage.set(ACTIVITY_KEY, "[broken")
        tracker = ActivityTracker(storage, scheduler.registry("activity"), clock)
        tracker.start()
        assert tracker.log.total_sessions == 0

    def test_string_session_counts_are_scored(self, storage, scheduler, clock):
        storage.set(ACTIVITY_KEY, json.dumps({"dailySessions": {"2026-03-10": "3"}}))
        tracker = ActivityTracker(storage, scheduler.registry("activity"), clock)
        tracker.start()
        tracker.shutdown()

        assert tracker.log.daily_sessions["2026-03-10"] == 4
        assert tracker.get_weekly_activity_score() == pytest.approx(100 / 7)

    def test_storage_read_failure_starts_fresh(self, scheduler, clock, caplog):
        class BrokenStorage:
            def get(self, key):
                raise StorageReadError("bad bytes")

            def set(self, key, value):
                pass

        tracker = ActivityTracker(BrokenStorage(), scheduler.registry("activity"), clock)
        tracker.start()

        assert tracker.log.total_sessions == 0
        assert tracker.current_session is not None
        assert "Activity data unreadable" in caplog.text

    def test_write_failures_are_logged(self, scheduler, clock, caplog):
        class FullStorage:
            def get(self, key):
                return None

            def set(self, key, value):
                raise QuotaExceededError("full")

        tracker = ActivityTracker(FullStorage(), scheduler.registry("activity"), clock)
        tracker.start()
        tracker.record_habit_completion("read")

        assert tracker.get_streak("read") == 1
        assert "Failed to save activity data" in caplog.text

    def test_completion_listeners(self, tracker):
        seen = []

        def broken(habit_id, name):
            raise RuntimeError("boom")

        tracker.add_completion_listener(broken)
        tracker.add_completion_listener(lambda habit_id, name: seen.append((habit_id, name)))
        tracker.record_habit_completion("read", "Read")

        assert seen == [("read", "Read")]
