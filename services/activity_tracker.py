#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
HabitQuest Services - Activity Tracker
Сессии использования, серии выполнения привычек и оптимальное время напоминаний

Версия: 1.0.0
Дата: 2026-10-18
"""

import copy
import json
import logging
import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from config import ActivityConfig
from core.models import ActivityLog, Session, StreakRecord, StreakRisk
from core.storage import KeyValueStorage, StorageError
from core.timers import Clock, TimerRegistry
from utils.datetime_utils import date_key, days_between, epoch_ms, hours_between, parse_timestamp, to_timestamp

logger = logging.getLogger(__name__)

CompletionListener = Callable[[str, Optional[str]], None]

class ActivityTracker:
    """
    Трекер активности пользователя

    Журнал активности хранится под отдельным ключом и сохраняется после
    каждого изменяющего вызова. Все геттеры вычисляются по журналу в памяти.
    """

    INACTIVITY_TIMER = "inactivity"
    INTERACTION_KINDS = ("pointer", "key", "scroll", "touch", "focus", "blur")
    STREAK_WINDOW_HOURS = 24
    DEFAULT_OPTIMAL_HOURS = [9, 14, 19]

    def __init__(
        self,
        storage: KeyValueStorage,
        timers: TimerRegistry,
        clock: Clock,
        config: Optional[ActivityConfig] = None,
        activity_key: str = "habitquest_activity_data",
    ):
        self.storage = storage
        self.timers = timers
        self.clock = clock
        self.config = config or ActivityConfig()
        self.activity_key = activity_key

        self.log = ActivityLog()
        self.current_session: Optional[Session] = None
        self.completion_listeners: List[CompletionListener] = []
        self._started = False

    # ===== PERSISTENCE =====

    def _load_log(self) -> ActivityLog:
        try:
            raw = self.storage.get(self.activity_key)
        except StorageError as e:
            logger.warning(f"Activity data unreadable, starting fresh: {e}")
            return ActivityLog()

        if raw is None:
            return ActivityLog()

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("activity log is not an object")
            return ActivityLog.from_dict(data)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Failed to load activity data, starting fresh: {e}")
            return ActivityLog()

    def _persist(self) -> None:
        try:
            self.storage.set(self.activity_key, json.dumps(self.log.to_dict(), ensure_ascii=False))
        except StorageError as e:
            logger.warning(f"Failed to save activity data: {e}")

    # ===== LIFECYCLE =====

    def start(self) -> None:
        """Загрузить журнал и открыть сессию"""
        if self._started:
            return

        self.log = self._load_log()
        self._started = True
        self._open_session()

    def shutdown(self) -> None:
        if self.current_session:
            self._close_session(self.clock.now())
        self.timers.cancel_all()
        self._started = False

    # ===== SESSIONS =====

    def _open_session(self) -> Session:
        now = self.clock.now()
        self.current_session = Session(
            session_id=f"session_{epoch_ms(now)}",
            start_time=now,
            last_activity=now,
        )
        self.log.last_app_open = to_timestamp(now)
        self._persist()
        self._arm_inactivity_timer()

        logger.info(f"New activity session started: {self.current_session.session_id}")
        return self.current_session

    def _close_session(self, end_time: datetime) -> Optional[Session]:
        session = self.current_session
        if session is None:
            return None

        session.end_time = max(end_time, session.start_time)
        duration = session.duration_minutes

        self.log.total_sessions += 1
        count = self.log.total_sessions
        self.log.average_session_length = (
            self.log.average_session_length * (count - 1) + duration
        ) / count

        start_key = date_key(session.start_time)
        self.log.daily_sessions[start_key] = self.log.daily_sessions.get(start_key, 0) + 1

        self.current_session = None
        self.timers.cancel(self.INACTIVITY_TIMER)
        self._persist()

        logger.info(f"Session ended: {session.session_id}, duration: {duration:.1f} minutes")
        return session

    def _arm_inactivity_timer(self) -> None:
        self.timers.call_later(
            self.INACTIVITY_TIMER,
            self.config.session_timeout_minutes * 60,
            self._on_inactivity,
        )

    def _on_inactivity(self) -> None:
        if self.current_session:
            logger.info("User inactive, ending session")
            self._close_session(self.current_session.last_activity)

    def _touch_session(self) -> None:
        if self.current_session is None:
            return
        self.current_session.last_activity = self.clock.now()
        self.current_session.interaction_count += 1
        self._arm_inactivity_timer()

    def record_interaction(self, kind: str) -> None:
        """Взаимодействие пользователя: сбрасывает таймер неактивности"""
        if kind not in self.INTERACTION_KINDS:
            raise ValueError(f"Unknown interaction kind: {kind}")
        self._touch_session()

    def handle_focus(self) -> None:
        if self.current_session is None:
            self._open_session()
        else:
            self.record_interaction("focus")

    def handle_blur(self) -> None:
        self.record_interaction("blur")

    def handle_unload(self) -> None:
        if self.current_session:
            self._close_session(self.clock.now())

    # ===== HABIT TRACKING =====

    def add_completion_listener(self, listener: CompletionListener) -> None:
        self.completion_listeners.append(listener)

    def remove_completion_listener(self, listener: CompletionListener) -> None:
        if listener in self.completion_listeners:
            self.completion_listeners.remove(listener)

    def record_habit_completion(self, habit_id: str, habit_name: Optional[str] = None) -> StreakRecord:
        """Зафиксировать выполнение привычки"""
        now = self.clock.now()
        timestamp = to_timestamp(now)

        self.log.last_habit_completion = timestamp
        self.log.habit_completion_times.setdefault(habit_id, []).append(timestamp)

        if self.current_session:
            self.current_session.habit_completions.append(habit_id)

        record = self._update_streak(habit_id, now)
        self._touch_session()
        self._persist()

        logger.info(f"Habit completion recorded: {habit_name or habit_id} ({habit_id})")

        for listener in list(self.completion_listeners):
            try:
                listener(habit_id, habit_name)
            except Exception as e:
                logger.error(f"Completion listener failed: {e}")

        return record

    def _update_streak(self, habit_id: str, completed_at: datetime) -> StreakRecord:
        record = self.log.streak_data.get(habit_id) or StreakRecord()
        last_date = parse_timestamp(record.last_completion_date)

        if last_date is None:
            record.current_streak = 1
        else:
            diff = days_between(last_date, completed_at)
            if diff == 1:
                record.current_streak += 1
            elif diff == 0:
                record.current_streak = max(record.current_streak, 1)
            else:
                record.current_streak = 1

        record.last_completion_date = date_key(completed_at)
        record.last_completion_at = to_timestamp(completed_at)
        record.streak_risk = False

        self.log.streak_data[habit_id] = record
        return record

    # ===== STREAK ANALYSIS =====

    def _hours_since_completion(self, record: StreakRecord) -> Optional[float]:
        moment = record.last_completion_moment()
        if moment is None:
            return None
        return hours_between(moment, self.clock.now())

    def get_streak(self, habit_id: str) -> int:
        record = self.log.streak_data.get(habit_id)
        return record.current_streak if record else 0

    def get_streaks_at_risk(self) -> List[StreakRisk]:
        """Серии, у которых до конца 24-часового окна осталось мало времени"""
        risks = []

        for habit_id, record in self.log.streak_data.items():
            if record.current_streak <= 0:
                continue

            hours_since = self._hours_since_completion(record)
            if hours_since is None:
                continue

            hours_remaining = self.STREAK_WINDOW_HOURS - hours_since
            if 0 < hours_remaining <= self.config.streak_risk_hours:
                risks.append(StreakRisk(
                    habit_id=habit_id,
                    streak_count=record.current_streak,
                    hours_remaining=int(math.floor(hours_remaining)),
                ))

        return risks

    def should_send_streak_warning(self, habit_id: str) -> bool:
        record = self.log.streak_data.get(habit_id)
        if record is None or record.current_streak <= 0 or record.streak_risk:
            return False

        hours_since = self._hours_since_completion(record)
        if hours_since is None:
            return False

        return self.config.warning_window_start_hours <= hours_since < self.config.warning_window_end_hours

    def mark_streak_warning_sent(self, habit_id: str) -> None:
        record = self.log.streak_data.get(habit_id)
        if record is None:
            return
        record.streak_risk = True
        self._persist()

    # ===== ACTIVITY ANALYSIS =====

    def has_been_inactive_for(self, hours: float) -> bool:
        moments = [parse_timestamp(self.log.last_app_open)]
        if self.current_session:
            moments.append(self.current_session.last_activity)
        moments = [moment for moment in moments if moment is not None]

        if not moments:
            return True
        return hours_between(max(moments), self.clock.now()) >= hours

    def has_completed_habits_today(self) -> bool:
        today = date_key(self.clock.now())
        for timestamps in self.log.habit_completion_times.values():
            for timestamp in timestamps:
                moment = parse_timestamp(timestamp)
                if moment is not None and date_key(moment) == today:
                    return True
        return False

    def get_last_habit_completion_hours(self) -> float:
        last = parse_timestamp(self.log.last_habit_completion)
        if last is None:
            return math.inf
        return hours_between(last, self.clock.now())

    def get_weekly_activity_score(self) -> float:
        """Процент дней за последнюю неделю (включая сегодня) с сессиями"""
        today = self.clock.now().date()
        active_dates = {key for key, count in self.log.daily_sessions.items() if count > 0}
        if self.current_session:
            active_dates.add(date_key(self.current_session.start_time))

        active_days = sum(
            1 for offset in range(7)
            if date_key(today - timedelta(days=offset)) in active_dates
        )
        return active_days / 7 * 100

    def get_optimal_reminder_times(self, habit_id: Optional[str] = None) -> List[int]:
        """Три самых частых часа выполнения; при равенстве раньше идет меньший час"""
        if habit_id is not None:
            sources = [self.log.habit_completion_times.get(habit_id, [])]
        else:
            sources = list(self.log.habit_completion_times.values())

        hours = Counter()
        for timestamps in sources:
            for timestamp in timestamps:
                moment = parse_timestamp(timestamp)
                if moment is not None:
                    hours[moment.hour] += 1

        if not hours:
            return list(self.DEFAULT_OPTIMAL_HOURS)

        ranked = sorted(hours.items(), key=lambda item: (-item[1], item[0]))
        return [hour for hour, _ in ranked[:3]]

    # ===== PUBLIC API =====

    def get_activity_log(self) -> ActivityLog:
        return self.log.copy()

    def get_current_session(self) -> Optional[Session]:
        return copy.deepcopy(self.current_session)

    def get_stats(self) -> Dict[str, Any]:
        last_hours = self.get_last_habit_completion_hours()
        return {
            "total_sessions": self.log.total_sessions,
            "average_session_length": round(self.log.average_session_length, 2),
            "weekly_activity_score": round(self.get_weekly_activity_score(), 1),
            "last_habit_completion_hours": None if math.isinf(last_hours) else round(last_hours, 2),
            "has_completed_habits_today": self.has_completed_habits_today(),
            "streaks_at_risk": [risk.to_dict() for risk in self.get_streaks_at_risk()],
            "current_session": self.current_session.to_dict() if self.current_session else None,
        }

__all__ = ['ActivityTracker', 'CompletionListener']
