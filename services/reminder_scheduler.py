#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
HabitQuest Services - Reminder Scheduler
Напоминания по сигналам трекера активности: защита серий, мотивация, поощрение

Версия: 1.0.0
Дата: 2026-10-18
"""

import copy
import logging
import random
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from config import ReminderConfig
from core.models import Notification, ReminderKind, ReminderState, ReminderTask
from core.timers import Clock, TimerRegistry
from services.activity_tracker import ActivityTracker
from services.notifications import NotificationService
from utils.datetime_utils import epoch_ms, parse_timestamp

logger = logging.getLogger(__name__)

HabitLookup = Callable[[str], Optional[Dict[str, Any]]]

class ReminderScheduler:
    """
    Планировщик напоминаний

    Каждое напоминание живет в реестре таймеров под стабильным ключом,
    поэтому повторная оценка заменяет задачу того же типа, а пауза
    отменяет все разом.
    """

    STREAK_CHECK_TIMER = "streak_check"
    EVALUATION_TIMER = "intelligent_evaluation"
    SNOOZE_TIMER = "snooze"
    MOTIVATIONAL_KEY = "motivational"
    ENCOURAGEMENT_KEY = "encouragement"

    DEFAULT_HOURS = [9, 14, 19]

    def __init__(
        self,
        tracker: ActivityTracker,
        notifications: NotificationService,
        timers: TimerRegistry,
        clock: Clock,
        config: Optional[ReminderConfig] = None,
        habit_lookup: Optional[HabitLookup] = None,
        rng: Optional[random.Random] = None,
    ):
        self.tracker = tracker
        self.notifications = notifications
        self.timers = timers
        self.clock = clock
        self.config = config or ReminderConfig()
        self.habit_lookup = habit_lookup
        self.rng = rng or random.Random()

        self.notifications.max_per_day = self.config.max_reminders_per_day

        self.tasks: Dict[str, ReminderTask] = {}
        self.paused = False
        self.snoozed_until: Optional[datetime] = None
        self._started = False
        self._stats = {
            "streak_warnings": 0,
            "motivational": 0,
            "encouragement": 0,
            "habit": 0,
            "dropped": 0,
            "skipped_high_activity": 0,
            "evaluations": 0,
        }

    # ===== LIFECYCLE =====

    def start(self) -> None:
        if self._started:
            return

        self.tracker.add_completion_listener(self._on_habit_completed)
        self._started = True

        if self.config.enabled:
            self._establish()
        logger.info("📅 Reminder scheduler started")

    def shutdown(self) -> None:
        self.tracker.remove_completion_listener(self._on_habit_completed)
        self._cancel_everything()
        self._started = False
        logger.info("Reminder scheduler stopped")

    def _establish(self) -> None:
        """Подписки на ежечасную проверку серий и ежедневную оценку"""
        if self.config.streak_reminders:
            self.timers.call_every(
                self.STREAK_CHECK_TIMER,
                self.config.streak_check_interval_minutes * 60,
                self.check_streaks_at_risk,
            )

        if self.config.intelligent_timing:
            self.timers.call_every(
                self.EVALUATION_TIMER,
                self.config.evaluation_interval_hours * 3600,
                self.evaluate,
            )
            self.evaluate()

    def _cancel_everything(self) -> None:
        for task in self.tasks.values():
            task.state = ReminderState.CANCELLED
        self.tasks.clear()
        self.timers.cancel_all()

    # ===== HABIT LOOKUP =====

    def _lookup(self, habit_id: str) -> Optional[Dict[str, Any]]:
        if self.habit_lookup is None:
            return {"id": habit_id, "title": habit_id}
        return self.habit_lookup(habit_id)

    # ===== STREAK PROTECTION =====

    def check_streaks_at_risk(self) -> List[Notification]:
        """Предупреждения для серий под угрозой"""
        if self.paused:
            return []

        sent = []
        for risk in self.tracker.get_streaks_at_risk():
            if risk.streak_count < self.config.streak_warning_threshold:
                continue

            habit = self._lookup(risk.habit_id)
            if habit is None:
                continue

            if not self.tracker.should_send_streak_warning(risk.habit_id):
                continue

            notification = self.notifications.build_streak_warning(
                risk.habit_id,
                habit.get("title") or risk.habit_id,
                risk.streak_count,
                risk.hours_remaining,
            )
            if self.notifications.send(notification, rate_limited=False):
                self.tracker.mark_streak_warning_sent(risk.habit_id)
                self._stats["streak_warnings"] += 1
                sent.append(notification)
                logger.info(
                    f"Streak warning sent for {risk.habit_id}: {risk.streak_count} days, "
                    f"{risk.hours_remaining}h remaining"
                )

        return sent

    # ===== INTELLIGENT REMINDERS =====

    def evaluate(self) -> Optional[ReminderKind]:
        """Ежедневная оценка: какое напоминание запланировать"""
        if self.paused:
            return None

        self._stats["evaluations"] += 1

        if self.config.adaptive_frequency:
            score = self.tracker.get_weekly_activity_score()
            if score > self.config.high_activity_threshold:
                self._stats["skipped_high_activity"] += 1
                logger.info(f"User highly active ({score:.0f}%), reducing notification frequency")
                return None

        completed_today = self.tracker.has_completed_habits_today()
        idle_hours = self.tracker.get_last_habit_completion_hours()

        if not completed_today and idle_hours > self.config.motivational_idle_hours:
            self._schedule_motivational()
            return ReminderKind.MOTIVATIONAL

        if completed_today and idle_hours > self.config.encouragement_idle_hours:
            self._schedule_task(
                self.ENCOURAGEMENT_KEY,
                ReminderKind.ENCOURAGEMENT,
                self.config.encouragement_delay_hours * 3600,
            )
            return ReminderKind.ENCOURAGEMENT

        return None

    def _allowed_hours(self) -> List[int]:
        start, end = self.config.reminder_start_hour, self.config.reminder_end_hour

        def in_range(hour: int) -> bool:
            return start <= hour < end

        hours = [hour for hour in self.tracker.get_optimal_reminder_times() if in_range(hour)]
        if not hours:
            hours = [hour for hour in self.DEFAULT_HOURS if in_range(hour)] or [start]
        return sorted(hours)

    def next_motivational_time(self) -> datetime:
        """Следующий оптимальный час в разрешенном диапазоне, минута случайная"""
        now = self.clock.now()
        hours = self._allowed_hours()
        next_hour = next((hour for hour in hours if hour > now.hour), hours[0])

        fire_at = now.replace(hour=next_hour, minute=self.rng.randrange(60), second=0, microsecond=0)
        if fire_at <= now:
            fire_at += timedelta(days=1)
        return fire_at

    def _schedule_motivational(self) -> ReminderTask:
        fire_at = self.next_motivational_time()
        delay = (fire_at - self.clock.now()).total_seconds()
        return self._schedule_task(self.MOTIVATIONAL_KEY, ReminderKind.MOTIVATIONAL, delay)

    # ===== TASKS =====

    def _schedule_task(self, key: str, kind: ReminderKind, delay_seconds: float,
                       target_habit_id: Optional[str] = None) -> ReminderTask:
        previous = self.tasks.get(key)
        if previous is not None:
            previous.state = ReminderState.CANCELLED

        task = ReminderTask(
            key=key,
            kind=kind,
            fire_at=self.clock.now() + timedelta(seconds=delay_seconds),
            delay_seconds=delay_seconds,
            target_habit_id=target_habit_id,
            state=ReminderState.SCHEDULED,
        )
        self.tasks[key] = task
        self.timers.call_later(key, delay_seconds, lambda: self._fire(key))

        logger.debug(f"Reminder {key} scheduled at {task.fire_at:%Y-%m-%d %H:%M}")
        return task

    def _fire(self, key: str) -> None:
        task = self.tasks.pop(key, None)
        if task is None or self.paused:
            return

        task.state = ReminderState.FIRED

        if task.kind == ReminderKind.MOTIVATIONAL:
            self._deliver_motivational(task)
        elif task.kind == ReminderKind.ENCOURAGEMENT:
            self._deliver_encouragement()
        elif task.kind == ReminderKind.HABIT:
            self._deliver_habit(task)

    def _deliver_motivational(self, task: ReminderTask) -> None:
        scheduled_at = task.fire_at - timedelta(seconds=task.delay_seconds)
        last_completion = parse_timestamp(self.tracker.log.last_habit_completion)

        if last_completion is not None and last_completion >= scheduled_at:
            self._stats["dropped"] += 1
            logger.debug("Motivational reminder dropped: habit completed meanwhile")
            return

        if self.notifications.send(self.notifications.build_motivational()):
            self._stats["motivational"] += 1

    def _deliver_encouragement(self) -> None:
        if not self.tracker.has_completed_habits_today():
            self._stats["dropped"] += 1
            return

        if self.notifications.send(self.notifications.build_encouragement()):
            self._stats["encouragement"] += 1

    def _deliver_habit(self, task: ReminderTask) -> None:
        habit = self._lookup(task.target_habit_id)
        if habit is None:
            self._stats["dropped"] += 1
            logger.debug(f"Habit reminder dropped, habit {task.target_habit_id} no longer exists")
            return

        notification = self.notifications.build_habit_reminder(
            task.target_habit_id, habit.get("title") or task.target_habit_id, habit.get("category")
        )
        if self.notifications.send(notification):
            self._stats["habit"] += 1

    def _on_habit_completed(self, habit_id: str, habit_name: Optional[str] = None) -> None:
        """Выполнение привычки отменяет ее ожидающие напоминания"""
        for key, task in list(self.tasks.items()):
            if task.target_habit_id == habit_id:
                self.timers.cancel(key)
                task.state = ReminderState.CANCELLED
                del self.tasks[key]
                logger.debug(f"Reminder {key} cancelled after completion of {habit_id}")

    # ===== MANUAL CONTROLS =====

    def schedule_habit_reminder(self, habit_id: str, delay_seconds: float) -> Optional[ReminderTask]:
        if self.paused:
            logger.info("Reminders are paused, habit reminder not scheduled")
            return None

        key = f"habit_{habit_id}_{epoch_ms(self.clock.now())}"
        return self._schedule_task(key, ReminderKind.HABIT, delay_seconds, target_habit_id=habit_id)

    def send_immediate_reminder(self, habit_id: Optional[str] = None) -> bool:
        if self.paused:
            return False

        if habit_id is None:
            sent = self.notifications.send(self.notifications.build_motivational())
            if sent:
                self._stats["motivational"] += 1
            return sent

        habit = self._lookup(habit_id)
        if habit is None:
            logger.warning(f"Cannot remind about unknown habit {habit_id}")
            return False

        sent = self.notifications.send(
            self.notifications.build_habit_reminder(habit_id, habit.get("title") or habit_id, habit.get("category"))
        )
        if sent:
            self._stats["habit"] += 1
        return sent

    def snooze_reminders(self, minutes: Optional[int] = None) -> None:
        """Отменить все напоминания и вернуть подписки через заданное время"""
        minutes = minutes if minutes is not None else self.config.snooze_minutes
        self._cancel_everything()
        self.snoozed_until = self.clock.now() + timedelta(minutes=minutes)
        self.timers.call_later(self.SNOOZE_TIMER, minutes * 60, self._end_snooze)
        logger.info(f"Reminders snoozed for {minutes} minutes")

    def _end_snooze(self) -> None:
        self.snoozed_until = None
        if not self.paused and self.config.enabled:
            self._establish()

    def pause_reminders(self) -> None:
        """
        Пауза всех напоминаний

        config.enabled не меняется: пауза хранится отдельным флагом, чтобы
        resume_reminders вернул пользовательскую настройку как была.
        В get_stats() поле enabled во время паузы равно False.
        """
        self.paused = True
        self.snoozed_until = None
        self._cancel_everything()
        self.notifications.set_enabled(False)
        logger.info("Reminders paused")

    def resume_reminders(self) -> None:
        self.paused = False
        self.notifications.set_enabled(True)
        if self.config.enabled:
            self._establish()
        logger.info("Reminders resumed")

    def update_config(self, **changes: Any) -> None:
        for name, value in changes.items():
            if not hasattr(self.config, name):
                raise ValueError(f"Unknown reminder setting: {name}")
            setattr(self.config, name, value)

        self.notifications.max_per_day = self.config.max_reminders_per_day

        if not self._started or self.paused or self.snoozed_until is not None:
            return

        self.timers.cancel(self.STREAK_CHECK_TIMER)
        self.timers.cancel(self.EVALUATION_TIMER)
        if self.config.enabled:
            self._establish()

    # ===== PUBLIC API =====

    def get_pending_tasks(self) -> List[ReminderTask]:
        return sorted((copy.copy(task) for task in self.tasks.values()), key=lambda task: task.fire_at)

    def get_stats(self) -> Dict[str, Any]:
        stats = dict(self._stats)
        stats.update({
            "enabled": self.config.enabled and not self.paused,
            "paused": self.paused,
            "snoozed_until": self.snoozed_until.isoformat() if self.snoozed_until else None,
            "pending_tasks": [task.to_dict() for task in self.get_pending_tasks()],
            "timers": sorted(self.timers.pending_keys()),
            "notifications": self.notifications.get_stats(),
        })
        return stats

__all__ = ['ReminderScheduler', 'HabitLookup']
