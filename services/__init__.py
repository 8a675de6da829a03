# services/__init__.py

"""
Модуль сервисов HabitQuest Core

Этот модуль собирает движок сохранения, трекер активности, уведомления
и напоминания в один контейнер с общим жизненным циклом.
"""

import logging
from typing import Any, Callable, Dict, Optional

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import BaseScheduler

from config import HabitQuestConfig
from core.persistence import PersistenceEngine
from core.storage import FileStorage, KeyValueStorage, MemoryStorage
from core.timers import Clock, SchedulerTimers, SystemClock, TimerRegistry

from .activity_tracker import ActivityTracker
from .data_transfer import DataTransferService, ImportResult
from .notifications import NotificationService
from .reminder_scheduler import ReminderScheduler

logger = logging.getLogger(__name__)

TimersFactory = Callable[[str], TimerRegistry]

class CoreServices:
    """
    Контейнер сервисов приложения

    Обеспечивает:
    - Создание одного экземпляра каждого компонента
    - Связывание компонентов между собой
    - Запуск и корректное закрытие в нужном порядке
    """

    def __init__(
        self,
        config: HabitQuestConfig,
        storage: Optional[KeyValueStorage] = None,
        clock: Optional[Clock] = None,
        timers_factory: Optional[TimersFactory] = None,
        scheduler: Optional[BaseScheduler] = None,
    ):
        self.config = config
        self.clock = clock or SystemClock(config.timezone)
        self.scheduler = scheduler

        if timers_factory is None:
            if self.scheduler is None:
                scheduler_options = {}
                if config.timezone:
                    scheduler_options['timezone'] = pytz.timezone(config.timezone)
                self.scheduler = AsyncIOScheduler(**scheduler_options)
            timers_factory = lambda namespace: SchedulerTimers(self.scheduler, namespace)

        self.storage = storage or self._create_storage()

        self.engine = PersistenceEngine(
            self.storage, timers_factory("persistence"), config.storage, self.clock
        )
        self.tracker = ActivityTracker(
            self.storage, timers_factory("activity"), self.clock,
            config.activity, config.storage.activity_key,
        )
        self.notifications = NotificationService(self.clock, config.reminders.max_reminders_per_day)
        self.reminders = ReminderScheduler(
            self.tracker, self.notifications, timers_factory("reminders"), self.clock,
            config.reminders, habit_lookup=self.find_habit,
        )
        self.data_transfer = DataTransferService(self.engine)

        self.started = False

    def _create_storage(self) -> KeyValueStorage:
        storage_config = self.config.storage
        if storage_config.backend == 'memory':
            return MemoryStorage(storage_config.quota_bytes)
        return FileStorage(storage_config.data_dir, storage_config.quota_bytes)

    def find_habit(self, habit_id: str) -> Optional[Dict[str, Any]]:
        """Привычка из текущего документа по id"""
        for habit in self.engine.get_document().get('habits', []):
            if habit.get('id') == habit_id:
                return habit
        return None

    # ===== LIFECYCLE =====

    def start(self, with_reminders: bool = True) -> None:
        """Запуск сервисов"""
        if self.started:
            return

        logger.info("🔧 Starting HabitQuest services...")

        if self.scheduler is not None and not self.scheduler.running:
            self.scheduler.start()

        self.engine.start()
        self.tracker.start()
        if with_reminders:
            self.reminders.start()

        self.started = True
        logger.info("✅ All services started")

    def shutdown(self) -> None:
        """Закрытие сервисов в обратном порядке"""
        if not self.started:
            return

        logger.info("🛑 Shutting down services...")

        # Закрываем в обратном порядке запуска
        self.reminders.shutdown()
        self.tracker.shutdown()
        self.engine.shutdown()

        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)

        self.started = False
        logger.info("✅ All services closed")

    # ===== STATUS =====

    def record_habit_completion(self, habit_id: str) -> None:
        habit = self.find_habit(habit_id)
        self.tracker.record_habit_completion(habit_id, habit.get('title') if habit else None)

    def health_check(self) -> Dict[str, Any]:
        """Проверка состояния всех сервисов"""
        storage_health = self.engine.get_health_status()
        reminder_stats = self.reminders.get_stats()

        health = {
            "status": "healthy",
            "services": {
                "persistence": storage_health,
                "activity": self.tracker.get_stats(),
                "reminders": {
                    "status": "paused" if reminder_stats["paused"] else "active",
                    "pending_tasks": len(reminder_stats["pending_tasks"]),
                },
            },
        }

        if storage_health["status"] == "critical":
            health["status"] = "error"
        elif storage_health["status"] == "warning" or storage_health["error_count"]:
            health["status"] = "warning"

        return health

    def __enter__(self) -> "CoreServices":
        """Context manager вход"""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager выход"""
        self.shutdown()

__all__ = [
    'CoreServices',
    'TimersFactory',
    'ActivityTracker',
    'DataTransferService',
    'ImportResult',
    'NotificationService',
    'ReminderScheduler',
]
