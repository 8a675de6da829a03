#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
HabitQuest Core - Timers
Часы и реестр таймеров с отменой по ключу поверх APScheduler

Версия: 1.0.0
Дата: 2026-10-18
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from utils.datetime_utils import now_in_timezone

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], None]

# ===== CLOCK =====

class Clock:
    """Источник текущего времени"""

    def now(self) -> datetime:
        raise NotImplementedError

class SystemClock(Clock):
    """Системные часы в заданном часовом поясе"""

    def __init__(self, timezone: Optional[str] = None):
        self.timezone = timezone

    def now(self) -> datetime:
        return now_in_timezone(self.timezone)

# ===== TIMER REGISTRY =====

class TimerRegistry:
    """
    Реестр именованных таймеров одного компонента

    Каждый таймер идентифицируется ключом: повторная постановка с тем же
    ключом заменяет предыдущий таймер.
    """

    def call_later(self, key: str, delay_seconds: float, callback: TimerCallback) -> None:
        raise NotImplementedError

    def call_every(self, key: str, interval_seconds: float, callback: TimerCallback) -> None:
        raise NotImplementedError

    def cancel(self, key: str) -> bool:
        raise NotImplementedError

    def pending_keys(self) -> List[str]:
        raise NotImplementedError

    def is_pending(self, key: str) -> bool:
        return key in self.pending_keys()

    def cancel_where(self, predicate: Callable[[str], bool]) -> List[str]:
        """Отменить все таймеры, ключи которых удовлетворяют условию"""
        cancelled = [key for key in self.pending_keys() if predicate(key)]
        for key in cancelled:
            self.cancel(key)
        return cancelled

    def cancel_all(self) -> int:
        return len(self.cancel_where(lambda key: True))

class SchedulerTimers(TimerRegistry):
    """
    Таймеры на APScheduler

    Задания получают id вида "<namespace>:<key>". Колбэки оборачиваются в
    корутину, поэтому AsyncIOScheduler выполняет их в потоке event loop.
    """

    def __init__(self, scheduler: BaseScheduler, namespace: str):
        self.scheduler = scheduler
        self.namespace = namespace
        self._callbacks: Dict[str, TimerCallback] = {}
        self._one_shot: Dict[str, bool] = {}

    def _job_id(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def call_later(self, key: str, delay_seconds: float, callback: TimerCallback) -> None:
        run_date = datetime.now(self.scheduler.timezone) + timedelta(seconds=max(0.0, delay_seconds))
        self._add(key, callback, DateTrigger(run_date=run_date), one_shot=True)

    def call_every(self, key: str, interval_seconds: float, callback: TimerCallback) -> None:
        self._add(key, callback, IntervalTrigger(seconds=interval_seconds), one_shot=False)

    def _add(self, key: str, callback: TimerCallback, trigger, one_shot: bool) -> None:
        # остановленный планировщик не заменяет отложенные задания по id
        if key in self._callbacks:
            self.cancel(key)

        self._callbacks[key] = callback
        self._one_shot[key] = one_shot
        self.scheduler.add_job(
            self._fire,
            trigger,
            args=[key],
            id=self._job_id(key),
            replace_existing=True,
            misfire_grace_time=None,
            coalesce=True,
        )
        logger.debug(f"Timer scheduled: {self._job_id(key)}")

    async def _fire(self, key: str) -> None:
        callback = self._callbacks.get(key)
        if callback is None:
            return

        if self._one_shot.get(key):
            self._callbacks.pop(key, None)
            self._one_shot.pop(key, None)

        try:
            callback()
        except Exception as e:
            logger.error(f"Timer {self._job_id(key)} failed: {e}", exc_info=True)

    def cancel(self, key: str) -> bool:
        if key not in self._callbacks:
            return False

        self._callbacks.pop(key, None)
        self._one_shot.pop(key, None)
        try:
            self.scheduler.remove_job(self._job_id(key))
        except JobLookupError:
            pass
        return True

    def pending_keys(self) -> List[str]:
        return list(self._callbacks.keys())

__all__ = [
    'Clock',
    'SystemClock',
    'TimerCallback',
    'TimerRegistry',
    'SchedulerTimers',
]
