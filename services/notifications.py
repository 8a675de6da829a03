"""
Сервис уведомлений
"""

import logging
import random
from typing import Callable, Dict, List, Optional

from core.models import Notification, ReminderKind, Urgency
from core.timers import Clock, SystemClock
from utils.datetime_utils import date_key

logger = logging.getLogger(__name__)

NotificationListener = Callable[[Notification], None]

MOTIVATIONAL_MESSAGES = [
    ("🌟 Ready to build something amazing?", "Your habit journey continues! Small steps lead to big changes."),
    ("💪 Your future self is counting on you", "Every habit completed brings you closer to your goals!"),
    ("🚀 Progress beats perfection", "Even a small habit completion today makes a difference!"),
    ("🎯 Consistency is your superpower", "Show up for yourself today, just like you did yesterday!"),
]

ENCOURAGEMENT_MESSAGES = [
    ("🔥 Keep up the great work!", "You're on fire today! One more habit keeps the momentum going."),
    ("⭐ Great progress today", "You've already shown up today. Ready for another win?"),
]

class NotificationService:
    """Сервис для построения и доставки уведомлений слушателям"""

    def __init__(self, clock: Optional[Clock] = None, max_per_day: int = 2, rng: Optional[random.Random] = None):
        self.clock = clock or SystemClock()
        self.max_per_day = max_per_day
        self.rng = rng or random.Random()
        self.enabled = True
        self.listeners: List[NotificationListener] = []

        self._day = ""
        self._sent_today = 0
        self._stats = {"delivered": 0, "rate_limited": 0, "suppressed": 0, "listener_errors": 0}

    # ===== LISTENERS =====

    def add_listener(self, listener: NotificationListener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: NotificationListener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        logger.info(f"Notifications {'enabled' if enabled else 'disabled'}")

    # ===== DELIVERY =====

    def _roll_day(self) -> None:
        today = date_key(self.clock.now())
        if today != self._day:
            self._day = today
            self._sent_today = 0

    def sent_today(self) -> int:
        self._roll_day()
        return self._sent_today

    def can_send(self) -> bool:
        return self.sent_today() < self.max_per_day

    def send(self, notification: Notification, rate_limited: bool = True) -> bool:
        """Доставить уведомление; False если отключено или превышен дневной лимит"""
        if not self.enabled:
            self._stats["suppressed"] += 1
            logger.debug(f"Notification suppressed (disabled): {notification.title}")
            return False

        self._roll_day()
        if rate_limited:
            if self._sent_today >= self.max_per_day:
                self._stats["rate_limited"] += 1
                logger.info(f"⏳ Daily reminder limit reached, skipping: {notification.title}")
                return False
            self._sent_today += 1

        if notification.created_at is None:
            notification.created_at = self.clock.now()

        for listener in list(self.listeners):
            try:
                listener(notification)
            except Exception as e:
                self._stats["listener_errors"] += 1
                logger.error(f"❌ Notification listener failed: {e}")

        self._stats["delivered"] += 1
        logger.info(f"🔔 Notification sent: {notification.title}")
        return True

    # ===== BUILDERS =====

    @staticmethod
    def classify_urgency(hours_remaining: float) -> Urgency:
        if hours_remaining <= 4:
            return Urgency.URGENT
        if hours_remaining <= 8:
            return Urgency.HIGH
        return Urgency.MEDIUM

    def build_streak_warning(self, habit_id: str, habit_title: str, streak_count: int,
                             hours_remaining: int) -> Notification:
        urgency = self.classify_urgency(hours_remaining)

        if urgency == Urgency.URGENT:
            title = f"🚨 {streak_count}-day streak expiring soon!"
            body = f'Only {hours_remaining}h left to complete "{habit_title}" and keep your amazing streak alive!'
        elif urgency == Urgency.HIGH:
            title = f"⏰ {streak_count}-day streak needs attention"
            body = f'You have {hours_remaining}h to complete "{habit_title}" and maintain your streak!'
        else:
            title = f"🔥 Protect your {streak_count}-day streak"
            body = f'"{habit_title}" needs completion today to keep your streak going!'

        return Notification(
            title=title,
            body=body,
            urgency=urgency,
            kind=ReminderKind.STREAK_WARNING,
            habit_id=habit_id,
        )

    def build_motivational(self) -> Notification:
        title, body = self.rng.choice(MOTIVATIONAL_MESSAGES)
        return Notification(title=title, body=body, urgency=Urgency.LOW, kind=ReminderKind.MOTIVATIONAL)

    def build_encouragement(self) -> Notification:
        title, body = self.rng.choice(ENCOURAGEMENT_MESSAGES)
        return Notification(title=title, body=body, urgency=Urgency.LOW, kind=ReminderKind.ENCOURAGEMENT)

    def build_habit_reminder(self, habit_id: str, habit_title: str, category: Optional[str] = None) -> Notification:
        area = (category or "personal development").lower()
        return Notification(
            title=f'📝 Time for "{habit_title}"',
            body=f"Keep building your {area} habits! You've got this!",
            urgency=Urgency.MEDIUM,
            kind=ReminderKind.HABIT,
            habit_id=habit_id,
        )

    def get_stats(self) -> Dict[str, int]:
        stats = dict(self._stats)
        stats["sent_today"] = self.sent_today()
        stats["max_per_day"] = self.max_per_day
        stats["listeners"] = len(self.listeners)
        stats["enabled"] = self.enabled
        return stats

__all__ = [
    'NotificationService',
    'NotificationListener',
    'MOTIVATIONAL_MESSAGES',
    'ENCOURAGEMENT_MESSAGES',
]
