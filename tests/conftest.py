"""Pytest configuration and fixtures for HabitQuest core tests."""

import random
from datetime import datetime

import pytest

from config import ActivityConfig, HabitQuestConfig, ReminderConfig, StorageConfig
from core.persistence import PersistenceEngine
from core.storage import MemoryStorage
from fakes import ManualClock, ManualScheduler
from services.activity_tracker import ActivityTracker
from services.notifications import NotificationService
from services.reminder_scheduler import ReminderScheduler

START = datetime(2026, 3, 10, 12, 0, 0)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep HABITQUEST_* settings from the host out of the tests."""
    import os

    for key in list(os.environ):
        if key.startswith("HABITQUEST_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def scheduler(clock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def storage_config() -> StorageConfig:
    return StorageConfig(backend="memory", compression_enabled=False)


@pytest.fixture
def engine(storage, scheduler, clock, storage_config) -> PersistenceEngine:
    return PersistenceEngine(storage, scheduler.registry("persistence"), storage_config, clock)


@pytest.fixture
def tracker(storage, scheduler, clock) -> ActivityTracker:
    return ActivityTracker(storage, scheduler.registry("activity"), clock, ActivityConfig())


@pytest.fixture
def notifications(clock) -> NotificationService:
    return NotificationService(clock, max_per_day=2, rng=random.Random(7))


@pytest.fixture
def delivered(notifications) -> list:
    """Notifications received by a listener."""
    received = []
    notifications.add_listener(received.append)
    return received


@pytest.fixture
def reminder_config() -> ReminderConfig:
    return ReminderConfig()


@pytest.fixture
def habits() -> dict:
    return {
        "read": {"id": "read", "title": "Read 20 pages", "category": "PERSONAL DEVELOPMENT"},
        "run": {"id": "run", "title": "Morning run", "category": "CAREER"},
    }


@pytest.fixture
def reminders(tracker, notifications, scheduler, clock, reminder_config, habits) -> ReminderScheduler:
    return ReminderScheduler(
        tracker,
        notifications,
        scheduler.registry("reminders"),
        clock,
        reminder_config,
        habit_lookup=habits.get,
        rng=random.Random(3),
    )


@pytest.fixture
def app_config() -> HabitQuestConfig:
    return HabitQuestConfig()


@pytest.fixture
def sample_document() -> dict:
    """A small valid app state document."""
    return {
        "habits": [
            {
                "id": "read",
                "title": "Read 20 pages",
                "frequency": "daily",
                "category": "PERSONAL DEVELOPMENT",
                "xpOnComplete": 10,
                "streak": 2,
                "bestStreak": 5,
                "completions": {"2026-03-08": "2026-03-08T09:00:00", "2026-03-09": "2026-03-09T09:10:00"},
            },
            {
                "id": "save",
                "title": "Save money",
                "frequency": "monthly",
                "category": "FINANCIAL",
                "xpOnComplete": 50,
                "completions": {"2026-02": "2026-02-28T20:00:00"},
            },
        ],
        "points": 120,
        "totalXP": 340,
        "goals": {"FINANCIAL": {"monthlyTargetXP": 200}},
        "inventory": [{"rewardId": "coffee", "redeemedAt": "2026-03-01T10:00:00"}],
        "shop": [{"id": "coffee", "name": "Fancy coffee", "cost": 50}],
        "categories": ["PERSONAL DEVELOPMENT", "FINANCIAL"],
        "settings": {"theme": "dark"},
    }
