#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
HabitQuest Core - Data Models
Модели документа состояния, журнала активности и напоминаний

Версия: 1.0.0
Дата: 2026-10-18
"""

import copy
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from utils.datetime_utils import is_canonical_period_key, parse_timestamp, to_timestamp

logger = logging.getLogger(__name__)

# ===== CONSTANTS =====

REQUIRED_SECTIONS = ("habits", "points", "totalXP", "goals", "shop", "inventory")

DEFAULT_CATEGORIES = [
    "CAREER",
    "CREATIVE",
    "FINANCIAL",
    "PERSONAL DEVELOPMENT",
    "RELATIONSHIPS",
    "SPIRITUAL",
]

NonNegativeInt = Annotated[int, Field(ge=0, strict=True)]

# ===== ENUMS =====

class Frequency(str, Enum):
    """Частоты привычек"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

class RewardRarity(str, Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"

class ReminderKind(Enum):
    """Типы напоминаний"""
    STREAK_WARNING = "streak_warning"
    MOTIVATIONAL = "motivational"
    ENCOURAGEMENT = "encouragement"
    HABIT = "habit"

class ReminderState(Enum):
    """Состояния задачи напоминания"""
    IDLE = "idle"
    SCHEDULED = "scheduled"
    FIRED = "fired"
    CANCELLED = "cancelled"

class Urgency(Enum):
    """Срочность уведомления"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

# ===== APP STATE DOCUMENT =====

class _DocumentModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

class Habit(_DocumentModel):
    """Привычка пользователя"""
    id: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    frequency: Frequency = Frequency.DAILY
    category: str = "PERSONAL DEVELOPMENT"
    xp_on_complete: NonNegativeInt = Field(10, alias="xpOnComplete")
    streak: NonNegativeInt = 0
    best_streak: NonNegativeInt = Field(0, alias="bestStreak")
    last_completed_at: Optional[str] = Field(None, alias="lastCompletedAt")
    completions: Dict[str, str] = Field(default_factory=dict)
    is_recurring: bool = Field(True, alias="isRecurring")
    specific_date: Optional[str] = Field(None, alias="specificDate")
    color: Optional[str] = None
    icon: Optional[str] = None

    @model_validator(mode="after")
    def check_completion_keys(self) -> "Habit":
        bad_keys = [
            key for key in self.completions
            if not is_canonical_period_key(key, self.frequency.value)
        ]
        if bad_keys:
            raise ValueError(
                f"completion keys {bad_keys} are not canonical {self.frequency.value} periods"
            )
        return self

class Reward(_DocumentModel):
    """Награда в магазине"""
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    cost: NonNegativeInt
    description: Optional[str] = None
    icon: Optional[str] = None
    rarity: Optional[RewardRarity] = None

class CategoryGoal(_DocumentModel):
    monthly_target_xp: NonNegativeInt = Field(alias="monthlyTargetXP")

class AppSettings(_DocumentModel):
    """Настройки приложения"""
    theme: str = "auto"
    gradient_colors: List[str] = Field(default_factory=list, alias="gradientColors")
    animations: bool = True
    sound_effects: bool = Field(True, alias="soundEffects")
    notifications: bool = True
    language: str = "en"
    start_of_week: int = Field(0, alias="startOfWeek", ge=0, le=1)

    @field_validator("theme")
    @classmethod
    def validate_theme(cls, value: str) -> str:
        if value not in ("light", "dark", "auto"):
            raise ValueError("theme must be one of: light, dark, auto")
        return value

class AppStateDocument(_DocumentModel):
    """Агрегированный документ состояния приложения"""
    habits: List[Habit]
    points: NonNegativeInt
    total_xp: NonNegativeInt = Field(alias="totalXP")
    goals: Dict[str, CategoryGoal]
    inventory: List[Dict[str, Any]]
    shop: List[Reward]
    categories: Optional[List[str]] = None
    achievements: Optional[List[Dict[str, Any]]] = None
    user_stats: Optional[Dict[str, Any]] = Field(None, alias="userStats")
    settings: Optional[AppSettings] = None

    @model_validator(mode="after")
    def check_unique_ids(self) -> "AppStateDocument":
        for collection, items in (("habits", self.habits), ("shop", self.shop)):
            seen = set()
            duplicates = []
            for item in items:
                if item.id in seen:
                    duplicates.append(item.id)
                seen.add(item.id)
            if duplicates:
                raise ValueError(f"duplicate {collection} ids: {sorted(set(duplicates))}")
        return self

def default_document() -> Dict[str, Any]:
    """Документ по умолчанию для первого запуска"""
    return {
        "habits": [],
        "points": 0,
        "totalXP": 0,
        "goals": {},
        "inventory": [],
        "shop": [],
        "categories": list(DEFAULT_CATEGORIES),
        "achievements": [],
        "settings": AppSettings().model_dump(by_alias=True, mode="json"),
    }

def empty_required_sections() -> Dict[str, Any]:
    return {"habits": [], "points": 0, "totalXP": 0, "goals": {}, "shop": [], "inventory": []}

def find_structural_problems(data: Any) -> List[str]:
    """Быстрая структурная проверка документа (обязательные секции)"""
    if not isinstance(data, dict):
        return ["document is not an object"]

    problems = [f"missing section: {name}" for name in REQUIRED_SECTIONS if name not in data]

    expected_types = {
        "habits": list, "shop": list, "inventory": list,
        "goals": dict, "points": int, "totalXP": int,
    }
    for name, expected in expected_types.items():
        if name in data and not isinstance(data[name], expected):
            problems.append(f"section {name} must be {expected.__name__}")

    return problems

def format_validation_errors(error: ValidationError) -> List[str]:
    """Построчный список ошибок валидации pydantic"""
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "document"
        messages.append(f"{location}: {item.get('msg', 'invalid value')}")
    return messages

def validate_document(data: Any) -> List[str]:
    """Строгая проверка документа; пустой список - документ корректен"""
    problems = find_structural_problems(data)
    if problems:
        return problems

    try:
        AppStateDocument.model_validate(data)
    except ValidationError as e:
        return format_validation_errors(e)
    return []

# ===== ACTIVITY LOG =====

@dataclass
class StreakRecord:
    """Серия выполнения одной привычки"""
    current_streak: int = 0
    last_completion_date: str = ""  # YYYY-MM-DD
    streak_risk: bool = False
    last_completion_at: Optional[str] = None  # ISO timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentStreak": self.current_streak,
            "lastCompletionDate": self.last_completion_date,
            "streakRisk": self.streak_risk,
            "lastCompletionAt": self.last_completion_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreakRecord":
        return cls(
            current_streak=int(data.get("currentStreak", 0) or 0),
            last_completion_date=data.get("lastCompletionDate", "") or "",
            streak_risk=bool(data.get("streakRisk", False)),
            last_completion_at=data.get("lastCompletionAt"),
        )

    def last_completion_moment(self) -> Optional[datetime]:
        """Момент последнего выполнения (для старых записей - полночь даты)"""
        moment = parse_timestamp(self.last_completion_at)
        if moment is None:
            moment = parse_timestamp(self.last_completion_date)
        return moment

@dataclass
class ActivityLog:
    """Журнал активности устройства"""
    last_app_open: str = ""
    last_habit_completion: str = ""
    total_sessions: int = 0
    daily_sessions: Dict[str, int] = field(default_factory=dict)
    average_session_length: float = 0.0  # в минутах
    habit_completion_times: Dict[str, List[str]] = field(default_factory=dict)
    streak_data: Dict[str, StreakRecord] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lastAppOpen": self.last_app_open,
            "lastHabitCompletion": self.last_habit_completion,
            "totalSessions": self.total_sessions,
            "dailySessions": dict(self.daily_sessions),
            "averageSessionLength": self.average_session_length,
            "habitCompletionTimes": {k: list(v) for k, v in self.habit_completion_times.items()},
            "streakData": {k: v.to_dict() for k, v in self.streak_data.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActivityLog":
        """Десериализация; отсутствующие поля получают значения по умолчанию"""
        streak_data = {}
        for habit_id, record in (data.get("streakData") or {}).items():
            if isinstance(record, dict):
                streak_data[habit_id] = StreakRecord.from_dict(record)

        return cls(
            last_app_open=data.get("lastAppOpen", "") or "",
            last_habit_completion=data.get("lastHabitCompletion", "") or "",
            total_sessions=int(data.get("totalSessions", 0) or 0),
            daily_sessions={day: int(count) for day, count in (data.get("dailySessions") or {}).items()},
            average_session_length=float(data.get("averageSessionLength", 0.0) or 0.0),
            habit_completion_times={
                k: list(v) for k, v in (data.get("habitCompletionTimes") or {}).items()
            },
            streak_data=streak_data,
        )

    def copy(self) -> "ActivityLog":
        return copy.deepcopy(self)

@dataclass
class Session:
    """Сессия использования приложения"""
    session_id: str
    start_time: datetime
    last_activity: datetime
    end_time: Optional[datetime] = None
    interaction_count: int = 0
    habit_completions: List[str] = field(default_factory=list)

    @property
    def duration_minutes(self) -> float:
        end = self.end_time or self.last_activity
        return (end - self.start_time).total_seconds() / 60

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "startTime": to_timestamp(self.start_time),
            "lastActivity": to_timestamp(self.last_activity),
            "endTime": to_timestamp(self.end_time) if self.end_time else None,
            "interactionCount": self.interaction_count,
            "habitCompletions": list(self.habit_completions),
        }

@dataclass
class StreakRisk:
    """Серия под угрозой"""
    habit_id: str
    streak_count: int
    hours_remaining: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

# ===== REMINDERS =====

@dataclass
class Notification:
    """Уведомление для UI"""
    title: str
    body: str
    urgency: Urgency = Urgency.MEDIUM
    kind: ReminderKind = ReminderKind.MOTIVATIONAL
    habit_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "body": self.body,
            "urgency": self.urgency.value,
            "kind": self.kind.value,
            "habitId": self.habit_id,
            "createdAt": to_timestamp(self.created_at) if self.created_at else None,
        }

@dataclass
class ReminderTask:
    """Запланированное напоминание"""
    key: str
    kind: ReminderKind
    fire_at: datetime
    delay_seconds: float
    target_habit_id: Optional[str] = None
    state: ReminderState = ReminderState.IDLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "kind": self.kind.value,
            "fireAt": to_timestamp(self.fire_at),
            "delaySeconds": self.delay_seconds,
            "targetHabitId": self.target_habit_id,
            "state": self.state.value,
        }

__all__ = [
    'REQUIRED_SECTIONS',
    'DEFAULT_CATEGORIES',
    'Frequency',
    'RewardRarity',
    'ReminderKind',
    'ReminderState',
    'Urgency',
    'Habit',
    'Reward',
    'CategoryGoal',
    'AppSettings',
    'AppStateDocument',
    'default_document',
    'empty_required_sections',
    'find_structural_problems',
    'format_validation_errors',
    'validate_document',
    'StreakRecord',
    'ActivityLog',
    'Session',
    'StreakRisk',
    'Notification',
    'ReminderTask',
]
