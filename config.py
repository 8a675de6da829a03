#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
HabitQuest Core - Configuration
Централизованная конфигурация с валидацией

Версия: 1.0.0
Дата: 2026-10-18
"""

import os
import sys
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass, asdict
from enum import Enum

import pytz

class Environment(Enum):
    """Среды выполнения"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"

class LogLevel(Enum):
    """Уровни логирования"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

@dataclass
class StorageConfig:
    """Конфигурация хранения данных"""
    backend: str = "file"  # file | memory
    data_dir: Path = Path("data")
    main_key: str = "ghgt:data:v3"
    activity_key: str = "habitquest_activity_data"
    quota_bytes: Optional[int] = 5 * 1024 * 1024
    debounce_seconds: float = 1.0
    batch_seconds: float = 5.0
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    compression_enabled: bool = True
    compression_threshold: int = 1024
    backup_interval_hours: float = 24.0
    backup_retention_days: int = 30
    max_backups: Optional[int] = None

@dataclass
class ActivityConfig:
    """Конфигурация трекера активности"""
    session_timeout_minutes: float = 15.0
    streak_risk_hours: float = 20.0
    warning_window_start_hours: float = 18.0
    warning_window_end_hours: float = 24.0

@dataclass
class ReminderConfig:
    """Конфигурация напоминаний"""
    enabled: bool = True
    streak_reminders: bool = True
    intelligent_timing: bool = True
    adaptive_frequency: bool = True
    streak_check_interval_minutes: float = 60.0
    evaluation_interval_hours: float = 24.0
    streak_warning_threshold: int = 3
    high_activity_threshold: float = 80.0
    motivational_idle_hours: float = 6.0
    encouragement_idle_hours: float = 4.0
    encouragement_delay_hours: float = 2.0
    reminder_start_hour: int = 8
    reminder_end_hour: int = 22
    max_reminders_per_day: int = 2
    snooze_minutes: int = 60

def _env_bool(key: str, default: bool) -> bool:
    return os.getenv(key, str(default)).lower() == 'true'

def _env_optional_int(key: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(key)
    if value is None:
        return default
    if value.strip().lower() in ('', 'none', '0'):
        return None
    return int(value)

class HabitQuestConfig:
    """Главный класс конфигурации"""

    def __init__(self):
        self.environment = Environment(os.getenv('HABITQUEST_ENV', 'development'))
        self._load_config()
        self._validate_config()

    def _load_config(self):
        """Загрузка конфигурации из переменных окружения"""

        # Директории
        self.data_dir = Path(os.getenv('HABITQUEST_DATA_DIR', 'data'))
        self.export_dir = Path(os.getenv('HABITQUEST_EXPORT_DIR', 'exports'))
        self.log_dir = Path(os.getenv('HABITQUEST_LOG_DIR', 'logs'))

        self.timezone = os.getenv('HABITQUEST_TIMEZONE') or None

        # Хранилище
        self.storage = StorageConfig(
            backend=os.getenv('HABITQUEST_STORAGE_BACKEND', 'file'),
            data_dir=self.data_dir,
            main_key=os.getenv('HABITQUEST_MAIN_KEY', 'ghgt:data:v3'),
            activity_key=os.getenv('HABITQUEST_ACTIVITY_KEY', 'habitquest_activity_data'),
            quota_bytes=_env_optional_int('HABITQUEST_QUOTA_BYTES', 5 * 1024 * 1024),
            debounce_seconds=float(os.getenv('HABITQUEST_DEBOUNCE_SECONDS', 1.0)),
            batch_seconds=float(os.getenv('HABITQUEST_BATCH_SECONDS', 5.0)),
            max_retries=int(os.getenv('HABITQUEST_MAX_RETRIES', 3)),
            retry_delay_seconds=float(os.getenv('HABITQUEST_RETRY_DELAY_SECONDS', 1.0)),
            compression_enabled=_env_bool('HABITQUEST_COMPRESSION', True),
            compression_threshold=int(os.getenv('HABITQUEST_COMPRESSION_THRESHOLD', 1024)),
            backup_interval_hours=float(os.getenv('HABITQUEST_BACKUP_INTERVAL_HOURS', 24)),
            backup_retention_days=int(os.getenv('HABITQUEST_BACKUP_RETENTION_DAYS', 30)),
            max_backups=_env_optional_int('HABITQUEST_MAX_BACKUPS', None),
        )

        # Активность
        self.activity = ActivityConfig(
            session_timeout_minutes=float(os.getenv('HABITQUEST_SESSION_TIMEOUT_MINUTES', 15)),
            streak_risk_hours=float(os.getenv('HABITQUEST_STREAK_RISK_HOURS', 20)),
        )

        # Напоминания
        self.reminders = ReminderConfig(
            enabled=_env_bool('HABITQUEST_REMINDERS_ENABLED', True),
            streak_reminders=_env_bool('HABITQUEST_STREAK_REMINDERS', True),
            intelligent_timing=_env_bool('HABITQUEST_INTELLIGENT_TIMING', True),
            adaptive_frequency=_env_bool('HABITQUEST_ADAPTIVE_FREQUENCY', True),
            streak_warning_threshold=int(os.getenv('HABITQUEST_STREAK_WARNING_THRESHOLD', 3)),
            reminder_start_hour=int(os.getenv('HABITQUEST_REMINDER_START_HOUR', 8)),
            reminder_end_hour=int(os.getenv('HABITQUEST_REMINDER_END_HOUR', 22)),
            max_reminders_per_day=int(os.getenv('HABITQUEST_MAX_REMINDERS_PER_DAY', 2)),
        )

        # Логирование
        self.log_level = LogLevel(os.getenv('HABITQUEST_LOG_LEVEL', 'INFO'))
        self.log_to_file = _env_bool('HABITQUEST_LOG_TO_FILE', True)
        self.log_format = os.getenv(
            'HABITQUEST_LOG_FORMAT',
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
        )

    def _validate_config(self):
        """Валидация конфигурации"""
        errors = []

        if self.storage.backend not in ('file', 'memory'):
            errors.append(f"Неизвестный тип хранилища: {self.storage.backend}")

        if self.storage.debounce_seconds <= 0 or self.storage.batch_seconds <= 0:
            errors.append("Интервалы debounce и batch должны быть положительными")

        if self.storage.max_retries < 0:
            errors.append("HABITQUEST_MAX_RETRIES не может быть отрицательным")

        if self.storage.backup_retention_days <= 0:
            errors.append("HABITQUEST_BACKUP_RETENTION_DAYS должен быть положительным числом")

        if self.storage.quota_bytes is not None and self.storage.quota_bytes <= 0:
            errors.append("HABITQUEST_QUOTA_BYTES должен быть положительным числом")

        start, end = self.reminders.reminder_start_hour, self.reminders.reminder_end_hour
        if not (0 <= start <= 23 and 0 <= end <= 23 and start <= end):
            errors.append(f"Неверный диапазон часов напоминаний: {start}-{end}")

        if self.reminders.max_reminders_per_day < 0:
            errors.append("HABITQUEST_MAX_REMINDERS_PER_DAY не может быть отрицательным")

        if self.timezone and self.timezone not in pytz.all_timezones_set:
            errors.append(f"Неизвестный часовой пояс: {self.timezone}")

        if errors:
            raise ValueError("Ошибки конфигурации:\n" + "\n".join(f"• {error}" for error in errors))

    def ensure_directories(self):
        """Создание необходимых директорий"""
        directories = [
            self.data_dir,
            self.export_dir,
            self.log_dir
        ]

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

    def get_logging_config(self) -> Dict[str, Any]:
        """Получение конфигурации логирования"""
        handlers = ['console']
        if self.log_to_file:
            handlers.append('file')

        config = {
            'version': 1,
            'disable_existing_loggers': False,
            'formatters': {
                'default': {
                    'format': self.log_format,
                    'datefmt': '%Y-%m-%d %H:%M:%S'
                }
            },
            'handlers': {
                'console': {
                    'class': 'logging.StreamHandler',
                    'level': self.log_level.value,
                    'formatter': 'default',
                    'stream': sys.stdout
                }
            },
            'loggers': {
                '': {
                    'level': self.log_level.value,
                    'handlers': handlers,
                    'propagate': False
                },
                'apscheduler': {
                    'level': 'WARNING',
                    'handlers': handlers,
                    'propagate': False
                }
            }
        }

        if self.log_to_file:
            config['handlers']['file'] = {
                'class': 'logging.handlers.RotatingFileHandler',
                'level': self.log_level.value,
                'formatter': 'default',
                'filename': str(self.log_dir / f"habitquest_{self.environment.value}.log"),
                'maxBytes': 10485760,  # 10MB
                'backupCount': 5,
                'encoding': 'utf-8'
            }

        return config

    def is_development(self) -> bool:
        """Проверка режима разработки"""
        return self.environment == Environment.DEVELOPMENT

    def is_production(self) -> bool:
        """Проверка продакшн режима"""
        return self.environment == Environment.PRODUCTION

    def to_dict(self) -> Dict[str, Any]:
        """Сериализация конфигурации в словарь"""
        storage = asdict(self.storage)
        storage['data_dir'] = str(self.storage.data_dir)

        return {
            'environment': self.environment.value,
            'timezone': self.timezone,
            'storage': storage,
            'activity': asdict(self.activity),
            'reminders': asdict(self.reminders),
            'log_level': self.log_level.value,
            'log_to_file': self.log_to_file
        }

def load_config() -> HabitQuestConfig:
    """Собрать конфигурацию из текущего окружения"""
    return HabitQuestConfig()

__all__ = [
    'Environment',
    'LogLevel',
    'StorageConfig',
    'ActivityConfig',
    'ReminderConfig',
    'HabitQuestConfig',
    'load_config',
]
