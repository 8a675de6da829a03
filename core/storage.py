#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
HabitQuest Core - Storage Primitives
Локальное key-value хранилище: в памяти и в директории на диске

Версия: 1.0.0
Дата: 2026-10-18
"""

import errno
import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

logger = logging.getLogger(__name__)

# ===== EXCEPTIONS =====

class PersistenceError(Exception):
    """Базовое исключение слоя хранения данных"""
    pass

class StorageError(PersistenceError):
    """Ошибка локального хранилища"""
    pass

class QuotaExceededError(StorageError):
    """Превышена квота хранилища"""
    pass

class StorageWriteError(StorageError):
    """Ошибка записи (I/O)"""
    pass

class StorageReadError(StorageError):
    """Значение есть, но не читается (I/O или не UTF-8)"""
    pass

# ===== STORAGE =====

class KeyValueStorage:
    """Интерфейс локального хранилища строковых значений"""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError

    def size_of(self, key: str) -> int:
        """Размер значения в байтах (0 если ключа нет)"""
        value = self.get(key)
        return len(value.encode("utf-8")) if value is not None else 0

    def total_size(self) -> int:
        return sum(self.size_of(key) for key in self.keys())

class MemoryStorage(KeyValueStorage):
    """Хранилище в памяти с необязательной квотой"""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError("Storage values must be strings")

        if self.quota_bytes is not None:
            new_total = self.total_size() - self.size_of(key) + len(value.encode("utf-8"))
            if new_total > self.quota_bytes:
                raise QuotaExceededError(
                    f"Quota of {self.quota_bytes} bytes exceeded while writing {key}"
                )

        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())

class FileStorage(KeyValueStorage):
    """
    Хранилище в директории: один файл на ключ

    Запись атомарная: сначала во временный файл, затем os.replace.
    """

    SUFFIX = ".dat"

    def __init__(self, directory: Path, quota_bytes: Optional[int] = None):
        self.directory = Path(directory)
        self.quota_bytes = quota_bytes
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _path(self, key: str) -> Path:
        return self.directory / (quote(key, safe="") + self.SUFFIX)

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read {key}: {e}")
            raise StorageReadError(f"Cannot read {key}: {e}") from e

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError("Storage values must be strings")

        with self._lock:
            if self.quota_bytes is not None:
                new_total = self.total_size() - self.size_of(key) + len(value.encode("utf-8"))
                if new_total > self.quota_bytes:
                    raise QuotaExceededError(
                        f"Quota of {self.quota_bytes} bytes exceeded while writing {key}"
                    )

            path = self._path(key)
            temp_file = path.with_suffix(".tmp")

            try:
                with open(temp_file, "w", encoding="utf-8") as f:
                    f.write(value)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(temp_file, path)
            except OSError as e:
                # Очищаем временный файл в случае ошибки
                if temp_file.exists():
                    temp_file.unlink()
                if e.errno in (errno.ENOSPC, errno.EDQUOT):
                    raise QuotaExceededError(str(e)) from e
                raise StorageWriteError(str(e)) from e

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass

    def keys(self) -> List[str]:
        return [
            unquote(path.name[:-len(self.SUFFIX)])
            for path in self.directory.glob(f"*{self.SUFFIX}")
        ]

    def size_of(self, key: str) -> int:
        path = self._path(key)
        try:
            return path.stat().st_size
        except FileNotFoundError:
            return 0

__all__ = [
    'PersistenceError',
    'StorageError',
    'QuotaExceededError',
    'StorageWriteError',
    'StorageReadError',
    'KeyValueStorage',
    'MemoryStorage',
    'FileStorage',
]
