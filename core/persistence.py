#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
HabitQuest Core - Persistence Engine
Пакетное сохранение документа состояния с миграциями, контрольными суммами
и резервными копиями

Версия: 1.0.0
Дата: 2026-10-18
"""

import base64
import binascii
import copy
import gzip
import hashlib
import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from config import StorageConfig
from core.models import empty_required_sections, find_structural_problems, validate_document
from core.storage import (
    KeyValueStorage, PersistenceError, QuotaExceededError, StorageError, StorageReadError, StorageWriteError,
)
from core.timers import Clock, SystemClock, TimerRegistry
from utils.datetime_utils import epoch_ms, parse_timestamp, to_timestamp

logger = logging.getLogger(__name__)

# ===== EXCEPTIONS =====

class CorruptDataError(PersistenceError):
    """Данные не читаются: сжатие, JSON или контрольная сумма"""
    pass

class ValidationFailedError(PersistenceError):
    """Документ не прошел структурную проверку"""
    pass

class SerializationFailedError(PersistenceError):
    """Документ не сериализуется в JSON"""
    pass

class MigrationFailedError(PersistenceError):
    """Ошибка шага миграции"""
    pass

# ===== HELPER CLASSES =====

ENVELOPE_META_KEYS = ("version", "lastSaved", "checksum", "migratedAt")

def compute_checksum(document: Dict[str, Any]) -> str:
    """SHA-256 канонического JSON документа"""
    canonical = json.dumps(document, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

def deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """Рекурсивно слить source в target (target изменяется)"""
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target

@dataclass
class StoredEnvelope:
    """Хранимая обертка документа"""
    version: Optional[str]
    last_saved: Optional[str]
    checksum: Optional[str]
    document: Dict[str, Any]
    legacy: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "lastSaved": self.last_saved,
            "checksum": self.checksum,
            "document": self.document,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoredEnvelope":
        """Разбор обертки; плоский документ старого формата тоже принимается"""
        if isinstance(data.get("document"), dict):
            return cls(
                version=data.get("version"),
                last_saved=data.get("lastSaved"),
                checksum=data.get("checksum"),
                document=data["document"],
            )

        document = {k: v for k, v in data.items() if k not in ENVELOPE_META_KEYS}
        return cls(
            version=data.get("version"),
            last_saved=data.get("lastSaved"),
            checksum=data.get("checksum"),
            document=document,
            legacy=True,
        )

class Compressor:
    """Кодек сжатия хранимой строки"""

    marker = ""

    def compress(self, text: str) -> str:
        raise NotImplementedError

    def decompress(self, text: str) -> str:
        raise NotImplementedError

class GzipCompressor(Compressor):
    """gzip + base64 с префиксом gz:"""

    marker = "gz:"

    def compress(self, text: str) -> str:
        packed = gzip.compress(text.encode("utf-8"))
        return self.marker + base64.b64encode(packed).decode("ascii")

    def decompress(self, text: str) -> str:
        packed = base64.b64decode(text[len(self.marker):].encode("ascii"), validate=True)
        return gzip.decompress(packed).decode("utf-8")

KNOWN_COMPRESSORS = {GzipCompressor.marker: GzipCompressor}

MigrationStep = Callable[[Dict[str, Any]], Dict[str, Any]]

class DocumentMigration:
    """Цепочка миграций схемы документа"""

    CURRENT_VERSION = "2.0.0"
    LEGACY_VERSION = "1.0.0"

    def __init__(self, current_version: Optional[str] = None, register_defaults: bool = True):
        self.current_version = current_version or self.CURRENT_VERSION
        self.steps: Dict[str, Tuple[str, MigrationStep]] = {}
        if register_defaults:
            self.register(self.LEGACY_VERSION, "2.0.0", self._migrate_from_1_0_0)

    def register(self, from_version: str, to_version: str, step: MigrationStep) -> None:
        self.steps[from_version] = (to_version, step)

    def needs_migration(self, version: Optional[str]) -> bool:
        return (version or self.LEGACY_VERSION) != self.current_version

    def migrate(self, document: Dict[str, Any], from_version: Optional[str]) -> Dict[str, Any]:
        """Выполнить миграцию; неизвестная версия просто получает текущий номер"""
        version = from_version or self.LEGACY_VERSION
        logger.info(f"Migrating document from version {version} to {self.current_version}")

        visited = set()
        while version != self.current_version:
            if version in visited:
                raise MigrationFailedError(f"Migration cycle detected at version {version}")
            visited.add(version)

            step = self.steps.get(version)
            if step is None:
                logger.warning(
                    f"No migration registered from version {version}, "
                    f"stamping {self.current_version}"
                )
                break

            to_version, migrate_step = step
            try:
                document = migrate_step(copy.deepcopy(document))
            except Exception as e:
                raise MigrationFailedError(f"Migration {version} -> {to_version} failed: {e}") from e

            if not isinstance(document, dict):
                raise MigrationFailedError(f"Migration {version} -> {to_version} returned no document")
            version = to_version

        logger.info("Document migration completed successfully")
        return document

    @staticmethod
    def _migrate_from_1_0_0(document: Dict[str, Any]) -> Dict[str, Any]:
        """Миграция с версии 1.0.0"""
        from core.models import DEFAULT_CATEGORIES

        document.setdefault("categories", list(DEFAULT_CATEGORIES))

        for habit in document.get("habits") or []:
            if not isinstance(habit, dict):
                continue
            habit.setdefault("completions", {})
            streak = habit.get("streak", 0) or 0
            habit["bestStreak"] = max(habit.get("bestStreak", 0) or 0, streak)

        return document

@dataclass
class BackupRecord:
    """Резервная копия хранимого значения"""
    key: str
    created_at: datetime
    size_bytes: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "created_at": to_timestamp(self.created_at),
            "size_bytes": self.size_bytes,
        }

@dataclass
class PersistenceStats:
    """Статистика движка сохранения"""
    save_requests: int = 0
    flush_count: int = 0
    failed_writes: int = 0
    retry_count: int = 0
    error_count: int = 0
    corruption_count: int = 0
    recovery_count: int = 0
    migration_count: int = 0
    backup_count: int = 0
    last_save: Optional[str] = None
    last_backup: Optional[str] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

# ===== PERSISTENCE ENGINE =====

class PersistenceEngine:
    """
    Движок сохранения агрегированного документа

    save() копит частичные изменения и сбрасывает их по debounce или batch
    таймеру. Запись атомарна на уровне документа: обертка с версией,
    временем и контрольной суммой пишется одной операцией set().
    """

    DEBOUNCE_TIMER = "debounce"
    BATCH_TIMER = "batch"
    RETRY_TIMER = "retry"
    BACKUP_TIMER = "periodic_backup"

    def __init__(
        self,
        storage: KeyValueStorage,
        timers: TimerRegistry,
        config: Optional[StorageConfig] = None,
        clock: Optional[Clock] = None,
        migration: Optional[DocumentMigration] = None,
        compressor: Optional[Compressor] = None,
    ):
        self.storage = storage
        self.timers = timers
        self.config = config or StorageConfig()
        self.clock = clock or SystemClock()
        self.migration = migration or DocumentMigration()

        if compressor is None and self.config.compression_enabled:
            compressor = GzipCompressor()
        self.compressor = compressor

        self.stats = PersistenceStats()
        self.save_callbacks: List[Callable[[Dict[str, Any]], None]] = []
        self.error_callbacks: List[Callable[[Exception], None]] = []

        self._pending: Dict[str, Any] = {}
        self._replace_pending = False
        self._document: Optional[Dict[str, Any]] = None
        self._retry_attempt = 0
        self._started = False

    @property
    def main_key(self) -> str:
        return self.config.main_key

    # ===== ENCODING =====

    def _encode_document(self, document: Dict[str, Any]) -> str:
        envelope = StoredEnvelope(
            version=self.migration.current_version,
            last_saved=to_timestamp(self.clock.now()),
            checksum=None,
            document=document,
        )

        try:
            envelope.checksum = compute_checksum(document)
            serialized = json.dumps(envelope.to_dict(), ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise SerializationFailedError(f"Document is not serializable: {e}") from e

        if self.compressor and len(serialized.encode("utf-8")) > self.config.compression_threshold:
            return self.compressor.compress(serialized)
        return serialized

    def _parse(self, raw: str) -> StoredEnvelope:
        """Декодировать хранимую строку в обертку с проверкой контрольной суммы"""
        for marker, compressor_class in KNOWN_COMPRESSORS.items():
            if raw.startswith(marker):
                try:
                    raw = compressor_class().decompress(raw)
                except (binascii.Error, OSError, EOFError, ValueError) as e:
                    raise CorruptDataError(f"Cannot decompress stored data: {e}") from e
                break

        try:
            data = json.loads(raw)
        except ValueError as e:
            raise CorruptDataError(f"Stored data is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise CorruptDataError("Stored data is not an object")

        envelope = StoredEnvelope.from_dict(data)
        # контрольная сумма старого плоского формата считалась другим алгоритмом
        if envelope.legacy:
            return envelope
        if envelope.checksum and envelope.checksum != compute_checksum(envelope.document):
            raise CorruptDataError("Checksum mismatch")

        return envelope

    def _read_document(self, raw: str, key: str, snapshot: bool = True) -> Dict[str, Any]:
        envelope = self._parse(raw)
        document = envelope.document
        migrated = False

        if self.migration.needs_migration(envelope.version):
            if snapshot:
                self._store_backup(key, raw)
            document = self.migration.migrate(document, envelope.version)
            self.stats.migration_count += 1
            migrated = True

        problems = find_structural_problems(document)
        if problems:
            raise ValidationFailedError("; ".join(problems))

        if migrated and snapshot:
            try:
                self.storage.set(key, self._encode_document(document))
            except PersistenceError as e:
                logger.warning(f"Failed to write migrated document for {key}: {e}")

        return document

    # ===== PUBLIC API =====

    def save(self, partial: Dict[str, Any]) -> None:
        """Поставить частичное обновление в очередь"""
        if not isinstance(partial, dict):
            raise TypeError("save() expects a dict of top-level sections")

        deep_merge(self._pending, partial)
        self.stats.save_requests += 1

        self.timers.call_later(self.DEBOUNCE_TIMER, self.config.debounce_seconds, self._on_flush_timer)
        if not self.timers.is_pending(self.BATCH_TIMER):
            self.timers.call_later(self.BATCH_TIMER, self.config.batch_seconds, self._on_flush_timer)

    def save_immediate(self, partial: Dict[str, Any]) -> bool:
        """Поставить обновление в очередь и сразу записать"""
        if not isinstance(partial, dict):
            raise TypeError("save_immediate() expects a dict of top-level sections")

        deep_merge(self._pending, partial)
        self.stats.save_requests += 1
        return self.flush()

    def replace_document(self, document: Dict[str, Any]) -> bool:
        """
        Записать документ целиком вместо текущего

        Неудачная замена не повторяется: очередь возвращается в прежнее
        состояние, хранимый документ остается нетронутым.
        """
        previous_pending, previous_replace = self._pending, self._replace_pending

        self.timers.cancel(self.DEBOUNCE_TIMER)
        self.timers.cancel(self.BATCH_TIMER)
        self._pending = copy.deepcopy(document)
        self._replace_pending = True

        if self._write_pending(retry=False):
            return True

        self._pending, self._replace_pending = previous_pending, previous_replace
        if self._pending:
            self.timers.call_later(self.DEBOUNCE_TIMER, self.config.debounce_seconds, self._on_flush_timer)
        logger.warning("Document replacement failed, previous data kept")
        return False

    def has_stored_document(self) -> bool:
        return self.main_key in self.storage.keys()

    def flush(self) -> bool:
        """Записать накопленные изменения"""
        self.timers.cancel(self.DEBOUNCE_TIMER)
        self.timers.cancel(self.BATCH_TIMER)

        if not self._pending:
            return True
        return self._write_pending()

    def load(self, key: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Прочитать документ; при повреждении восстановить из резервной копии"""
        key = key or self.main_key

        try:
            raw = self.storage.get(key)
            if raw is None:
                return None
            document = self._read_document(raw, key)
        except (StorageReadError, CorruptDataError, ValidationFailedError) as e:
            logger.error(f"Stored data under {key} is unusable: {e}")
            self.stats.corruption_count += 1
            self._record_error(e)
            document = self._recover_from_backup(key)
        except MigrationFailedError as e:
            logger.error(f"Migration of {key} failed, pre-migration snapshot kept: {e}")
            self._record_error(e)
            return None

        if document is not None and key == self.main_key:
            self._document = copy.deepcopy(document)
        return document

    def get_document(self) -> Dict[str, Any]:
        """Текущее представление документа: записанное плюс очередь"""
        document = {} if self._replace_pending else copy.deepcopy(self._ensure_base())
        document.update(copy.deepcopy(self._pending))
        return document

    def add_save_callback(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        """Добавить callback для событий сохранения"""
        self.save_callbacks.append(callback)

    def add_error_callback(self, callback: Callable[[Exception], None]) -> None:
        """Добавить callback для ошибок записи"""
        self.error_callbacks.append(callback)

    def has_pending(self) -> bool:
        return bool(self._pending)

    def clear(self) -> None:
        """Удалить документ и все резервные копии"""
        self._pending = {}
        self._replace_pending = False
        self._document = None
        self._retry_attempt = 0
        self.timers.cancel_where(lambda key: key != self.BACKUP_TIMER)

        for record in self.list_backups():
            self.storage.delete(record.key)
        self.storage.delete(self.main_key)
        logger.info("Persistent data cleared")

    # ===== BACKUPS =====

    def _backup_prefix(self, key: str) -> str:
        return f"{key}_backup_"

    def create_backup(self, key: Optional[str] = None) -> Optional[BackupRecord]:
        """Снимок хранимого значения"""
        key = key or self.main_key
        try:
            raw = self.storage.get(key)
        except StorageReadError as e:
            logger.warning(f"Cannot back up unreadable {key}: {e}")
            return None

        if raw is None:
            return None
        return self._store_backup(key, raw)

    def _store_backup(self, key: str, raw: str) -> Optional[BackupRecord]:
        now = self.clock.now()
        stamp = epoch_ms(now)
        existing = set(self.storage.keys())
        while f"{self._backup_prefix(key)}{stamp}" in existing:
            stamp += 1
        backup_key = f"{self._backup_prefix(key)}{stamp}"

        try:
            self.storage.set(backup_key, raw)
        except StorageError as e:
            logger.warning(f"Failed to create backup {backup_key}: {e}")
            return None

        self.stats.backup_count += 1
        self.stats.last_backup = to_timestamp(now)
        logger.info(f"Backup created: {backup_key}")

        self._apply_retention(key)
        return BackupRecord(
            key=backup_key,
            created_at=datetime.fromtimestamp(stamp / 1000),
            size_bytes=len(raw.encode("utf-8")),
        )

    def list_backups(self, key: Optional[str] = None) -> List[BackupRecord]:
        """Резервные копии, новые первыми"""
        prefix = self._backup_prefix(key or self.main_key)
        records = []

        for storage_key in self.storage.keys():
            if not storage_key.startswith(prefix):
                continue
            suffix = storage_key[len(prefix):]
            if not suffix.isdigit():
                continue
            records.append(BackupRecord(
                key=storage_key,
                created_at=datetime.fromtimestamp(int(suffix) / 1000),
                size_bytes=self.storage.size_of(storage_key),
            ))

        records.sort(key=lambda record: int(record.key[len(prefix):]), reverse=True)
        return records

    def _apply_retention(self, key: str) -> int:
        cutoff = self.clock.now() - timedelta(days=self.config.backup_retention_days)
        removed = 0

        records = self.list_backups(key)
        for index, record in enumerate(records):
            too_old = record.created_at < cutoff
            over_limit = bool(self.config.max_backups) and index >= self.config.max_backups
            if too_old or over_limit:
                self.storage.delete(record.key)
                removed += 1

        if removed:
            logger.info(f"Removed {removed} old backups of {key}")
        return removed

    def restore_backup(self, backup_key: str) -> bool:
        """Восстановить документ из резервной копии"""
        try:
            raw = self.storage.get(backup_key)
        except StorageReadError as e:
            logger.error(f"Backup {backup_key} is unreadable: {e}")
            return False

        if raw is None:
            logger.warning(f"Backup not found: {backup_key}")
            return False

        target_key = backup_key.rsplit("_backup_", 1)[0]

        try:
            document = self._read_document(raw, backup_key, snapshot=False)
            encoded = self._encode_document(document)
        except PersistenceError as e:
            logger.error(f"Backup {backup_key} is unusable: {e}")
            return False

        self.create_backup(target_key)

        try:
            self.storage.set(target_key, encoded)
        except StorageError as e:
            logger.error(f"Failed to restore backup {backup_key}: {e}")
            self._record_error(e)
            return False

        if target_key == self.main_key:
            self._document = document
            self._pending = {}
            self._replace_pending = False
            self.timers.cancel(self.DEBOUNCE_TIMER)
            self.timers.cancel(self.BATCH_TIMER)

        logger.info(f"Restored {target_key} from {backup_key}")
        return True

    def _recover_from_backup(self, key: str) -> Optional[Dict[str, Any]]:
        logger.warning("Attempting to recover from data corruption...")

        for record in self.list_backups(key):
            try:
                raw = self.storage.get(record.key)
                if raw is None:
                    continue
                document = self._read_document(raw, record.key, snapshot=False)
            except PersistenceError as e:
                logger.warning(f"Failed to restore from backup {record.key}: {e}")
                continue

            try:
                self.storage.set(key, self._encode_document(document))
            except PersistenceError as e:
                logger.warning(f"Recovered document could not be written back: {e}")

            self.stats.recovery_count += 1
            logger.info(f"Successfully restored from backup: {record.key}")
            return document

        logger.warning("Could not restore from any backup")
        return None

    # ===== INTERNALS =====

    def _ensure_base(self) -> Dict[str, Any]:
        if self._document is None:
            loaded = self.load()
            self._document = loaded if loaded is not None else {}

        for section, default in empty_required_sections().items():
            self._document.setdefault(section, default)
        return self._document

    def _write_pending(self, retry: bool = True) -> bool:
        base = {} if self._replace_pending else self._ensure_base()
        document = copy.deepcopy(base)
        document.update(copy.deepcopy(self._pending))

        problems = validate_document(document)
        if problems:
            error = ValidationFailedError("; ".join(problems))
            logger.error(f"Pending changes rejected: {error}")
            self._pending = {}
            self._replace_pending = False
            self._record_error(error)
            return False

        try:
            encoded = self._encode_document(document)
        except SerializationFailedError as e:
            logger.error(f"Flush failed: {e}")
            self._record_error(e)
            return False

        try:
            self.storage.set(self.main_key, encoded)
        except (QuotaExceededError, StorageWriteError) as e:
            self.stats.failed_writes += 1
            if retry:
                self._schedule_retry(e)
            else:
                logger.error(f"Write failed: {e}")
                self._record_error(e)
            return False

        self._document = document
        self._pending = {}
        self._replace_pending = False
        self._retry_attempt = 0
        self.timers.cancel(self.RETRY_TIMER)

        self.stats.flush_count += 1
        self.stats.last_save = to_timestamp(self.clock.now())
        logger.debug(f"Document flushed ({len(encoded)} bytes)")

        self._notify_saved(document)
        self._auto_backup()
        return True

    def _schedule_retry(self, error: Exception) -> None:
        if self._retry_attempt >= self.config.max_retries:
            logger.error(
                f"Write failed after {self._retry_attempt} retries, keeping changes queued: {error}"
            )
            self._retry_attempt = 0
            self._record_error(error)
            return

        self._retry_attempt += 1
        self.stats.retry_count += 1
        delay = self.config.retry_delay_seconds * self._retry_attempt
        logger.warning(
            f"Write failed ({error}), retry {self._retry_attempt}/{self.config.max_retries} in {delay}s"
        )
        self.timers.call_later(self.RETRY_TIMER, delay, self._on_retry_timer)

    def _on_flush_timer(self) -> None:
        self.flush()

    def _on_retry_timer(self) -> None:
        if self._pending:
            self._write_pending()

    def _on_backup_timer(self) -> None:
        self.create_backup()

    def _auto_backup(self) -> None:
        last_backup = parse_timestamp(self.stats.last_backup)
        if last_backup is None:
            backups = self.list_backups()
            last_backup = backups[0].created_at if backups else None

        interval = timedelta(hours=self.config.backup_interval_hours)
        if last_backup is None or self.clock.now() - last_backup >= interval:
            self.create_backup()

    def _notify_saved(self, document: Dict[str, Any]) -> None:
        for callback in self.save_callbacks:
            try:
                callback(copy.deepcopy(document))
            except Exception as e:
                logger.error(f"Save callback failed: {e}")

    def _record_error(self, error: Exception) -> None:
        self.stats.error_count += 1
        self.stats.last_error = str(error)

        for callback in self.error_callbacks:
            try:
                callback(error)
            except Exception as e:
                logger.error(f"Error callback failed: {e}")

    # ===== STATUS =====

    def get_storage_info(self) -> Dict[str, Any]:
        """Использование хранилища"""
        backups = self.list_backups()
        total_bytes = self.storage.total_size()
        quota = self.config.quota_bytes
        usage = (total_bytes / quota * 100) if quota else 0.0

        return {
            "document_bytes": self.storage.size_of(self.main_key),
            "backup_bytes": sum(record.size_bytes for record in backups),
            "total_bytes": total_bytes,
            "quota_bytes": quota,
            "usage_percent": round(usage, 1),
            "backup_count": len(backups),
            "last_backup": to_timestamp(backups[0].created_at) if backups else None,
        }

    def get_health_status(self) -> Dict[str, Any]:
        """Получить статус здоровья хранилища"""
        info = self.get_storage_info()
        usage = info["usage_percent"]
        recommendations = []

        if usage >= 90:
            status = "critical"
            recommendations.append("Storage is almost full: export your data and remove old backups")
        elif usage >= 75:
            status = "warning"
            recommendations.append("Consider reducing max_backups or backup retention")
        elif usage >= 50:
            status = "good"
            recommendations.append("Storage usage is moderate")
        else:
            status = "excellent"

        if info["backup_count"] == 0:
            recommendations.append("No backups found: create one with `backup`")
        if self.stats.error_count:
            recommendations.append("Recent write errors detected: check disk space and permissions")

        return {
            "status": status,
            "usage_percent": usage,
            "recommendations": recommendations,
            "error_count": self.stats.error_count,
            "corruption_count": self.stats.corruption_count,
            "failed_writes": self.stats.failed_writes,
            "pending_sections": sorted(self._pending.keys()),
            "storage": info,
        }

    def get_stats(self) -> Dict[str, Any]:
        return {
            "engine": self.stats.to_dict(),
            "pending_sections": sorted(self._pending.keys()),
            "retry_attempt": self._retry_attempt,
            "backups": len(self.list_backups()),
            "started": self._started,
        }

    # ===== LIFECYCLE =====

    def start(self) -> None:
        """Начальная резервная копия и периодический таймер"""
        if self._started:
            return

        self.create_backup()
        interval = self.config.backup_interval_hours * 3600
        self.timers.call_every(self.BACKUP_TIMER, interval, self._on_backup_timer)
        self._started = True
        logger.info("Persistence engine started")

    def shutdown(self) -> None:
        """Корректное завершение работы"""
        logger.info("Shutting down persistence engine...")
        self.flush()
        self.timers.cancel_all()
        self._started = False
        logger.info("Persistence engine shutdown completed")

    def __enter__(self) -> "PersistenceEngine":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

__all__ = [
    'PersistenceError',
    'QuotaExceededError',
    'StorageWriteError',
    'CorruptDataError',
    'ValidationFailedError',
    'SerializationFailedError',
    'MigrationFailedError',
    'StoredEnvelope',
    'Compressor',
    'GzipCompressor',
    'DocumentMigration',
    'BackupRecord',
    'PersistenceStats',
    'PersistenceEngine',
    'compute_checksum',
    'deep_merge',
]
