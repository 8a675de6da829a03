"""
Экспорт, импорт и сброс данных приложения
"""

import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

import pandas as pd

from core.models import default_document, validate_document
from core.persistence import ENVELOPE_META_KEYS, PersistenceEngine

logger = logging.getLogger(__name__)

IMPORT_MODES = ("replace", "merge")

CSV_COLUMNS = ["habit_id", "title", "category", "frequency", "period", "completed_at", "xp_on_complete"]

@dataclass
class ImportResult:
    """Результат импорта"""
    success: bool
    mode: str
    summary: Dict[str, Any] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "mode": self.mode,
            "summary": dict(self.summary),
            "errors": list(self.errors),
        }

def _unwrap(data: Any) -> Any:
    """Снять обертку хранения или служебные поля экспорта"""
    if isinstance(data, dict) and isinstance(data.get("document"), dict):
        data = data["document"]
    if isinstance(data, dict):
        data = {k: v for k, v in data.items() if k not in ENVELOPE_META_KEYS}
    return data

def merge_documents(current: Dict[str, Any], imported: Dict[str, Any]) -> Dict[str, Any]:
    """Слияние импортированного документа с текущим"""
    merged = copy.deepcopy(current)

    habits = merged.setdefault("habits", [])
    habit_index = {habit.get("id"): position for position, habit in enumerate(habits)}
    for habit in imported.get("habits", []):
        position = habit_index.get(habit.get("id"))
        if position is None:
            habit_index[habit.get("id")] = len(habits)
            habits.append(copy.deepcopy(habit))
            continue

        existing = habits[position]
        combined = {**existing, **copy.deepcopy(habit)}
        combined["completions"] = {**existing.get("completions", {}), **habit.get("completions", {})}
        combined["bestStreak"] = max(existing.get("bestStreak", 0) or 0, habit.get("bestStreak", 0) or 0)
        habits[position] = combined

    shop = merged.setdefault("shop", [])
    reward_index = {reward.get("id"): position for position, reward in enumerate(shop)}
    for reward in imported.get("shop", []):
        position = reward_index.get(reward.get("id"))
        if position is None:
            reward_index[reward.get("id")] = len(shop)
            shop.append(copy.deepcopy(reward))
        else:
            shop[position] = {**shop[position], **copy.deepcopy(reward)}

    if imported.get("categories") is not None:
        categories = merged.get("categories") or []
        for name in imported["categories"]:
            if name not in categories:
                categories.append(name)
        merged["categories"] = categories

    goals = merged.setdefault("goals", {})
    goals.update(copy.deepcopy(imported.get("goals", {})))

    for section in ("inventory", "achievements"):
        if imported.get(section) is None:
            continue
        items = merged.get(section) or []
        for entry in imported[section]:
            if entry not in items:
                items.append(copy.deepcopy(entry))
        merged[section] = items

    merged["points"] = max(merged.get("points", 0), imported.get("points", 0))
    merged["totalXP"] = max(merged.get("totalXP", 0), imported.get("totalXP", 0))

    # настройки и прочие секции: текущие значения сохраняются
    for key, value in imported.items():
        if key not in merged or merged[key] is None:
            merged[key] = copy.deepcopy(value)

    return merged

class DataTransferService:
    """Экспорт/импорт данных поверх движка сохранения"""

    def __init__(self, engine: PersistenceEngine):
        self.engine = engine

    def export_data(self) -> str:
        """JSON текущего документа (очередь изменений сначала записывается)"""
        self.engine.flush()
        return json.dumps(self.engine.get_document(), ensure_ascii=False, indent=2)

    def import_data(self, payload: str, mode: str = "replace") -> ImportResult:
        """Импорт с полной проверкой до изменения данных"""
        if mode not in IMPORT_MODES:
            return ImportResult(success=False, mode=mode, errors=[f"unknown import mode: {mode}"])

        try:
            data = _unwrap(json.loads(payload))
        except ValueError as e:
            return ImportResult(success=False, mode=mode, errors=[f"invalid JSON: {e}"])

        errors = validate_document(data)
        if errors:
            logger.warning(f"Import rejected: {len(errors)} validation errors")
            return ImportResult(success=False, mode=mode, errors=errors)

        self.engine.flush()
        current = self.engine.get_document()

        if mode == "merge":
            document = merge_documents(current, data)
            errors = validate_document(document)
            if errors:
                return ImportResult(success=False, mode=mode, errors=errors)
            summary = {
                "habits_added": len({h["id"] for h in data["habits"]} - {h.get("id") for h in current.get("habits", [])}),
                "habits_updated": len({h["id"] for h in data["habits"]} & {h.get("id") for h in current.get("habits", [])}),
            }
        else:
            document = copy.deepcopy(data)
            summary = {}

        summary.update({
            "habits": len(document["habits"]),
            "rewards": len(document["shop"]),
            "categories": len(document.get("categories") or []),
            "points": document["points"],
            "totalXP": document["totalXP"],
        })

        if not self._snapshot():
            return ImportResult(
                success=False, mode=mode, summary=summary,
                errors=["failed to store a backup snapshot; import aborted"],
            )

        if not self.engine.replace_document(document):
            return ImportResult(
                success=False, mode=mode, summary=summary,
                errors=["failed to write imported data; previous data kept"],
            )

        logger.info(f"Data imported ({mode}): {summary['habits']} habits, {summary['rewards']} rewards")
        return ImportResult(success=True, mode=mode, summary=summary)

    def reset_data(self) -> bool:
        """Сброс к начальному состоянию"""
        self.engine.flush()
        if not self._snapshot():
            logger.error("Reset aborted: backup snapshot could not be stored")
            return False

        success = self.engine.replace_document(default_document())
        if success:
            logger.info("Data reset to defaults")
        return success

    def _snapshot(self) -> bool:
        """Резервная копия перед заменой данных (нечего копировать - тоже успех)"""
        if not self.engine.has_stored_document():
            return True
        return self.engine.create_backup() is not None

    def export_completions_csv(self) -> str:
        """История выполнений в CSV"""
        self.engine.flush()
        rows = []

        for habit in self.engine.get_document().get("habits", []):
            for period, completed_at in sorted((habit.get("completions") or {}).items()):
                rows.append({
                    "habit_id": habit.get("id"),
                    "title": habit.get("title"),
                    "category": habit.get("category"),
                    "frequency": habit.get("frequency", "daily"),
                    "period": period,
                    "completed_at": completed_at,
                    "xp_on_complete": habit.get("xpOnComplete", 10),
                })

        df = pd.DataFrame(rows, columns=CSV_COLUMNS)
        return df.to_csv(index=False)

__all__ = ['DataTransferService', 'ImportResult', 'IMPORT_MODES', 'merge_documents']
