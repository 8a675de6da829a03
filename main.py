#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
HabitQuest Core - Command Line Host
Запуск сервисов и операции с данными из командной строки

Версия: 1.0.0
Дата: 2026-10-18
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from config import HabitQuestConfig, load_config
from core.models import Notification
from services import CoreServices
from utils.logger import setup_logging

logger = logging.getLogger(__name__)

# ===== КОМАНДЫ =====

async def run_service(config: HabitQuestConfig) -> None:
    """Запуск сервисов до получения сигнала остановки"""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler(signum, frame):
        """Обработчик сигналов для graceful shutdown"""
        logger.info(f"📢 Received signal {signum}, shutting down...")
        loop.call_soon_threadsafe(stop_event.set)

    # Настраиваем обработчики сигналов
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    def print_notification(notification: Notification) -> None:
        print(f"[{notification.urgency.value}] {notification.title}: {notification.body}", flush=True)

    services = CoreServices(config)
    services.notifications.add_listener(print_notification)

    try:
        services.start()
        await stop_event.wait()
    finally:
        services.shutdown()

def cmd_status(services: CoreServices, args) -> int:
    status = {
        "health": services.health_check(),
        "storage": services.engine.get_storage_info(),
        "backups": [record.to_dict() for record in services.engine.list_backups()[:5]],
        "config": services.config.to_dict(),
    }
    print(json.dumps(status, ensure_ascii=False, indent=2, default=str))
    return 0

def cmd_export(services: CoreServices, args) -> int:
    payload = services.data_transfer.export_data()
    return _write_output(payload, args.output)

def cmd_export_csv(services: CoreServices, args) -> int:
    payload = services.data_transfer.export_completions_csv()
    return _write_output(payload, args.output)

def cmd_import(services: CoreServices, args) -> int:
    try:
        payload = Path(args.file).read_text(encoding="utf-8")
    except OSError as e:
        print(f"Cannot read {args.file}: {e}", file=sys.stderr)
        return 1

    result = services.data_transfer.import_data(payload, mode=args.mode)
    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0 if result.success else 1

def cmd_backup(services: CoreServices, args) -> int:
    services.engine.flush()
    record = services.engine.create_backup()
    if record is None:
        print("Nothing to back up", file=sys.stderr)
        return 1
    print(json.dumps(record.to_dict(), ensure_ascii=False, indent=2))
    return 0

def cmd_reset(services: CoreServices, args) -> int:
    if not args.yes:
        print("Refusing to reset without --yes", file=sys.stderr)
        return 2
    return 0 if services.data_transfer.reset_data() else 1

def _write_output(payload: str, output: Optional[str]) -> int:
    if output:
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(payload, encoding="utf-8")
        logger.info(f"Written {path}")
    else:
        print(payload)
    return 0

COMMANDS = {
    "status": cmd_status,
    "export": cmd_export,
    "export-csv": cmd_export_csv,
    "import": cmd_import,
    "backup": cmd_backup,
    "reset": cmd_reset,
}

# ===== ГЛАВНАЯ ФУНКЦИЯ =====

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="habitquest", description='HabitQuest core services')
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help='Запуск сервисов и напоминаний')
    subparsers.add_parser("status", help='Состояние хранилища и сервисов')

    export_parser = subparsers.add_parser("export", help='Экспорт данных в JSON')
    export_parser.add_argument('--output', type=str, help='Сохранить результат в файл')

    csv_parser = subparsers.add_parser("export-csv", help='Экспорт истории выполнений в CSV')
    csv_parser.add_argument('--output', type=str, help='Сохранить результат в файл')

    import_parser = subparsers.add_parser("import", help='Импорт данных из JSON файла')
    import_parser.add_argument('file', type=str)
    import_parser.add_argument('--mode', choices=["replace", "merge"], default="replace")

    subparsers.add_parser("backup", help='Создать резервную копию')

    reset_parser = subparsers.add_parser("reset", help='Сброс данных к начальному состоянию')
    reset_parser.add_argument('--yes', action='store_true', help='Подтвердить сброс')

    return parser

def main(argv: Optional[List[str]] = None) -> int:
    """Главная функция"""
    args = build_parser().parse_args(argv)

    try:
        config = load_config()
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2

    config.ensure_directories()
    setup_logging(config)

    if args.command == "run":
        asyncio.run(run_service(config))
        return 0

    services = CoreServices(config)
    try:
        return COMMANDS[args.command](services, args)
    finally:
        services.engine.flush()

# ===== ТОЧКА ВХОДА =====

if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.info("👋 Stopped by user")
    except Exception as e:
        logger.error(f"💥 Fatal error: {e}")
        sys.exit(1)
