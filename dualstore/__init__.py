"""
dualstore - Демонстрационный бэкенд интернет-магазина на двух СУБД
==================================================================
Один и тот же магазин обслуживается двумя параллельными REST API:
реляционным (PostgreSQL, dualstore.main) и документным (MongoDB, dualstore.mongo_main).
"""

import logging
import sys
import os
from datetime import datetime

# Версия пакета
__version__ = "0.1.0"


def setup_logging(log_level=logging.DEBUG, log_to_file=True, log_dir="logs"):
    """
    Настраивает логирование для всего пакета dualstore.

    Args:
        log_level: Уровень логирования (INFO, DEBUG и т.д.)
        log_to_file: Включает логирование в файл
        log_dir: Директория для файлов логов
    """
    logger = logging.getLogger("dualstore")
    logger.setLevel(log_level)
    logger.propagate = False  # Не пропускать логи вверх по иерархии

    # Очищаем существующие обработчики, если они есть (повторный вызов из второго сервиса)
    if logger.handlers:
        logger.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    log_file = None
    if log_to_file:
        os.makedirs(log_dir, exist_ok=True)

        # Имя файла лога с текущей датой
        log_file = os.path.join(
            log_dir,
            f"dualstore_{datetime.now().strftime('%Y-%m-%d')}.log"
        )

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.info(f"Логирование настроено с уровнем {logging.getLevelName(log_level)}")
    if log_file:
        logger.info(f"Логи записываются в файл: {log_file}")

    return logger


def level_for_environment(environment: str) -> int:
    """production -> INFO, все остальные окружения -> DEBUG."""
    if environment.lower() == "production":
        return logging.INFO
    return logging.DEBUG
