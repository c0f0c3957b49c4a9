"""
errors.py - Доменные исключения
===============================
Исключения, которые обработчики API превращают в JSON-ответ вида {"error": "..."}.
"""


class DualstoreError(Exception):
    """Базовое исключение приложения. status_code используется обработчиком ошибок."""
    status_code = 500


class OrderValidationError(DualstoreError, ValueError):
    """Некорректные данные заказа (нет позиций, ни одна позиция не прошла проверку)."""
    status_code = 400


class CommandError(DualstoreError, ValueError):
    """Некорректная команда консоли MongoDB / SQL."""
    status_code = 400


class StoreUnavailableError(DualstoreError):
    """Хранилище не сконфигурировано или недоступно."""
    status_code = 503
