"""
mongo.py - Подключение к MongoDB
================================
Глобальный клиент pymongo, инициализируемый при старте приложения,
и FastAPI-зависимость для получения базы данных.
"""

import logging
from typing import Optional, Tuple

from pymongo import MongoClient
from pymongo.database import Database

from .errors import StoreUnavailableError

logger = logging.getLogger(__name__)

# Коллекции документного варианта магазина
PRODUCTS_COLLECTION = "products"
ORDERS_COLLECTION = "orders"

mongo_client: Optional[MongoClient] = None
mongo_db: Optional[Database] = None


def initialize_mongo(app_settings) -> Tuple[Optional[MongoClient], Optional[Database]]:
    """Создает MongoClient по MONGODB_URI. Если URI не задан, документное хранилище отключено."""
    global mongo_client, mongo_db

    if not app_settings.MONGODB_URI:
        logger.warning("MONGODB_URI не задан: документное хранилище недоступно.")
        return None, None

    if mongo_client is None:
        mongo_client = MongoClient(app_settings.MONGODB_URI, tz_aware=True)
        mongo_db = mongo_client[app_settings.MONGO_DB_NAME]
        logger.info(f"MongoClient инициализирован, база данных: {app_settings.MONGO_DB_NAME}")
    return mongo_client, mongo_db


def close_mongo() -> None:
    global mongo_client, mongo_db
    if mongo_client is not None:
        mongo_client.close()
        logger.info("Соединение с MongoDB закрыто.")
    mongo_client = None
    mongo_db = None


def get_mongo_db() -> Database:
    """Зависимость FastAPI: база данных MongoDB или 503, если она не сконфигурирована."""
    if mongo_db is None:
        raise StoreUnavailableError("MongoDB connection not configured.")
    return mongo_db


def get_optional_mongo_db() -> Optional[Database]:
    """Зависимость FastAPI: база MongoDB или None (для диагностики)."""
    return mongo_db
