"""
source_resolver.py - Выбор источника данных о товарах
=====================================================
Товары не хранятся отдельной таблицей: они вычисляются из товарных позиций.
В зависимости от того, какие таблицы есть в базе, запросы строятся
по нормализованной схеме, по плоской staging-таблице или не строятся вовсе.
"""

import logging
import threading
import time
from enum import Enum
from typing import Optional

from fastapi import Depends
from sqlalchemy import inspect
from sqlalchemy.orm import Session

from ..config.config import get_settings
from ..database import get_db
from ..models import NORMALIZED_TABLES, STAGING_TABLE

logger = logging.getLogger(__name__)


class ProductSource(str, Enum):
    NORMALIZED = "normalized"
    STAGING = "staging"
    NONE = "none"


def detect_product_source(bind) -> ProductSource:
    """
    Проверяет наличие таблиц и возвращает источник данных.

    Args:
        bind: Engine или Connection SQLAlchemy

    Returns:
        NORMALIZED, если есть order_items_core и order_item_pricing;
        STAGING, если есть только плоская таблица orders; иначе NONE.
    """
    inspector = inspect(bind)
    if all(inspector.has_table(name) for name in NORMALIZED_TABLES):
        return ProductSource.NORMALIZED
    if inspector.has_table(STAGING_TABLE):
        return ProductSource.STAGING
    return ProductSource.NONE


class SourceResolver:
    """
    Кэширует результат detect_product_source на ttl_seconds.
    ttl_seconds = 0 отключает кэш: схема проверяется при каждом запросе.
    """

    def __init__(self, ttl_seconds: float = 30.0):
        self.ttl_seconds = ttl_seconds
        self._source: Optional[ProductSource] = None
        self._resolved_at: float = 0.0
        self._lock = threading.Lock() # Обработчики FastAPI выполняются в пуле потоков

    def resolve(self, bind) -> ProductSource:
        with self._lock:
            now = time.monotonic()
            if self._source is not None and self.ttl_seconds > 0 and now - self._resolved_at < self.ttl_seconds:
                return self._source

            source = detect_product_source(bind)
            if source != self._source:
                logger.info(f"Источник данных о товарах: {source.value}")
            self._source = source
            self._resolved_at = now
            return source

    def invalidate(self) -> None:
        """Сбрасывает кэш, следующий вызов resolve() заново проверит схему."""
        with self._lock:
            self._source = None
            self._resolved_at = 0.0


_resolver: Optional[SourceResolver] = None


def get_source_resolver() -> SourceResolver:
    global _resolver
    if _resolver is None:
        _resolver = SourceResolver(ttl_seconds=get_settings().store.source_cache_ttl_seconds)
    return _resolver


def get_product_source(
    db: Session = Depends(get_db),
    resolver: SourceResolver = Depends(get_source_resolver),
) -> ProductSource:
    """Зависимость FastAPI: текущий источник данных, передается в функции crud явно."""
    return resolver.resolve(db.connection())
