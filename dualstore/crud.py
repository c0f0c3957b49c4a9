"""
crud.py - Функции для работы с реляционной базой данных
=======================================================
Запросы к товарам, отзывам и агрегатам. Каждый запрос о товарах существует
в двух вариантах: по нормализованной схеме и по плоской staging-таблице.
Вариант выбирается аргументом source (см. services/source_resolver.py).
"""

from sqlalchemy.orm import Session
from sqlalchemy import select, func, desc, text, and_
from typing import List, Optional, Dict, Any, Union, Sequence
from datetime import datetime

from . import models
from .services.source_resolver import ProductSource

# =============================================================================
# Товары (вычисляются группировкой товарных позиций по product_id)
# =============================================================================

def _normalized_products_query():
    core, pricing = models.OrderItemCore, models.OrderItemPricing
    return (
        select(
            core.product_id.label("id"),
            func.round(func.avg(pricing.price), 2).label("price"),
            func.count().label("order_count"),
        )
        .select_from(core)
        .join(
            pricing,
            and_(pricing.order_id == core.order_id, pricing.order_item_id == core.order_item_id),
        )
        .group_by(core.product_id)
    ), core.product_id


def _staging_products_query():
    staging = models.staging_orders
    return (
        select(
            staging.c.product_id.label("id"),
            func.round(func.avg(staging.c.price), 2).label("price"),
            func.count().label("order_count"),
        )
        .where(staging.c.product_id.isnot(None))
        .group_by(staging.c.product_id)
    ), staging.c.product_id


def _products_query(source: ProductSource):
    if source == ProductSource.NORMALIZED:
        return _normalized_products_query()
    if source == ProductSource.STAGING:
        return _staging_products_query()
    return None, None


def _escape_like(value: str) -> str:
    """Экранирует спецсимволы LIKE, чтобы поиск был по буквальной подстроке."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def get_products(
    db: Session,
    source: ProductSource,
    search: str = "",
    limit: int = 50,
    offset: int = 0
) -> List[Dict[str, Any]]:
    """
    Получает список товаров с ценой (средняя, округленная до 2 знаков) и числом продаж.

    Args:
        db: Сессия SQLAlchemy для работы с БД
        source: Источник данных (normalized / staging / none)
        search: Подстрока для регистронезависимого поиска по product_id (% и _ ищутся буквально)
        limit: Максимальное количество записей
        offset: Количество записей для пропуска

    Returns:
        Список словарей {id, price, order_count}; пустой список для source=none
    """
    query, product_id_column = _products_query(source)
    if query is None:
        return []

    search = (search or "").strip()
    if search:
        query = query.where(product_id_column.ilike(f"%{_escape_like(search)}%", escape="\\"))

    query = query.order_by(desc("order_count"), product_id_column).offset(offset).limit(limit)
    return [dict(row) for row in db.execute(query).mappings().all()]


def get_product_by_id(db: Session, source: ProductSource, product_id: str) -> Optional[Dict[str, Any]]:
    """Получает один товар по product_id или None, если продаж товара нет."""
    query, product_id_column = _products_query(source)
    if query is None:
        return None

    row = db.execute(query.where(product_id_column == product_id)).mappings().first()
    return dict(row) if row else None


def get_average_price(db: Session, product_id: str) -> Optional[float]:
    """Средняя историческая цена товара по нормализованной схеме (None, если продаж не было)."""
    core, pricing = models.OrderItemCore, models.OrderItemPricing
    query = (
        select(func.round(func.avg(pricing.price), 2))
        .select_from(pricing)
        .join(
            core,
            and_(pricing.order_id == core.order_id, pricing.order_item_id == core.order_item_id),
        )
        .where(core.product_id == product_id)
    )
    value = db.execute(query).scalar_one_or_none()
    return float(value) if value is not None else None

# =============================================================================
# Отзывы
# =============================================================================

def _normalized_reviews_query(product_id: str):
    review, review_text = models.OrderReviewCore, models.OrderReviewText
    orders_with_product = (
        select(models.OrderItemCore.order_id)
        .where(models.OrderItemCore.product_id == product_id)
    )
    return (
        select(
            review.review_id,
            review.review_score,
            review_text.review_comment_title,
            review_text.review_comment_message,
            review.review_creation_date,
        )
        .join(
            review_text,
            and_(review_text.review_id == review.review_id, review_text.order_id == review.order_id),
        )
        .where(review.order_id.in_(orders_with_product))
        .where(review_text.review_comment_message.isnot(None))
        .order_by(desc(review.review_creation_date), review.review_id)
    )


def _staging_reviews_query(product_id: str):
    staging = models.staging_orders
    # В плоской таблице отзыв повторяется на каждой товарной позиции заказа
    return (
        select(
            staging.c.review_id,
            staging.c.review_score,
            staging.c.review_comment_title,
            staging.c.review_comment_message,
            staging.c.review_creation_date,
        )
        .where(staging.c.product_id == product_id)
        .where(staging.c.review_id.isnot(None))
        .where(staging.c.review_comment_message.isnot(None))
        .distinct()
        .order_by(desc(staging.c.review_creation_date), staging.c.review_id)
    )


def get_reviews_for_product(
    db: Session,
    source: ProductSource,
    product_id: str,
    skip: int = 0,
    limit: int = 10
) -> tuple[List[Dict[str, Any]], bool]:
    """
    Получает страницу отзывов к заказам, в которых есть товар (только с текстом, новые первыми).

    Returns:
        (отзывы, has_more). has_more определяется выборкой limit + 1 строк.
    """
    if source == ProductSource.NORMALIZED:
        query = _normalized_reviews_query(product_id)
    elif source == ProductSource.STAGING:
        query = _staging_reviews_query(product_id)
    else:
        return [], False

    rows = db.execute(query.offset(skip).limit(limit + 1)).mappings().all()
    has_more = len(rows) > limit
    return [dict(row) for row in rows[:limit]], has_more

# =============================================================================
# Агрегаты и консоль
# =============================================================================

def get_monthly_stats(db: Session, view_name: str, product_id: str) -> List[Dict[str, Any]]:
    """
    Получает строки предрассчитанного представления помесячной статистики товара.
    Имя представления проверяется при загрузке настроек.
    """
    query = text(f"SELECT * FROM {view_name} WHERE product_id = :product_id")
    rows = db.execute(query, {"product_id": product_id}).mappings().all()
    return [_jsonable_row(row) for row in rows]


def execute_raw_sql(
    db: Session,
    sql: str,
    params: Union[Dict[str, Any], Sequence[Any], None] = None
) -> tuple[List[Dict[str, Any]], int]:
    """
    Выполняет произвольный SQL.
    Словарь params - именованные параметры (:name), список - позиционные параметры драйвера.

    Returns:
        (строки результата, rowcount). Транзакция фиксируется, при ошибке - откат.
    """
    try:
        if isinstance(params, (list, tuple)):
            result = db.connection().exec_driver_sql(sql, tuple(params))
        else:
            result = db.execute(text(sql), params or {})

        if result.returns_rows:
            rows = [_jsonable_row(row) for row in result.mappings().all()]
            row_count = len(rows)
        else:
            rows = []
            row_count = result.rowcount
        db.commit()
    except Exception:
        db.rollback()
        raise
    return rows, row_count


def _jsonable_row(row) -> Dict[str, Any]:
    """Приводит значения строки к JSON-совместимым типам (Decimal -> float, datetime -> ISO)."""
    out = {}
    for key, value in dict(row).items():
        if isinstance(value, datetime):
            out[key] = value.isoformat()
        elif hasattr(value, "as_tuple"): # Decimal
            out[key] = float(value)
        else:
            out[key] = value
    return out
