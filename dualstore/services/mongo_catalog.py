"""
mongo_catalog.py - Товары, заказы и отзывы в MongoDB
====================================================
Документный вариант магазина:
    products - настоящая коллекция товаров со счетчиком продаж order_count;
    orders   - по документу на каждую единицу проданного товара
               (та же форма, что и строки order_items_core + order_item_pricing),
               в части документов также хранятся поля отзыва.
"""

import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pymongo.database import Database

from ..mongo import ORDERS_COLLECTION, PRODUCTS_COLLECTION
from ..errors import OrderValidationError
from .order_writer import OrderResult, new_order_id, normalize_items, resolve_customer_id, to_cents

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


def _product_filter(search: str) -> Dict[str, Any]:
    query: Dict[str, Any] = {"active": {"$ne": False}}
    search = (search or "").strip()
    if search:
        pattern = re.escape(search) # Поиск подстроки, а не регулярного выражения
        query["$or"] = [
            {"product_id": {"$regex": pattern, "$options": "i"}},
            {"title": {"$regex": pattern, "$options": "i"}},
        ]
    return query


def list_products(db: Database, search: str = "", limit: int = 50, offset: int = 0) -> Tuple[List[Dict[str, Any]], float]:
    """Возвращает (документы товаров, время запроса в мс), самые продаваемые первыми."""
    started = time.perf_counter()
    if limit == 0:
        # В pymongo limit(0) означает "без ограничения"
        return [], _elapsed_ms(started)
    cursor = (
        db[PRODUCTS_COLLECTION]
        .find(_product_filter(search), {"_id": 0})
        .sort([("order_count", -1), ("product_id", 1)])
        .skip(offset)
        .limit(limit)
    )
    docs = list(cursor)
    return docs, _elapsed_ms(started)


def get_product(db: Database, product_id: str) -> Optional[Dict[str, Any]]:
    return db[PRODUCTS_COLLECTION].find_one({"product_id": product_id}, {"_id": 0})


def _order_documents(order_id: str, customer_id: str, lines, freight: float, extra: Optional[Dict[str, Any]] = None):
    """Раскладывает позиции в документы: по одному на единицу товара."""
    docs = []
    total = 0.0
    order_item_id = 0
    created_at = datetime.now(timezone.utc)
    for line in lines:
        price = line.price if line.price is not None else 0.0
        for _ in range(line.quantity):
            order_item_id += 1
            doc = {
                "order_id": order_id,
                "order_item_id": order_item_id,
                "product_id": line.product_id,
                "price": price,
                "freight_value": freight,
                "customer_id": customer_id,
                "created_at": created_at,
            }
            if line.seller_id:
                doc["seller_id"] = line.seller_id
            if extra:
                doc.update(extra)
            docs.append(doc)
            total += price + freight
    return docs, to_cents(total)


def create_order(db: Database, items: Optional[List[Any]], customer_id: Any = None, store_settings=None) -> OrderResult:
    """
    Записывает заказ в коллекцию orders одним insert_many.

    Raises:
        OrderValidationError: нет позиций или ни одна позиция не прошла проверку
    """
    if not items:
        raise OrderValidationError("At least one item is required")

    lines = normalize_items(items, store_settings.max_units_per_item)
    if not lines:
        raise OrderValidationError("No valid items to insert for this order")

    order_id = new_order_id()
    customer = resolve_customer_id(customer_id, store_settings.default_customer_id)
    docs, total = _order_documents(order_id, customer, lines, to_cents(store_settings.default_freight_value))

    started = time.perf_counter()
    db[ORDERS_COLLECTION].insert_many(docs)
    db_ms = _elapsed_ms(started)
    logger.info(f"Заказ {order_id} записан в MongoDB: {len(docs)} документов, сумма {total}, {db_ms} мс")
    return OrderResult(order_id=order_id, total=total, item_count=len(docs), db_ms=db_ms)


def create_admin_product(
    db: Database,
    product_id: str,
    title: Optional[str],
    price: float,
    quantity: int,
    store_settings=None,
) -> Tuple[Dict[str, Any], OrderResult]:
    """
    Административное создание товара: записывает заказ администратора в orders
    и обновляет сводку в products (upsert, order_count увеличивается на quantity).
    """
    order_id = new_order_id()
    freight = to_cents(store_settings.default_freight_value)
    lines = normalize_items([{"id": product_id, "quantity": quantity, "price": price}])
    docs, total = _order_documents(
        order_id, store_settings.admin_customer_id, lines, freight, extra={"source": "admin"}
    )

    started = time.perf_counter()
    db[ORDERS_COLLECTION].insert_many(docs)
    db[PRODUCTS_COLLECTION].update_one(
        {"product_id": product_id},
        {
            "$setOnInsert": {
                "product_id": product_id,
                "active": True,
                "created_at": datetime.now(timezone.utc),
            },
            "$set": {"title": title or product_id, "price": price},
            "$inc": {"order_count": quantity},
        },
        upsert=True,
    )
    db_ms = _elapsed_ms(started)
    logger.info(f"Товар {product_id} создан/обновлен администратором, заказ {order_id}")

    product = {"product_id": product_id, "title": title or product_id, "price": price, "order_count": quantity}
    return product, OrderResult(order_id=order_id, total=total, item_count=len(docs), db_ms=db_ms)


def get_reviews_for_product(db: Database, product_id: str, skip: int = 0, limit: int = 10) -> Tuple[List[Dict[str, Any]], bool, float]:
    """
    Возвращает (отзывы, has_more, время запроса в мс).
    Отзыв хранится в документах orders; учитываются только отзывы с текстом.
    """
    pipeline = [
        {"$match": {"product_id": product_id, "review_comment_message": {"$ne": None}}},
        {"$project": {
            "_id": 0,
            "review_id": 1,
            "review_score": 1,
            "review_comment_title": 1,
            "review_comment_message": 1,
            "review_creation_date": 1,
        }},
        {"$sort": {"review_creation_date": -1, "review_id": 1}},
        {"$skip": skip},
        {"$limit": limit + 1},
    ]
    started = time.perf_counter()
    docs = list(db[ORDERS_COLLECTION].aggregate(pipeline))
    db_ms = _elapsed_ms(started)
    return docs[:limit], len(docs) > limit, db_ms


def count_products(db: Database) -> int:
    return db[PRODUCTS_COLLECTION].count_documents({})
