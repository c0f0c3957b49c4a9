"""
order_writer.py - Оформление заказа в реляционной базе
======================================================
Заказ записывается одной транзакцией в несколько таблиц:
orders_header, orders_timestamps, order_items_core + order_item_pricing
(по строке на каждую единицу товара), payment_type_dim, order_payment_method
и order_payment_amount. Любая ошибка откатывает транзакцию целиком.

Нормализация позиций корзины общая для реляционного и документного сервисов.
"""

import logging
import math
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..errors import OrderValidationError

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass
class OrderLine:
    """Проверенная позиция корзины."""
    product_id: str
    quantity: int
    price: Optional[float]   # None - цена не передана клиентом
    seller_id: Optional[str] = None


@dataclass
class OrderResult:
    order_id: str
    total: float
    item_count: int          # Число записанных единиц товара
    db_ms: float


def new_order_id() -> str:
    """32-символьный hex-идентификатор заказа."""
    return secrets.token_hex(16)


def _parse_quantity(value: Any) -> Optional[int]:
    if value is None:
        return 1
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return None
        return int(value)
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def to_cents(value: float) -> float:
    """Округляет сумму до копеек так же, как столбец Numeric(10, 2)."""
    return float(Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP))


def _parse_price(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        raise ValueError("price must be a number")
    price = float(value)
    if not math.isfinite(price) or price < 0:
        raise ValueError("price must be a finite non-negative number")
    return to_cents(price)


def normalize_items(items: Iterable[Any], max_quantity: Optional[int] = None) -> List[OrderLine]:
    """
    Отбирает корректные позиции корзины. Некорректные позиции молча пропускаются.

    Позиция корректна, если:
        - это объект (а не строка, число и т.п.);
        - product_id (поле id или product_id) непустой после strip();
        - quantity (поле quantity или qty) отсутствует (считается 1) или является
          положительным целым, не превышающим max_quantity;
        - price отсутствует или является конечным неотрицательным числом.
    """
    lines: List[OrderLine] = []
    for index, item in enumerate(items):
        if isinstance(item, dict):
            item = schemas.OrderItemIn.model_validate(item)
        if not isinstance(item, schemas.OrderItemIn):
            logger.debug(f"Позиция {index} пропущена: ожидался объект, получено {type(item).__name__}")
            continue

        raw = item.model_dump()
        product_id = str(raw.get("id") if raw.get("id") is not None else "").strip()
        if not product_id:
            logger.debug(f"Позиция {index} пропущена: пустой product_id")
            continue

        quantity = _parse_quantity(raw.get("quantity"))
        if quantity is None or quantity <= 0:
            logger.debug(f"Позиция {index} ({product_id}) пропущена: некорректное количество {raw.get('quantity')!r}")
            continue
        if max_quantity is not None and quantity > max_quantity:
            logger.debug(f"Позиция {index} ({product_id}) пропущена: количество {quantity} больше {max_quantity}")
            continue

        price = None
        if raw.get("price") is not None:
            try:
                price = _parse_price(raw.get("price"))
            except (TypeError, ValueError):
                logger.debug(f"Позиция {index} ({product_id}) пропущена: некорректная цена {raw.get('price')!r}")
                continue

        seller_id = raw.get("seller_id")
        seller_id = str(seller_id).strip() if seller_id is not None and str(seller_id).strip() else None
        lines.append(OrderLine(product_id=product_id, quantity=quantity, price=price, seller_id=seller_id))
    return lines


def resolve_customer_id(customer_id: Any, default: str) -> str:
    if customer_id is None or not str(customer_id).strip():
        return default
    return str(customer_id).strip()


def _ensure_payment_type(db: Session, payment_type: str) -> None:
    """Добавляет способ оплаты в справочник, игнорируя конфликт, если он уже есть."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(models.PaymentTypeDim).values(payment_type=payment_type)
        db.execute(stmt.on_conflict_do_nothing(index_elements=["payment_type"]))
    elif dialect == "sqlite":
        stmt = sqlite.insert(models.PaymentTypeDim).values(payment_type=payment_type)
        db.execute(stmt.on_conflict_do_nothing(index_elements=["payment_type"]))
    elif db.get(models.PaymentTypeDim, payment_type) is None:
        db.add(models.PaymentTypeDim(payment_type=payment_type))
        db.flush()


def create_order(
    db: Session,
    items: Optional[List[Any]],
    customer_id: Any = None,
    store_settings=None,
) -> OrderResult:
    """
    Создает заказ в нормализованной схеме.

    Args:
        db: Сессия SQLAlchemy
        items: Позиции корзины [{id, quantity, price?, seller_id?}]
        customer_id: Идентификатор покупателя (по умолчанию store_settings.default_customer_id)
        store_settings: StoreSettings с значениями по умолчанию

    Returns:
        OrderResult с идентификатором заказа, суммой и временем работы с БД

    Raises:
        OrderValidationError: нет позиций или ни одна позиция не прошла проверку
        Exception: любая ошибка БД (транзакция откатывается)
    """
    if not items:
        raise OrderValidationError("At least one item is required")

    lines = normalize_items(items, store_settings.max_units_per_item)
    customer = resolve_customer_id(customer_id, store_settings.default_customer_id)
    freight = to_cents(store_settings.default_freight_value)

    started = time.perf_counter()
    order_id = new_order_id()
    try:
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        db.add(models.OrderHeader(
            order_id=order_id,
            customer_id=customer,
            order_status=store_settings.default_order_status,
        ))
        db.flush()
        db.add(models.OrderTimestamps(order_id=order_id, order_purchase_timestamp=now))
        db.flush()

        order_item_id = 0
        total = 0.0
        for line in lines:
            price = line.price
            if price is None:
                price = crud.get_average_price(db, line.product_id)
                price = to_cents(price) if price is not None else 0.0

            # Одна строка на единицу товара: столбца quantity в схеме нет
            for _ in range(line.quantity):
                order_item_id += 1
                db.add(models.OrderItemCore(
                    order_id=order_id,
                    order_item_id=order_item_id,
                    product_id=line.product_id,
                    seller_id=line.seller_id or store_settings.default_seller_id,
                ))
                db.flush()
                db.add(models.OrderItemPricing(
                    order_id=order_id,
                    order_item_id=order_item_id,
                    price=price,
                    freight_value=freight,
                ))
                db.flush()
                total += price + freight

        if order_item_id == 0:
            raise OrderValidationError("No valid items to insert for this order")

        total = to_cents(total)
        payment_type = store_settings.default_payment_type
        _ensure_payment_type(db, payment_type)
        db.add(models.OrderPaymentMethod(
            order_id=order_id,
            payment_sequential=1,
            payment_type=payment_type,
            payment_installments=1,
        ))
        db.flush()
        db.add(models.OrderPaymentAmount(order_id=order_id, payment_sequential=1, payment_value=total))
        db.commit()
    except Exception:
        db.rollback()
        logger.warning(f"Заказ {order_id} не создан, транзакция откачена", exc_info=True)
        raise

    db_ms = round((time.perf_counter() - started) * 1000, 3)
    logger.info(f"Заказ {order_id} создан: {order_item_id} ед. товара, сумма {total}, {db_ms} мс")
    return OrderResult(order_id=order_id, total=total, item_count=order_item_id, db_ms=db_ms)


def parse_admin_product(
    product_id: Any,
    title: Any,
    price: Any,
    quantity: Any,
    max_quantity: Optional[int] = None,
) -> Tuple[str, Optional[str], float, int]:
    """
    Проверяет данные административного создания товара.

    Returns:
        (product_id, title, price, quantity); цена по умолчанию 0, количество не меньше 1

    Raises:
        OrderValidationError: пустой product_id, некорректная цена или количество больше max_quantity
    """
    product_id = str(product_id).strip() if product_id is not None else ""
    if not product_id:
        raise OrderValidationError("product_id required (sku maps to product_id)")

    try:
        unit_price = _parse_price(price) if price is not None else 0.0
    except (TypeError, ValueError):
        raise OrderValidationError("price must be a non-negative number")

    qty = _parse_quantity(quantity)
    qty = max(1, qty or 1)
    if max_quantity is not None and qty > max_quantity:
        raise OrderValidationError(f"quantity must not exceed {max_quantity}")
    title = str(title).strip() if title is not None and str(title).strip() else None
    return product_id, title, unit_price, qty
