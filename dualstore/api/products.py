import logging
from fastapi import APIRouter, Depends, Query, HTTPException, status
from sqlalchemy.orm import Session
from typing import List

from .. import crud, schemas
from ..config.config import StoreSettings, get_store_settings
from ..database import get_db
from ..services import order_writer
from ..services.source_resolver import ProductSource, get_product_source

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("", response_model=List[schemas.Product])
async def read_products(
    db: Session = Depends(get_db),
    source: ProductSource = Depends(get_product_source),
    search: str = Query("", description="Подстрока product_id (без учета регистра)"),
    limit: int = Query(50, ge=0, le=1000, description="Максимальное количество записей для возврата"),
    offset: int = Query(0, ge=0, description="Количество записей для пропуска (пагинация)")
):
    """
    Получает список товаров, вычисленных из товарных позиций: средняя цена и число продаж.
    Самые продаваемые товары идут первыми. Если в базе нет ни нормализованных таблиц,
    ни staging-таблицы, возвращается пустой список.
    """
    rows = crud.get_products(db, source, search=search, limit=limit, offset=offset)
    return [schemas.to_ui_product(row) for row in rows]

@router.get("/{product_id}", response_model=schemas.Product)
async def read_product_by_id(
    product_id: str,
    db: Session = Depends(get_db),
    source: ProductSource = Depends(get_product_source)
):
    """Получает товар по product_id."""
    row = crud.get_product_by_id(db, source, product_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return schemas.to_ui_product(row)

@router.post(
    "",
    response_model=schemas.ProductCreateResult,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_product(
    payload: schemas.ProductCreate,
    db: Session = Depends(get_db),
    source: ProductSource = Depends(get_product_source),
    store: StoreSettings = Depends(get_store_settings)
):
    """
    Административное создание товара.
    В нормализованной схеме товар появляется через заказ администратора
    (quantity единиц по цене price). В staging-режиме таблицы не изменяются,
    возвращается только описание товара.
    """
    product_id, title, price, quantity = order_writer.parse_admin_product(
        payload.product_id, payload.title, payload.price, payload.quantity,
        max_quantity=store.max_units_per_item,
    )

    if source != ProductSource.NORMALIZED:
        logger.info(f"Источник {source.value}: создание товара {product_id} без записи в БД")
        product = schemas.to_ui_product({"id": product_id, "title": title, "price": price, "order_count": 0})
        return schemas.ProductCreateResult(product=product)

    try:
        result = order_writer.create_order(
            db,
            [{"id": product_id, "quantity": quantity, "price": price}],
            customer_id=store.admin_customer_id,
            store_settings=store,
        )
    except Exception as e:
        logger.error(f"Ошибка создания товара {product_id}: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=str(e))

    row = crud.get_product_by_id(db, source, product_id) or {"id": product_id, "price": price, "order_count": quantity}
    product = schemas.to_ui_product({**row, "title": title})
    return schemas.ProductCreateResult(
        product=product,
        orderId=result.order_id,
        total=result.total,
        postgresDbMs=result.db_ms,
    )
