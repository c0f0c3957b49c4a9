import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pymongo.database import Database
from typing import List

from .. import schemas
from ..config.config import StoreSettings, get_store_settings
from ..mongo import get_mongo_db
from ..services import mongo_catalog, order_writer

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/api/products", response_model=List[schemas.Product], tags=["Products"])
async def read_products(
    mongo_db: Database = Depends(get_mongo_db),
    search: str = Query("", description="Подстрока product_id или названия (без учета регистра)"),
    limit: int = Query(50, ge=0, le=1000, description="Максимальное количество записей"),
    offset: int = Query(0, ge=0, description="Количество записей для пропуска")
):
    """Получает активные товары из коллекции products, самые продаваемые первыми."""
    docs, _ = mongo_catalog.list_products(mongo_db, search=search, limit=limit, offset=offset)
    return [schemas.to_ui_product(doc) for doc in docs]

@router.get("/api/products/{product_id}", response_model=schemas.Product, tags=["Products"])
async def read_product_by_id(product_id: str, mongo_db: Database = Depends(get_mongo_db)):
    doc = mongo_catalog.get_product(mongo_db, product_id)
    if doc is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return schemas.to_ui_product(doc)

@router.post(
    "/api/products",
    response_model=schemas.ProductCreateResult,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    tags=["Products"],
)
async def create_product(
    payload: schemas.ProductCreate,
    mongo_db: Database = Depends(get_mongo_db),
    store: StoreSettings = Depends(get_store_settings)
):
    """
    Административное создание товара: заказ администратора в orders
    и upsert сводки в products с увеличением order_count.
    """
    product_id, title, price, quantity = order_writer.parse_admin_product(
        payload.product_id, payload.title, payload.price, payload.quantity,
        max_quantity=store.max_units_per_item,
    )
    try:
        product, result = mongo_catalog.create_admin_product(
            mongo_db, product_id, title, price, quantity, store_settings=store
        )
    except Exception as e:
        logger.error(f"Ошибка создания товара {product_id} в MongoDB: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=str(e))

    return schemas.ProductCreateResult(
        product=schemas.to_ui_product(product),
        orderId=result.order_id,
        total=result.total,
        mongoDbMs=result.db_ms,
    )

@router.post(
    "/api/orders",
    response_model=schemas.OrderCreateResult,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    tags=["Orders"],
)
async def create_order(
    payload: schemas.OrderCreate,
    mongo_db: Database = Depends(get_mongo_db),
    store: StoreSettings = Depends(get_store_settings)
):
    """Записывает заказ в orders: по документу на каждую единицу товара."""
    try:
        result = mongo_catalog.create_order(
            mongo_db, payload.items, customer_id=payload.customer_id, store_settings=store
        )
    except Exception as e:
        logger.error(f"Ошибка оформления заказа в MongoDB: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=str(e))

    return schemas.OrderCreateResult(
        orderId=result.order_id,
        total=result.total,
        itemCount=result.item_count,
        mongoDbMs=result.db_ms,
    )

@router.get("/api/reviews/{product_id}", tags=["Reviews"])
async def read_reviews(
    product_id: str,
    mongo_db: Database = Depends(get_mongo_db),
    limit: int = Query(10, ge=1, le=100, description="Размер страницы"),
    skip: int = Query(0, ge=0, description="Количество отзывов для пропуска")
):
    docs, has_more, db_ms = mongo_catalog.get_reviews_for_product(mongo_db, product_id, skip=skip, limit=limit)
    return {
        "reviews": [schemas.to_review(doc).model_dump() for doc in docs],
        "hasMore": has_more,
        "mongoDbMs": db_ms,
    }
