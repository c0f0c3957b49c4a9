import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import schemas
from ..config.config import StoreSettings, get_store_settings
from ..database import get_db
from ..services import order_writer

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post(
    "",
    response_model=schemas.OrderCreateResult,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_order(
    payload: schemas.OrderCreate,
    db: Session = Depends(get_db),
    store: StoreSettings = Depends(get_store_settings)
):
    """
    Оформляет заказ одной транзакцией. Каждая единица товара - отдельная товарная позиция.
    Некорректные позиции пропускаются; если не осталось ни одной, возвращается 400.
    Любая ошибка откатывает транзакцию и возвращается как 400 с текстом ошибки.
    """
    try:
        result = order_writer.create_order(
            db, payload.items, customer_id=payload.customer_id, store_settings=store
        )
    except Exception as e:
        logger.error(f"Ошибка оформления заказа: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=str(e))

    return schemas.OrderCreateResult(
        orderId=result.order_id,
        total=result.total,
        itemCount=result.item_count,
        postgresDbMs=result.db_ms,
    )
