import logging
import time
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Any, Dict, List

from .. import crud, schemas
from ..config.config import StoreSettings, get_store_settings
from ..database import get_db
from ..services.source_resolver import ProductSource, get_product_source

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/api/reviews/{product_id}")
async def read_reviews(
    product_id: str,
    db: Session = Depends(get_db),
    source: ProductSource = Depends(get_product_source),
    limit: int = Query(10, ge=1, le=100, description="Размер страницы"),
    skip: int = Query(0, ge=0, description="Количество отзывов для пропуска")
):
    """Получает страницу отзывов (с текстом) к заказам, содержащим товар, новые первыми."""
    started = time.perf_counter()
    rows, has_more = crud.get_reviews_for_product(db, source, product_id, skip=skip, limit=limit)
    db_ms = round((time.perf_counter() - started) * 1000, 3)
    return {
        "reviews": [schemas.to_review(row).model_dump() for row in rows],
        "hasMore": has_more,
        "postgresDbMs": db_ms,
    }

@router.get("/api/monthly-stats/{product_id}", response_model=List[Dict[str, Any]])
async def read_monthly_stats(
    product_id: str,
    db: Session = Depends(get_db),
    store: StoreSettings = Depends(get_store_settings)
):
    """
    Помесячная статистика товара из предрассчитанного представления.
    Представление обновляется вручную после массовой загрузки данных.
    """
    return crud.get_monthly_stats(db, store.monthly_stats_view, product_id)
