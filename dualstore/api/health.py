import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database
from sqlalchemy import Engine, text

from ..database import get_optional_engine
from ..mongo import get_optional_mongo_db
from ..services import mongo_catalog

logger = logging.getLogger(__name__)


def _check_postgres(engine: Optional[Engine]) -> str:
    if engine is None:
        return "skipped"
    try:
        with engine.connect() as connection:
            value = connection.execute(text("SELECT 1 AS ok")).scalar()
        return "ok" if value == 1 else "fail"
    except Exception as e:
        logger.warning(f"Диагностика PostgreSQL не пройдена: {e}")
        return "fail"


def _check_mongo(mongo_db: Optional[Database]) -> tuple[str, int]:
    if mongo_db is None:
        return "skipped", -1
    try:
        ping = mongo_db.command("ping")
        status = "ok" if ping.get("ok") == 1 else "fail"
    except Exception as e:
        logger.warning(f"Диагностика MongoDB не пройдена: {e}")
        return "fail", -1
    try:
        products_count = mongo_catalog.count_products(mongo_db)
    except Exception:
        products_count = -1
    return status, products_count


def create_health_router(service: str, engine_name: str) -> APIRouter:
    """Создает роутер /health, /api/health и /diagnostics для сервиса."""
    router = APIRouter(tags=["Health"])

    @router.get("/health")
    @router.get("/api/health")
    async def health():
        """Проверка того, что процесс API жив (базы данных не опрашиваются)."""
        return {"ok": True, "service": service, "engine": engine_name, "ts": datetime.now(timezone.utc).isoformat()}

    @router.get("/diagnostics")
    def diagnostics(
        engine: Optional[Engine] = Depends(get_optional_engine),
        mongo_db: Optional[Database] = Depends(get_optional_mongo_db),
    ):
        """Проверяет доступность обоих хранилищ. Ошибки отражаются в ответе, а не пробрасываются."""
        postgres_status = _check_postgres(engine)
        mongo_status, products_count = _check_mongo(mongo_db)
        return {
            "api": "ok",
            "postgres": postgres_status,
            "mongo": mongo_status,
            "productsCount": products_count,
        }

    return router
