"""
mongo_main.py - Документный сервис (MongoDB)
============================================
Тот же набор маршрутов магазина, что и в main.py, поверх коллекций products и orders.
PostgreSQL подключается, только если задан POSTGRES_URL (диагностика и консоль SQL).
"""

import logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - ROOT - %(message)s')

try:
    from dualstore.config.config import load_settings, AppSettings
    settings: AppSettings = load_settings()
    logging.info("Конфигурация приложения успешно загружена.")
except Exception as e:
    logging.critical(f"КРИТИЧЕСКАЯ ОШИБКА: Не удалось загрузить конфигурацию приложения: {e}", exc_info=True)
    raise SystemExit(1)


from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dualstore import setup_logging, level_for_environment
from dualstore.api import console, mongo_store
from dualstore.api.errors import install_error_handlers
from dualstore.api.health import create_health_router
from dualstore.database import initialize_database_session, dispose_database_session
from dualstore.mongo import initialize_mongo, close_mongo

logger = setup_logging(
    log_level=level_for_environment(settings.ENVIRONMENT),
    log_to_file=settings.common.log_to_file,
    log_dir=settings.common.log_dir,
)

@asynccontextmanager
async def lifespan(app_lifespan: FastAPI):
    logger.info("Lifespan: Запуск документного сервиса...")
    _, mongo_db = initialize_mongo(settings)
    if mongo_db is None:
        logger.critical("Lifespan: MONGODB_URI/MONGO_URL не задан, маршруты магазина будут отвечать 503.")
    initialize_database_session(settings)

    yield

    logger.info("Lifespan: Завершение работы документного сервиса...")
    close_mongo()
    dispose_database_session()

app = FastAPI(
    title=f"{settings.api.title} (MongoDB)",
    description=settings.api.description,
    version=settings.api.version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.common.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

app.include_router(create_health_router(service="api", engine_name="mongo"))
app.include_router(mongo_store.router)
app.include_router(console.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("dualstore.mongo_main:app", host="0.0.0.0", port=settings.MONGO_PORT)
