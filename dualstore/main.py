"""
main.py - Реляционный сервис (PostgreSQL)
=========================================
FastAPI приложение: товары, заказы, отзывы и агрегаты поверх нормализованной
схемы или плоской staging-таблицы, консоль команд и диагностика.
"""

import logging
# Настройка базового логирования на случай критических ошибок при старте
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - ROOT - %(message)s')

# Загрузка конфигурации приложения - должна быть одной из первых операций
try:
    from dualstore.config.config import load_settings, AppSettings
    settings: AppSettings = load_settings()
    logging.info("Конфигурация приложения успешно загружена.")
except Exception as e:
    logging.critical(f"КРИТИЧЕСКАЯ ОШИБКА: Не удалось загрузить конфигурацию приложения: {e}", exc_info=True)
    raise SystemExit(1) # Выход из приложения, если конфигурация не загружена


from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dualstore import setup_logging, level_for_environment
from dualstore.api import console, orders, products, reviews
from dualstore.api.errors import install_error_handlers
from dualstore.api.health import create_health_router
from dualstore.database import initialize_database_session, create_db_and_tables, dispose_database_session
from dualstore.mongo import initialize_mongo, close_mongo

logger = setup_logging(
    log_level=level_for_environment(settings.ENVIRONMENT),
    log_to_file=settings.common.log_to_file,
    log_dir=settings.common.log_dir,
)

# =============================================================================
# Lifespan для управления ресурсами приложения
# =============================================================================
@asynccontextmanager
async def lifespan(app_lifespan: FastAPI):
    """
    Инициализирует пул соединений PostgreSQL при запуске.
    MongoDB подключается, только если задан MONGODB_URI (диагностика и консоль).
    """
    logger.info("Lifespan: Запуск реляционного сервиса...")
    engine, _ = initialize_database_session(settings)
    if engine is None:
        logger.critical("Lifespan: POSTGRES_URL/DATABASE_URL не задан, маршруты товаров и заказов будут отвечать 503.")
    elif settings.store.create_tables:
        create_db_and_tables(engine)
    initialize_mongo(settings)

    yield

    logger.info("Lifespan: Завершение работы реляционного сервиса...")
    dispose_database_session()
    close_mongo()

app = FastAPI(
    title=f"{settings.api.title} (PostgreSQL)",
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
logger.info(f"CORS настроен для следующих origins: {settings.common.cors_origins}")

install_error_handlers(app)

# Подключение роутеров API
app.include_router(create_health_router(service="api", engine_name="postgres"))
app.include_router(products.router, prefix="/api/products", tags=["Products"])
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(reviews.router, tags=["Reviews"])
app.include_router(console.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("dualstore.main:app", host="0.0.0.0", port=settings.PORT)
