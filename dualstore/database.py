import logging
from sqlalchemy import create_engine, Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from typing import Optional

from .errors import StoreUnavailableError

logger = logging.getLogger(__name__)

# ----- Конфигурация подключения к базе данных -----

def get_engine(database_url: str, use_ssl: bool = False) -> Engine: # Функция для создания engine
    """Создает движок SQLAlchemy на основе POSTGRES_URL."""
    engine_args = {"pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        engine_args = {"connect_args": {"check_same_thread": False}}
    elif use_ssl:
        engine_args["connect_args"] = {"sslmode": "require"}
    return create_engine(database_url, **engine_args)

# Создаем базовый класс для ORM-моделей
Base = declarative_base()

# ----- Инициализация глобальных переменных engine и SessionLocal ---
engine: Engine | None = None
SessionLocal: Optional[sessionmaker] = None

def initialize_database_session(app_settings): # Передаем настройки
    """Инициализирует engine и SessionLocal на основе загруженных настроек."""
    global engine, SessionLocal

    if not app_settings.POSTGRES_URL:
        logger.warning("POSTGRES_URL не задан: реляционное хранилище недоступно.")
        return None, None

    if engine is None: # Инициализируем только один раз
        engine = get_engine(app_settings.POSTGRES_URL, use_ssl=app_settings.use_postgres_ssl)
        SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        logger.info(f"SQLAlchemy Engine и SessionLocal инициализированы для URL: {app_settings.POSTGRES_URL_SAFE_LOGGING}") # Логируем безопасно
    return engine, SessionLocal

def dispose_database_session() -> None:
    """Закрывает пул соединений при остановке приложения."""
    global engine, SessionLocal
    if engine is not None:
        engine.dispose()
        logger.info("Пул соединений SQLAlchemy закрыт.")
    engine = None
    SessionLocal = None

# ----- Вспомогательные функции -----
def create_db_and_tables(db_engine: Engine): # Принимает engine
    """
    Создает нормализованные таблицы (если их нет).
    Плоская staging-таблица "orders" не создается: она появляется только при импорте CSV.
    """
    from . import models # Регистрируем модели в Base.metadata
    tables = [table for table in Base.metadata.sorted_tables if table.name != models.STAGING_TABLE]
    try:
        Base.metadata.create_all(bind=db_engine, tables=tables)
        logger.info("Таблицы в базе данных успешно созданы (если их не было).")
    except Exception as e:
        logger.error(f"Ошибка при создании таблиц: {e}", exc_info=True)
        raise # Перевыбрасываем ошибку, чтобы приложение могло ее обработать

def get_db():
    """Функция-генератор для получения сессии базы данных."""
    if SessionLocal is None:
        logger.error("SessionLocal не инициализирован: PostgreSQL не сконфигурирован.")
        raise StoreUnavailableError("PostgreSQL connection not configured.")

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_optional_engine() -> Optional[Engine]:
    """Зависимость FastAPI: engine или None, если PostgreSQL не сконфигурирован (для диагностики)."""
    return engine
