import os
import yaml
from pydantic import BaseModel, Field, field_validator, computed_field
from typing import List, Optional
from dotenv import load_dotenv
import logging
from urllib.parse import urlparse, urlunparse

logger = logging.getLogger("dualstore.config") # Используем специфичный логгер

_TRUE_VALUES = {"1", "true", "yes", "on"}

class CommonSettings(BaseModel):
    log_dir: str = "logs"
    log_to_file: bool = True
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

class APISettings(BaseModel):
    title: str = "Dualstore API"
    description: str = "E-commerce demo API: the same storefront served from PostgreSQL and MongoDB."
    version: str = "0.1.0"

class StoreSettings(BaseModel):
    """Параметры магазина: значения по умолчанию для заказов и кэш источника данных."""
    source_cache_ttl_seconds: float = Field(default=30.0, ge=0)
    default_customer_id: str = "guest"
    admin_customer_id: str = "admin_seed"
    default_seller_id: str = "unknown_seller"
    default_order_status: str = "created"
    default_payment_type: str = "credit_card"
    default_freight_value: float = Field(default=0.0, ge=0)
    max_units_per_item: int = Field(default=1000, ge=1)
    monthly_stats_view: str = "product_monthly_stats"
    create_tables: bool = False

    @field_validator('monthly_stats_view')
    @classmethod
    def validate_view_name(cls, v: str) -> str:
        # Имя подставляется в SQL как идентификатор, поэтому допускаем только [A-Za-z0-9_.]
        if not v or not all(ch.isalnum() or ch in "_." for ch in v):
            raise ValueError(f"Недопустимое имя представления: {v!r}")
        return v

class AppSettings(BaseModel):
    POSTGRES_URL: Optional[str] = None
    MONGODB_URI: Optional[str] = None
    MONGO_DB_NAME: str = "appdb"
    PORT: int = 3001
    MONGO_PORT: int = 3002
    ALLOW_SQL: bool = False
    POSTGRES_USE_SSL: bool = False
    ENVIRONMENT: str = Field(default="development") # Будет переопределено .env -> YAML
    APP_BASE_DIR: str # Абсолютный путь к корню проекта

    common: CommonSettings
    api: APISettings
    store: StoreSettings

    @field_validator('POSTGRES_URL', 'MONGODB_URI')
    @classmethod
    def empty_url_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator('POSTGRES_URL')
    @classmethod
    def normalize_postgres_scheme(cls, v: Optional[str]) -> Optional[str]:
        # Heroku/Railway отдают "postgres://", SQLAlchemy 2.0 понимает только "postgresql://"
        if v and v.startswith("postgres://"):
            return "postgresql://" + v[len("postgres://"):]
        return v

    @property
    def use_postgres_ssl(self) -> bool:
        return self.POSTGRES_USE_SSL or self.ENVIRONMENT.lower() == "production"

    @computed_field
    @property
    def POSTGRES_URL_SAFE_LOGGING(self) -> str:
        """Возвращает POSTGRES_URL с замаскированным паролем для безопасного логирования."""
        if not self.POSTGRES_URL:
            return "<not configured>"
        try:
            parsed_url = urlparse(self.POSTGRES_URL)
            if parsed_url.password:
                new_netloc = parsed_url.hostname or ""
                if parsed_url.username:
                    new_netloc = f"{parsed_url.username}:********@{new_netloc}"
                else:
                    new_netloc = f"********@{new_netloc}"

                if parsed_url.port:
                    new_netloc = f"{new_netloc}:{parsed_url.port}"
                safe_url_parts = list(parsed_url)
                safe_url_parts[1] = new_netloc # netloc - это второй элемент (индекс 1)
                return urlunparse(tuple(safe_url_parts))
            else:
                return self.POSTGRES_URL
        except Exception: # В случае ошибки парсинга или другой проблемы
            logger.warning("Не удалось безопасно замаскировать POSTGRES_URL", exc_info=True)
            return "POSTGRES_URL_MASKING_ERROR"

# --- Глобальный экземпляр настроек ---
_settings_instance: Optional[AppSettings] = None

# --- Определение путей ---
# Директория, где находится этот файл (config.py), т.е. dualstore/config/
_CURRENT_FILE_DIR = os.path.dirname(os.path.abspath(__file__))
# Директория dualstore/
_PACKAGE_DIR_FROM_CONFIG = os.path.dirname(_CURRENT_FILE_DIR)
# Корень проекта
_PROJECT_ROOT_RESOLVED = os.path.dirname(_PACKAGE_DIR_FROM_CONFIG)

DEFAULT_YAML_CONFIG_PATH = os.path.join(_CURRENT_FILE_DIR, "config.yaml")

# --- Вспомогательные функции для load_settings ---

def _env_first(*names: str) -> Optional[str]:
    """Возвращает значение первой заданной переменной окружения из списка."""
    for name in names:
        value = os.getenv(name)
        if value is not None and value.strip():
            return value
    return None

def _env_flag(*names: str) -> Optional[bool]:
    value = _env_first(*names)
    if value is None:
        return None
    return value.strip().lower() in _TRUE_VALUES

def _load_env_variables(project_root_path: str) -> None:
    """Загружает переменные окружения из .env файла в корне проекта."""
    dotenv_path = os.path.join(project_root_path, '.env')
    # Реальное окружение имеет приоритет над .env
    loaded_env = load_dotenv(dotenv_path=dotenv_path, override=False)
    if loaded_env:
        logger.info(f"Переменные окружения загружены из: {dotenv_path}")
    else:
        logger.debug(f"Файл .env не найден: {dotenv_path}")

def _load_yaml_data(config_path_to_load: str) -> dict:
    """Загружает данные из YAML файла конфигурации."""
    if not os.path.exists(config_path_to_load):
        logger.error(f"КРИТИЧЕСКАЯ ОШИБКА: YAML файл не найден: {config_path_to_load}")
        raise FileNotFoundError(f"YAML файл не найден: {config_path_to_load}")
    try:
        with open(config_path_to_load, 'r', encoding='utf-8') as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info(f"Конфигурация загружена из YAML: {config_path_to_load}")
    except yaml.YAMLError as e:
        logger.error(f"Ошибка загрузки YAML ({config_path_to_load}): {e}", exc_info=True)
        raise RuntimeError(f"Не удалось загрузить YAML: {e}")
    return yaml_data

def _resolve_and_create_paths(settings: AppSettings, project_root_path: str) -> None:
    """Преобразует путь к логам в абсолютный и создает директорию."""
    abs_log_dir = settings.common.log_dir
    if not os.path.isabs(abs_log_dir):
        abs_log_dir = os.path.join(project_root_path, abs_log_dir)
    if settings.common.log_to_file:
        os.makedirs(abs_log_dir, exist_ok=True)
    settings.common.log_dir = abs_log_dir
    logger.info(f"Абсолютный путь для логов: {settings.common.log_dir}")

def load_settings(yaml_config_path: Optional[str] = None) -> AppSettings:
    global _settings_instance
    if _settings_instance is not None:
        return _settings_instance

    _load_env_variables(_PROJECT_ROOT_RESOLVED)

    config_path_to_load = yaml_config_path if yaml_config_path is not None else DEFAULT_YAML_CONFIG_PATH
    yaml_data = _load_yaml_data(config_path_to_load)

    yaml_common_data = yaml_data.get("common", {}) or {}
    common_config = CommonSettings(**{k: v for k, v in yaml_common_data.items() if k != "environment"})

    log_to_file_env = _env_flag("LOG_TO_FILE")
    if log_to_file_env is not None:
        common_config.log_to_file = log_to_file_env

    determined_environment = os.getenv("ENVIRONMENT") or yaml_common_data.get("environment")

    settings_data = {
        "POSTGRES_URL": _env_first("POSTGRES_URL", "DATABASE_URL"),
        "MONGODB_URI": _env_first("MONGODB_URI", "MONGO_URL"),
        "APP_BASE_DIR": _PROJECT_ROOT_RESOLVED,
        "common": common_config,
        "api": APISettings(**(yaml_data.get("api", {}) or {})),
        "store": StoreSettings(**(yaml_data.get("store", {}) or {})),
    }
    optional_env = {
        "MONGO_DB_NAME": _env_first("MONGO_DB_NAME"),
        "PORT": _env_first("PORT"),
        "MONGO_PORT": _env_first("MONGO_PORT"),
        "ALLOW_SQL": _env_flag("ALLOW_SQL"),
        "POSTGRES_USE_SSL": _env_flag("POSTGRES_USE_SSL", "PGSSL"),
        "ENVIRONMENT": determined_environment,
    }
    settings_data.update({k: v for k, v in optional_env.items() if v is not None})

    try:
        current_settings_instance = AppSettings(**settings_data)
    except Exception as e:
        logger.error(f"Ошибка при инициализации настроек Pydantic: {e}", exc_info=True)
        raise

    _resolve_and_create_paths(current_settings_instance, _PROJECT_ROOT_RESOLVED)

    _settings_instance = current_settings_instance # Присваиваем глобальному экземпляру
    logger.info(
        f"Настройки успешно загружены и провалидированы. Окружение: {_settings_instance.ENVIRONMENT}, "
        f"Postgres: {_settings_instance.POSTGRES_URL_SAFE_LOGGING}, "
        f"MongoDB: {'configured' if _settings_instance.MONGODB_URI else '<not configured>'}"
    )
    return _settings_instance

def get_settings() -> AppSettings:
    if _settings_instance is None:
        logger.warning("Экземпляр настроек не был инициализирован. Выполняется загрузка по требованию.")
        try:
            return load_settings()
        except Exception as e:
            logger.critical(f"Критическая ошибка: Аварийная загрузка настроек не удалась: {e}", exc_info=True)
            raise RuntimeError("Не удалось инициализировать настройки приложения.")
    return _settings_instance

def reset_settings() -> None:
    """Сбрасывает кэшированный экземпляр настроек (используется в тестах)."""
    global _settings_instance
    _settings_instance = None

def get_store_settings() -> StoreSettings:
    """Зависимость FastAPI: параметры магазина."""
    return get_settings().store
