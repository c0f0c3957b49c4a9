import os

# Окружение тестов задается до импорта приложений: настройки читаются при импорте
os.environ["LOG_TO_FILE"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("POSTGRES_URL", None)
os.environ.pop("DATABASE_URL", None)
os.environ.pop("MONGODB_URI", None)
os.environ.pop("MONGO_URL", None)

from datetime import datetime, timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, insert, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dualstore import models
from dualstore.api.console import get_console_enabled
from dualstore.config.config import StoreSettings, get_store_settings
from dualstore.database import create_db_and_tables, get_db, get_optional_engine
from dualstore.mongo import get_mongo_db, get_optional_mongo_db
from dualstore.services.source_resolver import SourceResolver, get_source_resolver


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def normalized_engine(engine):
    create_db_and_tables(engine)
    return engine


@pytest.fixture
def staging_engine(engine):
    models.staging_orders.create(engine)
    return engine


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store_settings():
    return StoreSettings()


@pytest.fixture
def sql_app(engine, session_factory, store_settings):
    from dualstore.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_source_resolver] = lambda: SourceResolver(ttl_seconds=0)
    app.dependency_overrides[get_store_settings] = lambda: store_settings
    app.dependency_overrides[get_optional_engine] = lambda: engine
    app.dependency_overrides[get_optional_mongo_db] = lambda: None
    app.dependency_overrides[get_console_enabled] = lambda: True
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def sql_client(sql_app):
    return TestClient(sql_app, raise_server_exceptions=False)


@pytest.fixture
def mongo_db():
    client = mongomock.MongoClient()
    yield client["dualstore_test"]
    client.close()


@pytest.fixture
def mongo_app(mongo_db, store_settings):
    from dualstore.mongo_main import app

    app.dependency_overrides[get_mongo_db] = lambda: mongo_db
    app.dependency_overrides[get_optional_mongo_db] = lambda: mongo_db
    app.dependency_overrides[get_optional_engine] = lambda: None
    app.dependency_overrides[get_store_settings] = lambda: store_settings
    app.dependency_overrides[get_console_enabled] = lambda: True
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def mongo_client(mongo_app):
    return TestClient(mongo_app, raise_server_exceptions=False)


# ---------------------------------------------------------------------------
# Хелперы наполнения данных
# ---------------------------------------------------------------------------

def add_sold_units(session, order_id, product_id, prices, purchased_at=None):
    """Добавляет заказ с товарными позициями (по строке на цену) в нормализованную схему."""
    session.add(models.OrderHeader(order_id=order_id, customer_id="seed", order_status="delivered"))
    session.add(models.OrderTimestamps(
        order_id=order_id,
        order_purchase_timestamp=purchased_at or datetime(2018, 1, 1),
    ))
    for index, price in enumerate(prices, start=1):
        session.add(models.OrderItemCore(
            order_id=order_id, order_item_id=index, product_id=product_id, seller_id="s1",
        ))
        session.add(models.OrderItemPricing(
            order_id=order_id, order_item_id=index, price=price, freight_value=0,
        ))
    session.commit()


def add_review(session, review_id, order_id, score, message, created_at, title=None):
    session.add(models.OrderReviewCore(
        review_id=review_id,
        order_id=order_id,
        review_score=score,
        review_creation_date=created_at,
        review_answer_timestamp=created_at + timedelta(days=1),
    ))
    session.add(models.OrderReviewText(
        review_id=review_id,
        order_id=order_id,
        review_comment_title=title,
        review_comment_message=message,
    ))
    session.commit()


def add_staging_rows(session, rows):
    session.execute(insert(models.staging_orders), rows)
    session.commit()


def count_rows(session, model):
    return session.scalar(select(func.count()).select_from(model))
