"""
schemas.py - Определение Pydantic-схем для валидации данных
===========================================================
Схемы входных/выходных данных API. Общие для реляционного и документного сервисов.
"""

from pydantic import BaseModel, ConfigDict, Field, AliasChoices
from typing import List, Optional, Any, Dict

# =============================================================================
# Товары
# =============================================================================

class Product(BaseModel):
    """Товар в форме, которую ожидает фронтенд: sku/title/name по умолчанию равны id."""
    id: str
    sku: str
    title: str
    name: str
    price: Optional[float] = None
    order_count: int = 0


class ProductCreate(BaseModel):
    """Административное создание товара. product_id можно передать как sku."""
    product_id: Optional[Any] = Field(default=None, validation_alias=AliasChoices("product_id", "sku"))
    title: Optional[str] = None
    price: Optional[Any] = None
    quantity: Optional[Any] = None


class ProductCreateResult(BaseModel):
    product: Product
    orderId: Optional[str] = None
    total: Optional[float] = None
    postgresDbMs: Optional[float] = None
    mongoDbMs: Optional[float] = None


def to_ui_product(row: Dict[str, Any]) -> Product:
    """Приводит строку/документ {id, price, order_count[, title]} к форме Product."""
    product_id = str(row.get("id") or row.get("product_id"))
    title = row.get("title") or product_id
    price = row.get("price")
    return Product(
        id=product_id,
        sku=product_id,
        title=title,
        name=title,
        price=round(float(price), 2) if price is not None else None,
        order_count=int(row.get("order_count") or 0),
    )

# =============================================================================
# Заказы
# =============================================================================

class OrderItemIn(BaseModel):
    """
    Позиция корзины. Поля намеренно не типизированы строго:
    некорректные позиции пропускаются при записи заказа, а не отклоняются с 422.
    """
    model_config = ConfigDict(extra="ignore")

    id: Optional[Any] = Field(default=None, validation_alias=AliasChoices("id", "product_id"))
    quantity: Optional[Any] = Field(default=None, validation_alias=AliasChoices("quantity", "qty"))
    price: Optional[Any] = None
    seller_id: Optional[Any] = None


class OrderCreate(BaseModel):
    customer_id: Optional[Any] = None
    items: Optional[List[Any]] = None # Позиции проверяются по одной (OrderItemIn), некорректные пропускаются


class OrderCreateResult(BaseModel):
    orderId: str
    total: float
    itemCount: int
    postgresDbMs: Optional[float] = None
    mongoDbMs: Optional[float] = None

# =============================================================================
# Отзывы
# =============================================================================

class Review(BaseModel):
    review_id: Optional[str] = None
    score: Optional[int] = None
    title: str = ""
    message: str = ""
    creation_date: Optional[str] = None


def to_review(row: Dict[str, Any]) -> Review:
    created = row.get("review_creation_date")
    score = row.get("review_score")
    return Review(
        review_id=row.get("review_id"),
        score=int(score) if score is not None else None,
        title=row.get("review_comment_title") or "",
        message=row.get("review_comment_message") or "",
        creation_date=created.isoformat() if hasattr(created, "isoformat") else created,
    )

# =============================================================================
# Консоль команд
# =============================================================================

class SqlQueryRequest(BaseModel):
    query: Optional[str] = Field(default=None, validation_alias=AliasChoices("query", "sql"))
    params: Optional[Any] = None


class SqlQueryResult(BaseModel):
    rows: List[Dict[str, Any]]
    rowCount: int
    postgresDbMs: float


class MongoCommandRequest(BaseModel):
    """Либо строка команды "collection.method(args)", либо явные collection/method/args."""
    command: Optional[str] = None
    collection: Optional[str] = None
    method: Optional[str] = None
    args: Optional[List[Any]] = None


class MongoCommandResult(BaseModel):
    result: Any = None
    mongoDbMs: float
