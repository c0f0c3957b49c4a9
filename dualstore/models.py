"""
models.py - Модели SQLAlchemy для работы с базой данных
======================================================
Нормализованная схема заказов (orders_header, order_items_core, order_item_pricing, ...)
и плоская staging-таблица "orders", в которую импортируется исходный CSV.
"""

from sqlalchemy import (Column, Integer, String, Numeric, DateTime, ForeignKey,
                        ForeignKeyConstraint, PrimaryKeyConstraint, Table, Text)
from sqlalchemy.orm import relationship
from .database import Base # Импортируем Base из database.py

# Имена таблиц, по наличию которых определяется источник данных о товарах
NORMALIZED_TABLES = ("order_items_core", "order_item_pricing")
STAGING_TABLE = "orders"

# ------------------------------------------------------------------------
# Справочники и заказ верхнего уровня
# ------------------------------------------------------------------------

class PaymentTypeDim(Base):
    """Справочник способов оплаты."""
    __tablename__ = "payment_type_dim"

    payment_type = Column(String(32), primary_key=True)

class OrderHeader(Base):
    """
    Заголовок заказа.
    Идентификатор - 32-символьная hex-строка.
    """
    __tablename__ = "orders_header"

    order_id = Column(String(32), primary_key=True)
    customer_id = Column(String(32), nullable=False)
    order_status = Column(String(32), nullable=False)

    timestamps = relationship("OrderTimestamps", back_populates="order", uselist=False)
    items = relationship("OrderItemCore", back_populates="order")
    payments = relationship("OrderPaymentMethod", back_populates="order")

class OrderTimestamps(Base):
    """Временные метки заказа (1:1 с orders_header)."""
    __tablename__ = "orders_timestamps"

    order_id = Column(String(32), ForeignKey("orders_header.order_id"), primary_key=True)
    order_purchase_timestamp = Column(DateTime)               # Дата и время покупки
    order_approved_at = Column(DateTime, nullable=True)       # Дата и время одобрения
    order_delivered_carrier_date = Column(DateTime, nullable=True)  # Дата передачи перевозчику
    order_delivered_customer_date = Column(DateTime, nullable=True) # Дата доставки клиенту
    order_estimated_delivery_date = Column(DateTime, nullable=True) # Ожидаемая дата доставки

    order = relationship("OrderHeader", back_populates="timestamps")

# ------------------------------------------------------------------------
# Товарные позиции: одна строка на единицу товара
# ------------------------------------------------------------------------

class OrderItemCore(Base):
    """
    Товарная позиция заказа.
    Количество не хранится: N единиц товара - это N строк с последовательными order_item_id.
    """
    __tablename__ = "order_items_core"
    __table_args__ = (PrimaryKeyConstraint('order_id', 'order_item_id'),)

    order_id = Column(String(32), ForeignKey("orders_header.order_id"), index=True)
    order_item_id = Column(Integer)                           # Порядковый номер единицы в заказе
    product_id = Column(String(32), nullable=False, index=True)
    seller_id = Column(String(32), nullable=False)

    order = relationship("OrderHeader", back_populates="items")
    pricing = relationship("OrderItemPricing", back_populates="item", uselist=False)

class OrderItemPricing(Base):
    """Цена и стоимость доставки товарной позиции (1:1 с order_items_core)."""
    __tablename__ = "order_item_pricing"
    __table_args__ = (
        PrimaryKeyConstraint('order_id', 'order_item_id'),
        ForeignKeyConstraint(
            ['order_id', 'order_item_id'],
            ['order_items_core.order_id', 'order_items_core.order_item_id']
        ),
    )

    order_id = Column(String(32))
    order_item_id = Column(Integer)
    price = Column(Numeric(10, 2), nullable=False)           # Цена
    freight_value = Column(Numeric(10, 2), nullable=False)   # Стоимость доставки

    item = relationship("OrderItemCore", back_populates="pricing")

# ------------------------------------------------------------------------
# Платежи: способ оплаты и сумма
# ------------------------------------------------------------------------

class OrderPaymentMethod(Base):
    __tablename__ = "order_payment_method"
    __table_args__ = (PrimaryKeyConstraint('order_id', 'payment_sequential'),)

    order_id = Column(String(32), ForeignKey("orders_header.order_id"), index=True)
    payment_sequential = Column(Integer)                     # Порядковый номер платежа
    payment_type = Column(String(32), ForeignKey("payment_type_dim.payment_type"), nullable=False)
    payment_installments = Column(Integer, nullable=False)   # Количество взносов

    order = relationship("OrderHeader", back_populates="payments")
    amount = relationship("OrderPaymentAmount", back_populates="method", uselist=False)

class OrderPaymentAmount(Base):
    __tablename__ = "order_payment_amount"
    __table_args__ = (
        PrimaryKeyConstraint('order_id', 'payment_sequential'),
        ForeignKeyConstraint(
            ['order_id', 'payment_sequential'],
            ['order_payment_method.order_id', 'order_payment_method.payment_sequential']
        ),
    )

    order_id = Column(String(32))
    payment_sequential = Column(Integer)
    payment_value = Column(Numeric(10, 2), nullable=False)   # Сумма платежа

    method = relationship("OrderPaymentMethod", back_populates="amount")

# ------------------------------------------------------------------------
# Отзывы: оценка/даты и текст хранятся раздельно с одинаковым составным ключом
# ------------------------------------------------------------------------

class OrderReviewCore(Base):
    __tablename__ = "order_reviews_core"
    __table_args__ = (PrimaryKeyConstraint('review_id', 'order_id'),)

    review_id = Column(String(32))
    order_id = Column(String(32), ForeignKey("orders_header.order_id"), index=True)
    review_score = Column(Integer)                           # Оценка (обычно 1-5)
    review_creation_date = Column(DateTime)                  # Дата создания отзыва
    review_answer_timestamp = Column(DateTime)               # Дата ответа на отзыв

    text = relationship("OrderReviewText", back_populates="review", uselist=False)

class OrderReviewText(Base):
    __tablename__ = "order_review_text"
    __table_args__ = (
        PrimaryKeyConstraint('review_id', 'order_id'),
        ForeignKeyConstraint(
            ['review_id', 'order_id'],
            ['order_reviews_core.review_id', 'order_reviews_core.order_id']
        ),
    )

    review_id = Column(String(32))
    order_id = Column(String(32))
    review_comment_title = Column(Text, nullable=True)       # Заголовок отзыва
    review_comment_message = Column(Text, nullable=True)     # Текст отзыва

    review = relationship("OrderReviewCore", back_populates="text")

# ------------------------------------------------------------------------
# Staging: плоская таблица из исходного CSV, без первичного ключа.
# Описана на уровне Core, так как ORM требует первичный ключ.
# ------------------------------------------------------------------------

staging_orders = Table(
    STAGING_TABLE,
    Base.metadata,
    Column("order_id", String(32)),
    Column("order_item_id", Integer),
    Column("product_id", String(32)),
    Column("seller_id", String(32)),
    Column("shipping_limit_date", Text),
    Column("price", Numeric(10, 2)),
    Column("freight_value", Numeric(10, 2)),
    Column("payment_sequential", Integer),
    Column("payment_type", String(32)),
    Column("payment_installments", Integer),
    Column("payment_value", Numeric(10, 2)),
    Column("review_id", String(32)),
    Column("review_score", Integer),
    Column("review_comment_title", Text),
    Column("review_comment_message", Text),
    Column("review_creation_date", DateTime),
    Column("review_answer_timestamp", DateTime),
    Column("customer_id", String(32)),
    Column("order_status", String(32)),
    Column("order_purchase_timestamp", DateTime),
    Column("order_approved_at", DateTime),
    Column("order_delivered_carrier_date", DateTime),
    Column("order_delivered_customer_date", DateTime),
    Column("order_estimated_delivery_date", DateTime),
)
