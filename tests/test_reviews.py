from datetime import datetime, timedelta

import pytest
from sqlalchemy import text

from tests.conftest import add_review, add_sold_units, add_staging_rows

BASE_DATE = datetime(2018, 3, 1, 12, 0, 0)


@pytest.fixture
def reviewed_product(normalized_engine, db):
    for i in range(25):
        order_id = f"order-{i:02d}"
        add_sold_units(db, order_id, "P1", [10])
        add_review(db, f"rev-{i:02d}", order_id, 5, f"message {i}", BASE_DATE + timedelta(days=i), title=f"t{i}")

    add_sold_units(db, "order-silent", "P1", [10])
    add_review(db, "rev-silent", "order-silent", 1, None, BASE_DATE + timedelta(days=100))

    add_sold_units(db, "order-other", "P2", [10])
    add_review(db, "rev-other", "order-other", 3, "other product", BASE_DATE + timedelta(days=200))
    return "P1"


def test_review_paging(sql_client, reviewed_product):
    pages = [
        sql_client.get(f"/api/reviews/{reviewed_product}", params={"limit": 10, "skip": skip}).json()
        for skip in (0, 10, 20)
    ]
    assert [len(page["reviews"]) for page in pages] == [10, 10, 5]
    assert [page["hasMore"] for page in pages] == [True, True, False]
    assert all("postgresDbMs" in page for page in pages)

    ids = [review["review_id"] for page in pages for review in page["reviews"]]
    assert ids == [f"rev-{i:02d}" for i in range(24, -1, -1)]


def test_review_shape(sql_client, reviewed_product):
    review = sql_client.get(f"/api/reviews/{reviewed_product}", params={"limit": 1}).json()["reviews"][0]
    assert review == {
        "review_id": "rev-24",
        "score": 5,
        "title": "t24",
        "message": "message 24",
        "creation_date": (BASE_DATE + timedelta(days=24)).isoformat(),
    }


def test_review_limit_is_bounded(sql_client, reviewed_product):
    response = sql_client.get(f"/api/reviews/{reviewed_product}", params={"limit": 0})
    assert response.status_code == 400
    assert "error" in response.json()


def test_reviews_without_tables(sql_client, engine):
    body = sql_client.get("/api/reviews/P1").json()
    assert body["reviews"] == []
    assert body["hasMore"] is False


def test_staging_reviews_are_distinct(sql_client, staging_engine, db):
    created = BASE_DATE
    add_staging_rows(db, [
        {"order_id": "o1", "order_item_id": 1, "product_id": "P1", "price": 1, "review_id": "r1",
         "review_score": 4, "review_comment_message": "nice", "review_creation_date": created},
        {"order_id": "o1", "order_item_id": 2, "product_id": "P1", "price": 1, "review_id": "r1",
         "review_score": 4, "review_comment_message": "nice", "review_creation_date": created},
        {"order_id": "o2", "order_item_id": 1, "product_id": "P1", "price": 1, "review_id": "r2",
         "review_score": 2, "review_comment_message": None, "review_creation_date": created},
    ])

    body = sql_client.get("/api/reviews/P1").json()
    assert [(r["review_id"], r["score"], r["message"], r["title"]) for r in body["reviews"]] == [
        ("r1", 4, "nice", ""),
    ]
    assert body["hasMore"] is False


def test_monthly_stats(sql_client, normalized_engine, db):
    add_sold_units(db, "o1", "P1", [10, 20], purchased_at=datetime(2018, 1, 5))
    add_sold_units(db, "o2", "P1", [30], purchased_at=datetime(2018, 2, 7))
    add_sold_units(db, "o3", "P2", [5], purchased_at=datetime(2018, 2, 7))
    with normalized_engine.begin() as connection:
        connection.execute(text(
            "CREATE VIEW product_monthly_stats AS "
            "SELECT core.product_id AS product_id, "
            "strftime('%Y-%m', ts.order_purchase_timestamp) AS month, "
            "COUNT(*) AS units_sold "
            "FROM order_items_core core "
            "JOIN orders_timestamps ts ON ts.order_id = core.order_id "
            "GROUP BY core.product_id, month"
        ))

    response = sql_client.get("/api/monthly-stats/P1")
    assert response.status_code == 200
    rows = sorted(response.json(), key=lambda row: row["month"])
    assert rows == [
        {"product_id": "P1", "month": "2018-01", "units_sold": 2},
        {"product_id": "P1", "month": "2018-02", "units_sold": 1},
    ]
