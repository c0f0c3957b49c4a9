import pytest
from fastapi.testclient import TestClient

from dualstore.api.console import get_console_enabled
from dualstore.mongo import get_mongo_db


def test_select_with_named_params(sql_client, engine):
    response = sql_client.post("/api/postgres/query", json={"query": "SELECT :x AS x, 'a' AS y", "params": {"x": 5}})
    assert response.status_code == 200
    body = response.json()
    assert body["rows"] == [{"x": 5, "y": "a"}]
    assert body["rowCount"] == 1
    assert "postgresDbMs" in body


def test_select_with_positional_params(sql_client, engine):
    response = sql_client.post("/api/postgres/query", json={"sql": "SELECT ? AS x", "params": [7]})
    assert response.status_code == 200
    assert response.json()["rows"] == [{"x": 7}]


def test_statement_without_rows_reports_rowcount(sql_client, engine):
    sql_client.post("/api/postgres/query", json={"query": "CREATE TABLE notes (body TEXT)"})
    response = sql_client.post(
        "/api/postgres/query",
        json={"query": "INSERT INTO notes (body) VALUES ('a'), ('b')"},
    )
    assert response.status_code == 200
    assert response.json()["rows"] == []
    assert response.json()["rowCount"] == 2

    count = sql_client.post("/api/postgres/query", json={"query": "SELECT COUNT(*) AS n FROM notes"})
    assert count.json()["rows"] == [{"n": 2}]


@pytest.mark.parametrize("payload", [{}, {"query": "   "}])
def test_empty_query_is_rejected(sql_client, engine, payload):
    response = sql_client.post("/api/postgres/query", json=payload)
    assert response.status_code == 400
    assert response.json() == {"error": "query required"}


def test_invalid_params_type(sql_client, engine):
    response = sql_client.post("/api/postgres/query", json={"query": "SELECT 1", "params": "x"})
    assert response.status_code == 400


def test_sql_error_is_reported(sql_client, engine):
    response = sql_client.post("/api/postgres/query", json={"query": "SELECT * FROM missing_table"})
    assert response.status_code == 400
    assert response.json()["error"].startswith("SQL Error:")


def test_console_disabled(sql_app):
    sql_app.dependency_overrides[get_console_enabled] = lambda: False
    client = TestClient(sql_app, raise_server_exceptions=False)

    response = client.post("/api/postgres/query", json={"query": "SELECT 1"})
    assert response.status_code == 403
    assert response.json() == {"error": "Command console is disabled (set ALLOW_SQL=true)"}

    response = client.post("/api/mongodb/command", json={"command": "products.find({})"})
    assert response.status_code == 403


def test_mongo_command_string(mongo_client, mongo_db):
    mongo_db.products.insert_many([
        {"product_id": "a", "order_count": 1},
        {"product_id": "b", "order_count": 5},
    ])
    response = mongo_client.post(
        "/api/mongodb/command",
        json={"command": 'products.find({"order_count": {"$gt": 2}}, {"projection": {"_id": 0}})'},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["result"] == [{"product_id": "b", "order_count": 5}]
    assert "mongoDbMs" in body


def test_mongo_explicit_command(mongo_client, mongo_db):
    response = mongo_client.post(
        "/api/mongodb/command",
        json={"collection": "products", "method": "insertOne", "args": [{"product_id": "z"}]},
    )
    assert response.status_code == 200
    result = response.json()["result"]
    assert result["acknowledged"] is True
    assert "$oid" in result["insertedId"]
    assert mongo_db.products.count_documents({"product_id": "z"}) == 1


def test_mongo_console_available_on_relational_service(sql_app, mongo_db):
    sql_app.dependency_overrides[get_mongo_db] = lambda: mongo_db
    client = TestClient(sql_app, raise_server_exceptions=False)
    response = client.post("/api/mongodb/command", json={"command": "orders.countDocuments({})"})
    assert response.status_code == 200
    assert response.json()["result"] == 0


@pytest.mark.parametrize("payload, message", [
    ({"command": "products.dropDatabase()"}, "Unsupported method: dropDatabase"),
    ({"collection": "products", "method": "drop"}, "Unsupported method: drop"),
    ({"method": "find"}, "collection and method required"),
])
def test_mongo_command_rejected(mongo_client, payload, message):
    response = mongo_client.post("/api/mongodb/command", json=payload)
    assert response.status_code == 400
    assert response.json() == {"error": message}


def test_mongo_command_without_mongo(sql_client):
    response = sql_client.post("/api/mongodb/command", json={"command": "products.find({})"})
    assert response.status_code == 503
    assert "error" in response.json()


def test_mongo_explicit_command_with_object_id(mongo_client, mongo_db):
    oid = mongo_db.products.insert_one({"product_id": "z"}).inserted_id
    response = mongo_client.post(
        "/api/mongodb/command",
        json={"collection": "products", "method": "deleteOne", "args": [{"_id": {"$oid": str(oid)}}]},
    )
    assert response.status_code == 200
    assert response.json()["result"]["deletedCount"] == 1
