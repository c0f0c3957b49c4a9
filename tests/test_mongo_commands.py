import datetime

import pytest
from bson import ObjectId

from dualstore.errors import CommandError
from dualstore.services import mongo_commands
from dualstore.services.mongo_commands import (
    AggregateCommand, DistinctCommand, FindCommand, InsertManyCommand, UpdateOneCommand,
    build_command, execute_command, parse_command_string,
)


def test_parse_find_with_options():
    command = parse_command_string('products.find({"active": true}, {"sort": {"order_count": -1}, "limit": 5});')
    assert isinstance(command, FindCommand)
    assert command.collection == "products"
    assert command.filter == {"active": True}
    assert command.options.sort == {"order_count": -1}
    assert command.options.limit == 5


def test_parse_without_arguments():
    command = parse_command_string("orders.aggregate()")
    assert isinstance(command, AggregateCommand)
    assert command.pipeline == []


def test_parse_extended_json():
    oid = ObjectId()
    command = parse_command_string(f'products.find({{"_id": {{"$oid": "{oid}"}}}})')
    assert command.filter == {"_id": oid}


def test_parse_multiline_update():
    command = parse_command_string(
        'products.updateOne(\n  {"product_id": "a"},\n  {"$inc": {"order_count": 1}},\n  {"upsert": true}\n)'
    )
    assert isinstance(command, UpdateOneCommand)
    assert command.options.upsert is True


def test_unparseable_arguments_become_a_single_string():
    command = parse_command_string("products.distinct(product_id)")
    assert isinstance(command, DistinctCommand)
    assert command.key == "product_id"


@pytest.mark.parametrize("raw", ["", "products", "products.find", "products.find({}"])
def test_malformed_command_strings(raw):
    with pytest.raises(CommandError):
        parse_command_string(raw)


def test_build_command_validates_arguments():
    with pytest.raises(CommandError, match="Unsupported method: eval"):
        build_command("products", "eval", [])
    with pytest.raises(CommandError, match="at most 1"):
        build_command("products", "deleteOne", [{}, {}])
    with pytest.raises(CommandError, match="Invalid arguments for insertMany"):
        build_command("products", "insertMany", [[]])
    with pytest.raises(CommandError, match="Invalid arguments for find"):
        build_command("products", "find", [{}, {"hint": "x"}])
    with pytest.raises(CommandError):
        build_command("system.users", "find", [])


def test_build_command_skips_null_arguments():
    command = build_command("products", "find", [None, {"limit": 2}])
    assert command.filter == {}
    assert command.options.limit == 2


def test_supported_methods_are_closed():
    assert set(mongo_commands.SUPPORTED_METHODS) == {
        "find", "findOne", "insertOne", "insertMany", "updateOne", "updateMany",
        "deleteOne", "deleteMany", "aggregate", "countDocuments", "distinct",
    }


def test_execute_write_and_read_commands(mongo_db):
    inserted = execute_command(mongo_db, InsertManyCommand(
        collection="orders", method="insertMany",
        documents=[{"product_id": "a", "price": 1.5}, {"product_id": "a", "price": 2.5}, {"product_id": "b", "price": 4}],
    ))
    assert inserted["insertedCount"] == 3
    assert all("$oid" in oid for oid in inserted["insertedIds"])

    updated = execute_command(mongo_db, build_command("orders", "updateMany", [{"product_id": "a"}, {"$set": {"seen": True}}]))
    assert updated["matchedCount"] == 2
    assert updated["modifiedCount"] == 2

    totals = execute_command(mongo_db, build_command("orders", "aggregate", [[
        {"$group": {"_id": "$product_id", "total": {"$sum": "$price"}}},
        {"$sort": {"_id": 1}},
    ]]))
    assert totals == [{"_id": "a", "total": 4.0}, {"_id": "b", "total": 4}]

    assert execute_command(mongo_db, build_command("orders", "distinct", ["product_id"])) == ["a", "b"]

    deleted = execute_command(mongo_db, build_command("orders", "deleteMany", [{"product_id": "a"}]))
    assert deleted["deletedCount"] == 2
    assert execute_command(mongo_db, build_command("orders", "countDocuments", [])) == 1


def test_find_one_serializes_bson_types(mongo_db):
    when = datetime.datetime(2020, 5, 17, 10, 30, tzinfo=datetime.timezone.utc)
    mongo_db.products.insert_one({"product_id": "a", "created_at": when})

    doc = execute_command(mongo_db, build_command("products", "findOne", [{"product_id": "a"}]))
    assert "$oid" in doc["_id"]
    assert doc["created_at"] == {"$date": "2020-05-17T10:30:00Z"}


def test_find_one_missing_document(mongo_db):
    assert execute_command(mongo_db, build_command("products", "findOne", [{"product_id": "nope"}])) is None


def test_find_one_applies_sort_and_skip(mongo_db):
    mongo_db.products.insert_many([
        {"product_id": "a", "order_count": 1},
        {"product_id": "b", "order_count": 5},
        {"product_id": "c", "order_count": 3},
    ])
    projection = {"_id": 0, "product_id": 1}

    top = build_command("products", "findOne", [{}, {"sort": {"order_count": -1}, "projection": projection}])
    assert execute_command(mongo_db, top) == {"product_id": "b"}

    second = build_command("products", "findOne", [{}, {"sort": {"order_count": -1}, "skip": 1, "projection": projection}])
    assert execute_command(mongo_db, second) == {"product_id": "c"}


def test_find_one_rejects_limit():
    with pytest.raises(CommandError, match="Invalid arguments for findOne"):
        build_command("products", "findOne", [{}, {"limit": 1}])


def test_explicit_arguments_decode_extended_json(mongo_db):
    oid = mongo_db.products.insert_one({"product_id": "a"}).inserted_id

    command = build_command("products", "findOne", [{"_id": {"$oid": str(oid)}}])
    assert command.filter == {"_id": oid}
    assert execute_command(mongo_db, command)["product_id"] == "a"


def test_invalid_object_id_is_a_command_error():
    with pytest.raises(CommandError):
        build_command("products", "find", [{"_id": {"$oid": "not-an-id"}}])
