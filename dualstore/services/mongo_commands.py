"""
mongo_commands.py - Консоль команд MongoDB
==========================================
Команда вида "products.find({...})" или {collection, method, args} разбирается
в одну из заранее известных операций (закрытый набор, а не вызов произвольного
метода драйвера по имени). Аргументы передаются позиционно, как в драйвере Node.js:

    find(filter, options)             options: projection, sort, skip, limit
    findOne(filter, options)          options: projection, sort, skip
    insertOne(document)
    insertMany(documents)
    updateOne(filter, update, options)  options: upsert
    updateMany(filter, update, options)
    deleteOne(filter)
    deleteMany(filter)
    aggregate(pipeline)
    countDocuments(filter)
    distinct(key, filter)
"""

import json
import logging
import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from bson import json_util
from bson.errors import BSONError
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pymongo.collection import Collection
from pymongo.database import Database

from ..errors import CommandError

logger = logging.getLogger(__name__)

_COMMAND_RE = re.compile(r"^\s*(\w+)\s*\((.*)\)\s*;?\s*$", re.DOTALL)

# =============================================================================
# Опции и операции
# =============================================================================

class FindOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    projection: Optional[Dict[str, Any]] = None
    sort: Optional[Dict[str, int]] = None
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=0, ge=0)


class FindOneOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    projection: Optional[Dict[str, Any]] = None
    sort: Optional[Dict[str, int]] = None
    skip: int = Field(default=0, ge=0)


class UpdateOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    upsert: bool = False


class _Command(BaseModel):
    model_config = ConfigDict(extra="forbid")

    collection: str

    @field_validator("collection")
    @classmethod
    def validate_collection(cls, v: str) -> str:
        v = v.strip()
        if not v or "$" in v or v.startswith("system."):
            raise ValueError(f"invalid collection name: {v!r}")
        return v


class FindCommand(_Command):
    method: Literal["find"]
    filter: Dict[str, Any] = Field(default_factory=dict)
    options: FindOptions = Field(default_factory=FindOptions)

    def run(self, coll: Collection) -> Any:
        cursor = coll.find(self.filter, self.options.projection)
        if self.options.sort:
            cursor = cursor.sort(list(self.options.sort.items()))
        return list(cursor.skip(self.options.skip).limit(self.options.limit))


class FindOneCommand(_Command):
    method: Literal["findOne"]
    filter: Dict[str, Any] = Field(default_factory=dict)
    options: FindOneOptions = Field(default_factory=FindOneOptions)

    def run(self, coll: Collection) -> Any:
        sort = list(self.options.sort.items()) if self.options.sort else None
        return coll.find_one(self.filter, self.options.projection, sort=sort, skip=self.options.skip)


class InsertOneCommand(_Command):
    method: Literal["insertOne"]
    document: Dict[str, Any]

    def run(self, coll: Collection) -> Any:
        result = coll.insert_one(self.document)
        return {"acknowledged": result.acknowledged, "insertedId": result.inserted_id}


class InsertManyCommand(_Command):
    method: Literal["insertMany"]
    documents: List[Dict[str, Any]] = Field(min_length=1)

    def run(self, coll: Collection) -> Any:
        result = coll.insert_many(self.documents)
        return {
            "acknowledged": result.acknowledged,
            "insertedCount": len(result.inserted_ids),
            "insertedIds": result.inserted_ids,
        }


class _UpdateCommand(_Command):
    filter: Dict[str, Any]
    update: Union[Dict[str, Any], List[Dict[str, Any]]]
    options: UpdateOptions = Field(default_factory=UpdateOptions)

    @staticmethod
    def _result(result) -> Dict[str, Any]:
        return {
            "acknowledged": result.acknowledged,
            "matchedCount": result.matched_count,
            "modifiedCount": result.modified_count,
            "upsertedId": result.upserted_id,
        }


class UpdateOneCommand(_UpdateCommand):
    method: Literal["updateOne"]

    def run(self, coll: Collection) -> Any:
        return self._result(coll.update_one(self.filter, self.update, upsert=self.options.upsert))


class UpdateManyCommand(_UpdateCommand):
    method: Literal["updateMany"]

    def run(self, coll: Collection) -> Any:
        return self._result(coll.update_many(self.filter, self.update, upsert=self.options.upsert))


class DeleteOneCommand(_Command):
    method: Literal["deleteOne"]
    filter: Dict[str, Any]

    def run(self, coll: Collection) -> Any:
        result = coll.delete_one(self.filter)
        return {"acknowledged": result.acknowledged, "deletedCount": result.deleted_count}


class DeleteManyCommand(_Command):
    method: Literal["deleteMany"]
    filter: Dict[str, Any]

    def run(self, coll: Collection) -> Any:
        result = coll.delete_many(self.filter)
        return {"acknowledged": result.acknowledged, "deletedCount": result.deleted_count}


class AggregateCommand(_Command):
    method: Literal["aggregate"]
    pipeline: List[Dict[str, Any]] = Field(default_factory=list)

    def run(self, coll: Collection) -> Any:
        return list(coll.aggregate(self.pipeline))


class CountDocumentsCommand(_Command):
    method: Literal["countDocuments"]
    filter: Dict[str, Any] = Field(default_factory=dict)

    def run(self, coll: Collection) -> Any:
        return coll.count_documents(self.filter)


class DistinctCommand(_Command):
    method: Literal["distinct"]
    key: str
    filter: Dict[str, Any] = Field(default_factory=dict)

    def run(self, coll: Collection) -> Any:
        return coll.distinct(self.key, self.filter)


MongoCommand = Annotated[
    Union[
        FindCommand, FindOneCommand, InsertOneCommand, InsertManyCommand,
        UpdateOneCommand, UpdateManyCommand, DeleteOneCommand, DeleteManyCommand,
        AggregateCommand, CountDocumentsCommand, DistinctCommand,
    ],
    Field(discriminator="method"),
]

_command_adapter = TypeAdapter(MongoCommand)

# Имена позиционных аргументов каждой операции
POSITIONAL_ARGS: Dict[str, tuple] = {
    "find": ("filter", "options"),
    "findOne": ("filter", "options"),
    "insertOne": ("document",),
    "insertMany": ("documents",),
    "updateOne": ("filter", "update", "options"),
    "updateMany": ("filter", "update", "options"),
    "deleteOne": ("filter",),
    "deleteMany": ("filter",),
    "aggregate": ("pipeline",),
    "countDocuments": ("filter",),
    "distinct": ("key", "filter"),
}

SUPPORTED_METHODS = tuple(POSITIONAL_ARGS)

# =============================================================================
# Разбор и выполнение
# =============================================================================

def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ()) if p not in SUPPORTED_METHODS)
        parts.append(f"{location}: {err.get('msg')}" if location else err.get("msg", ""))
    return "; ".join(parts)


def _decode_extended_json(args: List[Any]) -> List[Any]:
    """Переводит Extended JSON ({"$oid": ...}, {"$date": ...}) в типы BSON; уже разобранные значения не меняются."""
    try:
        return json_util.loads(json_util.dumps(args))
    except (TypeError, ValueError, BSONError) as e:
        raise CommandError(f"Invalid Extended JSON in arguments: {e}")


def build_command(collection: Optional[str], method: Optional[str], args: Optional[List[Any]] = None):
    """
    Собирает типизированную команду из имени коллекции, метода и позиционных аргументов.

    Raises:
        CommandError: неизвестный метод, лишние аргументы или неверные типы аргументов
    """
    if not collection or not method:
        raise CommandError("collection and method required")
    if method not in POSITIONAL_ARGS:
        raise CommandError(f"Unsupported method: {method}")

    args = _decode_extended_json(list(args or []))
    names = POSITIONAL_ARGS[method]
    if len(args) > len(names):
        raise CommandError(f"{method} accepts at most {len(names)} argument(s), got {len(args)}")

    payload = {"collection": collection, "method": method}
    payload.update({name: value for name, value in zip(names, args) if value is not None})
    try:
        return _command_adapter.validate_python(payload)
    except ValidationError as e:
        raise CommandError(f"Invalid arguments for {method}: {_format_validation_error(e)}")


def parse_command_string(command: str):
    """
    Разбирает строку "collection.method(args)".
    Аргументы читаются как JSON-список (поддерживается Extended JSON, например {"$oid": ...});
    если разобрать их не удалось, вся строка аргументов передается одним строковым аргументом.
    """
    if not command or "." not in command:
        raise CommandError("Invalid MongoDB command format. Expected 'collection.method(args)'.")

    collection, rest = command.strip().split(".", 1)
    match = _COMMAND_RE.match(rest)
    if not match:
        raise CommandError("Invalid MongoDB command structure. Must be 'method(args)'.")

    method, args_string = match.group(1), match.group(2).strip()
    args: List[Any] = []
    if args_string:
        try:
            args = json_util.loads(f"[{args_string}]")
        except (ValueError, TypeError, BSONError):
            args = [args_string]
    return build_command(collection, method, args)


def to_jsonable(value: Any) -> Any:
    """Переводит результат драйвера (ObjectId, datetime, ...) в JSON-совместимый вид."""
    return json.loads(json_util.dumps(value, json_options=json_util.RELAXED_JSON_OPTIONS))


def execute_command(db: Database, command) -> Any:
    """Выполняет разобранную команду над коллекцией и возвращает JSON-совместимый результат."""
    logger.info(f"MongoDB команда: {command.collection}.{command.method}")
    return to_jsonable(command.run(db[command.collection]))
