"""
console.py - Консоль команд для сравнения движков
=================================================
POST /api/postgres/query  - произвольный SQL к PostgreSQL
POST /api/mongodb/command - команда MongoDB из закрытого набора операций

Только для локальной демонстрации: включается флагом ALLOW_SQL=true.
"""

import logging
import time
from fastapi import APIRouter, Depends, HTTPException, status
from pymongo.database import Database
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..config.config import get_settings
from ..database import get_db
from ..errors import CommandError
from ..mongo import get_mongo_db
from ..services import mongo_commands

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Console"])


def get_console_enabled() -> bool:
    return get_settings().ALLOW_SQL


def require_console_enabled(enabled: bool = Depends(get_console_enabled)) -> None:
    if not enabled:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Command console is disabled (set ALLOW_SQL=true)")


@router.post("/api/postgres/query", response_model=schemas.SqlQueryResult, dependencies=[Depends(require_console_enabled)])
async def run_sql_query(payload: schemas.SqlQueryRequest, db: Session = Depends(get_db)):
    """Выполняет SQL-строку. params: словарь для :name или список для позиционных параметров драйвера."""
    query = (payload.query or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="query required")
    if payload.params is not None and not isinstance(payload.params, (dict, list)):
        raise HTTPException(status_code=400, detail="params must be an object or an array")

    started = time.perf_counter()
    try:
        rows, row_count = crud.execute_raw_sql(db, query, payload.params)
    except Exception as e:
        logger.error(f"PostgreSQL Query Error: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=f"SQL Error: {e}")
    db_ms = round((time.perf_counter() - started) * 1000, 3)
    return schemas.SqlQueryResult(rows=rows, rowCount=row_count, postgresDbMs=db_ms)


@router.post("/api/mongodb/command", response_model=schemas.MongoCommandResult, dependencies=[Depends(require_console_enabled)])
async def run_mongo_command(payload: schemas.MongoCommandRequest, mongo_db: Database = Depends(get_mongo_db)):
    """
    Выполняет команду MongoDB. Принимает либо {"command": "products.find({})"},
    либо {"collection": "products", "method": "find", "args": [{}]}.
    """
    try:
        if payload.command:
            command = mongo_commands.parse_command_string(payload.command)
        else:
            command = mongo_commands.build_command(payload.collection, payload.method, payload.args)
    except CommandError as e:
        raise HTTPException(status_code=400, detail=str(e))

    started = time.perf_counter()
    try:
        result = mongo_commands.execute_command(mongo_db, command)
    except Exception as e:
        logger.error(f"MongoDB Command Error: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=f"MongoDB Error: {e}")
    db_ms = round((time.perf_counter() - started) * 1000, 3)
    return schemas.MongoCommandResult(result=result, mongoDbMs=db_ms)
