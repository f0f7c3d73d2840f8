from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from formbuilder.aggregations import RPC_FUNCTIONS
from formbuilder.config import settings

logger = logging.getLogger(__name__)

TABLES = (
    "forms",
    "form_fields",
    "form_responses",
    "form_response_values",
    "dashboards",
    "dashboard_widgets",
)


@dataclass
class QueryResult:
    data: Any = None
    error: Optional[str] = None


def convert_objectid_to_str(doc: dict) -> dict:
    """Convert MongoDB ObjectId fields to strings for JSON serialization."""
    if doc is None:
        return doc

    if isinstance(doc, dict):
        result = {}
        for key, value in doc.items():
            if isinstance(value, ObjectId):
                result[key] = str(value)
            elif isinstance(value, dict):
                result[key] = convert_objectid_to_str(value)
            elif isinstance(value, list):
                result[key] = [convert_objectid_to_str(item) if isinstance(item, dict) else (str(item) if isinstance(item, ObjectId) else item) for item in value]
            else:
                result[key] = value
        return result
    return doc


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _column(name: str) -> str:
    return "_id" if name == "id" else name


def _to_row(doc: dict) -> dict:
    row = convert_objectid_to_str(doc)
    if "_id" in row:
        row["id"] = row.pop("_id")
    return row


def _to_document(record: Dict[str, Any]) -> Dict[str, Any]:
    doc = dict(record)
    doc["_id"] = str(doc.pop("id", None) or uuid.uuid4().hex)
    now = _now()
    if doc.get("created_at") is None:
        doc["created_at"] = now
    doc.setdefault("updated_at", now)
    return doc


class Query:
    """
    Row-oriented query builder over one collection. Calls chain and nothing
    runs until ``execute()``, which never raises for database errors: they
    come back in ``QueryResult.error``.

        await backend.table("form_fields").select("*").eq("form_id", form_id).order("position").execute()
    """

    def __init__(self, collection, name: str):
        self._collection = collection
        self._name = name
        self._action = "select"
        self._columns: Optional[List[str]] = None
        self._filters: Dict[str, Any] = {}
        self._sort: List[tuple] = []
        self._limit = 0
        self._single = False
        self._payload: Any = None

    # ---------- filters and modifiers ----------

    def select(self, columns: str = "*") -> "Query":
        if columns and columns.strip() != "*":
            self._columns = [c.strip() for c in columns.split(",") if c.strip()]
        return self

    def eq(self, column: str, value: Any) -> "Query":
        self._filters[_column(column)] = value
        return self

    def in_(self, column: str, values: Sequence[Any]) -> "Query":
        self._filters[_column(column)] = {"$in": list(values)}
        return self

    def order(self, column: str, ascending: bool = True) -> "Query":
        self._sort.append((_column(column), 1 if ascending else -1))
        return self

    def limit(self, count: int) -> "Query":
        self._limit = count
        return self

    def single(self) -> "Query":
        self._single = True
        return self

    # ---------- writes ----------

    def insert(self, records: Union[Dict[str, Any], List[Dict[str, Any]]]) -> "Query":
        self._action = "insert"
        self._payload = records if isinstance(records, list) else [records]
        return self

    def update(self, record: Dict[str, Any]) -> "Query":
        self._action = "update"
        self._payload = record
        return self

    def delete(self) -> "Query":
        self._action = "delete"
        return self

    def upsert(self, records: Union[Dict[str, Any], List[Dict[str, Any]]]) -> "Query":
        self._action = "upsert"
        self._payload = records if isinstance(records, list) else [records]
        return self

    # ---------- execution ----------

    async def execute(self) -> QueryResult:
        try:
            data = await getattr(self, f"_run_{self._action}")()
        except PyMongoError as e:
            logger.error(f"{self._action} on {self._name} failed: {e}")
            return QueryResult(error=str(e))
        except ValueError as e:
            return QueryResult(error=str(e))

        if self._single:
            if len(data) != 1:
                return QueryResult(error=f"Expected a single row, found {len(data)}")
            data = data[0]
        return QueryResult(data=data)

    def _project(self, row: dict) -> dict:
        if not self._columns:
            return row
        return {key: row.get(key) for key in self._columns}

    async def _find(self, filters: Dict[str, Any]) -> List[dict]:
        kwargs: Dict[str, Any] = {}
        if self._sort:
            kwargs["sort"] = self._sort
        if self._limit:
            kwargs["limit"] = self._limit
        rows = []
        async for doc in self._collection.find(filters, **kwargs):
            rows.append(self._project(_to_row(doc)))
        return rows

    def _require_filters(self):
        if not self._filters:
            raise ValueError(f"Refusing to {self._action} {self._name} without a filter")

    async def _run_select(self) -> List[dict]:
        return await self._find(self._filters)

    async def _run_insert(self) -> List[dict]:
        docs = [_to_document(record) for record in self._payload]
        if docs:
            await self._collection.insert_many(docs)
        return [self._project(_to_row(doc)) for doc in docs]

    async def _ids_matching(self) -> List[str]:
        return [doc["_id"] async for doc in self._collection.find(self._filters, {"_id": 1})]

    async def _run_update(self) -> List[dict]:
        self._require_filters()
        changes = dict(self._payload)
        changes.pop("id", None)
        changes["updated_at"] = _now()
        ids = await self._ids_matching()
        if not ids:
            return []
        await self._collection.update_many({"_id": {"$in": ids}}, {"$set": changes})
        return await self._find({"_id": {"$in": ids}})

    async def _run_delete(self) -> List[dict]:
        self._require_filters()
        rows = await self._find(self._filters)
        await self._collection.delete_many(self._filters)
        return rows

    async def _run_upsert(self) -> List[dict]:
        ids = []
        for record in self._payload:
            changes = dict(record)
            row_id = str(changes.pop("id", None) or uuid.uuid4().hex)
            now = _now()
            created_at = changes.pop("created_at", None) or now
            changes["updated_at"] = now
            await self._collection.update_one(
                {"_id": row_id},
                {"$set": changes, "$setOnInsert": {"created_at": created_at}},
                upsert=True,
            )
            ids.append(row_id)
        rows = {row["id"]: row for row in await self._find({"_id": {"$in": ids}})}
        return [rows[row_id] for row_id in ids if row_id in rows]


class Backend:
    """The one handle to the data store, shared by every request."""

    def __init__(self, db, client: Optional[AsyncIOMotorClient] = None):
        self.db = db
        self.client = client

    def table(self, name: str) -> Query:
        if name not in TABLES:
            raise ValueError(f"Unknown table: {name}")
        return Query(self.db[name], name)

    async def rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        builder = RPC_FUNCTIONS.get(name)
        if builder is None:
            return QueryResult(error=f"Unknown function: {name}")
        try:
            collection, pipeline = builder(**(params or {}))
        except (TypeError, ValueError) as e:
            return QueryResult(error=f"Invalid parameters for {name}: {e}")
        try:
            rows = [convert_objectid_to_str(doc) async for doc in self.db[collection].aggregate(pipeline)]
        except PyMongoError as e:
            logger.error(f"rpc {name} failed: {e}")
            return QueryResult(error=str(e))
        return QueryResult(data=rows)

    def close(self) -> None:
        if self.client is not None:
            self.client.close()


_backend: Optional[Backend] = None


def connect() -> Backend:
    client = AsyncIOMotorClient(settings.MONGO_URI, tz_aware=True)
    return Backend(client[settings.DB_NAME], client)


def get_backend() -> Backend:
    """FastAPI dependency returning the process-wide backend."""
    global _backend
    if _backend is None:
        _backend = connect()
    return _backend


def close_backend() -> None:
    global _backend
    if _backend is not None:
        _backend.close()
        _backend = None
