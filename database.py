"""
Database Helper Functions with In-Memory Fallback

Uses MongoDB when DATABASE_URL and DATABASE_NAME are provided.
If not available, falls back to an in-memory store that mimics the subset of
PyMongo APIs used by the app (find, find_one, insert_one, update_one with
upsert, delete_one, delete_many, count_documents, list_collection_names).
"""
from __future__ import annotations

import copy
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.errors import DuplicateKeyError

import settings

logger = logging.getLogger(__name__)

_client = None
_db = None

if settings.DATABASE_URL and settings.DATABASE_NAME:
    try:
        _client = MongoClient(settings.DATABASE_URL, serverSelectionTimeoutMS=2000, tz_aware=True)
        # Trigger a server selection to fail fast if not reachable
        _client.server_info()
        _db = _client[settings.DATABASE_NAME]
    except Exception:
        logger.warning("MongoDB at DATABASE_URL is unreachable, using the in-memory store", exc_info=True)
        _client = None
        _db = None


# ---------------------------
# In-Memory Fallback classes
# ---------------------------
class _InsertOneResult:
    def __init__(self, inserted_id: Any):
        self.inserted_id = inserted_id


class _UpdateResult:
    def __init__(self, matched_count: int, modified_count: int, upserted_id: Any = None):
        self.matched_count = matched_count
        self.modified_count = modified_count
        self.upserted_id = upserted_id


class _DeleteResult:
    def __init__(self, deleted_count: int):
        self.deleted_count = deleted_count


_MISSING = object()


def _get_path(doc: Dict[str, Any], key: str) -> Any:
    current: Any = doc
    for part in key.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _set_path(doc: Dict[str, Any], key: str, value: Any) -> None:
    parts = key.split(".")
    current = doc
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value


def _compare(value: Any, arg: Any, op: Callable[[Any, Any], bool]) -> bool:
    if value is _MISSING or value is None:
        return False
    try:
        return op(value, arg)
    except TypeError:
        return False


def _match_operators(value: Any, ops: Dict[str, Any]) -> bool:
    for op, arg in ops.items():
        if op == "$in":
            if value is _MISSING or value not in arg:
                return False
        elif op == "$nin":
            if value is not _MISSING and value in arg:
                return False
        elif op == "$ne":
            if value is not _MISSING and value == arg:
                return False
        elif op == "$exists":
            if (value is not _MISSING) != bool(arg):
                return False
        elif op == "$regex":
            flags = re.IGNORECASE if "i" in ops.get("$options", "") else 0
            if not isinstance(value, str) or not re.search(arg, value, flags):
                return False
        elif op == "$options":
            continue
        elif op == "$gt":
            if not _compare(value, arg, lambda a, b: a > b):
                return False
        elif op == "$gte":
            if not _compare(value, arg, lambda a, b: a >= b):
                return False
        elif op == "$lt":
            if not _compare(value, arg, lambda a, b: a < b):
                return False
        elif op == "$lte":
            if not _compare(value, arg, lambda a, b: a <= b):
                return False
        else:
            raise ValueError(f"Unsupported query operator: {op}")
    return True


def _is_operator_dict(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and all(k.startswith("$") for k in value)


def _match_filter(doc: Dict[str, Any], filt: Dict[str, Any]) -> bool:
    for k, v in filt.items():
        if k == "$or":
            if not any(_match_filter(doc, sub) for sub in v):
                return False
        elif k == "$and":
            if not all(_match_filter(doc, sub) for sub in v):
                return False
        else:
            value = _get_path(doc, k)
            if _is_operator_dict(v):
                if not _match_operators(value, v):
                    return False
            elif value is _MISSING:
                # Mongo treats {field: None} as "missing or null"
                if v is not None:
                    return False
            elif value != v:
                return False
    return True


def _apply_update(doc: Dict[str, Any], update_doc: Dict[str, Any], inserting: bool = False) -> None:
    for op, fields in update_doc.items():
        if op == "$set":
            for k, v in fields.items():
                _set_path(doc, k, copy.deepcopy(v))
        elif op == "$setOnInsert":
            if inserting:
                for k, v in fields.items():
                    _set_path(doc, k, copy.deepcopy(v))
        elif op == "$unset":
            for k in fields:
                doc.pop(k, None)
        elif op == "$push":
            for k, v in fields.items():
                doc.setdefault(k, [])
                doc[k].append(copy.deepcopy(v))
        elif op == "$pull":
            for k, v in fields.items():
                doc[k] = [item for item in doc.get(k, []) if item != v]
        else:
            raise ValueError(f"Unsupported update operator: {op}")


class MemoryCollection:
    def __init__(self, name: str, store: Dict[Any, Dict[str, Any]]):
        self.name = name
        self.store = store  # id -> doc

    def _gen_id(self) -> ObjectId:
        return ObjectId()

    def find(self, filter_dict: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
        filter_dict = filter_dict or {}
        for doc in list(self.store.values()):
            if _match_filter(doc, filter_dict):
                yield copy.deepcopy(doc)

    def find_one(self, filter_dict: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        for doc in self.find(filter_dict):
            return doc
        return None

    def count_documents(self, filter_dict: Optional[Dict[str, Any]] = None) -> int:
        return sum(1 for _ in self.find(filter_dict))

    def insert_one(self, data: Dict[str, Any]) -> _InsertOneResult:
        to_insert = copy.deepcopy(data)
        _id = to_insert.setdefault("_id", self._gen_id())
        if _id in self.store:
            raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name} _id: {_id}")
        self.store[_id] = to_insert
        return _InsertOneResult(_id)

    def update_one(self, filter_dict: Dict[str, Any], update_doc: Dict[str, Any], upsert: bool = False) -> _UpdateResult:
        doc = self.find_one(filter_dict)
        if doc is None:
            if not upsert:
                return _UpdateResult(0, 0)
            new_doc = {k: copy.deepcopy(v) for k, v in filter_dict.items() if not k.startswith("$") and not _is_operator_dict(v)}
            _apply_update(new_doc, update_doc, inserting=True)
            result = self.insert_one(new_doc)
            return _UpdateResult(0, 0, upserted_id=result.inserted_id)

        current = self.store[doc["_id"]]
        before = copy.deepcopy(current)
        _apply_update(current, update_doc)
        return _UpdateResult(1, 0 if current == before else 1)

    def delete_one(self, filter_dict: Dict[str, Any]) -> _DeleteResult:
        doc = self.find_one(filter_dict)
        if doc is None:
            return _DeleteResult(0)
        del self.store[doc["_id"]]
        return _DeleteResult(1)

    def delete_many(self, filter_dict: Dict[str, Any]) -> _DeleteResult:
        ids = [doc["_id"] for doc in self.find(filter_dict)]
        for _id in ids:
            del self.store[_id]
        return _DeleteResult(len(ids))


class MemoryDB:
    def __init__(self, name: str = "memory"):
        self.name = name
        self._collections: Dict[str, MemoryCollection] = {}
        self._raw: Dict[str, Dict[Any, Dict[str, Any]]] = {}

    def __getitem__(self, collection_name: str) -> MemoryCollection:
        if collection_name not in self._collections:
            self._raw.setdefault(collection_name, {})
            self._collections[collection_name] = MemoryCollection(collection_name, self._raw[collection_name])
        return self._collections[collection_name]

    def list_collection_names(self) -> List[str]:
        return list(self._collections.keys())


# Exposed handle: either real Mongo DB or memory DB
if _db is None:
    db = MemoryDB()
else:
    db = _db


def get_db():
    """FastAPI dependency returning the active database handle."""
    return db


# ---------------------------
# Helper functions (work for both backends)
# ---------------------------

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database, collection_name: str, data: Union[BaseModel, dict]) -> Any:
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(exclude_none=True)
    else:
        data_dict = dict(data)

    now = utcnow()
    data_dict.setdefault("createdAt", now)
    data_dict["updatedAt"] = now

    result = database[collection_name].insert_one(data_dict)
    return result.inserted_id


def get_documents(
    database,
    collection_name: str,
    filter_dict: Optional[dict] = None,
    sort: Optional[Tuple[str, int]] = None,
    skip: int = 0,
    limit: Optional[int] = None,
) -> List[dict]:
    if not isinstance(database, MemoryDB):
        cursor = database[collection_name].find(filter_dict or {})
        if sort:
            cursor = cursor.sort(*sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    docs = list(database[collection_name].find(filter_dict or {}))
    if sort:
        field, direction = sort
        present = [d for d in docs if d.get(field) is not None]
        absent = [d for d in docs if d.get(field) is None]
        try:
            present.sort(key=lambda d: d[field], reverse=direction < 0)
        except TypeError:
            present.sort(key=lambda d: str(d[field]), reverse=direction < 0)
        # Mongo orders missing values first on ascending sorts
        docs = absent + present if direction > 0 else present + absent
    if skip:
        docs = docs[skip:]
    if limit:
        docs = docs[:limit]
    return docs


def id_filter(raw_id: str) -> dict:
    """Match a document whose _id is either the raw string or its ObjectId form."""
    candidates: List[dict] = [{"_id": raw_id}]
    if ObjectId.is_valid(raw_id):
        candidates.append({"_id": ObjectId(raw_id)})
    return {"$or": candidates}


def _stringify(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _stringify(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_stringify(v) for v in value]
    return value


def serialize(doc: Optional[dict], hidden: Tuple[str, ...] = ("password",)) -> Optional[dict]:
    """Turn a stored document into a JSON-ready dict with a string ``id``."""
    if doc is None:
        return None
    out = _stringify(doc)
    for field in hidden:
        out.pop(field, None)
    if "_id" in out:
        out["id"] = str(out.pop("_id"))
    return out
