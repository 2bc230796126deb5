from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from database import MemoryDB, create_document, get_documents, id_filter, serialize


@pytest.fixture
def mem():
    return MemoryDB()


def test_insert_assigns_object_ids(mem):
    result = mem["leads"].insert_one({"name": "Jane"})
    assert isinstance(result.inserted_id, ObjectId)
    assert mem["leads"].find_one({"_id": result.inserted_id})["name"] == "Jane"


def test_insert_keeps_client_ids_and_rejects_duplicates(mem):
    mem["leads"].insert_one({"_id": "lead-abc", "name": "Jane"})
    with pytest.raises(DuplicateKeyError):
        mem["leads"].insert_one({"_id": "lead-abc", "name": "Other"})


def test_found_documents_are_copies(mem):
    mem["leads"].insert_one({"name": "Jane", "showings": []})
    doc = mem["leads"].find_one({"name": "Jane"})
    doc["showings"].append({"id": "x"})
    assert mem["leads"].find_one({"name": "Jane"})["showings"] == []


def test_query_operators(mem):
    mem["users"].insert_one({"name": "Alice", "email": "alice@x.com", "profile": {"city": "Toronto"}})
    mem["users"].insert_one({"name": "Bob", "email": "bob@x.com"})

    assert mem["users"].count_documents({"$or": [{"name": "Alice"}, {"name": "Bob"}]}) == 2
    assert mem["users"].find_one({"name": {"$regex": "^ali", "$options": "i"}})["name"] == "Alice"
    assert mem["users"].find_one({"profile": {"$exists": False}})["name"] == "Bob"
    assert mem["users"].find_one({"profile.city": "Toronto"})["name"] == "Alice"
    assert mem["users"].find_one({"name": {"$ne": "Alice"}})["name"] == "Bob"
    assert mem["users"].count_documents({"name": {"$in": ["Bob", "Carol"]}}) == 1


def test_datetime_comparison(mem):
    now = datetime.now(timezone.utc)
    mem["tokens"].insert_one({"token": "old", "expiresAt": now - timedelta(hours=1)})
    mem["tokens"].insert_one({"token": "new", "expiresAt": now + timedelta(hours=1)})
    assert [t["token"] for t in mem["tokens"].find({"expiresAt": {"$gt": now}})] == ["new"]


def test_upsert_inserts_then_updates(mem):
    result = mem["events"].update_one({"showingId": "s1"}, {"$set": {"status": "scheduled"}}, upsert=True)
    assert result.upserted_id is not None
    result = mem["events"].update_one({"showingId": "s1"}, {"$set": {"status": "completed"}}, upsert=True)
    assert result.matched_count == 1
    assert result.modified_count == 1
    assert mem["events"].count_documents({"showingId": "s1"}) == 1
    assert mem["events"].find_one({"showingId": "s1"})["status"] == "completed"


def test_unchanged_update_reports_no_modification(mem):
    mem["events"].insert_one({"title": "Call"})
    result = mem["events"].update_one({"title": "Call"}, {"$set": {"title": "Call"}})
    assert (result.matched_count, result.modified_count) == (1, 0)


def test_push_and_pull(mem):
    _id = mem["users"].insert_one({"favorites": []}).inserted_id
    mem["users"].update_one({"_id": _id}, {"$push": {"favorites": "item-1"}})
    mem["users"].update_one({"_id": _id}, {"$push": {"favorites": "item-2"}})
    mem["users"].update_one({"_id": _id}, {"$pull": {"favorites": "item-1"}})
    assert mem["users"].find_one({"_id": _id})["favorites"] == ["item-2"]


def test_delete(mem):
    for n in range(3):
        mem["events"].insert_one({"leadId": "l1", "n": n})
    assert mem["events"].delete_one({"n": 0}).deleted_count == 1
    assert mem["events"].delete_many({"leadId": "l1"}).deleted_count == 2
    assert mem["events"].delete_one({"n": 0}).deleted_count == 0


def test_id_filter_accepts_both_forms(mem):
    oid = mem["leads"].insert_one({"name": "Native"}).inserted_id
    mem["leads"].insert_one({"_id": "client-id", "name": "Client"})
    assert mem["leads"].find_one(id_filter(str(oid)))["name"] == "Native"
    assert mem["leads"].find_one(id_filter("client-id"))["name"] == "Client"
    assert mem["leads"].find_one(id_filter("nope")) is None


def test_helpers(mem):
    first = create_document(mem, "inventory", {"title": "B", "price": 2})
    create_document(mem, "inventory", {"title": "A", "price": 1})
    create_document(mem, "inventory", {"title": "C"})

    stored = mem["inventory"].find_one({"_id": first})
    assert stored["createdAt"] == stored["updatedAt"]

    ascending = get_documents(mem, "inventory", sort=("price", 1))
    assert [d["title"] for d in ascending] == ["C", "A", "B"]
    descending = get_documents(mem, "inventory", sort=("price", -1), limit=2)
    assert [d["title"] for d in descending] == ["B", "A"]
    assert len(get_documents(mem, "inventory", skip=2)) == 1


def test_serialize_hides_password_and_stringifies_ids():
    oid = ObjectId()
    out = serialize({"_id": oid, "password": "hash", "favorites": [oid], "name": "Jane"})
    assert out == {"id": str(oid), "favorites": [str(oid)], "name": "Jane"}


class _Cursor:
    def __init__(self, docs):
        self.docs = docs
        self.calls = []

    def sort(self, field, direction):
        self.calls.append(("sort", field, direction))
        return self

    def skip(self, n):
        self.calls.append(("skip", n))
        return self

    def limit(self, n):
        self.calls.append(("limit", n))
        return self

    def __iter__(self):
        return iter(self.docs)


class _MongoLikeDB:
    def __init__(self):
        self.cursor = _Cursor([{"name": "page"}])

    def __getitem__(self, name):
        return SimpleNamespace(find=lambda query: self.cursor)


def test_server_side_pagination_on_mongo():
    mongo = _MongoLikeDB()
    docs = get_documents(mongo, "users", {}, sort=("createdAt", 1), skip=20, limit=10)
    assert docs == [{"name": "page"}]
    assert mongo.cursor.calls == [("sort", "createdAt", 1), ("skip", 20), ("limit", 10)]
