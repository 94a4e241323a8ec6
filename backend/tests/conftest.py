"""
Pytest configuration and shared test helpers for backend tests.

Provides an in-memory stand-in for the motor collections used by the
services, so unit and API tests run without MongoDB.
"""
import copy
import itertools
import os
import uuid
from datetime import datetime, timezone

# Skip MongoDB connection in the app lifespan when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from unittest.mock import patch

from fastapi.testclient import TestClient


# ============================================================================
# IN-MEMORY MONGO
# ============================================================================

_MISSING = object()
_ids = itertools.count(1)


def _get(doc, dotted):
    value = doc
    for part in dotted.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _match_value(actual, expected):
    if isinstance(expected, dict) and expected and all(k.startswith("$") for k in expected):
        for op, arg in expected.items():
            present = actual is not _MISSING
            if op == "$in":
                if (actual if present else None) not in arg:
                    return False
            elif op == "$nin":
                if (actual if present else None) in arg:
                    return False
            elif op == "$ne":
                if (actual if present else None) == arg:
                    return False
            elif op == "$exists":
                if present != bool(arg):
                    return False
            elif op in ("$lt", "$lte", "$gt", "$gte"):
                if not present or actual is None:
                    return False
                if op == "$lt" and not actual < arg:
                    return False
                if op == "$lte" and not actual <= arg:
                    return False
                if op == "$gt" and not actual > arg:
                    return False
                if op == "$gte" and not actual >= arg:
                    return False
            else:
                raise NotImplementedError(op)
        return True
    if expected is None:
        return actual is _MISSING or actual is None
    return actual is not _MISSING and actual == expected


def matches(doc, query):
    return all(_match_value(_get(doc, key), expected) for key, expected in (query or {}).items())


def _project(doc, projection):
    doc = copy.deepcopy(doc)
    if not projection:
        return doc
    include = {k for k, v in projection.items() if v and k != "_id"}
    if include:
        out = {k: doc[k] for k in include if k in doc}
        if projection.get("_id", 1) and "_id" in doc:
            out["_id"] = doc["_id"]
        return out
    for key, value in projection.items():
        if not value:
            doc.pop(key, None)
    return doc


class _Result:
    def __init__(self, matched=0, modified=0, inserted_id=None):
        self.matched_count = matched
        self.modified_count = modified
        self.inserted_id = inserted_id


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, key, direction=1):
        def sort_key(doc):
            value = doc.get(key)
            return (value is not None, value) if value is not None else (False, 0)
        self._docs = sorted(self._docs, key=sort_key, reverse=direction == -1)
        return self

    def skip(self, n):
        self._docs = self._docs[n:]
        return self

    def limit(self, n):
        if n:
            self._docs = self._docs[:n]
        return self

    async def to_list(self, length=None):
        return list(self._docs if length is None else self._docs[:length])


class FakeCollection:
    def __init__(self, name):
        self.name = name
        self.docs = []

    async def find_one(self, query=None, projection=None, **kwargs):
        for doc in self.docs:
            if matches(doc, query):
                return _project(doc, projection)
        return None

    def find(self, query=None, projection=None, **kwargs):
        return FakeCursor([_project(d, projection) for d in self.docs if matches(d, query)])

    async def insert_one(self, doc, **kwargs):
        doc.setdefault("_id", f"oid-{next(_ids)}")
        self.docs.append(copy.deepcopy(doc))
        return _Result(inserted_id=doc["_id"])

    async def update_one(self, query, update, upsert=False, **kwargs):
        for doc in self.docs:
            if matches(doc, query):
                before = copy.deepcopy(doc)
                for key, value in update.get("$set", {}).items():
                    doc[key] = copy.deepcopy(value)
                for key in update.get("$unset", {}):
                    doc.pop(key, None)
                for key, value in update.get("$inc", {}).items():
                    doc[key] = doc.get(key, 0) + value
                return _Result(matched=1, modified=int(before != doc))
        if upsert:
            new_doc = {k: v for k, v in query.items() if not isinstance(v, dict)}
            new_doc.update(update.get("$set", {}))
            await self.insert_one(new_doc)
        return _Result()

    async def count_documents(self, query=None, **kwargs):
        return sum(1 for d in self.docs if matches(d, query))

    async def create_index(self, *args, **kwargs):
        return "noop"


class FakeDatabase:
    def __init__(self):
        self._collections = {}

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    def __getitem__(self, name):
        return getattr(self, name)


@pytest.fixture
def fake_db():
    """Fresh in-memory database wired into the global `database` handle."""
    db = FakeDatabase()
    with patch("database.database.get_db", return_value=db):
        yield db


# ============================================================================
# USERS / TOKENS
# ============================================================================

def make_user(db, role="USER", name="Budi Santoso", email=None, deleted=False, phone="081234567890"):
    """Insert a user document straight into the fake store and return it."""
    user_id = str(uuid.uuid4())
    doc = {
        "user_id": user_id,
        "name": name,
        "email": email or f"{user_id[:8]}@example.com",
        "password_hash": None,
        "role": role,
        "phone": phone,
        "address": None,
        "image": None,
        "deleted_at": datetime.now(timezone.utc) if deleted else None,
        "created_at": datetime.now(timezone.utc),
        "updated_at": datetime.now(timezone.utc),
    }
    db.users.docs.append(copy.deepcopy(doc))
    return doc


def auth_headers(user):
    from auth import token_for_user
    return {"Authorization": f"Bearer {token_for_user(user)}"}


@pytest.fixture
def admin_user(fake_db):
    return make_user(fake_db, role="ADMIN", name="Admin", email="admin@example.com")


@pytest.fixture
def customer(fake_db):
    return make_user(fake_db, role="USER", name="Siti Aminah", email="siti@example.com")


def package_payload(**overrides):
    payload = {
        "name": "Tax Renewal",
        "image": "https://utfs.io/f/tax.png",
        "description": "Annual vehicle tax renewal",
        "price": "50000",
        "required_fields": [
            {"field_name": "ktp_number", "field_label": "KTP number", "field_type": "TEXT",
             "is_required": True, "order": 0},
        ],
    }
    payload.update(overrides)
    return payload


# Shared TestClient fixture so tests can use in-process requests without a running server.
@pytest.fixture
def client(fake_db):
    """Return a TestClient for the main FastAPI app (server:app) backed by the fake store."""
    from server import app
    return TestClient(app, raise_server_exceptions=False)
