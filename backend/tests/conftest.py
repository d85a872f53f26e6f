"""
Pytest configuration and shared test helpers for backend tests.

Services read the database through database.get_db(); the fake_db fixture
swaps it for an in-memory store with the subset of the Motor collection API
the SolveNote services use (conditional find_one_and_update, upserts and
unique indexes included).
"""
import asyncio
import copy
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
from unittest.mock import patch

from auth import create_access_token
from database import database
from server import app

# Unique (sparse) indexes per collection, mirroring Database._create_indexes
UNIQUE_FIELDS = {
    "credit_accounts": ("user_id", "email"),
    "credit_transactions": ("transaction_id",),
    "subscribers": ("email",),
    "stripe_events": ("event_id",),
}


def _matches(doc: Dict[str, Any], flt: Dict[str, Any]) -> bool:
    for key, cond in flt.items():
        if key == "$or":
            if not any(_matches(doc, sub) for sub in cond):
                return False
            continue

        present = key in doc
        value = doc.get(key)
        if isinstance(cond, dict) and any(k.startswith("$") for k in cond):
            for op, arg in cond.items():
                if op == "$exists":
                    if present != bool(arg):
                        return False
                elif op == "$gt":
                    if value is None or not value > arg:
                        return False
                elif op == "$lt":
                    if value is None or not value < arg:
                        return False
                elif op == "$ne":
                    if value == arg:
                        return False
                else:
                    raise NotImplementedError(op)
        elif cond is None:
            # null matches both missing and explicit null
            if value is not None:
                return False
        elif not present or value != cond:
            return False
    return True


def _apply_update(doc: Dict[str, Any], update: Dict[str, Any], inserting: bool) -> None:
    for key, value in update.get("$set", {}).items():
        doc[key] = value
    for key, value in update.get("$inc", {}).items():
        doc[key] = doc.get(key, 0) + value
    if inserting:
        for key, value in update.get("$setOnInsert", {}).items():
            doc[key] = value


def _upsert_seed(flt: Dict[str, Any]) -> Dict[str, Any]:
    return {
        k: v for k, v in flt.items()
        if not k.startswith("$") and not isinstance(v, dict)
    }


class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = docs

    def sort(self, key: str, direction: int = 1):
        self._docs.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def skip(self, count: int):
        self._docs = self._docs[count:]
        return self

    def limit(self, count: int):
        if count:
            self._docs = self._docs[:count]
        return self

    async def to_list(self, length: Optional[int] = None):
        await asyncio.sleep(0)
        return copy.deepcopy(self._docs[:length] if length else self._docs)


class FakeCollection:
    """In-memory collection.

    Each operation yields to the event loop once before running, then
    completes without further awaits: operations interleave across tasks
    but each one is atomic, like a single MongoDB document update.
    """

    def __init__(self, name: str):
        self.name = name
        self.docs: List[Dict[str, Any]] = []
        self.unique_fields = UNIQUE_FIELDS.get(name, ())

    def _check_unique(self, candidate: Dict[str, Any], exclude=None) -> None:
        for field in self.unique_fields:
            if field not in candidate:
                continue
            for other in self.docs:
                if other is exclude:
                    continue
                if field in other and other[field] == candidate[field]:
                    raise DuplicateKeyError(
                        f"E11000 duplicate key error collection: {self.name} index: {field}_1",
                        code=11000,
                    )

    def _first(self, flt: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for doc in self.docs:
            if _matches(doc, flt):
                return doc
        return None

    async def find_one(self, flt: Dict[str, Any], projection=None, **kwargs):
        await asyncio.sleep(0)
        doc = self._first(flt)
        return copy.deepcopy(doc) if doc else None

    def find(self, flt: Optional[Dict[str, Any]] = None, projection=None, **kwargs):
        return FakeCursor([copy.deepcopy(d) for d in self.docs if _matches(d, flt or {})])

    async def count_documents(self, flt: Dict[str, Any], **kwargs) -> int:
        await asyncio.sleep(0)
        return sum(1 for d in self.docs if _matches(d, flt))

    async def insert_one(self, doc: Dict[str, Any], **kwargs):
        await asyncio.sleep(0)
        candidate = copy.deepcopy(doc)
        self._check_unique(candidate)
        self.docs.append(candidate)

    async def update_one(self, flt: Dict[str, Any], update: Dict[str, Any], upsert: bool = False, **kwargs):
        await asyncio.sleep(0)
        self._update(flt, update, upsert)

    async def find_one_and_update(
        self,
        flt: Dict[str, Any],
        update: Dict[str, Any],
        projection=None,
        upsert: bool = False,
        return_document=ReturnDocument.BEFORE,
        **kwargs,
    ):
        await asyncio.sleep(0)
        before, after = self._update(flt, update, upsert)
        result = after if return_document == ReturnDocument.AFTER else before
        return copy.deepcopy(result) if result else None

    async def delete_one(self, flt: Dict[str, Any], **kwargs):
        await asyncio.sleep(0)
        doc = self._first(flt)
        if doc is not None:
            self.docs.remove(doc)

    def _update(self, flt, update, upsert):
        doc = self._first(flt)
        if doc is None:
            if not upsert:
                return None, None
            created = _upsert_seed(flt)
            _apply_update(created, update, inserting=True)
            self._check_unique(created)
            self.docs.append(created)
            return None, created

        before = copy.deepcopy(doc)
        changed = copy.deepcopy(doc)
        _apply_update(changed, update, inserting=False)
        self._check_unique(changed, exclude=doc)
        doc.clear()
        doc.update(changed)
        return before, doc


class FakeDB:
    def __init__(self):
        self._collections: Dict[str, FakeCollection] = {}

    def __getattr__(self, name: str) -> FakeCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    def __getitem__(self, name: str) -> FakeCollection:
        return getattr(self, name)


@pytest.fixture
def fake_db():
    """Route every database.get_db() call to a fresh in-memory store."""
    db = FakeDB()
    with patch.object(database, "get_db", return_value=db):
        yield db


@pytest.fixture
def make_token():
    def _make(user_id: str = "user-1", email: Optional[str] = "user1@example.com") -> str:
        claims = {"sub": user_id}
        if email:
            claims["email"] = email
        return create_access_token(claims)
    return _make


@pytest.fixture
def auth_headers(make_token):
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def client(fake_db):
    """Return a TestClient for the main FastAPI app (server:app), backed by fake_db."""
    return TestClient(app)
