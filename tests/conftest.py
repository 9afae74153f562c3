"""
Shared pytest fixtures for kvspine tests.

This module provides:
- One factory per storage backend (file, SQLite, mongomock, fake Firestore)
- A parametrized ``backend`` fixture running contract tests on all four
- An event recorder for asserting on published notifications
- A deterministic millisecond clock for the timeout manager
"""

from __future__ import annotations

import copy
from collections import defaultdict
from pathlib import Path
from typing import Any

import mongomock
import pytest

from kvspine.core.events import Event
from kvspine.storage import FirestoreBackend, JsonFileBackend, MongoBackend, SQLTableBackend

TABLES = ["main", "users"]


# =============================================================================
# Fake Firestore client
# =============================================================================


class FakeSnapshot:
    def __init__(self, doc_id: str, data: dict[str, Any] | None):
        self.id = doc_id
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> dict[str, Any] | None:
        return copy.deepcopy(self._data)


class FakeDocument:
    def __init__(self, client: FakeFirestoreClient, collection: str, doc_id: str):
        self._client = client
        self._collection = collection
        self.id = doc_id

    def get(self) -> FakeSnapshot:
        return FakeSnapshot(self.id, self._client.data[self._collection].get(self.id))

    def set(self, data: dict[str, Any]) -> None:
        self._client.data[self._collection][self.id] = copy.deepcopy(data)

    def delete(self) -> None:
        self._client.data[self._collection].pop(self.id, None)


class FakeCollection:
    def __init__(self, client: FakeFirestoreClient, name: str):
        self._client = client
        self.id = name

    def document(self, doc_id: str) -> FakeDocument:
        return FakeDocument(self._client, self.id, doc_id)

    def stream(self):
        return [FakeSnapshot(doc_id, data) for doc_id, data in list(self._client.data[self.id].items())]


class FakeBatch:
    def __init__(self, client: FakeFirestoreClient):
        self._client = client
        self._documents: list[FakeDocument] = []

    def delete(self, document: FakeDocument) -> None:
        self._documents.append(document)

    def commit(self) -> None:
        self._client.commits.append(len(self._documents))
        for document in self._documents:
            document.delete()


class FakeFirestoreClient:
    """In-memory stand-in for ``google.cloud.firestore.Client``."""

    def __init__(self):
        self.data: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self.commits: list[int] = []
        self.closed = False

    def collection(self, name: str) -> FakeCollection:
        return FakeCollection(self, name)

    def collections(self):
        return [FakeCollection(self, name) for name in self.data]

    def batch(self) -> FakeBatch:
        return FakeBatch(self)

    def close(self) -> None:
        self.closed = True


# =============================================================================
# Backend factories
# =============================================================================


@pytest.fixture
def file_backend(tmp_path: Path) -> JsonFileBackend:
    return JsonFileBackend(tmp_path / "database", TABLES)


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'kv.sqlite'}"


@pytest.fixture
def sql_backend(sqlite_url: str) -> SQLTableBackend:
    return SQLTableBackend(sqlite_url, TABLES)


@pytest.fixture
def mongo_client() -> mongomock.MongoClient:
    return mongomock.MongoClient()


@pytest.fixture
def mongo_backend(mongo_client) -> MongoBackend:
    return MongoBackend(client=mongo_client, tables=TABLES, database="kvspine_test")


@pytest.fixture
def firestore_client() -> FakeFirestoreClient:
    return FakeFirestoreClient()


@pytest.fixture
def firestore_backend(firestore_client) -> FirestoreBackend:
    return FirestoreBackend(client=firestore_client, tables=TABLES)


@pytest.fixture(params=["file", "sql", "mongo", "firestore"])
def backend(request):
    """Unconnected backend of every kind, for contract tests."""
    return request.getfixturevalue(f"{request.param}_backend")


# =============================================================================
# Events and time
# =============================================================================


class EventRecorder:
    """Async event handler that keeps every event it receives."""

    def __init__(self):
        self.events: list[Event] = []

    async def __call__(self, event: Event) -> None:
        self.events.append(event)

    def of(self, event_type: str) -> list[Event]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
