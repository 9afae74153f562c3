"""Cloud Firestore backend.

Uses ``google-cloud-firestore``. Each declared table is a top-level
collection; the document id is the record key and the document holds a
single ``value`` field.

Install the client::

    pip install google-cloud-firestore
    # or:  pip install kvspine[firestore]

Credentials follow Google's Application Default Credentials lookup, or a
ready client can be injected with ``client=``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

from kvspine.core.errors import BackendConnectionError, ConfigError
from kvspine.core.events import EventBus

from .base import TableBackend
from .diffing import normalize

# Firestore caps a write batch at 500 operations.
BATCH_LIMIT = 500


class FirestoreBackend(TableBackend):
    """One Firestore collection per table."""

    name = "firestore"

    def __init__(
        self,
        project: str | None = None,
        tables: Iterable[str] | None = None,
        *,
        client: Any = None,
        events: EventBus | None = None,
        **client_options: Any,
    ):
        super().__init__(tables, events=events)
        self._project = project
        self._client = client
        self._owns_client = client is None
        self._client_options = client_options

    # === Medium primitives ===

    async def _open(self) -> None:
        try:
            from google.api_core.exceptions import GoogleAPIError
            from google.auth.exceptions import GoogleAuthError
            from google.cloud import firestore
        except ImportError:
            raise ConfigError(
                "google-cloud-firestore is required for the firestore backend. "
                "Install with: pip install kvspine[firestore]"
            ) from None

        self.io_errors = (GoogleAPIError, GoogleAuthError, OSError)

        if self._client is not None:
            return

        def initialize() -> Any:
            client = firestore.Client(project=self._project, **self._client_options)
            # Collections exist implicitly; listing them proves the project is reachable.
            list(client.collections())
            return client

        try:
            self._client = await asyncio.to_thread(initialize)
        except (GoogleAPIError, GoogleAuthError) as e:
            raise BackendConnectionError(
                f"Failed to connect to Firestore: {e}",
                cause=e,
            ).with_context(backend=self.name) from e

    async def _close(self) -> None:
        if self._client is not None and self._owns_client:
            await asyncio.to_thread(self._client.close)
            self._client = None

    def _collection(self, table: str) -> Any:
        return self._client.collection(table)

    async def _read_table(self, table: str) -> dict[str, Any]:
        def fetch() -> dict[str, Any]:
            return {
                snapshot.id: (snapshot.to_dict() or {}).get("value")
                for snapshot in self._collection(table).stream()
            }

        return await asyncio.to_thread(fetch)

    async def _read_key(self, table: str, key: str) -> tuple[bool, Any]:
        snapshot = await asyncio.to_thread(self._collection(table).document(key).get)
        if not snapshot.exists:
            return False, None
        return True, (snapshot.to_dict() or {}).get("value")

    async def _write_key(self, table: str, key: str, value: Any) -> None:
        await asyncio.to_thread(
            self._collection(table).document(key).set,
            {"value": normalize(value)},
        )

    def _delete_documents(self, table: str, keys: list[str]) -> None:
        collection = self._collection(table)
        for start in range(0, len(keys), BATCH_LIMIT):
            batch = self._client.batch()
            for key in keys[start : start + BATCH_LIMIT]:
                batch.delete(collection.document(key))
            batch.commit()

    async def _remove_keys(self, table: str, keys: list[str]) -> None:
        if keys:
            await asyncio.to_thread(self._delete_documents, table, keys)

    async def _remove_all(self, table: str) -> None:
        def remove() -> None:
            keys = [snapshot.id for snapshot in self._collection(table).stream()]
            self._delete_documents(table, keys)

        await asyncio.to_thread(remove)


__all__ = ["FirestoreBackend", "BATCH_LIMIT"]
