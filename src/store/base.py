"""Shared document store contract and the in-memory backend.

Documents are JSON-compatible dicts addressed by id. Every committed write
bumps the document's version; ``compare_and_set`` only commits when the
caller's expected version is still current. Subscribers receive the current
snapshot immediately and then every committed write.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

Document = dict[str, Any]
OnChange = Callable[["Snapshot"], None]
OnError = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class Snapshot:
    """A read-only view of one committed document version.

    Version 0 means the document does not exist.
    """
    doc_id: str
    version: int
    data: Optional[Document] = None

    @property
    def exists(self) -> bool:
        return self.data is not None


@dataclass
class _Subscription:
    on_change: OnChange
    on_error: Optional[OnError] = None
    active: bool = field(default=True)


class DocumentStore(ABC):
    """Abstract base for shared document stores."""

    def __init__(self):
        self._subscribers: dict[str, list[_Subscription]] = {}

    @abstractmethod
    async def read(self, doc_id: str) -> Snapshot:
        """Return the latest committed snapshot (version 0 if missing)."""
        pass

    @abstractmethod
    async def _commit(
        self,
        doc_id: str,
        expected_version: Optional[int],
        data: Document,
    ) -> Optional[Snapshot]:
        """
        Write ``data`` if the current version equals ``expected_version``.

        ``expected_version=None`` writes unconditionally. Returns the new
        snapshot, or None when the version check failed.
        """
        pass

    async def compare_and_set(self, doc_id: str, expected_version: int, data: Document) -> bool:
        """Atomically replace the document if nobody else wrote since ``expected_version``."""
        snapshot = await self._commit(doc_id, expected_version, data)
        if snapshot is None:
            return False
        self._notify(snapshot)
        return True

    async def set(self, doc_id: str, data: Document) -> Snapshot:
        """Unconditionally replace the document."""
        snapshot = await self._commit(doc_id, None, data)
        self._notify(snapshot)
        return snapshot

    async def subscribe(
        self,
        doc_id: str,
        on_change: OnChange,
        on_error: Optional[OnError] = None,
    ) -> Unsubscribe:
        """
        Watch a document.

        ``on_change`` is called right away with the current snapshot and then
        after every committed write. Returns a function that stops delivery.
        """
        subscription = _Subscription(on_change=on_change, on_error=on_error)
        self._subscribers.setdefault(doc_id, []).append(subscription)

        try:
            snapshot = await self.read(doc_id)
        except Exception as e:
            self._fail(subscription, e)
        else:
            self._deliver(subscription, snapshot)

        def unsubscribe() -> None:
            subscription.active = False
            subscribers = self._subscribers.get(doc_id, [])
            if subscription in subscribers:
                subscribers.remove(subscription)

        return unsubscribe

    def _notify(self, snapshot: Snapshot) -> None:
        for subscription in list(self._subscribers.get(snapshot.doc_id, [])):
            self._deliver(subscription, snapshot)

    def _deliver(self, subscription: _Subscription, snapshot: Snapshot) -> None:
        if not subscription.active:
            return
        try:
            subscription.on_change(snapshot)
        except Exception as e:
            self._fail(subscription, e)

    @staticmethod
    def _fail(subscription: _Subscription, error: Exception) -> None:
        if subscription.on_error is not None:
            subscription.on_error(error)
        else:
            logger.exception("Subscriber callback failed: %s", error)


class InMemoryDocumentStore(DocumentStore):
    """Process-local store. Writes are serialized with an asyncio lock."""

    def __init__(self):
        super().__init__()
        self._docs: dict[str, tuple[int, Document]] = {}
        self._lock = asyncio.Lock()

    async def read(self, doc_id: str) -> Snapshot:
        entry = self._docs.get(doc_id)
        if entry is None:
            return Snapshot(doc_id=doc_id, version=0)
        version, data = entry
        return Snapshot(doc_id=doc_id, version=version, data=copy.deepcopy(data))

    async def _commit(
        self,
        doc_id: str,
        expected_version: Optional[int],
        data: Document,
    ) -> Optional[Snapshot]:
        async with self._lock:
            current = self._docs.get(doc_id, (0, None))[0]
            if expected_version is not None and current != expected_version:
                return None
            version = current + 1
            self._docs[doc_id] = (version, copy.deepcopy(data))
        return Snapshot(doc_id=doc_id, version=version, data=copy.deepcopy(data))
