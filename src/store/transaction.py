"""Optimistic read-modify-write transactions over a DocumentStore."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .base import Document, DocumentStore, Snapshot
from .errors import ConcurrencyConflict

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5

TransactionFn = Callable[[Optional[Document]], Optional[Document]]


async def run_transaction(
    store: DocumentStore,
    doc_id: str,
    fn: TransactionFn,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> tuple[Snapshot, bool]:
    """
    Apply ``fn`` to the latest document and commit with compare-and-set.

    ``fn`` receives the current data (None if missing) and returns the new
    data, or None to abort without writing. Exceptions raised by ``fn`` abort
    the transaction and propagate. A lost race re-reads and re-runs ``fn``.

    Returns:
        (snapshot, committed) - the written snapshot, or the snapshot ``fn``
        declined to change.

    Raises:
        ConcurrencyConflict: every attempt lost the race.
    """
    for attempt in range(1, max_attempts + 1):
        snapshot = await store.read(doc_id)
        new_data = fn(snapshot.data)
        if new_data is None:
            return snapshot, False

        if await store.compare_and_set(doc_id, snapshot.version, new_data):
            return Snapshot(doc_id=doc_id, version=snapshot.version + 1, data=new_data), True

        logger.debug("Transaction on %s lost a race (attempt %d/%d)", doc_id, attempt, max_attempts)

    logger.warning("Transaction on %s gave up after %d attempts", doc_id, max_attempts)
    raise ConcurrencyConflict(doc_id, max_attempts)
