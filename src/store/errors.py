"""Store-level failures."""

from __future__ import annotations


class StoreError(RuntimeError):
    """Base class for shared document store failures."""


class ConcurrencyConflict(StoreError):
    """A transaction lost every compare-and-set race it was allowed to retry."""

    def __init__(self, doc_id: str, attempts: int):
        super().__init__(f"Document '{doc_id}' changed concurrently {attempts} times; try again")
        self.doc_id = doc_id
        self.attempts = attempts


class DocumentNotFound(StoreError):
    """The requested document does not exist."""

    def __init__(self, doc_id: str):
        super().__init__(f"Document '{doc_id}' not found")
        self.doc_id = doc_id
