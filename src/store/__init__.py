from .base import Snapshot, DocumentStore, InMemoryDocumentStore
from .json_file import JsonFileDocumentStore
from .errors import StoreError, ConcurrencyConflict, DocumentNotFound
from .transaction import run_transaction, DEFAULT_MAX_ATTEMPTS

__all__ = [
    "Snapshot", "DocumentStore", "InMemoryDocumentStore", "JsonFileDocumentStore",
    "StoreError", "ConcurrencyConflict", "DocumentNotFound",
    "run_transaction", "DEFAULT_MAX_ATTEMPTS",
]
