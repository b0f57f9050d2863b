"""Document store persisted as one JSON file per document."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Optional

from .base import Document, DocumentStore, Snapshot


class JsonFileDocumentStore(DocumentStore):
    """
    Stores each document as ``<data_dir>/<doc_id>.json``.

    The file holds ``{"version": n, "data": {...}}``. Writes go to a temp
    file and are renamed into place, so readers never see a partial write.
    Serialization is per process; run a single writer per data directory.
    """

    def __init__(self, data_dir: Path | str):
        super().__init__()
        self.data_dir = Path(data_dir)
        self._lock = asyncio.Lock()

    def ensure_storage(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, doc_id: str) -> Path:
        safe_id = doc_id.replace("/", "_")
        return self.data_dir / f"{safe_id}.json"

    def _load(self, doc_id: str) -> tuple[int, Optional[Document]]:
        path = self._path(doc_id)
        if not path.exists():
            return 0, None
        with open(path, "r") as f:
            payload = json.load(f)
        return int(payload.get("version", 0)), payload.get("data")

    async def read(self, doc_id: str) -> Snapshot:
        version, data = self._load(doc_id)
        return Snapshot(doc_id=doc_id, version=version, data=data)

    async def _commit(
        self,
        doc_id: str,
        expected_version: Optional[int],
        data: Document,
    ) -> Optional[Snapshot]:
        async with self._lock:
            current, _ = self._load(doc_id)
            if expected_version is not None and current != expected_version:
                return None

            self.ensure_storage()
            version = current + 1
            path = self._path(doc_id)
            tmp_path = path.with_suffix(".json.tmp")
            with open(tmp_path, "w") as f:
                json.dump({"version": version, "data": data}, f, indent=2)
            os.replace(tmp_path, path)

        return Snapshot(doc_id=doc_id, version=version, data=json.loads(json.dumps(data)))
