"""Document store abstraction plus the in-memory and local JSON backends."""
from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import StoredDocument
from .utils import coerce_datetime, dump_json, load_json, timestamp

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class DocumentStore:
    """Minimal collection/document interface the pipeline talks to.

    Implementations are passed explicitly into every pipeline operation.
    """

    def list_documents(self, collection: str) -> List[StoredDocument]:
        raise NotImplementedError

    def get_document(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        raise NotImplementedError

    def set_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Replace the whole document at ``collection/doc_id``."""

        raise NotImplementedError

    def delete_document(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    def count(self, collection: str) -> int:
        return len(self.list_documents(collection))

    def query_ordered(
        self,
        collection: str,
        order_by: str,
        *,
        descending: bool = True,
        limit: int | None = None,
    ) -> List[StoredDocument]:
        """Return documents having ``order_by`` sorted on it, like a Firestore ``orderBy`` query."""

        documents = [
            document
            for document in self.list_documents(collection)
            if document.data.get(order_by) is not None
        ]
        documents.sort(
            key=lambda document: coerce_datetime(document.data.get(order_by)) or _EPOCH,
            reverse=descending,
        )
        if limit is not None:
            documents = documents[:limit]
        return documents


class MemoryStore(DocumentStore):
    """Dictionary backed store used for tests and offline runs."""

    def __init__(self, collections: Dict[str, Dict[str, Dict[str, Any]]] | None = None) -> None:
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = copy.deepcopy(collections or {})
        self.writes = 0

    def list_documents(self, collection: str) -> List[StoredDocument]:
        documents = self._collections.get(collection, {})
        return [
            StoredDocument(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in documents.items()
        ]

    def get_document(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        data = self._collections.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return StoredDocument(id=doc_id, data=copy.deepcopy(data))

    def set_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        self.writes += 1
        self._persist()

    def delete_document(self, collection: str, doc_id: str) -> None:
        documents = self._collections.get(collection, {})
        if doc_id in documents:
            del documents[doc_id]
            self._persist()

    def collection_names(self) -> List[str]:
        return sorted(self._collections)

    def _persist(self) -> None:
        """Hook for subclasses that mirror the data somewhere durable."""


class JsonFileStore(MemoryStore):
    """Store documents in a local JSON file: ``{"last_updated", "collections"}``."""

    def __init__(self, data_file: Path) -> None:
        self.data_file = Path(data_file)
        raw = load_json(self.data_file, default={"last_updated": None, "collections": {}})
        collections = raw.get("collections") if isinstance(raw, dict) else None
        if not isinstance(collections, dict):
            collections = {}
        super().__init__(
            {
                name: documents
                for name, documents in collections.items()
                if isinstance(documents, dict)
            }
        )
        self._ensure_file_exists()

    def _ensure_file_exists(self) -> None:
        if not self.data_file.exists():
            logger.debug("Creating new store file at %s", self.data_file)
            self._persist()

    def _persist(self) -> None:
        dump_json(
            self.data_file,
            {"last_updated": timestamp(), "collections": self._collections},
        )
