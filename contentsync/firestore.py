"""Firestore REST API backend for :class:`~contentsync.store.DocumentStore`."""
from __future__ import annotations

import base64
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from .config import Settings
from .errors import ConfigurationError, UpstreamError
from .models import StoredDocument
from .store import DocumentStore
from .utils import coerce_datetime, iso_instant

LOGGER = logging.getLogger(__name__)

FIRESTORE_URL = "https://firestore.googleapis.com/v1"
DEFAULT_TIMEOUT = 30
DEFAULT_PAGE_SIZE = 300


def encode_value(value: Any) -> Dict[str, Any]:
    """Encode a Python value as a Firestore typed ``Value``."""

    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": iso_instant(value)}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, bytes):
        return {"bytesValue": base64.b64encode(value).decode("ascii")}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(entry) for entry in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    return {"stringValue": str(value)}


def encode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {str(key): encode_value(value) for key, value in data.items()}


def decode_value(payload: Dict[str, Any]) -> Any:
    """Decode a Firestore typed ``Value`` into plain Python data."""

    if "nullValue" in payload:
        return None
    if "booleanValue" in payload:
        return bool(payload["booleanValue"])
    if "integerValue" in payload:
        return int(payload["integerValue"])
    if "doubleValue" in payload:
        return float(payload["doubleValue"])
    if "timestampValue" in payload:
        return coerce_datetime(payload["timestampValue"])
    if "stringValue" in payload:
        return payload["stringValue"]
    if "bytesValue" in payload:
        return payload["bytesValue"]
    if "referenceValue" in payload:
        return payload["referenceValue"]
    if "geoPointValue" in payload:
        point = payload["geoPointValue"] or {}
        return {"latitude": point.get("latitude", 0.0), "longitude": point.get("longitude", 0.0)}
    if "arrayValue" in payload:
        values = (payload["arrayValue"] or {}).get("values") or []
        return [decode_value(entry) for entry in values]
    if "mapValue" in payload:
        return decode_fields((payload["mapValue"] or {}).get("fields") or {})
    return None


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: decode_value(value) for key, value in fields.items()}


def _document_from_payload(payload: Dict[str, Any]) -> StoredDocument:
    name = str(payload.get("name") or "")
    return StoredDocument(id=name.rsplit("/", 1)[-1], data=decode_fields(payload.get("fields") or {}))


class FirestoreStore(DocumentStore):
    """Talk to Firestore through its REST API, one request per call."""

    def __init__(
        self,
        project_id: str,
        *,
        database: str = "(default)",
        access_token: str | None = None,
        api_key: str | None = None,
        base_url: str = FIRESTORE_URL,
        session: requests.Session | None = None,
        timeout: int = DEFAULT_TIMEOUT,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.project_id = project_id
        self.database = database
        self.access_token = access_token
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.page_size = page_size
        self._session = session or requests.Session()

    @classmethod
    def from_settings(
        cls, settings: Settings, session: requests.Session | None = None
    ) -> "FirestoreStore":
        project_id = settings.require("firebase_project_id")
        if settings.firestore_emulator_host:
            return cls(
                project_id,
                database=settings.firestore_database,
                access_token="owner",
                base_url=f"http://{settings.firestore_emulator_host}/v1",
                session=session,
            )
        if not settings.firestore_access_token and not settings.firebase_api_key:
            raise ConfigurationError(
                "Missing Firestore credentials: set FIRESTORE_ACCESS_TOKEN or FIREBASE_API_KEY"
            )
        return cls(
            project_id,
            database=settings.firestore_database,
            access_token=settings.firestore_access_token,
            api_key=settings.firebase_api_key,
            session=session,
        )

    @property
    def documents_url(self) -> str:
        return f"{self.base_url}/projects/{self.project_id}/databases/{self.database}/documents"

    def _document_url(self, collection: str, doc_id: str | None = None) -> str:
        url = f"{self.documents_url}/{quote(collection, safe='')}"
        if doc_id is not None:
            url = f"{url}/{quote(doc_id, safe='')}"
        return url

    def _request(
        self,
        method: str,
        url: str,
        *,
        allow_not_found: bool = False,
        params: Dict[str, Any] | None = None,
        json: Any = None,
    ) -> Optional[requests.Response]:
        headers = {"Accept": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        query = dict(params or {})
        if self.api_key:
            query["key"] = self.api_key
        try:
            response = self._session.request(
                method,
                url,
                params=query or None,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamError(f"Firestore {method} {url} failed: {exc}") from exc
        if allow_not_found and response.status_code == 404:
            return None
        if response.status_code >= 400:
            detail = response.text[:200]
            LOGGER.error("Firestore error %s on %s %s: %s", response.status_code, method, url, detail)
            raise UpstreamError(
                f"Firestore {method} {url} returned {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def list_documents(self, collection: str) -> List[StoredDocument]:
        documents: List[StoredDocument] = []
        page_token: str | None = None
        while True:
            params: Dict[str, Any] = {"pageSize": self.page_size}
            if page_token:
                params["pageToken"] = page_token
            response = self._request("GET", self._document_url(collection), params=params)
            payload = response.json() if response is not None else {}
            for raw in payload.get("documents") or []:
                documents.append(_document_from_payload(raw))
            page_token = payload.get("nextPageToken")
            if not page_token:
                break
        return documents

    def get_document(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        response = self._request("GET", self._document_url(collection, doc_id), allow_not_found=True)
        if response is None:
            return None
        return _document_from_payload(response.json())

    def set_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        # A PATCH without an update mask replaces every field of the document.
        self._request(
            "PATCH",
            self._document_url(collection, doc_id),
            json={"fields": encode_fields(data)},
        )

    def delete_document(self, collection: str, doc_id: str) -> None:
        self._request("DELETE", self._document_url(collection, doc_id))

    def query_ordered(
        self,
        collection: str,
        order_by: str,
        *,
        descending: bool = True,
        limit: int | None = None,
    ) -> List[StoredDocument]:
        structured: Dict[str, Any] = {
            "from": [{"collectionId": collection}],
            "orderBy": [
                {
                    "field": {"fieldPath": order_by},
                    "direction": "DESCENDING" if descending else "ASCENDING",
                }
            ],
        }
        if limit is not None:
            structured["limit"] = limit
        response = self._request(
            "POST",
            f"{self.documents_url}:runQuery",
            json={"structuredQuery": structured},
        )
        rows = response.json() if response is not None else []
        return [
            _document_from_payload(row["document"])
            for row in rows
            if isinstance(row, dict) and row.get("document")
        ]
