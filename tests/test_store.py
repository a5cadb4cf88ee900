import json
from datetime import datetime, timezone

import pytest
import requests

from contentsync.config import Settings
from contentsync.errors import ConfigurationError, UpstreamError
from contentsync.firestore import FirestoreStore, decode_fields, decode_value, encode_fields, encode_value
from contentsync.store import JsonFileStore, MemoryStore


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.text = json.dumps(self._payload)

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_store(responses, **kwargs):
    session = FakeSession(responses)
    store = FirestoreStore("demo", access_token="token", session=session, **kwargs)
    return store, session


# ----------------------------------------------------------------------
# MemoryStore / JsonFileStore


def test_memory_store_returns_copies():
    store = MemoryStore({"programs": {"a": {"title": "A"}}})
    document = store.get_document("programs", "a")
    document.data["title"] = "changed"

    assert store.get_document("programs", "a").data == {"title": "A"}
    assert store.get_document("programs", "missing") is None
    assert store.count("programs") == 1
    assert store.count("nothing") == 0


def test_memory_store_set_replaces_whole_document():
    store = MemoryStore({"programs": {"a": {"title": "A", "old": True}}})
    store.set_document("programs", "a", {"title": "B"})

    assert store.get_document("programs", "a").data == {"title": "B"}
    assert store.writes == 1


def test_query_ordered_sorts_and_skips_missing_field():
    store = MemoryStore(
        {
            "posts": {
                "old": {"publishedAt": "2023-01-01T00:00:00Z"},
                "new": {"publishedAt": "2024-01-01T00:00:00Z"},
                "draft": {},
                "mid": {"publishedAt": datetime(2023, 6, 1, tzinfo=timezone.utc)},
            }
        }
    )
    ids = [document.id for document in store.query_ordered("posts", "publishedAt")]
    assert ids == ["new", "mid", "old"]

    limited = store.query_ordered("posts", "publishedAt", descending=False, limit=1)
    assert [document.id for document in limited] == ["old"]


def test_json_file_store_persists_between_instances(tmp_path):
    data_file = tmp_path / "store.json"
    store = JsonFileStore(data_file)
    assert data_file.exists()

    store.set_document("programs", "reset", {"title": "Reset"})
    store.delete_document("programs", "missing")

    reopened = JsonFileStore(data_file)
    assert reopened.get_document("programs", "reset").data == {"title": "Reset"}
    raw = json.loads(data_file.read_text(encoding="utf-8"))
    assert raw["collections"] == {"programs": {"reset": {"title": "Reset"}}}
    assert raw["last_updated"].endswith("Z")


# ----------------------------------------------------------------------
# Firestore value codec


def test_encode_value_types():
    moment = datetime(2024, 5, 1, 10, 20, 30, tzinfo=timezone.utc)
    encoded = encode_fields(
        {
            "title": "Reset",
            "count": 3,
            "ratio": 0.5,
            "live": True,
            "none": None,
            "at": moment,
            "tags": ["a", 1],
            "nested": {"x": "y"},
        }
    )

    assert encoded["title"] == {"stringValue": "Reset"}
    assert encoded["count"] == {"integerValue": "3"}
    assert encoded["ratio"] == {"doubleValue": 0.5}
    assert encoded["live"] == {"booleanValue": True}
    assert encoded["none"] == {"nullValue": None}
    assert encoded["at"] == {"timestampValue": "2024-05-01T10:20:30.000Z"}
    assert encoded["tags"] == {"arrayValue": {"values": [{"stringValue": "a"}, {"integerValue": "1"}]}}
    assert encoded["nested"] == {"mapValue": {"fields": {"x": {"stringValue": "y"}}}}


def test_decode_value_handles_empty_containers_and_timestamps():
    assert decode_value({"arrayValue": {}}) == []
    assert decode_value({"mapValue": {}}) == {}
    assert decode_value({"integerValue": "7"}) == 7
    assert decode_value({"timestampValue": "2024-05-01T10:20:30.123456Z"}) == datetime(
        2024, 5, 1, 10, 20, 30, 123456, tzinfo=timezone.utc
    )
    assert decode_fields({"a": {"stringValue": "b"}}) == {"a": "b"}


# ----------------------------------------------------------------------
# FirestoreStore


def test_from_settings_requires_credentials():
    with pytest.raises(ConfigurationError):
        FirestoreStore.from_settings(Settings())
    with pytest.raises(ConfigurationError):
        FirestoreStore.from_settings(Settings(firebase_project_id="demo"))

    store = FirestoreStore.from_settings(
        Settings(firebase_project_id="demo", firestore_emulator_host="localhost:8080")
    )
    assert store.documents_url == "http://localhost:8080/v1/projects/demo/databases/(default)/documents"


def test_list_documents_follows_page_tokens():
    store, session = make_store(
        [
            FakeResponse(
                payload={
                    "documents": [
                        {"name": "projects/demo/databases/(default)/documents/programs/a", "fields": {"title": {"stringValue": "A"}}}
                    ],
                    "nextPageToken": "next",
                }
            ),
            FakeResponse(
                payload={
                    "documents": [
                        {"name": "projects/demo/databases/(default)/documents/programs/b", "fields": {}}
                    ]
                }
            ),
        ]
    )

    documents = store.list_documents("programs")

    assert [document.id for document in documents] == ["a", "b"]
    assert documents[0].data == {"title": "A"}
    assert session.calls[1]["params"]["pageToken"] == "next"
    assert session.calls[0]["headers"]["Authorization"] == "Bearer token"


def test_get_document_returns_none_on_404():
    store, _ = make_store([FakeResponse(status_code=404, payload={"error": {}})])
    assert store.get_document("singletons", "pageHome") is None


def test_set_document_patches_full_fields():
    store, session = make_store([FakeResponse(payload={})])
    store.set_document("programs", "reset", {"title": "Reset"})

    call = session.calls[0]
    assert call["method"] == "PATCH"
    assert call["url"].endswith("/documents/programs/reset")
    assert call["json"] == {"fields": {"title": {"stringValue": "Reset"}}}


def test_http_errors_raise_upstream_error():
    store, _ = make_store([FakeResponse(status_code=500, payload={"error": "boom"})])
    with pytest.raises(UpstreamError) as excinfo:
        store.set_document("programs", "reset", {})
    assert excinfo.value.status_code == 500

    store, _ = make_store([requests.ConnectionError("offline")])
    with pytest.raises(UpstreamError):
        store.list_documents("programs")


def test_query_ordered_uses_run_query():
    store, session = make_store(
        [
            FakeResponse(
                payload=[
                    {"document": {"name": "x/posts/p1", "fields": {"slug": {"stringValue": "p1"}}}},
                    {"readTime": "2024-01-01T00:00:00Z"},
                ]
            )
        ]
    )

    documents = store.query_ordered("posts", "publishedAt", limit=5)

    assert [document.id for document in documents] == ["p1"]
    query = session.calls[0]["json"]["structuredQuery"]
    assert query["orderBy"][0] == {"field": {"fieldPath": "publishedAt"}, "direction": "DESCENDING"}
    assert query["limit"] == 5
    assert session.calls[0]["url"].endswith("/documents:runQuery")
