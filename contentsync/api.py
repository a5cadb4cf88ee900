"""
FastAPI application exposing the sitemap, content webhook and contact relay.

Run locally with ``contentsync serve`` or ``uvicorn contentsync.api:app``.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, Request, Response
from fastapi.concurrency import run_in_threadpool

from .config import Settings, load_settings
from .contact import handle_contact
from .errors import ConfigurationError
from .firestore import FirestoreStore
from .models import HttpResult
from .sitemap import sitemap_error, sitemap_response
from .store import DocumentStore
from .webhook import handle_content_webhook

LOGGER = logging.getLogger(__name__)

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

app = FastAPI(
    title="Content Sync API",
    description="Sitemap, content webhook and contact relay endpoints",
    version="0.1.0",
)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=4)
def _firestore_store(settings: Settings) -> FirestoreStore:
    # One store, and so one pooled requests.Session, per settings object.
    return FirestoreStore.from_settings(settings)


def get_store(settings: Settings = Depends(get_settings)) -> DocumentStore | None:
    try:
        return _firestore_store(settings)
    except ConfigurationError as error:
        LOGGER.error("Store unavailable: %s", error)
        return None


async def _read_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return {}
    try:
        return await request.json()
    except ValueError:
        LOGGER.warning("Ignoring non-JSON request body on %s", request.url.path)
        return {}


def _to_response(result: HttpResult) -> Response:
    return Response(content=result.body, status_code=result.status, headers=result.headers)


@app.get("/sitemap.xml")
def sitemap(
    settings: Settings = Depends(get_settings),
    store: DocumentStore | None = Depends(get_store),
) -> Response:
    if store is None:
        return _to_response(sitemap_error())
    return _to_response(sitemap_response(store, settings.base_url))


@app.api_route("/content-webhook", methods=ALL_METHODS)
async def content_webhook(request: Request, settings: Settings = Depends(get_settings)) -> Response:
    body = await _read_body(request) if request.method != "OPTIONS" else {}
    # The handlers make blocking HTTP calls, so they run off the event loop.
    result = await run_in_threadpool(
        handle_content_webhook, request.method, dict(request.headers), body, settings
    )
    return _to_response(result)


@app.api_route("/contact", methods=ALL_METHODS)
async def contact(request: Request, settings: Settings = Depends(get_settings)) -> Response:
    body = await _read_body(request) if request.method == "POST" else {}
    result = await run_in_threadpool(handle_contact, request.method, body, settings)
    return _to_response(result)


@app.get("/ping")
async def ping():
    """Health check endpoint."""
    return {"message": "pong"}
