"""Content-change webhook that fans out to downstream rebuild triggers."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import requests

from .config import Settings
from .models import HttpResult
from .utils import timestamp

LOGGER = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
DISPATCH_TIMEOUT = 15

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


@dataclass
class DispatchTarget:
    name: str
    url: str
    payload: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class DispatchResult:
    name: str
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "ok": self.ok,
            "statusCode": self.status_code,
            "error": self.error,
        }


def build_dispatch_targets(settings: Settings, collection: str = "unknown") -> List[DispatchTarget]:
    """Return one target per configured rebuild trigger."""

    targets: List[DispatchTarget] = []
    if settings.rebuild_webhook_url:
        targets.append(
            DispatchTarget(
                name="rebuild-webhook",
                url=settings.rebuild_webhook_url,
                payload={
                    "trigger": "content-updated",
                    "timestamp": timestamp(),
                    "collection": collection,
                },
                headers={"Content-Type": "application/json"},
            )
        )
    if settings.github_token and settings.github_repo and settings.github_workflow_id:
        targets.append(
            DispatchTarget(
                name="github-workflow",
                url=(
                    f"{GITHUB_API}/repos/{settings.github_repo}/actions/workflows/"
                    f"{settings.github_workflow_id}/dispatches"
                ),
                payload={
                    "ref": settings.github_ref,
                    "inputs": {"trigger": "content-updated", "collection": collection},
                },
                headers={
                    "Authorization": f"token {settings.github_token}",
                    "Accept": "application/vnd.github.v3+json",
                    "Content-Type": "application/json",
                },
            )
        )
    return targets


def fire_dispatches(
    targets: List[DispatchTarget], session: requests.Session | None = None
) -> List[DispatchResult]:
    """POST to every target independently and capture each outcome."""

    if session is None:
        with requests.Session() as owned:
            return fire_dispatches(targets, owned)
    results: List[DispatchResult] = []
    for target in targets:
        try:
            response = session.post(
                target.url,
                json=target.payload,
                headers=target.headers,
                timeout=DISPATCH_TIMEOUT,
            )
        except requests.RequestException as exc:
            LOGGER.error("Rebuild trigger %s failed: %s", target.name, exc)
            results.append(DispatchResult(name=target.name, ok=False, error=str(exc)))
            continue
        if response.ok:
            LOGGER.info("Rebuild trigger %s succeeded", target.name)
        else:
            LOGGER.error("Rebuild trigger %s returned %s", target.name, response.status_code)
        results.append(
            DispatchResult(
                name=target.name,
                ok=bool(response.ok),
                status_code=response.status_code,
                error=None if response.ok else f"HTTP {response.status_code}",
            )
        )
    return results


def _authorized(headers: Mapping[str, str], token: str | None) -> bool:
    if not token:
        return True
    supplied = ""
    for key, value in headers.items():
        if key.lower() == "authorization":
            supplied = value
            break
    return supplied == f"Bearer {token}"


def _json_result(status: int, payload: dict) -> HttpResult:
    headers = dict(CORS_HEADERS)
    headers["Content-Type"] = "application/json"
    return HttpResult(status=status, body=json.dumps(payload), headers=headers)


def handle_content_webhook(
    method: str,
    headers: Mapping[str, str],
    body: Any,
    settings: Settings,
    session: requests.Session | None = None,
) -> HttpResult:
    """Authorize the caller, attempt every rebuild trigger, and report what happened."""

    if method.upper() == "OPTIONS":
        return HttpResult(status=200, body="", headers=dict(CORS_HEADERS))
    if not _authorized(headers, settings.webhook_token):
        LOGGER.warning("Unauthorized webhook request")
        return _json_result(401, {"error": "Unauthorized"})

    collection = "unknown"
    if isinstance(body, dict) and body.get("collection"):
        collection = str(body["collection"])
    LOGGER.info("Content webhook triggered: method=%s collection=%s", method, collection)

    results = fire_dispatches(build_dispatch_targets(settings, collection), session)
    return _json_result(
        200,
        {
            "success": True,
            "message": "Content update processed",
            "timestamp": timestamp(),
            "dispatches": [result.to_dict() for result in results],
        },
    )
