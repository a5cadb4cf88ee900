"""Relay contact form submissions to the MailerSend email API."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping

import requests

from .config import Settings
from .errors import ContentSyncError, UpstreamError, ValidationError
from .models import HttpResult
from .utils import is_blank

LOGGER = logging.getLogger(__name__)

MAILERSEND_URL = "https://api.mailersend.com/v1/email"
REQUIRED_FIELDS = ("name", "email", "message")
SEND_TIMEOUT = 15


def validate_submission(body: Any) -> Dict[str, str]:
    """Return the submission fields or raise ``ValidationError`` when any is missing."""

    payload: Mapping[str, Any] = body if isinstance(body, dict) else {}
    missing = [name for name in REQUIRED_FIELDS if is_blank(payload.get(name))]
    if missing:
        raise ValidationError(f"Missing fields: {', '.join(missing)}")
    return {
        "name": str(payload["name"]),
        "email": str(payload["email"]),
        "message": str(payload["message"]),
        "type": str(payload.get("type") or "General"),
    }


def build_email(submission: Dict[str, str], settings: Settings) -> Dict[str, Any]:
    return {
        "from": {"email": settings.require("mailersend_sender"), "name": f"{settings.site_name} Contact Form"},
        "to": [{"email": settings.require("contact_receiver"), "name": settings.site_name}],
        "subject": f"New Contact Form Submission - {submission['type']}",
        "text": (
            f"Name: {submission['name']}\n"
            f"Email: {submission['email']}\n"
            f"Type: {submission['type']}\n"
            f"Message:\n{submission['message']}"
        ),
        "reply_to": {"email": submission["email"], "name": submission["name"]},
    }


def send_email(
    payload: Dict[str, Any], settings: Settings, session: requests.Session | None = None
) -> None:
    if session is None:
        with requests.Session() as owned:
            return send_email(payload, settings, owned)
    try:
        response = session.post(
            MAILERSEND_URL,
            json=payload,
            headers={
                "Authorization": f"Bearer {settings.require('mailersend_api_key')}",
                "Content-Type": "application/json",
            },
            timeout=SEND_TIMEOUT,
        )
    except requests.RequestException as exc:
        raise UpstreamError(f"MailerSend request failed: {exc}") from exc
    if not response.ok:
        raise UpstreamError(f"MailerSend error {response.status_code}", status_code=response.status_code)


def _json_result(status: int, payload: dict) -> HttpResult:
    return HttpResult(status=status, body=json.dumps(payload), headers={"Content-Type": "application/json"})


def handle_contact(
    method: str,
    body: Any,
    settings: Settings,
    session: requests.Session | None = None,
) -> HttpResult:
    if method.upper() != "POST":
        return HttpResult(status=405)
    try:
        submission = validate_submission(body)
    except ValidationError as error:
        LOGGER.info("Rejected contact submission: %s", error)
        return _json_result(400, {"ok": False, "error": "Missing fields"})
    try:
        send_email(build_email(submission, settings), settings, session)
    except ContentSyncError:
        # Missing MailerSend settings land here as well.
        LOGGER.exception("Contact relay failed")
        return _json_result(500, {"ok": False, "error": "MailerSend failed"})
    LOGGER.info("Contact submission relayed for %s", submission["email"])
    return _json_result(200, {"ok": True})
