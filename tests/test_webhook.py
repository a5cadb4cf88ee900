import json

import requests

from contentsync.config import Settings
from contentsync.webhook import (
    CORS_HEADERS,
    build_dispatch_targets,
    fire_dispatches,
    handle_content_webhook,
)


class FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code
        self.ok = status_code < 400


class FakeSession:
    def __init__(self, outcomes):
        self.outcomes = dict(outcomes)
        self.posts = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        outcome = self.outcomes[url]
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome)


FULL_SETTINGS = Settings(
    webhook_token="secret",
    rebuild_webhook_url="https://hooks.example.com/rebuild",
    github_token="gh",
    github_repo="org/site",
    github_workflow_id="deploy.yml",
)
GITHUB_URL = "https://api.github.com/repos/org/site/actions/workflows/deploy.yml/dispatches"


def test_options_returns_cors_preflight():
    result = handle_content_webhook("OPTIONS", {}, {}, FULL_SETTINGS, session=FakeSession({}))

    assert result.status == 200
    assert result.body == ""
    assert result.headers == CORS_HEADERS


def test_missing_or_wrong_token_is_rejected():
    session = FakeSession({})
    result = handle_content_webhook("POST", {"Authorization": "Bearer nope"}, {}, FULL_SETTINGS, session)

    assert result.status == 401
    assert json.loads(result.body) == {"error": "Unauthorized"}
    assert result.headers["Access-Control-Allow-Origin"] == "*"
    assert session.posts == []


def test_build_dispatch_targets_requires_complete_github_settings():
    targets = build_dispatch_targets(Settings(github_token="gh", github_repo="org/site"))
    assert targets == []

    targets = build_dispatch_targets(FULL_SETTINGS, "programs")
    assert [target.name for target in targets] == ["rebuild-webhook", "github-workflow"]
    assert targets[1].url == GITHUB_URL
    assert targets[1].headers["Authorization"] == "token gh"
    assert targets[1].payload == {
        "ref": "main",
        "inputs": {"trigger": "content-updated", "collection": "programs"},
    }


def test_each_dispatch_is_attempted_independently():
    session = FakeSession(
        {
            "https://hooks.example.com/rebuild": requests.ConnectionError("down"),
            GITHUB_URL: 204,
        }
    )

    result = handle_content_webhook(
        "POST",
        {"authorization": "Bearer secret"},
        {"collection": "posts"},
        FULL_SETTINGS,
        session,
    )

    body = json.loads(result.body)
    assert result.status == 200
    assert body["success"] is True
    assert body["message"] == "Content update processed"
    assert body["timestamp"].endswith("Z")
    assert body["dispatches"] == [
        {"name": "rebuild-webhook", "ok": False, "statusCode": None, "error": "down"},
        {"name": "github-workflow", "ok": True, "statusCode": 204, "error": None},
    ]
    assert session.posts[0]["json"]["collection"] == "posts"
    assert session.posts[0]["timeout"] == 15


def test_no_token_configured_allows_any_caller():
    result = handle_content_webhook("GET", {}, None, Settings(), FakeSession({}))

    assert result.status == 200
    assert json.loads(result.body)["dispatches"] == []


def test_fire_dispatches_reports_http_errors():
    targets = build_dispatch_targets(Settings(rebuild_webhook_url="https://hooks.example.com/rebuild"))
    results = fire_dispatches(targets, FakeSession({"https://hooks.example.com/rebuild": 502}))

    assert results[0].to_dict() == {
        "name": "rebuild-webhook",
        "ok": False,
        "statusCode": 502,
        "error": "HTTP 502",
    }


class ClosingSession(FakeSession):
    closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True


def test_fire_dispatches_closes_the_session_it_opens(monkeypatch):
    created = []

    def open_session():
        session = ClosingSession({"https://hooks.example.com/rebuild": 204})
        created.append(session)
        return session

    monkeypatch.setattr("contentsync.webhook.requests.Session", open_session)
    targets = build_dispatch_targets(Settings(rebuild_webhook_url="https://hooks.example.com/rebuild"))

    results = fire_dispatches(targets)

    assert results[0].ok
    assert len(created) == 1
    assert created[0].closed
    assert created[0].posts[0]["url"] == "https://hooks.example.com/rebuild"
