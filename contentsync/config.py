"""Configuration helpers for the content sync pipeline."""
from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Mapping, Tuple

from dotenv import load_dotenv

from .errors import ConfigurationError

BASE_DIR = Path(__file__).resolve().parent.parent
CONTENT_DIR = BASE_DIR / "content"
DEFAULT_SNAPSHOT = CONTENT_DIR / "en.json"
BACKUPS_DIR = CONTENT_DIR / "backups"
REPORTS_DIR = BASE_DIR / "public" / "data"

DEFAULT_BASE_URL = "https://breathingflame.com"
DEFAULT_SITE_NAME = "Breathing Flame"

COLLECTIONS: Tuple[str, ...] = (
    "programs",
    "experiences",
    "solutions",
    "posts",
    "testimonials",
)

SINGLETONS_NAMESPACE = "singletons"

SINGLETONS: Tuple[str, ...] = (
    "pageHome",
    "pageAbout",
    "pageIndividuals",
    "pageOrganizations",
    "pagePrograms",
    "pageEvents",
    "pageResources",
    "pageTestimonials",
    "pageContact",
    "pageCommunity",
    "pagePress",
    "navigation",
    "settings",
)

# Top-level snapshot keys counted against the store's ``pages`` collection.
PAGES_NAMESPACE = "pages"
PAGE_KEYS: Tuple[str, ...] = (
    "home",
    "about",
    "individuals",
    "organizations",
    "programs",
    "testimonials",
    "search",
    "notFound",
    "resources",
    "events",
    "press",
    "community",
    "contact",
    "igniteYourFlame",
    "peakEnergyProfiler",
)

STATIC_ROUTES: Tuple[str, ...] = (
    "/",
    "/individuals",
    "/organizations",
    "/programs",
    "/events",
    "/testimonials",
    "/about",
    "/contact",
)


@dataclass(frozen=True)
class Settings:
    """Environment supplied settings shared by the scripts and HTTP handlers."""

    content_file: Path = DEFAULT_SNAPSHOT
    site_name: str = DEFAULT_SITE_NAME
    sitemap_base_url: str | None = None
    firebase_project_id: str | None = None
    firestore_database: str = "(default)"
    firestore_access_token: str | None = None
    firebase_api_key: str | None = None
    firestore_emulator_host: str | None = None
    mailersend_api_key: str | None = None
    mailersend_sender: str | None = None
    contact_receiver: str | None = None
    webhook_token: str | None = None
    rebuild_webhook_url: str | None = None
    github_token: str | None = None
    github_repo: str | None = None
    github_workflow_id: str | None = None
    github_ref: str = "main"

    @property
    def backups_dir(self) -> Path:
        return self.content_file.parent / "backups"

    @property
    def base_url(self) -> str:
        return (self.sitemap_base_url or DEFAULT_BASE_URL).rstrip("/")

    def require(self, name: str) -> str:
        """Return a configured value or fail fast with ``ConfigurationError``."""

        value = getattr(self, name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ConfigurationError(f"Missing required setting: {_ENV_NAMES.get(name, name)}")
        return value


_ENV_NAMES = {
    "content_file": "CONTENT_FILE",
    "site_name": "SITE_NAME",
    "sitemap_base_url": "SITEMAP_BASE_URL",
    "firebase_project_id": "FIREBASE_PROJECT_ID",
    "firestore_database": "FIRESTORE_DATABASE",
    "firestore_access_token": "FIRESTORE_ACCESS_TOKEN",
    "firebase_api_key": "FIREBASE_API_KEY",
    "firestore_emulator_host": "FIRESTORE_EMULATOR_HOST",
    "mailersend_api_key": "MAILERSEND_API_KEY",
    "mailersend_sender": "MAILERSEND_SENDER",
    "contact_receiver": "CONTACT_RECEIVER",
    "webhook_token": "WEBHOOK_TOKEN",
    "rebuild_webhook_url": "REBUILD_WEBHOOK_URL",
    "github_token": "GITHUB_TOKEN",
    "github_repo": "GITHUB_REPO",
    "github_workflow_id": "GITHUB_WORKFLOW_ID",
    "github_ref": "GITHUB_REF",
}

# Vite-prefixed names used by the site build are accepted as fallbacks.
_ENV_FALLBACKS = {
    "firebase_project_id": "VITE_FIREBASE_PROJECT_ID",
    "firebase_api_key": "VITE_FIREBASE_API_KEY",
}


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build settings from ``env`` or the process environment.

    When reading the process environment, ``.env.local`` and ``.env`` in the
    project root are loaded first without overriding variables already set.
    """

    if env is None:
        load_dotenv(BASE_DIR / ".env.local")
        load_dotenv(BASE_DIR / ".env")
        env = os.environ
    values: dict[str, object] = {}
    for item in fields(Settings):
        raw = env.get(_ENV_NAMES[item.name])
        if not raw and item.name in _ENV_FALLBACKS:
            raw = env.get(_ENV_FALLBACKS[item.name])
        if raw is None:
            continue
        raw = raw.strip()
        if not raw:
            continue
        values[item.name] = Path(raw) if item.name == "content_file" else raw
    return Settings(**values)
