# tests/conftest.py
from __future__ import annotations

import json
from typing import Any, Optional

import pytest

from core.config import get_settings


# ------------------------------
# Settings isolation
# ------------------------------
@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch, tmp_path):
    """Rebuild Settings from a clean environment for every test."""
    for key in (
        "GITHUB_TOKEN", "DATABASE_URL", "SUPABASE_DB_URL", "ENVIRONMENT",
        "CRAWLER_REQUEST_TIMEOUT", "CRAWLER_MAX_RETRIES", "MAX_REQUESTS",
        "CRAWL_TOPICS", "CRAWL_INTERVAL", "UPLOAD_BATCH_SIZE", "REPOSITORIES_TABLE",
        "CRAWLER_USER_AGENT", "GITHUB_API_BASE_URL", "LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("EXPORT_DIR", str(tmp_path / "exports"))
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ------------------------------
# Fake HTTP layer
# ------------------------------
class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None,
                 headers: Optional[dict[str, str]] = None, text: Optional[str] = None):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.text = text if text is not None else json.dumps(payload)

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        return json.loads(self.text)


class FakeSession:
    """Replays queued responses (or exceptions) and records every call."""

    def __init__(self, responses: list[Any]):
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": dict(params or {}), "timeout": timeout})
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def no_sleep(monkeypatch):
    """Collect time.sleep calls instead of sleeping."""
    slept: list[float] = []
    monkeypatch.setattr("time.sleep", lambda seconds: slept.append(seconds))
    return slept


def repo_payload(full_name: str = "testuser/test-repo", **overrides: Any) -> dict[str, Any]:
    """A GitHub search item shaped like the real API response."""
    owner, name = full_name.split("/")
    payload = {
        "name": name,
        "full_name": full_name,
        "description": f"<p>{name} description</p>",
        "html_url": f"https://github.com/{full_name}",
        "homepage": "https://example.com",
        "stargazers_count": 100,
        "forks_count": 20,
        "watchers_count": 50,
        "open_issues_count": 5,
        "language": "Python",
        "topics": ["test", "demo"],
        "owner": {"login": owner},
        "created_at": "2026-10-01T00:00:00Z",
        "updated_at": "2026-10-16T00:00:00Z",
        "license": {"key": "mit", "name": "MIT License", "spdx_id": "MIT"},
        "default_branch": "main",
    }
    payload.update(overrides)
    return payload


# ------------------------------
# Markers for pytest
# ------------------------------
def pytest_configure(config):
    config.addinivalue_line("markers", "cleaner: URL/HTML/record normalization")
    config.addinivalue_line("markers", "crawler: GitHub API crawler and retry handling")
    config.addinivalue_line("markers", "exporter: CSV export/import")
    config.addinivalue_line("markers", "uploader: batch upload and DB operations")
    config.addinivalue_line("markers", "pipeline: end-to-end pipeline and CLI")
    config.addinivalue_line("markers", "config: settings and logging")
