import logging

import pytest
import structlog

from core.config import get_settings, validate_settings
from core.logger import Phase, bind_log_context, clear_log_context, configure_logging, log_context


# ------------------------------
# Settings
# ------------------------------
@pytest.mark.config
def test_defaults():
    s = get_settings()
    assert s.GITHUB_API_BASE_URL == "https://api.github.com"
    assert s.REQUEST_TIMEOUT == 30
    assert s.MAX_RETRIES == 3
    assert s.MAX_REQUESTS == 4500
    assert s.UPLOAD_BATCH_SIZE == 1000
    assert s.CRAWL_INTERVAL == 7200
    assert "python" in s.CRAWL_TOPICS and len(s.CRAWL_TOPICS) == 10
    assert not s.has_github_token
    assert not s.is_production


@pytest.mark.config
def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
    monkeypatch.setenv("CRAWLER_MAX_RETRIES", "5")
    monkeypatch.setenv("CRAWL_TOPICS", " rust , go,, zig ")
    monkeypatch.setenv("GITHUB_API_BASE_URL", "https://ghe.example.com/api/v3/")
    monkeypatch.setenv("ENVIRONMENT", "production")
    get_settings.cache_clear()

    s = get_settings()
    assert s.has_github_token
    assert s.MAX_RETRIES == 5
    assert s.CRAWL_TOPICS == ["rust", "go", "zig"]
    assert s.GITHUB_API_BASE_URL == "https://ghe.example.com/api/v3"
    assert s.is_production


@pytest.mark.config
def test_non_integer_env_raises(monkeypatch):
    monkeypatch.setenv("UPLOAD_BATCH_SIZE", "lots")
    get_settings.cache_clear()
    with pytest.raises(ValueError, match="UPLOAD_BATCH_SIZE"):
        get_settings()


@pytest.mark.config
def test_database_url_falls_back_to_supabase(monkeypatch):
    monkeypatch.setenv("SUPABASE_DB_URL", "postgresql://fallback/db")
    get_settings.cache_clear()
    assert get_settings().DATABASE_URL == "postgresql://fallback/db"

    monkeypatch.setenv("DATABASE_URL", "postgresql://primary/db")
    get_settings.cache_clear()
    assert get_settings().DATABASE_URL == "postgresql://primary/db"


@pytest.mark.config
def test_validate_settings(monkeypatch):
    validate_settings()
    with pytest.raises(ValueError, match="DATABASE_URL"):
        validate_settings(require_database=True)

    monkeypatch.setenv("DATABASE_URL", "postgresql://primary/db")
    get_settings.cache_clear()
    validate_settings(require_database=True)


@pytest.mark.config
def test_validate_settings_rejects_zero_batch(monkeypatch):
    monkeypatch.setenv("UPLOAD_BATCH_SIZE", "0")
    get_settings.cache_clear()
    with pytest.raises(ValueError, match="UPLOAD_BATCH_SIZE"):
        validate_settings()


# ------------------------------
# Logging
# ------------------------------
@pytest.fixture
def clean_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.mark.config
def test_log_context_nests_and_restores(clean_context):
    bind_log_context(run_id="r1")
    with log_context(phase=Phase.CRAWLING, topic="rust", batch=None):
        ctx = structlog.contextvars.get_contextvars()
        assert ctx == {"run_id": "r1", "phase": "Crawling", "topic": "rust"}
        with log_context(phase=Phase.UPLOAD):
            assert structlog.contextvars.get_contextvars()["phase"] == "Upload"
        assert structlog.contextvars.get_contextvars()["phase"] == "Crawling"
    assert structlog.contextvars.get_contextvars() == {"run_id": "r1"}


@pytest.mark.config
def test_configure_logging_writes_json_file(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging(level="debug", json_logs=True)
        logging.getLogger("tests").info("hello %s", "world")
        for handler in root.handlers:
            handler.flush()
        content = (tmp_path / "logs" / "crawler.log").read_text(encoding="utf-8")
        assert '"message": "hello world"' in content
        assert '"service": "trending-crawler"' in content
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
        structlog.reset_defaults()
