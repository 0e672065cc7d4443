import pytest

import crawler.throttle as throttle_mod
from core.config import get_settings
from crawler.engine import BaseCrawler
from crawler.throttle import DomainThrottle, ThrottledSession, get_session


class FakeClock:
    def __init__(self, start=100.0):
        self.now = start
        self.slept = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.slept.append(round(seconds, 2))
        self.now += seconds


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr(throttle_mod.time, "monotonic", fake.monotonic)
    monkeypatch.setattr(throttle_mod.time, "sleep", fake.sleep)
    return fake


# ------------------------------
# DomainThrottle
# ------------------------------
@pytest.mark.crawler
def test_minimum_interval_per_domain(clock):
    throttle = DomainThrottle(rules={"api.github.com": (1.0, 100)})
    throttle.wait("https://api.github.com/search/repositories")
    throttle.wait("https://api.github.com/users/octo/repos")
    throttle.wait("https://example.com/")
    assert clock.slept == [1.0]


@pytest.mark.crawler
def test_rpm_window(clock):
    throttle = DomainThrottle(rules={"api.github.com": (0.0, 2)})
    for _ in range(3):
        throttle.wait("https://api.github.com/")
    assert len(clock.slept) == 1
    assert clock.slept[0] == pytest.approx(60.1)
    assert throttle.stats()["api.github.com"]["requests_last_60s"] == 1


@pytest.mark.crawler
def test_subdomain_rule_matching():
    throttle = DomainThrottle(default_interval=9.0, default_max_rpm=9, rules={"github.com": (0.5, 10)})
    assert throttle._get_rules("uploads.github.com") == (0.5, 10)
    assert throttle._get_rules("example.org") == (9.0, 9)


# ------------------------------
# Session
# ------------------------------
@pytest.mark.crawler
def test_session_headers():
    session = get_session(user_agent="Probe/0.1", token="ghp_abc")
    assert isinstance(session, ThrottledSession)
    assert session.headers["User-Agent"] == "Probe/0.1"
    assert session.headers["Accept"] == "application/vnd.github+json"
    assert session.headers["Authorization"] == "Bearer ghp_abc"


@pytest.mark.crawler
def test_anonymous_session_has_no_authorization():
    assert "Authorization" not in get_session().headers


@pytest.mark.crawler
def test_crawler_builds_session_from_settings(monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_env")
    monkeypatch.setenv("CRAWLER_REQUEST_TIMEOUT", "12")
    get_settings.cache_clear()

    crawler = BaseCrawler()
    assert crawler.timeout == 12
    assert crawler._session.headers["Authorization"] == "Bearer ghp_env"
    assert crawler._session.headers["User-Agent"] == "TrendingCrawler/1.0"
