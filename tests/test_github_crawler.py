from datetime import date

import pytest
import requests

from conftest import FakeResponse, FakeSession, repo_payload
from crawler.engine import (
    CrawlerError,
    ErrorType,
    ForbiddenError,
    ParseError,
    RateLimitError,
    RequestBudgetExceeded,
    classify_error,
)
from crawler.github import GitHubCrawler, since_date


def make_crawler(responses, **kwargs):
    session = FakeSession(responses)
    kwargs.setdefault("max_retries", 2)
    kwargs.setdefault("base_wait", 0)
    kwargs.setdefault("topics", ["python", "rust"])
    return GitHubCrawler(session=session, base_url="https://api.github.com", **kwargs), session


def search_page(*full_names):
    return FakeResponse(200, {"total_count": len(full_names), "items": [repo_payload(n) for n in full_names]})


# ------------------------------
# since → cutoff date
# ------------------------------
@pytest.mark.crawler
def test_since_date_windows():
    today = date(2026, 3, 31)
    assert since_date("daily", today) == date(2026, 3, 30)
    assert since_date("weekly", today) == date(2026, 3, 24)
    assert since_date("monthly", today) == date(2026, 2, 28)
    assert since_date("monthly", date(2026, 1, 15)) == date(2025, 12, 15)


@pytest.mark.crawler
def test_invalid_since_raises_before_any_request(no_sleep):
    crawler, session = make_crawler([])
    with pytest.raises(ValueError):
        crawler.crawl_trending_repositories(since="yearly")
    assert session.calls == []


# ------------------------------
# Search queries
# ------------------------------
@pytest.mark.crawler
def test_trending_query_and_params(no_sleep):
    crawler, session = make_crawler([search_page("a/one", "b/two")])
    records = crawler.crawl_trending_repositories(language="python", since="weekly", limit=30)

    assert [r.full_name for r in records] == ["a/one", "b/two"]
    call = session.calls[0]
    assert call["url"] == "https://api.github.com/search/repositories"
    cutoff = since_date("weekly").isoformat()
    assert call["params"]["q"] == f"stars:>100 language:python created:>{cutoff}"
    assert call["params"]["sort"] == "stars"
    assert call["params"]["order"] == "desc"
    assert call["params"]["per_page"] == 30


@pytest.mark.crawler
def test_trending_without_language_omits_filter(no_sleep):
    crawler, session = make_crawler([search_page()])
    crawler.crawl_trending_repositories()
    assert "language:" not in session.calls[0]["params"]["q"]


@pytest.mark.crawler
def test_non_positive_limit_makes_no_request(no_sleep):
    crawler, session = make_crawler([])
    assert crawler.crawl_trending_repositories(limit=0) == []
    assert crawler.crawl_repositories_by_topic("python", limit=-1) == []
    assert session.calls == []


@pytest.mark.crawler
def test_pagination_caps_per_page_and_trims_to_limit(no_sleep):
    first = FakeResponse(200, {"items": [repo_payload(f"o/r{i}") for i in range(100)]})
    second = FakeResponse(200, {"items": [repo_payload(f"o/s{i}") for i in range(60)]})
    crawler, session = make_crawler([first, second])

    records = crawler.crawl_repositories_by_topic("python", limit=150)

    assert len(records) == 150
    assert [c["params"]["page"] for c in session.calls] == [1, 2]
    assert all(c["params"]["per_page"] == 100 for c in session.calls)
    assert session.calls[0]["params"]["q"] == "topic:python"


@pytest.mark.crawler
def test_invalid_items_are_dropped(no_sleep):
    items = [repo_payload("o/good"), repo_payload("o/bad", html_url=None), {"garbage": True}]
    crawler, _ = make_crawler([FakeResponse(200, {"items": items})])
    records = crawler.crawl_repositories_by_topic("go")
    assert [r.full_name for r in records] == ["o/good"]


@pytest.mark.crawler
def test_records_are_normalized(no_sleep):
    crawler, _ = make_crawler([search_page("testuser/test-repo")])
    record = crawler.crawl_repositories_by_topic("test")[0]
    assert record.description == "test-repo description"
    assert record.owner == "testuser"
    assert record.license["spdx_id"] == "MIT"


@pytest.mark.crawler
def test_owner_repos_endpoint(no_sleep):
    crawler, session = make_crawler([FakeResponse(200, [repo_payload("octo/cat")])])
    records = crawler.crawl_repositories_by_owner("octo", limit=10)
    assert [r.full_name for r in records] == ["octo/cat"]
    call = session.calls[0]
    assert call["url"] == "https://api.github.com/users/octo/repos"
    assert call["params"]["sort"] == "updated"
    assert call["params"]["direction"] == "desc"


# ------------------------------
# HTTP error handling
# ------------------------------
@pytest.mark.crawler
def test_429_honours_retry_after_then_succeeds(no_sleep):
    crawler, session = make_crawler([
        FakeResponse(429, {}, headers={"Retry-After": "7"}),
        search_page("o/r"),
    ])
    records = crawler.crawl_repositories_by_topic("python")
    assert len(records) == 1
    assert len(session.calls) == 2
    assert 7 in no_sleep


@pytest.mark.crawler
def test_429_exhausts_retries(no_sleep):
    crawler, session = make_crawler([FakeResponse(429, {}, headers={"Retry-After": "1"})] * 3)
    with pytest.raises(RateLimitError):
        crawler.crawl_repositories_by_topic("python")
    assert len(session.calls) == 3


@pytest.mark.crawler
def test_403_with_exhausted_quota_is_rate_limit(no_sleep):
    headers = {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1760000000"}
    crawler, session = make_crawler([FakeResponse(403, {}, headers=headers)])
    with pytest.raises(RateLimitError) as exc_info:
        crawler.crawl_repositories_by_topic("python")
    assert exc_info.value.reset_at == 1760000000
    assert len(session.calls) == 1


@pytest.mark.crawler
def test_plain_403_is_forbidden_without_retry(no_sleep):
    crawler, session = make_crawler([FakeResponse(403, {"message": "nope"})])
    with pytest.raises(ForbiddenError):
        crawler.crawl_repositories_by_topic("python")
    assert len(session.calls) == 1


@pytest.mark.crawler
def test_5xx_is_retried_until_limit(no_sleep):
    crawler, session = make_crawler([FakeResponse(502, {})] * 3)
    with pytest.raises(CrawlerError) as exc_info:
        crawler.crawl_repositories_by_topic("python")
    assert exc_info.value.error_type is ErrorType.HTTP
    assert len(session.calls) == 3


@pytest.mark.crawler
def test_connection_error_is_retried(no_sleep):
    crawler, session = make_crawler([
        requests.exceptions.ConnectionError("reset"),
        search_page("o/r"),
    ])
    assert len(crawler.crawl_repositories_by_topic("python")) == 1
    assert len(session.calls) == 2


@pytest.mark.crawler
def test_non_json_body_is_parse_error(no_sleep):
    crawler, _ = make_crawler([FakeResponse(200, text="<html>oops</html>")])
    with pytest.raises(ParseError):
        crawler.crawl_repositories_by_topic("python")


@pytest.mark.crawler
def test_request_budget_is_enforced(no_sleep):
    first = FakeResponse(200, {"items": [repo_payload(f"o/r{i}") for i in range(100)]})
    crawler, session = make_crawler([first], max_requests=1)
    with pytest.raises(RequestBudgetExceeded):
        crawler.crawl_repositories_by_topic("python", limit=200)
    assert len(session.calls) == 1
    assert crawler.remaining_requests == 0


# ------------------------------
# Topic sweep / full crawl
# ------------------------------
@pytest.mark.crawler
def test_failing_topic_maps_to_empty_list(no_sleep):
    crawler, _ = make_crawler([
        search_page("o/py"),
        FakeResponse(422, {"message": "Validation Failed"}),
    ])
    results = crawler.crawl_all_topics(limit=20)
    assert [r.full_name for r in results["python"]] == ["o/py"]
    assert results["rust"] == []
    assert crawler.errors[0]["topic"] == "rust"
    assert crawler.errors[0]["error_type"] == ErrorType.HTTP.value


@pytest.mark.crawler
def test_crawl_combines_trending_and_topics(no_sleep):
    crawler, session = make_crawler([
        search_page("t/one", "t/two"),
        search_page("p/one"),
        search_page("r/one", "t/one"),
    ])
    result = crawler.crawl(limit=10, topic_limit=5)
    assert result.total == 5
    assert set(result.topics) == {"python", "rust"}
    assert result.errors == []
    assert [r.full_name for r in result.all_repositories()] == ["t/one", "t/two", "p/one", "r/one", "t/one"]
    assert session.calls[1]["params"]["per_page"] == 5


@pytest.mark.crawler
def test_crawl_without_topics(no_sleep):
    crawler, session = make_crawler([search_page("t/one")])
    result = crawler.crawl(include_topics=False)
    assert result.topics == {}
    assert len(session.calls) == 1


# ------------------------------
# Error classification
# ------------------------------
@pytest.mark.crawler
@pytest.mark.parametrize("exc, expected", [
    (requests.exceptions.Timeout(), ErrorType.NETWORK),
    (requests.exceptions.ConnectionError(), ErrorType.NETWORK),
    (RateLimitError("x"), ErrorType.RATE_LIMIT),
    (ParseError("x"), ErrorType.PARSE),
    (KeyError("x"), ErrorType.UNKNOWN),
])
def test_classify_error(exc, expected):
    assert classify_error(exc) is expected
