"""
crawler/github.py — GitHub 트렌딩 저장소 크롤러

수집 방식:
    trending : /search/repositories  q="stars:>100 [language:X] created:>YYYY-MM-DD"
               since = daily(1일) / weekly(7일) / monthly(1개월) 이내 생성 저장소를 별 순으로
    topic    : /search/repositories  q="topic:X"
    owner    : /users/{owner}/repos

모든 응답 항목은 process_repository() 로 정규화 → 검증되며,
검증에 실패한 레코드(name / full_name / url 누락)는 로그만 남기고 버립니다.

사용 예:
    from crawler.github import GitHubCrawler

    crawler = GitHubCrawler()
    result  = crawler.crawl(language="python", since="weekly", limit=30)
    print(result.to_dict())
    # {"total": 230, "trending": 30, "topics": {"python": 20, ...}, "errors": []}
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import quote

from core.config import get_settings
from core.logger import Phase, log_context
from crawler.engine import BaseCrawler, CrawlerError, CrawlResult, ParseError, classify_error
from processor.cleaner import clean_repository_data
from processor.models import RepositoryRecord
from processor.validator import validate_repository

# GitHub API 페이지당 최대 항목 수
_MAX_PER_PAGE = 100

SINCE_CHOICES: tuple[str, ...] = ("daily", "weekly", "monthly")


def since_date(since: str, today: Optional[date] = None) -> date:
    """
    기간 문자열 → 기준 날짜.

    daily   → 하루 전
    weekly  → 7일 전
    monthly → 한 달 전 (같은 일자, 말일을 넘으면 그 달의 말일)

    Raises:
        ValueError: 지원하지 않는 기간
    """
    today = today or datetime.now(timezone.utc).date()
    if since == "daily":
        return today - timedelta(days=1)
    if since == "weekly":
        return today - timedelta(days=7)
    if since == "monthly":
        year, month = (today.year - 1, 12) if today.month == 1 else (today.year, today.month - 1)
        day = min(today.day, calendar.monthrange(year, month)[1])
        return date(year, month, day)
    raise ValueError(f"since 는 {', '.join(SINCE_CHOICES)} 중 하나여야 합니다: {since!r}")


class GitHubCrawler(BaseCrawler):
    """GitHub REST API 저장소 크롤러."""

    def __init__(self, topics: Optional[list[str]] = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.topics = list(topics) if topics is not None else list(get_settings().CRAWL_TOPICS)
        self.errors: list[dict[str, Any]] = []

    # ─────────────────────────────────────────────────────────
    # 레코드 처리
    # ─────────────────────────────────────────────────────────

    def process_repository(self, raw: Any) -> Optional[RepositoryRecord]:
        """원시 항목 1건을 정규화하고 검증합니다. 유효하지 않으면 None."""
        record = clean_repository_data(raw)
        problems = validate_repository(record)
        if problems:
            self.log.warning("record_rejected", full_name=record.full_name, problems=problems)
            return None
        return record

    def _process_items(self, items: list[Any]) -> list[RepositoryRecord]:
        with log_context(phase=Phase.CLEANING):
            records = [self.process_repository(item) for item in items]
        return [record for record in records if record is not None]

    # ─────────────────────────────────────────────────────────
    # 페이지네이션
    # ─────────────────────────────────────────────────────────

    def _paginate(
        self,
        path:      str,
        params:    dict[str, Any],
        limit:     int,
        items_key: Optional[str] = None,
    ) -> list[Any]:
        """
        limit 개를 채우거나 마지막 페이지에 닿을 때까지 페이지를 넘깁니다.

        items_key 가 있으면 응답 객체의 해당 키(검색 API 의 "items"),
        없으면 응답 자체가 배열이어야 합니다.
        """
        per_page = min(limit, _MAX_PER_PAGE)
        page     = 1
        collected: list[Any] = []

        while len(collected) < limit:
            data  = self._get_json(path, params={**params, "per_page": per_page, "page": page})
            items = data.get(items_key) if items_key and isinstance(data, dict) else data
            if not isinstance(items, list):
                raise ParseError(f"응답 구조가 예상과 다름 (list 아님): {path}")

            collected.extend(items)
            if len(items) < per_page:
                break
            page += 1

        return collected[:limit]

    def search_repositories(
        self,
        query: str,
        sort:  str = "stars",
        order: str = "desc",
        limit: int = 50,
    ) -> list[RepositoryRecord]:
        """/search/repositories 검색 결과를 정규화해 반환합니다. limit <= 0 이면 요청하지 않습니다."""
        if limit <= 0:
            return []
        items = self._paginate(
            "/search/repositories",
            {"q": query, "sort": sort, "order": order},
            limit,
            items_key="items",
        )
        records = self._process_items(items)
        self.log.info("search_ok", query=query, fetched=len(items), kept=len(records))
        return records

    # ─────────────────────────────────────────────────────────
    # 공개 수집 API
    # ─────────────────────────────────────────────────────────

    def crawl_trending_repositories(
        self,
        language: str = "",
        since:    str = "daily",
        limit:    int = 50,
    ) -> list[RepositoryRecord]:
        """
        최근 생성된 인기 저장소를 별 순으로 수집합니다.

        Args:
            language: 언어 필터 (빈 문자열이면 전체)
            since:    "daily" / "weekly" / "monthly"
            limit:    최대 건수

        Raises:
            ValueError: since 가 지원하지 않는 값
        """
        cutoff = since_date(since)
        query  = "stars:>100"
        if language:
            query += f" language:{language}"
        query += f" created:>{cutoff.isoformat()}"

        with log_context(phase=Phase.CRAWLING, language=language or None, since=since):
            return self.search_repositories(query, sort="stars", order="desc", limit=limit)

    def crawl_repositories_by_topic(
        self,
        topic: str,
        limit: int = 50,
        sort:  str = "stars",
        order: str = "desc",
    ) -> list[RepositoryRecord]:
        """토픽 태그가 붙은 저장소를 수집합니다."""
        if not topic:
            raise ValueError("topic 이 비어 있습니다.")
        with log_context(phase=Phase.CRAWLING, topic=topic):
            return self.search_repositories(f"topic:{topic}", sort=sort, order=order, limit=limit)

    def crawl_repositories_by_owner(
        self,
        owner:     str,
        limit:     int = 50,
        sort:      str = "updated",
        direction: str = "desc",
    ) -> list[RepositoryRecord]:
        """사용자/조직이 소유한 공개 저장소를 수집합니다."""
        if not owner:
            raise ValueError("owner 가 비어 있습니다.")
        if limit <= 0:
            return []
        with log_context(phase=Phase.CRAWLING, owner=owner):
            items = self._paginate(
                f"/users/{quote(owner, safe='')}/repos",
                {"sort": sort, "direction": direction},
                limit,
            )
            records = self._process_items(items)
            self.log.info("owner_repos_ok", fetched=len(items), kept=len(records))
            return records

    def crawl_all_topics(
        self,
        topics: Optional[list[str]] = None,
        limit:  int = 20,
    ) -> dict[str, list[RepositoryRecord]]:
        """
        설정된 모든 토픽을 순서대로 수집합니다.

        한 토픽이 실패하면 해당 토픽은 [] 로 두고 self.errors 에 기록한 뒤 계속 진행합니다.
        """
        results: dict[str, list[RepositoryRecord]] = {}
        for topic in topics if topics is not None else self.topics:
            try:
                results[topic] = self.crawl_repositories_by_topic(topic, limit=limit)
            except CrawlerError as exc:
                error_type = classify_error(exc)
                self.log.error("topic_failed", topic=topic, error_type=error_type.value, error=str(exc))
                self.errors.append({
                    "topic":      topic,
                    "error_type": error_type.value,
                    "error":      str(exc),
                })
                results[topic] = []
        return results

    def crawl(
        self,
        language:       str  = "",
        since:          str  = "daily",
        limit:          int  = 50,
        include_topics: bool = True,
        topic_limit:    int  = 20,
    ) -> CrawlResult:
        """trending 1회 + (선택) 전체 토픽 수집. trending 실패는 호출자에게 전파됩니다."""
        self.errors = []
        trending = self.crawl_trending_repositories(language=language, since=since, limit=limit)
        topics   = self.crawl_all_topics(limit=topic_limit) if include_topics else {}

        result = CrawlResult(trending=trending, topics=topics, errors=list(self.errors))
        self.log.info("crawl_done", requests=self.request_count, **result.to_dict())
        return result
