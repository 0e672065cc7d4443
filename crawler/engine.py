"""
crawler/engine.py — GitHub REST API 수집 엔진 (Backoff & 요청 예산)

설계 원칙:
    Throttling:
        ThrottledSession (crawler/throttle.py) 이 도메인별 최소 간격 + RPM 을 보장합니다.
        여기서는 응답 코드에 따른 재시도와 실행 1회당 요청 예산(MAX_REQUESTS)만 다룹니다.

    에러 핸들링:
        HTTP 403 + X-RateLimit-Remaining: 0 → RateLimitError (한도 소진, 즉시 중단)
        HTTP 403 (그 외)                    → ForbiddenError (토큰 권한 부족 등, 재시도 없음)
        HTTP 404                            → NotFoundError (재시도 없음)
        HTTP 429                            → Retry-After 준수 후 재시도, 한계 초과 시 RateLimitError
        HTTP 4xx (그 외)                    → CrawlerError (요청 자체가 잘못됨, 재시도 없음)
        HTTP 5xx / 네트워크 오류            → 지수 백오프 재시도, 한계 초과 시 CrawlerError
        JSON 파싱 실패                      → ParseError
        요청 예산 소진                      → RequestBudgetExceeded

공개 클래스:
    BaseCrawler   — 공통 세션·Backoff·예산 로직
    CrawlResult   — crawl() 반환 컨테이너

공개 예외:
    CrawlerError          — 기본 크롤러 예외 (error_type 으로 분류)
    ForbiddenError        — HTTP 403
    RateLimitError        — HTTP 429 / 한도 소진
    NotFoundError         — HTTP 404
    ParseError            — 응답 본문 파싱 실패
    RequestBudgetExceeded — MAX_REQUESTS 초과
"""

from __future__ import annotations

import enum
import json
import random
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import psycopg2
import requests
import structlog
from pydantic import ValidationError

from core.config import get_settings
from crawler.throttle import get_session
from processor.models import RepositoryRecord


# ─────────────────────────────────────────────────────────────
# 에러 분류
# ─────────────────────────────────────────────────────────────

class ErrorType(str, enum.Enum):
    """오류 분류 — crawler_logs.details.error_type 에 기록됩니다."""
    NETWORK    = "NETWORK_ERROR"
    HTTP       = "HTTP_ERROR"
    PARSE      = "PARSE_ERROR"
    VALIDATION = "VALIDATION_ERROR"
    RATE_LIMIT = "RATE_LIMIT_ERROR"
    DATABASE   = "DATABASE_ERROR"
    UNKNOWN    = "UNKNOWN_ERROR"


# ─────────────────────────────────────────────────────────────
# 예외 계층
# ─────────────────────────────────────────────────────────────

class CrawlerError(Exception):
    """기본 크롤러 예외 — HTTP 오류·네트워크 오류·재시도 한계 초과"""

    default_type: ErrorType = ErrorType.UNKNOWN

    def __init__(
        self,
        message:    str,
        error_type: Optional[ErrorType] = None,
        status:     Optional[int]       = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type or self.default_type
        self.status     = status


class ForbiddenError(CrawlerError):
    """
    HTTP 403 Forbidden (한도 소진이 아닌 경우).
    토큰 권한 부족 또는 차단. 재시도해도 결과가 같으므로 즉시 중단합니다.
    """
    default_type = ErrorType.HTTP


class RateLimitError(CrawlerError):
    """
    HTTP 429, 또는 X-RateLimit-Remaining 이 0 인 403.
    reset_at 에 한도 초기화 시각(epoch 초)이 있으면 담아 둡니다.
    """
    default_type = ErrorType.RATE_LIMIT

    def __init__(self, message: str, reset_at: Optional[int] = None, status: Optional[int] = None) -> None:
        super().__init__(message, status=status)
        self.reset_at = reset_at


class NotFoundError(CrawlerError):
    """HTTP 404 — 존재하지 않는 사용자/조직 등."""
    default_type = ErrorType.HTTP


class ParseError(CrawlerError):
    """응답 본문이 JSON 이 아니거나 기대한 구조가 아님."""
    default_type = ErrorType.PARSE


class RequestBudgetExceeded(CrawlerError):
    """실행 1회당 요청 예산(MAX_REQUESTS) 소진."""
    default_type = ErrorType.RATE_LIMIT


def classify_error(exc: BaseException) -> ErrorType:
    """임의의 예외를 ErrorType 으로 분류합니다."""
    if isinstance(exc, CrawlerError):
        return exc.error_type
    if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return ErrorType.NETWORK
    if isinstance(exc, requests.exceptions.HTTPError):
        return ErrorType.HTTP
    if isinstance(exc, ValidationError):
        return ErrorType.VALIDATION
    if isinstance(exc, json.JSONDecodeError):
        return ErrorType.PARSE
    if isinstance(exc, psycopg2.Error):
        return ErrorType.DATABASE
    return ErrorType.UNKNOWN


# ─────────────────────────────────────────────────────────────
# 결과 컨테이너
# ─────────────────────────────────────────────────────────────

@dataclass
class CrawlResult:
    """GitHubCrawler.crawl() 반환 타입."""

    trending: list[RepositoryRecord]            = field(default_factory=list)
    topics:   dict[str, list[RepositoryRecord]] = field(default_factory=dict)
    errors:   list[dict[str, Any]]              = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.trending) + sum(len(records) for records in self.topics.values())

    def all_repositories(self) -> list[RepositoryRecord]:
        """trending → 토픽 순서로 이어 붙인 전체 레코드 (중복 포함)."""
        records = list(self.trending)
        for topic_records in self.topics.values():
            records.extend(topic_records)
        return records

    def to_dict(self) -> dict[str, Any]:
        return {
            "total":    self.total,
            "trending": len(self.trending),
            "topics":   {topic: len(records) for topic, records in self.topics.items()},
            "errors":   self.errors,
        }


# ─────────────────────────────────────────────────────────────
# BaseCrawler
# ─────────────────────────────────────────────────────────────

class BaseCrawler:
    """
    GitHub REST API 크롤러 공통 기반 클래스.

    에러 처리:
        403 / 404 / 기타 4xx → 즉시 raise (재시도 없음)
        429 → Retry-After 준수 후 재시도 (최대 max_retries 회)
        5xx / 네트워크 → 지수 백오프 재시도
    """

    def __init__(
        self,
        session:      Optional[requests.Session] = None,
        base_url:     Optional[str]   = None,
        max_retries:  Optional[int]   = None,
        timeout:      Optional[int]   = None,
        max_requests: Optional[int]   = None,
        base_wait:    Optional[float] = None,
    ) -> None:
        """
        Args:
            session:      주입할 requests.Session (기본: 공유 ThrottledSession)
            base_url:     API 루트 (기본: GITHUB_API_BASE_URL)
            max_retries:  429/5xx 재시도 최대 횟수 (기본: CRAWLER_MAX_RETRIES)
            timeout:      HTTP 요청 타임아웃 초 (기본: CRAWLER_REQUEST_TIMEOUT)
            max_requests: 이 인스턴스가 보낼 수 있는 요청 수 상한 (기본: MAX_REQUESTS)
            base_wait:    지수 백오프 기본 대기 초 (기본: BASE_WAIT_TIME)
        """
        s = get_settings()
        self.base_url     = (base_url or s.GITHUB_API_BASE_URL).rstrip("/")
        self.max_retries  = s.MAX_RETRIES     if max_retries  is None else max_retries
        self.timeout      = s.REQUEST_TIMEOUT if timeout      is None else timeout
        self.max_requests = s.MAX_REQUESTS    if max_requests is None else max_requests
        self.base_wait    = s.BASE_WAIT_TIME  if base_wait    is None else base_wait

        self.request_count = 0

        self._session: requests.Session = session or get_session(
            user_agent=s.CRAWLER_USER_AGENT,
            token=s.GITHUB_TOKEN,
            timeout=self.timeout,
        )

        self.log = structlog.get_logger(self.__class__.__name__)

    # ─────────────────────────────────────────────────────────
    # 요청 예산 / Backoff
    # ─────────────────────────────────────────────────────────

    @property
    def remaining_requests(self) -> int:
        return max(0, self.max_requests - self.request_count)

    def _consume_request(self, url: str) -> None:
        if self.request_count >= self.max_requests:
            self.log.error("request_budget_exceeded", url=url, max_requests=self.max_requests)
            raise RequestBudgetExceeded(
                f"요청 예산({self.max_requests}회) 소진: {url}"
            )
        self.request_count += 1

    def _backoff(self, attempt: int) -> None:
        """
        지수 백오프 (Exponential Backoff with Jitter).

        대기 시간 = base_wait × 2^attempt + uniform(0, 1)
        """
        wait = self.base_wait * (2 ** attempt) + random.uniform(0.0, 1.0)
        self.log.warning("backoff", attempt=attempt, wait_sec=round(wait, 2))
        time.sleep(wait)

    @staticmethod
    def _retry_after(resp: requests.Response, default: int = 30) -> int:
        value = resp.headers.get("Retry-After", "")
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return default

    @staticmethod
    def _rate_limit_reset(resp: requests.Response) -> Optional[int]:
        value = resp.headers.get("X-RateLimit-Reset")
        try:
            return int(value) if value is not None else None
        except ValueError:
            return None

    # ─────────────────────────────────────────────────────────
    # HTTP 요청 (Fetch + 에러 핸들링)
    # ─────────────────────────────────────────────────────────

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _get_json(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        """
        GET + JSON 디코딩, 에러 감지 및 지수 백오프.

        Returns:
            디코딩된 JSON 본문

        Raises:
            RateLimitError:        429 가 max_retries 회 이상 지속, 또는 한도 소진 403
            ForbiddenError:        HTTP 403
            NotFoundError:         HTTP 404
            ParseError:            JSON 디코딩 실패
            RequestBudgetExceeded: 요청 예산 소진
            CrawlerError:          그 외 HTTP 오류 또는 재시도 한계 초과
        """
        url = self._url(path)
        last_exc: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):

            if attempt > 0:
                self._backoff(attempt - 1)

            self._consume_request(url)

            try:
                self.log.info("fetch", url=url, params=params, attempt=attempt)
                resp = self._session.get(url, params=params, timeout=self.timeout)

            except requests.exceptions.ConnectionError as exc:
                self.log.warning("connection_error", url=url, attempt=attempt, error=str(exc))
                last_exc = exc
                continue

            except requests.exceptions.Timeout as exc:
                self.log.warning("timeout", url=url, attempt=attempt, timeout=self.timeout)
                last_exc = exc
                continue

            status = resp.status_code

            # 403: 한도 소진이면 RateLimitError, 아니면 권한 문제
            if status == 403:
                if resp.headers.get("X-RateLimit-Remaining") == "0":
                    reset_at = self._rate_limit_reset(resp)
                    self.log.error("rate_limit_exhausted", url=url, reset_at=reset_at)
                    raise RateLimitError(
                        f"GitHub API 한도 소진 (reset={reset_at}): {url}",
                        reset_at=reset_at,
                        status=403,
                    )
                self.log.error("forbidden", url=url, status=403)
                raise ForbiddenError(f"HTTP 403 Forbidden (토큰 권한 확인 필요): {url}", status=403)

            # 429: Retry-After 준수 후 재시도
            if status == 429:
                if attempt >= self.max_retries:
                    raise RateLimitError(
                        f"HTTP 429 Too Many Requests, 재시도 한계({self.max_retries}회) 초과: {url}",
                        reset_at=self._rate_limit_reset(resp),
                        status=429,
                    )
                retry_after = self._retry_after(resp)
                self.log.warning("rate_limited", url=url, attempt=attempt, retry_after=retry_after)
                time.sleep(retry_after)
                continue

            if status == 404:
                raise NotFoundError(f"HTTP 404 Not Found: {url}", status=404)

            if 400 <= status < 500:
                raise CrawlerError(f"HTTP {status}: {url}", ErrorType.HTTP, status=status)

            # 5xx: 재시도
            if not resp.ok:
                self.log.warning("http_error", url=url, status=status, attempt=attempt)
                last_exc = requests.exceptions.HTTPError(f"HTTP {status}", response=resp)
                continue

            try:
                payload = resp.json()
            except ValueError as exc:
                raise ParseError(f"JSON 파싱 실패: {url}") from exc

            self.log.info(
                "fetch_ok",
                url=url,
                status=status,
                rate_limit_remaining=resp.headers.get("X-RateLimit-Remaining"),
            )
            return payload

        error_type = classify_error(last_exc) if last_exc is not None else ErrorType.UNKNOWN
        raise CrawlerError(
            f"최대 재시도({self.max_retries}회) 초과: {url}", error_type
        ) from last_exc
