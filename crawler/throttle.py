"""
crawler/throttle.py — HTTP 요청 스로틀링

도메인별 요청 속도를 제한하여 GitHub API 2차 한도(secondary rate limit)를 피합니다.

지원 방식:
  1. 도메인별 최소 간격 (min_interval)
  2. 도메인별 최대 RPM 제한 (max_rpm, 60초 슬라이딩 윈도우)
  3. 5xx 응답 시 urllib3 Retry 자동 재시도
     (429 / 403 한도 응답은 crawler.engine.BaseCrawler 가 Retry-After 기준으로 처리)

사용법:
    session = get_session(token=settings.GITHUB_TOKEN)
    resp = session.get("https://api.github.com/search/repositories", params={...})
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from typing import Optional
from urllib.parse import urlparse

import requests
import structlog
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = structlog.get_logger(__name__)

# ─────────────────────────────────────────────────────────────
# 도메인별 기본 설정
# ─────────────────────────────────────────────────────────────

# 도메인 → (최소 간격 초, 최대 RPM)
# 검색 API 는 인증 시 분당 30회가 한도
_DOMAIN_RULES: dict[str, tuple[float, int]] = {
    "api.github.com": (1.0, 30),
    "github.com":     (1.0, 30),
}

_DEFAULT_INTERVAL = 1.0   # 초
_DEFAULT_MAX_RPM  = 30

# HTTP 재시도 설정
_RETRY_STATUS_CODES = (500, 502, 503, 504)
_MAX_RETRIES        = 2
_BACKOFF_FACTOR     = 1.0

_DEFAULT_USER_AGENT = "TrendingCrawler/1.0"


# ─────────────────────────────────────────────────────────────
# DomainThrottle
# ─────────────────────────────────────────────────────────────

class DomainThrottle:
    """
    도메인별 요청 속도 제한기.
    Thread-safe: 여러 스레드에서 동시에 사용 가능.
    """

    def __init__(
        self,
        default_interval: float = _DEFAULT_INTERVAL,
        default_max_rpm:  int   = _DEFAULT_MAX_RPM,
        rules: Optional[dict[str, tuple[float, int]]] = None,
    ) -> None:
        self._default_interval = default_interval
        self._default_max_rpm  = default_max_rpm
        self._rules            = rules if rules is not None else _DOMAIN_RULES

        self._last_request: dict[str, float]          = defaultdict(float)
        self._timestamps:   dict[str, deque[float]]   = defaultdict(deque)
        self._locks:        dict[str, threading.Lock] = {}
        self._global_lock   = threading.Lock()

    def _get_lock(self, domain: str) -> threading.Lock:
        with self._global_lock:
            if domain not in self._locks:
                self._locks[domain] = threading.Lock()
            return self._locks[domain]

    def _get_rules(self, domain: str) -> tuple[float, int]:
        """도메인에 해당하는 (간격, RPM). 정확히 일치하는 규칙 우선, 다음으로 서브도메인 매칭."""
        if domain in self._rules:
            return self._rules[domain]
        for key, rule in self._rules.items():
            if domain.endswith(f".{key}"):
                return rule
        return self._default_interval, self._default_max_rpm

    @staticmethod
    def _extract_domain(url: str) -> str:
        return urlparse(url).netloc.lower()

    def wait(self, url: str) -> None:
        """URL 의 도메인에 대해 속도 제한을 적용합니다. 필요 시 블로킹 대기합니다."""
        domain = self._extract_domain(url)
        lock   = self._get_lock(domain)
        min_interval, max_rpm = self._get_rules(domain)

        with lock:
            now = time.monotonic()

            # ── 간격 제한 ────────────────────────────────────
            last = self._last_request.get(domain)
            if last is not None and now - last < min_interval:
                wait = min_interval - (now - last)
                logger.debug("throttle_interval", domain=domain, wait_sec=round(wait, 2))
                time.sleep(wait)
                now = time.monotonic()

            # ── RPM 제한 (슬라이딩 윈도우) ───────────────────
            ts = self._timestamps[domain]
            while ts and now - ts[0] >= 60.0:
                ts.popleft()

            if len(ts) >= max_rpm:
                wait = 60.0 - (now - ts[0]) + 0.1
                logger.debug(
                    "throttle_rpm",
                    domain=domain,
                    rpm=max_rpm,
                    wait_sec=round(wait, 2),
                )
                time.sleep(max(wait, 0.0))
                now = time.monotonic()
                while ts and now - ts[0] >= 60.0:
                    ts.popleft()

            ts.append(now)
            self._last_request[domain] = now

    @contextmanager
    def acquire(self, url: str):
        """
        Usage:
            with throttle.acquire(url):
                resp = requests.get(url)
        """
        self.wait(url)
        yield

    def make_session(
        self,
        user_agent: str = _DEFAULT_USER_AGENT,
        token:      str = "",
        timeout:    int = 30,
    ) -> "ThrottledSession":
        return ThrottledSession(throttle=self, user_agent=user_agent, token=token, timeout=timeout)

    def stats(self) -> dict[str, dict]:
        """현재 도메인별 요청 통계."""
        now = time.monotonic()
        result = {}
        for domain, ts in self._timestamps.items():
            recent = [t for t in ts if now - t < 60.0]
            result[domain] = {
                "requests_last_60s": len(recent),
                "last_request_ago":  round(now - self._last_request[domain], 1),
            }
        return result


# ─────────────────────────────────────────────────────────────
# ThrottledSession
# ─────────────────────────────────────────────────────────────

class ThrottledSession(requests.Session):
    """
    DomainThrottle 가 통합된 GitHub REST API 용 requests.Session.
    모든 요청 전에 도메인 속도 제한을 적용하고, 토큰이 있으면 Authorization 헤더를 붙입니다.
    """

    def __init__(
        self,
        throttle:   DomainThrottle,
        user_agent: str = _DEFAULT_USER_AGENT,
        token:      str = "",
        timeout:    int = 30,
    ) -> None:
        super().__init__()
        self._throttle = throttle
        self._timeout  = timeout

        self.headers.update({
            "User-Agent":           user_agent,
            "Accept":               "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        })
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

        retry = Retry(
            total=_MAX_RETRIES,
            backoff_factor=_BACKOFF_FACTOR,
            status_forcelist=_RETRY_STATUS_CODES,
            allowed_methods=["GET", "HEAD"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.mount("https://", adapter)
        self.mount("http://",  adapter)

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        self._throttle.wait(url)
        kwargs.setdefault("timeout", self._timeout)

        logger.debug("http_request", method=method.upper(), url=url)
        resp = super().request(method, url, **kwargs)

        log = logger.bind(method=method.upper(), url=url, status=resp.status_code)
        if resp.status_code >= 400:
            log.warning(
                "http_error_response",
                rate_limit_remaining=resp.headers.get("X-RateLimit-Remaining"),
            )
        else:
            log.debug("http_response")
        return resp


# ─────────────────────────────────────────────────────────────
# 전역 싱글턴
# ─────────────────────────────────────────────────────────────

_default_throttle: Optional[DomainThrottle] = None


def get_throttle() -> DomainThrottle:
    """기본 DomainThrottle 싱글턴을 반환합니다."""
    global _default_throttle
    if _default_throttle is None:
        _default_throttle = DomainThrottle()
    return _default_throttle


def get_session(
    user_agent: Optional[str] = None,
    token:      str           = "",
    timeout:    int           = 30,
) -> ThrottledSession:
    """공유 스로틀을 사용하는 새 ThrottledSession 을 반환합니다."""
    return get_throttle().make_session(
        user_agent=user_agent or _DEFAULT_USER_AGENT,
        token=token,
        timeout=timeout,
    )
