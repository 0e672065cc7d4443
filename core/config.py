"""
core/config.py — GitHub 트렌딩 크롤러 통합 설정

설정 로드 우선순위:
  1. 환경 변수
  2. .env 파일 (python-dotenv, 로컬 개발)
  3. Settings 기본값

사용법:
    from core.config import settings

    token = settings.GITHUB_TOKEN
    url   = settings.DATABASE_URL
    print(settings.is_production)

필수 값 검증은 진입점(crawler/worker.py)에서 validate_settings() 로 1회 수행합니다.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_DEFAULT_TOPICS: tuple[str, ...] = (
    "javascript", "typescript", "python", "java", "go",
    "rust", "cpp", "csharp", "php", "ruby",
)


# -------------------------------------------------------
# 환경 변수 헬퍼
# -------------------------------------------------------

def _env_int(key: str, default: int) -> int:
    """정수 환경 변수를 읽습니다. 숫자가 아니면 ValueError."""
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"환경 변수 {key} 는 정수여야 합니다: {raw!r}") from None


def _env_list(key: str, default: tuple[str, ...]) -> list[str]:
    """쉼표 구분 환경 변수를 리스트로 읽습니다. 빈 항목은 무시합니다."""
    raw = os.getenv(key, "")
    items = [item.strip() for item in raw.split(",") if item.strip()]
    return items or list(default)


# -------------------------------------------------------
# 설정 데이터클래스
# -------------------------------------------------------

@dataclass(frozen=True)
class Settings:
    # ── 민감 정보 ────────────────────────────────────────
    GITHUB_TOKEN: str = ""
    DATABASE_URL: str = ""

    # ── 배포 환경 ─────────────────────────────────────────
    ENVIRONMENT: str = "development"

    # ── GitHub API ───────────────────────────────────────
    GITHUB_API_BASE_URL: str = "https://api.github.com"
    CRAWLER_USER_AGENT:  str = "TrendingCrawler/1.0"
    REQUEST_TIMEOUT:     int = 30     # 초
    MAX_RETRIES:         int = 3
    BASE_WAIT_TIME:      float = 1.0  # 지수 백오프 기본 대기(초)
    MAX_REQUESTS:        int = 4500   # 실행 1회당 요청 상한 (인증 한도 5000/h 미만)

    # ── 수집 대상 ─────────────────────────────────────────
    CRAWL_TOPICS: list = field(default_factory=lambda: list(_DEFAULT_TOPICS))
    CRAWL_INTERVAL: int = 7200        # 초 (2시간마다)

    # ── 내보내기 / 업로드 ────────────────────────────────
    EXPORT_DIR:         str = "exports"
    UPLOAD_BATCH_SIZE:  int = 1000
    REPOSITORIES_TABLE: str = "repositories"
    CRAWLER_LOGS_TABLE: str = "crawler_logs"

    # ── 로깅 ──────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_DIR:   str = "logs"

    # ── 편의 프로퍼티 ─────────────────────────────────────
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def has_github_token(self) -> bool:
        return bool(self.GITHUB_TOKEN)


# -------------------------------------------------------
# 싱글톤 팩토리
# -------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Settings 싱글톤을 반환합니다.

    테스트에서 환경 변수를 바꾼 뒤에는 get_settings.cache_clear() 를 호출하세요.
    """
    return Settings(
        GITHUB_TOKEN        = os.getenv("GITHUB_TOKEN", ""),
        DATABASE_URL        = os.getenv("DATABASE_URL") or os.getenv("SUPABASE_DB_URL", ""),
        ENVIRONMENT         = os.getenv("ENVIRONMENT", "development"),
        GITHUB_API_BASE_URL = os.getenv("GITHUB_API_BASE_URL", "https://api.github.com").rstrip("/"),
        CRAWLER_USER_AGENT  = os.getenv("CRAWLER_USER_AGENT", "TrendingCrawler/1.0"),
        REQUEST_TIMEOUT     = _env_int("CRAWLER_REQUEST_TIMEOUT", 30),
        MAX_RETRIES         = _env_int("CRAWLER_MAX_RETRIES", 3),
        MAX_REQUESTS        = _env_int("MAX_REQUESTS", 4500),
        CRAWL_TOPICS        = _env_list("CRAWL_TOPICS", _DEFAULT_TOPICS),
        CRAWL_INTERVAL      = _env_int("CRAWL_INTERVAL", 7200),
        EXPORT_DIR          = os.getenv("EXPORT_DIR", "exports"),
        UPLOAD_BATCH_SIZE   = _env_int("UPLOAD_BATCH_SIZE", 1000),
        REPOSITORIES_TABLE  = os.getenv("REPOSITORIES_TABLE", "repositories"),
        LOG_LEVEL           = os.getenv("LOG_LEVEL", "INFO"),
        LOG_DIR             = os.getenv("LOG_DIR", "logs"),
    )


# 모듈 레벨 싱글톤
settings = get_settings()


# -------------------------------------------------------
# 시작 시 필수 값 검증
# -------------------------------------------------------

def validate_settings(require_database: bool = False) -> None:
    """
    진입점에서 호출하여 필수 설정이 모두 있는지 확인합니다.

    Args:
        require_database: 업로드/DB 명령이면 True — DATABASE_URL 필수

    Raises:
        ValueError: 필수 값 누락 (누락된 키 전부를 메시지에 포함)
    """
    s = get_settings()
    missing = []

    if require_database and not s.DATABASE_URL:
        missing.append("DATABASE_URL")
    if s.UPLOAD_BATCH_SIZE <= 0:
        missing.append("UPLOAD_BATCH_SIZE (> 0)")

    if missing:
        raise ValueError(
            f"필수 설정 누락: {', '.join(missing)}\n"
            "  로컬: .env 파일에 KEY=value 형식으로 추가"
        )

    if not s.GITHUB_TOKEN:
        logger.warning("GITHUB_TOKEN 미설정 — 비인증 요청은 시간당 60회로 제한됩니다.")

    logger.info(
        "설정 로드 완료 | env=%s | GitHub=%s | DB=%s",
        s.ENVIRONMENT,
        "TOKEN" if s.GITHUB_TOKEN else "ANONYMOUS",
        "OK" if s.DATABASE_URL else "MISSING",
    )
